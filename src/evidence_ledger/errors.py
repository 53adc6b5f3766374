"""Error taxonomy for pipeline and generation runs.

Runs catch these and turn them into structured RunResult failures; they never
escape to callers as raw exceptions.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    code = "ERROR"

    def __init__(self, message: str, code: Optional[str] = None, **details: Any):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = {k: v for k, v in details.items() if v is not None}

    def to_details(self) -> Dict[str, Any]:
        return {"code": self.code, **self.details}


class InputError(LedgerError):
    """Bad run input: competitor bounds, missing project fields."""
    code = "INVALID_INPUT"


class AuthError(LedgerError):
    """No session, or the caller does not own the project."""
    code = "UNAUTHENTICATED"


class NotFoundError(LedgerError):
    code = "PROJECT_NOT_FOUND"


class AuxiliaryFetchError(LedgerError):
    """Best-effort display read failed. Never escalated past the fan-out."""
    code = "AUXILIARY_FETCH_FAILED"


class SearchProviderError(LedgerError):
    code = "SEARCH_PROVIDER_ERROR"


class RulesConfigError(LedgerError):
    code = "INVALID_CLASSIFIER_RULES"


class GenerationValidationError(LedgerError):
    """Model output failed validation after the single repair attempt."""
    code = "GENERATION_VALIDATION_FAILED"

    def __init__(
        self,
        message: str,
        stage: str,
        validation_error: Optional[str] = None,
        competitor_id: Optional[str] = None,
        competitor_name: Optional[str] = None,
    ):
        super().__init__(
            message,
            stage=stage,
            competitor_id=competitor_id,
            competitor_name=competitor_name,
            validation_error=validation_error,
        )
        self.stage = stage
        self.competitor_id = competitor_id
        self.validation_error = validation_error


def truncate_error(error: Optional[str], limit: int = 500) -> Optional[str]:
    """Cap an error summary so it cannot blow up logs or result payloads."""
    if not error:
        return None
    if len(error) <= limit:
        return error
    return f"{error[:limit - 3]}..."

"""
Langfuse tracking for evidence and generation runs.
Provides run-level traces with nested spans per stage. Tracing failures are
logged and never change a run's outcome.
"""
import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Optional

from langfuse import Langfuse

from ..config import get_settings
from ..schemas.artifacts import TokenUsage

logger = logging.getLogger(__name__)

# Root span of the run executing in this context; runs on other threads keep their own.
CURRENT_TRACE: ContextVar[Optional[Any]] = ContextVar("langfuse_current_trace", default=None)


def _get_langfuse() -> Optional[Langfuse]:
    settings = get_settings()
    if not settings.LANGFUSE_ENABLED:
        return None
    if not settings.LANGFUSE_PUBLIC_KEY or not settings.LANGFUSE_SECRET_KEY:
        logger.warning("Langfuse enabled but keys are missing")
        return None
    try:
        return Langfuse(
            public_key=settings.LANGFUSE_PUBLIC_KEY,
            secret_key=settings.LANGFUSE_SECRET_KEY,
            host=settings.LANGFUSE_HOST,
        )
    except Exception as e:
        logger.warning(f"Failed to initialize Langfuse: {e}")
        return None


class LangfuseTracker:
    """Handles Langfuse tracking for pipeline runs."""

    def __init__(self):
        settings = get_settings()
        self.enabled = settings.LANGFUSE_ENABLED
        self.client = _get_langfuse()

        if self.client:
            logger.info(f"Langfuse tracking enabled: {settings.LANGFUSE_HOST}")
        elif self.enabled:
            logger.warning("Langfuse enabled but client failed to initialize")
            self.enabled = False
        else:
            logger.info("Langfuse tracking disabled")

    def _sanitize_tags(self, tags: Dict[str, Any]) -> Dict[str, str]:
        """Ensure all tag values are strings."""
        return {k: str(v) for k, v in tags.items() if v is not None}

    @contextmanager
    def start_generation_run(
        self,
        run_id: str,
        project_id: str,
        kind: str,
        tags: Optional[Dict[str, Any]] = None,
    ):
        """
        Start a root span for one run (analysis, results or evidence collection).
        Yields the span id for nested spans, or None when tracking is off.
        """
        if not self.enabled or not self.client:
            yield None
            return

        metadata = {"run_id": run_id, "project_id": project_id, "kind": kind}
        if tags:
            metadata.update(self._sanitize_tags(tags))

        try:
            span = self.client.start_span(name=f"{kind}_{run_id}", metadata=metadata)
        except Exception as e:
            logger.warning(f"Failed to start run trace: {e}")
            yield None
            return

        token = CURRENT_TRACE.set(span)
        try:
            yield span.id if span else None
        finally:
            CURRENT_TRACE.reset(token)
            try:
                if span:
                    span.end()
                self.client.flush()
            except Exception as e:
                logger.warning(f"Failed to close run trace: {e}")

    @contextmanager
    def start_nested_run(
        self,
        run_name: str,
        parent_run_id: Optional[str] = None,
        tags: Optional[Dict[str, Any]] = None,
    ):
        """Start a nested span for a specific stage or competitor."""
        if not self.enabled or not self.client:
            yield None
            return

        sanitized_tags = self._sanitize_tags(tags) if tags else {}
        try:
            span = self.client.start_span(name=run_name, metadata=sanitized_tags)
        except Exception as e:
            logger.warning(f"Failed to start nested span: {e}")
            yield None
            return

        start_time = time.time()
        error = None
        try:
            yield span.id if span else None
        except Exception as e:
            error = str(e)
            raise
        finally:
            elapsed = time.time() - start_time
            metadata = {**sanitized_tags, "latency_seconds": elapsed}
            if error:
                metadata["error"] = error
            try:
                if span:
                    span.update(metadata=metadata)
                    span.end()
            except Exception as e:
                logger.warning(f"Failed to close nested span: {e}")

    def log_usage(self, usage: TokenUsage, model: Optional[str] = None):
        """Attach token usage to the current trace."""
        trace = CURRENT_TRACE.get()
        if not self.enabled or not trace:
            return

        try:
            trace.update(metadata={"usage": usage.model_dump(), "model": model})
        except Exception as e:
            logger.warning(f"Failed to log usage: {e}")

    def set_tags(self, tags: Dict[str, Any]):
        """Set tags on the current trace."""
        trace = CURRENT_TRACE.get()
        if not self.enabled or not trace:
            return

        try:
            trace.update(metadata=self._sanitize_tags(tags))
        except Exception as e:
            logger.warning(f"Failed to set tags: {e}")


# Global tracker instance
tracker = LangfuseTracker()

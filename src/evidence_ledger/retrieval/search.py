"""Search provider protocol and the Tavily implementation.

Transport errors are retried with backoff; HTTP and payload errors surface as
SearchProviderError for the harvester to isolate.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..config import get_settings
from ..errors import SearchProviderError
from ..log import get_logger
from ..schemas.evidence import EvidenceHit

logger = get_logger("search")


class SearchProvider(Protocol):
    def search(self, query: str, max_results: int = 10) -> List[EvidenceHit]:
        ...


def trim_excerpt(text: Optional[str], limit: int) -> Optional[str]:
    if not text:
        return None
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    cut = text[:limit - 3].rsplit(" ", 1)[0] or text[:limit - 3]
    return f"{cut}..."


class TavilySearchProvider:
    provider = "tavily"

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        search_depth: Optional[str] = None,
        excerpt_chars: Optional[int] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.TAVILY_API_KEY
        self.endpoint = endpoint or settings.TAVILY_API_ENDPOINT
        self.timeout = timeout or settings.TAVILY_TIMEOUT_S
        self.search_depth = search_depth or settings.TAVILY_SEARCH_DEPTH
        self.excerpt_chars = excerpt_chars or settings.EVIDENCE_EXCERPT_CHARS
        self.headers = {
            "User-Agent": "EvidenceLedger/1.0 (competitor research)",
            "Content-Type": "application/json",
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(2),
        retry=retry_if_exception_type(httpx.RequestError),
        reraise=True,
    )
    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {**self.headers, "Authorization": f"Bearer {self.api_key}"}
        with httpx.Client(timeout=self.timeout, headers=headers) as client:
            resp = client.post(self.endpoint, json=payload)
            resp.raise_for_status()
            return resp.json()

    def search(self, query: str, max_results: int = 10) -> List[EvidenceHit]:
        if not self.api_key:
            raise SearchProviderError("TAVILY_API_KEY is not configured", code="SEARCH_NOT_CONFIGURED")

        payload = {
            "query": query,
            "max_results": max_results,
            "search_depth": self.search_depth,
        }
        try:
            data = self._post(payload)
        except httpx.HTTPStatusError as e:
            raise SearchProviderError(
                f"Search failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                query=query,
            ) from e
        except httpx.RequestError as e:
            raise SearchProviderError(f"Search transport error: {e}", query=query) from e
        except ValueError as e:
            raise SearchProviderError(f"Search returned invalid JSON: {e}", query=query) from e

        retrieved_at = datetime.now(timezone.utc)
        hits = []
        for result in data.get("results") or []:
            url = result.get("url") or ""
            if not url:
                continue
            hits.append(EvidenceHit(
                url=url,
                title=result.get("title"),
                snippet=trim_excerpt(result.get("content"), self.excerpt_chars),
                published_at=result.get("published_date"),
                retrieved_at=retrieved_at,
            ))
        logger.debug(f"Search '{query}' returned {len(hits)} hits")
        return hits


_provider: Optional[TavilySearchProvider] = None


def get_search_provider() -> TavilySearchProvider:
    global _provider
    if _provider is None:
        _provider = TavilySearchProvider()
    return _provider

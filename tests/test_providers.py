import httpx
import pytest
from unittest.mock import MagicMock, patch

from evidence_ledger.errors import SearchProviderError
from evidence_ledger.llm.client import GenerationRequest, LLMClient
from evidence_ledger.retrieval.search import TavilySearchProvider, trim_excerpt


def _mock_response(payload=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    if status_code >= 400:
        request = httpx.Request("POST", "https://api.tavily.com/search")
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "error", request=request, response=httpx.Response(status_code, request=request)
        )
    return response


def test_tavily_search_maps_results():
    """
    WHY: Search results are the raw material of the evidence pipeline.
    HOW: Mock `httpx.Client` to return two Tavily results, one without a URL.
    EXPECTED: One EvidenceHit with title, trimmed snippet, parsed date and retrieval time; bearer auth sent.
    """
    payload = {"results": [
        {"url": "https://acme.io/pricing", "title": "Pricing", "content": "word " * 200,
         "published_date": "2025-05-01"},
        {"url": "", "title": "No url"},
    ]}
    with patch("httpx.Client") as MockClient:
        instance = MockClient.return_value.__enter__.return_value
        instance.post.return_value = _mock_response(payload)

        provider = TavilySearchProvider(api_key="tvly-test", excerpt_chars=50)
        hits = provider.search("Acme pricing plans", max_results=5)

    assert len(hits) == 1
    hit = hits[0]
    assert hit.url == "https://acme.io/pricing"
    assert hit.title == "Pricing"
    assert len(hit.snippet) <= 50
    assert hit.snippet.endswith("...")
    assert hit.published_at.year == 2025
    assert hit.retrieved_at is not None
    assert instance.post.call_args.kwargs["json"]["max_results"] == 5
    assert MockClient.call_args.kwargs["headers"]["Authorization"] == "Bearer tvly-test"


def test_tavily_http_error_raises_provider_error():
    """
    WHY: The harvester isolates failures by catching SearchProviderError per query.
    HOW: Mock a 429 response.
    EXPECTED: SearchProviderError carrying the status code, no retry on HTTP errors.
    """
    with patch("httpx.Client") as MockClient:
        instance = MockClient.return_value.__enter__.return_value
        instance.post.return_value = _mock_response(status_code=429)

        with pytest.raises(SearchProviderError) as exc:
            TavilySearchProvider(api_key="tvly-test").search("Acme reviews")

    assert exc.value.details["status_code"] == 429
    assert instance.post.call_count == 1


def test_tavily_transport_errors_are_retried():
    """
    WHY: Transient connection failures should not cost a whole query.
    HOW: Fail the first POST with a ConnectError, succeed on the second; skip the backoff wait.
    EXPECTED: Hits from the second attempt.
    """
    with patch("httpx.Client") as MockClient, \
            patch.object(TavilySearchProvider._post.retry, "sleep", lambda _: None):
        instance = MockClient.return_value.__enter__.return_value
        instance.post.side_effect = [
            httpx.ConnectError("reset"),
            _mock_response({"results": [{"url": "https://acme.io/docs", "title": "Docs"}]}),
        ]

        hits = TavilySearchProvider(api_key="tvly-test").search("Acme documentation")

    assert [h.url for h in hits] == ["https://acme.io/docs"]
    assert instance.post.call_count == 2


def test_tavily_requires_api_key():
    """
    WHY: A missing key should produce a clear error instead of an HTTP 401 per query.
    HOW: Search with an empty key.
    EXPECTED: SearchProviderError with code SEARCH_NOT_CONFIGURED.
    """
    with pytest.raises(SearchProviderError) as exc:
        TavilySearchProvider(api_key="").search("Acme")
    assert exc.value.code == "SEARCH_NOT_CONFIGURED"


def test_trim_excerpt():
    """
    WHY: Excerpts are stored with every item and must stay small.
    HOW: Trim whitespace-heavy text under and over the limit.
    EXPECTED: Whitespace collapsed; long text cut on a word boundary with an ellipsis.
    """
    assert trim_excerpt("  a   b  ", 10) == "a b"
    assert trim_excerpt("alpha beta gamma delta", 15) == "alpha beta..."
    assert trim_excerpt(None, 10) is None


def test_llm_client_requests_json_mode():
    """
    WHY: Every generation call must ask the provider for a JSON-shaped response.
    HOW: Mock the OpenAI client and send a request with max tokens.
    EXPECTED: response_format json_object and max_tokens passed; text, model and usage mapped back.
    """
    completion = MagicMock()
    completion.choices = [MagicMock()]
    completion.choices[0].message.content = '{"ok": true}'
    completion.model = "gpt-4o-mini-2024-07-18"
    completion.usage.prompt_tokens = 12
    completion.usage.completion_tokens = 8
    completion.usage.total_tokens = 20

    client = LLMClient(api_key="sk-test", model="gpt-4o-mini")
    client._client = MagicMock()
    client._client.chat.completions.create.return_value = completion

    response = client.generate(GenerationRequest(
        messages=[{"role": "user", "content": "hi"}], temperature=0.1, max_tokens=300,
    ))

    kwargs = client._client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["max_tokens"] == 300
    assert kwargs["temperature"] == 0.1
    assert response.text == '{"ok": true}'
    assert response.provider == "openai"
    assert response.model == "gpt-4o-mini-2024-07-18"
    assert response.usage.total_tokens == 20


def test_llm_client_builds_lazily():
    """
    WHY: Importing the package must work without an API key.
    HOW: Construct a client and inspect the underlying SDK client before any call.
    EXPECTED: No SDK client until first use.
    """
    client = LLMClient(api_key="")
    assert client._client is None

import httpx
import pytest

from conftest import DIFF_URL, SAMPLE_DIFF, make_payload
from nexgengit.diff_fetcher import MIN_DIFF_LENGTH, DiffFetcher
from nexgengit.models.review import StepStatus
from nexgengit.models.webhook import build_pull_request_ref


def _fetcher(handler):
    return DiffFetcher(httpx.AsyncClient(transport=httpx.MockTransport(handler)), timeout=1.0)


@pytest.fixture
def ref():
    return build_pull_request_ref(make_payload())


@pytest.mark.asyncio
async def test_returns_diff_text(ref):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text=SAMPLE_DIFF)

    result = await _fetcher(handler).fetch(ref)

    assert result.ok
    assert result.value == SAMPLE_DIFF
    assert seen[0].method == "GET"
    assert str(seen[0].url) == DIFF_URL
    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_follows_redirect_to_patch_host(ref):
    def handler(request):
        if request.url.host == "github.com":
            return httpx.Response(302, headers={"Location": "https://patch-diff.githubusercontent.com/raw/x.diff"})
        return httpx.Response(200, text=SAMPLE_DIFF)

    result = await _fetcher(handler).fetch(ref)

    assert result.value == SAMPLE_DIFF


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", " ", "x" * (MIN_DIFF_LENGTH - 1)])
async def test_degenerate_diff_is_ignored(ref, text):
    result = await _fetcher(lambda r: httpx.Response(200, text=text)).fetch(ref)

    assert result.status is StepStatus.IGNORED
    assert result.value is None


@pytest.mark.asyncio
async def test_threshold_is_inclusive(ref):
    text = "x" * MIN_DIFF_LENGTH
    result = await _fetcher(lambda r: httpx.Response(200, text=text)).fetch(ref)
    assert result.ok


@pytest.mark.asyncio
async def test_http_error_status_fails(ref):
    result = await _fetcher(lambda r: httpx.Response(404, text="Not Found")).fetch(ref)

    assert result.status is StepStatus.FAILED
    assert "404" in result.reason


@pytest.mark.asyncio
async def test_timeout_fails(ref):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    result = await _fetcher(handler).fetch(ref)

    assert result.status is StepStatus.FAILED
    assert "ReadTimeout" in result.reason

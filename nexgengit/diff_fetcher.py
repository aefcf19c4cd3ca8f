"""Pull request diff retrieval."""

from __future__ import annotations

import httpx

from nexgengit.logger import get_logger, log_with_context
from nexgengit.models.review import StepResult
from nexgengit.models.webhook import PullRequestRef

logger = get_logger()

# Anything shorter cannot hold a meaningful hunk.
MIN_DIFF_LENGTH = 20


class DiffFetcher:
    """Fetch the unified diff for a pull request over plain HTTP."""

    def __init__(self, client: httpx.AsyncClient, *, timeout: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout

    async def fetch(self, ref: PullRequestRef) -> StepResult[str]:
        ctx_logger = log_with_context(logger, repository=ref.full_name, pr_number=ref.number)
        ctx_logger.debug(f"Fetching diff from {ref.diff_url}")

        try:
            response = await self._client.get(
                ref.diff_url,
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            ctx_logger.error(f"Diff request failed: {exc!r}")
            return StepResult.failed(f"diff request failed: {exc.__class__.__name__}")

        if response.status_code >= 400:
            ctx_logger.error(f"Diff request returned status {response.status_code}")
            return StepResult.failed(f"diff request returned status {response.status_code}")

        diff = response.content.decode("utf-8", errors="replace")
        if len(diff) < MIN_DIFF_LENGTH:
            ctx_logger.warning(f"Diff is empty or too small to review ({len(diff)} characters)")
            return StepResult.ignored("diff too small")

        ctx_logger.debug(f"Fetched diff ({len(diff)} characters)")
        return StepResult.success(diff)

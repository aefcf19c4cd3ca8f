"""Client wrapper for generating pull request reviews with a hosted LLM."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List

import httpx

from nexgengit.logger import get_logger, log_with_context
from nexgengit.models.review import ReviewArtifact
from nexgengit.models.webhook import PullRequestRef

logger = get_logger()

FAILURE_SENTINEL = "⚠️ Failed to generate AI review."

SYSTEM_PROMPT = (
    "You are a senior software engineer AI assistant. "
    "Provide a markdown-formatted PR review."
)

PROMPT_TEMPLATE = """
As a senior software engineer with 15+ years of experience, review this pull request thoroughly.

**Pull Request Title**: {pr_title}
**Repository**: {repo_name}
**Author**: {pr_author}

**Review Guidelines**:
1. Code Quality
2. Logic Errors
3. Security
4. Performance
5. Best Practices
6. Readability
7. Testing

**Code Changes**:
```diff
{pr_diff}
```

**Provide your review** (Markdown formatted):
- Group feedback by category (Critical, Suggestions, Nitpicks)
- Use code examples
- Be concise but thorough
"""

_PLACEHOLDER_RE = re.compile(r"\{(pr_title|repo_name|pr_author|pr_diff)\}")


class CompletionError(RuntimeError):
    """Raised when the completion endpoint responds with an error."""


def render_prompt(ref: PullRequestRef, diff: str) -> str:
    values = {
        "pr_title": ref.title,
        "repo_name": ref.full_name,
        "pr_author": ref.author_or_unknown,
        "pr_diff": diff,
    }
    # Single pass: substituted text (diffs full of braces) is never rescanned.
    return _PLACEHOLDER_RE.sub(lambda match: values[match.group(1)], PROMPT_TEMPLATE)


def build_messages(prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


class ReviewGenerator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str | None,
        model: str,
        base_url: str,
        max_tokens: int = 1500,
        timeout: float = 60.0,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._max_tokens = max_tokens
        self._timeout = timeout

    async def generate(self, ref: PullRequestRef, diff: str) -> ReviewArtifact:
        """Return the review text, or the failure sentinel if the completion fails.

        This never raises for provider or transport errors, so the caller always
        has a body to publish.
        """

        ctx_logger = log_with_context(logger, repository=ref.full_name, pr_number=ref.number)
        prompt = render_prompt(ref, diff)
        ctx_logger.debug(f"Prompt built: {len(prompt)} characters")

        if not self._api_key:
            ctx_logger.warning("TOGETHER_API_KEY is not set; completion request will likely be rejected")

        try:
            content = await self._complete(prompt)
        except (httpx.HTTPError, CompletionError) as exc:
            ctx_logger.error(f"AI review error: {exc}")
            return ReviewArtifact(body=FAILURE_SENTINEL, is_fallback=True)

        ctx_logger.info(f"AI review generated ({len(content)} characters)")
        return ReviewArtifact(body=content)

    async def _complete(self, prompt: str) -> str:
        request_body = {
            "model": self._model,
            "messages": build_messages(prompt),
            "max_tokens": self._max_tokens,
        }
        response = await self._client.post(
            self._url,
            json=request_body,
            headers={
                "Authorization": f"Bearer {self._api_key or ''}",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
        )
        _raise_for_status("create completion", response)

        try:
            data = response.json()
        except ValueError as exc:
            raise CompletionError("Completion endpoint returned invalid JSON.") from exc
        return _extract_content(data)


def _raise_for_status(action: str, response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    detail: Any | None
    try:
        detail = response.json()
    except ValueError:
        detail = response.text
    raise CompletionError(f"Failed to {action}: status={response.status_code}, detail={detail}")


def _extract_content(data: Any) -> str:
    choices = data.get("choices") if isinstance(data, dict) else None
    message: Any = None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
    content = message.get("content") if isinstance(message, dict) else None

    if isinstance(content, str):
        return content
    return json.dumps(content, indent=2)

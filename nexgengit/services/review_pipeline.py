"""Per-delivery review pipeline: diff, completion, authentication, comment."""

from __future__ import annotations

import httpx

from nexgengit.config import Settings
from nexgengit.diff_fetcher import DiffFetcher
from nexgengit.github_client import (
    AuthenticationStateError,
    CommentPublisher,
    GitHubAPIError,
    InstallationAuthenticator,
    InstallationToken,
    MissingCredentialsError,
)
from nexgengit.logger import (
    delivery_context,
    get_logger,
    log_failure,
    log_ignored,
    log_success,
    log_timing,
    log_with_context,
)
from nexgengit.models.review import PipelineResult, ReviewArtifact, StepResult, StepStatus
from nexgengit.models.webhook import PullRequestRef
from nexgengit.review_client import ReviewGenerator

logger = get_logger()


class ReviewPipeline:
    """Runs the review steps for one pull request, strictly in order.

    Every step reports a :class:`StepResult`; the first non-success result ends
    the run. Nothing is retried and nothing outlives the call.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._client = client
        self._diff_fetcher = DiffFetcher(client, timeout=settings.http_timeout_seconds)
        self._generator = ReviewGenerator(
            client,
            api_key=settings.together_api_key,
            model=settings.llm_model,
            base_url=settings.normalized_llm_base_url,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
        )
        self._publisher = CommentPublisher(
            client,
            base_url=settings.normalized_github_api_base_url,
            timeout=settings.http_timeout_seconds,
        )

    async def __call__(self, ref: PullRequestRef, *, delivery_id: str | None = None) -> PipelineResult:
        context = delivery_context(delivery_id, ref.full_name, ref.number)
        ctx_logger = log_with_context(logger, **context)
        ctx_logger.info(f"Processing PR #{ref.number} in {ref.full_name}")

        with log_timing(ctx_logger, "fetch_diff"):
            diff_result = await self._diff_fetcher.fetch(ref)
        if not diff_result.ok:
            return _finish("fetch_diff", diff_result, **context)

        with log_timing(ctx_logger, "generate_review"):
            review = await self._generator.generate(ref, diff_result.value)
        if review.is_fallback:
            ctx_logger.warning("Posting fallback review text after completion failure")

        with log_timing(ctx_logger, "authenticate_installation"):
            token_result = await self._authenticate(ref)
        if not token_result.ok:
            return _finish("authenticate_installation", token_result, **context)

        with log_timing(ctx_logger, "publish_comment"):
            publish_result = await self._publish(ref, token_result.value, review)
        if not publish_result.ok:
            return _finish("publish_comment", publish_result, **context)

        log_success(logger, f"Comment posted for PR #{ref.number}", **context)
        return PipelineResult(
            status=StepStatus.SUCCESS,
            step="publish_comment",
            comment_id=publish_result.value,
        )

    async def _authenticate(self, ref: PullRequestRef) -> StepResult[InstallationToken]:
        credentials = self._settings.app_credentials()
        try:
            authenticator = InstallationAuthenticator(
                self._client,
                base_url=self._settings.normalized_github_api_base_url,
                app_id=credentials.github_app_id,
                private_key_pem=credentials.github_private_key_pem,
                timeout=self._settings.http_timeout_seconds,
            )
            token = await authenticator.authenticate(ref.owner, ref.repo)
        except MissingCredentialsError as exc:
            return StepResult.failed(str(exc))
        except GitHubAPIError as exc:
            return StepResult.failed(f"{exc} (status={exc.status_code})")
        except AuthenticationStateError as exc:  # pragma: no cover - authenticate() walks states in order
            return StepResult.failed(str(exc))
        return StepResult.success(token)

    async def _publish(
        self, ref: PullRequestRef, token: InstallationToken, review: ReviewArtifact
    ) -> StepResult[int | None]:
        try:
            comment = await self._publisher.create_issue_comment(
                token=token,
                owner=ref.owner,
                repo=ref.repo,
                issue_number=ref.number,
                review=review.body,
            )
        except GitHubAPIError as exc:
            return StepResult.failed(f"{exc} (status={exc.status_code})")
        comment_id = comment.get("id") if isinstance(comment, dict) else None
        return StepResult.success(comment_id)


def _finish(step: str, result: StepResult, **context: str | int | None) -> PipelineResult:
    if result.status is StepStatus.IGNORED:
        log_ignored(logger, f"Delivery ignored at {step}: {result.reason}", **context)
    else:
        log_failure(logger, f"Review pipeline stopped at {step}: {result.reason}", **context)
    return PipelineResult(status=result.status, step=step, reason=result.reason)

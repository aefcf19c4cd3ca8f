"""Data models for inbound webhook deliveries."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError

REVIEWABLE_ACTIONS = frozenset({"opened", "synchronize", "reopened"})
PULL_REQUEST_EVENT = "pull_request"


class InvalidPayloadError(ValueError):
    """Raised when a verified payload lacks the fields a review needs."""


class Delivery(BaseModel):
    """One inbound webhook occurrence, alive only while the request is handled."""

    model_config = ConfigDict(frozen=True)

    delivery_id: str | None = None
    event: str | None = None
    signature: str | None = None
    body: bytes = b""
    action: str | None = None


class PullRequestRef(BaseModel):
    """The pull request a review is generated for."""

    model_config = ConfigDict(frozen=True)

    owner: StrictStr
    repo: StrictStr
    full_name: StrictStr
    number: StrictInt
    title: StrictStr
    author: StrictStr | None = None
    diff_url: StrictStr

    @property
    def author_or_unknown(self) -> str:
        return self.author or "unknown"


def _mapping(container: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = container.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidPayloadError(f"Field '{key}' must be an object.")
    return value


def build_pull_request_ref(payload: Dict[str, Any]) -> PullRequestRef:
    """Extract a :class:`PullRequestRef` from a verified ``pull_request`` payload.

    Any shape problem surfaces as :class:`InvalidPayloadError`.
    """

    repository = _mapping(payload, "repository")
    pull_request = _mapping(payload, "pull_request")
    owner = _mapping(repository, "owner").get("login")
    name = repository.get("name")
    full_name = repository.get("full_name") or (f"{owner}/{name}" if owner and name else None)

    if not owner or not name or not full_name:
        raise InvalidPayloadError("Pull request event missing repository metadata.")
    if not pull_request.get("number"):
        raise InvalidPayloadError("Pull request payload missing number.")
    if not pull_request.get("diff_url"):
        raise InvalidPayloadError("Pull request payload missing diff_url.")

    try:
        return PullRequestRef(
            owner=owner,
            repo=name,
            full_name=full_name,
            number=pull_request["number"],
            title=pull_request.get("title") or "",
            author=_mapping(pull_request, "user").get("login"),
            diff_url=pull_request["diff_url"],
        )
    except ValidationError as exc:
        raise InvalidPayloadError(f"Pull request payload has invalid fields: {exc.error_count()} error(s).") from exc

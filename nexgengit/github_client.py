"""GitHub API client helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict

import httpx
import jwt

from nexgengit.logger import get_logger, log_with_context

logger = get_logger()

DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
DEFAULT_API_VERSION = "2022-11-28"
DEFAULT_USER_AGENT = "NexGenGit-AI-Review/1.0"
ATTRIBUTION_HEADER = "## 🤖 NexGenGit AI Review"


class GitHubAPIError(RuntimeError):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, status_code: int, response_body: Any | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class MissingCredentialsError(RuntimeError):
    """Raised when the GitHub App id or private key is not configured."""


class AuthenticationStateError(RuntimeError):
    """Raised when an authentication hop is attempted out of order."""


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    APP_AUTHENTICATED = "app_authenticated"
    INSTALLATION_AUTHENTICATED = "installation_authenticated"


@dataclass
class InstallationToken:
    token: str
    expires_at: datetime
    installation_id: int
    permissions: Dict[str, Any] | None = None

    def is_active(self, *, skew_seconds: int = 60) -> bool:
        """Return True if the token is still valid accounting for clock skew."""

        return self.expires_at - timedelta(seconds=skew_seconds) > datetime.now(timezone.utc)


def _base_headers() -> Dict[str, str]:
    return {
        "User-Agent": DEFAULT_USER_AGENT,
        "Accept": DEFAULT_ACCEPT_HEADER,
        "X-GitHub-Api-Version": DEFAULT_API_VERSION,
    }


def _bearer_headers(token: str) -> Dict[str, str]:
    return {**_base_headers(), "Authorization": f"Bearer {token}"}


async def _request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: Dict[str, str],
    timeout: float,
    json: Any | None = None,
) -> httpx.Response:
    try:
        response = await client.request(method, url, headers=headers, json=json, timeout=timeout)
    except httpx.HTTPError as exc:
        raise GitHubAPIError(f"GitHub API request to {url} failed: {exc!r}", 0, None) from exc

    if response.status_code >= 400:
        detail: Any | None
        if response.content:
            try:
                detail = response.json()
            except ValueError:
                detail = response.text
        else:
            detail = None
        raise GitHubAPIError(
            f"GitHub API request to {url} failed with status {response.status_code}.",
            response.status_code,
            detail,
        )
    return response


class InstallationAuthenticator:
    """Two-hop GitHub App authentication for a single delivery.

    The authenticator walks ``UNAUTHENTICATED -> APP_AUTHENTICATED ->
    INSTALLATION_AUTHENTICATED``. The app JWT is minted from the private key,
    used to look up the installation for one repository, and then exchanged for
    an installation access token. Instances are built per delivery and never
    reuse a token across deliveries.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        app_id: int | None,
        private_key_pem: str | None,
        timeout: float = 10.0,
    ) -> None:
        missing = []
        if app_id is None:
            missing.append("GITHUB_APP_ID")
        if not private_key_pem:
            missing.append("GITHUB_PRIVATE_KEY")
        if missing:
            raise MissingCredentialsError(
                f"Missing GitHub App credentials: {', '.join(missing)}."
            )

        self._client = client
        self._base_url = base_url.rstrip("/")
        self._app_id = app_id
        # Normalize private key: handle escaped newlines from environment variables
        self._private_key = private_key_pem.replace("\\n", "\n")
        self._timeout = timeout
        self._app_jwt: str | None = None
        self.state = AuthState.UNAUTHENTICATED

    def _require_state(self, expected: AuthState) -> None:
        if self.state is not expected:
            raise AuthenticationStateError(
                f"Expected authenticator state {expected.value}, found {self.state.value}."
            )

    def authenticate_app(self) -> str:
        """Mint the short-lived app JWT and move to ``APP_AUTHENTICATED``."""

        self._require_state(AuthState.UNAUTHENTICATED)
        now = datetime.now(timezone.utc)
        payload = {
            "iat": int((now - timedelta(seconds=60)).timestamp()),
            "exp": int((now + timedelta(minutes=10)).timestamp()),
            "iss": str(self._app_id),
        }
        try:
            self._app_jwt = jwt.encode(payload, self._private_key, algorithm="RS256")
        except Exception as exc:
            raise GitHubAPIError(
                f"Failed to encode JWT: {exc}. Check that GITHUB_PRIVATE_KEY is a valid RSA private key in PEM format.",
                0,
                None,
            ) from exc

        self.state = AuthState.APP_AUTHENTICATED
        return self._app_jwt

    async def find_installation_id(self, owner: str, repo: str) -> int:
        self._require_state(AuthState.APP_AUTHENTICATED)
        response = await _request(
            self._client,
            "GET",
            f"{self._base_url}/repos/{owner}/{repo}/installation",
            headers=_bearer_headers(self._app_jwt),
            timeout=self._timeout,
        )
        data = response.json()
        installation_id = data.get("id") if isinstance(data, dict) else None
        if not installation_id:
            raise GitHubAPIError(
                f"GitHub did not return an installation for {owner}/{repo}.",
                response.status_code,
                data,
            )
        return int(installation_id)

    async def exchange_installation_token(self, installation_id: int) -> InstallationToken:
        """Trade the app JWT for an installation token, ``INSTALLATION_AUTHENTICATED``."""

        self._require_state(AuthState.APP_AUTHENTICATED)
        response = await _request(
            self._client,
            "POST",
            f"{self._base_url}/app/installations/{installation_id}/access_tokens",
            headers=_bearer_headers(self._app_jwt),
            timeout=self._timeout,
        )
        data = response.json()
        token_value = data.get("token")
        if not token_value:
            raise GitHubAPIError(
                "GitHub did not return an installation token.",
                response.status_code,
                data,
            )

        expires_at_raw = data.get("expires_at")
        if not expires_at_raw:
            raise GitHubAPIError(
                "GitHub did not return an expires_at value for installation token.",
                response.status_code,
                data,
            )

        self.state = AuthState.INSTALLATION_AUTHENTICATED
        self._app_jwt = None
        return InstallationToken(
            token=token_value,
            expires_at=_parse_github_timestamp(expires_at_raw),
            installation_id=installation_id,
            permissions=data.get("permissions"),
        )

    async def authenticate(self, owner: str, repo: str) -> InstallationToken:
        """Run both hops for ``owner/repo`` and return the installation token."""

        ctx_logger = log_with_context(logger, repository=f"{owner}/{repo}")
        self.authenticate_app()
        ctx_logger.debug("App JWT minted")
        installation_id = await self.find_installation_id(owner, repo)
        ctx_logger.debug(f"Resolved installation id {installation_id}")
        token = await self.exchange_installation_token(installation_id)
        ctx_logger.debug(f"Installation token issued (expires_at={token.expires_at.isoformat()})")
        return token


def format_comment_body(review: str) -> str:
    return f"{ATTRIBUTION_HEADER}\n\n{review}"


class CommentPublisher:
    """Posts review comments on pull requests with an installation token."""

    def __init__(self, client: httpx.AsyncClient, *, base_url: str, timeout: float = 10.0) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def create_issue_comment(
        self,
        *,
        token: InstallationToken,
        owner: str,
        repo: str,
        issue_number: int,
        review: str,
    ) -> Dict[str, Any]:
        if not token.is_active(skew_seconds=0):
            raise GitHubAPIError("Installation token has expired.", 0, None)

        response = await _request(
            self._client,
            "POST",
            f"{self._base_url}/repos/{owner}/{repo}/issues/{issue_number}/comments",
            headers=_bearer_headers(token.token),
            timeout=self._timeout,
            json={"body": format_comment_body(review)},
        )
        return response.json()


def _parse_github_timestamp(raw: str) -> datetime:
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return datetime.fromisoformat(raw).astimezone(timezone.utc)

"""Shared fixtures: a recording fake for every upstream service plus an app client."""

import json
import os
import tempfile

os.environ.setdefault("NEXGENGIT_LOG_DIR", tempfile.mkdtemp(prefix="nexgengit-logs-"))

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient

from nexgengit.config import Settings
from nexgengit.dependencies import http_client_dependency, settings_dependency
from nexgengit.main import app
from nexgengit.utils.security import build_github_signature

WEBHOOK_SECRET = "It's a Secret to Everybody"
OWNER = "octo-org"
REPO = "widgets"
PR_NUMBER = 42
DIFF_URL = f"https://github.com/{OWNER}/{REPO}/pull/{PR_NUMBER}.diff"
INSTALLATION_ID = 777

SAMPLE_DIFF = (
    "diff --git a/app.py b/app.py\n"
    "index 83db48f..bf269f4 100644\n"
    "--- a/app.py\n"
    "+++ b/app.py\n"
    "@@ -1,5 +1,7 @@\n"
    " import os\n"
    "+import sys\n"
    " \n"
    " def main():\n"
    "-    print('hello')\n"
    "+    name = sys.argv[1] if len(sys.argv) > 1 else 'world'\n"
    "+    print(f'hello {name}')\n"
    "+    return {'status': 0}\n"
    " \n"
    " if __name__ == '__main__':\n"
    "     main()\n"
    "# padding to keep the fixture comfortably long for review purposes........\n"
    "# more padding so the diff is roughly five hundred characters long.......\n"
    "# final padding line...............................................\n"
)


class FakeUpstream:
    """Stands in for github.com, the GitHub API and the completion endpoint."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.diff_text = SAMPLE_DIFF
        self.diff_status = 200
        self.completion = {
            "choices": [{"message": {"role": "assistant", "content": "### Critical\nNone found."}}]
        }
        self.completion_status = 200
        self.completion_error: Exception | None = None
        self.installation_status = 200
        self.comment_status = 201

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "github.com" and path.endswith(".diff"):
            return httpx.Response(self.diff_status, text=self.diff_text)
        if request.url.host == "api.together.xyz":
            if self.completion_error is not None:
                raise self.completion_error
            return httpx.Response(self.completion_status, json=self.completion)
        if path.endswith("/installation"):
            return httpx.Response(self.installation_status, json={"id": INSTALLATION_ID})
        if path.endswith("/access_tokens"):
            return httpx.Response(
                201,
                json={
                    "token": "ghs_installation_token",
                    "expires_at": "2099-01-01T00:00:00Z",
                    "permissions": {"issues": "write"},
                },
            )
        if path.endswith("/comments"):
            body = json.loads(request.content)["body"]
            return httpx.Response(self.comment_status, json={"id": 1001, "body": body})
        return httpx.Response(404, json={"message": "Not Found"})

    def _matching(self, predicate) -> list[httpx.Request]:
        return [request for request in self.requests if predicate(request)]

    @property
    def diff_requests(self) -> list[httpx.Request]:
        return self._matching(lambda r: r.url.path.endswith(".diff"))

    @property
    def llm_requests(self) -> list[httpx.Request]:
        return self._matching(lambda r: r.url.host == "api.together.xyz")

    @property
    def token_requests(self) -> list[httpx.Request]:
        return self._matching(lambda r: r.url.path.endswith("/access_tokens"))

    @property
    def installation_requests(self) -> list[httpx.Request]:
        return self._matching(lambda r: r.url.path.endswith("/installation"))

    @property
    def comment_requests(self) -> list[httpx.Request]:
        return self._matching(lambda r: r.url.path.endswith("/comments"))


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def settings(private_key_pem) -> Settings:
    return Settings(
        github_app_id=123456,
        github_private_key_pem=private_key_pem,
        github_webhook_secret=WEBHOOK_SECRET,
        together_api_key="together-test-key",
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def http_client(upstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream.handle))


@pytest.fixture
def client(settings, http_client):
    app.dependency_overrides[settings_dependency] = lambda: settings
    app.dependency_overrides[http_client_dependency] = lambda: http_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_payload(action: str = "opened", **pull_request_overrides) -> dict:
    pull_request = {
        "number": PR_NUMBER,
        "title": "Greet users by name",
        "user": {"login": "mona"},
        "diff_url": DIFF_URL,
    }
    pull_request.update(pull_request_overrides)
    return {
        "action": action,
        "pull_request": pull_request,
        "repository": {
            "name": REPO,
            "full_name": f"{OWNER}/{REPO}",
            "owner": {"login": OWNER},
        },
        "installation": {"id": INSTALLATION_ID},
    }


def signed_headers(body: bytes, *, event: str = "pull_request", secret: str = WEBHOOK_SECRET) -> dict:
    return {
        "X-GitHub-Delivery": "72d3162e-cc78-11e3-81ab-4c9367dc0958",
        "X-GitHub-Event": event,
        "X-Hub-Signature-256": build_github_signature(secret, body),
        "Content-Type": "application/json",
    }

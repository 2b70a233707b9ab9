import json
import sys
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from foundry_gateway.core.config import Settings
from foundry_gateway.main import create_app

PROXY_TOKEN = "test-proxy-token"
RUNNER_TOKEN = "test-runner-token"

# "codex" echoes its stdin; "claude" takes the prompt as an argument and
# answers with an import payload naming it.
ECHO_STDIN_SCRIPT = "import sys; sys.stdout.write(sys.stdin.read())"
PAYLOAD_SCRIPT = (
    "import json, sys; "
    "print(json.dumps({'documents': [{'type': 'JournalEntry', 'data': {'name': sys.argv[1]}}]}))"
)


def make_settings(**overrides) -> Settings:
    values = {
        "proxy_token": PROXY_TOKEN,
        "runner_token": RUNNER_TOKEN,
        "openai_api_key": "sk-test-fake-key",
        "openai_base_url": "https://llm.test/v1",
        "default_model": "gpt-4o-mini",
        "codex_command": sys.executable,
        "codex_args": json.dumps(["-c", ECHO_STDIN_SCRIPT]),
        "claude_command": sys.executable,
        "claude_args": json.dumps(["-c", PAYLOAD_SCRIPT, "{{prompt}}"]),
        "rate_limit_max": 0,
        "max_tokens": 0,
        "max_cost_usd": 0.5,
        "runner_timeout_ms": 10_000,
        "vault_path": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def make_app():
    """Build an app with test settings, overridable per test."""

    def _make(**overrides):
        return create_app(make_settings(**overrides))

    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def proxy_headers() -> dict[str, str]:
    return {"X-Foundry-Proxy-Token": PROXY_TOKEN}


@pytest.fixture
def runner_headers() -> dict[str, str]:
    return {"X-Foundry-Runner-Token": RUNNER_TOKEN}

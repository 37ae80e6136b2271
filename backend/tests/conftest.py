import pytest
from fastapi.testclient import TestClient

from streamchat.config import Settings
from streamchat.main import create_app


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'chats.db'}",
        openai_base_url="http://openai.test/v1",
        openai_api_key="sk-test",
        gemini_base_url="http://gemini.test/v1beta",
        gemini_api_key="gemini-test",
        provider_timeout_seconds=5,
        provider_max_retries=0,
        stream_inactivity_timeout_seconds=2.0,
        chat_api_base_url="http://chats.test",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"X-User-Id": "user-1"}

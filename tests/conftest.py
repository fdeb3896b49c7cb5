from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from cc_mob.config import Settings
from cc_mob.credentials import CredentialManager
from cc_mob.server import create_app


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(config_dir=tmp_path, trust_proxy=False)


@pytest.fixture
def credentials(settings: Settings) -> CredentialManager:
    creds = CredentialManager(settings.env_path, environ={})
    creds.load()
    return creds


@pytest.fixture
def token(credentials: CredentialManager) -> str:
    return credentials.current_token()


@pytest.fixture
def app(settings: Settings, credentials: CredentialManager):
    return create_app(settings, credentials)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth(token: str) -> dict:
    return {"x-auth-token": token}

import pytest
import yaml
from fastapi.testclient import TestClient

from panel.auth import TokenValidator
from panel.main import create_app


SECRET = "panel-test-secret"


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("CORS_ORIGINS", raising=False)
    config = {"auth": {"jwt_secret": SECRET}}
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(config), encoding="utf-8")
    return str(tmp_path)


@pytest.fixture
def validator():
    return TokenValidator(SECRET)


@pytest.fixture
def token(validator):
    return validator.create_token(1, "admin")


@pytest.fixture
def app(project_dir):
    return create_app(project_dir)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c

import os

import pytest

from panel.config import DEFAULTS, ConfigManager, cors_origins, resolve_jwt_secret
from panel.logger import PanelLogger
from panel.main import create_app


def test_defaults_without_config_file(tmp_path):
    config = ConfigManager(str(tmp_path)).load()
    assert config == DEFAULTS
    assert config is not DEFAULTS


def test_partial_config_merged_over_defaults(tmp_path):
    (tmp_path / "config.yaml").write_text(
        "web:\n  port: 9000\nterminal:\n  shell: /bin/sh\n", encoding="utf-8"
    )
    config = ConfigManager(str(tmp_path)).load()
    assert config["web"] == {"port": 9000, "host": "0.0.0.0"}
    assert config["terminal"]["shell"] == "/bin/sh"
    assert config["terminal"]["term"] == "xterm-256color"


@pytest.mark.parametrize("content", ["web: [unclosed", "- just\n- a list\n"])
def test_broken_config_falls_back_to_defaults(tmp_path, content):
    (tmp_path / "config.yaml").write_text(content, encoding="utf-8")
    config = ConfigManager(str(tmp_path)).load()
    assert "_config_error" in config
    assert config["web"] == DEFAULTS["web"]


def test_secret_from_environment_wins():
    config = {"auth": {"jwt_secret": "from-file"}}
    assert resolve_jwt_secret(config, {"JWT_SECRET": "from-env"}) == ("from-env", False)


def test_secret_from_config():
    config = {"auth": {"jwt_secret": "from-file"}}
    assert resolve_jwt_secret(config, {}) == ("from-file", False)


def test_generated_secret_when_unset():
    first, generated = resolve_jwt_secret({"auth": {"jwt_secret": ""}}, {})
    second, _ = resolve_jwt_secret({"auth": {"jwt_secret": ""}}, {})
    assert generated is True
    assert len(first) == 64
    assert first != second


def test_cors_origins():
    assert cors_origins({}) == ["*"]
    assert cors_origins({"CORS_ORIGINS": "https://a.example, https://b.example"}) == [
        "https://a.example",
        "https://b.example",
    ]


def test_logger_writes_tagged_lines(tmp_path, capsys):
    logger = PanelLogger(str(tmp_path / "logs"))
    line = logger.terminal("Session opened for admin")
    assert line.endswith("[TERM] Session opened for admin")
    assert line in capsys.readouterr().out

    (log_file,) = os.listdir(tmp_path / "logs")
    with open(tmp_path / "logs" / log_file, encoding="utf-8") as f:
        assert f.read() == line + "\n"


def test_app_warns_about_generated_secret(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    create_app(str(tmp_path))
    out = capsys.readouterr().out
    assert "[WARN] JWT_SECRET not set" in out


def test_rest_and_terminal_share_one_validator(app):
    validator = app.state.token_validator
    token = validator.create_token(9, "ops")
    assert validator.validate(token).user_id == 9

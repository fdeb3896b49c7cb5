from pathlib import Path

from cc_mob.config import DEFAULT_PORT, Settings


def test_defaults() -> None:
    settings = Settings.from_env({})
    assert settings.port == DEFAULT_PORT
    assert settings.bind_host == "127.0.0.1"
    assert settings.expiry == 24 * 60 * 60
    assert settings.create_rate_limit == 10
    assert settings.env_path.name == ".env"


def test_environment_and_overrides(tmp_path: Path) -> None:
    env = {"PORT": "4000", "LAN": "1", "CC_MOB_HOME": str(tmp_path), "CC_MOB_EXPIRY": "120"}
    settings = Settings.from_env(env)
    assert settings.port == 4000
    assert settings.lan_mode is True
    assert settings.bind_host == "0.0.0.0"
    assert settings.expiry == 120
    assert settings.env_path == tmp_path / ".env"

    # CLI flags win; unset flags fall through
    settings = Settings.from_env(env, port=5000, lan_mode=None)
    assert settings.port == 5000
    assert settings.lan_mode is True


def test_invalid_number_falls_back() -> None:
    assert Settings.from_env({"PORT": "abc"}).port == DEFAULT_PORT

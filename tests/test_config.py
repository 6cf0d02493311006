import pytest

from config import load_config, parse_bool, parse_float, parse_int

_ENV_KEYS = [
    "WSDL_STEAMCMD_DIR",
    "WSDL_STEAM_ROOT",
    "WSDL_CONCURRENCY",
    "WSDL_MAX_RETRIES",
    "WSDL_RETRY_DELAY",
    "WSDL_VALIDATION_PASSES",
    "WSDL_VALIDATION_DELAY",
    "WSDL_STEAMCMD_TIMEOUT",
    "WSDL_HTTP_TIMEOUT",
    "WSDL_HTTP_RETRIES",
    "WSDL_HTTP_BACKOFF",
    "WSDL_LOG_LEVEL",
    "WSDL_LOG_FILE",
    "WSDL_SKIP_STEAMCMD_INIT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    config = load_config()

    assert config.steamcmd_dir == "steamcmd"
    assert config.steam_root == "steamcmd"
    assert config.concurrency == 3
    assert config.max_retries == 5
    assert config.retry_delay == 10.0
    assert config.validation_passes == 3
    assert config.steamcmd_timeout is None
    assert config.skip_steamcmd_init is False


def test_overrides(monkeypatch):
    monkeypatch.setenv("WSDL_STEAMCMD_DIR", "/opt/steamcmd")
    monkeypatch.setenv("WSDL_STEAM_ROOT", "/data/steam")
    monkeypatch.setenv("WSDL_CONCURRENCY", "8")
    monkeypatch.setenv("WSDL_RETRY_DELAY", "2.5")
    monkeypatch.setenv("WSDL_STEAMCMD_TIMEOUT", "600")
    monkeypatch.setenv("WSDL_SKIP_STEAMCMD_INIT", "yes")

    config = load_config()

    assert config.steamcmd_dir == "/opt/steamcmd"
    assert config.steam_root == "/data/steam"
    assert config.concurrency == 8
    assert config.retry_delay == 2.5
    assert config.steamcmd_timeout == 600.0
    assert config.skip_steamcmd_init is True


def test_invalid_values_fall_back_or_clamp(monkeypatch):
    monkeypatch.setenv("WSDL_CONCURRENCY", "0")
    monkeypatch.setenv("WSDL_MAX_RETRIES", "lots")
    monkeypatch.setenv("WSDL_VALIDATION_DELAY", "-3")
    monkeypatch.setenv("WSDL_STEAMCMD_TIMEOUT", "-10")
    monkeypatch.setenv("WSDL_HTTP_TIMEOUT", "0")
    monkeypatch.setenv("WSDL_HTTP_RETRIES", "-2")
    monkeypatch.setenv("WSDL_HTTP_BACKOFF", "-1.5")

    config = load_config()

    assert config.concurrency == 1
    assert config.max_retries == 5
    assert config.validation_delay == 0.0
    assert config.steamcmd_timeout is None
    assert config.http_timeout == 1
    assert config.http_retries == 0
    assert config.http_backoff == 0.0


def test_negative_http_timeout_is_clamped(monkeypatch):
    monkeypatch.setenv("WSDL_HTTP_TIMEOUT", "-30")

    assert load_config().http_timeout == 1


def test_parsers():
    assert parse_bool("On") is True
    assert parse_bool("0", default=True) is False
    assert parse_bool(None, default=True) is True
    assert parse_int("", 4) == 4
    assert parse_int("x", 4) == 4
    assert parse_float("1.5", 0.0) == 1.5
    assert parse_float("nope", 2.0) == 2.0

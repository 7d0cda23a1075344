import pytest
from evv_service.config import PROXIMITY_POLICY_BLOCK, PROXIMITY_POLICY_FLAG, Settings

ENV_VARS = [
    "DATABASE_URL", "DB_SCHEMA", "DB_ECHO", "EVV_PROXIMITY_POLICY", "EVV_PROXIMITY_TIER", "EVV_LOCATION_ACCURACY",
    "GEOCODER_URL", "RABBITMQ_HOST", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite://")
    settings = Settings.from_env()

    assert settings.database_url == "sqlite+aiosqlite://"
    assert settings.db_schema is None
    assert settings.db_echo is False
    assert settings.proximity_policy == PROXIMITY_POLICY_FLAG
    assert settings.proximity_tier == "normal"
    assert settings.geocoder_url is None
    assert settings.rabbitmq_host is None
    assert settings.log_level == "INFO"


def test_database_url_from_parts(monkeypatch):
    monkeypatch.setenv("DB_USER", "evv")
    monkeypatch.setenv("DB_PASSWORD", "secret")
    monkeypatch.setenv("DB_HOST", "db")
    monkeypatch.setenv("DB_PORT", "5432")
    monkeypatch.setenv("DB_NAME", "care")

    assert Settings.from_env().database_url == "postgresql+asyncpg://evv:secret@db:5432/care"


def test_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("EVV_PROXIMITY_POLICY", "BLOCK")
    monkeypatch.setenv("EVV_PROXIMITY_TIER", "strict")
    monkeypatch.setenv("DB_ECHO", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.proximity_policy == PROXIMITY_POLICY_BLOCK
    assert settings.proximity_tier == "strict"
    assert settings.db_echo is True
    assert settings.log_level == "DEBUG"


def test_invalid_proximity_policy(monkeypatch):
    monkeypatch.setenv("EVV_PROXIMITY_POLICY", "ignore")
    with pytest.raises(ValueError) as exc_info:
        Settings.from_env()
    assert "flag, block" in str(exc_info.value)


@pytest.mark.parametrize("name,value,allowed", [
    ("EVV_PROXIMITY_TIER", "suburban", "strict, normal, relaxed"),
    ("EVV_LOCATION_ACCURACY", "exact", "high, medium, low"),
])
def test_invalid_tier_or_accuracy_fails_at_load(monkeypatch, name, value, allowed):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError) as exc_info:
        Settings.from_env()
    assert name in str(exc_info.value)
    assert allowed in str(exc_info.value)


def test_location_accuracy_override(monkeypatch):
    monkeypatch.setenv("EVV_LOCATION_ACCURACY", "Medium")
    assert Settings.from_env().location_accuracy == "medium"

import pytest
from decouple import UndefinedValueError

from medicab.config import Settings
from medicab.main import create_app


def test_missing_jwt_secret_fails_fast(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    with pytest.raises(UndefinedValueError):
        Settings()


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "from-env")
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_HOURS", "2")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3000,http://clinic.local")

    settings = Settings()
    assert settings.jwt_secret == "from-env"
    assert settings.access_token_expire_hours == 2
    assert settings.cors_origins == ["http://localhost:3000", "http://clinic.local"]
    assert settings.jwt_algorithm == "HS256"


def test_overrides_win(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "from-env")
    assert Settings(jwt_secret="override").jwt_secret == "override"


def test_empty_secret_and_bad_licence_secret(monkeypatch):
    with pytest.raises(ValueError):
        Settings(jwt_secret="")
    with pytest.raises(ValueError):
        Settings(jwt_secret="x", licence_secret="too-short")


def test_token_lifetime_follows_settings(settings):
    app = create_app(Settings(jwt_secret="x", database_url="sqlite://", log_dir=settings.log_dir,
                              access_token_expire_hours=1))
    payload = app.state.tokens.verify(app.state.tokens.issue(1, "user"))
    assert payload["exp"] - payload["iat"] == 3600


def test_unsupported_database_fails_at_startup(settings):
    with pytest.raises(ValueError, match="mssql"):
        create_app(Settings(jwt_secret="x", database_url="mssql+pyodbc://sa:pw@db/clinic", log_dir=settings.log_dir))

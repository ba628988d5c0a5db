"""Application settings loaded from the environment / .env file"""
from decouple import config, Csv

DEFAULT_LICENCE_SECRET = "12345678901234567890123456789012"  # 32 bytes, shared with the licence issuer


class Settings:
    """Runtime configuration.

    Values come from environment variables (or a .env file) through
    python-decouple. Keyword arguments override the environment.
    JWT_SECRET has no default: the application refuses to start without it.
    """

    def __init__(self, **overrides):
        def setting(name, env, **kwargs):
            if name in overrides:
                return overrides[name]
            return config(env, **kwargs)

        self.database_url = setting("database_url", "DATABASE_URL", default="sqlite:///./medicab.db")
        self.jwt_secret = setting("jwt_secret", "JWT_SECRET")
        self.jwt_algorithm = setting("jwt_algorithm", "JWT_ALGORITHM", default="HS256")
        self.access_token_expire_hours = setting(
            "access_token_expire_hours", "ACCESS_TOKEN_EXPIRE_HOURS", default=6, cast=int
        )
        self.licence_secret = setting("licence_secret", "LICENCE_SECRET", default=DEFAULT_LICENCE_SECRET)
        self.log_dir = setting("log_dir", "LOG_DIR", default=".")
        self.log_level = setting("log_level", "LOG_LEVEL", default="INFO")
        self.export_cleanup_delay = setting("export_cleanup_delay", "EXPORT_CLEANUP_DELAY", default=5, cast=float)
        self.database_name = setting("database_name", "DB_NAME", default="medicab")
        self.cors_origins = setting("cors_origins", "CORS_ORIGINS", default="*", cast=Csv())

        if not self.jwt_secret:
            raise ValueError("JWT_SECRET must not be empty")
        if len(self.licence_secret.encode()) != 32:
            raise ValueError("LICENCE_SECRET must be exactly 32 bytes")

import os


DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5500",
    "http://127.0.0.1:5500",
    "https://shivanew-hadoop.github.io",
]


def _getenv(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _getenv_csv_set(name: str) -> set[str]:
    raw = _getenv(name)
    if raw is None:
        return set()
    parts = [p.strip().lower() for p in raw.split(",")]
    return {p for p in parts if p}


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.log_level = (_getenv("LOG_LEVEL", "INFO") or "INFO").upper()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./sql_app.db") or "sqlite:///./sql_app.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)

        self.supabase_url = _getenv("SUPABASE_URL")
        self.supabase_anon_key = _getenv("SUPABASE_ANON_KEY")
        self.supabase_jwt_audience = _getenv("SUPABASE_JWT_AUD", "authenticated")
        self.supabase_jwt_issuer = _getenv("SUPABASE_JWT_ISSUER")
        self.supabase_jwt_secret = _getenv("SUPABASE_JWT_SECRET")
        self.supabase_timeout_s = float(_getenv("SUPABASE_TIMEOUT_S", "10") or "10")

        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")

        self.openai_api_key = _getenv("OPENAI_API_KEY")
        self.openai_base_url = _getenv("OPENAI_BASE_URL")
        self.openai_transcribe_model = _getenv("OPENAI_TRANSCRIBE_MODEL", "gpt-4o-transcribe") or "gpt-4o-transcribe"
        self.openai_chat_model = _getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini") or "gpt-4o-mini"
        self.ai_max_retries = max(1, _getenv_int("AI_MAX_RETRIES", 3))
        self.ai_retry_base_s = float(_getenv("AI_RETRY_BASE_S", "0.7") or "0.7")
        self.max_audio_bytes = _getenv_int("MAX_AUDIO_BYTES", 25 * 1024 * 1024)

        self.admin_emails = _getenv_csv_set("ADMIN_EMAILS")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None:
            return list(DEFAULT_CORS_ORIGINS)
        if raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins


settings = Settings()

from __future__ import annotations

import logging
import os

from pydantic import BaseModel, ConfigDict

DEFAULT_MODELS = (
    "llama-3.3-70b-versatile,"
    "deepseek-r1-distill-llama-70b,"
    "llama-3.1-8b-instant"
)


class Settings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

    llm_api_key: str = (
        os.getenv("LLM_API_KEY")
        or os.getenv("GROQ_API_KEY")
        or os.getenv("OPENAI_API_KEY", "")
    )
    llm_api_host: str = os.getenv(
        "LLM_API_HOST", "https://api.groq.com/openai/v1"
    )
    llm_models: str = os.getenv("LLM_MODELS", DEFAULT_MODELS)
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", 0.2))

    default_timezone: str = os.getenv("DEFAULT_TIMEZONE", "UTC")

    google_client_id: str = os.getenv("GOOGLE_CLIENT_ID", "")
    google_client_secret: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
    google_redirect_uri: str = os.getenv(
        "GOOGLE_REDIRECT_URI", "http://localhost:3000/oauth2callback"
    )

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    sqlite_db_path: str = os.getenv("SQLITE_DB_PATH", "chatcal.db")
    port: int = int(os.getenv("PORT", 3000))

    @property
    def model_names(self) -> list[str]:
        return [name.strip() for name in self.llm_models.split(",") if name.strip()]

    @property
    def oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    def model_post_init(self, __context: dict[str, object]) -> None:
        logger = logging.getLogger(__name__)
        if not self.llm_api_key:
            logger.warning(
                "LLM_API_KEY is not configured. Event extraction will be unavailable."
            )
        if not self.oauth_configured:
            logger.warning(
                "GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET are missing. /auth will be disabled."
            )
        if not self.telegram_bot_token:
            logger.warning(
                "TELEGRAM_BOT_TOKEN is not configured. The chat bot will not start."
            )


settings = Settings()

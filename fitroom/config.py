"""
MIT License — Fitroom settings
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PORT: int = 8787
    ALLOWED_ORIGINS: str = "*"
    GEMINI_API_KEY: str = ""
    SIZE_MODEL: str = "gemini-3-flash-preview"
    TRYON_MODEL: str = "gemini-2.5-flash-image"
    TRYON_ASPECT_RATIO: str = "3:4"
    IMAGE_PROXY_URL: str = "https://images.weserv.nl/"
    PROXY_TIMEOUT_S: float = 30.0
    MAX_UPLOAD_MB: int = 10
    RATE_LIMIT: str = "20/minute"
    FORCE_HTTPS: bool = False
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def origins(self) -> list[str]:
        origins = [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]
        return origins or ["*"]

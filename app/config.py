"""
Configuration settings for the NLS Integrator backend.
Loads environment variables and provides application-wide settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Gemini Configuration
    # Server-side fallback only; clients normally send their own key per request
    GEMINI_API_KEY: str = ""
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_TEMPERATURE: float = 0.5
    GEMINI_TIMEOUT: int = 120  # seconds for one generateContent call

    # Extraction Configuration
    MIN_CONTEXT_CHARS: int = 50
    MAX_CONTEXT_CHARS: int = 30000  # prompt context is cut beyond this

    # Upload Configuration
    MAX_FILE_SIZE: int = 20 * 1024 * 1024  # 20 MB
    SUPPORTED_FILE_TYPES: List[str] = [".docx"]

    # Output Configuration
    RESULT_FILENAME_PREFIX: str = "NLS_"
    INSERTION_COLOR: str = "FF0000"  # hex RGB used for inserted text

    # Background Job Configuration
    JOB_STATE_TTL: int = 1800  # seconds a finished run (and its result) is kept

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]


# Global settings instance
settings = Settings()

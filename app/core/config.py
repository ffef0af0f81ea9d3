"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI-compatible chat completions (OpenAI, GitHub Models, ...)
    openai_api_key: str
    openai_base_url: Optional[str] = None
    llm_model: str = "gpt-4o-mini"

    # Deepgram speech-to-text / text-to-speech
    deepgram_api_key: str
    stt_model: str = "nova-2"
    stt_language: str = "en-IN"
    tts_voice: str = "aura-asteria-en"
    service_timeout_seconds: float = 10.0

    # Database
    database_url: str

    # Clinic
    clinic_name: str = "the clinic"
    assistant_name: str = "CareCall AI"

    # Turn taking
    audio_buffer_ms: int = 960  # 48 carrier frames of 20ms
    playback_padding_seconds: float = 0.5
    turn_timeout_seconds: float = 8.0
    history_turns: int = 6
    record_flush_timeout_seconds: float = 5.0

    # Server
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()

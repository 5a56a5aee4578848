"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # HTTP / WebSocket listener
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, description="Listening port for the bridge.")
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL used for the media stream URL (e.g. https://<ngrok>.ngrok-free.app).",
    )

    # Telephony provider
    telephony_provider: Literal["twilio", "signalwire"] = Field(
        default="twilio",
        description="Selects the markup dialect, media stream path and signature header.",
    )
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    signalwire_project_id: str | None = Field(default=None)
    signalwire_signing_key: str | None = Field(default=None)
    signalwire_space_url: str | None = Field(default=None, description="e.g. example.signalwire.com")
    validate_webhook_signature: bool = Field(
        default=False,
        description="If true, the call-start webhook must carry a valid provider signature.",
    )

    # Realtime translation backend
    openai_api_key: str | None = Field(default=None)
    realtime_model: str = Field(default="gpt-4o-realtime-preview-2024-12-17")
    realtime_session_url: str = Field(
        default="https://api.openai.com/v1/realtime/sessions",
        description="Negotiation endpoint that provisions a backend session.",
    )
    realtime_ws_url: str = Field(default="wss://api.openai.com/v1/realtime")
    realtime_beta_header: str = Field(default="realtime=v1")

    # Interpreter session configuration
    voice: str = Field(default="verse")
    source_language: str = Field(default="English")
    target_language: str = Field(default="Spanish")
    interpreter_instructions: str | None = Field(
        default=None,
        description="Overrides the instructions derived from the language pair.",
    )
    input_audio_format: Literal["pcm16", "g711_ulaw", "g711_alaw"] = Field(default="g711_ulaw")
    output_audio_format: Literal["pcm16", "g711_ulaw", "g711_alaw"] = Field(default="g711_ulaw")
    include_text_modality: bool = Field(
        default=True,
        description="Declare the text modality alongside audio; the backend rejects audio-only sessions.",
    )
    transcription_model: str = Field(default="whisper-1")
    vad_type: str = Field(default="server_vad")
    vad_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    vad_prefix_padding_ms: int = Field(default=300, ge=0)
    vad_silence_duration_ms: int = Field(default=200, ge=0)

    # Bridge behaviour
    require_session_ack: bool = Field(
        default=True,
        description="Wait for session.updated before forwarding caller audio.",
    )
    manual_turn_taking: bool = Field(
        default=False,
        description="On speech-stopped, commit the input buffer and request a response explicitly.",
    )
    negotiation_timeout_seconds: float = Field(default=10.0)
    backend_connect_timeout_seconds: float = Field(default=10.0)
    max_pending_frames: int = Field(
        default=500,
        description="Upper bound of queued, unsent frames per leg before the call is closed.",
    )

    @field_validator("negotiation_timeout_seconds", "backend_connect_timeout_seconds", "max_pending_frames")
    @classmethod
    def ensure_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @property
    def media_path(self) -> str:
        return f"/{self.telephony_provider}-media"

    @property
    def instructions(self) -> str:
        if self.interpreter_instructions:
            return self.interpreter_instructions
        return (
            "You are a live interpreter. "
            f"Translate {self.source_language} → {self.target_language} and "
            f"{self.target_language} → {self.source_language} in real time. "
            "Respond only with the translation audio."
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()

"""Configuracao da sessao de voz (prosa.yaml).

Cada componente tem seu bloco; todos os campos possuem default, entao um
arquivo vazio produz uma configuracao valida.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from prosa.exceptions import ConfigParseError, ConfigValidationError


class RecognitionConfig(BaseModel):
    """Configuracao do RecognitionAdapter e da engine realtime."""

    locale: str = "en-AU"
    restart_backoff_s: float = Field(default=0.3, ge=0.0)
    retry_budget: int = Field(default=5, ge=0)
    stable_run_s: float = Field(default=10.0, gt=0.0)
    realtime_url: str = "ws://localhost:8000/v1/realtime"
    model: str = "faster-whisper-tiny"
    sample_rate: int = 16000
    frame_duration_ms: int = 40


class SynthesisConfig(BaseModel):
    """Configuracao do SynthesisPlayer e dos providers."""

    speak_url: str | None = None
    voice: str = "en-AU-WilliamNeural"
    rate: str = "+12%"
    pitch: str = "+4%"
    style: str = "cheerful"
    style_degree: str = "1.0"
    request_timeout_s: float = Field(default=15.0, gt=0.0)
    amplitude_interval_s: float = Field(default=0.08, gt=0.0)
    local_rate_multiplier: float = Field(default=1.03, gt=0.0)
    local_voice_locale: str = "en-AU"
    local_voice_hint: str | None = r"\bmale\b|william|australi"
    enable_fallback: bool = True


class EchoGuardConfig(BaseModel):
    """Thresholds do EchoGuard (regras avaliadas em ordem)."""

    min_chars: int = Field(default=4, ge=0)
    overlap_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    max_unique_words: int = Field(default=2, ge=0)
    low_confidence: float = Field(default=0.45, ge=0.0, le=1.0)
    low_confidence_overlap: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_threshold: float = Field(default=0.82, ge=0.0, le=1.0)
    trail_s: float = Field(default=1.5, ge=0.0)


class RelayConfig(BaseModel):
    """Endpoints do Chat Relay."""

    base_url: str = "http://localhost:3000/api/retell-chat"
    start_path: str = "/start"
    send_path: str = "/send"
    timeout_s: float = Field(default=20.0, gt=0.0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class WatchdogConfig(BaseModel):
    """Idle watchdog: desliga o mic apos inatividade."""

    enabled: bool = True
    idle_timeout_s: float = Field(default=60.0, gt=0.0)


class VoiceSessionConfig(BaseModel):
    """Configuracao completa de uma sessao de voz."""

    autostart_mic: bool = False
    barge_in: bool = False
    resume_listening_delay_s: float = Field(default=0.25, ge=0.0)
    greeting: str = "Hi! I'm ready. You can speak, or type below."
    restart_greeting: str = "Fresh start. I'm listening."
    relay_error_reply: str = "Hmm, something went wrong reaching the agent."
    network_error_reply: str = "Network error. Please try again."
    recognition: RecognitionConfig = RecognitionConfig()
    synthesis: SynthesisConfig = SynthesisConfig()
    echo_guard: EchoGuardConfig = EchoGuardConfig()
    relay: RelayConfig = RelayConfig()
    watchdog: WatchdogConfig = WatchdogConfig()

    @classmethod
    def from_yaml_path(cls, path: str | Path) -> VoiceSessionConfig:
        """Carrega configuracao a partir de arquivo YAML."""
        path = Path(path)
        if not path.exists():
            raise ConfigParseError(str(path), "Arquivo nao encontrado")

        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigParseError(str(path), f"Erro ao ler arquivo: {e}") from e

        return cls.from_yaml_string(raw, source_path=str(path))

    @classmethod
    def from_yaml_string(cls, raw: str, source_path: str = "<string>") -> VoiceSessionConfig:
        """Carrega configuracao a partir de string YAML."""
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigParseError(source_path, f"YAML invalido: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigParseError(source_path, "Conteudo YAML deve ser um mapeamento")

        try:
            return cls.model_validate(data)
        except Exception as e:
            errors = [str(e)]
            raise ConfigValidationError(source_path, errors) from e

"""Configuracao da sessao de voz."""

from __future__ import annotations

from prosa.config.session import (
    EchoGuardConfig,
    RecognitionConfig,
    RelayConfig,
    SynthesisConfig,
    VoiceSessionConfig,
    WatchdogConfig,
)

__all__ = [
    "EchoGuardConfig",
    "RecognitionConfig",
    "RelayConfig",
    "SynthesisConfig",
    "VoiceSessionConfig",
    "WatchdogConfig",
]

"""Sintese de voz: player com fallback ordenado de providers.

Ordem padrao: RemoteSpeechProvider (voz neural HTTP) -> LocalSpeechProvider (pyttsx3).
"""

from __future__ import annotations

from prosa.synthesis.interface import SynthesisProvider, SynthesizedSpeech
from prosa.synthesis.player import SynthesisPlayer

__all__ = ["SynthesisPlayer", "SynthesisProvider", "SynthesizedSpeech"]

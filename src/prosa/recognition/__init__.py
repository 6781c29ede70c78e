"""Reconhecimento de fala continuo (adapter + engines plugaveis)."""

from __future__ import annotations

from prosa.recognition.adapter import RecognitionAdapter
from prosa.recognition.interface import MicrophonePermission, RecognitionEngine

__all__ = ["MicrophonePermission", "RecognitionAdapter", "RecognitionEngine"]

"""Interfaces abstratas para providers de sintese de voz.

O SynthesisPlayer itera uma lista ordenada de SynthesisProvider com o
contrato uniforme ``attempt(text) -> SynthesizedSpeech``. Falha em
qualquer etapa (fetch, decode, play) levanta SynthesisProviderError e o
player passa ao proximo provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prosa._types import SpeechProvider


class SynthesizedSpeech(ABC):
    """Audio pronto para tocar, produzido por um provider.

    ``muted`` zera o ganho da saida sem interromper o playback: a fala
    continua em voo e termina no tempo normal.
    """

    muted: bool = False

    def set_muted(self, muted: bool) -> None:
        """Zera (ou restaura) o ganho da saida."""
        self.muted = muted

    @abstractmethod
    async def play(self) -> None:
        """Toca o audio ate o fim ou ate ``stop()``.

        Raises:
            SynthesisProviderError: Se o dispositivo de saida falhar.
        """
        ...

    @abstractmethod
    def stop(self) -> None:
        """Interrompe o playback imediatamente. Idempotente."""
        ...

    @abstractmethod
    def amplitude(self) -> float:
        """Amplitude corrente da saida em [0, 1]. 0.0 fora do playback."""
        ...


class SynthesisProvider(ABC):
    """Contrato de um provider de sintese."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Nome do provider para logs e metricas."""
        ...

    @property
    @abstractmethod
    def kind(self) -> SpeechProvider:
        """PRIMARY ou FALLBACK, registrado no SpeakRequest."""
        ...

    @abstractmethod
    async def attempt(self, text: str) -> SynthesizedSpeech:
        """Sintetiza o texto.

        Raises:
            SynthesisProviderError: Se o provider nao conseguiu produzir audio.
        """
        ...

    async def aclose(self) -> None:  # noqa: B027
        """Libera recursos do provider (clientes HTTP, engines)."""

"""Interfaces abstratas para reconhecimento de fala e microfone.

Toda engine de reconhecimento continuo deve implementar RecognitionEngine
para ser plugavel no RecognitionAdapter. A engine reporta resultados
(parciais e finais), erros e fim de sessao por callbacks async; o adapter
decide o que sobe para o controller e quando reiniciar.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from prosa._types import Utterance

    ResultCallback = Callable[[Utterance], Awaitable[None]]
    ErrorCallback = Callable[[Exception], Awaitable[None]]
    EndCallback = Callable[[], Awaitable[None]]


class RecognitionEngine(ABC):
    """Contrato de uma engine de reconhecimento continuo.

    A engine roda em modo continuo ate ``stop()`` ou ate encerrar sozinha
    (fim natural de segmento, erro). Em ambos os casos ``on_end`` e chamado
    exatamente uma vez por ``start()``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Nome da engine para logs e mensagens de erro."""
        ...

    @abstractmethod
    def is_supported(self) -> bool:
        """True se a plataforma possui o necessario para esta engine."""
        ...

    @abstractmethod
    async def start(
        self,
        locale: str,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None:
        """Inicia captura continua.

        Args:
            locale: Locale fixo do reconhecimento (ex: "en-AU").
            on_result: Chamado para cada resultado (parcial ou final).
            on_error: Chamado em erro de engine (transitorio).
            on_end: Chamado quando a sessao da engine termina.

        Raises:
            UnsupportedEngineError: Se a plataforma nao suporta a engine.
            RecognitionTransientError: Se a engine falhou ao iniciar.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Para a captura. Seguro quando nao esta rodando."""
        ...


class MicrophonePermission(ABC):
    """Contrato para obter permissao/acesso ao microfone."""

    @abstractmethod
    async def request(self) -> None:
        """Solicita acesso ao microfone.

        Raises:
            PermissionDeniedError: Se o acesso foi negado ou nao ha dispositivo.
        """
        ...

"""IdleWatchdog: desliga o microfone apos inatividade.

Um unico timer (``loop.call_later``) e rearmado a cada atividade
registrada: utterance final, inicio/fim de fala, texto submetido, toggle
de mic. Quando expira, ``check()`` reavalia com o clock injetado:

- watchdog desarmado -> nada
- ``is_busy()`` True (fala em voo) -> conta como atividade continua, rearma
- inatividade < timeout -> reagenda para o tempo restante
- caso contrario -> dispara ``on_idle`` uma unica vez e desarma

``check()`` e sincrono e deterministico: testes avancam um FakeClock e
chamam check() sem depender de timers reais.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from prosa.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("session.watchdog")


class ActivityClock:
    """Timestamp da ultima atividade da sessao."""

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._last_activity_at = self._clock()
        self._last_kind = "created"

    @property
    def last_activity_at(self) -> float:
        return self._last_activity_at

    @property
    def last_kind(self) -> str:
        return self._last_kind

    def touch(self, kind: str) -> None:
        self._last_activity_at = self._clock()
        self._last_kind = kind

    def idle_for(self) -> float:
        """Segundos desde a ultima atividade."""
        return self._clock() - self._last_activity_at


class IdleWatchdog:
    """Timer resetavel de inatividade.

    Args:
        timeout_s: Inatividade maxima antes de disparar.
        activity: ActivityClock compartilhado com o controller.
        on_idle: Callback sincrono chamado quando o timeout expira.
        is_busy: Predicado: True enquanto ha fala em voo (nunca dispara).
    """

    def __init__(
        self,
        timeout_s: float,
        activity: ActivityClock,
        on_idle: Callable[[], None],
        is_busy: Callable[[], bool] | None = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._activity = activity
        self._on_idle = on_idle
        self._is_busy = is_busy or (lambda: False)
        self._armed = False
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def arm(self) -> None:
        """Arma o watchdog (mic logicamente ligado) contando a partir de agora."""
        self._armed = True
        self._activity.touch("watchdog_armed")
        self._schedule(self._timeout_s)

    def disarm(self) -> None:
        self._armed = False
        self._cancel_timer()

    def touch(self, kind: str) -> None:
        """Registra atividade e reinicia a contagem."""
        self._activity.touch(kind)
        if self._armed:
            self._schedule(self._timeout_s)

    def check(self) -> bool:
        """Avalia o timeout agora.

        Returns:
            True se o watchdog disparou nesta chamada.
        """
        if not self._armed:
            return False

        if self._is_busy():
            self.touch("busy")
            return False

        idle_for = self._activity.idle_for()
        if idle_for < self._timeout_s:
            self._schedule(self._timeout_s - idle_for)
            return False

        self.disarm()
        logger.info("idle_timeout", idle_for_s=round(idle_for, 3), timeout_s=self._timeout_s)
        self._on_idle()
        return True

    def _schedule(self, delay_s: float) -> None:
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Sem event loop (uso sincrono/testes): apenas check() manual
            return
        self._handle = loop.call_later(delay_s, self.check)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

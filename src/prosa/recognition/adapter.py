"""RecognitionAdapter: reconhecimento continuo com restart limitado.

Envolve uma RecognitionEngine e expoe ao controller apenas transcripts
finais, nao vazios. Resultados parciais sao suprimidos aqui.

Restart automatico:
- Erro transitorio ou fim natural de segmento enquanto o controller ainda
  quer ouvir -> reinicia apos ``restart_backoff_s``.
- O orcamento (``retry_budget``) conta restarts consecutivos sem nenhum
  resultado. Uma execucao que dura ``stable_run_s`` ou mais zera a conta.
- Orcamento esgotado -> ``on_fatal(RecognitionFatalError)``; o adapter para
  de tentar.
- ``stop()`` intencional (mic desligado, assistente falando) nunca gera
  restart: eventos da execucao anterior sao descartados pela geracao.
"""

from __future__ import annotations

import asyncio
import time
from functools import partial
from typing import TYPE_CHECKING

from prosa._types import Utterance
from prosa.exceptions import (
    RecognitionFatalError,
    RecognitionTransientError,
    UnsupportedEngineError,
)
from prosa.logging import get_logger
from prosa.session.metrics import HAS_METRICS, recognition_restarts_total

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from prosa.config.session import RecognitionConfig
    from prosa.recognition.interface import RecognitionEngine

logger = get_logger("recognition.adapter")


class RecognitionAdapter:
    """Adapter entre a engine de reconhecimento e o controller.

    Args:
        engine: Engine de reconhecimento continuo.
        config: Locale, backoff e orcamento de restarts.
        on_final: Callback async para cada Utterance final.
        on_fatal: Callback async quando o orcamento de restarts e esgotado.
        clock: Funcao que retorna timestamp monotonic (para testes deterministicos).
    """

    def __init__(
        self,
        engine: RecognitionEngine,
        config: RecognitionConfig,
        on_final: Callable[[Utterance], Awaitable[None]],
        on_fatal: Callable[[RecognitionFatalError], Awaitable[None]],
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._engine = engine
        self._config = config
        self._on_final = on_final
        self._on_fatal = on_fatal
        self._clock = clock or time.monotonic

        self._wanted = False
        self._running = False
        self._generation = 0
        self._failures = 0
        self._run_started_at = 0.0
        self._last_error: Exception | None = None
        self._restart_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """True se a engine esta capturando."""
        return self._running

    @property
    def wants_listening(self) -> bool:
        """True se o controller quer reconhecimento ativo."""
        return self._wanted

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    async def start(self) -> None:
        """Inicia captura continua.

        Idempotente: se ja esta rodando, nao cria segunda instancia.

        Raises:
            UnsupportedEngineError: Se a plataforma nao possui reconhecedor.
            RecognitionFatalError: Se a engine falhou ao iniciar.
        """
        if not self._engine.is_supported():
            raise UnsupportedEngineError(self._engine.name)

        if self._wanted and (self._running or self._restart_task is not None):
            return

        self._wanted = True
        self._failures = 0
        self._last_error = None

        try:
            await self._launch()
        except UnsupportedEngineError:
            self._wanted = False
            raise
        except Exception as exc:
            self._wanted = False
            raise RecognitionFatalError(attempts=1, reason=str(exc)) from exc

    async def stop(self) -> None:
        """Para a captura. Best-effort e seguro quando nao esta rodando."""
        self._wanted = False
        self._generation += 1
        self._cancel_restart()

        if not self._running:
            return
        self._running = False

        try:
            await self._engine.stop()
        except Exception:
            logger.warning("engine_stop_failed", engine=self._engine.name, exc_info=True)

    async def _launch(self) -> None:
        self._generation += 1
        generation = self._generation
        self._run_started_at = self._clock()

        await self._engine.start(
            self._config.locale,
            on_result=partial(self._handle_result, generation),
            on_error=partial(self._handle_error, generation),
            on_end=partial(self._handle_end, generation),
        )
        if generation == self._generation:
            self._running = True
            logger.debug("recognition_started", engine=self._engine.name, generation=generation)

    async def _handle_result(self, generation: int, result: Utterance) -> None:
        if generation != self._generation or not self._wanted:
            return

        self._failures = 0
        if not result.is_final:
            return

        text = result.text.strip()
        if not text:
            return

        confidence = min(max(result.confidence, 0.0), 1.0)
        utterance = Utterance(
            text=text,
            is_final=True,
            confidence=confidence,
            captured_at=result.captured_at or self._clock(),
        )
        await self._on_final(utterance)

    async def _handle_error(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        self._last_error = error
        logger.warning(
            "recognition_error",
            engine=self._engine.name,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def _handle_end(self, generation: int) -> None:
        if generation != self._generation:
            return

        self._running = False
        if not self._wanted:
            return

        run_duration = self._clock() - self._run_started_at
        if run_duration >= self._config.stable_run_s:
            self._failures = 0
        self._failures += 1

        if self._failures > self._config.retry_budget:
            self._wanted = False
            reason = str(self._last_error) if self._last_error is not None else "engine encerrou"
            fatal = RecognitionFatalError(attempts=self._failures, reason=reason)
            logger.error("recognition_fatal", engine=self._engine.name, attempts=self._failures)
            await self._on_fatal(fatal)
            return

        self._restart_task = asyncio.create_task(self._restart_after_backoff(generation))

    async def _restart_after_backoff(self, generation: int) -> None:
        try:
            await asyncio.sleep(self._config.restart_backoff_s)
            if generation != self._generation or not self._wanted:
                return

            if HAS_METRICS and recognition_restarts_total is not None:
                recognition_restarts_total.inc()

            logger.debug("recognition_restart", attempt=self._failures)
            try:
                await self._launch()
            except Exception as exc:
                self._last_error = (
                    exc
                    if isinstance(exc, RecognitionTransientError)
                    else RecognitionTransientError(str(exc))
                )
                await self._handle_end(self._generation)
        finally:
            if self._restart_task is asyncio.current_task():
                self._restart_task = None

    def _cancel_restart(self) -> None:
        task = self._restart_task
        self._restart_task = None
        if task is not None and not task.done():
            task.cancel()

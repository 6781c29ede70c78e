"""SynthesisPlayer: fala com fallback ordenado de providers.

Garantias:
- Single flight: ``speak()`` cancela a fala anterior antes de comecar.
- Fallback transparente: falha de um provider (fetch, decode ou play)
  passa ao proximo sem ser exposta ao chamador. Somente a exaustao da
  lista levanta SynthesisExhaustedError.
- ``cancel()`` (sincrono) para o audio imediatamente; o ``speak()``
  pendente resolve sem erro com ``request.cancelled = True``.
- Amplitude amostrada a cada ``amplitude_interval_s`` durante o playback
  e reportada como 0.0 exatamente quando o playback termina.
- Mute zera o ganho da fala em voo e das proximas sem cancela-las: o
  request segue em voo ate o fim do playback.
- Texto vazio nao produz audio: ``speak()`` retorna um request ``skipped``.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, TypeVar

from prosa._types import SpeakRequest
from prosa.exceptions import SynthesisExhaustedError, SynthesisProviderError
from prosa.logging import get_logger
from prosa.session.metrics import HAS_METRICS, synthesis_fallbacks_total

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Sequence

    from prosa.synthesis.interface import SynthesisProvider, SynthesizedSpeech

logger = get_logger("synthesis.player")

_T = TypeVar("_T")


class _StepCancelled(Exception):
    """Etapa interrompida por cancel(); nunca sai do player."""


class SynthesisPlayer:
    """Toca texto pela lista ordenada de providers.

    Args:
        providers: Providers em ordem de preferencia.
        amplitude_interval_s: Intervalo de amostragem da amplitude.
        on_amplitude: Callback sincrono para cada amostra de amplitude.
        clock: Funcao que retorna timestamp monotonic (para testes deterministicos).
    """

    def __init__(
        self,
        providers: Sequence[SynthesisProvider],
        *,
        amplitude_interval_s: float = 0.08,
        on_amplitude: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._providers = list(providers)
        self._interval = amplitude_interval_s
        self._on_amplitude = on_amplitude
        self._clock = clock or time.monotonic

        self._muted = False
        self._request: SpeakRequest | None = None
        self._speech: SynthesizedSpeech | None = None
        self._step: asyncio.Task[Any] | None = None
        self._amplitude = 0.0

    @property
    def providers(self) -> list[SynthesisProvider]:
        return list(self._providers)

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def amplitude(self) -> float:
        """Ultima amplitude reportada."""
        return self._amplitude

    @property
    def current_request(self) -> SpeakRequest | None:
        """SpeakRequest em voo, se houver."""
        return self._request

    @property
    def is_speaking(self) -> bool:
        return self._request is not None and self._request.in_flight

    def set_muted(self, muted: bool) -> None:
        """Muta/desmuta a saida. A fala em voo continua, sem som."""
        self._muted = muted
        speech = self._speech
        if speech is not None:
            speech.set_muted(muted)

    async def speak(self, text: str) -> SpeakRequest:
        """Fala o texto e resolve quando o audio terminou ou foi cancelado.

        Raises:
            SynthesisExhaustedError: Se todos os providers falharam.
        """
        self.cancel()

        request = SpeakRequest(text=text, started_at=self._clock())
        if not text.strip():
            request.skipped = True
            request.ended_at = request.started_at
            return request

        self._request = request
        failures: list[SynthesisProviderError] = []
        try:
            for index, provider in enumerate(self._providers):
                if request.cancelled:
                    break
                try:
                    speech = await self._run_step(request, provider.attempt(text))
                    if request.cancelled:
                        speech.stop()
                        break
                    request.provider_used = provider.kind
                    await self._play(request, speech)
                except _StepCancelled:
                    break
                except Exception as exc:
                    failure = (
                        exc
                        if isinstance(exc, SynthesisProviderError)
                        else SynthesisProviderError(provider.name, str(exc))
                    )
                    failures.append(failure)
                    self._record_failure(
                        provider, failure, has_next=index + 1 < len(self._providers)
                    )
                    request.provider_used = None
                    continue
                break
            else:
                logger.error(
                    "synthesis_exhausted",
                    chars=len(text),
                    providers=[f.provider for f in failures],
                )
                raise SynthesisExhaustedError(failures)
        finally:
            request.ended_at = self._clock()
            if self._request is request:
                self._request = None
                self._step = None
                self._emit_amplitude(0.0)

        logger.debug(
            "speak_finished",
            provider=request.provider_used.value if request.provider_used else None,
            cancelled=request.cancelled,
            duration_ms=int((request.ended_at - request.started_at) * 1000),
        )
        return request

    def cancel(self) -> None:
        """Para a fala em voo imediatamente. Seguro sem fala em voo."""
        request = self._request
        if request is None or not request.in_flight or request.cancelled:
            return

        request.cancelled = True
        speech = self._speech
        if speech is not None:
            speech.stop()
        step = self._step
        if step is not None and not step.done():
            step.cancel()
        self._emit_amplitude(0.0)
        logger.debug("speak_cancelled", chars=len(request.text))

    async def aclose(self) -> None:
        """Cancela a fala em voo e libera recursos dos providers."""
        self.cancel()
        for provider in self._providers:
            await provider.aclose()

    async def _play(self, request: SpeakRequest, speech: SynthesizedSpeech) -> None:
        speech.set_muted(self._muted)
        self._speech = speech
        sampler = asyncio.create_task(self._sample_amplitude(speech))
        try:
            await self._run_step(request, speech.play())
        finally:
            sampler.cancel()
            if self._speech is speech:
                self._speech = None
            if request.cancelled:
                speech.stop()

    async def _run_step(self, request: SpeakRequest, coro: Coroutine[Any, Any, _T]) -> _T:
        """Executa uma etapa como task para que cancel() a interrompa."""
        task: asyncio.Task[_T] = asyncio.create_task(coro)
        if self._request is request:
            self._step = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.cancelled() or request.cancelled:
            if not task.done():
                task.cancel()
            raise _StepCancelled
        return task.result()

    async def _sample_amplitude(self, speech: SynthesizedSpeech) -> None:
        while True:
            self._emit_amplitude(speech.amplitude())
            await asyncio.sleep(self._interval)

    def _emit_amplitude(self, value: float) -> None:
        self._amplitude = value
        if self._on_amplitude is not None:
            self._on_amplitude(value)

    def _record_failure(
        self,
        provider: SynthesisProvider,
        exc: SynthesisProviderError,
        *,
        has_next: bool,
    ) -> None:
        if has_next:
            logger.warning("synthesis_fallback", provider=provider.name, reason=exc.reason)
        else:
            logger.warning("synthesis_provider_failed", provider=provider.name, reason=exc.reason)
        if HAS_METRICS and synthesis_fallbacks_total is not None:
            synthesis_fallbacks_total.labels(provider=provider.name).inc()

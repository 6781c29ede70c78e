"""Playback de audio decodificado via sounddevice.

O callback do OutputStream roda na thread do PortAudio e avanca o cursor
de playback; o fim do stream e sinalizado ao event loop com
``loop.call_soon_threadsafe``. A amplitude e medida nas amostras de SAIDA
no cursor (nunca no microfone). Mute escreve silencio no buffer mas o
cursor continua avancando.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

from prosa.exceptions import SynthesisProviderError
from prosa.logging import get_logger
from prosa.synthesis.audio_io import rms_at
from prosa.synthesis.interface import SynthesizedSpeech

if TYPE_CHECKING:
    import numpy as np

logger = get_logger("synthesis.output")


class DecodedSpeech(SynthesizedSpeech):
    """Audio float32 mono tocado em um OutputStream do sounddevice.

    Args:
        samples: Amostras float32 mono.
        sample_rate: Sample rate em Hz.
        provider_name: Nome do provider que gerou o audio (para erros).
        device: Dispositivo de saida do sounddevice (None = default).
    """

    def __init__(
        self,
        samples: np.ndarray,
        sample_rate: int,
        *,
        provider_name: str,
        device: int | str | None = None,
    ) -> None:
        self._samples = samples
        self._sample_rate = sample_rate
        self._provider_name = provider_name
        self._device = device
        self._cursor = 0
        self._playing = False
        self._stopped = False
        self._stream: Any = None
        self._done: asyncio.Event | None = None

    @property
    def duration_s(self) -> float:
        return self._samples.size / self._sample_rate

    @property
    def cursor(self) -> int:
        return self._cursor

    async def play(self) -> None:
        if self._stopped:
            return

        try:
            import sounddevice as sd
        except ImportError as exc:
            raise SynthesisProviderError(
                self._provider_name, "sounddevice nao esta instalado"
            ) from exc

        loop = asyncio.get_running_loop()
        done = asyncio.Event()
        self._done = done
        samples = self._samples

        def callback(outdata: Any, frames: int, time_info: object, status: object) -> None:
            start = self._cursor
            chunk = samples[start : start + frames]
            outdata[: chunk.size, 0] = 0.0 if self.muted else chunk
            if chunk.size < frames:
                outdata[chunk.size :] = 0
                self._cursor = start + chunk.size
                raise sd.CallbackStop
            self._cursor = start + frames

        def finished() -> None:
            loop.call_soon_threadsafe(done.set)

        try:
            stream = sd.OutputStream(
                samplerate=self._sample_rate,
                channels=1,
                dtype="float32",
                device=self._device,
                callback=callback,
                finished_callback=finished,
            )
            stream.start()
        except Exception as exc:
            raise SynthesisProviderError(
                self._provider_name, f"falha no dispositivo de saida: {exc}"
            ) from exc

        self._stream = stream
        self._playing = True
        try:
            await done.wait()
        finally:
            self._playing = False
            self._close_stream()

        logger.debug(
            "playback_finished",
            provider=self._provider_name,
            stopped=self._stopped,
            duration_s=round(self.duration_s, 3),
        )

    def stop(self) -> None:
        self._stopped = True
        self._playing = False
        stream = self._stream
        if stream is not None:
            with contextlib.suppress(Exception):
                stream.abort()
        if self._done is not None:
            self._done.set()

    def amplitude(self) -> float:
        if not self._playing:
            return 0.0
        return rms_at(self._samples, self._cursor)

    def _close_stream(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        with contextlib.suppress(Exception):
            stream.close()

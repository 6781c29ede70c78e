"""Engine de reconhecimento via WebSocket realtime + microfone local.

Captura PCM 16-bit 16kHz mono com sounddevice e envia para um endpoint
STT realtime (protocolo ``/v1/realtime``: frames binarios de audio,
eventos JSON ``transcript.partial``/``transcript.final``/``error``).

O callback de audio roda na thread do PortAudio: cada frame e entregue
ao event loop via ``loop.call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import numpy as np

from prosa._types import Utterance
from prosa.exceptions import PermissionDeniedError, RecognitionTransientError
from prosa.logging import get_logger
from prosa.recognition.interface import MicrophonePermission, RecognitionEngine

if TYPE_CHECKING:
    from prosa.recognition.interface import EndCallback, ErrorCallback, ResultCallback

logger = get_logger("recognition.realtime_ws")

_CONNECT_TIMEOUT_S = 10.0


def _language_from_locale(locale: str) -> str:
    return locale.replace("_", "-").split("-")[0].lower()


class RealtimeWebSocketEngine(RecognitionEngine):
    """Reconhecimento continuo contra um servidor STT realtime.

    Args:
        url: URL WebSocket do endpoint realtime (ws:// ou wss://).
        model: Modelo STT solicitado ao servidor.
        sample_rate: Taxa de captura do microfone.
        frame_duration_ms: Duracao de cada frame enviado.
    """

    def __init__(
        self,
        url: str,
        model: str,
        *,
        sample_rate: int = 16000,
        frame_duration_ms: int = 40,
    ) -> None:
        self._url = url.replace("http://", "ws://").replace("https://", "wss://")
        self._model = model
        self._sample_rate = sample_rate
        self._frame_size = int(sample_rate * frame_duration_ms / 1000)
        self._task: asyncio.Task[None] | None = None
        self._stream: Any = None

    @property
    def name(self) -> str:
        return "realtime-ws"

    def is_supported(self) -> bool:
        try:
            import sounddevice as sd
            import websockets  # noqa: F401
        except ImportError:
            return False
        try:
            sd.query_devices(kind="input")
        except Exception:
            return False
        return True

    def build_url(self, locale: str) -> str:
        query = urlencode({"model": self._model, "language": _language_from_locale(locale)})
        return f"{self._url}?{query}"

    async def start(
        self,
        locale: str,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None:
        import sounddevice as sd
        from websockets.asyncio.client import connect as ws_connect
        from websockets.exceptions import WebSocketException

        if self._task is not None and not self._task.done():
            return

        ws_url = self.build_url(locale)
        try:
            ws = await asyncio.wait_for(ws_connect(ws_url), timeout=_CONNECT_TIMEOUT_S)
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise RecognitionTransientError(f"conexao com {ws_url} falhou: {exc}") from exc

        loop = asyncio.get_running_loop()
        audio_queue: asyncio.Queue[bytes] = asyncio.Queue()

        def audio_callback(
            indata: object,
            frames: int,
            time_info: object,
            status: object,
        ) -> None:
            data = np.asarray(indata)
            pcm_bytes = (data * 32767).astype(np.int16).tobytes()
            loop.call_soon_threadsafe(audio_queue.put_nowait, pcm_bytes)

        try:
            stream = sd.InputStream(
                samplerate=self._sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._frame_size,
                callback=audio_callback,
            )
            stream.start()
        except Exception as exc:
            await ws.close()
            raise RecognitionTransientError(f"falha ao abrir microfone: {exc}") from exc

        self._stream = stream
        self._task = asyncio.create_task(self._run(ws, audio_queue, on_result, on_error, on_end))
        logger.info("realtime_connected", url=ws_url)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._close_stream()

    async def _run(
        self,
        ws: Any,
        audio_queue: asyncio.Queue[bytes],
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None:
        async def send_audio() -> None:
            while True:
                data = await audio_queue.get()
                await ws.send(data)

        async def receive_events() -> None:
            async for raw_msg in ws:
                if isinstance(raw_msg, bytes):
                    # Audio do servidor nunca volta para a saida
                    continue
                event = json.loads(raw_msg)
                event_type = event.get("type", "")

                if event_type in ("transcript.partial", "transcript.final"):
                    confidence = event.get("confidence")
                    await on_result(
                        Utterance(
                            text=str(event.get("text", "")),
                            is_final=event_type == "transcript.final",
                            confidence=float(confidence) if confidence is not None else 1.0,
                            captured_at=time.monotonic(),
                        )
                    )

                elif event_type == "error":
                    message = event.get("message", "erro desconhecido")
                    await on_error(RecognitionTransientError(message))
                    if not event.get("recoverable", False):
                        return

                elif event_type == "session.closed":
                    return

        send_task = asyncio.create_task(send_audio())
        recv_task = asyncio.create_task(receive_events())
        try:
            done, pending = await asyncio.wait(
                [send_task, recv_task],
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in pending:
                task.cancel()
            for task in done:
                exc = task.exception()
                if exc is not None:
                    await on_error(RecognitionTransientError(str(exc)))
        finally:
            send_task.cancel()
            recv_task.cancel()
            self._close_stream()
            with contextlib.suppress(Exception):
                await ws.send(json.dumps({"type": "session.close"}))
            with contextlib.suppress(Exception):
                await ws.close()
            await on_end()

    def _close_stream(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        with contextlib.suppress(Exception):
            stream.stop()
            stream.close()


class SoundDeviceMicrophone(MicrophonePermission):
    """Verifica acesso a um dispositivo de entrada via sounddevice."""

    async def request(self) -> None:
        try:
            import sounddevice as sd
        except ImportError as exc:
            raise PermissionDeniedError("sounddevice nao esta instalado") from exc

        try:
            device = await asyncio.to_thread(sd.query_devices, kind="input")
        except Exception as exc:
            raise PermissionDeniedError(f"nenhum dispositivo de entrada: {exc}") from exc

        logger.debug("microphone_available", device=str(device.get("name", "?")))

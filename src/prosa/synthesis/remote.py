"""Provider primario: voz neural remota via HTTP.

POST JSON ``{text, voice, rate, pitch, style, style_degree}`` para o
endpoint de fala; a resposta 2xx carrega bytes de audio (ex: audio/mpeg).
Qualquer falha (nao configurado, non-2xx, content-type nao-audio, erro de
transporte, decode) vira SynthesisProviderError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from prosa._types import SpeechProvider
from prosa.exceptions import AudioFormatError, SynthesisProviderError
from prosa.logging import get_logger
from prosa.synthesis.audio_io import decode_audio
from prosa.synthesis.interface import SynthesisProvider
from prosa.synthesis.output import DecodedSpeech

if TYPE_CHECKING:
    from prosa.config.session import SynthesisConfig

logger = get_logger("synthesis.remote")

_AUDIO_CONTENT_TYPES = ("audio/", "application/octet-stream")


class RemoteSpeechProvider(SynthesisProvider):
    """Sintese remota com playback local do audio decodificado.

    Args:
        config: URL, voz e prosodia do provider.
        client: httpx.AsyncClient injetado (testes). Se None, cria um proprio.
        device: Dispositivo de saida do sounddevice.
    """

    def __init__(
        self,
        config: SynthesisConfig,
        *,
        client: httpx.AsyncClient | None = None,
        device: int | str | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._device = device

    @property
    def name(self) -> str:
        return "remote"

    @property
    def kind(self) -> SpeechProvider:
        return SpeechProvider.PRIMARY

    def build_payload(self, text: str) -> dict[str, str]:
        cfg = self._config
        return {
            "text": text,
            "voice": cfg.voice,
            "rate": cfg.rate,
            "pitch": cfg.pitch,
            "style": cfg.style,
            "style_degree": cfg.style_degree,
        }

    async def attempt(self, text: str) -> DecodedSpeech:
        url = self._config.speak_url
        if not url:
            raise SynthesisProviderError(self.name, "speak_url nao configurada")

        if self._client is None:
            self._client = httpx.AsyncClient()

        try:
            response = await self._client.post(
                url,
                json=self.build_payload(text),
                timeout=self._config.request_timeout_s,
            )
        except httpx.HTTPError as exc:
            raise SynthesisProviderError(self.name, f"erro de transporte: {exc}") from exc

        if not response.is_success:
            raise SynthesisProviderError(self.name, f"HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "").lower()
        if not content_type.startswith(_AUDIO_CONTENT_TYPES):
            raise SynthesisProviderError(self.name, f"content-type inesperado: {content_type!r}")

        try:
            samples, sample_rate = decode_audio(response.content)
        except AudioFormatError as exc:
            raise SynthesisProviderError(self.name, str(exc)) from exc

        logger.debug(
            "speech_fetched",
            chars=len(text),
            bytes=len(response.content),
            sample_rate=sample_rate,
        )
        return DecodedSpeech(samples, sample_rate, provider_name=self.name, device=self._device)

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

"""Provider de fallback: sintese local com pyttsx3.

Sempre presumido disponivel como ultimo recurso. Nao expoe amostras: so
sabe quando a fala comecou e terminou, entao a amplitude e um pulso
sintetico (0.35 + random * 0.5) enquanto fala.

pyttsx3 e bloqueante (``runAndWait``) e roda em ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import random
import re
import threading
from typing import TYPE_CHECKING, Any

from prosa._types import SpeechProvider
from prosa.exceptions import SynthesisProviderError
from prosa.logging import get_logger
from prosa.synthesis.interface import SynthesisProvider, SynthesizedSpeech

if TYPE_CHECKING:
    from collections.abc import Sequence

    from prosa.config.session import SynthesisConfig

logger = get_logger("synthesis.local")

_PULSE_BASE = 0.35
_PULSE_SPAN = 0.5

DEFAULT_VOICE_HINT = r"\bmale\b|william|australi"


def _voice_labels(voice: Any) -> str:
    """Junta id, nome e idiomas de uma voz pyttsx3 em um texto pesquisavel.

    Drivers diferentes preenchem campos diferentes: espeak usa
    ``languages`` como bytes (``b"\\x05en-au"``), SAPI5 e NSSpeech
    codificam o idioma no id ou no nome.
    """
    parts = [str(getattr(voice, "id", "") or ""), str(getattr(voice, "name", "") or "")]
    for language in getattr(voice, "languages", None) or []:
        if isinstance(language, bytes):
            language = language.decode("utf-8", errors="ignore")
        parts.append(str(language))
    return " ".join(parts)


def pick_voice(
    voices: Sequence[Any],
    locale: str,
    name_hint: str | None = DEFAULT_VOICE_HINT,
) -> Any | None:
    """Escolhe a voz mais proxima do locale.

    Ordem: locale + dica de nome, locale, mesmo idioma + dica de nome,
    primeira voz. None se o engine nao tem vozes.
    """
    if not voices:
        return None

    language, _, region = locale.replace("_", "-").partition("-")
    exact = re.compile(
        rf"(?<![a-z]){re.escape(language)}[-_]{re.escape(region)}(?![a-z])", re.IGNORECASE
    )
    same_language = re.compile(rf"(?<![a-z]){re.escape(language)}(?![a-z])", re.IGNORECASE)
    hint = re.compile(name_hint, re.IGNORECASE) if name_hint else None

    def hinted(voice: Any) -> bool:
        return hint is not None and bool(hint.search(str(getattr(voice, "name", "") or "")))

    labels = [(voice, _voice_labels(voice)) for voice in voices]
    candidates = [
        lambda v, text: bool(region) and bool(exact.search(text)) and hinted(v),
        lambda v, text: bool(region) and bool(exact.search(text)),
        lambda v, text: bool(same_language.search(text)) and hinted(v),
    ]
    for matches in candidates:
        for voice, text in labels:
            if matches(voice, text):
                return voice
    return voices[0]


class LocalSpeech(SynthesizedSpeech):
    """Uma fala pendente no engine pyttsx3."""

    def __init__(
        self,
        text: str,
        *,
        rate_multiplier: float,
        locale: str = "en-AU",
        voice_hint: str | None = DEFAULT_VOICE_HINT,
        rng: random.Random | None = None,
    ) -> None:
        self._text = text
        self._rate_multiplier = rate_multiplier
        self._locale = locale
        self._voice_hint = voice_hint
        self._rng = rng or random.Random()
        self._engine: Any = None
        self._lock = threading.Lock()
        self._playing = False
        self._stopped = False

    async def play(self) -> None:
        if self._stopped:
            return
        self._playing = True
        try:
            await asyncio.to_thread(self._speak_blocking)
        except SynthesisProviderError:
            raise
        except Exception as exc:
            raise SynthesisProviderError("local", str(exc)) from exc
        finally:
            self._playing = False

    def _speak_blocking(self) -> None:
        try:
            import pyttsx3
        except ImportError as exc:
            raise SynthesisProviderError("local", "pyttsx3 nao esta instalado") from exc

        engine = pyttsx3.init()
        with self._lock:
            if self._stopped:
                return
            self._engine = engine

        voice = pick_voice(engine.getProperty("voices") or [], self._locale, self._voice_hint)
        if voice is not None:
            engine.setProperty("voice", voice.id)
            logger.debug("local_voice_selected", voice=getattr(voice, "name", voice.id))

        base_rate = engine.getProperty("rate")
        engine.setProperty("rate", int(base_rate * self._rate_multiplier))
        engine.setProperty("volume", 0.0 if self.muted else 1.0)
        engine.say(self._text)
        try:
            engine.runAndWait()
        finally:
            with self._lock:
                self._engine = None

    def set_muted(self, muted: bool) -> None:
        # Alguns drivers so aplicam o volume na proxima fala
        super().set_muted(muted)
        with self._lock:
            engine = self._engine
        if engine is not None:
            try:
                engine.setProperty("volume", 0.0 if muted else 1.0)
            except Exception:
                logger.debug("local_volume_failed", exc_info=True)

    def stop(self) -> None:
        self._playing = False
        with self._lock:
            self._stopped = True
            engine = self._engine
        if engine is not None:
            try:
                engine.stop()
            except Exception:
                logger.debug("local_stop_failed", exc_info=True)

    def amplitude(self) -> float:
        if not self._playing:
            return 0.0
        return _PULSE_BASE + self._rng.random() * _PULSE_SPAN


class LocalSpeechProvider(SynthesisProvider):
    """Sintese offline no dispositivo.

    Args:
        rate_multiplier: Fator aplicado a taxa de fala padrao do engine.
        locale: Locale preferido da voz (ex: ``en-AU``).
        voice_hint: Regex procurada no nome da voz para desempatar
            (None = primeira voz do locale).
    """

    def __init__(
        self,
        rate_multiplier: float = 1.03,
        *,
        locale: str = "en-AU",
        voice_hint: str | None = DEFAULT_VOICE_HINT,
    ) -> None:
        self._rate_multiplier = rate_multiplier
        self._locale = locale
        self._voice_hint = voice_hint

    @classmethod
    def from_config(cls, config: SynthesisConfig) -> LocalSpeechProvider:
        return cls(
            config.local_rate_multiplier,
            locale=config.local_voice_locale,
            voice_hint=config.local_voice_hint,
        )

    @property
    def name(self) -> str:
        return "local"

    @property
    def kind(self) -> SpeechProvider:
        return SpeechProvider.FALLBACK

    async def attempt(self, text: str) -> LocalSpeech:
        if not text.strip():
            raise SynthesisProviderError(self.name, "texto vazio")
        return LocalSpeech(
            text,
            rate_multiplier=self._rate_multiplier,
            locale=self._locale,
            voice_hint=self._voice_hint,
        )

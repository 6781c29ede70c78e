"""Fixtures compartilhadas para todos os testes.

Fakes deterministicos para os colaboradores externos da sessao: clock,
engine de reconhecimento, providers de sintese, Chat Relay e microfone.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from prosa._types import SpeechProvider, Utterance
from prosa.config.session import (
    EchoGuardConfig,
    RecognitionConfig,
    VoiceSessionConfig,
    WatchdogConfig,
)
from prosa.exceptions import (
    PermissionDeniedError,
    RecognitionTransientError,
    SynthesisProviderError,
)
from prosa.recognition.interface import MicrophonePermission, RecognitionEngine
from prosa.synthesis.interface import SynthesisProvider, SynthesizedSpeech
from prosa.synthesis.player import SynthesisPlayer

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Clock deterministico para testes."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


# ---------------------------------------------------------------------------
# Reconhecimento
# ---------------------------------------------------------------------------


class FakeEngine(RecognitionEngine):
    """Engine controlada pelo teste: emite resultados e fins sob demanda."""

    def __init__(self, supported: bool = True) -> None:
        self.supported = supported
        self.start_calls = 0
        self.stop_calls = 0
        self.fail_next_starts = 0
        self.stop_gate: asyncio.Event | None = None
        self.running = False
        self._on_result: Any = None
        self._on_error: Any = None
        self._on_end: Any = None

    @property
    def name(self) -> str:
        return "fake"

    def is_supported(self) -> bool:
        return self.supported

    async def start(self, locale: str, on_result: Any, on_error: Any, on_end: Any) -> None:
        self.start_calls += 1
        self.locale = locale
        if self.fail_next_starts > 0:
            self.fail_next_starts -= 1
            raise RecognitionTransientError("audio-capture")
        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end
        self.running = True

    async def stop(self) -> None:
        self.stop_calls += 1
        self.running = False
        if self.stop_gate is not None:
            await self.stop_gate.wait()

    async def emit_final(self, text: str, confidence: float = 0.9) -> None:
        await self._on_result(Utterance(text=text, is_final=True, confidence=confidence))

    async def emit_partial(self, text: str) -> None:
        await self._on_result(Utterance(text=text, is_final=False, confidence=0.5))

    async def emit_error(self, reason: str = "network") -> None:
        await self._on_error(RecognitionTransientError(reason))

    async def end(self) -> None:
        """Fim natural de segmento (ou apos erro)."""
        self.running = False
        await self._on_end()


class FakeMicrophone(MicrophonePermission):
    def __init__(self, allow: bool = True) -> None:
        self.allow = allow
        self.requests = 0

    async def request(self) -> None:
        self.requests += 1
        if not self.allow:
            raise PermissionDeniedError("NotAllowedError")


# ---------------------------------------------------------------------------
# Sintese
# ---------------------------------------------------------------------------


class FakeSpeech(SynthesizedSpeech):
    """Fala que termina sozinha ou quando o teste chama finish()."""

    def __init__(self, text: str, *, auto_finish: bool, fail_on_play: bool = False) -> None:
        self.text = text
        self.auto_finish = auto_finish
        self.fail_on_play = fail_on_play
        self.playing = False
        self.stopped = False
        self.started = asyncio.Event()
        self._done = asyncio.Event()

    async def play(self) -> None:
        if self.fail_on_play:
            raise SynthesisProviderError("fake", "dispositivo ocupado")
        self.playing = True
        self.started.set()
        try:
            if not self.auto_finish:
                await self._done.wait()
            else:
                await asyncio.sleep(0)
        finally:
            self.playing = False

    def finish(self) -> None:
        self._done.set()

    def stop(self) -> None:
        self.stopped = True
        self.playing = False
        self._done.set()

    def amplitude(self) -> float:
        return 0.5 if self.playing else 0.0


class FakeProvider(SynthesisProvider):
    """Provider que produz FakeSpeech ou falha com SynthesisProviderError."""

    def __init__(
        self,
        name: str = "fake",
        kind: SpeechProvider = SpeechProvider.PRIMARY,
        *,
        fail: str | None = None,
        fail_on_play: bool = False,
        auto_finish: bool = True,
    ) -> None:
        self._name = name
        self._kind = kind
        self.fail = fail
        self.fail_on_play = fail_on_play
        self.auto_finish = auto_finish
        self.attempts: list[str] = []
        self.speeches: list[FakeSpeech] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> SpeechProvider:
        return self._kind

    @property
    def last_speech(self) -> FakeSpeech:
        return self.speeches[-1]

    async def attempt(self, text: str) -> FakeSpeech:
        self.attempts.append(text)
        if self.fail is not None:
            raise SynthesisProviderError(self._name, self.fail)
        speech = FakeSpeech(text, auto_finish=self.auto_finish, fail_on_play=self.fail_on_play)
        self.speeches.append(speech)
        return speech

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Chat Relay
# ---------------------------------------------------------------------------


class FakeRelay:
    """Chat Relay em memoria com respostas programaveis."""

    def __init__(self, reply: str = "Hi! How can I help?") -> None:
        self.reply = reply
        self.send_error: Exception | None = None
        self.start_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.sessions_started = 0
        self.sent: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def start_session(self) -> str:
        if self.start_error is not None:
            raise self.start_error
        self.sessions_started += 1
        return f"sess-{self.sessions_started}"

    async def send(self, session_id: str, content: str) -> str:
        self.sent.append((session_id, content))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.send_error is not None:
                raise self.send_error
            return self.reply
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def microphone() -> FakeMicrophone:
    return FakeMicrophone()


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def primary() -> FakeProvider:
    return FakeProvider("remote", SpeechProvider.PRIMARY)


@pytest.fixture
def fallback() -> FakeProvider:
    return FakeProvider("local", SpeechProvider.FALLBACK)


@pytest.fixture
def session_config() -> VoiceSessionConfig:
    """Configuracao sem atrasos reais (backoff e retomada imediatos)."""
    return VoiceSessionConfig(
        autostart_mic=True,
        resume_listening_delay_s=0.0,
        recognition=RecognitionConfig(restart_backoff_s=0.0),
        echo_guard=EchoGuardConfig(),
        watchdog=WatchdogConfig(idle_timeout_s=60.0),
    )


@pytest.fixture
def make_controller(
    session_config: VoiceSessionConfig,
    engine: FakeEngine,
    microphone: FakeMicrophone,
    relay: FakeRelay,
    primary: FakeProvider,
    fallback: FakeProvider,
    clock: FakeClock,
) -> Any:
    """Factory de VoiceSessionController com fakes; coleta eventos emitidos."""
    from prosa.session.controller import VoiceSessionController

    created: list[VoiceSessionController] = []

    def factory(
        config: VoiceSessionConfig | None = None,
        events: list[Any] | None = None,
        amplitudes: list[float] | None = None,
    ) -> VoiceSessionController:
        sink = events if events is not None else []

        async def on_event(event: Any) -> None:
            sink.append(event)

        player = SynthesisPlayer(
            [primary, fallback],
            amplitude_interval_s=0.01,
            on_amplitude=amplitudes.append if amplitudes is not None else None,
            clock=clock,
        )
        controller = VoiceSessionController(
            config or session_config,
            engine=engine,
            player=player,
            relay=relay,  # type: ignore[arg-type]
            microphone=microphone,
            on_event=on_event,
            clock=clock,
        )
        created.append(controller)
        return controller

    yield factory

    for controller in created:
        controller.watchdog.disarm()


async def wait_for(predicate: Any, timeout: float = 1.0) -> None:
    """Cede o loop ate o predicado ser verdadeiro (ou falha por timeout)."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condicao nao satisfeita dentro do timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def until() -> Any:
    return wait_for


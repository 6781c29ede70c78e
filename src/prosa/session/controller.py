"""VoiceSessionController: orquestra um loop de conversa falada.

Fluxo de um turno:
    RecognitionAdapter -> EchoGuard -> controller -> ChatRelay
        -> controller -> SynthesisPlayer -> (fim) controller religa o reconhecimento

Regras:
- Half-duplex: com ``barge_in`` desligado o reconhecimento para enquanto o
  assistente fala e volta apos ``resume_listening_delay_s``. Com ``barge_in``
  ligado ele continua ativo e todo transcript passa pelo EchoGuard.
- No maximo uma chamada ao Chat Relay e um SpeakRequest em voo. Um segundo
  gatilho durante a chamada ao relay e ignorado. Uma interrupcao genuina
  durante a fala cancela o SpeakRequest e inicia um novo turno.
- Falha do relay vira um turno de desculpas exibido (nao falado).
- Toda cadeia assincrona captura um EpochToken; ``restart()``/``dispose()``
  incrementam o epoch e resultados atrasados viram no-op.

Todo o estado mutavel vive em um unico valor ``Session``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prosa._types import ChatTurn, SessionState, StatusReason, TurnRole
from prosa.events import (
    ConversationClearedEvent,
    ConversationTurnEvent,
    EchoDiscardedEvent,
    SessionErrorEvent,
    SessionStatusEvent,
    SpeakingEndEvent,
    SpeakingStartEvent,
)
from prosa.exceptions import (
    PermissionDeniedError,
    RecognitionFatalError,
    RelayError,
    RelayNetworkError,
    SessionDisposedError,
    SynthesisExhaustedError,
    UnsupportedEngineError,
)
from prosa.logging import get_logger
from prosa.recognition.adapter import RecognitionAdapter
from prosa.session.echo_guard import EchoGuard
from prosa.session.epoch import SessionEpoch
from prosa.session.metrics import (
    HAS_METRICS,
    echo_discards_total,
    idle_timeouts_total,
    turns_total,
)
from prosa.session.state_machine import VoiceStateMachine
from prosa.session.watchdog import ActivityClock, IdleWatchdog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from prosa._types import SpeakRequest, Utterance
    from prosa.config.session import VoiceSessionConfig
    from prosa.events import SessionEvent
    from prosa.recognition.interface import MicrophonePermission, RecognitionEngine
    from prosa.relay.client import ChatRelayClient
    from prosa.session.epoch import EpochToken
    from prosa.synthesis.interface import SynthesisProvider
    from prosa.synthesis.player import SynthesisPlayer

    EventCallback = Callable[[SessionEvent], Awaitable[None]]

logger = get_logger("session.controller")


@dataclass
class Session:
    """Estado de uma sessao de voz, possuido pelo controller."""

    machine: VoiceStateMachine
    epoch: SessionEpoch
    activity: ActivityClock
    guard: EchoGuard
    recognition: RecognitionAdapter
    player: SynthesisPlayer
    relay: ChatRelayClient
    chat_session_id: str | None = None
    mic_desired: bool = False
    muted: bool = False
    disposed: bool = False
    relay_pending: bool = False
    turn_task: asyncio.Task[None] | None = None
    history: list[ChatTurn] = field(default_factory=list)

    @property
    def state(self) -> SessionState:
        return self.machine.state


class VoiceSessionController:
    """Controller de uma conversa falada com um agente remoto.

    Args:
        config: Configuracao da sessao.
        engine: Engine de reconhecimento continuo.
        player: SynthesisPlayer com os providers ja configurados.
        relay: Cliente do Chat Relay.
        microphone: Verificacao de permissao do microfone (None = sempre permitido).
        on_event: Callback async para eventos da UI.
        clock: Funcao que retorna timestamp monotonic (para testes deterministicos).
    """

    def __init__(
        self,
        config: VoiceSessionConfig,
        *,
        engine: RecognitionEngine,
        player: SynthesisPlayer,
        relay: ChatRelayClient,
        microphone: MicrophonePermission | None = None,
        on_event: EventCallback | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config
        self._microphone = microphone
        self._on_event = on_event
        self._clock = clock or time.monotonic

        activity = ActivityClock(self._clock)
        self._session = Session(
            machine=VoiceStateMachine(on_transition=self._log_transition),
            epoch=SessionEpoch(),
            activity=activity,
            guard=EchoGuard(config.echo_guard, clock=self._clock),
            recognition=RecognitionAdapter(
                engine,
                config.recognition,
                on_final=self._on_final_utterance,
                on_fatal=self._on_recognition_fatal,
                clock=self._clock,
            ),
            player=player,
            relay=relay,
            history=[ChatTurn(role=TurnRole.ASSISTANT, content=config.greeting)],
        )
        self._watchdog = IdleWatchdog(
            config.watchdog.idle_timeout_s,
            activity,
            on_idle=self._on_idle,
            is_busy=self._is_busy,
        )
        # Estado (e motivo) para onde a sessao volta ao fim de uma fala sem mic
        self._resting_state = SessionState.MIC_OFF
        self._resting_reason: StatusReason | None = None
        self._resume_task: asyncio.Task[None] | None = None
        self._idle_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        config: VoiceSessionConfig,
        *,
        on_event: EventCallback | None = None,
        on_amplitude: Callable[[float], None] | None = None,
    ) -> VoiceSessionController:
        """Monta o controller com as implementacoes padrao (realtime WS, HTTP, pyttsx3)."""
        from prosa.recognition.realtime_ws import RealtimeWebSocketEngine, SoundDeviceMicrophone
        from prosa.relay.client import ChatRelayClient
        from prosa.synthesis.local import LocalSpeechProvider
        from prosa.synthesis.player import SynthesisPlayer
        from prosa.synthesis.remote import RemoteSpeechProvider

        rec = config.recognition
        syn = config.synthesis

        providers: list[SynthesisProvider] = [RemoteSpeechProvider(syn)]
        if syn.enable_fallback:
            providers.append(LocalSpeechProvider.from_config(syn))

        return cls(
            config,
            engine=RealtimeWebSocketEngine(
                rec.realtime_url,
                rec.model,
                sample_rate=rec.sample_rate,
                frame_duration_ms=rec.frame_duration_ms,
            ),
            player=SynthesisPlayer(
                providers,
                amplitude_interval_s=syn.amplitude_interval_s,
                on_amplitude=on_amplitude,
            ),
            relay=ChatRelayClient(config.relay),
            microphone=SoundDeviceMicrophone(),
            on_event=on_event,
        )

    # --- Propriedades ---

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.machine.state

    @property
    def status_reason(self) -> StatusReason | None:
        return self._session.machine.reason

    @property
    def history(self) -> list[ChatTurn]:
        """Copia do historico visivel."""
        return list(self._session.history)

    @property
    def chat_session_id(self) -> str | None:
        return self._session.chat_session_id

    @property
    def mic_desired(self) -> bool:
        return self._session.mic_desired

    @property
    def muted(self) -> bool:
        return self._session.muted

    @property
    def current_request(self) -> SpeakRequest | None:
        """SpeakRequest em voo, se houver."""
        return self._session.player.current_request

    @property
    def turn_in_flight(self) -> bool:
        task = self._session.turn_task
        return task is not None and not task.done()

    @property
    def watchdog(self) -> IdleWatchdog:
        return self._watchdog

    @property
    def is_disposed(self) -> bool:
        return self._session.disposed

    # --- Operacoes publicas ---

    async def start(self) -> None:
        """Abre (ou reutiliza) a conversa no relay e liga o mic se configurado."""
        self._ensure_alive("start")
        token = self._session.epoch.capture()

        if self._session.chat_session_id is None:
            await self._open_chat_session(token)
        if not token.is_current:
            return

        logger.info(
            "session_started",
            chat_session_id=self._session.chat_session_id,
            autostart_mic=self._config.autostart_mic,
        )
        if self._config.autostart_mic:
            await self._mic_on()

    async def toggle_mic(self) -> None:
        """Liga/desliga o microfone."""
        self._ensure_alive("toggle_mic")
        if self._session.mic_desired and self.state in (
            SessionState.LISTENING,
            SessionState.SPEAKING,
        ):
            self._session.activity.touch("mic_toggle")
            await self._mic_off(StatusReason.MANUAL)
        else:
            await self._mic_on()

    def toggle_mute(self) -> bool:
        """Alterna se o player pode produzir audio. Nao altera o estado.

        Returns:
            Novo valor de muted.
        """
        self._ensure_alive("toggle_mute")
        muted = not self._session.muted
        self._session.muted = muted
        self._session.player.set_muted(muted)
        logger.info("mute_toggled", muted=muted)
        return muted

    async def submit_user_text(self, text: str) -> None:
        """Texto digitado: tratado como utterance final aceita."""
        self._ensure_alive("submit_user_text")
        if not text.strip():
            return
        self._watchdog.touch("text_submit")
        task = self._dispatch_turn(text.strip())
        if task is not None:
            await task

    async def restart(self) -> None:
        """Descarta a conversa atual e abre uma nova."""
        self._ensure_alive("restart")
        session = self._session
        session.epoch.advance()
        token = session.epoch.capture()

        was_desired = session.mic_desired
        self._abandon_turn()
        self._cancel_background()
        self._watchdog.disarm()
        await session.recognition.stop()

        session.history.clear()
        await self._emit(ConversationClearedEvent())
        await self._append_turn(TurnRole.ASSISTANT, self._config.restart_greeting)

        session.chat_session_id = None
        await self._open_chat_session(token)
        if not token.is_current:
            return

        logger.info("session_restarted", chat_session_id=session.chat_session_id)
        if was_desired:
            await self._begin_listening(StatusReason.MANUAL)
        else:
            await self._set_state(SessionState.MIC_OFF)

    async def dispose(self) -> None:
        """Encerra a sessao. Idempotente."""
        session = self._session
        if session.disposed:
            return
        session.disposed = True
        session.epoch.advance()

        session.mic_desired = False
        self._abandon_turn()
        self._cancel_background()
        self._watchdog.disarm()
        await session.recognition.stop()
        await self._set_state(SessionState.MIC_OFF, StatusReason.DISPOSED)

        await session.player.aclose()
        await session.relay.aclose()
        logger.info("session_disposed")

    async def check_idle(self) -> bool:
        """Avalia o idle watchdog agora e aguarda o desligamento do mic.

        Returns:
            True se o watchdog disparou.
        """
        fired = self._watchdog.check()
        if fired and self._idle_task is not None:
            await self._idle_task
        return fired

    # --- Turno ---

    def _dispatch_turn(self, text: str) -> asyncio.Task[None] | None:
        session = self._session
        if session.relay_pending:
            logger.info("turn_ignored", reason="relay_pending", chars=len(text))
            return None

        previous = session.turn_task
        if previous is not None and not previous.done():
            # Interrupcao genuina: a fala anterior para antes do novo turno
            logger.info("barge_in", chars=len(text))
            session.player.cancel()
            session.guard.clear()

        session.relay_pending = True
        task = asyncio.create_task(self._run_turn(text, previous))
        session.turn_task = task
        return task

    async def _run_turn(self, text: str, previous: asyncio.Task[None] | None) -> None:
        session = self._session
        token = session.epoch.capture()
        me = asyncio.current_task()

        try:
            if previous is not None and not previous.done():
                await asyncio.wait({previous})
            if not token.is_current:
                return

            await self._append_turn(TurnRole.USER, text)
            logger.info("turn_started", chars=len(text))

            apology: str | None = None
            outcome = "ok"
            reply = ""
            try:
                reply = await self._ask_agent(text, token)
            except RelayNetworkError as exc:
                outcome = "network_error"
                apology = self._config.network_error_reply
                logger.warning("relay_unreachable", error=str(exc))
            except RelayError as exc:
                outcome = "relay_error"
                apology = self._config.relay_error_reply
                logger.warning("relay_failed", error=str(exc), status_code=exc.status_code)
            finally:
                if session.turn_task is me:
                    session.relay_pending = False

            if not token.is_current:
                self._count_turn("stale")
                logger.info("turn_discarded", reason="stale_epoch")
                return

            self._count_turn(outcome)
            if apology is not None:
                await self._append_turn(TurnRole.ASSISTANT, apology)
                return

            await self._append_turn(TurnRole.ASSISTANT, reply)
            await self._speak_reply(reply, token)
        finally:
            if session.turn_task is me:
                session.relay_pending = False

    async def _ask_agent(self, text: str, token: EpochToken) -> str:
        session = self._session
        chat_session_id = session.chat_session_id
        if chat_session_id is None:
            chat_session_id = await session.relay.start_session()
            if token.is_current:
                session.chat_session_id = chat_session_id
        return await session.relay.send(chat_session_id, text)

    async def _speak_reply(self, reply: str, token: EpochToken) -> None:
        session = self._session
        me = asyncio.current_task()
        if session.turn_task is not me:
            logger.info("reply_superseded", chars=len(reply))
            return

        session.guard.hold(reply)
        if not self._config.barge_in:
            self._cancel_resume()
            await session.recognition.stop()
        if not token.is_current:
            return
        if session.turn_task is not me:
            # Interrompido enquanto o reconhecimento parava: o novo turno fala
            session.guard.clear()
            logger.info("reply_superseded", chars=len(reply))
            if session.mic_desired and self.state == SessionState.LISTENING:
                self._cancel_resume()
                self._resume_task = asyncio.create_task(self._resume_listening(token))
            return

        if self.state != SessionState.SPEAKING:
            self._set_resting(self.state, self.status_reason)
        await self._set_state(SessionState.SPEAKING)
        await self._emit(SpeakingStartEvent(text=reply))
        self._watchdog.touch("speak_start")

        request: SpeakRequest | None = None
        try:
            request = await session.player.speak(reply)
        except SynthesisExhaustedError as exc:
            # Turno termina sem audio; o texto continua visivel
            logger.warning("turn_silent", providers=[f.provider for f in exc.failures])

        if not token.is_current:
            return

        duration_ms = 0
        if request is not None and request.ended_at is not None:
            duration_ms = int((request.ended_at - request.started_at) * 1000)
        await self._emit(
            SpeakingEndEvent(
                provider=request.provider_used if request is not None else None,
                cancelled=request.cancelled if request is not None else False,
                duration_ms=duration_ms,
            )
        )
        self._watchdog.touch("speak_end")

        superseded = session.turn_task is not me
        if not superseded:
            session.guard.release()
        await self._after_speaking(token)

    async def _after_speaking(self, token: EpochToken) -> None:
        if self.state != SessionState.SPEAKING:
            # Mic desligado durante a fala: estado ja foi resolvido
            return
        if self._session.mic_desired:
            await self._set_state(SessionState.LISTENING)
            self._cancel_resume()
            self._resume_task = asyncio.create_task(self._resume_listening(token))
        else:
            await self._set_state(self._resting_state, self._resting_reason)

    async def _resume_listening(self, token: EpochToken) -> None:
        await asyncio.sleep(self._config.resume_listening_delay_s)
        session = self._session
        if not token.is_current or not session.mic_desired:
            return
        if self.state != SessionState.LISTENING:
            return
        await self._start_recognition()

    # --- Reconhecimento ---

    async def _on_final_utterance(self, utterance: Utterance) -> None:
        session = self._session
        if session.disposed or not session.mic_desired:
            return

        self._watchdog.touch("final_utterance")
        verdict = session.guard.classify(utterance.text, utterance.confidence)
        if verdict.is_echo:
            rule = verdict.rule or "unknown"
            if HAS_METRICS and echo_discards_total is not None:
                echo_discards_total.labels(rule=rule).inc()
            await self._emit(EchoDiscardedEvent(text=utterance.text, rule=rule))
            return

        self._dispatch_turn(utterance.text)

    async def _on_recognition_fatal(self, error: RecognitionFatalError) -> None:
        session = self._session
        if session.disposed:
            return
        session.mic_desired = False
        self._watchdog.disarm()
        self._cancel_resume()
        self._set_resting(SessionState.MIC_OFF, StatusReason.RECOGNITION_FATAL)
        if self.state != SessionState.SPEAKING:
            await self._set_state(SessionState.MIC_OFF, StatusReason.RECOGNITION_FATAL)
        await self._report_error("recognition_fatal", str(error))

    async def _start_recognition(self) -> bool:
        try:
            await self._session.recognition.start()
        except UnsupportedEngineError as exc:
            await self._enter_unsupported(exc)
            return False
        except RecognitionFatalError as exc:
            await self._on_recognition_fatal(exc)
            return False
        return True

    async def _enter_unsupported(self, error: UnsupportedEngineError) -> None:
        self._session.mic_desired = False
        self._watchdog.disarm()
        self._cancel_resume()
        logger.error("recognition_unsupported", engine=error.engine)
        self._set_resting(SessionState.ERROR, StatusReason.UNSUPPORTED_ENGINE)
        if self.state != SessionState.SPEAKING:
            await self._set_state(SessionState.ERROR, StatusReason.UNSUPPORTED_ENGINE)
        await self._report_error("unsupported_engine", str(error))

    # --- Microfone ---

    async def _mic_on(self) -> None:
        session = self._session
        token = session.epoch.capture()
        session.activity.touch("mic_toggle")

        if self._microphone is not None:
            try:
                await self._microphone.request()
            except PermissionDeniedError as exc:
                session.mic_desired = False
                logger.warning("microphone_denied", reason=exc.reason)
                if self.state == SessionState.LISTENING:
                    await session.recognition.stop()
                self._set_resting(SessionState.MIC_OFF, StatusReason.PERMISSION_DENIED)
                if self.state != SessionState.SPEAKING:
                    await self._set_state(SessionState.MIC_OFF, StatusReason.PERMISSION_DENIED)
                await self._report_error("permission_denied", str(exc))
                return
        if not token.is_current:
            return

        if self.state == SessionState.SPEAKING:
            # Reconhecimento volta quando a fala terminar (ou ja, com barge-in)
            session.mic_desired = True
            self._arm_watchdog()
            if self._config.barge_in:
                await self._start_recognition()
            return

        await self._begin_listening(StatusReason.MANUAL)

    async def _begin_listening(self, reason: StatusReason) -> None:
        session = self._session
        session.mic_desired = True
        self._arm_watchdog()
        if await self._start_recognition():
            await self._set_state(SessionState.LISTENING, reason)

    async def _mic_off(self, reason: StatusReason) -> None:
        session = self._session
        session.mic_desired = False
        self._watchdog.disarm()
        self._cancel_resume()
        await session.recognition.stop()
        self._set_resting(SessionState.MIC_OFF, reason)
        await self._set_state(SessionState.MIC_OFF, reason)

    # --- Idle watchdog ---

    def _arm_watchdog(self) -> None:
        if self._config.watchdog.enabled:
            self._watchdog.arm()

    def _is_busy(self) -> bool:
        session = self._session
        return session.relay_pending or session.player.is_speaking

    def _on_idle(self) -> None:
        self._idle_task = asyncio.create_task(self._handle_idle())

    async def _handle_idle(self) -> None:
        session = self._session
        if session.disposed or not session.mic_desired:
            return
        if HAS_METRICS and idle_timeouts_total is not None:
            idle_timeouts_total.inc()
        await self._mic_off(StatusReason.IDLE_TIMEOUT)

    # --- Auxiliares ---

    async def _open_chat_session(self, token: EpochToken) -> None:
        try:
            chat_session_id = await self._session.relay.start_session()
        except RelayError as exc:
            # Nao fatal: o primeiro turno tenta de novo
            logger.warning("relay_start_failed", error=str(exc))
            return
        if token.is_current:
            self._session.chat_session_id = chat_session_id

    async def _append_turn(self, role: TurnRole, content: str) -> None:
        self._session.history.append(ChatTurn(role=role, content=content))
        await self._emit(ConversationTurnEvent(role=role, content=content))

    def _set_resting(self, state: SessionState, reason: StatusReason | None) -> None:
        if state == SessionState.LISTENING:
            state, reason = SessionState.MIC_OFF, None
        self._resting_state = state
        self._resting_reason = reason

    async def _set_state(self, target: SessionState, reason: StatusReason | None = None) -> None:
        machine = self._session.machine
        previous = machine.state
        if not machine.transition(target, reason):
            return
        await self._emit(SessionStatusEvent(state=target, previous=previous, reason=reason))

    async def _report_error(self, code: str, message: str) -> None:
        await self._emit(SessionErrorEvent(code=code, message=message, recoverable=False))

    async def _emit(self, event: SessionEvent) -> None:
        if self._on_event is None:
            return
        try:
            await self._on_event(event)
        except Exception:
            logger.exception("event_handler_failed", event_type=event.type)

    def _abandon_turn(self) -> None:
        session = self._session
        session.player.cancel()
        session.guard.clear()
        session.relay_pending = False
        session.turn_task = None

    def _cancel_resume(self) -> None:
        task = self._resume_task
        self._resume_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _cancel_background(self) -> None:
        self._cancel_resume()
        task = self._idle_task
        self._idle_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _count_turn(self, outcome: str) -> None:
        if HAS_METRICS and turns_total is not None:
            turns_total.labels(outcome=outcome).inc()

    def _ensure_alive(self, operation: str) -> None:
        if self._session.disposed:
            raise SessionDisposedError(operation)

    @staticmethod
    def _log_transition(
        previous: SessionState,
        target: SessionState,
        reason: StatusReason | None,
    ) -> None:
        logger.info(
            "state_changed",
            previous=previous.value,
            state=target.value,
            reason=reason.value if reason is not None else None,
        )


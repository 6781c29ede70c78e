"""Testes da VoiceStateMachine.

Valida transicoes, no-op para o proprio estado, atualizacao de motivo e
o callback on_transition.
"""

from __future__ import annotations

import itertools

import pytest

from prosa._types import SessionState, StatusReason
from prosa.session.state_machine import _VALID_TRANSITIONS, VoiceStateMachine


class TestInitialState:
    def test_starts_mic_off(self) -> None:
        sm = VoiceStateMachine()
        assert sm.state == SessionState.MIC_OFF
        assert sm.reason is None

    def test_custom_initial(self) -> None:
        sm = VoiceStateMachine(initial=SessionState.LISTENING)
        assert sm.state == SessionState.LISTENING


class TestTransitions:
    def test_table_covers_every_state(self) -> None:
        assert set(_VALID_TRANSITIONS) == set(SessionState)

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (source, target)
            for source, target in itertools.permutations(SessionState, 2)
        ],
    )
    def test_valid_transition(self, source: SessionState, target: SessionState) -> None:
        sm = VoiceStateMachine(initial=source)
        assert sm.transition(target) is True
        assert sm.state == target

    def test_same_state_is_noop(self) -> None:
        calls: list[str] = []
        sm = VoiceStateMachine(on_transition=lambda prev, new, reason: calls.append("t"))
        assert sm.transition(SessionState.MIC_OFF) is False
        assert calls == []

    def test_same_state_with_new_reason_updates_reason(self) -> None:
        calls: list[tuple[SessionState, SessionState, StatusReason | None]] = []
        sm = VoiceStateMachine(on_transition=lambda *args: calls.append(args))

        assert sm.transition(SessionState.MIC_OFF, StatusReason.PERMISSION_DENIED) is True
        assert sm.state == SessionState.MIC_OFF
        assert sm.reason == StatusReason.PERMISSION_DENIED
        assert calls == [
            (SessionState.MIC_OFF, SessionState.MIC_OFF, StatusReason.PERMISSION_DENIED)
        ]

    def test_same_state_same_reason_is_noop(self) -> None:
        sm = VoiceStateMachine()
        sm.transition(SessionState.MIC_OFF, StatusReason.IDLE_TIMEOUT)
        assert sm.transition(SessionState.MIC_OFF, StatusReason.IDLE_TIMEOUT) is False

    def test_same_state_without_reason_keeps_reason(self) -> None:
        sm = VoiceStateMachine()
        sm.transition(SessionState.MIC_OFF, StatusReason.PERMISSION_DENIED)
        assert sm.transition(SessionState.MIC_OFF) is False
        assert sm.reason == StatusReason.PERMISSION_DENIED

    def test_reason_recorded(self) -> None:
        sm = VoiceStateMachine(initial=SessionState.LISTENING)
        sm.transition(SessionState.MIC_OFF, StatusReason.IDLE_TIMEOUT)
        assert sm.reason == StatusReason.IDLE_TIMEOUT
        sm.transition(SessionState.LISTENING)
        assert sm.reason is None


class TestCallbacks:
    def test_on_transition_receives_reason(self) -> None:
        calls: list[str] = []
        sm = VoiceStateMachine(
            on_transition=lambda prev, new, reason: calls.append(
                f"{prev.value}->{new.value}:{reason.value if reason else None}"
            ),
        )
        sm.transition(SessionState.LISTENING, StatusReason.MANUAL)
        sm.transition(SessionState.SPEAKING)
        assert calls == ["mic_off->listening:manual", "listening->speaking:None"]

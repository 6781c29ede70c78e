"""Testes dos eventos emitidos para a UI."""

from __future__ import annotations

import pydantic
import pytest

from prosa._types import SessionState, SpeechProvider, StatusReason, TurnRole
from prosa.events import (
    ConversationClearedEvent,
    ConversationTurnEvent,
    SessionErrorEvent,
    SessionStatusEvent,
    SpeakingEndEvent,
)


class TestEvents:
    def test_status_event_serializes_enums(self) -> None:
        event = SessionStatusEvent(
            state=SessionState.MIC_OFF,
            previous=SessionState.LISTENING,
            reason=StatusReason.IDLE_TIMEOUT,
        )
        assert event.model_dump(mode="json") == {
            "type": "session.status",
            "state": "mic_off",
            "previous": "listening",
            "reason": "idle_timeout",
            "message": None,
        }

    def test_events_are_frozen(self) -> None:
        event = ConversationTurnEvent(role=TurnRole.USER, content="hi")
        with pytest.raises(pydantic.ValidationError):
            event.content = "changed"  # type: ignore[misc]

    def test_type_literals(self) -> None:
        assert ConversationClearedEvent().type == "conversation.cleared"
        assert SpeakingEndEvent(provider=SpeechProvider.FALLBACK).type == "synthesis.speaking_end"

    def test_error_event(self) -> None:
        event = SessionErrorEvent(code="permission_denied", message="nope", recoverable=False)
        assert event.model_dump()["recoverable"] is False

"""Eventos emitidos pelo VoiceSessionController para a UI.

Modelos Pydantic imutaveis, cada um com um campo ``type`` literal para
dispatch no consumidor. A amplitude de saida NAO passa por aqui: e
entregue por callback sincrono dedicado (alta frequencia).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

from prosa._types import SessionState, SpeechProvider, StatusReason, TurnRole


class SessionStatusEvent(BaseModel):
    """Emitido a cada transicao de estado da sessao."""

    model_config = ConfigDict(frozen=True)

    type: Literal["session.status"] = "session.status"
    state: SessionState
    previous: SessionState
    reason: StatusReason | None = None
    message: str | None = None


class ConversationTurnEvent(BaseModel):
    """Turno adicionado ao historico visivel."""

    model_config = ConfigDict(frozen=True)

    type: Literal["conversation.turn"] = "conversation.turn"
    role: TurnRole
    content: str


class ConversationClearedEvent(BaseModel):
    """Historico visivel foi limpo (restart)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["conversation.cleared"] = "conversation.cleared"


class SpeakingStartEvent(BaseModel):
    """Audio do assistente comecou a tocar."""

    model_config = ConfigDict(frozen=True)

    type: Literal["synthesis.speaking_start"] = "synthesis.speaking_start"
    text: str


class SpeakingEndEvent(BaseModel):
    """Audio do assistente terminou (normalmente, cancelado ou sem audio)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["synthesis.speaking_end"] = "synthesis.speaking_end"
    provider: SpeechProvider | None = None
    cancelled: bool = False
    duration_ms: int = 0


class EchoDiscardedEvent(BaseModel):
    """Transcript descartado pelo EchoGuard."""

    model_config = ConfigDict(frozen=True)

    type: Literal["guard.echo_discarded"] = "guard.echo_discarded"
    text: str
    rule: str


class SessionErrorEvent(BaseModel):
    """Erro apresentado ao usuario (com flag de recuperabilidade)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    code: str
    message: str
    recoverable: bool


SessionEvent = (
    SessionStatusEvent
    | ConversationTurnEvent
    | ConversationClearedEvent
    | SpeakingStartEvent
    | SpeakingEndEvent
    | EchoDiscardedEvent
    | SessionErrorEvent
)

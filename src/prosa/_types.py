"""Tipos fundamentais do Prosa.

Este modulo define enums e dataclasses compartilhados por todos os
componentes da sessao de voz. Alteracoes aqui impactam o sistema inteiro.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionState(Enum):
    """Estado da sessao de voz.

    Exatamente um estado e corrente a cada instante.

    Transicoes validas:
        MIC_OFF -> LISTENING (mic ligado com permissao)
        MIC_OFF -> SPEAKING (resposta a texto digitado)
        LISTENING -> SPEAKING (resposta do agente chegou)
        LISTENING -> MIC_OFF (toggle manual, idle timeout, erro fatal)
        SPEAKING -> LISTENING (fim da fala com mic desejado)
        SPEAKING -> MIC_OFF (fim da fala sem mic desejado)
        Qualquer -> ERROR (engine de reconhecimento indisponivel)
        ERROR -> MIC_OFF / LISTENING / SPEAKING
    """

    MIC_OFF = "mic_off"
    LISTENING = "listening"
    SPEAKING = "speaking"
    ERROR = "error"


class StatusReason(Enum):
    """Motivo associado ao estado corrente, para a UI explicar o porque."""

    MANUAL = "manual"
    IDLE_TIMEOUT = "idle_timeout"
    PERMISSION_DENIED = "permission_denied"
    UNSUPPORTED_ENGINE = "unsupported_engine"
    RECOGNITION_FATAL = "recognition_fatal"
    DISPOSED = "disposed"


class SpeechProvider(Enum):
    """Origem do audio sintetizado."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


class TurnRole(Enum):
    """Autor de um turno da conversa."""

    USER = "user"
    ASSISTANT = "assistant"


class GuardDecision(Enum):
    """Classificacao de um transcript candidato pelo EchoGuard."""

    ACCEPT = "accept"
    ECHO = "echo"


@dataclass(frozen=True, slots=True)
class Utterance:
    """Resultado de reconhecimento de fala.

    Apenas utterances finais sao promovidas ao controller.
    """

    text: str
    is_final: bool
    confidence: float = 1.0
    captured_at: float = 0.0


@dataclass(slots=True)
class SpeakRequest:
    """Uma requisicao de fala. No maximo uma fica em voo por sessao."""

    text: str
    started_at: float
    provider_used: SpeechProvider | None = None
    ended_at: float | None = None
    cancelled: bool = False
    skipped: bool = False

    @property
    def in_flight(self) -> bool:
        """True enquanto a fala nao terminou (nem foi cancelada)."""
        return self.ended_at is None


@dataclass(frozen=True, slots=True)
class GuardWindow:
    """Texto falado mais recente e o limite de tempo em que eco e presumido."""

    active_until: float
    reference_text: str

    def is_active(self, now: float) -> bool:
        return now < self.active_until


@dataclass(frozen=True, slots=True)
class GuardVerdict:
    """Decisao do EchoGuard com as metricas usadas para chegar nela."""

    decision: GuardDecision
    rule: str | None = None
    word_overlap: float = 0.0
    char_similarity: float = 0.0
    unique_words: int = 0

    @property
    def is_echo(self) -> bool:
        return self.decision == GuardDecision.ECHO


@dataclass(frozen=True, slots=True)
class ChatTurn:
    """Turno visivel da conversa."""

    role: TurnRole
    content: str

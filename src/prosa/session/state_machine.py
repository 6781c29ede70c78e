"""VoiceStateMachine: maquina de estados da sessao de voz.

Implementa 4 estados com tabela de transicoes validas. Componente puro e
sincrono: nao conhece asyncio, microfone ou rede. O caller
(VoiceSessionController) despacha cada evento externo (resultado de
reconhecimento, fim de playback, timer, toggle do usuario) por transition().

Estados:
    MIC_OFF <-> LISTENING <-> SPEAKING, qualquer <-> ERROR

Todas as 12 transicoes entre estados distintos sao usadas pelo controller:
texto digitado fala a partir de MIC_OFF e ERROR, e o fim da fala volta ao
estado de repouso (MIC_OFF ou ERROR).

Regras:
- Transicao para o proprio estado e no-op, exceto quando traz um motivo
  novo: o motivo e atualizado para a UI (ex: PERMISSION_DENIED em MIC_OFF).
- Transicoes fora da tabela levantam InvalidTransitionError.
- O motivo (StatusReason) da ultima transicao fica disponivel para a UI.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prosa._types import SessionState
from prosa.exceptions import InvalidTransitionError

if TYPE_CHECKING:
    from collections.abc import Callable

    from prosa._types import StatusReason

# Transicoes validas: {estado_atual: {estados_alvo_permitidos}}
_VALID_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.MIC_OFF: frozenset(
        {SessionState.LISTENING, SessionState.SPEAKING, SessionState.ERROR}
    ),
    SessionState.LISTENING: frozenset(
        {SessionState.MIC_OFF, SessionState.SPEAKING, SessionState.ERROR}
    ),
    SessionState.SPEAKING: frozenset(
        {SessionState.LISTENING, SessionState.MIC_OFF, SessionState.ERROR}
    ),
    SessionState.ERROR: frozenset(
        {SessionState.MIC_OFF, SessionState.LISTENING, SessionState.SPEAKING}
    ),
}


class VoiceStateMachine:
    """Maquina de estados da sessao de voz.

    Args:
        initial: Estado inicial (default MIC_OFF).
        on_transition: Callback chamado apos toda transicao efetiva com
            (anterior, novo, motivo).
    """

    def __init__(
        self,
        initial: SessionState = SessionState.MIC_OFF,
        on_transition: Callable[[SessionState, SessionState, StatusReason | None], None]
        | None = None,
    ) -> None:
        self._state = initial
        self._reason: StatusReason | None = None
        self._on_transition = on_transition

    @property
    def state(self) -> SessionState:
        """Estado atual da sessao."""
        return self._state

    @property
    def reason(self) -> StatusReason | None:
        """Motivo da transicao que levou ao estado atual."""
        return self._reason

    def transition(self, target: SessionState, reason: StatusReason | None = None) -> bool:
        """Transita para o estado alvo.

        Args:
            target: Estado alvo da transicao.
            reason: Motivo exposto a UI (ex: IDLE_TIMEOUT vs MANUAL).

        Returns:
            True se o estado ou o motivo mudou, False caso contrario.

        Raises:
            InvalidTransitionError: Se a transicao nao esta na tabela.
        """
        if target == self._state:
            if reason is None or reason == self._reason:
                return False
        elif target not in _VALID_TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state.value, target.value)

        previous = self._state
        self._state = target
        self._reason = reason

        if self._on_transition is not None:
            self._on_transition(previous, target, reason)

        return True

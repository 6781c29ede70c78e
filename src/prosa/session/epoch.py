"""SessionEpoch: invalida trabalho assincrono obsoleto.

Toda cadeia assincrona (restart de reconhecimento, fetch de rede,
decode/play de audio) captura um EpochToken no inicio e verifica
``token.is_current`` antes de aplicar qualquer efeito colateral.
``restart()`` e ``dispose()`` apenas incrementam o epoch: callbacks
pendentes viram no-op sem plumbing de cancelamento por chamada.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class EpochToken:
    """Valor do epoch capturado no inicio de uma operacao."""

    epoch: SessionEpoch
    value: int

    @property
    def is_current(self) -> bool:
        return self.epoch.value == self.value


class SessionEpoch:
    """Contador monotonico de geracoes da sessao."""

    def __init__(self) -> None:
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def advance(self) -> int:
        """Incrementa o epoch, invalidando todos os tokens capturados."""
        self._value += 1
        return self._value

    def capture(self) -> EpochToken:
        return EpochToken(epoch=self, value=self._value)

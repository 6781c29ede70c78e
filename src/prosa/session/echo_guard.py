"""EchoGuard: distingue barge-in genuino de eco da propria voz.

Enquanto o assistente fala (ou logo depois), o microfone pode captar o
audio sintetizado. O guard decide, para cada transcript final candidato,
se ele e fala do usuario ou eco do texto recem falado.

Janela (GuardWindow):
- ``hold(reference)``: aberta sem limite desde a chegada da resposta
  ate o fim do playback (lead-in + fala).
- ``release()``: fecha apos ``trail_s`` para absorver o decaimento do eco.
- ``clear()``: fecha imediatamente (interrupcao aceita, restart).

Politica (ordem importa, primeira regra que casa vence):
    1. candidato normalizado com menos de 4 caracteres -> eco/ruido
    2. candidato e substring da referencia -> eco
    3. overlap de palavras >= 0.8 com <= 2 palavras unicas -> eco
    4. confidence < 0.45 e overlap >= 0.5 -> eco
    5. similaridade de caracteres (LCS) >= 0.82 com <= 2 palavras unicas -> eco
    6. caso contrario -> interrupcao genuina

Sem janela ativa, todo candidato e aceito incondicionalmente.
"""

from __future__ import annotations

import math
import re
import time
from typing import TYPE_CHECKING

from prosa._types import GuardDecision, GuardVerdict, GuardWindow
from prosa.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from prosa.config.session import EchoGuardConfig

logger = get_logger("session.echo_guard")

_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")

RULE_TOO_SHORT = "too_short"
RULE_SUBSTRING = "substring"
RULE_WORD_OVERLAP = "word_overlap"
RULE_LOW_CONFIDENCE = "low_confidence"
RULE_CHAR_SIMILARITY = "char_similarity"


def normalize(text: str) -> str:
    """Lower-case, sem pontuacao, espacos colapsados."""
    lowered = _PUNCTUATION_RE.sub("", text.lower()).replace("_", " ")
    return _WHITESPACE_RE.sub(" ", lowered).strip()


def word_overlap(candidate: str, reference: str) -> tuple[float, int]:
    """Overlap de palavras entre textos ja normalizados.

    Returns:
        Tupla (palavras unicas do candidato presentes na referencia / palavras
        unicas do candidato, quantidade de palavras do candidato fora da referencia).
    """
    cand_words = set(candidate.split())
    if not cand_words:
        return 0.0, 0
    ref_words = set(reference.split())
    shared = cand_words & ref_words
    return len(shared) / len(cand_words), len(cand_words - shared)


def lcs_length(a: str, b: str) -> int:
    """Comprimento da maior subsequencia comum (DP em duas linhas)."""
    if not a or not b:
        return 0
    if len(b) > len(a):
        a, b = b, a
    previous = [0] * (len(b) + 1)
    for ch_a in a:
        current = [0]
        for j, ch_b in enumerate(b, start=1):
            if ch_a == ch_b:
                current.append(previous[j - 1] + 1)
            else:
                current.append(max(previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def char_similarity(a: str, b: str) -> float:
    """Razao LCS: 2 * LCS / (len(a) + len(b)), em [0, 1]."""
    total = len(a) + len(b)
    if total == 0:
        return 1.0
    return 2.0 * lcs_length(a, b) / total


class EchoGuard:
    """Classifica transcripts candidatos contra o texto recem falado.

    Args:
        config: Thresholds das regras e duracao da janela de cauda.
        clock: Funcao que retorna timestamp monotonic (para testes deterministicos).
    """

    def __init__(
        self,
        config: EchoGuardConfig,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config
        self._clock = clock or time.monotonic
        self._window: GuardWindow | None = None

    @property
    def window(self) -> GuardWindow | None:
        return self._window

    @property
    def is_active(self) -> bool:
        return self._window is not None and self._window.is_active(self._clock())

    def hold(self, reference_text: str) -> None:
        """Abre a janela sem limite (lead-in + duracao da fala)."""
        self._window = GuardWindow(active_until=math.inf, reference_text=reference_text)

    def release(self) -> None:
        """Fim da fala: mantem a janela aberta por mais ``trail_s``."""
        if self._window is None:
            return
        self._window = GuardWindow(
            active_until=self._clock() + self._config.trail_s,
            reference_text=self._window.reference_text,
        )

    def clear(self) -> None:
        self._window = None

    def classify(self, text: str, confidence: float = 1.0) -> GuardVerdict:
        """Classifica um transcript final candidato.

        Args:
            text: Transcript final reconhecido.
            confidence: Confidence reportada pelo reconhecedor, em [0, 1].

        Returns:
            GuardVerdict com a decisao e a regra que casou (None se aceito).
        """
        if not self.is_active or self._window is None:
            return GuardVerdict(decision=GuardDecision.ACCEPT)

        verdict = self.evaluate(text, self._window.reference_text, confidence)
        if verdict.is_echo:
            logger.debug(
                "echo_discarded",
                text=text,
                rule=verdict.rule,
                overlap=round(verdict.word_overlap, 3),
                similarity=round(verdict.char_similarity, 3),
            )
        return verdict

    def evaluate(self, text: str, reference_text: str, confidence: float) -> GuardVerdict:
        """Aplica a politica de eco, ignorando o estado da janela."""
        cfg = self._config
        candidate = normalize(text)
        reference = normalize(reference_text)

        if len(candidate) < cfg.min_chars:
            return GuardVerdict(decision=GuardDecision.ECHO, rule=RULE_TOO_SHORT)

        if reference and candidate in reference:
            return GuardVerdict(decision=GuardDecision.ECHO, rule=RULE_SUBSTRING)

        overlap, unique = word_overlap(candidate, reference)
        if overlap >= cfg.overlap_threshold and unique <= cfg.max_unique_words:
            return GuardVerdict(
                decision=GuardDecision.ECHO,
                rule=RULE_WORD_OVERLAP,
                word_overlap=overlap,
                unique_words=unique,
            )

        if confidence < cfg.low_confidence and overlap >= cfg.low_confidence_overlap:
            return GuardVerdict(
                decision=GuardDecision.ECHO,
                rule=RULE_LOW_CONFIDENCE,
                word_overlap=overlap,
                unique_words=unique,
            )

        similarity = char_similarity(candidate, reference)
        if similarity >= cfg.similarity_threshold and unique <= cfg.max_unique_words:
            return GuardVerdict(
                decision=GuardDecision.ECHO,
                rule=RULE_CHAR_SIMILARITY,
                word_overlap=overlap,
                char_similarity=similarity,
                unique_words=unique,
            )

        return GuardVerdict(
            decision=GuardDecision.ACCEPT,
            word_overlap=overlap,
            char_similarity=similarity,
            unique_words=unique,
        )

"""Testes do EchoGuard.

Valida:
- Normalizacao, overlap de palavras e similaridade LCS
- Politica de eco em ordem (primeira regra vence)
- Janela: hold sem limite, release com cauda, clear
- Sem janela ativa todo candidato e aceito
"""

from __future__ import annotations

import math

import pytest

from prosa._types import GuardDecision
from prosa.config.session import EchoGuardConfig
from prosa.session.echo_guard import (
    RULE_CHAR_SIMILARITY,
    RULE_LOW_CONFIDENCE,
    RULE_SUBSTRING,
    RULE_TOO_SHORT,
    RULE_WORD_OVERLAP,
    EchoGuard,
    char_similarity,
    lcs_length,
    normalize,
    word_overlap,
)


class FakeClock:
    """Clock deterministico para testes."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


def _guard(clock: FakeClock | None = None, **overrides: float) -> EchoGuard:
    return EchoGuard(EchoGuardConfig(**overrides), clock=clock or FakeClock())


# ---------------------------------------------------------------------------
# Funcoes de similaridade
# ---------------------------------------------------------------------------


class TestNormalize:
    def test_lowercases_and_strips_punctuation(self) -> None:
        assert normalize("Hello, World!!") == "hello world"

    def test_collapses_whitespace(self) -> None:
        assert normalize("  one \t two\n three  ") == "one two three"

    def test_apostrophe_removed(self) -> None:
        assert normalize("What's the weather?") == "whats the weather"

    def test_underscore_becomes_space(self) -> None:
        assert normalize("snake_case") == "snake case"

    def test_empty(self) -> None:
        assert normalize("  ...  ") == ""


class TestWordOverlap:
    def test_full_overlap(self) -> None:
        assert word_overlap("quick brown fox", "the quick brown fox") == (1.0, 0)

    def test_partial_overlap_counts_unique_words(self) -> None:
        ratio, unique = word_overlap("whats the weather today", "the quick brown fox")
        assert ratio == pytest.approx(0.25)
        assert unique == 3

    def test_repeated_words_counted_once(self) -> None:
        ratio, unique = word_overlap("fox fox fox", "the fox")
        assert ratio == 1.0
        assert unique == 0

    def test_empty_candidate(self) -> None:
        assert word_overlap("", "anything") == (0.0, 0)


class TestCharSimilarity:
    def test_lcs_length(self) -> None:
        assert lcs_length("abcde", "ace") == 3
        assert lcs_length("ace", "abcde") == 3

    def test_lcs_empty(self) -> None:
        assert lcs_length("", "abc") == 0

    def test_identical_is_one(self) -> None:
        assert char_similarity("i can help", "i can help") == 1.0

    def test_two_typos(self) -> None:
        similarity = char_similarity("i can helb with thad", "i can help with that")
        assert similarity == pytest.approx(0.9)

    def test_one_empty_is_zero(self) -> None:
        assert char_similarity("abc", "") == 0.0

    def test_both_empty_is_one(self) -> None:
        assert char_similarity("", "") == 1.0


# ---------------------------------------------------------------------------
# Politica
# ---------------------------------------------------------------------------


class TestPolicy:
    REFERENCE = "the quick brown fox"

    def test_too_short_is_echo(self) -> None:
        verdict = _guard().evaluate("ok!", self.REFERENCE, 0.99)
        assert verdict.decision == GuardDecision.ECHO
        assert verdict.rule == RULE_TOO_SHORT

    def test_quick_brown_fox_is_echo(self) -> None:
        verdict = _guard().evaluate("quick brown fox", self.REFERENCE, 0.9)
        assert verdict.is_echo
        # Substring da referencia: a regra 2 casa antes da 3
        assert verdict.rule == RULE_SUBSTRING

    def test_weather_question_is_genuine(self) -> None:
        verdict = _guard().evaluate("what's the weather today", self.REFERENCE, 0.9)
        assert verdict.decision == GuardDecision.ACCEPT
        assert verdict.rule is None
        assert verdict.unique_words == 3

    def test_reordered_words_hit_word_overlap(self) -> None:
        verdict = _guard().evaluate("fox quick brown", self.REFERENCE, 0.9)
        assert verdict.rule == RULE_WORD_OVERLAP
        assert verdict.word_overlap == 1.0
        assert verdict.unique_words == 0

    def test_overlap_with_too_many_unique_words_is_not_rule_three(self) -> None:
        verdict = _guard().evaluate(
            "quick brown fox jumps over lazy dogs", self.REFERENCE, 0.9
        )
        assert verdict.decision == GuardDecision.ACCEPT

    def test_help_with_that_low_confidence_is_echo(self) -> None:
        verdict = _guard().evaluate("help with that", "I can help with that", 0.3)
        assert verdict.is_echo

    def test_low_confidence_rule(self) -> None:
        verdict = _guard().evaluate("help with that one right now", "I can help with that", 0.3)
        assert verdict.rule == RULE_LOW_CONFIDENCE
        assert verdict.word_overlap == pytest.approx(0.5)

    def test_same_candidate_confident_is_genuine(self) -> None:
        verdict = _guard().evaluate("help with that one right now", "I can help with that", 0.9)
        assert verdict.decision == GuardDecision.ACCEPT

    def test_char_similarity_rule(self) -> None:
        verdict = _guard().evaluate("i can helb with thad", "I can help with that", 0.9)
        assert verdict.rule == RULE_CHAR_SIMILARITY
        assert verdict.char_similarity == pytest.approx(0.9)
        assert verdict.unique_words == 2

    def test_thresholds_are_configurable(self) -> None:
        guard = _guard(min_chars=2)
        verdict = guard.evaluate("ok", "hello there", 0.9)
        assert verdict.decision == GuardDecision.ACCEPT

    def test_punctuation_does_not_defeat_substring(self) -> None:
        verdict = _guard().evaluate("Quick, brown... FOX!", self.REFERENCE, 0.9)
        assert verdict.rule == RULE_SUBSTRING


# ---------------------------------------------------------------------------
# Janela
# ---------------------------------------------------------------------------


class TestGuardWindow:
    def test_no_window_accepts_everything(self) -> None:
        guard = _guard()
        verdict = guard.classify("quick brown fox", 0.9)
        assert verdict.decision == GuardDecision.ACCEPT
        assert guard.is_active is False

    def test_hold_opens_unbounded_window(self) -> None:
        guard = _guard()
        guard.hold("the quick brown fox")
        assert guard.is_active is True
        assert guard.window is not None
        assert math.isinf(guard.window.active_until)
        assert guard.classify("quick brown fox", 0.9).is_echo

    def test_release_keeps_window_for_trail(self) -> None:
        clock = FakeClock()
        guard = _guard(clock)
        guard.hold("the quick brown fox")
        guard.release()

        clock.advance(1.4)
        assert guard.classify("quick brown fox", 0.9).is_echo

        clock.advance(0.2)
        assert guard.is_active is False
        assert guard.classify("quick brown fox", 0.9).decision == GuardDecision.ACCEPT

    def test_custom_trail(self) -> None:
        clock = FakeClock()
        guard = _guard(clock, trail_s=3.0)
        guard.hold("hello")
        guard.release()
        clock.advance(2.5)
        assert guard.is_active is True

    def test_clear_closes_immediately(self) -> None:
        guard = _guard()
        guard.hold("the quick brown fox")
        guard.clear()
        assert guard.window is None
        assert guard.classify("quick brown fox", 0.9).decision == GuardDecision.ACCEPT

    def test_release_without_hold_is_noop(self) -> None:
        guard = _guard()
        guard.release()
        assert guard.window is None

    def test_genuine_input_inside_window_is_accepted(self) -> None:
        guard = _guard()
        guard.hold("the quick brown fox")
        verdict = guard.classify("what's the weather today", 0.9)
        assert verdict.decision == GuardDecision.ACCEPT

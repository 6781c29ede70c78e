"""Testes do RecognitionAdapter.

Valida:
- Apenas transcripts finais nao vazios sobem ao controller
- Restart automatico apos fim de segmento com backoff
- Orcamento de restarts e reset por execucao estavel
- stop() intencional nunca gera restart; eventos obsoletos sao descartados
- Falhas de start viram UnsupportedEngineError / RecognitionFatalError
"""

from __future__ import annotations

from typing import Any

import pytest

from prosa._types import Utterance
from prosa.config.session import RecognitionConfig
from prosa.exceptions import RecognitionFatalError, UnsupportedEngineError
from prosa.recognition.adapter import RecognitionAdapter


class _Sink:
    def __init__(self) -> None:
        self.finals: list[Utterance] = []
        self.fatals: list[RecognitionFatalError] = []

    async def on_final(self, utterance: Utterance) -> None:
        self.finals.append(utterance)

    async def on_fatal(self, error: RecognitionFatalError) -> None:
        self.fatals.append(error)


def _adapter(engine: Any, clock: Any, sink: _Sink, **overrides: Any) -> RecognitionAdapter:
    config = RecognitionConfig(restart_backoff_s=0.0, **overrides)
    return RecognitionAdapter(
        engine, config, on_final=sink.on_final, on_fatal=sink.on_fatal, clock=clock
    )


class TestStart:
    async def test_start_uses_locale(self, engine: Any, clock: Any) -> None:
        adapter = _adapter(engine, clock, _Sink(), locale="en-AU")
        await adapter.start()
        assert engine.locale == "en-AU"
        assert adapter.is_running is True
        assert adapter.wants_listening is True

    async def test_start_is_idempotent(self, engine: Any, clock: Any) -> None:
        adapter = _adapter(engine, clock, _Sink())
        await adapter.start()
        await adapter.start()
        assert engine.start_calls == 1

    async def test_unsupported_engine(self, engine: Any, clock: Any) -> None:
        engine.supported = False
        adapter = _adapter(engine, clock, _Sink())
        with pytest.raises(UnsupportedEngineError):
            await adapter.start()
        assert engine.start_calls == 0

    async def test_start_failure_is_fatal(self, engine: Any, clock: Any) -> None:
        engine.fail_next_starts = 1
        adapter = _adapter(engine, clock, _Sink())
        with pytest.raises(RecognitionFatalError):
            await adapter.start()
        assert adapter.wants_listening is False
        assert adapter.is_running is False


class TestResults:
    async def test_final_is_forwarded_trimmed(self, engine: Any, clock: Any) -> None:
        sink = _Sink()
        adapter = _adapter(engine, clock, sink)
        await adapter.start()
        await engine.emit_final("  what's the weather today  ", confidence=0.8)
        assert len(sink.finals) == 1
        assert sink.finals[0].text == "what's the weather today"
        assert sink.finals[0].confidence == 0.8
        assert sink.finals[0].captured_at == clock()

    async def test_partial_is_suppressed(self, engine: Any, clock: Any) -> None:
        sink = _Sink()
        adapter = _adapter(engine, clock, sink)
        await adapter.start()
        await engine.emit_partial("what's the")
        assert sink.finals == []

    async def test_empty_final_is_suppressed(self, engine: Any, clock: Any) -> None:
        sink = _Sink()
        adapter = _adapter(engine, clock, sink)
        await adapter.start()
        await engine.emit_final("   ")
        assert sink.finals == []

    async def test_confidence_is_clamped(self, engine: Any, clock: Any) -> None:
        sink = _Sink()
        adapter = _adapter(engine, clock, sink)
        await adapter.start()
        await engine.emit_final("hello there", confidence=1.7)
        await engine.emit_final("hello again", confidence=-0.2)
        assert [u.confidence for u in sink.finals] == [1.0, 0.0]

    async def test_results_after_stop_are_dropped(self, engine: Any, clock: Any) -> None:
        sink = _Sink()
        adapter = _adapter(engine, clock, sink)
        await adapter.start()
        await adapter.stop()
        await engine.emit_final("late result")
        assert sink.finals == []


class TestRestart:
    async def test_end_of_segment_restarts(self, engine: Any, clock: Any, until: Any) -> None:
        adapter = _adapter(engine, clock, _Sink())
        await adapter.start()
        await engine.end()
        await until(lambda: engine.start_calls == 2 and engine.running)
        assert adapter.is_running is True
        await adapter.stop()

    async def test_stop_never_restarts(self, engine: Any, clock: Any) -> None:
        adapter = _adapter(engine, clock, _Sink())
        await adapter.start()
        await adapter.stop()
        await engine.end()
        assert engine.start_calls == 1
        assert engine.stop_calls == 1

    async def test_stop_when_not_running_is_safe(self, engine: Any, clock: Any) -> None:
        adapter = _adapter(engine, clock, _Sink())
        await adapter.stop()
        assert engine.stop_calls == 0

    async def test_budget_exhaustion_is_fatal(self, engine: Any, clock: Any, until: Any) -> None:
        sink = _Sink()
        adapter = _adapter(engine, clock, sink, retry_budget=2)
        await adapter.start()

        for expected_starts in (2, 3):
            await engine.emit_error("network")
            await engine.end()
            await until(lambda n=expected_starts: engine.start_calls == n and engine.running)

        await engine.emit_error("network")
        await engine.end()

        assert len(sink.fatals) == 1
        assert sink.fatals[0].attempts == 3
        assert "network" in sink.fatals[0].reason
        assert adapter.wants_listening is False
        assert engine.start_calls == 3

    async def test_result_resets_budget(self, engine: Any, clock: Any, until: Any) -> None:
        sink = _Sink()
        adapter = _adapter(engine, clock, sink, retry_budget=1)
        await adapter.start()

        await engine.end()
        await until(lambda: engine.start_calls == 2 and engine.running)
        assert adapter.consecutive_failures == 1

        await engine.emit_partial("hel")
        assert adapter.consecutive_failures == 0

        await engine.end()
        await until(lambda: engine.start_calls == 3 and engine.running)
        assert sink.fatals == []
        await adapter.stop()

    async def test_stable_run_resets_budget(self, engine: Any, clock: Any, until: Any) -> None:
        sink = _Sink()
        adapter = _adapter(engine, clock, sink, retry_budget=1, stable_run_s=10.0)
        await adapter.start()

        await engine.end()
        await until(lambda: engine.start_calls == 2 and engine.running)

        clock.advance(10.0)
        await engine.end()
        await until(lambda: engine.start_calls == 3 and engine.running)
        assert sink.fatals == []
        assert adapter.consecutive_failures == 1
        await adapter.stop()

    async def test_failed_restart_consumes_budget(
        self, engine: Any, clock: Any, until: Any
    ) -> None:
        sink = _Sink()
        adapter = _adapter(engine, clock, sink, retry_budget=2)
        await adapter.start()

        engine.fail_next_starts = 5
        await engine.end()
        await until(lambda: len(sink.fatals) == 1)
        assert sink.fatals[0].attempts == 3
        assert "audio-capture" in sink.fatals[0].reason

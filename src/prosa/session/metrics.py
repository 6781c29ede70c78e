"""Metricas Prometheus da sessao de voz.

Metricas sao opcionais: se prometheus_client nao estiver instalado,
o modulo exporta None para cada metrica e o codigo consumidor deve
verificar antes de usar.

Metricas definidas:
- prosa_turns_total: Turnos concluidos por resultado (ok, relay_error, network_error, stale)
- prosa_relay_latency_seconds: Latencia do Chat Relay (send)
- prosa_synthesis_fallbacks_total: Falhas de provider recuperadas pelo proximo da lista
- prosa_echo_discards_total: Transcripts descartados pelo EchoGuard, por regra
- prosa_recognition_restarts_total: Restarts automaticos do reconhecimento
- prosa_idle_timeouts_total: Mic desligado pelo idle watchdog
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prometheus_client import Counter, Histogram

try:
    from prometheus_client import Counter as _Counter
    from prometheus_client import Histogram as _Histogram

    turns_total: Counter | None = _Counter(
        "prosa_turns_total",
        "Conversation turns by outcome",
        ["outcome"],
    )

    relay_latency_seconds: Histogram | None = _Histogram(
        "prosa_relay_latency_seconds",
        "Latency of Chat Relay send requests",
        buckets=(0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 20.0),
    )

    synthesis_fallbacks_total: Counter | None = _Counter(
        "prosa_synthesis_fallbacks_total",
        "Synthesis provider failures recovered by the next provider",
        ["provider"],
    )

    echo_discards_total: Counter | None = _Counter(
        "prosa_echo_discards_total",
        "Transcripts discarded as echo by guard rule",
        ["rule"],
    )

    recognition_restarts_total: Counter | None = _Counter(
        "prosa_recognition_restarts_total",
        "Automatic recognition engine restarts",
    )

    idle_timeouts_total: Counter | None = _Counter(
        "prosa_idle_timeouts_total",
        "Microphone turned off by the idle watchdog",
    )

    HAS_METRICS = True

except ImportError:
    turns_total = None
    relay_latency_seconds = None
    synthesis_fallbacks_total = None
    echo_discards_total = None
    recognition_restarts_total = None
    idle_timeouts_total = None

    HAS_METRICS = False

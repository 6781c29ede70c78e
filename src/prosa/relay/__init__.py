"""Cliente HTTP do Chat Relay (agente remoto somente texto)."""

from __future__ import annotations

from prosa.relay.client import ChatRelayClient

__all__ = ["ChatRelayClient"]

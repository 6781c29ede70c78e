"""Prosa: sessao de voz half-duplex sobre um agente de chat somente texto."""

__version__ = "0.1.0"

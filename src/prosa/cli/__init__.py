"""CLI do Prosa.

Registra todos os comandos no grupo principal.
"""

from prosa.cli.chat import chat
from prosa.cli.main import cli
from prosa.cli.say import say

__all__ = ["chat", "cli", "say"]

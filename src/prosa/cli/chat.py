"""Comando `prosa chat`: conversa por voz (e texto) no terminal.

Linhas digitadas sao enviadas como turnos do usuario. Comandos:
/mic liga/desliga o microfone, /mute alterna o audio, /restart abre
uma nova conversa, /quit encerra.
"""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

import click

from prosa._types import TurnRole
from prosa.cli.main import cli, load_config
from prosa.events import (
    ConversationClearedEvent,
    ConversationTurnEvent,
    SessionErrorEvent,
    SessionStatusEvent,
)
from prosa.logging import configure_logging

if TYPE_CHECKING:
    from prosa.config.session import VoiceSessionConfig
    from prosa.events import SessionEvent
    from prosa.session.controller import VoiceSessionController

_HELP = "Comandos: /mic /mute /restart /quit. Qualquer outro texto e enviado ao agente."


def apply_overrides(
    config: VoiceSessionConfig,
    *,
    relay_url: str | None = None,
    speak_url: str | None = None,
    realtime_url: str | None = None,
    autostart_mic: bool | None = None,
    barge_in: bool | None = None,
) -> VoiceSessionConfig:
    """Aplica opcoes da linha de comando (ou PROSA_* env) sobre o prosa.yaml."""
    updates: dict[str, object] = {}
    if relay_url:
        updates["relay"] = config.relay.model_copy(update={"base_url": relay_url.rstrip("/")})
    if speak_url:
        updates["synthesis"] = config.synthesis.model_copy(update={"speak_url": speak_url})
    if realtime_url:
        updates["recognition"] = config.recognition.model_copy(
            update={"realtime_url": realtime_url}
        )
    if autostart_mic is not None:
        updates["autostart_mic"] = autostart_mic
    if barge_in is not None:
        updates["barge_in"] = barge_in
    return config.model_copy(update=updates) if updates else config


def render_event(event: SessionEvent) -> str | None:
    """Linha de terminal para um evento da sessao (None = nao exibir)."""
    if isinstance(event, ConversationTurnEvent):
        prefix = ">" if event.role == TurnRole.USER else "agente:"
        return f"{prefix} {event.content}"
    if isinstance(event, SessionStatusEvent):
        line = f"[{event.state.value}]"
        if event.reason is not None:
            line += f" ({event.reason.value})"
        return line
    if isinstance(event, SessionErrorEvent):
        return f"[erro] {event.message}"
    if isinstance(event, ConversationClearedEvent):
        return "--- nova conversa ---"
    return None


async def _handle_line(
    controller: VoiceSessionController,
    line: str,
    pending: set[asyncio.Task[None]],
) -> bool:
    """Processa uma linha digitada. Retorna False para encerrar."""
    command = line.strip()
    if not command:
        return True

    if command == "/quit":
        return False
    if command == "/mic":
        await controller.toggle_mic()
    elif command == "/mute":
        muted = controller.toggle_mute()
        click.echo("[mudo]" if muted else "[som ligado]")
    elif command == "/restart":
        await controller.restart()
    elif command.startswith("/"):
        click.echo(_HELP)
    else:
        # Turno em background: o usuario pode interromper a fala digitando
        task = asyncio.create_task(controller.submit_user_text(command))
        pending.add(task)
        task.add_done_callback(pending.discard)
    return True


async def _chat(config: VoiceSessionConfig) -> None:
    from prosa.session.controller import VoiceSessionController

    async def on_event(event: SessionEvent) -> None:
        line = render_event(event)
        if line is not None:
            click.echo(line)

    controller = VoiceSessionController.from_config(config, on_event=on_event)
    for turn in controller.history:
        click.echo(f"agente: {turn.content}")
    click.echo(_HELP)

    pending: set[asyncio.Task[None]] = set()
    await controller.start()
    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            if not await _handle_line(controller, line, pending):
                break
    finally:
        await controller.dispose()
        for task in list(pending):
            task.cancel()

    click.echo("Sessao encerrada.")


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    envvar="PROSA_CONFIG",
    default=None,
    help="Arquivo prosa.yaml.",
)
@click.option("--relay-url", envvar="PROSA_RELAY_URL", default=None, help="Base URL do Chat Relay.")
@click.option("--speak-url", envvar="PROSA_SPEAK_URL", default=None, help="Endpoint de voz neural.")
@click.option(
    "--realtime-url",
    envvar="PROSA_REALTIME_URL",
    default=None,
    help="Endpoint WebSocket de STT realtime.",
)
@click.option(
    "--mic/--no-mic",
    "autostart_mic",
    default=None,
    help="Liga o microfone ao iniciar.",
)
@click.option(
    "--barge-in/--no-barge-in",
    default=None,
    help="Mantem o reconhecimento ativo enquanto o agente fala.",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default="console",
    show_default=True,
    help="Formato de log.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="WARNING",
    show_default=True,
    help="Nivel de log.",
)
def chat(
    config_path: str | None,
    relay_url: str | None,
    speak_url: str | None,
    realtime_url: str | None,
    autostart_mic: bool | None,
    barge_in: bool | None,
    log_format: str,
    log_level: str,
) -> None:
    """Conversa com o agente por voz ou texto."""
    configure_logging(log_format=log_format, level=log_level)
    config = apply_overrides(
        load_config(config_path),
        relay_url=relay_url,
        speak_url=speak_url,
        realtime_url=realtime_url,
        autostart_mic=autostart_mic,
        barge_in=barge_in,
    )
    try:
        asyncio.run(_chat(config))
    except KeyboardInterrupt:
        click.echo("\nSessao encerrada.")

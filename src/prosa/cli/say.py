"""Comando `prosa say`: fala uma linha pela cadeia de providers."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

import click

from prosa.cli.main import cli, load_config
from prosa.exceptions import SynthesisExhaustedError
from prosa.logging import configure_logging

if TYPE_CHECKING:
    from prosa._types import SpeakRequest
    from prosa.config.session import SynthesisConfig


async def _say(text: str, config: SynthesisConfig) -> SpeakRequest:
    from prosa.synthesis.interface import SynthesisProvider
    from prosa.synthesis.local import LocalSpeechProvider
    from prosa.synthesis.player import SynthesisPlayer
    from prosa.synthesis.remote import RemoteSpeechProvider

    providers: list[SynthesisProvider] = [RemoteSpeechProvider(config)]
    if config.enable_fallback:
        providers.append(LocalSpeechProvider.from_config(config))

    player = SynthesisPlayer(providers, amplitude_interval_s=config.amplitude_interval_s)
    try:
        return await player.speak(text)
    finally:
        await player.aclose()


@cli.command()
@click.argument("text")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    envvar="PROSA_CONFIG",
    default=None,
    help="Arquivo prosa.yaml.",
)
@click.option("--speak-url", envvar="PROSA_SPEAK_URL", default=None, help="Endpoint de voz neural.")
@click.option("--voice", default=None, help="Voz do provider remoto (ex: en-AU-WilliamNeural).")
@click.option(
    "--no-fallback",
    is_flag=True,
    default=False,
    help="Nao usa a sintese local se o provider remoto falhar.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="WARNING",
    show_default=True,
    help="Nivel de log.",
)
def say(
    text: str,
    config_path: str | None,
    speak_url: str | None,
    voice: str | None,
    no_fallback: bool,
    log_level: str,
) -> None:
    """Fala TEXT (teste dos providers de voz)."""
    configure_logging(level=log_level)
    synthesis = load_config(config_path).synthesis

    updates: dict[str, object] = {}
    if speak_url:
        updates["speak_url"] = speak_url
    if voice:
        updates["voice"] = voice
    if no_fallback:
        updates["enable_fallback"] = False
    if updates:
        synthesis = synthesis.model_copy(update=updates)

    try:
        request = asyncio.run(_say(text, synthesis))
    except SynthesisExhaustedError as exc:
        click.echo(f"Erro: {exc}", err=True)
        for failure in exc.failures:
            click.echo(f"  {failure.provider}: {failure.reason}", err=True)
        sys.exit(1)

    if request.skipped:
        click.echo("Nada para falar.")
        return
    provider = request.provider_used.value if request.provider_used else "?"
    duration_s = (request.ended_at or request.started_at) - request.started_at
    click.echo(f"Falado via {provider} em {duration_s:.2f}s")

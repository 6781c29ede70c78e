"""Grupo principal de comandos CLI do Prosa."""

from __future__ import annotations

import sys

import click

import prosa
from prosa.config.session import VoiceSessionConfig
from prosa.exceptions import ConfigError


@click.group()
@click.version_option(version=prosa.__version__, prog_name="prosa")
def cli() -> None:
    """Prosa: conversa falada com um agente remoto de texto."""


def load_config(config_path: str | None) -> VoiceSessionConfig:
    """Carrega prosa.yaml ou defaults. Sai com codigo 1 em erro de configuracao."""
    if config_path is None:
        return VoiceSessionConfig()
    try:
        return VoiceSessionConfig.from_yaml_path(config_path)
    except ConfigError as exc:
        click.echo(f"Erro: {exc}", err=True)
        sys.exit(1)

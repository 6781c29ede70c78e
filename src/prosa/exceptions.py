"""Exceptions tipadas do Prosa.

Hierarquia:
    ProsaError (base)
    +-- ConfigError
    |   +-- ConfigParseError
    |   +-- ConfigValidationError
    +-- SessionError
    |   +-- InvalidTransitionError
    |   +-- SessionDisposedError
    +-- MicrophoneError
    |   +-- PermissionDeniedError
    +-- RecognitionError
    |   +-- UnsupportedEngineError
    |   +-- RecognitionTransientError
    |   +-- RecognitionFatalError
    +-- RelayError
    |   +-- RelayNetworkError
    +-- SynthesisError
        +-- SynthesisProviderError
        +-- SynthesisExhaustedError
        +-- AudioFormatError
"""

from __future__ import annotations


class ProsaError(Exception):
    """Base para todas as exceptions do Prosa."""


# --- Configuracao ---


class ConfigError(ProsaError):
    """Erro de configuracao da sessao."""


class ConfigParseError(ConfigError):
    """Falha ao parsear arquivo prosa.yaml."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Falha ao parsear configuracao '{path}': {reason}")


class ConfigValidationError(ConfigError):
    """Configuracao invalida (tipos errados, valores fora de faixa)."""

    def __init__(self, path: str, errors: list[str]) -> None:
        self.path = path
        self.errors = errors
        detail = "; ".join(errors)
        super().__init__(f"Configuracao '{path}' invalida: {detail}")


# --- Sessao ---


class SessionError(ProsaError):
    """Erro relacionado a sessao de voz."""


class InvalidTransitionError(SessionError):
    """Transicao de estado invalida na maquina de estados da sessao."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Transicao invalida: {from_state} -> {to_state}")


class SessionDisposedError(SessionError):
    """Operacao tentada em sessao ja descartada."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Sessao ja descartada, operacao '{operation}' ignorada")


# --- Microfone ---


class MicrophoneError(ProsaError):
    """Erro relacionado ao dispositivo de captura."""


class PermissionDeniedError(MicrophoneError):
    """Permissao de microfone negada ou nenhum dispositivo de entrada."""

    def __init__(self, reason: str = "permissao negada") -> None:
        self.reason = reason
        super().__init__(f"Microfone indisponivel: {reason}")


# --- Reconhecimento ---


class RecognitionError(ProsaError):
    """Erro relacionado ao reconhecimento de fala."""


class UnsupportedEngineError(RecognitionError):
    """Plataforma nao possui engine de reconhecimento."""

    def __init__(self, engine: str, reason: str = "") -> None:
        self.engine = engine
        self.reason = reason
        msg = f"Engine de reconhecimento '{engine}' nao suportada"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class RecognitionTransientError(RecognitionError):
    """Falha transitoria da engine (rede, no-speech, audio-capture)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Falha transitoria no reconhecimento: {reason}")


class RecognitionFatalError(RecognitionError):
    """Orcamento de restarts esgotado ou falha irrecuperavel."""

    def __init__(self, attempts: int, reason: str = "") -> None:
        self.attempts = attempts
        self.reason = reason
        msg = f"Reconhecimento falhou apos {attempts} tentativas"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


# --- Chat Relay ---


class RelayError(ProsaError):
    """Resposta invalida ou de erro do Chat Relay."""

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        self.reason = reason
        self.status_code = status_code
        msg = f"Chat Relay falhou: {reason}"
        if status_code is not None:
            msg += f" (HTTP {status_code})"
        super().__init__(msg)


class RelayNetworkError(RelayError):
    """Falha de rede ou timeout ao falar com o Chat Relay."""


# --- Sintese ---


class SynthesisError(ProsaError):
    """Erro relacionado a sintese de voz (TTS)."""


class SynthesisProviderError(SynthesisError):
    """Um provider de sintese falhou (recuperado pelo proximo da lista)."""

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"Provider de sintese '{provider}' falhou: {reason}")


class SynthesisExhaustedError(SynthesisError):
    """Todos os providers de sintese falharam."""

    def __init__(self, failures: list[SynthesisProviderError]) -> None:
        self.failures = failures
        names = ", ".join(f.provider for f in failures) or "nenhum"
        super().__init__(f"Todos os providers de sintese falharam ({names})")


class AudioFormatError(SynthesisError):
    """Formato de audio nao suportado ou invalido."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Formato de audio invalido: {detail}")

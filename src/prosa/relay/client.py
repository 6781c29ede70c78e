"""ChatRelayClient: fronteira request/response com o agente remoto.

Contrato HTTP:
    GET  {base}/start                       -> {"ok": true, "sessionId": "..."}
    POST {base}/send {sessionId, content}   -> {"ok": true, "reply": "..."}

``chatId`` e aceito como alias legado de ``sessionId`` (e enviado junto no
send). Non-2xx, ``ok: false``, JSON invalido ou campos ausentes levantam
RelayError. Erro de transporte ou timeout levanta RelayNetworkError.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import httpx

from prosa.exceptions import RelayError, RelayNetworkError
from prosa.logging import get_logger
from prosa.session.metrics import HAS_METRICS, relay_latency_seconds

if TYPE_CHECKING:
    from prosa.config.session import RelayConfig

logger = get_logger("relay.client")


class ChatRelayClient:
    """Cliente async do Chat Relay.

    Args:
        config: Base URL, paths e timeout.
        client: httpx.AsyncClient injetado (testes). Se None, cria um proprio.
    """

    def __init__(self, config: RelayConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None

    @property
    def base_url(self) -> str:
        return self._config.base_url

    async def start_session(self) -> str:
        """Abre uma conversa no agente.

        Returns:
            ChatSessionId opaco.

        Raises:
            RelayError: Resposta de erro ou malformada.
            RelayNetworkError: Falha de transporte ou timeout.
        """
        body = await self._request("GET", self._config.start_path)
        session_id = body.get("sessionId") or body.get("chatId")
        if not isinstance(session_id, str) or not session_id:
            raise RelayError("resposta sem sessionId")

        logger.info("relay_session_started", session_id=session_id)
        return session_id

    async def send(self, session_id: str, content: str) -> str:
        """Envia um turno do usuario e retorna a resposta do agente.

        Raises:
            RelayError: Resposta de erro ou malformada.
            RelayNetworkError: Falha de transporte ou timeout.
        """
        payload = {"sessionId": session_id, "chatId": session_id, "content": content}

        start = time.monotonic()
        try:
            body = await self._request("POST", self._config.send_path, json=payload)
        finally:
            if HAS_METRICS and relay_latency_seconds is not None:
                relay_latency_seconds.observe(time.monotonic() - start)

        reply = body.get("reply")
        if not isinstance(reply, str):
            raise RelayError("resposta sem reply")
        return reply

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json: Any = None) -> dict[str, Any]:
        if self._client is None:
            self._client = httpx.AsyncClient()

        url = f"{self._config.base_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                json=json,
                timeout=self._config.timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise RelayNetworkError(f"timeout apos {self._config.timeout_s}s") from exc
        except httpx.HTTPError as exc:
            raise RelayNetworkError(f"erro de transporte: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            error = body.get("error") if isinstance(body, dict) else None
            logger.warning("relay_failed", url=url, status_code=response.status_code, error=error)
            raise RelayError(str(error or "resposta de erro"), status_code=response.status_code)

        if not isinstance(body, dict):
            raise RelayError("corpo nao e um objeto JSON", status_code=response.status_code)

        if body.get("ok") is not True:
            error = body.get("error", "ok=false")
            logger.warning("relay_failed", url=url, status_code=response.status_code, error=error)
            raise RelayError(str(error), status_code=response.status_code)

        return body

"""
Painel C4U — Cliente HTTP da API Funifier

Endpoints /v3/database/* usam Basic Auth (token de app);
os demais usam o Bearer token da sessão, quando houver.
Falhas transitórias (conexão, timeout, 5xx, 429) são repetidas com backoff.
"""
import asyncio
import logging
from typing import Any, Optional

import httpx

from gamificacao.config import DEFAULT_BASE_URL, Settings

log = logging.getLogger(__name__)

RETRY_STATUS = {429, 500, 502, 503, 504}
USER_AGENT = "PainelC4U/1.0 (gamificacao)"


class FunifierApiError(Exception):
    """Erro de comunicação com o Funifier. `message` é pronta para o usuário."""

    def __init__(self, status: int, message: str, endpoint: str = ""):
        super().__init__(message)
        self.status = status
        self.message = message
        self.endpoint = endpoint


def error_message(status: int, detail: str = "") -> str:
    if status == 0:
        return "Erro de conexão. Verifique sua internet."
    if status == 401:
        return "Sessão expirada. Faça login novamente."
    if status == 403:
        return "Acesso negado."
    if status == 404:
        return "Recurso não encontrado."
    if status in (500, 502, 503):
        return "Erro no servidor. Tente novamente mais tarde."
    return f"Erro {status}: {detail}".rstrip(": ")


class FunifierClient:
    """
    Uso:
        async with FunifierClient.from_settings(load_settings()) as api:
            rows = await api.aggregate("action_log", [{"$match": {...}}])
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        basic_token: str = "",
        bearer_token: str = "",
        timeout: float = 15.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.basic_token = basic_token
        self.bearer_token = bearer_token
        self.retries = max(0, retries)
        self.retry_delay = retry_delay
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "FunifierClient":
        return cls(
            base_url=settings.base_url,
            basic_token=settings.basic_token,
            bearer_token=settings.bearer_token,
            timeout=settings.http_timeout,
            retries=settings.http_retries,
            transport=transport,
        )

    async def __aenter__(self) -> "FunifierClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def _headers(self, endpoint: str) -> dict[str, str]:
        if "/database" in endpoint:
            return {"Authorization": f"Basic {self.basic_token}"} if self.basic_token else {}
        if self.bearer_token:
            return {"Authorization": f"Bearer {self.bearer_token}"}
        return {}

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        body: Any = None,
    ) -> Any:
        last_error: Optional[FunifierApiError] = None

        for attempt in range(self.retries + 1):
            if attempt:
                await asyncio.sleep(self.retry_delay * attempt)
            try:
                resp = await self.client.request(
                    method, endpoint, params=params, json=body, headers=self._headers(endpoint)
                )
            except httpx.TransportError as e:
                # timeout, DNS, conexão recusada
                log.warning("%s %s falhou (tentativa %d): %s", method, endpoint, attempt + 1, e)
                last_error = FunifierApiError(0, error_message(0), endpoint)
                continue
            except httpx.RequestError as e:
                # redirecionamento em loop, corpo mal codificado
                log.error("%s %s falhou: %s", method, endpoint, e)
                raise FunifierApiError(0, error_message(0), endpoint) from e

            if resp.status_code in RETRY_STATUS:
                log.warning("%s %s: HTTP %d (tentativa %d)", method, endpoint, resp.status_code, attempt + 1)
                last_error = FunifierApiError(
                    resp.status_code, error_message(resp.status_code, resp.reason_phrase), endpoint
                )
                continue

            if resp.is_error:
                log.error("%s %s: HTTP %d", method, endpoint, resp.status_code)
                raise FunifierApiError(
                    resp.status_code, error_message(resp.status_code, resp.reason_phrase), endpoint
                )

            try:
                return resp.json()
            except ValueError:
                raise FunifierApiError(
                    resp.status_code, "Resposta inválida do servidor de gamificação.", endpoint
                )

        log.error("Funifier API: %s (%s)", last_error.message, endpoint)
        raise last_error

    async def get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, body: Any) -> Any:
        return await self.request("POST", endpoint, body=body)

    async def aggregate(self, collection: str, pipeline: list[dict]) -> Any:
        return await self.request(
            "POST", f"/v3/database/{collection}/aggregate", params={"strict": "true"}, body=pipeline
        )

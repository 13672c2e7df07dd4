from __future__ import annotations

from typing import Any

import httpx

import config
from errors import ApiError
from observability import get_logger

log = get_logger("client")


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("detail", "message", "title", "error"):
            val = body.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
    return f"HTTP {resp.status_code}"


class ApiClient:
    """
    Async JSON client for the backend API.

    Non-2xx responses and transport failures raise ``ApiError``; a transport
    failure has ``status_code == 0``. Retries/timeouts beyond the httpx
    timeout are left to the caller.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json", **(headers or {})},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            log.warning("api_transport_error", method=method, path=path, error=str(e))
            raise ApiError(0, f"No se pudo conectar con el servidor: {e}") from e

        if resp.status_code >= 400:
            message = _error_message(resp)
            log.warning("api_error", method=method, path=path, status=resp.status_code, message=message)
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            raise ApiError(resp.status_code, message, payload)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            # Un proxy puede contestar 200 con HTML
            log.warning(
                "api_invalid_body",
                method=method,
                path=path,
                status=resp.status_code,
                content_type=resp.headers.get("content-type"),
            )
            raise ApiError(resp.status_code, "Respuesta inválida del servidor") from e

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, *, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, *, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_SYMBOL_CHARS = re.compile(r"[^A-Z0-9]")


class DeployError(Exception):
    pass


@dataclass
class DeployRequest:
    bot_id: str
    name: str
    description: str
    image_url: str
    client_token: str


def derive_symbol(name: str) -> str:
    symbol = _SYMBOL_CHARS.sub("", name.upper())[:10]
    return symbol or "BOT"


def _token_address(data: dict) -> Optional[str]:
    return data.get("tokenAddress") or data.get("token_address")


class TokenDeployer:
    """Client for the token launch service that mints the token for a bot.

    The payment signature doubles as the idempotency key, so a retried or
    timed-out request can be matched to a deployment that already happened.
    """

    def __init__(
        self,
        service_url: str,
        api_key: str = "",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 90.0,
    ) -> None:
        self.service_url = service_url.rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, idempotency_key: str) -> dict[str, str]:
        headers = {"Idempotency-Key": idempotency_key}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def deploy(self, req: DeployRequest, idempotency_key: str) -> str:
        """Mint the token; returns its address."""
        if not self.service_url:
            raise DeployError("Deploy service is not configured")

        payload = {
            "bot_id": req.bot_id,
            "name": req.name,
            "symbol": derive_symbol(req.name),
            "description": req.description,
            "image_url": req.image_url,
            "client_token": req.client_token,
        }
        try:
            resp = await self._client.post(
                f"{self.service_url}/deploy",
                json=payload,
                headers=self._headers(idempotency_key),
            )
        except httpx.HTTPError as e:
            raise DeployError(f"Deploy request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            raise DeployError(data.get("error") or f"Deploy service returned {resp.status_code}")
        if not data.get("success") or not _token_address(data):
            raise DeployError(data.get("error") or "Failed to deploy token")
        return _token_address(data)

    async def find_deployment(self, idempotency_key: str) -> Optional[str]:
        """Token address of a deployment made under *idempotency_key*, if any."""
        if not self.service_url:
            raise DeployError("Deploy service is not configured")
        try:
            resp = await self._client.get(
                f"{self.service_url}/deployments/{idempotency_key}",
                headers=self._headers(idempotency_key),
            )
        except httpx.HTTPError as e:
            raise DeployError(f"Deployment lookup failed: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise DeployError(f"Deployment lookup returned {resp.status_code}")
        try:
            return _token_address(resp.json())
        except ValueError as e:
            raise DeployError("Deployment lookup returned malformed JSON") from e

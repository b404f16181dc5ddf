"""Minimal async Solana JSON-RPC client over httpx.

Only the handful of methods the payment flow and the balance gate need.
"""

import asyncio
import base64
import itertools
import logging
import time
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

_FINAL_STATUSES = {
    "processed": {"processed", "confirmed", "finalized"},
    "confirmed": {"confirmed", "finalized"},
    "finalized": {"finalized"},
}


class RPCError(Exception):
    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class ConfirmationTimeout(Exception):
    """Not confirmed in time. The transaction may still land."""


class TransactionFailed(Exception):
    """The cluster processed the transaction and reported an error."""


class SolanaRPC:
    def __init__(
        self,
        url: str,
        commitment: str = "confirmed",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.url = url
        self.commitment = commitment
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._ids = itertools.count(1)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SolanaRPC":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            resp = await self._client.post(self.url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise RPCError(f"{method}: {e}") from e
        except ValueError as e:
            raise RPCError(f"{method}: malformed JSON-RPC response") from e

        if data.get("error"):
            err = data["error"]
            raise RPCError(f"{method}: {err.get('message', err)}", err.get("code"))
        return data.get("result")

    async def get_latest_blockhash(self) -> tuple[str, int]:
        result = await self.call(
            "getLatestBlockhash", [{"commitment": self.commitment}]
        )
        value = result["value"]
        return value["blockhash"], value["lastValidBlockHeight"]

    async def get_block_height(self) -> int:
        return await self.call("getBlockHeight", [{"commitment": self.commitment}])

    async def send_transaction(
        self, raw: bytes, max_retries: Optional[int] = None
    ) -> str:
        """Submit a signed, serialized transaction and return its signature."""
        opts: dict[str, Any] = {
            "encoding": "base64",
            "skipPreflight": False,
            "preflightCommitment": self.commitment,
        }
        if max_retries is not None:
            opts["maxRetries"] = max_retries
        encoded = base64.b64encode(raw).decode("ascii")
        return await self.call("sendTransaction", [encoded, opts])

    async def get_signature_status(self, signature: str) -> Optional[dict]:
        result = await self.call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        statuses = result.get("value") or [None]
        return statuses[0]

    async def confirm_transaction(
        self,
        signature: str,
        last_valid_block_height: Optional[int] = None,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
    ) -> dict:
        """Poll until *signature* reaches the client commitment.

        Raises TransactionFailed if the cluster reports an error, and
        ConfirmationTimeout once *timeout* elapses or the blockhash expires.
        """
        wanted = _FINAL_STATUSES.get(self.commitment, _FINAL_STATUSES["confirmed"])
        deadline = time.monotonic() + timeout
        while True:
            status = await self.get_signature_status(signature)
            if status:
                if status.get("err"):
                    raise TransactionFailed(f"{signature}: {status['err']}")
                if status.get("confirmationStatus") in wanted:
                    return status

            if last_valid_block_height is not None:
                height = await self.get_block_height()
                if height > last_valid_block_height:
                    raise ConfirmationTimeout(f"{signature}: blockhash expired")

            if time.monotonic() >= deadline:
                raise ConfirmationTimeout(
                    f"{signature}: not confirmed after {timeout:.0f}s"
                )
            await asyncio.sleep(poll_interval)

    async def get_token_balance(self, owner: str, mint: str) -> float:
        """Sum of the UI amounts of all *owner* token accounts for *mint*."""
        result = await self.call(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed"}],
        )
        total = 0.0
        for account in result.get("value", []):
            try:
                amount = account["account"]["data"]["parsed"]["info"]["tokenAmount"]
            except (KeyError, TypeError):
                continue
            total += float(amount.get("uiAmount") or 0)
        return total

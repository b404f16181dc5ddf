import asyncio
import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from .config import get_config
from .deploy import storage as token_storage
from .deploy.models import DeployedToken

logger = logging.getLogger(__name__)


class ListedToken(BaseModel):
    id: str
    token_address: str
    name: str
    image_url: str = ""
    landing_page_url: str = ""
    created_at: str
    is_dex_paid: bool = False


async def check_dex_paid(client: httpx.AsyncClient, token_address: str) -> bool:
    """True if DEX Screener lists an approved, paid token profile order."""
    url = f"{get_config().listings.dexscreener_url}/{token_address}"
    try:
        resp = await client.get(url)
        if resp.status_code != 200:
            return False
        orders = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("DEX paid lookup failed for %s: %s", token_address, e)
        return False

    if not isinstance(orders, list):
        return False
    return any(
        isinstance(order, dict)
        and order.get("type") == "tokenProfile"
        and order.get("status") == "approved"
        and bool(order.get("paymentTimestamp"))
        for order in orders
    )


async def annotate_tokens(
    tokens: list[DeployedToken], client: Optional[httpx.AsyncClient] = None
) -> list[ListedToken]:
    """Attach the paid-listing flag; lookups run concurrently."""
    async def _run(c: httpx.AsyncClient) -> list[bool]:
        return await asyncio.gather(*(check_dex_paid(c, t.token_address) for t in tokens))

    if client is None:
        async with httpx.AsyncClient(timeout=10) as c:
            paid = await _run(c)
    else:
        paid = await _run(client)

    return [
        ListedToken(
            id=t.id,
            token_address=t.token_address,
            name=t.name,
            image_url=t.image_url,
            landing_page_url=t.landing_page_url,
            created_at=t.created_at,
            is_dex_paid=is_paid,
        )
        for t, is_paid in zip(tokens, paid)
    ]


def sort_tokens(tokens: list[ListedToken]) -> list[ListedToken]:
    """Paid listings first, newest first within each group."""
    newest_first = sorted(tokens, key=lambda t: t.created_at, reverse=True)
    return sorted(newest_first, key=lambda t: not t.is_dex_paid)


async def latest_tokens(client: Optional[httpx.AsyncClient] = None) -> list[ListedToken]:
    limit = get_config().listings.latest_tokens_limit
    tokens = token_storage.list_tokens(limit=limit)
    return sort_tokens(await annotate_tokens(tokens, client))

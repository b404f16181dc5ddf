import logging
from typing import Optional

from ..config import get_config
from .rpc import RPCError, SolanaRPC

logger = logging.getLogger(__name__)


def rpc_from_config() -> SolanaRPC:
    solana = get_config().solana
    return SolanaRPC(solana.rpc_url, commitment=solana.commitment)


async def get_gate_balance(wallet: str, rpc: Optional[SolanaRPC] = None) -> float:
    """Balance of the gate token held by *wallet*."""
    solana = get_config().solana
    if rpc is not None:
        return await rpc.get_token_balance(wallet, solana.gate_token_mint)
    async with rpc_from_config() as client:
        return await client.get_token_balance(wallet, solana.gate_token_mint)


async def has_uncensored_access(
    wallet: Optional[str], rpc: Optional[SolanaRPC] = None
) -> bool:
    """True when *wallet* holds at least the uncensored-mode threshold.

    No wallet, or a failed balance lookup, counts as not eligible.
    """
    if not wallet:
        return False
    try:
        balance = await get_gate_balance(wallet, rpc)
    except RPCError as e:
        logger.warning("Balance check failed for %s: %s", wallet, e)
        return False
    return balance >= get_config().solana.uncensored_min_balance

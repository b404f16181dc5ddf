"""Pay-to-deploy flow for a bot token.

prepare():  build the unsigned fee transfer (wallet -> treasury) for the
            browser wallet to sign.
submit():   verify the signed transfer, send it, wait for confirmation,
            ask the launch service to mint the token and, if that fails
            after the payment landed, send one refund from the treasury.

States: awaiting-signature -> payment-submitted -> payment-confirmed ->
deploy-requested -> deploy-succeeded | refunded | refund-failed.
Failures before the payment lands end in ``failed`` (nothing charged) or
``payment-pending`` (confirmation timed out; no refund is sent).
"""

import base64
import binascii
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from solders.keypair import Keypair

from ..bots.models import Bot
from ..bots.storage import StorageError
from ..config import AppConfig, get_config
from ..i18n import t
from ..solana.rpc import ConfirmationTimeout, RPCError, SolanaRPC, TransactionFailed
from ..solana.transactions import (
    InvalidTransaction,
    build_unsigned_transfer,
    load_keypair,
    sign_transfer,
    verify_signed_transfer,
)
from . import storage as token_storage
from .deployer import DeployError, DeployRequest, TokenDeployer, derive_symbol
from .models import TERMINAL_STATES, DeployedToken, DeploymentSession, DeploymentState

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=1)

_sessions: dict[str, DeploymentSession] = {}


class DeploymentStateError(Exception):
    pass


def get_session(session_id: str) -> Optional[DeploymentSession]:
    return _sessions.get(session_id)


def _prune_sessions() -> None:
    cutoff = (datetime.now(timezone.utc) - SESSION_TTL).isoformat()
    stale = [
        sid for sid, s in _sessions.items()
        if s.created_at < cutoff
        and (s.state in TERMINAL_STATES or s.state == DeploymentState.AWAITING_SIGNATURE)
    ]
    for sid in stale:
        del _sessions[sid]


class DeploymentFlow:
    def __init__(
        self,
        rpc: SolanaRPC,
        deployer: TokenDeployer,
        config: Optional[AppConfig] = None,
        treasury: Optional[Keypair] = None,
    ) -> None:
        self.rpc = rpc
        self.deployer = deployer
        self.config = config or get_config()
        self.treasury = treasury
        if self.treasury is None and self.config.solana.treasury_secret_key:
            try:
                self.treasury = load_keypair(self.config.solana.treasury_secret_key)
            except InvalidTransaction:
                logger.error("Configured treasury secret key is invalid; refunds disabled")

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "DeploymentFlow":
        config = config or get_config()
        rpc = SolanaRPC(config.solana.rpc_url, commitment=config.solana.commitment)
        deployer = TokenDeployer(
            config.deploy.service_url,
            api_key=config.deploy.api_key,
            timeout=config.deploy.timeout,
        )
        return cls(rpc, deployer, config=config)

    async def close(self) -> None:
        await self.rpc.close()
        await self.deployer.close()

    def _msg(self, key: str) -> str:
        return t(key, self.config.language)

    def _advance(self, session: DeploymentSession, state: DeploymentState) -> None:
        logger.info("Deployment %s: %s -> %s", session.id, session.state.value, state.value)
        session.state = state
        session.updated_at = datetime.now(timezone.utc).isoformat()

    async def prepare(self, bot: Bot, client_token: str, payer: str) -> DeploymentSession:
        """Build the fee transfer for *payer* to sign."""
        solana = self.config.solana
        blockhash, last_valid = await self.rpc.get_latest_blockhash()
        unsigned = build_unsigned_transfer(
            payer, solana.treasury_address, solana.payment_lamports, blockhash
        )
        session = DeploymentSession(
            bot_id=bot.id,
            bot_name=bot.name,
            bot_image_url=bot.image_url,
            bot_description=f"{bot.personality} {bot.background}".strip(),
            client_token=client_token,
            payer=payer,
            treasury=solana.treasury_address,
            lamports=solana.payment_lamports,
            blockhash=blockhash,
            last_valid_block_height=last_valid,
            unsigned_transaction=base64.b64encode(unsigned).decode("ascii"),
        )
        _prune_sessions()
        _sessions[session.id] = session
        logger.info("Prepared deployment %s for bot %s", session.id, bot.id)
        return session

    def _fail(self, session: DeploymentSession, error: str, key: str = "deploy_failed") -> DeploymentSession:
        session.error = error
        session.message = self._msg(key)
        self._advance(session, DeploymentState.FAILED)
        return session

    async def submit(self, session_id: str, signed_transaction: str) -> DeploymentSession:
        """Run the payment and deployment for a signed transaction (base64)."""
        session = _sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        if session.state != DeploymentState.AWAITING_SIGNATURE:
            raise DeploymentStateError(f"Deployment {session_id} is already {session.state.value}")
        # Single use from here on; a concurrent resubmit sees a non-waiting state
        self._advance(session, DeploymentState.PAYMENT_SUBMITTED)

        try:
            raw = base64.b64decode(signed_transaction, validate=True)
            expected = base64.b64decode(session.unsigned_transaction)
            signature = verify_signed_transfer(raw, expected)
        except (InvalidTransaction, binascii.Error, ValueError) as e:
            logger.warning("Rejected signed payment for %s: %s", session.id, e)
            return self._fail(session, str(e), "deploy_wallet_missing")

        solana = self.config.solana
        try:
            session.signature = await self.rpc.send_transaction(
                raw, max_retries=solana.send_max_retries
            )
        except RPCError as e:
            logger.error("Payment submission failed for %s: %s", session.id, e)
            return self._fail(session, str(e))
        if session.signature != signature:
            logger.warning("RPC returned signature %s, expected %s", session.signature, signature)

        try:
            await self.rpc.confirm_transaction(
                session.signature,
                last_valid_block_height=session.last_valid_block_height,
                timeout=solana.confirm_timeout,
                poll_interval=solana.confirm_poll_interval,
            )
        except TransactionFailed as e:
            logger.error("Payment %s failed on-chain: %s", session.signature, e)
            return self._fail(session, str(e))
        except (ConfirmationTimeout, RPCError) as e:
            logger.warning("Payment %s not confirmed: %s", session.signature, e)
            session.error = str(e)
            session.message = self._msg("deploy_pending")
            self._advance(session, DeploymentState.PAYMENT_PENDING)
            return session

        self._advance(session, DeploymentState.PAYMENT_CONFIRMED)
        return await self._deploy(session)

    async def _deploy(self, session: DeploymentSession) -> DeploymentSession:
        self._advance(session, DeploymentState.DEPLOY_REQUESTED)
        req = DeployRequest(
            bot_id=session.bot_id,
            name=session.bot_name,
            description=session.bot_description,
            image_url=session.bot_image_url,
            client_token=session.client_token,
        )
        try:
            token_address = await self.deployer.deploy(req, idempotency_key=session.signature)
        except DeployError as e:
            logger.error("Token deployment failed for %s: %s", session.id, e)
            session.error = str(e)
            token_address = await self._existing_deployment(session)
            if token_address is None:
                return await self._refund(session)

        return self._succeed(session, token_address)

    async def _existing_deployment(self, session: DeploymentSession) -> Optional[str]:
        """Ask the launch service whether the failed call actually went through."""
        try:
            return await self.deployer.find_deployment(session.signature)
        except DeployError as e:
            logger.warning("Could not verify deployment for %s: %s", session.id, e)
            return None

    def _succeed(self, session: DeploymentSession, token_address: str) -> DeploymentSession:
        landing = f"{self.config.deploy.landing_page_prefix}{token_address}"
        try:
            token_storage.record_token(
                DeployedToken(
                    token_address=token_address,
                    bot_id=session.bot_id,
                    name=session.bot_name,
                    symbol=derive_symbol(session.bot_name),
                    image_url=session.bot_image_url,
                    client_token=session.client_token,
                    payment_signature=session.signature or "",
                    landing_page_url=landing,
                )
            )
        except StorageError as e:
            logger.error("Token %s deployed but not recorded: %s", token_address, e)
        session.token_address = token_address
        session.landing_page_url = landing
        session.error = None
        session.message = self._msg("deploy_success")
        self._advance(session, DeploymentState.DEPLOY_SUCCEEDED)
        return session

    async def _refund(self, session: DeploymentSession) -> DeploymentSession:
        """One best-effort transfer of the fee back to the payer."""
        if self.treasury is None:
            logger.error("No treasury key configured, cannot refund %s", session.id)
            session.message = self._msg("deploy_contact_support")
            self._advance(session, DeploymentState.REFUND_FAILED)
            return session

        try:
            blockhash, last_valid = await self.rpc.get_latest_blockhash()
            raw = sign_transfer(self.treasury, session.payer, session.lamports, blockhash)
            refund_sig = await self.rpc.send_transaction(raw)
            await self.rpc.confirm_transaction(
                refund_sig,
                last_valid_block_height=last_valid,
                timeout=self.config.solana.confirm_timeout,
                poll_interval=self.config.solana.confirm_poll_interval,
            )
        except (RPCError, ConfirmationTimeout, TransactionFailed, InvalidTransaction) as e:
            logger.error("Refund failed for %s: %s", session.id, e)
            session.message = self._msg("deploy_contact_support")
            self._advance(session, DeploymentState.REFUND_FAILED)
            return session

        session.refund_signature = refund_sig
        session.message = self._msg("deploy_refunded")
        self._advance(session, DeploymentState.REFUNDED)
        return session

import base64

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature
from solders.transaction import Transaction

from druid.bots import storage as bot_storage
from druid.bots.models import BotFields
from druid.deploy import storage as token_storage
from druid.deploy.deployer import TokenDeployer, derive_symbol
from druid.deploy.flow import DeploymentFlow, DeploymentStateError, get_session
from druid.deploy.models import DeploymentState
from druid.i18n import t
from druid.solana.rpc import SolanaRPC

from .fakes import FakeLaunchService, FakeSolanaNode


@pytest.fixture
def treasury():
    return Keypair()


@pytest.fixture
def payer():
    return Keypair()


@pytest.fixture
def node():
    return FakeSolanaNode()


@pytest.fixture
def launch():
    return FakeLaunchService()


@pytest.fixture
def flow(app_config, treasury, node, launch):
    app_config.solana.treasury_address = str(treasury.pubkey())
    app_config.solana.confirm_timeout = 1
    app_config.solana.confirm_poll_interval = 0
    rpc = SolanaRPC("https://rpc.test", client=node.client())
    deployer = TokenDeployer("https://launch.test", client=launch.client())
    return DeploymentFlow(rpc, deployer, config=app_config, treasury=treasury)


@pytest.fixture
def bot():
    return bot_storage.create_bot(
        BotFields(name="Moon Cat 9", image_url="https://img.test/cat.png", personality="Smug", background="From space"),
        "owner",
    )


def _sign(session, keypair) -> str:
    unsigned = Transaction.from_bytes(base64.b64decode(session.unsigned_transaction))
    signed = Transaction([keypair], unsigned.message, Hash.from_string(session.blockhash))
    return base64.b64encode(bytes(signed)).decode("ascii")


async def _prepare_and_sign(flow, bot, payer):
    session = await flow.prepare(bot, "owner", str(payer.pubkey()))
    return session, _sign(session, payer)


async def test_prepare_builds_fee_transfer(flow, bot, payer, treasury, node):
    session = await flow.prepare(bot, "owner", str(payer.pubkey()))

    assert session.state == DeploymentState.AWAITING_SIGNATURE
    assert session.lamports == 30_000_000
    assert session.blockhash == node.blockhash
    assert get_session(session.id) is session
    assert node.sent == []


async def test_successful_deployment(flow, bot, payer, treasury, node, launch):
    session, signed = await _prepare_and_sign(flow, bot, payer)
    result = await flow.submit(session.id, signed)

    assert result.state == DeploymentState.DEPLOY_SUCCEEDED
    assert result.token_address == launch.token_address
    assert result.landing_page_url == f"/token/{launch.token_address}"
    assert result.message == t("deploy_success")
    assert result.refund_signature is None

    # only the payment went out
    [payment] = node.transfers()
    assert payment.source == str(payer.pubkey())
    assert payment.destination == str(treasury.pubkey())
    assert payment.lamports == 30_000_000

    [request] = launch.deploy_requests
    assert request.headers["Idempotency-Key"] == result.signature

    token = token_storage.get_token(launch.token_address)
    assert token.bot_id == bot.id
    assert token.symbol == "MOONCAT9"
    assert token.payment_signature == result.signature


async def test_failed_deployment_refunds_once(flow, bot, payer, treasury, node, launch):
    launch.deploy_status = 500
    session, signed = await _prepare_and_sign(flow, bot, payer)
    result = await flow.submit(session.id, signed)

    assert result.state == DeploymentState.REFUNDED
    assert result.message == t("deploy_refunded")
    payment, refund = node.transfers()
    assert refund.source == str(treasury.pubkey())
    assert refund.destination == str(payer.pubkey())
    assert refund.lamports == payment.lamports == 30_000_000
    assert result.refund_signature == refund.signature
    assert launch.lookups == [result.signature]
    assert token_storage.list_tokens() == []


async def test_deployment_found_after_error_is_not_refunded(flow, bot, payer, node, launch):
    launch.deploy_status = 504
    session, signed = await _prepare_and_sign(flow, bot, payer)
    payment_sig = Transaction.from_bytes(base64.b64decode(signed)).signatures[0]
    launch.existing[str(payment_sig)] = "LateMint"

    result = await flow.submit(session.id, signed)

    assert result.state == DeploymentState.DEPLOY_SUCCEEDED
    assert result.token_address == "LateMint"
    assert len(node.sent) == 1


async def test_refund_failure_asks_to_contact_support(flow, bot, payer, node, launch):
    launch.deploy_status = 500
    node.fail_send_after = 1  # payment goes through, refund is rejected
    session, signed = await _prepare_and_sign(flow, bot, payer)
    result = await flow.submit(session.id, signed)

    assert result.state == DeploymentState.REFUND_FAILED
    assert result.message == t("deploy_contact_support")
    assert len(node.sent) == 1
    assert node.calls.count("sendTransaction") == 2


async def test_no_treasury_key_means_no_refund(app_config, treasury, node, launch, bot, payer):
    app_config.solana.treasury_address = str(treasury.pubkey())
    app_config.solana.confirm_poll_interval = 0
    launch.deploy_status = 500
    flow = DeploymentFlow(
        SolanaRPC("https://rpc.test", client=node.client()),
        TokenDeployer("https://launch.test", client=launch.client()),
        config=app_config,
    )
    session, signed = await _prepare_and_sign(flow, bot, payer)
    result = await flow.submit(session.id, signed)

    assert result.state == DeploymentState.REFUND_FAILED
    assert len(node.sent) == 1


async def test_unconfirmed_payment_is_pending_without_refund(flow, bot, payer, node, launch):
    node.status = None
    node.block_height = node.last_valid_block_height + 1
    session, signed = await _prepare_and_sign(flow, bot, payer)
    result = await flow.submit(session.id, signed)

    assert result.state == DeploymentState.PAYMENT_PENDING
    assert result.message == t("deploy_pending")
    assert len(node.sent) == 1
    assert launch.deploy_requests == []


async def test_failed_payment_is_not_deployed(flow, bot, payer, node, launch):
    node.status = {"confirmationStatus": "processed", "err": {"InsufficientFundsForFee": None}}
    session, signed = await _prepare_and_sign(flow, bot, payer)
    result = await flow.submit(session.id, signed)

    assert result.state == DeploymentState.FAILED
    assert launch.deploy_requests == []
    assert len(node.sent) == 1


async def test_tampered_signature_rejected_before_sending(flow, bot, payer, node, launch):
    session = await flow.prepare(bot, "owner", str(payer.pubkey()))
    unsigned = Transaction.from_bytes(base64.b64decode(session.unsigned_transaction))
    forged = Transaction.populate(unsigned.message, [Signature.new_unique()])
    signed = base64.b64encode(bytes(forged)).decode("ascii")

    result = await flow.submit(session.id, signed)

    assert result.state == DeploymentState.FAILED
    assert result.message == t("deploy_wallet_missing")
    assert node.sent == []


async def test_submit_is_single_use(flow, bot, payer, node, launch):
    session, signed = await _prepare_and_sign(flow, bot, payer)
    await flow.submit(session.id, signed)

    with pytest.raises(DeploymentStateError):
        await flow.submit(session.id, signed)
    assert len(node.sent) == 1
    assert len(launch.deploy_requests) == 1


async def test_unknown_session(flow):
    with pytest.raises(KeyError):
        await flow.submit("missing", "AAAA")


@pytest.mark.parametrize(
    "name, symbol",
    [("Moon Cat 9", "MOONCAT9"), ("élan!", "LAN"), ("???", "BOT"), ("A Very Long Bot Name", "AVERYLONGB")],
)
def test_derive_symbol(name, symbol):
    assert derive_symbol(name) == symbol

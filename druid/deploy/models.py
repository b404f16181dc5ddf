import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DeployedToken(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    token_address: str
    bot_id: str
    name: str
    symbol: str = ""
    image_url: str = ""
    client_token: str = ""
    payment_signature: str = ""
    landing_page_url: str = ""
    created_at: str = Field(default_factory=_now)


class DeploymentState(str, Enum):
    AWAITING_SIGNATURE = "awaiting-signature"
    PAYMENT_SUBMITTED = "payment-submitted"
    PAYMENT_PENDING = "payment-pending"  # confirmation timed out, outcome unknown
    PAYMENT_CONFIRMED = "payment-confirmed"
    DEPLOY_REQUESTED = "deploy-requested"
    DEPLOY_SUCCEEDED = "deploy-succeeded"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund-failed"
    FAILED = "failed"  # nothing was charged


TERMINAL_STATES = {
    DeploymentState.PAYMENT_PENDING,
    DeploymentState.DEPLOY_SUCCEEDED,
    DeploymentState.REFUNDED,
    DeploymentState.REFUND_FAILED,
    DeploymentState.FAILED,
}


class DeploymentSession(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    bot_id: str
    bot_name: str
    bot_image_url: str = ""
    bot_description: str = ""
    client_token: str
    payer: str
    treasury: str
    lamports: int
    blockhash: str
    last_valid_block_height: int
    unsigned_transaction: str  # base64
    state: DeploymentState = DeploymentState.AWAITING_SIGNATURE
    signature: Optional[str] = None
    token_address: Optional[str] = None
    landing_page_url: Optional[str] = None
    refund_signature: Optional[str] = None
    error: Optional[str] = None
    message: str = ""
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)

    def public_view(self) -> dict:
        return self.model_dump(exclude={"client_token"})

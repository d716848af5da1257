"""
Data models for the ASI chain SDK.
"""
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class Deploy(BaseModel):
    """Unsigned intent to execute Rholang code on-chain"""
    term: str
    phlo_limit: int = Field(..., alias="phloLimit")
    phlo_price: int = Field(..., alias="phloPrice")
    valid_after_block_number: int = Field(..., alias="validAfterBlockNumber")
    timestamp: int
    shard_id: str = Field("", alias="shardId")

    class Config:
        frozen = True
        populate_by_name = True


class SignedDeploy(BaseModel):
    """A deploy together with the deployer's public key and signature"""
    deploy: Deploy
    deployer: str
    signature: str
    sig_algorithm: str = Field("secp256k1", alias="sigAlgorithm")

    class Config:
        frozen = True
        populate_by_name = True

    def to_wire(self) -> Dict[str, Any]:
        """Payload accepted by the node's ``/api/deploy`` endpoint"""
        return {
            "data": {
                "term": self.deploy.term,
                "timestamp": self.deploy.timestamp,
                "phloPrice": self.deploy.phlo_price,
                "phloLimit": self.deploy.phlo_limit,
                "validAfterBlockNumber": self.deploy.valid_after_block_number,
                "shardId": self.deploy.shard_id,
            },
            "sigAlgorithm": self.sig_algorithm,
            "signature": self.signature,
            "deployer": self.deployer,
        }


class CachedBalance(BaseModel):
    """Balance observed on a specific read-only endpoint"""
    address: str
    endpoint: str
    balance: int
    observed_at: float

    class Config:
        frozen = True


class TransactionKind(str, Enum):
    SEND = "send"
    CONTRACT_DEPLOY = "contract-deploy"


class PendingTransactionEntry(BaseModel):
    """A submitted operation the chain has not reflected yet"""
    deploy_id: str
    from_address: str
    to_address: Optional[str] = None
    amount: Optional[int] = None
    submitted_at: int
    owner_account_id: str
    kind: TransactionKind = TransactionKind.SEND
    estimated_fee: int = 0
    expected_balance_after_confirmation: Optional[int] = None
    network_id: Optional[str] = None

    class Config:
        frozen = True

    @property
    def debit(self) -> int:
        """Amount this entry removes from the displayed balance"""
        if self.kind == TransactionKind.SEND:
            return (self.amount or 0) + self.estimated_fee
        return self.estimated_fee


class PendingResult(BaseModel):
    """
    No confirmation yet.

    ``unknown`` is set when neither the indexer nor the block scan could tell
    anything; the deploy may still be processing and must not be shown as failed.
    """
    status: Literal["pending"] = "pending"
    deploy_id: str
    message: str = "Deploy not yet included in a block"
    unknown: bool = False

    class Config:
        frozen = True

    @property
    def is_final(self) -> bool:
        return False


class CompletedResult(BaseModel):
    """Deploy included in a block without error"""
    status: Literal["completed"] = "completed"
    deploy_id: str
    block_hash: Optional[str] = None
    block_number: Optional[int] = None
    timestamp: Optional[int] = None
    source: str = "indexer"
    transfers: List[Dict[str, Any]] = Field(default_factory=list)
    cost: Optional[int] = None

    class Config:
        frozen = True

    @property
    def is_final(self) -> bool:
        return True


class ErroredResult(BaseModel):
    """Deploy included in a block but its execution failed"""
    status: Literal["errored"] = "errored"
    deploy_id: str
    reason: str = "Deploy execution failed"
    block_number: Optional[int] = None
    block_hash: Optional[str] = None
    source: str = "indexer"

    class Config:
        frozen = True

    @property
    def is_final(self) -> bool:
        return True


ConfirmationResult = Annotated[
    Union[PendingResult, CompletedResult, ErroredResult],
    Field(discriminator="status"),
]


class Account(BaseModel):
    """Wallet account as seen by the SDK; never carries key material"""
    id: str
    address: str
    public_key: Optional[str] = None
    name: Optional[str] = None

    class Config:
        frozen = True


class TransactionRecord(BaseModel):
    """Confirmed transaction as reported by the indexer"""
    deploy_id: str
    block_number: Optional[int] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    amount: Optional[str] = None
    timestamp: int = 0
    block_hash: Optional[str] = None
    type: Literal["send", "receive", "deploy"] = "send"
    status: str = "confirmed"

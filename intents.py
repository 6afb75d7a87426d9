"""
Intent payload encoding for the Okto job manager

Each intent becomes an `initiateJob(...)` call wrapped in the account's
`execute` user-operation call data.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Sequence, Tuple, Union

from eth_abi import encode
from web3 import Web3

from config import (
    EXECUTE_USEROP_FUNCTION_SELECTOR,
    FEE_PAYER_ADDRESS,
    INITIATE_JOB_SIGNATURE,
    USEROP_VALUE,
)
from user_operations import nonce_to_int

logger = logging.getLogger(__name__)

INITIATE_JOB_SELECTOR = bytes(Web3.keccak(text=INITIATE_JOB_SIGNATURE)[:4])
INITIATE_JOB_TYPES = ["uint256", "address", "address", "address", "bytes", "bytes", "bytes", "string"]
EXECUTE_CALL_TYPES = ["bytes4", "address", "uint256", "bytes"]
POLICY_INFO_TYPE = "(bool,bool)"


class IntentType(str, Enum):
    TOKEN_TRANSFER = "TOKEN_TRANSFER"
    NFT_TRANSFER = "NFT_TRANSFER"
    RAW_TRANSACTION = "RAW_TRANSACTION"
    NFT_MINT = "NFT_MINT"
    NFT_CREATE_COLLECTION = "NFT_CREATE_COLLECTION"


class ChainNotSupported(Exception):
    """Raised when the chain registry has no entry for the requested CAIP-2 id"""

    def __init__(self, caip2_id: str):
        super().__init__(f"Chain Not Supported: {caip2_id}")
        self.caip2_id = caip2_id


def _require(value: Any, name: str) -> None:
    if value is None or value == "":
        raise ValueError(f"{name} is required")


def _require_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValueError(f"amount must be a non-negative integer, got {amount!r}")


@dataclass(frozen=True)
class TokenTransferIntent:
    """Transfer `amount` base units of `token` (empty for the native token)"""
    caip2_id: str
    recipient: str
    token: str
    amount: int

    intent_type: ClassVar[IntentType] = IntentType.TOKEN_TRANSFER
    job_parameters_type: ClassVar[str] = "(string,string,string,uint256)"

    def __post_init__(self):
        _require(self.caip2_id, "caip2_id")
        _require(self.recipient, "recipient")
        if self.token is None:
            raise ValueError("token is required (use an empty string for the native token)")
        _require_amount(self.amount)

    def job_parameters(self) -> Tuple:
        return (self.caip2_id, self.recipient, self.token, self.amount)

    def details(self) -> Dict[str, Any]:
        return {
            "caip2Id": self.caip2_id,
            "recipientWalletAddress": self.recipient,
            "tokenAddress": self.token,
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class NftTransferIntent:
    caip2_id: str
    nft_id: str
    recipient: str
    collection_address: str
    nft_type: str
    amount: int = 1

    intent_type: ClassVar[IntentType] = IntentType.NFT_TRANSFER
    job_parameters_type: ClassVar[str] = "(string,string,string,string,string,uint256)"

    def __post_init__(self):
        _require(self.caip2_id, "caip2_id")
        _require(self.nft_id, "nft_id")
        _require(self.recipient, "recipient")
        _require(self.collection_address, "collection_address")
        _require(self.nft_type, "nft_type")
        _require_amount(self.amount)

    def job_parameters(self) -> Tuple:
        return (
            self.caip2_id,
            self.nft_id,
            self.recipient,
            self.collection_address,
            self.nft_type,
            self.amount,
        )

    def details(self) -> Dict[str, Any]:
        return {
            "caip2Id": self.caip2_id,
            "nftId": self.nft_id,
            "recipientWalletAddress": self.recipient,
            "collectionAddress": self.collection_address,
            "amount": str(self.amount),
            "nftType": self.nft_type,
        }


@dataclass(frozen=True)
class RawTransaction:
    """An EVM transaction executed verbatim by the user's account"""
    from_address: str
    to: str
    data: str = "0x"
    value: int = 0

    def __post_init__(self):
        _require(self.from_address, "from_address")
        _require(self.to, "to")
        _require_amount(self.value)

    def to_json(self) -> Dict[str, str]:
        """Estimate `details` form, value as a hex quantity"""
        return {
            "from": self.from_address,
            "to": self.to,
            "data": self.data or "0x",
            "value": hex(self.value),
        }

    def to_bytes(self) -> bytes:
        """Compact JSON carried in the job parameters; value stays a JSON number"""
        job_json = dict(self.to_json(), value=self.value)
        return json.dumps(job_json, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class RawTransactionIntent:
    caip2_id: str
    transactions: Tuple[RawTransaction, ...]

    intent_type: ClassVar[IntentType] = IntentType.RAW_TRANSACTION
    job_parameters_type: ClassVar[str] = "(string,bytes[])"

    def __post_init__(self):
        _require(self.caip2_id, "caip2_id")
        object.__setattr__(self, "transactions", tuple(self.transactions))
        if not self.transactions:
            raise ValueError("at least one transaction is required")

    def job_parameters(self) -> Tuple:
        return (self.caip2_id, [tx.to_bytes() for tx in self.transactions])

    def details(self) -> Dict[str, Any]:
        return {
            "caip2Id": self.caip2_id,
            "transactions": [tx.to_json() for tx in self.transactions],
        }


Intent = Union[TokenTransferIntent, NftTransferIntent, RawTransactionIntent]


def intent_details(intent: Intent) -> Dict[str, Any]:
    """`details` object sent with the intent to the estimate endpoint"""
    return intent.details()


def find_chain(chains: Sequence[Mapping[str, Any]], caip2_id: str) -> Mapping[str, Any]:
    """Registry record whose caip_id matches, compared case-insensitively"""
    wanted = caip2_id.lower()
    for chain in chains:
        if str(chain.get("caip_id", "")).lower() == wanted:
            return chain
    raise ChainNotSupported(caip2_id)


def encode_policy_info(chain: Mapping[str, Any]) -> bytes:
    return encode([POLICY_INFO_TYPE], [(
        bool(chain.get("gsn_enabled", False)),
        bool(chain.get("sponsorship_enabled", False)),
    )])


def encode_gsn_data(intent: Intent) -> bytes:
    """GSN relay data; relaying is never requested so the lists stay empty"""
    gsn_type = f"(bool,string[],{intent.job_parameters_type}[])"
    return encode([gsn_type], [(False, [], [])])


def encode_job_parameters(intent: Intent) -> bytes:
    return encode([intent.job_parameters_type], [intent.job_parameters()])


def encode_initiate_job(
    job_id: int,
    client_swa: str,
    user_swa: str,
    fee_payer_address: str,
    policy_info: bytes,
    gsn_data: bytes,
    job_parameters: bytes,
    intent_type: Union[IntentType, str],
) -> bytes:
    return INITIATE_JOB_SELECTOR + encode(INITIATE_JOB_TYPES, [
        job_id,
        Web3.to_checksum_address(client_swa),
        Web3.to_checksum_address(user_swa),
        Web3.to_checksum_address(fee_payer_address),
        policy_info,
        gsn_data,
        job_parameters,
        IntentType(intent_type).value,
    ])


def build_intent_call_data(
    intent: Intent,
    chains: Sequence[Mapping[str, Any]],
    nonce: str,
    client_swa: str,
    user_swa: str,
    job_manager_address: str,
    fee_payer_address: str = FEE_PAYER_ADDRESS,
) -> bytes:
    """UserOp call data executing `initiateJob` on the job manager for this intent"""
    chain = find_chain(chains, intent.caip2_id)
    logger.info(f"Encoding {intent.intent_type.value} on {chain.get('network_name', intent.caip2_id)} for job {nonce}")

    initiate_job = encode_initiate_job(
        job_id=nonce_to_int(nonce),
        client_swa=client_swa,
        user_swa=user_swa,
        fee_payer_address=fee_payer_address or FEE_PAYER_ADDRESS,
        policy_info=encode_policy_info(chain),
        gsn_data=encode_gsn_data(intent),
        job_parameters=encode_job_parameters(intent),
        intent_type=intent.intent_type,
    )

    return encode(EXECUTE_CALL_TYPES, [
        EXECUTE_USEROP_FUNCTION_SELECTOR,
        Web3.to_checksum_address(job_manager_address),
        USEROP_VALUE,
        initiate_job,
    ])

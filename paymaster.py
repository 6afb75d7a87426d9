"""
Paymaster data construction for sponsored Okto UserOperations
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from eth_abi import decode, encode
from eth_abi.packed import encode_packed
from web3 import Web3

from config import PAYMASTER_VALIDITY_HOURS, WalletConfig
from session_key import KeyLike, recover_hash_signer, recover_message_signer, sign_hash, sign_message
from user_operations import nonce_to_bytes32

logger = logging.getLogger(__name__)

PAYMASTER_DATA_TYPES = ["address", "uint48", "uint48", "bytes"]
PAYMASTER_HASH_TYPES = ["bytes32", "address", "uint48", "uint48"]

MAX_UINT48 = 2**48 - 1

Timestamp = Union[datetime, int, float, str, None]


@dataclass(frozen=True)
class PaymasterData:
    """Decoded paymasterData blob"""
    address: str
    valid_until: int
    valid_after: int
    signature: bytes


def normalize_timestamp(value: Timestamp, default: Optional[int] = None) -> int:
    """Convert a datetime or numeric value to whole unix seconds that fit a uint48"""
    if value is None:
        if default is None:
            raise ValueError("Timestamp is required")
        return default

    if isinstance(value, datetime):
        seconds = int(value.timestamp())
    elif isinstance(value, bool):
        raise TypeError("Timestamp must not be a boolean")
    elif isinstance(value, int):
        seconds = value
    elif isinstance(value, float):
        seconds = int(value)
    elif isinstance(value, str):
        seconds = int(value, 0)
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")

    if not 0 <= seconds <= MAX_UINT48:
        raise ValueError(f"Timestamp {seconds} does not fit in uint48")
    return seconds


def default_valid_until(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(hours=PAYMASTER_VALIDITY_HOURS)


def paymaster_data_hash(address: str, nonce: str, valid_until: int, valid_after: int) -> bytes:
    packed = encode_packed(PAYMASTER_HASH_TYPES, [
        nonce_to_bytes32(nonce),
        Web3.to_checksum_address(address),
        valid_until,
        valid_after,
    ])
    return bytes(Web3.keccak(packed))


def generate_paymaster_data(
    address: str,
    private_key: KeyLike,
    nonce: str,
    valid_until: Timestamp,
    valid_after: Timestamp = None,
    personal_sign: bool = False,
) -> bytes:
    """ABI-encoded (address, validUntil, validAfter, signature) authorizing sponsorship"""
    valid_until = normalize_timestamp(valid_until)
    valid_after = normalize_timestamp(valid_after, default=0)

    digest = paymaster_data_hash(address, nonce, valid_until, valid_after)
    if personal_sign:
        signature = sign_message(private_key, digest)
    else:
        signature = sign_hash(private_key, digest)

    return encode(PAYMASTER_DATA_TYPES, [
        Web3.to_checksum_address(address),
        valid_until,
        valid_after,
        signature,
    ])


def decode_paymaster_data(data: bytes) -> PaymasterData:
    address, valid_until, valid_after, signature = decode(PAYMASTER_DATA_TYPES, bytes(data))
    return PaymasterData(
        address=Web3.to_checksum_address(address),
        valid_until=valid_until,
        valid_after=valid_after,
        signature=signature,
    )


def recover_paymaster_signer(data: bytes, nonce: str, personal_sign: bool = False) -> str:
    """Address that signed a paymasterData blob for the given nonce"""
    decoded = decode_paymaster_data(data)
    digest = paymaster_data_hash(decoded.address, nonce, decoded.valid_until, decoded.valid_after)
    if personal_sign:
        return recover_message_signer(digest, decoded.signature)
    return recover_hash_signer(digest, decoded.signature)


def client_paymaster_data(
    config: WalletConfig,
    nonce: str,
    valid_until: Timestamp = None,
    valid_after: Timestamp = None,
) -> bytes:
    """Paymaster data signed by the configured client for one job"""
    if valid_until is None:
        valid_until = default_valid_until()
    logger.info(f"Generating paymaster data for client {config.client_swa}, job {nonce}")
    return generate_paymaster_data(
        config.client_swa,
        config.client_private_key,
        nonce,
        valid_until,
        valid_after,
        personal_sign=config.personal_sign,
    )

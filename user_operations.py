"""
UserOperation creation, packing, hashing and signing for Okto intents (EntryPoint v0.7 layout)
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Optional, Union

from eth_abi import encode
from web3 import Web3

from config import NetworkConfig, WalletConfig, ZERO_ADDRESS
from session_key import KeyLike, recover_hash_signer, recover_message_signer, sign_hash, sign_message

logger = logging.getLogger(__name__)

USER_OP_PACK_TYPES = [
    "address",  # sender
    "bytes32",  # nonce
    "bytes32",  # keccak256(initCode)
    "bytes32",  # keccak256(callData)
    "bytes32",  # accountGasLimits
    "uint256",  # preVerificationGas
    "bytes32",  # gasFees
    "bytes32",  # keccak256(paymasterAndData)
]
USER_OP_DOMAIN_TYPES = ["bytes32", "address", "uint256"]

# fields that must be set before packing, in validation order
REQUIRED_FIELDS = (
    "sender",
    "nonce",
    "call_data",
    "pre_verification_gas",
    "verification_gas_limit",
    "call_gas_limit",
    "max_fee_per_gas",
    "max_priority_fee_per_gas",
    "paymaster",
    "paymaster_verification_gas_limit",
    "paymaster_post_op_gas_limit",
    "paymaster_data",
)


class InvalidUserOperation(ValueError):
    """Raised when a UserOperation cannot be packed"""

    def __init__(self, detail: Optional[str] = None):
        message = "Invalid UserOp" if detail is None else f"Invalid UserOp: {detail}"
        super().__init__(message)


def generate_nonce() -> str:
    """Fresh UUID4 used both as the job id and as the operation nonce"""
    return str(uuid.uuid4())


def nonce_to_int(nonce: str) -> int:
    """Interpret the 16 UUID bytes as a big-endian 128-bit integer"""
    return uuid.UUID(nonce).int


def int_to_nonce(value: int) -> str:
    return str(uuid.UUID(int=value))


def pad(value: Union[int, bytes], size: int) -> bytes:
    """Left-pad an integer or byte string with zeros to exactly `size` bytes"""
    if isinstance(value, int):
        if value < 0:
            raise InvalidUserOperation(f"negative value {value}")
        try:
            return value.to_bytes(size, "big")
        except OverflowError:
            raise InvalidUserOperation(f"value {hex(value)} exceeds {size} bytes") from None

    value = bytes(value)
    if len(value) > size:
        raise InvalidUserOperation(f"0x{value.hex()} exceeds {size} bytes")
    return value.rjust(size, b"\x00")


def nonce_to_bytes32(nonce: str) -> bytes:
    return pad(nonce_to_int(nonce), 32)


def _address_bytes(address: str) -> bytes:
    return bytes.fromhex(Web3.to_checksum_address(address)[2:])


@dataclass
class UserOperation:
    """Logical UserOperation; every field except `signature` is required for packing"""
    sender: Optional[str] = None
    nonce: Optional[int] = None
    call_data: Optional[bytes] = None
    call_gas_limit: Optional[int] = None
    verification_gas_limit: Optional[int] = None
    pre_verification_gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: Optional[int] = None
    paymaster_post_op_gas_limit: Optional[int] = None
    paymaster_data: Optional[bytes] = None
    signature: Optional[bytes] = None

    @property
    def has_paymaster(self) -> bool:
        # "", "0x" and the zero address all mean no paymaster
        if not self.paymaster or self.paymaster.lower() in ("0x", ZERO_ADDRESS):
            return False
        try:
            return int(self.paymaster, 16) != 0
        except ValueError:
            raise InvalidUserOperation(f"malformed paymaster {self.paymaster!r}") from None

    def with_signature(self, signature: bytes) -> "UserOperation":
        return replace(self, signature=bytes(signature))


@dataclass(frozen=True)
class PackedUserOperation:
    """On-chain tuple form of a UserOperation"""
    sender: str
    nonce: int
    call_data: bytes
    account_gas_limits: bytes
    pre_verification_gas: int
    gas_fees: bytes
    paymaster_and_data: bytes
    init_code: bytes = b""


def pack_user_operation(user_op: UserOperation) -> PackedUserOperation:
    """Pack a fully populated UserOperation into its on-chain representation"""
    missing = [name for name in REQUIRED_FIELDS if getattr(user_op, name) is None]
    if missing:
        raise InvalidUserOperation(f"missing {', '.join(missing)}")

    account_gas_limits = pad(user_op.verification_gas_limit, 16) + pad(user_op.call_gas_limit, 16)
    gas_fees = pad(user_op.max_fee_per_gas, 16) + pad(user_op.max_priority_fee_per_gas, 16)

    if user_op.has_paymaster:
        paymaster_and_data = (
            _address_bytes(user_op.paymaster)
            + pad(user_op.paymaster_verification_gas_limit, 16)
            + pad(user_op.paymaster_post_op_gas_limit, 16)
            + bytes(user_op.paymaster_data)
        )
    else:
        paymaster_and_data = b""

    # nonce and preVerificationGas occupy full words in the hash
    pad(user_op.nonce, 32)
    pad(user_op.pre_verification_gas, 32)

    return PackedUserOperation(
        sender=Web3.to_checksum_address(user_op.sender),
        nonce=user_op.nonce,
        call_data=bytes(user_op.call_data),
        account_gas_limits=account_gas_limits,
        pre_verification_gas=user_op.pre_verification_gas,
        gas_fees=gas_fees,
        paymaster_and_data=paymaster_and_data,
    )


def get_user_operation_hash(packed: PackedUserOperation, entry_point_address: str, chain_id: int) -> bytes:
    """Hash bound to the entry point and chain the operation is submitted to"""
    inner = encode(USER_OP_PACK_TYPES, [
        packed.sender,
        pad(packed.nonce, 32),
        Web3.keccak(packed.init_code),
        Web3.keccak(packed.call_data),
        packed.account_gas_limits,
        packed.pre_verification_gas,
        packed.gas_fees,
        Web3.keccak(packed.paymaster_and_data),
    ])
    outer = encode(USER_OP_DOMAIN_TYPES, [
        Web3.keccak(inner),
        Web3.to_checksum_address(entry_point_address),
        chain_id,
    ])
    return bytes(Web3.keccak(outer))


def hash_user_operation(user_op: UserOperation, network: NetworkConfig) -> bytes:
    packed = pack_user_operation(user_op)
    return get_user_operation_hash(packed, network.entry_point_address, network.chain_id)


async def sign_user_operation(
    user_op: UserOperation,
    private_key: KeyLike,
    network: NetworkConfig,
    personal_sign: bool = False,
) -> UserOperation:
    """Sign the operation hash with a session key and return the signed copy.

    The raw 32-byte hash is signed unless `personal_sign` asks for an EIP-191
    prefixed signature over the hash bytes.
    """
    user_op_hash = hash_user_operation(user_op, network)
    logger.info(f"Signing UserOp: sender={user_op.sender}, nonce={hex(user_op.nonce)}, hash=0x{user_op_hash.hex()}")

    signer = sign_message if personal_sign else sign_hash
    signature = await asyncio.to_thread(signer, private_key, user_op_hash)
    return user_op.with_signature(signature)


def recover_user_operation_signer(user_op: UserOperation, network: NetworkConfig, personal_sign: bool = False) -> str:
    """Address that produced the attached signature"""
    if not user_op.signature:
        raise InvalidUserOperation("operation is not signed")
    user_op_hash = hash_user_operation(user_op, network)
    if personal_sign:
        return recover_message_signer(user_op_hash, user_op.signature)
    return recover_hash_signer(user_op_hash, user_op.signature)


def create_intent_user_operation(
    sender: str,
    nonce: str,
    call_data: bytes,
    paymaster_data: bytes,
    config: WalletConfig,
) -> UserOperation:
    """Create an unsigned UserOperation for an intent using the configured gas defaults"""
    gas = config.gas_limits

    logger.info(f"Created UserOp for {sender} with job id {nonce}")

    return UserOperation(
        sender=Web3.to_checksum_address(sender),
        nonce=nonce_to_int(nonce),
        call_data=call_data,
        call_gas_limit=gas.call_gas_limit,
        verification_gas_limit=gas.verification_gas_limit,
        pre_verification_gas=gas.pre_verification_gas,
        max_fee_per_gas=gas.max_fee_per_gas,
        max_priority_fee_per_gas=gas.max_priority_fee_per_gas,
        paymaster=config.network.paymaster_address or ZERO_ADDRESS,
        paymaster_verification_gas_limit=gas.paymaster_verification_gas_limit,
        paymaster_post_op_gas_limit=gas.paymaster_post_op_gas_limit,
        paymaster_data=paymaster_data,
    )

"""
secp256k1 session keys and signing helpers for Okto delegated actions
"""

import logging
from typing import Optional, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from hexbytes import HexBytes
from web3 import Web3

logger = logging.getLogger(__name__)

KeyLike = Union[str, bytes]


def to_private_key_bytes(private_key: KeyLike) -> bytes:
    """Accept a 32-byte key as bytes or hex, with or without 0x"""
    raw = bytes(HexBytes(private_key))
    if len(raw) != 32:
        raise ValueError(f"Private key must be 32 bytes, got {len(raw)}")
    return raw


def sign_hash(private_key: KeyLike, message_hash: bytes) -> bytes:
    """Recoverable ECDSA signature (r || s || v, v in {27, 28}) over a raw 32-byte hash"""
    message_hash = bytes(HexBytes(message_hash))
    if len(message_hash) != 32:
        raise ValueError(f"Message hash must be 32 bytes, got {len(message_hash)}")
    signed = Account.unsafe_sign_hash(message_hash, to_private_key_bytes(private_key))
    return bytes(signed.signature)


def sign_message(private_key: KeyLike, message: Union[str, bytes]) -> bytes:
    """EIP-191 personal_sign of a text or raw byte message"""
    if isinstance(message, str):
        signable = encode_defunct(text=message)
    else:
        signable = encode_defunct(primitive=bytes(message))
    signed = Account.sign_message(signable, to_private_key_bytes(private_key))
    return bytes(signed.signature)


def _to_signature(signature: bytes) -> keys.Signature:
    signature = bytes(HexBytes(signature))
    if len(signature) != 65:
        raise ValueError(f"Recoverable signature must be 65 bytes, got {len(signature)}")
    v = signature[64]
    if v >= 27:
        v -= 27
    return keys.Signature(vrs=(
        v,
        int.from_bytes(signature[:32], "big"),
        int.from_bytes(signature[32:64], "big"),
    ))


def recover_hash_signer(message_hash: bytes, signature: bytes) -> str:
    """Checksum address of the key that signed a raw 32-byte hash"""
    public_key = _to_signature(signature).recover_public_key_from_msg_hash(bytes(HexBytes(message_hash)))
    return public_key.to_checksum_address()


def recover_message_signer(message: Union[str, bytes], signature: bytes) -> str:
    """Checksum address of the key that produced an EIP-191 signature"""
    if isinstance(message, str):
        signable = encode_defunct(text=message)
    else:
        signable = encode_defunct(primitive=bytes(message))
    return Account.recover_message(signable, signature=bytes(HexBytes(signature)))


class SessionKey:
    """A secp256k1 key pair identifying one login session.

    Created randomly with :meth:`create` or restored with
    :meth:`from_private_key`. Callers persist :attr:`private_key_hex_with_0x`
    to reuse the session for delegated actions.
    """

    def __init__(self, private_key: Optional[KeyLike] = None):
        if private_key is None:
            raw = bytes(Account.create().key)
        else:
            raw = to_private_key_bytes(private_key)
        self._key = keys.PrivateKey(raw)

    @classmethod
    def create(cls) -> "SessionKey":
        return cls(None)

    @classmethod
    def from_private_key(cls, private_key: KeyLike) -> "SessionKey":
        return cls(private_key)

    def __repr__(self) -> str:
        return f"SessionKey(address={self.ethereum_address})"

    @property
    def private_key(self) -> bytes:
        return self._key.to_bytes()

    @property
    def private_key_hex(self) -> str:
        return self.private_key.hex()

    @property
    def private_key_hex_with_0x(self) -> str:
        return "0x" + self.private_key_hex

    @property
    def uncompressed_public_key(self) -> bytes:
        return b"\x04" + self._key.public_key.to_bytes()

    @property
    def compressed_public_key(self) -> bytes:
        return self._key.public_key.to_compressed_bytes()

    @property
    def uncompressed_public_key_hex(self) -> str:
        return self.uncompressed_public_key.hex()

    @property
    def uncompressed_public_key_hex_with_0x(self) -> str:
        return "0x" + self.uncompressed_public_key_hex

    @property
    def ethereum_address(self) -> str:
        """Lower 20 bytes of keccak256 over the public key without its 0x04 prefix"""
        digest = Web3.keccak(self.uncompressed_public_key[1:])
        return "0x" + digest[-20:].hex()

    def sign_hash(self, message_hash: bytes) -> bytes:
        return sign_hash(self.private_key, message_hash)

    def sign_message(self, message: Union[str, bytes]) -> bytes:
        return sign_message(self.private_key, message)

    def verify_signature(self, payload: bytes, signature: bytes) -> bool:
        """Check a signature over a 32-byte hash against this key's public key.

        Accepts compact 64-byte (r || s) and recoverable 65-byte signatures.
        """
        payload = bytes(HexBytes(payload))
        signature = bytes(HexBytes(signature))
        if len(signature) == 64:
            parsed = keys.NonRecoverableSignature(rs=(
                int.from_bytes(signature[:32], "big"),
                int.from_bytes(signature[32:], "big"),
            ))
        else:
            parsed = _to_signature(signature)
        return self._key.public_key.verify_msg_hash(payload, parsed)

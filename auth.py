"""
Okto authentication payloads, auth tokens and sign-message requests
"""

import base64
import hashlib
import json
import logging
import time
import uuid
from typing import Any, Dict, Optional

from eth_abi import encode
from web3 import Web3

from config import OKTO_CHAIN_MAX_FEE_PER_GAS, SessionConfig, WalletConfig
from paymaster import Timestamp, client_paymaster_data
from session_key import KeyLike, SessionKey, sign_message
from user_operations import generate_nonce

logger = logging.getLogger(__name__)

AUTH_TOKEN_TTL_SECONDS = 90 * 60
AUTH_TOKEN_TYPE = "ecdsa_uncompressed"
SIGN_TYPES = ("EIP191", "EIP712")
# requests are timestamped slightly in the past to absorb clock skew
CLOCK_SKEW_MS = 1000


def compact_json(data: Any) -> str:
    """Serialization matching JSON.stringify: insertion order, no whitespace"""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def canonical_json(data: Any) -> str:
    """Canonical JSON (sorted keys, no whitespace) for signed challenges"""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _hex(signature: bytes) -> str:
    return "0x" + signature.hex()


def generate_client_signature(data: Dict[str, Any], client_private_key: KeyLike) -> str:
    """EIP-191 signature of the compact JSON payload with the client key"""
    return _hex(sign_message(client_private_key, compact_json(data)))


def signed_request_body(
    payload: Dict[str, Any],
    client_private_key: KeyLike,
    now_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """Wrap a payload with a timestamp and the client's signature"""
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    data = {**payload, "timestamp": now_ms - CLOCK_SKEW_MS}
    return {
        "data": data,
        "client_signature": generate_client_signature(data, client_private_key),
        "type": "ethsign",
    }


def session_message_hash(session_address: str) -> bytes:
    """keccak256(abi.encode(address)) signed by both client and session"""
    return bytes(Web3.keccak(encode(["address"], [Web3.to_checksum_address(session_address)])))


def generate_auth_payload(
    auth_data: Dict[str, Any],
    session_key: SessionKey,
    config: WalletConfig,
    nonce: Optional[str] = None,
    valid_until: Timestamp = None,
) -> Dict[str, Any]:
    """Build the authenticate request registering `session_key` for the user.

    `auth_data` is the provider proof, e.g. ``{"idToken": ..., "provider": "google"}``
    or an email/WhatsApp auth token.
    """
    nonce = nonce or generate_nonce()
    paymaster_data = client_paymaster_data(config, nonce, valid_until, 0)
    message = session_message_hash(session_key.ethereum_address)

    logger.info(f"Built authenticate payload for session {session_key.ethereum_address}")

    return {
        "authData": auth_data,
        "sessionData": {
            "nonce": nonce,
            "clientSWA": config.client_swa,
            "sessionPk": session_key.uncompressed_public_key_hex_with_0x,
            "maxPriorityFeePerGas": OKTO_CHAIN_MAX_FEE_PER_GAS,
            "maxFeePerGas": OKTO_CHAIN_MAX_FEE_PER_GAS,
            "paymaster": config.network.paymaster_address,
            "paymasterData": _hex(paymaster_data),
        },
        "sessionPkClientSignature": _hex(sign_message(config.client_private_key, message)),
        "sessionDataUserSignature": _hex(session_key.sign_message(message)),
    }


def get_authorization_token(session_config: SessionConfig, now: Optional[int] = None) -> str:
    """Okto auth token: the session public key and expiry, signed by the session key"""
    if not session_config.session_priv_key or not session_config.session_pub_key:
        raise ValueError("Session keys are not set")

    now = round(time.time()) if now is None else now
    data = {
        "expire_at": now + AUTH_TOKEN_TTL_SECONDS,
        "session_pub_key": session_config.session_pub_key,
    }
    payload = {
        "type": AUTH_TOKEN_TYPE,
        "data": data,
        "data_signature": _hex(sign_message(session_config.session_priv_key, compact_json(data))),
    }
    return base64.b64encode(compact_json(payload).encode("utf-8")).decode("ascii")


def decode_authorization_token(token: str) -> Dict[str, Any]:
    return json.loads(base64.b64decode(token))


def generate_sign_message_payload(
    user_keys: Dict[str, Any],
    session_config: SessionConfig,
    message: str,
    sign_type: str,
    threshold: int,
) -> Dict[str, Any]:
    """Request for the MPC signing service to sign `message` with the user's key"""
    if sign_type not in SIGN_TYPES:
        raise ValueError(f"Unsupported sign type {sign_type}, expected one of {SIGN_TYPES}")
    if not user_keys.get("ecdsaKeyId"):
        raise ValueError("user_keys must contain ecdsaKeyId")

    transaction_id = str(uuid.uuid4())
    raw_message = {"message": message, "requestType": sign_type}
    encoded_message = base64.b64encode(
        canonical_json({transaction_id: canonical_json(raw_message)}).encode("utf-8")
    ).decode("ascii")

    setup_options = {
        "t": threshold,
        "key_id": user_keys["ecdsaKeyId"],
        "message": encoded_message,
        "signAlg": "secp256k1",
    }
    first = hashlib.sha256(canonical_json(setup_options).encode("utf-8")).digest()
    challenge = hashlib.sha256(first).hexdigest()

    challenge_payload = canonical_json({"challenge": challenge, "setup": setup_options}).encode("utf-8")
    session_signature = sign_message(session_config.session_priv_key, challenge_payload)

    return {
        "data": {
            "userData": {
                "userSWA": session_config.user_swa,
                "jobId": str(uuid.uuid4()),
                "sessionPk": session_config.session_pub_key,
            },
            "transactions": [
                {
                    "transactionId": transaction_id,
                    "method": sign_type,
                    "signingMessage": message,
                    "userSessionSignature": _hex(session_signature),
                }
            ],
        }
    }

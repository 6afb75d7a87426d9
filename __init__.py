"""
Okto Wallet Python Client

Session-key authentication, intent encoding and ERC-4337 UserOperation
signing for the Okto v2 API, with gas sponsored by the client paymaster.
"""

# Main service
from smart_account import OktoWalletService, create_okto_wallet_service, create_session

# Configuration
from config import GasLimits, NetworkConfig, SessionConfig, WalletConfig, get_network_config

# Individual components for advanced usage
from auth import generate_auth_payload, get_authorization_token, generate_sign_message_payload
from gateway import GatewayError, OktoGatewayClient, convert_user_operation_to_gateway_format
from intents import (
    ChainNotSupported,
    IntentType,
    NftTransferIntent,
    RawTransaction,
    RawTransactionIntent,
    TokenTransferIntent,
    build_intent_call_data,
)
from paymaster import generate_paymaster_data
from session_key import SessionKey
from user_operations import (
    InvalidUserOperation,
    UserOperation,
    create_intent_user_operation,
    get_user_operation_hash,
    pack_user_operation,
    sign_user_operation,
)

__version__ = "1.0.0"

__all__ = [
    "OktoWalletService",
    "create_okto_wallet_service",
    "create_session",
    "GasLimits",
    "NetworkConfig",
    "SessionConfig",
    "WalletConfig",
    "get_network_config",
    "generate_auth_payload",
    "get_authorization_token",
    "generate_sign_message_payload",
    "GatewayError",
    "OktoGatewayClient",
    "convert_user_operation_to_gateway_format",
    "ChainNotSupported",
    "IntentType",
    "NftTransferIntent",
    "RawTransaction",
    "RawTransactionIntent",
    "TokenTransferIntent",
    "build_intent_call_data",
    "generate_paymaster_data",
    "SessionKey",
    "InvalidUserOperation",
    "UserOperation",
    "create_intent_user_operation",
    "get_user_operation_hash",
    "pack_user_operation",
    "sign_user_operation",
]

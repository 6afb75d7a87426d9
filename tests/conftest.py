import pytest

from config import SessionConfig, WalletConfig
from session_key import SessionKey

CLIENT_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CLIENT_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
SESSION_PRIVATE_KEY = "0x" + "00" * 31 + "01"
SESSION_ADDRESS = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
USER_SWA = "0x61795557B50DC229199cE51c46935d7eC560c52F"


@pytest.fixture
def wallet_config():
    return WalletConfig(
        client_swa=CLIENT_ADDRESS,
        client_private_key=CLIENT_PRIVATE_KEY,
        environment="SANDBOX",
        auth_token="test-auth-token",
    )


@pytest.fixture
def session_key():
    return SessionKey.from_private_key(SESSION_PRIVATE_KEY)


@pytest.fixture
def session_config(session_key):
    return SessionConfig(
        session_priv_key=session_key.private_key_hex_with_0x,
        session_pub_key=session_key.uncompressed_public_key_hex_with_0x,
        user_swa=USER_SWA,
    )


@pytest.fixture
def chains():
    return [
        {
            "caip_id": "eip155:137",
            "network_name": "POLYGON",
            "chain_id": "137",
            "sponsorship_enabled": False,
            "gsn_enabled": False,
            "type": "EVM",
        },
        {
            "caip_id": "eip155:8453",
            "network_name": "BASE",
            "chain_id": "8453",
            "sponsorship_enabled": True,
            "gsn_enabled": False,
            "type": "EVM",
        },
    ]

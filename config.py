"""
Configuration for Okto wallet operations
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Any

# Call data constants
EXECUTE_USEROP_FUNCTION_SELECTOR = bytes.fromhex("8dd7712f")
INITIATE_JOB_SIGNATURE = "initiateJob(uint256,address,address,address,bytes,bytes,bytes,string)"
USEROP_VALUE = 0
FEE_PAYER_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_ADDRESS = FEE_PAYER_ADDRESS

HOURS_IN_SECONDS = 60 * 60
PAYMASTER_VALIDITY_HOURS = 6

# Fixed fee values used for the authenticate operation on the Okto chain
OKTO_CHAIN_MAX_FEE_PER_GAS = "0xBA43B7400"

DEFAULT_ENVIRONMENT = "SANDBOX"
DEFAULT_REQUEST_TIMEOUT = 30


@dataclass(frozen=True)
class NetworkConfig:
    """Contract addresses and endpoints of one Okto deployment"""
    name: str
    paymaster_address: str
    job_manager_address: str
    entry_point_address: str
    chain_id: int
    api_base_url: str
    rpc_url: Optional[str]
    sign_message_mpc_threshold: int


# DO NOT CHANGE: these are contract addresses on the deployed system
ENV_CONFIG: Dict[str, NetworkConfig] = {
    "STAGING": NetworkConfig(
        name="STAGING",
        paymaster_address="0xc2D31Cdc6EFd02F85Ab943c4587f8D60E6E15F9c",
        job_manager_address="0x57820589F31a9e4a34A0299Ea4aDe7c536139682",
        entry_point_address="0x322eF240AD89d19a50Ca092CF70De9603bf6778E",
        chain_id=124736089,
        api_base_url="https://sandbox-api.okto.tech",
        rpc_url="https://sandbox-okto-gateway.oktostage.com/rpc",
        sign_message_mpc_threshold=3,
    ),
    "SANDBOX": NetworkConfig(
        name="SANDBOX",
        paymaster_address="0x74324fA6Fa67b833dfdea4C1b3A9898574d076e3",
        job_manager_address="0x0543aD80b41C5f5956d34503668CDb965deCB617",
        entry_point_address="0xCa5b1b0d3893b5152014fD5B519FF50f7C40f9da",
        chain_id=1802466136,
        api_base_url="https://sandbox-api.okto.tech",
        rpc_url="https://sandbox-okto-gateway.oktostage.com/rpc",
        sign_message_mpc_threshold=2,
    ),
    "PRODUCTION": NetworkConfig(
        name="PRODUCTION",
        paymaster_address="0xB0E2BD2EFb99F982F8cCB8e6737A572B3B0eCE11",
        job_manager_address="0x7F1E1e98Dde775Fae0d340D3E5D28004Db58A0d3",
        entry_point_address="0x0b643Bcd21a72b10075F1938Ebebba6E077A1742",
        chain_id=8088,
        api_base_url="https://apigw.okto.tech",
        rpc_url=None,
        sign_message_mpc_threshold=2,
    ),
}


@dataclass(frozen=True)
class GasLimits:
    """Default gas limits and fees for UserOperations"""
    call_gas_limit: int = 600_000
    verification_gas_limit: int = 400_000
    pre_verification_gas: int = 100_000
    max_fee_per_gas: int = 4_000_000_000
    max_priority_fee_per_gas: int = 4_000_000_000
    paymaster_post_op_gas_limit: int = 200_000
    paymaster_verification_gas_limit: int = 200_000


def get_network_config(environment: Optional[str] = None) -> NetworkConfig:
    """Resolve a deployment by name, defaulting to SANDBOX"""
    name = (environment or DEFAULT_ENVIRONMENT).strip().upper()
    try:
        return ENV_CONFIG[name]
    except KeyError:
        raise ValueError(f"Unknown Okto environment: {environment}") from None


@dataclass
class SessionConfig:
    """Persisted session of an authenticated user"""
    session_priv_key: str
    session_pub_key: str
    user_swa: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionConfig":
        # older scripts spell the public key field "sessionPubkey"
        pub_key = data.get("sessionPubKey", data.get("sessionPubkey"))
        if not data.get("sessionPrivKey") or not pub_key or not data.get("userSWA"):
            raise ValueError("Session config requires sessionPrivKey, sessionPubKey and userSWA")
        return cls(
            session_priv_key=data["sessionPrivKey"],
            session_pub_key=pub_key,
            user_swa=data["userSWA"],
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "sessionPrivKey": self.session_priv_key,
            "sessionPubKey": self.session_pub_key,
            "userSWA": self.user_swa,
        }


@dataclass
class WalletConfig:
    """Configuration for Okto wallet operations"""
    client_swa: str
    client_private_key: str
    environment: str = DEFAULT_ENVIRONMENT
    auth_token: Optional[str] = None
    gas_limits: GasLimits = field(default_factory=GasLimits)
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    rpc_url: Optional[str] = None
    # EIP-191 prefix the UserOp and paymaster hashes before signing
    personal_sign: bool = False

    def __post_init__(self):
        self.network = get_network_config(self.environment)
        self.environment = self.network.name
        if self.rpc_url is None:
            self.rpc_url = self.network.rpc_url

    @classmethod
    def from_env(cls) -> "WalletConfig":
        """Build configuration from OKTO_* environment variables"""
        client_swa = os.environ.get('OKTO_CLIENT_SWA')
        if not client_swa:
            raise ValueError("OKTO_CLIENT_SWA environment variable is required")

        client_private_key = os.environ.get('OKTO_CLIENT_PRIVATE_KEY')
        if not client_private_key:
            raise ValueError("OKTO_CLIENT_PRIVATE_KEY environment variable is required")

        return cls(
            client_swa=client_swa,
            client_private_key=client_private_key,
            environment=os.environ.get('OKTO_ENVIRONMENT') or DEFAULT_ENVIRONMENT,
            auth_token=os.environ.get('OKTO_AUTH_TOKEN') or None,
            rpc_url=os.environ.get('OKTO_RPC_URL') or None,
        )

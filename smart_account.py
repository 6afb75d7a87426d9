"""
Main Okto wallet service orchestration
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from auth import generate_auth_payload, generate_sign_message_payload, get_authorization_token
from config import SessionConfig, WalletConfig
from gateway import GatewayError, OktoGatewayClient
from intents import (
    Intent,
    IntentType,
    NftTransferIntent,
    RawTransactionIntent,
    TokenTransferIntent,
    build_intent_call_data,
    find_chain,
    intent_details,
)
from paymaster import client_paymaster_data
from session_key import SessionKey
from user_operations import (
    UserOperation,
    create_intent_user_operation,
    generate_nonce,
    sign_user_operation,
)

logger = logging.getLogger(__name__)


class OktoWalletService:
    """Builds, signs and submits intents on behalf of an authenticated session"""

    def __init__(
        self,
        config: WalletConfig,
        session_config: SessionConfig,
        gateway: Optional[OktoGatewayClient] = None,
        refresh_gas_price: bool = False,
    ):
        self.config = config
        self.session_config = session_config
        self.refresh_gas_price = refresh_gas_price
        if gateway is None:
            auth_token = config.auth_token or get_authorization_token(session_config)
            gateway = OktoGatewayClient(config, auth_token=auth_token)
        self.gateway = gateway

        logger.info(f"Okto wallet service initialized for {session_config.user_swa} on {config.environment}")

    async def transfer_token(self, intent: TokenTransferIntent) -> str:
        """Transfer native or ERC-20 tokens from the user's account, returns the job id"""
        return await self._execute_intent(intent)

    async def transfer_nft(self, intent: NftTransferIntent) -> str:
        return await self._execute_intent(intent)

    async def raw_transaction(self, intent: RawTransactionIntent) -> str:
        return await self._execute_intent(intent)

    async def estimate_and_execute(self, intent: Intent, fee_payer_address: Optional[str] = None) -> str:
        """Let the gateway build the UserOperation, then sign and execute it.

        `fee_payer_address` is only sent when sponsorship is enabled for the
        chain; omitting it makes the user's account pay for gas.
        """
        chains = await asyncio.to_thread(self.gateway.get_chains)
        find_chain(chains, intent.caip2_id)

        nonce = generate_nonce()
        payload = self._estimate_payload(intent, nonce, fee_payer_address)
        user_op = await asyncio.to_thread(self.gateway.estimate_user_operation, payload)
        return await self._sign_and_execute(user_op)

    async def wait_for_job(self, job_id: str, intent_type, **polling) -> Dict[str, Any]:
        """Block until the order for `job_id` reaches a terminal status"""
        return await asyncio.to_thread(
            self.gateway.wait_for_order, job_id, IntentType(intent_type).value, **polling
        )

    async def sign_message(self, message: str, sign_type: str = "EIP191") -> List[Dict[str, Any]]:
        """Have the MPC signer sign `message` with the user's key"""
        user_keys = await asyncio.to_thread(self.gateway.get_user_keys)
        payload = generate_sign_message_payload(
            user_keys,
            self.session_config,
            message,
            sign_type,
            self.config.network.sign_message_mpc_threshold,
        )
        return await asyncio.to_thread(self.gateway.sign_message, payload)

    async def _execute_intent(self, intent: Intent) -> str:
        chains = await asyncio.to_thread(self.gateway.get_chains)
        nonce = generate_nonce()

        call_data = build_intent_call_data(
            intent,
            chains,
            nonce,
            client_swa=self.config.client_swa,
            user_swa=self.session_config.user_swa,
            job_manager_address=self.config.network.job_manager_address,
        )
        paymaster_data = client_paymaster_data(self.config, nonce)
        user_op = create_intent_user_operation(
            self.session_config.user_swa,
            nonce,
            call_data,
            paymaster_data,
            self.config,
        )

        if self.refresh_gas_price:
            user_op = self._update_gas_prices(user_op)

        return await self._sign_and_execute(user_op)

    async def _sign_and_execute(self, user_op: UserOperation) -> str:
        signed_user_op = await sign_user_operation(
            user_op,
            self.session_config.session_priv_key,
            self.config.network,
            personal_sign=self.config.personal_sign,
        )
        return await asyncio.to_thread(self.gateway.execute_user_operation, signed_user_op)

    def _estimate_payload(self, intent: Intent, nonce: str, fee_payer_address: Optional[str]) -> Dict[str, Any]:
        gas = self.config.gas_limits
        payload = {"type": intent.intent_type.value, "jobId": nonce}
        if fee_payer_address:
            payload["feePayerAddress"] = fee_payer_address
        payload.update({
            "paymasterData": "0x" + client_paymaster_data(self.config, nonce).hex(),
            "gasDetails": {
                "maxFeePerGas": hex(gas.max_fee_per_gas),
                "maxPriorityFeePerGas": hex(gas.max_priority_fee_per_gas),
            },
            "details": intent_details(intent),
        })
        return payload

    def _update_gas_prices(self, user_operation: UserOperation) -> UserOperation:
        """Update UserOperation fees with the gateway's current gas price"""
        gas_prices = self.gateway.get_user_operation_gas_price()
        if gas_prices and 'fast' in gas_prices:
            gas_prices = gas_prices['fast']

        if gas_prices:
            if 'maxFeePerGas' in gas_prices:
                user_operation.max_fee_per_gas = int(gas_prices['maxFeePerGas'], 16)
            if 'maxPriorityFeePerGas' in gas_prices:
                user_operation.max_priority_fee_per_gas = int(gas_prices['maxPriorityFeePerGas'], 16)

        return user_operation


def create_session(
    config: WalletConfig,
    auth_data: Dict[str, Any],
    gateway: Optional[OktoGatewayClient] = None,
) -> SessionConfig:
    """Register a fresh session key for the user identified by `auth_data`"""
    session_key = SessionKey.create()
    payload = generate_auth_payload(auth_data, session_key, config)

    gateway = gateway or OktoGatewayClient(config)
    response = gateway.authenticate(payload)
    user_swa = response.get("userSWA") if isinstance(response, dict) else None
    if not user_swa:
        raise GatewayError("Authenticate response did not contain userSWA")

    logger.info(f"Session {session_key.ethereum_address} registered for {user_swa}")

    return SessionConfig(
        session_priv_key=session_key.private_key_hex_with_0x,
        session_pub_key=session_key.uncompressed_public_key_hex_with_0x,
        user_swa=user_swa,
    )


def create_okto_wallet_service(session_config: SessionConfig) -> OktoWalletService:
    """Create an Okto wallet service configured from the environment"""
    return OktoWalletService(WalletConfig.from_env(), session_config)

"""
Okto API / JSON-RPC gateway client and UserOperation wire-format conversion
"""

import logging
import threading
import uuid
from typing import Any, Dict, List, Optional

import requests
from hexbytes import HexBytes

from auth import signed_request_body
from config import WalletConfig
from user_operations import UserOperation, pad

logger = logging.getLogger(__name__)

FINAL_ORDER_STATUSES = ("SUCCESSFUL", "FAILED", "BUNDLER_DISCARDED")
DEFAULT_POLL_INTERVAL = 5
DEFAULT_MAX_POLL_ATTEMPTS = 60


class GatewayError(Exception):
    """Raised when an Okto endpoint rejects a request or returns an unusable body"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OrderPollingTimeout(GatewayError):
    pass


class OrderPollingCancelled(GatewayError):
    pass


def _hex_int(value: Optional[int]) -> Optional[str]:
    return None if value is None else hex(value)


def _hex_bytes(value: Optional[bytes]) -> Optional[str]:
    return None if value is None else "0x" + bytes(value).hex()


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, int):
        return value
    value = str(value)
    return int(value, 16) if value.lower().startswith("0x") else int(value)


def _parse_bytes(value: Any) -> Optional[bytes]:
    return None if value is None else bytes(HexBytes(value))


def convert_user_operation_to_gateway_format(user_op: UserOperation) -> Dict[str, str]:
    """Convert a UserOperation to the camelCase hex format the gateway expects"""
    gateway_dict = {
        "sender": user_op.sender,
        "nonce": None if user_op.nonce is None else "0x" + pad(user_op.nonce, 32).hex(),
        "paymaster": user_op.paymaster,
        "callGasLimit": _hex_int(user_op.call_gas_limit),
        "verificationGasLimit": _hex_int(user_op.verification_gas_limit),
        "preVerificationGas": _hex_int(user_op.pre_verification_gas),
        "maxFeePerGas": _hex_int(user_op.max_fee_per_gas),
        "maxPriorityFeePerGas": _hex_int(user_op.max_priority_fee_per_gas),
        "paymasterPostOpGasLimit": _hex_int(user_op.paymaster_post_op_gas_limit),
        "paymasterVerificationGasLimit": _hex_int(user_op.paymaster_verification_gas_limit),
        "callData": _hex_bytes(user_op.call_data),
        "paymasterData": _hex_bytes(user_op.paymaster_data),
        "signature": _hex_bytes(user_op.signature),
    }
    return {key: value for key, value in gateway_dict.items() if value is not None}


def parse_user_operation(data: Dict[str, Any]) -> UserOperation:
    """Build a UserOperation from the gateway's camelCase hex format"""
    return UserOperation(
        sender=data.get("sender"),
        nonce=_parse_int(data.get("nonce")),
        call_data=_parse_bytes(data.get("callData")),
        call_gas_limit=_parse_int(data.get("callGasLimit")),
        verification_gas_limit=_parse_int(data.get("verificationGasLimit")),
        pre_verification_gas=_parse_int(data.get("preVerificationGas")),
        max_fee_per_gas=_parse_int(data.get("maxFeePerGas")),
        max_priority_fee_per_gas=_parse_int(data.get("maxPriorityFeePerGas")),
        paymaster=data.get("paymaster"),
        paymaster_verification_gas_limit=_parse_int(data.get("paymasterVerificationGasLimit")),
        paymaster_post_op_gas_limit=_parse_int(data.get("paymasterPostOpGasLimit")),
        paymaster_data=_parse_bytes(data.get("paymasterData")),
        signature=_parse_bytes(data.get("signature")) if data.get("signature") not in (None, "0x") else None,
    )


class OktoGatewayClient:
    """Client for the Okto REST API and JSON-RPC gateway"""

    def __init__(self, config: WalletConfig, auth_token: Optional[str] = None):
        self.config = config
        self.auth_token = auth_token or config.auth_token

    # Explorer

    def get_chains(self) -> List[Dict[str, Any]]:
        """Networks enabled for the client on the developer dashboard"""
        data = self._get("/api/oc/v1/supported/networks")
        return data.get("network", [])

    def get_tokens(self) -> Dict[str, Any]:
        return self._get("/api/oc/v1/supported/tokens")

    def get_account(self) -> Any:
        return self._get("/api/oc/v1/wallets")

    def get_portfolio(self) -> Dict[str, Any]:
        return self._get("/api/oc/v1/aggregated-portfolio")

    def get_portfolio_activity(self) -> Dict[str, Any]:
        return self._get("/api/oc/v1/portfolio/activity")

    def read_contract_data(self, caip2_id: str, data: Dict[str, Any]) -> Any:
        """Call a view function on a supported chain"""
        return self._post("/api/oc/v1/readContractData", {"caip2Id": caip2_id, "data": data})

    def verify_session(self) -> Dict[str, Any]:
        """Details of the session behind the current auth token"""
        return self._get("/api/oc/v1/verify-session")

    # Intents

    def estimate_user_operation(self, payload: Dict[str, Any]) -> UserOperation:
        """Ask the gateway to build an unsigned UserOperation for an intent"""
        logger.info(f"Estimating {payload.get('type')} for job {payload.get('jobId')}")
        data = self._post("/api/oc/v1/estimate", payload)
        user_op = data.get("userOps") if isinstance(data, dict) else None
        if not user_op:
            raise GatewayError("Estimate response did not contain a UserOperation")
        return parse_user_operation(user_op)

    def execute_user_operation(self, user_op: UserOperation) -> str:
        """Submit a signed UserOperation and return its job id"""
        if not user_op.signature:
            raise GatewayError("UserOperation must be signed before execution")
        user_op_dict = convert_user_operation_to_gateway_format(user_op)
        logger.info(f"Executing UserOp for {user_op.sender}")
        result = self._rpc("execute", [user_op_dict])
        if not isinstance(result, dict) or "jobId" not in result:
            raise GatewayError(f"Execute response did not contain a jobId: {result}")
        logger.info(f"UserOp accepted with job id {result['jobId']}")
        return result["jobId"]

    def get_user_operation_gas_price(self) -> Dict[str, str]:
        return self._rpc("getUserOperationGasPrice", [])

    # Authentication and signing

    def authenticate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Calling authenticate...")
        return self._post("/api/oc/v1/authenticate", payload, authorized=False)

    def post_signed_request(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a payload signed with the client key (OTP flows)"""
        body = signed_request_body(payload, self.config.client_private_key)
        return self._post(path, body, authorized=False)

    def send_email_otp(self, email: str) -> Dict[str, Any]:
        return self.post_signed_request("/api/oc/v1/authenticate/email", {
            "email": email,
            "client_swa": self.config.client_swa,
        })

    def resend_email_otp(self, email: str, token: str) -> Dict[str, Any]:
        """Resend an email OTP; `token` comes from the send_email_otp response"""
        return self.post_signed_request("/api/oc/v1/authenticate/email", {
            "email": email,
            "token": token,
            "client_swa": self.config.client_swa,
        })

    def verify_email_otp(self, email: str, token: str, otp: str) -> str:
        data = self.post_signed_request("/api/oc/v1/authenticate/email/verify", {
            "email": email,
            "token": token,
            "otp": otp,
            "client_swa": self.config.client_swa,
        })
        return self._auth_token_from(data)

    def send_whatsapp_otp(self, whatsapp_number: str, country_short_name: str) -> Dict[str, Any]:
        return self.post_signed_request("/api/oc/v1/authenticate/whatsapp", {
            "whatsapp_number": whatsapp_number,
            "country_short_name": country_short_name,
            "client_swa": self.config.client_swa,
        })

    def resend_whatsapp_otp(self, whatsapp_number: str, country_short_name: str, token: str) -> Dict[str, Any]:
        return self.post_signed_request("/api/oc/v1/authenticate/whatsapp", {
            "whatsapp_number": whatsapp_number,
            "country_short_name": country_short_name,
            "token": token,
            "client_swa": self.config.client_swa,
        })

    def verify_whatsapp_otp(self, whatsapp_number: str, country_short_name: str, token: str, otp: str) -> str:
        data = self.post_signed_request("/api/oc/v1/authenticate/whatsapp/verify", {
            "whatsapp_number": whatsapp_number,
            "country_short_name": country_short_name,
            "token": token,
            "otp": otp,
            "client_swa": self.config.client_swa,
        })
        return self._auth_token_from(data)

    @staticmethod
    def _auth_token_from(data: Dict[str, Any]) -> str:
        if not data.get("auth_token"):
            raise GatewayError("OTP verification did not return an auth token")
        return data["auth_token"]

    def get_user_keys(self) -> Dict[str, Any]:
        return self._rpc("getUserKeys", [])

    def sign_message(self, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._post("/api/oc/v1/signMessage", payload)

    # Orders

    def get_order(self, intent_id: str, intent_type: str) -> Optional[Dict[str, Any]]:
        data = self._get("/api/oc/v1/orders", params={"intent_id": intent_id, "intent_type": intent_type})
        items = data.get("items") or []
        return items[0] if items else None

    def wait_for_order(
        self,
        intent_id: str,
        intent_type: str,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        """Poll the order until it reaches a terminal status"""
        cancel_event = cancel_event or threading.Event()

        for attempt in range(1, max_attempts + 1):
            if cancel_event.is_set():
                raise OrderPollingCancelled(f"Polling for order {intent_id} was cancelled")

            order = self.get_order(intent_id, intent_type)
            status = order.get("status") if order else None
            logger.info(f"Order {intent_id} status: {status} (attempt {attempt}/{max_attempts})")

            if status in FINAL_ORDER_STATUSES:
                logger.info(f"Final status reached for {intent_id}: {status}")
                return order

            if attempt < max_attempts and cancel_event.wait(interval):
                raise OrderPollingCancelled(f"Polling for order {intent_id} was cancelled")

        raise OrderPollingTimeout(f"Order {intent_id} not final after {max_attempts} attempts")

    # Transport

    def _headers(self, authorized: bool = True) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if authorized:
            if not self.auth_token:
                raise GatewayError("An Okto auth token is required for this request")
            headers['Authorization'] = f"Bearer {self.auth_token}"
        return headers

    def _url(self, path: str) -> str:
        return self.config.network.api_base_url.rstrip("/") + path

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        response = requests.get(
            self._url(path),
            params=params,
            headers=self._headers(),
            timeout=self.config.request_timeout,
        )
        return self._unwrap(self._handle_response(response))

    def _post(self, path: str, payload: Dict[str, Any], authorized: bool = True) -> Any:
        response = requests.post(
            self._url(path),
            json=payload,
            headers=self._headers(authorized),
            timeout=self.config.request_timeout,
        )
        return self._unwrap(self._handle_response(response))

    def _rpc(self, method: str, params: List) -> Any:
        """Make a JSON-RPC request to the Okto gateway"""
        if not self.config.rpc_url:
            raise GatewayError(f"No JSON-RPC gateway configured for {self.config.environment}")

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": str(uuid.uuid4()),
        }
        response = requests.post(
            self.config.rpc_url,
            json=payload,
            headers=self._headers(),
            timeout=self.config.request_timeout,
        )
        body = self._handle_response(response)

        if body.get('error'):
            error = body['error']
            message = error.get('message', 'Unknown error') if isinstance(error, dict) else str(error)
            logger.error(f"Gateway error on {method}: {message}")
            raise GatewayError(message, status_code=response.status_code)
        if 'result' not in body:
            raise GatewayError(f"Malformed JSON-RPC response for {method}")
        return body['result']

    @staticmethod
    def _handle_response(response: requests.Response) -> Dict[str, Any]:
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            error = body.get('error') if isinstance(body, dict) else None
            message = error.get('message') if isinstance(error, dict) else (str(error) if error else None)
            message = message or response.text or f"HTTP {response.status_code}"
            logger.error(f"HTTP error {response.status_code}: {message}")
            raise GatewayError(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError:
            raise GatewayError("Invalid JSON response", status_code=response.status_code) from None
        if not isinstance(body, dict):
            raise GatewayError("Unexpected response body", status_code=response.status_code)
        return body

    @staticmethod
    def _unwrap(body: Dict[str, Any]) -> Any:
        if "data" in body:
            return body["data"]
        if "result" in body:
            return body["result"]
        return body

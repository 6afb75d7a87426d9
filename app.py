"""
Okto Wallet command-line runner

Creates sessions, lists chains, submits intents and follows orders:
1. `session` authenticates (provider token, email or WhatsApp OTP) and writes the session file
2. `token-transfer`, `nft-transfer`, `raw-transaction` submit intents signed with the session key
3. `order` fetches or waits for the order behind a job id
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv

from config import SessionConfig, WalletConfig
from gateway import GatewayError, OktoGatewayClient
from intents import (
    ChainNotSupported,
    IntentType,
    NftTransferIntent,
    RawTransaction,
    RawTransactionIntent,
    TokenTransferIntent,
)
from smart_account import OktoWalletService, create_session
from user_operations import InvalidUserOperation

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_SESSION_FILE = "session.json"


def load_session(path: str) -> SessionConfig:
    """Read a persisted session (sessionPrivKey, sessionPubKey, userSWA)"""
    with open(path) as f:
        return SessionConfig.from_dict(json.load(f))


def save_session(path: str, session_config: SessionConfig) -> None:
    with open(path, "w") as f:
        json.dump(session_config.to_dict(), f, indent=2)


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="okto-wallet", description=__doc__.splitlines()[1])
    parser.add_argument(
        "--session-file",
        default=os.environ.get("OKTO_SESSION_FILE", DEFAULT_SESSION_FILE),
        help="Path of the persisted session JSON",
    )
    parser.add_argument("--personal-sign", action="store_true",
                        help="EIP-191 prefix the UserOp and paymaster hashes before signing")
    subparsers = parser.add_subparsers(dest="command", required=True)

    session = subparsers.add_parser("session", help="Authenticate and create a session key")
    login = session.add_mutually_exclusive_group(required=True)
    login.add_argument("--id-token", help="Provider token (e.g. Google idToken)")
    login.add_argument("--email", help="Log in with an OTP sent to this email")
    login.add_argument("--whatsapp", help="Log in with an OTP sent to this WhatsApp number")
    session.add_argument("--provider", default="google", help="Provider of --id-token")
    session.add_argument("--country", default="IN", help="Country short name of the WhatsApp number")

    subparsers.add_parser("chains", help="List networks enabled for this client")

    token = subparsers.add_parser("token-transfer", help="Transfer native or ERC-20 tokens")
    token.add_argument("--caip2-id", required=True)
    token.add_argument("--recipient", required=True)
    token.add_argument("--token", default="", help="Token address, empty for the native token")
    token.add_argument("--amount", type=int, required=True, help="Amount in base units")
    _add_estimate_options(token)

    nft = subparsers.add_parser("nft-transfer", help="Transfer an ERC-721 or ERC-1155 token")
    nft.add_argument("--caip2-id", required=True)
    nft.add_argument("--nft-id", required=True)
    nft.add_argument("--recipient", required=True)
    nft.add_argument("--collection", required=True)
    nft.add_argument("--nft-type", default="ERC721", choices=["ERC721", "ERC1155"])
    nft.add_argument("--amount", type=int, default=1)
    _add_estimate_options(nft)

    raw = subparsers.add_parser("raw-transaction", help="Execute a raw EVM transaction")
    raw.add_argument("--caip2-id", required=True)
    raw.add_argument("--to", required=True)
    raw.add_argument("--data", default="0x")
    raw.add_argument("--value", type=int, default=0)
    raw.add_argument("--from", dest="from_address", help="Defaults to the session's userSWA")
    _add_estimate_options(raw)

    order = subparsers.add_parser("order", help="Show the order for a job id")
    order.add_argument("--job-id", required=True)
    order.add_argument("--intent-type", required=True, choices=[t.value for t in IntentType])
    order.add_argument("--wait", action="store_true", help="Poll until the order is final")
    order.add_argument("--interval", type=float, default=5)
    order.add_argument("--max-attempts", type=int, default=60)

    return parser


def _add_estimate_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--estimate", action="store_true",
                        help="Build the UserOp through the estimate endpoint")
    parser.add_argument("--fee-payer", help="Sponsor address (estimate only, sponsorship enabled)")
    parser.add_argument("--wait", action="store_true", help="Poll the order until it is final")


def build_intent(args: argparse.Namespace, session_config: SessionConfig):
    if args.command == "token-transfer":
        return TokenTransferIntent(
            caip2_id=args.caip2_id,
            recipient=args.recipient,
            token=args.token,
            amount=args.amount,
        )
    if args.command == "nft-transfer":
        return NftTransferIntent(
            caip2_id=args.caip2_id,
            nft_id=args.nft_id,
            recipient=args.recipient,
            collection_address=args.collection,
            nft_type=args.nft_type,
            amount=args.amount,
        )
    if args.command == "raw-transaction":
        transaction = RawTransaction(
            from_address=args.from_address or session_config.user_swa,
            to=args.to,
            data=args.data,
            value=args.value,
        )
        return RawTransactionIntent(caip2_id=args.caip2_id, transactions=(transaction,))
    raise ValueError(f"Unknown intent command {args.command}")


async def submit_intent(service: OktoWalletService, args: argparse.Namespace) -> Dict[str, Any]:
    """Submit the intent described by the CLI arguments and return the job summary"""
    intent = build_intent(args, service.session_config)

    if args.estimate:
        job_id = await service.estimate_and_execute(intent, fee_payer_address=args.fee_payer)
    elif args.command == "token-transfer":
        job_id = await service.transfer_token(intent)
    elif args.command == "nft-transfer":
        job_id = await service.transfer_nft(intent)
    else:
        job_id = await service.raw_transaction(intent)

    result = {"jobId": job_id, "type": intent.intent_type.value, "details": intent.details()}
    if args.wait:
        result["order"] = await service.wait_for_job(job_id, intent.intent_type)
    return result


def otp_login(gateway: OktoGatewayClient, args: argparse.Namespace, prompt: Callable[[str], str] = input) -> str:
    """Run the email or WhatsApp OTP exchange and return the Okto auth token"""
    destination = args.email or args.whatsapp
    if args.email:
        response = gateway.send_email_otp(args.email)
    else:
        response = gateway.send_whatsapp_otp(args.whatsapp, args.country)
    token = response.get("token")
    if not token:
        raise GatewayError(f"No OTP token returned for {destination}")
    logger.info(f"OTP sent to {destination}")

    otp = prompt("Enter the OTP (or 'resend'): ").strip()
    while otp.lower() == "resend":
        if args.email:
            response = gateway.resend_email_otp(args.email, token)
        else:
            response = gateway.resend_whatsapp_otp(args.whatsapp, args.country, token)
        token = response.get("token") or token
        logger.info(f"OTP resent to {destination}")
        otp = prompt("Enter the OTP (or 'resend'): ").strip()

    if args.email:
        return gateway.verify_email_otp(args.email, token, otp)
    return gateway.verify_whatsapp_otp(args.whatsapp, args.country, token, otp)


def session_auth_data(args: argparse.Namespace, config: WalletConfig) -> Dict[str, str]:
    if args.id_token:
        return {"idToken": args.id_token, "provider": args.provider}
    # OTP logins authenticate with the Okto token returned by the verify step
    return {"idToken": otp_login(OktoGatewayClient(config), args), "provider": "okto"}


def run(args: argparse.Namespace, config: WalletConfig) -> Any:
    if args.command == "session":
        session_config = create_session(config, session_auth_data(args, config))
        save_session(args.session_file, session_config)
        logger.info(f"Session written to {args.session_file}")
        return session_config.to_dict()

    session_config = load_session(args.session_file)
    service = OktoWalletService(config, session_config)

    if args.command == "chains":
        return service.gateway.get_chains()

    if args.command == "order":
        if args.wait:
            return asyncio.run(service.wait_for_job(
                args.job_id,
                args.intent_type,
                interval=args.interval,
                max_attempts=args.max_attempts,
            ))
        return service.gateway.get_order(args.job_id, args.intent_type)

    return asyncio.run(submit_intent(service, args))


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = WalletConfig.from_env()
        if args.personal_sign:
            config.personal_sign = True
        print_json(run(args, config))
    except (GatewayError, ChainNotSupported, InvalidUserOperation, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

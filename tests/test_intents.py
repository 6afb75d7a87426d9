import json
from pathlib import Path

import pytest
from eth_abi import decode
from web3 import Web3

import intents
from config import ENV_CONFIG, ZERO_ADDRESS
from intents import (
    EXECUTE_CALL_TYPES,
    INITIATE_JOB_SELECTOR,
    INITIATE_JOB_TYPES,
    ChainNotSupported,
    IntentType,
    NftTransferIntent,
    RawTransaction,
    RawTransactionIntent,
    TokenTransferIntent,
    build_intent_call_data,
    encode_gsn_data,
    encode_job_parameters,
    encode_policy_info,
    find_chain,
    intent_details,
)
from user_operations import nonce_to_int

CAPTURED = json.loads((Path(__file__).parent / "data" / "sandbox_user_operations.json").read_text())
# initiateJob as deployed on the sandbox job manager, before the feePayer argument
LEGACY_INITIATE_JOB_TYPES = ["uint256", "address", "address", "bytes", "bytes", "bytes", "string"]

JOB_ID = "b9e16100-446f-4050-84ed-a846d2bae528"
CLIENT_SWA = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
USER_SWA = "0x61795557B50DC229199cE51c46935d7eC560c52F"
RECIPIENT = "0x967b26c9e77f2f5e753a2c2a5e4e73c3e2d5a9d6"
JOB_MANAGER = ENV_CONFIG["SANDBOX"].job_manager_address


def _build(intent, chains, **kwargs):
    return build_intent_call_data(intent, chains, JOB_ID, CLIENT_SWA, USER_SWA, JOB_MANAGER, **kwargs)


def _initiate_job_args(call_data):
    selector, target, value, initiate_job = decode(EXECUTE_CALL_TYPES, call_data)
    assert selector == bytes.fromhex("8dd7712f")
    assert target.lower() == JOB_MANAGER.lower()
    assert value == 0
    assert initiate_job[:4] == INITIATE_JOB_SELECTOR
    return decode(INITIATE_JOB_TYPES, initiate_job[4:])


def test_initiate_job_selector():
    signature = "initiateJob(uint256,address,address,address,bytes,bytes,bytes,string)"
    assert INITIATE_JOB_SELECTOR == bytes(Web3.keccak(text=signature)[:4])


def test_intent_type_literals():
    assert [t.value for t in IntentType] == [
        "TOKEN_TRANSFER",
        "NFT_TRANSFER",
        "RAW_TRANSACTION",
        "NFT_MINT",
        "NFT_CREATE_COLLECTION",
    ]


def test_find_chain_is_case_insensitive(chains):
    assert find_chain(chains, "EIP155:137")["network_name"] == "POLYGON"


def test_find_chain_missing(chains):
    with pytest.raises(ChainNotSupported, match="Chain Not Supported: eip155:1"):
        find_chain(chains, "eip155:1")


def test_unknown_chain_fails_before_encoding(chains, monkeypatch):
    calls = []
    monkeypatch.setattr(intents, "encode", lambda *args: calls.append(args))
    intent = TokenTransferIntent("eip155:10", RECIPIENT, "", 1)

    with pytest.raises(ChainNotSupported):
        _build(intent, chains)
    assert calls == []


def test_token_transfer_call_data(chains):
    intent = TokenTransferIntent("eip155:137", RECIPIENT, "", 10**15)
    job_id, client, user, fee_payer, policy, gsn, params, intent_type = _initiate_job_args(_build(intent, chains))

    assert job_id == nonce_to_int(JOB_ID)
    assert client.lower() == CLIENT_SWA.lower()
    assert user.lower() == USER_SWA.lower()
    assert fee_payer == ZERO_ADDRESS
    assert decode(["(bool,bool)"], policy) == ((False, False),)
    assert decode(["(bool,string[],(string,string,string,uint256)[])"], gsn) == ((False, (), ()),)
    assert decode(["(string,string,string,uint256)"], params) == (("eip155:137", RECIPIENT, "", 10**15),)
    assert intent_type == "TOKEN_TRANSFER"


def test_policy_info_follows_chain_flags(chains):
    intent = TokenTransferIntent("eip155:8453", RECIPIENT, "", 1)
    policy = _initiate_job_args(_build(intent, chains))[4]
    assert decode(["(bool,bool)"], policy) == ((False, True),)


def test_fee_payer_is_encoded(chains):
    fee_payer = "0xdb9B5bbf015047D84417df078c8F06fDb6D71b76"
    intent = TokenTransferIntent("eip155:137", RECIPIENT, "", 1)
    args = _initiate_job_args(_build(intent, chains, fee_payer_address=fee_payer))
    assert args[3].lower() == fee_payer.lower()


def test_nft_transfer_call_data(chains):
    intent = NftTransferIntent(
        caip2_id="eip155:137",
        nft_id="7",
        recipient=RECIPIENT,
        collection_address="0x68ee2dddcbb1c03df5fc4b6235d993b8b4d1d0e5",
        nft_type="ERC721",
    )
    args = _initiate_job_args(_build(intent, chains))

    assert decode(["(string,string,string,string,string,uint256)"], args[6]) == ((
        "eip155:137",
        "7",
        RECIPIENT,
        "0x68ee2dddcbb1c03df5fc4b6235d993b8b4d1d0e5",
        "ERC721",
        1,
    ),)
    assert decode(["(bool,string[],(string,string,string,string,string,uint256)[])"], args[5]) == ((False, (), ()),)
    assert args[7] == "NFT_TRANSFER"


def test_raw_transaction_call_data(chains):
    transaction = RawTransaction(from_address=USER_SWA, to=RECIPIENT, data="0xabcdef", value=1000)
    intent = RawTransactionIntent("eip155:137", [transaction])
    args = _initiate_job_args(_build(intent, chains))

    ((caip2_id, transactions),) = decode(["(string,bytes[])"], args[6])
    assert caip2_id == "eip155:137"
    assert transactions == (transaction.to_bytes(),)
    assert json.loads(transactions[0]) == {"from": USER_SWA, "to": RECIPIENT, "data": "0xabcdef", "value": 1000}
    assert args[7] == "RAW_TRANSACTION"


def test_raw_transaction_json_is_compact():
    transaction = RawTransaction(from_address=USER_SWA, to=RECIPIENT)
    assert b" " not in transaction.to_bytes()
    assert transaction.to_json()["value"] == "0x0"
    assert transaction.to_json()["data"] == "0x"


def test_gsn_data_for_raw_transactions():
    raw = RawTransactionIntent("eip155:137", [RawTransaction(USER_SWA, RECIPIENT)])
    assert decode(["(bool,string[],(string,bytes[])[])"], encode_gsn_data(raw)) == ((False, (), ()),)


def test_policy_info_defaults_to_false():
    assert decode(["(bool,bool)"], encode_policy_info({})) == ((False, False),)


@pytest.mark.parametrize("amount", [-1, True, 1.5])
def test_token_transfer_rejects_bad_amount(amount):
    with pytest.raises(ValueError):
        TokenTransferIntent("eip155:137", RECIPIENT, "", amount)


def test_token_transfer_requires_recipient():
    with pytest.raises(ValueError):
        TokenTransferIntent("eip155:137", "", "", 1)


def test_raw_transaction_intent_requires_transactions():
    with pytest.raises(ValueError):
        RawTransactionIntent("eip155:137", [])


def test_intent_details():
    token = TokenTransferIntent("eip155:137", RECIPIENT, "0xtoken", 25)
    assert intent_details(token) == {
        "caip2Id": "eip155:137",
        "recipientWalletAddress": RECIPIENT,
        "tokenAddress": "0xtoken",
        "amount": "25",
    }

    nft = NftTransferIntent("eip155:137", "7", RECIPIENT, "0xcollection", "ERC1155", 3)
    assert intent_details(nft)["nftType"] == "ERC1155"
    assert intent_details(nft)["amount"] == "3"

    raw = RawTransactionIntent("eip155:137", [RawTransaction(USER_SWA, RECIPIENT, value=16)])
    assert intent_details(raw)["transactions"][0]["value"] == "0x10"


def test_captured_raw_transaction_call_data():
    captured = CAPTURED["rawTransaction"]
    call_data = bytes.fromhex(captured["unsignedUserOp"]["callData"][2:])
    selector, job_manager, value, initiate_job = decode(EXECUTE_CALL_TYPES, call_data)

    assert selector.hex() == "8dd7712f"
    assert job_manager.lower() == CAPTURED["network"]["jobManagerAddress"].lower()
    assert value == 0
    assert initiate_job[:4].hex() == "8fa61ac0"

    tx = captured["transaction"]
    intent = RawTransactionIntent(captured["caip2Id"], [
        RawTransaction(tx["from"], tx["to"], tx["data"], tx["value"]),
    ])
    job_id, client_swa, user_swa, policy_info, gsn_data, job_parameters, intent_type = decode(
        LEGACY_INITIATE_JOB_TYPES, initiate_job[4:]
    )

    assert job_id == nonce_to_int("20ae9739-5835-40b5-a091-d3cbd7f63012")
    assert client_swa.lower() == CAPTURED["clientSWA"]
    assert policy_info == encode_policy_info({})
    assert gsn_data == encode_gsn_data(intent)
    assert job_parameters == encode_job_parameters(intent)
    assert intent_type == "RAW_TRANSACTION"

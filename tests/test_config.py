import pytest

from config import (
    ENV_CONFIG,
    GasLimits,
    SessionConfig,
    WalletConfig,
    get_network_config,
)


def test_network_lookup():
    assert get_network_config().name == "SANDBOX"
    assert get_network_config(" production ").chain_id == 8088
    assert get_network_config("staging").sign_message_mpc_threshold == 3


def test_unknown_network():
    with pytest.raises(ValueError, match="Unknown Okto environment"):
        get_network_config("mainnet")


def test_environments_have_distinct_contracts():
    paymasters = {network.paymaster_address for network in ENV_CONFIG.values()}
    entry_points = {network.entry_point_address for network in ENV_CONFIG.values()}
    assert len(paymasters) == len(entry_points) == 3


def test_gas_defaults():
    gas = GasLimits()
    assert (gas.call_gas_limit, gas.verification_gas_limit, gas.pre_verification_gas) == (600_000, 400_000, 100_000)
    assert gas.max_fee_per_gas == gas.max_priority_fee_per_gas == 4_000_000_000
    assert gas.paymaster_post_op_gas_limit == gas.paymaster_verification_gas_limit == 200_000


def test_wallet_config_resolves_network():
    config = WalletConfig(client_swa="0x1", client_private_key="0x2", environment="sandbox")
    assert config.environment == "SANDBOX"
    assert config.network is ENV_CONFIG["SANDBOX"]
    assert config.rpc_url == ENV_CONFIG["SANDBOX"].rpc_url
    assert config.personal_sign is False


def test_production_has_no_default_rpc():
    config = WalletConfig(client_swa="0x1", client_private_key="0x2", environment="PRODUCTION")
    assert config.rpc_url is None


def test_wallet_config_from_env(monkeypatch):
    monkeypatch.setenv("OKTO_CLIENT_SWA", "0xclient")
    monkeypatch.setenv("OKTO_CLIENT_PRIVATE_KEY", "0xkey")
    monkeypatch.setenv("OKTO_ENVIRONMENT", "production")
    monkeypatch.setenv("OKTO_AUTH_TOKEN", "token")
    monkeypatch.setenv("OKTO_RPC_URL", "https://rpc.example")

    config = WalletConfig.from_env()

    assert config.client_swa == "0xclient"
    assert config.client_private_key == "0xkey"
    assert config.environment == "PRODUCTION"
    assert config.auth_token == "token"
    assert config.rpc_url == "https://rpc.example"


def test_wallet_config_from_env_defaults(monkeypatch):
    monkeypatch.setenv("OKTO_CLIENT_SWA", "0xclient")
    monkeypatch.setenv("OKTO_CLIENT_PRIVATE_KEY", "0xkey")
    for name in ("OKTO_ENVIRONMENT", "OKTO_AUTH_TOKEN", "OKTO_RPC_URL"):
        monkeypatch.delenv(name, raising=False)

    config = WalletConfig.from_env()
    assert config.environment == "SANDBOX"
    assert config.auth_token is None


@pytest.mark.parametrize("missing", ["OKTO_CLIENT_SWA", "OKTO_CLIENT_PRIVATE_KEY"])
def test_wallet_config_from_env_requires_client(monkeypatch, missing):
    monkeypatch.setenv("OKTO_CLIENT_SWA", "0xclient")
    monkeypatch.setenv("OKTO_CLIENT_PRIVATE_KEY", "0xkey")
    monkeypatch.delenv(missing)

    with pytest.raises(ValueError, match=missing):
        WalletConfig.from_env()


@pytest.mark.parametrize("pub_key_field", ["sessionPubKey", "sessionPubkey"])
def test_session_config_accepts_both_spellings(pub_key_field):
    session = SessionConfig.from_dict({
        "sessionPrivKey": "0xpriv",
        pub_key_field: "0x04pub",
        "userSWA": "0xuser",
    })
    assert session.session_pub_key == "0x04pub"
    assert session.to_dict() == {
        "sessionPrivKey": "0xpriv",
        "sessionPubKey": "0x04pub",
        "userSWA": "0xuser",
    }


def test_session_config_requires_fields():
    with pytest.raises(ValueError):
        SessionConfig.from_dict({"sessionPrivKey": "0xpriv", "userSWA": "0xuser"})

import json

import pytest
import responses

from phononkit.chain import (
    ChainError,
    CurrencyType,
    EthChainService,
    JsonRpcClient,
    MultiChainRouter,
    Phonon,
    rpc_endpoint,
)
from phononkit.ethcrypto import (
    LegacyTransaction,
    generate_private_key,
    hex_to_address,
    keccak256,
    pubkey_to_address,
    public_key_from_private,
    recover_public_key,
)

TEST_CHAIN_ID = 1337
GAS_PRICE = 766199219
PHONON_VALUE = 10000000000000000
LOCAL_URL = "http://127.0.0.1:8545"


class FakeChain:
    def __init__(self, balances=None, gas_price=GAS_PRICE):
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.nonces = {}
        self.gas_price = gas_price
        self.sent = []

    def pending_nonce_at(self, address):
        return self.nonces.get(address.lower(), 0)

    def balance_at(self, address):
        return self.balances.get(address.lower(), 0)

    def suggest_gas_price(self):
        return self.gas_price

    def send_raw_transaction(self, raw):
        self.sent.append(raw)
        return "0x" + keccak256(raw).hex()


def _phonon(private_key, **kwargs):
    return Phonon(
        key_index=1,
        pub_key=public_key_from_private(private_key),
        currency_type=CurrencyType.ETHEREUM,
        chain_id=TEST_CHAIN_ID,
        **kwargs,
    )


def _no_dial(url):
    raise AssertionError(f"unexpected dial to {url}")


def test_redeem_phonon_sends_balance_minus_gas():
    sender_key = generate_private_key()
    redeem_key = generate_private_key()
    redeem_address = pubkey_to_address(public_key_from_private(redeem_key))
    phonon = _phonon(sender_key)
    fake = FakeChain()
    eth = EthChainService(client=fake, client_chain_id=TEST_CHAIN_ID, client_factory=_no_dial)
    phonon.address = eth.derive_address(phonon)
    fake.balances[phonon.address.lower()] = PHONON_VALUE

    tx_hash = eth.redeem_phonon(phonon, sender_key, redeem_address)

    assert len(fake.sent) == 1
    expected_value = PHONON_VALUE - GAS_PRICE * 21000
    expected = LegacyTransaction(
        nonce=0,
        to=hex_to_address(redeem_address),
        value=expected_value,
        gas_limit=21000,
        gas_price=GAS_PRICE,
    ).sign(TEST_CHAIN_ID, sender_key)
    assert fake.sent[0] == expected.raw()
    assert tx_hash == "0x" + keccak256(fake.sent[0]).hex()


def test_submit_legacy_transaction_funds_phonon():
    genesis_key = generate_private_key()
    phonon_address = pubkey_to_address(public_key_from_private(generate_private_key()))
    fake = FakeChain()
    eth = EthChainService(client=fake, client_chain_id=TEST_CHAIN_ID)
    signed = eth.submit_legacy_transaction(0, TEST_CHAIN_ID, phonon_address, PHONON_VALUE, eth.gas_limit, 875000000, genesis_key)
    assert signed.tx.value == PHONON_VALUE
    assert signed.tx.to == hex_to_address(phonon_address)
    assert fake.sent == [signed.raw()]
    msg_hash = keccak256(signed.tx.signing_payload(TEST_CHAIN_ID))
    recovered = recover_public_key(msg_hash, signed.r, signed.s, signed.v - 35 - 2 * TEST_CHAIN_ID)
    assert recovered == public_key_from_private(genesis_key)


def test_redeem_fails_when_gas_exceeds_balance():
    sender_key = generate_private_key()
    phonon = _phonon(sender_key)
    fake = FakeChain()
    eth = EthChainService(client=fake, client_chain_id=TEST_CHAIN_ID)
    fake.balances[eth.derive_address(phonon).lower()] = GAS_PRICE * 21000
    redeem_address = pubkey_to_address(public_key_from_private(generate_private_key()))
    with pytest.raises(ChainError, match="gas cost would exceed"):
        eth.redeem_phonon(phonon, sender_key, redeem_address)
    assert fake.sent == []


def test_redeem_rejects_invalid_redeem_address():
    sender_key = generate_private_key()
    eth = EthChainService(client=FakeChain(), client_chain_id=TEST_CHAIN_ID)
    with pytest.raises(ChainError, match="redeem address is invalid"):
        eth.redeem_phonon(_phonon(sender_key), sender_key, "0x1234")


def test_validate_rejects_mismatched_private_key():
    eth = EthChainService()
    phonon = _phonon(generate_private_key())
    redeem_address = pubkey_to_address(public_key_from_private(generate_private_key()))
    with pytest.raises(ChainError, match="did not match"):
        eth.validate_redeem_data(phonon, generate_private_key(), redeem_address)


def test_validate_fills_missing_address():
    sender_key = generate_private_key()
    phonon = _phonon(sender_key)
    redeem_address = pubkey_to_address(public_key_from_private(generate_private_key()))
    EthChainService().validate_redeem_data(phonon, sender_key, redeem_address)
    assert phonon.address == pubkey_to_address(public_key_from_private(sender_key))


def test_derive_address_requires_pub_key():
    with pytest.raises(ChainError, match="missing pubKey"):
        EthChainService().derive_address(Phonon(currency_type=CurrencyType.ETHEREUM))


def test_check_redeem_value_boundary():
    eth = EthChainService()
    assert eth.check_redeem_value(GAS_PRICE * 21000, GAS_PRICE) == (False, 0)
    positive, value = eth.check_redeem_value(PHONON_VALUE, GAS_PRICE)
    assert positive is True
    assert value == eth.calc_redemption_value(PHONON_VALUE, GAS_PRICE)


def test_check_redeemable_dials_once(monkeypatch):
    monkeypatch.delenv(f"PHONON_RPC_URL_{TEST_CHAIN_ID}", raising=False)
    sender_key = generate_private_key()
    phonon = _phonon(sender_key)
    owner = pubkey_to_address(public_key_from_private(sender_key))
    urls = []

    def factory(url):
        urls.append(url)
        return FakeChain(balances={owner: PHONON_VALUE})

    eth = EthChainService(client_factory=factory)
    redeem_address = pubkey_to_address(public_key_from_private(generate_private_key()))
    eth.check_redeemable(phonon, redeem_address)
    eth.check_redeemable(phonon, redeem_address)
    assert urls == [LOCAL_URL]
    assert phonon.address == owner


def test_rpc_endpoint_selection(monkeypatch):
    monkeypatch.delenv(f"PHONON_RPC_URL_{TEST_CHAIN_ID}", raising=False)
    assert rpc_endpoint(TEST_CHAIN_ID) == LOCAL_URL
    monkeypatch.setenv("PHONON_RPC_URL_5", "http://node.example.com")
    assert rpc_endpoint(5) == "http://node.example.com"
    with pytest.raises(ChainError, match="unsupported"):
        rpc_endpoint(1)


def test_rpc_endpoint_requires_configuration(monkeypatch):
    monkeypatch.delenv("PHONON_RPC_URL_4", raising=False)
    with pytest.raises(ChainError, match="PHONON_RPC_URL_4"):
        rpc_endpoint(4)


def test_router_rejects_unsupported_currency():
    router = MultiChainRouter()
    phonon = Phonon(pub_key=public_key_from_private(generate_private_key()), currency_type=CurrencyType.BITCOIN)
    with pytest.raises(ChainError, match="currency type is not supported"):
        router.derive_address(phonon)
    with pytest.raises(ChainError, match="currency type is not supported"):
        router.check_redeemable(phonon, "0x" + "ab" * 20)


def test_router_delegates_to_ethereum():
    sender_key = generate_private_key()
    phonon = _phonon(sender_key)
    assert MultiChainRouter().derive_address(phonon) == pubkey_to_address(phonon.pub_key)


def test_json_rpc_client_parses_quantities():
    client = JsonRpcClient(LOCAL_URL)
    address = "0x" + "ab" * 20
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, LOCAL_URL, json={"jsonrpc": "2.0", "id": 1, "result": "0x10"})
        rsps.add(responses.POST, LOCAL_URL, json={"jsonrpc": "2.0", "id": 2, "result": "0x2a"})
        assert client.balance_at(address) == 16
        assert client.pending_nonce_at(address) == 42
        first = json.loads(rsps.calls[0].request.body)
        second = json.loads(rsps.calls[1].request.body)
    assert first["method"] == "eth_getBalance"
    assert first["params"] == [address, "latest"]
    assert second["params"] == [address, "pending"]


def test_json_rpc_client_sends_raw_transaction_hex():
    client = JsonRpcClient(LOCAL_URL)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, LOCAL_URL, json={"jsonrpc": "2.0", "id": 1, "result": "0xabc"})
        assert client.send_raw_transaction(b"\x01\x02") == "0xabc"
        body = json.loads(rsps.calls[0].request.body)
    assert body["params"] == ["0x0102"]


def test_json_rpc_client_raises_on_error():
    client = JsonRpcClient(LOCAL_URL)
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            LOCAL_URL,
            json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "nonce too low"}},
        )
        with pytest.raises(ChainError, match="nonce too low"):
            client.suggest_gas_price()


def test_json_rpc_client_raises_on_http_failure():
    client = JsonRpcClient(LOCAL_URL)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, LOCAL_URL, status=500)
        with pytest.raises(ChainError, match="eth_gasPrice"):
            client.suggest_gas_price()
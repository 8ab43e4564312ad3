"""Chain services that derive addresses for phonons and redeem them on chain."""

from __future__ import annotations

import itertools
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Mapping, Optional, Tuple, Union

import requests

from phononkit.ethcrypto import (
    LegacyTransaction,
    SignedTransaction,
    hex_to_address,
    is_hex_address,
    pubkey_to_address,
    public_key_from_private,
    to_checksum_address,
)

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 21000

MISSING_PUBKEY = "phonon missing pubKey"
MISSING_KEY_INDEX = "phonon missing KeyIndex"
UNKNOWN_CURRENCY_TYPE = "unknown currency type"
CURRENCY_TYPE_UNSUPPORTED = "currency type is not supported"
GAS_COST_EXCEEDS_REDEEM_VALUE = "cannot redeem phonon where gas cost would exceed on chain balance"
REDEEM_ADDRESS_INVALID = "redeem address is invalid"
CHAIN_ID_UNSUPPORTED = "eth chainID unsupported"

SUPPORTED_CHAINS = {
    3: "Ropsten",
    4: "Rinkeby",
    5: "Goerli",
    42: "Kovan",
    97: "Binance Testnet",
    43114: "Avalanche Fuji",
    80001: "Mumbai",
    4002: "Fantom Testnet",
    1337: "Local Ganache",
}
DEFAULT_ENDPOINTS = {1337: "http://127.0.0.1:8545"}
RPC_ENV_PREFIX = "PHONON_RPC_URL_"


class CurrencyType(IntEnum):
    UNSPECIFIED = 0
    BITCOIN = 1
    ETHEREUM = 2


@dataclass
class Phonon:
    """The metadata of a phonon needed to locate and redeem its funds."""

    key_index: int = 0
    pub_key: bytes = b""
    currency_type: CurrencyType = CurrencyType.UNSPECIFIED
    chain_id: int = 0
    address: str = ""


class ChainError(Exception):
    """Raised when a chain operation cannot be carried out."""


def rpc_endpoint(chain_id: int) -> str:
    """Return the RPC endpoint for a supported chain ID.

    An endpoint is taken from the PHONON_RPC_URL_<chain_id> environment
    variable, falling back to the built-in local endpoint where one exists.
    """
    if chain_id not in SUPPORTED_CHAINS:
        logger.debug("unsupported eth chainID requested: %s", chain_id)
        raise ChainError(CHAIN_ID_UNSUPPORTED)
    endpoint = os.environ.get(f"{RPC_ENV_PREFIX}{chain_id}") or DEFAULT_ENDPOINTS.get(chain_id)
    if not endpoint:
        raise ChainError(
            f"no RPC endpoint configured for {SUPPORTED_CHAINS[chain_id]} (chain ID {chain_id}); "
            f"set {RPC_ENV_PREFIX}{chain_id}"
        )
    return endpoint


class ChainService(ABC):
    """A service able to derive addresses for and redeem phonons."""

    @abstractmethod
    def derive_address(self, phonon: Phonon) -> str:
        """Return the on-chain address that holds the phonon's funds."""

    @abstractmethod
    def check_redeemable(self, phonon: Phonon, redeem_address: str) -> None:
        """Raise ChainError if the phonon cannot be redeemed to ``redeem_address``."""

    @abstractmethod
    def redeem_phonon(self, phonon: Phonon, private_key: int, redeem_address: str) -> str:
        """Move the phonon's funds to ``redeem_address`` and return transaction data."""


def _quantity(value, method: str) -> int:
    if not isinstance(value, str):
        raise ChainError(f"RPC call {method} returned no quantity")
    try:
        return int(value, 16)
    except ValueError as exc:
        raise ChainError(f"RPC call {method} returned malformed quantity {value!r}") from exc


class JsonRpcClient:
    """A minimal Ethereum JSON-RPC client over HTTP."""

    def __init__(self, url: str, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    def call(self, method: str, *args):
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": list(args)}
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ChainError(f"RPC call {method} failed: {exc}") from exc
        if not isinstance(body, dict):
            raise ChainError(f"RPC call {method} returned a malformed response")
        error = body.get("error")
        if error:
            message = error.get("message", error) if isinstance(error, dict) else error
            raise ChainError(f"RPC error from {method}: {message}")
        return body.get("result")

    def pending_nonce_at(self, address: str) -> int:
        return _quantity(self.call("eth_getTransactionCount", address, "pending"), "eth_getTransactionCount")

    def balance_at(self, address: str) -> int:
        return _quantity(self.call("eth_getBalance", address, "latest"), "eth_getBalance")

    def suggest_gas_price(self) -> int:
        return _quantity(self.call("eth_gasPrice"), "eth_gasPrice")

    def send_raw_transaction(self, raw: bytes) -> str:
        return self.call("eth_sendRawTransaction", "0x" + bytes(raw).hex())


def _normalized_pub_key(pub_key: bytes) -> bytes:
    pubkey_to_address(pub_key)
    return b"\x04" + bytes(pub_key) if len(pub_key) == 64 else bytes(pub_key)


class EthChainService(ChainService):
    """Redeems phonons on EVM chains with legacy value transfers."""

    def __init__(
        self,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        client=None,
        client_chain_id: int = 0,
        client_factory: Callable[[str], object] = JsonRpcClient,
    ):
        self.gas_limit = gas_limit
        self.client = client
        self.client_chain_id = client_chain_id
        self._client_factory = client_factory

    def derive_address(self, phonon: Phonon) -> str:
        if not phonon.pub_key:
            raise ChainError(MISSING_PUBKEY)
        try:
            return pubkey_to_address(phonon.pub_key)
        except ValueError as exc:
            raise ChainError(str(exc)) from exc

    def _ensure_address(self, phonon: Phonon) -> None:
        if not phonon.address:
            try:
                phonon.address = self.derive_address(phonon)
            except ChainError:
                logger.error("unable to derive source address for redemption")
                raise

    def validate_redeem_data(self, phonon: Phonon, private_key: int, redeem_address: str) -> None:
        """Check the redemption inputs, filling in the phonon's address if missing."""
        if not phonon.pub_key:
            raise ChainError(MISSING_PUBKEY)
        try:
            phonon_key = _normalized_pub_key(phonon.pub_key)
        except ValueError as exc:
            raise ChainError(str(exc)) from exc
        derived_key = public_key_from_private(private_key)
        if phonon_key != derived_key:
            logger.error(
                "phonon pubkey metadata %s and redemption key %s did not match",
                phonon_key.hex(),
                derived_key.hex(),
            )
            raise ChainError("pubkey metadata and redemption private key did not match")
        self._ensure_address(phonon)
        if not is_hex_address(redeem_address):
            raise ChainError(REDEEM_ADDRESS_INVALID)

    def _dial_rpc_node(self, chain_id: int) -> None:
        if self.client_chain_id != 0 and self.client_chain_id == chain_id:
            return
        endpoint = rpc_endpoint(chain_id)
        self.client = self._client_factory(endpoint)
        self.client_chain_id = chain_id
        logger.debug("eth chain ID set to %s", chain_id)

    def fetch_pre_transaction_info(self, from_address: str) -> Tuple[int, int, int]:
        """Return (pending nonce, balance, suggested gas price) for an address."""
        address = to_checksum_address(hex_to_address(from_address))
        nonce = self.client.pending_nonce_at(address)
        balance = self.client.balance_at(address)
        gas_price = self.client.suggest_gas_price()
        logger.debug("nonce %s, balance %s, suggested gas price %s", nonce, balance, gas_price)
        return nonce, balance, gas_price

    def calc_redemption_value(self, balance: int, gas_price: int) -> int:
        return balance - gas_price * self.gas_limit

    def check_redeem_value(self, balance: int, gas_price: int) -> Tuple[bool, int]:
        """Return whether anything is left after gas, and the value to send."""
        redeem_value = self.calc_redemption_value(balance, gas_price)
        if redeem_value <= 0:
            logger.error("phonon not large enough to pay gas for redemption")
            return False, redeem_value
        return True, redeem_value

    def submit_legacy_transaction(
        self,
        nonce: int,
        chain_id: int,
        redeem_address: Union[str, bytes],
        redeem_value: int,
        gas_limit: int,
        gas_price: int,
        private_key: int,
    ) -> SignedTransaction:
        """Sign a value transfer and send it through the connected client."""
        to = bytes(redeem_address) if isinstance(redeem_address, (bytes, bytearray)) else hex_to_address(redeem_address)
        tx = LegacyTransaction(nonce=nonce, to=to, value=redeem_value, gas_limit=gas_limit, gas_price=gas_price)
        signed = tx.sign(chain_id, private_key)
        self.client.send_raw_transaction(signed.raw())
        logger.debug("sent redeem transaction %s", signed.tx_hash())
        return signed

    def check_redeemable(self, phonon: Phonon, redeem_address: str) -> None:
        self._ensure_address(phonon)
        if not is_hex_address(redeem_address):
            raise ChainError(REDEEM_ADDRESS_INVALID)
        self._dial_rpc_node(phonon.chain_id)
        _, balance, gas_price = self.fetch_pre_transaction_info(phonon.address)
        redeemable, _ = self.check_redeem_value(balance, gas_price)
        if not redeemable:
            raise ChainError(GAS_COST_EXCEEDS_REDEEM_VALUE)

    def redeem_phonon(self, phonon: Phonon, private_key: int, redeem_address: str) -> str:
        self.validate_redeem_data(phonon, private_key, redeem_address)
        self._dial_rpc_node(phonon.chain_id)
        nonce, balance, gas_price = self.fetch_pre_transaction_info(phonon.address)
        redeemable, redeem_value = self.check_redeem_value(balance, gas_price)
        if not redeemable:
            raise ChainError(GAS_COST_EXCEEDS_REDEEM_VALUE)
        signed = self.submit_legacy_transaction(
            nonce,
            phonon.chain_id,
            hex_to_address(redeem_address),
            redeem_value,
            self.gas_limit,
            gas_price,
            private_key,
        )
        return signed.tx_hash()


class MultiChainRouter(ChainService):
    """Routes each phonon to the chain service for its currency type."""

    def __init__(self, services: Optional[Mapping[CurrencyType, ChainService]] = None):
        self._services = dict(services) if services is not None else {CurrencyType.ETHEREUM: EthChainService()}

    def _service_for(self, phonon: Phonon) -> ChainService:
        try:
            return self._services[phonon.currency_type]
        except KeyError:
            raise ChainError(CURRENCY_TYPE_UNSUPPORTED) from None

    def derive_address(self, phonon: Phonon) -> str:
        return self._service_for(phonon).derive_address(phonon)

    def check_redeemable(self, phonon: Phonon, redeem_address: str) -> None:
        return self._service_for(phonon).check_redeemable(phonon, redeem_address)

    def redeem_phonon(self, phonon: Phonon, private_key: int, redeem_address: str) -> str:
        return self._service_for(phonon).redeem_phonon(phonon, private_key, redeem_address)
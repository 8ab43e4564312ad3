# phononkit

Terminal-side tooling for phonon cards and the on-chain assets they hold:
Ethereum primitives, redemption of phonons on EVM chains, client
configuration, log telemetry, helpers for provisioning cards, and a small
local web backend.

## Modules

- **`phononkit.ethcrypto`**: Keccak-256 (`keccak256`), secp256k1 keys
  (`generate_private_key`, `public_key_from_private`, `recover_public_key`),
  addresses (`pubkey_to_address`, `to_checksum_address`, `is_hex_address`,
  `hex_to_address`), RLP encoding (`rlp_encode`) and EIP-155 signing of
  `LegacyTransaction` into a `SignedTransaction` (`raw()`, `tx_hash()`).
  Signatures use deterministic RFC 6979 nonces and low-S values.
- **`phononkit.chain`**: the `Phonon` record, `CurrencyType`, and chain services
  implementing `ChainService` (`derive_address`, `check_redeemable`,
  `redeem_phonon`). `EthChainService` sweeps a phonon's balance, minus
  `gas_price * gas_limit` (gas limit 21000 by default), to a redeem address with
  a signed legacy transaction sent through `JsonRpcClient`. `MultiChainRouter`
  routes each phonon to the service for its currency type; by default only
  `CurrencyType.ETHEREUM` is served. Failures raise `ChainError`.
- **`phononkit.config`**: `Config` (`certificate`, `telemetry_key`),
  `default_config`, `config_search_paths`, `default_config_path`, `load_config`
  and `save_config` for the YAML file `phonon.yml`.
- **`phononkit.telemetry`**: `TelemetryHandler`, a `logging.Handler` that posts
  each record as JSON to the telemetry server, and `check_telemetry_key`.
- **`phononkit.provisioning`**: `GlobalPlatformTool` runs the external
  `opensc-tool` and `java -jar gp.jar` commands to unlock a card and to delete,
  install or query the applet on a named reader; `register_card` posts a card ID
  to a registration service; `ProvisioningReport` and `format_report_table`
  summarise a provisioning run.
- **`phononkit.keyformat`**: `generate_ca_keypair` and the byte-list formatters
  `format_go_bytes` and `format_javacard_bytes`.
- **`phononkit.wxsgen`**: `render_template` substitutes a value for `{{.}}`
  actions (with trim markers and comments) in a template.
- **`phononkit.weblog`** and **`phononkit.webapp`**: the local web backend.
  `WebApp` is a WSGI application serving `/logs` (a sink that relays frontend
  log messages at their `JSLogLevel`), `/swagger.json` (the API document rendered
  for the served port), `/telemetryCheck`, files under `/swagger/`, `/static/`
  and `/assets/`, and `index.html` for every other path, with CORS headers for
  any origin. `serve(port, cert_file, key_file, telemetry_key)` runs it, over TLS
  when a certificate and key are given, and opens a browser on it.

## Examples

Hashing and addresses:

```python
from phononkit.ethcrypto import keccak256, is_hex_address

keccak256(b"").hex()
# 'c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470'

is_hex_address("0x" + "ab" * 20)   # True
is_hex_address("0x1234")           # False
```

Signing a transfer:

```python
from phononkit.ethcrypto import LegacyTransaction, generate_private_key, hex_to_address

tx = LegacyTransaction(nonce=0, to=hex_to_address("0x" + "11" * 20),
                       value=10**16, gas_limit=21000, gas_price=10**9)
signed = tx.sign(1337, generate_private_key())
signed.tx_hash()   # '0x...'
```

RPC endpoints: `rpc_endpoint(chain_id)` accepts the chain IDs 3, 4, 5, 42, 97,
4002, 1337, 43114 and 80001; any other raises `ChainError`. The endpoint is read
from the environment variable `PHONON_RPC_URL_<chain_id>`; only chain 1337 has a
built-in default:

```python
from phononkit.chain import rpc_endpoint

rpc_endpoint(1337)   # 'http://127.0.0.1:8545'
```

Redemption raises `ChainError` when the phonon has no public key, the private
key does not match it, the redeem address is invalid, or the gas cost would use
up the whole on-chain balance.

Configuration:

```python
from phononkit.config import default_config, load_config

conf = default_config()   # Config(certificate='alpha', telemetry_key='')
conf = load_config()      # searches the platform's locations, else the defaults
```

`PHONON_CERTIFICATE` and `PHONON_TELEMETRYKEY` override values read from a
file. A telemetry key installs a `TelemetryHandler` on the root logger. The
telemetry server's base URL is taken from `PHONON_TELEMETRY_URL`; without it
the handler sends nothing and `check_telemetry_key` raises `TelemetryError`.

## Commands

Generate a CA keypair and print it as byte lists, plain and with Java Card
`(byte)` casts:

```
phononkit-ca-keypair
```

Render a template with a fresh UUID to standard output:

```
phononkit-wxsgen path/to/phonon.wxs.templ > phonon.wxs
```

## What it does not do

- It does not talk to phonon cards: there is no reader connection, pairing,
  PIN handling, or creating, listing, sending or destroying phonons.
- The web backend has no card-session endpoints and no system tray icon; it
  serves only the routes listed above.
- There is no graphical configuration window; use `save_config` instead.
- There is no chain service for Bitcoin.
- Provisioning offers the individual steps and the report table, not a command
  that flashes and certifies every connected reader in one run.

## Tests

The test suite uses `pytest` and `responses`, listed under the `test` extra.
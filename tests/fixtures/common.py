"""
Common test fixtures shared by all modules.

Provides in-process stand-ins for every external system the oracle talks to:
- FakeProofEngine: HMAC-based Groth16 stand-in (verify rejects tampered signals)
- InMemoryObjectStore: ObjectStore with per-operation failure toggles
- StubHttpClient: canned price source responses
- FakeEth / FakeWeb3 / FakeWeb3Factory: scripted RPC endpoints

and factories for configs, bundles and aggregation results.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import requests
from eth_utils import keccak
from web3.exceptions import ContractLogicError, TimeExhausted

from agents.archive.store import StorageProvider
from agents.context import FrozenClock
from core.config import RuntimeConfig
from core.config.runtime import DEFAULT_SOURCES
from core.crypto import FIELD_MODULUS, sha256
from core.http import HttpError, HttpResponse
from core.schemas.errors import StorageError
from core.schemas.oracle import AggregationResult, PriceObservation


# Well-known development key; never funded on a real network
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_SIGNER_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
TEST_ORACLE_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

RPC_A = "http://rpc-a.test:8545"
RPC_B = "http://rpc-b.test:8545"

# FrozenClock default, 2026-01-01T00:00:00Z
FROZEN_TS = 1767225600


# =============================================================================
# Proof engine
# =============================================================================

class FakeProofEngine:
    """
    Deterministic stand-in for a Groth16 engine.

    The commitment is an HMAC of (price, timestamp, salt) reduced into the
    field; the "proof" carries an HMAC over the public signals so verify()
    rejects any change to a signal, like a real verifier would.
    """

    def __init__(
        self,
        key: bytes = b"fake-verification-key",
        *,
        reject: bool = False,
        fail_times: int = 0,
        signal_hook: Optional[Callable[[list[str]], list[str]]] = None,
    ) -> None:
        self.key = key
        self.reject = reject
        self.fail_times = fail_times
        self.signal_hook = signal_hook
        self.prove_calls = 0
        self.verify_calls = 0
        self.inputs: list[dict[str, str]] = []

    def _mac(self, signals: list[str]) -> str:
        return hmac.new(self.key, "|".join(signals).encode(), hashlib.sha256).hexdigest()

    def prove(self, circuit_input: dict[str, str]) -> tuple[dict[str, Any], list[str]]:
        self.prove_calls += 1
        self.inputs.append(dict(circuit_input))
        if self.prove_calls <= self.fail_times:
            raise RuntimeError("witness generation crashed")

        preimage = "|".join(
            [circuit_input["price"], circuit_input["timestamp"], circuit_input["salt"]]
        ).encode()
        digest = hmac.new(self.key, preimage, hashlib.sha256).digest()
        commitment = int.from_bytes(digest, "big") % FIELD_MODULUS

        signals = [str(commitment), circuit_input["price"], circuit_input["timestamp"]]
        if self.signal_hook is not None:
            signals = self.signal_hook(signals)

        c = commitment
        proof = {
            "pi_a": [str(c + 1), str(c + 2), "1"],
            "pi_b": [[str(c + 3), str(c + 4)], [str(c + 5), str(c + 6)], ["1", "0"]],
            "pi_c": [str(c + 7), str(c + 8), "1"],
            "protocol": "groth16",
            "curve": "bn128",
            "mac": self._mac(signals),
        }
        return proof, signals

    def verify(self, proof: dict[str, Any], public_signals: list[str]) -> bool:
        self.verify_calls += 1
        if self.reject:
            return False
        expected = self._mac([str(s) for s in public_signals])
        return hmac.compare_digest(str(proof.get("mac", "")), expected)


def write_circuit_artifacts(circuits_dir: Path) -> Path:
    """Create placeholder wasm/zkey/vkey files in the default layout."""
    (circuits_dir / "price_commitment_js").mkdir(parents=True, exist_ok=True)
    (circuits_dir / "price_commitment_js" / "price_commitment.wasm").write_bytes(b"\x00asm")
    (circuits_dir / "price_commitment_final.zkey").write_bytes(b"zkey")
    (circuits_dir / "verification_key.json").write_text('{"protocol": "groth16"}')
    return circuits_dir


# =============================================================================
# Object store
# =============================================================================

class InMemoryObjectStore:
    """ObjectStore kept in dicts. Operations named in fail_on raise StorageError."""

    def __init__(
        self,
        providers: Optional[list[StorageProvider]] = None,
        *,
        fail_on: tuple[str, ...] = (),
    ) -> None:
        self._providers = providers or [StorageProvider("sp-main.example:443", "sp-main")]
        self.fail_on = set(fail_on)
        self.buckets: dict[str, StorageProvider] = {}
        self.objects: dict[tuple[str, str], bytes] = {}
        self.declared: dict[tuple[str, str], tuple[int, list[bytes]]] = {}
        self.calls: list[str] = []

    def _maybe_fail(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail_on:
            raise StorageError(f"{op} unavailable")

    def providers(self) -> list[StorageProvider]:
        return list(self._providers)

    def bucket_exists(self, bucket: str) -> bool:
        self._maybe_fail("bucket_exists")
        return bucket in self.buckets

    def create_bucket(self, bucket: str, provider: StorageProvider) -> None:
        self._maybe_fail("create_bucket")
        self.buckets[bucket] = provider

    def create_object(
        self,
        bucket: str,
        name: str,
        payload_size: int,
        checksums: list[bytes],
        content_type: str = "application/json",
    ) -> None:
        self._maybe_fail("create_object")
        if len(checksums) != 7:
            raise StorageError(f"expected 7 checksums, got {len(checksums)}", retryable=False)
        self.declared[(bucket, name)] = (payload_size, list(checksums))

    def upload_object(self, bucket: str, name: str, body: bytes) -> None:
        self._maybe_fail("upload_object")
        declared = self.declared.pop((bucket, name), None)
        if declared is None:
            raise StorageError(f"object {name} was not created", retryable=False)
        size, checksums = declared
        if len(body) != size or sha256(body) != checksums[0]:
            raise StorageError(f"checksum mismatch for {name}", retryable=False)
        self.objects[(bucket, name)] = body

    def list_objects(self, bucket: str) -> list[str]:
        self._maybe_fail("list_objects")
        return [n for (b, n) in self.objects if b == bucket]


# =============================================================================
# HTTP
# =============================================================================

class StubHttpClient:
    """
    HttpClient stand-in answering from a url -> answer map.

    An answer may be a JSON-able payload, an HttpResponse, or an exception
    to raise. Unknown URLs raise HttpError.
    """

    def __init__(self, responses: Optional[dict[str, Any]] = None) -> None:
        self.responses = dict(responses or {})
        self.requested: list[str] = []
        self.closed = False

    def get(self, url: str, *, headers=None, params=None, timeout=None) -> HttpResponse:
        self.requested.append(url)
        answer = self.responses.get(url)
        if answer is None:
            raise HttpError(f"no route to {url}")
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, HttpResponse):
            return answer
        return HttpResponse(status_code=200, content=json.dumps(answer).encode(), url=url)

    def close(self) -> None:
        self.closed = True


def source_responses(
    binance: Optional[float] = 350.0,
    coinbase: Optional[float] = 351.0,
    kraken: Optional[float] = 349.5,
    coingecko: Optional[float] = 500.0,
) -> dict[str, Any]:
    """
    Venue-shaped payloads for the default sources. None leaves the URL
    unanswered, which fails that source.
    """
    urls = {s["name"]: s["url"] for s in DEFAULT_SOURCES}
    responses: dict[str, Any] = {}
    if binance is not None:
        responses[urls["Binance"]] = {"symbol": "BNBUSDT", "price": f"{binance:.8f}"}
    if coinbase is not None:
        responses[urls["Coinbase"]] = {
            "data": {"amount": str(coinbase), "base": "BNB", "currency": "USD"},
        }
    if kraken is not None:
        responses[urls["Kraken"]] = {
            "error": [],
            "result": {"BNBUSD": {"a": ["0", "1", "1.0"], "c": [str(kraken), "0.5"]}},
        }
    if coingecko is not None:
        responses[urls["CoinGecko"]] = {"binancecoin": {"usd": coingecko}}
    return responses


# =============================================================================
# Chain
# =============================================================================

class FakeEth:
    """Scripted eth namespace of one RPC endpoint."""

    def __init__(
        self,
        *,
        reachable: bool = True,
        block: int = 48_000_000,
        balance_wei: int = 1_500_000_000_000_000_000,
        send_failures: int = 0,
        lost_responses: int = 0,
        revert_on_build: bool = False,
        receipt_status: int = 1,
        receipt_timeout: bool = False,
        latest: Optional[tuple] = None,
    ) -> None:
        self.reachable = reachable
        self.block = block
        self.balance_wei = balance_wei
        self.send_failures = send_failures
        self.lost_responses = lost_responses
        self.revert_on_build = revert_on_build
        self.receipt_status = receipt_status
        self.receipt_timeout = receipt_timeout
        self.latest = latest or (35_000_000_000, FROZEN_TS - 120, b"\x11" * 32, True, True)
        self.nonce = 7
        self.built: list[tuple] = []
        self.nonces: list[int] = []
        self.sent: list[bytes] = []
        self.probes = 0

    @property
    def block_number(self) -> int:
        self.probes += 1
        if not self.reachable:
            raise requests.ConnectionError("connection refused")
        return self.block

    def contract(self, address: str, abi: list) -> "FakeContract":
        return FakeContract(self, address)

    def get_transaction_count(self, address: str, block_identifier: str = "latest") -> int:
        return self.nonce

    def send_raw_transaction(self, raw: bytes) -> bytes:
        raw = bytes(raw)
        if raw in self.sent:
            raise ValueError({"code": -32000, "message": "already known"})
        if self.send_failures > 0:
            self.send_failures -= 1
            raise requests.ConnectionError("connection reset by peer")
        self.sent.append(raw)
        self.nonce += 1
        if self.lost_responses > 0:
            # Accepted by the node, reply never arrives
            self.lost_responses -= 1
            raise requests.ReadTimeout("read timed out")
        return keccak(raw)

    def wait_for_transaction_receipt(self, tx_hash: str, timeout: float = 120, poll_latency: float = 0.1):
        if self.receipt_timeout:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        return {
            "transactionHash": tx_hash,
            "status": self.receipt_status,
            "blockNumber": self.block + 1,
            "gasUsed": 231_045,
        }

    def get_balance(self, address: str) -> int:
        return self.balance_wei


class _ContractCall:
    def __init__(self, eth: FakeEth, address: str, fn_name: str, args: tuple) -> None:
        self.eth = eth
        self.address = address
        self.fn_name = fn_name
        self.args = args

    def build_transaction(self, tx: dict) -> dict:
        if self.eth.revert_on_build:
            raise ContractLogicError("execution reverted: price not fresh")
        self.eth.built.append(self.args)
        self.eth.nonces.append(tx["nonce"])
        return {
            "to": self.address,
            "data": "0x5e1a7c0b" + "00" * 32,
            "value": 0,
            "gas": 350_000,
            "gasPrice": 3_000_000_000,
            **tx,
        }

    def call(self):
        if not self.eth.reachable:
            raise requests.ConnectionError("connection refused")
        return self.eth.latest


class _ContractFunctions:
    def __init__(self, eth: FakeEth, address: str) -> None:
        self._eth = eth
        self._address = address

    def submitPriceWithProof(self, *args) -> _ContractCall:
        return _ContractCall(self._eth, self._address, "submitPriceWithProof", args)

    def latestPrice(self) -> _ContractCall:
        return _ContractCall(self._eth, self._address, "latestPrice", ())


class FakeContract:
    def __init__(self, eth: FakeEth, address: str) -> None:
        self.address = address
        self.functions = _ContractFunctions(eth, address)


class FakeWeb3:
    def __init__(self, eth: FakeEth) -> None:
        self.eth = eth


@dataclass
class FakeWeb3Factory:
    """web3_factory that hands out one FakeWeb3 per configured URL."""

    endpoints: dict[str, FakeEth]
    created: list[str] = field(default_factory=list)

    def __call__(self, url: str, timeout: float) -> FakeWeb3:
        self.created.append(url)
        return FakeWeb3(self.endpoints[url])


# =============================================================================
# Factories
# =============================================================================

def make_config(tmp_path: Path, **sections: dict[str, Any]) -> RuntimeConfig:
    """
    RuntimeConfig rooted in tmp_path with fast retries and a valid signer.

    Keyword arguments are merged per section over the defaults below.
    """
    circuits = write_circuit_artifacts(tmp_path / "circuits")
    data: dict[str, dict[str, Any]] = {
        "prover": {"circuits_dir": str(circuits), "retry_delay_s": 1.0},
        "chain": {
            "rpc_urls": [RPC_A, RPC_B],
            "oracle_address": TEST_ORACLE_ADDRESS,
            "private_key": TEST_PRIVATE_KEY,
            "retry_delay_s": 2.0,
        },
        "archive": {"local_dir": str(tmp_path / "proofs")},
        "agent": {"log_dir": str(tmp_path / "logs"), "interval_s": 30.0},
    }
    for section, values in sections.items():
        data.setdefault(section, {}).update(values)
    return RuntimeConfig.from_dict(data)


def make_aggregation(
    prices: tuple[float, ...] = (350.0, 351.0, 349.5),
    consensus: Optional[float] = None,
) -> AggregationResult:
    names = ["Binance", "Coinbase", "Kraken", "CoinGecko"]
    observations = [
        PriceObservation(source_name=name, value=price, ok=True)
        for name, price in zip(names, prices)
    ]
    ordered = sorted(prices)
    return AggregationResult(
        consensus_price=consensus if consensus is not None else ordered[len(ordered) // 2],
        observations=observations,
        valid_count=len(prices),
        spread_bps=29,
    )


def make_bundle(price: float = 350.0, timestamp: Optional[int] = None, engine=None):
    """A locally verified ProofBundle produced through the real prover."""
    from agents.prover import CommitmentProver

    prover = CommitmentProver(engine or FakeProofEngine(), clock=FrozenClock())
    return prover.generate_proof(price, timestamp)


# =============================================================================
# Orchestrator harness
# =============================================================================

@dataclass
class AgentHarness:
    """An OracleAgent wired from config with every external system faked."""

    agent: Any
    config: RuntimeConfig
    engine: FakeProofEngine
    store: Optional[InMemoryObjectStore]
    endpoints: dict[str, FakeEth]
    http: StubHttpClient
    clock: FrozenClock
    sleeps: list[float]

    @property
    def log_dir(self) -> Path:
        return Path(self.config.agent.log_dir)

    @property
    def sent(self) -> list[bytes]:
        return [raw for eth in self.endpoints.values() for raw in eth.sent]


_MEMORY = object()


def build_harness(
    tmp_path: Path,
    *,
    engine: Optional[FakeProofEngine] = None,
    store: Any = _MEMORY,
    endpoints: Optional[dict[str, FakeEth]] = None,
    responses: Optional[dict[str, Any]] = None,
    **config_sections: dict[str, Any],
) -> AgentHarness:
    """
    Build an agent through OracleAgent.from_config.

    Sleeps are recorded and advance the frozen clock, so consecutive cycles
    get distinct timestamps without real waiting. Pass store=None for an
    agent without a remote archive.
    """
    from agents.context import AgentContext
    from orchestrator import OracleAgent

    config = make_config(tmp_path, **config_sections)
    clock = FrozenClock()
    sleeps: list[float] = []

    def sleep(seconds: float) -> None:
        sleeps.append(seconds)
        clock.advance(seconds)

    engine = engine or FakeProofEngine()
    if store is _MEMORY:
        store = InMemoryObjectStore()
    endpoints = endpoints or {RPC_A: FakeEth(), RPC_B: FakeEth()}
    http = StubHttpClient(source_responses() if responses is None else responses)

    ctx = AgentContext(http=http, config=config, clock=clock)
    agent = OracleAgent.from_config(
        config,
        ctx=ctx,
        engine=engine,
        store=store,
        web3_factory=FakeWeb3Factory(endpoints),
        sleep=sleep,
    )
    return AgentHarness(
        agent=agent,
        config=config,
        engine=engine,
        store=store,
        endpoints=endpoints,
        http=http,
        clock=clock,
        sleeps=sleeps,
    )

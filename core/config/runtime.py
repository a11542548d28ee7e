"""
Runtime Configuration

Central configuration for the oracle agent: price sources, proof engine
artifacts, chain endpoints, archive storage and the continuous loop.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from core.schemas.errors import ConfigError

load_dotenv()


# BNB/USD from four independent venues. Adapters are data: URL + extraction path.
DEFAULT_SOURCES: list[dict[str, str]] = [
    {
        "name": "Binance",
        "url": "https://api.binance.com/api/v3/ticker/price?symbol=BNBUSDT",
        "path": "price",
    },
    {
        "name": "Coinbase",
        "url": "https://api.coinbase.com/v2/prices/BNB-USD/spot",
        "path": "data.amount",
    },
    {
        "name": "Kraken",
        "url": "https://api.kraken.com/0/public/Ticker?pair=BNBUSD",
        "path": "result.*.c.0",
    },
    {
        "name": "CoinGecko",
        "url": "https://api.coingecko.com/api/v3/simple/price?ids=binancecoin&vs_currencies=usd",
        "path": "binancecoin.usd",
    },
]

DEFAULT_RPC_URLS: list[str] = [
    "https://data-seed-prebsc-1-s1.binance.org:8545",
    "https://data-seed-prebsc-2-s1.binance.org:8545",
    "https://data-seed-prebsc-1-s2.binance.org:8545",
    "https://bsc-testnet.drpc.org",
]

DEFAULT_CIRCUITS_DIR = "circuits/build"


@dataclass
class AggregatorConfig:
    """Quorum and tolerance for multi-source aggregation."""
    min_sources: int = 2
    max_deviation_bps: int = 200
    fetch_timeout_s: float = 5.0
    user_agent: str = "veris-oracle/0.1"
    sources: list[dict[str, str]] = field(default_factory=lambda: copy.deepcopy(DEFAULT_SOURCES))


@dataclass
class ProverConfig:
    """Proof engine artifacts and limits."""
    circuits_dir: str = DEFAULT_CIRCUITS_DIR
    wasm_path: Optional[str] = None
    zkey_path: Optional[str] = None
    vkey_path: Optional[str] = None
    snarkjs_bin: str = "snarkjs"
    prove_timeout_s: float = 300.0
    max_attempts: int = 2
    retry_delay_s: float = 1.0

    def __post_init__(self):
        base = Path(self.circuits_dir)
        if self.wasm_path is None:
            self.wasm_path = str(base / "price_commitment_js" / "price_commitment.wasm")
        if self.zkey_path is None:
            self.zkey_path = str(base / "price_commitment_final.zkey")
        if self.vkey_path is None:
            self.vkey_path = str(base / "verification_key.json")


@dataclass
class ChainConfig:
    """EVM endpoints, signer and submission retry policy."""
    rpc_urls: list[str] = field(default_factory=lambda: list(DEFAULT_RPC_URLS))
    chain_id: int = 97
    chain_label: str = "BSC Testnet (97)"
    oracle_address: Optional[str] = None
    private_key: Optional[str] = None
    request_timeout_s: float = 10.0
    max_attempts: int = 3
    retry_delay_s: float = 2.0
    receipt_timeout_s: float = 120.0
    freshness_s: int = 3600
    explorer_tx_url: str = "https://testnet.bscscan.com/tx/"


@dataclass
class ArchiveConfig:
    """Local safety-net directory and the remote object store."""
    local_dir: str = "greenfield-proofs"
    bucket: str = "verisafe-oracle-proofs"
    # Each provider: {"endpoint": "host:port", "moniker": "..."}
    providers: list[dict[str, str]] = field(default_factory=list)
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    secure: bool = True

    @property
    def remote_enabled(self) -> bool:
        return bool(self.providers and self.access_key and self.secret_key)


@dataclass
class AgentLoopConfig:
    """Continuous mode and logging output."""
    interval_s: float = 60.0
    log_dir: str = "agent/logs"
    log_level: str = "INFO"


@dataclass
class RuntimeConfig:
    """
    Complete runtime configuration for the oracle agent.

    Can be loaded from:
    - Environment variables (and a .env file)
    - YAML file
    - Programmatic construction
    """
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    prover: ProverConfig = field(default_factory=ProverConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    agent: AgentLoopConfig = field(default_factory=AgentLoopConfig)
    extra: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def _get_env_overrides() -> dict[str, Any]:
        """
        Get configuration overrides from environment variables.

        This is the SINGLE source of truth for all env var reading.

        Supported variables:
        - PRIVATE_KEY: signer key for on-chain submission
        - VERIS_ORACLE_V2: oracle contract address
        - BSC_TESTNET_RPC: preferred RPC endpoint (tried first)
        - VERIS_CHAIN_ID: chain id (default 97)
        - VERIS_CIRCUITS_DIR: directory holding circuit artifacts
        - SNARKJS_BIN: snarkjs executable
        - GREENFIELD_BUCKET: archive bucket name
        - VERIS_STORAGE_ENDPOINTS: comma separated "moniker=host:port" list
        - VERIS_STORAGE_ACCESS_KEY / VERIS_STORAGE_SECRET_KEY: store credentials
        - VERIS_INTERVAL_S: continuous mode interval in seconds
        - VERIS_LOG_DIR: directory for logs and submission records
        - VERIS_LOG_LEVEL: log level
        """
        overrides: dict[str, Any] = {}

        # Chain
        if os.getenv("PRIVATE_KEY"):
            overrides.setdefault("chain", {})["private_key"] = os.getenv("PRIVATE_KEY")
        if os.getenv("VERIS_ORACLE_V2"):
            overrides.setdefault("chain", {})["oracle_address"] = os.getenv("VERIS_ORACLE_V2")
        if os.getenv("BSC_TESTNET_RPC"):
            preferred = os.getenv("BSC_TESTNET_RPC")
            overrides.setdefault("chain", {})["rpc_urls"] = [preferred] + [
                url for url in DEFAULT_RPC_URLS if url != preferred
            ]
        if os.getenv("VERIS_CHAIN_ID"):
            overrides.setdefault("chain", {})["chain_id"] = int(os.getenv("VERIS_CHAIN_ID", "97"))

        # Prover
        if os.getenv("VERIS_CIRCUITS_DIR"):
            overrides.setdefault("prover", {})["circuits_dir"] = os.getenv("VERIS_CIRCUITS_DIR")
        if os.getenv("SNARKJS_BIN"):
            overrides.setdefault("prover", {})["snarkjs_bin"] = os.getenv("SNARKJS_BIN")

        # Archive
        if os.getenv("GREENFIELD_BUCKET"):
            overrides.setdefault("archive", {})["bucket"] = os.getenv("GREENFIELD_BUCKET")
        if os.getenv("VERIS_STORAGE_ENDPOINTS"):
            overrides.setdefault("archive", {})["providers"] = parse_provider_list(
                os.getenv("VERIS_STORAGE_ENDPOINTS", "")
            )
        if os.getenv("VERIS_STORAGE_ACCESS_KEY"):
            overrides.setdefault("archive", {})["access_key"] = os.getenv("VERIS_STORAGE_ACCESS_KEY")
        if os.getenv("VERIS_STORAGE_SECRET_KEY"):
            overrides.setdefault("archive", {})["secret_key"] = os.getenv("VERIS_STORAGE_SECRET_KEY")

        # Loop / logging
        if os.getenv("VERIS_INTERVAL_S"):
            overrides.setdefault("agent", {})["interval_s"] = float(os.getenv("VERIS_INTERVAL_S", "60"))
        if os.getenv("VERIS_LOG_DIR"):
            overrides.setdefault("agent", {})["log_dir"] = os.getenv("VERIS_LOG_DIR")
        if os.getenv("VERIS_LOG_LEVEL"):
            overrides.setdefault("agent", {})["log_level"] = os.getenv("VERIS_LOG_LEVEL")

        return overrides

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """
        Load configuration purely from environment variables.

        Uses defaults for any values not specified in env vars.
        """
        return cls.from_dict(cls._get_env_overrides())

    @classmethod
    def from_yaml(cls, path: str | Path) -> "RuntimeConfig":
        """Load configuration from a YAML file."""
        import yaml
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RuntimeConfig":
        """Load configuration from a dictionary (supports partial data)."""
        try:
            return cls(
                aggregator=AggregatorConfig(**data.get("aggregator", {})),
                prover=ProverConfig(**data.get("prover", {})),
                chain=ChainConfig(**data.get("chain", {})),
                archive=ArchiveConfig(**data.get("archive", {})),
                agent=AgentLoopConfig(**data.get("agent", {})),
                extra=data.get("extra", {}),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def with_env_overrides(self) -> "RuntimeConfig":
        """
        Return a new config with environment variable overrides applied.

        This allows loading from a config file first, then overlaying env vars.
        """
        overrides = self._get_env_overrides()
        if not overrides:
            return self

        new_config = copy.deepcopy(self)
        for section, values in overrides.items():
            target = getattr(new_config, section)
            for key, value in values.items():
                setattr(target, key, value)

        # Derived artifact paths follow an overridden circuits dir
        if "circuits_dir" in overrides.get("prover", {}):
            new_config.prover = ProverConfig(
                circuits_dir=new_config.prover.circuits_dir,
                snarkjs_bin=new_config.prover.snarkjs_bin,
                prove_timeout_s=new_config.prover.prove_timeout_s,
                max_attempts=new_config.prover.max_attempts,
                retry_delay_s=new_config.prover.retry_delay_s,
            )
        return new_config

    def validate_for_submission(self) -> None:
        """Raise ConfigError when on-chain submission cannot be attempted."""
        missing = []
        if not self.chain.private_key:
            missing.append("PRIVATE_KEY")
        if not self.chain.oracle_address:
            missing.append("VERIS_ORACLE_V2")
        if not self.chain.rpc_urls:
            missing.append("rpc_urls")
        if missing:
            raise ConfigError(
                f"Missing required settings: {', '.join(missing)}",
                details={"missing": missing},
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary. Secrets are masked."""
        return {
            "aggregator": {
                "min_sources": self.aggregator.min_sources,
                "max_deviation_bps": self.aggregator.max_deviation_bps,
                "fetch_timeout_s": self.aggregator.fetch_timeout_s,
                "sources": [s["name"] for s in self.aggregator.sources],
            },
            "prover": {
                "wasm_path": self.prover.wasm_path,
                "zkey_path": self.prover.zkey_path,
                "vkey_path": self.prover.vkey_path,
                "snarkjs_bin": self.prover.snarkjs_bin,
                "max_attempts": self.prover.max_attempts,
            },
            "chain": {
                "rpc_urls": self.chain.rpc_urls,
                "chain_id": self.chain.chain_id,
                "oracle_address": self.chain.oracle_address,
                "private_key": "***" if self.chain.private_key else None,
                "max_attempts": self.chain.max_attempts,
            },
            "archive": {
                "local_dir": self.archive.local_dir,
                "bucket": self.archive.bucket,
                "remote_enabled": self.archive.remote_enabled,
            },
            "agent": {
                "interval_s": self.agent.interval_s,
                "log_dir": self.agent.log_dir,
                "log_level": self.agent.log_level,
            },
            "extra": self.extra,
        }


def parse_provider_list(raw: str) -> list[dict[str, str]]:
    """
    Parse "moniker=host:port,host2:port" into provider dicts.

    Entries without a moniker get an empty one.
    """
    providers = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        moniker, sep, endpoint = item.partition("=")
        if not sep:
            moniker, endpoint = "", item
        providers.append({"endpoint": endpoint.strip(), "moniker": moniker.strip()})
    return providers

"""
Chain Submitter

Broadcasts submitPriceWithProof through the endpoint pool with bounded
retry, then waits for the receipt.

Sending and confirming are separate steps: sending is retried, confirming is
not. Once a transaction is broadcast, re-sending would race the signer nonce,
so a receipt timeout surfaces as a non-retryable error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, TYPE_CHECKING

import requests
from eth_account import Account
from eth_account.datastructures import SignedTransaction
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from agents.base import AgentCapability, BaseAgent
from core.crypto import from_fixed_point, to_hex
from core.resilience import RetryPolicy
from core.schemas.errors import ChainError, ConfigError, ErrorCodes, NetworkError
from core.schemas.oracle import PendingTransaction, ProofBundle, SubmissionReceipt

from .calldata import ORACLE_ABI, SolidityCallArgs, build_call_args
from .endpoints import RpcEndpointPool

if TYPE_CHECKING:
    from agents.context import AgentContext

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (Web3Exception, requests.RequestException, OSError, ValueError)


@dataclass(frozen=True)
class OnChainPrice:
    """Result of latestPrice() on the oracle contract."""
    price: int
    timestamp: int
    commitment: str
    verified: bool
    zk_verified: bool

    @property
    def price_usd(self) -> float:
        return from_fixed_point(self.price)


class ChainSubmitter(BaseAgent):
    """Submits verified proofs to the oracle contract."""

    _name = "ChainSubmitter"
    _version = "v1"
    _capabilities = {AgentCapability.NETWORK, AgentCapability.BLOCKCHAIN}

    def __init__(
        self,
        pool: RpcEndpointPool,
        *,
        oracle_address: str,
        private_key: str,
        chain_id: int = 97,
        retry_policy: Optional[RetryPolicy] = None,
        receipt_timeout_s: float = 120.0,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        super().__init__()
        try:
            self.account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise ConfigError(f"invalid signer key: {type(e).__name__}") from e
        if not Web3.is_address(oracle_address):
            raise ConfigError(f"invalid oracle address: {oracle_address!r}")

        self.pool = pool
        self.oracle_address = Web3.to_checksum_address(oracle_address)
        self.chain_id = chain_id
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, initial_delay=2.0)
        self.receipt_timeout_s = receipt_timeout_s
        self._sleep = sleep

    @classmethod
    def from_context(cls, ctx: "AgentContext", **kwargs) -> "ChainSubmitter":
        cfg = ctx.config.chain
        ctx.config.validate_for_submission()
        pool = RpcEndpointPool(
            cfg.rpc_urls,
            request_timeout=cfg.request_timeout_s,
            web3_factory=kwargs.pop("web3_factory", None),
        )
        return cls(
            pool,
            oracle_address=cfg.oracle_address,
            private_key=cfg.private_key,
            chain_id=cfg.chain_id,
            retry_policy=RetryPolicy(
                max_attempts=cfg.max_attempts,
                initial_delay=cfg.retry_delay_s,
            ),
            receipt_timeout_s=cfg.receipt_timeout_s,
            **kwargs,
        )

    @property
    def signer_address(self) -> str:
        return self.account.address

    def _contract(self, w3: Web3):
        return w3.eth.contract(address=self.oracle_address, abi=ORACLE_ABI)

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submit(self, bundle: ProofBundle, archive_ref: str) -> SubmissionReceipt:
        """Send with retry, then wait for the receipt."""
        pending = self.send(bundle, archive_ref)
        return self.confirm(pending)

    def send(self, bundle: ProofBundle, archive_ref: str) -> PendingTransaction:
        """
        Build and sign the submission once, then broadcast it with retry.

        The nonce is read a single time and every broadcast attempt sends the
        same signed bytes, so one cycle can put at most one transaction on
        chain even when a broadcast reply is lost.

        Raises:
            NetworkError: no endpoint reachable after all attempts
            ChainError: the contract rejected the call, or the nonce was stale
        """
        args = build_call_args(bundle, archive_ref)
        signed = self.retry_policy.call(
            lambda: self._sign(args),
            label="submission signing",
            sleep=self._sleep,
        )

        attempts = 0

        def broadcast() -> PendingTransaction:
            nonlocal attempts
            attempts += 1
            return self._broadcast(signed, rebroadcast=attempts > 1)

        return self.retry_policy.call(broadcast, label="on-chain submit", sleep=self._sleep)

    def _sign(self, args: SolidityCallArgs) -> SignedTransaction:
        url, w3 = self.pool.probe_healthy()
        try:
            call = self._contract(w3).functions.submitPriceWithProof(*args.as_args())
            tx = call.build_transaction({
                "from": self.account.address,
                "nonce": w3.eth.get_transaction_count(self.account.address, "pending"),
                "chainId": self.chain_id,
            })
        except ContractLogicError as e:
            raise ChainError(
                f"contract rejected submission: {e}",
                details={"endpoint": url},
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(
                f"building submission via {url} failed: {e}",
                details={"endpoint": url},
            ) from e
        logger.debug(f"Signed submission with nonce {tx['nonce']}", extra={"nonce": tx["nonce"]})
        return self.account.sign_transaction(tx)

    def _broadcast(self, signed: SignedTransaction, *, rebroadcast: bool = False) -> PendingTransaction:
        tx_hash = Web3.to_hex(signed.hash)
        url, w3 = self.pool.probe_healthy()
        try:
            w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise ChainError(
                f"contract rejected submission: {e}",
                tx_hash=tx_hash,
                details={"endpoint": url},
            ) from e
        except _TRANSPORT_ERRORS as e:
            reason = str(e).lower()
            if "already known" in reason or (rebroadcast and "nonce too low" in reason):
                # An earlier attempt reached the node; the signed hash stands
                logger.info(
                    f"TX {tx_hash} already accepted, not resending",
                    extra={"tx_hash": tx_hash, "endpoint": url},
                )
                return PendingTransaction(tx_hash=tx_hash, endpoint_url=url)
            if "nonce too low" in reason:
                raise ChainError(
                    f"stale nonce for submission: {e}",
                    tx_hash=tx_hash,
                    details={"endpoint": url},
                ) from e
            raise NetworkError(
                f"submission via {url} failed: {e}",
                details={"endpoint": url, "tx_hash": tx_hash},
            ) from e

        logger.info(f"TX sent: {tx_hash}", extra={"tx_hash": tx_hash, "endpoint": url})
        return PendingTransaction(tx_hash=tx_hash, endpoint_url=url)

    def confirm(self, pending: PendingTransaction) -> SubmissionReceipt:
        """
        Wait for the receipt of a broadcast transaction.

        Raises:
            ChainError: the transaction reverted (status 0)
            NetworkError: receipt not seen in time, or the endpoint failed (not retryable)
        """
        w3 = self.pool.client(pending.endpoint_url)
        try:
            receipt = w3.eth.wait_for_transaction_receipt(
                pending.tx_hash,
                timeout=self.receipt_timeout_s,
            )
        except TimeExhausted as e:
            raise NetworkError(
                f"receipt not seen within {self.receipt_timeout_s}s",
                code=ErrorCodes.RECEIPT_TIMEOUT,
                details={"tx_hash": pending.tx_hash},
                retryable=False,
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(
                f"receipt lookup failed: {e}",
                details={"tx_hash": pending.tx_hash},
                retryable=False,
            ) from e

        if receipt["status"] == 0:
            raise ChainError(
                "transaction reverted",
                code=ErrorCodes.TRANSACTION_REVERTED,
                tx_hash=pending.tx_hash,
                details={"block_number": receipt["blockNumber"]},
            )

        return SubmissionReceipt(
            tx_hash=pending.tx_hash,
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt.get("gasUsed", 0)),
            endpoint_url=pending.endpoint_url,
        )

    # -------------------------------------------------------------------------
    # Reads (health report)
    # -------------------------------------------------------------------------

    def signer_balance(self) -> Decimal:
        """Native balance of the signer, in whole coins."""
        _, w3 = self.pool.probe_healthy()
        try:
            wei = w3.eth.get_balance(self.account.address)
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(f"balance read failed: {e}") from e
        return Decimal(wei) / Decimal(10 ** 18)

    def latest_price(self) -> OnChainPrice:
        _, w3 = self.pool.probe_healthy()
        try:
            price, timestamp, commitment, verified, zk_verified = (
                self._contract(w3).functions.latestPrice().call()
            )
        except ContractLogicError as e:
            raise ChainError(f"latestPrice reverted: {e}") from e
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(f"latestPrice read failed: {e}") from e

        return OnChainPrice(
            price=int(price),
            timestamp=int(timestamp),
            commitment=to_hex(bytes(commitment)),
            verified=bool(verified),
            zk_verified=bool(zk_verified),
        )

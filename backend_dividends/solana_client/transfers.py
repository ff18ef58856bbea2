"""
Value Transfer Client: move lamports from the payout wallet to a holder.

Delivery is not exactly-once: a transfer that times out after broadcast may
still land. Callers record every attempt as a payout row.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from backend_dividends.core.exceptions import ExternalServiceError
from backend_dividends.dividends_logging import get_logger

logger = get_logger(__name__)


class ValueTransferClient(ABC):
    @property
    @abstractmethod
    def source_address(self) -> str:
        ...

    @abstractmethod
    def get_source_balance(self) -> int:
        """Lamports available in the paying wallet."""
        ...

    @abstractmethod
    def transfer(self, recipient: str, lamports: int) -> str:
        """Send lamports; returns the confirmed transaction signature or raises ExternalServiceError."""
        ...


class TransferSubmittedError(ExternalServiceError):
    """The transfer was broadcast but not confirmed; it may still land, so it must not be re-sent."""

    def __init__(self, message: str, signature: str) -> None:
        super().__init__(message, service="solana_transfer")
        self.signature = signature


class SolanaTransferClient(ValueTransferClient):
    """System-program transfers signed by the payout keypair, confirmed at 'confirmed' commitment."""

    def __init__(self, rpc_url: str, keypair: Keypair, *, timeout_sec: float = 30.0) -> None:
        self._client = Client(rpc_url, commitment=Confirmed, timeout=timeout_sec)
        self._keypair = keypair

    @property
    def source_address(self) -> str:
        return str(self._keypair.pubkey())

    def get_source_balance(self) -> int:
        try:
            return int(self._client.get_balance(self._keypair.pubkey()).value)
        except Exception as e:
            raise ExternalServiceError(f"getBalance failed: {e}", service="solana_transfer") from e

    def transfer(self, recipient: str, lamports: int) -> str:
        try:
            to_pubkey = Pubkey.from_string(recipient)
        except ValueError as e:
            raise ExternalServiceError(f"Invalid recipient {recipient}: {e}", service="solana_transfer") from e
        try:
            latest = self._client.get_latest_blockhash().value
            ix = transfer(
                TransferParams(from_pubkey=self._keypair.pubkey(), to_pubkey=to_pubkey, lamports=int(lamports))
            )
            tx = Transaction.new_signed_with_payer([ix], self._keypair.pubkey(), [self._keypair], latest.blockhash)
            resp = self._client.send_raw_transaction(
                bytes(tx),
                opts=TxOpts(skip_confirmation=True, preflight_commitment=Confirmed),
            )
        except Exception as e:
            raise ExternalServiceError(f"Transfer to {recipient[:16]} failed: {e}", service="solana_transfer") from e
        signature = str(resp.value)
        try:
            status = self._client.confirm_transaction(
                resp.value, Confirmed, last_valid_block_height=latest.last_valid_block_height
            )
        except Exception as e:
            raise TransferSubmittedError(f"Transfer {signature} not confirmed: {e}", signature) from e
        statuses = status.value or [None]
        if statuses[0] is not None and statuses[0].err is not None:
            raise ExternalServiceError(
                f"Transfer {signature} failed on chain: {statuses[0].err}", service="solana_transfer"
            )
        logger.info("transfer_confirmed", recipient=recipient[:16], lamports=lamports, signature=signature)
        return signature


class InMemoryTransferClient(ValueTransferClient):
    """Records transfers instead of sending them."""

    def __init__(self, balance: int = 10**15, *, address: str = "11111111111111111111111111111111") -> None:
        self.balance = balance
        self._address = address
        self.transfers: list[tuple[str, int, str]] = []
        self.fail_for: set[str] = set()
        self.unconfirmed_for: set[str] = set()
        """Recipients whose transfer is sent but never confirmed."""

    @property
    def source_address(self) -> str:
        return self._address

    def get_source_balance(self) -> int:
        return self.balance

    def transfer(self, recipient: str, lamports: int) -> str:
        if recipient in self.fail_for:
            raise ExternalServiceError(f"Simulated transfer failure for {recipient}", service="solana_transfer")
        if lamports > self.balance:
            raise ExternalServiceError("Insufficient balance", service="solana_transfer")
        self.balance -= lamports
        signature = f"sim-transfer-{len(self.transfers) + 1}"
        self.transfers.append((recipient, lamports, signature))
        if recipient in self.unconfirmed_for:
            raise TransferSubmittedError(f"Simulated confirmation timeout for {signature}", signature)
        return signature

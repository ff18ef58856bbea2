"""
Fee Source Client: read and collect accumulated creator fees.

The production client asks PumpPortal for a collectCreatorFee transaction,
signs it with the creator keypair, broadcasts it through our own RPC and waits
for confirmation. The realized amount is read back from the confirmed
transaction, never from the earlier balance check.
"""

from __future__ import annotations

import base64
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable

import httpx
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from backend_dividends.core.exceptions import ExternalServiceError
from backend_dividends.dividends_logging import get_logger
from backend_dividends.solana_client.rpc import RpcClient

logger = get_logger(__name__)

DEFAULT_CONFIRM_TIMEOUT_SEC = 60.0
DEFAULT_CONFIRM_POLL_SEC = 2.0


@dataclass(frozen=True)
class FeeClaimResult:
    amount: int
    """Lamports actually collected."""
    transaction_id: str


class FeeClaimSubmittedError(ExternalServiceError):
    """The claim transaction was broadcast but its outcome could not be established."""

    def __init__(self, message: str, transaction_id: str) -> None:
        super().__init__(message, service="fee_source")
        self.transaction_id = transaction_id


class FeeSourceClient(ABC):
    @abstractmethod
    def check_balance(self, account: str) -> int:
        """Claimable lamports currently held for account."""
        ...

    @abstractmethod
    def claim(self, account: str) -> FeeClaimResult:
        """Collect the fees; raises ExternalServiceError on failure."""
        ...


class PumpPortalFeeSource(FeeSourceClient):
    def __init__(
        self,
        rpc: RpcClient,
        keypair: Keypair,
        *,
        api_url: str,
        priority_fee_sol: Decimal = Decimal("0.001"),
        timeout_sec: float = 30.0,
        confirm_timeout_sec: float = DEFAULT_CONFIRM_TIMEOUT_SEC,
        confirm_poll_sec: float = DEFAULT_CONFIRM_POLL_SEC,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._rpc = rpc
        self._keypair = keypair
        self._api_url = api_url
        self._priority_fee_sol = priority_fee_sol
        self._http = http_client or httpx.Client(timeout=timeout_sec)
        self._confirm_timeout_sec = confirm_timeout_sec
        self._confirm_poll_sec = confirm_poll_sec
        self._sleep = sleep

    @property
    def signer_address(self) -> str:
        return str(self._keypair.pubkey())

    def check_balance(self, account: str) -> int:
        return self._rpc.get_balance(account)

    def claim(self, account: str) -> FeeClaimResult:
        if account != self.signer_address:
            raise ExternalServiceError(
                f"Fee source account {account} does not match the creator signer {self.signer_address}",
                service="fee_source",
            )
        raw_tx = self._request_claim_transaction()
        signed = VersionedTransaction(VersionedTransaction.from_bytes(raw_tx).message, [self._keypair])
        signature = self._rpc.send_raw_transaction_base64(base64.b64encode(bytes(signed)).decode("ascii"))
        logger.info("fee_claim_submitted", signature=signature)
        self._wait_for_confirmation(signature)
        amount = self._realized_amount(signature)
        logger.info("fee_claim_confirmed", signature=signature, amount_lamports=amount)
        return FeeClaimResult(amount=amount, transaction_id=signature)

    def _request_claim_transaction(self) -> bytes:
        body = {
            "publicKey": self.signer_address,
            "action": "collectCreatorFee",
            "priorityFee": float(self._priority_fee_sol),
        }
        try:
            resp = self._http.post(self._api_url, json=body)
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"PumpPortal request failed: {e}", service="fee_source") from e
        if resp.status_code != 200:
            raise ExternalServiceError(
                f"PumpPortal API error ({resp.status_code}): {resp.text[:200]}", service="fee_source"
            )
        if "application/json" in resp.headers.get("content-type", ""):
            data: Any = resp.json()
            tx_b64 = data.get("transaction") if isinstance(data, dict) else None
            if not tx_b64:
                raise ExternalServiceError("No transaction returned from PumpPortal", service="fee_source")
            return base64.b64decode(tx_b64)
        if not resp.content:
            raise ExternalServiceError("Empty transaction returned from PumpPortal", service="fee_source")
        return resp.content

    def _wait_for_confirmation(self, signature: str) -> None:
        deadline = time.monotonic() + self._confirm_timeout_sec
        while True:
            status = self._rpc.get_signature_status(signature)
            if status:
                if status.get("err") is not None:
                    raise FeeClaimSubmittedError(f"Claim transaction failed: {status['err']}", signature)
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return
            if time.monotonic() >= deadline:
                raise FeeClaimSubmittedError("Claim transaction not confirmed before timeout", signature)
            self._sleep(self._confirm_poll_sec)

    def _realized_amount(self, signature: str) -> int:
        """Signer's balance delta plus the fee it paid (index 0 is the fee payer)."""
        tx = self._rpc.get_transaction(signature)
        meta = (tx or {}).get("meta") or {}
        pre = meta.get("preBalances") or []
        post = meta.get("postBalances") or []
        if not pre or not post:
            raise FeeClaimSubmittedError("Confirmed claim transaction has no balance metadata", signature)
        return max(0, int(post[0]) - int(pre[0]) + int(meta.get("fee", 0)))


class InMemoryFeeSource(FeeSourceClient):
    """Test and dry-run double: balances per account, optional failure and accrual injection."""

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self.balances: dict[str, int] = dict(balances or {})
        self.accrue_before_claim: int = 0
        """Lamports that arrive between check_balance() and claim()."""
        self.balance_error: Exception | None = None
        self.claim_error: Exception | None = None
        self.claims: list[FeeClaimResult] = []

    def check_balance(self, account: str) -> int:
        if self.balance_error is not None:
            raise self.balance_error
        return self.balances.get(account, 0)

    def claim(self, account: str) -> FeeClaimResult:
        if self.claim_error is not None:
            raise self.claim_error
        amount = self.balances.get(account, 0) + self.accrue_before_claim
        self.accrue_before_claim = 0
        self.balances[account] = 0
        result = FeeClaimResult(amount=amount, transaction_id=f"sim-claim-{len(self.claims) + 1}")
        self.claims.append(result)
        return result

"""
Minimal Solana JSON-RPC client over httpx with a bounded timeout.

Transport errors, HTTP errors and JSON-RPC error payloads all surface as
ExternalServiceError(service="solana_rpc").
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from backend_dividends.core.exceptions import ExternalServiceError
from backend_dividends.dividends_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0


class RpcClient:
    def __init__(
        self,
        rpc_url: str,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.client = client or httpx.Client(timeout=timeout_sec)
        self._ids = itertools.count(1)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> RpcClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Send one JSON-RPC request and return its 'result'."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            resp = self.client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            raise ExternalServiceError(f"RPC {method} timed out", service="solana_rpc") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"RPC {method} failed: {e}", service="solana_rpc") from e
        except ValueError as e:
            raise ExternalServiceError(f"RPC {method} returned invalid JSON", service="solana_rpc") from e
        if "error" in data:
            raise ExternalServiceError(f"RPC error in {method}: {data['error']}", service="solana_rpc")
        return data.get("result")

    def get_balance(self, address: str, commitment: str = "confirmed") -> int:
        """Lamport balance of an account."""
        result = self.call("getBalance", [address, {"commitment": commitment}])
        return int((result or {}).get("value", 0))

    def get_token_supply(self, mint: str) -> tuple[int, int]:
        """Return (raw supply in base units, decimals) for a mint."""
        result = self.call("getTokenSupply", [mint])
        value = (result or {}).get("value") or {}
        return int(value.get("amount", 0)), int(value.get("decimals", 0))

    def get_program_accounts_base64(self, program_id: str, mint: str, classic_token_program: bool) -> list[str]:
        """
        Base64 account data of every token account for a mint.
        Classic SPL Token accounts are exactly 165 bytes; Token-2022 accounts can be larger.
        """
        filters: list[dict[str, Any]] = [{"memcmp": {"offset": 0, "bytes": mint}}]
        if classic_token_program:
            filters.append({"dataSize": 165})
        result = self.call(
            "getProgramAccounts",
            [program_id, {"encoding": "base64", "filters": filters, "commitment": "confirmed"}],
        )
        return [item["account"]["data"][0] for item in (result or [])]

    def send_raw_transaction_base64(self, tx_b64: str, *, skip_preflight: bool = False) -> str:
        """Broadcast a signed transaction; returns its signature."""
        result = self.call(
            "sendTransaction",
            [tx_b64, {"encoding": "base64", "skipPreflight": skip_preflight, "preflightCommitment": "confirmed"}],
        )
        if not result:
            raise ExternalServiceError("sendTransaction returned no signature", service="solana_rpc")
        return str(result)

    def get_signature_status(self, signature: str) -> dict[str, Any] | None:
        result = self.call("getSignatureStatuses", [[signature], {"searchTransactionHistory": True}])
        values = (result or {}).get("value") or [None]
        return values[0]

    def get_transaction(self, signature: str) -> dict[str, Any] | None:
        return self.call(
            "getTransaction",
            [signature, {"encoding": "json", "commitment": "confirmed", "maxSupportedTransactionVersion": 0}],
        )

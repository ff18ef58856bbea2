"""
Ledger Query Service: current holders of a token mint.

get_holders() is a read-only function of chain state. The pipeline calls it
exactly once per claim; its output is the sole input to that claim's snapshot.
"""

from __future__ import annotations

import base64
import struct
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

import base58

from backend_dividends.dividends_logging import get_logger
from backend_dividends.solana_client.rpc import RpcClient

logger = get_logger(__name__)

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

PERCENT_QUANT = Decimal("0.000001")


def percentage_of_supply(balance: int, total_supply: int) -> Decimal:
    """balance / total_supply * 100, guarded to 0 when the supply is zero."""
    if total_supply <= 0:
        return Decimal(0)
    return (Decimal(balance) * 100 / Decimal(total_supply)).quantize(PERCENT_QUANT)


@dataclass(frozen=True)
class TokenHolder:
    address: str
    balance: int
    """Raw token amount in base units."""
    decimals: int = 0
    percentage: Decimal = Decimal(0)


@dataclass
class HolderSet:
    holders: list[TokenHolder] = field(default_factory=list)
    total_supply: int = 0
    decimals: int = 0

    def __len__(self) -> int:
        return len(self.holders)


def build_holder_set(balances: dict[str, int], total_supply: int, decimals: int) -> HolderSet:
    """Drop zero balances and order holders by balance desc, then address, for reproducible snapshots."""
    items = sorted(
        ((addr, bal) for addr, bal in balances.items() if bal > 0),
        key=lambda x: (-x[1], x[0]),
    )
    holders = [
        TokenHolder(
            address=addr,
            balance=int(bal),
            decimals=decimals,
            percentage=percentage_of_supply(bal, total_supply),
        )
        for addr, bal in items
    ]
    return HolderSet(holders=holders, total_supply=int(total_supply), decimals=decimals)


def parse_owner_and_amount(account_data: bytes) -> tuple[str, int] | None:
    """
    SPL token account layout (Token-2022 keeps the same offsets):
    Mint(0-32) | Owner(32-64) | Amount(64-72, little-endian u64)
    """
    if len(account_data) < 72:
        return None
    owner = base58.b58encode(account_data[32:64]).decode("ascii")
    amount = struct.unpack("<Q", account_data[64:72])[0]
    return owner, amount


def aggregate_holders_from_b64(b64_items: Iterable[str]) -> dict[str, int]:
    """Sum balances per owner; one owner can hold several token accounts."""
    balances: dict[str, int] = defaultdict(int)
    for b64_str in b64_items:
        try:
            raw = base64.b64decode(b64_str)
        except (ValueError, TypeError):
            continue
        parsed = parse_owner_and_amount(raw)
        if not parsed:
            continue
        owner, amount = parsed
        if amount > 0:
            balances[owner] += int(amount)
    return dict(balances)


class LedgerQueryService(ABC):
    @abstractmethod
    def get_holders(self, token_mint: str) -> HolderSet:
        """Return every address with a nonzero balance of token_mint, plus total supply."""
        ...


class RpcLedgerQueryService(LedgerQueryService):
    """Holders from getProgramAccounts (classic SPL Token, then Token-2022) and supply from getTokenSupply."""

    def __init__(self, rpc: RpcClient, *, excluded_addresses: Iterable[str] = ()) -> None:
        self._rpc = rpc
        self._excluded = set(excluded_addresses)

    def get_holders(self, token_mint: str) -> HolderSet:
        total_supply, decimals = self._rpc.get_token_supply(token_mint)
        accounts = self._rpc.get_program_accounts_base64(TOKEN_PROGRAM_ID, token_mint, True)
        program = "spl-token"
        if not accounts:
            accounts = self._rpc.get_program_accounts_base64(TOKEN_2022_PROGRAM_ID, token_mint, False)
            program = "token-2022"
        balances = aggregate_holders_from_b64(accounts)
        for addr in self._excluded:
            balances.pop(addr, None)
        holder_set = build_holder_set(balances, total_supply, decimals)
        logger.info(
            "token_holders_fetched",
            mint=token_mint,
            program=program,
            token_accounts=len(accounts),
            holders=len(holder_set),
            total_supply=total_supply,
        )
        return holder_set


class InMemoryLedgerQueryService(LedgerQueryService):
    """Fixed balances per mint; counts calls so tests can assert one query per claim."""

    def __init__(
        self,
        balances: dict[str, dict[str, int]] | None = None,
        *,
        total_supply: dict[str, int] | None = None,
        decimals: int = 6,
    ) -> None:
        self.balances: dict[str, dict[str, int]] = {k: dict(v) for k, v in (balances or {}).items()}
        self.total_supply = dict(total_supply or {})
        self.decimals = decimals
        self.calls: list[str] = []
        self.error: Exception | None = None

    def set_balances(self, token_mint: str, balances: dict[str, int]) -> None:
        self.balances[token_mint] = dict(balances)

    def get_holders(self, token_mint: str) -> HolderSet:
        self.calls.append(token_mint)
        if self.error is not None:
            raise self.error
        balances = self.balances.get(token_mint, {})
        supply = self.total_supply.get(token_mint, sum(balances.values()))
        return build_holder_set(balances, supply, self.decimals)

"""
Tests for holder queries: token account parsing, aggregation, RPC-backed service.
"""

from __future__ import annotations

import base64
import struct
from decimal import Decimal
from unittest.mock import MagicMock

import base58

from backend_dividends.solana_client.rpc import RpcClient
from backend_dividends.solana_client.token_holders import (
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    RpcLedgerQueryService,
    aggregate_holders_from_b64,
    build_holder_set,
    parse_owner_and_amount,
    percentage_of_supply,
)

from conftest import HOLDER_A, HOLDER_B, MINT


def _account(owner: str, amount: int, size: int = 165) -> bytes:
    data = base58.b58decode(MINT) + base58.b58decode(owner) + struct.pack("<Q", amount)
    return data + bytes(size - len(data))


def _b64(owner: str, amount: int) -> str:
    return base64.b64encode(_account(owner, amount)).decode("ascii")


def test_parse_owner_and_amount():
    assert parse_owner_and_amount(_account(HOLDER_A, 12345)) == (HOLDER_A, 12345)
    assert parse_owner_and_amount(b"\x00" * 40) is None


def test_aggregate_sums_accounts_per_owner_and_drops_empty():
    items = [_b64(HOLDER_A, 100), _b64(HOLDER_A, 50), _b64(HOLDER_B, 0), "%%%not-base64"]
    assert aggregate_holders_from_b64(items) == {HOLDER_A: 150}


def test_build_holder_set_orders_and_computes_percentages():
    holder_set = build_holder_set({"b": 10, "a": 10, "c": 30, "z": 0}, 100, 6)
    assert [h.address for h in holder_set.holders] == ["c", "a", "b"]
    assert holder_set.holders[0].percentage == Decimal("30.000000")
    assert len(holder_set) == 3


def test_percentage_of_zero_supply():
    assert percentage_of_supply(10, 0) == Decimal(0)


def test_rpc_service_uses_classic_program_first():
    rpc = MagicMock(spec=RpcClient)
    rpc.get_token_supply.return_value = (1_000, 6)
    rpc.get_program_accounts_base64.return_value = [_b64(HOLDER_A, 700), _b64(HOLDER_B, 300)]

    holder_set = RpcLedgerQueryService(rpc).get_holders(MINT)

    rpc.get_program_accounts_base64.assert_called_once_with(TOKEN_PROGRAM_ID, MINT, True)
    assert [(h.address, h.balance) for h in holder_set.holders] == [(HOLDER_A, 700), (HOLDER_B, 300)]
    assert holder_set.total_supply == 1_000
    assert holder_set.decimals == 6


def test_rpc_service_falls_back_to_token_2022_and_excludes():
    rpc = MagicMock(spec=RpcClient)
    rpc.get_token_supply.return_value = (1_000, 6)
    rpc.get_program_accounts_base64.side_effect = [[], [_b64(HOLDER_A, 700), _b64(HOLDER_B, 300)]]

    holder_set = RpcLedgerQueryService(rpc, excluded_addresses=[HOLDER_B]).get_holders(MINT)

    assert rpc.get_program_accounts_base64.call_args_list[1].args == (TOKEN_2022_PROGRAM_ID, MINT, False)
    assert [h.address for h in holder_set.holders] == [HOLDER_A]

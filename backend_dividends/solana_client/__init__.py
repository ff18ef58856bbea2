"""
Chain-facing collaborators: JSON-RPC, holder queries, fee source, transfers, price oracle.
"""

from backend_dividends.solana_client.fee_source import (
    FeeClaimResult,
    FeeSourceClient,
    InMemoryFeeSource,
    PumpPortalFeeSource,
)
from backend_dividends.solana_client.price_oracle import PriceOracle, PriceQuote
from backend_dividends.solana_client.rpc import RpcClient
from backend_dividends.solana_client.token_holders import (
    HolderSet,
    InMemoryLedgerQueryService,
    LedgerQueryService,
    RpcLedgerQueryService,
    TokenHolder,
)
from backend_dividends.solana_client.transfers import (
    InMemoryTransferClient,
    SolanaTransferClient,
    TransferSubmittedError,
    ValueTransferClient,
)

__all__ = [
    "FeeClaimResult",
    "FeeSourceClient",
    "HolderSet",
    "InMemoryFeeSource",
    "InMemoryLedgerQueryService",
    "InMemoryTransferClient",
    "LedgerQueryService",
    "PriceOracle",
    "PriceQuote",
    "PumpPortalFeeSource",
    "RpcClient",
    "RpcLedgerQueryService",
    "SolanaTransferClient",
    "TokenHolder",
    "TransferSubmittedError",
    "ValueTransferClient",
]

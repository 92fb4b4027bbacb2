from solguard.engines.execution.solana_client import SolanaRpcClient
from solguard.engines.execution.transaction_guard import (
    GuardVerdict,
    SafeSendResult,
    SendPath,
    SimulationOutcome,
    TransactionGuard,
    TransactionPreview,
)

__all__ = [
    "SolanaRpcClient",
    "GuardVerdict",
    "SafeSendResult",
    "SendPath",
    "SimulationOutcome",
    "TransactionGuard",
    "TransactionPreview",
]

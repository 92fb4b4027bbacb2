from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from solders.transaction import Transaction, VersionedTransaction

AnyTransaction = Union[Transaction, VersionedTransaction]


@dataclass(frozen=True)
class RawSimulation:
    """Simulation response as returned by the node, before classification."""

    err: Optional[Any] = None
    logs: List[str] = field(default_factory=list)
    units_consumed: Optional[int] = None


class LedgerPort(ABC):
    """
    Network-facing ledger abstraction used by the transaction guard.

    Implementations raise:
        SimulationError   simulate() could not run (transport, lookup table resolution)
        TransportFailure  send() never reached the network
        ConfirmationFailure  confirm() timed out or the tx failed on-chain
    """

    @abstractmethod
    async def simulate(
        self,
        tx: AnyTransaction,
        *,
        sig_verify: bool = False,
        replace_recent_blockhash: bool = True,
        commitment: str = "processed",
    ) -> RawSimulation:
        ...

    @abstractmethod
    async def send(
        self,
        tx: AnyTransaction,
        *,
        skip_preflight: bool = False,
        max_retries: Optional[int] = None,
    ) -> str:
        ...

    @abstractmethod
    async def confirm(self, signature: str) -> None:
        ...

    @abstractmethod
    async def get_slot(self) -> int:
        ...

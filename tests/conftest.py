from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

import pytest
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction

from solguard.codec.registry import SchemaRegistry
from solguard.config.known_programs import SOL, USDC
from solguard.errors import ConfirmationFailure, SimulationError, TransportFailure
from solguard.ports.ledger import LedgerPort, RawSimulation
from solguard.programs import send_program


class FakeLedger(LedgerPort):
    """In-memory ledger port. Configure the canned responses, inspect the calls."""

    def __init__(
        self,
        simulation: Optional[RawSimulation] = None,
        simulate_error: Optional[str] = None,
        send_error: Optional[str] = None,
        confirm_error: Optional[str] = None,
        slot: int = 1_000,
    ) -> None:
        self.simulation = simulation or RawSimulation(err=None, logs=["Program log: ok"], units_consumed=5_000)
        self.simulate_error = simulate_error
        self.send_error = send_error
        self.confirm_error = confirm_error
        self.slot = slot

        self.simulate_calls: List[Dict[str, Any]] = []
        self.sent: List[Dict[str, Any]] = []
        self.confirmed: List[str] = []

    async def simulate(self, tx, *, sig_verify=False, replace_recent_blockhash=True, commitment="processed"):
        self.simulate_calls.append(
            {"tx": tx, "sig_verify": sig_verify, "replace": replace_recent_blockhash, "commitment": commitment}
        )
        if self.simulate_error:
            raise SimulationError(self.simulate_error)
        return self.simulation

    async def send(self, tx, *, skip_preflight=False, max_retries=None):
        if self.send_error:
            raise TransportFailure(self.send_error)
        self.sent.append({"tx": tx, "skip_preflight": skip_preflight, "max_retries": max_retries})
        return f"sig{len(self.sent)}"

    async def confirm(self, signature):
        if self.confirm_error:
            raise ConfirmationFailure(self.confirm_error, signature=signature)
        self.confirmed.append(signature)

    async def get_slot(self):
        return self.slot


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def registry() -> SchemaRegistry:
    reg = SchemaRegistry()
    reg.load(send_program.PROGRAM_ID, send_program.IDL)
    return reg


def send_sol_ix(sender: Pubkey, recipient: Optional[Pubkey] = None, amount: int = 1_000_000_000):
    recipient = recipient or Keypair().pubkey()
    send_account, _ = send_program.find_send_account(sender)
    return send_program.send_sol_instruction(amount, recipient, send_account, sender)


def versioned_tx(payer: Keypair, with_lookup: bool = False) -> VersionedTransaction:
    recipient = Keypair().pubkey()
    ix = send_sol_ix(payer.pubkey(), recipient)
    tables = []
    if with_lookup:
        tables = [AddressLookupTableAccount(key=Keypair().pubkey(), addresses=[recipient])]
    msg = MessageV0.try_compile(payer.pubkey(), [ix], tables, Hash.default())
    return VersionedTransaction(msg, [payer])


def legacy_tx(payer: Keypair) -> Transaction:
    return Transaction.new_signed_with_payer([send_sol_ix(payer.pubkey())], payer.pubkey(), [payer], Hash.default())


def swap_tx_b64(payer: Keypair, with_lookup: bool = False) -> str:
    return base64.b64encode(bytes(versioned_tx(payer, with_lookup))).decode("ascii")


def quote_json(
    slot: Optional[int] = 1_000,
    price_impact: str = "0.001",
    integrity_hash: Optional[str] = "q-hash",
    timestamp: Any = None,
    slippage_bps: int = 50,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "inputMint": SOL.mint,
        "outputMint": USDC.mint,
        "inAmount": "1000000000",
        "outAmount": "150123456",
        "otherAmountThreshold": "149372838",
        "swapMode": "ExactIn",
        "slippageBps": slippage_bps,
        "priceImpactPct": price_impact,
        "routePlan": [
            {
                "swapInfo": {
                    "ammKey": "amm1",
                    "label": "Whirlpool",
                    "inputMint": SOL.mint,
                    "outputMint": USDC.mint,
                    "inAmount": "1000000000",
                    "outAmount": "150123456",
                    "feeAmount": "2500",
                    "feeMint": SOL.mint,
                },
                "percent": 100,
            }
        ],
    }
    if slot is not None:
        data["contextSlot"] = slot
    if integrity_hash is not None:
        data["hash"] = integrity_hash
    if timestamp is not None:
        data["timestamp"] = timestamp
    return data


class FakeSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()

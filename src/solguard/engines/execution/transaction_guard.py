"""
transaction_guard.py - Simulate, validate, then send

Every outgoing transaction goes through a dry-run and a rule-based safety
check before it is allowed to reach the network.

States:
    Built -> Simulated -> Validated -> Rejected
                                    -> Sent -> Confirmed | SendFailed

Two send paths:
1. GUARDED: simulate + validate, send only when nothing blocks
2. LOOKUP_TABLE_FALLBACK: only for transactions that reference address
   lookup tables, and only when the simulation itself could not run
   (tables may not resolve off the canonical cluster). Validation is
   skipped on this path; it is logged under its own event and marked on
   the result.

Usage:
    guard = TransactionGuard(SolanaRpcClient(rpc_url))
    result = await guard.safe_send(tx)
    if not result.sent:
        print(result.validation_issues)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from solguard.errors import ConfirmationFailure, SimulationError, TransportFailure
from solguard.ports.ledger import AnyTransaction, LedgerPort, RawSimulation


# =============================================================================
# CONSTANTS
# =============================================================================

SIGNATURE_FEE_LAMPORTS = 5000
COMPUTE_FEE_RATE = 100  # lamports per 1000 compute units

HIGH_COMPUTE_UNITS = 200_000
MODERATE_COMPUTE_UNITS = 100_000
HIGH_FEE_LAMPORTS = 10_000

FALLBACK_MAX_RETRIES = 3

# (needle, message, blocking)
LOG_RULES: Tuple[Tuple[str, str, bool], ...] = (
    ("insufficient funds", "Insufficient funds for transaction", True),
    ("already in use", "Account already exists or is in use", True),
    ("unauthorized", "Unauthorized signer or account access", True),
    ("custom program error", "Program returned a custom error - check logs", False),
)

_LOG_PREFIX = "Program log: "


def estimate_fee(signature_count: int, compute_units: int) -> int:
    """signatures * 5000 + (units // 1000) * 100, in lamports."""
    return signature_count * SIGNATURE_FEE_LAMPORTS + (compute_units // 1000) * COMPUTE_FEE_RATE


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class SimulationOutcome:
    success: bool
    error_message: Optional[str]
    compute_units_consumed: int
    fee_estimate: int
    logs: Tuple[str, ...] = ()
    signature_count: int = 1


@dataclass(frozen=True)
class GuardVerdict:
    safe_to_send: bool
    issues: List[str]
    warnings: List[str]
    simulation: SimulationOutcome


@dataclass(frozen=True)
class TransactionPreview:
    will_succeed: bool
    estimated_fee: int
    compute_units: int
    account_changes: List[str]
    program_logs: List[str]
    error_summary: Optional[str]


class SendPath(Enum):
    GUARDED = "guarded"
    LOOKUP_TABLE_FALLBACK = "lookup_table_fallback"


@dataclass
class SafeSendResult:
    """
    Outcome of a guarded send.

    sent=True with a "Confirmation failed" issue means the transaction was
    submitted but may or may not have landed.
    """
    sent: bool
    signature: Optional[str]
    validation_issues: List[str]
    simulation: SimulationOutcome
    path: SendPath = SendPath.GUARDED
    warnings: List[str] = field(default_factory=list)


# =============================================================================
# HELPERS
# =============================================================================

def signature_count(tx: AnyTransaction) -> int:
    return max(1, len(tx.signatures))


def has_lookup_tables(tx: AnyTransaction) -> bool:
    """True when the message is v0 and references at least one address table."""
    lookups = getattr(tx.message, "address_table_lookups", None)
    return bool(lookups)


def _describe_error(err: object) -> Optional[str]:
    if err is None:
        return None
    text = str(err)
    return text or "Unknown error"


def outcome_from_raw(raw: RawSimulation, signatures: int) -> SimulationOutcome:
    units = int(raw.units_consumed or 0)
    return SimulationOutcome(
        success=raw.err is None,
        error_message=_describe_error(raw.err),
        compute_units_consumed=units,
        fee_estimate=estimate_fee(signatures, units),
        logs=tuple(raw.logs),
        signature_count=signatures,
    )


def _append_once(target: List[str], message: str) -> None:
    if message not in target:
        target.append(message)


# =============================================================================
# GUARD
# =============================================================================

class TransactionGuard:
    """Gatekeeper between a built transaction and the network."""

    def __init__(self, ledger: LedgerPort, commitment: str = "processed"):
        self.ledger = ledger
        self.commitment = commitment

    async def simulate(self, tx: AnyTransaction) -> SimulationOutcome:
        """
        Dry-run the transaction.

        Raises SimulationError only when the simulation could not run; an
        execution failure is reported as success=False.
        """
        raw = await self.ledger.simulate(
            tx,
            sig_verify=False,
            replace_recent_blockhash=True,
            commitment=self.commitment,
        )
        outcome = outcome_from_raw(raw, signature_count(tx))

        logger.info(
            f"GUARD_SIMULATE | success={outcome.success} | units={outcome.compute_units_consumed} | "
            f"fee={outcome.fee_estimate} | logs={len(outcome.logs)}"
        )
        return outcome

    def validate(self, outcome: SimulationOutcome) -> GuardVerdict:
        issues: List[str] = []
        warnings: List[str] = []

        if not outcome.success:
            issues.append(f"Transaction would fail: {outcome.error_message or 'Unknown error'}")

        if outcome.compute_units_consumed > HIGH_COMPUTE_UNITS:
            warnings.append("High compute usage - transaction may fail")
        elif outcome.compute_units_consumed > MODERATE_COMPUTE_UNITS:
            warnings.append("Moderate compute usage")

        if outcome.fee_estimate > HIGH_FEE_LAMPORTS:
            warnings.append(f"High transaction fee: {outcome.fee_estimate} lamports")

        for line in outcome.logs:
            lowered = line.lower()
            for needle, message, blocking in LOG_RULES:
                if needle in lowered:
                    _append_once(issues if blocking else warnings, message)

        verdict = GuardVerdict(
            safe_to_send=not issues,
            issues=issues,
            warnings=warnings,
            simulation=outcome,
        )

        if issues:
            logger.warning(f"GUARD_REJECT | issues={issues} | warnings={warnings}")
        else:
            logger.info(f"GUARD_PASS | warnings={len(warnings)}")
        return verdict

    async def validate_transaction(self, tx: AnyTransaction) -> GuardVerdict:
        return self.validate(await self.simulate(tx))

    async def safe_send(self, tx: AnyTransaction) -> SafeSendResult:
        verdict = await self.validate_transaction(tx)
        return await self._send_validated(tx, verdict)

    async def _send_validated(self, tx: AnyTransaction, verdict: GuardVerdict) -> SafeSendResult:
        if not verdict.safe_to_send:
            return SafeSendResult(
                sent=False,
                signature=None,
                validation_issues=list(verdict.issues),
                simulation=verdict.simulation,
                warnings=list(verdict.warnings),
            )

        issues: List[str] = []
        try:
            signature = await self.ledger.send(tx)
        except TransportFailure as e:
            logger.error(f"GUARD_SEND | failed | {e}")
            return SafeSendResult(
                sent=False,
                signature=None,
                validation_issues=[f"Send failed: {e}"],
                simulation=verdict.simulation,
                warnings=list(verdict.warnings),
            )

        try:
            await self.ledger.confirm(signature)
        except ConfirmationFailure as e:
            logger.warning(f"GUARD_CONFIRM | failed | sig={signature} | {e}")
            issues.append(f"Confirmation failed: {e}")
        else:
            logger.info(f"GUARD_CONFIRM | ok | sig={signature}")

        return SafeSendResult(
            sent=True,
            signature=signature,
            validation_issues=issues,
            simulation=verdict.simulation,
            warnings=list(verdict.warnings),
        )

    # =========================================================================
    # LOOKUP TABLE FALLBACK
    # =========================================================================

    async def safe_send_with_lookup_fallback(self, tx: AnyTransaction) -> SafeSendResult:
        """
        Guarded send for address-lookup-table transactions.

        Falls back to send_direct only when simulation raised SimulationError.
        A simulation that ran and reported an execution error still blocks.
        """
        if not has_lookup_tables(tx):
            raise ValueError("lookup-table fallback requires a v0 message with address table lookups")

        try:
            verdict = await self.validate_transaction(tx)
        except SimulationError as e:
            logger.warning(f"LOOKUP_FALLBACK | simulation unavailable, sending without validation | {e}")
            return await self.send_direct(tx, reason=str(e))

        return await self._send_validated(tx, verdict)

    async def send_direct(self, tx: AnyTransaction, reason: str = "") -> SafeSendResult:
        """Send with preflight skipped. Only reached from the lookup-table fallback."""
        sigs = signature_count(tx)
        skipped = SimulationOutcome(
            success=True,
            error_message=None,
            compute_units_consumed=0,
            fee_estimate=estimate_fee(sigs, 0),
            logs=(f"Simulation skipped: {reason}" if reason else "Simulation skipped",),
            signature_count=sigs,
        )

        try:
            signature = await self.ledger.send(tx, skip_preflight=True, max_retries=FALLBACK_MAX_RETRIES)
        except TransportFailure as e:
            logger.error(f"LOOKUP_FALLBACK | send failed | {e}")
            return SafeSendResult(
                sent=False,
                signature=None,
                validation_issues=[f"Send failed: {e}"],
                simulation=skipped,
                path=SendPath.LOOKUP_TABLE_FALLBACK,
            )

        issues: List[str] = []
        try:
            await self.ledger.confirm(signature)
        except ConfirmationFailure as e:
            logger.warning(f"LOOKUP_FALLBACK | confirm failed | sig={signature} | {e}")
            issues.append(f"Confirmation failed: {e}")
        else:
            logger.info(f"LOOKUP_FALLBACK | confirmed | sig={signature}")

        return SafeSendResult(
            sent=True,
            signature=signature,
            validation_issues=issues,
            simulation=skipped,
            path=SendPath.LOOKUP_TABLE_FALLBACK,
        )

    # =========================================================================
    # PREVIEW
    # =========================================================================

    async def preview(self, tx: AnyTransaction) -> TransactionPreview:
        outcome = await self.simulate(tx)
        return preview_from_outcome(outcome)


def clean_program_logs(logs: Sequence[str]) -> List[str]:
    """Keep only ``Program log:`` lines, with the prefix stripped."""
    return [line.replace(_LOG_PREFIX, "", 1) for line in logs if _LOG_PREFIX in line]


def preview_from_outcome(outcome: SimulationOutcome) -> TransactionPreview:
    changes = [
        line.replace(_LOG_PREFIX, "", 1)
        for line in outcome.logs
        if "balance:" in line or "Allocate:" in line
    ]
    return TransactionPreview(
        will_succeed=outcome.success,
        estimated_fee=outcome.fee_estimate,
        compute_units=outcome.compute_units_consumed,
        account_changes=changes,
        program_logs=clean_program_logs(outcome.logs),
        error_summary=outcome.error_message,
    )


__all__ = [
    "SIGNATURE_FEE_LAMPORTS",
    "COMPUTE_FEE_RATE",
    "HIGH_COMPUTE_UNITS",
    "MODERATE_COMPUTE_UNITS",
    "HIGH_FEE_LAMPORTS",
    "LOG_RULES",
    "estimate_fee",
    "SimulationOutcome",
    "GuardVerdict",
    "TransactionPreview",
    "SendPath",
    "SafeSendResult",
    "TransactionGuard",
    "has_lookup_tables",
    "clean_program_logs",
    "preview_from_outcome",
]

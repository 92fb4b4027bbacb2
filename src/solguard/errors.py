"""
errors.py - Exception taxonomy for solguard

Schema errors fail fast: no partial instruction is ever returned.
Simulation errors are transport/resolution failures only. A transaction that
simulates fine but would fail on-chain is NOT an error, it is a blocking
issue in the GuardVerdict.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple


class SolguardError(Exception):
    """Base class for all toolkit errors."""


# =============================================================================
# SCHEMA / CODEC
# =============================================================================

class SchemaError(SolguardError):
    """Raised by the schema registry and instruction codec."""


class ProgramNotFound(SchemaError):
    def __init__(self, program_id: str):
        self.program_id = program_id
        super().__init__(f"IDL not found for program: {program_id}")


class InstructionNotFound(SchemaError):
    def __init__(self, program_id: str, name: str):
        self.program_id = program_id
        self.name = name
        super().__init__(f"Instruction '{name}' not found in IDL for {program_id}")


class MissingArgument(SchemaError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Missing required argument: {name}")


class UnsupportedType(SchemaError):
    def __init__(self, type_tag: str):
        self.type_tag = type_tag
        super().__init__(f"Unsupported type: {type_tag}")


class InvalidAddress(SchemaError):
    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid pubkey: {value}")


class InvalidArgumentType(SchemaError):
    def __init__(self, name: str, expected: str, value: object):
        self.name = name
        self.expected = expected
        super().__init__(f"Argument '{name}': expected {expected}, got {type(value).__name__}")


class ValueOutOfRange(SchemaError):
    def __init__(self, name: str, type_tag: str, value: object):
        self.name = name
        self.type_tag = type_tag
        super().__init__(f"Argument '{name}': {value} does not fit in {type_tag}")


class SchemaParseError(SchemaError):
    """Malformed schema source."""


class AccountMismatch(SchemaError):
    """Caller-supplied account metas do not satisfy the schema."""


# =============================================================================
# SIMULATION / SEND
# =============================================================================

class SimulationError(SolguardError):
    """Simulation could not be performed (transport or lookup resolution)."""


class SendError(SolguardError):
    """Base for network send failures."""


class TransportFailure(SendError):
    """The transaction never reached the network."""


class ConfirmationFailure(SendError):
    """Submitted but confirmation failed or timed out. The tx may still land."""

    def __init__(self, message: str, signature: Optional[str] = None):
        self.signature = signature
        super().__init__(message)


# =============================================================================
# QUOTES
# =============================================================================

class QuoteError(SolguardError):
    """Base for quote negotiation failures."""


class QuoteHttpError(QuoteError):
    """Non-2xx response (or transport failure) from the quote service."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class SwapBuildError(QuoteError):
    """Swap transaction could not be constructed or decoded."""


class StaleQuoteError(QuoteError):
    """No fresh quote after exhausting the retry policy."""

    def __init__(
        self,
        attempts: int,
        last_error: Optional[Exception] = None,
        issues: Sequence[str] = (),
    ):
        self.attempts = attempts
        self.last_error = last_error
        self.issues: List[str] = list(issues)
        detail = "; ".join(self.issues) if self.issues else str(last_error or "unknown")
        super().__init__(f"No fresh quote after {attempts} attempts: {detail}")


class AdaptiveSlippageExhausted(QuoteError):
    """Every slippage candidate failed to produce a swap transaction."""

    def __init__(self, attempts: Sequence[Tuple[int, str]]):
        self.attempts: List[Tuple[int, str]] = list(attempts)
        tried = ", ".join(f"{bps}bps" for bps, _ in self.attempts) or "none"
        super().__init__(f"Failed to build swap after adaptive slippage attempts ({tried})")


__all__ = [
    "SolguardError",
    "SchemaError",
    "ProgramNotFound",
    "InstructionNotFound",
    "MissingArgument",
    "UnsupportedType",
    "InvalidAddress",
    "InvalidArgumentType",
    "ValueOutOfRange",
    "SchemaParseError",
    "AccountMismatch",
    "SimulationError",
    "SendError",
    "TransportFailure",
    "ConfirmationFailure",
    "QuoteError",
    "QuoteHttpError",
    "SwapBuildError",
    "StaleQuoteError",
    "AdaptiveSlippageExhausted",
]

"""
jupiter_adapter.py - Jupiter quote negotiation with freshness gating

Features:
1. Single round-trip quote fetch (amounts kept as Decimal, never float)
2. Freshness validation: slot drift, age, integrity hash, price impact
3. Bounded fresh-quote retry with fixed stale / error delays
4. Adaptive slippage ladder for swap transaction construction

Usage:
    negotiator = QuoteNegotiator(JupiterConfig(), slot_source=rpc.get_slot)

    quote = await negotiator.get_fresh_quote(QuoteRequest(SOL.mint, USDC.mint, 1_000_000))
    build = await negotiator.build_swap_transaction(user, SOL.mint, USDC.mint, 1_000_000)
    tx = build.transaction
"""

from __future__ import annotations

import asyncio
import base64
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import httpx
from loguru import logger
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from solguard.errors import (
    AdaptiveSlippageExhausted,
    QuoteError,
    QuoteHttpError,
    StaleQuoteError,
    SwapBuildError,
)


SleepFn = Callable[[float], Awaitable[None]]
SlotSource = Callable[[], Awaitable[int]]


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class JupiterConfig:
    """Jupiter quote API configuration."""

    # API settings
    base_url: str = "https://quote-api.jup.ag/v6"
    http_timeout: float = 30.0

    # Slippage ladder (bps). Preferred value goes first when given.
    default_slippage_bps: int = 50
    fallback_slippage_bps: Tuple[int, ...] = (100, 150, 200)

    # Swap build options
    wrap_and_unwrap_sol: bool = True
    dynamic_compute_unit_limit: bool = True
    priority_fee_lamports: Optional[int] = None  # None = "auto"

    # Freshness thresholds: block above max, warn above warn
    max_slot_drift: int = 150
    warn_slot_drift: int = 50
    max_age_seconds: float = 30.0
    warn_age_seconds: float = 10.0
    max_price_impact_pct: Decimal = Decimal("5.0")
    warn_price_impact_pct: Decimal = Decimal("2.0")

    def slippage_candidates(self, preferred_bps: Optional[int] = None) -> List[int]:
        """Preferred (or default) first, then the fallback ladder, duplicates dropped."""
        first = preferred_bps if preferred_bps is not None else self.default_slippage_bps
        candidates: List[int] = []
        for bps in (first, *self.fallback_slippage_bps):
            if bps not in candidates:
                candidates.append(bps)
        return candidates


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry policy for get_fresh_quote."""
    max_attempts: int = 3
    stale_delay: float = 0.5
    error_delay: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.stale_delay < 0 or self.error_delay < 0:
            raise ValueError("retry delays must be non-negative")


# =============================================================================
# QUOTE TYPES
# =============================================================================

@dataclass(frozen=True)
class QuoteRequest:
    input_mint: str
    output_mint: str
    amount: int
    slippage_bps: int = 50
    restrict_intermediate_tokens: bool = True
    only_direct_routes: bool = False

    def to_params(self) -> Dict[str, str]:
        return {
            "inputMint": self.input_mint,
            "outputMint": self.output_mint,
            "amount": str(self.amount),
            "slippageBps": str(self.slippage_bps),
            "restrictIntermediateTokens": str(self.restrict_intermediate_tokens).lower(),
            "onlyDirectRoutes": str(self.only_direct_routes).lower(),
        }

    def with_slippage(self, slippage_bps: int) -> "QuoteRequest":
        return QuoteRequest(
            input_mint=self.input_mint,
            output_mint=self.output_mint,
            amount=self.amount,
            slippage_bps=slippage_bps,
            restrict_intermediate_tokens=self.restrict_intermediate_tokens,
            only_direct_routes=self.only_direct_routes,
        )


@dataclass(frozen=True)
class RouteHop:
    amm_key: str
    label: str
    input_mint: str
    output_mint: str
    in_amount: Decimal
    out_amount: Decimal
    fee_amount: Decimal
    fee_mint: str
    percent: int


@dataclass(frozen=True)
class Quote:
    input_mint: str
    output_mint: str
    in_amount: Decimal
    out_amount: Decimal
    other_amount_threshold: Decimal
    swap_mode: str
    slippage_bps: int
    price_impact_pct: Decimal
    route_plan: Tuple[RouteHop, ...]
    context_slot: Optional[int]
    timestamp: Optional[float]
    integrity_hash: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class QuoteValidation:
    is_fresh: bool
    needs_refresh: bool
    issues: List[str]
    warnings: List[str]
    slot_drift: Optional[int]
    age_seconds: Optional[float]


@dataclass(frozen=True)
class SwapBuild:
    transaction: VersionedTransaction
    slippage_bps: int
    quote: Quote
    last_valid_block_height: Optional[int]
    attempts: List[Tuple[int, str]]


# =============================================================================
# PARSING
# =============================================================================

def _decimal(value: Any, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    try:
        parsed = Decimal(str(value))
    except InvalidOperation as e:
        raise QuoteError(f"Invalid decimal amount in quote: {value!r}") from e
    if not parsed.is_finite():
        raise QuoteError(f"Non-finite number in quote: {value!r}")
    return parsed


def _parse_timestamp(value: Any) -> Optional[float]:
    """Unix seconds (number or numeric string) or ISO-8601."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else None
    text = str(value)
    try:
        seconds = float(text)
        return seconds if math.isfinite(seconds) else None
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"JUPITER_QUOTE | unparseable timestamp | {text}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _parse_hop(item: Dict[str, Any]) -> RouteHop:
    info = item.get("swapInfo") or {}
    return RouteHop(
        amm_key=info.get("ammKey", ""),
        label=info.get("label", ""),
        input_mint=info.get("inputMint", ""),
        output_mint=info.get("outputMint", ""),
        in_amount=_decimal(info.get("inAmount")),
        out_amount=_decimal(info.get("outAmount")),
        fee_amount=_decimal(info.get("feeAmount")),
        fee_mint=info.get("feeMint", ""),
        percent=int(item.get("percent", 100)),
    )


def parse_quote(data: Dict[str, Any], request: Optional[QuoteRequest] = None) -> Quote:
    """Build a Quote from the /quote JSON. priceImpactPct arrives as a fraction."""
    if not isinstance(data, dict):
        raise QuoteError(f"Quote response is not an object: {type(data).__name__}")

    required = ["inAmount", "outAmount", "routePlan"]
    missing = [f for f in required if f not in data]
    if missing:
        raise QuoteError(f"Quote response missing fields: {missing}")
    if not isinstance(data["routePlan"], list):
        raise QuoteError("Quote routePlan is not a list")

    slot = data.get("contextSlot")
    integrity = data.get("hash") or data.get("quoteHash") or None

    try:
        return Quote(
            input_mint=data.get("inputMint") or (request.input_mint if request else ""),
            output_mint=data.get("outputMint") or (request.output_mint if request else ""),
            in_amount=_decimal(data["inAmount"]),
            out_amount=_decimal(data["outAmount"]),
            other_amount_threshold=_decimal(data.get("otherAmountThreshold")),
            swap_mode=data.get("swapMode", "ExactIn"),
            slippage_bps=int(data.get("slippageBps", request.slippage_bps if request else 0)),
            price_impact_pct=_decimal(data.get("priceImpactPct")) * 100,
            route_plan=tuple(_parse_hop(hop) for hop in data["routePlan"]),
            context_slot=int(slot) if slot is not None else None,
            timestamp=_parse_timestamp(data.get("timestamp")),
            integrity_hash=integrity,
            raw=data,
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise QuoteError(f"Malformed quote response: {type(e).__name__}: {e}") from e


# =============================================================================
# NEGOTIATOR
# =============================================================================

class QuoteNegotiator:
    """
    Jupiter quote/swap client.

    Retries are sequential: one slippage candidate is fully attempted,
    including its own fresh-quote loop, before the next is tried.
    """

    def __init__(
        self,
        config: Optional[JupiterConfig] = None,
        retry: Optional[RetryPolicy] = None,
        slot_source: Optional[SlotSource] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or JupiterConfig()
        self.retry = retry or RetryPolicy()
        self.slot_source = slot_source
        self._client = client
        self._sleep = sleep
        self._clock = clock

        logger.info(
            f"JUPITER_ADAPTER | init | url={self.config.base_url} | max_attempts={self.retry.max_attempts}"
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout)
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # =========================================================================
    # QUOTE API
    # =========================================================================

    async def get_quote(self, request: QuoteRequest) -> Quote:
        """
        Single /quote round trip.

        Raises:
            QuoteHttpError: non-2xx status or transport failure
            QuoteError: response missing required fields
        """
        client = await self._get_client()

        try:
            resp = await client.get(f"{self.config.base_url}/quote", params=request.to_params())
        except httpx.HTTPError as e:
            logger.warning(f"JUPITER_QUOTE | transport_error | {type(e).__name__}: {e}")
            raise QuoteHttpError(f"Quote request failed: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning(f"JUPITER_QUOTE | http_error | status={resp.status_code}")
            raise QuoteHttpError(
                f"Quote request returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise QuoteHttpError(
                f"Quote response is not JSON: {e}", status_code=resp.status_code, body=resp.text
            ) from e

        quote = parse_quote(data, request)
        logger.debug(
            f"JUPITER_QUOTE | success | in={quote.in_amount} out={quote.out_amount} | "
            f"slippage={request.slippage_bps}bps | slot={quote.context_slot}"
        )
        return quote

    def validate_freshness(
        self,
        quote: Quote,
        current_slot: Optional[int] = None,
        now: Optional[float] = None,
    ) -> QuoteValidation:
        """
        Check a quote against the reference slot and wall clock.

        Each metric contributes at most one issue or one warning. A quote
        without a slot (or timestamp) skips that metric; a missing reference
        slot means drift 0.
        """
        cfg = self.config
        issues: List[str] = []
        warnings: List[str] = []

        slot_drift: Optional[int] = None
        if quote.context_slot is not None:
            reference = current_slot if current_slot is not None else quote.context_slot
            slot_drift = max(0, reference - quote.context_slot)
            if slot_drift > cfg.max_slot_drift:
                issues.append(f"Quote is stale: slot drift {slot_drift} exceeds {cfg.max_slot_drift}")
            elif slot_drift > cfg.warn_slot_drift:
                warnings.append(f"Quote slot drift elevated: {slot_drift} slots")

        age_seconds: Optional[float] = None
        if quote.timestamp is not None:
            now = self._clock() if now is None else now
            age_seconds = max(0.0, now - quote.timestamp)
            if age_seconds > cfg.max_age_seconds:
                issues.append(f"Quote is too old: {age_seconds:.1f}s exceeds {cfg.max_age_seconds:.0f}s")
            elif age_seconds > cfg.warn_age_seconds:
                warnings.append(f"Quote age elevated: {age_seconds:.1f}s")

        if not quote.integrity_hash:
            warnings.append("Quote has no integrity hash")

        impact = quote.price_impact_pct
        if impact > cfg.max_price_impact_pct:
            issues.append(f"Price impact too high: {impact:.2f}% exceeds {cfg.max_price_impact_pct}%")
        elif impact > cfg.warn_price_impact_pct:
            warnings.append(f"Price impact elevated: {impact:.2f}%")

        is_fresh = not issues
        return QuoteValidation(
            is_fresh=is_fresh,
            needs_refresh=not is_fresh or bool(warnings),
            issues=issues,
            warnings=warnings,
            slot_drift=slot_drift,
            age_seconds=age_seconds,
        )

    async def _reference_slot(self) -> Optional[int]:
        if self.slot_source is None:
            return None
        try:
            return int(await self.slot_source())
        except Exception as e:
            # Best effort: fall back to the quote's own slot.
            logger.warning(f"JUPITER_QUOTE | slot_source failed | {type(e).__name__}: {e}")
            return None

    async def get_fresh_quote(self, request: QuoteRequest, max_attempts: Optional[int] = None) -> Quote:
        """
        Fetch until a quote passes validate_freshness.

        Stale quotes wait `stale_delay`, HTTP failures wait `error_delay`.
        Raises StaleQuoteError with the last error or issues when exhausted.
        """
        attempts = max_attempts if max_attempts is not None else self.retry.max_attempts
        last_error: Optional[Exception] = None
        last_issues: List[str] = []

        for attempt in range(1, attempts + 1):
            try:
                quote = await self.get_quote(request)
            except QuoteError as e:
                last_error, last_issues = e, []
                logger.warning(f"JUPITER_FRESH | quote_error | attempt={attempt}/{attempts} | {e}")
                if attempt < attempts:
                    await self._sleep(self.retry.error_delay)
                continue

            validation = self.validate_freshness(quote, await self._reference_slot())
            if validation.is_fresh:
                if validation.warnings:
                    logger.info(f"JUPITER_FRESH | ok_with_warnings | {validation.warnings}")
                return quote

            last_error, last_issues = None, list(validation.issues)
            logger.warning(
                f"JUPITER_FRESH | stale | attempt={attempt}/{attempts} | issues={validation.issues}"
            )
            if attempt < attempts:
                await self._sleep(self.retry.stale_delay)

        raise StaleQuoteError(attempts, last_error=last_error, issues=last_issues)

    # =========================================================================
    # SWAP API
    # =========================================================================

    async def get_swap_transaction(
        self,
        quote: Quote,
        user_public_key: Union[str, Pubkey],
    ) -> Tuple[VersionedTransaction, Optional[int]]:
        """
        POST /swap and decode the returned transaction.

        Returns (transaction, last_valid_block_height).
        """
        fee = self.config.priority_fee_lamports
        payload = {
            "quoteResponse": quote.raw,
            "userPublicKey": str(user_public_key),
            "wrapAndUnwrapSol": self.config.wrap_and_unwrap_sol,
            "dynamicComputeUnitLimit": self.config.dynamic_compute_unit_limit,
            "prioritizationFeeLamports": fee if fee else "auto",
        }

        client = await self._get_client()
        try:
            resp = await client.post(f"{self.config.base_url}/swap", json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"JUPITER_SWAP | transport_error | {type(e).__name__}: {e}")
            raise QuoteHttpError(f"Swap request failed: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning(f"JUPITER_SWAP | http_error | status={resp.status_code}")
            raise QuoteHttpError(
                f"Swap request returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise SwapBuildError(f"Swap response is not JSON: {e}") from e

        if not isinstance(data, dict):
            raise SwapBuildError(f"Swap response is not an object: {type(data).__name__}")

        encoded = data.get("swapTransaction")
        if not encoded:
            raise SwapBuildError("Swap response missing swapTransaction")

        try:
            tx_bytes = base64.b64decode(encoded, validate=True)
            tx = VersionedTransaction.from_bytes(tx_bytes)
        except Exception as e:
            raise SwapBuildError(f"Could not decode swap transaction: {type(e).__name__}: {e}") from e

        if not tx.message.instructions:
            raise SwapBuildError("Swap transaction has no instructions")

        last_valid = data.get("lastValidBlockHeight")
        if last_valid is not None:
            try:
                last_valid = int(last_valid)
            except (TypeError, ValueError) as e:
                raise SwapBuildError(f"Invalid lastValidBlockHeight: {last_valid!r}") from e
        logger.debug(f"JUPITER_SWAP | success | size={len(tx_bytes)} bytes | last_valid={last_valid}")
        return tx, last_valid

    async def build_swap_transaction(
        self,
        user: Union[str, Pubkey],
        input_mint: str,
        output_mint: str,
        amount: int,
        preferred_slippage_bps: Optional[int] = None,
    ) -> SwapBuild:
        """
        Walk the slippage ladder until a swap transaction is built.

        Never returns a partial transaction; raises AdaptiveSlippageExhausted
        listing (bps, error) for every candidate tried.
        """
        base = QuoteRequest(input_mint=input_mint, output_mint=output_mint, amount=amount)
        failures: List[Tuple[int, str]] = []

        for bps in self.config.slippage_candidates(preferred_slippage_bps):
            logger.info(f"JUPITER_LADDER | attempt | slippage={bps}bps | amount={amount}")
            try:
                quote = await self.get_fresh_quote(base.with_slippage(bps))
                tx, last_valid = await self.get_swap_transaction(quote, user)
            except QuoteError as e:
                logger.warning(f"JUPITER_LADDER | failed | slippage={bps}bps | {e}")
                failures.append((bps, str(e)))
                continue

            logger.info(f"JUPITER_LADDER | success | slippage={bps}bps | tried={len(failures) + 1}")
            return SwapBuild(
                transaction=tx,
                slippage_bps=bps,
                quote=quote,
                last_valid_block_height=last_valid,
                attempts=failures + [(bps, "ok")],
            )

        logger.error(f"JUPITER_LADDER | exhausted | attempts={failures}")
        raise AdaptiveSlippageExhausted(failures)


__all__ = [
    "JupiterConfig",
    "RetryPolicy",
    "QuoteRequest",
    "RouteHop",
    "Quote",
    "QuoteValidation",
    "SwapBuild",
    "QuoteNegotiator",
    "parse_quote",
]

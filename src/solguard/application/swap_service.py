"""
swap_service.py - Quote -> sign -> guarded send

Usage:
    service = SwapService(negotiator, guard, keypair)
    result = await service.swap("SOL", "USDC", 10_000_000)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from solguard.config.known_programs import resolve_mint
from solguard.engines.execution.adapters.jupiter_adapter import QuoteNegotiator, SwapBuild
from solguard.engines.execution.transaction_guard import (
    SafeSendResult,
    TransactionGuard,
    has_lookup_tables,
)


@dataclass(frozen=True)
class SwapResult:
    build: SwapBuild
    send: SafeSendResult

    @property
    def signature(self) -> Optional[str]:
        return self.send.signature

    @property
    def sent(self) -> bool:
        return self.send.sent


class SwapService:
    """Builds a Jupiter swap, signs it with the user key and sends it through the guard."""

    def __init__(self, negotiator: QuoteNegotiator, guard: TransactionGuard, keypair: Keypair):
        self.negotiator = negotiator
        self.guard = guard
        self.keypair = keypair

    def sign(self, tx: VersionedTransaction) -> VersionedTransaction:
        return VersionedTransaction(tx.message, [self.keypair])

    async def swap(
        self,
        input_token: str,
        output_token: str,
        amount: int,
        preferred_slippage_bps: Optional[int] = None,
    ) -> SwapResult:
        """
        Raises AdaptiveSlippageExhausted when no swap could be built.
        Guard rejections and send failures come back on result.send.
        """
        input_mint = resolve_mint(input_token)
        output_mint = resolve_mint(output_token)

        build = await self.negotiator.build_swap_transaction(
            self.keypair.pubkey(),
            input_mint,
            output_mint,
            amount,
            preferred_slippage_bps,
        )
        signed = self.sign(build.transaction)

        # Jupiter routes usually reference lookup tables; only those may use the fallback.
        if has_lookup_tables(signed):
            send = await self.guard.safe_send_with_lookup_fallback(signed)
        else:
            send = await self.guard.safe_send(signed)

        if send.sent:
            logger.info(
                f"SWAP_SENT | {input_token}->{output_token} | amount={amount} | "
                f"slippage={build.slippage_bps}bps | path={send.path.value} | sig={send.signature}"
            )
        else:
            logger.warning(
                f"SWAP_BLOCKED | {input_token}->{output_token} | amount={amount} | issues={send.validation_issues}"
            )
        return SwapResult(build=build, send=send)


__all__ = ["SwapResult", "SwapService"]

"""
Well-known Solana program ids and token mints.

Kept small so the guard, the swap service and tests can share one set of
constants.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from solders.pubkey import Pubkey


SYSTEM_PROGRAM = "11111111111111111111111111111111"
TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM = "TokenzQdBNbLqU2YPbVmjYVBRhCF9dDid1i9QpZ5dKQ"
ASSOCIATED_TOKEN_PROGRAM = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"

SYSTEM_PROGRAM_ID = Pubkey.from_string(SYSTEM_PROGRAM)

PROGRAM_LABELS: Dict[str, str] = {
    SYSTEM_PROGRAM: "System Program",
    TOKEN_PROGRAM: "SPL Token",
    ASSOCIATED_TOKEN_PROGRAM: "SPL Associated Token Account",
    TOKEN_2022_PROGRAM: "SPL Token-2022",
}


def program_label(program_id: str) -> str:
    return PROGRAM_LABELS.get(str(program_id), "Unknown Program")


@dataclass(frozen=True)
class SolanaToken:
    symbol: str
    mint: str
    decimals: int


# NOTE: Mint addresses are the widely used mainnet mints; verify before live.
SOL = SolanaToken(symbol="SOL", mint="So11111111111111111111111111111111111111112", decimals=9)
USDC = SolanaToken(symbol="USDC", mint="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", decimals=6)
USDT = SolanaToken(symbol="USDT", mint="Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", decimals=6)
BONK = SolanaToken(symbol="BONK", mint="DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", decimals=5)

TOKEN_MAP: Dict[str, SolanaToken] = {t.symbol: t for t in [SOL, USDC, USDT, BONK]}


def get_token(symbol: str) -> SolanaToken:
    key = symbol.upper()
    if key not in TOKEN_MAP:
        raise KeyError(f"Token not configured: {symbol}")
    return TOKEN_MAP[key]


def resolve_mint(symbol_or_mint: str) -> str:
    """Accept either a configured symbol or a raw mint address."""
    key = symbol_or_mint.upper()
    if key in TOKEN_MAP:
        return TOKEN_MAP[key].mint
    return symbol_or_mint


def derive_program_address(seeds: List[bytes], program_id: str) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address(seeds, Pubkey.from_string(program_id))


def derive_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    ata, _bump = derive_program_address(
        [bytes(owner), bytes(Pubkey.from_string(TOKEN_PROGRAM)), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM,
    )
    return ata


__all__ = [
    "SYSTEM_PROGRAM",
    "TOKEN_PROGRAM",
    "TOKEN_2022_PROGRAM",
    "ASSOCIATED_TOKEN_PROGRAM",
    "SYSTEM_PROGRAM_ID",
    "PROGRAM_LABELS",
    "program_label",
    "SolanaToken",
    "SOL",
    "USDC",
    "USDT",
    "BONK",
    "TOKEN_MAP",
    "get_token",
    "resolve_mint",
    "derive_program_address",
    "derive_associated_token_address",
]

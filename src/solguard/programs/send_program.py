"""
Client for the send program (SOL transfers through a per-user PDA).

Discriminators and curated error messages are maintained by hand; the
error table is registered as an override in the ErrorDecoder.
"""

from __future__ import annotations

import struct
from typing import Dict, Optional, Tuple

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from solguard.config.known_programs import SYSTEM_PROGRAM_ID

PROGRAM_ID = "Bj4vH3tVu1GjCHeU3peRfYyxJpAzooyZCTU6rRFR4AnY"
SEND_ACCOUNT_SEED = b"send_account"

INITIALIZE_DISCRIMINATOR = bytes([175, 175, 109, 31, 13, 152, 155, 237])
SEND_SOL_DISCRIMINATOR = bytes([214, 24, 219, 18, 3, 205, 201, 179])
GET_STATS_DISCRIMINATOR = bytes([241, 65, 112, 185, 230, 140, 139, 177])

MIN_SEND_LAMPORTS = 1_000_000

ERRORS: Dict[int, str] = {
    6000: "Amount must be at least 0.001 SOL (1,000,000 lamports)",
    6001: "Unauthorized: sender does not own the send account",
}


def program_id() -> Pubkey:
    return Pubkey.from_string(PROGRAM_ID)


def decode_error(code: int) -> Optional[str]:
    return ERRORS.get(code)


def find_send_account(user: Pubkey) -> Tuple[Pubkey, int]:
    """PDA holding the user's send stats."""
    return Pubkey.find_program_address([SEND_ACCOUNT_SEED, bytes(user)], program_id())


def initialize_instruction(send_account: Pubkey, user: Pubkey) -> Instruction:
    return Instruction(
        program_id(),
        INITIALIZE_DISCRIMINATOR,
        [
            AccountMeta(send_account, is_signer=False, is_writable=True),
            AccountMeta(user, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


def send_sol_instruction(
    amount: int,
    recipient: Pubkey,
    send_account: Pubkey,
    sender: Pubkey,
) -> Instruction:
    data = SEND_SOL_DISCRIMINATOR + struct.pack("<Q", amount) + bytes(recipient)
    return Instruction(
        program_id(),
        data,
        [
            AccountMeta(send_account, is_signer=False, is_writable=True),
            AccountMeta(sender, is_signer=True, is_writable=True),
            AccountMeta(recipient, is_signer=False, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


def get_stats_instruction(send_account: Pubkey) -> Instruction:
    return Instruction(
        program_id(),
        GET_STATS_DISCRIMINATOR,
        [AccountMeta(send_account, is_signer=False, is_writable=False)],
    )


IDL = {
    "address": PROGRAM_ID,
    "instructions": [
        {
            "name": "initialize",
            "discriminator": list(INITIALIZE_DISCRIMINATOR),
            "accounts": [
                {"name": "send_account", "writable": True},
                {"name": "user", "writable": True, "signer": True},
                {"name": "system_program"},
            ],
            "args": [],
        },
        {
            "name": "send_sol",
            "discriminator": list(SEND_SOL_DISCRIMINATOR),
            "accounts": [
                {"name": "send_account", "writable": True},
                {"name": "sender", "writable": True, "signer": True},
                {"name": "recipient", "writable": True},
                {"name": "system_program"},
            ],
            "args": [
                {"name": "amount", "type": "u64"},
                {"name": "recipient", "type": "pubkey"},
            ],
        },
        {
            "name": "get_stats",
            "discriminator": list(GET_STATS_DISCRIMINATOR),
            "accounts": [{"name": "send_account"}],
            "args": [],
        },
    ],
    "errors": [
        {"code": 6000, "name": "AmountTooSmall", "msg": "Amount must be at least 0.001 SOL"},
        {"code": 6001, "name": "Unauthorized", "msg": "Unauthorized"},
    ],
}

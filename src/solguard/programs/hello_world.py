"""Client for the hello_world example program."""

from __future__ import annotations

import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from solguard.config.known_programs import SYSTEM_PROGRAM_ID

PROGRAM_ID = "5PiuXarsz2F7Q6NpSCtdBbK6vroQWiGSdJZW3fPkjWHw"

INITIALIZE_DISCRIMINATOR = bytes([175, 175, 109, 31, 13, 152, 155, 237])
UPDATE_MESSAGE_DISCRIMINATOR = bytes([23, 135, 34, 211, 96, 120, 107, 9])
GET_MESSAGE_DISCRIMINATOR = bytes([159, 69, 186, 171, 244, 131, 99, 223])


def program_id() -> Pubkey:
    return Pubkey.from_string(PROGRAM_ID)


def _string_arg(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def initialize_instruction(message: str, hello_world_account: Pubkey, user: Pubkey) -> Instruction:
    return Instruction(
        program_id(),
        INITIALIZE_DISCRIMINATOR + _string_arg(message),
        [
            AccountMeta(hello_world_account, is_signer=False, is_writable=False),
            AccountMeta(user, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


def update_message_instruction(new_message: str, hello_world_account: Pubkey, user: Pubkey) -> Instruction:
    return Instruction(
        program_id(),
        UPDATE_MESSAGE_DISCRIMINATOR + _string_arg(new_message),
        [
            AccountMeta(hello_world_account, is_signer=False, is_writable=False),
            AccountMeta(user, is_signer=False, is_writable=False),
        ],
    )


def get_message_instruction(hello_world_account: Pubkey) -> Instruction:
    return Instruction(
        program_id(),
        GET_MESSAGE_DISCRIMINATOR,
        [AccountMeta(hello_world_account, is_signer=False, is_writable=False)],
    )


IDL = {
    "address": PROGRAM_ID,
    "instructions": [
        {
            "name": "initialize",
            "discriminator": list(INITIALIZE_DISCRIMINATOR),
            "accounts": [
                {"name": "hello_world_account"},
                {"name": "user"},
                {"name": "system_program"},
            ],
            "args": [{"name": "message", "type": "string"}],
        },
        {
            "name": "update_message",
            "discriminator": list(UPDATE_MESSAGE_DISCRIMINATOR),
            "accounts": [{"name": "hello_world_account"}, {"name": "user"}],
            "args": [{"name": "new_message", "type": "string"}],
        },
        {
            "name": "get_message",
            "discriminator": list(GET_MESSAGE_DISCRIMINATOR),
            "accounts": [{"name": "hello_world_account"}],
            "args": [],
        },
    ],
}

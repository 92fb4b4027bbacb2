"""Hand-maintained clients for well-known programs."""

from typing import Any, Dict

from solguard.programs import hello_world, send_program

# program id -> curated error table, consulted before the IDL error table
ERROR_OVERRIDES: Dict[str, Dict[int, str]] = {
    send_program.PROGRAM_ID: send_program.ERRORS,
}

BUILTIN_IDLS: Dict[str, Dict[str, Any]] = {
    send_program.PROGRAM_ID: send_program.IDL,
    hello_world.PROGRAM_ID: hello_world.IDL,
}

__all__ = ["hello_world", "send_program", "ERROR_OVERRIDES", "BUILTIN_IDLS"]

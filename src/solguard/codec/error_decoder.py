"""
error_decoder.py - Program error code -> human readable message

Lookup order:
1. Per-program override table (curated messages shipped with generated clients)
2. The program's IDL error table, formatted "<name>: <msg>"
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from loguru import logger

from solguard.codec.registry import SchemaRegistry
from solguard.programs import ERROR_OVERRIDES

_CUSTOM_ERROR_RE = re.compile(r"custom program error: 0x([0-9a-fA-F]+)")


def parse_custom_error_code(logs: Sequence[str]) -> Optional[int]:
    """Return the first `custom program error: 0x..` code found in logs."""
    for line in logs:
        match = _CUSTOM_ERROR_RE.search(line)
        if match:
            return int(match.group(1), 16)
    return None


class ErrorDecoder:
    def __init__(
        self,
        registry: SchemaRegistry,
        overrides: Optional[Mapping[str, Mapping[int, str]]] = None,
    ):
        self.registry = registry
        self._overrides: Dict[str, Dict[int, str]] = {
            pid: dict(table) for pid, table in ERROR_OVERRIDES.items()
        }
        for pid, table in (overrides or {}).items():
            self.register_overrides(pid, table)

    def register_overrides(self, program_id: str, table: Mapping[int, str]) -> None:
        self._overrides.setdefault(program_id, {}).update(table)

    def decode(self, program_id: str, code: int) -> Optional[str]:
        override = self._overrides.get(program_id, {}).get(code)
        if override is not None:
            return override

        schema = self.registry.get(program_id)
        if schema is None:
            return None
        err = schema.error(code)
        if err is None:
            return None
        return f"{err.name}: {err.msg}"

    def explain(self, program_id: str, outcome: Union[Sequence[str], Any]) -> Optional[str]:
        """
        Describe the custom program error in simulation logs, if any.

        Accepts a SimulationOutcome (anything with `.logs`) or raw log lines.
        Returns None when the logs carry no custom error code.
        """
        logs = getattr(outcome, "logs", outcome)
        code = parse_custom_error_code(logs)
        if code is None:
            return None

        msg = self.decode(program_id, code)
        if msg is None:
            logger.info(f"ERROR_DECODE | program={program_id[:8]}... | code={code} | no mapping")
            return f"Program error code: {code} (no mapping found)"

        logger.info(f"ERROR_DECODE | program={program_id[:8]}... | code={code} | {msg}")
        return f"Decoded program error ({code}): {msg}"


__all__ = ["ErrorDecoder", "parse_custom_error_code"]

"""
registry.py - Program schema registry

Holds one ProgramSchema per program id. The caller owns the registry and
passes it to the codec and error decoder; there is no module-level instance.

Usage:
    registry = SchemaRegistry()
    registry.load_file("idl/send_program.json", SEND_PROGRAM_ID)
    entry = registry.lookup_instruction(SEND_PROGRAM_ID, "send_sol")
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from loguru import logger

from solguard.codec.schema import ProgramSchema, SchemaEntry, parse_program_schema
from solguard.errors import ProgramNotFound, SchemaParseError

SchemaSource = Union[str, bytes, Mapping[str, Any]]


class SchemaRegistry:
    """Lookup structure over loaded program schemas. No I/O after load."""

    def __init__(self) -> None:
        self._schemas: Dict[str, ProgramSchema] = {}

    def load(self, program_id: str, source: SchemaSource) -> ProgramSchema:
        """
        Parse and store a schema, replacing any previous one for program_id.

        Args:
            program_id: Program address the schema is registered under
            source: Decoded IDL mapping, or raw JSON text

        Raises:
            SchemaParseError: malformed JSON or IDL structure
        """
        if isinstance(source, (str, bytes)):
            try:
                source = json.loads(source)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise SchemaParseError(f"Invalid IDL JSON for {program_id}: {e}") from e

        schema = parse_program_schema(program_id, source)

        if program_id in self._schemas:
            logger.info(f"SCHEMA_REPLACE | program={program_id[:8]}...")
        self._schemas[program_id] = schema

        logger.debug(
            f"SCHEMA_LOAD | program={program_id[:8]}... | "
            f"instructions={len(schema.instructions)} | errors={len(schema.errors)}"
        )
        return schema

    def load_file(self, path: Union[str, Path], program_id: str) -> ProgramSchema:
        """Load an IDL JSON file from disk."""
        try:
            content = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise SchemaParseError(f"Cannot read IDL file {path}: {e}") from e
        return self.load(program_id, content)

    def schema(self, program_id: str) -> ProgramSchema:
        schema = self._schemas.get(program_id)
        if schema is None:
            raise ProgramNotFound(program_id)
        return schema

    def get(self, program_id: str) -> Optional[ProgramSchema]:
        return self._schemas.get(program_id)

    def has_program(self, program_id: str) -> bool:
        return program_id in self._schemas

    def lookup_instruction(self, program_id: str, name: str) -> SchemaEntry:
        """
        Raises:
            ProgramNotFound: no schema for program_id
            InstructionNotFound: schema has no instruction called name
        """
        return self.schema(program_id).instruction(name)

    def get_discriminator(self, program_id: str, name: str) -> bytes:
        return self.lookup_instruction(program_id, name).discriminator

    def instructions(self, program_id: str) -> List[SchemaEntry]:
        return list(self.schema(program_id).instructions)

    def list_programs(self) -> List[str]:
        return sorted(self._schemas)


__all__ = ["SchemaRegistry", "SchemaSource"]

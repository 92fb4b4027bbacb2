"""
Program schema model (Anchor-style IDL).

Schemas are parsed once and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from solguard.errors import InstructionNotFound, SchemaParseError

DISCRIMINATOR_SIZE = 8


class FieldType(Enum):
    """Closed set of argument types the codec can serialize."""
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"
    BOOL = "bool"
    STRING = "string"
    PUBKEY = "pubkey"

    @classmethod
    def from_tag(cls, tag: str) -> Optional["FieldType"]:
        """Map an IDL type tag to a FieldType. Unknown tags return None."""
        if tag == "publicKey":
            return cls.PUBKEY
        try:
            return cls(tag)
        except ValueError:
            return None


@dataclass(frozen=True)
class AccountSpec:
    name: str
    writable: bool = False
    signer: bool = False
    optional: bool = False


@dataclass(frozen=True)
class ArgSpec:
    """
    A declared instruction argument.

    `field_type` is None when the IDL uses a tag outside FieldType; the
    codec rejects such arguments at encode time with UnsupportedType.
    """
    name: str
    type_tag: str
    field_type: Optional[FieldType]


@dataclass(frozen=True)
class ErrorSpec:
    code: int
    name: str
    msg: str


@dataclass(frozen=True)
class SchemaEntry:
    """One instruction of one program."""
    program_id: str
    name: str
    discriminator: bytes
    args: Tuple[ArgSpec, ...] = ()
    accounts: Tuple[AccountSpec, ...] = ()

    def __post_init__(self):
        if len(self.discriminator) != DISCRIMINATOR_SIZE:
            raise SchemaParseError(
                f"Discriminator for '{self.name}' must be {DISCRIMINATOR_SIZE} bytes, "
                f"got {len(self.discriminator)}"
            )


@dataclass(frozen=True)
class ProgramSchema:
    address: str
    instructions: Tuple[SchemaEntry, ...]
    errors: Tuple[ErrorSpec, ...] = ()
    _by_name: Dict[str, SchemaEntry] = field(default_factory=dict, init=False, compare=False, repr=False)

    def __post_init__(self):
        seen_disc: Dict[bytes, str] = {}
        for entry in self.instructions:
            if entry.name in self._by_name:
                raise SchemaParseError(f"Duplicate instruction name: {entry.name}")
            other = seen_disc.get(entry.discriminator)
            if other is not None:
                raise SchemaParseError(
                    f"Instructions '{other}' and '{entry.name}' share a discriminator"
                )
            seen_disc[entry.discriminator] = entry.name
            self._by_name[entry.name] = entry

    def instruction(self, name: str) -> SchemaEntry:
        entry = self._by_name.get(name)
        if entry is None:
            raise InstructionNotFound(self.address, name)
        return entry

    def error(self, code: int) -> Optional[ErrorSpec]:
        for err in self.errors:
            if err.code == code:
                return err
        return None


# =============================================================================
# PARSING
# =============================================================================

def _require(mapping: Mapping[str, Any], key: str, where: str) -> Any:
    if not isinstance(mapping, Mapping):
        raise SchemaParseError(f"{where}: expected an object, got {type(mapping).__name__}")
    if key not in mapping:
        raise SchemaParseError(f"{where}: missing '{key}'")
    return mapping[key]


def _parse_discriminator(raw: Any, where: str) -> bytes:
    if not isinstance(raw, (list, tuple)) or len(raw) != DISCRIMINATOR_SIZE:
        raise SchemaParseError(f"{where}: discriminator must be a list of {DISCRIMINATOR_SIZE} bytes")
    out = bytearray()
    for b in raw:
        if isinstance(b, bool) or not isinstance(b, int) or not 0 <= b <= 255:
            raise SchemaParseError(f"{where}: discriminator byte out of range: {b!r}")
        out.append(b)
    return bytes(out)


def _parse_list(raw: Any, where: str) -> List[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise SchemaParseError(f"{where}: expected a list")
    return raw


def parse_program_schema(program_id: str, source: Mapping[str, Any]) -> ProgramSchema:
    """Build a ProgramSchema from decoded IDL JSON."""
    address = _require(source, "address", "idl")
    if not isinstance(address, str) or not address:
        raise SchemaParseError("idl: 'address' must be a non-empty string")

    entries: List[SchemaEntry] = []
    for i, raw_ix in enumerate(_parse_list(_require(source, "instructions", "idl"), "idl.instructions")):
        where = f"idl.instructions[{i}]"
        name = _require(raw_ix, "name", where)
        if not isinstance(name, str) or not name:
            raise SchemaParseError(f"{where}: 'name' must be a non-empty string")
        where = f"instruction '{name}'"

        accounts = []
        for raw_acc in _parse_list(raw_ix.get("accounts"), f"{where}.accounts"):
            accounts.append(
                AccountSpec(
                    name=str(_require(raw_acc, "name", f"{where}.accounts")),
                    writable=bool(raw_acc.get("writable", False)),
                    signer=bool(raw_acc.get("signer", False)),
                    optional=bool(raw_acc.get("optional", False)),
                )
            )

        args = []
        for raw_arg in _parse_list(raw_ix.get("args"), f"{where}.args"):
            arg_name = _require(raw_arg, "name", f"{where}.args")
            tag = _require(raw_arg, "type", f"{where}.args")
            if not isinstance(tag, str):
                # Composite IDL types ({"vec": ...}, {"defined": ...}) are not supported.
                tag = repr(tag)
            args.append(ArgSpec(name=str(arg_name), type_tag=tag, field_type=FieldType.from_tag(tag)))

        entries.append(
            SchemaEntry(
                program_id=program_id,
                name=name,
                discriminator=_parse_discriminator(_require(raw_ix, "discriminator", where), where),
                args=tuple(args),
                accounts=tuple(accounts),
            )
        )

    errors = []
    for raw_err in _parse_list(source.get("errors"), "idl.errors"):
        code = _require(raw_err, "code", "idl.errors")
        if isinstance(code, bool) or not isinstance(code, int):
            raise SchemaParseError(f"idl.errors: code must be an integer, got {code!r}")
        errors.append(
            ErrorSpec(
                code=code,
                name=str(_require(raw_err, "name", "idl.errors")),
                msg=str(raw_err.get("msg", "")),
            )
        )

    return ProgramSchema(address=address, instructions=tuple(entries), errors=tuple(errors))

"""
encoder.py - Schema-driven instruction codec

Wire format:
    discriminator (8 bytes) || arg_1 || arg_2 || ...   (schema order)

Per-type rules (all numerics little-endian):
    u8..u64 / i8..i64   raw fixed width
    f32 / f64           IEEE-754
    bool                1 byte, 0x01 / 0x00
    string              u32 byte length + UTF-8 bytes (no terminator)
    pubkey              32 raw bytes

Arguments present in `args` but not declared by the schema are ignored.
"""

from __future__ import annotations

import struct
from typing import Any, Dict, Mapping, Sequence, Union

from loguru import logger
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from solguard.codec.registry import SchemaRegistry
from solguard.codec.schema import ArgSpec, FieldType, SchemaEntry
from solguard.errors import (
    AccountMismatch,
    InvalidAddress,
    InvalidArgumentType,
    MissingArgument,
    UnsupportedType,
    ValueOutOfRange,
)

# format char, min, max
_INT_FORMATS: Dict[FieldType, tuple] = {
    FieldType.U8: ("<B", 0, 2**8 - 1),
    FieldType.U16: ("<H", 0, 2**16 - 1),
    FieldType.U32: ("<I", 0, 2**32 - 1),
    FieldType.U64: ("<Q", 0, 2**64 - 1),
    FieldType.I8: ("<b", -(2**7), 2**7 - 1),
    FieldType.I16: ("<h", -(2**15), 2**15 - 1),
    FieldType.I32: ("<i", -(2**31), 2**31 - 1),
    FieldType.I64: ("<q", -(2**63), 2**63 - 1),
}

_FLOAT_FORMATS: Dict[FieldType, str] = {
    FieldType.F32: "<f",
    FieldType.F64: "<d",
}

STRING_LENGTH_PREFIX = "<I"


def _encode_int(name: str, field_type: FieldType, value: Any) -> bytes:
    fmt, lo, hi = _INT_FORMATS[field_type]
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentType(name, "integer", value)
    if not lo <= value <= hi:
        raise ValueOutOfRange(name, field_type.value, value)
    return struct.pack(fmt, value)


def _encode_float(name: str, field_type: FieldType, value: Any) -> bytes:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentType(name, "number", value)
    try:
        return struct.pack(_FLOAT_FORMATS[field_type], float(value))
    except OverflowError as e:
        raise ValueOutOfRange(name, field_type.value, value) from e


def _encode_bool(name: str, value: Any) -> bytes:
    if not isinstance(value, bool):
        raise InvalidArgumentType(name, "bool", value)
    return b"\x01" if value else b"\x00"


def _encode_string(name: str, value: Any) -> bytes:
    if not isinstance(value, str):
        raise InvalidArgumentType(name, "string", value)
    raw = value.encode("utf-8")
    if len(raw) > 2**32 - 1:
        raise ValueOutOfRange(name, "string", f"<{len(raw)} bytes>")
    return struct.pack(STRING_LENGTH_PREFIX, len(raw)) + raw


def _encode_pubkey(value: Any) -> bytes:
    if isinstance(value, Pubkey):
        return bytes(value)
    if not isinstance(value, str):
        raise InvalidAddress(value)
    try:
        return bytes(Pubkey.from_string(value))
    except (ValueError, TypeError) as e:
        raise InvalidAddress(value) from e


def encode_field(arg: ArgSpec, value: Any) -> bytes:
    """Serialize one value according to its declared type."""
    ft = arg.field_type
    if ft is None:
        raise UnsupportedType(arg.type_tag)

    if ft in _INT_FORMATS:
        return _encode_int(arg.name, ft, value)
    if ft in _FLOAT_FORMATS:
        return _encode_float(arg.name, ft, value)
    if ft is FieldType.BOOL:
        return _encode_bool(arg.name, value)
    if ft is FieldType.STRING:
        return _encode_string(arg.name, value)
    if ft is FieldType.PUBKEY:
        return _encode_pubkey(value)

    raise UnsupportedType(arg.type_tag)


class InstructionCodec:
    """
    Encodes instruction data and checks account metas against a registry.

    Every method is a pure function of the registry contents and its inputs.
    """

    def __init__(self, registry: SchemaRegistry):
        self.registry = registry

    def encode_value(self, value: Any, type_tag: str, name: str = "value") -> bytes:
        """Encode a single value by IDL type tag."""
        return encode_field(ArgSpec(name=name, type_tag=type_tag, field_type=FieldType.from_tag(type_tag)), value)

    def encode_entry(self, entry: SchemaEntry, args: Mapping[str, Any]) -> bytes:
        data = bytearray(entry.discriminator)
        for arg in entry.args:
            if arg.name not in args:
                raise MissingArgument(arg.name)
            data += encode_field(arg, args[arg.name])

        extra = set(args) - {a.name for a in entry.args}
        if extra:
            logger.debug(f"CODEC_EXTRA_ARGS | ix={entry.name} | ignored={sorted(extra)}")
        return bytes(data)

    def encode(self, program_id: str, name: str, args: Mapping[str, Any]) -> bytes:
        """
        Encode instruction data for program_id.name.

        Raises:
            ProgramNotFound, InstructionNotFound: unknown program/instruction
            MissingArgument: a declared argument is absent from args
            UnsupportedType, InvalidAddress, InvalidArgumentType, ValueOutOfRange
        """
        entry = self.registry.lookup_instruction(program_id, name)
        return self.encode_entry(entry, args)

    def validate_accounts(
        self,
        program_id: str,
        name: str,
        metas: Sequence[AccountMeta],
    ) -> None:
        """
        Check caller-supplied metas against the schema's account list.

        Raises:
            AccountMismatch: wrong count, or a required signer/writable flag missing
        """
        entry = self.registry.lookup_instruction(program_id, name)
        if len(entry.accounts) != len(metas):
            raise AccountMismatch(
                f"Account count mismatch: IDL expects {len(entry.accounts)}, provided {len(metas)}"
            )
        for i, (spec, meta) in enumerate(zip(entry.accounts, metas)):
            if spec.signer and not meta.is_signer:
                raise AccountMismatch(f"Account #{i} ('{spec.name}') must be signer")
            if spec.writable and not meta.is_writable:
                raise AccountMismatch(f"Account #{i} ('{spec.name}') must be writable")

    def build_instruction(
        self,
        program_id: Union[str, Pubkey],
        name: str,
        args: Mapping[str, Any],
        metas: Sequence[AccountMeta],
    ) -> Instruction:
        """Validate accounts, encode data and assemble a solders Instruction."""
        pid = str(program_id)
        self.validate_accounts(pid, name, metas)
        data = self.encode(pid, name, args)
        logger.debug(f"CODEC_BUILD | program={pid[:8]}... | ix={name} | bytes={len(data)}")
        return Instruction(Pubkey.from_string(pid), data, list(metas))


__all__ = ["InstructionCodec", "encode_field"]

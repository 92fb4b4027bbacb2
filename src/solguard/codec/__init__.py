from solguard.codec.encoder import InstructionCodec, encode_field
from solguard.codec.error_decoder import ErrorDecoder, parse_custom_error_code
from solguard.codec.registry import SchemaRegistry
from solguard.codec.schema import (
    AccountSpec,
    ArgSpec,
    ErrorSpec,
    FieldType,
    ProgramSchema,
    SchemaEntry,
)

__all__ = [
    "InstructionCodec",
    "encode_field",
    "ErrorDecoder",
    "parse_custom_error_code",
    "SchemaRegistry",
    "AccountSpec",
    "ArgSpec",
    "ErrorSpec",
    "FieldType",
    "ProgramSchema",
    "SchemaEntry",
]

from hypothesis import given, strategies as st
import pytest
from solders.pubkey import Pubkey

from solguard.codec.encoder import InstructionCodec
from solguard.codec.registry import SchemaRegistry
from solguard.errors import MissingArgument, ValueOutOfRange
from solguard.programs import send_program

INT_RANGES = {
    "u8": (0, 2**8 - 1),
    "u16": (0, 2**16 - 1),
    "u32": (0, 2**32 - 1),
    "u64": (0, 2**64 - 1),
    "i8": (-(2**7), 2**7 - 1),
    "i16": (-(2**15), 2**15 - 1),
    "i32": (-(2**31), 2**31 - 1),
    "i64": (-(2**63), 2**63 - 1),
}


def make_codec() -> InstructionCodec:
    registry = SchemaRegistry()
    registry.load(send_program.PROGRAM_ID, send_program.IDL)
    return InstructionCodec(registry)


CODEC = make_codec()
PUBKEYS = st.binary(min_size=32, max_size=32).map(Pubkey)


@given(amount=st.integers(min_value=0, max_value=2**64 - 1), recipient=PUBKEYS)
def test_encoding_is_deterministic(amount, recipient):
    args = {"amount": amount, "recipient": str(recipient)}
    first = CODEC.encode(send_program.PROGRAM_ID, "send_sol", args)
    second = CODEC.encode(send_program.PROGRAM_ID, "send_sol", dict(args))
    assert first == second
    assert len(first) == 48


@given(tag=st.sampled_from(sorted(INT_RANGES)), data=st.data())
def test_in_range_integers_use_declared_width(tag, data):
    lo, hi = INT_RANGES[tag]
    value = data.draw(st.integers(min_value=lo, max_value=hi))
    encoded = CODEC.encode_value(value, tag)
    width = int(tag[1:]) // 8
    assert len(encoded) == width
    assert int.from_bytes(encoded, "little", signed=tag.startswith("i")) == value


@given(tag=st.sampled_from(sorted(INT_RANGES)), data=st.data())
def test_out_of_range_integers_rejected(tag, data):
    lo, hi = INT_RANGES[tag]
    value = data.draw(st.one_of(st.integers(max_value=lo - 1), st.integers(min_value=hi + 1)))
    with pytest.raises(ValueOutOfRange):
        CODEC.encode_value(value, tag)


@given(missing=st.sampled_from(["amount", "recipient"]), amount=st.integers(min_value=0, max_value=2**64 - 1))
def test_missing_argument_never_zero_fills(missing, amount):
    args = {"amount": amount, "recipient": str(send_program.program_id())}
    del args[missing]
    with pytest.raises(MissingArgument):
        CODEC.encode(send_program.PROGRAM_ID, "send_sol", args)

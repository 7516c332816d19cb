"""Word decoding and listing helpers."""

from __future__ import annotations

import pytest
from isa import InstrKind, OpCode, decode_word, encode_word, format_listing, mnemonic, split_word


@pytest.mark.parametrize(
    ("word", "kind", "opcode", "address"),
    [
        (901, InstrKind.INPUT, OpCode.INP, 0),
        (902, InstrKind.OUTPUT, OpCode.OUT, 0),
        (0, InstrKind.HALT, OpCode.HLT, 0),
        (142, InstrKind.ARITHMETIC, OpCode.ADD, 42),
        (299, InstrKind.ARITHMETIC, OpCode.SUB, 99),
        (350, InstrKind.ARITHMETIC, OpCode.STA, 50),
        (507, InstrKind.ARITHMETIC, OpCode.LDA, 7),
        (612, InstrKind.BRANCH, OpCode.BRA, 12),
        (700, InstrKind.BRANCH, OpCode.BRZ, 0),
        (865, InstrKind.BRANCH, OpCode.BRP, 65),
    ],
)
def test_decode_known_words(word: int, kind: InstrKind, opcode: OpCode, address: int) -> None:
    instr = decode_word(word)
    assert instr.kind is kind
    assert instr.opcode == opcode
    assert instr.address == address
    assert instr.word == word


@pytest.mark.parametrize("word", [400, 442, 900, 903, 999, 1000, -5, -100])
def test_decode_unrecognized(word: int) -> None:
    """Opcode 4xx, values >= 900 other than 901/902, and negative data are not instructions."""
    instr = decode_word(word)
    assert instr.kind is InstrKind.UNRECOGNIZED
    assert instr.opcode is None


def test_low_digits_of_data_word_decode_as_halt() -> None:
    # DAT 42 and HLT share the 0xx range; only assembly knows which one was meant
    assert decode_word(42).kind is InstrKind.HALT


def test_split_word_keeps_high_words_whole() -> None:
    assert split_word(901) == (901, 1)
    assert split_word(345) == (300, 45)
    assert split_word(-5) == (-100, 95)


def test_encode_word() -> None:
    assert encode_word(OpCode.LDA, 5) == 505
    assert encode_word(OpCode.OUT, 17) == 902
    with pytest.raises(ValueError, match="out of range"):
        encode_word(OpCode.BRA, 100)


def test_mnemonic_and_listing() -> None:
    assert mnemonic(603) == "BRA 03"
    assert mnemonic(901) == "INP"
    assert mnemonic(999) == "DAT 999"
    assert format_listing([901, 199, 0]) == "00 - 901 - INP\n01 - 199 - ADD 99\n02 - 000 - HLT"

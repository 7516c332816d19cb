"""ISA: instruction encodings and helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

MEMORY_SIZE = 100  # words
WORD_MIN = -999
WORD_MAX = 999


class OpCode(IntEnum):
    """Keeps opcodes (base values) from all operations."""

    HLT = 0
    ADD = 100  # ACC += MEM[arg]
    SUB = 200  # ACC -= MEM[arg]
    STA = 300  # MEM[arg] = ACC
    LDA = 500  # ACC = MEM[arg]
    BRA = 600
    BRZ = 700
    BRP = 800  # taken only when ACC > 0
    INP = 901
    OUT = 902


# DAT has no base value: the operand is the literal word
DAT = -1

# mnemonic -> base code, as written in source
MNEMONICS: dict[str, int] = {
    "INP": OpCode.INP,
    "OUT": OpCode.OUT,
    "LDA": OpCode.LDA,
    "STA": OpCode.STA,
    "ADD": OpCode.ADD,
    "SUB": OpCode.SUB,
    "BRP": OpCode.BRP,
    "BRZ": OpCode.BRZ,
    "BRA": OpCode.BRA,
    "HLT": OpCode.HLT,
    "DAT": DAT,
}

NO_ARG_OPS = frozenset({OpCode.INP, OpCode.OUT, OpCode.HLT})
BRANCH_OPS = frozenset({OpCode.BRA, OpCode.BRZ, OpCode.BRP})


class InstrKind(Enum):
    """Decoded shape of a memory word."""

    INPUT = "input"
    OUTPUT = "output"
    ARITHMETIC = "arithmetic"
    BRANCH = "branch"
    HALT = "halt"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class Instruction:
    """Result of decoding one word.

    `opcode` is None only for UNRECOGNIZED words; `address` is the
    operand (0..99) for ARITHMETIC and BRANCH, 0 otherwise.
    """

    kind: InstrKind
    opcode: OpCode | None
    address: int
    word: int


def split_word(word: int) -> tuple[int, int]:
    """Split word into (opcode_value, operand).

    Words >= 900 carry no operand: the whole word is the opcode value.
    Floor division keeps the operand in 0..99 for negative words too.
    """
    w = int(word)
    operand = w - (w // 100) * 100
    if w < 900:
        return w - operand, operand
    return w, operand


def decode_word(word: int) -> Instruction:
    """Decode a memory word into an Instruction."""
    value, operand = split_word(word)
    try:
        op = OpCode(value)
    except ValueError:
        return Instruction(InstrKind.UNRECOGNIZED, None, 0, int(word))

    if op == OpCode.INP:
        return Instruction(InstrKind.INPUT, op, 0, int(word))
    if op == OpCode.OUT:
        return Instruction(InstrKind.OUTPUT, op, 0, int(word))
    if op == OpCode.HLT:
        return Instruction(InstrKind.HALT, op, 0, int(word))
    if op in BRANCH_OPS:
        return Instruction(InstrKind.BRANCH, op, operand, int(word))
    return Instruction(InstrKind.ARITHMETIC, op, operand, int(word))


def encode_word(opcode: OpCode, address: int = 0) -> int:
    """Encode instruction into a single decimal word.

    Raises ValueError when the address does not fit into memory.
    """
    op = OpCode(opcode)
    if op in NO_ARG_OPS:
        return int(op)
    a = int(address)
    if not 0 <= a < MEMORY_SIZE:
        err = f"address {a} out of range (0..{MEMORY_SIZE - 1})"
        raise ValueError(err)
    return int(op) + a


def mnemonic(word: int) -> str:
    """Get operation mnemonic for a word (best effort, DAT-looking words show as DAT)."""
    instr = decode_word(word)
    if instr.kind is InstrKind.UNRECOGNIZED or instr.opcode is None:
        return f"DAT {word}"
    if instr.kind in (InstrKind.ARITHMETIC, InstrKind.BRANCH):
        return f"{instr.opcode.name} {instr.address:02d}"
    return instr.opcode.name


def format_listing(words: list[int]) -> str:
    """Render words as '<addr> - <word> - <mnemonic>' lines."""
    lines: list[str] = []
    for addr, w in enumerate(words):
        lines.append(f"{addr:02d} - {int(w):03d} - {mnemonic(w)}")
    return "\n".join(lines)

"""Module: assemble LMC mnemonic source into memory words.

This module contains:
- tokenize_line(s) -> list of tokens
- Diagnostic / Assembly result records
- LabelAssembler: two-pass assembler with symbolic labels (default)
- PositionalAssembler: "NN MNEMONIC [arg]" lines written to explicit cells
- assemble(...) / assemble_file(...) entrypoints and a small CLI
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from isa import DAT, MEMORY_SIZE, MNEMONICS, NO_ARG_OPS, WORD_MAX, WORD_MIN, OpCode, encode_word, format_listing

TOKEN_SPLIT_RE = re.compile(r"[ ,\t]+")
_INT_RE = re.compile(r"^[-+]?[0-9]+$")
_DIGITS_RE = re.compile(r"^[0-9]+$")

COMMENT_CHAR = "#"


def tokenize_line(s: str) -> list[str]:
    """Split a source line on runs of spaces, commas or tabs."""
    return [tok for tok in TOKEN_SPLIT_RE.split(s.strip()) if tok]


def strip_comment(line: str, comment_style: str = "inline") -> str | None:
    """Return code text of a line, or None when the line carries no code.

    inline     -> everything from '#' to end of line is dropped
    whole_line -> a line containing '#' anywhere is dropped completely
    """
    if COMMENT_CHAR in line:
        if comment_style == "whole_line":
            return None
        line = line.split(COMMENT_CHAR, 1)[0]
    if not line.strip():
        return None
    return line


@dataclass(frozen=True)
class Diagnostic:
    """One assembly problem, attached to a 0-based source line."""

    line: int
    message: str
    text: str = ""

    def __str__(self) -> str:
        return f"[Line ({self.line})]: {self.message}"


@dataclass
class Assembly:
    """Result of assembling a program."""

    words: list[int] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    labels: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    def listing(self) -> str:
        return format_listing(self.words)


class AssemblyError(ValueError):
    """Raised when assembled source cannot be loaded because of diagnostics."""

    def __init__(self, diagnostics: list[Diagnostic]):
        self.diagnostics = list(diagnostics)
        lines = "; ".join(str(d) for d in self.diagnostics)
        super().__init__(f"{len(self.diagnostics)} assembly error(s): {lines}")


class _LineError(Exception):
    """Internal: aborts encoding of the current line."""


def _split_source(source: str | Iterable[str]) -> list[str]:
    if isinstance(source, str):
        return source.splitlines()
    return [str(s) for s in source]


class _AssemblerBase:
    """Shared state and argument helpers for both addressing modes."""

    def __init__(
        self,
        source: str | Iterable[str],
        comment_style: str = "inline",
        log: Callable[[str], None] | None = None,
    ):
        self.lines = _split_source(source)
        self.comment_style = comment_style
        self.log = log
        self.words: list[int] = []
        self.diagnostics: list[Diagnostic] = []
        self.labels: dict[str, int] = {}

    def error(self, lineno: int, message: str) -> None:
        """Record a diagnostic and forward it to the log sink."""
        diag = Diagnostic(lineno, message, self.lines[lineno] if 0 <= lineno < len(self.lines) else "")
        self.diagnostics.append(diag)
        logging.warning("%s  | %s", diag, diag.text.strip())
        if self.log is not None:
            self.log(str(diag))

    def code_lines(self) -> list[tuple[int, list[str]]]:
        """Return (source line number, tokens) for every line carrying code."""
        result: list[tuple[int, list[str]]] = []
        for lineno, raw in enumerate(self.lines):
            text = strip_comment(raw, self.comment_style)
            if text is None:
                continue
            tokens = tokenize_line(text)
            if tokens:
                result.append((lineno, tokens))
        return result

    def _parse_address(self, tok: str) -> int:
        """Parse '$NN' into an address in 0..99."""
        digits = tok[1:]
        if not _DIGITS_RE.fullmatch(digits):
            raise _LineError("address argument is not a number")
        addr = int(digits)
        if addr >= MEMORY_SIZE:
            raise _LineError(f"address argument is out of range (0..{MEMORY_SIZE - 1})")
        return addr

    def _parse_literal(self, tok: str) -> int:
        """Parse a DAT literal."""
        if not _INT_RE.fullmatch(tok):
            raise _LineError("data argument is not a number")
        value = int(tok)
        if not WORD_MIN <= value <= WORD_MAX:
            raise _LineError(f"data argument is out of range ({WORD_MIN}..{WORD_MAX})")
        return value

    def encode(self, mnem: str, arg: str | None) -> int:
        """Encode one instruction; raise _LineError with the diagnostic text on failure."""
        if mnem not in MNEMONICS:
            raise _LineError("invalid operation code")
        code = int(MNEMONICS[mnem])

        if code == DAT:
            if arg is None:
                return 0
            return self._parse_literal(arg)

        if code in NO_ARG_OPS:
            # rejected rather than added to the opcode, which would make 901 + $05 = 906
            if arg is not None:
                raise _LineError("instruction takes no argument")
            return encode_word(OpCode(code))

        if arg is None:
            raise _LineError("missing argument")
        if arg.startswith("$"):
            return encode_word(OpCode(code), self._parse_address(arg))
        if arg in self.labels:
            try:
                return encode_word(OpCode(code), self.labels[arg])
            except ValueError:
                raise _LineError(f"label '{arg}' is outside memory") from None
        raise _LineError("argument could not be resolved")

    def result(self) -> Assembly:
        return Assembly(list(self.words), list(self.diagnostics), dict(self.labels))


class LabelAssembler(_AssemblerBase):
    """Assembler for `[label] MNEMONIC [argument]` source.

    Every code line occupies the next memory slot. Labels bind to the
    slot of the line that declares them, so forward references work.
    """

    def _discover_labels(self, code: list[tuple[int, list[str]]]) -> set[int]:
        """First pass: bind labels; return line numbers of duplicate declarations."""
        duplicates: set[int] = set()
        for slot, (lineno, tokens) in enumerate(code):
            head = tokens[0]
            if head in MNEMONICS:
                continue
            if head in self.labels:
                duplicates.add(lineno)
                continue
            self.labels[head] = slot
        return duplicates

    def assemble(self) -> Assembly:
        """Run both passes and return the Assembly."""
        code = self.code_lines()
        duplicates = self._discover_labels(code)

        for slot, (lineno, tokens) in enumerate(code):
            if slot >= MEMORY_SIZE:
                self.error(lineno, "program does not fit in memory")
                continue
            if lineno in duplicates:
                self.error(lineno, f"duplicate label '{tokens[0]}'")
                continue

            if tokens[0] in MNEMONICS:
                mnem, rest = tokens[0], tokens[1:]
            else:
                if len(tokens) < 2:
                    self.error(lineno, "invalid operation code")
                    continue
                mnem, rest = tokens[1], tokens[2:]

            if len(rest) > 1:
                self.error(lineno, "unexpected trailing tokens")
                continue
            arg = rest[0] if rest else None

            try:
                word = self.encode(mnem, arg)
            except _LineError as e:
                self.error(lineno, str(e))
                continue
            self.words.append(word)

        logging.debug(
            "assembled %d word(s), %d label(s), %d error(s)",
            len(self.words),
            len(self.labels),
            len(self.diagnostics),
        )
        return self.result()


class PositionalAssembler(_AssemblerBase):
    """Assembler for `NN MNEMONIC [argument]` source.

    NN is the memory cell the word is written to; labels are not supported.
    """

    def assemble(self) -> Assembly:
        """Encode each line into its explicit cell."""
        cells: dict[int, int] = {}
        for lineno, tokens in self.code_lines():
            head = tokens[0]
            if not _DIGITS_RE.fullmatch(head):
                self.error(lineno, "address is not a number")
                continue
            addr = int(head)
            if addr >= MEMORY_SIZE:
                self.error(lineno, f"address is out of range (0..{MEMORY_SIZE - 1})")
                continue
            if addr in cells:
                self.error(lineno, f"address {addr} is already used")
                continue
            if len(tokens) < 2:
                self.error(lineno, "invalid operation code")
                continue
            if len(tokens) > 3:
                self.error(lineno, "unexpected trailing tokens")
                continue
            try:
                cells[addr] = self.encode(tokens[1], tokens[2] if len(tokens) > 2 else None)
            except _LineError as e:
                self.error(lineno, str(e))

        if cells:
            self.words = [0] * (max(cells) + 1)
            for addr, word in cells.items():
                self.words[addr] = word
        logging.debug("assembled %d cell(s), %d error(s)", len(cells), len(self.diagnostics))
        return self.result()


# --- helper entrypoints for using this module programmatically ---


def assemble(
    source: str | Iterable[str],
    addressing: str = "label",
    comment_style: str = "inline",
    log: Callable[[str], None] | None = None,
) -> Assembly:
    """Assemble source text (string or sequence of lines) and return an Assembly.

    Diagnostics never stop assembly: every line is attempted, and a line
    with a problem contributes no word.
    """
    if addressing == "label":
        return LabelAssembler(source, comment_style=comment_style, log=log).assemble()
    if addressing == "positional":
        return PositionalAssembler(source, comment_style=comment_style, log=log).assemble()
    err = f"unknown addressing mode: {addressing!r}"
    raise ValueError(err)


def write_words(words: list[int], path: str | Path) -> None:
    """Write words one integer per line."""
    Path(path).write_text("".join(f"{w}\n" for w in words), encoding="utf-8")


def read_words(path: str | Path) -> list[int]:
    """Read a word file written by write_words (blank lines ignored)."""
    words: list[int] = []
    for n, line in enumerate(Path(path).read_text(encoding="utf-8").splitlines()):
        line = line.strip()
        if not line:
            continue
        try:
            words.append(int(line))
        except ValueError as e:
            err = f"{path}:{n + 1}: bad word {line!r}"
            raise ValueError(err) from e
    return words


def assemble_file(
    input_path: str | Path,
    out_words: str | Path | None = None,
    addressing: str = "label",
    comment_style: str = "inline",
    listing: bool = False,
) -> tuple[str, Assembly]:
    """Assemble a source file and write `<stem>.words` (and `.lst` if listing).

    The word file is written only when assembly produced no diagnostics.
    Returns (words_path, assembly).
    """
    p = Path(input_path)
    if not p.exists():
        err = f"Source file not found: {input_path}"
        raise FileNotFoundError(err)

    asm = assemble(p.read_text(encoding="utf-8"), addressing=addressing, comment_style=comment_style)
    out_path = p.with_suffix(".words") if out_words is None else Path(out_words)
    if asm.ok:
        write_words(asm.words, out_path)
        if listing:
            out_path.with_suffix(".lst").write_text(asm.listing() + "\n", encoding="utf-8")
    return str(out_path), asm


# --- CLI ---
if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Assemble LMC source into memory words")
    ap.add_argument("input", help="source file (e.g. program.lmc)")
    ap.add_argument("-o", "--out", help="output word file (default: <input>.words)")
    ap.add_argument("--addressing", choices=("label", "positional"), default="label")
    ap.add_argument("--comments", choices=("inline", "whole_line"), default="inline", help="comment style")
    ap.add_argument("--listing", action="store_true", help="also write a listing file (<out>.lst)")
    args = ap.parse_args()

    try:
        out_path, result = assemble_file(
            args.input,
            out_words=args.out,
            addressing=args.addressing,
            comment_style=args.comments,
            listing=args.listing,
        )
    except FileNotFoundError as e:
        print(e, file=sys.stderr)
        sys.exit(2)

    if not result.ok:
        for d in result.diagnostics:
            print(d, file=sys.stderr)
        sys.exit(1)
    print(out_path)

"""Processor (Datapath + ControlUnit) and CLI wrapper.

Provides LMC execution (reset / load / step / run / halt), logging
initialization and an optional memory dump written after a run.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, TextIO

from assembler import AssemblyError, assemble, read_words
from config import DEFAULTS, ConfigError, load_config
from isa import MEMORY_SIZE, Instruction, InstrKind, OpCode, decode_word, format_listing, mnemonic

LOGFILE = "processor.log"

InputFn = Callable[[], int]
OutputFn = Callable[[int], None]
HaltFn = Callable[[], None]


class MachineError(RuntimeError):
    """Base class for caller misuse of the machine."""


class MemoryOverflowError(MachineError, ValueError):
    """Raised when a word image does not fit into memory."""


class AddressOutOfRangeError(MachineError, IndexError):
    """Raised on direct memory access outside 0..MEMORY_SIZE-1."""


class NotLoadedError(MachineError):
    """Raised when stepping a machine that was never reset or loaded."""


class ReentrantStepError(MachineError):
    """Raised when step is called while another step is in progress."""


class InputExhaustedError(MachineError):
    """Raised by fixed input feeds when INP asks for more values than given."""


def init_logging(logfile: str = LOGFILE, debug: bool = False, console: bool = False) -> None:
    """Configure root logger to write to `logfile`.

    If debug=True set DEBUG level. If console=True also echo logs to stdout.
    In debug mode the compact format has no timestamp so that traces of
    identical programs are identical:
        DEBUG root:processor.py:194 STATE: RUNNING  TICK:    1 PC:   0 ...
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    lvl = logging.DEBUG if debug else logging.CRITICAL
    root.setLevel(lvl)

    if debug:
        file_fmt = "%(levelname)s %(name)s:%(filename)s:%(lineno)d %(message)s"
    else:
        file_fmt = "%(levelname)-5s %(message)s"

    # always create a FileHandler even when not debug to allow easier inspection if asked
    fh = logging.FileHandler(logfile, mode="w", encoding="utf-8")
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter(file_fmt))
    root.addHandler(fh)

    if debug and console:
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(lvl)
        ch.setFormatter(logging.Formatter("%(levelname)5s %(message)s"))
        root.addHandler(ch)


def _flush_logging_handlers() -> None:
    for h in list(logging.getLogger().handlers):
        h.flush()


class Datapath:
    """Datapath (memory + registers) of one machine."""

    memory: list[int]
    ACC: int
    PC: int
    halted: bool
    loaded: bool
    fault: str | None
    tick: int
    in_step: bool

    clock_speed: int
    tick_limit: int
    lenient_log: bool

    def __init__(
        self,
        words: list[int] | None = None,
        clock_speed: int = DEFAULTS["clock_speed"],
        tick_limit: int = DEFAULTS["tick_limit"],
        lenient_log: bool = DEFAULTS["lenient_log"],
    ) -> None:
        """Initialize Datapath; load `words` when given, otherwise leave it unloaded."""
        self.memory = [0] * MEMORY_SIZE
        self.ACC = 0
        self.PC = 0
        self.halted = False
        self.loaded = False
        self.fault = None
        self.tick = 0
        self.in_step = False

        # run-mode settings, used only by drivers
        self.clock_speed = int(clock_speed)
        self.tick_limit = int(tick_limit)
        self.lenient_log = bool(lenient_log)

        if words is not None:
            self.load(words)

    def reset(self) -> None:
        """Zero registers and memory; machine becomes runnable."""
        self.ACC = 0
        self.PC = 0
        self.halted = False
        self.fault = None
        self.tick = 0
        self.memory = [0] * MEMORY_SIZE
        self.loaded = True
        logging.debug("Datapath: reset")

    def load(self, words: Iterable[int]) -> None:
        """Reset and install `words` at address 0; the rest of memory stays zero.

        Raises MemoryOverflowError (state untouched) for images over MEMORY_SIZE words.
        """
        image = [int(w) for w in words]
        if len(image) > MEMORY_SIZE:
            err = f"program of {len(image)} words doesn't fit into memory ({MEMORY_SIZE} words)"
            raise MemoryOverflowError(err)
        self.reset()
        self.memory[: len(image)] = image
        logging.debug("Datapath: loaded %d word(s)", len(image))

    def _check_addr(self, word_addr: int) -> int:
        a = int(word_addr)
        if not 0 <= a < MEMORY_SIZE:
            err = f"address {a} out of memory (0..{MEMORY_SIZE - 1})"
            raise AddressOutOfRangeError(err)
        return a

    def read_word(self, word_addr: int) -> int:
        """Read a word from memory."""
        return self.memory[self._check_addr(word_addr)]

    def write_word(self, word_addr: int, value: int) -> None:
        """Write a word to memory (direct poke; no range limit on the value)."""
        self.memory[self._check_addr(word_addr)] = int(value)

    @property
    def state(self) -> str:
        if self.fault is not None:
            return "fault"
        if self.halted:
            return "halted"
        return "running"


class ControlUnit:
    """Control unit implementing the FETCH-DECODE-EXEC step for the Datapath."""

    dp: Datapath

    def __init__(self, dp: Datapath) -> None:
        """Create a ControlUnit bound to `dp`."""
        self.dp = dp

    def _log_step(self, state: str, tick: int, pc: int, instr: Instruction | None) -> None:
        # skip verbose per-step logs in lenient mode to reduce log size
        if self.dp.lenient_log:
            return

        addr = instr.address if instr is not None else 0
        word = instr.word if instr is not None else 0
        text = mnemonic(word) if instr is not None else "-"
        mem_val = self.dp.memory[addr] if 0 <= addr < MEMORY_SIZE else 0
        logging.debug(
            "STATE: %-8s TICK: %4d PC: %3d WORD: %4d ADDR: %3d MEM[ADDR]: %5d ACC: %6d\tINSTR: %s",
            state,
            tick,
            pc,
            word,
            addr,
            mem_val,
            self.dp.ACC,
            text,
        )

    def _fault(self, message: str, halt_fn: HaltFn | None) -> None:
        dp = self.dp
        dp.fault = message
        dp.halted = True
        logging.error("execution fault: %s", message)
        if halt_fn is not None:
            halt_fn()

    def step(self, input_fn: InputFn, output_fn: OutputFn, halt_fn: HaltFn | None = None) -> Instruction | None:
        """Execute one instruction and return it (None when nothing was executed).

        No-op when halted. Raises NotLoadedError before the first reset/load
        and ReentrantStepError when called from inside a callback.
        """
        dp = self.dp
        if not dp.loaded:
            err = "machine was never loaded or reset"
            raise NotLoadedError(err)
        if dp.in_step:
            err = "step called while another step is in progress"
            raise ReentrantStepError(err)
        if dp.halted:
            return None

        dp.in_step = True
        try:
            pc = dp.PC
            if not 0 <= pc < MEMORY_SIZE:
                dp.tick += 1
                self._fault(f"PC {pc} out of memory range (0..{MEMORY_SIZE - 1})", halt_fn)
                self._log_step("FAULT", dp.tick, pc, None)
                return None

            instr = decode_word(dp.memory[pc])
            self.exec(instr, input_fn, output_fn, halt_fn)
            dp.tick += 1
            self._log_step(dp.state.upper(), dp.tick, pc, instr)
            return instr
        finally:
            dp.in_step = False

    def exec(  # noqa: C901
        self,
        instr: Instruction,
        input_fn: InputFn,
        output_fn: OutputFn,
        halt_fn: HaltFn | None,
    ) -> None:
        """Execute a single decoded instruction (hardwired control unit)."""
        dp = self.dp
        op = instr.opcode
        a = instr.address

        if instr.kind is InstrKind.UNRECOGNIZED or op is None:
            self._fault(f"unrecognized instruction {instr.word} at address {dp.PC}", halt_fn)
            return

        if op == OpCode.HLT:
            dp.halted = True
            logging.debug("HLT encountered at %d", dp.PC)
            if halt_fn is not None:
                halt_fn()
            return
        if op == OpCode.INP:
            dp.ACC = int(input_fn())
            logging.debug("INP -> %d", dp.ACC)
            dp.PC += 1
            return
        if op == OpCode.OUT:
            logging.debug("OUT <- %d", dp.ACC)
            output_fn(dp.ACC)
            dp.PC += 1
            return
        if op == OpCode.ADD:
            dp.ACC += dp.memory[a]
            dp.PC += 1
            return
        if op == OpCode.SUB:
            dp.ACC -= dp.memory[a]
            dp.PC += 1
            return
        if op == OpCode.STA:
            dp.memory[a] = dp.ACC
            dp.PC += 1
            return
        if op == OpCode.LDA:
            dp.ACC = dp.memory[a]
            dp.PC += 1
            return

        if op == OpCode.BRA:
            dp.PC = a
            return
        if op == OpCode.BRZ:
            dp.PC = a if dp.ACC == 0 else dp.PC + 1
            return
        # BRP: zero is not positive
        dp.PC = a if dp.ACC > 0 else dp.PC + 1

    def halt(self, halt_fn: HaltFn | None = None) -> bool:
        """Stop the machine from outside (stop button). Returns False if already halted."""
        dp = self.dp
        if dp.halted:
            return False
        dp.halted = True
        logging.debug("halted by driver at PC %d", dp.PC)
        if halt_fn is not None:
            halt_fn()
        return True

    def run(
        self,
        input_fn: InputFn,
        output_fn: OutputFn,
        halt_fn: HaltFn | None = None,
        tick_limit: int | None = None,
        clock_speed: int | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> tuple[int, str]:
        """Step until halted or until `tick_limit` steps were executed.

        Sleeps `clock_speed` milliseconds between steps when it is non-zero.
        Returns (ticks, state) where state is "halted", "fault" or "stopped".
        """
        dp = self.dp
        limit = dp.tick_limit if tick_limit is None else int(tick_limit)
        speed = dp.clock_speed if clock_speed is None else int(clock_speed)

        executed = 0
        while not dp.halted and executed < limit:
            self.step(input_fn, output_fn, halt_fn)
            executed += 1
            if speed > 0 and not dp.halted:
                sleep(speed / 1000.0)

        if not dp.halted:
            logging.debug("tick limit %d reached -> stopped", limit)
            return dp.tick, "stopped"
        return dp.tick, dp.state

    def _dump_registers(self, f: TextIO, dp: Datapath) -> None:
        f.write(f"ACC: {dp.ACC}  PC: {dp.PC}  TICK: {dp.tick}  STATE: {dp.state}\n")
        if dp.fault is not None:
            f.write(f"FAULT: {dp.fault}\n")

    def _dump_memory_to_file(self, path: str | Path) -> None:
        dp = self.dp
        with open(path, "w", encoding="utf-8") as f:
            f.write("=== MEMORY DUMP ===\n")
            self._dump_registers(f, dp)
            f.write("\n")
            f.write(format_listing(dp.memory))
            f.write("\n=== END DUMP ===\n")


# ---------- Public API ----------
def feed(values: Iterable[int]) -> InputFn:
    """Return an input callback that hands out `values` in order."""
    it = iter(values)

    def _next() -> int:
        try:
            return int(next(it))
        except StopIteration:
            err = "INP requested more input than provided"
            raise InputExhaustedError(err) from None

    return _next


def load_source(source: str | Iterable[str], config: dict[str, Any] | None = None) -> Datapath:
    """Assemble `source` and return a loaded Datapath.

    Raises AssemblyError when any line produced a diagnostic.
    """
    cfg = load_config(config)
    asm = assemble(source, addressing=cfg["addressing"], comment_style=cfg["comment_style"])
    if not asm.ok:
        raise AssemblyError(asm.diagnostics)
    return Datapath(
        asm.words,
        clock_speed=cfg["clock_speed"],
        tick_limit=cfg["tick_limit"],
        lenient_log=cfg["lenient_log"],
    )


def run_words(
    words: list[int], config: dict[str, Any] | None = None, inputs: Iterable[int] = ()
) -> tuple[list[int], int, str]:
    """Run a word image with a fixed input list and return (outputs, ticks, state).

    Runs without delay between steps regardless of clock_speed.
    """
    cfg = load_config(config)
    dp = Datapath(words, tick_limit=cfg["tick_limit"], lenient_log=cfg["lenient_log"])
    cu = ControlUnit(dp)
    outputs: list[int] = []
    ticks, state = cu.run(feed(inputs), outputs.append, clock_speed=0)
    return outputs, ticks, state


def _prompt_input() -> int:
    while True:
        try:
            raw = input("Enter an input: ")
        except EOFError:
            err = "no more input on stdin"
            raise InputExhaustedError(err) from None
        try:
            return int(raw.strip())
        except ValueError:
            print(f"not a number: {raw!r}", file=sys.stderr)


# ---------- CLI ----------
if __name__ == "__main__":
    import argparse

    ap = argparse.ArgumentParser(
        description="LMC runner. Accepts assembly source (.lmc/.asm/.txt) or a word file (.words). "
        "INP values come from --input, otherwise they are prompted for on stdin."
    )
    ap.add_argument("program", help="program.lmc or program.words")
    ap.add_argument("--input", type=int, nargs="*", default=None, help="values fed to INP in order")
    ap.add_argument("--config", help="path to yaml config", default=None)
    ap.add_argument("--tick-limit", type=int, default=None, help="max steps before stopping")
    ap.add_argument("--clock-speed", type=int, default=None, help="delay between steps in ms")
    ap.add_argument("--dump", default=None, help="write memory dump to this file after the run")

    help_debug = "enable debug logging to logfile (detailed per-step state)."
    help_logfile = "path to processor log"
    help_console = "also echo logs to console (only when --debug)"
    ap.add_argument("--debug", action="store_true", help=help_debug)
    ap.add_argument("--logfile", default=LOGFILE, help=help_logfile)
    ap.add_argument("--console", action="store_true", help=help_console)
    args = ap.parse_args()

    init_logging(logfile=args.logfile, debug=args.debug, console=args.console)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print("Bad config:", e)
        sys.exit(2)
    if args.tick_limit is not None:
        cfg["tick_limit"] = args.tick_limit
    if args.clock_speed is not None:
        cfg["clock_speed"] = args.clock_speed

    program_path = Path(args.program)
    if not program_path.exists():
        print("Program file not found:", args.program)
        sys.exit(2)

    if program_path.suffix == ".words":
        try:
            dp = Datapath(
                read_words(program_path),
                clock_speed=cfg["clock_speed"],
                tick_limit=cfg["tick_limit"],
                lenient_log=cfg["lenient_log"],
            )
        except (ValueError, MachineError) as e:
            print("Bad word file:", e)
            sys.exit(2)
    else:
        try:
            dp = load_source(program_path.read_text(encoding="utf-8"), cfg)
        except AssemblyError as e:
            for d in e.diagnostics:
                print(d, file=sys.stderr)
            sys.exit(1)

    cu = ControlUnit(dp)
    input_fn = feed(args.input) if args.input is not None else _prompt_input

    def _print_output(value: int) -> None:
        print(value, flush=True)

    def _on_halt() -> None:
        logging.debug("PROGRAM HALTED")

    try:
        ticks, state = cu.run(input_fn, _print_output, _on_halt)
    except InputExhaustedError as e:
        print("Input exhausted:", e, file=sys.stderr)
        ticks, state = dp.tick, "stopped"

    if args.dump:
        cu._dump_memory_to_file(args.dump)
    _flush_logging_handlers()

    if dp.fault is not None:
        print("FAULT:", dp.fault, file=sys.stderr)
    sys.stdout.write("TICKS: " + str(ticks) + "\n")
    sys.stdout.write("STATE: " + state + "\n")

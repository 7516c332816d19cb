"""Golden-test runner for the assembler -> LMC pipeline.

This test loads golden YAML records, assembles the source, runs it on a
fresh machine and compares produced outputs (words, listing, outputs,
ticks, state, registers, memory, diagnostics and the debug log) against
the expectations in the golden files.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import processor
import pytest
from assembler import assemble
from config import load_config
from processor import ControlUnit, Datapath, feed


def _mismatch(msg_title: str, got_text: str, expected_text: str) -> str:
    return f"{msg_title}\n--- got ---\n{got_text}\n--- expected ---\n{expected_text}"


def _close_logging() -> None:
    root = logging.getLogger()
    for h in list(root.handlers):
        h.flush()
        h.close()
        root.removeHandler(h)


@pytest.mark.golden_test("golden/*.yaml")
def test_assembler_and_vm(golden: Any, tmp_path: Path) -> None:  # noqa: C901
    """Run one golden record: assemble, run and compare outputs."""
    if "__yaml_load_error__" in golden:
        pytest.fail(f"{golden['__path__']}: {golden['__yaml_load_error__']}")

    source_rec = golden.get("source")
    if not source_rec:
        pytest.skip("No source provided in golden record")

    cfg = load_config(golden.get("config"))
    asm = assemble(
        source_rec.get("code", ""),
        addressing=source_rec.get("addressing", cfg["addressing"]),
        comment_style=source_rec.get("comment_style", cfg["comment_style"]),
    )
    expect = golden.get("expect") or {}

    # 1) machine words and listing
    if "out_code" in expect:
        assert asm.words == [int(w) for w in expect["out_code"]], "machine words mismatch"
    if "out_listing" in expect:
        got = asm.listing().strip()
        exp = expect["out_listing"].strip()
        if got != exp:
            raise AssertionError(_mismatch("listing mismatch", got, exp))

    # 2) diagnostics: a program with errors is never run
    got_diags = [str(d) for d in asm.diagnostics]
    if "diagnostics" in expect:
        assert got_diags == list(expect["diagnostics"])
        return
    assert asm.ok, "unexpected diagnostics: " + "; ".join(got_diags)

    # 3) run with debug log into tmp
    log_path = tmp_path / "processor.log"
    processor.init_logging(logfile=str(log_path), debug=True, console=False)
    try:
        dp = Datapath(asm.words, tick_limit=cfg["tick_limit"], lenient_log=cfg["lenient_log"])
        cu = ControlUnit(dp)
        outputs: list[int] = []
        halts: list[bool] = []
        ticks, state = cu.run(
            feed(golden.get("input") or []),
            outputs.append,
            lambda: halts.append(True),
            clock_speed=0,
        )
    finally:
        _close_logging()

    if "out_stdout" in expect:
        assert outputs == [int(v) for v in expect["out_stdout"]], "output mismatch"
    if "ticks" in expect:
        assert ticks == int(expect["ticks"]), f"ticks mismatch: got {ticks} expected {expect['ticks']}"
    if "state" in expect:
        assert state == expect["state"], f"state mismatch: got {state} expected {expect['state']}"
        assert halts == ([True] if state in ("halted", "fault") else [])
    if "acc" in expect:
        assert dp.ACC == int(expect["acc"])
    if "memory" in expect:
        mem_expect = expect["memory"]
        assert isinstance(mem_expect, dict), "expect.memory must be dict"
        for k, v in mem_expect.items():
            assert dp.read_word(int(k)) == int(v), f"memory[{k}] mismatch"

    # 4) one trace line per executed step
    log_text = log_path.read_text(encoding="utf-8")
    assert log_text.count("TICK:") == ticks

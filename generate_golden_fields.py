#!/usr/bin/env python3
"""
Fill out_code (word list) and out_listing for a golden YAML file.
Usage: python generate_golden_fields.py path/to/golden.yaml
"""

from __future__ import annotations

import os
import sys
from typing import Any

import yaml

from assembler import assemble


def fill_golden(doc: dict[str, Any]) -> dict[str, Any]:
    """Assemble doc['source'] and write out_code / out_listing into doc['expect'].

    Returns the expect mapping. Raises ValueError when the source does not
    assemble cleanly: golden code fields are only generated for valid programs.
    """
    source_rec = doc.get("source")
    if not isinstance(source_rec, dict) or "code" not in source_rec:
        err = "no 'source.code' found in golden record"
        raise ValueError(err)

    asm = assemble(
        source_rec["code"],
        addressing=source_rec.get("addressing", "label"),
        comment_style=source_rec.get("comment_style", "inline"),
    )
    if not asm.ok:
        err = "source has assembly errors: " + "; ".join(str(d) for d in asm.diagnostics)
        raise ValueError(err)

    target = doc.setdefault("expect", {})
    target["out_code"] = list(asm.words)
    target["out_listing"] = asm.listing()
    return target


def main(path: str) -> None:
    if not os.path.exists(path):
        print("File not found:", path)
        sys.exit(2)

    with open(path, encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}

    try:
        fill_golden(doc)
    except ValueError as e:
        print(e)
        sys.exit(2)

    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    print(f"Updated {path} with out_code and out_listing.")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: generate_golden_fields.py path/to/golden.yaml")
        sys.exit(1)
    main(sys.argv[1])

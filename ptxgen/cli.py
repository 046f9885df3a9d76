"""Command-line entry points."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from typing import Optional, TextIO

from ptxgen.backend import lower_function
from ptxgen.convert import lower, lower_blocks
from ptxgen.llvm_ir import Module, ParseError, parse_module

OUTPUT_FILE = "out.ptx"


def _write_ptx(out: TextIO, module: Module, target: str) -> None:
    for func in module.functions:
        for line in lower_function(func.name, lower_blocks(func), target):
            out.write(f"{line}\n")
        out.write("\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Translate an ``.ll`` file to PTX, on stdout or into ``out.ptx``."""
    parser = argparse.ArgumentParser(prog="ptx-backend")
    parser.add_argument("input")
    parser.add_argument("--emit", action="store_true", help=f"write to {OUTPUT_FILE}")
    parser.add_argument("--target", default="sm_75")
    args = parser.parse_args(argv)

    try:
        module = parse_module(args.input)
    except ParseError as exc:
        print(f"invalid LLVM IR: {exc}", file=sys.stderr)
        return 1

    if args.emit:
        with open(OUTPUT_FILE, "w", encoding="utf-8") as out:
            _write_ptx(out, module, args.target)
    else:
        _write_ptx(sys.stdout, module, args.target)
    return 0


def _load(path: str) -> Optional[Module]:
    try:
        return parse_module(path)
    except ParseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return None


def dump_main(argv: Optional[Sequence[str]] = None) -> int:
    """Print the lowered instructions of every block in debug form."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("Usage: llvm2ptx <file.ll>", file=sys.stderr)
        return 1
    module = _load(args[0])
    if module is None:
        return 1
    for func in module.functions:
        print(f"Function: {func.name}")
        for block in func.basic_blocks:
            print(f"  Basic block: {block.name}")
            for instr in block.instrs:
                print(f"    {lower(func.name, instr)}")
    return 0


def json_main(argv: Optional[Sequence[str]] = None) -> int:
    """Print the lowered instructions of every block as pretty JSON."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("Usage: llvm_parser <file.ll>", file=sys.stderr)
        return 1
    module = _load(args[0])
    if module is None:
        return 1
    for func in module.functions:
        print(f"Function: {func.name}")
        for block in func.basic_blocks:
            print(f"  Basic block: {block.name}")
            for instr in block.instrs:
                lowered = lower(func.name, instr)
                print(json.dumps(lowered.to_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
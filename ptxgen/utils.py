"""Operand cleaning and register type inference."""

from __future__ import annotations

from typing import Optional

from ptxgen.ir_model import Add, FAdd, FMul, ICmp, Instruction, Load, Store

_STRIPPED = ("*", "i32", "float", "f32", "ptr", " ")


def clean_operand(op: str) -> str:
    """Reduce an LLVM operand such as ``"float* %x"`` to a bare name (``"x"``).

    Takes the last whitespace-separated word, strips leading ``%`` then ``@``,
    and removes type and pointer markers.
    """
    words = op.split()
    name = words[-1] if words else op
    name = name.lstrip("%").lstrip("@")
    for pattern in _STRIPPED:
        name = name.replace(pattern, "")
    return name


def _looks_float(name: str) -> bool:
    return name.startswith(("x", "y", "a")) or "val" in name


def get_register_type(instr: Instruction, name: str) -> Optional[str]:
    """Infer the PTX type name of ``name`` as used by ``instr``, if known."""
    target = clean_operand(name)

    def matches(operand: str) -> bool:
        return clean_operand(operand) == target

    match instr:
        case FMul() | FAdd() if any(map(matches, (instr.dst, instr.lhs, instr.rhs))):
            return "f32"
        case Load() if matches(instr.dst):
            return "f32" if _looks_float(clean_operand(instr.dst)) else "s32"
        case Store() if matches(instr.value):
            return "f32" if _looks_float(clean_operand(instr.value)) else "s32"
        case Add() if any(map(matches, (instr.dst, instr.lhs, instr.rhs))):
            return "s32"
        case ICmp() if matches(instr.lhs) or matches(instr.rhs):
            return "s32"
        case ICmp() if matches(instr.dst):
            return "pred"
        case _:
            return None
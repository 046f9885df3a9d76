"""Lowering of parsed LLVM instructions into the instruction model."""

from __future__ import annotations

from ptxgen import ir_model as ir
from ptxgen.llvm_ir import Function, LlvmInstruction, Terminator

_BINARY = {
    "fmul": ir.FMul, "fadd": ir.FAdd, "add": ir.Add, "sub": ir.Sub,
    "fsub": ir.FSub, "mul": ir.Mul, "udiv": ir.UDiv, "sdiv": ir.SDiv,
    "urem": ir.URem, "srem": ir.SRem, "fdiv": ir.FDiv, "frem": ir.FRem,
}
_CASTS = {"bitcast": ir.Bitcast, "zext": ir.ZExt, "trunc": ir.Trunc}


def _callee_name(callee: str | None) -> str:
    if callee and callee.startswith("@"):
        return callee[1:].strip('"')
    return "unknown_fn"


def lower(function: str, instr: LlvmInstruction) -> ir.Instruction:
    """Lower one LLVM instruction of ``function``."""
    op = instr.opcode
    dest = instr.dest or ""
    if op in _BINARY:
        lhs, rhs = instr.operands
        return _BINARY[op](function, dest, lhs, rhs)
    if op == "icmp" or op == "fcmp":
        lhs, rhs = instr.operands
        cls = ir.ICmp if op == "icmp" else ir.FCmp
        return cls(function, dest, lhs, rhs, instr.predicate or "")
    if op == "load":
        return ir.Load(function, dest, instr.operands[0])
    if op == "store":
        value, address = instr.operands
        return ir.Store(function, address, value)
    if op == "alloca":
        return ir.Alloca(function, dest, instr.allocated_type or "", instr.alignment)
    if op == "getelementptr":
        return ir.GetElementPtr(function, dest, instr.operands[0], ", ".join(instr.indices))
    if op == "phi":
        incoming = [(label, value) for value, label in instr.incoming]
        return ir.Phi(function, dest, incoming)
    if op == "select":
        cond, val_true, val_false = instr.operands
        return ir.Select(function, dest, cond, val_true, val_false)
    if op in _CASTS:
        return _CASTS[op](function, dest, instr.operands[0])
    if op == "call":
        return ir.Call(function, _callee_name(instr.callee), list(instr.args), instr.dest)
    return ir.Unhandled(function, instr.text)


def lower_terminator(function: str, term: Terminator) -> ir.Instruction:
    """Lower a block terminator of ``function``."""
    if term.kind == "ret":
        return ir.Ret(function)
    if term.kind == "br" and term.condition is not None:
        return ir.CondBr(function, term.condition, term.true_dest or "", term.false_dest or "")
    if term.kind == "br":
        return ir.Br(function, None, term.dest or "", None)
    return ir.Unhandled(function, term.text)


def lower_blocks(func: Function) -> list[tuple[str, list[ir.Instruction]]]:
    """Lower every block of ``func``, terminators included."""
    return [
        (
            block.name,
            [lower(func.name, i) for i in block.instrs]
            + [lower_terminator(func.name, block.term)],
        )
        for block in func.basic_blocks
    ]
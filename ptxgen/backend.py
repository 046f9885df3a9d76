"""PTX code generation from lowered instructions."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Sequence

from ptxgen import ir_model as ir
from ptxgen.convert import lower_blocks
from ptxgen.llvm_ir import parse_ir
from ptxgen.ptx_type import PTXType
from ptxgen.type_map import TypeMap, declare_registers_from_typemap
from ptxgen.utils import clean_operand, get_register_type

Block = tuple[str, Sequence[ir.Instruction]]

_BINARY_OPCODES: dict[type, str] = {
    ir.FMul: "mul.f32",
    ir.FAdd: "add.f32",
    ir.Add: "add.s32",
    ir.Sub: "sub.s32",
    ir.FSub: "sub.f32",
    ir.Mul: "mul.lo.s32",
    ir.UDiv: "div.u32",
    ir.SDiv: "div.s32",
    ir.URem: "rem.u32",
    ir.SRem: "rem.s32",
    ir.FDiv: "div.f32",
    ir.FRem: "rem.f32",
}

_CONVERSION_OPCODES: dict[type, str] = {
    ir.Bitcast: "mov.b32",
    ir.ZExt: "cvt.u32.u8",
    ir.Trunc: "cvt.u8.u32",
}

_ICMP_PREDICATES = {
    "EQ": "eq",
    "NE": "ne",
    "UGT": "gt", "SGT": "gt",
    "UGE": "ge", "SGE": "ge",
    "ULT": "lt", "SLT": "lt",
    "ULE": "le", "SLE": "le",
}

_FCMP_PREDICATES = {
    "OEQ": "eq", "UEQ": "eq",
    "ONE": "ne", "UNE": "ne",
    "OGT": "gt", "UGT": "gt",
    "OGE": "ge", "UGE": "ge",
    "OLT": "lt", "ULT": "lt",
    "OLE": "le", "ULE": "le",
}


def _reg(op: str) -> str:
    clean = clean_operand(op)
    return clean if clean.startswith("%") else f"%{clean}"


def _mem(op: str) -> str:
    clean = clean_operand(op)
    return f"[{clean}]" if clean.startswith("%") else f"[%{clean}]"


def _arg_name(arg: str) -> str:
    if arg.startswith(("i32 ", "f32 ")):
        words = arg.split()
        return words[-1] if words else arg
    return arg


def _type_of(type_map: TypeMap, op: str) -> str:
    ty = type_map.get(clean_operand(op))
    return (ty if ty is not None else PTXType.S32).as_str()


def _quoted(text: str) -> str:
    escaped = (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _pairs(pairs: Iterable[tuple[str, str]]) -> str:
    return "[" + ", ".join(f"({_quoted(a)}, {_quoted(b)})" for a, b in pairs) + "]"


def build_type_map(instrs: Iterable[ir.Instruction]) -> TypeMap:
    """Infer a register type for every operand whose type can be guessed."""
    type_map = TypeMap()
    for instr in instrs:
        for operand in instr.used_operands():
            ty_name = get_register_type(instr, operand)
            if ty_name is not None:
                type_map.insert(clean_operand(operand), PTXType.from_str(ty_name))
    return type_map


def _emit_header(target: str) -> str:
    return f".version 7.0\n.target {target}\n.address_size 64\n"


def lower_function(name: str, blocks: Sequence[Block], target: str) -> list[str]:
    """Emit the PTX lines of one kernel entry built from labelled blocks."""
    output = [f"// Function: {name}", _emit_header(target), f".entry {clean_operand(name)} {{"]

    flat = [instr for _, instrs in blocks for instr in instrs]
    type_map = build_type_map(flat)
    output.extend(declare_registers_from_typemap(type_map))

    for block_name, instrs in blocks:
        if not instrs:
            continue
        output.append(f"{clean_operand(block_name)}:")
        output.extend(f"    {to_ptx(instr, type_map)}" for instr in instrs)

    last = next(
        (i for i in reversed(flat) if not isinstance(i, (ir.Alloca, ir.GetElementPtr))),
        None,
    )
    if not isinstance(last, (ir.Ret, ir.Br)):
        output.append("    ret;")

    output.append("}")
    return output


def _call_to_ptx(instr: ir.Call, type_map: TypeMap) -> str:
    lines: list[str] = []
    retvar = instr.ret
    if retvar is not None:
        lines.append(f"\t.param .{_type_of(type_map, retvar)} retval_{retvar};\n")

    arg_names = [_arg_name(arg) for arg in instr.args]
    for i, arg in enumerate(arg_names):
        lines.append(f"\t.param .{_type_of(type_map, arg)} arg{i};\n")
    for i, arg in enumerate(arg_names):
        lines.append(f"\tst.param.{_type_of(type_map, arg)} [arg{i}], {_reg(arg)};\n")

    params = ", ".join(f"arg{i}" for i in range(len(arg_names)))
    callee = clean_operand(instr.callee)
    if retvar is not None:
        lines.append(f"\tcall (retval_{retvar}) {callee}, ({params});\n")
        lines.append(
            f"\tld.param.{_type_of(type_map, retvar)} {_reg(retvar)}, [retval_{retvar}];\n"
        )
    else:
        lines.append(f"\tcall {callee}, ({params});\n")
    return "".join(lines)


def to_ptx(instr: ir.Instruction, type_map: TypeMap) -> str:
    """Render one instruction as PTX text (possibly several lines)."""
    opcode = _BINARY_OPCODES.get(type(instr))
    if opcode is not None:
        return f"{opcode} {_reg(instr.dst)}, {_reg(instr.lhs)}, {_reg(instr.rhs)};"
    opcode = _CONVERSION_OPCODES.get(type(instr))
    if opcode is not None:
        return f"{opcode} {_reg(instr.dst)}, {_reg(instr.src)};"

    match instr:
        case ir.ICmp(dst=dst, lhs=lhs, rhs=rhs, op=op):
            pred = _ICMP_PREDICATES.get(op)
            if pred is None:
                return f"// unsupported icmp predicate: {op}"
            return f"setp.{pred}.s32 {_reg(dst)}, {_reg(lhs)}, {_reg(rhs)};"
        case ir.FCmp(dst=dst, lhs=lhs, rhs=rhs, op=op):
            pred = _FCMP_PREDICATES.get(op, "lt")
            return f"setp.{pred}.f32 {_reg(dst)}, {_reg(lhs)}, {_reg(rhs)};"
        case ir.Load(dst=dst, src=src):
            ty = _type_of(type_map, dst)
            return f"ld.global.{ty} {_reg(dst)}, [{clean_operand(src)}];"
        case ir.Store(dst=dst, value=value):
            ty = _type_of(type_map, value)
            return f"st.global.{ty} {_mem(dst)}, {_reg(value)};"
        case ir.Br(cond=cond, target_true=target_true, target_false=target_false):
            if cond is None:
                return f"bra {target_true};"
            if target_false is not None:
                return f"@{_reg(cond)} bra {target_true};\n    bra {target_false};"
            return "// invalid conditional branch"
        case ir.CondBr(cond=cond, then_target=then_target, else_target=else_target):
            return f"@{_reg(cond)} bra {then_target};\n    bra {else_target};"
        case ir.Ret():
            return "ret;"
        case ir.GetElementPtr(dst=dst, base=base, index=index):
            dst_clean = clean_operand(dst)
            offset = f"{dst_clean}_offset"
            calc_offset = f"mul.lo.s32 %{offset}, %{clean_operand(index)}, 4;"
            calc_ptr = f"add.s32 %{dst_clean}, %{clean_operand(base)}, %{offset};"
            return f"{calc_offset}\n    {calc_ptr}"
        case ir.Phi(dst=dst, incoming=incoming):
            return f"// phi.{_type_of(type_map, dst)} {_reg(dst)} <- {_pairs(incoming)}"
        case ir.Alloca():
            return ""
        case ir.Select(dst=dst, cond=cond, val_true=val_true, val_false=val_false):
            ty = _type_of(type_map, dst)
            return f"selp.{ty} {_reg(dst)}, {_reg(val_true)}, {_reg(val_false)}, {_reg(cond)};"
        case ir.Call():
            return _call_to_ptx(instr, type_map)
        case ir.Unhandled(text=text):
            return f"// unhandled: {text}"
        case _:
            raise TypeError(f"cannot emit PTX for {type(instr).__name__}")


def compile_llvm_to_ptx(ir_code: str) -> str:
    """Compile LLVM IR text into PTX for the ``sm_75`` target.

    Raises :class:`ptxgen.llvm_ir.ParseError` on malformed IR and warns on
    stderr about instructions that could not be lowered.
    """
    module = parse_ir(ir_code)
    lines: list[str] = []
    for func in module.functions:
        blocks = lower_blocks(func)
        unhandled = sum(
            isinstance(instr, ir.Unhandled) for _, instrs in blocks for instr in instrs
        )
        if unhandled:
            print(
                f"Warning: {unhandled} unhandled instruction(s) in function `{func.name}`",
                file=sys.stderr,
            )
        lines.extend(lower_function(func.name, blocks, "sm_75"))
        lines.append("")
    return "\n".join(lines)
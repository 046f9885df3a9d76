import re

import pytest

from ptxgen import ir_model as ir
from ptxgen.backend import build_type_map, compile_llvm_to_ptx, lower_function, to_ptx
from ptxgen.convert import lower
from ptxgen.llvm_ir import ParseError, parse_ir
from ptxgen.ptx_type import PTXType
from ptxgen.type_map import TypeMap, declare_registers_from_typemap

ADD_LL = """
define void @add(i32 %a, i32 %b) {
entry:
  %sum = add i32 %a, %b
  ret void
}
"""

CALL_LL = """
define void @foo() {
entry:
  ret void
}

define void @main() {
entry:
  call void @foo()
  ret void
}
"""

CALL_ARGS_LL = """
define void @foo(i32 %p, float %q) {
entry:
  ret void
}

define void @main() {
entry:
  %i = add i32 1, 2
  %x = fadd float 1.0, 2.0
  call void @foo(i32 %i, float %x)
  ret void
}
"""

MULTI_FN_LL = """
define void @foo() {
entry:
  ret void
}

define void @bar() {
entry:
  ret void
}

define void @baz() {
entry:
  ret void
}
"""

SAXPY_LL = """
define void @saxpy(float %a, float* %x, float* %y, i32 %n) {
entry:
  %i = add i32 0, 0
  %xi_ptr = getelementptr float, float* %x, i32 %i
  %yi_ptr = getelementptr float, float* %y, i32 %i
  %xi = load float, float* %xi_ptr
  %yi = load float, float* %yi_ptr
  %ax = fmul float %a, %xi
  %res = fadd float %ax, %yi
  store float %res, float* %yi_ptr
  ret void
}
"""

FIB_LL = """
define void @fib(i32 %n) {
entry:
  br label %loop
loop:
  %i = phi i32 [ 0, %entry ], [ %next, %loop ]
  %next = add i32 %i, 1
  %cmp = icmp slt i32 %next, %n
  br i1 %cmp, label %loop, label %exit
exit:
  ret void
}
"""


def _ptx_for(ir_text):
    module = parse_ir(ir_text)
    ptx = []
    for func in module.functions:
        blocks = [
            (block.name, [lower(func.name, i) for i in block.instrs])
            for block in func.basic_blocks
        ]
        ptx.extend(lower_function(func.name, blocks, "sm_75"))
    return "\n".join(ptx) + "\n"


def _single_entry(ptx):
    return ptx.count(".entry ") == 1


def _single_header(ptx):
    return (
        ptx.count(".version") == 1
        and ptx.count(".target") == 1
        and ptx.count(".address_size") == 1
    )


def _no_register_collisions(ptx):
    seen = {}
    for line in ptx.splitlines():
        if not line.strip().startswith(".reg"):
            continue
        parts = line.split()
        if len(parts) < 3:
            continue
        reg_type = parts[1]
        for reg in " ".join(parts[2:]).rstrip(";").split(","):
            name = reg.strip().lstrip("%").strip()
            if seen.setdefault(name, reg_type) != reg_type:
                return False
    return True


def _terminal_instruction(ptx):
    for line in reversed(ptx.splitlines()):
        line = line.strip()
        if not line or line.startswith("//") or line.startswith(".") or line == "}":
            continue
        return line == "ret;" or line.startswith("bra ")
    return False


def test_add_to_ptx_pieces():
    module = parse_ir(ADD_LL)
    func = module.functions[0]
    instrs = [lower(func.name, i) for b in func.basic_blocks for i in b.instrs]
    type_map = build_type_map(instrs)
    assert declare_registers_from_typemap(type_map) == [".reg s32 %a, %b, %sum;"]
    assert [to_ptx(i, type_map) for i in instrs] == ["add.s32 %sum, %a, %b;"]


def test_compile_add_exact():
    expected = (
        "// Function: add\n"
        ".version 7.0\n.target sm_75\n.address_size 64\n\n"
        ".entry add {\n"
        ".reg s32 %a, %b, %sum;\n"
        "entry:\n"
        "    add.s32 %sum, %a, %b;\n"
        "    ret;\n"
        "}\n"
    )
    assert compile_llvm_to_ptx(ADD_LL) == expected


def test_call_translation():
    ptx = compile_llvm_to_ptx(CALL_LL)
    assert "call foo, ();" in ptx
    assert ".entry main" in ptx
    assert ".entry foo" in ptx


def test_call_with_args_translation():
    ptx = compile_llvm_to_ptx(CALL_ARGS_LL)
    assert ".param .s32 arg0;" in ptx
    assert ".param .f32 arg1;" in ptx
    assert "call foo, (arg0, arg1);" in ptx
    assert re.search(r"st\.param\.\w+\s+\[arg0],\s+%[a-zA-Z0-9_]+;", ptx)
    assert re.search(r"st\.param\.\w+\s+\[arg1],\s+%[a-zA-Z0-9_]+;", ptx)


def test_multiple_functions_generate_multiple_entries():
    result = compile_llvm_to_ptx(MULTI_FN_LL)
    for entry in ("foo", "bar", "baz"):
        assert f".entry {entry}" in result
    assert result.count(".entry ") == 3


def test_ret_only_lines():
    module = parse_ir("define void @k() {\nentry:\n  ret void\n}\n")
    func = module.functions[0]
    blocks = [(b.name, [lower("k", i) for i in b.instrs] + [ir.Ret("k")]) for b in func.basic_blocks]
    assert lower_function("k", blocks, "sm_75") == [
        "// Function: k",
        ".version 7.0\n.target sm_75\n.address_size 64\n",
        ".entry k {",
        "entry:",
        "    ret;",
        "}",
    ]


def test_saxpy_structural_rules():
    ptx = _ptx_for(SAXPY_LL)
    assert ".entry saxpy" in ptx
    assert _single_entry(ptx)
    assert _single_header(ptx)
    assert _no_register_collisions(ptx)
    assert _terminal_instruction(ptx)


def test_saxpy_float_ops():
    ptx = _ptx_for(SAXPY_LL)
    assert "mul.f32 %ax, %a, %xi;" in ptx
    assert "add.f32 %res, %ax, %yi;" in ptx


def test_fib_has_no_unhandled_instructions():
    ptx = compile_llvm_to_ptx(FIB_LL)
    assert "// unhandled" not in ptx
    assert "setp.lt.s32 %cmp, %next, %n;" in ptx
    assert "@%cmp bra %loop;\n    bra %exit;" in ptx
    assert ".reg pred %cmp;" in ptx
    assert '// phi.s32 %i <- [("entry", "i32 0"), ("loop", "i32 %next")]' in ptx
    assert _terminal_instruction(ptx)


def test_unhandled_instruction_output():
    instrs = [
        ir.Alloca("test", "%i", "i32", 0),
        ir.Unhandled("test", "foobar %a, %b"),
    ]
    type_map = build_type_map(instrs)
    assert declare_registers_from_typemap(type_map) == []
    assert [to_ptx(i, type_map) for i in instrs] == ["", "// unhandled: foobar %a, %b"]


def test_compile_warns_about_unhandled(capsys):
    text = "define void @k(i32 %a, i32 %b) {\nentry:\n  %t = and i32 %a, %b\n  ret void\n}\n"
    ptx = compile_llvm_to_ptx(text)
    assert "    // unhandled: %t = and i32 %a, %b" in ptx
    assert "Warning: 1 unhandled instruction(s) in function `k`" in capsys.readouterr().err


def test_compile_invalid_ir_raises():
    with pytest.raises(ParseError):
        compile_llvm_to_ptx("this is not llvm ir")


@pytest.mark.parametrize(
    ("instr", "expected"),
    [
        (ir.Add("f", "%r", "i32 %a", "i32 %b"), "add.s32 %r, %a, %b;"),
        (ir.Sub("f", "%r", "i32 %a", "i32 %b"), "sub.s32 %r, %a, %b;"),
        (ir.Mul("f", "%r", "i32 %a", "i32 %b"), "mul.lo.s32 %r, %a, %b;"),
        (ir.UDiv("f", "%r", "i32 %a", "i32 %b"), "div.u32 %r, %a, %b;"),
        (ir.SDiv("f", "%r", "i32 %a", "i32 %b"), "div.s32 %r, %a, %b;"),
        (ir.URem("f", "%r", "i32 %a", "i32 %b"), "rem.u32 %r, %a, %b;"),
        (ir.SRem("f", "%r", "i32 %a", "i32 %b"), "rem.s32 %r, %a, %b;"),
        (ir.FAdd("f", "%r", "float %a", "float %b"), "add.f32 %r, %a, %b;"),
        (ir.FSub("f", "%r", "float %a", "float %b"), "sub.f32 %r, %a, %b;"),
        (ir.FMul("f", "%r", "float %a", "float %b"), "mul.f32 %r, %a, %b;"),
        (ir.FDiv("f", "%r", "float %a", "float %b"), "div.f32 %r, %a, %b;"),
        (ir.FRem("f", "%r", "float %a", "float %b"), "rem.f32 %r, %a, %b;"),
        (ir.ICmp("f", "%c", "i32 %a", "i32 %b", "SGT"), "setp.gt.s32 %c, %a, %b;"),
        (ir.ICmp("f", "%c", "i32 %a", "i32 %b", "EQ"), "setp.eq.s32 %c, %a, %b;"),
        (ir.ICmp("f", "%c", "i32 %a", "i32 %b", "XYZ"), "// unsupported icmp predicate: XYZ"),
        (ir.FCmp("f", "%c", "float %a", "float %b", "OGE"), "setp.ge.f32 %c, %a, %b;"),
        (ir.FCmp("f", "%c", "float %a", "float %b", "ORD"), "setp.lt.f32 %c, %a, %b;"),
        (ir.Store("f", "float* %p", "float %val"), "st.global.s32 [%p], %val;"),
        (ir.Br("f", None, "%next", None), "bra %next;"),
        (ir.Br("f", "i1 %c", "%t", "%e"), "@%c bra %t;\n    bra %e;"),
        (ir.Br("f", "i1 %c", "%t", None), "// invalid conditional branch"),
        (ir.CondBr("f", "i1 %c", "%then", "%else"), "@%c bra %then;\n    bra %else;"),
        (ir.Ret("f"), "ret;"),
        (
            ir.GetElementPtr("f", "%q", "float* %p", "i64 %i"),
            "mul.lo.s32 %q_offset, %i, 4;\n    add.s32 %q, %p, %q_offset;",
        ),
        (ir.Alloca("f", "%slot", "i32", 4), ""),
        (
            ir.Select("f", "%s", "i1 %c", "i32 %a", "i32 %b"),
            "selp.s32 %s, %a, %b, %c;",
        ),
        (ir.Bitcast("f", "%b", "i32 %a"), "mov.b32 %b, %a;"),
        (ir.ZExt("f", "%b", "i8 %a"), "cvt.u32.u8 %b, %a;"),
        (ir.Trunc("f", "%b", "i32 %a"), "cvt.u8.u32 %b, %a;"),
    ],
)
def test_to_ptx_instruction(instr, expected):
    assert to_ptx(instr, TypeMap()) == expected


def test_load_uses_type_map():
    type_map = TypeMap()
    type_map.insert("x", PTXType.F32)
    assert to_ptx(ir.Load("f", "%x", "float* %p"), type_map) == "ld.global.f32 %x, [p];"
    assert to_ptx(ir.Load("f", "%k", "i32* %p"), type_map) == "ld.global.s32 %k, [p];"


def test_call_with_return_value():
    call = ir.Call("f", "add1", ["%a"], "%r")
    assert to_ptx(call, TypeMap()) == (
        "\t.param .s32 retval_%r;\n"
        "\t.param .s32 arg0;\n"
        "\tst.param.s32 [arg0], %a;\n"
        "\tcall (retval_%r) add1, (arg0);\n"
        "\tld.param.s32 %r, [retval_%r];\n"
    )


def test_build_type_map_infers_types():
    type_map = build_type_map(
        [
            ir.FAdd("f", "%s", "float %p", "float %q"),
            ir.ICmp("f", "%c", "i32 %m", "i32 %k", "SLT"),
        ]
    )
    assert type_map.get("s") is PTXType.F32
    assert type_map.get("m") is PTXType.S32
    assert type_map.get("c") is PTXType.PRED
    assert type_map.get("nothing") is None


def test_lower_function_appends_ret_when_missing():
    lines = lower_function("k", [("%entry", [ir.Add("k", "%s", "i32 %a", "i32 %b")])], "sm_80")
    assert lines[-2:] == ["    ret;", "}"]
    assert ".target sm_80" in lines[1]


def test_lower_function_keeps_final_branch():
    blocks = [("%entry", [ir.Br("k", None, "%entry", None)])]
    assert lower_function("k", blocks, "sm_75")[-2:] == ["    bra %entry;", "}"]


def test_lower_function_ignores_trailing_alloca_and_gep():
    blocks = [
        ("%entry", [ir.Ret("k")]),
        ("%tail", [ir.Alloca("k", "%slot", "i32", 4)]),
    ]
    lines = lower_function("k", blocks, "sm_75")
    assert lines.count("    ret;") == 1
    assert lines[-1] == "}"


def test_lower_function_without_instructions():
    lines = lower_function("empty", [("%entry", [])], "sm_75")
    assert lines == [
        "// Function: empty",
        ".version 7.0\n.target sm_75\n.address_size 64\n",
        ".entry empty {",
        "    ret;",
        "}",
    ]
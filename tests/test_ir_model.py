import json

import pytest

from ptxgen.ir_model import (
    Add,
    Alloca,
    Bitcast,
    Br,
    Call,
    CondBr,
    FAdd,
    FCmp,
    FDiv,
    FMul,
    FRem,
    FSub,
    GetElementPtr,
    ICmp,
    Instruction,
    Load,
    Mul,
    Phi,
    Ret,
    SDiv,
    Select,
    SRem,
    Store,
    Sub,
    Trunc,
    UDiv,
    Unhandled,
    URem,
    ZExt,
)

BINARY = [Add, Sub, Mul, UDiv, SDiv, URem, SRem, FAdd, FSub, FMul, FDiv, FRem]


@pytest.mark.parametrize("cls", [ICmp, FCmp])
def test_compare_operands_exclude_predicate(cls):
    instr = cls("f", "%c", "%a", "%b", "EQ")
    assert instr.used_operands() == ["%c", "%a", "%b"]
    assert instr.op == "EQ"


def test_load_and_store_operands():
    assert Load("f", "%v", "%p").used_operands() == ["%v", "%p"]
    assert Store("f", "%p", "%v").used_operands() == ["%p", "%v"]


def test_alloca_only_dst():
    assert Alloca("f", "%i", "i32", 4).used_operands() == ["%i"]


def test_gep_operands():
    instr = GetElementPtr("f", "%g", "%base", "%idx")
    assert instr.used_operands() == ["%g", "%base", "%idx"]


def test_phi_flattens_incoming_pairs():
    instr = Phi("f", "%r", [("entry", "%a"), ("loop", "%b")])
    assert instr.used_operands() == ["%r", "entry", "%a", "loop", "%b"]


def test_select_operand_order():
    instr = Select("f", "%d", "%c", "%t", "%e")
    assert instr.used_operands() == ["%d", "%c", "%t", "%e"]


@pytest.mark.parametrize("cls", [Bitcast, ZExt, Trunc])
def test_conversions(cls):
    assert cls("f", "%d", "%s").used_operands() == ["%d", "%s"]


def test_call_with_return_appends_ret():
    instr = Call("f", "foo", ["%a", "%b"], "%r")
    assert instr.used_operands() == ["%a", "%b", "%r"]


def test_call_without_return():
    instr = Call("f", "foo", ["%a"])
    assert instr.used_operands() == ["%a"]
    assert instr.ret is None


def test_condbr_operands():
    instr = CondBr("f", "%c", "then", "else")
    assert instr.used_operands() == ["%c", "then", "else"]


def test_branch_and_ret_have_no_operands():
    assert Br("f", None, "next", None).used_operands() == []
    assert Ret("f").used_operands() == []


def test_unhandled_uses_text():
    assert Unhandled("f", "foobar %a, %b").used_operands() == ["foobar %a, %b"]


def test_to_dict_is_externally_tagged():
    assert Load("main", "%1", "%0").to_dict() == {
        "Load": {"function": "main", "dst": "%1", "src": "%0"}
    }


def test_to_dict_keeps_none_for_optional_fields():
    data = Br("main", None, "exit", None).to_dict()
    assert data["Br"]["cond"] is None
    assert data["Br"]["target_false"] is None
    assert data["Br"]["target_true"] == "exit"


def test_to_dict_phi_is_json_round_trippable():
    instr = Phi("main", "%r", [("entry", "%a")])
    data = instr.to_dict()
    assert json.loads(json.dumps(data)) == data
    assert data["Phi"]["incoming"] == [["entry", "%a"]]


def test_to_dict_field_order_follows_declaration():
    data = ICmp("f", "%c", "%a", "%b", "SLT").to_dict()
    assert list(data["ICmp"]) == ["function", "dst", "lhs", "rhs", "op"]


def test_str_debug_form():
    assert str(Ret("main")) == 'Ret { function: "main" }'


def test_str_marks_optional_values():
    text = str(Br("main", "%c", "a", None))
    assert 'cond: Some("%c")' in text
    assert "target_false: None" in text


def test_equality_by_value():
    assert Add("f", "%d", "%a", "%b") == Add("f", "%d", "%a", "%b")
    assert Add("f", "%d", "%a", "%b") != Sub("f", "%d", "%a", "%b")
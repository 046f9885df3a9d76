"""Intermediate instruction model shared by the front end and the PTX backend."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Optional

_OPTIONAL = {"optional": True}


def _plain(value: Any) -> Any:
    """Convert a field value into JSON-friendly data."""
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _debug_str(text: str) -> str:
    escaped = (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _debug(value: Any) -> str:
    """Render a value the way the debug dump of an instruction shows it."""
    if isinstance(value, str):
        return _debug_str(value)
    if isinstance(value, tuple):
        return "(" + ", ".join(_debug(item) for item in value) + ")"
    if isinstance(value, list):
        return "[" + ", ".join(_debug(item) for item in value) + "]"
    return str(value)


@dataclass
class Instruction:
    """A lowered instruction; every variant records the function it belongs to."""

    function: str

    def used_operands(self) -> list[str]:
        """Operands (destinations included) that may need a register."""
        return []

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Externally tagged mapping: ``{"Variant": {field: value, ...}}``."""
        body = {f.name: _plain(getattr(self, f.name)) for f in fields(self)}
        return {type(self).__name__: body}

    def __str__(self) -> str:
        parts = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.metadata.get("optional"):
                rendered = "None" if value is None else f"Some({_debug(value)})"
            else:
                rendered = _debug(value)
            parts.append(f"{f.name}: {rendered}")
        return f"{type(self).__name__} {{ {', '.join(parts)} }}"


@dataclass
class _BinaryOp(Instruction):
    dst: str
    lhs: str
    rhs: str

    def used_operands(self) -> list[str]:
        return [self.dst, self.lhs, self.rhs]


@dataclass
class _Compare(_BinaryOp):
    op: str


@dataclass
class _Conversion(Instruction):
    dst: str
    src: str

    def used_operands(self) -> list[str]:
        return [self.dst, self.src]


@dataclass
class Load(Instruction):
    """Read ``src`` into ``dst``."""

    dst: str
    src: str

    def used_operands(self) -> list[str]:
        return [self.dst, self.src]


@dataclass
class Store(Instruction):
    """Write ``value`` to address ``dst``."""

    dst: str
    value: str

    def used_operands(self) -> list[str]:
        return [self.dst, self.value]


@dataclass
class Add(_BinaryOp):
    """Integer addition."""


@dataclass
class FAdd(_BinaryOp):
    """Floating-point addition."""


@dataclass
class FMul(_BinaryOp):
    """Floating-point multiplication."""


@dataclass
class Phi(Instruction):
    """SSA phi node; ``incoming`` holds ``(label, value)`` pairs."""

    dst: str
    incoming: list[tuple[str, str]] = field(default_factory=list)

    def used_operands(self) -> list[str]:
        operands = [self.dst]
        for label, value in self.incoming:
            operands.extend((label, value))
        return operands


@dataclass
class ICmp(_Compare):
    """Integer comparison with predicate ``op``."""


@dataclass
class GetElementPtr(Instruction):
    """Address computation from ``base`` and ``index``."""

    dst: str
    base: str
    index: str

    def used_operands(self) -> list[str]:
        return [self.dst, self.base, self.index]


@dataclass
class Alloca(Instruction):
    """Stack allocation."""

    dst: str
    ty: str
    align: int

    def used_operands(self) -> list[str]:
        return [self.dst]


@dataclass
class Br(Instruction):
    """Branch, unconditional when ``cond`` is None."""

    cond: Optional[str] = field(metadata=_OPTIONAL)
    target_true: str
    target_false: Optional[str] = field(metadata=_OPTIONAL)


@dataclass
class CondBr(Instruction):
    """Conditional branch to one of two targets."""

    cond: str
    then_target: str
    else_target: str

    def used_operands(self) -> list[str]:
        return [self.cond, self.then_target, self.else_target]


@dataclass
class Ret(Instruction):
    """Return from the function."""


@dataclass
class Sub(_BinaryOp):
    """Integer subtraction."""


@dataclass
class FSub(_BinaryOp):
    """Floating-point subtraction."""


@dataclass
class Mul(_BinaryOp):
    """Integer multiplication."""


@dataclass
class UDiv(_BinaryOp):
    """Unsigned integer division."""


@dataclass
class SDiv(_BinaryOp):
    """Signed integer division."""


@dataclass
class URem(_BinaryOp):
    """Unsigned integer remainder."""


@dataclass
class SRem(_BinaryOp):
    """Signed integer remainder."""


@dataclass
class FDiv(_BinaryOp):
    """Floating-point division."""


@dataclass
class FRem(_BinaryOp):
    """Floating-point remainder."""


@dataclass
class FCmp(_Compare):
    """Floating-point comparison with predicate ``op``."""


@dataclass
class Select(Instruction):
    """Pick ``val_true`` or ``val_false`` depending on ``cond``."""

    dst: str
    cond: str
    val_true: str
    val_false: str

    def used_operands(self) -> list[str]:
        return [self.dst, self.cond, self.val_true, self.val_false]


@dataclass
class Bitcast(_Conversion):
    """Reinterpret ``src`` as another type."""


@dataclass
class ZExt(_Conversion):
    """Zero extension."""


@dataclass
class Trunc(_Conversion):
    """Truncation."""


@dataclass
class Call(Instruction):
    """Function call; ``ret`` names the value receiving the result, if any."""

    callee: str
    args: list[str] = field(default_factory=list)
    ret: Optional[str] = field(default=None, metadata=_OPTIONAL)

    def used_operands(self) -> list[str]:
        operands = list(self.args)
        if self.ret is not None:
            operands.append(self.ret)
        return operands


@dataclass
class Unhandled(Instruction):
    """An instruction the lowering does not understand, kept as text."""

    text: str

    def used_operands(self) -> list[str]:
        return [self.text]
"""A reader for the textual LLVM IR subset that the PTX backend understands."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Optional, Union


class ParseError(ValueError):
    """Raised when LLVM IR text cannot be read."""


@dataclass
class LlvmInstruction:
    """A non-terminator instruction.

    Operands are kept as ``"<type> <value>"`` strings and result names as
    ``"%name"``.
    """

    opcode: str
    text: str
    dest: Optional[str] = None
    operands: list[str] = field(default_factory=list)
    predicate: Optional[str] = None
    allocated_type: Optional[str] = None
    alignment: int = 0
    indices: list[str] = field(default_factory=list)
    incoming: list[tuple[str, str]] = field(default_factory=list)
    callee: Optional[str] = None
    args: list[str] = field(default_factory=list)


@dataclass
class Terminator:
    """The instruction that ends a basic block."""

    kind: str
    text: str
    condition: Optional[str] = None
    true_dest: Optional[str] = None
    false_dest: Optional[str] = None
    dest: Optional[str] = None
    value: Optional[str] = None


@dataclass
class BasicBlock:
    """A labelled run of instructions ending in a terminator."""

    name: str
    instrs: list[LlvmInstruction]
    term: Terminator


@dataclass
class Function:
    """A defined function; ``name`` has no leading ``@``."""

    name: str
    params: list[str]
    basic_blocks: list[BasicBlock]


@dataclass
class Module:
    """All function definitions found in a piece of IR."""

    functions: list[Function]


_BINARY = {
    "add", "sub", "mul", "udiv", "sdiv", "urem", "srem",
    "fadd", "fsub", "fmul", "fdiv", "frem",
    "and", "or", "xor", "shl", "lshr", "ashr",
}
_CASTS = {
    "trunc", "zext", "sext", "fptrunc", "fpext", "fptoui", "fptosi",
    "uitofp", "sitofp", "ptrtoint", "inttoptr", "bitcast", "addrspacecast",
}
_FLAGS = {
    "nsw", "nuw", "exact", "fast", "nnan", "ninf", "nsz", "arcp", "contract",
    "afn", "reassoc", "inbounds", "volatile", "atomic", "tail", "musttail",
    "notail", "disjoint",
}
_ARG_ATTRS = {
    "noundef", "nonnull", "signext", "zeroext", "inreg", "noalias",
    "nocapture", "readonly", "writeonly", "returned", "nofree", "immarg",
}
_TERMINATORS = {
    "ret", "br", "switch", "indirectbr", "invoke", "resume", "unreachable",
    "cleanupret", "catchret", "catchswitch", "callbr",
}
_TOP_LEVEL = (
    "target", "source_filename", "declare", "attributes", "!", "@", "%",
    "$", "module", "define", "uselistorder",
)

_LABEL_RE = re.compile(r'^("[^"]+"|[-\w.$]+):')
_DEFINE_RE = re.compile(r'@("[^"]*"|[-\w.$]+)\s*\(')
_ASSIGN_RE = re.compile(r'^(%(?:"[^"]*"|[-\w.$]+))\s*=\s*(.*)$')
_CALLEE_RE = re.compile(r'([@%](?:"[^"]*"|[-\w.$]+))\s*\(')
_METADATA_RE = re.compile(r',\s*!\w[\w.]*\s+!(?:\{[^}]*\}|\S+)')
_ALIGN_RE = re.compile(r'^align\s+(\d+)$')
_PHI_PAIR_RE = re.compile(r'\[\s*([^,\]]+?)\s*,\s*([^\]]+?)\s*\]')


def _strip_comment(line: str) -> str:
    in_quote = False
    for pos, char in enumerate(line):
        if char == '"':
            in_quote = not in_quote
        elif char == ";" and not in_quote:
            return line[:pos]
    return line


def _split_top(text: str) -> list[str]:
    """Split on commas that are not nested in brackets or quotes."""
    items, depth, in_quote, start = [], 0, False, 0
    for pos, char in enumerate(text):
        if char == '"':
            in_quote = not in_quote
        elif in_quote:
            continue
        elif char in "([{<":
            depth += 1
        elif char in ")]}>":
            depth -= 1
        elif char == "," and depth == 0:
            items.append(text[start:pos].strip())
            start = pos + 1
    tail = text[start:].strip()
    if tail:
        items.append(tail)
    return items


def _split_typed(item: str) -> tuple[str, str]:
    """Split ``"<type> <value>"`` at the last top-level space."""
    depth = 0
    cut = -1
    for pos, char in enumerate(item):
        if char in "([{<":
            depth += 1
        elif char in ")]}>":
            depth -= 1
        elif char == " " and depth == 0:
            cut = pos
    if cut < 0:
        raise ParseError(f"expected a typed value, got {item!r}")
    return item[:cut].strip(), item[cut + 1:].strip()


def _matching_paren(text: str, open_pos: int) -> int:
    depth = 0
    for pos in range(open_pos, len(text)):
        if text[pos] == "(":
            depth += 1
        elif text[pos] == ")":
            depth -= 1
            if depth == 0:
                return pos
    raise ParseError(f"unbalanced parentheses in {text!r}")


def _drop_flags(text: str) -> str:
    words = text.split(" ", 1)
    while words and words[0] in _FLAGS:
        text = words[1] if len(words) > 1 else ""
        words = text.split(" ", 1)
    return text.strip()


def _alignment(items: list[str]) -> int:
    for item in items:
        found = _ALIGN_RE.match(item)
        if found:
            return int(found.group(1))
    return 0


def _call_arg(item: str) -> str:
    words = [w for w in item.split() if w not in _ARG_ATTRS]
    if not words:
        raise ParseError(f"empty call argument in {item!r}")
    value = words[-1]
    if value.startswith("%"):
        return value
    return " ".join(words)


def _parse_instruction(text: str) -> LlvmInstruction:
    dest = None
    assigned = _ASSIGN_RE.match(text)
    body = text
    if assigned:
        dest, body = assigned.group(1), assigned.group(2)
    opcode, _, rest = body.partition(" ")
    rest = rest.strip()
    if opcode in ("tail", "musttail", "notail"):
        opcode, _, rest = rest.partition(" ")
        rest = rest.strip()
    instr = LlvmInstruction(opcode=opcode, text=text, dest=dest)

    if opcode in _BINARY:
        items = _split_top(_drop_flags(rest))
        if len(items) != 2:
            raise ParseError(f"malformed {opcode}: {text!r}")
        ty, lhs = _split_typed(items[0])
        instr.operands = [f"{ty} {lhs}", f"{ty} {items[1]}"]
    elif opcode in ("icmp", "fcmp"):
        rest = _drop_flags(rest)
        predicate, _, rest = rest.partition(" ")
        items = _split_top(rest)
        if len(items) != 2:
            raise ParseError(f"malformed {opcode}: {text!r}")
        ty, lhs = _split_typed(items[0])
        instr.predicate = predicate.upper()
        instr.operands = [f"{ty} {lhs}", f"{ty} {items[1]}"]
    elif opcode == "load":
        items = _split_top(_drop_flags(rest))
        if len(items) < 2:
            raise ParseError(f"malformed load: {text!r}")
        instr.operands = [items[1]]
        instr.alignment = _alignment(items[2:])
    elif opcode == "store":
        items = _split_top(_drop_flags(rest))
        if len(items) < 2:
            raise ParseError(f"malformed store: {text!r}")
        instr.operands = [items[0], items[1]]
        instr.alignment = _alignment(items[2:])
    elif opcode == "alloca":
        items = _split_top(rest)
        if not items:
            raise ParseError(f"malformed alloca: {text!r}")
        instr.allocated_type = items[0]
        instr.alignment = _alignment(items[1:])
    elif opcode == "getelementptr":
        items = _split_top(_drop_flags(rest))
        if len(items) < 2:
            raise ParseError(f"malformed getelementptr: {text!r}")
        instr.operands = [items[1]]
        instr.indices = items[2:]
    elif opcode == "phi":
        bracket = rest.find("[")
        if bracket < 0:
            raise ParseError(f"malformed phi: {text!r}")
        ty = _drop_flags(rest[:bracket].strip())
        instr.incoming = [
            (f"{ty} {value}", label.lstrip("%"))
            for value, label in _PHI_PAIR_RE.findall(rest[bracket:])
        ]
    elif opcode == "select":
        items = _split_top(_drop_flags(rest))
        if len(items) != 3:
            raise ParseError(f"malformed select: {text!r}")
        instr.operands = items
    elif opcode in _CASTS:
        source, sep, _ = rest.rpartition(" to ")
        if not sep:
            raise ParseError(f"malformed {opcode}: {text!r}")
        instr.operands = [source.strip()]
    elif opcode == "call":
        target = _CALLEE_RE.search(rest)
        if not target:
            raise ParseError(f"malformed call: {text!r}")
        instr.callee = target.group(1)
        open_pos = target.end() - 1
        close_pos = _matching_paren(rest, open_pos)
        instr.args = [_call_arg(a) for a in _split_top(rest[open_pos + 1:close_pos])]
    return instr


def _parse_terminator(text: str) -> Terminator:
    kind, _, rest = text.partition(" ")
    term = Terminator(kind=kind, text=text)
    if kind == "ret":
        rest = rest.strip()
        if rest and rest != "void":
            term.value = rest
    elif kind == "br":
        items = _split_top(rest)
        if len(items) == 1:
            term.dest = _split_typed(items[0])[1]
        elif len(items) == 3:
            term.condition = items[0]
            term.true_dest = _split_typed(items[1])[1]
            term.false_dest = _split_typed(items[2])[1]
        else:
            raise ParseError(f"malformed br: {text!r}")
    return term


def _unnamed_params(params: list[str]) -> int:
    return sum(1 for p in params if not p.split()[-1].startswith("%") and p != "...")


class _FunctionBuilder:
    def __init__(self, name: str, params: list[str]) -> None:
        self.name = name
        self.params = params
        self.blocks: list[BasicBlock] = []
        self.label: Optional[str] = None
        self.instrs: list[LlvmInstruction] = []
        self.next_number = _unnamed_params(params)

    def start_block(self, label: str) -> None:
        if self.label is not None or self.instrs:
            raise ParseError(f"block before {label!r} in @{self.name} has no terminator")
        self.label = label

    def _current_label(self) -> str:
        if self.label is None:
            self.label = f"%{self.next_number}"
            self.next_number += 1
        return self.label

    def add(self, text: str) -> None:
        self._current_label()
        assigned = _ASSIGN_RE.match(text)
        if assigned and assigned.group(1)[1:].isdigit():
            self.next_number = int(assigned.group(1)[1:]) + 1
        opcode = text.split(" ", 1)[0]
        if opcode in _TERMINATORS:
            self.blocks.append(BasicBlock(self.label, self.instrs, _parse_terminator(text)))
            self.label = None
            self.instrs = []
        else:
            self.instrs.append(_parse_instruction(text))

    def finish(self) -> Function:
        if self.label is not None or self.instrs:
            raise ParseError(f"last block of @{self.name} has no terminator")
        return Function(self.name, self.params, self.blocks)


def parse_ir(text: str) -> Module:
    """Parse LLVM IR text into a :class:`Module`."""
    functions: list[Function] = []
    builder: Optional[_FunctionBuilder] = None
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = _METADATA_RE.sub("", _strip_comment(raw)).strip()
        if not line:
            continue
        if builder is None:
            if line.startswith("define"):
                header = _DEFINE_RE.search(line)
                if not header:
                    raise ParseError(f"line {lineno}: malformed define")
                open_pos = header.end() - 1
                close_pos = _matching_paren(line, open_pos)
                params = _split_top(line[open_pos + 1:close_pos])
                if not line.rstrip().endswith("{"):
                    raise ParseError(f"line {lineno}: expected '{{' after define")
                builder = _FunctionBuilder(header.group(1).strip('"'), params)
            elif not line.startswith(_TOP_LEVEL):
                raise ParseError(f"line {lineno}: unexpected {line!r}")
            continue
        if line == "}":
            functions.append(builder.finish())
            builder = None
            continue
        label = _LABEL_RE.match(line)
        try:
            if label:
                builder.start_block("%" + label.group(1).strip('"'))
            else:
                builder.add(line)
        except ParseError as exc:
            raise ParseError(f"line {lineno}: {exc}") from exc
    if builder is not None:
        raise ParseError(f"function @{builder.name} is not closed")
    return Module(functions)


def parse_module(path: Union[str, PathLike]) -> Module:
    """Read and parse an ``.ll`` file."""
    try:
        text = Path(path).read_text()
    except OSError as exc:
        raise ParseError(f"Failed to read file: {path}") from exc
    try:
        return parse_ir(text)
    except ParseError as exc:
        raise ParseError(f"Failed to parse LLVM IR in file: {path}: {exc}") from exc
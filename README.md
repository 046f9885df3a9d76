# ptxgen

`ptxgen` reads LLVM IR in its textual form (`.ll` files) and turns it into
NVIDIA PTX assembly. Every function defined in the module becomes a PTX
`.entry`, preceded by a `// Function:` comment and a `.version` / `.target` /
`.address_size` header, with its registers declared in `.reg` lines, its basic
blocks labelled, and each supported instruction lowered to the matching PTX
operation. A final `ret;` is added when the function does not already end in
a return or an unconditional branch.

Instructions that cannot be lowered are still emitted, as
`// unhandled: ...` comments.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Command line

Translate a `.ll` file to PTX and print it:

```
ptx-backend kernel.ll
```

Write the result to `out.ptx` in the current directory instead (an existing
`out.ptx` is overwritten):

```
ptx-backend kernel.ll --emit
```

Choose another target architecture (the default is `sm_75`):

```
ptx-backend kernel.ll --target sm_80
```

If the file cannot be read or parsed, `ptx-backend` prints
`invalid LLVM IR: ...` on standard error and exits with status 1.

Two inspection tools show the intermediate form the backend works on. They
list every function and basic block and the lowered form of each
non-terminator instruction:

```
llvm2ptx kernel.ll      # one debug line per lowered instruction
llvm-parser kernel.ll   # each lowered instruction as indented JSON
```

## Library use

```python
from ptxgen.backend import compile_llvm_to_ptx

ir = """
define void @foo() {
entry:
  ret void
}
"""

print(compile_llvm_to_ptx(ir))
```

`compile_llvm_to_ptx` always targets `sm_75`, raises
`ptxgen.llvm_ir.ParseError` on malformed IR, and prints a warning on standard
error giving the number of unhandled instructions in each function that has
any.

The individual stages can be used on their own:

- `ptxgen.llvm_ir.parse_ir(text)` and `ptxgen.llvm_ir.parse_module(path)` parse
  IR into a `Module` of `Function`s, each holding `BasicBlock`s of
  `LlvmInstruction`s ended by a `Terminator`. Both raise `ParseError`
  (a `ValueError`) on malformed input.
- `ptxgen.convert.lower(function, instr)` and
  `ptxgen.convert.lower_terminator(function, term)` lower single
  instructions; `ptxgen.convert.lower_blocks(func)` lowers a whole function
  into `(block name, instructions)` pairs, terminators included.
- `ptxgen.ir_model` holds the lowered instruction classes (`Add`, `Load`,
  `Call`, `Phi`, `Unhandled` and the rest), all subclasses of `Instruction`
  with `used_operands()` and `to_dict()`.
- `ptxgen.backend.lower_function(name, blocks, target)` returns the PTX lines
  for one function, `ptxgen.backend.to_ptx(instr, type_map)` renders a single
  instruction, and `ptxgen.backend.build_type_map(instrs)` infers register
  types for a sequence of instructions.
- `ptxgen.type_map.TypeMap` and `declare_registers_from_typemap` hold the PTX
  type of each register and produce the `.reg` declarations;
  `ptxgen.ptx_type.PTXType` lists the register types.
- `ptxgen.utils.clean_operand` reduces an operand such as `"float* %x"` to a
  bare name, and `ptxgen.utils.get_register_type` guesses its type.

## Supported instructions

Integer and float arithmetic (`add`, `sub`, `mul`, `udiv`, `sdiv`, `urem`,
`srem`, `fadd`, `fsub`, `fmul`, `fdiv`, `frem`), `icmp`, `fcmp`, `load`,
`store`, `alloca`, `getelementptr`, `phi`, `select`, `bitcast`, `zext`,
`trunc`, `call`, and the terminators `ret` and `br`, both unconditional and
conditional.

## Limitations

- The IR reader understands a practical subset of textual LLVM IR: function
  definitions and the instructions above. Other instructions and terminators
  (for example `sext`, `and`, `switch`) are parsed where possible and become
  `// unhandled: ...` comments.
- Register types are inferred by simple rules: operands of float arithmetic
  are `f32`, of `add` and `icmp` are `s32`, `icmp` results are `pred`, and
  loaded or stored values are `f32` when their name starts with `x`, `y` or
  `a` or contains `val`, otherwise `s32`. Anything else defaults to `s32`.
  Registers that get no type are not declared.
- `phi` nodes are emitted only as comments, and `alloca` produces an empty line.
- The generated PTX is not assembled or checked; use NVIDIA's own tools to
  compile it.
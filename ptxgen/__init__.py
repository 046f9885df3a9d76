"""Lower textual LLVM IR to NVIDIA PTX assembly: IR reader, lowering, PTX backend and commands."""

__version__ = "0.1.0"
"""
bfrop
=====

Brainfuck to ROP chain compiler for a RISC-V (RV64GC) target.

The compiler assembles pre-existing libc gadgets into a forged stack image
plus a jump buffer table that together run a Brainfuck program.

Modules:
--------
- primitives: catalogue of libc gadgets and their frame layouts
- gadget: sequence composition, frame layout and self-patching
- jmpbuf: jump buffer allocator for non-local jumps
- macros: stash/restore, loads, stores, function calls, stack pivots
- control: conditional branch and loop macros
- compiler: Brainfuck sanitizing, loop matching and program assembly
- disasm: capstone check of the catalogue against recorded code
- reporter: summary printout and JSON export
- config: addressing contract and shared constants

Usage:
------
    from bfrop import BrainfuckCompiler, ChainReporter

    compiled = BrainfuckCompiler().compile("++++++++[>++++++++<-]>+.")
    open("stackbuf.txt", "w").write(compiled.render_stack())
    open("jmpbuf.txt", "w").write(compiled.render_jump())

    ChainReporter.print_summary(compiled)
"""

__version__ = "1.0.0"
__all__ = [
    "BrainfuckCompiler",
    "CompiledProgram",
    "compile_brainfuck",
    "sanitize",
    "match_loops",
    "JumpBuffer",
    "ChainReporter",
    "BfropError",
    "StructuralError",
    "CompileError",
    "AllocationInvariantViolation",
    "PatchAssumptionError",
]

from .compiler import BrainfuckCompiler, CompiledProgram, compile_brainfuck, sanitize, match_loops
from .jmpbuf import JumpBuffer
from .reporter import ChainReporter
from .errors import (
    BfropError,
    StructuralError,
    CompileError,
    AllocationInvariantViolation,
    PatchAssumptionError,
)

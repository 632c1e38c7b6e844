#!/usr/bin/env python3
"""
Configuration Module
====================

Fixed addressing contract and shared constants for the ROP compiler.

Every gadget entry point is BASE + a static offset into the target's libc.
The memory regions below must match the loader that maps the two output
buffers; moving any of them means re-deriving every macro that uses it.
"""

# Runtime load address of the target's libc
BASE = 0x3ff7ea1000

WORD_SIZE = 8

# Memory regions
STACK_BUF_BASE = 0x10000000   # forged stack frame (stackbuf.txt)
JMP_BUF_BASE = 0x20000000     # jump buffer table (jmpbuf.txt)
SCRATCH_BASE = 0x30000000     # disposable scratch; word 0 must stay zero
TAPE_BASE = 0x38000000        # Brainfuck tape

# libc routines reached through CallFunc
LIBC_ROUTINES = {
    'putchar': 0x5b70a,
    'getchar': 0x5eaa6,
    'exit': 0x342e4,
}

# glibc RISC-V jmp_buf: ra at word 0, sp at word 13
JMP_BUF_BLOCK_SLOTS = 13
JMP_BUF_BLOCK_WORDS = 2 * JMP_BUF_BLOCK_SLOTS

# Stack words reserved below a call frame for the callee's own stack
CALL_SPACER_WORDS = 512

# Brainfuck cells are one word apart on the tape
CELL_STRIDE = 8

BF_INSTRUCTIONS = '><+-.,[]'

# Output files read by the loader
DEFAULT_STACK_OUTPUT = 'stackbuf.txt'
DEFAULT_JMP_OUTPUT = 'jmpbuf.txt'

#!/usr/bin/env python3
"""
Brainfuck Compiler Module
=========================

Compiles Brainfuck source into a forged stack image plus jump buffer.

Pipeline:
---------
1. sanitize() drops everything that is not an instruction
2. match_loops() pairs brackets in a single scan
3. Each instruction maps to a macro; the program is one Sequence of
   prologue + instruction macros + epilogue
4. Layout, resolve self-references, re-layout (size must not change)
5. Cross-wire loop pairs, re-layout (size must not change)
6. Synthesize the stack words and the jump buffer words

Tape pointer lives in a0 between instructions; the tape starts at
TAPE_BASE and cells are one word apart.
"""

from .config import (
    BF_INSTRUCTIONS,
    JMP_BUF_BASE,
    STACK_BUF_BASE,
    TAPE_BASE,
    WORD_SIZE,
)
from .control import LoopBegin, LoopEnd
from .errors import CompileError, PatchAssumptionError, StructuralError
from .gadget import Sequence
from .jmpbuf import JumpBuffer
from .macros import (
    Add8ToA0,
    CallFunc,
    DecrementAtA0,
    IncrementAtA0,
    InputCharAtA0,
    OutputCharAtA0,
    Sub8FromA0,
)
from .primitives import Nop, PopA0, libc_routine

INSTRUCTION_MACROS = {
    '>': Add8ToA0,
    '<': Sub8FromA0,
    '+': IncrementAtA0,
    '-': DecrementAtA0,
    '.': OutputCharAtA0,
    ',': InputCharAtA0,
    '[': LoopBegin,
    ']': LoopEnd,
}

# Macros that allocate from the jump buffer
JMPBUF_INSTRUCTIONS = '.,[]'


def sanitize(text):
    """Keep only Brainfuck instruction characters"""
    return ''.join(ch for ch in text if ch in BF_INSTRUCTIONS)


def match_loops(code):
    """
    Pair every '[' with its ']'

    Args:
        code: Sanitized Brainfuck source

    Returns:
        dict: {index of '[': index of matching ']'}

    Raises:
        CompileError: On an unmatched bracket
    """
    loops = {}
    open_loops = []
    for i, ch in enumerate(code):
        if ch == '[':
            open_loops.append(i)
        elif ch == ']':
            if not open_loops:
                raise CompileError(f"unmatched ']' at instruction {i}", position=i)
            loops[open_loops.pop()] = i

    if open_loops:
        pos = open_loops[-1]
        raise CompileError(f"no matching ']' for '[' at instruction {pos}", position=pos)
    return loops


def build_instruction(instr, jmpbuf):
    """Instantiate the macro for one Brainfuck instruction"""
    macro = INSTRUCTION_MACROS[instr]
    if instr in JMPBUF_INSTRUCTIONS:
        return macro(jmpbuf)
    return macro()


def render_words(words):
    """Hex text as read by the loader: one word per line, no prefix"""
    return ''.join(f"{word:x}\n" for word in words)


class CompiledProgram:
    """Result of one compilation"""

    def __init__(self, source, program, loops, jmpbuf, prologue_len, epilogue_len):
        self.source = source
        self.program = program
        self.loops = loops
        self.jmpbuf = jmpbuf
        self.prologue_len = prologue_len
        self.epilogue_len = epilogue_len
        self.stack_words = program.synthesize()
        self.jump_words = jmpbuf.synthesize()

    @property
    def entry_point(self):
        """Address the first return must land on"""
        return self.program.get_entry_point()

    @property
    def stack_base(self):
        return self.program.get_frame_location()

    def get_size(self):
        return self.program.get_size()

    def prologue(self):
        return self.program.seq[:self.prologue_len]

    def body(self):
        return self.program.seq[self.prologue_len:len(self.program.seq) - self.epilogue_len]

    def epilogue(self):
        return self.program.seq[len(self.program.seq) - self.epilogue_len:]

    def loop_pairs(self):
        """(LoopBegin, LoopEnd) macro pairs in source order"""
        body = self.body()
        return [(body[begin], body[end]) for begin, end in sorted(self.loops.items())]

    def render_stack(self):
        return render_words(self.stack_words)

    def render_jump(self):
        return render_words(self.jump_words)


class BrainfuckCompiler:
    """Brainfuck to ROP chain compiler"""

    def __init__(self, stack_base=STACK_BUF_BASE, jmp_base=JMP_BUF_BASE, verbose=False):
        """
        Initialize compiler

        Args:
            stack_base: Address the stack image is loaded at
            jmp_base: Address the jump buffer image is loaded at
            verbose: Print progress
        """
        self.stack_base = stack_base
        self.jmp_base = jmp_base
        self.verbose = verbose

    def _log(self, msg):
        if self.verbose:
            print(msg)

    def compile(self, text):
        """
        Compile Brainfuck source

        Args:
            text: Program text; non-instruction characters are ignored

        Returns:
            CompiledProgram: Laid out program with both output images
        """
        code = sanitize(text)
        loops = match_loops(code)
        self._log(f"[*] Compiling {len(code)} instructions ({len(loops)} loops)...")

        # fresh allocator: targets never leak between compilations
        jmpbuf = JumpBuffer(self.jmp_base)

        prologue = [Nop(), PopA0(TAPE_BASE)]
        epilogue = [PopA0(0), CallFunc(libc_routine('exit'), jmpbuf)]
        body = [build_instruction(instr, jmpbuf) for instr in code]

        program = Sequence(prologue + body + epilogue)
        program.set_next_ra(Nop().get_entry_point())

        program.set_frame_location(self.stack_base)
        size = program.get_size()
        self._log(f"[*] Layout: {size:#x} bytes at {self.stack_base:#x}")

        program.resolve()
        self._relayout(program, size, 'self-reference resolution')

        for begin, end in sorted(loops.items()):
            begin_loop = program.seq[len(prologue) + begin]
            end_loop = program.seq[len(prologue) + end]
            begin_loop.set_end(end_loop)
            end_loop.set_beginning(begin_loop)
        self._relayout(program, size, 'loop wiring')

        compiled = CompiledProgram(code, program, loops, jmpbuf,
                                   len(prologue), len(epilogue))
        if len(compiled.stack_words) * WORD_SIZE != size:
            raise StructuralError(
                f"synthesized {len(compiled.stack_words)} words for a "
                f"{size:#x} byte frame"
            )

        self._log(f"[+] Stack image: {len(compiled.stack_words)} words, "
                  f"jump buffer: {len(compiled.jump_words)} words")
        return compiled

    def _relayout(self, program, size, stage):
        program.set_frame_location(self.stack_base)
        if program.get_size() != size:
            raise PatchAssumptionError(
                f"program size changed during {stage}: "
                f"{size:#x} -> {program.get_size():#x}"
            )


def compile_brainfuck(text):
    """
    Compile Brainfuck source with the default addressing contract

    Returns:
        tuple: (stack words, jump buffer words)
    """
    compiled = BrainfuckCompiler().compile(text)
    return compiled.stack_words, compiled.jump_words

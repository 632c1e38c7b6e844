#!/usr/bin/env python3
"""
Macro Library
=============

Composite gadgets built from primitives.

No register survives a gadget boundary, so every live value is carried in
memory. The basic trick is a self-modifying chain: a macro stores a0 into
the a0 slot of a PopA0 further down its own frame, runs whatever clobbers
a0, and the PopA0 reloads it when the chain reaches it. Those slots are
written at run time, so they are synthesized as 0.

Macros whose parameters depend on their own layout are built with None
placeholders and fill them in resolve_references().

Macros:
-------
- WriteA0: store a0 to an address
- ClearA5 / LoadA0: dereference-load a0 = [a0 + 8]
- Add8ToA0 / Sub8FromA0: move a pointer by one word
- WriteVal / WriteVals: store constants, preserving a0
- StackPivot: non-local jump through the jump buffer
- CallFunc: call a libc routine on a disposable stack
- IncrementAtA0 / DecrementAtA0 / OutputCharAtA0 / InputCharAtA0:
  Brainfuck cell operations on the cell a0 points at
"""

from .config import CALL_SPACER_WORDS, CELL_STRIDE, SCRATCH_BASE, WORD_SIZE
from .gadget import Sequence, Spacer
from .primitives import (
    Add1A0,
    CallA5,
    Dec2A0,
    LdA0Off8A0,
    LdA5S0,
    Longjmp,
    PopA0,
    PopA5,
    PopS0,
    SdA0S0,
    libc_routine,
)

# SdA0S0 stores to s0 + 0x10
STORE_OFFSET = 0x10


class WriteA0(Sequence):
    """[dest] = a0; s0 = next_s0 afterwards"""

    def __init__(self, dest, next_s0=0):
        super().__init__([
            PopS0(None if dest is None else dest - STORE_OFFSET),
            SdA0S0(next_s0),
        ])


class ClearA5(Sequence):
    """a5 = [scratch] = 0, with the canary check satisfied"""

    def __init__(self):
        super().__init__([
            PopS0(SCRATCH_BASE),
            LdA5S0(0, SCRATCH_BASE),
        ])


class LoadA0(Sequence):
    """
    a0 = [a0 + 8]

    SIDE EFFECTS: clobbers a4, a5 and s0
    """

    def __init__(self):
        super().__init__([
            ClearA5(),
            LdA0Off8A0(0, SCRATCH_BASE),
        ])


class Add8ToA0(Sequence):
    """a0 += 8; leaves s0 = 0"""

    def __init__(self):
        super().__init__([Add1A0(0) for _ in range(CELL_STRIDE)])


class Sub8FromA0(Sequence):
    """a0 -= 8"""

    def __init__(self):
        super().__init__([Dec2A0() for _ in range(CELL_STRIDE // 2)])


class WriteVal(Sequence):
    """[dest] = val, preserving a0"""

    def __init__(self, val, dest):
        super().__init__([
            WriteA0(None),      # stash a0 into seq[3]
            PopA0(val),
            WriteA0(dest),
            PopA0(0),           # a0 restored here
        ])

    def resolve_references(self):
        self.patch(0, WriteA0(self.seq[3].get_popped_a0_location()), WriteA0)


class WriteVals(Sequence):
    """Store consecutive words starting at dest, preserving a0"""

    def __init__(self, vals, dest):
        super().__init__([
            WriteVal(val, dest + WORD_SIZE * i) for i, val in enumerate(vals)
        ])


class StackPivot(Sequence):
    """Continue at ra with stack pointer sp via a jump buffer target"""

    def __init__(self, jmpbuf, ra=None, sp=None):
        super().__init__([
            PopA0(None),
            Longjmp(),
        ])
        self.jmpbuf = jmpbuf
        if ra is not None and sp is not None:
            self.set_dest(ra, sp)

    def set_dest(self, ra, sp):
        self.patch(0, PopA0(self.jmpbuf.make_target(ra, sp)), PopA0)

    def get_target(self):
        """Jump buffer address this pivot long-jumps through"""
        return self.seq[0].regs['a0']


class CallFunc(Sequence):
    """
    Call func(a0); the return value is left in a0

    The call runs on the stack just below the post-call frames: the pivot
    skips over the spacer, which then serves as the callee's stack. The
    callee scribbles over the PopA0/PopS0 frames, so they are rewritten
    before every call.

    SIDE EFFECTS: may clobber every caller-saved register
    """

    def __init__(self, func, jmpbuf):
        """
        Initialize call macro

        Args:
            func: Absolute address of the routine
            jmpbuf: JumpBuffer the pivot target is allocated from
        """
        self.func = func
        self.jmpbuf = jmpbuf
        super().__init__([
            WriteVals([0] * 6, 0),          # restage seq[5] and seq[6]
            WriteA0(None),                  # stash the argument into seq[5]
            PopA5(func),
            StackPivot(jmpbuf),
            Spacer(CALL_SPACER_WORDS),
            PopA0(0),
            PopS0(SCRATCH_BASE),
            CallA5(0),
        ])

    def resolve_references(self):
        pop_a0, pop_s0, call = self.seq[5], self.seq[6], self.seq[7]
        frames = [
            0, 0, 0, pop_s0.get_entry_point(),      # PopA0 frame
            SCRATCH_BASE, call.get_entry_point(),   # PopS0 frame
        ]
        self.patch(0, WriteVals(frames, pop_a0.get_frame_location()), WriteVals)
        self.patch(1, WriteA0(pop_a0.get_popped_a0_location()), WriteA0)
        self.patch(3, StackPivot(self.jmpbuf, pop_a0.get_entry_point(),
                                 pop_a0.get_frame_location()), StackPivot)


class _AdjustCellAtA0(Sequence):
    """[a0] = adjust([a0]), preserving a0"""

    def __init__(self, adjust):
        super().__init__([
            WriteA0(None),      # stash the pointer for the final PopA0
            Sub8FromA0(),
            Sub8FromA0(),
            WriteA0(None),      # a0 - 16 becomes the store base
            Add8ToA0(),
            LoadA0(),
            *adjust,
            PopS0(0),
            SdA0S0(0),
            PopA0(0),
        ])

    def resolve_references(self):
        restore = len(self.seq) - 1
        store_base = len(self.seq) - 3
        self.patch(0, WriteA0(self.seq[restore].get_popped_a0_location()), WriteA0)
        self.patch(3, WriteA0(self.seq[store_base].get_popped_s0_location()), WriteA0)


class IncrementAtA0(_AdjustCellAtA0):
    def __init__(self):
        super().__init__([Add1A0(0)])


class DecrementAtA0(_AdjustCellAtA0):
    def __init__(self):
        super().__init__([Add1A0(0), Dec2A0()])


class OutputCharAtA0(Sequence):
    """putchar([a0]), preserving a0"""

    def __init__(self, jmpbuf):
        super().__init__([
            WriteA0(None),
            Sub8FromA0(),
            LoadA0(),
            CallFunc(libc_routine('putchar'), jmpbuf),
            PopA0(0),
        ])

    def resolve_references(self):
        self.patch(0, WriteA0(self.seq[4].get_popped_a0_location()), WriteA0)


class InputCharAtA0(Sequence):
    """[a0] = getchar(), preserving a0"""

    def __init__(self, jmpbuf):
        super().__init__([
            WriteA0(None),      # pointer for the final PopA0
            Sub8FromA0(),
            Sub8FromA0(),
            WriteA0(None),      # store base for the PopS0 after the call
            CallFunc(libc_routine('getchar'), jmpbuf),
            PopS0(0),
            SdA0S0(0),
            PopA0(0),
        ])

    def resolve_references(self):
        self.patch(0, WriteA0(self.seq[7].get_popped_a0_location()), WriteA0)
        self.patch(3, WriteA0(self.seq[5].get_popped_s0_location()), WriteA0)

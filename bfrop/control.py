#!/usr/bin/env python3
"""
Control Flow Macros
===================

Conditional branching and Brainfuck loops.

The repertoire has no conditional branch. A branch is made from two
adjacent jump buffer targets: SeqzA0 turns a0 into a 0/1 flag, the flag is
scaled by the 8 byte target stride and added to the address of the "true"
target, and Longjmp goes through whichever target that selects.

Loops need each other's addresses, so they are wired only after the whole
program has been laid out: LoopBegin.set_end() and LoopEnd.set_beginning().
"""

from .config import SCRATCH_BASE, WORD_SIZE
from .gadget import Sequence
from .macros import LoadA0, StackPivot, Sub8FromA0, WriteA0
from .primitives import (
    AddA0A5,
    AddA5A0,
    Longjmp,
    PopA0,
    PopA5,
    PopS0S1S2,
    SeqzA0,
)

# Index of the PopA0 that loads the true target
TARGET_INDEX = 13


class ConditionalStackPivot(Sequence):
    """
    Jump to the true target if a0 != 0, else to the false target

    SIDE EFFECTS: clobbers a0, a5 and s0-s3
    """

    def __init__(self, jmpbuf):
        self.jmpbuf = jmpbuf
        self.targets = None
        super().__init__([
            WriteA0(None),                      # copy a0 before PopA5 clobbers it
            PopA5(0),
            PopA0(0),                           # a0 restored here
            SeqzA0(),
            PopS0S1S2(0, 0, SCRATCH_BASE),
            *[AddA5A0(0, 0, SCRATCH_BASE, 0) for _ in range(WORD_SIZE)],
            PopA0(None),                        # true target
            AddA0A5(),
            Longjmp(),
        ])

    def resolve_references(self):
        self.patch(0, WriteA0(self.seq[2].get_popped_a0_location()), WriteA0)

    def set_dests(self, true_ra, true_sp, false_ra, false_sp):
        """
        Allocate and wire both branch targets

        Returns:
            tuple: (true target address, false target address)
        """
        true_jmp, false_jmp = self.jmpbuf.make_branch_targets(
            true_ra, true_sp, false_ra, false_sp
        )
        self.patch(TARGET_INDEX, PopA0(true_jmp), PopA0)
        self.targets = (true_jmp, false_jmp)
        return self.targets


class LoopBegin(Sequence):
    """
    Brainfuck '['

    Enters the body when the current cell is non-zero, otherwise resumes
    after the matching LoopEnd.
    """

    def __init__(self, jmpbuf):
        super().__init__([
            WriteA0(None),          # pointer into the re-entry PopA0
            PopA0(0),               # LoopEnd jumps back here
            WriteA0(None),          # pointer for the body
            WriteA0(None),          # pointer for LoopEnd's exit, set_end()
            Sub8FromA0(),
            LoadA0(),
            ConditionalStackPivot(jmpbuf),
            PopA0(0),               # body entry
        ])

    def get_reentry(self):
        return self.seq[1]

    def get_branch(self):
        return self.seq[6]

    def get_body_entry(self):
        return self.seq[7]

    def resolve_references(self):
        self.patch(0, WriteA0(self.get_reentry().get_popped_a0_location()), WriteA0)
        self.patch(2, WriteA0(self.get_body_entry().get_popped_a0_location()), WriteA0)

    def set_end(self, end_loop):
        """Wire the branch to the body and to the matching LoopEnd's exit"""
        end_pop = end_loop.get_exit()
        begin_pop = self.get_body_entry()
        self.patch(3, WriteA0(end_pop.get_popped_a0_location()), WriteA0)
        return self.get_branch().set_dests(
            begin_pop.get_entry_point(), begin_pop.get_frame_location(),
            end_pop.get_entry_point(), end_pop.get_frame_location(),
        )


class LoopEnd(Sequence):
    """Brainfuck ']': jump back to the matching LoopBegin's re-entry"""

    def __init__(self, jmpbuf):
        self.jmpbuf = jmpbuf
        super().__init__([
            WriteA0(None),          # pointer into LoopBegin's re-entry
            StackPivot(jmpbuf),
            PopA0(0),               # loop exit
        ])

    def get_pivot(self):
        return self.seq[1]

    def get_exit(self):
        return self.seq[2]

    def set_beginning(self, begin_loop):
        reentry = begin_loop.get_reentry()
        self.patch(0, WriteA0(reentry.get_popped_a0_location()), WriteA0)
        self.patch(1, StackPivot(self.jmpbuf, reentry.get_entry_point(),
                                 reentry.get_frame_location()), StackPivot)

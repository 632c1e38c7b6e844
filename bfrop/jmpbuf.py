#!/usr/bin/env python3
"""
Jump Buffer Allocator
=====================

Table of (return address, stack pointer) targets for non-local jumps.

The table is laid out as consecutive glibc RISC-V jmp_buf images: each
26-word block holds 13 return addresses followed by 13 stack pointers, so
a target at word i keeps its saved sp at word i + 13, exactly where
__longjmp reads it. The address handed to a StackPivot is base + i * 8.

One allocator belongs to one compilation; build a new one per program.
"""

from .config import JMP_BUF_BASE, JMP_BUF_BLOCK_SLOTS, JMP_BUF_BLOCK_WORDS, WORD_SIZE
from .errors import AllocationInvariantViolation


class JumpBuffer:
    """Append-only allocator of jump targets"""

    def __init__(self, base=JMP_BUF_BASE):
        """
        Initialize allocator

        Args:
            base: Address the jump buffer image is loaded at
        """
        self.base = base
        self.next_spot = 0
        self.buf = [0] * JMP_BUF_BLOCK_WORDS
        self.allocated = []
        self.stats = {
            'targets': 0,
            'branch_pairs': 0,
            'dummy_allocations': 0,
        }

    def _next_ra_loc(self):
        return self.next_spot

    def _next_sp_loc(self):
        return self.next_spot + JMP_BUF_BLOCK_SLOTS

    def _advance(self):
        self.next_spot += 1
        if self.next_spot % JMP_BUF_BLOCK_SLOTS == 0:
            # skip the sp half of the block we just filled
            self.next_spot += JMP_BUF_BLOCK_SLOTS
            self.buf.extend([0] * JMP_BUF_BLOCK_WORDS)

    def make_target(self, ra, sp):
        """
        Allocate one jump target

        Args:
            ra: Address to resume at
            sp: Stack pointer to resume with

        Returns:
            int: Address to load into a0 before Longjmp
        """
        spot = self._next_ra_loc()
        self.buf[spot] = ra
        self.buf[self._next_sp_loc()] = sp
        self._advance()
        self.stats['targets'] += 1
        address = self.base + spot * WORD_SIZE
        self.allocated.append(address)
        return address

    def make_branch_targets(self, true_ra, true_sp, false_ra, false_sp):
        """
        Allocate the two targets of a conditional branch, 8 bytes apart

        A pair must not straddle two blocks, so when only one slot is left
        in the current block it is burned on a dummy target first.

        Returns:
            tuple: (true target address, false target address)
        """
        if self.next_spot % JMP_BUF_BLOCK_SLOTS == JMP_BUF_BLOCK_SLOTS - 1:
            self.make_target(0, 0)
            self.stats['dummy_allocations'] += 1

        true_jmp = self.make_target(true_ra, true_sp)
        false_jmp = self.make_target(false_ra, false_sp)
        if false_jmp != true_jmp + WORD_SIZE:
            raise AllocationInvariantViolation(
                f"branch pair {true_jmp:#x}/{false_jmp:#x} is not contiguous"
            )
        self.stats['branch_pairs'] += 1
        return true_jmp, false_jmp

    def lookup(self, address):
        """
        Read back a target

        Args:
            address: Value returned by make_target()

        Returns:
            tuple: (ra, sp) stored for the target
        """
        spot = (address - self.base) // WORD_SIZE
        return self.buf[spot], self.buf[spot + JMP_BUF_BLOCK_SLOTS]

    def targets(self):
        """List of (address, ra, sp) in allocation order"""
        return [(address, *self.lookup(address)) for address in self.allocated]

    def get_size(self):
        return len(self.buf) * WORD_SIZE

    def synthesize(self):
        return list(self.buf)

    def get_stats(self):
        stats = self.stats.copy()
        stats['blocks'] = len(self.buf) // JMP_BUF_BLOCK_WORDS
        return stats

#!/usr/bin/env python3
"""
Jump buffer allocator tests
"""

import pytest

from bfrop.config import JMP_BUF_BASE, JMP_BUF_BLOCK_SLOTS, JMP_BUF_BLOCK_WORDS, WORD_SIZE
from bfrop.errors import AllocationInvariantViolation
from bfrop.jmpbuf import JumpBuffer


def slot_of(address):
    return (address - JMP_BUF_BASE) // WORD_SIZE


def test_single_target_layout():
    """ra at the slot, sp 13 words further, inside one 26 word block"""
    jmpbuf = JumpBuffer()
    address = jmpbuf.make_target(0xaaaa, 0xbbbb)

    assert address == JMP_BUF_BASE
    words = jmpbuf.synthesize()
    assert len(words) == JMP_BUF_BLOCK_WORDS
    assert words[0] == 0xaaaa
    assert words[JMP_BUF_BLOCK_SLOTS] == 0xbbbb
    assert jmpbuf.lookup(address) == (0xaaaa, 0xbbbb)


def test_growth_skips_sp_half():
    jmpbuf = JumpBuffer()
    addresses = [jmpbuf.make_target(i + 1, 0x100 + i) for i in range(JMP_BUF_BLOCK_SLOTS + 1)]

    assert [slot_of(a) for a in addresses[:JMP_BUF_BLOCK_SLOTS]] == list(range(13))
    # 14th target opens the second block
    assert slot_of(addresses[-1]) == JMP_BUF_BLOCK_WORDS
    assert len(jmpbuf.synthesize()) == 2 * JMP_BUF_BLOCK_WORDS
    assert jmpbuf.lookup(addresses[-1]) == (14, 0x100 + 13)


def test_branch_pair_is_contiguous():
    jmpbuf = JumpBuffer()
    true_jmp, false_jmp = jmpbuf.make_branch_targets(1, 2, 3, 4)
    assert false_jmp - true_jmp == WORD_SIZE
    assert jmpbuf.lookup(true_jmp) == (1, 2)
    assert jmpbuf.lookup(false_jmp) == (3, 4)


def test_twelve_branches_never_straddle():
    """24 branch allocations need exactly one dummy, after the 12th allocation"""
    jmpbuf = JumpBuffer()
    dummies = []
    for i in range(12):
        true_jmp, false_jmp = jmpbuf.make_branch_targets(i, i, i, i)
        assert false_jmp - true_jmp == WORD_SIZE
        assert slot_of(true_jmp) // JMP_BUF_BLOCK_WORDS == slot_of(false_jmp) // JMP_BUF_BLOCK_WORDS
        assert slot_of(false_jmp) % JMP_BUF_BLOCK_WORDS < JMP_BUF_BLOCK_SLOTS
        dummies.append(jmpbuf.stats['dummy_allocations'])

    assert jmpbuf.stats['dummy_allocations'] == 1
    # pairs 1-6 fill slots 0-11; pair 7 burns slot 12 first
    assert dummies[:6] == [0] * 6
    assert dummies[6:] == [1] * 6
    assert jmpbuf.stats['targets'] == 25
    assert jmpbuf.lookup(JMP_BUF_BASE + 12 * WORD_SIZE) == (0, 0)


def test_dummy_follows_single_allocations():
    jmpbuf = JumpBuffer()
    for _ in range(12):
        jmpbuf.make_target(1, 1)
    true_jmp, false_jmp = jmpbuf.make_branch_targets(2, 2, 3, 3)
    assert slot_of(true_jmp) == JMP_BUF_BLOCK_WORDS
    assert jmpbuf.stats['dummy_allocations'] == 1


class SkippingJumpBuffer(JumpBuffer):
    """Allocator that leaves a hole after every target"""

    def _advance(self):
        super()._advance()
        super()._advance()


def test_non_contiguous_pair_is_fatal():
    with pytest.raises(AllocationInvariantViolation):
        SkippingJumpBuffer().make_branch_targets(1, 1, 2, 2)


def test_targets_listing():
    jmpbuf = JumpBuffer()
    jmpbuf.make_target(5, 6)
    jmpbuf.make_branch_targets(7, 8, 9, 10)
    assert jmpbuf.targets() == [
        (JMP_BUF_BASE, 5, 6),
        (JMP_BUF_BASE + 8, 7, 8),
        (JMP_BUF_BASE + 16, 9, 10),
    ]
    assert jmpbuf.get_stats()['blocks'] == 1

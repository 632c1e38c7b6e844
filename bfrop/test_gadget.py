#!/usr/bin/env python3
"""
Gadget model tests: composition, layout, return chain and self-patching
"""

import pytest

from bfrop import config
from bfrop.errors import PatchAssumptionError, StructuralError
from bfrop.gadget import Sequence, Spacer
from bfrop.jmpbuf import JumpBuffer
from bfrop.macros import CallFunc, WriteA0, WriteVal, StackPivot, STORE_OFFSET
from bfrop.primitives import (
    PRIMITIVES,
    Add1A0,
    Dec2A0,
    LdA5S0,
    Longjmp,
    Nop,
    PopA0,
    PopS0,
    SdA0S0,
    libc_routine,
)
from bfrop.reporter import ChainReporter


def lay_out(gadget, location=0x10000000, next_ra=0xdead0000):
    gadget.set_next_ra(next_ra)
    gadget.set_frame_location(location)
    gadget.resolve()
    gadget.set_frame_location(location)
    return gadget


def test_primitive_sizes_match_layout():
    """Every catalogue entry synthesizes exactly its frame"""
    for primitive in PRIMITIVES:
        gadget = primitive(**{reg: 0 for reg in primitive.LAYOUT if reg not in (None, 'ra')})
        gadget.set_next_ra(0)
        assert len(gadget.synthesize()) * config.WORD_SIZE == gadget.get_size()


def test_primitive_words():
    pop = PopA0(0x1234)
    pop.set_next_ra(0x5678)
    assert pop.synthesize() == [0, 0x1234, 0, 0x5678]
    assert pop.get_entry_point() == config.BASE + 0x58d9e

    ld = LdA5S0(7, 0x30000000)
    ld.set_next_ra(0x99)
    assert ld.synthesize() == [0] * 9 + [7, 0x30000000, 0x99]


def test_longjmp_has_no_frame():
    jmp = Longjmp()
    jmp.set_next_ra(0x1)
    assert jmp.get_size() == 0
    assert jmp.synthesize() == []


def test_frame_location_before_layout():
    with pytest.raises(StructuralError):
        Nop().get_frame_location()


def test_unresolved_placeholder_fails_synthesis():
    write = WriteA0(None)
    write.set_next_ra(0)
    write.set_frame_location(0x1000)
    with pytest.raises(StructuralError):
        write.synthesize()


def test_missing_next_ra_fails_synthesis():
    with pytest.raises(StructuralError):
        Nop().synthesize()


def test_sequence_layout_is_contiguous():
    """Children start at the parent's location with no gaps"""
    seq = Sequence([Nop(), Sequence([PopA0(1), PopS0(2)]), Spacer(3), Add1A0()])
    lay_out(seq, location=0x4000)

    assert seq.get_size() == sum(child.get_size() for child in seq.seq)
    expected = 0x4000
    for child in seq.seq:
        assert child.get_frame_location() == expected
        expected += child.get_size()

    inner = seq.seq[1]
    assert inner.seq[0].get_frame_location() == inner.get_frame_location()
    assert inner.seq[1].get_frame_location() == inner.get_frame_location() + 0x20


def test_return_chain_threads_nested_sequences():
    seq = Sequence([
        Nop(),
        Sequence([PopA0(1), Sequence([PopS0(2), Dec2A0()])]),
        Add1A0(),
    ])
    lay_out(seq, next_ra=0xfeed)

    leaves = list(ChainReporter.leaves(seq))
    assert len(leaves) == 5
    for current, following in zip(leaves, leaves[1:]):
        assert current.next_ra == following.get_entry_point()
    assert leaves[-1].next_ra == 0xfeed


def test_sequence_entry_point_is_first_child():
    seq = Sequence([PopS0(0), Nop()])
    assert seq.get_entry_point() == PopS0(0).get_entry_point()


def test_write_a0_targets_store_base():
    write = lay_out(WriteA0(0x38000008))
    words = write.synthesize()
    assert words[0] == 0x38000008 - STORE_OFFSET
    assert words[1] == SdA0S0(0).get_entry_point()


def test_write_val_stashes_into_its_own_restore():
    """The leading WriteA0 stores a0 into the final PopA0's a0 slot"""
    write = lay_out(WriteVal(0x41, 0x38000000), location=0x1000)

    restore = write.seq[3]
    assert restore.get_frame_location() == 0x1060
    assert restore.get_popped_a0_location() == 0x1068
    words = write.synthesize()
    assert words[0] == 0x1068 - STORE_OFFSET
    assert words[5] == 0x41
    assert len(words) * config.WORD_SIZE == write.get_size()


def test_patch_rejects_unexpected_shape():
    seq = Sequence([PopA0(1), Nop()])
    with pytest.raises(PatchAssumptionError):
        seq.patch(1, PopA0(2), PopA0)


def test_patch_rejects_size_change():
    seq = Sequence([PopA0(1), Nop()])
    with pytest.raises(PatchAssumptionError):
        seq.patch(1, PopA0(2))


def test_patch_keeps_location_and_chain():
    seq = lay_out(Sequence([PopA0(None), Nop()]), location=0x2000)
    old = seq.seq[0]
    new = seq.patch(0, PopA0(5), PopA0)
    assert new.get_frame_location() == old.get_frame_location()
    assert new.next_ra == old.next_ra
    assert seq.synthesize()[1] == 5


def test_stack_pivot_registers_target():
    jmpbuf = JumpBuffer()
    pivot = StackPivot(jmpbuf, 0x1111, 0x2222)
    assert pivot.get_target() == config.JMP_BUF_BASE
    assert jmpbuf.lookup(pivot.get_target()) == (0x1111, 0x2222)


def test_call_func_resolution():
    """Call frames are restaged and the pivot lands on the post-call PopA0"""
    jmpbuf = JumpBuffer()
    call = lay_out(CallFunc(libc_routine('putchar'), jmpbuf), location=0x10000000)

    pop_a0, pop_s0, call_a5 = call.seq[5], call.seq[6], call.seq[7]
    assert jmpbuf.lookup(call.seq[3].get_target()) == (
        pop_a0.get_entry_point(), pop_a0.get_frame_location()
    )
    assert jmpbuf.stats['targets'] == 1

    restage = call.seq[0]
    assert restage.seq[0].seq[2].seq[0].regs['s0'] == pop_a0.get_frame_location() - STORE_OFFSET
    assert restage.seq[3].seq[1].regs['a0'] == pop_s0.get_entry_point()
    assert restage.seq[4].seq[1].regs['a0'] == config.SCRATCH_BASE
    assert restage.seq[5].seq[1].regs['a0'] == call_a5.get_entry_point()

    stash = call.seq[1]
    assert stash.seq[0].regs['s0'] == pop_a0.get_popped_a0_location() - STORE_OFFSET

    assert call.seq[2].regs['a5'] == config.BASE + 0x5b70a
    assert len(call.synthesize()) * config.WORD_SIZE == call.get_size()

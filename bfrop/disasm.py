#!/usr/bin/env python3
"""
Gadget Disassembly Module
=========================

Checks the primitive catalogue against the machine code recorded for it.

For every primitive with recorded CODE, the fragment is disassembled up to
its return and the stack accesses are compared with the declared LAYOUT:

- the total sp adjustment must equal the frame size
- ld ra, off(sp) must read the 'ra' slot
- every ld reg, off(sp) must read the slot named reg

Both compressed (c.ldsp, c.addi16sp, c.jr) and expanded renderings are
accepted, since capstone versions differ in how they print RVC.
"""

import re
from capstone import Cs, CS_ARCH_RISCV, CS_MODE_RISCV64, CS_MODE_RISCVC

from .config import WORD_SIZE
from .primitives import PRIMITIVES

LOAD_MNEMONICS = ('ld', 'c.ld', 'c.ldsp')
ADDI_MNEMONICS = ('addi', 'c.addi', 'c.addi16sp')
MEM_OPERAND = re.compile(r'^(-?(?:0x)?[0-9a-f]+)\((\w+)\)$')

REGISTER_ALIASES = {
    'fp': 's0',
    'x1': 'ra',
    'x2': 'sp',
    'x8': 's0',
}


def _reg(name):
    name = name.strip().lower()
    return REGISTER_ALIASES.get(name, name)


class GadgetDisassembler:
    """RV64GC disassembler for the primitive catalogue"""

    def __init__(self):
        """Initialize with a RISC-V 64 + compressed Capstone instance"""
        self.md = Cs(CS_ARCH_RISCV, CS_MODE_RISCV64 | CS_MODE_RISCVC)

    def disassemble(self, primitive):
        """
        Disassemble a primitive's recorded code up to its return

        Args:
            primitive: Primitive class (or instance)

        Returns:
            list: (address, mnemonic, op_str) tuples; empty if no code
        """
        if primitive.CODE is None:
            return []

        address = primitive.OFFSET
        insns = []
        for insn in self.md.disasm(primitive.CODE, address):
            insns.append((insn.address, insn.mnemonic, insn.op_str))
            if self._is_return(insn.mnemonic, insn.op_str):
                break
        return insns

    @staticmethod
    def _is_return(mnemonic, op_str):
        ops = [_reg(op) for op in op_str.split(',') if op.strip()]
        if mnemonic == 'ret':
            return True
        if mnemonic in ('c.jr', 'jr') and ops[:1] == ['ra']:
            return True
        return mnemonic == 'jalr' and ops[:1] in (['zero'], ['x0']) and 'ra' in op_str

    def frame_accesses(self, primitive):
        """
        Collect the stack pops and sp adjustment of a primitive

        Returns:
            tuple: ({register: sp offset}, total sp adjustment, returned)
        """
        loads = {}
        adjust = 0
        returned = False
        for _, mnemonic, op_str in self.disassemble(primitive):
            ops = [op.strip() for op in op_str.split(',')]
            if mnemonic in LOAD_MNEMONICS and len(ops) == 2:
                match = MEM_OPERAND.match(ops[1].lower())
                if match and _reg(match.group(2)) == 'sp':
                    loads[_reg(ops[0])] = int(match.group(1), 0)
            elif mnemonic in ADDI_MNEMONICS and _reg(ops[0]) == 'sp':
                adjust += int(ops[-1], 0)
            elif self._is_return(mnemonic, op_str):
                returned = True
        return loads, adjust, returned

    def check_primitive(self, primitive):
        """
        Compare recorded code with the declared frame layout

        Returns:
            list: Problem descriptions; empty when the contract holds
        """
        if primitive.CODE is None:
            return []

        problems = []
        layout = primitive.LAYOUT
        size = len(layout) * WORD_SIZE
        loads, adjust, returned = self.frame_accesses(primitive)

        if not returned:
            problems.append("no return found in recorded code")
        if adjust != size:
            problems.append(f"sp adjusted by {adjust:#x}, frame is {size:#x}")
        if 'ra' not in loads:
            problems.append("ra is not loaded from the stack")
        for reg, offset in loads.items():
            slot = offset // WORD_SIZE
            if offset % WORD_SIZE or not 0 <= slot < len(layout):
                problems.append(f"{reg} loaded from {offset:#x}(sp), outside the frame")
            elif layout[slot] != reg:
                problems.append(
                    f"{reg} loaded from {offset:#x}(sp), layout has "
                    f"{layout[slot] or 'filler'} there"
                )
        for slot, reg in enumerate(layout):
            if reg is not None and reg not in loads:
                problems.append(f"slot {slot} ({reg}) is never popped")
        return problems

    def verify_catalogue(self, catalogue=PRIMITIVES):
        """
        Check every primitive that has recorded code

        Returns:
            dict: {primitive name: [problems]}
        """
        return {
            primitive.__name__: self.check_primitive(primitive)
            for primitive in catalogue
            if primitive.CODE is not None
        }

    def print_listing(self, catalogue=PRIMITIVES):
        """Print the catalogue with disassembly where code is recorded"""
        print("\n" + "="*70)
        print("PRIMITIVE CATALOGUE")
        print("="*70)

        for primitive in catalogue:
            size = len(primitive.LAYOUT) * WORD_SIZE
            print(f"\n  {primitive.__name__:<12} +{primitive.OFFSET:#07x}  "
                  f"frame {size:#x}")
            if primitive.CLOBBERS:
                print(f"    clobbers: {', '.join(primitive.CLOBBERS)}")
            for address, mnemonic, op_str in self.disassemble(primitive):
                print(f"    {address:#07x}: {mnemonic} {op_str}")
            for problem in self.check_primitive(primitive):
                print(f"    [!] {problem}")

        print("\n" + "="*70)

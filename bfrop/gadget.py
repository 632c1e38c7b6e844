#!/usr/bin/env python3
"""
Gadget Model Module
===================

Composition model for ROP chains.

A gadget owns a region of the forged stack (its frame) and pops its words
from it before returning into the next gadget. Gadgets compose into
Sequences; a Sequence behaves as a single gadget whose children are laid
out back to back and chained by their return addresses.

Lifecycle:
----------
1. Build the tree with placeholder parameters (None)
2. set_frame_location() assigns every address
3. resolve() lets macros rebuild children whose parameters depend on
   addresses that are now known (patch())
4. set_frame_location() again; the total size must not have changed
5. synthesize() emits the flat word list
"""

from .errors import StructuralError, PatchAssumptionError
from .config import WORD_SIZE


class Gadget:
    """Base gadget: size, frame location, entry point, next return address"""

    def __init__(self):
        self.frame_location = None
        self.next_ra = None

    def get_size(self):
        """Size of the gadget's stack frame in bytes"""
        raise NotImplementedError

    def synthesize(self):
        """Raw 64-bit words of the frame, in stack order"""
        raise NotImplementedError

    def get_entry_point(self):
        raise NotImplementedError

    def set_frame_location(self, location):
        self.frame_location = location

    def get_frame_location(self):
        if self.frame_location is None:
            raise StructuralError(
                f"{type(self).__name__}: frame location read before layout"
            )
        return self.frame_location

    def set_next_ra(self, ra):
        self.next_ra = ra

    def resolve(self):
        """Post-layout hook; rebuild children that need known addresses"""

    def children(self):
        return []

    def describe(self):
        return type(self).__name__


class Spacer(Gadget):
    """Zero-filled stack region that is never executed as part of the chain"""

    def __init__(self, words):
        super().__init__()
        self.words = words

    def get_size(self):
        return self.words * WORD_SIZE

    def synthesize(self):
        return [0] * self.words

    def get_entry_point(self):
        return 0


class Sequence(Gadget):
    """Ordered composition of exclusively owned child gadgets"""

    def __init__(self, seq):
        """
        Initialize sequence

        Args:
            seq: List of child gadgets, in execution order
        """
        super().__init__()
        self.seq = list(seq)

    def get_size(self):
        return sum(gadget.get_size() for gadget in self.seq)

    def get_entry_point(self):
        return self.seq[0].get_entry_point()

    def children(self):
        return self.seq

    def set_next_ra(self, ra):
        super().set_next_ra(ra)
        self._bind_chain()

    def _bind_chain(self):
        """Child i returns into child i+1; the last child into our own ra"""
        for i, gadget in enumerate(self.seq):
            if i < len(self.seq) - 1:
                gadget.set_next_ra(self.seq[i + 1].get_entry_point())
            else:
                gadget.set_next_ra(self.next_ra)

    def set_frame_location(self, location):
        super().set_frame_location(location)
        self._bind_chain()

        next_location = location
        for gadget in self.seq:
            gadget.set_frame_location(next_location)
            next_location += gadget.get_size()

    def synthesize(self):
        words = []
        for gadget in self.seq:
            words.extend(gadget.synthesize())
        return words

    def resolve(self):
        """Resolve children first, then this sequence's own references"""
        for gadget in self.seq:
            gadget.resolve()
        self.resolve_references()

    def resolve_references(self):
        """Override in macros that reference addresses inside themselves"""

    def patch(self, index, gadget, expected=None):
        """
        Replace a child with a resolved gadget of the same shape

        Args:
            index: Position of the child to replace
            gadget: Replacement carrying resolved parameters
            expected: Class the current child must be an instance of

        Returns:
            Gadget: The replacement, laid out at the old child's location
        """
        current = self.seq[index]
        if expected is not None and not isinstance(current, expected):
            raise PatchAssumptionError(
                f"{type(self).__name__}[{index}]: expected {expected.__name__}, "
                f"found {type(current).__name__}"
            )
        if gadget.get_size() != current.get_size():
            raise PatchAssumptionError(
                f"{type(self).__name__}[{index}]: replacement "
                f"{type(gadget).__name__} is {gadget.get_size():#x} bytes, "
                f"expected {current.get_size():#x}"
            )

        self.seq[index] = gadget
        gadget.set_next_ra(current.next_ra)
        if current.frame_location is not None:
            gadget.set_frame_location(current.frame_location)
            gadget.resolve()
        return gadget

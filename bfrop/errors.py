#!/usr/bin/env python3
"""
Error Module
============

Every failure aborts the whole compilation; there is no partial output.
"""


class BfropError(Exception):
    """Base class for compiler failures"""


class StructuralError(BfropError):
    """Gadget tree used before layout assigned it, or synthesized unresolved"""


class CompileError(BfropError):
    """Malformed Brainfuck input (unbalanced brackets)"""

    def __init__(self, message, position=None):
        super().__init__(message)
        self.position = position


class AllocationInvariantViolation(BfropError):
    """Jump buffer handed out a branch pair that is not 8 bytes apart"""


class PatchAssumptionError(BfropError):
    """Self-patching found a different gadget shape than the macro built"""

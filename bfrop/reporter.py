#!/usr/bin/env python3
"""
Chain Reporter Module
=====================

Summary printout and JSON export of a compiled ROP chain.
"""

import json
from collections import Counter


class ChainReporter:
    """Reporting utilities for compiled programs"""

    @staticmethod
    def walk(gadget):
        """Yield every gadget of the tree, parents before children"""
        yield gadget
        for child in gadget.children():
            yield from ChainReporter.walk(child)

    @staticmethod
    def leaves(gadget):
        """Yield the gadgets that emit words, in stack order"""
        children = gadget.children()
        if not children:
            yield gadget
        for child in children:
            yield from ChainReporter.leaves(child)

    @staticmethod
    def get_stats(compiled):
        program = compiled.program
        leaves = list(ChainReporter.leaves(program))
        return {
            'instructions': len(compiled.source),
            'loops': len(compiled.loops),
            'entry_point': compiled.entry_point,
            'stack_base': compiled.stack_base,
            'stack_bytes': program.get_size(),
            'stack_words': len(compiled.stack_words),
            'jump_words': len(compiled.jump_words),
            'leaf_gadgets': len(leaves),
            'jmpbuf': compiled.jmpbuf.get_stats(),
        }

    @staticmethod
    def print_summary(compiled, top=10):
        """
        Print a summary of a compiled program

        Args:
            compiled: CompiledProgram instance
            top: Number of most frequent macros/primitives to list
        """
        stats = ChainReporter.get_stats(compiled)

        print("\n" + "-"*70)
        print("SUMMARY: Compiled ROP chain")
        print("-"*70)
        print(f"  Instructions      : {stats['instructions']}")
        print(f"  Loops             : {stats['loops']}")
        print(f"  Entry point       : {stats['entry_point']:#x}")
        print(f"  Stack image       : {stats['stack_bytes']:,} bytes "
              f"({stats['stack_words']} words) at {stats['stack_base']:#x}")
        print(f"  Jump buffer       : {stats['jump_words']} words, "
              f"{stats['jmpbuf']['targets']} targets, "
              f"{stats['jmpbuf']['dummy_allocations']} dummies")
        print(f"  Leaf gadgets      : {stats['leaf_gadgets']}")

        macro_counts = Counter(
            type(gadget).__name__ for gadget in compiled.body()
        )
        print(f"  Instruction macros:")
        for name, count in macro_counts.most_common(top):
            print(f"    - {name:<16}: {count}")

        primitive_counts = Counter(
            type(gadget).__name__ for gadget in ChainReporter.leaves(compiled.program)
        )
        print(f"  Primitives        :")
        for name, count in primitive_counts.most_common(top):
            print(f"    - {name:<16}: {count}")

    @staticmethod
    def export_results(compiled, filename):
        """
        Export the laid out chain to JSON

        Args:
            compiled: CompiledProgram instance
            filename: Output JSON file path
        """
        stats = ChainReporter.get_stats(compiled)
        stats['entry_point'] = f"0x{stats['entry_point']:x}"
        stats['stack_base'] = f"0x{stats['stack_base']:x}"

        chain = []
        for gadget in ChainReporter.leaves(compiled.program):
            chain.append({
                'address': f"0x{gadget.get_frame_location():x}",
                'entry_point': f"0x{gadget.get_entry_point():x}",
                'gadget': gadget.describe(),
                'words': [f"0x{word:x}" for word in gadget.synthesize()],
            })

        jmpbuf = compiled.jmpbuf
        data = {
            'source': compiled.source,
            'stats': stats,
            'loops': {str(begin): end for begin, end in sorted(compiled.loops.items())},
            'chain': chain,
            'jmpbuf': {
                'base': f"0x{jmpbuf.base:x}",
                'targets': [
                    {'address': f"0x{address:x}", 'ra': f"0x{ra:x}", 'sp': f"0x{sp:x}"}
                    for address, ra, sp in jmpbuf.targets()
                ],
                'words': [f"0x{word:x}" for word in compiled.jump_words],
            },
        }

        with open(filename, 'w') as f:
            json.dump(data, f, indent=2)

        print(f"[+] Results exported to {filename}")

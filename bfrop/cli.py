#!/usr/bin/env python3
"""
bfrop command line front end
============================

Compiles a Brainfuck program and writes the two buffers read by the
loader (stackbuf.txt mapped at 0x10000000, jmpbuf.txt at 0x20000000).

Usage:
    bfrop hello.bf
    bfrop hello.bf -o stack.txt -j jmp.txt --summary
    echo '+[,.]' | bfrop - --export chain.json
    bfrop --verify-gadgets
"""

import argparse
import sys

from .compiler import BrainfuckCompiler
from .config import DEFAULT_JMP_OUTPUT, DEFAULT_STACK_OUTPUT
from .errors import BfropError
from .reporter import ChainReporter


def build_parser():
    parser = argparse.ArgumentParser(
        prog='bfrop',
        description='Compile Brainfuck into a RISC-V ROP chain',
    )
    parser.add_argument(
        'source', nargs='?', default='-',
        help='Brainfuck source file (default: stdin)'
    )
    parser.add_argument(
        '-o', '--stack-out', default=DEFAULT_STACK_OUTPUT,
        help=f'Stack buffer output (default: {DEFAULT_STACK_OUTPUT})'
    )
    parser.add_argument(
        '-j', '--jmp-out', default=DEFAULT_JMP_OUTPUT,
        help=f'Jump buffer output (default: {DEFAULT_JMP_OUTPUT})'
    )
    parser.add_argument(
        '--export', metavar='JSON',
        help='Export the laid out chain to a JSON file'
    )
    parser.add_argument(
        '--summary', action='store_true',
        help='Print a summary of the compiled chain'
    )
    parser.add_argument(
        '--verify-gadgets', action='store_true',
        help='Disassemble the primitive catalogue and check frame layouts, then exit'
    )
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help='Print compilation progress'
    )
    return parser


def verify_gadgets():
    """Run the catalogue check; returns the exit status"""
    from .disasm import GadgetDisassembler

    disassembler = GadgetDisassembler()
    disassembler.print_listing()
    results = disassembler.verify_catalogue()
    failed = {name: problems for name, problems in results.items() if problems}
    if failed:
        print(f"[!] {len(failed)}/{len(results)} primitives do not match their layout")
        return 1
    print(f"[+] {len(results)} primitives match their recorded code")
    return 0


def read_source(path):
    if path == '-':
        return sys.stdin.read()
    with open(path, 'r') as f:
        return f.read()


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.verify_gadgets:
        return verify_gadgets()

    try:
        text = read_source(args.source)
        compiled = BrainfuckCompiler(verbose=args.verbose).compile(text)

        with open(args.stack_out, 'w') as f:
            f.write(compiled.render_stack())
        with open(args.jmp_out, 'w') as f:
            f.write(compiled.render_jump())
        print(f"[+] Wrote {len(compiled.stack_words)} words to {args.stack_out}, "
              f"{len(compiled.jump_words)} words to {args.jmp_out}")

        if args.summary:
            ChainReporter.print_summary(compiled)
        if args.export:
            ChainReporter.export_results(compiled, args.export)
    except BfropError as e:
        print(f"[!] {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"[!] {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())

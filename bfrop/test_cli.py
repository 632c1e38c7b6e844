#!/usr/bin/env python3
"""
Command line front end tests
"""

import json

from bfrop.cli import main
from bfrop.compiler import compile_brainfuck


def test_writes_loader_files(tmp_path, capsys):
    source = tmp_path / "echo.bf"
    source.write_text("echo one char: ,.")
    stack_out = tmp_path / "stackbuf.txt"
    jmp_out = tmp_path / "jmpbuf.txt"

    status = main([str(source), '-o', str(stack_out), '-j', str(jmp_out)])

    assert status == 0
    stack_words, jump_words = compile_brainfuck(",.")
    assert [int(line, 16) for line in stack_out.read_text().splitlines()] == stack_words
    assert [int(line, 16) for line in jmp_out.read_text().splitlines()] == jump_words
    assert '[+] Wrote' in capsys.readouterr().out


def test_summary_and_export(tmp_path, capsys):
    source = tmp_path / "clear.bf"
    source.write_text("+++[-]")
    export = tmp_path / "chain.json"

    status = main([
        str(source),
        '-o', str(tmp_path / "s.txt"),
        '-j', str(tmp_path / "j.txt"),
        '--summary',
        '--export', str(export),
        '-v',
    ])

    assert status == 0
    out = capsys.readouterr().out
    assert 'SUMMARY: Compiled ROP chain' in out
    assert '[*] Compiling 6 instructions (1 loops)' in out

    with open(export) as f:
        data = json.load(f)
    assert data['source'] == "+++[-]"
    assert data['loops'] == {'3': 5}
    assert data['stats']['jmpbuf']['branch_pairs'] == 1
    assert data['chain'][0]['address'] == '0x10000000'
    assert len(data['jmpbuf']['targets']) == data['stats']['jmpbuf']['targets']


def test_compile_error_exit_status(tmp_path, capsys):
    source = tmp_path / "bad.bf"
    source.write_text("+[")
    stack_out = tmp_path / "stackbuf.txt"

    status = main([str(source), '-o', str(stack_out), '-j', str(tmp_path / "j.txt")])

    assert status == 1
    assert 'CompileError' in capsys.readouterr().err
    assert not stack_out.exists()


def test_missing_source(tmp_path, capsys):
    status = main([str(tmp_path / "nope.bf")])
    assert status == 1
    assert '[!]' in capsys.readouterr().err

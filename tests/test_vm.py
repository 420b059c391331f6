import os
import struct
from unittest.mock import patch

import pytest

from lc3vm.machine import (
    BadOpCode,
    BadTrapCode,
    Flag,
    Register,
    State,
    TerminalError,
)
from lc3vm.vm import check_key, main, raw_terminal, run_loop, run_step


class _TermiosFailure(Exception):
    pass


class _FakeTermios:
    ICANON = 0x2
    ECHO = 0x8
    TCSANOW = 0
    error = _TermiosFailure

    def __init__(self, lflag=0xFF, fail_get=False):
        self.lflag = lflag
        self.fail_get = fail_get
        self.calls = []

    def tcgetattr(self, fd):
        if self.fail_get:
            raise _TermiosFailure("no terminal")
        return [0, 0, 0, self.lflag, 0, 0, []]

    def tcsetattr(self, fd, when, attrs):
        self.calls.append(list(attrs))


class _FakeStdin:
    def fileno(self):
        return 0


def _image(origin, words):
    return struct.pack(f">H{len(words)}H", origin, *words)


def test_loop_test():
    state = State()
    state.registers = [0] * len(state.registers)
    state.memory_write(50, 25689)
    state.memory_write(25689, 25)
    state.memory_write(56, 777)
    state.memory_write(9, 50)
    state.register_write(Register.PC, 10)
    state.memory_write(10, 0xAA27)
    state.memory_write(11, 0x27FD)
    state.memory_write(12, 0x12C5)
    state.memory_write(13, 0x56E0)
    state.memory_write(14, 0x0405)
    state.memory_write(20, 0x96FF)
    state.memory_write(21, 0xC140)
    state.memory_write(25, 0x635F)
    state.memory_write(26, 0x4048)
    state.memory_write(777, 0xB34C)
    state.memory_write(778, 0x3E03)
    state.memory_write(779, 0x7A40)
    state.memory_write(780, 0xF025)
    run_loop(state)
    assert state.memory_read(0) == 777
    assert state.memory_read(782) == 27
    assert state.memory_read(777) == 25
    assert state.register_read(Register.R7) == 27
    assert state.running is False


def test_run_step_dispatches_add():
    state = State()
    run_step(0x1E61, state)
    assert state.registers[Register.R7] == 1
    assert state.registers[Register.COND] == Flag.POS


@pytest.mark.parametrize("instruction, code", [(0x8000, 8), (0xD000, 13)])
def test_run_step_rejects_unused_opcodes(instruction, code):
    with pytest.raises(BadOpCode) as info:
        run_step(instruction, State())
    assert info.value.code == code


def test_run_step_rejects_unknown_trap():
    with pytest.raises(BadTrapCode) as info:
        run_step(0xF0FF, State())
    assert info.value.code == 0xFF


def test_run_loop_stops_on_halt_and_advances_pc(capsys):
    state = State()
    state.memory_write(0x3000, 0xF025)
    run_loop(state)
    assert capsys.readouterr().out == "HALT"
    assert state.register_read(Register.PC) == 0x3001


def test_check_key_reads_pending_byte():
    read_fd, write_fd = os.pipe()
    try:
        os.write(write_fd, b"a")
        with os.fdopen(read_fd, "rb", closefd=False) as reader, patch("sys.stdin", reader):
            assert check_key() == ord("a")
            assert check_key() is None
    finally:
        os.close(read_fd)
        os.close(write_fd)


def test_check_key_without_usable_stdin_returns_none():
    with patch("sys.stdin", object()):
        assert check_key() is None


def test_raw_terminal_clears_flags_and_restores(capsys):
    fake = _FakeTermios(lflag=0xFF)
    state = State()
    state.memory_write(0x3000, 0xF025)
    with patch("lc3vm.vm.termios", fake):
        with raw_terminal(_FakeStdin()):
            assert fake.calls[0][3] == 0xFF & ~(fake.ICANON | fake.ECHO)
            run_loop(state)
    assert state.running is False
    assert capsys.readouterr().out == "HALT"
    assert fake.calls[-1][3] == 0xFF
    assert len(fake.calls) == 2


def test_raw_terminal_restores_after_error():
    fake = _FakeTermios(lflag=0xFF)
    with patch("lc3vm.vm.termios", fake):
        with pytest.raises(BadOpCode) as info:
            with raw_terminal(_FakeStdin()):
                run_step(0x8000, State())
    assert info.value.code == 8
    assert fake.calls[-1][3] == 0xFF


def test_raw_terminal_fails_without_terminal():
    fake = _FakeTermios(fail_get=True)
    with patch("lc3vm.vm.termios", fake):
        with pytest.raises(TerminalError):
            with raw_terminal(_FakeStdin()):
                pass
    assert fake.calls == []


def test_main_without_arguments(capsys):
    fake = _FakeTermios()
    with patch("lc3vm.vm.termios", fake), patch("sys.stdin", _FakeStdin()):
        status = main([])
    assert status == 1
    assert capsys.readouterr().out.strip() == "Not enough arguments"
    assert len(fake.calls) == 2


def test_main_without_terminal(capsys):
    fake = _FakeTermios(fail_get=True)
    with patch("lc3vm.vm.termios", fake), patch("sys.stdin", _FakeStdin()):
        status = main(["unused.obj"])
    assert status == 1
    assert capsys.readouterr().out.strip() == "Couldn't initialize termios"


def test_main_runs_image(tmp_path, capsys):
    path = tmp_path / "halt.obj"
    path.write_bytes(_image(0x3000, [0xF025]))
    fake = _FakeTermios()
    with patch("lc3vm.vm.termios", fake), patch("sys.stdin", _FakeStdin()):
        status = main([str(path)])
    assert status == 0
    assert capsys.readouterr().out == "HALT"


def test_main_reports_missing_file(tmp_path, capsys):
    fake = _FakeTermios()
    with patch("lc3vm.vm.termios", fake), patch("sys.stdin", _FakeStdin()):
        status = main([str(tmp_path / "absent.obj")])
    assert status == 1
    assert capsys.readouterr().out.startswith("Bad file: ")


def test_main_reports_bad_opcode(tmp_path, capsys):
    path = tmp_path / "bad.obj"
    path.write_bytes(_image(0x3000, [0x8000]))
    fake = _FakeTermios()
    with patch("lc3vm.vm.termios", fake), patch("sys.stdin", _FakeStdin()):
        status = main([str(path)])
    assert status == 1
    assert capsys.readouterr().out.strip() == "Bad operation code: `8` does not exist!"
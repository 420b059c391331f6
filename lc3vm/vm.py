"""Fetch-execute loop, terminal handling and the command entry point."""

from __future__ import annotations

import os
import select
import sys
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Sequence

try:
    import termios
except ImportError:  # not available on this platform
    termios = None

from .loader import read_file_to_memory
from .machine import (
    BadOpCode,
    FewArguments,
    Opcode,
    Register,
    State,
    TerminalError,
    VMError,
)
from .operations import (
    add,
    and_,
    conditional_branch,
    jump,
    jump_to_subroutine,
    load,
    load_effective_address,
    load_indirect,
    load_register,
    not_,
    store,
    store_indirect,
    store_register,
    trap,
)

_HANDLERS: dict[Opcode, Callable[[int, State], None]] = {
    Opcode.BR: conditional_branch,
    Opcode.ADD: add,
    Opcode.LD: load,
    Opcode.ST: store,
    Opcode.JSR: jump_to_subroutine,
    Opcode.AND: and_,
    Opcode.LDR: load_register,
    Opcode.STR: store_register,
    Opcode.NOT: not_,
    Opcode.LDI: load_indirect,
    Opcode.STI: store_indirect,
    Opcode.JMP: jump,
    Opcode.LEA: load_effective_address,
    Opcode.TRAP: trap,
}


def run_step(instruction: int, state: State) -> None:
    """Execute one instruction; RTI and the reserved opcode raise ``BadOpCode``."""
    opcode = Opcode.from_code((instruction >> 12) & 0xF)
    handler = _HANDLERS.get(opcode)
    if handler is None:
        raise BadOpCode(int(opcode))
    handler(instruction, state)


def run_loop(state: State) -> None:
    """Fetch, advance PC and execute until the machine stops running."""
    while state.running:
        instruction = state.memory_read(state.register_read(Register.PC))
        state.increment_pc()
        run_step(instruction, state)


def check_key() -> Optional[int]:
    """Return a pending byte from standard input without blocking, or ``None``."""
    try:
        fd = sys.stdin.fileno()
        ready, _, _ = select.select([fd], [], [], 0)
        if not ready:
            return None
        data = os.read(fd, 1)
    except (OSError, ValueError, AttributeError):
        return None
    return data[0] if data else None


@contextmanager
def raw_terminal(stream) -> Iterator[None]:
    """Turn off line buffering and echo on ``stream`` for the block's duration."""
    if termios is None:
        raise TerminalError()
    try:
        fd = stream.fileno()
        original = termios.tcgetattr(fd)
    except (OSError, ValueError, AttributeError, termios.error):
        raise TerminalError() from None
    raw = list(original)
    raw[3] = original[3] & ~(termios.ICANON | termios.ECHO)
    try:
        termios.tcsetattr(fd, termios.TCSANOW, raw)
    except termios.error:
        raise TerminalError("Couldn't disable input buffering") from None
    try:
        yield
    finally:
        try:
            termios.tcsetattr(fd, termios.TCSANOW, original)
        except termios.error:
            raise TerminalError("Couldn't restore input buffering") from None


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Load the given images, run them and return the exit status."""
    paths = sys.argv[1:] if argv is None else list(argv)
    try:
        with raw_terminal(sys.stdin):
            if not paths:
                raise FewArguments()
            state = State(key_reader=check_key)
            for path in paths:
                read_file_to_memory(path, state)
            run_loop(state)
    except KeyboardInterrupt:
        return 1
    except VMError as error:
        print(error)
        return 1
    except OSError as error:
        print(f"Bad file: {error}")
        return 1
    return 0
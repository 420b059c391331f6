"""Instruction implementations and trap routines of the LC-3 VM."""

from __future__ import annotations

import sys
from typing import Optional

from .machine import (
    WORD_MASK,
    Flag,
    Register,
    State,
    Trap,
    TrapError,
)

NULL_WORD = 0x0


def sign_extend(value: int, bit_count: int) -> int:
    """Extend the ``bit_count``-bit two's-complement ``value`` to 16 bits."""
    value &= (1 << bit_count) - 1
    if value >> (bit_count - 1) == 1:
        value |= (WORD_MASK << bit_count) & WORD_MASK
    return value & WORD_MASK


def update_flags(state: State, register: Register) -> None:
    """Set the COND register from the value held in ``register``."""
    value = state.register_read(register)
    if value == 0:
        flag = Flag.ZRO
    elif value >> 15 == 1:
        flag = Flag.NEG
    else:
        flag = Flag.POS
    state.register_write(Register.COND, flag)


def _field_register(instruction: int, shift: int) -> Register:
    return Register.from_code((instruction >> shift) & 0x7)


def _pc_relative(state: State, instruction: int, bits: int) -> int:
    offset = sign_extend(instruction & ((1 << bits) - 1), bits)
    return (state.register_read(Register.PC) + offset) & WORD_MASK


def _base_relative(state: State, instruction: int) -> int:
    offset = sign_extend(instruction & 0x3F, 6)
    base = _field_register(instruction, 6)
    return (state.register_read(base) + offset) & WORD_MASK


def _second_operand(instruction: int, state: State) -> int:
    if (instruction >> 5) & 0x1:
        return sign_extend(instruction & 0x1F, 5)
    return state.register_read(_field_register(instruction, 0))


def add(instruction: int, state: State) -> None:
    """ADD in register or immediate mode; updates flags."""
    destination = _field_register(instruction, 9)
    source = _field_register(instruction, 6)
    total = state.register_read(source) + _second_operand(instruction, state)
    state.register_write(destination, total & WORD_MASK)
    update_flags(state, destination)


def load_indirect(instruction: int, state: State) -> None:
    """LDI: load through the address stored at PC + offset; updates flags."""
    destination = _field_register(instruction, 9)
    pointer = state.memory_read(_pc_relative(state, instruction, 9))
    state.register_write(destination, state.memory_read(pointer))
    update_flags(state, destination)


def and_(instruction: int, state: State) -> None:
    """AND in register or immediate mode; updates flags."""
    destination = _field_register(instruction, 9)
    source = _field_register(instruction, 6)
    value = state.register_read(source) & _second_operand(instruction, state)
    state.register_write(destination, value)
    update_flags(state, destination)


def conditional_branch(instruction: int, state: State) -> None:
    """BR: add the offset to PC when any tested flag is set."""
    negative = (instruction >> 11) & 1
    zero = (instruction >> 10) & 1
    positive = (instruction >> 9) & 1
    flags = state.register_read(Register.COND)
    if (
        (negative & (flags >> 2)) == 1
        or (zero & (flags >> 1)) == 1
        or (positive & flags) == 1
    ):
        state.register_write(Register.PC, _pc_relative(state, instruction, 9))


def jump(instruction: int, state: State) -> None:
    """JMP: set PC to the base register's value."""
    base = _field_register(instruction, 6)
    state.register_write(Register.PC, state.register_read(base))


def jump_to_subroutine(instruction: int, state: State) -> None:
    """JSR/JSRR: save PC in R7 and jump by offset or to a base register."""
    state.register_write(Register.R7, state.register_read(Register.PC))
    if (instruction >> 11) & 1:
        target = _pc_relative(state, instruction, 11)
    else:
        target = state.register_read(_field_register(instruction, 6))
    state.register_write(Register.PC, target)


def load(instruction: int, state: State) -> None:
    """LD: load memory at PC + offset; updates flags."""
    destination = _field_register(instruction, 9)
    value = state.memory_read(_pc_relative(state, instruction, 9))
    state.register_write(destination, value)
    update_flags(state, destination)


def load_register(instruction: int, state: State) -> None:
    """LDR: load memory at base register + offset; updates flags."""
    destination = _field_register(instruction, 9)
    value = state.memory_read(_base_relative(state, instruction))
    state.register_write(destination, value)
    update_flags(state, destination)


def load_effective_address(instruction: int, state: State) -> None:
    """LEA: load the address PC + offset; updates flags."""
    destination = _field_register(instruction, 9)
    state.register_write(destination, _pc_relative(state, instruction, 9))
    update_flags(state, destination)


def not_(instruction: int, state: State) -> None:
    """NOT: bitwise complement of the source register; updates flags."""
    source = _field_register(instruction, 6)
    destination = _field_register(instruction, 9)
    state.register_write(destination, ~state.register_read(source) & WORD_MASK)
    update_flags(state, destination)


def store(instruction: int, state: State) -> None:
    """ST: store a register at PC + offset."""
    source = _field_register(instruction, 9)
    state.memory_write(_pc_relative(state, instruction, 9), state.register_read(source))


def store_indirect(instruction: int, state: State) -> None:
    """STI: store a register at the address held at PC + offset."""
    source = _field_register(instruction, 9)
    address = state.memory_read(_pc_relative(state, instruction, 9))
    state.memory_write(address, state.register_read(source))


def store_register(instruction: int, state: State) -> None:
    """STR: store a register at base register + offset."""
    source = _field_register(instruction, 9)
    state.memory_write(_base_relative(state, instruction), state.register_read(source))


def _to_char(code: int) -> Optional[str]:
    if 0xD800 <= code <= 0xDFFF:
        return None
    return chr(code)


def _write(text: str) -> None:
    sys.stdout.write(text)


def _flush() -> None:
    sys.stdout.flush()


def _read_byte() -> Optional[int]:
    stream = getattr(sys.stdin, "buffer", sys.stdin)
    data = stream.read(1)
    if not data:
        return None
    return data[0] if isinstance(data, (bytes, bytearray)) else ord(data)


def _trap_halt(state: State) -> None:
    _write("HALT")
    _flush()
    state.running = False


def _memory_words(state: State, address: int):
    word = state.memory_read(address)
    while word != NULL_WORD:
        yield word
        address = (address + 1) & WORD_MASK
        word = state.memory_read(address)


def _trap_putsp(state: State) -> None:
    for word in _memory_words(state, state.register_read(Register.R0)):
        _write(chr(word & 0xFF))
        high = word >> 8
        if high != NULL_WORD:
            _write(chr(high))
    _flush()


def _trap_puts(state: State) -> None:
    for word in _memory_words(state, state.register_read(Register.R0)):
        char = _to_char(word)
        if char is None:
            break
        _write(char)
    _flush()


def _trap_in(state: State) -> None:
    _write("Enter character: ")
    _flush()
    key = _read_byte()
    if key is None:
        raise TrapError(Trap.IN)
    _write(chr(key))
    _flush()
    state.register_write(Register.R0, key)
    update_flags(state, Register.R0)


def _trap_out(state: State) -> None:
    char = _to_char(state.register_read(Register.R0))
    if char is None:
        raise TrapError(Trap.OUT)
    _write(char)
    _flush()


def _trap_getc(state: State) -> None:
    key = _read_byte()
    if key is None:
        raise TrapError(Trap.GETC)
    state.register_write(Register.R0, key)
    update_flags(state, Register.R0)


_ROUTINES = {
    Trap.GETC: _trap_getc,
    Trap.OUT: _trap_out,
    Trap.PUTS: _trap_puts,
    Trap.IN: _trap_in,
    Trap.PUTSP: _trap_putsp,
    Trap.HALT: _trap_halt,
}


def trap(instruction: int, state: State) -> None:
    """TRAP: run the system routine named by the low eight bits."""
    routine = Trap.from_code(instruction & 0xFF)
    _ROUTINES[routine](state)
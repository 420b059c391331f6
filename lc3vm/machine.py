"""Machine state, register and opcode definitions, and error types for the LC-3 VM."""

from __future__ import annotations

from enum import IntEnum
from typing import Callable, Optional

MEMORY_SIZE = 1 << 16
PC_START = 0x3000
WORD_MASK = 0xFFFF

KeyReader = Callable[[], Optional[int]]


class VMError(Exception):
    """Base class for every error raised by the virtual machine."""


class BadRegisterReference(VMError):
    """A register number outside R0..R7 was referenced."""

    def __init__(self, register: int) -> None:
        super().__init__(f"Bad register: `{register} does not exist!`")
        self.register = register


class BadOpCode(VMError):
    """An operation code that does not exist or is not supported."""

    def __init__(self, code: int) -> None:
        super().__init__(f"Bad operation code: `{code}` does not exist!")
        self.code = code


class BadTrapCode(VMError):
    """A trap vector that names no known routine."""

    def __init__(self, code: int) -> None:
        super().__init__(f"Bad trap code: `{code}`")
        self.code = code


class TrapError(VMError):
    """A trap routine failed while running."""

    def __init__(self, trap: "Trap") -> None:
        super().__init__(f"Bad trap `{trap.label}`")
        self.trap = trap


class BadImageSize(VMError):
    """A program image does not fit in memory."""

    def __init__(self) -> None:
        super().__init__("Bad image size")


class FewArguments(VMError):
    """No program image was given on the command line."""

    def __init__(self) -> None:
        super().__init__("Not enough arguments")


class TerminalError(VMError):
    """The terminal could not be configured or restored."""

    def __init__(self, message: str = "Couldn't initialize termios") -> None:
        super().__init__(message)


class Trap(IntEnum):
    """Trap vectors of the predefined system routines."""

    GETC = 0x20
    OUT = 0x21
    PUTS = 0x22
    IN = 0x23
    PUTSP = 0x24
    HALT = 0x25

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_code(cls, code: int) -> "Trap":
        try:
            return cls(code)
        except ValueError:
            raise BadTrapCode(code) from None


class Register(IntEnum):
    """Registers of the machine; R0..R7 are addressable by instructions."""

    R0 = 0
    R1 = 1
    R2 = 2
    R3 = 3
    R4 = 4
    R5 = 5
    R6 = 6
    R7 = 7
    PC = 8
    COND = 9

    @classmethod
    def from_code(cls, code: int) -> "Register":
        """Return the general-purpose register numbered ``code``."""
        if 0 <= code <= 7:
            return cls(code)
        raise BadRegisterReference(code)


REGISTER_COUNT = len(Register)


class Flag(IntEnum):
    """Condition flags kept in the COND register."""

    POS = 1 << 0
    ZRO = 1 << 1
    NEG = 1 << 2


class Opcode(IntEnum):
    """Operation codes held in the top four bits of an instruction."""

    BR = 0
    ADD = 1
    LD = 2
    ST = 3
    JSR = 4
    AND = 5
    LDR = 6
    STR = 7
    RTI = 8
    NOT = 9
    LDI = 10
    STI = 11
    JMP = 12
    RES = 13
    LEA = 14
    TRAP = 15

    @classmethod
    def from_code(cls, code: int) -> "Opcode":
        try:
            return cls(code)
        except ValueError:
            raise BadOpCode(code) from None


class MemoryMappedRegister(IntEnum):
    """Device registers that live in memory."""

    KBSR = 0xFE00
    KBDR = 0xFE02


def _no_key() -> Optional[int]:
    return None


class State:
    """Memory, registers and run flag of one machine.

    ``key_reader`` is polled whenever the keyboard status register is read;
    it returns the code of a pending key, or ``None`` when no key is waiting.
    """

    def __init__(self, key_reader: Optional[KeyReader] = None) -> None:
        self.memory: list[int] = [0] * MEMORY_SIZE
        self.registers: list[int] = [0] * REGISTER_COUNT
        self.running = True
        self.key_reader: KeyReader = key_reader or _no_key
        self.register_write(Register.PC, PC_START)
        self.register_write(Register.COND, Flag.ZRO)

    def memory_write(self, address: int, value: int) -> None:
        self.memory[address] = value & WORD_MASK

    def memory_read(self, address: int) -> int:
        if address == MemoryMappedRegister.KBSR:
            key = self.key_reader()
            if key is None:
                self.memory[MemoryMappedRegister.KBSR] = 0
            else:
                self.memory[MemoryMappedRegister.KBSR] = 1 << 15
                self.memory[MemoryMappedRegister.KBDR] = key & WORD_MASK
        return self.memory[address]

    def register_read(self, register: Register) -> int:
        return self.registers[register]

    def register_write(self, register: Register, value: int) -> None:
        self.registers[register] = int(value) & WORD_MASK

    def increment_pc(self) -> None:
        self.register_write(Register.PC, self.register_read(Register.PC) + 1)
# lc3vm

A virtual machine for the LC-3, the 16-bit educational computer architecture.
It loads one or more program images into its 65,536 words of memory and runs
them from address `0x3000` until the program halts.

## Installing

```
pip install .
```

## Running a program

```
lc3vm path/to/program.obj
```

You can give several image files. Each one is loaded in order, and a later
image overwrites any words that an earlier one wrote. An image file is a
sequence of big-endian 16-bit words. The first word is the origin address, and
the rest of the file is placed in memory starting there. If the file has an odd
number of bytes, the last byte becomes the high byte of a final word.

Standard input must be a terminal. While the program runs, the terminal is put
in raw mode, with no line buffering and no echo, so programs such as games can
read single key presses. The terminal is set back when the program stops, when
it fails, or when you press Ctrl-C.

If something goes wrong, the machine prints a short message and exits with
status 1. This happens when:

- no image is given
- an image file cannot be read
- an image does not fit in memory
- the terminal cannot be put into raw mode or set back
- the program uses an unknown trap vector
- the program uses `RTI` or the reserved opcode
- a `GETC` or `IN` trap finds standard input at its end

## Supported instructions

All LC-3 instructions except `RTI` and the reserved opcode:

- Arithmetic and logic: `ADD`, `AND`, `NOT`
- Branches and jumps: `BR`, `JMP`, `JSR`/`JSRR`
- Loads and stores: `LD`, `LDI`, `LDR`, `LEA`, `ST`, `STI`, `STR`
- Traps: `GETC`, `OUT`, `PUTS`, `IN`, `PUTSP`, `HALT`

Programs can also read the keyboard through the memory-mapped status register
(`0xFE00`) and data register (`0xFE02`). Each time a program reads the status
register, the machine checks for a waiting key without blocking.

## Using it as a library

```python
from lc3vm.machine import State, Register
from lc3vm.loader import load_image
from lc3vm.vm import run_loop

state = State()
load_image(bytes([0x30, 0x00, 0xF0, 0x25]), state)  # origin 0x3000, HALT
run_loop(state)                                     # prints "HALT"
print(state.register_read(Register.PC))             # 12289
```

The modules are:

- `lc3vm.machine` defines `State`, which holds memory, registers and the
  `running` flag. It also defines the enums `Register`, `Flag`, `Opcode`,
  `Trap` and `MemoryMappedRegister`, and the exceptions. Every exception
  derives from `VMError`. `State` takes an optional `key_reader`, a callable
  that returns a pending key code or `None`. It is polled when the keyboard
  status register is read.
- `lc3vm.operations` has one function per instruction: `add`, `and_`, `not_`,
  `conditional_branch`, `jump`, `jump_to_subroutine`, `load`, `load_indirect`,
  `load_register`, `load_effective_address`, `store`, `store_indirect`,
  `store_register` and `trap`. It also has the helpers `sign_extend` and
  `update_flags`. Trap routines write to standard output and read from
  standard input.
- `lc3vm.loader` has `load_image`, which loads an image from bytes, and
  `read_file_to_memory`, which loads it from a file. Both return the origin.
- `lc3vm.vm` has `run_step`, `run_loop`, `check_key`, the `raw_terminal`
  context manager and `main`, the entry point of the `lc3vm` command.

## Limitations

Terminal handling uses `termios`, so the `lc3vm` command works only on POSIX
systems. The library functions do not depend on it.

## Running the tests

```
pip install .[test]
pytest
```
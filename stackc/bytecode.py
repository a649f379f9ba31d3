from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Union


class OpCode(Enum):
    # Stack
    IMM = auto()       # operand: int literal
    PSH = auto()       # duplicate top of stack

    # Arithmetic
    ADD = auto()
    SUB = auto()
    MUL = auto()
    DIV = auto()
    MOD = auto()

    # Comparisons (push 0/1)
    EQ = auto()
    LT = auto()
    GT = auto()

    # Control flow
    JMP = auto()       # operand: target pc
    BZ = auto()        # operand: target pc (pop value; jump if zero)
    BNZ = auto()       # operand: target pc (pop value; jump if nonzero)

    # Frames
    JSR = auto()       # operand: function entry pc
    ENT = auto()       # operand: number of local slots
    ADJ = auto()       # operand: number of values to discard
    LEV = auto()       # operand: number of arguments to discard
    LEA = auto()       # operand: frame-relative slot offset

    # Memory, addressed by stack position
    LI = auto()        # pop addr; push stack[addr]
    LC = auto()        # pop addr; push stack[addr] & 0xFF
    SI = auto()        # pop v, pop addr; stack[addr] = v
    SC = auto()        # pop v, pop addr; stack[addr] = v & 0xFF

    # Output and termination
    PRINTF = auto()    # operand: literal text
    EXIT = auto()

    # Syscall stand-ins
    MALC = auto()
    FREE = auto()
    MSET = auto()
    MCMP = auto()
    OPEN = auto()
    READ = auto()
    CLOS = auto()


# Opcodes whose operand is a code address
JUMP_OPS = (OpCode.JMP, OpCode.BZ, OpCode.BNZ, OpCode.JSR)

# Operand written into an instruction before its real value is known
PLACEHOLDER = -1

Operand = Union[int, str, None]


@dataclass
class Instruction:
    op: OpCode
    arg: Operand = None

    def __str__(self) -> str:
        if self.arg is None:
            return self.op.name
        if isinstance(self.arg, str):
            return f"{self.op.name} {self.arg!r}"
        return f"{self.op.name} {self.arg}"


Program = List[Instruction]


def format_program(program: Program) -> str:
    """Render a program as a numbered listing, one instruction per line."""
    width = len(str(max(len(program) - 1, 0)))
    return "\n".join(f"{pc:>{width}}  {instr}" for pc, instr in enumerate(program))

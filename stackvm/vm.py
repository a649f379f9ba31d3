from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional
from stackc.bytecode import OpCode, Program

log = logging.getLogger(__name__)

INT64_MAX = 2**63 - 1
MASK64 = 2**64 - 1

# Fixed values produced by the syscall stand-ins
MALC_STATUS = 0
MALC_ADDRESS = 0x1000
MCMP_RESULT = 0
OPEN_DESCRIPTOR = 3
READ_COUNT = 10
CLOS_STATUS = 0


def wrap64(value: int) -> int:
    value &= MASK64
    return value - 2**64 if value > INT64_MAX else value


def trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def trunc_mod(a: int, b: int) -> int:
    # sign follows the dividend, as with truncating division
    return a - b * trunc_div(a, b)


class VMErrorKind(Enum):
    STACK_UNDERFLOW = auto()
    PC_OUT_OF_RANGE = auto()
    BAD_ADDRESS = auto()
    DIVISION_BY_ZERO = auto()


class VMError(Exception):
    """Fatal runtime fault; execution stops at the faulting instruction."""

    def __init__(self, kind: VMErrorKind, message: str, pc: int):
        super().__init__(f"{message} (pc={pc})")
        self.kind = kind
        self.pc = pc


@dataclass
class ExecutionResult:
    value: Optional[int]
    stack: List[int]
    steps: int


class StackVM:
    def __init__(
        self,
        program: Program,
        trace: bool = False,
        output_callback: Optional[Callable[[str], None]] = None,
    ):
        self.program = program
        self.trace = trace
        self._output_callback = output_callback

        self.stack: List[int] = []
        self.pc: int = 0
        self.bp: int = 0
        self.running = False
        self.steps = 0
        self.frame_depth = 0
        # stack index of the saved frame base pushed by the outermost ENT
        self.root_base: Optional[int] = None

    def _output(self, text: str):
        """Output text via callback or print."""
        if self._output_callback:
            self._output_callback(text)
        else:
            print(text, end="")

    def _pop(self, pc: int) -> int:
        if not self.stack:
            raise VMError(VMErrorKind.STACK_UNDERFLOW,
                          f"Stack underflow in {self.program[pc].op.name}", pc)
        return self.stack.pop()

    def _check_address(self, addr: int, pc: int) -> int:
        if addr < 0 or addr >= len(self.stack):
            raise VMError(VMErrorKind.BAD_ADDRESS,
                          f"{self.program[pc].op.name} address {addr} outside stack of size {len(self.stack)}", pc)
        return addr

    def run(self) -> ExecutionResult:
        self.stack = []
        self.pc = 0
        self.bp = 0
        self.steps = 0
        self.frame_depth = 0
        self.root_base = None
        self.running = True
        result: Optional[int] = None

        code = self.program
        stack = self.stack
        while self.running:
            pc = self.pc
            if pc < 0 or pc >= len(code):
                raise VMError(VMErrorKind.PC_OUT_OF_RANGE,
                              f"Program counter {pc} outside program of length {len(code)}", pc)
            instr = code[pc]
            if self.trace:
                log.debug("TRACE pc=%d instr=%s stack=%s", pc, instr, stack)
            op = instr.op
            arg = instr.arg
            self.pc += 1
            self.steps += 1

            if op is OpCode.IMM:
                stack.append(int(arg))

            elif op is OpCode.PSH:
                if not stack:
                    raise VMError(VMErrorKind.STACK_UNDERFLOW, "PSH on empty stack", pc)
                stack.append(stack[-1])

            elif op in (OpCode.ADD, OpCode.SUB, OpCode.MUL, OpCode.DIV, OpCode.MOD):
                b = self._pop(pc); a = self._pop(pc)
                if op is OpCode.ADD:
                    res = a + b
                elif op is OpCode.SUB:
                    res = a - b
                elif op is OpCode.MUL:
                    res = a * b
                else:
                    if b == 0:
                        raise VMError(VMErrorKind.DIVISION_BY_ZERO, "Division by zero", pc)
                    res = trunc_div(a, b) if op is OpCode.DIV else trunc_mod(a, b)
                stack.append(wrap64(res))

            elif op in (OpCode.EQ, OpCode.LT, OpCode.GT):
                b = self._pop(pc); a = self._pop(pc)
                if op is OpCode.EQ:
                    res = int(a == b)
                elif op is OpCode.LT:
                    res = int(a < b)
                else:  # GT
                    res = int(a > b)
                stack.append(res)

            elif op is OpCode.JMP:
                self.pc = int(arg)

            elif op is OpCode.BZ:
                if self._pop(pc) == 0:
                    self.pc = int(arg)

            elif op is OpCode.BNZ:
                if self._pop(pc) != 0:
                    self.pc = int(arg)

            elif op is OpCode.JSR:
                # return address shares the operand stack with data
                stack.append(self.pc)
                self.pc = int(arg)

            elif op is OpCode.ENT:
                if self.frame_depth == 0:
                    self.root_base = len(stack)
                stack.append(self.bp)
                self.bp = len(stack)
                stack.extend([0] * int(arg))
                self.frame_depth += 1

            elif op is OpCode.ADJ:
                for _ in range(int(arg)):
                    self._pop(pc)

            elif op is OpCode.LEV:
                ret_val = self._pop(pc)
                saved = self._check_address(self.bp - 1, pc)
                old_bp = stack[saved]
                del stack[saved:]
                self.bp = old_bp
                self.pc = self._pop(pc)
                for _ in range(int(arg)):
                    self._pop(pc)
                stack.append(ret_val)
                self.frame_depth = max(self.frame_depth - 1, 0)
                if self.frame_depth == 0:
                    self.root_base = None

            elif op is OpCode.LEA:
                stack.append(self.bp + int(arg))

            elif op in (OpCode.LI, OpCode.LC):
                addr = self._check_address(self._pop(pc), pc)
                val = stack[addr]
                stack.append(val & 0xFF if op is OpCode.LC else val)

            elif op in (OpCode.SI, OpCode.SC):
                val = self._pop(pc)
                addr = self._check_address(self._pop(pc), pc)
                stack[addr] = val & 0xFF if op is OpCode.SC else val

            elif op is OpCode.PRINTF:
                self._output(str(arg))

            elif op is OpCode.EXIT:
                result = stack[-1] if stack else None
                if self.root_base is not None:
                    # discard the outermost frame and anything nested above it
                    del stack[self.root_base:]
                    if result is not None:
                        stack.append(result)
                if result is not None:
                    self._output(f"Program exited with value: {result}\n")
                else:
                    self._output("Program exited: stack is empty\n")
                self.running = False

            elif op is OpCode.MALC:
                self._pop(pc); self._pop(pc)   # flags, size
                stack.append(MALC_STATUS)
                stack.append(MALC_ADDRESS)

            elif op is OpCode.FREE:
                self._pop(pc)

            elif op is OpCode.MSET:
                for _ in range(3):
                    self._pop(pc)

            elif op is OpCode.MCMP:
                for _ in range(3):
                    self._pop(pc)
                stack.append(MCMP_RESULT)

            elif op is OpCode.OPEN:
                self._pop(pc); self._pop(pc)
                stack.append(OPEN_DESCRIPTOR)

            elif op is OpCode.READ:
                for _ in range(3):
                    self._pop(pc)
                stack.append(READ_COUNT)

            elif op is OpCode.CLOS:
                self._pop(pc)
                stack.append(CLOS_STATUS)

            else:
                raise RuntimeError(f"Unknown opcode {op}")

        return ExecutionResult(result, list(stack), self.steps)

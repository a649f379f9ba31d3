from typing import Dict, NamedTuple
from .bytecode import OpCode

# Builtin functions lowered straight to a syscall stand-in opcode.
# MALC pushes two values (status, pointer) and so has no builtin spelling.


class BuiltinSig(NamedTuple):
    arity: int
    op: OpCode
    # False when the opcode leaves nothing on the stack; codegen pushes a dummy 0.
    pushes_result: bool


def get_builtins() -> Dict[str, BuiltinSig]:
    return {
        "free":   BuiltinSig(1, OpCode.FREE, False),
        "memset": BuiltinSig(3, OpCode.MSET, False),
        "memcmp": BuiltinSig(3, OpCode.MCMP, True),
        "open":   BuiltinSig(2, OpCode.OPEN, True),
        "read":   BuiltinSig(3, OpCode.READ, True),
        "close":  BuiltinSig(1, OpCode.CLOS, True),
    }

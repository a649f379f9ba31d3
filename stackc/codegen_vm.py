from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Sequence
from . import ast as A
from .ast import BinOpKind
from .builtins import get_builtins
from .bytecode import OpCode, Instruction, Program, PLACEHOLDER

log = logging.getLogger(__name__)

BINOP_OPCODES = {
    BinOpKind.ADD: OpCode.ADD,
    BinOpKind.SUB: OpCode.SUB,
    BinOpKind.MUL: OpCode.MUL,
    BinOpKind.DIV: OpCode.DIV,
    BinOpKind.MOD: OpCode.MOD,
    BinOpKind.EQ: OpCode.EQ,
    BinOpKind.LT: OpCode.LT,
    BinOpKind.GT: OpCode.GT,
}


class CompileErrorKind(Enum):
    UNDECLARED_VARIABLE = auto()
    UNRESOLVED_CALL = auto()
    ARITY_MISMATCH = auto()
    DUPLICATE_FUNCTION = auto()
    NESTED_FUNCTION = auto()


class CompileError(Exception):
    def __init__(self, kind: CompileErrorKind, name: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.name = name


@dataclass
class Scope:
    """Slot assignments for one frame: the top-level code or a single function.

    Parameters occupy slots 0..len(params)-1; every declaration after that
    takes the next slot, so offsets only ever grow and are never reused.
    """
    function: Optional[str] = None
    num_params: int = 0
    slots: Dict[str, int] = field(default_factory=dict)
    next_slot: int = 0
    frame_pc: int = 0   # index of the ENT reserving this frame

    @classmethod
    def for_function(cls, fn: A.FunctionDef, frame_pc: int) -> Scope:
        slots = {name: i for i, name in enumerate(fn.params)}
        return cls(fn.name, len(fn.params), slots, len(fn.params), frame_pc)

    def declare(self, name: str) -> int:
        slot = self.next_slot
        self.next_slot += 1
        self.slots[name] = slot
        return slot

    def lookup(self, name: str, usage: str) -> int:
        if name not in self.slots:
            raise CompileError(CompileErrorKind.UNDECLARED_VARIABLE, name,
                               f"{usage} undeclared variable '{name}'")
        return self.slots[name]


@dataclass
class Patch:
    index: int   # JSR awaiting its target
    name: str
    argc: int
    caller: Optional[str] = None   # None for top-level code


@dataclass
class FunctionEntry:
    name: str
    address: int
    num_params: int


class CodeGenVM:
    def __init__(self):
        self.code: Program = []
        self.functions: Dict[str, FunctionEntry] = {}
        self.patches: List[Patch] = []
        self.builtins = get_builtins()
        self._frames: List[Scope] = []

    def generate(self, root: A.Stmt) -> Program:
        outer = Scope(frame_pc=0)
        self._frames.append(outer)
        self._emit(OpCode.ENT, PLACEHOLDER)
        self._emit_stmt(root, outer)
        self._emit_epilogue(outer)

        self._resolve_patches()
        for scope in self._frames:
            self.code[scope.frame_pc].arg = scope.next_slot
            log.debug("frame %s: %d slot(s)", scope.function or "<top>", scope.next_slot)
        return self.code

    def _emit(self, op: OpCode, arg=None) -> int:
        self.code.append(Instruction(op, arg))
        return len(self.code) - 1

    def _emit_epilogue(self, outer: Scope):
        # Reached only when top-level code falls off its end. main is the
        # entry point unless top-level code already called it.
        entry = self.functions.get("main")
        called = any(p.name == "main" and p.caller is None for p in self.patches)
        if entry is not None and not called:
            if entry.num_params:
                raise CompileError(CompileErrorKind.ARITY_MISMATCH, "main",
                                   f"Entry point 'main' must take no parameters, takes {entry.num_params}")
            self._emit_call(A.Call("main"), outer)
        else:
            self._emit(OpCode.IMM, 0)
        self._emit(OpCode.PSH)
        self._emit(OpCode.EXIT)

    def _resolve_patches(self):
        for patch in self.patches:
            entry = self.functions.get(patch.name)
            if entry is None:
                raise CompileError(CompileErrorKind.UNRESOLVED_CALL, patch.name,
                                   f"Unresolved call to '{patch.name}'")
            if patch.argc != entry.num_params:
                raise CompileError(CompileErrorKind.ARITY_MISMATCH, patch.name,
                                   f"'{patch.name}' takes {entry.num_params} argument(s), "
                                   f"called with {patch.argc}")
            self.code[patch.index].arg = entry.address
            log.debug("patched JSR at %d -> %s@%d", patch.index, patch.name, entry.address)

    def _emit_stmt(self, st: A.Stmt, scope: Scope):
        if isinstance(st, A.Return):
            self._emit_expr(st.value, scope)
            if scope.function is None:
                # duplicate so EXIT can observe the value
                self._emit(OpCode.PSH)
                self._emit(OpCode.EXIT)
            else:
                self._emit(OpCode.LEV, scope.num_params)
        elif isinstance(st, A.Print):
            self._emit(OpCode.PRINTF, st.text)
        elif isinstance(st, A.If):
            self._emit_if(st, scope)
        elif isinstance(st, A.While):
            self._emit_while(st, scope)
        elif isinstance(st, A.Sequence):
            for s in st.stmts:
                self._emit_stmt(s, scope)
        elif isinstance(st, A.Declaration):
            slot = scope.declare(st.name)
            self._emit(OpCode.LEA, slot)
            self._emit_expr(st.value, scope)
            self._emit(OpCode.SI)
        elif isinstance(st, A.Assignment):
            slot = scope.lookup(st.name, "Assignment to")
            self._emit(OpCode.LEA, slot)
            self._emit_expr(st.value, scope)
            self._emit(OpCode.SI)
        elif isinstance(st, A.FunctionDef):
            self._emit_function(st, scope)
        else:
            raise TypeError(f"Unknown statement node {st!r}")

    def _emit_if(self, st: A.If, scope: Scope):
        self._emit_expr(st.cond, scope)
        bz_index = self._emit(OpCode.BZ, PLACEHOLDER)
        self._emit_stmt(st.then_branch, scope)
        if st.else_branch is not None:
            jmp_index = self._emit(OpCode.JMP, PLACEHOLDER)
            self.code[bz_index].arg = len(self.code)
            self._emit_stmt(st.else_branch, scope)
            self.code[jmp_index].arg = len(self.code)
        else:
            self.code[bz_index].arg = len(self.code)

    def _emit_while(self, st: A.While, scope: Scope):
        loop_start = len(self.code)
        self._emit_expr(st.cond, scope)
        bz_index = self._emit(OpCode.BZ, PLACEHOLDER)
        self._emit_stmt(st.body, scope)
        self._emit(OpCode.JMP, loop_start)
        self.code[bz_index].arg = len(self.code)

    def _emit_function(self, fn: A.FunctionDef, scope: Scope):
        """Lay out a function body inline, skipped over by a jump.

        Calling convention: the caller pushes the arguments left to right and
        JSR pushes the return address; the callee's ENT saves the frame base
        and reserves its slots. Argument i then sits at frame offset i-k-2
        (k = number of parameters) and the prologue copies it into slot i.
        LEV k discards the arguments and leaves only the return value.
        """
        if scope.function is not None:
            raise CompileError(CompileErrorKind.NESTED_FUNCTION, fn.name,
                               f"Function '{fn.name}' defined inside '{scope.function}'")
        if fn.name in self.functions or fn.name in self.builtins:
            raise CompileError(CompileErrorKind.DUPLICATE_FUNCTION, fn.name,
                               f"Redefinition of function '{fn.name}'")

        skip_index = self._emit(OpCode.JMP, PLACEHOLDER)
        entry = len(self.code)
        self.functions[fn.name] = FunctionEntry(fn.name, entry, len(fn.params))
        fn_scope = Scope.for_function(fn, frame_pc=entry)
        self._frames.append(fn_scope)

        k = fn_scope.num_params
        self._emit(OpCode.ENT, PLACEHOLDER)
        for i in range(k):
            self._emit(OpCode.LEA, i)
            self._emit(OpCode.LEA, i - k - 2)
            self._emit(OpCode.LI)
            self._emit(OpCode.SI)
        self._emit_stmt(fn.body, fn_scope)
        # implicit return 0
        self._emit(OpCode.IMM, 0)
        self._emit(OpCode.LEV, k)
        self.code[skip_index].arg = len(self.code)

    def _emit_args(self, args: Sequence[A.Expr], scope: Scope):
        for arg in args:
            self._emit_expr(arg, scope)

    def _emit_call(self, e: A.Call, scope: Scope):
        sig = self.builtins.get(e.name)
        if sig is not None:
            if len(e.args) != sig.arity:
                raise CompileError(CompileErrorKind.ARITY_MISMATCH, e.name,
                                   f"'{e.name}' takes {sig.arity} argument(s), called with {len(e.args)}")
            self._emit_args(e.args, scope)
            self._emit(sig.op)
            if not sig.pushes_result:
                self._emit(OpCode.IMM, 0)
            return
        self._emit_args(e.args, scope)
        index = self._emit(OpCode.JSR, PLACEHOLDER)
        self.patches.append(Patch(index, e.name, len(e.args), scope.function))

    def _emit_expr(self, e: A.Expr, scope: Scope):
        if isinstance(e, A.NumberLiteral):
            self._emit(OpCode.IMM, e.value)
        elif isinstance(e, A.VariableRef):
            slot = scope.lookup(e.name, "Use of")
            self._emit(OpCode.LEA, slot)
            self._emit(OpCode.LI)
        elif isinstance(e, A.BinaryOp):
            self._emit_expr(e.left, scope)
            self._emit_expr(e.right, scope)
            self._emit(BINOP_OPCODES[e.kind])
        elif isinstance(e, A.Call):
            self._emit_call(e, scope)
        else:
            raise TypeError(f"Unknown expression node {e!r}")

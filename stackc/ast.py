from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

# Expressions
class BinOpKind(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    EQ = "=="
    LT = "<"
    GT = ">"

@dataclass(frozen=True)
class NumberLiteral:
    value: int

@dataclass(frozen=True)
class VariableRef:
    name: str

@dataclass(frozen=True)
class BinaryOp:
    kind: BinOpKind
    left: Expr
    right: Expr

@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple[Expr, ...] = ()

Expr = Union[NumberLiteral, VariableRef, BinaryOp, Call]

# Statements
@dataclass(frozen=True)
class Return:
    value: Expr

@dataclass(frozen=True)
class If:
    cond: Expr
    then_branch: Stmt
    else_branch: Optional[Stmt] = None

@dataclass(frozen=True)
class While:
    cond: Expr
    body: Stmt

@dataclass(frozen=True)
class Sequence:
    stmts: Tuple[Stmt, ...] = ()

@dataclass(frozen=True)
class Declaration:
    name: str
    value: Expr

@dataclass(frozen=True)
class Assignment:
    name: str
    value: Expr

@dataclass(frozen=True)
class FunctionDef:
    name: str
    params: Tuple[str, ...]
    body: Stmt

@dataclass(frozen=True)
class Print:
    # Literal text, written verbatim by the VM.
    text: str

Stmt = Union[Return, If, While, Sequence, Declaration, Assignment, FunctionDef, Print]


def dump(node: Union[Stmt, Expr], indent: int = 0) -> str:
    """Render an AST as an indented tree, one node per line."""
    lines: List[str] = []
    _dump(node, indent, lines)
    return "\n".join(lines)


def _dump(node, depth: int, out: List[str]):
    pad = "  " * depth
    if isinstance(node, NumberLiteral):
        out.append(f"{pad}Number {node.value}")
    elif isinstance(node, VariableRef):
        out.append(f"{pad}Var {node.name}")
    elif isinstance(node, BinaryOp):
        out.append(f"{pad}BinaryOp {node.kind.value}")
        _dump(node.left, depth + 1, out)
        _dump(node.right, depth + 1, out)
    elif isinstance(node, Call):
        out.append(f"{pad}Call {node.name}")
        for arg in node.args:
            _dump(arg, depth + 1, out)
    elif isinstance(node, Return):
        out.append(f"{pad}Return")
        _dump(node.value, depth + 1, out)
    elif isinstance(node, If):
        out.append(f"{pad}If")
        _dump(node.cond, depth + 1, out)
        out.append(f"{pad}Then")
        _dump(node.then_branch, depth + 1, out)
        if node.else_branch is not None:
            out.append(f"{pad}Else")
            _dump(node.else_branch, depth + 1, out)
    elif isinstance(node, While):
        out.append(f"{pad}While")
        _dump(node.cond, depth + 1, out)
        _dump(node.body, depth + 1, out)
    elif isinstance(node, Sequence):
        out.append(f"{pad}Sequence")
        for st in node.stmts:
            _dump(st, depth + 1, out)
    elif isinstance(node, Declaration):
        out.append(f"{pad}Declaration {node.name}")
        _dump(node.value, depth + 1, out)
    elif isinstance(node, Assignment):
        out.append(f"{pad}Assignment {node.name}")
        _dump(node.value, depth + 1, out)
    elif isinstance(node, FunctionDef):
        out.append(f"{pad}FunctionDef {node.name}({', '.join(node.params)})")
        _dump(node.body, depth + 1, out)
    elif isinstance(node, Print):
        out.append(f"{pad}Print {node.text!r}")
    else:
        raise TypeError(f"Not an AST node: {node!r}")

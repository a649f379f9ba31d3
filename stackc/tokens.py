from enum import Enum, auto
from dataclasses import dataclass
from typing import Optional

class TokenType(Enum):
    # Single-character tokens
    LEFT_PAREN = auto()
    RIGHT_PAREN = auto()
    LEFT_BRACE = auto()
    RIGHT_BRACE = auto()
    COMMA = auto()
    SEMICOLON = auto()
    MINUS = auto()
    PLUS = auto()
    SLASH = auto()
    STAR = auto()
    PERCENT = auto()
    EQUAL = auto()

    # One or two character tokens
    BANG_EQUAL = auto()
    EQUAL_EQUAL = auto()
    GREATER = auto()
    GREATER_EQUAL = auto()
    LESS = auto()
    LESS_EQUAL = auto()

    # Literals
    IDENTIFIER = auto()
    STRING = auto()
    NUMBER = auto()

    # Keywords
    INT = auto()
    RETURN = auto()
    IF = auto()
    ELSE = auto()
    WHILE = auto()
    PRINTF = auto()

    EOF = auto()

KEYWORDS = {
    "int": TokenType.INT,
    "return": TokenType.RETURN,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "printf": TokenType.PRINTF,
}

@dataclass
class Token:
    type: TokenType
    lexeme: str
    line: int
    col: int
    literal: Optional[object] = None

    def __repr__(self) -> str:
        lit = f" {self.literal!r}" if self.literal is not None else ""
        return f"{self.type.name} '{self.lexeme}'{lit} (@{self.line}:{self.col})"

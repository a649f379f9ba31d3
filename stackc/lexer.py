from typing import List
from .tokens import Token, TokenType, KEYWORDS

INT64_MAX = 2**63 - 1

ESCAPES = {
    'n': '\n',
    't': '\t',
    '0': '\0',
    '\\': '\\',
    '"': '"',
}

SINGLE_CHAR = {
    '(': TokenType.LEFT_PAREN,
    ')': TokenType.RIGHT_PAREN,
    '{': TokenType.LEFT_BRACE,
    '}': TokenType.RIGHT_BRACE,
    ',': TokenType.COMMA,
    ';': TokenType.SEMICOLON,
    '+': TokenType.PLUS,
    '-': TokenType.MINUS,
    '*': TokenType.STAR,
    '%': TokenType.PERCENT,
}


class LexError(Exception):
    def __init__(self, message: str, line: int, col: int):
        super().__init__(message)
        self.line = line
        self.col = col


class Lexer:
    def __init__(self, source: str):
        self.source = source
        self.tokens: List[Token] = []
        self.start = 0
        self.current = 0
        self.line = 1
        self.col = 1
        self.start_line = 1
        self.start_col = 1

    def tokenize(self) -> List[Token]:
        while not self._is_at_end():
            self.start = self.current
            self.start_line = self.line
            self.start_col = self.col
            self._scan_token()
        self.tokens.append(Token(TokenType.EOF, "", self.line, self.col))
        return self.tokens

    def _is_at_end(self) -> bool:
        return self.current >= len(self.source)

    def _advance(self) -> str:
        ch = self.source[self.current]
        self.current += 1
        if ch == '\n':
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return ch

    def _peek(self) -> str:
        if self._is_at_end():
            return "\0"
        return self.source[self.current]

    def _peek_next(self) -> str:
        if self.current + 1 >= len(self.source):
            return "\0"
        return self.source[self.current + 1]

    def _match(self, expected: str) -> bool:
        if self._is_at_end():
            return False
        if self.source[self.current] != expected:
            return False
        self._advance()
        return True

    def _error(self, message: str) -> LexError:
        return LexError(message, self.start_line, self.start_col)

    def _add_token(self, type_: TokenType, literal=None):
        text = self.source[self.start:self.current]
        self.tokens.append(Token(type_, text, self.start_line, self.start_col, literal))

    def _scan_token(self):
        c = self._advance()
        if c in ' \r\t\n':
            return

        if c in SINGLE_CHAR:
            self._add_token(SINGLE_CHAR[c]); return
        if c == '/':
            if self._match('/'):
                # comment until end of line
                while self._peek() != '\n' and not self._is_at_end():
                    self._advance()
                return
            if self._match('*'):
                self._block_comment(); return
            self._add_token(TokenType.SLASH); return
        if c == '!':
            if self._match('='):
                self._add_token(TokenType.BANG_EQUAL); return
            raise self._error("Unexpected character '!'")
        if c == '=':
            self._add_token(TokenType.EQUAL_EQUAL if self._match('=') else TokenType.EQUAL); return
        if c == '<':
            self._add_token(TokenType.LESS_EQUAL if self._match('=') else TokenType.LESS); return
        if c == '>':
            self._add_token(TokenType.GREATER_EQUAL if self._match('=') else TokenType.GREATER); return
        if c == '"':
            self._string(); return
        if '0' <= c <= '9':
            self._number(); return
        if c.isalpha() or c == '_':
            self._identifier(); return

        raise self._error(f"Unexpected character {c!r}")

    def _block_comment(self):
        while not (self._peek() == '*' and self._peek_next() == '/'):
            if self._is_at_end():
                raise self._error("Unterminated block comment")
            self._advance()
        self._advance()
        self._advance()

    def _string(self):
        value_chars = []
        while self._peek() != '"':
            if self._is_at_end() or self._peek() == '\n':
                raise self._error("Unterminated string literal")
            ch = self._advance()
            if ch == '\\':
                esc = self._advance() if not self._is_at_end() else ''
                if esc not in ESCAPES:
                    raise self._error(f"Unknown escape sequence '\\{esc}'")
                ch = ESCAPES[esc]
            value_chars.append(ch)
        self._advance()  # closing quote
        self._add_token(TokenType.STRING, ''.join(value_chars))

    def _number(self):
        while '0' <= self._peek() <= '9':
            self._advance()
        text = self.source[self.start:self.current]
        value = int(text)
        if value > INT64_MAX:
            raise self._error(f"Integer literal {text} does not fit in 64 bits")
        self._add_token(TokenType.NUMBER, value)

    def _identifier(self):
        while self._peek().isalnum() or self._peek() == '_':
            self._advance()
        text = self.source[self.start:self.current]
        type_ = KEYWORDS.get(text, TokenType.IDENTIFIER)
        self._add_token(type_)

from typing import List
from .tokens import Token, TokenType
from . import ast as A
from .ast import BinOpKind

BINARY_KINDS = {
    TokenType.PLUS: BinOpKind.ADD,
    TokenType.MINUS: BinOpKind.SUB,
    TokenType.STAR: BinOpKind.MUL,
    TokenType.SLASH: BinOpKind.DIV,
    TokenType.PERCENT: BinOpKind.MOD,
    TokenType.EQUAL_EQUAL: BinOpKind.EQ,
    TokenType.LESS: BinOpKind.LT,
    TokenType.GREATER: BinOpKind.GT,
}

# Operators outside the core set, rewritten as `(a OP b) == 0`.
NEGATED_KINDS = {
    TokenType.BANG_EQUAL: BinOpKind.EQ,
    TokenType.LESS_EQUAL: BinOpKind.GT,
    TokenType.GREATER_EQUAL: BinOpKind.LT,
}

class ParseError(Exception):
    def __init__(self, message: str, line: int, col: int):
        super().__init__(message)
        self.line = line
        self.col = col

class Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.current = 0

    def parse(self) -> A.Sequence:
        items: List[A.Stmt] = []
        while not self._is_at_end():
            if self._is_function_start():
                items.append(self._function())
            else:
                items.append(self._statement())
        return A.Sequence(tuple(items))

    # Helpers
    def _match(self, *types: TokenType) -> bool:
        for t in types:
            if self._check(t):
                self._advance()
                return True
        return False

    def _consume(self, type_: TokenType, msg: str) -> Token:
        if self._check(type_):
            return self._advance()
        tok = self._peek()
        found = tok.lexeme if tok.type != TokenType.EOF else "end of input"
        raise ParseError(f"{msg} (found '{found}')", tok.line, tok.col)

    def _check(self, type_: TokenType) -> bool:
        if self._is_at_end():
            return False
        return self._peek().type == type_

    def _check_at(self, offset: int, type_: TokenType) -> bool:
        idx = self.current + offset
        if idx >= len(self.tokens):
            return False
        return self.tokens[idx].type == type_

    def _advance(self) -> Token:
        if not self._is_at_end():
            self.current += 1
        return self._previous()

    def _is_at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _peek(self) -> Token:
        return self.tokens[self.current]

    def _previous(self) -> Token:
        return self.tokens[self.current - 1]

    def _is_function_start(self) -> bool:
        # int NAME ( ... distinguishes a definition from a declaration
        return (self._check(TokenType.INT)
                and self._check_at(1, TokenType.IDENTIFIER)
                and self._check_at(2, TokenType.LEFT_PAREN))

    # Grammar
    def _function(self) -> A.FunctionDef:
        self._consume(TokenType.INT, "Expected 'int' at function start")
        name_tok = self._consume(TokenType.IDENTIFIER, "Expected function name")
        self._consume(TokenType.LEFT_PAREN, "Expected '(' after function name")
        params: List[str] = []
        if not self._check(TokenType.RIGHT_PAREN):
            while True:
                self._consume(TokenType.INT, "Expected 'int' before parameter name")
                p_tok = self._consume(TokenType.IDENTIFIER, "Expected parameter name")
                if p_tok.lexeme in params:
                    raise ParseError(f"Duplicate parameter '{p_tok.lexeme}'", p_tok.line, p_tok.col)
                params.append(p_tok.lexeme)
                if not self._match(TokenType.COMMA):
                    break
        self._consume(TokenType.RIGHT_PAREN, "Expected ')' after parameters")
        body = self._block()
        return A.FunctionDef(name_tok.lexeme, tuple(params), body)

    def _block(self) -> A.Sequence:
        self._consume(TokenType.LEFT_BRACE, "Expected '{' to start block")
        stmts: List[A.Stmt] = []
        while not self._check(TokenType.RIGHT_BRACE):
            if self._is_at_end():
                tok = self._peek()
                raise ParseError("Expected '}' after block (found 'end of input')", tok.line, tok.col)
            stmts.append(self._statement())
        self._consume(TokenType.RIGHT_BRACE, "Expected '}' after block")
        return A.Sequence(tuple(stmts))

    def _statement(self) -> A.Stmt:
        if self._is_function_start():
            tok = self._peek()
            raise ParseError("Function definitions are only allowed at top level", tok.line, tok.col)
        if self._match(TokenType.INT):
            return self._var_decl()
        if self._match(TokenType.PRINTF):
            self._consume(TokenType.LEFT_PAREN, "Expected '(' after 'printf'")
            text = self._consume(TokenType.STRING, "Expected string literal in printf").literal
            self._consume(TokenType.RIGHT_PAREN, "Expected ')' after printf argument")
            self._consume(TokenType.SEMICOLON, "Expected ';' after printf statement")
            return A.Print(text)
        if self._match(TokenType.RETURN):
            value = self._expression()
            self._consume(TokenType.SEMICOLON, "Expected ';' after return value")
            return A.Return(value)
        if self._match(TokenType.IF):
            self._consume(TokenType.LEFT_PAREN, "Expected '(' after 'if'")
            cond = self._expression()
            self._consume(TokenType.RIGHT_PAREN, "Expected ')' after condition")
            then_branch = self._statement()
            else_branch = None
            if self._match(TokenType.ELSE):
                else_branch = self._statement()
            return A.If(cond, then_branch, else_branch)
        if self._match(TokenType.WHILE):
            self._consume(TokenType.LEFT_PAREN, "Expected '(' after 'while'")
            cond = self._expression()
            self._consume(TokenType.RIGHT_PAREN, "Expected ')' after condition")
            body = self._statement()
            return A.While(cond, body)
        if self._check(TokenType.LEFT_BRACE):
            return self._block()
        if self._check(TokenType.IDENTIFIER) and self._check_at(1, TokenType.EQUAL):
            name = self._advance().lexeme
            self._advance()  # '='
            value = self._expression()
            self._consume(TokenType.SEMICOLON, "Expected ';' after assignment")
            return A.Assignment(name, value)
        tok = self._peek()
        found = tok.lexeme if tok.type != TokenType.EOF else "end of input"
        raise ParseError(f"Expected statement (found '{found}')", tok.line, tok.col)

    def _var_decl(self) -> A.Declaration:
        name = self._consume(TokenType.IDENTIFIER, "Expected variable name").lexeme
        value: A.Expr = A.NumberLiteral(0)
        if self._match(TokenType.EQUAL):
            value = self._expression()
        self._consume(TokenType.SEMICOLON, "Expected ';' after variable declaration")
        return A.Declaration(name, value)

    def _expression(self) -> A.Expr:
        return self._equality()

    def _binary(self, operand, *types: TokenType) -> A.Expr:
        expr = operand()
        while self._match(*types):
            op = self._previous().type
            right = operand()
            if op in NEGATED_KINDS:
                test = A.BinaryOp(NEGATED_KINDS[op], expr, right)
                expr = A.BinaryOp(BinOpKind.EQ, test, A.NumberLiteral(0))
            else:
                expr = A.BinaryOp(BINARY_KINDS[op], expr, right)
        return expr

    def _equality(self) -> A.Expr:
        return self._binary(self._comparison, TokenType.EQUAL_EQUAL, TokenType.BANG_EQUAL)

    def _comparison(self) -> A.Expr:
        return self._binary(self._term, TokenType.GREATER, TokenType.GREATER_EQUAL,
                            TokenType.LESS, TokenType.LESS_EQUAL)

    def _term(self) -> A.Expr:
        return self._binary(self._factor, TokenType.PLUS, TokenType.MINUS)

    def _factor(self) -> A.Expr:
        return self._binary(self._unary, TokenType.STAR, TokenType.SLASH, TokenType.PERCENT)

    def _unary(self) -> A.Expr:
        if self._match(TokenType.MINUS):
            right = self._unary()
            return A.BinaryOp(BinOpKind.SUB, A.NumberLiteral(0), right)
        return self._call()

    def _call(self) -> A.Expr:
        if self._check(TokenType.IDENTIFIER) and self._check_at(1, TokenType.LEFT_PAREN):
            name = self._advance().lexeme
            self._advance()  # '('
            args: List[A.Expr] = []
            if not self._check(TokenType.RIGHT_PAREN):
                while True:
                    args.append(self._expression())
                    if not self._match(TokenType.COMMA):
                        break
            self._consume(TokenType.RIGHT_PAREN, "Expected ')' after arguments")
            return A.Call(name, tuple(args))
        return self._primary()

    def _primary(self) -> A.Expr:
        if self._match(TokenType.NUMBER):
            return A.NumberLiteral(self._previous().literal)
        if self._match(TokenType.IDENTIFIER):
            return A.VariableRef(self._previous().lexeme)
        if self._match(TokenType.LEFT_PAREN):
            expr = self._expression()
            self._consume(TokenType.RIGHT_PAREN, "Expected ')' after expression")
            return expr
        tok = self._peek()
        raise ParseError("Expected expression", tok.line, tok.col)

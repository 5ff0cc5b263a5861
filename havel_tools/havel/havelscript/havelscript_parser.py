#!/usr/bin/env python3
"""
HavelScript Parser

Recursive-descent parser turning the lexer's token list into a Program AST.
Arithmetic uses precedence climbing (``* / %`` over ``+ -``) and ``|`` is the
lowest-precedence, left-associative pipe operator. The first unexpected token
aborts the parse; there is no error recovery.
"""

import sys
from typing import List, Optional

from .havelscript_ast import (
    BinaryExpr,
    Call,
    Expression,
    HotkeyBinding,
    Identifier,
    IfExpr,
    LetBinding,
    MemberAccess,
    NumberLiteral,
    PipeExpr,
    Program,
    SourcePosition,
    Statement,
    StringLiteral,
    UnaryExpr,
    dump_ast,
)
from .havelscript_errors import LexError, ParseError, ParseErrorKind
from .havelscript_hotkey import parse_hotkey
from .havelscript_lexer import Token, TokenKind, tokenize

SEPARATORS = (TokenKind.NEWLINE, TokenKind.SEMICOLON)
ADDITIVE_OPERATORS = ("+", "-")
MULTIPLICATIVE_OPERATORS = ("*", "/", "%")


def describe_token(token: Token) -> str:
    """Human-readable description of a token for error messages"""
    if token.kind == TokenKind.END_OF_INPUT:
        return "end of input"
    if token.kind == TokenKind.NEWLINE:
        return "newline"
    return f"{token.kind.value} '{token.raw}'"


class Parser:
    """HavelScript parser"""

    def __init__(self, tokens: List[Token]):
        if not tokens or tokens[-1].kind != TokenKind.END_OF_INPUT:
            raise ValueError("Token stream must end with EndOfInput")
        self.tokens = tokens
        self.position = 0

    # Token helpers

    def _peek(self, offset: int = 0) -> Token:
        index = min(self.position + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _check(self, kind: TokenKind, value: Optional[str] = None) -> bool:
        token = self._peek()
        return token.kind == kind and (value is None or token.value == value)

    def _advance(self) -> Token:
        token = self._peek()
        if token.kind != TokenKind.END_OF_INPUT:
            self.position += 1
        return token

    def _error(
        self, expected: str, kind: ParseErrorKind = ParseErrorKind.UNEXPECTED_TOKEN
    ) -> ParseError:
        token = self._peek()
        return ParseError(expected, describe_token(token), token.line, token.column, kind)

    def _expect(self, kind: TokenKind, expected: str) -> Token:
        if not self._check(kind):
            raise self._error(expected)
        return self._advance()

    def _skip_newlines(self) -> None:
        while self._check(TokenKind.NEWLINE):
            self._advance()

    def _skip_separators(self) -> None:
        while self._peek().kind in SEPARATORS:
            self._advance()

    @staticmethod
    def _position(token: Token) -> SourcePosition:
        return SourcePosition(token.line, token.column)

    # Statements

    def parse_program(self) -> Program:
        """Parse the whole token list"""
        program = Program()
        while True:
            self._skip_separators()
            if self._check(TokenKind.END_OF_INPUT):
                break
            try:
                statement = self._parse_statement(top_level=True)
            except RecursionError:
                raise self._error(
                    "less deeply nested expression", ParseErrorKind.NESTING_TOO_DEEP
                )
            program.statements.append(statement)
            if not (self._peek().kind in SEPARATORS or self._check(TokenKind.END_OF_INPUT)):
                raise self._error("newline or ';'")
        return program

    def _parse_statement(self, top_level: bool) -> Statement:
        token = self._peek()
        if token.kind == TokenKind.HOTKEY:
            if not top_level:
                raise self._error("statement (hotkey bindings are only allowed at top level)")
            return self._parse_hotkey_binding()
        if token.kind == TokenKind.LET:
            return self._parse_let_binding()
        if token.kind == TokenKind.IF:
            return self._parse_if()
        return self._parse_expression()

    def _parse_block(self) -> List[Statement]:
        """Parse '{' Statement* '}'"""
        self._expect(TokenKind.OPEN_BRACE, "'{'")
        body: List[Statement] = []
        while True:
            self._skip_separators()
            if self._check(TokenKind.CLOSE_BRACE):
                break
            if self._check(TokenKind.END_OF_INPUT):
                raise self._error("'}'")
            body.append(self._parse_statement(top_level=False))
            if not (self._peek().kind in SEPARATORS or self._check(TokenKind.CLOSE_BRACE)):
                raise self._error("newline, ';' or '}'")
        self._advance()  # Remove '}'
        return body

    def _parse_hotkey_binding(self) -> HotkeyBinding:
        token = self._advance()
        pattern = parse_hotkey(token.value)
        if pattern is None:
            # The lexer only emits validated hotkeys
            raise ParseError("hotkey", describe_token(token), token.line, token.column)

        self._expect(TokenKind.ARROW, "'=>'")
        self._skip_newlines()
        if self._check(TokenKind.OPEN_BRACE):
            body = self._parse_block()
        else:
            body = [self._parse_statement(top_level=False)]
        return HotkeyBinding(pattern, body, self._position(token))

    def _parse_let_binding(self) -> LetBinding:
        token = self._advance()  # Remove 'let'
        name = self._expect(TokenKind.IDENTIFIER, "identifier")
        self._expect(TokenKind.EQUALS, "'='")
        value = self._parse_expression()
        return LetBinding(name.value, value, self._position(token))

    def _parse_if(self) -> IfExpr:
        token = self._advance()  # Remove 'if'
        self._expect(TokenKind.OPEN_PAREN, "'('")
        self._skip_newlines()
        condition = self._parse_expression()
        self._skip_newlines()
        self._expect(TokenKind.CLOSE_PAREN, "')'")
        self._skip_newlines()
        then_body = self._parse_block()

        else_body = None
        offset = 0
        while self._peek(offset).kind == TokenKind.NEWLINE:
            offset += 1
        if self._peek(offset).kind == TokenKind.ELSE:
            self._skip_newlines()
            self._advance()  # Remove 'else'
            self._skip_newlines()
            else_body = self._parse_block()

        return IfExpr(condition, then_body, else_body, self._position(token))

    # Expressions

    def _parse_expression(self) -> Expression:
        return self._parse_pipe()

    def _parse_pipe(self) -> Expression:
        first = self._parse_additive()
        if not self._check(TokenKind.PIPE):
            return first

        stages = [first]
        while self._check(TokenKind.PIPE):
            self._advance()
            self._skip_newlines()
            stages.append(self._parse_additive())
        return PipeExpr(stages, first.position)

    def _parse_additive(self) -> Expression:
        left = self._parse_multiplicative()
        while self._peek().kind == TokenKind.BINARY_OP and self._peek().value in ADDITIVE_OPERATORS:
            operator = self._advance()
            right = self._parse_multiplicative()
            left = BinaryExpr(operator.value, left, right, self._position(operator))
        return left

    def _parse_multiplicative(self) -> Expression:
        left = self._parse_unary()
        while self._peek().kind == TokenKind.BINARY_OP and self._peek().value in MULTIPLICATIVE_OPERATORS:
            operator = self._advance()
            right = self._parse_unary()
            left = BinaryExpr(operator.value, left, right, self._position(operator))
        return left

    def _parse_unary(self) -> Expression:
        if self._check(TokenKind.BINARY_OP, "-"):
            token = self._advance()
            operand = self._parse_postfix()
            if isinstance(operand, NumberLiteral):
                return NumberLiteral(-operand.value, self._position(token))
            return UnaryExpr("-", operand, self._position(token))
        return self._parse_postfix()

    def _parse_postfix(self) -> Expression:
        expression = self._parse_primary()
        while self._check(TokenKind.DOT):
            self._advance()
            member = self._expect(TokenKind.IDENTIFIER, "member name after '.'")
            expression = MemberAccess(expression, member.value, expression.position)
            if self._check(TokenKind.OPEN_PAREN):
                expression = Call(expression, self._parse_arguments(), expression.position)
        return expression

    def _parse_arguments(self) -> List[Expression]:
        """Parse '(' ArgList ')'"""
        self._expect(TokenKind.OPEN_PAREN, "'('")
        self._skip_newlines()
        args: List[Expression] = []
        if self._check(TokenKind.CLOSE_PAREN):
            self._advance()
            return args

        while True:
            args.append(self._parse_expression())
            self._skip_newlines()
            if self._check(TokenKind.COMMA):
                self._advance()
                self._skip_newlines()
                continue
            self._expect(TokenKind.CLOSE_PAREN, "',' or ')'")
            return args

    def _parse_primary(self) -> Expression:
        token = self._peek()
        position = self._position(token)

        if token.kind == TokenKind.NUMBER:
            self._advance()
            return NumberLiteral(float(token.value), position)

        if token.kind == TokenKind.STRING:
            self._advance()
            return StringLiteral(token.value, token.raw, position)

        if token.kind == TokenKind.IDENTIFIER:
            self._advance()
            identifier = Identifier(token.value, position)
            if self._check(TokenKind.OPEN_PAREN):
                return Call(identifier, self._parse_arguments(), position)
            return identifier

        if token.kind == TokenKind.OPEN_PAREN:
            self._advance()
            self._skip_newlines()
            expression = self._parse_expression()
            self._skip_newlines()
            self._expect(TokenKind.CLOSE_PAREN, "')'")
            return expression

        raise self._error("expression")


def parse(tokens: List[Token]) -> Program:
    """Parse a token list into a Program"""
    return Parser(tokens).parse_program()


def parse_source(source: str) -> Program:
    """Tokenize and parse HavelScript source"""
    return parse(tokenize(source))


def main() -> None:
    """Main function for command-line usage"""
    if len(sys.argv) != 2:
        print("Usage: python havelscript_parser.py <input.hv>")
        sys.exit(1)

    try:
        with open(sys.argv[1], "r", encoding="utf-8") as f:
            source = f.read()

        for line in dump_ast(parse_source(source)):
            print(line)

    except (LexError, ParseError) as e:
        print(f"Syntax error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
HavelScript Lexer

Converts HavelScript source text into a list of tokens. Hotkey patterns such
as ``Ctrl+Alt+t`` are recognized speculatively: the lexer scans a candidate,
validates it and restores its exact state when the candidate is not a hotkey.
"""

import sys
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from .havelscript_errors import LexError, LexErrorKind
from .havelscript_hotkey import HOTKEY_START_CHARS, parse_hotkey


class TokenKind(Enum):
    """Token kinds produced by the lexer"""

    LET = "Let"
    IF = "If"
    ELSE = "Else"
    OPEN_PAREN = "OpenParen"
    CLOSE_PAREN = "CloseParen"
    OPEN_BRACE = "OpenBrace"
    CLOSE_BRACE = "CloseBrace"
    DOT = "Dot"
    COMMA = "Comma"
    SEMICOLON = "Semicolon"
    PIPE = "Pipe"
    ARROW = "Arrow"
    EQUALS = "Equals"
    NUMBER = "Number"
    STRING = "String"
    IDENTIFIER = "Identifier"
    HOTKEY = "Hotkey"
    BINARY_OP = "BinaryOp"
    NEWLINE = "NewLine"
    UNKNOWN = "Unknown"
    END_OF_INPUT = "EndOfInput"


@dataclass(frozen=True)
class Token:
    """Represents a token in the source code"""

    kind: TokenKind
    value: str
    raw: str
    line: int
    column: int


KEYWORDS = {
    "let": TokenKind.LET,
    "if": TokenKind.IF,
    "else": TokenKind.ELSE,
}

SINGLE_CHAR_TOKENS = {
    "(": TokenKind.OPEN_PAREN,
    ")": TokenKind.CLOSE_PAREN,
    "{": TokenKind.OPEN_BRACE,
    "}": TokenKind.CLOSE_BRACE,
    ".": TokenKind.DOT,
    ",": TokenKind.COMMA,
    ";": TokenKind.SEMICOLON,
    "|": TokenKind.PIPE,
    "+": TokenKind.BINARY_OP,
    "-": TokenKind.BINARY_OP,
    "*": TokenKind.BINARY_OP,
    "/": TokenKind.BINARY_OP,
    "%": TokenKind.BINARY_OP,
}

ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "\\": "\\",
    '"': '"',
    "'": "'",
}

SKIPPABLE = " \t\r"


class Lexer:
    """Lexical analyzer for HavelScript"""

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []
        self._tokenize()

    def _peek(self, offset: int = 0) -> str:
        """Character at the cursor plus offset, or '' past the end"""
        index = self.position + offset
        if index < len(self.source):
            return self.source[index]
        return ""

    def _advance(self) -> str:
        """Consume one character, keeping line and column current"""
        char = self.source[self.position]
        self.position += 1
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return char

    def _snapshot(self) -> Tuple[int, int, int]:
        return (self.position, self.line, self.column)

    def _restore(self, snapshot: Tuple[int, int, int]) -> None:
        self.position, self.line, self.column = snapshot

    def _emit(self, kind: TokenKind, value: str, line: int, column: int, raw: str = "") -> None:
        self.tokens.append(Token(kind, value, raw or value, line, column))

    def _tokenize(self) -> None:
        """Tokenize the source code"""
        while self.position < len(self.source):
            char = self.source[self.position]
            next_char = self._peek(1)

            if char in SKIPPABLE:
                self._advance()
            elif char == "\n":
                self._emit(TokenKind.NEWLINE, char, self.line, self.column)
                self._advance()
            elif char == "/" and next_char in ("/", "*"):
                self._skip_comment()
            elif char.isdigit():
                self._tokenize_number()
            elif char == "-" and next_char.isdigit() and self._negative_literal_allowed():
                self._tokenize_number()
            elif char in ('"', "'"):
                self._tokenize_string()
            elif char == "=":
                line, column = self.line, self.column
                self._advance()
                if self._peek() == ">":
                    self._advance()
                    self._emit(TokenKind.ARROW, "=>", line, column)
                else:
                    self._emit(TokenKind.EQUALS, "=", line, column)
            elif char in SINGLE_CHAR_TOKENS:
                self._emit(SINGLE_CHAR_TOKENS[char], char, self.line, self.column)
                self._advance()
            elif (char == "F" and next_char.isdigit()) or char in HOTKEY_START_CHARS:
                self._tokenize_hotkey()
            elif char.isalpha() or char == "_":
                self._tokenize_identifier()
            else:
                # Reported by the parser with this position
                self._emit(TokenKind.UNKNOWN, char, self.line, self.column)
                self._advance()

        self.tokens.append(Token(TokenKind.END_OF_INPUT, "", "", self.line, self.column))

    def _negative_literal_allowed(self) -> bool:
        """A '-' folds into a number unless it directly follows a digit or identifier"""
        if self.position == 0:
            return True
        previous = self.source[self.position - 1]
        return not (previous.isalnum() or previous == "_")

    def _skip_comment(self) -> None:
        """Skip a // line comment or a /* block */ comment"""
        if self._peek(1) == "/":
            while self.position < len(self.source) and self._peek() != "\n":
                self._advance()
            return

        self._advance()  # /
        self._advance()  # *
        while self.position < len(self.source):
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()

    def _tokenize_string(self) -> None:
        """Tokenize a string literal with escape sequence support"""
        start_line = self.line
        start_column = self.column
        quote = self._advance()
        string = ""
        raw = ""

        while self.position < len(self.source) and self._peek() != quote:
            char = self._advance()
            raw += char
            if char != "\\":
                string += char
                continue

            if self.position >= len(self.source):
                break
            escape_char = self._advance()
            raw += escape_char
            if escape_char in ESCAPES:
                string += ESCAPES[escape_char]
            else:
                # Unknown escape sequence, kept literally
                string += "\\" + escape_char

        if self.position >= len(self.source):
            raise LexError(
                LexErrorKind.UNTERMINATED_STRING,
                "Unterminated string",
                start_line,
                start_column,
            )

        self._advance()  # Skip closing quote
        self.tokens.append(Token(TokenKind.STRING, string, raw, start_line, start_column))

    def _tokenize_number(self) -> None:
        """Tokenize a number, including a folded leading '-'"""
        start_line = self.line
        start_column = self.column
        number = ""

        if self._peek() == "-":
            number += self._advance()

        while self._peek().isdigit():
            number += self._advance()

        if self._peek() == "." and self._peek(1).isdigit():
            number += self._advance()
            while self._peek().isdigit():
                number += self._advance()

        self._emit(TokenKind.NUMBER, number, start_line, start_column)

    def _tokenize_identifier(self) -> None:
        """Tokenize an identifier or keyword"""
        start_line = self.line
        start_column = self.column
        identifier = ""

        while self._peek() and (self._peek().isalnum() or self._peek() == "_"):
            identifier += self._advance()

        kind = KEYWORDS.get(identifier, TokenKind.IDENTIFIER)
        self._emit(kind, identifier, start_line, start_column)

    def _tokenize_hotkey(self) -> None:
        """Speculatively tokenize a hotkey, falling back to an identifier"""
        snapshot = self._snapshot()
        start_line = self.line
        start_column = self.column
        candidate = ""

        while self._peek() and (self._peek().isalnum() or self._peek() in "_+-"):
            candidate += self._advance()

        if parse_hotkey(candidate) is not None:
            self._emit(TokenKind.HOTKEY, candidate, start_line, start_column)
            return

        self._restore(snapshot)
        self._tokenize_identifier()


def tokenize(source: str) -> List[Token]:
    """Tokenize HavelScript source, ending with an EndOfInput token"""
    return Lexer(source).tokens


def main() -> None:
    """Main function for command-line usage"""
    if len(sys.argv) != 2:
        print("Usage: python havelscript_lexer.py <input.hv>")
        sys.exit(1)

    try:
        with open(sys.argv[1], "r", encoding="utf-8") as f:
            source = f.read()

        for token in tokenize(source):
            print(f"{token.line}:{token.column} {token.kind.value} {token.raw!r}")

    except LexError as e:
        print(f"Lexical error at line {e.line}, column {e.column}: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()

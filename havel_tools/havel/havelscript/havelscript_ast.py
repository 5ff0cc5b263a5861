#!/usr/bin/env python3
"""
HavelScript Abstract Syntax Tree

Node classes produced by the parser. Every node records the source position
it was parsed from.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union

from .havelscript_hotkey import HotkeyPattern


@dataclass(frozen=True)
class SourcePosition:
    """Line and column (both 1-based) of a node or token"""

    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


@dataclass
class NumberLiteral:
    value: float
    position: SourcePosition


@dataclass
class StringLiteral:
    value: str
    raw: str
    position: SourcePosition


@dataclass
class Identifier:
    name: str
    position: SourcePosition


@dataclass
class MemberAccess:
    object: "Expression"
    member: str
    position: SourcePosition


@dataclass
class Call:
    callee: "Expression"
    args: List["Expression"]
    position: SourcePosition


@dataclass
class UnaryExpr:
    operator: str
    operand: "Expression"
    position: SourcePosition


@dataclass
class BinaryExpr:
    operator: str
    left: "Expression"
    right: "Expression"
    position: SourcePosition


@dataclass
class PipeExpr:
    """``a | b | c``: each stage receives the previous value as first argument"""

    stages: List["Expression"]
    position: SourcePosition


Expression = Union[
    NumberLiteral,
    StringLiteral,
    Identifier,
    MemberAccess,
    Call,
    UnaryExpr,
    BinaryExpr,
    PipeExpr,
]


@dataclass
class LetBinding:
    name: str
    value: Expression
    position: SourcePosition


@dataclass
class IfExpr:
    condition: Expression
    then_body: List["Statement"]
    else_body: Optional[List["Statement"]]
    position: SourcePosition


@dataclass
class HotkeyBinding:
    pattern: HotkeyPattern
    body: List["Statement"]
    position: SourcePosition


Statement = Union[LetBinding, IfExpr, HotkeyBinding, Expression]


@dataclass
class Program:
    statements: List[Statement] = field(default_factory=list)
    position: SourcePosition = SourcePosition(1, 1)


Node = Union[Program, Statement]


def child_nodes(node: Node) -> Iterator[Node]:
    """Yield the direct children of a node in source order"""
    if isinstance(node, Program):
        yield from node.statements
    elif isinstance(node, LetBinding):
        yield node.value
    elif isinstance(node, IfExpr):
        yield node.condition
        yield from node.then_body
        yield from node.else_body or []
    elif isinstance(node, HotkeyBinding):
        yield from node.body
    elif isinstance(node, MemberAccess):
        yield node.object
    elif isinstance(node, Call):
        yield node.callee
        yield from node.args
    elif isinstance(node, UnaryExpr):
        yield node.operand
    elif isinstance(node, BinaryExpr):
        yield node.left
        yield node.right
    elif isinstance(node, PipeExpr):
        yield from node.stages


def count_nodes(node: Node) -> int:
    """Number of nodes in the tree rooted at node"""
    count = 0
    pending = [node]
    while pending:
        count += 1
        pending.extend(child_nodes(pending.pop()))
    return count


def describe(node: Node) -> str:
    """One-line summary of a node, used by dump_ast"""
    if isinstance(node, Program):
        return f"Program{{{len(node.statements)} statements}}"
    if isinstance(node, LetBinding):
        return f"LetBinding{{{node.name}}}"
    if isinstance(node, IfExpr):
        has_else = "with else" if node.else_body is not None else "no else"
        return f"IfExpr{{{has_else}}}"
    if isinstance(node, HotkeyBinding):
        return f"HotkeyBinding{{{node.pattern}}}"
    if isinstance(node, BinaryExpr):
        return f"BinaryExpr{{{node.operator}}}"
    if isinstance(node, UnaryExpr):
        return f"UnaryExpr{{{node.operator}}}"
    if isinstance(node, PipeExpr):
        return f"PipeExpr{{{len(node.stages)} stages}}"
    if isinstance(node, Call):
        return f"Call{{{len(node.args)} args}}"
    if isinstance(node, MemberAccess):
        return f"MemberAccess{{.{node.member}}}"
    if isinstance(node, Identifier):
        return f"Identifier{{{node.name}}}"
    if isinstance(node, NumberLiteral):
        return f"NumberLiteral{{{node.value:g}}}"
    if isinstance(node, StringLiteral):
        return f'StringLiteral{{"{node.raw}"}}'
    return type(node).__name__


def dump_ast(node: Node, indent: int = 0) -> List[str]:
    """Render the tree rooted at node as indented lines"""
    lines = []
    pending = [(node, indent)]
    while pending:
        current, depth = pending.pop()
        lines.append(f"{'  ' * depth}{describe(current)} @ {current.position}")
        children = list(child_nodes(current))
        pending.extend((child, depth + 1) for child in reversed(children))
    return lines

#!/usr/bin/env python3
"""
HavelScript Compiler

Compiles a HavelScript AST into bytecode for the HavelScript virtual machine.
Each top-level statement becomes one compiled unit; hotkey bindings become
deferred units paired with their hotkey pattern.
"""

import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..builtins.builtin_table import BuiltinSymbol, BuiltinTable, ParamType
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
)
from .havelscript_bytecode import (
    BINARY_OPERATORS,
    CodeObject,
    Opcode,
    Value,
    format_value,
    uint16_to_bytes,
    uint32_to_bytes,
)
from .havelscript_errors import CompileError, CompileErrorKind
from .havelscript_hotkey import HotkeyPattern
from .havelscript_vm import CompiledUnit, ScriptScope

MAX_POOL_SIZE = 0xFFFF
MAX_ARGUMENTS = 0xFF


@dataclass
class CompilationResult:
    """Units produced from one program"""

    top_level_units: List[CompiledUnit] = field(default_factory=list)
    hotkey_bindings: List[Tuple[HotkeyPattern, CompiledUnit]] = field(default_factory=list)
    scope: ScriptScope = field(default_factory=ScriptScope)


def qualified_name(expression: Expression) -> Optional[str]:
    """Flatten ``a.b.c`` to "a.b.c"; None when the chain is not rooted at a name"""
    if isinstance(expression, Identifier):
        return expression.name
    if isinstance(expression, MemberAccess):
        root = qualified_name(expression.object)
        if root is None:
            return None
        return f"{root}.{expression.member}"
    return None


def _error(
    kind: CompileErrorKind,
    message: str,
    position: SourcePosition,
    name: Optional[str] = None,
    expected: Optional[str] = None,
    found: Optional[str] = None,
) -> CompileError:
    return CompileError(kind, message, position.line, position.column, name, expected, found)


class CodeBuilder:
    """Accumulates bytecode and pools for one unit"""

    def __init__(self, name: str, position: SourcePosition):
        self.unit_name = name
        self.position = position
        self.bytecode: List[int] = []
        self.constants: List[Value] = []
        self.names: List[str] = []
        self.symbols: List[BuiltinSymbol] = []
        self.line_table: Dict[int, SourcePosition] = {}
        self._constant_keys: Dict[Tuple[str, Value], int] = {}

    def emit(
        self,
        opcode: Opcode,
        operands: Sequence[int] = (),
        position: Optional[SourcePosition] = None,
    ) -> int:
        """Append an instruction and return its address"""
        address = len(self.bytecode)
        self.bytecode.append(opcode.value)
        self.bytecode.extend(operands)
        if position is not None:
            self.line_table[address] = position
        return address

    def emit_jump(self, opcode: Opcode) -> int:
        """Emit a jump with a placeholder target; returns the operand address"""
        address = self.emit(opcode, uint32_to_bytes(0))
        return address + 1

    def patch_jump(self, operand_address: int) -> None:
        """Point a jump emitted by emit_jump at the current address"""
        target = uint32_to_bytes(len(self.bytecode))
        self.bytecode[operand_address : operand_address + 4] = target

    def _pool_index(self, pool: list, item: object, position: SourcePosition) -> int:
        if len(pool) >= MAX_POOL_SIZE:
            raise CompileError(
                CompileErrorKind.TOO_LARGE,
                f"Too many entries in {self.unit_name} (maximum {MAX_POOL_SIZE})",
                position.line,
                position.column,
            )
        pool.append(item)
        return len(pool) - 1

    def constant(self, value: Value, position: SourcePosition) -> List[int]:
        key = (type(value).__name__, value)
        if key not in self._constant_keys:
            self._constant_keys[key] = self._pool_index(self.constants, value, position)
        return uint16_to_bytes(self._constant_keys[key])

    def name(self, name: str, position: SourcePosition) -> List[int]:
        if name in self.names:
            return uint16_to_bytes(self.names.index(name))
        return uint16_to_bytes(self._pool_index(self.names, name, position))

    def symbol(self, symbol: BuiltinSymbol, position: SourcePosition) -> List[int]:
        for index, existing in enumerate(self.symbols):
            if existing.qualified_name == symbol.qualified_name:
                return uint16_to_bytes(index)
        return uint16_to_bytes(self._pool_index(self.symbols, symbol, position))

    def build(self) -> CodeObject:
        return CodeObject(
            self.unit_name,
            self.position,
            bytes(self.bytecode),
            list(self.constants),
            list(self.names),
            list(self.symbols),
            dict(self.line_table),
        )


@dataclass
class _UnitContext:
    builder: CodeBuilder
    visible_globals: Set[str]
    # Source name -> local slot name for the block being compiled
    locals: Dict[str, str] = field(default_factory=dict)
    slot_count: int = 0


class Compiler:
    """HavelScript compiler"""

    def __init__(self, builtins: BuiltinTable) -> None:
        self.builtins = builtins

    def compile(self, program: Program) -> CompilationResult:
        """Compile a program into load-time units and hotkey bindings"""
        result = CompilationResult()

        all_globals = {s.name for s in program.statements if isinstance(s, LetBinding)}
        defined: Set[str] = set()
        seen_hotkeys: Dict[HotkeyPattern, SourcePosition] = {}

        for statement in program.statements:
            if isinstance(statement, HotkeyBinding):
                pattern = statement.pattern
                if pattern in seen_hotkeys:
                    first = seen_hotkeys[pattern]
                    raise _error(
                        CompileErrorKind.DUPLICATE_HOTKEY,
                        f"Hotkey {pattern} is already bound at line {first.line}",
                        statement.position,
                        name=str(pattern),
                    )
                seen_hotkeys[pattern] = statement.position
                unit = self._compile_unit(
                    f"hotkey {pattern}", statement.position, statement.body, all_globals,
                    result.scope, top_level=False,
                )
                result.hotkey_bindings.append((pattern, unit))
            else:
                unit = self._compile_unit(
                    self._describe(statement), statement.position, [statement], set(defined),
                    result.scope, top_level=True,
                )
                result.top_level_units.append(unit)
                if isinstance(statement, LetBinding):
                    defined.add(statement.name)

        return result

    @staticmethod
    def _describe(statement: Statement) -> str:
        if isinstance(statement, LetBinding):
            return f"let {statement.name}"
        if isinstance(statement, IfExpr):
            return "if"
        return "expression"

    def _compile_unit(
        self,
        name: str,
        position: SourcePosition,
        body: List[Statement],
        visible_globals: Set[str],
        scope: ScriptScope,
        top_level: bool,
    ) -> CompiledUnit:
        context = _UnitContext(CodeBuilder(name, position), visible_globals)
        try:
            self._compile_statements(body, context, top_level)
        except RecursionError:
            raise _error(
                CompileErrorKind.NESTING_TOO_DEEP,
                f"Expression in {name} is too deeply nested",
                position,
            )
        context.builder.emit(Opcode.RETURN)
        return CompiledUnit(context.builder.build(), scope, name)

    def _compile_statements(
        self, statements: List[Statement], context: _UnitContext, top_level: bool
    ) -> None:
        """Compile a statement list leaving the last value on the stack"""
        builder = context.builder
        if not statements:
            builder.emit(Opcode.PUSH_CONST, builder.constant(None, builder.position))
            return

        for index, statement in enumerate(statements):
            if index > 0:
                builder.emit(Opcode.POP)
            self._compile_statement(statement, context, top_level)

    def _compile_statement(
        self, statement: Statement, context: _UnitContext, top_level: bool
    ) -> None:
        builder = context.builder

        if isinstance(statement, LetBinding):
            self._compile_expression(statement.value, context)
            if top_level:
                name = builder.name(statement.name, statement.position)
                builder.emit(Opcode.STORE_GLOBAL, name, statement.position)
            else:
                slot = self._declare_local(statement.name, context)
                name = builder.name(slot, statement.position)
                builder.emit(Opcode.STORE_LOCAL, name, statement.position)

        elif isinstance(statement, IfExpr):
            self._compile_expression(statement.condition, context)
            else_jump = builder.emit_jump(Opcode.JUMP_IF_FALSE)
            self._compile_block(statement.then_body, context)
            end_jump = builder.emit_jump(Opcode.JUMP)
            builder.patch_jump(else_jump)
            self._compile_block(statement.else_body or [], context)
            builder.patch_jump(end_jump)

        else:
            self._compile_expression(statement, context)

    def _compile_block(self, statements: List[Statement], context: _UnitContext) -> None:
        """Compile a nested block; its lets go out of scope at the closing brace"""
        outer = dict(context.locals)
        self._compile_statements(statements, context, top_level=False)
        context.locals = outer

    @staticmethod
    def _declare_local(name: str, context: _UnitContext) -> str:
        """Bind name to a local slot, using a fresh slot when it would shadow a live one"""
        slot = name
        if name in context.locals:
            context.slot_count += 1
            slot = f"{name}#{context.slot_count}"
        context.locals[name] = slot
        return slot

    def _is_variable(self, name: str, context: _UnitContext) -> bool:
        return name in context.locals or name in context.visible_globals

    def _compile_expression(self, expression: Expression, context: _UnitContext) -> None:
        builder = context.builder
        position = expression.position

        if isinstance(expression, (NumberLiteral, StringLiteral)):
            builder.emit(Opcode.PUSH_CONST, builder.constant(expression.value, position))

        elif isinstance(expression, Identifier):
            if expression.name in context.locals:
                slot = context.locals[expression.name]
                builder.emit(Opcode.LOAD_LOCAL, builder.name(slot, position), position)
            elif expression.name in context.visible_globals:
                builder.emit(Opcode.LOAD_GLOBAL, builder.name(expression.name, position), position)
            else:
                self._compile_call(expression, [], 0, position, context)

        elif isinstance(expression, MemberAccess):
            self._compile_call(expression, [], 0, position, context)

        elif isinstance(expression, Call):
            self._compile_call(expression.callee, expression.args, 0, position, context)

        elif isinstance(expression, UnaryExpr):
            self._compile_expression(expression.operand, context)
            builder.emit(Opcode.NEGATE, (), position)

        elif isinstance(expression, BinaryExpr):
            # Left-associative chains nest on the left; walk them without recursing
            chain = []
            node: Expression = expression
            while isinstance(node, BinaryExpr):
                chain.append(node)
                node = node.left
            self._compile_expression(node, context)
            for binary in reversed(chain):
                self._compile_expression(binary.right, context)
                builder.emit(Opcode.BINARY_OP, [BINARY_OPERATORS[binary.operator]], binary.position)

        elif isinstance(expression, PipeExpr):
            self._compile_expression(expression.stages[0], context)
            for stage in expression.stages[1:]:
                self._compile_pipe_stage(stage, context)

        else:
            raise _error(
                CompileErrorKind.NOT_CALLABLE,
                f"Unexpected {type(expression).__name__} in expression position",
                position,
            )

    def _compile_pipe_stage(self, stage: Expression, context: _UnitContext) -> None:
        """Compile a pipe stage; the piped value is already on the stack"""
        if isinstance(stage, Call):
            self._compile_call(stage.callee, stage.args, 1, stage.position, context)
        elif isinstance(stage, MemberAccess):
            self._compile_call(stage, [], 1, stage.position, context)
        elif isinstance(stage, Identifier) and not self._is_variable(stage.name, context):
            self._compile_call(stage, [], 1, stage.position, context)
        else:
            raise _error(
                CompileErrorKind.NOT_CALLABLE,
                "Pipe stage must be a builtin function",
                stage.position,
            )

    def _compile_call(
        self,
        callee: Expression,
        args: List[Expression],
        implicit: int,
        position: SourcePosition,
        context: _UnitContext,
    ) -> None:
        """
        Resolve callee against the builtin table and emit the call

        Args:
            callee: Identifier or member chain naming the builtin
            args: Explicit argument expressions
            implicit: Arguments already on the stack (1 for a piped value)
            position: Position reported in errors and the line table
            context: The unit being compiled
        """
        name = qualified_name(callee)
        if name is None:
            raise _error(
                CompileErrorKind.NOT_CALLABLE,
                "Only builtin functions can be called",
                position,
            )

        symbol = self.builtins.lookup(name)
        if symbol is None:
            raise _error(
                CompileErrorKind.UNKNOWN_SYMBOL,
                f"Unknown symbol: {name}",
                position,
                name=name,
            )

        found = len(args) + implicit
        if found != symbol.arity or found > MAX_ARGUMENTS:
            raise _error(
                CompileErrorKind.ARITY_MISMATCH,
                f"{name} takes {symbol.arity} argument(s), got {found}",
                position,
                name=name,
                expected=str(symbol.arity),
                found=str(found),
            )

        for index, arg in enumerate(args):
            self._check_argument(symbol, index + implicit, arg)
            self._compile_expression(arg, context)

        builder = context.builder
        builder.emit(
            Opcode.CALL_BUILTIN,
            builder.symbol(symbol, position) + [found],
            position,
        )

    @staticmethod
    def _check_argument(symbol: BuiltinSymbol, index: int, arg: Expression) -> None:
        """Reject literal arguments that cannot match the declared parameter type"""
        param_type = symbol.param_type(index)

        if isinstance(arg, NumberLiteral):
            if param_type == ParamType.INTEGER and not arg.value.is_integer():
                raise _error(
                    CompileErrorKind.TYPE_MISMATCH,
                    f"{symbol.qualified_name} argument {index + 1} must be an integer",
                    arg.position,
                    name=symbol.qualified_name,
                    expected=ParamType.INTEGER.value,
                    found=format_value(arg.value),
                )
            if param_type == ParamType.STRING:
                raise _error(
                    CompileErrorKind.TYPE_MISMATCH,
                    f"{symbol.qualified_name} argument {index + 1} must be a string",
                    arg.position,
                    name=symbol.qualified_name,
                    expected=ParamType.STRING.value,
                    found=ParamType.NUMBER.value,
                )

        if isinstance(arg, StringLiteral) and param_type in (ParamType.NUMBER, ParamType.INTEGER):
            raise _error(
                CompileErrorKind.TYPE_MISMATCH,
                f"{symbol.qualified_name} argument {index + 1} must be a number",
                arg.position,
                name=symbol.qualified_name,
                expected=param_type.value,
                found=ParamType.STRING.value,
            )


def main() -> None:
    """Main function for command-line usage"""
    from ..builtins.builtin_stdlib import build_standard_library
    from .havelscript_errors import ScriptError
    from .havelscript_parser import parse_source

    if len(sys.argv) != 2:
        print("Usage: python havelscript_compiler.py <input.hv>")
        sys.exit(1)

    input_file = sys.argv[1]

    try:
        with open(input_file, "r", encoding="utf-8") as f:
            source = f.read()

        result = Compiler(build_standard_library()).compile(parse_source(source))
        units = result.top_level_units + [unit for _, unit in result.hotkey_bindings]
        size = sum(len(unit.code.code) for unit in units)

        print(
            f"Compiled {input_file}: {len(result.top_level_units)} statement(s), "
            f"{len(result.hotkey_bindings)} hotkey(s), {size} bytes"
        )

    except ScriptError as e:
        print(f"Compilation error at line {e.line}, column {e.column}: {e.message}")
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

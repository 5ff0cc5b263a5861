#!/usr/bin/env python3
"""
HavelScript Virtual Machine

Stack machine executing compiled HavelScript units. Execution state lives in
an explicit ``Frame`` so a run can stop before a builtin call and be resumed
later, possibly on another thread.
"""

import logging
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from ..builtins.builtin_table import BuiltinSymbol, ParamType
from .havelscript_ast import SourcePosition
from .havelscript_bytecode import (
    OPERATOR_SYMBOLS,
    CodeObject,
    Opcode,
    Value,
    bytes_to_uint16,
    bytes_to_uint32,
    format_value,
)
from .havelscript_errors import ScriptRuntimeError

logger = logging.getLogger(__name__)


class ExecutionStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    # Stopped before a builtin call; resume the frame to continue
    SUSPENDED = "suspended"
    # Continuing on a background worker; see ExecutionResult.future
    DEFERRED = "deferred"


@dataclass
class ExecutionResult:
    """Outcome of running a compiled unit"""

    status: ExecutionStatus
    value: Value = None
    error: Optional[ScriptRuntimeError] = None
    frame: Optional["Frame"] = None
    future: Optional["Future[ExecutionResult]"] = None

    @property
    def ok(self) -> bool:
        return self.status != ExecutionStatus.FAILED


class ScopeFrozenError(Exception):
    """Raised when assigning to a scope after load time"""

    pass


class ScriptScope:
    """Variables bound by a script's top-level let statements"""

    def __init__(self) -> None:
        self._values: Dict[str, Value] = {}
        self._frozen = False

    def get(self, name: str) -> Value:
        return self._values[name]

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def set(self, name: str, value: Value) -> None:
        if self._frozen:
            raise ScopeFrozenError(f"Script scope is read-only, cannot assign {name}")
        self._values[name] = value

    def freeze(self) -> None:
        """Make the scope read-only once load-time statements have run"""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def snapshot(self) -> Mapping[str, Value]:
        return MappingProxyType(dict(self._values))


@dataclass
class Frame:
    """Execution state of one run of a code object"""

    code: CodeObject
    scope: ScriptScope
    pc: int = 0
    stack: List[Value] = field(default_factory=list)
    locals: Dict[str, Value] = field(default_factory=dict)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize(value: Any) -> Value:
    """Map a native return value onto a script value"""
    if value is None or isinstance(value, (bool, str, float)):
        return value
    if isinstance(value, int):
        return float(value)
    return str(value)


def _show(value: Value) -> str:
    """Format a value for error messages, quoting strings"""
    if isinstance(value, str):
        return repr(value)
    return format_value(value)


def is_truthy(value: Value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    return bool(value)


class VirtualMachine:
    """Executes frames"""

    def run(self, frame: Frame, deadline: Optional[float] = None) -> ExecutionResult:
        """
        Run a frame until it returns, fails or must be suspended

        Args:
            frame: The frame to run (resumed from frame.pc)
            deadline: time.monotonic() value after which builtin calls are
                suspended instead of executed; blocking builtins are always
                suspended when a deadline is given. None runs to completion.

        Returns:
            The execution result
        """
        address = frame.pc
        try:
            while True:
                address = frame.pc
                opcode = Opcode(frame.code.code[address])
                if opcode == Opcode.CALL_BUILTIN and deadline is not None:
                    symbol = frame.code.symbols[bytes_to_uint16(frame.code.code, address + 1)]
                    if symbol.blocking or time.monotonic() >= deadline:
                        logger.debug(
                            "Suspending %s before %s", frame.code.name, symbol.qualified_name
                        )
                        return ExecutionResult(ExecutionStatus.SUSPENDED, frame=frame)
                if opcode == Opcode.RETURN:
                    value = frame.stack.pop() if frame.stack else None
                    return ExecutionResult(ExecutionStatus.COMPLETED, value)
                self._step(frame, opcode, address)
        except ScriptRuntimeError as e:
            return ExecutionResult(ExecutionStatus.FAILED, error=e)
        except (IndexError, KeyError, ValueError) as e:
            position = frame.code.position_at(address)
            error = ScriptRuntimeError(
                f"Corrupt bytecode in {frame.code.name}: {e}", position.line, position.column
            )
            return ExecutionResult(ExecutionStatus.FAILED, error=error)

    def _error(self, frame: Frame, address: int, message: str) -> ScriptRuntimeError:
        position = frame.code.position_at(address)
        return ScriptRuntimeError(message, position.line, position.column)

    def _step(self, frame: Frame, opcode: Opcode, address: int) -> None:
        """Execute the instruction at address and advance the program counter"""
        code = frame.code
        data = code.code
        stack = frame.stack
        frame.pc = address + 1

        if opcode == Opcode.PUSH_CONST:
            stack.append(code.constants[bytes_to_uint16(data, address + 1)])
            frame.pc += 2
        elif opcode == Opcode.LOAD_GLOBAL:
            name = code.names[bytes_to_uint16(data, address + 1)]
            if name not in frame.scope:
                raise self._error(frame, address, f"Variable '{name}' is not defined")
            stack.append(frame.scope.get(name))
            frame.pc += 2
        elif opcode == Opcode.LOAD_LOCAL:
            name = code.names[bytes_to_uint16(data, address + 1)]
            if name not in frame.locals:
                raise self._error(frame, address, f"Variable '{name}' is not defined")
            stack.append(frame.locals[name])
            frame.pc += 2
        elif opcode == Opcode.STORE_GLOBAL:
            name = code.names[bytes_to_uint16(data, address + 1)]
            try:
                frame.scope.set(name, stack[-1])
            except ScopeFrozenError as e:
                raise self._error(frame, address, str(e))
            frame.pc += 2
        elif opcode == Opcode.STORE_LOCAL:
            name = code.names[bytes_to_uint16(data, address + 1)]
            frame.locals[name] = stack[-1]
            frame.pc += 2
        elif opcode == Opcode.CALL_BUILTIN:
            symbol = code.symbols[bytes_to_uint16(data, address + 1)]
            argc = data[address + 3]
            args = stack[len(stack) - argc:] if argc else []
            del stack[len(stack) - argc:]
            stack.append(self._call(frame, address, symbol, args))
            frame.pc += 3
        elif opcode == Opcode.BINARY_OP:
            operator = OPERATOR_SYMBOLS[data[address + 1]]
            right = stack.pop()
            left = stack.pop()
            stack.append(self._binary(frame, address, operator, left, right))
            frame.pc += 1
        elif opcode == Opcode.NEGATE:
            operand = stack.pop()
            if not _is_number(operand):
                raise self._error(
                    frame, address, f"Cannot negate {_show(operand)}"
                )
            stack.append(-float(operand))
        elif opcode == Opcode.POP:
            stack.pop()
        elif opcode == Opcode.JUMP:
            frame.pc = bytes_to_uint32(data, address + 1)
        elif opcode == Opcode.JUMP_IF_FALSE:
            condition = stack.pop()
            if is_truthy(condition):
                frame.pc += 4
            else:
                frame.pc = bytes_to_uint32(data, address + 1)
        else:
            raise self._error(frame, address, f"Unknown opcode {opcode}")

    def _binary(
        self, frame: Frame, address: int, operator: str, left: Value, right: Value
    ) -> Value:
        if operator == "+" and (isinstance(left, str) or isinstance(right, str)):
            return format_value(left) + format_value(right)

        if not (_is_number(left) and _is_number(right)):
            raise self._error(
                frame,
                address,
                f"Unsupported operands for {operator}: "
                f"{_show(left)} and {_show(right)}",
            )

        a = float(left)
        b = float(right)
        if operator == "+":
            return a + b
        if operator == "-":
            return a - b
        if operator == "*":
            return a * b
        if b == 0.0:
            raise self._error(frame, address, "Division by zero")
        if operator == "/":
            return a / b
        return a % b

    def _call(
        self, frame: Frame, address: int, symbol: BuiltinSymbol, args: List[Value]
    ) -> Value:
        native_args: List[Any] = []
        for index, arg in enumerate(args):
            param_type = symbol.param_type(index)
            if param_type == ParamType.STRING and not isinstance(arg, str):
                raise self._error(
                    frame,
                    address,
                    f"{symbol.qualified_name} expects String for argument {index + 1}, "
                    f"got {_show(arg)}",
                )
            if param_type in (ParamType.NUMBER, ParamType.INTEGER) and not _is_number(arg):
                raise self._error(
                    frame,
                    address,
                    f"{symbol.qualified_name} expects {param_type.value} for argument {index + 1}, "
                    f"got {_show(arg)}",
                )
            if param_type == ParamType.INTEGER:
                if not float(arg).is_integer():
                    raise self._error(
                        frame,
                        address,
                        f"{symbol.qualified_name} expects Integer for argument {index + 1}, "
                        f"got {format_value(arg)}",
                    )
                arg = int(arg)
            native_args.append(arg)

        try:
            return _normalize(symbol.native(*native_args))
        except ScriptRuntimeError:
            raise
        except Exception as e:
            raise self._error(frame, address, f"{symbol.qualified_name} failed: {e}")


class CompiledUnit:
    """A zero-argument callable produced from one statement"""

    def __init__(self, code: CodeObject, scope: ScriptScope, description: str):
        self.code = code
        self.scope = scope
        self.description = description

    @property
    def position(self) -> SourcePosition:
        return self.code.position

    def new_frame(self) -> Frame:
        return Frame(self.code, self.scope)

    def start(self, deadline: Optional[float] = None) -> ExecutionResult:
        """Run from the beginning, suspending at builtin calls past deadline"""
        return VirtualMachine().run(self.new_frame(), deadline)

    def resume(self, frame: Frame) -> ExecutionResult:
        """Continue a suspended frame to completion"""
        return VirtualMachine().run(frame)

    def __call__(self) -> ExecutionResult:
        return self.start()

    def __repr__(self) -> str:
        return f"CompiledUnit({self.description!r} @ {self.position})"

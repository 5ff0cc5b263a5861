#!/usr/bin/env python3
"""
HavelScript Bytecode

Opcodes and code objects shared by the compiler, the virtual machine and the
disassembler. Multi-byte operands are little-endian.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from ..builtins.builtin_table import BuiltinSymbol
from .havelscript_ast import SourcePosition

Value = Union[None, bool, float, str]


class Opcode(Enum):
    """HavelScript Virtual Machine Opcodes"""

    PUSH_CONST = 0x10  # u16 constant index
    LOAD_GLOBAL = 0x11  # u16 name index
    LOAD_LOCAL = 0x12  # u16 name index
    STORE_GLOBAL = 0x13  # u16 name index, value stays on the stack
    STORE_LOCAL = 0x14  # u16 name index, value stays on the stack
    CALL_BUILTIN = 0x15  # u16 symbol index, u8 argument count
    BINARY_OP = 0x16  # u8 operator
    NEGATE = 0x17
    POP = 0x18
    JUMP = 0x19  # u32 address
    JUMP_IF_FALSE = 0x1A  # u32 address, pops the condition
    RETURN = 0x1B


# Operand bytes following each opcode
OPERAND_SIZES = {
    Opcode.PUSH_CONST: 2,
    Opcode.LOAD_GLOBAL: 2,
    Opcode.LOAD_LOCAL: 2,
    Opcode.STORE_GLOBAL: 2,
    Opcode.STORE_LOCAL: 2,
    Opcode.CALL_BUILTIN: 3,
    Opcode.BINARY_OP: 1,
    Opcode.NEGATE: 0,
    Opcode.POP: 0,
    Opcode.JUMP: 4,
    Opcode.JUMP_IF_FALSE: 4,
    Opcode.RETURN: 0,
}

BINARY_OPERATORS = {
    "+": 0,
    "-": 1,
    "*": 2,
    "/": 3,
    "%": 4,
}

OPERATOR_SYMBOLS = {code: symbol for symbol, code in BINARY_OPERATORS.items()}


@dataclass
class CodeObject:
    """Bytecode for one compiled unit plus its constant, name and symbol pools"""

    name: str
    position: SourcePosition
    code: bytes = b""
    constants: List[Value] = field(default_factory=list)
    names: List[str] = field(default_factory=list)
    symbols: List[BuiltinSymbol] = field(default_factory=list)
    # Instruction address -> source position, for runtime errors
    line_table: Dict[int, SourcePosition] = field(default_factory=dict)

    def position_at(self, address: int) -> SourcePosition:
        return self.line_table.get(address, self.position)


def uint16_to_bytes(value: int) -> List[int]:
    """Convert 16-bit integer to little-endian bytes"""
    return [value & 0xFF, (value >> 8) & 0xFF]


def uint32_to_bytes(value: int) -> List[int]:
    """Convert 32-bit integer to little-endian bytes"""
    return [
        value & 0xFF,
        (value >> 8) & 0xFF,
        (value >> 16) & 0xFF,
        (value >> 24) & 0xFF,
    ]


def bytes_to_uint16(data: bytes, offset: int) -> int:
    """Convert 2 bytes to 16-bit integer (little-endian)"""
    return data[offset] | (data[offset + 1] << 8)


def bytes_to_uint32(data: bytes, offset: int) -> int:
    """Convert 4 bytes to 32-bit integer (little-endian)"""
    return (
        data[offset]
        | (data[offset + 1] << 8)
        | (data[offset + 2] << 16)
        | (data[offset + 3] << 24)
    )


def decode_opcode(byte: int) -> Optional[Opcode]:
    """Opcode for a byte, or None if the byte is not an opcode"""
    try:
        return Opcode(byte)
    except ValueError:
        return None


def format_value(value: Value) -> str:
    """Render a script value the way scripts see it as text"""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)

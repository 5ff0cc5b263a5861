#!/usr/bin/env python3
"""
HavelScript Bytecode Disassembler

Disassembles HavelScript code objects back to a human-readable format.
"""

import sys
from typing import List

from .havelscript_bytecode import (
    OPERAND_SIZES,
    OPERATOR_SYMBOLS,
    CodeObject,
    Opcode,
    bytes_to_uint16,
    bytes_to_uint32,
    decode_opcode,
    format_value,
)


def format_constant(code: CodeObject, index: int) -> str:
    """Format a constant pool entry as it would appear in source"""
    if index >= len(code.constants):
        return f"#{index} (invalid)"
    value = code.constants[index]
    if isinstance(value, str):
        return f"#{index} {value!r}"
    return f"#{index} {format_value(value)}"


def format_name(code: CodeObject, index: int) -> str:
    if index >= len(code.names):
        return f"#{index} (invalid)"
    return f"#{index} {code.names[index]}"


def format_symbol(code: CodeObject, index: int) -> str:
    if index >= len(code.symbols):
        return f"#{index} (invalid)"
    return f"#{index} {code.symbols[index].qualified_name}"


def disassemble(code: CodeObject) -> List[str]:
    """Disassemble a code object to human-readable format"""
    instructions = []
    bytecode = code.code
    pc = 0

    while pc < len(bytecode):
        address = pc
        opcode = decode_opcode(bytecode[pc])
        pc += 1

        if opcode is None:
            instructions.append(f"0x{address:04X}: UNKNOWN_OPCODE 0x{bytecode[address]:02X}")
            continue

        if pc + OPERAND_SIZES[opcode] > len(bytecode):
            instructions.append(f"0x{address:04X}: {opcode.name} (incomplete)")
            break

        if opcode == Opcode.PUSH_CONST:
            operand = format_constant(code, bytes_to_uint16(bytecode, pc))
        elif opcode in (
            Opcode.LOAD_GLOBAL,
            Opcode.LOAD_LOCAL,
            Opcode.STORE_GLOBAL,
            Opcode.STORE_LOCAL,
        ):
            operand = format_name(code, bytes_to_uint16(bytecode, pc))
        elif opcode == Opcode.CALL_BUILTIN:
            symbol = format_symbol(code, bytes_to_uint16(bytecode, pc))
            operand = f"{symbol} argc={bytecode[pc + 2]}"
        elif opcode == Opcode.BINARY_OP:
            operand = OPERATOR_SYMBOLS.get(bytecode[pc], f"0x{bytecode[pc]:02X}")
        elif opcode in (Opcode.JUMP, Opcode.JUMP_IF_FALSE):
            operand = f"0x{bytes_to_uint32(bytecode, pc):04X}"
        else:
            operand = ""

        pc += OPERAND_SIZES[opcode]
        if operand:
            instructions.append(f"0x{address:04X}: {opcode.name} {operand}")
        else:
            instructions.append(f"0x{address:04X}: {opcode.name}")

    return instructions


def main() -> None:
    """Main function for command-line usage"""
    from ..builtins.builtin_stdlib import build_standard_library
    from .havelscript_compiler import Compiler
    from .havelscript_errors import ScriptError
    from .havelscript_parser import parse_source

    if len(sys.argv) != 2:
        print("Usage: python havelscript_disassembler.py <input.hv>")
        sys.exit(1)

    input_file = sys.argv[1]

    try:
        with open(input_file, "r", encoding="utf-8") as f:
            source = f.read()

        result = Compiler(build_standard_library()).compile(parse_source(source))

        print(f"Disassembly of {input_file}:")
        print("=" * 50)

        for unit in result.top_level_units + [unit for _, unit in result.hotkey_bindings]:
            print(f"{unit.description} ({len(unit.code.code)} bytes):")
            for instruction in disassemble(unit.code):
                print(f"  {instruction}")

    except (OSError, ScriptError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

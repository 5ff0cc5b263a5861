#!/usr/bin/env python3
"""
Havel CLI - Unified command-line interface for HavelScript tools

This CLI provides access to all HavelScript development functionality
including tokenizing, parsing, compilation, disassembly, and running a
script's hotkeys against a USB HID keyboard.
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Any, List, Optional

from .builtins import build_standard_library
from .havelscript.havelscript_ast import dump_ast
from .havelscript.havelscript_disassembler import disassemble
from .havelscript.havelscript_errors import (
    CompileError,
    LexError,
    ParseError,
    ScriptError,
    ScriptRuntimeError,
)
from .havelscript.havelscript_lexer import tokenize
from .havelscript.havelscript_parser import parse_source
from .hotkeys.constants import DEFAULT_PID, DEFAULT_VID, DISPATCH_BUDGET_MS, DISPATCH_WORKERS
from .script_engine import ScriptEngine, compile_script


# Helper functions
def add_device_args(parser: argparse.ArgumentParser) -> None:
    """Add common keyboard connection arguments"""
    parser.add_argument(
        "--vid",
        type=lambda x: int(x, 0),
        default=DEFAULT_VID,
        help=f"USB Vendor ID (default: 0x{DEFAULT_VID:04X})",
    )
    parser.add_argument(
        "--pid",
        type=lambda x: int(x, 0),
        default=DEFAULT_PID,
        help=f"USB Product ID (default: 0x{DEFAULT_PID:04X})",
    )
    parser.add_argument("--device-path", help="Specific HID device path to use")


def add_dispatch_args(parser: argparse.ArgumentParser) -> None:
    """Add hotkey dispatch tuning arguments"""
    parser.add_argument(
        "--budget-ms",
        type=float,
        default=DISPATCH_BUDGET_MS,
        help=f"Time a hotkey may run before moving to a worker (default: {DISPATCH_BUDGET_MS})",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=DISPATCH_WORKERS,
        help=f"Worker threads for long-running hotkeys (default: {DISPATCH_WORKERS})",
    )


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def read_source(input_path: Path) -> str:
    with open(input_path, "r", encoding="utf-8") as f:
        return f.read()


def report_script_error(e: ScriptError) -> None:
    """Print a script error the way each stage names it"""
    if isinstance(e, LexError):
        stage = "Lexical error"
    elif isinstance(e, ParseError):
        stage = "Syntax error"
    elif isinstance(e, CompileError):
        stage = "Compilation error"
    elif isinstance(e, ScriptRuntimeError):
        stage = "Runtime error"
    else:
        stage = "Error"
    print(f"{stage} at line {e.line}, column {e.column}: {e.message}")


def tokens_command(args: Any) -> int:
    """Handle the tokens command"""
    try:
        for token in tokenize(read_source(args.input)):
            print(f"{token.line}:{token.column} {token.kind.value} {token.raw!r}")
        return 0

    except ScriptError as e:
        report_script_error(e)
        return 1
    except OSError as e:
        print(f"Error: {e}")
        return 1


def ast_command(args: Any) -> int:
    """Handle the ast command"""
    try:
        for line in dump_ast(parse_source(read_source(args.input))):
            print(line)
        return 0

    except ScriptError as e:
        report_script_error(e)
        return 1
    except OSError as e:
        print(f"Error: {e}")
        return 1


def compile_command(args: Any) -> int:
    """Handle the compile command"""
    try:
        script = compile_script(
            read_source(args.input), build_standard_library(), run_load_time=False, path=str(args.input)
        )
        units = script.top_level_units + [unit for _, unit in script.hotkey_bindings]
        size = sum(len(unit.code.code) for unit in units)
        print(
            f"Compiled {args.input}: {len(script.top_level_units)} statement(s), "
            f"{len(script.hotkey_bindings)} hotkey(s), {size} bytes"
        )

        if args.disassemble:
            for unit in units:
                print(f"\n{unit.description} @ {unit.position}")
                print("=" * 50)
                for line in disassemble(unit.code):
                    print(line)
        return 0

    except ScriptError as e:
        report_script_error(e)
        return 1
    except OSError as e:
        print(f"Error: {e}")
        return 1


def check_command(args: Any) -> int:
    """Handle the check command"""
    try:
        script = compile_script(
            read_source(args.input), build_standard_library(), run_load_time=False, path=str(args.input)
        )
        stats = script.stats
        print(f"{args.input}: OK")
        print(f"  Tokens: {stats.token_count}")
        print(f"  AST nodes: {stats.node_count}")
        print(f"  Hotkeys: {stats.hotkey_count}")
        for pattern, unit in script.hotkey_bindings:
            print(f"    {pattern} (line {unit.position.line})")
        print(
            f"  Time: lex {stats.lexing_ms:.2f} ms, parse {stats.parsing_ms:.2f} ms, "
            f"compile {stats.compilation_ms:.2f} ms"
        )
        return 0

    except ScriptError as e:
        report_script_error(e)
        return 1
    except OSError as e:
        print(f"Error: {e}")
        return 1


def builtins_command(args: Any) -> int:
    """Handle the builtins command"""
    for symbol in build_standard_library():
        params = ", ".join(t.value for t in symbol.param_types) or "-"
        blocking = " (blocking)" if symbol.blocking else ""
        print(f"{symbol.qualified_name}/{symbol.arity} [{params}]{blocking}: {symbol.doc}")
    return 0


def run_command(args: Any) -> int:
    """Handle the run command"""
    from .hotkeys.hotkey_hid import HidKeyboardListener, HidKeyGrabber, HidListenerError
    from .hotkeys.hotkey_registry import HotkeyRegistry

    registry = HotkeyRegistry(HidKeyGrabber(), args.budget_ms, args.workers)
    engine = ScriptEngine(build_standard_library(), registry)

    try:
        try:
            errors = engine.load_file(str(args.input))
        except ScriptError as e:
            report_script_error(e)
            return 1
        for error in errors:
            print(f"Warning: {error}")

        listener = HidKeyboardListener(
            registry.on_event, args.device_path, args.vid, args.pid
        )
        try:
            listener.start()
        except HidListenerError as e:
            print(f"Error: {e}")
            return 1

        print(f"Running {args.input} with {len(registry)} hotkey(s). Press Ctrl+C to stop.")
        try:
            while listener.running:
                time.sleep(args.reload_interval or 1.0)
                if args.reload_interval:
                    try:
                        if engine.reload_if_changed():
                            print(f"Reloaded {args.input}")
                    except ScriptError as e:
                        print("Reload failed, keeping previous version:")
                        report_script_error(e)
        except KeyboardInterrupt:
            print("\nStopping...")
        finally:
            listener.stop()
        return 0

    except OSError as e:
        print(f"Error: {e}")
        return 1
    finally:
        engine.unload()
        registry.close()


def list_devices_command(args: Any) -> int:
    """Handle the list-devices command"""
    from .hotkeys.hotkey_hid import list_keyboards

    try:
        if args.all:
            import hid

            devices = hid.enumerate()
        else:
            devices = list_keyboards()

        print("Available HID devices:" if args.all else "Available HID keyboards:")
        for i, device in enumerate(devices):
            print(f"{i}: {device['manufacturer_string']} {device['product_string']}")
            print(
                f"   VID: 0x{device['vendor_id']:04X}, PID: 0x{device['product_id']:04X}"
            )
            print(f"   Interface: {device['interface_number']}")
            print(f"   Path: {device['path'].decode('utf-8', errors='replace')}")
            print()
        return 0

    except (IOError, OSError) as e:
        print(f"Error listing devices: {e}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Havel tools - inspect, compile, and run HavelScript hotkey scripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s tokens hotkeys.hv                   # Show the token stream
  %(prog)s ast hotkeys.hv                      # Show the syntax tree
  %(prog)s compile hotkeys.hv --disassemble    # Compile and show bytecode
  %(prog)s check hotkeys.hv                    # Validate a script
  %(prog)s builtins                            # List builtin functions
  %(prog)s run hotkeys.hv                      # Run hotkeys from a HID keyboard
  %(prog)s run hotkeys.hv --reload-interval 2  # Reload when the file changes
  %(prog)s list-devices                        # List available HID keyboards
        """,
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Tokens command
    tokens_parser = subparsers.add_parser("tokens", help="Print the tokens of a script")
    tokens_parser.add_argument("input", type=Path, help="Input .hv source file")

    # AST command
    ast_parser = subparsers.add_parser("ast", help="Print the syntax tree of a script")
    ast_parser.add_argument("input", type=Path, help="Input .hv source file")

    # Compile command
    compile_parser = subparsers.add_parser(
        "compile", help="Compile a script to bytecode"
    )
    compile_parser.add_argument("input", type=Path, help="Input .hv source file")
    compile_parser.add_argument(
        "--disassemble",
        "-d",
        action="store_true",
        help="Display disassembly of every compiled unit",
    )

    # Check command
    check_parser = subparsers.add_parser(
        "check", help="Validate a script and show statistics"
    )
    check_parser.add_argument("input", type=Path, help="Input .hv source file")

    # Builtins command
    subparsers.add_parser("builtins", help="List builtin functions")

    # Run command
    run_parser = subparsers.add_parser(
        "run", help="Run a script's hotkeys from a HID keyboard"
    )
    run_parser.add_argument("input", type=Path, help="Input .hv source file")
    run_parser.add_argument(
        "--reload-interval",
        type=float,
        default=0,
        help="Seconds between checks for script changes (default: 0, no reload)",
    )
    add_device_args(run_parser)
    add_dispatch_args(run_parser)

    # List devices command
    list_parser = subparsers.add_parser("list-devices", help="List available HID keyboards")
    list_parser.add_argument(
        "--all", action="store_true", help="List every HID device, not only keyboards"
    )

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 1

    # Route to appropriate command handler
    if args.command == "tokens":
        return tokens_command(args)
    elif args.command == "ast":
        return ast_command(args)
    elif args.command == "compile":
        return compile_command(args)
    elif args.command == "check":
        return check_command(args)
    elif args.command == "builtins":
        return builtins_command(args)
    elif args.command == "run":
        return run_command(args)
    elif args.command == "list-devices":
        return list_devices_command(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

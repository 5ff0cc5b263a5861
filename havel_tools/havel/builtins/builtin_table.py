#!/usr/bin/env python3
"""
Builtin Symbol Table

Native functions exposed to HavelScript by qualified name (``text.upper``,
``send``). The host populates the table before compiling a script; the
compiler only reads it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class ParamType(Enum):
    """Declared type of a builtin parameter"""

    ANY = "Any"
    NUMBER = "Number"
    INTEGER = "Integer"
    STRING = "String"


class BuiltinError(Exception):
    """Raised when the builtin table is misused"""

    pass


@dataclass(frozen=True)
class BuiltinSymbol:
    """A native function callable from scripts"""

    qualified_name: str
    arity: int
    native: Callable[..., Any]
    param_types: Tuple[ParamType, ...] = ()
    blocking: bool = False
    doc: str = ""

    def param_type(self, index: int) -> ParamType:
        """Declared type of parameter index, ANY when undeclared"""
        if index < len(self.param_types):
            return self.param_types[index]
        return ParamType.ANY


class BuiltinTable:
    """Registry of builtin symbols keyed by qualified name"""

    def __init__(self) -> None:
        self._symbols: Dict[str, BuiltinSymbol] = {}
        self._frozen = False

    def register_builtin(
        self,
        qualified_name: str,
        arity: int,
        native: Callable[..., Any],
        param_types: Sequence[ParamType] = (),
        blocking: bool = False,
        doc: str = "",
    ) -> BuiltinSymbol:
        """
        Register a native function

        Args:
            qualified_name: Script-visible name, e.g. "clipboard.get"
            arity: Number of arguments the function takes
            native: The Python callable
            param_types: Optional declared type per parameter
            blocking: True if the function may block (I/O, sleeping)
            doc: Short description shown by the CLI

        Returns:
            The registered symbol
        """
        if self._frozen:
            raise BuiltinError(f"Builtin table is frozen, cannot register {qualified_name}")
        if qualified_name in self._symbols:
            raise BuiltinError(f"Builtin already registered: {qualified_name}")
        if arity < 0:
            raise BuiltinError(f"Invalid arity {arity} for {qualified_name}")
        if len(param_types) > arity:
            raise BuiltinError(
                f"{qualified_name} declares {len(param_types)} parameter types for arity {arity}"
            )

        symbol = BuiltinSymbol(
            qualified_name, arity, native, tuple(param_types), blocking, doc
        )
        self._symbols[qualified_name] = symbol
        logger.debug("Registered builtin %s/%d", qualified_name, arity)
        return symbol

    def lookup(self, qualified_name: str) -> Optional[BuiltinSymbol]:
        return self._symbols.get(qualified_name)

    def freeze(self) -> None:
        """Make the table read-only"""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, qualified_name: object) -> bool:
        return qualified_name in self._symbols

    def __iter__(self) -> Iterator[BuiltinSymbol]:
        return iter(sorted(self._symbols.values(), key=lambda s: s.qualified_name))

    def __len__(self) -> int:
        return len(self._symbols)

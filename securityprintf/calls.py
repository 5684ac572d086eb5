"""
securityprintf/calls.py
═══════════════════════

Call classifier and format-string extractor.

``classify_call`` decides whether a call targets a logging or formatting
function and how it formats (``PRINT_STYLE`` or ``PRINTF_STYLE``).  A
method is only recognised on a receiver that looks like a logger, so
``parser.error("...")`` or ``dialog.info(...)`` stay ``NOT_LOGGING``.

``"...".format(...)`` on a string literal is a formatting call in its own
right: printf-style, with the literal as its template.

``extract_format_string`` reads a call's template when it is a string
literal, or a name assigned a string literal (one hop).
"""

from __future__ import annotations

import ast
import logging
from typing import FrozenSet, Optional, Sequence

from securityprintf.bindings import BindingKind, BindingTable
from securityprintf.config import NOT_LOGGING, PRINTF, STR_FORMAT, LoggingFunction, SecurityPrintfConfig
from securityprintf.frontend import dotted_name

logger = logging.getLogger(__name__)

LOGGER_FACTORIES: FrozenSet[str] = frozenset({"getLogger", "get_logger", "getChild"})


def _receiver_name(receiver: ast.expr) -> str:
    if isinstance(receiver, ast.Name):
        return receiver.id
    if isinstance(receiver, ast.Attribute):
        return receiver.attr
    return ""


def is_logging_receiver(receiver: ast.expr, config: SecurityPrintfConfig) -> bool:
    """True when *receiver* is a logging namespace or logger object."""
    if isinstance(receiver, ast.Call):
        factory = receiver.func
        return isinstance(factory, (ast.Name, ast.Attribute)) and _receiver_name(factory) in LOGGER_FACTORIES
    namespace = _receiver_name(receiver).lstrip("_").lower()
    if not namespace:
        return False
    return namespace in config.logging_namespaces or namespace.endswith("logger")


def classify_call(call: ast.Call, config: SecurityPrintfConfig) -> LoggingFunction:
    """Classify the callee of *call*."""
    func = call.func
    if isinstance(func, ast.Name):
        return config.lookup_function(func.id) or NOT_LOGGING
    if not isinstance(func, ast.Attribute):
        return NOT_LOGGING

    if func.attr == "format" and receiver_template(call) is not None:
        return STR_FORMAT

    dotted = dotted_name(func)
    if dotted is not None:
        qualified = config.lookup_function(dotted)
        if qualified is not None:
            return qualified

    if not is_logging_receiver(func.value, config):
        return NOT_LOGGING

    method = config.lookup_method(func.attr)
    if method is not None:
        return method
    suffix = config.format_suffix
    if suffix and len(func.attr) > len(suffix) and func.attr.lower().endswith(suffix):
        return PRINTF
    return NOT_LOGGING


def receiver_template(call: ast.Call) -> Optional[str]:
    """The string literal a method is called on, as in ``"{}".format(x)``."""
    func = call.func
    if isinstance(func, ast.Attribute) and isinstance(func.value, ast.Constant) \
            and isinstance(func.value.value, str):
        return func.value.value
    return None


def extract_format_string(
    args: Sequence[ast.expr],
    index: int,
    bindings: BindingTable,
) -> Optional[str]:
    """
    Template at ``args[index]``, or None when it cannot be read statically.

    Follows exactly one declaration hop: ``FMT = "user %s"`` then
    ``log.info(FMT, name)`` resolves, anything computed does not.
    """
    if index >= len(args):
        return None
    arg = args[index]
    if isinstance(arg, ast.Constant) and isinstance(arg.value, str):
        return arg.value
    if isinstance(arg, ast.Name):
        binding = bindings.lookup(arg.id, arg)
        if (
            binding is not None
            and binding.kind in (BindingKind.ASSIGN, BindingKind.VALUE)
            and isinstance(binding.value, ast.Constant)
            and isinstance(binding.value.value, str)
        ):
            return binding.value.value
    logger.debug("unresolved format template at line %d", getattr(arg, "lineno", 0))
    return None


__all__ = [
    "LOGGER_FACTORIES",
    "classify_call",
    "extract_format_string",
    "is_logging_receiver",
    "receiver_template",
]

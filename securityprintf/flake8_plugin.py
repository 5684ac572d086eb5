"""
securityprintf/flake8_plugin.py
═══════════════════════════════

flake8 AST plugin, registered under the ``SPF`` prefix::

    [flake8]
    extend-select = SPF

Codes
-----
    SPF001  direct struct type printing
    SPF002  direct map type printing
    SPF003  potentially sensitive field
    SPF004  cannot determine format string (informational)

flake8 passes the already-parsed tree; the plugin builds a
``CompilationUnit`` around it and runs the same checker suite as the CLI.
``# securityprintf-suppress`` comments are honoured here; flake8 applies
``# noqa`` on its own.
"""

from __future__ import annotations

import ast
import logging
from typing import Any, ClassVar, Iterator, List, Optional, Sequence, Tuple

from securityprintf import __version__
from securityprintf.checkers import (
    INTERNAL_ERROR,
    SYNTAX_ERROR,
    CheckerRunner,
    SuppressionManager,
)
from securityprintf.config import SecurityPrintfConfig
from securityprintf.frontend import CompilationUnit

logger = logging.getLogger(__name__)


class SecurityPrintfPlugin:
    """flake8 entry point ``SPF = securityprintf.flake8_plugin:SecurityPrintfPlugin``."""

    name: ClassVar[str] = "securityprintf"
    version: ClassVar[str] = __version__

    config: ClassVar[SecurityPrintfConfig] = SecurityPrintfConfig.default()

    def __init__(
        self,
        tree: ast.Module,
        filename: str = "<unknown>",
        lines: Optional[Sequence[str]] = None,
    ) -> None:
        self.tree = tree
        self.filename = filename
        self.lines = list(lines) if lines is not None else []

    @classmethod
    def add_options(cls, option_manager: Any) -> None:
        option_manager.add_option(
            "--securityprintf-sensitive",
            default="",
            parse_from_config=True,
            comma_separated_list=True,
            help="Extra sensitive names for SPF003 (comma separated)",
        )
        option_manager.add_option(
            "--securityprintf-namespaces",
            default="",
            parse_from_config=True,
            comma_separated_list=True,
            help="Extra logger receiver names (comma separated)",
        )

    @classmethod
    def parse_options(cls, options: Any) -> None:
        cls.config = SecurityPrintfConfig.from_options({
            "extra_sensitive_names": list(getattr(options, "securityprintf_sensitive", None) or []),
            "extra_logging_namespaces": list(getattr(options, "securityprintf_namespaces", None) or []),
        })

    def run(self) -> Iterator[Tuple[int, int, str, type]]:
        source = "".join(self.lines)
        unit = CompilationUnit.from_tree(self.tree, self.filename, source)
        results = CheckerRunner(config=self.config, suppressions=SuppressionManager()).run(unit)
        for diag in results.diagnostics:
            if diag.error_id in (SYNTAX_ERROR, INTERNAL_ERROR):
                logger.warning("%s: %s", self.filename, diag.message)
                continue
            column = max(diag.location.column - 1, 0)
            yield diag.location.line, column, f"{diag.code} {diag.message}", type(self)


__all__: List[str] = ["SecurityPrintfPlugin"]

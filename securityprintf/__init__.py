"""
securityprintf: logging-exposure checks for Python source
==========================================================

Flags logging and printing calls that hand a whole record or mapping to
the formatter (``logger.info("%s", user)``) or that print a value whose
name marks it as sensitive (``print(password)``, ``log.debug("%s", cfg.token)``).

Core modules
------------
config
    Immutable configuration: sensitive names and logging-function tables.
bindings
    Scope-resolved identifier table built from the ``ast``.
frontend
    Compilation units and call-site traversal.
shapes
    Record / map shape of classes, annotations and constructor calls.
calls
    Call classifier and format-string extractor.
walker
    The recursive argument walker producing verdicts.
analyzer
    Per-call orchestration.
checkers
    Diagnostics, suppressions, checker lifecycle and runner.
reporter
    Terminal / JSON / GCC / SARIF output.

Quick start
-----------
>>> from securityprintf import CheckerRunner
>>> results = CheckerRunner().run_source('print({"a": 1})')
>>> results.diagnostics[0].error_id
'mapPrinting'

Package layout
--------------
::

    securityprintf/
    ├── __init__.py            ← this file
    ├── __main__.py            command-line entry point
    ├── analyzer.py
    ├── bindings.py
    ├── calls.py
    ├── checkers.py
    ├── config.py
    ├── errors.py
    ├── flake8_plugin.py
    ├── frontend.py
    ├── reporter.py
    ├── shapes.py
    └── walker.py
"""

from __future__ import annotations

import logging

__version__ = "0.3.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from securityprintf.analyzer import CallAnalyzer, Finding, analyze_unit  # noqa: E402
from securityprintf.checkers import (  # noqa: E402
    CheckerRunner,
    CheckerRunResults,
    Diagnostic,
    DiagnosticSeverity,
    SecurityPrintfChecker,
    SuppressionManager,
)
from securityprintf.config import SecurityPrintfConfig, SensitiveNameSet  # noqa: E402
from securityprintf.errors import ConfigError, SecurityPrintfError, SourceError  # noqa: E402
from securityprintf.frontend import CompilationUnit, SourceLocation  # noqa: E402
from securityprintf.walker import ArgumentWalker, Verdict, VerdictKind  # noqa: E402

__all__ = [
    "ArgumentWalker",
    "CallAnalyzer",
    "CheckerRunResults",
    "CheckerRunner",
    "CompilationUnit",
    "ConfigError",
    "Diagnostic",
    "DiagnosticSeverity",
    "Finding",
    "SecurityPrintfChecker",
    "SecurityPrintfConfig",
    "SecurityPrintfError",
    "SensitiveNameSet",
    "SourceError",
    "SourceLocation",
    "SuppressionManager",
    "Verdict",
    "VerdictKind",
    "__version__",
    "analyze_unit",
]

"""
securityprintf/checkers.py
══════════════════════════

Checker framework that turns analysis findings into actionable,
CWE-tagged diagnostics.

Architecture
────────────

  ┌─────────────────────────────────────────────────────────┐
  │                   CheckerRunner                         │
  │  ┌──────────────────────────────────────────────────┐   │
  │  │            SecurityPrintfChecker                 │   │
  │  └──────────────────────┬───────────────────────────┘   │
  │                         │                               │
  │  ┌──────────────────────▼───────────────────────────┐   │
  │  │  call classifier │ format extractor │ walker     │   │
  │  └──────────────────────┬───────────────────────────┘   │
  │                         │                               │
  │  ┌──────────────────────▼───────────────────────────┐   │
  │  │   SuppressionManager  (# securityprintf-suppress, │   │
  │  │                        # noqa, file, global)      │   │
  │  └──────────────────────┬───────────────────────────┘   │
  │                         │                               │
  │  ┌──────────────────────▼───────────────────────────┐   │
  │  │        Diagnostic formatter (JSON / GCC / text)  │   │
  │  └──────────────────────────────────────────────────┘   │
  └─────────────────────────────────────────────────────────┘

Each Checker follows a four-phase lifecycle:

  1. **configure()**        read the immutable configuration
  2. **collect_evidence()** run the analysis over the unit
  3. **diagnose()**         turn findings into Diagnostics
  4. **report()**           emit Diagnostics (filtered by suppressions)
"""

from __future__ import annotations

import ast
import io
import json
import logging
import re
import time
import tokenize
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum, auto
from fnmatch import fnmatch
from pathlib import Path
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
    Union,
)

from securityprintf.analyzer import Finding, analyze_unit
from securityprintf.config import SecurityPrintfConfig
from securityprintf.errors import SourceError, describe
from securityprintf.frontend import CompilationUnit, SourceLocation
from securityprintf.shapes import AggregateKind
from securityprintf.walker import VerdictKind

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSeverity(Enum):
    """Findings are warnings; notes and degraded runs are information."""
    WARNING = "warning"
    INFORMATION = "information"


class Confidence(Enum):
    """
    How certain we are that the diagnostic is a true positive.

    HIGH   the printed value is syntactically a record, map or sensitive name
    MEDIUM the verdict needed a declaration hop or a declared type
    LOW    heuristic / pattern-based
    """
    HIGH = auto()
    MEDIUM = auto()
    LOW = auto()


STRUCT_PRINTING = "structPrinting"
MAP_PRINTING = "mapPrinting"
SENSITIVE_FIELD = "sensitiveField"
UNDETERMINED_FORMAT = "undeterminedFormat"
SYNTAX_ERROR = "syntaxError"
INTERNAL_ERROR = "checkerInternalError"

# error_id -> flake8 code
ERROR_CODES: Dict[str, str] = {
    STRUCT_PRINTING: "SPF001",
    MAP_PRINTING: "SPF002",
    SENSITIVE_FIELD: "SPF003",
    UNDETERMINED_FORMAT: "SPF004",
    SYNTAX_ERROR: "SPF900",
    INTERNAL_ERROR: "SPF901",
}


@dataclass(frozen=True)
class Diagnostic:
    """
    One reportable finding, anchored at a call site.

    Attributes
    ----------
    error_id     : Unique identifier (e.g., "sensitiveField")
    message      : Human-readable description
    severity     : DiagnosticSeverity
    location     : Primary source location (the call site)
    confidence   : Confidence level
    cwe          : CWE identifier (0 = none)
    checker_name : Name of the checker that produced this
    evidence     : Machine-readable evidence dict for downstream tooling
    """
    error_id: str
    message: str
    severity: DiagnosticSeverity
    location: SourceLocation
    confidence: Confidence = Confidence.MEDIUM
    cwe: int = 0
    checker_name: str = ""
    evidence: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def code(self) -> str:
        return ERROR_CODES.get(self.error_id, "SPF999")

    def to_json_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "file": self.location.file,
            "linenr": self.location.line,
            "column": self.location.column,
            "severity": self.severity.value,
            "message": self.message,
            "errorId": self.error_id,
            "code": self.code,
        }
        if self.cwe:
            result["cwe"] = self.cwe
        if self.evidence:
            result["evidence"] = self.evidence
        return result

    def to_json_str(self) -> str:
        """Single-line JSON string."""
        return json.dumps(self.to_json_dict(), sort_keys=True)

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line:col: severity: message."""
        return f"{self.location}: {self.severity.value}: {self.message} [{self.error_id}]"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: SUPPRESSION MANAGER
# ═════════════════════════════════════════════════════════════════════════

_SUPPRESS_RE = re.compile(r"securityprintf-suppress\b[:\s]*(?P<ids>[\w\s,*]*)")
_NOQA_RE = re.compile(r"\bnoqa\b(?::\s*(?P<codes>[A-Z]+[0-9]+(?:[,\s]+[A-Z]+[0-9]+)*))?", re.IGNORECASE)


class SuppressionManager:
    """
    Collects suppression rules and filters diagnostics against them.

    Sources:
      1. Inline comments:  ``# securityprintf-suppress sensitiveField`` on
         the flagged line or the line above it, ``# noqa`` and
         ``# noqa: SPF003`` on the flagged line
      2. File-level suppressions (passed programmatically)
      3. Global suppressions (command-line or config)

    Usage
    -----
    >>> sm = SuppressionManager()
    >>> sm.add_file_suppression("mapPrinting", "legacy/*.py")
    >>> sm.add_global_suppression("undeterminedFormat")
    >>> scoped = sm.for_unit(unit)
    >>> if not scoped.is_suppressed(diagnostic):
    ...     emit(diagnostic)

    Inline markers are keyed by ``(file, line)`` and loaded per unit by
    ``for_unit``; the runner-wide manager holds file and global rules only.
    """

    def __init__(self) -> None:
        # {(file, line)} -> error_ids suppressed on that line and the next
        self._inline: Dict[Tuple[str, int], Set[str]] = defaultdict(set)
        # {(file, line)} -> error_ids suppressed on that line only (noqa)
        self._same_line: Dict[Tuple[str, int], Set[str]] = defaultdict(set)
        # file pattern -> error_ids
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        # error_ids suppressed everywhere
        self._global: Set[str] = set()

    def load_inline_suppressions(self, unit: CompilationUnit) -> None:
        """Scan the comments of *unit* for suppression markers."""
        by_code = {code: eid for eid, code in ERROR_CODES.items()}
        readline = io.StringIO(unit.source).readline
        try:
            for tok in tokenize.generate_tokens(readline):
                if tok.type != tokenize.COMMENT:
                    continue
                line = tok.start[0]
                match = _SUPPRESS_RE.search(tok.string)
                if match:
                    ids = [i for i in re.split(r"[\s,]+", match.group("ids")) if i]
                    self._inline[(unit.filename, line)].update(ids or ["*"])
                    continue
                match = _NOQA_RE.search(tok.string)
                if match:
                    codes = match.group("codes")
                    if not codes:
                        self._same_line[(unit.filename, line)].add("*")
                    else:
                        for code in re.split(r"[\s,]+", codes.upper()):
                            if code in by_code:
                                self._same_line[(unit.filename, line)].add(by_code[code])
        except (tokenize.TokenError, SyntaxError) as exc:
            logger.debug("%s: comment scan stopped: %s", unit.filename, exc)

    def for_unit(self, unit: CompilationUnit) -> SuppressionManager:
        """Copy of this manager's rules plus the inline markers of *unit*."""
        scoped = SuppressionManager()
        for key, ids in self._inline.items():
            scoped._inline[key].update(ids)
        for key, ids in self._same_line.items():
            scoped._same_line[key].update(ids)
        scoped._file_level = self._file_level
        scoped._global = self._global
        scoped.load_inline_suppressions(unit)
        return scoped

    def add_file_suppression(self, error_id: str, file_pattern: str) -> None:
        """Suppress ``error_id`` in files matching ``file_pattern``."""
        self._file_level[file_pattern].add(error_id)

    def add_global_suppression(self, error_id: str) -> None:
        """Globally suppress ``error_id``."""
        self._global.add(error_id)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        """True if any rule covers *diag*."""
        eid = diag.error_id

        if eid in self._global or "*" in self._global:
            return True

        loc = diag.location
        same = self._same_line.get((loc.file, loc.line), set())
        if eid in same or "*" in same:
            return True

        # marker on the flagged line or on the line above it
        for line_offset in (0, 1):
            suppressed_ids = self._inline.get((loc.file, loc.line - line_offset), set())
            if eid in suppressed_ids or "*" in suppressed_ids:
                return True

        for pattern, ids in self._file_level.items():
            if eid in ids or "*" in ids:
                if pattern == loc.file or loc.file.endswith(pattern) or fnmatch(loc.file, pattern):
                    return True

        return False

    def filter_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
        """Drop the suppressed diagnostics, keeping order."""
        return [d for d in diagnostics if not self.is_suppressed(d)]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: CHECKER BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class CheckerContext:
    """
    Per-unit state handed to each checker.

    Attributes
    ----------
    unit         : CompilationUnit being analysed
    config       : immutable SecurityPrintfConfig
    suppressions : SuppressionManager
    stats        : mutable dict for timing / counting statistics
    """
    unit: CompilationUnit
    config: SecurityPrintfConfig = field(default_factory=SecurityPrintfConfig.default)
    suppressions: SuppressionManager = field(default_factory=SuppressionManager)
    stats: Dict[str, Any] = field(default_factory=dict)


class Checker(ABC):
    """
    Base class for the checkers a CheckerRunner drives.

    Lifecycle
    ─────────
      1. ``configure(ctx)``        receive context, read configuration
      2. ``collect_evidence(ctx)`` run or consume analyses
      3. ``diagnose(ctx)``         correlate evidence into diagnostics
      4. ``report(ctx)``           return final diagnostics

    Subclass Contract
    ─────────────────
      - Override ``name``, ``description``, ``error_ids``
      - Implement ``collect_evidence()`` and ``diagnose()``
    """

    name: ClassVar[str] = "base-checker"
    description: ClassVar[str] = ""
    error_ids: ClassVar[FrozenSet[str]] = frozenset()
    default_severity: ClassVar[DiagnosticSeverity] = DiagnosticSeverity.WARNING
    cwe_ids: ClassVar[Dict[str, int]] = {}  # error_id -> CWE number

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    def configure(self, ctx: CheckerContext) -> None:
        """Called before evidence collection.  Default does nothing."""

    @abstractmethod
    def collect_evidence(self, ctx: CheckerContext) -> None:
        ...

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        """Append diagnostics to ``self._diagnostics``."""
        ...

    def report(self, ctx: CheckerContext) -> List[Diagnostic]:
        """Return final diagnostics, filtered by suppressions."""
        return ctx.suppressions.filter_diagnostics(self._diagnostics)

    def _emit(
        self,
        error_id: str,
        message: str,
        location: SourceLocation,
        severity: Optional[DiagnosticSeverity] = None,
        confidence: Confidence = Confidence.MEDIUM,
        evidence: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record a diagnostic tagged with this checker's name and CWE."""
        self._diagnostics.append(Diagnostic(
            error_id=error_id,
            message=message,
            severity=severity or self.default_severity,
            location=location,
            confidence=confidence,
            cwe=self.cwe_ids.get(error_id, 0),
            checker_name=self.name,
            evidence=evidence or {},
        ))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: CHECKER REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class CheckerRegistry:
    """
    Registry of available checkers.

    >>> registry = CheckerRegistry()
    >>> registry.register(SecurityPrintfChecker)
    >>> registry.names
    ['security-printf']
    """

    def __init__(self) -> None:
        self._checkers: Dict[str, Type[Checker]] = {}

    def register(self, checker_cls: Type[Checker]) -> Type[Checker]:
        """Register a checker class (usable as a class decorator)."""
        self._checkers[checker_cls.name] = checker_cls
        return checker_cls

    def get_all(self) -> List[Type[Checker]]:
        """Registered classes, in registration order."""
        return list(self._checkers.values())

    def get_by_name(self, name: str) -> Optional[Type[Checker]]:
        return self._checkers.get(name)

    @property
    def names(self) -> List[str]:
        return sorted(self._checkers.keys())


# ═════════════════════════════════════════════════════════════════════════
#  PART 5: SECURITY PRINTF CHECKER
# ═════════════════════════════════════════════════════════════════════════

class SecurityPrintfChecker(Checker):
    """
    Flags logging calls that print whole records/maps or sensitive values.

    CWE-532: Insertion of Sensitive Information into Log File
    """

    name: ClassVar[str] = "security-printf"
    description: ClassVar[str] = "Sensitive fields and whole records/maps passed to logging calls"
    error_ids: ClassVar[FrozenSet[str]] = frozenset({
        STRUCT_PRINTING, MAP_PRINTING, SENSITIVE_FIELD, UNDETERMINED_FORMAT,
    })
    default_severity: ClassVar[DiagnosticSeverity] = DiagnosticSeverity.WARNING
    cwe_ids: ClassVar[Dict[str, int]] = {
        STRUCT_PRINTING: 532,
        MAP_PRINTING: 532,
        SENSITIVE_FIELD: 532,
    }

    def __init__(self) -> None:
        super().__init__()
        self._config = SecurityPrintfConfig.default()
        self._findings: List[Finding] = []

    def configure(self, ctx: CheckerContext) -> None:
        self._config = ctx.config

    def collect_evidence(self, ctx: CheckerContext) -> None:
        self._findings = analyze_unit(ctx.unit, self._config)
        ctx.stats["findings"] = ctx.stats.get("findings", 0) + len(self._findings)

    def diagnose(self, ctx: CheckerContext) -> None:
        for finding in self._findings:
            evidence: Dict[str, Any] = {
                "callee": finding.site.callee,
                "style": finding.function.kind.value,
                "argument": ctx.unit.segment(finding.argument),
            }
            if finding.template is not None:
                evidence["template"] = finding.template

            if finding.verdict is None:
                self._emit(
                    UNDETERMINED_FORMAT, finding.message, finding.site.location,
                    severity=DiagnosticSeverity.INFORMATION,
                    confidence=Confidence.LOW,
                    evidence=evidence,
                )
                continue

            verdict = finding.verdict
            if verdict.kind is VerdictKind.SENSITIVE_FIELD:
                error_id = SENSITIVE_FIELD
                evidence["field"] = verdict.name
            elif verdict.aggregate is AggregateKind.RECORD:
                error_id = STRUCT_PRINTING
            else:
                error_id = MAP_PRINTING
            self._emit(
                error_id, finding.message, finding.site.location,
                confidence=self._confidence(finding),
                evidence=evidence,
            )

    @staticmethod
    def _confidence(finding: Finding) -> Confidence:
        arg = finding.argument
        while isinstance(arg, ast.Starred):
            arg = arg.value
        if isinstance(arg, (ast.Dict, ast.DictComp, ast.Attribute, ast.Subscript)):
            return Confidence.HIGH
        return Confidence.MEDIUM


# ═════════════════════════════════════════════════════════════════════════
#  PART 6: CHECKER RUNNER
# ═════════════════════════════════════════════════════════════════════════

DEFAULT_REGISTRY = CheckerRegistry()
DEFAULT_REGISTRY.register(SecurityPrintfChecker)


@dataclass
class CheckerRunResults:
    """
    Diagnostics and timings of one run, over one file or many.

    Attributes
    ----------
    diagnostics            : All diagnostics from all checkers
    diagnostics_by_checker : Diagnostics grouped by checker name
    stats                  : Timing and counting statistics
    checker_names          : Names of checkers that were run
    files                  : Files analysed, in order
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    diagnostics_by_checker: Dict[str, List[Diagnostic]] = field(
        default_factory=lambda: defaultdict(list)
    )
    stats: Dict[str, Any] = field(default_factory=dict)
    checker_names: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    @property
    def warning_count(self) -> int:
        return len(self.by_severity(DiagnosticSeverity.WARNING))

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    @property
    def has_findings(self) -> bool:
        return self.warning_count > 0

    def by_severity(self, severity: DiagnosticSeverity) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == severity]

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.location.file == file]

    def by_error_id(self, error_id: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.error_id == error_id]

    def merge(self, other: CheckerRunResults) -> None:
        self.diagnostics.extend(other.diagnostics)
        for name, diags in other.diagnostics_by_checker.items():
            self.diagnostics_by_checker[name].extend(diags)
        for key, val in other.stats.items():
            self.stats[key] = self.stats.get(key, 0) + val
        for name in other.checker_names:
            if name not in self.checker_names:
                self.checker_names.append(name)
        self.files.extend(other.files)

    def to_json_lines(self) -> str:
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def to_gcc_format(self) -> str:
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def summary(self) -> str:
        """Counts per severity and per checker, for -v output."""
        info = len(self.by_severity(DiagnosticSeverity.INFORMATION))
        lines = [
            f"Checked {len(self.files)} file(s): {self.total_count} diagnostics "
            f"({self.warning_count} warnings, {info} notes)",
        ]
        for name in self.checker_names:
            count = len(self.diagnostics_by_checker.get(name, []))
            elapsed = self.stats.get(f"{name}_elapsed_ms", 0)
            lines.append(f"  {name}: {count} findings ({elapsed:.1f}ms)")
        return "\n".join(lines)


class CheckerRunner:
    """
    Runs a suite of checkers against compilation units.

    Usage
    -----
    >>> runner = CheckerRunner()
    >>> results = runner.run_paths(["src/"])
    >>> print(results.summary())

    Parameters for constructor
    ─────────────────────────
    config       : SecurityPrintfConfig shared by every unit
    registry     : CheckerRegistry, source of checker classes
    suppressions : SuppressionManager, pre-loaded suppression rules
    """

    def __init__(
        self,
        config: Optional[SecurityPrintfConfig] = None,
        registry: Optional[CheckerRegistry] = None,
        suppressions: Optional[SuppressionManager] = None,
    ) -> None:
        self.config = config or SecurityPrintfConfig.default()
        self.registry = registry or DEFAULT_REGISTRY
        self.suppressions = suppressions or SuppressionManager()

    def run(
        self,
        unit: CompilationUnit,
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        """Run checkers against a single compilation unit."""
        results = CheckerRunResults(files=[unit.filename])
        ctx = CheckerContext(
            unit=unit,
            config=self.config,
            suppressions=self.suppressions.for_unit(unit),
        )

        if checkers is not None:
            checker_classes = [
                cls for cls in (self.registry.get_by_name(n) for n in checkers)
                if cls is not None
            ]
        else:
            checker_classes = self.registry.get_all()

        for cls in checker_classes:
            checker = cls()
            checker_name = cls.name
            results.checker_names.append(checker_name)

            t0 = time.monotonic()
            try:
                checker.configure(ctx)
                checker.collect_evidence(ctx)
                checker.diagnose(ctx)
                diags = checker.report(ctx)
            except Exception as exc:
                # failure becomes an information diagnostic
                logger.exception("checker %s failed on %s", checker_name, unit.filename)
                diags = [Diagnostic(
                    error_id=INTERNAL_ERROR,
                    message=f"Checker '{checker_name}' failed: {describe(exc)}",
                    severity=DiagnosticSeverity.INFORMATION,
                    location=SourceLocation(file=unit.filename),
                    checker_name=checker_name,
                )]
            elapsed_ms = (time.monotonic() - t0) * 1000.0

            results.diagnostics.extend(diags)
            results.diagnostics_by_checker[checker_name].extend(diags)
            results.stats[f"{checker_name}_elapsed_ms"] = elapsed_ms

        return results

    def run_source(
        self,
        source: str,
        filename: str = "<string>",
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        return self._run_guarded(lambda: CompilationUnit.from_source(source, filename), filename, checkers)

    def run_file(
        self,
        path: Union[str, Path],
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        return self._run_guarded(lambda: CompilationUnit.from_path(path), str(path), checkers)

    def run_paths(
        self,
        paths: Iterable[Union[str, Path]],
        checkers: Optional[Sequence[str]] = None,
        exclude: Sequence[str] = (),
    ) -> CheckerRunResults:
        """Run over files and directories (searched recursively for ``*.py``)."""
        combined = CheckerRunResults()
        for path in iter_python_files(paths, exclude):
            combined.merge(self.run_file(path, checkers=checkers))
        return combined

    def _run_guarded(self, build: Any, filename: str, checkers: Optional[Sequence[str]]) -> CheckerRunResults:
        try:
            unit = build()
        except SourceError as exc:
            logger.warning("skipping %s: %s", filename, exc.reason)
            results = CheckerRunResults(files=[filename])
            results.diagnostics.append(Diagnostic(
                error_id=SYNTAX_ERROR,
                message=f"cannot analyse file: {exc.reason}",
                severity=DiagnosticSeverity.INFORMATION,
                location=SourceLocation(file=exc.filename, line=exc.line, column=exc.column),
            ))
            return results
        return self.run(unit, checkers=checkers)


def iter_python_files(
    paths: Iterable[Union[str, Path]],
    exclude: Sequence[str] = (),
) -> Iterator[Path]:
    """Expand *paths* into ``.py`` files, sorted within each directory."""
    for raw in paths:
        path = Path(raw)
        candidates = sorted(path.rglob("*.py")) if path.is_dir() else [path]
        for candidate in candidates:
            text = candidate.as_posix()
            if any(fnmatch(text, pattern) or pattern in candidate.parts for pattern in exclude):
                logger.debug("excluded %s", text)
                continue
            yield candidate


__all__ = [
    "Checker",
    "CheckerContext",
    "CheckerRegistry",
    "CheckerRunResults",
    "CheckerRunner",
    "Confidence",
    "DEFAULT_REGISTRY",
    "Diagnostic",
    "DiagnosticSeverity",
    "ERROR_CODES",
    "INTERNAL_ERROR",
    "MAP_PRINTING",
    "SENSITIVE_FIELD",
    "STRUCT_PRINTING",
    "SYNTAX_ERROR",
    "SecurityPrintfChecker",
    "SuppressionManager",
    "UNDETERMINED_FORMAT",
    "iter_python_files",
]

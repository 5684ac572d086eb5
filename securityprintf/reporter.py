"""
securityprintf/reporter.py
══════════════════════════

Rust-style colourful diagnostic reporter.

Output formats
──────────────
  • text    : colourful Rust-style rendering when the stream is a TTY,
              cppcheck-compatible one-liners otherwise
  • json    : one JSON object per line
  • gcc     : ``file:line:col: severity: message [errorId]``
  • sarif   : a SARIF 2.1.0 document
  • summary : counts only

Every terminal diagnostic also carries a classic one-liner:
    [filename:line]: (severity) message [errorId]

Usage
─────
    from securityprintf.reporter import Reporter

    with Reporter(output="text") as rep:
        for diag in results.diagnostics:
            rep.emit(diag)
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

from termcolor import colored

from securityprintf.checkers import Diagnostic, DiagnosticSeverity

OUTPUT_FORMATS = ("text", "json", "gcc", "sarif", "summary")

# severity -> (termcolor colour, SARIF level)
_SEVERITY_STYLE: Dict[DiagnosticSeverity, tuple] = {
    DiagnosticSeverity.WARNING: ("yellow", "warning"),
    DiagnosticSeverity.INFORMATION: ("white", "note"),
}

_HELP = {
    "structPrinting": "log the fields you need explicitly, e.g. user.name",
    "mapPrinting": "log the keys you need explicitly, e.g. settings['region']",
    "sensitiveField": "drop the value or log a redacted form",
}


def cppcheck_line(diag: Diagnostic) -> str:
    """Classic one-liner: ``[file:line]: (severity) message [id]``."""
    loc = diag.location
    return f"[{loc.file}:{loc.line}]: ({diag.severity.value}) {diag.message} [{diag.error_id}]"


# ═════════════════════════════════════════════════════════════════════════
#  STATISTICS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class ReporterStats:
    """Aggregate counts per severity."""
    warning: int = 0
    information: int = 0

    def record(self, severity: DiagnosticSeverity) -> None:
        """Increment the counter that corresponds to *severity*."""
        attr = severity.value
        setattr(self, attr, getattr(self, attr) + 1)

    @property
    def total(self) -> int:
        return self.warning + self.information

    def summary_line(self) -> str:
        parts: List[str] = []
        if self.warning:
            parts.append(f"{self.warning} warning{'s' if self.warning != 1 else ''}")
        if self.information:
            parts.append(f"{self.information} info")
        if not parts:
            return "no diagnostics emitted"
        return "; ".join(parts) + f" ({self.total} total)"


# ═════════════════════════════════════════════════════════════════════════
#  TERMINAL RENDERER  (Rust-style colourful output)
# ═════════════════════════════════════════════════════════════════════════

class _TerminalRenderer:
    """Render diagnostics to a terminal with colours."""

    def __init__(self, stream: TextIO, colour: bool = True) -> None:
        self._stream = stream
        self._colour = colour
        self._sources: Dict[str, List[str]] = {}

    def _c(self, text: str, color: Optional[str] = None, attrs: Optional[List[str]] = None) -> str:
        if not self._colour:
            return text
        return colored(text, color, attrs=attrs)

    def render(self, diag: Diagnostic) -> None:
        lines: List[str] = []
        colour = _SEVERITY_STYLE[diag.severity][0]

        # ── header: severity[errorId]: message ───────────────────────
        sev_str = self._c(f"{diag.severity.value}[{diag.error_id}]", colour, attrs=["bold"])
        lines.append(f"{sev_str}: {self._c(diag.message, 'white', attrs=['bold'])}")

        # ── primary location ─────────────────────────────────────────
        loc = diag.location
        arrow = self._c("-->", "blue", attrs=["bold"])
        lines.append(f"  {arrow} {loc}")

        # ── source line with caret under the call ────────────────────
        src_text = self._source_line(loc.file, loc.line)
        if src_text:
            gutter_w = len(str(loc.line)) + 1
            pipe = self._c("|", "blue", attrs=["bold"])
            line_prefix = self._c(str(loc.line).rjust(gutter_w), "blue", attrs=["bold"])
            lines.append(f" {line_prefix} {pipe} {src_text}")
            pad = " " * (loc.column - 1) if loc.column > 0 else ""
            argument = diag.evidence.get("argument", "")
            label = f" {argument}" if argument else ""
            marker = self._c("^" + label, colour, attrs=["bold"])
            lines.append(f" {' ' * (gutter_w + 1)} {pipe} {pad}{marker}")

        # ── help ─────────────────────────────────────────────────────
        hint = _HELP.get(diag.error_id)
        if hint:
            lines.append(f"  = {self._c('help', 'green', attrs=['bold'])}: {hint}")

        # ── CWE tag ──────────────────────────────────────────────────
        if diag.cwe:
            cwe_str = self._c(f"CWE-{diag.cwe}", "blue", attrs=["underline"])
            lines.append(f"  = {cwe_str}: https://cwe.mitre.org/data/definitions/{diag.cwe}.html")

        # ── cppcheck compat line ─────────────────────────────────────
        lines.append(self._c(cppcheck_line(diag), attrs=["dark"]))

        lines.append("")
        self._stream.write("\n".join(lines) + "\n")

    def _source_line(self, filepath: str, lineno: int) -> str:
        """Read one line of *filepath*; "" when unavailable."""
        if not filepath or filepath.startswith("<"):
            return ""
        if filepath not in self._sources:
            try:
                text = Path(filepath).read_text(encoding="utf-8", errors="replace")
            except OSError:
                text = ""
            self._sources[filepath] = text.splitlines()
        lines = self._sources[filepath]
        if 1 <= lineno <= len(lines):
            return lines[lineno - 1]
        return ""


# ═════════════════════════════════════════════════════════════════════════
#  PLAIN RENDERERS  (log files / non-TTY / machine-readable)
# ═════════════════════════════════════════════════════════════════════════

class _PlainRenderer:
    """Non-coloured renderer: one cppcheck-compatible line per diagnostic."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def render(self, diag: Diagnostic) -> None:
        self._stream.write(cppcheck_line(diag) + "\n")


class _JsonRenderer(_PlainRenderer):
    def render(self, diag: Diagnostic) -> None:
        self._stream.write(diag.to_json_str() + "\n")


class _GccRenderer(_PlainRenderer):
    def render(self, diag: Diagnostic) -> None:
        self._stream.write(diag.to_gcc_format() + "\n")


class _SilentRenderer(_PlainRenderer):
    def render(self, diag: Diagnostic) -> None:
        pass


# ═════════════════════════════════════════════════════════════════════════
#  SARIF 2.1.0 BUILDER
# ═════════════════════════════════════════════════════════════════════════

class _SarifBuilder:
    """Accumulates diagnostics into a SARIF 2.1.0 document."""

    SARIF_VERSION = "2.1.0"
    SARIF_SCHEMA = (
        "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/"
        "Schemata/sarif-schema-2.1.0.json"
    )

    def __init__(self) -> None:
        self._results: List[Dict[str, Any]] = []
        self._rules: Dict[str, Dict[str, Any]] = {}

    def add(self, diag: Diagnostic) -> None:
        if diag.error_id not in self._rules:
            rule: Dict[str, Any] = {
                "id": diag.error_id,
                "shortDescription": {"text": diag.message},
                "properties": {"code": diag.code},
            }
            if diag.cwe:
                rule["relationships"] = [
                    {
                        "target": {"id": str(diag.cwe), "toolComponent": {"name": "CWE"}},
                        "kinds": ["superset"],
                    }
                ]
            self._rules[diag.error_id] = rule

        loc = diag.location
        region: Dict[str, Any] = {"startLine": max(loc.line, 1)}
        if loc.column:
            region["startColumn"] = loc.column
        result: Dict[str, Any] = {
            "ruleId": diag.error_id,
            "level": _SEVERITY_STYLE[diag.severity][1],
            "message": {"text": diag.message},
            "locations": [{
                "physicalLocation": {
                    "artifactLocation": {"uri": loc.file},
                    "region": region,
                },
            }],
        }
        if diag.cwe:
            result["properties"] = {"cwe": diag.cwe}
        self._results.append(result)

    def to_json(self, tool_name: str, version: str) -> str:
        sarif: Dict[str, Any] = {
            "$schema": self.SARIF_SCHEMA,
            "version": self.SARIF_VERSION,
            "runs": [
                {
                    "tool": {
                        "driver": {
                            "name": tool_name,
                            "version": version,
                            "rules": list(self._rules.values()),
                        }
                    },
                    "results": self._results,
                }
            ],
        }
        return json.dumps(sarif, indent=2)


# ═════════════════════════════════════════════════════════════════════════
#  REPORTER
# ═════════════════════════════════════════════════════════════════════════

_Renderer = Union[_TerminalRenderer, _PlainRenderer]


class Reporter:
    """
    Central diagnostic dispatcher.

    Use as a context manager::

        with Reporter(stream=sys.stdout) as rep:
            rep.emit(diag)
        # finish() is called automatically

    ``colour`` defaults to whether ``stream`` is a TTY.  The summary line
    is written to ``summary_stream`` (stderr by default) for every output
    format except json/gcc/sarif, which keep stdout machine-readable.
    """

    def __init__(
        self,
        stream: TextIO = sys.stdout,
        output: str = "text",
        colour: Optional[bool] = None,
        summary_stream: Optional[TextIO] = None,
        tool_name: str = "securityprintf",
        tool_version: str = "0.0.0",
    ) -> None:
        if output not in OUTPUT_FORMATS:
            raise ValueError(f"unknown output format {output!r}")
        self.output = output
        self.tool_name = tool_name
        self.tool_version = tool_version
        self.stats = ReporterStats()
        self._stream = stream
        self._summary_stream = summary_stream or sys.stderr
        self._diagnostics: List[Diagnostic] = []
        self._sarif: Optional[_SarifBuilder] = _SarifBuilder() if output == "sarif" else None

        use_colour = colour if colour is not None else hasattr(stream, "isatty") and stream.isatty()
        self._colour = use_colour
        self._renderer: _Renderer
        if output == "json":
            self._renderer = _JsonRenderer(stream)
        elif output == "gcc":
            self._renderer = _GccRenderer(stream)
        elif output in ("sarif", "summary"):
            self._renderer = _SilentRenderer(stream)
        elif use_colour:
            self._renderer = _TerminalRenderer(stream)
        else:
            self._renderer = _PlainRenderer(stream)

    def __enter__(self) -> Reporter:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.finish()

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def emit(self, diag: Diagnostic) -> None:
        """Route *diag* to the active output and count it."""
        self.stats.record(diag.severity)
        self._diagnostics.append(diag)
        self._renderer.render(diag)
        if self._sarif is not None:
            self._sarif.add(diag)

    def emit_all(self, diagnostics: List[Diagnostic]) -> None:
        for diag in diagnostics:
            self.emit(diag)

    def finish(self) -> ReporterStats:
        """Write the SARIF document or the summary line; return the stats."""
        if self._sarif is not None:
            self._stream.write(self._sarif.to_json(self.tool_name, self.tool_version) + "\n")
        elif self.output in ("text", "summary"):
            summary = self.stats.summary_line()
            if self._colour:
                colour = "yellow" if self.stats.warning else "green"
                summary = colored(f"  ╰─ {summary}", colour, attrs=["bold"])
            else:
                summary = f"  {summary}"
            self._summary_stream.write(summary + "\n")
        self._stream.flush()
        return self.stats


__all__ = [
    "OUTPUT_FORMATS",
    "Reporter",
    "ReporterStats",
    "cppcheck_line",
]

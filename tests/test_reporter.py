# tests/test_reporter.py
"""
Tests for the diagnostic reporter's output formats.
"""

import io
import json

import pytest

from securityprintf.checkers import (
    MAP_PRINTING,
    SENSITIVE_FIELD,
    UNDETERMINED_FORMAT,
    Diagnostic,
    DiagnosticSeverity,
)
from securityprintf.frontend import SourceLocation
from securityprintf.reporter import Reporter, ReporterStats, cppcheck_line

SENSITIVE_MESSAGE = "potentially sensitive field 'token' should not be logged"


def _warning(file="app.py", line=2, column=5):
    return Diagnostic(
        error_id=SENSITIVE_FIELD,
        message=SENSITIVE_MESSAGE,
        severity=DiagnosticSeverity.WARNING,
        location=SourceLocation(file, line, column),
        cwe=532,
        evidence={"argument": "token"},
    )


def _note():
    return Diagnostic(
        error_id=UNDETERMINED_FORMAT,
        message="cannot determine format string for load()",
        severity=DiagnosticSeverity.INFORMATION,
        location=SourceLocation("app.py", 7, 1),
    )


def _report(output, diagnostics, **kwargs):
    out, err = io.StringIO(), io.StringIO()
    with Reporter(stream=out, output=output, summary_stream=err, **kwargs) as rep:
        rep.emit_all(diagnostics)
    return out.getvalue(), err.getvalue()


class TestReporterStats:
    """Per-severity counters."""

    def test_empty(self):
        assert ReporterStats().summary_line() == "no diagnostics emitted"

    def test_counts(self):
        stats = ReporterStats()
        stats.record(DiagnosticSeverity.WARNING)
        stats.record(DiagnosticSeverity.WARNING)
        stats.record(DiagnosticSeverity.INFORMATION)
        assert stats.total == 3
        assert stats.summary_line() == "2 warnings; 1 info (3 total)"

    def test_single_warning(self):
        stats = ReporterStats()
        stats.record(DiagnosticSeverity.WARNING)
        assert stats.summary_line() == "1 warning (1 total)"

    def test_every_severity_is_counted(self):
        stats = ReporterStats()
        for severity in DiagnosticSeverity:
            stats.record(severity)
        assert stats.total == len(DiagnosticSeverity) == 2


class TestPlainOutput:
    """Non-TTY text output."""

    def test_cppcheck_line(self):
        assert cppcheck_line(_warning()) == (
            f"[app.py:2]: (warning) {SENSITIVE_MESSAGE} [sensitiveField]"
        )

    def test_text_is_plain_for_non_tty(self):
        out, err = _report("text", [_warning(), _note()])
        assert out.splitlines() == [
            cppcheck_line(_warning()),
            cppcheck_line(_note()),
        ]
        assert err == "  1 warning; 1 info (2 total)\n"

    def test_summary_only(self):
        out, err = _report("summary", [_warning()])
        assert out == ""
        assert "1 warning" in err

    def test_empty_run(self):
        out, err = _report("text", [])
        assert out == ""
        assert "no diagnostics emitted" in err


class TestMachineOutput:
    """json, gcc and sarif keep stdout machine-readable."""

    def test_json_lines(self):
        out, err = _report("json", [_warning(), _note()])
        records = [json.loads(line) for line in out.splitlines()]
        assert [r["errorId"] for r in records] == [SENSITIVE_FIELD, UNDETERMINED_FORMAT]
        assert records[0]["code"] == "SPF003"
        assert err == ""

    def test_gcc(self):
        out, _ = _report("gcc", [_warning()])
        assert out == f"app.py:2:5: warning: {SENSITIVE_MESSAGE} [sensitiveField]\n"

    def test_sarif(self):
        map_diag = Diagnostic(
            error_id=MAP_PRINTING,
            message="direct map type printing is not allowed, please specify fields explicitly",
            severity=DiagnosticSeverity.WARNING,
            location=SourceLocation("b.py", 3, 1),
            cwe=532,
        )
        out, err = _report("sarif", [_warning(), _warning(line=9), map_diag, _note()],
                           tool_version="1.2.3")
        doc = json.loads(out)
        assert doc["version"] == "2.1.0"
        run = doc["runs"][0]
        assert run["tool"]["driver"]["name"] == "securityprintf"
        assert run["tool"]["driver"]["version"] == "1.2.3"
        rules = [r["id"] for r in run["tool"]["driver"]["rules"]]
        assert rules == [SENSITIVE_FIELD, MAP_PRINTING, UNDETERMINED_FORMAT]
        assert len(run["results"]) == 4
        first = run["results"][0]
        assert first["level"] == "warning"
        assert first["properties"] == {"cwe": 532}
        region = first["locations"][0]["physicalLocation"]["region"]
        assert region == {"startLine": 2, "startColumn": 5}
        assert run["results"][3]["level"] == "note"
        assert err == ""


class TestTerminalOutput:
    """Rust-style rendering."""

    def test_render_with_source(self, tmp_path):
        path = tmp_path / "app.py"
        path.write_text("import logging\nlogging.info('t %s', token)\n", encoding="utf-8")
        out, err = _report("text", [_warning(file=str(path), column=1)], colour=True)
        assert "warning[sensitiveField]" in out
        assert f"{path}:2:1" in out
        assert "logging.info('t %s', token)" in out
        assert "^ token" in out
        assert "help" in out
        assert "https://cwe.mitre.org/data/definitions/532.html" in out
        assert cppcheck_line(_warning(file=str(path))) in out
        assert "1 warning" in err

    def test_render_without_source(self):
        out, _ = _report("text", [_note()], colour=True)
        assert "information[undeterminedFormat]" in out
        assert "app.py:7:1" in out
        assert "CWE" not in out


def test_unknown_output_format():
    with pytest.raises(ValueError, match="unknown output format"):
        Reporter(output="xml")


def test_reporter_keeps_diagnostics():
    rep = Reporter(stream=io.StringIO(), summary_stream=io.StringIO())
    rep.emit(_warning())
    assert rep.diagnostics == [_warning()]
    assert rep.finish().warning == 1

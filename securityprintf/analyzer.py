"""
securityprintf/analyzer.py
══════════════════════════

Per-call orchestration of the analysis.

For every call site of a unit:

  1. ``classify_call`` gates the site (non-logging calls are skipped);
  2. printf-style: the template is resolved and every argument after it
     is walked; ``"...".format(...)``: the literal is the template and
     every argument is walked; print-style: every positional argument is walked;
  3. keyword arguments that are printed as fields are walked last;
  4. the first non-safe verdict becomes the site's ``Finding``.

A print-style call whose positional arguments are all opaque yields an
informational note instead, so the gap in coverage is visible.
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from securityprintf.calls import classify_call, extract_format_string, receiver_template
from securityprintf.config import LoggingFunction, LoggingFunctionKind, SecurityPrintfConfig
from securityprintf.frontend import CallSite, CompilationUnit, iter_call_sites
from securityprintf.walker import ArgumentWalker, Verdict

logger = logging.getLogger(__name__)

UNDETERMINED_MESSAGE = "cannot determine format string for {expr}"


@dataclass(frozen=True)
class Finding:
    """
    Outcome of one violating (or unanalysable) call site.

    ``verdict`` is None for the informational "cannot determine" note.
    """
    site: CallSite
    function: LoggingFunction
    message: str
    argument: ast.expr
    verdict: Optional[Verdict] = None
    template: Optional[str] = None

    @property
    def is_note(self) -> bool:
        return self.verdict is None


class CallAnalyzer:
    """Analyses the call sites of one compilation unit."""

    def __init__(self, unit: CompilationUnit, config: SecurityPrintfConfig) -> None:
        self.unit = unit
        self.config = config
        self.walker = ArgumentWalker(unit.bindings, config)

    def analyze(self, site: CallSite) -> Optional[Finding]:
        function = classify_call(site.node, self.config)
        if not function.is_logging:
            return None
        args = site.args

        template: Optional[str] = None
        if function.template_on_receiver:
            template = receiver_template(site.node)
            printed = args
        elif function.kind is LoggingFunctionKind.PRINTF_STYLE:
            template = extract_format_string(args, function.template_index, self.unit.bindings)
            printed = args[function.template_index + 1:]
        else:
            printed = args
            if printed and all(self.walker.is_opaque(arg) for arg in printed):
                finding = self._walk_keywords(site, function, template)
                if finding is not None or not self.config.report_undetermined:
                    return finding
                return Finding(
                    site=site,
                    function=function,
                    message=UNDETERMINED_MESSAGE.format(expr=self.unit.segment(printed[0])),
                    argument=printed[0],
                )

        for arg in printed:
            verdict = self.walker.evaluate(arg)
            if not verdict.is_safe:
                return Finding(site, function, verdict.message, arg, verdict, template)
        return self._walk_keywords(site, function, template)

    def _walk_keywords(
        self,
        site: CallSite,
        function: LoggingFunction,
        template: Optional[str],
    ) -> Optional[Finding]:
        if not self.config.check_keywords:
            return None
        for keyword in site.keywords:
            # ``**mapping`` spreads into separate fields
            if keyword.arg is None or keyword.arg in self.config.ignored_keywords:
                continue
            verdict = self.walker.evaluate_keyword(keyword)
            if not verdict.is_safe:
                return Finding(site, function, verdict.message, keyword.value, verdict, template)
        return None

    def analyze_all(self, sites: Optional[Iterable[CallSite]] = None) -> List[Finding]:
        findings: List[Finding] = []
        for site in sites if sites is not None else iter_call_sites(self.unit):
            try:
                finding = self.analyze(site)
            except RecursionError:
                logger.warning("%s: expression too deeply nested, skipped", site.location)
                continue
            if finding is not None:
                findings.append(finding)
        return findings


def analyze_unit(unit: CompilationUnit, config: Optional[SecurityPrintfConfig] = None) -> List[Finding]:
    """All findings of *unit*, in call-site order, at most one per call."""
    return CallAnalyzer(unit, config or SecurityPrintfConfig.default()).analyze_all()


__all__ = [
    "CallAnalyzer",
    "Finding",
    "UNDETERMINED_MESSAGE",
    "analyze_unit",
]

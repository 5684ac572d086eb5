# tests/conftest.py
"""
Shared fixtures: compilation units built from dedented source snippets and
a one-call helper returning the messages the analysis reports.
"""

import ast
import textwrap

import pytest

from securityprintf.analyzer import analyze_unit
from securityprintf.config import SecurityPrintfConfig
from securityprintf.frontend import CompilationUnit


def build_unit(source, filename="snippet.py"):
    return CompilationUnit.from_source(textwrap.dedent(source), filename)


def find_node(unit, node_type, predicate=lambda node: True):
    """Last node of *node_type* in *unit* satisfying *predicate*."""
    found = [n for n in ast.walk(unit.tree) if isinstance(n, node_type) and predicate(n)]
    assert found, f"no {node_type.__name__} in snippet"
    return found[-1]


def last_call_arg(unit, index=-1):
    """Argument *index* of the outermost call on the last line that has one."""
    calls = [n for n in ast.walk(unit.tree) if isinstance(n, ast.Call) and n.args]
    calls.sort(key=lambda n: (n.lineno, -n.col_offset))
    return calls[-1].args[index]


@pytest.fixture
def config():
    return SecurityPrintfConfig.default()


@pytest.fixture
def unit():
    return build_unit


@pytest.fixture
def messages():
    """``messages(source, config=None)`` -> list of (line, message)."""
    def _messages(source, config=None):
        found = analyze_unit(build_unit(source), config)
        return [(f.site.location.line, f.message) for f in found]
    return _messages


@pytest.fixture
def write_module(tmp_path):
    """``write_module(name, source)`` writes a dedented module under tmp_path."""
    def _write(name, source):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path
    return _write

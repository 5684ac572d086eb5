# tests/test_flake8_plugin.py
"""
Tests for the flake8 plugin entry point.
"""

import ast
import textwrap
from types import SimpleNamespace

import pytest

from securityprintf.config import SecurityPrintfConfig
from securityprintf.flake8_plugin import SecurityPrintfPlugin


@pytest.fixture(autouse=True)
def default_plugin_config(monkeypatch):
    monkeypatch.setattr(SecurityPrintfPlugin, "config", SecurityPrintfConfig.default())


def _run_plugin(source, filename="mod.py"):
    source = textwrap.dedent(source)
    lines = source.splitlines(keepends=True)
    plugin = SecurityPrintfPlugin(ast.parse(source), filename, lines)
    return [(line, col, text) for line, col, text, _ in plugin.run()]


class TestRun:
    """Results in flake8's (line, col, text, type) shape."""

    def test_codes_and_columns(self):
        source = """
            import logging
            def show(cfg):
                logging.info("cfg %s", {"a": 1})
                print(cfg.token)
        """
        assert _run_plugin(source) == [
            (4, 4, "SPF002 direct map type printing is not allowed, please specify fields explicitly"),
            (5, 4, "SPF003 potentially sensitive field 'token' should not be logged"),
        ]

    def test_result_type_is_plugin_class(self):
        plugin = SecurityPrintfPlugin(ast.parse("print(secret)\n"), "mod.py", ["print(secret)\n"])
        (result,) = list(plugin.run())
        assert result[3] is SecurityPrintfPlugin

    def test_struct_code(self):
        source = """
            from typing import NamedTuple
            class Point(NamedTuple):
                x: int
            print(Point(1))
        """
        ((_, _, text),) = _run_plugin(source)
        assert text.startswith("SPF001 ")

    def test_note_code(self):
        ((_, _, text),) = _run_plugin("print(load())\n")
        assert text == "SPF004 cannot determine format string for load()"

    def test_clean_module(self):
        assert _run_plugin("import logging\nlogging.info('n=%d', 3)\n") == []

    def test_inline_suppression(self):
        source = "print(secret)  # securityprintf-suppress sensitiveField\n"
        assert _run_plugin(source) == []

    def test_without_lines(self):
        plugin = SecurityPrintfPlugin(ast.parse("print(secret)\n"))
        assert [r[0] for r in plugin.run()] == [1]


class TestOptions:
    """Options registered with and parsed from flake8."""

    def test_add_options(self):
        registered = []

        class Manager:
            def add_option(self, name, **kwargs):
                registered.append((name, kwargs))

        SecurityPrintfPlugin.add_options(Manager())
        names = [name for name, _ in registered]
        assert names == ["--securityprintf-sensitive", "--securityprintf-namespaces"]
        assert all(kw["parse_from_config"] for _, kw in registered)

    def test_parse_options(self):
        options = SimpleNamespace(securityprintf_sensitive=["api_key"], securityprintf_namespaces=["audit"])
        SecurityPrintfPlugin.parse_options(options)
        found = _run_plugin("audit.info('k %s', api_key)\n")
        assert found == [(1, 0, "SPF003 potentially sensitive field 'api_key' should not be logged")]

    def test_parse_empty_options(self):
        SecurityPrintfPlugin.parse_options(SimpleNamespace(securityprintf_sensitive="", securityprintf_namespaces=None))
        assert SecurityPrintfPlugin.config == SecurityPrintfConfig.default()

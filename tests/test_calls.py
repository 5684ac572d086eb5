# tests/test_calls.py
"""
Tests for the call classifier and the format-string extractor.
"""

import ast

import pytest

from conftest import build_unit, find_node

from securityprintf.calls import classify_call, extract_format_string, is_logging_receiver, receiver_template
from securityprintf.config import LoggingFunctionKind, SecurityPrintfConfig

PRINT = LoggingFunctionKind.PRINT_STYLE
PRINTF = LoggingFunctionKind.PRINTF_STYLE
NOT_LOGGING = LoggingFunctionKind.NOT_LOGGING


def _classify(expr, config=None):
    call = ast.parse(expr, mode="eval").body
    return classify_call(call, config or SecurityPrintfConfig.default())


class TestClassifyCall:
    """Which callees are logging or formatting functions."""

    @pytest.mark.parametrize("expr", [
        "logging.info('x')",
        "logger.debug('x')",
        "log.Printf('x')",
        "self.logger.warning('x')",
        "self._logger.error('x')",
        "_log.critical('x')",
        "audit_logger.exception('x')",
        "logging.getLogger(__name__).info('x')",
        "structlog.get_logger().msg('x')",
        "loguru.logger.success('x')",
        "fmt.Printf('x')",
        "glog.Infof('x')",
        "logger.log(logging.INFO, 'x')",
    ])
    def test_printf_style(self, expr):
        assert _classify(expr).kind is PRINTF

    @pytest.mark.parametrize("expr", [
        "print('x')",
        "pprint('x')",
        "pprint.pprint('x')",
        "fmt.Println('x')",
        "log.print('x')",
    ])
    def test_print_style(self, expr):
        assert _classify(expr).kind is PRINT

    def test_format_suffix_rule(self):
        assert _classify("log.Noticef('x')").kind is PRINTF
        assert _classify("log.f('x')").kind is NOT_LOGGING

    @pytest.mark.parametrize("expr", [
        "parser.error('bad')",
        "dialog.info('x')",
        "items.append(x)",
        "logger.setLevel(10)",
        "len(x)",
        "handlers[0].info('x')",
        "(lambda: None)()",
        "obj.Printf('x')",
    ])
    def test_not_logging(self, expr):
        assert _classify(expr).kind is NOT_LOGGING

    def test_log_template_index(self):
        assert _classify("logger.log(20, 'x %s', y)").template_index == 1

    def test_str_format_on_literal(self):
        function = _classify("'user {}'.format(name)")
        assert function.kind is PRINTF
        assert function.template_on_receiver

    @pytest.mark.parametrize("expr", [
        "fmt.format(name)",
        "b'{}'.format(name)",
        "'{}'.join(parts)",
    ])
    def test_other_receivers_not_formatting(self, expr):
        assert _classify(expr).kind is NOT_LOGGING

    def test_receiver_template(self):
        assert receiver_template(ast.parse("'a {}'.format(x)", mode="eval").body) == "a {}"
        assert receiver_template(ast.parse("fmt.format(x)", mode="eval").body) is None
        assert receiver_template(ast.parse("print(x)", mode="eval").body) is None

    def test_extra_namespace(self):
        cfg = SecurityPrintfConfig.from_options({"extra_logging_namespaces": ["audit"]})
        assert _classify("audit.info('x')", cfg).kind is PRINTF
        assert _classify("audit.info('x')").kind is NOT_LOGGING


class TestLoggingReceiver:
    """Receiver recognition."""

    @pytest.mark.parametrize("expr,expected", [
        ("logging", True),
        ("LOG", True),
        ("requestLogger", True),
        ("getLogger('a')", True),
        ("root.getChild('a')", True),
        ("parser", False),
        ("make_logger()", False),
    ])
    def test_receivers(self, expr, expected):
        node = ast.parse(expr, mode="eval").body
        assert is_logging_receiver(node, SecurityPrintfConfig.default()) is expected


class TestExtractFormatString:
    """Template resolution."""

    def _extract(self, source, index=0):
        unit = build_unit(source)
        call = find_node(unit, ast.Call, lambda n: isinstance(n.func, ast.Attribute))
        return extract_format_string(call.args, index, unit.bindings)

    def test_literal(self):
        assert self._extract("log.info('user %s', name)") == "user %s"

    def test_one_hop_through_name(self):
        source = """
            FMT = "user %s"
            log.info(FMT, name)
        """
        assert self._extract(source) == "user %s"

    def test_annotated_constant(self):
        source = """
            FMT: str = "user %s"
            log.info(FMT, name)
        """
        assert self._extract(source) == "user %s"

    def test_index_one(self):
        assert self._extract("logger.log(20, 'x %s', y)", index=1) == "x %s"

    @pytest.mark.parametrize("source", [
        "log.info(f'user {name}')",
        "log.info('a' + b)",
        "log.info('%s' % x)",
        "log.info(get_template(), x)",
        "log.info()",
        "log.info(b'bytes')",
        "ALIAS = FMT\nFMT = 'x'\nlog.info(ALIAS)",
    ])
    def test_unresolved(self, source):
        assert self._extract(source) is None

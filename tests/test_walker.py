# tests/test_walker.py
"""
Tests for the argument walker: one verdict per expression kind.
"""

import ast
import sys

import pytest

from conftest import build_unit, last_call_arg

from securityprintf.config import SecurityPrintfConfig
from securityprintf.shapes import AggregateKind
from securityprintf.walker import (
    MAP_MESSAGE,
    SAFE,
    STRUCT_MESSAGE,
    ArgumentWalker,
    Verdict,
    VerdictKind,
)

RECORDS = """
from dataclasses import dataclass, field

@dataclass
class Database:
    name: str
    password: str

@dataclass
class Config:
    version: str
    db: Database
    settings: dict = field(default_factory=dict)
"""


def _verdict(source, config=None, prelude=""):
    """Verdict for the last positional argument of the last call."""
    unit = build_unit(prelude + source)
    walker = ArgumentWalker(unit.bindings, config or SecurityPrintfConfig.default())
    return walker.evaluate(last_call_arg(unit))


def _records(source):
    return _verdict(source, prelude=RECORDS)


class TestVerdict:
    """Verdict values and messages."""

    def test_messages(self):
        assert Verdict.exposure(AggregateKind.RECORD).message == STRUCT_MESSAGE
        assert Verdict.exposure(AggregateKind.MAP).message == MAP_MESSAGE
        assert Verdict.sensitive("Password").message == (
            "potentially sensitive field 'Password' should not be logged"
        )
        assert SAFE.message == ""
        assert SAFE.is_safe


class TestLeaves:
    """Constants, names and opaque expressions."""

    @pytest.mark.parametrize("expr", ["42", "'text'", "None", "b'raw'", "3.5"])
    def test_constants(self, expr):
        assert _verdict(f"print({expr})") == SAFE

    def test_sensitive_name(self):
        assert _verdict("print(userPassword)") == Verdict.sensitive("userPassword")

    def test_sensitive_snake_case_name(self):
        assert _verdict("print(auth_token)") == Verdict.sensitive("auth_token")

    def test_unknown_name(self):
        assert _verdict("print(undefined_thing)") == SAFE

    @pytest.mark.parametrize("expr", [
        "a + b", "x and y", "a < b", "f'{user}'", "a if c else b", "lambda: 0",
    ])
    def test_opaque(self, expr):
        assert _verdict(f"settings = {{}}\nprint({expr})") == SAFE

    def test_opaque_hides_map_operand(self):
        assert _verdict("settings = {}\nprint(settings or 'none')") == SAFE


class TestNameResolution:
    """Declaration hops."""

    def test_assigned_dict_literal(self):
        assert _verdict("data = {'a': 1}\nprint(data)").kind is VerdictKind.AGGREGATE_EXPOSURE

    def test_assignment_chain(self):
        source = "first = {'a': 1}\nsecond = first\nthird = second\nprint(third)"
        assert _verdict(source) == Verdict.exposure(AggregateKind.MAP)

    def test_annotated_parameter(self):
        source = "def show(options: dict[str, str]):\n    print(options)"
        assert _verdict(source) == Verdict.exposure(AggregateKind.MAP)

    def test_annotated_record_parameter(self):
        assert _records("def show(cfg: 'Config'):\n    print(cfg)") == Verdict.exposure(AggregateKind.RECORD)

    def test_optional_record_value(self):
        assert _records("from typing import Optional\ncfg: Optional[Config] = None\nprint(cfg)") \
            == Verdict.exposure(AggregateKind.RECORD)

    def test_annotation_without_shape_follows_value(self):
        assert _records("cfg: object = Config('1', None)\nprint(cfg)") == Verdict.exposure(AggregateKind.RECORD)

    def test_self_of_record_class(self):
        source = """
            from dataclasses import dataclass
            @dataclass
            class User:
                name: str
                def dump(self):
                    print(self)
        """
        assert _verdict(source) == Verdict.exposure(AggregateKind.RECORD)

    def test_self_of_plain_class(self):
        source = """
            class Service:
                def dump(self):
                    print(self)
        """
        assert _verdict(source) == SAFE

    def test_class_object_is_safe(self):
        assert _records("print(Config)") == SAFE

    def test_cycle_terminates(self):
        source = """
            def loop():
                a = b
                b = a
                print(a)
        """
        assert _verdict(source) == SAFE

    def test_self_reference_terminates(self):
        assert _verdict("x = [x]\nprint(x)") == SAFE

    def test_imported_name_is_safe(self):
        assert _verdict("from settings import CONFIG\nprint(CONFIG)") == SAFE


class TestAttributes:
    """Field access and narrowed mode."""

    def test_sensitive_field(self):
        assert _records("cfg = Config('1', None)\nprint(cfg.db.password)") == Verdict.sensitive("password")

    def test_record_field(self):
        assert _records("cfg = Config('1', None)\nprint(cfg.db)") == Verdict.exposure(AggregateKind.RECORD)

    def test_map_field(self):
        assert _records("cfg = Config('1', None)\nprint(cfg.settings)") == Verdict.exposure(AggregateKind.MAP)

    def test_scalar_field_narrows_base(self):
        assert _records("cfg = Config('1', None)\nprint(cfg.version)") == SAFE

    def test_sensitive_base_name(self):
        assert _verdict("print(secret.value)") == Verdict.sensitive("secret")

    def test_dunder_attribute(self):
        assert _verdict("print(obj.__key__)") == SAFE

    def test_private_sensitive_attribute(self):
        assert _verdict("print(obj._password)") == Verdict.sensitive("_password")

    def test_attribute_of_dict_literal_base(self):
        assert _verdict("print({'a': 1}.keys)") == SAFE

    def test_attribute_of_call(self):
        assert _verdict("print(load().token)") == Verdict.sensitive("token")


class TestSubscripts:
    """Key lookups and slices."""

    def test_sensitive_key(self):
        assert _verdict("m = {'password': 'x'}\nprint(m['password'])") == Verdict.sensitive("password")

    def test_sensitive_key_case_insensitive(self):
        assert _verdict("m = {}\nprint(m['AuthToken'])") == Verdict.sensitive("AuthToken")

    def test_plain_key_narrows_base(self):
        assert _verdict("m = {'name': 'x'}\nprint(m['name'])") == SAFE

    def test_variable_key(self):
        assert _verdict("m = {}\nprint(m[k])") == SAFE

    def test_index_into_list_of_records(self):
        assert _records("dbs = [Database('a', 'b')]\nprint(dbs[0])") == SAFE

    def test_slice_keeps_shape(self):
        assert _records("dbs = [Database('a', 'b')]\nprint(dbs[1:])") == Verdict.exposure(AggregateKind.RECORD)

    def test_nested_map_value(self):
        assert _verdict("m = {'db': {'x': 1}}\nprint(m['db'])") == SAFE

    def test_nested_map_under_sensitive_key(self):
        assert _verdict("m = {'auth': {'x': 1}}\nprint(m['auth'])") == Verdict.sensitive("auth")

    def test_key_selects_its_own_value(self):
        source = "m2 = {'name': 'x', 'p': password}\nprint(m2['name'])"
        assert _verdict(source) == SAFE

    def test_selected_value_is_walked(self):
        source = "m2 = {'name': 'x', 'p': password}\nprint(m2['p'])"
        assert _verdict(source) == Verdict.sensitive("password")

    def test_selection_follows_assignment_chain(self):
        source = "m = {'name': 'x', 'p': token}\nalias = m\nprint(alias['name'])\nprint(alias['p'])"
        unit = build_unit(source)
        walker = ArgumentWalker(unit.bindings, SecurityPrintfConfig.default())
        calls = [n for n in ast.walk(unit.tree) if isinstance(n, ast.Call)]
        calls.sort(key=lambda c: c.lineno)
        assert [walker.evaluate(c.args[0]) for c in calls] == [SAFE, Verdict.sensitive("token")]

    def test_last_duplicate_key_wins(self):
        assert _verdict("m = {'a': password, 'a': 1}\nprint(m['a'])") == SAFE

    def test_later_expansion_may_override(self):
        source = "extra = {'a': secret}\nm = {'a': 1, **extra}\nprint(m['a'])"
        assert _verdict(source) == Verdict.sensitive("secret")

    def test_missing_key_is_safe(self):
        assert _verdict("m = {'p': password}\nprint(m['other'])") == SAFE

    def test_variable_key_on_literal(self):
        assert _verdict("m = {'p': password}\nprint(m[k])") == SAFE

    def test_key_type_must_match(self):
        assert _verdict("m = {1: password, '1': 'x'}\nprint(m['1'])") == SAFE


class TestAggregates:
    """Literal aggregates and collections."""

    def test_dict_literal(self):
        assert _verdict("print({'user': 'x'})") == Verdict.exposure(AggregateKind.MAP)

    def test_empty_dict_literal(self):
        assert _verdict("print({})") == Verdict.exposure(AggregateKind.MAP)

    def test_dict_comprehension(self):
        assert _verdict("print({k: v for k, v in items})") == Verdict.exposure(AggregateKind.MAP)

    def test_list_of_scalars(self):
        assert _verdict("print([1, 'a', name])") == SAFE

    def test_list_with_sensitive_element(self):
        assert _verdict("print([name, password])") == Verdict.sensitive("password")

    def test_tuple_of_records(self):
        assert _records("db = Database('a', 'b')\nprint((db, 1))") == Verdict.exposure(AggregateKind.RECORD)

    def test_set_of_names(self):
        assert _verdict("print({token})") == Verdict.sensitive("token")

    def test_list_comprehension_of_records(self):
        assert _records("print([Database(n, p) for n, p in rows])") == Verdict.exposure(AggregateKind.RECORD)

    def test_generator_of_scalars(self):
        assert _verdict("print(list(x for x in range(3)))") == SAFE

    def test_comprehension_element(self):
        assert _verdict("print([r.password for r in rows])") == Verdict.sensitive("password")


class TestCalls:
    """Constructions, casts and opaque calls."""

    def test_record_construction(self):
        assert _records("print(Database('a', 'b'))") == Verdict.exposure(AggregateKind.RECORD)

    def test_dict_constructor(self):
        assert _verdict("print(dict(a=1))") == Verdict.exposure(AggregateKind.MAP)

    def test_function_result_is_opaque(self):
        assert _verdict("def get_password():\n    return 'x'\nprint(get_password())") == SAFE

    def test_method_result_is_opaque(self):
        assert _records("print(service.get_config())") == SAFE

    def test_cast_unwraps(self):
        source = "from typing import cast\nm = {}\nprint(cast(dict, m))"
        assert _verdict(source) == Verdict.exposure(AggregateKind.MAP)

    def test_typing_cast_unwraps(self):
        assert _verdict("import typing\nprint(typing.cast(str, password))") == Verdict.sensitive("password")


class TestWrappers:
    """Single-operand expressions pass the verdict through."""

    def test_starred(self):
        assert _verdict("print(*[password])") == Verdict.sensitive("password")

    def test_unary(self):
        assert _verdict("print(-secret)") == Verdict.sensitive("secret")

    def test_await(self):
        source = "async def run():\n    print(await token)"
        assert _verdict(source) == Verdict.sensitive("token")

    def test_named_expression(self):
        assert _verdict("print((m := {'a': 1}))") == Verdict.exposure(AggregateKind.MAP)


class TestKeywords:
    """Keyword arguments name a printed field."""

    def _keyword(self, source):
        unit = build_unit(source)
        call = next(n for n in ast.walk(unit.tree) if isinstance(n, ast.Call))
        walker = ArgumentWalker(unit.bindings, SecurityPrintfConfig.default())
        return walker.evaluate_keyword(call.keywords[0])

    def test_sensitive_keyword_name(self):
        assert self._keyword("log.info('login', token=value)") == Verdict.sensitive("token")

    def test_keyword_value_walked(self):
        assert self._keyword("log.info('login', user={'a': 1})") == Verdict.exposure(AggregateKind.MAP)

    def test_plain_keyword(self):
        assert self._keyword("log.info('login', user=name)") == SAFE


class TestRobustness:
    """Termination and unusual input."""

    def test_deeply_nested_list_is_handled(self):
        depth = 50
        source = "print(" + "[" * depth + "password" + "]" * depth + ")"
        assert _verdict(source) == Verdict.sensitive("password")

    @pytest.mark.skipif(sys.version_info < (3, 12), reason="PEP 695 type statement")
    def test_type_statement_alias(self):
        source = "type Env = dict[str, str]\ndef show(e: Env):\n    print(e)"
        assert _verdict(source) == Verdict.exposure(AggregateKind.MAP)

    def test_is_opaque(self):
        unit = build_unit("print(a + b, f(x), dict(), *g())")
        walker = ArgumentWalker(unit.bindings, SecurityPrintfConfig.default())
        call = next(n for n in ast.walk(unit.tree) if isinstance(n, ast.Call))
        assert [walker.is_opaque(a) for a in call.args] == [True, True, False, True]

    def test_literal_format_is_not_opaque(self):
        unit = build_unit("print('{}'.format(x), fmt.format(x))")
        walker = ArgumentWalker(unit.bindings, SecurityPrintfConfig.default())
        call = next(n for n in ast.walk(unit.tree) if isinstance(n, ast.Call))
        assert [walker.is_opaque(a) for a in call.args] == [False, True]

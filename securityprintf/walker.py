"""
securityprintf/walker.py
════════════════════════

The argument walker: decides whether one logging-call argument is safe
to print.

``ArgumentWalker.evaluate(expr)`` dispatches on the expression's node
class through a closed table, depth-first and left to right, and returns
the first non-safe ``Verdict`` it meets:

  Constant                     safe
  Name                         sensitive name, else follow its declaration
  Attribute                    sensitive field, else declared field shape,
                               else the base object (narrowed)
  Dict / DictComp              map exposure
  List / Tuple / Set           each element
  ListComp / SetComp / GenExp  the element expression
  Call                         record or map construction, ``cast`` unwraps,
                               every other call is opaque
  Subscript                    slice passes through, sensitive string key,
                               else the base collection (narrowed)
  Starred / UnaryOp / Await /  the single operand
  NamedExpr
  BinOp, BoolOp, Compare, f-strings, IfExp, Lambda ...   opaque, safe

Narrowed mode: the base of ``x.field`` or ``x["key"]`` has been expanded
by the access, so its own record or map shape is not reported.  Names
along the chain are still checked for sensitivity.

Every declaration hop is remembered for the duration of one walk; a
binding met twice evaluates to safe, which bounds the walk on cyclic
assignment chains.
"""

from __future__ import annotations

import ast
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional, Tuple, Type

from securityprintf.bindings import BindingKind, BindingTable
from securityprintf.calls import receiver_template
from securityprintf.config import SecurityPrintfConfig
from securityprintf.shapes import AggregateKind, AggregateTypeGuard

logger = logging.getLogger(__name__)


class VerdictKind(enum.Enum):
    SAFE = "safe"
    SENSITIVE_FIELD = "sensitive-field"
    AGGREGATE_EXPOSURE = "aggregate-exposure"


STRUCT_MESSAGE = "direct struct type printing is not allowed, please specify fields explicitly"
MAP_MESSAGE = "direct map type printing is not allowed, please specify fields explicitly"
SENSITIVE_MESSAGE = "potentially sensitive field '{name}' should not be logged"


@dataclass(frozen=True)
class Verdict:
    """Outcome of evaluating one argument."""
    kind: VerdictKind
    name: Optional[str] = None
    aggregate: Optional[AggregateKind] = None

    @classmethod
    def sensitive(cls, name: str) -> Verdict:
        return cls(VerdictKind.SENSITIVE_FIELD, name=name)

    @classmethod
    def exposure(cls, aggregate: AggregateKind) -> Verdict:
        return cls(VerdictKind.AGGREGATE_EXPOSURE, aggregate=aggregate)

    @property
    def is_safe(self) -> bool:
        return self.kind is VerdictKind.SAFE

    @property
    def message(self) -> str:
        if self.kind is VerdictKind.SENSITIVE_FIELD:
            return SENSITIVE_MESSAGE.format(name=self.name)
        if self.kind is VerdictKind.AGGREGATE_EXPOSURE:
            return STRUCT_MESSAGE if self.aggregate is AggregateKind.RECORD else MAP_MESSAGE
        return ""


SAFE = Verdict(VerdictKind.SAFE)

Seen = FrozenSet[object]
_Handler = Callable[[ast.AST, bool, Seen], Verdict]

# Expressions whose value is computed: their contents are not tracked.
OPAQUE_NODES: Tuple[Type[ast.AST], ...] = (
    ast.BinOp,
    ast.BoolOp,
    ast.Compare,
    ast.JoinedStr,
    ast.FormattedValue,
    ast.IfExp,
    ast.Lambda,
    ast.Yield,
    ast.YieldFrom,
    ast.Slice,
)

CAST_FUNCTIONS = frozenset({"cast", "typing.cast", "t.cast"})


class ArgumentWalker:
    """
    Evaluates argument expressions of one compilation unit.

    The walker only reads the binding table and the configuration; it can
    be reused for every call site of the unit.
    """

    def __init__(
        self,
        bindings: BindingTable,
        config: SecurityPrintfConfig,
        guard: Optional[AggregateTypeGuard] = None,
    ) -> None:
        self.bindings = bindings
        self.config = config
        self.guard = guard or AggregateTypeGuard(bindings)
        self._handlers: Dict[Type[ast.AST], _Handler] = {
            ast.Constant: self._walk_constant,
            ast.Name: self._walk_name,
            ast.Attribute: self._walk_attribute,
            ast.Dict: self._walk_dict,
            ast.DictComp: self._walk_dict_comprehension,
            ast.List: self._walk_collection,
            ast.Tuple: self._walk_collection,
            ast.Set: self._walk_collection,
            ast.ListComp: self._walk_comprehension,
            ast.SetComp: self._walk_comprehension,
            ast.GeneratorExp: self._walk_comprehension,
            ast.Call: self._walk_call,
            ast.Subscript: self._walk_subscript,
            ast.Starred: self._walk_wrapper,
            ast.UnaryOp: self._walk_wrapper,
            ast.Await: self._walk_wrapper,
            ast.NamedExpr: self._walk_wrapper,
        }
        for node_type in OPAQUE_NODES:
            self._handlers[node_type] = self._walk_opaque

    def evaluate(self, expr: ast.expr) -> Verdict:
        """Verdict for printing *expr* as a logging argument."""
        return self._walk(expr, False, frozenset())

    def evaluate_keyword(self, keyword: ast.keyword) -> Verdict:
        """Keyword arguments: the keyword itself is a printed field name."""
        if keyword.arg is not None and self.config.is_sensitive(keyword.arg):
            return Verdict.sensitive(keyword.arg)
        return self.evaluate(keyword.value)

    def is_opaque(self, expr: ast.expr) -> bool:
        """True for arguments whose contents the walker never inspects."""
        if isinstance(expr, ast.Starred):
            return self.is_opaque(expr.value)
        if isinstance(expr, ast.Call):
            # ``"...".format(...)`` is analysed as a call site of its own
            return self.guard.construction_shape(expr) is None and self._cast_operand(expr) is None \
                and receiver_template(expr) is None
        return isinstance(expr, OPAQUE_NODES)

    def _walk(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        handler = self._handlers.get(type(node))
        if handler is None:
            logger.debug("no handler for %s, treating as safe", type(node).__name__)
            return SAFE
        return handler(node, narrowed, seen)

    # ── leaves ───────────────────────────────────────────────────────

    def _walk_constant(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        return SAFE

    def _walk_opaque(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        return SAFE

    # ── identifiers and field access ─────────────────────────────────

    def _walk_name(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        assert isinstance(node, ast.Name)
        if self.config.is_sensitive(node.id):
            return Verdict.sensitive(node.id)

        binding = self.bindings.lookup(node.id, node)
        if binding is None or binding in seen:
            return SAFE
        seen = seen | {binding}

        if binding.kind in (BindingKind.PARAMETER, BindingKind.VALUE) and not narrowed:
            shape = None
            if binding.owner is not None:
                shape = self.guard.class_shape(binding.owner)
            elif binding.annotation is not None:
                shape = self.guard.annotation_shape(binding.annotation)
            if shape is not None:
                return Verdict.exposure(shape)

        if binding.kind in (BindingKind.ASSIGN, BindingKind.VALUE) and binding.value is not None:
            logger.debug("following %r to line %d", node.id, binding.position[0])
            return self._walk(binding.value, narrowed, seen)
        return SAFE

    def _walk_attribute(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        assert isinstance(node, ast.Attribute)
        if self.config.is_sensitive(node.attr):
            return Verdict.sensitive(node.attr)
        if not narrowed:
            shape = self.guard.field_shape(node.value, node.attr)
            if shape is not None:
                return Verdict.exposure(shape)
        return self._walk(node.value, True, seen)

    def _walk_subscript(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        assert isinstance(node, ast.Subscript)
        key = node.slice
        if isinstance(key, ast.Slice):
            # slicing keeps the collection's shape
            return self._walk(node.value, narrowed, seen)
        if isinstance(key, ast.Constant) and isinstance(key.value, str) \
                and self.config.is_sensitive(key.value):
            return Verdict.sensitive(key.value)
        literal = self._dict_literal(node.value, seen)
        if literal is not None:
            dict_node, seen = literal
            for value in self._selected_values(dict_node, key):
                verdict = self._walk(value, True, seen)
                if not verdict.is_safe:
                    return verdict
            return SAFE
        return self._walk(node.value, True, seen)

    def _dict_literal(self, expr: ast.expr, seen: Seen) -> Optional[Tuple[ast.Dict, Seen]]:
        """Follow plain assignments from *expr* to a dict display, if any."""
        while isinstance(expr, ast.Name):
            if self.config.is_sensitive(expr.id):
                return None
            binding = self.bindings.lookup(expr.id, expr)
            if binding is None or binding in seen or binding.value is None \
                    or binding.kind not in (BindingKind.ASSIGN, BindingKind.VALUE):
                return None
            seen = seen | {binding}
            expr = binding.value
        if isinstance(expr, ast.Dict):
            return expr, seen
        return None

    @staticmethod
    def _selected_values(node: ast.Dict, key: ast.expr) -> Tuple[ast.expr, ...]:
        """Values of *node* that ``node[key]`` can produce: the last matching
        entry plus any ``**`` expansions after it."""
        if not isinstance(key, ast.Constant):
            return ()
        selected = []
        for entry_key, value in reversed(list(zip(node.keys, node.values))):
            if entry_key is None:
                selected.append(value)
            elif isinstance(entry_key, ast.Constant) and type(entry_key.value) is type(key.value) \
                    and entry_key.value == key.value:
                selected.append(value)
                break
        return tuple(selected)

    # ── literal aggregates ───────────────────────────────────────────

    def _walk_dict(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        assert isinstance(node, ast.Dict)
        if not narrowed:
            return Verdict.exposure(AggregateKind.MAP)
        for value in node.values:
            verdict = self._walk(value, narrowed, seen)
            if not verdict.is_safe:
                return verdict
        return SAFE

    def _walk_dict_comprehension(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        if not narrowed:
            return Verdict.exposure(AggregateKind.MAP)
        return SAFE

    def _walk_collection(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        assert isinstance(node, (ast.List, ast.Tuple, ast.Set))
        for element in node.elts:
            verdict = self._walk(element, narrowed, seen)
            if not verdict.is_safe:
                return verdict
        return SAFE

    def _walk_comprehension(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        assert isinstance(node, (ast.ListComp, ast.SetComp, ast.GeneratorExp))
        return self._walk(node.elt, narrowed, seen)

    # ── calls and wrappers ───────────────────────────────────────────

    def _walk_call(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        assert isinstance(node, ast.Call)
        operand = self._cast_operand(node)
        if operand is not None:
            return self._walk(operand, narrowed, seen)
        if not narrowed:
            shape = self.guard.construction_shape(node)
            if shape is not None:
                return Verdict.exposure(shape)
        # call results are opaque
        return SAFE

    def _walk_wrapper(self, node: ast.AST, narrowed: bool, seen: Seen) -> Verdict:
        inner = getattr(node, "value", None) or getattr(node, "operand", None)
        if inner is None:
            return SAFE
        return self._walk(inner, narrowed, seen)

    @staticmethod
    def _cast_operand(call: ast.Call) -> Optional[ast.expr]:
        func = call.func
        name = func.id if isinstance(func, ast.Name) else None
        if isinstance(func, ast.Attribute) and isinstance(func.value, ast.Name):
            name = f"{func.value.id}.{func.attr}"
        if name in CAST_FUNCTIONS and len(call.args) == 2:
            return call.args[1]
        return None


__all__ = [
    "ArgumentWalker",
    "MAP_MESSAGE",
    "OPAQUE_NODES",
    "SAFE",
    "SENSITIVE_MESSAGE",
    "STRUCT_MESSAGE",
    "Verdict",
    "VerdictKind",
]

"""
securityprintf/bindings.py
══════════════════════════

Read-only identifier → declaration table for one compilation unit.

The table is produced once per unit by walking the module AST with
Python's scoping rules (module, class, function and comprehension scopes,
``global``/``nonlocal`` redirection, class bodies invisible to nested
functions).  The analysis core only ever *queries* it::

    table = BindingTable.build(tree)
    binding = table.lookup("user", name_node)

A lookup from inside the scope that owns the name returns the last binding
that textually precedes the use; a lookup that reaches an enclosing scope
returns that scope's last binding, because the enclosing code has normally
finished running by the time the nested code executes.

Binding kinds
─────────────
  CLASS      ``class User: ...``
  ALIAS      ``type Alias = ...`` / ``Alias: TypeAlias = ...``
  VALUE      ``user: User = ...`` (annotated declaration, value optional)
  ASSIGN     ``user = ...`` / ``(user := ...)`` (right-hand side kept)
  PARAMETER  function parameter, with its annotation when present
  OPAQUE     imports, loop and ``with`` targets, ``def`` names, except names
"""

from __future__ import annotations

import ast
import enum
import logging
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import (
    Dict,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
)

logger = logging.getLogger(__name__)

Position = Tuple[int, int]


class BindingKind(enum.Enum):
    CLASS = "class"
    ALIAS = "alias"
    VALUE = "value"
    ASSIGN = "assign"
    PARAMETER = "parameter"
    OPAQUE = "opaque"


class ScopeKind(enum.Enum):
    MODULE = "module"
    CLASS = "class"
    FUNCTION = "function"
    COMPREHENSION = "comprehension"


@dataclass(frozen=True, eq=False)
class Binding:
    """
    One declaration of a name.

    Attributes
    ----------
    name       : the bound identifier
    kind       : BindingKind
    node       : the declaring statement or expression
    scope      : Scope the name lives in
    position   : (line, column) after which the binding is in effect
    value      : right-hand side expression, if any
    annotation : declared type expression, if any
    owner      : class of an instance method's first parameter (``self``)
    """
    name: str
    kind: BindingKind
    node: ast.AST
    scope: Scope
    position: Position
    value: Optional[ast.expr] = None
    annotation: Optional[ast.expr] = None
    owner: Optional[ast.ClassDef] = None

    def __repr__(self) -> str:
        return f"<Binding {self.kind.value} {self.name!r} at {self.position[0]}:{self.position[1]}>"


@dataclass(frozen=True)
class ClassField:
    """A field declared on a class body or assigned through ``self``."""
    name: str
    annotation: Optional[ast.expr] = None
    value: Optional[ast.expr] = None


class Scope:
    """A namespace: its bindings in source order plus global/nonlocal names."""

    def __init__(self, kind: ScopeKind, node: ast.AST, parent: Optional[Scope]) -> None:
        self.kind = kind
        self.node = node
        self.parent = parent
        self.bindings: Dict[str, List[Binding]] = defaultdict(list)
        self.global_names: Set[str] = set()
        self.nonlocal_names: Set[str] = set()

    def add(self, binding: Binding) -> None:
        self.bindings[binding.name].append(binding)

    def finalize(self) -> None:
        for name, items in self.bindings.items():
            items.sort(key=lambda b: b.position)

    def __repr__(self) -> str:
        return f"<Scope {self.kind.value} line {getattr(self.node, 'lineno', 0)}>"


def _start(node: ast.AST) -> Position:
    return (getattr(node, "lineno", 0), getattr(node, "col_offset", 0))


def _end(node: ast.AST) -> Position:
    end_line = getattr(node, "end_lineno", None)
    end_col = getattr(node, "end_col_offset", None)
    if end_line is None or end_col is None:
        return _start(node)
    return (end_line, end_col)


def _last_segment(node: ast.expr) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return ""


def _is_classvar(annotation: ast.expr) -> bool:
    if isinstance(annotation, ast.Subscript):
        annotation = annotation.value
    return _last_segment(annotation) == "ClassVar"


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: BINDING TABLE
# ═════════════════════════════════════════════════════════════════════════

class BindingTable:
    """Query interface over the scopes of one module."""

    def __init__(
        self,
        module: Scope,
        node_scopes: Dict[ast.AST, Scope],
        class_fields: Dict[ast.ClassDef, Dict[str, ClassField]],
        method_classes: Dict[ast.AST, ast.ClassDef],
    ) -> None:
        self._module = module
        self._node_scopes = node_scopes
        self._class_fields = class_fields
        self._method_classes = method_classes

    @classmethod
    def build(cls, tree: ast.Module) -> BindingTable:
        collector = _ScopeCollector()
        collector.visit(tree)
        for scope in collector.scopes:
            scope.finalize()
        logger.debug(
            "binding table: %d scopes, %d classes",
            len(collector.scopes), len(collector.class_fields),
        )
        return cls(
            collector.module,
            collector.node_scopes,
            collector.class_fields,
            collector.method_classes,
        )

    def scope_of(self, node: ast.AST) -> Optional[Scope]:
        return self._node_scopes.get(node)

    def lookup(self, name: str, at: ast.AST, lazy: bool = False) -> Optional[Binding]:
        """
        Return the binding *name* refers to at node *at*, or None (builtin/unknown).

        ``lazy`` lookups ignore source order, as type checkers do for
        annotations and forward references.
        """
        origin = self.scope_of(at)
        if origin is None:
            return None
        if name in origin.global_names:
            return self._last(self._module, name)

        # comprehensions run inline, so positions count in the enclosing scope
        positional = origin
        while positional.kind is ScopeKind.COMPREHENSION and positional.parent is not None:
            positional = positional.parent

        scope: Optional[Scope] = origin
        if name in origin.nonlocal_names:
            scope = origin.parent
        while scope is not None:
            if scope is not origin and scope.kind is ScopeKind.CLASS:
                scope = scope.parent
                continue
            candidates = scope.bindings.get(name)
            if candidates:
                if scope is positional and not lazy:
                    use = _start(at)
                    preceding = [b for b in candidates if b.position <= use]
                    return preceding[-1] if preceding else None
                return candidates[-1]
            scope = scope.parent
        return None

    def class_fields(self, classdef: ast.ClassDef) -> Dict[str, ClassField]:
        return dict(self._class_fields.get(classdef, {}))

    def field(self, classdef: ast.ClassDef, name: str) -> Optional[ClassField]:
        return self._class_fields.get(classdef, {}).get(name)

    def method_class(self, function: ast.AST) -> Optional[ast.ClassDef]:
        """Class owning *function* when it is an instance method."""
        return self._method_classes.get(function)

    @staticmethod
    def _last(scope: Scope, name: str) -> Optional[Binding]:
        candidates = scope.bindings.get(name)
        return candidates[-1] if candidates else None


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: SCOPE COLLECTOR
# ═════════════════════════════════════════════════════════════════════════

class _ScopeCollector(ast.NodeVisitor):
    """Single pass over a module recording every binding and node scope."""

    def __init__(self) -> None:
        self.module: Scope = Scope(ScopeKind.MODULE, ast.Module(body=[], type_ignores=[]), None)
        self.scope: Scope = self.module
        self.scopes: List[Scope] = []
        self.node_scopes: Dict[ast.AST, Scope] = {}
        self.class_fields: Dict[ast.ClassDef, Dict[str, ClassField]] = {}
        self.method_classes: Dict[ast.AST, ast.ClassDef] = {}
        # (class, self-name) of the instance method being visited
        self._self_stack: List[Optional[Tuple[ast.ClassDef, str]]] = []

    def visit(self, node: ast.AST) -> None:
        self.node_scopes[node] = self.scope
        super().visit(node)

    @contextmanager
    def _entered(self, scope: Scope) -> Iterator[Scope]:
        previous = self.scope
        self.scope = scope
        self.scopes.append(scope)
        try:
            yield scope
        finally:
            self.scope = previous

    # ── binding helpers ──────────────────────────────────────────────

    def _bind(
        self,
        name: str,
        kind: BindingKind,
        node: ast.AST,
        position: Position,
        value: Optional[ast.expr] = None,
        annotation: Optional[ast.expr] = None,
        owner: Optional[ast.ClassDef] = None,
        scope: Optional[Scope] = None,
    ) -> None:
        scope = scope or self.scope
        if name in scope.global_names:
            scope = self.module
        elif name in scope.nonlocal_names and scope.parent is not None:
            scope = self._enclosing_function(scope.parent) or scope
        scope.add(Binding(
            name=name, kind=kind, node=node, scope=scope, position=position,
            value=value, annotation=annotation, owner=owner,
        ))

    @staticmethod
    def _enclosing_function(scope: Optional[Scope]) -> Optional[Scope]:
        while scope is not None and scope.kind is not ScopeKind.FUNCTION:
            scope = scope.parent
        return scope

    def _bind_opaque_targets(self, target: ast.AST, node: ast.AST, position: Position) -> None:
        for sub in ast.walk(target):
            if isinstance(sub, ast.Name):
                self._bind(sub.id, BindingKind.OPAQUE, node, position)
            elif isinstance(sub, ast.Attribute):
                self._record_self_field(sub, None, None)

    def _bind_assignment(self, target: ast.expr, value: ast.expr, node: ast.AST, position: Position) -> None:
        if isinstance(target, ast.Name):
            self._bind(target.id, BindingKind.ASSIGN, node, position, value=value)
        elif isinstance(target, ast.Attribute):
            self._record_self_field(target, None, value)
        elif isinstance(target, (ast.Tuple, ast.List)):
            pairable = (
                isinstance(value, (ast.Tuple, ast.List))
                and len(value.elts) == len(target.elts)
                and not any(isinstance(e, ast.Starred) for e in target.elts + value.elts)
            )
            if pairable:
                for sub_target, sub_value in zip(target.elts, value.elts):
                    self._bind_assignment(sub_target, sub_value, node, position)
            else:
                self._bind_opaque_targets(target, node, position)
        else:
            self._bind_opaque_targets(target, node, position)

    def _record_self_field(
        self,
        target: ast.Attribute,
        annotation: Optional[ast.expr],
        value: Optional[ast.expr],
    ) -> None:
        current = self._self_stack[-1] if self._self_stack else None
        if current is None:
            return
        classdef, self_name = current
        if not (isinstance(target.value, ast.Name) and target.value.id == self_name):
            return
        fields = self.class_fields.setdefault(classdef, {})
        known = fields.get(target.attr)
        if known is not None and known.annotation is not None and annotation is None:
            return
        fields[target.attr] = ClassField(target.attr, annotation, value)

    # ── statements ───────────────────────────────────────────────────

    def visit_Module(self, node: ast.Module) -> None:
        self.module = Scope(ScopeKind.MODULE, node, None)
        self.scope = self.module
        self.scopes.append(self.module)
        self.node_scopes[node] = self.module
        self.generic_visit(node)

    def visit_Global(self, node: ast.Global) -> None:
        self.scope.global_names.update(node.names)

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self.scope.nonlocal_names.update(node.names)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            name = alias.asname or alias.name.split(".")[0]
            self._bind(name, BindingKind.OPAQUE, node, _end(node))

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            if alias.name == "*":
                continue
            self._bind(alias.asname or alias.name, BindingKind.OPAQUE, node, _end(node))

    def visit_Assign(self, node: ast.Assign) -> None:
        self.visit(node.value)
        for target in node.targets:
            self._bind_assignment(target, node.value, node, _end(node))
            self.visit(target)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        self.visit(node.annotation)
        if node.value is not None:
            self.visit(node.value)
        target = node.target
        if isinstance(target, ast.Name):
            kind = BindingKind.ALIAS if _last_segment(node.annotation) == "TypeAlias" else BindingKind.VALUE
            self._bind(target.id, kind, node, _end(node), value=node.value, annotation=node.annotation)
            if self.scope.kind is ScopeKind.CLASS and not _is_classvar(node.annotation):
                classdef = self.scope.node
                assert isinstance(classdef, ast.ClassDef)
                self.class_fields.setdefault(classdef, {})[target.id] = ClassField(
                    target.id, node.annotation, node.value,
                )
        elif isinstance(target, ast.Attribute):
            self._record_self_field(target, node.annotation, node.value)
        self.visit(target)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self.visit(node.value)
        if isinstance(node.target, ast.Name):
            self._bind(node.target.id, BindingKind.OPAQUE, node, _end(node))
        self.visit(node.target)

    def visit_TypeAlias(self, node: ast.AST) -> None:
        # ``type X = ...`` (Python 3.12+)
        name = getattr(node, "name", None)
        value = getattr(node, "value", None)
        if isinstance(name, ast.Name):
            self._bind(name.id, BindingKind.ALIAS, node, _end(node), value=value)
        self.generic_visit(node)

    def visit_For(self, node: ast.AST) -> None:
        self.visit(node.iter)  # type: ignore[attr-defined]
        target = node.target  # type: ignore[attr-defined]
        self._bind_opaque_targets(target, node, _end(target))
        self.visit(target)
        for stmt in node.body + node.orelse:  # type: ignore[attr-defined]
            self.visit(stmt)

    visit_AsyncFor = visit_For

    def visit_With(self, node: ast.AST) -> None:
        for item in node.items:  # type: ignore[attr-defined]
            self.visit(item.context_expr)
            if item.optional_vars is not None:
                self._bind_opaque_targets(item.optional_vars, node, _end(item.optional_vars))
                self.visit(item.optional_vars)
        for stmt in node.body:  # type: ignore[attr-defined]
            self.visit(stmt)

    visit_AsyncWith = visit_With

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is not None:
            self.visit(node.type)
        if node.name:
            self._bind(node.name, BindingKind.OPAQUE, node, _start(node))
        for stmt in node.body:
            self.visit(stmt)

    def visit_MatchAs(self, node: ast.AST) -> None:
        name = getattr(node, "name", None)
        if name:
            self._bind(name, BindingKind.OPAQUE, node, _end(node))
        self.generic_visit(node)

    def visit_MatchStar(self, node: ast.AST) -> None:
        name = getattr(node, "name", None)
        if name:
            self._bind(name, BindingKind.OPAQUE, node, _end(node))

    def visit_MatchMapping(self, node: ast.AST) -> None:
        rest = getattr(node, "rest", None)
        if rest:
            self._bind(rest, BindingKind.OPAQUE, node, _end(node))
        self.generic_visit(node)

    # ── definitions ──────────────────────────────────────────────────

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for expr in node.decorator_list + node.bases:
            self.visit(expr)
        for keyword in node.keywords:
            self.visit(keyword)
        self.class_fields.setdefault(node, {})
        with self._entered(Scope(ScopeKind.CLASS, node, self.scope)):
            self._self_stack.append(None)
            for stmt in node.body:
                self.visit(stmt)
            self._self_stack.pop()
        self._bind(node.name, BindingKind.CLASS, node, _end(node))

    def visit_FunctionDef(self, node: ast.AST) -> None:
        for expr in node.decorator_list:  # type: ignore[attr-defined]
            self.visit(expr)
        self._visit_signature_outer(node.args)  # type: ignore[attr-defined]
        returns = getattr(node, "returns", None)
        if returns is not None:
            self.visit(returns)
        self._bind(node.name, BindingKind.OPAQUE, node, _end(node))  # type: ignore[attr-defined]

        owner = self._instance_owner(node)
        with self._entered(Scope(ScopeKind.FUNCTION, node, self.scope)) as scope:
            self.node_scopes[node.args] = scope  # type: ignore[attr-defined]
            self._bind_parameters(node, node.args, owner)  # type: ignore[attr-defined]
            if owner is not None:
                self.method_classes[node] = owner
                first = self._positional(node.args)[0]  # type: ignore[attr-defined]
                self._self_stack.append((owner, first.arg))
            else:
                self._self_stack.append(None)
            for stmt in node.body:  # type: ignore[attr-defined]
                self.visit(stmt)
            self._self_stack.pop()

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_signature_outer(node.args)
        with self._entered(Scope(ScopeKind.FUNCTION, node, self.scope)) as scope:
            self.node_scopes[node.args] = scope
            self._bind_parameters(node, node.args, None)
            self._self_stack.append(None)
            self.visit(node.body)
            self._self_stack.pop()

    def _visit_signature_outer(self, args: ast.arguments) -> None:
        for default in args.defaults + [d for d in args.kw_defaults if d is not None]:
            self.visit(default)
        for arg in self._all_args(args):
            if arg.annotation is not None:
                self.visit(arg.annotation)

    def _bind_parameters(
        self,
        function: ast.AST,
        args: ast.arguments,
        owner: Optional[ast.ClassDef],
    ) -> None:
        position = _start(function)
        for index, arg in enumerate(self._all_args(args)):
            self.node_scopes[arg] = self.scope
            self._bind(
                arg.arg, BindingKind.PARAMETER, arg, position,
                annotation=arg.annotation,
                owner=owner if index == 0 else None,
            )

    @staticmethod
    def _positional(args: ast.arguments) -> List[ast.arg]:
        return list(args.posonlyargs) + list(args.args)

    def _all_args(self, args: ast.arguments) -> List[ast.arg]:
        result = self._positional(args)
        if args.vararg is not None:
            result.append(args.vararg)
        result.extend(args.kwonlyargs)
        if args.kwarg is not None:
            result.append(args.kwarg)
        return result

    def _instance_owner(self, node: ast.AST) -> Optional[ast.ClassDef]:
        if self.scope.kind is not ScopeKind.CLASS:
            return None
        decorators = {_last_segment(d) for d in node.decorator_list}  # type: ignore[attr-defined]
        if decorators & {"staticmethod", "classmethod"}:
            return None
        if not self._positional(node.args):  # type: ignore[attr-defined]
            return None
        classdef = self.scope.node
        return classdef if isinstance(classdef, ast.ClassDef) else None

    # ── expressions ──────────────────────────────────────────────────

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.visit(node.value)
        # PEP 572: the target binds in the nearest non-comprehension scope
        scope = self.scope
        while scope.kind is ScopeKind.COMPREHENSION and scope.parent is not None:
            scope = scope.parent
        self._bind(node.target.id, BindingKind.ASSIGN, node, _end(node), value=node.value, scope=scope)
        self.visit(node.target)

    def _visit_comprehension(self, node: ast.AST, results: List[ast.expr]) -> None:
        generators: List[ast.comprehension] = node.generators  # type: ignore[attr-defined]
        self.visit(generators[0].iter)
        with self._entered(Scope(ScopeKind.COMPREHENSION, node, self.scope)):
            for index, gen in enumerate(generators):
                self.node_scopes[gen] = self.scope
                if index:
                    self.visit(gen.iter)
                self._bind_opaque_targets(gen.target, gen, _end(gen.target))
                self.visit(gen.target)
                for condition in gen.ifs:
                    self.visit(condition)
            for expr in results:
                self.visit(expr)

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node, [node.elt])

    def visit_SetComp(self, node: ast.SetComp) -> None:
        self._visit_comprehension(node, [node.elt])

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        self._visit_comprehension(node, [node.elt])

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node, [node.key, node.value])


__all__ = [
    "Binding",
    "BindingKind",
    "BindingTable",
    "ClassField",
    "Scope",
    "ScopeKind",
]

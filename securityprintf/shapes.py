"""
securityprintf/shapes.py
════════════════════════

Aggregate-type guard: decides whether a value's static shape is a
record (``RECORD``) or a map (``MAP``) whose default formatting prints
every field it holds.

Shapes are read from three places:

  * class definitions   ``@dataclass class User``, ``class Env(TypedDict)``
  * type annotations    ``users: list[User]``, ``Optional[Dict[str, str]]``
  * constructions       ``User(...)``, ``dict(...)``, ``OrderedDict()``

Named types are unfolded once: a class named directly, or one alias
(``Alias = User`` / ``type Alias = dict[str, str]``) in front of it.
Alias-to-alias chains and base classes beyond the first level are not
followed, so self-referential type graphs cannot make the guard loop.
"""

from __future__ import annotations

import ast
import enum
import logging
from typing import FrozenSet, List, Optional

from securityprintf.bindings import BindingKind, BindingTable, ClassField

logger = logging.getLogger(__name__)


class AggregateKind(enum.Enum):
    RECORD = "struct"
    MAP = "map"


MAP_TYPE_NAMES: FrozenSet[str] = frozenset({
    "dict", "Dict", "Mapping", "MutableMapping", "OrderedDict",
    "defaultdict", "DefaultDict", "Counter", "ChainMap", "UserDict",
    "TypedDict", "MappingProxyType",
})

MAP_CONSTRUCTORS: FrozenSet[str] = frozenset({
    "dict", "OrderedDict", "defaultdict", "Counter",
})

SEQUENCE_TYPE_NAMES: FrozenSet[str] = frozenset({
    "list", "List", "tuple", "Tuple", "set", "Set", "frozenset",
    "FrozenSet", "Sequence", "MutableSequence", "Iterable", "Iterator",
    "Collection", "deque", "Deque", "AbstractSet", "MutableSet",
})

WRAPPER_TYPE_NAMES: FrozenSet[str] = frozenset({
    "Optional", "Annotated", "Final", "Required", "NotRequired", "ReadOnly",
})

RECORD_BASES: FrozenSet[str] = frozenset({"NamedTuple", "BaseModel", "Struct"})
RECORD_DECORATORS: FrozenSet[str] = frozenset({
    "dataclass", "define", "frozen", "mutable", "attrs",
})
ENUM_BASES: FrozenSet[str] = frozenset({"Enum", "IntEnum", "StrEnum", "Flag", "IntFlag"})
FORMAT_METHODS: FrozenSet[str] = frozenset({"__repr__", "__str__", "__format__"})


def _last_segment(node: ast.AST) -> str:
    if isinstance(node, ast.Call):
        node = node.func
    if isinstance(node, ast.Subscript):
        node = node.value
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return ""


def _subscript_args(node: ast.Subscript) -> List[ast.expr]:
    index = node.slice
    if isinstance(index, ast.Tuple):
        return list(index.elts)
    return [index]


def _is_none(node: ast.expr) -> bool:
    return (
        (isinstance(node, ast.Constant) and node.value is None)
        or (isinstance(node, ast.Name) and node.id == "None")
    )


def _union_members(node: ast.expr) -> List[ast.expr]:
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _union_members(node.left) + _union_members(node.right)
    return [node]


def _parse_forward_ref(text: str) -> Optional[ast.expr]:
    try:
        return ast.parse(text.strip(), mode="eval").body
    except SyntaxError:
        logger.debug("unparsable forward reference %r", text)
        return None


class AggregateTypeGuard:
    """
    Shape queries against one unit's binding table.

    Every query takes the node whose scope is used for name lookups
    (``at``); it defaults to the expression itself.
    """

    def __init__(self, bindings: BindingTable) -> None:
        self.bindings = bindings

    # ── classes ──────────────────────────────────────────────────────

    def class_shape(self, classdef: ast.ClassDef) -> Optional[AggregateKind]:
        """Shape of instances of *classdef*, looking one level into local bases."""
        shape = self._direct_class_shape(classdef)
        if shape is not None or self._formats_itself(classdef):
            return shape
        for base in classdef.bases:
            if not isinstance(base, ast.Name):
                continue
            binding = self.bindings.lookup(base.id, base)
            if binding is not None and binding.kind is BindingKind.CLASS:
                assert isinstance(binding.node, ast.ClassDef)
                if binding.node is not classdef:
                    inherited = self._direct_class_shape(binding.node)
                    if inherited is not None:
                        return inherited
        return None

    def _direct_class_shape(self, classdef: ast.ClassDef) -> Optional[AggregateKind]:
        bases = {_last_segment(b) for b in classdef.bases}
        if bases & ENUM_BASES or self._formats_itself(classdef):
            return None
        if bases & MAP_TYPE_NAMES:
            return AggregateKind.MAP
        if bases & RECORD_BASES:
            return AggregateKind.RECORD
        for decorator in classdef.decorator_list:
            name = _last_segment(decorator)
            if name in RECORD_DECORATORS:
                return AggregateKind.RECORD
            target = decorator.func if isinstance(decorator, ast.Call) else decorator
            if isinstance(target, ast.Attribute) and target.attr == "s":
                # attr.s
                return AggregateKind.RECORD
        return None

    @staticmethod
    def _formats_itself(classdef: ast.ClassDef) -> bool:
        return any(
            isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef))
            and stmt.name in FORMAT_METHODS
            for stmt in classdef.body
        )

    # ── annotations ──────────────────────────────────────────────────

    def annotation_shape(
        self,
        annotation: ast.expr,
        at: Optional[ast.AST] = None,
        aliases: int = 1,
    ) -> Optional[AggregateKind]:
        """Shape described by a type expression."""
        at = at if at is not None else annotation
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            parsed = _parse_forward_ref(annotation.value)
            return self.annotation_shape(parsed, at, aliases) if parsed is not None else None

        if isinstance(annotation, ast.BinOp) and isinstance(annotation.op, ast.BitOr):
            return self._union_shape(_union_members(annotation), at, aliases)

        if isinstance(annotation, ast.Subscript):
            base = _last_segment(annotation.value)
            args = _subscript_args(annotation)
            if base in MAP_TYPE_NAMES:
                return AggregateKind.MAP
            if base in WRAPPER_TYPE_NAMES:
                return self.annotation_shape(args[0], at, aliases)
            if base == "Union":
                return self._union_shape(args, at, aliases)
            if base in SEQUENCE_TYPE_NAMES:
                for element in args:
                    if isinstance(element, ast.Constant) and element.value is Ellipsis:
                        continue
                    shape = self.annotation_shape(element, at, aliases)
                    if shape is not None:
                        return shape
                return None
            # user generic: Box[User] is shaped like Box
            return self.annotation_shape(annotation.value, at, aliases)

        if isinstance(annotation, ast.Attribute):
            return AggregateKind.MAP if annotation.attr in MAP_TYPE_NAMES else None

        if isinstance(annotation, ast.Name):
            return self._named_shape(annotation, at, aliases)
        return None

    def _named_shape(self, name: ast.Name, at: ast.AST, aliases: int) -> Optional[AggregateKind]:
        binding = self.bindings.lookup(name.id, name if self.bindings.scope_of(name) else at, lazy=True)
        if binding is None or binding.kind is BindingKind.OPAQUE:
            return AggregateKind.MAP if name.id in MAP_TYPE_NAMES else None
        if binding.kind is BindingKind.CLASS:
            assert isinstance(binding.node, ast.ClassDef)
            return self.class_shape(binding.node)
        if binding.kind in (BindingKind.ALIAS, BindingKind.ASSIGN) and binding.value is not None:
            if aliases <= 0:
                return None
            return self.annotation_shape(binding.value, binding.value, aliases - 1)
        return None

    def _union_shape(
        self,
        members: List[ast.expr],
        at: ast.AST,
        aliases: int,
    ) -> Optional[AggregateKind]:
        shapes = {
            self.annotation_shape(member, at, aliases)
            for member in members
            if not _is_none(member)
        }
        if len(shapes) == 1:
            return shapes.pop()
        return None

    def resolve_class(
        self,
        annotation: ast.expr,
        at: Optional[ast.AST] = None,
        aliases: int = 1,
    ) -> Optional[ast.ClassDef]:
        """The local class a type expression names, unwrapping Optional and friends."""
        at = at if at is not None else annotation
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            parsed = _parse_forward_ref(annotation.value)
            return self.resolve_class(parsed, at, aliases) if parsed is not None else None
        if isinstance(annotation, ast.BinOp) and isinstance(annotation.op, ast.BitOr):
            members = [m for m in _union_members(annotation) if not _is_none(m)]
            return self.resolve_class(members[0], at, aliases) if len(members) == 1 else None
        if isinstance(annotation, ast.Subscript):
            base = _last_segment(annotation.value)
            args = _subscript_args(annotation)
            if base in WRAPPER_TYPE_NAMES:
                return self.resolve_class(args[0], at, aliases)
            if base == "Union":
                members = [m for m in args if not _is_none(m)]
                return self.resolve_class(members[0], at, aliases) if len(members) == 1 else None
            return None
        if not isinstance(annotation, ast.Name):
            return None
        binding = self.bindings.lookup(
            annotation.id, annotation if self.bindings.scope_of(annotation) else at, lazy=True,
        )
        if binding is None:
            return None
        if binding.kind is BindingKind.CLASS:
            assert isinstance(binding.node, ast.ClassDef)
            return binding.node
        if binding.kind in (BindingKind.ALIAS, BindingKind.ASSIGN) and binding.value is not None and aliases > 0:
            return self.resolve_class(binding.value, binding.value, aliases - 1)
        return None

    # ── constructions and values ─────────────────────────────────────

    def construction_shape(self, call: ast.Call) -> Optional[AggregateKind]:
        """Shape of the object a call builds, when the callee is a known type."""
        func = call.func
        if isinstance(func, ast.Attribute):
            if func.attr in MAP_CONSTRUCTORS and isinstance(func.value, ast.Name) \
                    and func.value.id == "collections":
                return AggregateKind.MAP
            return None
        if not isinstance(func, ast.Name):
            return None
        binding = self.bindings.lookup(func.id, func)
        if binding is None:
            return AggregateKind.MAP if func.id in MAP_CONSTRUCTORS else None
        if binding.kind is BindingKind.OPAQUE:
            imported = isinstance(binding.node, (ast.Import, ast.ImportFrom))
            return AggregateKind.MAP if imported and func.id in MAP_CONSTRUCTORS else None
        if binding.kind is BindingKind.CLASS:
            assert isinstance(binding.node, ast.ClassDef)
            return self.class_shape(binding.node)
        if binding.kind in (BindingKind.ALIAS, BindingKind.ASSIGN) and binding.value is not None:
            return self.annotation_shape(binding.value, binding.value, aliases=0)
        return None

    def value_shape(self, value: ast.expr) -> Optional[AggregateKind]:
        """Shape of a field's initial value, read without following names."""
        if isinstance(value, (ast.Dict, ast.DictComp)):
            return AggregateKind.MAP
        if isinstance(value, ast.Call):
            return self.construction_shape(value)
        return None

    def expression_class(self, expr: ast.expr, seen: FrozenSet[object] = frozenset()) -> Optional[ast.ClassDef]:
        """Local class of the object *expr* evaluates to, when syntactically evident."""
        if isinstance(expr, ast.Name):
            binding = self.bindings.lookup(expr.id, expr)
            if binding is None or binding in seen:
                return None
            seen = seen | {binding}
            if binding.owner is not None:
                return binding.owner
            if binding.kind in (BindingKind.PARAMETER, BindingKind.VALUE) and binding.annotation is not None:
                resolved = self.resolve_class(binding.annotation)
                if resolved is not None:
                    return resolved
            if binding.kind in (BindingKind.ASSIGN, BindingKind.VALUE) and binding.value is not None:
                return self.expression_class(binding.value, seen)
            return None
        if isinstance(expr, ast.Call) and isinstance(expr.func, ast.Name):
            binding = self.bindings.lookup(expr.func.id, expr.func)
            if binding is not None and binding.kind is BindingKind.CLASS:
                assert isinstance(binding.node, ast.ClassDef)
                return binding.node
            return None
        if isinstance(expr, ast.Attribute):
            owner = self.expression_class(expr.value, seen)
            if owner is None:
                return None
            fld = self.bindings.field(owner, expr.attr)
            if fld is None or fld in seen:
                return None
            if fld.annotation is not None:
                return self.resolve_class(fld.annotation)
            if fld.value is not None:
                return self.expression_class(fld.value, seen | {fld})
        return None

    def field_shape(self, base: ast.expr, attr: str, seen: FrozenSet[object] = frozenset()) -> Optional[AggregateKind]:
        """Shape declared for ``base.attr`` on the class of *base*."""
        owner = self.expression_class(base, seen)
        if owner is None:
            return None
        fld: Optional[ClassField] = self.bindings.field(owner, attr)
        if fld is None:
            return None
        if fld.annotation is not None:
            return self.annotation_shape(fld.annotation)
        if fld.value is not None:
            return self.value_shape(fld.value)
        return None


__all__ = [
    "AggregateKind",
    "AggregateTypeGuard",
    "MAP_CONSTRUCTORS",
    "MAP_TYPE_NAMES",
    "SEQUENCE_TYPE_NAMES",
]

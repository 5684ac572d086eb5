"""
securityprintf/frontend.py
══════════════════════════

Front end: turns Python source into the structures the analysis reads.

  * ``CompilationUnit``  parsed module plus its ``BindingTable``
  * ``CallSite``         one call expression with its callee name and position
  * ``iter_call_sites``  source-order traversal of every call in a unit
"""

from __future__ import annotations

import ast
import logging
import tokenize
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

from securityprintf.bindings import BindingTable
from securityprintf.errors import SourceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceLocation:
    """A specific point in source code (1-based line and column)."""
    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


@dataclass
class CompilationUnit:
    """
    One parsed source file.

    Attributes
    ----------
    filename : path used in diagnostics
    source   : full source text
    tree     : ``ast.Module``
    bindings : scope-resolved identifier table for ``tree``
    """
    filename: str
    source: str
    tree: ast.Module
    bindings: BindingTable
    @classmethod
    def from_source(cls, source: str, filename: str = "<unknown>") -> CompilationUnit:
        try:
            tree = ast.parse(source, filename=filename)
        except SyntaxError as exc:
            raise SourceError.from_syntax_error(filename, exc) from exc
        except ValueError as exc:
            # source containing null bytes
            raise SourceError(filename, str(exc)) from exc
        return cls.from_tree(tree, filename, source)

    @classmethod
    def from_tree(cls, tree: ast.Module, filename: str, source: str = "") -> CompilationUnit:
        """Wrap an already-parsed module (as handed over by flake8)."""
        return cls(
            filename=filename,
            source=source,
            tree=tree,
            bindings=BindingTable.build(tree),
        )

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> CompilationUnit:
        """Read *path* honouring its PEP 263 encoding cookie, then parse it."""
        filename = str(path)
        try:
            with tokenize.open(filename) as fh:
                source = fh.read()
        except (OSError, UnicodeDecodeError, SyntaxError) as exc:
            raise SourceError(filename, f"cannot read source: {exc}") from exc
        return cls.from_source(source, filename)

    def segment(self, node: ast.AST) -> str:
        """Source text of *node*, falling back to ``ast.unparse``."""
        text = ast.get_source_segment(self.source, node) if self.source else None
        if text is None:
            text = ast.unparse(node)
        return " ".join(text.split())

    def location(self, node: ast.AST) -> SourceLocation:
        return SourceLocation(
            file=self.filename,
            line=getattr(node, "lineno", 0),
            column=getattr(node, "col_offset", -1) + 1,
        )


def dotted_name(node: ast.expr) -> Optional[str]:
    """``a.b.c`` for a Name/Attribute chain, None for anything else."""
    parts: List[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


@dataclass(frozen=True)
class CallSite:
    """
    A call expression as seen by the analysis.

    ``callee`` is the dotted callee name (``logger.info``, ``print``), or the
    bare method name when the receiver is not a plain name chain
    (``logging.getLogger(__name__).info`` → ``info``).
    """
    node: ast.Call
    callee: str
    location: SourceLocation

    @property
    def args(self) -> List[ast.expr]:
        return list(self.node.args)

    @property
    def keywords(self) -> List[ast.keyword]:
        return list(self.node.keywords)


class _CallCollector(ast.NodeVisitor):
    def __init__(self, unit: CompilationUnit) -> None:
        self.unit = unit
        self.sites: List[CallSite] = []

    def visit_Call(self, node: ast.Call) -> None:
        callee = dotted_name(node.func)
        if callee is None and isinstance(node.func, ast.Attribute):
            callee = node.func.attr
        if callee is not None:
            self.sites.append(CallSite(node, callee, self.unit.location(node)))
        self.generic_visit(node)


def iter_call_sites(unit: CompilationUnit) -> Iterator[CallSite]:
    """Yield every call in *unit*, outer calls before the calls nested in them."""
    collector = _CallCollector(unit)
    collector.visit(unit.tree)
    logger.debug("%s: %d call sites", unit.filename, len(collector.sites))
    return iter(collector.sites)


__all__ = [
    "CallSite",
    "CompilationUnit",
    "SourceLocation",
    "dotted_name",
    "iter_call_sites",
]

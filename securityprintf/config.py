"""
securityprintf/config.py
════════════════════════

Immutable analysis configuration.

The sensitive-name set and the logging-function tables are the only state
that outlives a single pass over a compilation unit.  Both live in a frozen
``SecurityPrintfConfig`` built once before analysis starts and passed
explicitly into every checker, so independent units can be analysed
concurrently against the same object.

Usage
-----
>>> cfg = SecurityPrintfConfig.default()
>>> cfg.sensitive_names.matches("userPassword")
True
>>> cfg = SecurityPrintfConfig.from_options({"extra_sensitive_names": ["ssn"]})
>>> cfg.sensitive_names.matches("SSN")
True
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    Mapping,
    Optional,
)

from securityprintf.errors import ConfigError


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: SENSITIVE NAME SET
# ═════════════════════════════════════════════════════════════════════════

DEFAULT_SENSITIVE_NAMES: FrozenSet[str] = frozenset({
    "password",
    "passwd",
    "secret",
    "key",
    "auth",
    "token",
    "credential",
    "credentials",
    "userpassword",
    "authtoken",
})


def normalize_name(name: str) -> str:
    """Lower-case *name* and drop underscores so snake and camel case agree."""
    return name.replace("_", "").lower()


class SensitiveNameSet:
    """
    Case-insensitive set of sensitive tokens.

    Names are compared whole, after ``normalize_name``: ``user_password``,
    ``userPassword`` and ``USERPASSWORD`` are the same token, while
    ``password_hint`` is not ``password``.
    """

    __slots__ = ("_tokens",)

    def __init__(self, tokens: Iterable[str] = DEFAULT_SENSITIVE_NAMES) -> None:
        normalized = set()
        for token in tokens:
            if not isinstance(token, str) or not token.strip("_ "):
                raise ConfigError("sensitive_names", f"expected a non-empty name, got {token!r}")
            normalized.add(normalize_name(token.strip()))
        self._tokens: FrozenSet[str] = frozenset(normalized)

    def matches(self, name: str) -> bool:
        """True iff *name* normalises to a configured token.  Dunder names
        such as ``__key__`` never match."""
        if len(name) > 4 and name.startswith("__") and name.endswith("__"):
            return False
        return normalize_name(name) in self._tokens

    def union(self, tokens: Iterable[str]) -> SensitiveNameSet:
        return SensitiveNameSet(set(self._tokens) | set(tokens))

    @property
    def tokens(self) -> FrozenSet[str]:
        return self._tokens

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.matches(name)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._tokens))

    def __len__(self) -> int:
        return len(self._tokens)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SensitiveNameSet):
            return NotImplemented
        return self._tokens == other._tokens

    def __hash__(self) -> int:
        return hash(self._tokens)

    def __repr__(self) -> str:
        return f"SensitiveNameSet({sorted(self._tokens)!r})"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: LOGGING FUNCTION TABLE
# ═════════════════════════════════════════════════════════════════════════

class LoggingFunctionKind(enum.Enum):
    """How a call formats its arguments."""
    NOT_LOGGING = "not-logging"
    PRINT_STYLE = "print"      # no template, every argument is printed
    PRINTF_STYLE = "printf"    # template followed by the values it formats


@dataclass(frozen=True)
class LoggingFunction:
    """
    Classification of a callee: its kind and where its template sits.

    ``template_on_receiver`` marks ``"...".format(...)``: the template is the
    string the method is called on and every argument is printed.
    """
    kind: LoggingFunctionKind
    template_index: int = 0
    template_on_receiver: bool = False

    @property
    def is_logging(self) -> bool:
        return self.kind is not LoggingFunctionKind.NOT_LOGGING


NOT_LOGGING = LoggingFunction(LoggingFunctionKind.NOT_LOGGING)
PRINT = LoggingFunction(LoggingFunctionKind.PRINT_STYLE)
PRINTF = LoggingFunction(LoggingFunctionKind.PRINTF_STYLE)
STR_FORMAT = LoggingFunction(LoggingFunctionKind.PRINTF_STYLE, template_on_receiver=True)

DEFAULT_LOGGING_NAMESPACES: FrozenSet[str] = frozenset({
    "logging", "log", "logger", "fmt", "glog", "klog",
    "logrus", "zap", "structlog", "loguru",
})

# Methods looked up on a logging namespace (``logger.info``, ``log.printf``).
DEFAULT_METHOD_TABLE: Mapping[str, LoggingFunction] = MappingProxyType({
    "debug": PRINTF,
    "info": PRINTF,
    "warning": PRINTF,
    "warn": PRINTF,
    "error": PRINTF,
    "critical": PRINTF,
    "exception": PRINTF,
    "fatal": PRINTF,
    "trace": PRINTF,
    "success": PRINTF,
    "msg": PRINTF,
    "log": LoggingFunction(LoggingFunctionKind.PRINTF_STYLE, template_index=1),
    "printf": PRINTF,
    "debugf": PRINTF,
    "infof": PRINTF,
    "warnf": PRINTF,
    "warningf": PRINTF,
    "errorf": PRINTF,
    "fatalf": PRINTF,
    "print": PRINT,
    "println": PRINT,
})

# Functions called by bare or fully qualified name.
DEFAULT_FUNCTION_TABLE: Mapping[str, LoggingFunction] = MappingProxyType({
    "print": PRINT,
    "pprint": PRINT,
    "pprint.pprint": PRINT,
    "pprint.pp": PRINT,
})

# Keywords that steer logging/print rather than being printed.
DEFAULT_IGNORED_KEYWORDS: FrozenSet[str] = frozenset({
    "exc_info", "stack_info", "stacklevel", "extra",
    "sep", "end", "file", "flush",
})


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: CONFIGURATION OBJECT
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SecurityPrintfConfig:
    """
    Everything the analysis reads besides the source itself.

    Attributes
    ----------
    sensitive_names     : tokens that flag an identifier, field or key
    logging_namespaces  : receivers recognised as loggers (lower-case)
    method_table        : method name (lower-case) -> LoggingFunction
    function_table      : bare/dotted function name -> LoggingFunction
    format_suffix       : suffix marking printf-style methods on loggers
    ignored_keywords    : keyword arguments that are never walked
    report_undetermined : emit the "cannot determine" note for opaque print calls
    check_keywords      : walk keyword arguments of logging calls
    """
    sensitive_names: SensitiveNameSet = field(default_factory=SensitiveNameSet)
    logging_namespaces: FrozenSet[str] = DEFAULT_LOGGING_NAMESPACES
    method_table: Mapping[str, LoggingFunction] = field(default_factory=lambda: DEFAULT_METHOD_TABLE)
    function_table: Mapping[str, LoggingFunction] = field(default_factory=lambda: DEFAULT_FUNCTION_TABLE)
    format_suffix: str = "f"
    ignored_keywords: FrozenSet[str] = DEFAULT_IGNORED_KEYWORDS
    report_undetermined: bool = True
    check_keywords: bool = True

    @classmethod
    def default(cls) -> SecurityPrintfConfig:
        return cls()

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> SecurityPrintfConfig:
        """
        Build a configuration from a plain options mapping.

        Recognised keys: ``sensitive_names`` (replaces the defaults),
        ``extra_sensitive_names``, ``logging_namespaces``,
        ``extra_logging_namespaces``, ``format_suffix``,
        ``report_undetermined`` and ``check_keywords``.  Unknown keys are
        rejected so typos do not silently disable a check.
        """
        options = dict(options or {})
        known = {
            "sensitive_names", "extra_sensitive_names",
            "logging_namespaces", "extra_logging_namespaces",
            "format_suffix", "report_undetermined", "check_keywords",
        }
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigError(unknown[0], "unknown option")

        names = SensitiveNameSet(_string_list(options, "sensitive_names", DEFAULT_SENSITIVE_NAMES))
        extra = _string_list(options, "extra_sensitive_names", ())
        if extra:
            names = names.union(extra)

        namespaces = set(_string_list(options, "logging_namespaces", DEFAULT_LOGGING_NAMESPACES))
        namespaces.update(_string_list(options, "extra_logging_namespaces", ()))

        suffix = options.get("format_suffix", "f")
        if not isinstance(suffix, str):
            raise ConfigError("format_suffix", f"expected a string, got {suffix!r}")

        return cls(
            sensitive_names=names,
            logging_namespaces=frozenset(ns.lstrip("_").lower() for ns in namespaces),
            format_suffix=suffix,
            report_undetermined=_flag(options, "report_undetermined", True),
            check_keywords=_flag(options, "check_keywords", True),
        )

    def with_sensitive_names(self, names: Iterable[str]) -> SecurityPrintfConfig:
        return replace(self, sensitive_names=SensitiveNameSet(names))

    def is_sensitive(self, name: str) -> bool:
        return self.sensitive_names.matches(name)

    def lookup_method(self, name: str) -> Optional[LoggingFunction]:
        return self.method_table.get(name.lower())

    def lookup_function(self, dotted: str) -> Optional[LoggingFunction]:
        return self.function_table.get(dotted)

    def as_dict(self) -> Dict[str, Any]:
        """Plain-data view, used by ``--show-config`` and in test assertions."""
        return {
            "sensitive_names": sorted(self.sensitive_names.tokens),
            "logging_namespaces": sorted(self.logging_namespaces),
            "format_suffix": self.format_suffix,
            "report_undetermined": self.report_undetermined,
            "check_keywords": self.check_keywords,
        }


def _string_list(options: Mapping[str, Any], key: str, default: Iterable[str]) -> FrozenSet[str]:
    value = options.get(key)
    if value is None:
        return frozenset(default)
    if isinstance(value, str):
        value = [v for v in value.split(",") if v.strip()]
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigError(key, f"expected a list of names, got {type(value).__name__}")
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(key, f"expected a non-empty name, got {item!r}")
    return frozenset(v.strip() for v in value)


def _flag(options: Mapping[str, Any], key: str, default: bool) -> bool:
    value = options.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(key, f"expected true or false, got {value!r}")
    return value


__all__ = [
    "DEFAULT_SENSITIVE_NAMES",
    "DEFAULT_LOGGING_NAMESPACES",
    "DEFAULT_METHOD_TABLE",
    "DEFAULT_FUNCTION_TABLE",
    "DEFAULT_IGNORED_KEYWORDS",
    "LoggingFunction",
    "LoggingFunctionKind",
    "NOT_LOGGING",
    "PRINT",
    "PRINTF",
    "STR_FORMAT",
    "SecurityPrintfConfig",
    "SensitiveNameSet",
    "normalize_name",
]

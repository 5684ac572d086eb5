"""
securityprintf/errors.py
════════════════════════

Exception hierarchy for the securityprintf package.

Findings are never raised: they are ``Diagnostic`` objects.  Exceptions
are reserved for conditions that stop the tool from analysing at all,
such as an invalid configuration or a file that cannot be read or parsed.

::

    SecurityPrintfError (base)
    ├── ConfigError     invalid configuration values
    └── SourceError     unreadable or unparsable source file
"""

from __future__ import annotations

from typing import Optional


class SecurityPrintfError(Exception):
    """Base class for all securityprintf errors."""


class ConfigError(SecurityPrintfError):
    """Raised when a configuration value is malformed."""

    def __init__(self, option: str, message: str) -> None:
        self.option = option
        super().__init__(f"invalid value for '{option}': {message}")


class SourceError(SecurityPrintfError):
    """
    Raised when a compilation unit cannot be built.

    Attributes
    ----------
    filename : file that failed
    line     : 1-based line of the failure (0 when unknown)
    column   : 1-based column of the failure (0 when unknown)
    """

    def __init__(
        self,
        filename: str,
        message: str,
        line: int = 0,
        column: int = 0,
    ) -> None:
        self.filename = filename
        self.line = line
        self.column = column
        self.reason = message
        super().__init__(f"{filename}:{line}: {message}" if line else f"{filename}: {message}")

    @classmethod
    def from_syntax_error(cls, filename: str, exc: SyntaxError) -> SourceError:
        return cls(
            filename,
            exc.msg or "invalid syntax",
            line=exc.lineno or 0,
            column=exc.offset or 0,
        )


def describe(exc: BaseException, filename: Optional[str] = None) -> str:
    """One-line description of *exc* suitable for an information diagnostic."""
    text = str(exc) or exc.__class__.__name__
    if filename and not isinstance(exc, SourceError):
        return f"{filename}: {text}"
    return text

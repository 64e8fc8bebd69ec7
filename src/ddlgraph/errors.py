"""
Exception hierarchy for SQL entity graph construction and emission.

All exceptions inherit from ``SqlGraphError`` and provide ``to_dict()``
for machine-readable error reports (the CLI and JSON exporter use it).

Any of these aborts the whole build: there is no partial output.
"""

from difflib import get_close_matches
from typing import Any, Dict, Iterable, List, Optional


class SqlGraphError(Exception):
    """Base exception for all graph build and emission errors."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": str(self),
        }


class ConfigurationConflictError(SqlGraphError):
    """
    Two entities claim the same singleton role.

    Raised for duplicate bootstrap/finalize SQL, duplicate extension roots
    and a type identity mapped twice. Both offenders are named.
    """

    def __init__(self, message: str, first: str, second: str) -> None:
        self.message = message
        self.first = first
        self.second = second
        super().__init__(f"{message}: found `{first}`, other was `{second}`")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "CONFIGURATION_CONFLICT",
            "message": self.message,
            "first": self.first,
            "second": self.second,
        }


class UnresolvedReferenceError(SqlGraphError):
    """
    A required reference could not be matched to any entity.

    Covers ``requires`` entries, argument/return types and support
    function names. Close matches among known names are suggested.
    """

    def __init__(
        self,
        reference: str,
        requester: str,
        location: str,
        what: str = "reference",
        candidates: Optional[Iterable[str]] = None,
    ) -> None:
        self.reference = reference
        self.requester = requester
        self.location = location
        self.what = what
        self.suggestions: List[str] = (
            get_close_matches(reference, sorted(set(candidates)), n=3, cutoff=0.6)
            if candidates
            else []
        )

        message = f"Could not find {what} `{reference}` required by `{requester}` ({location})"
        if self.suggestions:
            message += f". Did you mean: {', '.join(self.suggestions)}?"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "UNRESOLVED_REFERENCE",
            "what": self.what,
            "reference": self.reference,
            "requester": self.requester,
            "location": self.location,
            "suggestions": self.suggestions,
        }


class CyclicDependencyError(SqlGraphError):
    """The finished graph contains a cycle; ``node`` participates in it."""

    def __init__(self, node: str, cycle: Optional[List[str]] = None) -> None:
        self.node = node
        self.cycle = cycle or []
        message = f"Dependency cycle detected involving `{node}`"
        if self.cycle:
            message += f": {' -> '.join(self.cycle)}"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "CYCLIC_DEPENDENCY",
            "node": self.node,
            "cycle": self.cycle,
        }


class ManifestError(SqlGraphError):
    """Manifest input is malformed."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.message = message
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "MANIFEST_ERROR",
            "message": self.message,
            "path": self.path,
        }


__all__ = [
    "SqlGraphError",
    "ConfigurationConflictError",
    "UnresolvedReferenceError",
    "CyclicDependencyError",
    "ManifestError",
]

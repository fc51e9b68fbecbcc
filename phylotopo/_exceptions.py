"""
_exceptions.py
==============
Exception hierarchy for phylotopo.

Every error carries a short message and, where one exists, a suggestion for
the caller.  Each concrete error also subclasses the builtin exception a
caller would naturally catch (``ValueError`` or ``KeyError``), so code written
against plain builtins keeps working.
"""

from typing import Optional


class PhylotopoError(Exception):
    """Base exception for phylotopo errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message; keep it readable.
        return self.full_message


class EmptySelectionError(PhylotopoError, ValueError):
    """Raised when an MRCA or monophyly query receives no target nodes."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"No nodes selected for {operation}",
            suggestion="Pass at least one node ID, taxon name or Taxon.",
        )
        self.operation = operation


class MissingTaxonError(PhylotopoError, KeyError):
    """Raised when a requested taxon has no corresponding tip in the tree."""

    def __init__(self, taxon):
        super().__init__(
            message=f"No tip for taxon '{taxon}' found in tree",
            suggestion="Check the spelling and that the tree contains this taxon.",
        )
        self.taxon = taxon


class InvalidTreeStructureError(PhylotopoError, ValueError):
    """Raised when a tree (or its NEWICK text) violates rooted-tree structure."""


class UndefinedHeightError(PhylotopoError, ValueError):
    """Raised when a tip-height reduction meets a tip whose height is NaN."""

    def __init__(self, node: int):
        super().__init__(
            message=f"Tip {node} has an undefined (NaN) height",
            suggestion=(
                "Heights are derived from branch lengths; supply lengths for "
                "every branch or build the tree with explicit heights."
            ),
        )
        self.node = node

"""
_utils.py
=========
General-purpose helpers for phylotopo.

These are standalone functions and types that don't depend on the tree
classes and are useful in more than one module.
"""

import enum
from typing import Optional, Set, TypeVar


T = TypeVar('T')


class MaybeBoolean(enum.Enum):
    """
    A tri-state boolean: ``TRUE``, ``FALSE`` or ``MAYBE``.

    The monophyly walk uses ``MAYBE`` for "this subtree did not decide the
    question"; each frame passes its verdict back to the parent frame, which
    stops iterating siblings as soon as it sees a decided value.

    Examples
    --------
    >>> MaybeBoolean.from_bool(True)
    <MaybeBoolean.TRUE: 'true'>
    >>> MaybeBoolean.MAYBE.to_bool() is None
    True
    >>> MaybeBoolean.consensus(True, False)
    <MaybeBoolean.MAYBE: 'maybe'>
    """

    TRUE = "true"
    FALSE = "false"
    MAYBE = "maybe"

    @classmethod
    def from_bool(cls, value: bool) -> "MaybeBoolean":
        return cls.TRUE if value else cls.FALSE

    def to_bool(self) -> Optional[bool]:
        """Return True/False, or None for ``MAYBE``."""
        if self is MaybeBoolean.MAYBE:
            return None
        return self is MaybeBoolean.TRUE

    @property
    def decided(self) -> bool:
        return self is not MaybeBoolean.MAYBE

    @classmethod
    def consensus(cls, a: bool, b: bool) -> "MaybeBoolean":
        """``TRUE``/``FALSE`` when *a* and *b* agree, ``MAYBE`` otherwise."""
        if a == b:
            return cls.from_bool(a)
        return cls.MAYBE


def jaccard_similarity(set_a: Set[T], set_b: Set[T]) -> float:
    """
    Compute Jaccard similarity coefficient between two sets.

    Parameters
    ----------
    set_a, set_b : Set[T]
        Two sets to compare. Can contain any hashable type.

    Returns
    -------
    float
        ``|A ∩ B| / |A ∪ B|`` in [0, 1].
        Returns 0.0 if both sets are empty (union size is 0).

    Examples
    --------
    >>> jaccard_similarity({1, 2, 3}, {2, 3, 4})
    0.5
    >>> jaccard_similarity(set(), set())
    0.0
    """
    intersection = len(set_a & set_b)
    union = len(set_a | set_b)
    return intersection / union if union > 0 else 0.0


def format_newick(newick: str) -> str:
    """
    Format a NEWICK string for consistent representation.

    Ensures the NEWICK string ends with a semicolon and has no leading or
    trailing whitespace.

    Examples
    --------
    >>> format_newick('((A:1,B:1):1,(C:1,D:1):1)')
    '((A:1,B:1):1,(C:1,D:1):1);'

    >>> format_newick('  ((A:1,B:1):1);  ')
    '((A:1,B:1):1);'
    """
    newick = newick.strip()
    if not newick.endswith(';'):
        newick += ';'
    return newick

"""
_taxon.py
=========
Immutable taxon identity used to label the tips of a tree.

Taxa compare equal by name and order by name; canonical topology strings
rely on that ordering to break ties deterministically.
"""

from functools import total_ordering


@total_ordering
class Taxon:
    """
    A named taxon.

    Parameters
    ----------
    name : str
        Non-empty taxon name.

    Examples
    --------
    >>> Taxon("A") == Taxon("A")
    True
    >>> sorted([Taxon("b"), Taxon("a")])
    [Taxon('a'), Taxon('b')]
    """

    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        if not isinstance(name, str) or name == "":
            raise ValueError(f"Taxon name must be a non-empty string, got {name!r}.")
        object.__setattr__(self, "_name", name)

    @property
    def name(self) -> str:
        return self._name

    def __setattr__(self, key, value):
        raise AttributeError("Taxon is immutable.")

    def __eq__(self, other):
        if not isinstance(other, Taxon):
            return NotImplemented
        return self._name == other._name

    def __lt__(self, other):
        if not isinstance(other, Taxon):
            return NotImplemented
        return self._name < other._name

    def __hash__(self) -> int:
        return hash(("Taxon", self._name))

    def __repr__(self) -> str:
        return f"Taxon({self._name!r})"

    def __str__(self) -> str:
        return self._name

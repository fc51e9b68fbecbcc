"""
_newick.py
==========
NEWICK text emission for rooted trees.

  to_newick(tree, node=None, branch_lengths=True) -> str
  NewickExporter(writer)                           one tree per line

Children are written in stored order; use
:func:`phylotopo.canonical_newick` for an order-independent topology string.
"""

import logging
import math
from typing import Iterable, Optional, TextIO

from phylotopo._utils import format_newick


logger = logging.getLogger(__name__)

# Characters that force a label to be single-quoted.
_QUOTE_TRIGGERS = set("()[]':;, \t\n_")

# Traversal frame kinds for to_newick.
_NODE = "node"
_CLOSE = "close"
_SEPARATOR = "separator"


def _quote_label(name: str) -> str:
    if any(c in _QUOTE_TRIGGERS for c in name):
        return "'" + name.replace("'", "''") + "'"
    return name


def _format_length(value: float) -> str:
    # repr keeps full precision; drop a trailing '.0' for integral lengths.
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _branch_length(tree, distances, node: int) -> float:
    if distances is not None:
        stored = float(distances[node])
        if not math.isnan(stored):
            return stored
    return tree.height(tree.parent_of(node)) - tree.height(node)


def to_newick(tree, node: Optional[int] = None, branch_lengths: bool = True) -> str:
    """
    Return the NEWICK string (with trailing ';') for the subtree at *node*.

    Parameters
    ----------
    tree           : RootedTree
    node           : int, optional   Subtree root; defaults to the tree root.
    branch_lengths : bool
        If True, each non-root branch gets ``:length``.  Trees that carry a
        ``distance`` array (such as :class:`phylotopo.Tree`) write the stored
        branch length, so parsed lengths survive unchanged; otherwise, or
        where the stored length is NaN, the length is
        ``height(parent) - height(child)``.  Branches with no finite length
        are written without one.

    Examples
    --------
    >>> from phylotopo import Tree
    >>> to_newick(Tree("((A:1,B:1):1,C:2);"))
    '((A:1,B:1):1,C:2);'
    """
    if node is None:
        node = tree.root

    distances = getattr(tree, "distance", None)
    parts = []
    stack = [(_NODE, node)]
    while stack:
        kind, current = stack.pop()
        if kind is _SEPARATOR:
            parts.append(",")
            continue
        if kind is _NODE:
            if not tree.is_external(current):
                parts.append("(")
                stack.append((_CLOSE, current))
                kids = tree.children(current)
                for k in range(len(kids) - 1, -1, -1):
                    stack.append((_NODE, kids[k]))
                    if k > 0:
                        stack.append((_SEPARATOR, None))
                continue
            parts.append(_quote_label(tree.taxon(current).name))
        else:
            parts.append(")")

        if branch_lengths and current != node:
            length = _branch_length(tree, distances, current)
            if not math.isnan(length):
                parts.append(":" + _format_length(length))

    return format_newick("".join(parts))


class NewickExporter:
    """
    Write trees as NEWICK text, one tree per line.

    Parameters
    ----------
    writer : TextIO
        Any object with ``write``; closed by :meth:`close`.
    branch_lengths : bool
        Passed through to :func:`to_newick`.

    Examples
    --------
    >>> import io
    >>> buf = io.StringIO()
    >>> with NewickExporter(buf) as exporter:
    ...     exporter.export_tree(tree)
    """

    def __init__(self, writer: TextIO, branch_lengths: bool = True) -> None:
        self.writer = writer
        self.branch_lengths = branch_lengths
        self.n_exported = 0

    def export_tree(self, tree) -> None:
        """Write a single tree."""
        self.writer.write(to_newick(tree, branch_lengths=self.branch_lengths))
        self.writer.write("\n")
        self.n_exported += 1

    def export_trees(self, trees: Iterable) -> None:
        """Write every tree in *trees*."""
        for tree in trees:
            self.export_tree(tree)

    def close(self) -> None:
        logger.debug("Closing NEWICK exporter after %d tree(s)", self.n_exported)
        self.writer.close()

    def __enter__(self) -> "NewickExporter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

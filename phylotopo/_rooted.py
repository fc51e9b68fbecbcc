"""
_rooted.py
==========
Stateless query and topology-comparison algorithms for rooted trees.

Every function takes the tree as its first argument, reads it through the
``RootedTree`` capability interface and never mutates it.  No state survives
between calls, so concurrent callers are safe as long as nobody mutates the
tree underneath them.

Public API
----------
  Enumeration   external_node_count, tip_count, external_nodes,
                descendant_tips, tips_for_taxa
  Heights       min_tip_height, max_tip_height, average_tip_distance,
                is_ultrametric, is_binary
  MRCA          common_ancestor (alias mrca)
  Monophyly     is_monophyletic
  Topology      canonical_newick, topology_equal

Traversal notes
---------------
All walks use an explicit list stack instead of Python recursion, so a
caterpillar tree with tens of thousands of tips is handled without touching
the interpreter's recursion limit.  The two early-terminating searches (MRCA
and monophyly) keep one frame per open node holding the node, the index of
the next child to visit and the counts accumulated so far; a frame's counts
are folded into its parent's frame when it is popped.
"""

import logging
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import numpy as np

from phylotopo._exceptions import (
    EmptySelectionError,
    InvalidTreeStructureError,
    MissingTaxonError,
    UndefinedHeightError,
)
from phylotopo._taxon import Taxon
from phylotopo._utils import MaybeBoolean, jaccard_similarity


logger = logging.getLogger(__name__)

#: Default tolerance for :func:`is_ultrametric`.
DEFAULT_TOLERANCE = 1e-8


class RootedTree(Protocol):
    """The read-only tree interface the engine relies on."""

    root: int

    def children(self, node: int) -> Sequence[int]: ...

    def parent_of(self, node: int) -> Optional[int]: ...

    def is_external(self, node: int) -> bool: ...

    def height(self, node: int) -> float: ...

    def taxon(self, node: int) -> Optional[Taxon]: ...

    def external_nodes(self) -> List[int]: ...

    def internal_nodes(self) -> List[int]: ...

    def node_for_taxon(self, taxon) -> Optional[int]: ...


# ======================================================================== #
# Tip / subtree enumeration                                                 #
# ======================================================================== #


def external_node_count(tree: RootedTree, node: int) -> int:
    """
    Return the number of tips under *node* (1 if *node* is itself a tip).

    Recomputed on every call; cache the result if you need it repeatedly.
    """
    if tree.is_external(node):
        return 1
    count = 0
    stack = [node]
    while stack:
        current = stack.pop()
        for child in tree.children(current):
            if tree.is_external(child):
                count += 1
            else:
                stack.append(child)
    return count


tip_count = external_node_count


def external_nodes(tree: RootedTree, node: int) -> List[int]:
    """
    Return the tips under *node* in depth-first, children-in-order sequence.

    For a tip the result is ``[node]``.
    """
    if tree.is_external(node):
        return [node]
    tips = []
    stack = [node]
    while stack:
        current = stack.pop()
        if tree.is_external(current):
            tips.append(current)
        else:
            # Reversed so the first child is popped first.
            stack.extend(reversed(tree.children(current)))
    return tips


def descendant_tips(tree: RootedTree, node: int) -> Dict[int, None]:
    """
    Return the tips strictly below *node* as an insertion-ordered set.

    The result is a ``dict`` with ``None`` values, which keeps the
    depth-first order of :func:`external_nodes`.  A tip has no descendants,
    so for a tip the result is empty.
    """
    if tree.is_external(node):
        return {}
    return dict.fromkeys(external_nodes(tree, node))


def tips_for_taxa(tree: RootedTree, taxa: Iterable) -> Dict[int, None]:
    """
    Return the tips labelled by *taxa* as an insertion-ordered set.

    Parameters
    ----------
    tree : RootedTree
    taxa : iterable of Taxon or str

    Raises
    ------
    MissingTaxonError
        For the first taxon with no tip in *tree*.
    """
    tips = {}
    for taxon in taxa:
        node = tree.node_for_taxon(taxon)
        if node is None:
            raise MissingTaxonError(taxon)
        tips[node] = None
    return tips


# ======================================================================== #
# Tip-height statistics                                                     #
# ======================================================================== #


def _tip_heights(tree: RootedTree, node: int) -> np.ndarray:
    """Heights of every tip under *node*; raises on the first NaN."""
    tips = external_nodes(tree, node)
    heights = np.fromiter(
        (tree.height(tip) for tip in tips), dtype=np.float64, count=len(tips)
    )
    nan_mask = np.isnan(heights)
    if nan_mask.any():
        raise UndefinedHeightError(tips[int(np.argmax(nan_mask))])
    return heights


def min_tip_height(tree: RootedTree, node: int) -> float:
    """
    Return the smallest tip height under *node* (its own height for a tip).

    Raises
    ------
    UndefinedHeightError
        If any tip under *node* has a NaN height.
    """
    return float(np.min(_tip_heights(tree, node)))


def max_tip_height(tree: RootedTree, node: int) -> float:
    """
    Return the largest tip height under *node* (its own height for a tip).

    Raises
    ------
    UndefinedHeightError
        If any tip under *node* has a NaN height.
    """
    return float(np.max(_tip_heights(tree, node)))


def average_tip_distance(tree: RootedTree, node: int) -> float:
    """
    Return the mean of ``height(node) - height(tip)`` over the tips under
    *node*, or 0.0 when *node* is a tip.

    The caller is responsible for *node* sitting above all of its tips;
    NaN heights propagate into the result.
    """
    if tree.is_external(node):
        return 0.0
    node_height = tree.height(node)
    tips = external_nodes(tree, node)
    heights = np.fromiter(
        (tree.height(tip) for tip in tips), dtype=np.float64, count=len(tips)
    )
    return float(np.mean(node_height - heights))


def is_ultrametric(tree: RootedTree, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """
    True if every tip height lies within *tolerance* of zero.

    Only tips are checked.  A NaN tip height fails the test.
    """
    for tip in tree.external_nodes():
        h = tree.height(tip)
        if not abs(h) <= tolerance:
            return False
    return True


def is_binary(tree: RootedTree) -> bool:
    """True if no internal node has more than two children (unary nodes pass)."""
    for node in tree.internal_nodes():
        if len(tree.children(node)) > 2:
            return False
    return True


# ======================================================================== #
# MRCA                                                                      #
# ======================================================================== #


def _resolve_targets(tree: RootedTree, nodes, operation: str) -> List[int]:
    """
    Resolve *nodes* to a de-duplicated list of node IDs, preserving order.

    Trees that provide ``resolve`` accept IDs, names and ``Taxon`` objects;
    anything else must already pass node IDs.
    """
    resolve = getattr(tree, "resolve", None)
    targets = {}
    for node in nodes:
        node_id = resolve(node) if resolve is not None else node
        targets[node_id] = None
    if not targets:
        raise EmptySelectionError(operation)
    return list(targets)


def common_ancestor(tree: RootedTree, nodes: Iterable) -> int:
    """
    Return the most recent common ancestor of *nodes*.

    The MRCA is the deepest node that is an ancestor of, or equal to, every
    target.

    Parameters
    ----------
    tree  : RootedTree
    nodes : iterable of node IDs, taxon names or Taxon objects
        Tips or internal nodes; duplicates are ignored.

    Returns
    -------
    int   Node ID of the MRCA.

    Raises
    ------
    EmptySelectionError   if *nodes* is empty.
    MissingTaxonError     if a name has no tip.
    InvalidTreeStructureError
        if some target is not reachable from the root.

    Notes
    -----
    One post-order walk from the root.  Each frame counts the targets in
    its subtree, the frame's own node included, and the walk stops at the
    first frame whose count reaches the number of targets.  Post-order
    completes every descendant before its ancestors, so that first frame is
    the deepest qualifying node.  Because a target counts toward its own
    subtree, ``{X, descendant of X}`` resolves to ``X``.
    """
    targets = _resolve_targets(tree, nodes, "MRCA")
    if len(targets) == 1:
        return targets[0]

    target_set = set(targets)
    n_targets = len(target_set)

    root = tree.root
    # frame: [node, next child index, matches]
    stack = [[root, 0, 1 if root in target_set else 0]]
    while stack:
        frame = stack[-1]
        node = frame[0]
        kids = tree.children(node)
        if frame[1] < len(kids):
            child = kids[frame[1]]
            frame[1] += 1
            hit = 1 if child in target_set else 0
            if tree.is_external(child):
                frame[2] += hit
            else:
                stack.append([child, 0, hit])
            continue

        stack.pop()
        matches = frame[2]
        if matches == n_targets:
            return node
        if stack:
            stack[-1][2] += matches

    # The root sees every target of a connected tree.
    raise InvalidTreeStructureError(
        f"No common ancestor found for {n_targets} targets; "
        "some targets are not reachable from the root."
    )


mrca = common_ancestor


# ======================================================================== #
# Monophyly                                                                 #
# ======================================================================== #


def is_monophyletic(tree: RootedTree, tips: Iterable) -> bool:
    """
    True if some node's complete set of descendant tips equals *tips*.

    Parameters
    ----------
    tree : RootedTree
    tips : iterable of tip IDs, taxon names or Taxon objects

    Raises
    ------
    EmptySelectionError   if *tips* is empty.
    MissingTaxonError     if a name has no tip.
    ValueError            if a target is an internal node.

    Notes
    -----
    A single tip, and the full tip set, are monophyletic without a walk.
    Otherwise one post-order walk carries ``(matches, total)`` per frame,
    where *matches* counts target tips in the subtree and *total* all tips.
    When a frame closes it decides:

      matches == total == |tips|     → TRUE   (this clade is exactly the set)
      0 < matches != total           → FALSE  (the set is split here)
      otherwise                      → MAYBE  (fold counts into the parent)

    and the first decided verdict ends the walk.  An undecided walk means
    not monophyletic.
    """
    targets = _resolve_targets(tree, tips, "monophyly test")
    for node in targets:
        if not tree.is_external(node):
            raise ValueError(
                f"Node {node} is internal; monophyly is defined over tips only."
            )

    n_targets = len(targets)
    if n_targets == 1:
        return True
    if n_targets == len(tree.external_nodes()):
        return True

    target_set = set(targets)
    verdict = MaybeBoolean.MAYBE

    # frame: [node, next child index, matches, total]
    stack = [[tree.root, 0, 0, 0]]
    while stack:
        frame = stack[-1]
        kids = tree.children(frame[0])
        if frame[1] < len(kids):
            child = kids[frame[1]]
            frame[1] += 1
            if tree.is_external(child):
                if child in target_set:
                    frame[2] += 1
                frame[3] += 1
            else:
                stack.append([child, 0, 0, 0])
            continue

        stack.pop()
        verdict = _monophyly_verdict(frame[2], frame[3], n_targets)
        if verdict.decided:
            break
        if stack:
            stack[-1][2] += frame[2]
            stack[-1][3] += frame[3]

    # An undecided walk (MAYBE) means the set is not a clade.
    return bool(verdict.to_bool())


def _monophyly_verdict(matches: int, total: int, n_targets: int) -> MaybeBoolean:
    if matches == total and total == n_targets:
        return MaybeBoolean.TRUE
    if matches != 0 and matches != total:
        return MaybeBoolean.FALSE
    return MaybeBoolean.MAYBE


# ======================================================================== #
# Canonical topology form                                                   #
# ======================================================================== #


def _canonical_sort_key(form: str):
    # Order by label text so a clade sorts by its leading taxon name.
    return (form.lstrip("("), form)


def canonical_newick(tree: RootedTree, node: Optional[int] = None) -> str:
    """
    Return a canonical, child-order-independent topology string.

    A tip is written as its taxon name; an internal node as ``(`` + the
    canonical forms of its children, sorted, joined by ``,`` + ``)``.
    Children sort by their label text with leading parentheses ignored
    (full string as tie-break), so a clade sorts by its leading taxon name.

    Parameters
    ----------
    tree : RootedTree
    node : int, optional
        Subtree root; defaults to the tree root.

    Returns
    -------
    str   e.g. ``'(A,(B,C))'`` for both ``(A,(B,C))`` and ``((C,B),A)``.

    Notes
    -----
    Branch lengths, support values and internal labels are not part of the
    form.  Taxon names must be unique for the form to identify a topology.
    """
    if node is None:
        node = tree.root
    if tree.is_external(node):
        return tree.taxon(node).name

    forms = {}
    # frame: (node, expanded?)
    stack = [(node, False)]
    while stack:
        current, expanded = stack.pop()
        if tree.is_external(current):
            forms[current] = tree.taxon(current).name
        elif not expanded:
            stack.append((current, True))
            for child in tree.children(current):
                stack.append((child, False))
        else:
            subtrees = sorted(
                (forms.pop(child) for child in tree.children(current)),
                key=_canonical_sort_key,
            )
            forms[current] = "(" + ",".join(subtrees) + ")"
    return forms[node]


def topology_equal(tree1: RootedTree, tree2: RootedTree) -> bool:
    """
    True if *tree1* and *tree2* have the same rooted topology.

    Compares the canonical forms of the two roots.  Sound only when taxon
    names are unique within each tree.
    """
    form1 = canonical_newick(tree1)
    form2 = canonical_newick(tree2)
    if form1 == form2:
        return True

    if logger.isEnabledFor(logging.DEBUG):
        taxa1 = {tree1.taxon(tip).name for tip in tree1.external_nodes()}
        taxa2 = {tree2.taxon(tip).name for tip in tree2.external_nodes()}
        logger.debug(
            "Topologies differ (taxon-set Jaccard similarity %.3f)",
            jaccard_similarity(taxa1, taxa2),
        )
    return False

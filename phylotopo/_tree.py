"""
_tree.py
========
A single rooted phylogenetic tree represented as a set of parallel numpy
arrays, with children packed CSR-style.

Public API
----------
  Tree(newick_string)
      Constructor.  Parses the NEWICK string and builds all data structures.

  Tree.from_parents(parents, names, heights=None, distances=None)
      Builder for trees assembled from a parent array.

  Capability interface used by the topology engine (``phylotopo._rooted``):
  .root  .children(node)  .is_external(node)  .height(node)  .taxon(node)
  .external_nodes()  .internal_nodes()  .node_for_taxon(taxon)

Node IDs
--------
Nodes are plain integers; a node is identified by its ID within one tree.
For parsed trees the convention is fixed:

  Tips     : 0 … n_leaves-1        (left-to-right in the NEWICK string)
  Internal : n_leaves … n_nodes-2  (post-order)
  Root     : n_nodes-1

Trees built with ``from_parents`` keep the caller's IDs; ``root`` is whichever
node has parent -1.

Heights
-------
Height is measured from the deepest tip upwards:

    height[n] = max(root_distance[tips]) - root_distance[n]

so the deepest tip sits at 0.  Nodes below a branch with no length have
height NaN; a tree without any branch lengths has NaN heights throughout.

The tree is never mutated after construction; every array is read-only by
convention.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from phylotopo._exceptions import InvalidTreeStructureError, MissingTaxonError
from phylotopo._logging import (
    log_duplicate_taxa,
    log_missing_branch_lengths,
    log_tree_statistics,
)
from phylotopo._taxon import Taxon


logger = logging.getLogger(__name__)

# Characters that terminate an unquoted NEWICK label.
_DELIMITERS = "(),:;"
_WHITESPACE = " \t\r\n"


class Tree:
    """
    A rooted phylogenetic tree of arbitrary arity.

    Attributes (all read-only after construction)
    ----------------------------------------------
    n_nodes   : int     Total number of nodes.
    n_leaves  : int     Number of tip (taxon) nodes.
    root      : int     Node ID of the root.
    max_depth : int     Maximum node depth (edge count from root).
    names     : list[str]          Taxon name per node; '' for internal nodes.
    taxa      : list[Taxon | None] Taxon per node; None for internal nodes.

    Arrays: tree structure
    ----------------------
    parent        : int32  [n_nodes]     Parent ID; -1 for root.
    distance      : float64[n_nodes]     Branch length to parent; NaN if absent.
    support       : float64[n_nodes]     Branch support; NaN if absent.
    child_offsets : int64  [n_nodes+1]   CSR offsets into child_index.
    child_index   : int32  [n_nodes-1]   Children of node i are
                                         child_index[child_offsets[i]:child_offsets[i+1]].

    Arrays: derived
    ---------------
    depth         : int32  [n_nodes]     Edge depth from root.
    root_distance : float64[n_nodes]     Cumulative branch length from root.
    heights       : float64[n_nodes]     Height above the deepest tip.
    """

    # ================================================================== #
    # Construction                                                         #
    # ================================================================== #

    def __init__(self, newick_string: str) -> None:
        """
        Parse *newick_string* and build all tree data structures.

        Parameters
        ----------
        newick_string : str
            A NEWICK-formatted tree string (trailing ';' optional).
            Multifurcations and unary internal nodes are kept as written.

        Raises
        ------
        InvalidTreeStructureError
            For empty input, unbalanced parentheses, unnamed tips or more
            than one top-level node.
        """
        parent, names, distance, support, children = Tree._parse_newick(
            newick_string
        )
        self._initialise(parent, names, distance, support, children, None)

    @classmethod
    def from_parents(
        cls,
        parents: Sequence[int],
        names: Sequence[Optional[str]],
        heights: Optional[Sequence[float]] = None,
        distances: Optional[Sequence[float]] = None,
    ) -> "Tree":
        """
        Build a tree from a parent array.

        Parameters
        ----------
        parents   : sequence of int   parents[i] is the parent of node i; -1 for the root.
        names     : sequence of str   Tip names; '' or None for internal nodes.
        heights   : sequence of float, optional
            Explicit node heights.  When omitted, heights are derived from
            *distances* as for parsed trees.
        distances : sequence of float, optional
            Branch length to parent per node (NaN where absent).

        Returns
        -------
        Tree

        Raises
        ------
        InvalidTreeStructureError
            If there is not exactly one root, a parent ID is out of range,
            some node is unreachable from the root (a cycle), a tip has no
            name or an internal node has one.

        Notes
        -----
        Children are ordered by ascending node ID.
        """
        n = len(parents)
        if len(names) != n:
            raise InvalidTreeStructureError(
                f"names has {len(names)} entries for {n} nodes."
            )
        if distances is None:
            distance = np.full(n, np.nan, dtype=np.float64)
        else:
            distance = np.asarray(distances, dtype=np.float64)
            if distance.shape != (n,):
                raise InvalidTreeStructureError(
                    f"distances has shape {distance.shape}, expected ({n},)."
                )
        if heights is not None:
            heights = np.asarray(heights, dtype=np.float64)
            if heights.shape != (n,):
                raise InvalidTreeStructureError(
                    f"heights has shape {heights.shape}, expected ({n},)."
                )

        parent = np.asarray(parents, dtype=np.int32).reshape(n)
        for i in range(n):
            p = int(parent[i])
            if p < -1 or p >= n:
                raise InvalidTreeStructureError(
                    f"Node {i} has out-of-range parent {p}."
                )
            if p == i:
                raise InvalidTreeStructureError(f"Node {i} is its own parent.")

        children: List[List[int]] = [[] for _ in range(n)]
        for i in range(n):
            p = int(parent[i])
            if p != -1:
                children[p].append(i)

        clean_names = ["" if nm is None else str(nm) for nm in names]
        for i in range(n):
            if children[i] and clean_names[i] != "":
                raise InvalidTreeStructureError(
                    f"Internal node {i} carries taxon name '{clean_names[i]}'."
                )

        tree = cls.__new__(cls)
        support = np.full(n, np.nan, dtype=np.float64)
        tree._initialise(parent, clean_names, distance, support, children, heights)
        return tree

    # ================================================================== #
    # Capability interface                                                 #
    # ================================================================== #

    def children(self, node: int) -> tuple:
        """Return the children of *node* in stored order (empty for a tip)."""
        return self._children[node]

    def is_external(self, node: int) -> bool:
        """True if *node* is a tip."""
        return not self._children[node]

    def parent_of(self, node: int) -> Optional[int]:
        """Return the parent ID of *node*, or None for the root."""
        p = int(self.parent[node])
        return None if p == -1 else p

    def height(self, node: int) -> float:
        return float(self.heights[node])

    def taxon(self, node: int) -> Optional[Taxon]:
        """Return the taxon of a tip; None for internal nodes."""
        return self.taxa[node]

    def external_nodes(self) -> List[int]:
        """All tips, in node-ID order."""
        return [i for i in range(self.n_nodes) if self._children[i] == ()]

    def internal_nodes(self) -> List[int]:
        """All internal nodes, in node-ID order."""
        return [i for i in range(self.n_nodes) if self._children[i] != ()]

    def node_for_taxon(self, taxon) -> Optional[int]:
        """
        Return the tip ID for *taxon* (a ``Taxon`` or a name), or None if the
        tree has no such tip.
        """
        name = taxon.name if isinstance(taxon, Taxon) else taxon
        return self._name_index.get(name)

    def resolve(self, node) -> int:
        """
        Return the integer node ID for *node*.

        Parameters
        ----------
        node : int | numpy integer | str | Taxon

        Raises
        ------
        IndexError         if an integer ID is out of range.
        MissingTaxonError  if a name or Taxon has no tip in this tree.
        TypeError          for any other type.
        """
        if isinstance(node, (bool, np.bool_)):
            raise TypeError(f"Cannot resolve node from {node!r}.")
        if isinstance(node, (int, np.integer)):
            node_id = int(node)
            if node_id < 0 or node_id >= self.n_nodes:
                raise IndexError(
                    f"Node ID {node_id} out of range for tree with "
                    f"{self.n_nodes} nodes."
                )
            return node_id
        if isinstance(node, (str, Taxon)):
            node_id = self.node_for_taxon(node)
            if node_id is None:
                raise MissingTaxonError(node)
            return node_id
        raise TypeError(
            f"Cannot resolve node from {type(node).__name__} {node!r}; "
            "expected an int ID, a taxon name or a Taxon."
        )

    def __repr__(self) -> str:
        return (
            f"Tree(n_nodes={self.n_nodes}, n_leaves={self.n_leaves}, "
            f"root={self.root})"
        )

    # ================================================================== #
    # Private instance methods                                             #
    # ================================================================== #

    def _initialise(self, parent, names, distance, support, children, heights):
        """
        **Private.**  Validate structure and populate every attribute.

        *children* is a list of per-node child lists in stored order.
        """
        n_nodes = int(parent.shape[0])
        if n_nodes == 0:
            raise InvalidTreeStructureError("A tree needs at least one node.")

        roots = np.flatnonzero(parent == -1)
        if roots.shape[0] != 1:
            raise InvalidTreeStructureError(
                f"Expected exactly one root, found {roots.shape[0]}."
            )
        root = int(roots[0])

        # ---- CSR child packing ------------------------------------- #
        child_offsets = np.zeros(n_nodes + 1, dtype=np.int64)
        for i in range(n_nodes):
            child_offsets[i + 1] = child_offsets[i] + len(children[i])
        child_index = np.zeros(int(child_offsets[n_nodes]), dtype=np.int32)
        for i in range(n_nodes):
            child_index[child_offsets[i]:child_offsets[i + 1]] = children[i]

        # ---- Pre-order walk: depth, root distance, reachability ---- #
        depth = np.zeros(n_nodes, dtype=np.int32)
        root_distance = np.zeros(n_nodes, dtype=np.float64)
        visited = 0
        stack = [root]
        while stack:
            node = stack.pop()
            visited += 1
            for child in children[node]:
                depth[child] = depth[node] + 1
                root_distance[child] = root_distance[node] + distance[child]
                stack.append(child)
        if visited != n_nodes:
            raise InvalidTreeStructureError(
                f"Only {visited} of {n_nodes} nodes are reachable from root "
                f"{root}; the parent array contains a cycle."
            )

        is_tip = child_offsets[1:] == child_offsets[:-1]
        for i in range(n_nodes):
            if is_tip[i] and names[i] == "":
                raise InvalidTreeStructureError(f"Tip {i} has no taxon name.")

        # ---- Heights ----------------------------------------------- #
        if heights is None:
            tip_rd = root_distance[is_tip]
            if np.all(np.isnan(tip_rd)):
                heights = np.full(n_nodes, np.nan, dtype=np.float64)
            else:
                heights = np.nanmax(tip_rd) - root_distance
        else:
            heights = np.array(heights, dtype=np.float64)

        branches = np.ones(n_nodes, dtype=bool)
        branches[root] = False
        log_missing_branch_lengths(
            int(np.count_nonzero(np.isnan(distance[branches]))), n_nodes - 1
        )

        # ---- Names and taxa ---------------------------------------- #
        tip_names = [names[i] for i in range(n_nodes) if is_tip[i]]
        log_duplicate_taxa(tip_names)
        name_index = {}
        taxa: List[Optional[Taxon]] = [None] * n_nodes
        for i in range(n_nodes):
            if is_tip[i]:
                taxa[i] = Taxon(names[i])
                name_index.setdefault(names[i], i)

        self.parent = parent
        self.distance = distance
        self.support = support
        self.child_offsets = child_offsets
        self.child_index = child_index
        self.depth = depth
        self.root_distance = root_distance
        self.heights = heights
        self.names = list(names)
        self.taxa = taxa

        self.n_nodes: int = n_nodes
        self.n_leaves: int = int(np.count_nonzero(is_tip))
        self.root: int = root
        self.max_depth: int = int(np.max(depth))

        self._children = tuple(tuple(int(c) for c in kids) for kids in children)
        self._name_index = name_index

        n_children = child_offsets[1:] - child_offsets[:-1]
        log_tree_statistics(
            n_nodes,
            self.n_leaves,
            self.max_depth,
            int(np.count_nonzero(n_children > 2)),
            int(np.count_nonzero(n_children == 1)),
        )

    # ================================================================== #
    # Private static methods                                               #
    # ================================================================== #

    @staticmethod
    def _parse_newick(newick_string: str):
        """
        **Private static.**  Parse *newick_string* into parent/child lists.

        Single-pass, stack-based character scan; no recursion, so deeply
        nested (caterpillar) trees parse without hitting the recursion limit.

        Returns
        -------
        (parent, names, distance, support, children)
            parent   : int32 array, -1 for the root
            names    : list[str], '' for internal nodes
            distance : float64 array, NaN where absent
            support  : float64 array, NaN where absent
            children : list of per-node child lists in NEWICK order

        Notes
        -----
        During the scan tips get provisional IDs k >= 0 and internal nodes
        provisional IDs -(j+1) in closing order; both are mapped onto the
        final ID convention (tips first, then internals in post-order) once
        the tip count is known.
        """
        s = newick_string.strip()
        n_chars = len(s)
        if n_chars > 0 and s[n_chars - 1] == ";":
            n_chars -= 1
        if n_chars == 0:
            raise InvalidTreeStructureError("Empty NEWICK string.")

        OPEN_PAREN = None
        stack = []

        leaf_names = []
        leaf_dist = []
        int_children = []
        int_dist = []
        int_support = []

        open_depth = 0
        need_node = True
        done = False

        i = 0
        while i < n_chars:
            c = s[i]

            if c in _WHITESPACE:
                i += 1
                continue

            if done:
                raise InvalidTreeStructureError(
                    f"Unexpected text after the root node at position {i}: "
                    f"{s[i:i + 20]!r}"
                )

            if c == "(":
                if not need_node:
                    raise InvalidTreeStructureError(
                        f"Missing ',' before '(' at position {i}."
                    )
                stack.append(OPEN_PAREN)
                open_depth += 1
                i += 1
                continue

            if c == ",":
                if need_node:
                    raise InvalidTreeStructureError(
                        f"Empty tip label before ',' at position {i}."
                    )
                if open_depth == 0:
                    raise InvalidTreeStructureError(
                        "More than one top-level node; a rooted tree must be "
                        "enclosed in a single pair of parentheses."
                    )
                need_node = True
                i += 1
                continue

            if c == ")":
                if need_node:
                    raise InvalidTreeStructureError(
                        f"Empty tip label before ')' at position {i}."
                    )
                if open_depth == 0:
                    raise InvalidTreeStructureError(
                        f"Unbalanced ')' at position {i}."
                    )
                kids = []
                while stack[-1] is not OPEN_PAREN:
                    kids.append(stack.pop())
                stack.pop()
                kids.reverse()
                open_depth -= 1
                i += 1

                label, i = Tree._read_label(s, i, n_chars)
                length, i = Tree._read_length(s, i, n_chars)
                try:
                    support = float(label) if label else np.nan
                except ValueError:
                    logger.debug("Ignoring non-numeric internal label %r", label)
                    support = np.nan

                int_children.append(kids)
                int_dist.append(length)
                int_support.append(support)
                stack.append(-len(int_children))

                need_node = False
                done = open_depth == 0
                continue

            # Tip
            if not need_node:
                raise InvalidTreeStructureError(
                    f"Missing ',' before tip label at position {i}."
                )
            label, i = Tree._read_label(s, i, n_chars)
            if label == "":
                raise InvalidTreeStructureError(
                    f"Empty tip label at position {i}."
                )
            length, i = Tree._read_length(s, i, n_chars)
            leaf_names.append(label)
            leaf_dist.append(length)
            stack.append(len(leaf_names) - 1)
            need_node = False
            done = open_depth == 0

        if open_depth != 0:
            raise InvalidTreeStructureError(
                f"Unbalanced parentheses: {open_depth} '(' left unclosed."
            )
        if len(stack) != 1:
            raise InvalidTreeStructureError("NEWICK string contains no tree.")

        # ---- Map provisional IDs onto the final convention ---------- #
        n_leaves = len(leaf_names)
        n_nodes = n_leaves + len(int_children)

        def final_id(tmp):
            return tmp if tmp >= 0 else n_leaves + (-tmp - 1)

        parent = np.full(n_nodes, -1, dtype=np.int32)
        distance = np.full(n_nodes, np.nan, dtype=np.float64)
        support = np.full(n_nodes, np.nan, dtype=np.float64)
        names = leaf_names + [""] * len(int_children)
        children: List[List[int]] = [[] for _ in range(n_leaves)]

        distance[:n_leaves] = leaf_dist
        for j, kids in enumerate(int_children):
            node_id = n_leaves + j
            ids = [final_id(k) for k in kids]
            children.append(ids)
            for child in ids:
                parent[child] = node_id
            distance[node_id] = int_dist[j]
            support[node_id] = int_support[j]

        return parent, names, distance, support, children

    @staticmethod
    def _read_label(s: str, i: int, n_chars: int):
        """
        **Private static.**  Read an optional label starting at *i*.

        Handles single-quoted labels ('' inside quotes is a literal quote)
        and unquoted labels, where '_' stands for a blank.

        Returns
        -------
        (label, next_index)
        """
        while i < n_chars and s[i] in " \t":
            i += 1
        if i < n_chars and s[i] == "'":
            i += 1
            buf = []
            while True:
                if i >= n_chars:
                    raise InvalidTreeStructureError("Unterminated quoted label.")
                if s[i] == "'":
                    if i + 1 < n_chars and s[i + 1] == "'":
                        buf.append("'")
                        i += 2
                        continue
                    i += 1
                    break
                buf.append(s[i])
                i += 1
            return "".join(buf), i
        j = i
        while j < n_chars and s[j] not in _DELIMITERS and s[j] not in _WHITESPACE:
            j += 1
        return s[i:j].replace("_", " "), j

    @staticmethod
    def _read_length(s: str, i: int, n_chars: int):
        """
        **Private static.**  Read an optional ':length' starting at *i*.

        Returns
        -------
        (length, next_index)   length is NaN when absent.
        """
        while i < n_chars and s[i] in " \t":
            i += 1
        if i >= n_chars or s[i] != ":":
            return np.nan, i
        i += 1
        while i < n_chars and s[i] in " \t":
            i += 1
        j = i
        while j < n_chars and s[j] not in _DELIMITERS and s[j] not in _WHITESPACE:
            j += 1
        try:
            value = float(s[i:j])
        except ValueError:
            raise InvalidTreeStructureError(
                f"Invalid branch length {s[i:j]!r} at position {i}."
            ) from None
        return value, j

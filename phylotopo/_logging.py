"""
_logging.py
===========
Logging functions for phylotopo.

All functions in this module have NO side effects except logging. They take
computed data as parameters and format/emit log messages, so tree
construction code stays free of presentation details and tests can assert on
records via ``caplog``.
"""

import logging
from collections import Counter
from typing import Iterable, List


logger = logging.getLogger(__name__)


# ============================================================================ #
# Tree construction logging
# ============================================================================ #


def log_tree_statistics(
    n_nodes: int,
    n_leaves: int,
    max_depth: int,
    n_multifurcating: int,
    n_unary: int,
) -> None:
    """
    Log a one-line structural summary of a newly built tree at DEBUG level.

    Parameters
    ----------
    n_nodes : int
        Total number of nodes.
    n_leaves : int
        Number of tips.
    max_depth : int
        Maximum edge depth from the root.
    n_multifurcating : int
        Internal nodes with more than two children.
    n_unary : int
        Internal nodes with exactly one child.
    """
    logger.debug(
        "Tree built: %d nodes, %d tips, max depth %d, "
        "%d multifurcating node(s), %d unary node(s)",
        n_nodes,
        n_leaves,
        max_depth,
        n_multifurcating,
        n_unary,
    )


def log_missing_branch_lengths(n_missing: int, n_branches: int) -> None:
    """
    Warn when only some branches carry a length.

    A tree with no lengths at all is a plain topology and is not worth a
    warning; a partial set leaves part of the tree without heights.

    Parameters
    ----------
    n_missing : int
        Branches (non-root nodes) with no length.
    n_branches : int
        Total number of branches.
    """
    if 0 < n_missing < n_branches:
        logger.warning(
            "%d of %d branches have no length; heights below those branches "
            "are undefined (NaN).",
            n_missing,
            n_branches,
        )


def log_duplicate_taxa(names: Iterable[str]) -> List[str]:
    """
    Warn about tip names that occur more than once.

    Canonical topology strings conflate tips that share a name, so topology
    comparisons on such a tree are unsound.

    Parameters
    ----------
    names : Iterable[str]
        Tip names in node order.

    Returns
    -------
    List[str]
        The duplicated names, sorted (empty when all names are unique).
    """
    counts = Counter(names)
    duplicates = sorted(name for name, n in counts.items() if n > 1)
    if duplicates:
        shown = ", ".join(duplicates[:5])
        more = f" (+{len(duplicates) - 5} more)" if len(duplicates) > 5 else ""
        logger.warning(
            "Duplicate tip names: %s%s. Name lookup returns the first tip and "
            "topology comparisons may conflate distinct tips.",
            shown,
            more,
        )
    return duplicates

"""
phylotopo
=========

Rooted phylogenetic tree queries and topology comparison.

Main Classes
------------
Tree : Rooted tree of arbitrary arity with NEWICK parsing
Taxon : Immutable, name-ordered tip label

Topology Engine
---------------
external_node_count, tip_count, external_nodes, descendant_tips,
tips_for_taxa : tip enumeration
min_tip_height, max_tip_height, average_tip_distance : tip-height statistics
is_ultrametric, is_binary : whole-tree predicates
common_ancestor (mrca) : most recent common ancestor of a node set
is_monophyletic : clade test for a tip set
canonical_newick, topology_equal : child-order-independent comparison

Export
------
to_newick : NEWICK text for a tree or subtree
NewickExporter : write trees to a text stream, one per line

Context Managers
----------------
quiet : Suppress phylotopo logging
suppress_logger : Suppress a specific logger

Examples
--------
>>> from phylotopo import Tree, common_ancestor, is_monophyletic, canonical_newick
>>> tree = Tree("((A:1,B:1):1,(C:1,D:1):1);")
>>> common_ancestor(tree, ["A", "C"]) == tree.root
True
>>> is_monophyletic(tree, ["A", "B"])
True
>>> canonical_newick(Tree("((D,C),(B,A));"))
'((A,B),(C,D))'
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Main classes
from ._tree import Tree
from ._taxon import Taxon

# Topology engine
from ._rooted import (
    DEFAULT_TOLERANCE,
    RootedTree,
    average_tip_distance,
    canonical_newick,
    common_ancestor,
    descendant_tips,
    external_node_count,
    external_nodes,
    is_binary,
    is_monophyletic,
    is_ultrametric,
    max_tip_height,
    min_tip_height,
    mrca,
    tip_count,
    tips_for_taxa,
    topology_equal,
)

# Export
from ._newick import NewickExporter, to_newick

# Errors
from ._exceptions import (
    EmptySelectionError,
    InvalidTreeStructureError,
    MissingTaxonError,
    PhylotopoError,
    UndefinedHeightError,
)

# Context managers
from ._context import quiet, suppress_logger

# Utilities
from ._utils import MaybeBoolean, format_newick, jaccard_similarity

# Public API
__all__ = [
    # Main classes
    "Tree",
    "Taxon",
    "RootedTree",
    # Topology engine
    "DEFAULT_TOLERANCE",
    "external_node_count",
    "tip_count",
    "external_nodes",
    "descendant_tips",
    "tips_for_taxa",
    "min_tip_height",
    "max_tip_height",
    "average_tip_distance",
    "is_ultrametric",
    "is_binary",
    "common_ancestor",
    "mrca",
    "is_monophyletic",
    "canonical_newick",
    "topology_equal",
    # Export
    "to_newick",
    "NewickExporter",
    # Errors
    "PhylotopoError",
    "EmptySelectionError",
    "MissingTaxonError",
    "InvalidTreeStructureError",
    "UndefinedHeightError",
    # Context managers
    "quiet",
    "suppress_logger",
    # Utilities
    "MaybeBoolean",
    "jaccard_similarity",
    "format_newick",
    # Version info
    "__version__",
]

"""
tests/test_rooted.py
====================
Pytest test suite for the topology engine in phylotopo._rooted.

Tree fixtures
-------------
  balanced_4leaf.tree
      ((A:0.1,B:0.2)0.95:0.5,(C:0.3,D:0.4)0.87:0.6);
      A=0 B=1 C=2 D=3 AB=4 CD=5 root=6
      heights: A=0.4 B=0.3 C=0.1 D=0.0 AB=0.5 CD=0.4 root=1.0

  ultrametric_4leaf.tree
      ((A:1,B:1):1,(C:1,D:1):1);
      same IDs as balanced; all tips at height 0

  caterpillar_5leaf.tree
      (A:1,(B:1,(C:1,(D:1,E:1):1):1):1);
      A=0 B=1 C=2 D=3 E=4 DE=5 CDE=6 BCDE=7 root=8

  multifurcating.tree
      ((A:1,B:1,C:1):1,D:2,(E:1):1);
      A=0 B=1 C=2 D=3 E=4 ABC=5 (E)=6 root=7

Brute-force cross-checks
------------------------
MRCA and monophyly are also checked against naive definitions over every
subset of tips: the MRCA is the deepest node on every target's
ancestor-or-self path, and a tip set is monophyletic when some node's full
tip set equals it.
"""

import os
import sys
import random
import logging
import itertools

import pytest
import numpy as np

_TREES_DIR = os.path.join(os.path.dirname(__file__), "trees")

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from phylotopo import (
    Taxon,
    Tree,
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
from phylotopo._exceptions import (
    EmptySelectionError,
    InvalidTreeStructureError,
    MissingTaxonError,
    UndefinedHeightError,
)


# ======================================================================== #
# Helpers                                                                   #
# ======================================================================== #


def load_tree(filename: str) -> Tree:
    path = os.path.join(_TREES_DIR, filename)
    with open(path) as fh:
        return Tree(fh.read().strip())


def ancestors_or_self(tree: Tree, node: int) -> list:
    """Path from *node* up to the root, *node* first."""
    path = [node]
    while tree.parent_of(path[-1]) is not None:
        path.append(tree.parent_of(path[-1]))
    return path


def naive_mrca(tree: Tree, nodes) -> int:
    common = set(ancestors_or_self(tree, nodes[0]))
    for node in nodes[1:]:
        common &= set(ancestors_or_self(tree, node))
    return max(common, key=lambda n: tree.depth[n])


def naive_is_clade(tree: Tree, tips) -> bool:
    target = set(tips)
    return any(
        set(external_nodes(tree, node)) == target for node in range(tree.n_nodes)
    )


def shuffled_newick(tree: Tree, node: int, rng: random.Random) -> str:
    """Topology-only NEWICK for *node* with every child list shuffled."""
    if tree.is_external(node):
        return tree.names[node]
    kids = list(tree.children(node))
    rng.shuffle(kids)
    return "(" + ",".join(shuffled_newick(tree, k, rng) for k in kids) + ")"


def caterpillar_newick(n: int) -> str:
    """(((t0,t1),t2),...,t{n-1});  every internal node has a tip child."""
    return "(" * (n - 1) + "t0" + "".join(f",t{i})" for i in range(1, n)) + ";"


class DictTree:
    """
    Minimal RootedTree built from a child map.

    Node IDs are arbitrary ints and there is no ``resolve`` method, so the
    engine must work purely through the capability interface.
    """

    def __init__(self, root, children, names, heights):
        self.root = root
        self._children = children
        self._names = names
        self._heights = heights
        self._parent = {c: p for p, kids in children.items() for c in kids}

    def children(self, node):
        return self._children.get(node, ())

    def parent_of(self, node):
        return self._parent.get(node)

    def is_external(self, node):
        return not self._children.get(node)

    def height(self, node):
        return self._heights[node]

    def taxon(self, node):
        return Taxon(self._names[node]) if node in self._names else None

    def external_nodes(self):
        return sorted(self._names)

    def internal_nodes(self):
        return sorted(n for n, kids in self._children.items() if kids)

    def node_for_taxon(self, taxon):
        name = taxon.name if isinstance(taxon, Taxon) else taxon
        for node, nm in self._names.items():
            if nm == name:
                return node
        return None


# ======================================================================== #
# Fixtures                                                                  #
# ======================================================================== #


@pytest.fixture(scope="module")
def balanced():
    return load_tree("balanced_4leaf.tree")


@pytest.fixture(scope="module")
def ultrametric():
    return load_tree("ultrametric_4leaf.tree")


@pytest.fixture(scope="module")
def caterpillar():
    return load_tree("caterpillar_5leaf.tree")


@pytest.fixture(scope="module")
def multifurcating():
    return load_tree("multifurcating.tree")


@pytest.fixture(scope="module")
def topology_only():
    return load_tree("topology_only.tree")


@pytest.fixture(scope="module")
def dict_tree():
    # root 10 → (20 → (A=1, B=2), C=3); ultrametric at height 2
    return DictTree(
        root=10,
        children={10: (20, 3), 20: (1, 2)},
        names={1: "A", 2: "B", 3: "C"},
        heights={10: 2.0, 20: 1.0, 1: 0.0, 2: 0.0, 3: 0.0},
    )


# ======================================================================== #
# 1. Tip enumeration                                                        #
# ======================================================================== #


class TestEnumeration:
    @pytest.mark.parametrize("node,expected", [(6, 4), (4, 2), (5, 2), (0, 1)])
    def test_external_node_count(self, balanced, node, expected):
        assert external_node_count(balanced, node) == expected

    def test_tip_count_alias(self, balanced):
        assert tip_count is external_node_count
        assert tip_count(balanced, 6) == 4

    def test_external_node_count_multifurcating(self, multifurcating):
        assert external_node_count(multifurcating, 7) == 5
        assert external_node_count(multifurcating, 6) == 1

    @pytest.mark.parametrize(
        "filename",
        ["balanced_4leaf.tree", "caterpillar_5leaf.tree", "multifurcating.tree"],
    )
    def test_count_matches_enumeration(self, filename):
        tree = load_tree(filename)
        for node in range(tree.n_nodes):
            assert external_node_count(tree, node) == len(external_nodes(tree, node))

    def test_external_nodes_root(self, balanced):
        assert external_nodes(balanced, 6) == [0, 1, 2, 3]

    def test_external_nodes_of_tip(self, balanced):
        assert external_nodes(balanced, 2) == [2]

    def test_external_nodes_depth_first_order(self):
        # root 0 → (1 → (A=3, B=4), C=2): DFS order differs from ID order
        t = Tree.from_parents([-1, 0, 0, 1, 1], ["", "", "C", "A", "B"])
        assert external_nodes(t, 0) == [3, 4, 2]
        assert t.external_nodes() == [2, 3, 4]

    def test_external_nodes_caterpillar(self, caterpillar):
        assert external_nodes(caterpillar, 8) == [0, 1, 2, 3, 4]
        assert external_nodes(caterpillar, 6) == [2, 3, 4]

    def test_descendant_tips(self, balanced):
        tips = descendant_tips(balanced, 4)
        assert list(tips) == [0, 1]
        assert 0 in tips and 2 not in tips

    def test_descendant_tips_of_tip_empty(self, balanced):
        assert descendant_tips(balanced, 0) == {}

    def test_tips_for_taxa(self, balanced):
        assert list(tips_for_taxa(balanced, ["C", Taxon("A")])) == [2, 0]

    def test_tips_for_taxa_duplicates_collapse(self, balanced):
        assert list(tips_for_taxa(balanced, ["B", "B"])) == [1]

    def test_tips_for_taxa_missing(self, balanced):
        with pytest.raises(MissingTaxonError) as excinfo:
            tips_for_taxa(balanced, ["A", "Z"])
        assert excinfo.value.taxon == "Z"


# ======================================================================== #
# 2. Tip-height statistics                                                  #
# ======================================================================== #


class TestTipHeights:
    @pytest.mark.parametrize(
        "node,lo,hi",
        [(6, 0.0, 0.4), (4, 0.3, 0.4), (5, 0.0, 0.1), (3, 0.0, 0.0), (0, 0.4, 0.4)],
    )
    def test_min_max(self, balanced, node, lo, hi):
        assert min_tip_height(balanced, node) == pytest.approx(lo, abs=1e-12)
        assert max_tip_height(balanced, node) == pytest.approx(hi, abs=1e-12)

    def test_returns_python_float(self, balanced):
        assert type(min_tip_height(balanced, 6)) is float
        assert type(max_tip_height(balanced, 6)) is float

    def test_caterpillar(self, caterpillar):
        assert max_tip_height(caterpillar, 8) == pytest.approx(3.0)
        assert min_tip_height(caterpillar, 8) == pytest.approx(0.0)
        assert max_tip_height(caterpillar, 6) == pytest.approx(1.0)

    def test_average_tip_distance_root(self, balanced):
        assert average_tip_distance(balanced, 6) == pytest.approx(0.8)

    def test_average_tip_distance_clade(self, balanced):
        assert average_tip_distance(balanced, 4) == pytest.approx(0.15)

    def test_average_tip_distance_tip(self, balanced):
        assert average_tip_distance(balanced, 1) == 0.0

    def test_average_tip_distance_caterpillar(self, caterpillar):
        # root height 4; tips at 3, 2, 1, 0, 0
        assert average_tip_distance(caterpillar, 8) == pytest.approx(
            (1 + 2 + 3 + 4 + 4) / 5
        )

    def test_nan_heights_raise(self, topology_only):
        with pytest.raises(UndefinedHeightError) as excinfo:
            min_tip_height(topology_only, topology_only.root)
        assert excinfo.value.node == 0

    def test_nan_heights_raise_max(self, topology_only):
        with pytest.raises(ValueError):
            max_tip_height(topology_only, topology_only.root)

    def test_partial_lengths(self):
        t = load_tree("partial_lengths.tree")
        # C=2 carries a height; A and B sit below missing branches
        assert min_tip_height(t, 2) == pytest.approx(0.0)
        with pytest.raises(UndefinedHeightError):
            max_tip_height(t, t.root)

    def test_average_tip_distance_propagates_nan(self, topology_only):
        assert np.isnan(average_tip_distance(topology_only, topology_only.root))


# ======================================================================== #
# 3. Whole-tree predicates                                                  #
# ======================================================================== #


class TestPredicates:
    def test_ultrametric(self, ultrametric):
        assert is_ultrametric(ultrametric)

    def test_not_ultrametric(self, balanced):
        assert not is_ultrametric(balanced)

    def test_tolerance(self, balanced):
        assert is_ultrametric(balanced, tolerance=0.5)
        assert not is_ultrametric(balanced, tolerance=0.35)

    def test_float_noise_within_default_tolerance(self):
        t = Tree("((A:0.1,B:0.1):0.2,C:0.3);")
        assert is_ultrametric(t)
        assert not is_ultrametric(t, tolerance=0.0)

    def test_nan_heights_not_ultrametric(self, topology_only):
        assert not is_ultrametric(topology_only)

    def test_binary(self, balanced, caterpillar):
        assert is_binary(balanced)
        assert is_binary(caterpillar)

    def test_multifurcating_not_binary(self, multifurcating):
        assert not is_binary(multifurcating)

    def test_unary_node_is_binary(self):
        assert is_binary(Tree("((A:1):1,B:2);"))

    def test_single_tip_binary(self):
        t = Tree("A;")
        assert is_binary(t)
        assert is_ultrametric(t)


# ======================================================================== #
# 4. Reference scenario on ((A,B),(C,D))                                    #
# ======================================================================== #


class TestFourTipScenario:
    def test_ultrametric(self, ultrametric):
        assert is_ultrametric(ultrametric, 0.0001)

    def test_binary(self, ultrametric):
        assert is_binary(ultrametric)

    def test_mrca_is_root(self, ultrametric):
        assert common_ancestor(ultrametric, ["A", "C"]) == ultrametric.root

    def test_sister_pair_monophyletic(self, ultrametric):
        assert is_monophyletic(ultrametric, ["A", "B"])

    def test_split_pair_not_monophyletic(self, ultrametric):
        assert not is_monophyletic(ultrametric, ["A", "C"])


# ======================================================================== #
# 5. MRCA                                                                   #
# ======================================================================== #


class TestCommonAncestor:
    @pytest.mark.parametrize(
        "nodes,expected",
        [
            ([0, 1], 4),
            ([2, 3], 5),
            ([0, 2], 6),
            ([1, 3], 6),
            ([0, 1, 2, 3], 6),
            ([3], 3),
            ([4], 4),
            ([4, 0], 4),
            ([0, 4], 4),
            ([6, 0], 6),
            ([4, 5], 6),
            ([4, 2], 6),
            ([0, 0, 1, 1], 4),
        ],
    )
    def test_balanced(self, balanced, nodes, expected):
        assert common_ancestor(balanced, nodes) == expected

    def test_names_and_taxa(self, balanced):
        assert common_ancestor(balanced, ["A", Taxon("B")]) == 4
        assert common_ancestor(balanced, ("C", 3)) == 5

    def test_accepts_generator(self, balanced):
        assert common_ancestor(balanced, (n for n in [2, 3])) == 5

    def test_mrca_alias(self, balanced):
        assert mrca is common_ancestor
        assert mrca(balanced, ["A", "D"]) == 6

    @pytest.mark.parametrize(
        "names,expected",
        [
            (["D", "E"], 5),
            (["C", "E"], 6),
            (["B", "D"], 7),
            (["A", "E"], 8),
            (["C", "D", "E"], 6),
        ],
    )
    def test_caterpillar(self, caterpillar, names, expected):
        assert common_ancestor(caterpillar, names) == expected

    def test_caterpillar_internal_targets(self, caterpillar):
        assert common_ancestor(caterpillar, [6, 3]) == 6
        assert common_ancestor(caterpillar, [5, 1]) == 7

    def test_multifurcating(self, multifurcating):
        assert common_ancestor(multifurcating, ["A", "C"]) == 5
        assert common_ancestor(multifurcating, ["A", "B", "C"]) == 5
        assert common_ancestor(multifurcating, ["C", "D"]) == 7
        assert common_ancestor(multifurcating, [4, 6]) == 6

    def test_empty_raises(self, balanced):
        with pytest.raises(EmptySelectionError):
            common_ancestor(balanced, [])

    def test_empty_is_value_error(self, balanced):
        with pytest.raises(ValueError):
            common_ancestor(balanced, [])

    def test_missing_taxon_raises(self, balanced):
        with pytest.raises(MissingTaxonError):
            common_ancestor(balanced, ["A", "Z"])

    def test_out_of_range_raises(self, balanced):
        with pytest.raises(IndexError):
            common_ancestor(balanced, [0, 99])

    @pytest.mark.parametrize(
        "filename",
        ["balanced_4leaf.tree", "caterpillar_5leaf.tree", "multifurcating.tree"],
    )
    def test_matches_naive_definition(self, filename):
        tree = load_tree(filename)
        nodes = list(range(tree.n_nodes))
        for k in (1, 2, 3):
            for combo in itertools.combinations(nodes, k):
                assert common_ancestor(tree, combo) == naive_mrca(tree, combo), combo

    def test_dict_tree(self, dict_tree):
        assert common_ancestor(dict_tree, [1, 2]) == 20
        assert common_ancestor(dict_tree, [1, 3]) == 10
        assert common_ancestor(dict_tree, [20, 1]) == 20

    def test_unreachable_target_raises(self, dict_tree):
        # 99 is not a node of the tree, and DictTree cannot resolve it
        with pytest.raises(InvalidTreeStructureError, match="not reachable"):
            common_ancestor(dict_tree, [1, 99])


# ======================================================================== #
# 6. Monophyly                                                              #
# ======================================================================== #


class TestMonophyly:
    @pytest.mark.parametrize(
        "names,expected",
        [
            (["A", "B"], True),
            (["C", "D"], True),
            (["A", "C"], False),
            (["B", "C", "D"], False),
            (["A", "B", "C", "D"], True),
            (["A"], True),
            (["A", "A", "B"], True),
        ],
    )
    def test_balanced(self, balanced, names, expected):
        assert is_monophyletic(balanced, names) is expected

    @pytest.mark.parametrize(
        "names,expected",
        [
            (["A", "B"], False),
            (["A", "B", "C"], True),
            (["A", "B", "C", "D"], False),
            (["D", "E"], False),
            (["E"], True),
            (["A", "B", "C", "D", "E"], True),
        ],
    )
    def test_multifurcating(self, multifurcating, names, expected):
        assert is_monophyletic(multifurcating, names) is expected

    @pytest.mark.parametrize(
        "names,expected",
        [
            (["D", "E"], True),
            (["C", "D", "E"], True),
            (["C", "D"], False),
            (["A", "B"], False),
            (["B", "C", "D", "E"], True),
        ],
    )
    def test_caterpillar(self, caterpillar, names, expected):
        assert is_monophyletic(caterpillar, names) is expected

    def test_tip_ids(self, balanced):
        assert is_monophyletic(balanced, [2, 3])
        assert not is_monophyletic(balanced, [0, 3])

    def test_internal_target_raises(self, balanced):
        with pytest.raises(ValueError, match="internal"):
            is_monophyletic(balanced, [4, 2])

    def test_empty_raises(self, balanced):
        with pytest.raises(EmptySelectionError):
            is_monophyletic(balanced, [])

    def test_missing_taxon_raises(self, balanced):
        with pytest.raises(MissingTaxonError):
            is_monophyletic(balanced, ["A", "Q"])

    @pytest.mark.parametrize(
        "filename",
        ["balanced_4leaf.tree", "caterpillar_5leaf.tree", "multifurcating.tree"],
    )
    def test_matches_naive_definition(self, filename):
        tree = load_tree(filename)
        tips = tree.external_nodes()
        for k in range(1, len(tips) + 1):
            for combo in itertools.combinations(tips, k):
                assert is_monophyletic(tree, combo) == naive_is_clade(tree, combo), combo

    def test_dict_tree(self, dict_tree):
        assert is_monophyletic(dict_tree, [1, 2])
        assert not is_monophyletic(dict_tree, [2, 3])


# ======================================================================== #
# 7. Canonical form and topology equality                                   #
# ======================================================================== #


class TestCanonicalForm:
    def test_balanced(self, balanced):
        assert canonical_newick(balanced) == "((A,B),(C,D))"

    @pytest.mark.parametrize("newick", ["(A,(B,C));", "((C,B),A);", "((B,C),A);"])
    def test_child_order_ignored(self, newick):
        assert canonical_newick(Tree(newick)) == "(A,(B,C))"

    def test_reversed_balanced(self):
        assert canonical_newick(Tree("((D,C),(B,A));")) == "((A,B),(C,D))"

    def test_caterpillar(self, caterpillar):
        assert canonical_newick(caterpillar) == "(A,(B,(C,(D,E))))"

    def test_multifurcating(self, multifurcating):
        assert canonical_newick(multifurcating) == "((A,B,C),D,(E))"

    def test_subtree(self, balanced):
        assert canonical_newick(balanced, 5) == "(C,D)"
        assert canonical_newick(balanced, 2) == "C"

    def test_lengths_and_support_ignored(self, balanced):
        assert canonical_newick(balanced) == canonical_newick(
            load_tree("topology_only.tree")
        )

    def test_from_parents_child_order(self):
        # root 0 → (C=1, (A=3, B=4)=2) stored with C first
        t = Tree.from_parents([-1, 0, 0, 2, 2], ["", "C", "", "A", "B"])
        assert canonical_newick(t) == "((A,B),C)"

    @pytest.mark.parametrize("seed", range(5))
    @pytest.mark.parametrize(
        "filename",
        ["balanced_4leaf.tree", "caterpillar_5leaf.tree", "multifurcating.tree"],
    )
    def test_invariant_under_child_permutation(self, filename, seed):
        tree = load_tree(filename)
        rng = random.Random(seed)
        shuffled = Tree(shuffled_newick(tree, tree.root, rng) + ";")
        assert canonical_newick(shuffled) == canonical_newick(tree)

    def test_dict_tree(self, dict_tree):
        assert canonical_newick(dict_tree) == "((A,B),C)"


class TestTopologyEqual:
    def test_reflexive(self, balanced):
        assert topology_equal(balanced, balanced)

    def test_reordered(self, balanced):
        assert topology_equal(balanced, Tree("((D,C),(B,A));"))

    def test_symmetric(self, balanced, caterpillar):
        other = Tree("((A,C),(B,D));")
        assert not topology_equal(balanced, other)
        assert not topology_equal(other, balanced)

    def test_different_sizes(self, balanced, caterpillar):
        assert not topology_equal(balanced, caterpillar)

    def test_debug_log_on_mismatch(self, balanced, caplog):
        with caplog.at_level(logging.DEBUG, logger="phylotopo"):
            assert not topology_equal(balanced, Tree("((A,B),(C,E));"))
        assert any(
            "Jaccard similarity 0.600" in r.getMessage() for r in caplog.records
        )

    def test_no_log_on_match(self, balanced, caplog):
        with caplog.at_level(logging.DEBUG, logger="phylotopo._rooted"):
            assert topology_equal(balanced, balanced)
        assert not [r for r in caplog.records if r.name == "phylotopo._rooted"]

    def test_across_implementations(self, dict_tree):
        assert topology_equal(dict_tree, Tree("(C,(B,A));"))


# ======================================================================== #
# 8. Deep trees                                                             #
# ======================================================================== #


def _check_deep_caterpillar(n: int) -> None:
    newick = caterpillar_newick(n)
    tree = Tree(newick)
    assert tree.n_leaves == n
    assert external_node_count(tree, tree.root) == n
    assert common_ancestor(tree, ["t0", "t1"]) == n
    assert common_ancestor(tree, ["t0", f"t{n - 1}"]) == tree.root
    assert is_monophyletic(tree, ["t0", "t1", "t2"])
    assert not is_monophyletic(tree, ["t1", "t2"])
    assert is_binary(tree)
    assert canonical_newick(tree) == newick.rstrip(";")


class TestDeepTrees:
    def test_caterpillar_beyond_recursion_limit(self):
        _check_deep_caterpillar(3000)

    @pytest.mark.large_scale
    def test_caterpillar_20000(self):
        _check_deep_caterpillar(20000)

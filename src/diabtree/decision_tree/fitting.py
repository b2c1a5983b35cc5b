"""Classification tree fitting: Gini split search, recursive partitioning, and cost-complexity pruning."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final

import numpy as np
from loguru import logger

from diabtree.decision_tree.models import Predicate, TreeHyperparameters, TreeModel, TreeNode
from diabtree.schema import CLASS_LABELS, FieldSpec

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

_N_CLASSES: Final[int] = len(CLASS_LABELS)
_MAX_NOMINAL_LEVELS: Final[int] = 16  # 2**15 - 1 candidate partitions at most
_DECREASE_TOLERANCE: Final[float] = 1e-12  # Absorbs rounding when children mirror the parent's class mix.

# ---------------------------------------------------------------------------
# Public interface -- Impurity and split search
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SplitCandidate:
    """The best split found for a node.

    Attributes:
        feature_index (int): Column of the feature matrix the split tests.
        predicate (Predicate): Condition routing records to the left child.
        decrease (float): Weighted decrease in Gini impurity.
        left_counts (tuple[int, ...]): Class counts routed left.
        right_counts (tuple[int, ...]): Class counts routed right.
    """

    feature_index: int
    predicate: Predicate
    decrease: float
    left_counts: tuple[int, ...]
    right_counts: tuple[int, ...]


def gini_impurity(class_counts: np.ndarray) -> np.ndarray:
    """Compute `1 - sum(p_c ** 2)` over the last axis of a class-count array.

    Args:
        class_counts (np.ndarray): Counts with classes on the last axis. Any
            leading shape is allowed.

    Returns:
        np.ndarray: Impurity per leading index; 0.0 where the count total is zero.

    Examples:
        >>> float(gini_impurity(np.array([5, 5])))
        0.5
        >>> float(gini_impurity(np.array([7, 0])))
        0.0
    """
    counts = np.asarray(class_counts, dtype=np.float64)
    totals = counts.sum(axis=-1, keepdims=True)
    safe_totals = np.where(totals > 0, totals, 1.0)
    impurity = 1.0 - np.sum((counts / safe_totals) ** 2, axis=-1)
    return np.where(totals[..., 0] > 0, impurity, 0.0)


def find_best_split(
    feature_matrix: np.ndarray,
    class_codes: np.ndarray,
    *,
    feature_specs: Sequence[FieldSpec],
    level_counts: Mapping[str, int],
) -> SplitCandidate | None:
    """Search every candidate split and return the one with the largest Gini decrease.

    Candidates are midpoints between consecutive distinct values for numeric
    features, `level <= k` thresholds for ordinal features, and every
    non-trivial level subset for nominal features. Ties are broken by the
    lowest feature index, then the lowest threshold (or subset bitmask).

    Args:
        feature_matrix (np.ndarray): Encoded rows of the node, shape `(n, n_features)`.
        class_codes (np.ndarray): Class code of each row, shape `(n,)`.
        feature_specs (Sequence[FieldSpec]): One field spec per matrix column.
        level_counts (Mapping[str, int]): Level-set size per categorical feature.

    Returns:
        SplitCandidate | None: The best split, or `None` if no split separates
            the rows into two non-empty groups.
    """
    total_counts = np.bincount(class_codes, minlength=_N_CLASSES).astype(np.float64)
    best: SplitCandidate | None = None

    for feature_index, spec in enumerate(feature_specs):
        column = feature_matrix[:, feature_index]
        if spec.kind == "numeric":
            candidate = _best_numeric_split(feature_index, spec.name, column, class_codes, total_counts)
        elif spec.kind == "ordinal":
            candidate = _best_ordinal_split(
                feature_index, spec.name, column, class_codes, total_counts, level_counts[spec.name]
            )
        else:
            candidate = _best_nominal_split(
                feature_index, spec.name, column, class_codes, total_counts, level_counts[spec.name]
            )
        # Strictly greater keeps the earliest feature on ties.
        if candidate is not None and (best is None or candidate.decrease > best.decrease):
            best = candidate

    return best


# ---------------------------------------------------------------------------
# Public interface -- Tree fitting
# ---------------------------------------------------------------------------


def fit_tree(
    feature_matrix: np.ndarray,
    class_codes: np.ndarray,
    *,
    feature_specs: Sequence[FieldSpec],
    level_counts: Mapping[str, int],
    hyperparameters: TreeHyperparameters | None = None,
) -> TreeModel:
    """Grow a classification tree by recursive binary partitioning, then prune it.

    A node becomes a leaf when it holds fewer than `min_n` records, sits at
    `max_depth`, is pure, or has no split that lowers Gini impurity by more
    than `min_impurity_decrease`. The grown tree is then pruned by
    weakest-link cost-complexity pruning on the training data.

    Args:
        feature_matrix (np.ndarray): Encoded training matrix, shape `(n, n_features)`.
        class_codes (np.ndarray): Class code (0 or 1) per row.
        feature_specs (Sequence[FieldSpec]): One field spec per matrix column.
        level_counts (Mapping[str, int]): Level-set size per categorical feature.
        hyperparameters (TreeHyperparameters | None): Growth and pruning
            controls. Defaults to `TreeHyperparameters()`.

    Returns:
        TreeModel: The pruned, immutable tree.

    Raises:
        ValueError: If the inputs are empty, misaligned, or hold class codes
            outside `CLASS_LABELS`, or a nominal feature has too many levels.
    """
    hyperparameters = hyperparameters or TreeHyperparameters()
    codes = _validate_training_inputs(feature_matrix, class_codes, feature_specs, level_counts)

    growing = _grow(feature_matrix, codes, feature_specs, level_counts, hyperparameters)
    grown_leaves = sum(1 for node in growing if node.split is None)
    collapsed = _prune(growing, hyperparameters.cost_complexity)
    tree = _freeze(growing, feature_specs, hyperparameters)

    logger.info(
        "Classification tree fitted",
        samples=len(codes),
        grown_nodes=len(growing),
        grown_leaves=grown_leaves,
        pruned_subtrees=collapsed,
        nodes=len(tree.nodes),
        leaves=tree.leaf_count,
        depth=tree.depth,
    )
    return tree


# ---------------------------------------------------------------------------
# Private helpers -- Split search
# ---------------------------------------------------------------------------


def _split_decrease(left_counts: np.ndarray, total_counts: np.ndarray) -> np.ndarray:
    """Weighted Gini decrease for each row of `left_counts` against the parent totals.

    Args:
        left_counts (np.ndarray): Class counts routed left, shape `(m, n_classes)`.
        total_counts (np.ndarray): Parent class counts, shape `(n_classes,)`.

    Returns:
        np.ndarray: Decrease per candidate, shape `(m,)`.
    """
    right_counts = total_counts - left_counts
    n_total = total_counts.sum()
    n_left = left_counts.sum(axis=1)
    n_right = n_total - n_left
    return (
        gini_impurity(total_counts)
        - (n_left / n_total) * gini_impurity(left_counts)
        - (n_right / n_total) * gini_impurity(right_counts)
    )


def _pick_candidate(
    feature_index: int,
    left_counts: np.ndarray,
    total_counts: np.ndarray,
    make_predicate: Callable[[int], Predicate],
) -> SplitCandidate | None:
    """Score candidate partitions of one feature and keep the best valid one.

    Candidates must be given in tie-break order; the first maximum wins.

    Args:
        feature_index (int): Column being split.
        left_counts (np.ndarray): Class counts routed left per candidate,
            shape `(n_candidates, n_classes)`.
        total_counts (np.ndarray): Parent class counts.
        make_predicate (Callable[[int], Predicate]): Builds the predicate of
            the candidate at a given position.

    Returns:
        SplitCandidate | None: The best candidate leaving both sides non-empty.
    """
    if len(left_counts) == 0:
        return None
    n_total = total_counts.sum()
    n_left = left_counts.sum(axis=1)
    valid = (n_left > 0) & (n_left < n_total)
    if not valid.any():
        return None
    decrease = np.where(valid, _split_decrease(left_counts, total_counts), -np.inf)
    best = int(np.argmax(decrease))
    left = left_counts[best]
    return SplitCandidate(
        feature_index=feature_index,
        predicate=make_predicate(best),
        decrease=float(decrease[best]),
        left_counts=tuple(int(count) for count in left),
        right_counts=tuple(int(count) for count in total_counts - left),
    )


def _best_numeric_split(
    feature_index: int,
    name: str,
    column: np.ndarray,
    class_codes: np.ndarray,
    total_counts: np.ndarray,
) -> SplitCandidate | None:
    """Evaluate `x <= midpoint` for every gap between consecutive distinct values."""
    order = np.argsort(column, kind="stable")
    sorted_values = column[order]
    one_hot = np.eye(_N_CLASSES, dtype=np.float64)[class_codes[order]]
    cumulative = np.cumsum(one_hot, axis=0)

    boundaries = np.nonzero(sorted_values[:-1] < sorted_values[1:])[0]

    def make_predicate(candidate: int) -> Predicate:
        position = boundaries[candidate]
        lower = float(sorted_values[position])
        upper = float(sorted_values[position + 1])
        midpoint = (lower + upper) / 2.0
        # Adjacent floats can round the midpoint up onto the upper value.
        threshold = midpoint if midpoint < upper else lower
        return Predicate(variable=name, operator="<=", value=threshold)

    return _pick_candidate(feature_index, cumulative[boundaries], total_counts, make_predicate)


def _level_class_counts(column: np.ndarray, class_codes: np.ndarray, n_levels: int) -> np.ndarray:
    """Tabulate class counts per level index, shape `(n_levels, n_classes)`."""
    table = np.zeros((n_levels, _N_CLASSES), dtype=np.float64)
    np.add.at(table, (column.astype(np.int64), class_codes), 1.0)
    return table


def _best_ordinal_split(
    feature_index: int,
    name: str,
    column: np.ndarray,
    class_codes: np.ndarray,
    total_counts: np.ndarray,
    n_levels: int,
) -> SplitCandidate | None:
    """Evaluate order-preserving partitions `level <= k` for k = 0 .. n_levels - 2."""
    if n_levels < 2:
        return None
    table = _level_class_counts(column, class_codes, n_levels)
    left_counts = np.cumsum(table, axis=0)[:-1]
    return _pick_candidate(
        feature_index,
        left_counts,
        total_counts,
        lambda k: Predicate(variable=name, operator="<=", value=float(k)),
    )


def _best_nominal_split(
    feature_index: int,
    name: str,
    column: np.ndarray,
    class_codes: np.ndarray,
    total_counts: np.ndarray,
    n_levels: int,
) -> SplitCandidate | None:
    """Evaluate every non-trivial subset of levels as the left branch.

    Each partition is enumerated once, as the subset that contains level 0,
    in ascending bitmask order.
    """
    if n_levels < 2:
        return None
    table = _level_class_counts(column, class_codes, n_levels)
    full_mask = (1 << n_levels) - 1
    masks = [mask for mask in range(1, full_mask) if mask & 1]
    membership = np.array(
        [[(mask >> level) & 1 for level in range(n_levels)] for mask in masks],
        dtype=np.float64,
    )
    left_counts = membership @ table

    def make_predicate(candidate: int) -> Predicate:
        mask = masks[candidate]
        levels = frozenset(level for level in range(n_levels) if (mask >> level) & 1)
        return Predicate(variable=name, operator="in", value=levels)

    return _pick_candidate(feature_index, left_counts, total_counts, make_predicate)


# ---------------------------------------------------------------------------
# Private helpers -- Growth, pruning, freezing
# ---------------------------------------------------------------------------


@dataclass
class _GrowingNode:
    """Mutable node used while the tree is grown and pruned."""

    depth: int
    class_counts: tuple[int, ...]
    rows: np.ndarray | None = field(default=None, repr=False)
    split: Predicate | None = None
    left: int | None = None
    right: int | None = None

    @property
    def n_samples(self) -> int:
        return sum(self.class_counts)

    @property
    def misclassified(self) -> int:
        """Records not in the majority class, i.e. the node's risk as a leaf."""
        return self.n_samples - max(self.class_counts)


def _validate_training_inputs(
    feature_matrix: np.ndarray,
    class_codes: np.ndarray,
    feature_specs: Sequence[FieldSpec],
    level_counts: Mapping[str, int],
) -> np.ndarray:
    """Check shapes and codes; return the class codes as int64.

    Raises:
        ValueError: On any invalid input.
    """
    if feature_matrix.ndim != 2 or feature_matrix.shape[1] != len(feature_specs):
        raise ValueError(
            f"feature_matrix must have shape (n_rows, {len(feature_specs)}), got {feature_matrix.shape}"
        )
    if feature_matrix.shape[0] == 0:
        raise ValueError("Cannot fit a tree on zero rows.")
    codes = np.asarray(class_codes, dtype=np.int64)
    if codes.shape != (feature_matrix.shape[0],):
        raise ValueError(f"class_codes must have shape ({feature_matrix.shape[0]},), got {codes.shape}")
    if codes.min() < 0 or codes.max() >= _N_CLASSES:
        raise ValueError(f"class_codes must lie in [0, {_N_CLASSES - 1}]")
    for spec in feature_specs:
        if spec.kind == "nominal" and level_counts[spec.name] > _MAX_NOMINAL_LEVELS:
            raise ValueError(
                f"Nominal feature '{spec.name}' has {level_counts[spec.name]} levels; at most {_MAX_NOMINAL_LEVELS}"
                " are supported."
            )
    return codes


def _class_counts(codes: np.ndarray) -> tuple[int, ...]:
    return tuple(int(count) for count in np.bincount(codes, minlength=_N_CLASSES))


def _grow(
    feature_matrix: np.ndarray,
    codes: np.ndarray,
    feature_specs: Sequence[FieldSpec],
    level_counts: Mapping[str, int],
    hyperparameters: TreeHyperparameters,
) -> list[_GrowingNode]:
    """Grow the full tree breadth-first; children are always appended after their parent."""
    all_rows = np.arange(len(codes))
    nodes = [_GrowingNode(depth=0, class_counts=_class_counts(codes), rows=all_rows)]
    pending: deque[int] = deque([0])

    while pending:
        node = nodes[pending.popleft()]
        rows = node.rows
        node.rows = None
        if rows is None or _is_terminal(node, hyperparameters):
            continue

        candidate = find_best_split(
            feature_matrix[rows],
            codes[rows],
            feature_specs=feature_specs,
            level_counts=level_counts,
        )
        if candidate is None or candidate.decrease <= hyperparameters.min_impurity_decrease + _DECREASE_TOLERANCE:
            continue

        goes_left = candidate.predicate.eval_array(feature_matrix[rows, candidate.feature_index])
        node.split = candidate.predicate
        node.left = len(nodes)
        node.right = len(nodes) + 1
        nodes.append(_GrowingNode(depth=node.depth + 1, class_counts=candidate.left_counts, rows=rows[goes_left]))
        nodes.append(_GrowingNode(depth=node.depth + 1, class_counts=candidate.right_counts, rows=rows[~goes_left]))
        pending.extend((node.left, node.right))

    return nodes


def _is_terminal(node: _GrowingNode, hyperparameters: TreeHyperparameters) -> bool:
    is_pure = sum(1 for count in node.class_counts if count > 0) <= 1
    return node.n_samples < hyperparameters.min_n or node.depth >= hyperparameters.max_depth or is_pure


def _reachable(nodes: list[_GrowingNode]) -> list[int]:
    """Node ids reachable from the root, in breadth-first order."""
    order: list[int] = []
    pending: deque[int] = deque([0])
    while pending:
        node_id = pending.popleft()
        order.append(node_id)
        node = nodes[node_id]
        if node.split is not None:
            pending.extend((node.left, node.right))  # type: ignore[arg-type]
    return order


def _prune(nodes: list[_GrowingNode], cost_complexity: float) -> int:
    """Collapse weakest links in place until every link costs more than the penalty.

    For an internal node t, the link strength is
    `(R(t) - R(T_t)) / (|leaves(T_t)| - 1)`, where `R(t)` counts the records
    t would misclassify as a leaf and `R(T_t)` those misclassified by the
    leaves under t. The penalty is `cost_complexity * R(root)`. Among equally
    weak links the lowest node id is collapsed first.

    Args:
        nodes (list[_GrowingNode]): The grown tree, modified in place.
        cost_complexity (float): Penalty as a fraction of the root risk.

    Returns:
        int: Number of subtrees collapsed.
    """
    penalty = cost_complexity * nodes[0].misclassified
    collapsed = 0

    while True:
        leaves: dict[int, int] = {}
        subtree_risk: dict[int, int] = {}
        weakest: tuple[float, int] | None = None
        for node_id in reversed(_reachable(nodes)):
            node = nodes[node_id]
            if node.split is None:
                leaves[node_id] = 1
                subtree_risk[node_id] = node.misclassified
                continue
            leaves[node_id] = leaves[node.left] + leaves[node.right]  # type: ignore[index]
            subtree_risk[node_id] = subtree_risk[node.left] + subtree_risk[node.right]  # type: ignore[index]
            strength = (node.misclassified - subtree_risk[node_id]) / (leaves[node_id] - 1)
            if weakest is None or (strength, node_id) < weakest:
                weakest = (strength, node_id)

        if weakest is None or weakest[0] > penalty + _DECREASE_TOLERANCE:
            return collapsed

        node = nodes[weakest[1]]
        node.split = None
        node.left = None
        node.right = None
        collapsed += 1


def _freeze(
    nodes: list[_GrowingNode],
    feature_specs: Sequence[FieldSpec],
    hyperparameters: TreeHyperparameters,
) -> TreeModel:
    """Renumber reachable nodes breadth-first and build the immutable `TreeModel`."""
    order = _reachable(nodes)
    new_ids = {old_id: new_id for new_id, old_id in enumerate(order)}
    frozen_nodes = []
    for old_id in order:
        node = nodes[old_id]
        is_leaf = node.split is None
        frozen_nodes.append(
            TreeNode(
                node_id=new_ids[old_id],
                depth=node.depth,
                class_counts=node.class_counts,
                split=node.split,
                left=None if is_leaf else new_ids[node.left],  # type: ignore[index]
                right=None if is_leaf else new_ids[node.right],  # type: ignore[index]
            )
        )
    return TreeModel(
        feature_names=tuple(spec.name for spec in feature_specs),
        nodes=tuple(frozen_nodes),
        hyperparameters=hyperparameters,
    )

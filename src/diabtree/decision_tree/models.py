"""Pydantic models for split predicates, tree nodes, and the fitted classification tree."""

from __future__ import annotations

from typing import Literal, TypeAlias

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator

from diabtree.records import EncodedRecord
from diabtree.schema import CLASS_LABELS, POSITIVE_CLASS, ClassLabel

# ---------------------------------------------------------------------------
# Public type aliases
# ---------------------------------------------------------------------------

PredicateOp: TypeAlias = Literal["<=", "in"]

PredicateValue: TypeAlias = float | frozenset[int]

# ---------------------------------------------------------------------------
# Public models
# ---------------------------------------------------------------------------


class Predicate(BaseModel):
    """A boolean condition on one encoded feature.

    Internal tree nodes route a record to their left child when the predicate
    holds and to their right child otherwise. Numeric splits use
    `feature <= midpoint`; ordinal splits use `level_index <= k`; nominal
    splits use `level_index in {...}`.

    Attributes:
        variable (str): Encoded feature name, e.g. `"bmi"` or `"gen_hlth"`.
        operator (PredicateOp): `"<="` for threshold splits, `"in"` for
            membership in a set of level indices.
        value (PredicateValue): Threshold for scalar comparisons, or the set
            of level indices for membership tests.

    Examples:
        >>> p = Predicate(variable="bmi", operator="<=", value=0.5)
        >>> str(p)
        'bmi <= 0.5'
        >>> p.eval(0.25)
        True
        >>> p2 = Predicate(variable="high_bp", operator="in", value=frozenset({0}))
        >>> p2.eval(1)
        False
    """

    model_config = ConfigDict(frozen=True)

    variable: str = Field(description="Encoded feature name the condition applies to.")
    operator: PredicateOp = Field(description="Comparison operator.")
    value: PredicateValue = Field(
        description="Threshold for scalar comparisons, or a set of level indices for membership tests.",
    )

    @model_validator(mode="after")
    def _validate_operator_value_compatibility(self) -> Predicate:
        """Validate that the operator and value type are compatible.

        Returns:
            Predicate: The validated model instance.

        Raises:
            ValueError: If a membership operator is used with a scalar value,
                or a scalar operator with a set value.
        """
        try:
            _validate_operator_threshold_types(self.operator, self.value)
        except TypeError as exc:
            raise ValueError(str(exc)) from exc
        return self

    def __str__(self) -> str:
        """Return a human-readable representation of this predicate.

        Returns:
            str: The predicate as `"<variable> <operator> <value>"`.
        """
        if isinstance(self.value, frozenset):
            sorted_values = ", ".join(str(v) for v in sorted(self.value))
            return f"{self.variable} {self.operator} {{{sorted_values}}}"
        return f"{self.variable} {self.operator} {self.value}"

    def eval(self, x: float) -> bool:
        """Evaluate this predicate against one encoded value.

        Args:
            x (float): The encoded feature value.

        Returns:
            bool: `True` if the predicate holds for `x`.
        """
        return bool(_apply_operator(self.operator, x, self.value))

    def eval_array(self, values: np.ndarray) -> np.ndarray:
        """Evaluate this predicate element-wise over encoded values.

        Args:
            values (np.ndarray): 1-D array of encoded feature values.

        Returns:
            np.ndarray: Boolean mask, `True` where the predicate holds.
        """
        if isinstance(self.value, frozenset):
            return np.isin(values, sorted(self.value))
        return np.asarray(values <= self.value, dtype=bool)


class TreeHyperparameters(BaseModel):
    """Growth and pruning controls for the classification tree.

    Attributes:
        min_n (int): A node with fewer records than this becomes a leaf.
        max_depth (int): Nodes at this depth become leaves. The root has depth 0.
        cost_complexity (float): Pruning penalty, expressed as a fraction of
            the root node's misclassification risk.
        min_impurity_decrease (float): A split is kept only when it lowers Gini
            impurity by strictly more than this.
    """

    model_config = ConfigDict(frozen=True)

    min_n: int = Field(default=10, ge=1, description="Minimum node size for a split attempt.")
    max_depth: int = Field(default=8, ge=0, description="Maximum tree depth; the root has depth 0.")
    cost_complexity: float = Field(default=0.001, ge=0.0, description="Relative cost-complexity pruning penalty.")
    min_impurity_decrease: float = Field(default=0.0, ge=0.0, description="Minimum Gini decrease for a split.")


class TreeNode(BaseModel):
    """One node of the tree arena.

    A leaf has no `split` and no children; an internal node has all three.
    Class counts are the training records that reached the node, in
    `CLASS_LABELS` order; leaf probabilities are their empirical frequencies
    (no smoothing).

    Attributes:
        node_id (int): Position of the node in `TreeModel.nodes`.
        depth (int): Distance from the root.
        class_counts (tuple[int, ...]): Training records per class.
        split (Predicate | None): Routing condition; left when it holds.
        left (int | None): Index of the left child.
        right (int | None): Index of the right child.
    """

    model_config = ConfigDict(frozen=True)

    node_id: int = Field(ge=0)
    depth: int = Field(ge=0)
    class_counts: tuple[int, ...]
    split: Predicate | None = None
    left: int | None = None
    right: int | None = None

    @model_validator(mode="after")
    def _validate_node_shape(self) -> TreeNode:
        """Validate class counts and that split and children are set together.

        Returns:
            TreeNode: The validated model instance.

        Raises:
            ValueError: On a malformed node.
        """
        if len(self.class_counts) != len(CLASS_LABELS):
            raise ValueError(f"class_counts must have {len(CLASS_LABELS)} entries")
        if any(count < 0 for count in self.class_counts) or sum(self.class_counts) == 0:
            raise ValueError("class_counts must be non-negative with at least one record")
        parts = (self.split is None, self.left is None, self.right is None)
        if len(set(parts)) != 1:
            raise ValueError("split, left and right must be all set (internal node) or all unset (leaf)")
        return self

    @property
    def is_leaf(self) -> bool:
        """bool: Whether the node has no children."""
        return self.split is None

    @property
    def n_samples(self) -> int:
        """int: Training records that reached the node."""
        return sum(self.class_counts)

    @property
    def probabilities(self) -> tuple[float, ...]:
        """tuple[float, ...]: Class frequencies in `CLASS_LABELS` order."""
        total = self.n_samples
        return tuple(count / total for count in self.class_counts)

    @property
    def prediction(self) -> ClassLabel:
        """ClassLabel: Majority class; ties go to the lower class code."""
        return ClassLabel.from_code(int(np.argmax(self.class_counts)))

    @property
    def positive_probability(self) -> float:
        """float: Frequency of the positive class (Diabetes)."""
        return self.probabilities[POSITIVE_CLASS.code]


class TreeModel(BaseModel):
    """A fitted binary classification tree stored as an arena of nodes.

    Node 0 is the root. Every child index is greater than its parent's, so
    the structure is acyclic by construction.

    Attributes:
        feature_names (tuple[str, ...]): Encoded feature names, in matrix column order.
        nodes (tuple[TreeNode, ...]): The node arena.
        hyperparameters (TreeHyperparameters): Settings the tree was trained with.
    """

    model_config = ConfigDict(frozen=True)

    feature_names: tuple[str, ...]
    nodes: tuple[TreeNode, ...] = Field(min_length=1)
    hyperparameters: TreeHyperparameters = Field(default_factory=TreeHyperparameters)

    @model_validator(mode="after")
    def _validate_arena(self) -> TreeModel:
        """Validate that the arena forms a single rooted binary tree.

        Returns:
            TreeModel: The validated model instance.

        Raises:
            ValueError: If node ids do not match positions, a child index is
                out of order or shared, a node is unreachable, or a split
                references an unknown feature.
        """
        parent_of: dict[int, int] = {}
        for position, node in enumerate(self.nodes):
            if node.node_id != position:
                raise ValueError(f"node at position {position} has node_id {node.node_id}")
            if node.is_leaf:
                continue
            variable = node.split.variable  # type: ignore[union-attr]
            if variable not in self.feature_names:
                raise ValueError(f"node {position} splits on unknown feature '{variable}'")
            for child in (node.left, node.right):
                if child is None or not position < child < len(self.nodes):
                    raise ValueError(f"node {position} has invalid child index {child}")
                if child in parent_of:
                    raise ValueError(f"node {child} has more than one parent")
                parent_of[child] = position
                if self.nodes[child].depth != node.depth + 1:
                    raise ValueError(f"node {child} depth does not follow its parent")
        if self.nodes[0].depth != 0:
            raise ValueError("root node must have depth 0")
        unreachable = [position for position in range(1, len(self.nodes)) if position not in parent_of]
        if unreachable:
            raise ValueError(f"nodes not reachable from the root: {unreachable}")
        return self

    @property
    def root(self) -> TreeNode:
        """TreeNode: The root node."""
        return self.nodes[0]

    @property
    def depth(self) -> int:
        """int: Depth of the deepest node."""
        return max(node.depth for node in self.nodes)

    @property
    def leaf_count(self) -> int:
        """int: Number of leaves."""
        return sum(1 for node in self.nodes if node.is_leaf)

    @property
    def n_samples(self) -> int:
        """int: Training records the tree was fit on."""
        return self.root.n_samples

    def leaf_for(self, record: EncodedRecord) -> TreeNode:
        """Route an encoded record from the root to a leaf.

        Args:
            record (EncodedRecord): The encoded input.

        Returns:
            TreeNode: The leaf reached.

        Raises:
            FeatureMissingError: If the record lacks a feature tested on the path.
        """
        node = self.root
        while not node.is_leaf:
            split: Predicate = node.split  # type: ignore[assignment]
            child = node.left if split.eval(record[split.variable]) else node.right
            node = self.nodes[child]  # type: ignore[index]
        return node

    def predict(self, record: EncodedRecord) -> tuple[ClassLabel, float]:
        """Predict the class and positive-class probability for one record.

        Args:
            record (EncodedRecord): The encoded input.

        Returns:
            tuple[ClassLabel, float]: The leaf's majority class and its
                probability of Diabetes.

        Raises:
            FeatureMissingError: If the record lacks a feature tested on the path.
        """
        leaf = self.leaf_for(record)
        return leaf.prediction, leaf.positive_probability

    def predict_proba(self, record: EncodedRecord) -> dict[ClassLabel, float]:
        """Return the class distribution of the leaf a record reaches.

        Args:
            record (EncodedRecord): The encoded input.

        Returns:
            dict[ClassLabel, float]: Probability per class, in `CLASS_LABELS` order.

        Raises:
            FeatureMissingError: If the record lacks a feature tested on the path.
        """
        leaf = self.leaf_for(record)
        return dict(zip(CLASS_LABELS, leaf.probabilities, strict=True))

    def apply(self, feature_matrix: np.ndarray) -> np.ndarray:
        """Return the leaf node id reached by every row of an encoded matrix.

        Args:
            feature_matrix (np.ndarray): Matrix of shape `(n_rows, n_features)`
                with columns in `feature_names` order.

        Returns:
            np.ndarray: Int64 array of leaf node ids, one per row.

        Raises:
            ValueError: If the matrix does not have one column per feature.
        """
        if feature_matrix.ndim != 2 or feature_matrix.shape[1] != len(self.feature_names):
            raise ValueError(
                f"feature_matrix must have shape (n_rows, {len(self.feature_names)}), got {feature_matrix.shape}"
            )
        leaf_ids = np.zeros(feature_matrix.shape[0], dtype=np.int64)
        pending: list[tuple[int, np.ndarray]] = [(0, np.arange(feature_matrix.shape[0]))]
        while pending:
            node_id, rows = pending.pop()
            node = self.nodes[node_id]
            if node.is_leaf or rows.size == 0:
                leaf_ids[rows] = node_id
                continue
            split: Predicate = node.split  # type: ignore[assignment]
            column = self.feature_names.index(split.variable)
            goes_left = split.eval_array(feature_matrix[rows, column])
            pending.append((node.right, rows[~goes_left]))  # type: ignore[arg-type]
            pending.append((node.left, rows[goes_left]))  # type: ignore[arg-type]
        return leaf_ids

    def predict_matrix(self, feature_matrix: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Predict class codes and positive-class probabilities for an encoded matrix.

        Args:
            feature_matrix (np.ndarray): Matrix with columns in `feature_names` order.

        Returns:
            tuple[np.ndarray, np.ndarray]: `(class_codes, prob_diabetes)`, one
                entry per row.
        """
        leaf_ids = self.apply(feature_matrix)
        leaf_codes = np.array([node.prediction.code for node in self.nodes], dtype=np.int64)
        leaf_probabilities = np.array([node.positive_probability for node in self.nodes], dtype=np.float64)
        return leaf_codes[leaf_ids], leaf_probabilities[leaf_ids]


# ---------------------------------------------------------------------------
# Private helpers -- Predicate operator evaluation
# ---------------------------------------------------------------------------

def _apply_operator(op: PredicateOp, x: float, threshold: PredicateValue) -> bool:
    """Apply a comparison operator between a feature value and a threshold.

    Args:
        op (PredicateOp): The comparison operator to apply.
        x (float): The feature value to compare.
        threshold (PredicateValue): The threshold or set of level indices.

    Returns:
        bool: Result of applying `op` between `x` and `threshold`.

    Raises:
        ValueError: If `op` is not a recognized `PredicateOp` value.
    """
    _validate_operator_threshold_types(op, threshold)
    if op == "<=" and not isinstance(threshold, frozenset):
        return x <= threshold
    if op == "in" and isinstance(threshold, frozenset):
        return x in threshold
    raise ValueError(f"Unexpected operator: {op!r}")


def _validate_operator_threshold_types(op: PredicateOp, threshold: PredicateValue) -> None:
    """Raise TypeError when operator and threshold types are incompatible.

    Args:
        op (PredicateOp): The comparison operator to validate.
        threshold (PredicateValue): The threshold value to validate against the operator.

    Raises:
        TypeError: If `<=` is paired with a set threshold, or `in` with a
            scalar threshold.
    """
    if op == "<=" and isinstance(threshold, frozenset):
        raise TypeError(f"Scalar operator '{op}' cannot compare against a set")
    if op == "in" and not isinstance(threshold, frozenset):
        raise TypeError(f"Membership operator '{op}' requires a set threshold")

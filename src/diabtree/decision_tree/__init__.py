"""Decision tree sub-package: feature encoding, tree models, and fitting."""

from __future__ import annotations

from diabtree.decision_tree.fitting import SplitCandidate, find_best_split, fit_tree, gini_impurity
from diabtree.decision_tree.models import (
    Predicate,
    PredicateOp,
    TreeHyperparameters,
    TreeModel,
    TreeNode,
)
from diabtree.decision_tree.preprocessing import CategoricalLevels, FeatureEncoder, NumericStats

__all__ = [
    "CategoricalLevels",
    "FeatureEncoder",
    "NumericStats",
    "Predicate",
    "PredicateOp",
    "SplitCandidate",
    "TreeHyperparameters",
    "TreeModel",
    "TreeNode",
    "find_best_split",
    "fit_tree",
    "gini_impurity",
]

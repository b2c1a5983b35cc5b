"""diabtree: A classification-tree service for diabetes health indicators."""

from loguru import logger

from diabtree.logging import PACKAGE_NAME, enable_logging
from diabtree.service import EvaluationService, ModelArtifact, PredictionService, train_from_csv, train_model

logger.disable(PACKAGE_NAME)  # noqa: RUF067 - Disable logging for the diabtree module by default

__all__ = [
    "EvaluationService",
    "ModelArtifact",
    "PredictionService",
    "enable_logging",
    "train_from_csv",
    "train_model",
]

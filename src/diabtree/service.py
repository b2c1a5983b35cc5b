"""Training pipeline and the read-only prediction and evaluation services built on its artifact.

`train_model` runs once at process start and returns a `ModelArtifact`. The
artifact is immutable; any number of threads may share one
`PredictionService` / `EvaluationService` without locking.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import polars as pl
from loguru import logger
from sklearn.metrics import confusion_matrix as count_confusion

from diabtree.dataset import load_health_frame
from diabtree.decision_tree.fitting import fit_tree
from diabtree.decision_tree.models import TreeHyperparameters, TreeModel
from diabtree.decision_tree.preprocessing import FeatureEncoder
from diabtree.defaults import resolve_defaults
from diabtree.exceptions import (
    ColumnsNotFoundError,
    FeatureMissingError,
    InsufficientDataError,
    MalformedInputError,
    UnknownCategoryError,
)
from diabtree.logging import REQUEST_LEVEL
from diabtree.records import ConfusionMatrix, DefaultValues, EncodedRecord, HealthRecord, PredictionResult
from diabtree.schema import CLASS_LABELS, FEATURE_NAMES, FIELD_SPECS, LABEL_COLUMN, NUMERIC_FIELDS

# ---------------------------------------------------------------------------
# Public interface -- Model artifact and training pipeline
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelArtifact:
    """Everything produced by one training pass, shared read-only by request handlers.

    Attributes:
        encoder (FeatureEncoder): Frozen normalization and level-set metadata.
        tree (TreeModel): The pruned classification tree.
        defaults (DefaultValues): Values substituted for omitted request fields.
        training_frame (pl.DataFrame): The complete records the tree was fit on,
            with the label as a class code.
    """

    encoder: FeatureEncoder
    tree: TreeModel
    defaults: DefaultValues
    training_frame: pl.DataFrame

    @property
    def n_training_rows(self) -> int:
        """int: Number of records the tree was fit on."""
        return self.training_frame.height


def train_model(df: pl.DataFrame, hyperparameters: TreeHyperparameters | None = None) -> ModelArtifact:
    """Fit the encoder, defaults, and tree on the entire dataset.

    Encoder statistics and defaults use every labelled row, ignoring missing
    values. Rows with any missing predictor are then dropped before the tree
    is fit. There is no held-out split.

    Args:
        df (pl.DataFrame): A prepared frame (see `diabtree.dataset.prepare_health_frame`).
        hyperparameters (TreeHyperparameters | None): Tree controls. Defaults
            to `TreeHyperparameters()`.

    Returns:
        ModelArtifact: The immutable artifact to serve from.

    Raises:
        ColumnsNotFoundError: If a predictor or the label column is absent.
        InsufficientDataError: If a field has no usable values or no complete rows remain.
    """
    if LABEL_COLUMN not in df.columns:
        raise ColumnsNotFoundError(missing_columns=[LABEL_COLUMN], available_columns=list(df.columns))

    encoder = FeatureEncoder.fit(df, FIELD_SPECS)
    defaults = resolve_defaults(df, FIELD_SPECS)

    complete = df.drop_nulls(subset=[*FEATURE_NAMES, LABEL_COLUMN]).filter(
        *[pl.col(name).is_not_nan() for name in NUMERIC_FIELDS]
    )
    dropped = df.height - complete.height
    if dropped:
        logger.warning("Dropping incomplete training rows", rows=dropped, remaining=complete.height)
    if complete.is_empty():
        raise InsufficientDataError(None, "No complete training rows remain after dropping missing values")

    feature_matrix = encoder.transform_frame(complete)
    class_codes = complete[LABEL_COLUMN].to_numpy()
    tree = fit_tree(
        feature_matrix,
        class_codes,
        feature_specs=encoder.specs,
        level_counts=encoder.level_counts,
        hyperparameters=hyperparameters,
    )
    return ModelArtifact(encoder=encoder, tree=tree, defaults=defaults, training_frame=complete)


def train_from_csv(path: str | Path, hyperparameters: TreeHyperparameters | None = None) -> ModelArtifact:
    """Load the dataset from disk and run `train_model` on it.

    Args:
        path (str | Path): CSV location.
        hyperparameters (TreeHyperparameters | None): Tree controls.

    Returns:
        ModelArtifact: The immutable artifact to serve from.
    """
    return train_model(load_health_frame(path), hyperparameters)


# ---------------------------------------------------------------------------
# Public interface -- Request parsing
# ---------------------------------------------------------------------------


def parse_prediction_query(params: Mapping[str, str | None]) -> HealthRecord:
    """Parse raw query-string values into a partial `HealthRecord`.

    Absent parameters stay unset. Keys that are not predictor fields are ignored.

    Args:
        params (Mapping[str, str | None]): Raw values keyed by parameter name.

    Returns:
        HealthRecord: The parsed, possibly partial record.

    Raises:
        MalformedInputError: If `bmi` is not a finite number, or a categorical
            parameter is not an integer.

    Examples:
        >>> parse_prediction_query({"bmi": "30", "gen_hlth": "4"}).gen_hlth
        4
    """
    values: dict[str, float | int] = {}
    for spec in FIELD_SPECS:
        raw = params.get(spec.name)
        if raw is None:
            continue
        values[spec.name] = _parse_number(spec.name, raw) if spec.kind == "numeric" else _parse_level(spec.name, raw)
    return HealthRecord(**values)


# ---------------------------------------------------------------------------
# Public interface -- Services
# ---------------------------------------------------------------------------


class PredictionService:
    """Answers single-record prediction requests from a `ModelArtifact`."""

    def __init__(self, artifact: ModelArtifact) -> None:
        """Initialize the service.

        Args:
            artifact (ModelArtifact): The trained artifact to serve from.
        """
        self._artifact = artifact

    def encode(self, record: HealthRecord) -> EncodedRecord:
        """Encode a fully-specified record with the frozen encoder.

        Args:
            record (HealthRecord): A record with every predictor set.

        Returns:
            EncodedRecord: The encoded record.

        Raises:
            UnknownCategoryError: If a categorical value was not seen during training.
            MalformedInputError: If `bmi` is NaN or infinite.
        """
        return self._artifact.encoder.transform(record.predictors())

    def predict_one(self, record: HealthRecord) -> PredictionResult:
        """Fill defaults, encode, and traverse the tree for one record.

        Args:
            record (HealthRecord): A possibly partial request record.

        Returns:
            PredictionResult: Class, probability of Diabetes, and the encoded input.

        Raises:
            UnknownCategoryError: If a categorical value was not seen during training.
            MalformedInputError: If `bmi` is NaN or infinite.
            FeatureMissingError: If the encoder and tree disagree on features.
        """
        defaulted = record.missing_fields()
        filled = self._artifact.defaults.fill(record)
        try:
            encoded = self.encode(filled)
            prediction, probability = self._artifact.tree.predict(encoded)
        except UnknownCategoryError as error:
            logger.warning("Prediction rejected", field=error.field, value=error.value, levels=list(error.levels))
            raise
        except MalformedInputError as error:
            logger.warning("Prediction rejected", field=error.field, value=error.raw_value, expected=error.expected)
            raise
        except FeatureMissingError as error:
            logger.error("Encoded record does not match the tree", feature=error.feature, available=error.available)
            raise

        logger.log(
            REQUEST_LEVEL,
            "Prediction served",
            prediction=prediction.value,
            prob_diabetes=probability,
            defaulted=defaulted,
        )
        return PredictionResult(input=encoded, prediction=prediction, prob_diabetes=probability)


class EvaluationService:
    """Computes in-sample diagnostics for a `ModelArtifact`."""

    def __init__(self, artifact: ModelArtifact) -> None:
        """Initialize the service.

        Args:
            artifact (ModelArtifact): The trained artifact to evaluate.
        """
        self._artifact = artifact

    def confusion_matrix(self) -> ConfusionMatrix:
        """Re-predict every training record and cross-tabulate true versus predicted class.

        The result is computed fresh on every call and reflects in-sample fit,
        since the tree is trained on the same records.

        Returns:
            ConfusionMatrix: Counts indexed `[true][predicted]`, summing to the
                number of training records.
        """
        frame = self._artifact.training_frame
        feature_matrix = self._artifact.encoder.transform_frame(frame)
        predicted, _ = self._artifact.tree.predict_matrix(feature_matrix)
        actual = frame[LABEL_COLUMN].to_numpy()
        counts = count_confusion(actual, predicted, labels=[label.code for label in CLASS_LABELS])
        matrix = ConfusionMatrix(counts=counts.tolist(), total=len(actual))
        logger.log(REQUEST_LEVEL, "Confusion matrix computed", total=matrix.total, accuracy=matrix.accuracy)
        return matrix


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _parse_number(field: str, raw: str) -> float:
    try:
        number = float(raw.strip())
    except ValueError:
        raise MalformedInputError(field, raw, "a finite number") from None
    if not math.isfinite(number):
        raise MalformedInputError(field, raw, "a finite number")
    return number


def _parse_level(field: str, raw: str) -> int:
    try:
        number = float(raw.strip())
    except ValueError:
        raise MalformedInputError(field, raw, "an integer") from None
    if not math.isfinite(number) or not number.is_integer():
        raise MalformedInputError(field, raw, "an integer")
    return int(number)

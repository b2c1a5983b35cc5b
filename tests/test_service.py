"""Tests for the training pipeline, request parsing, and the prediction and evaluation services."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import polars as pl
import pytest
from pytest_check import check

from diabtree.decision_tree.models import Predicate, TreeHyperparameters, TreeModel, TreeNode
from diabtree.decision_tree.preprocessing import FeatureEncoder
from diabtree.defaults import resolve_defaults
from diabtree.exceptions import (
    ColumnsNotFoundError,
    FeatureMissingError,
    InsufficientDataError,
    MalformedInputError,
    UnknownCategoryError,
)
from diabtree.records import HealthRecord
from diabtree.schema import FEATURE_NAMES, LABEL_COLUMN, ClassLabel, FieldSpec
from diabtree.service import (
    EvaluationService,
    ModelArtifact,
    PredictionService,
    parse_prediction_query,
    train_from_csv,
    train_model,
)

# ---------------------------------------------------------------------------
# Training pipeline
# ---------------------------------------------------------------------------


class TestTrainModel:
    """Tests for `train_model` and `train_from_csv`."""

    def test_fits_on_every_complete_row(self, artifact: ModelArtifact, health_frame: pl.DataFrame) -> None:
        """With no missing values the tree is fit on the whole dataset.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
            health_frame (pl.DataFrame): Prepared synthetic data.
        """
        with check:
            assert artifact.n_training_rows == health_frame.height
        with check:
            assert artifact.tree.n_samples == health_frame.height
        with check:
            assert artifact.tree.feature_names == FEATURE_NAMES
        with check:
            assert artifact.defaults == resolve_defaults(health_frame)

    def test_incomplete_rows_dropped_after_fitting_encoder(self, health_frame: pl.DataFrame) -> None:
        """Rows with missing predictors are excluded from the tree but not from the encoder statistics.

        Args:
            health_frame (pl.DataFrame): Prepared synthetic data.
        """
        # Arrange - blank out bmi on the first three rows
        bmi = health_frame["bmi"].to_list()
        bmi[:3] = [None, None, None]
        frame = health_frame.with_columns(pl.Series("bmi", bmi, dtype=pl.Float64))

        # Act
        trained = train_model(frame, TreeHyperparameters(max_depth=2))

        # Assert
        with check:
            assert trained.n_training_rows == health_frame.height - 3
        with check:
            assert trained.tree.n_samples == health_frame.height - 3
        with check:
            assert trained.encoder.numeric["bmi"].mean == pytest.approx(frame["bmi"].mean())

    def test_nan_bmi_rows_dropped(self, health_frame: pl.DataFrame) -> None:
        """NaN counts as missing for numeric predictors.

        Args:
            health_frame (pl.DataFrame): Prepared synthetic data.
        """
        bmi = health_frame["bmi"].to_list()
        bmi[0] = float("nan")
        frame = health_frame.with_columns(pl.Series("bmi", bmi, dtype=pl.Float64))

        trained = train_model(frame, TreeHyperparameters(max_depth=1))

        assert trained.n_training_rows == health_frame.height - 1

    def test_missing_label_column_raises(self, health_frame: pl.DataFrame) -> None:
        """The label is required.

        Args:
            health_frame (pl.DataFrame): Prepared synthetic data.
        """
        with pytest.raises(ColumnsNotFoundError) as exc_info:
            train_model(health_frame.drop(LABEL_COLUMN))

        assert exc_info.value.missing_columns == [LABEL_COLUMN]

    def test_no_complete_rows_raises(self) -> None:
        """Every field has values, but no row has all of them."""
        frame = pl.DataFrame(
            {
                "bmi": [None, 25.0, 30.0, 35.0, 40.0],
                "high_bp": [1, None, 0, 1, 0],
                "high_chol": [0, 1, None, 1, 0],
                "phys_activity": [1, 0, 1, None, 1],
                "gen_hlth": [3, 2, 4, 5, None],
                "diabetes_binary": [0, 1, 0, 1, 0],
            },
            schema_overrides={"bmi": pl.Float64},
        )

        with pytest.raises(InsufficientDataError) as exc_info:
            train_model(frame)

        assert exc_info.value.field is None

    def test_train_from_csv(self, tmp_path: Path, raw_health_frame: pl.DataFrame, artifact: ModelArtifact) -> None:
        """Training from the CSV layout matches training from the prepared frame.

        Args:
            tmp_path (Path): Pytest temporary directory.
            raw_health_frame (pl.DataFrame): BRFSS-shaped synthetic data.
            artifact (ModelArtifact): Model trained on the prepared frame.
        """
        csv_path = tmp_path / "health.csv"
        raw_health_frame.write_csv(csv_path)

        trained = train_from_csv(csv_path)

        assert trained.tree.model_dump_json() == artifact.tree.model_dump_json()


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


class TestParsePredictionQuery:
    """Tests for `parse_prediction_query`."""

    def test_parses_every_field(self) -> None:
        """Numeric and categorical parameters are converted to their types."""
        record = parse_prediction_query({
            "bmi": "30",
            "high_bp": "1",
            "high_chol": "1.0",
            "phys_activity": " 0 ",
            "gen_hlth": "4",
        })

        assert record == HealthRecord(bmi=30.0, high_bp=1, high_chol=1, phys_activity=0, gen_hlth=4)

    def test_absent_and_none_parameters_stay_unset(self) -> None:
        """Missing parameters are left for the defaults."""
        record = parse_prediction_query({"bmi": None, "gen_hlth": "2"})

        assert record.missing_fields() == ["bmi", "high_bp", "high_chol", "phys_activity"]

    def test_unknown_parameters_ignored(self) -> None:
        """Parameters that are not predictors do not reach the record."""
        record = parse_prediction_query({"smoker": "1", "bmi": "22.5"})

        assert record.predictors()["bmi"] == 22.5

    @pytest.mark.parametrize("raw", ["heavy", "", "nan", "inf", "-inf", "3O"])
    def test_malformed_bmi(self, raw: str) -> None:
        """BMI must parse as a finite number.

        Args:
            raw (str): An invalid BMI string.
        """
        with pytest.raises(MalformedInputError) as exc_info:
            parse_prediction_query({"bmi": raw})

        with check:
            assert exc_info.value.field == "bmi"
        with check:
            assert exc_info.value.raw_value == raw

    @pytest.mark.parametrize("raw", ["1.5", "yes", "", "nan"])
    def test_malformed_categorical(self, raw: str) -> None:
        """Categorical parameters must be integral.

        Args:
            raw (str): An invalid categorical string.
        """
        with pytest.raises(MalformedInputError) as exc_info:
            parse_prediction_query({"high_bp": raw})

        assert exc_info.value.expected == "an integer"


# ---------------------------------------------------------------------------
# PredictionService
# ---------------------------------------------------------------------------


class TestPredictionService:
    """Tests for `PredictionService.predict_one`."""

    def test_full_request(self, artifact: ModelArtifact) -> None:
        """A complete request is encoded with the training statistics and routed to a leaf.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
        """
        # Arrange
        service = PredictionService(artifact)
        record = HealthRecord(bmi=30.0, high_bp=1, high_chol=1, phys_activity=0, gen_hlth=4)

        # Act
        result = service.predict_one(record)

        # Assert
        stats = artifact.encoder.numeric["bmi"]
        with check:
            assert result.input["bmi"] == pytest.approx((30.0 - stats.mean) / stats.std)
        with check:
            assert result.input["gen_hlth"] == 3, "gen_hlth=4 is the fourth of levels 1..5"
        with check:
            assert result.input["high_bp"] == 1
        leaf = _walk_to_leaf(artifact.tree, result.input.features)
        with check:
            assert result.prediction.code == int(np.argmax(leaf.class_counts))
        with check:
            assert result.prob_diabetes == pytest.approx(leaf.class_counts[1] / sum(leaf.class_counts))
        row = np.array([[result.input[name] for name in artifact.tree.feature_names]], dtype=np.float64)
        with check:
            assert artifact.tree.apply(row).tolist() == [leaf.node_id]

    def test_empty_request_uses_defaults(self, artifact: ModelArtifact) -> None:
        """Omitted fields take the training defaults.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
        """
        service = PredictionService(artifact)

        result = service.predict_one(HealthRecord())

        expected_input = service.encode(HealthRecord(**artifact.defaults.values))
        assert result.input == expected_input

    def test_defaults_are_stable_across_requests(self, artifact: ModelArtifact) -> None:
        """Repeated partial requests give identical results.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
        """
        service = PredictionService(artifact)
        record = HealthRecord(gen_hlth=5)

        assert service.predict_one(record) == service.predict_one(record)

    def test_prediction_agrees_with_probability(self, artifact: ModelArtifact, health_frame: pl.DataFrame) -> None:
        """The predicted class is Diabetes exactly when its probability is above one half.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
            health_frame (pl.DataFrame): Prepared synthetic data.
        """
        service = PredictionService(artifact)

        for row in health_frame.head(40).iter_rows(named=True):
            predictors = {name: row[name] for name in FEATURE_NAMES}
            result = service.predict_one(HealthRecord(**predictors))
            with check:
                assert 0.0 <= result.prob_diabetes <= 1.0
            with check:
                assert (result.prediction is ClassLabel.DIABETES) == (result.prob_diabetes > 0.5)
            leaf = artifact.tree.leaf_for(result.input)
            with check:
                assert result.prediction.code == int(np.argmax(leaf.class_counts))

    def test_unknown_category_rejected(self, artifact: ModelArtifact) -> None:
        """A level never seen in training is rejected, not guessed.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
        """
        service = PredictionService(artifact)

        with pytest.raises(UnknownCategoryError) as exc_info:
            service.predict_one(HealthRecord(gen_hlth=9))

        with check:
            assert exc_info.value.field == "gen_hlth"
        with check:
            assert exc_info.value.levels == (1, 2, 3, 4, 5)

    @pytest.mark.parametrize("bmi", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_bmi_rejected(self, artifact: ModelArtifact, bmi: float) -> None:
        """A NaN or infinite BMI is a malformed input, not an encoding failure.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
            bmi (float): A non-finite BMI.
        """
        service = PredictionService(artifact)

        with pytest.raises(MalformedInputError) as exc_info:
            service.predict_one(HealthRecord(bmi=bmi, gen_hlth=3))

        with check:
            assert exc_info.value.field == "bmi"
        with check:
            assert exc_info.value.expected == "a finite number"

    def test_encoder_tree_mismatch_raises_feature_missing(self, health_frame: pl.DataFrame) -> None:
        """A tree testing a feature the encoder does not produce fails loudly.

        Args:
            health_frame (pl.DataFrame): Prepared synthetic data.
        """
        # Arrange - encoder without gen_hlth, tree splitting on gen_hlth
        artifact = ModelArtifact(
            encoder=FeatureEncoder.fit(health_frame, (FieldSpec("bmi", "numeric"),)),
            tree=_make_gen_hlth_stump(),
            defaults=resolve_defaults(health_frame),
            training_frame=health_frame,
        )

        # Act & Assert
        with pytest.raises(FeatureMissingError) as exc_info:
            PredictionService(artifact).predict_one(HealthRecord())

        assert exc_info.value.feature == "gen_hlth"


# ---------------------------------------------------------------------------
# EvaluationService
# ---------------------------------------------------------------------------


class TestEvaluationService:
    """Tests for `EvaluationService.confusion_matrix`."""

    def test_counts_every_training_record(self, artifact: ModelArtifact) -> None:
        """The cells sum to the number of records the tree was fit on.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
        """
        matrix = EvaluationService(artifact).confusion_matrix()

        with check:
            assert matrix.total == artifact.n_training_rows
        with check:
            assert int(matrix.to_array().sum()) == artifact.n_training_rows

    def test_rows_are_true_class_totals(self, artifact: ModelArtifact) -> None:
        """Row sums equal the training class counts.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
        """
        matrix = EvaluationService(artifact).confusion_matrix()

        assert matrix.to_array().sum(axis=1).tolist() == list(artifact.tree.root.class_counts)

    def test_diagonal_equals_leaf_majorities(self, artifact: ModelArtifact) -> None:
        """In-sample, each leaf contributes its majority count to the diagonal.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
        """
        matrix = EvaluationService(artifact).confusion_matrix()

        leaf_majorities = sum(max(node.class_counts) for node in artifact.tree.nodes if node.is_leaf)
        assert int(np.trace(matrix.to_array())) == leaf_majorities

    def test_matches_single_record_predictions(self, artifact: ModelArtifact) -> None:
        """Vectorized evaluation agrees with one-at-a-time prediction.

        Args:
            artifact (ModelArtifact): Model trained on the synthetic data.
        """
        # Arrange
        service = PredictionService(artifact)
        counts = np.zeros((2, 2), dtype=np.int64)
        for row in artifact.training_frame.iter_rows(named=True):
            predictors = {name: row[name] for name in FEATURE_NAMES}
            predicted = service.predict_one(HealthRecord(**predictors)).prediction
            counts[row[LABEL_COLUMN], predicted.code] += 1

        # Act
        matrix = EvaluationService(artifact).confusion_matrix()

        # Assert
        assert matrix.to_array().tolist() == counts.tolist()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_gen_hlth_stump() -> TreeModel:
    return TreeModel(
        feature_names=("bmi", "gen_hlth"),
        nodes=(
            TreeNode(
                node_id=0,
                depth=0,
                class_counts=(10, 10),
                split=Predicate(variable="gen_hlth", operator="<=", value=1.0),
                left=1,
                right=2,
            ),
            TreeNode(node_id=1, depth=1, class_counts=(8, 2)),
            TreeNode(node_id=2, depth=1, class_counts=(2, 8)),
        ),
    )


def _walk_to_leaf(tree: TreeModel, features: dict[str, float | int]) -> TreeNode:
    """Follow the arena links by hand, comparing raw values against each split."""
    node = tree.nodes[0]
    while node.split is not None:
        value = features[node.split.variable]
        if isinstance(node.split.value, frozenset):
            goes_left = int(value) in node.split.value
        else:
            goes_left = value <= node.split.value
        node = tree.nodes[node.left if goes_left else node.right]  # type: ignore[index]
    return node

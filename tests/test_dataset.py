"""Tests for dataset ingestion: column normalization, preparation, and CSV loading."""

from __future__ import annotations

from pathlib import Path

import polars as pl
import pytest
from pytest_check import check

from diabtree.dataset import clean_column_name, load_health_frame, prepare_health_frame, to_health_records
from diabtree.exceptions import ColumnsNotFoundError
from diabtree.schema import FEATURE_NAMES, LABEL_COLUMN, ClassLabel


@pytest.mark.parametrize(
    ("raw_name", "expected"),
    [
        ("Diabetes_binary", "diabetes_binary"),
        ("BMI", "bmi"),
        ("HighBP", "high_bp"),
        ("HighChol", "high_chol"),
        ("CholCheck", "chol_check"),
        ("PhysActivity", "phys_activity"),
        ("GenHlth", "gen_hlth"),
        ("HvyAlcoholConsump", "hvy_alcohol_consump"),
        ("  Any Healthcare ", "any_healthcare"),
    ],
)
def test_clean_column_name(raw_name: str, expected: str) -> None:
    """Raw BRFSS headers normalize to snake case.

    Args:
        raw_name (str): Header as it appears in the CSV.
        expected (str): Normalized name.
    """
    assert clean_column_name(raw_name) == expected


class TestPrepareHealthFrame:
    """Tests for `prepare_health_frame`."""

    def test_selects_and_casts_model_columns(self, raw_health_frame: pl.DataFrame) -> None:
        """Only predictors and label remain, with numeric Float64 and categorical Int64 dtypes.

        Args:
            raw_health_frame (pl.DataFrame): BRFSS-shaped synthetic data.
        """
        # Act
        prepared = prepare_health_frame(raw_health_frame)

        # Assert
        with check:
            assert prepared.columns == [*FEATURE_NAMES, LABEL_COLUMN], "Unused columns should be dropped"
        with check:
            assert prepared.schema["bmi"] == pl.Float64
        for name in ("high_bp", "high_chol", "phys_activity", "gen_hlth", LABEL_COLUMN):
            with check:
                assert prepared.schema[name] == pl.Int64, f"{name} should be Int64"
        with check:
            assert prepared.height == raw_health_frame.height

    def test_missing_predictor_raises(self, raw_health_frame: pl.DataFrame) -> None:
        """A dataset without a predictor column is rejected with the missing name.

        Args:
            raw_health_frame (pl.DataFrame): BRFSS-shaped synthetic data.
        """
        with pytest.raises(ColumnsNotFoundError) as exc_info:
            prepare_health_frame(raw_health_frame.drop("GenHlth"))

        assert exc_info.value.missing_columns == ["gen_hlth"]

    def test_rows_without_label_are_dropped(self) -> None:
        """Unlabelled rows cannot be used and are removed."""
        # Arrange
        raw = pl.DataFrame({
            "Diabetes_binary": [0.0, None, 1.0],
            "BMI": [24.0, 31.0, 40.0],
            "HighBP": [0.0, 1.0, 1.0],
            "HighChol": [0.0, 1.0, 1.0],
            "PhysActivity": [1.0, 0.0, 0.0],
            "GenHlth": [2.0, 3.0, 5.0],
        })

        # Act
        prepared = prepare_health_frame(raw)

        # Assert
        with check:
            assert prepared.height == 2
        with check:
            assert prepared["bmi"].to_list() == [24.0, 40.0]

    def test_predictor_nulls_are_kept(self) -> None:
        """Missing predictor values are left for the training pipeline to handle."""
        raw = pl.DataFrame({
            "Diabetes_binary": [0.0, 1.0],
            "BMI": [None, 31.0],
            "HighBP": [0.0, 1.0],
            "HighChol": [0.0, None],
            "PhysActivity": [1.0, 0.0],
            "GenHlth": [2.0, 3.0],
        })

        prepared = prepare_health_frame(raw)

        with check:
            assert prepared.height == 2
        with check:
            assert prepared["bmi"].null_count() == 1
        with check:
            assert prepared["high_chol"].null_count() == 1

    def test_non_binary_label_raises(self) -> None:
        """Labels other than 0 and 1 are rejected, listing the offending values."""
        raw = pl.DataFrame({
            "Diabetes_binary": [0.0, 2.0, 1.0],
            "BMI": [24.0, 31.0, 40.0],
            "HighBP": [0.0, 1.0, 1.0],
            "HighChol": [0.0, 1.0, 1.0],
            "PhysActivity": [1.0, 0.0, 0.0],
            "GenHlth": [2.0, 3.0, 5.0],
        })

        with pytest.raises(ValueError, match=r"found \[2\]"):
            prepare_health_frame(raw)

    def test_all_labels_missing_raises(self) -> None:
        """A dataset with no labelled row cannot be prepared."""
        raw = pl.DataFrame(
            {
                "Diabetes_binary": [None],
                "BMI": [24.0],
                "HighBP": [0.0],
                "HighChol": [0.0],
                "PhysActivity": [1.0],
                "GenHlth": [2.0],
            },
            schema_overrides={"Diabetes_binary": pl.Float64},
        )

        with pytest.raises(ValueError, match="contains no values"):
            prepare_health_frame(raw)


class TestLoadHealthFrame:
    """Tests for `load_health_frame`."""

    def test_reads_and_prepares_csv(self, tmp_path: Path, raw_health_frame: pl.DataFrame) -> None:
        """A CSV in BRFSS layout loads into a prepared frame.

        Args:
            tmp_path (Path): Pytest temporary directory.
            raw_health_frame (pl.DataFrame): BRFSS-shaped synthetic data.
        """
        # Arrange
        csv_path = tmp_path / "diabetes_binary_health_indicators_BRFSS2015.csv"
        raw_health_frame.write_csv(csv_path)

        # Act
        loaded = load_health_frame(csv_path)

        # Assert
        with check:
            assert loaded.columns == [*FEATURE_NAMES, LABEL_COLUMN]
        with check:
            assert loaded.height == raw_health_frame.height
        with check:
            assert loaded["gen_hlth"].to_list() == raw_health_frame["GenHlth"].cast(pl.Int64).to_list()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """A missing dataset path raises FileNotFoundError.

        Args:
            tmp_path (Path): Pytest temporary directory.
        """
        with pytest.raises(FileNotFoundError, match="Dataset not found"):
            load_health_frame(tmp_path / "absent.csv")


def test_to_health_records_decodes_label(health_frame: pl.DataFrame) -> None:
    """Rows convert to records with the label decoded to ClassLabel.

    Args:
        health_frame (pl.DataFrame): Prepared synthetic data.
    """
    # Act
    records = to_health_records(health_frame.head(20))

    # Assert
    with check:
        assert len(records) == 20
    first_row = health_frame.row(0, named=True)
    with check:
        assert records[0].bmi == first_row["bmi"]
    with check:
        assert records[0].gen_hlth == first_row["gen_hlth"]
    with check:
        assert records[0].label is ClassLabel.from_code(first_row[LABEL_COLUMN])

"""Dataset ingestion: CSV loading, column-name normalization, and label validation."""

from __future__ import annotations

import re
from pathlib import Path

import polars as pl
from loguru import logger

from diabtree.exceptions import ColumnsNotFoundError
from diabtree.records import HealthRecord
from diabtree.schema import CLASS_LABELS, FEATURE_NAMES, FIELD_SPECS, LABEL_COLUMN, ClassLabel

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_NON_ALNUM = re.compile(r"[^0-9a-zA-Z]+")


def clean_column_name(name: str) -> str:
    """Normalize a column name to snake case.

    Args:
        name (str): Raw column header.

    Returns:
        str: Lower-case name with words separated by single underscores.

    Examples:
        >>> clean_column_name("HighBP")
        'high_bp'
        >>> clean_column_name("HeartDiseaseorAttack")
        'heart_diseaseor_attack'
        >>> clean_column_name("Diabetes_binary")
        'diabetes_binary'
    """
    snake = _ACRONYM_BOUNDARY.sub(r"\1_\2", name.strip())
    snake = _CAMEL_BOUNDARY.sub(r"\1_\2", snake)
    return _NON_ALNUM.sub("_", snake).strip("_").lower()


def prepare_health_frame(df: pl.DataFrame) -> pl.DataFrame:
    """Normalize column names and keep the predictors and label with their expected dtypes.

    Rows with a missing label are dropped. Predictor nulls are kept; the
    training pipeline decides what to do with incomplete rows.

    Args:
        df (pl.DataFrame): Raw dataset as read from disk.

    Returns:
        pl.DataFrame: Columns `FEATURE_NAMES` plus `LABEL_COLUMN`; `bmi` as
            Float64, categorical predictors and the label (class code) as Int64.

    Raises:
        ColumnsNotFoundError: If a predictor or the label column is absent.
        ValueError: If the label holds values other than 0 and 1, or no labelled rows remain.
    """
    renamed = df.rename({column: clean_column_name(column) for column in df.columns})
    required = [*FEATURE_NAMES, LABEL_COLUMN]
    missing_columns = [column for column in required if column not in renamed.columns]
    if missing_columns:
        raise ColumnsNotFoundError(missing_columns=missing_columns, available_columns=list(renamed.columns))

    casts = [
        pl.col(spec.name).cast(pl.Float64 if spec.kind == "numeric" else pl.Int64) for spec in FIELD_SPECS
    ]
    prepared = renamed.select(required).with_columns(*casts, pl.col(LABEL_COLUMN).cast(pl.Int64))

    unlabelled = prepared[LABEL_COLUMN].null_count()
    if unlabelled:
        logger.warning("Dropping rows without a label", rows=unlabelled)
        prepared = prepared.drop_nulls(subset=[LABEL_COLUMN])
    if prepared.is_empty():
        raise ValueError(f"Label column '{LABEL_COLUMN}' contains no values.")

    valid_codes = [label.code for label in CLASS_LABELS]
    invalid = prepared.filter(~pl.col(LABEL_COLUMN).is_in(valid_codes))[LABEL_COLUMN].unique().sort().to_list()
    if invalid:
        raise ValueError(f"Label column '{LABEL_COLUMN}' must hold only {valid_codes}, found {invalid}.")
    return prepared


def load_health_frame(path: str | Path) -> pl.DataFrame:
    """Read the health-indicator CSV and prepare it for training.

    Args:
        path (str | Path): Location of the CSV file.

    Returns:
        pl.DataFrame: The prepared frame (see `prepare_health_frame`).

    Raises:
        FileNotFoundError: If `path` does not exist.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Dataset not found: {path}")
    raw = pl.read_csv(path, infer_schema_length=10_000)
    prepared = prepare_health_frame(raw)
    logger.info("Dataset loaded", path=str(path), rows=prepared.height, raw_columns=raw.width)
    return prepared


def to_health_records(df: pl.DataFrame) -> list[HealthRecord]:
    """Convert a prepared frame into `HealthRecord` objects.

    Args:
        df (pl.DataFrame): A frame produced by `prepare_health_frame`.

    Returns:
        list[HealthRecord]: One record per row, with `label` decoded to `ClassLabel`.
    """
    return [
        HealthRecord(
            **{name: row[name] for name in FEATURE_NAMES},
            label=ClassLabel.from_code(row[LABEL_COLUMN]),
        )
        for row in df.iter_rows(named=True)
    ]

"""Training-derived default values for request fields a caller omits."""

from __future__ import annotations

from collections.abc import Sequence

import polars as pl
from loguru import logger

from diabtree.exceptions import ColumnsNotFoundError, InsufficientDataError
from diabtree.records import DefaultValues
from diabtree.schema import FIELD_SPECS, FieldSpec


def resolve_defaults(df: pl.DataFrame, specs: Sequence[FieldSpec] = FIELD_SPECS) -> DefaultValues:
    """Compute a default for every predictor field from the training data.

    Numeric fields default to their mean; categorical fields to their most
    frequent level, with ties going to the lowest level. Missing values are
    ignored.

    Args:
        df (pl.DataFrame): Training data holding one column per field spec.
        specs (Sequence[FieldSpec]): Fields to resolve. Defaults to the five predictors.

    Returns:
        DefaultValues: One default per field.

    Raises:
        ColumnsNotFoundError: If a field column is absent.
        InsufficientDataError: If a field has no non-missing values.

    Examples:
        >>> df = pl.DataFrame({"bmi": [20.0, 30.0], "gen_hlth": [3, 2]})
        >>> specs = [FieldSpec("bmi", "numeric"), FieldSpec("gen_hlth", "ordinal")]
        >>> resolve_defaults(df, specs).values
        {'bmi': 25.0, 'gen_hlth': 2}
    """
    missing_columns = [spec.name for spec in specs if spec.name not in df.columns]
    if missing_columns:
        raise ColumnsNotFoundError(missing_columns=missing_columns, available_columns=list(df.columns))

    values: dict[str, float | int] = {}
    for spec in specs:
        series = df[spec.name].drop_nulls()
        if spec.kind == "numeric":
            series = series.cast(pl.Float64)
            series = series.filter(series.is_not_nan())
        if series.is_empty():
            raise InsufficientDataError(spec.name)
        if spec.kind == "numeric":
            values[spec.name] = float(series.mean())  # type: ignore[arg-type]
        else:
            values[spec.name] = _most_frequent_level(series)

    logger.info("Default request values resolved", defaults=values)
    return DefaultValues(values=values)


def _most_frequent_level(series: pl.Series) -> int:
    """Return the modal value of a categorical series; ties go to the lowest value.

    Args:
        series (pl.Series): Non-empty categorical values without nulls.

    Returns:
        int: The most frequent level.
    """
    counts = (
        series.cast(pl.Int64)
        .alias("level")
        .value_counts()
        .sort(["count", "level"], descending=[True, False])
    )
    return int(counts["level"][0])

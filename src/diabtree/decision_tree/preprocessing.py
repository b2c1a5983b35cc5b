"""Feature encoding: standardization of numeric fields and level binding of categorical fields."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np
import polars as pl
from loguru import logger

from diabtree.exceptions import (
    ColumnsNotFoundError,
    InsufficientDataError,
    MalformedInputError,
    UnknownCategoryError,
)
from diabtree.records import EncodedRecord
from diabtree.schema import FIELD_SPECS, FieldSpec

# ---------------------------------------------------------------------------
# Public interface -- Encoder state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NumericStats:
    """Standardization statistics captured for one numeric field.

    Attributes:
        mean (float): Mean of the non-missing training values.
        std (float): Sample standard deviation used as the scale. Set to 1.0
            when the training values have no spread.
    """

    mean: float
    std: float

    def standardize(self, value: float) -> float:
        """Return `(value - mean) / std`.

        Args:
            value (float): Raw value.

        Returns:
            float: Standardized value.
        """
        return (value - self.mean) / self.std

    def restore(self, standardized: float) -> float:
        """Invert `standardize`.

        Args:
            standardized (float): A standardized value.

        Returns:
            float: The raw value it corresponds to.
        """
        return standardized * self.std + self.mean


@dataclass(frozen=True)
class CategoricalLevels:
    """The level set frozen for one categorical field.

    Attributes:
        levels (tuple[int, ...]): Distinct observed values in ascending order.
            For ordinal fields this order is the ranking.
        ordered (bool): Whether the field is ordinal.
    """

    levels: tuple[int, ...]
    ordered: bool = False

    def index_of(self, field_name: str, value: object) -> int:
        """Return the position of `value` in the level set.

        Args:
            field_name (str): Field name, used in the error.
            value (object): The raw categorical value.

        Returns:
            int: Index of `value` in `levels`.

        Raises:
            UnknownCategoryError: If `value` was not observed during fit.
        """
        # bool is an int subclass; reject it rather than binding True to level 1
        if isinstance(value, bool) or value not in self.levels:
            raise UnknownCategoryError(field_name, value, self.levels)
        return self.levels.index(value)  # type: ignore[arg-type]


@dataclass(frozen=True)
class FeatureEncoder:
    """Frozen encoding metadata for every predictor field.

    Build one with `FeatureEncoder.fit`; the instance is never mutated after.

    Attributes:
        specs (tuple[FieldSpec, ...]): The encoded fields, in feature order.
        numeric (dict[str, NumericStats]): Statistics per numeric field.
        categorical (dict[str, CategoricalLevels]): Level set per categorical field.

    Examples:
        >>> df = pl.DataFrame({
        ...     "bmi": [20.0, 30.0],
        ...     "high_bp": [0, 1],
        ...     "high_chol": [1, 1],
        ...     "phys_activity": [0, 1],
        ...     "gen_hlth": [2, 4],
        ... })
        >>> encoder = FeatureEncoder.fit(df)
        >>> encoder.categorical["gen_hlth"].levels
        (2, 4)
    """

    specs: tuple[FieldSpec, ...]
    numeric: dict[str, NumericStats] = field(default_factory=dict)
    categorical: dict[str, CategoricalLevels] = field(default_factory=dict)

    @property
    def feature_names(self) -> tuple[str, ...]:
        """tuple[str, ...]: Encoded feature names, in feature order."""
        return tuple(spec.name for spec in self.specs)

    @property
    def level_counts(self) -> dict[str, int]:
        """dict[str, int]: Number of levels per categorical feature."""
        return {name: len(levels.levels) for name, levels in self.categorical.items()}

    @classmethod
    def fit(cls, df: pl.DataFrame, specs: Sequence[FieldSpec] = FIELD_SPECS) -> FeatureEncoder:
        """Fit standardization statistics and level sets from training data.

        Missing values are ignored. Numeric fields use the sample standard
        deviation (`ddof=1`).

        Args:
            df (pl.DataFrame): Training data holding one column per field spec.
            specs (Sequence[FieldSpec]): Fields to encode. Defaults to the
                five health-indicator predictors.

        Returns:
            FeatureEncoder: The frozen encoder.

        Raises:
            ColumnsNotFoundError: If `df` lacks a column named by `specs`.
            InsufficientDataError: If every value of a field is missing.
        """
        _validate_columns(df, specs)
        numeric: dict[str, NumericStats] = {}
        categorical: dict[str, CategoricalLevels] = {}

        for spec in specs:
            series = df[spec.name].drop_nulls()
            if spec.kind == "numeric":
                series = series.cast(pl.Float64).filter(series.cast(pl.Float64).is_not_nan())
            if series.is_empty():
                raise InsufficientDataError(spec.name)
            if spec.kind == "numeric":
                numeric[spec.name] = _fit_numeric(spec.name, series)
            else:
                levels = tuple(int(value) for value in series.cast(pl.Int64).unique().sort().to_list())
                categorical[spec.name] = CategoricalLevels(levels=levels, ordered=spec.kind == "ordinal")

        logger.debug(
            "Feature encoder fitted",
            numeric={name: (stats.mean, stats.std) for name, stats in numeric.items()},
            levels={name: levels.levels for name, levels in categorical.items()},
        )
        return cls(specs=tuple(specs), numeric=numeric, categorical=categorical)

    def transform(self, values: Mapping[str, object]) -> EncodedRecord:
        """Encode a single fully-specified record.

        Args:
            values (Mapping[str, object]): Raw predictor values keyed by field
                name. Extra keys are ignored.

        Returns:
            EncodedRecord: Standardized numeric values and categorical level indices.

        Raises:
            UnknownCategoryError: If a categorical value was not observed during fit.
            MalformedInputError: If a numeric value is NaN or infinite.
            ValueError: If a predictor is missing.
        """
        features: dict[str, float | int] = {}
        for spec in self.specs:
            value = values.get(spec.name)
            if value is None:
                raise ValueError(f"Cannot encode record: field '{spec.name}' is missing")
            if spec.kind == "numeric":
                number = float(value)  # type: ignore[arg-type]
                if not math.isfinite(number):
                    raise MalformedInputError(spec.name, str(value), "a finite number")
                features[spec.name] = self.numeric[spec.name].standardize(number)
            else:
                features[spec.name] = self.categorical[spec.name].index_of(spec.name, value)
        return EncodedRecord(features=features)

    def transform_frame(self, df: pl.DataFrame) -> np.ndarray:
        """Encode a DataFrame of complete records into a 2-D float64 matrix.

        Categorical columns hold level indices stored as floats.

        Args:
            df (pl.DataFrame): Records with one column per encoded field and no nulls.

        Returns:
            np.ndarray: Matrix of shape `(n_rows, n_features)` in feature order.

        Raises:
            ColumnsNotFoundError: If `df` lacks an encoded column.
            UnknownCategoryError: If a categorical column holds an unseen value.
            ValueError: If any encoded column contains nulls.
        """
        _validate_columns(df, self.specs)
        null_columns = [spec.name for spec in self.specs if df[spec.name].null_count() > 0]
        if null_columns:
            raise ValueError(f"Cannot encode frame: columns contain nulls: {null_columns}")

        column_arrays: list[np.ndarray] = []
        for spec in self.specs:
            series = df[spec.name]
            if spec.kind == "numeric":
                stats = self.numeric[spec.name]
                raw = series.cast(pl.Float64).to_numpy(allow_copy=True)
                column_arrays.append((raw - stats.mean) / stats.std)
            else:
                column_arrays.append(_encode_levels(spec.name, series, self.categorical[spec.name]))

        if not column_arrays:
            return np.empty((len(df), 0), dtype=np.float64)
        return np.column_stack(column_arrays).astype(np.float64, copy=False)

    def restore_numeric(self, name: str, standardized: float) -> float:
        """Map a standardized value of a numeric field back to its raw scale.

        Args:
            name (str): Numeric field name.
            standardized (float): Standardized value.

        Returns:
            float: The raw value.
        """
        return self.numeric[name].restore(standardized)


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _validate_columns(df: pl.DataFrame, specs: Sequence[FieldSpec]) -> None:
    missing_columns = [spec.name for spec in specs if spec.name not in df.columns]
    if missing_columns:
        raise ColumnsNotFoundError(missing_columns=missing_columns, available_columns=list(df.columns))


def _fit_numeric(name: str, series: pl.Series) -> NumericStats:
    """Compute mean and sample standard deviation of a non-empty numeric series.

    Args:
        name (str): Field name, used in the warning.
        series (pl.Series): Non-missing float values.

    Returns:
        NumericStats: The fitted statistics.
    """
    mean = float(series.mean())  # type: ignore[arg-type]
    std = series.std(ddof=1)
    if std is None or not math.isfinite(float(std)) or float(std) == 0.0:  # type: ignore[arg-type]
        logger.warning("Numeric field has no spread; centring only", field=name, mean=mean)
        return NumericStats(mean=mean, std=1.0)
    return NumericStats(mean=mean, std=float(std))  # type: ignore[arg-type]


def _encode_levels(name: str, series: pl.Series, levels: CategoricalLevels) -> np.ndarray:
    """Map a categorical series to level indices.

    Args:
        name (str): Field name, used in the error.
        series (pl.Series): Categorical values without nulls.
        levels (CategoricalLevels): The frozen level set.

    Returns:
        np.ndarray: Float64 array of level indices.

    Raises:
        UnknownCategoryError: On the first value outside the level set.
    """
    values = series.cast(pl.Int64)
    unknown = values.filter(~values.is_in(list(levels.levels)))
    if len(unknown) > 0:
        raise UnknownCategoryError(name, int(unknown[0]), levels.levels)
    codes = np.asarray(levels.levels, dtype=np.int64)
    return np.searchsorted(codes, values.to_numpy()).astype(np.float64)

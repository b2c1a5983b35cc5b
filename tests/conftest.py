"""Shared fixtures: a seeded synthetic health-indicator dataset and a model trained on it."""

from __future__ import annotations

import numpy as np
import polars as pl
import pytest

from diabtree.service import ModelArtifact, train_model

RAW_COLUMN_NAMES: dict[str, str] = {
    "diabetes_binary": "Diabetes_binary",
    "bmi": "BMI",
    "high_bp": "HighBP",
    "high_chol": "HighChol",
    "phys_activity": "PhysActivity",
    "gen_hlth": "GenHlth",
}


@pytest.fixture(scope="session")
def health_frame() -> pl.DataFrame:
    """Prepared frame of 600 synthetic survey responses.

    The label follows a simple rule (poor general health with high blood
    pressure, or a BMI above 36) with 5% of labels flipped, so a tree can
    learn real structure without fitting it perfectly.

    Returns:
        pl.DataFrame: Columns `bmi` (Float64), the four categorical predictors
            and `diabetes_binary` (Int64).
    """
    rng = np.random.default_rng(20151231)
    n_rows = 600
    bmi = np.clip(rng.normal(28.0, 6.0, n_rows), 15.0, 60.0).round(1)
    high_bp = rng.integers(0, 2, n_rows)
    high_chol = rng.integers(0, 2, n_rows)
    phys_activity = rng.integers(0, 2, n_rows)
    gen_hlth = rng.integers(1, 6, n_rows)

    at_risk = ((gen_hlth >= 4) & (high_bp == 1)) | (bmi > 36.0)
    flipped = rng.random(n_rows) < 0.05
    label = np.where(flipped, ~at_risk, at_risk).astype(np.int64)

    return pl.DataFrame({
        "bmi": pl.Series(bmi, dtype=pl.Float64),
        "high_bp": pl.Series(high_bp, dtype=pl.Int64),
        "high_chol": pl.Series(high_chol, dtype=pl.Int64),
        "phys_activity": pl.Series(phys_activity, dtype=pl.Int64),
        "gen_hlth": pl.Series(gen_hlth, dtype=pl.Int64),
        "diabetes_binary": pl.Series(label, dtype=pl.Int64),
    })


@pytest.fixture(scope="session")
def raw_health_frame(health_frame: pl.DataFrame) -> pl.DataFrame:
    """The synthetic dataset laid out like the BRFSS 2015 CSV.

    Args:
        health_frame (pl.DataFrame): The prepared synthetic frame.

    Returns:
        pl.DataFrame: Original column headers, every column as Float64, plus
            an unused `Smoker` column.
    """
    return health_frame.select([
        pl.col(name).cast(pl.Float64).alias(raw_name) for name, raw_name in RAW_COLUMN_NAMES.items()
    ]).with_columns(pl.lit(0.0).alias("Smoker"))


@pytest.fixture(scope="session")
def artifact(health_frame: pl.DataFrame) -> ModelArtifact:
    """Model trained once on the synthetic dataset with default hyperparameters.

    Args:
        health_frame (pl.DataFrame): The prepared synthetic frame.

    Returns:
        ModelArtifact: The trained artifact.
    """
    return train_model(health_frame)

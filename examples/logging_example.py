"""Demonstrates how to enable and configure logging in diabtree.

diabtree logging is disabled by default. Users opt in by calling ``enable_logging()``,
which returns a ``LoggingHandle``. The handle can be used as a context manager
(``with enable_logging(): ...``) or disabled manually via ``handle.disable()``.
When the last active handle is disabled, diabtree logging is automatically turned off.

Key concepts shown here:

- ``level``: controls the minimum log level. The custom ``REQUEST`` level
  (numeric value 25, between INFO and WARNING) surfaces served predictions
  and evaluations; ``INFO`` adds training progress.
- ``log_format``: ``"short"`` shows ``timestamp | level | function - message``;
  ``"full"`` adds the module and line number.
- Rejected requests (e.g. an unseen general-health level) are logged at WARNING
  before the error propagates to the caller.
- Automatic cleanup: logging is re-disabled when the context manager exits.
"""

import numpy as np
import polars as pl

from diabtree import EvaluationService, PredictionService, enable_logging, train_model
from diabtree.exceptions import UnknownCategoryError
from diabtree.records import HealthRecord

# A small synthetic survey: poor general health with high blood pressure, or a high BMI, means Diabetes
rng = np.random.default_rng(7)
n_rows = 400
bmi = rng.normal(28.0, 6.0, n_rows).round(1)
high_bp = rng.integers(0, 2, n_rows)
gen_hlth = rng.integers(1, 6, n_rows)
df_survey = pl.DataFrame({
    "bmi": bmi,
    "high_bp": high_bp,
    "high_chol": rng.integers(0, 2, n_rows),
    "phys_activity": rng.integers(0, 2, n_rows),
    "gen_hlth": gen_hlth,
    "diabetes_binary": (((gen_hlth >= 4) & (high_bp == 1)) | (bmi > 36)).astype(np.int64),
})

# Enable logging at INFO (and above) with full log format for better visibility of log details
with enable_logging(
    level="INFO",
    log_format="full",
):
    # Train: logs the fitted tree's size before and after pruning
    artifact = train_model(df_survey)

    # Predict: logs each served request at REQUEST level, including which fields were defaulted
    prediction_service = PredictionService(artifact)
    result = prediction_service.predict_one(HealthRecord(bmi=38.5, high_bp=1))
    print(f"\nPrediction: {result.model_dump(mode='json', by_alias=True)}\n")

    # Evaluate: logs the confusion matrix totals
    matrix = EvaluationService(artifact).confusion_matrix()
    print(f"\nAccuracy on training data: {matrix.accuracy:.3f}\n")

    # Try an unseen level to show warning logging
    try:
        prediction_service.predict_one(HealthRecord(gen_hlth=9))
    except UnknownCategoryError as error:
        print(f"\nRejected: {error}\n")

# Logging automatically disabled here

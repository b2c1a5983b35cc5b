"""Pydantic models for raw and encoded records, results, and service responses."""

from __future__ import annotations

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_serializer, model_validator

from diabtree.exceptions import FeatureMissingError
from diabtree.schema import CLASS_LABELS, FEATURE_NAMES, ClassLabel


class HealthRecord(BaseModel):
    """A raw observation of the five health indicators, possibly partial.

    Training records carry a `label`; request records omit it and may omit any
    predictor, in which case the training-derived default is used.

    Attributes:
        bmi (float | None): Body mass index.
        high_bp (int | None): High blood pressure indicator (0 = No, 1 = Yes).
        high_chol (int | None): High cholesterol indicator (0 = No, 1 = Yes).
        phys_activity (int | None): Physical activity in the past 30 days (0 = No, 1 = Yes).
        gen_hlth (int | None): Self-rated general health (1 = Excellent ... 5 = Poor).
        label (ClassLabel | None): Outcome, present only in training data.

    Examples:
        >>> record = HealthRecord(bmi=30.0, high_bp=1)
        >>> record.missing_fields()
        ['high_chol', 'phys_activity', 'gen_hlth']
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    bmi: float | None = Field(default=None, description="Body mass index.")
    high_bp: int | None = Field(default=None, description="High blood pressure indicator (0 = No, 1 = Yes).")
    high_chol: int | None = Field(default=None, description="High cholesterol indicator (0 = No, 1 = Yes).")
    phys_activity: int | None = Field(default=None, description="Physical activity indicator (0 = No, 1 = Yes).")
    gen_hlth: int | None = Field(default=None, description="Self-rated general health (1 = Excellent ... 5 = Poor).")
    label: ClassLabel | None = Field(default=None, description="Outcome label; training data only.")

    def predictors(self) -> dict[str, float | int | None]:
        """Return the predictor values keyed by field name, in schema order.

        Returns:
            dict[str, float | int | None]: One entry per predictor field.
        """
        return {name: getattr(self, name) for name in FEATURE_NAMES}

    def missing_fields(self) -> list[str]:
        """Return the predictor fields that were not supplied.

        Returns:
            list[str]: Field names whose value is `None`, in schema order.
        """
        return [name for name, value in self.predictors().items() if value is None]


class EncodedRecord(BaseModel):
    """A record after standardization and categorical-level binding.

    Numeric features hold `(x - mean) / std`; categorical features hold the
    index of the value in the level set frozen at fit time.

    Attributes:
        features (dict[str, float | int]): Encoded values keyed by feature
            name, in encoder order.
    """

    model_config = ConfigDict(frozen=True)

    features: dict[str, float | int] = Field(description="Encoded feature values keyed by feature name.")

    def __getitem__(self, feature: str) -> float | int:
        """Return the encoded value of a feature.

        Args:
            feature (str): The feature name.

        Returns:
            float | int: The encoded value.

        Raises:
            FeatureMissingError: If the record does not carry `feature`.
        """
        try:
            return self.features[feature]
        except KeyError:
            raise FeatureMissingError(feature, list(self.features)) from None

    def __contains__(self, feature: object) -> bool:
        """Return whether the record carries `feature`.

        Args:
            feature (object): The feature name.

        Returns:
            bool: True if present.
        """
        return feature in self.features


class PredictionResult(BaseModel):
    """Outcome of a single-record prediction.

    Attributes:
        input (EncodedRecord): The encoded input, echoed for auditability.
            Serialized as a flat feature mapping.
        prediction (ClassLabel): Majority class of the leaf reached.
        prob_diabetes (float): Positive-class probability at that leaf.
            Serialized as `prob_Diabetes`.
    """

    input: EncodedRecord
    prediction: ClassLabel
    prob_diabetes: float = Field(ge=0.0, le=1.0, serialization_alias="prob_Diabetes")

    @field_serializer("input")
    def _serialize_input(self, value: EncodedRecord) -> dict[str, float | int]:
        return value.features


class ConfusionMatrix(BaseModel):
    """Cross-tabulation of true versus predicted class.

    Rows are true classes and columns are predicted classes, both in
    `CLASS_LABELS` order.

    Attributes:
        labels (tuple[ClassLabel, ...]): Row/column labels.
        counts (tuple[tuple[int, ...], ...]): Cell counts, `counts[true][predicted]`.
        total (int): Number of records tabulated. Equals the sum of all cells.

    Examples:
        >>> cm = ConfusionMatrix(counts=((5, 1), (2, 4)), total=12)
        >>> cm.cell(ClassLabel.DIABETES, ClassLabel.NO_DIABETES)
        2
        >>> round(cm.accuracy, 3)
        0.75
    """

    model_config = ConfigDict(frozen=True)

    labels: tuple[ClassLabel, ...] = Field(default=CLASS_LABELS, description="Row and column class labels.")
    counts: tuple[tuple[int, ...], ...] = Field(description="Cell counts indexed [true][predicted].")
    total: int = Field(ge=0, description="Number of records tabulated.")

    @model_validator(mode="after")
    def _validate_shape_and_conservation(self) -> ConfusionMatrix:
        """Validate the matrix is square over `labels` and its cells sum to `total`.

        Returns:
            ConfusionMatrix: The validated model instance.

        Raises:
            ValueError: On a shape mismatch, a negative cell, or when the cells
                do not sum to `total`.
        """
        size = len(self.labels)
        if len(self.counts) != size or any(len(row) != size for row in self.counts):
            raise ValueError(f"counts must be a {size}x{size} matrix")
        if any(cell < 0 for row in self.counts for cell in row):
            raise ValueError("counts must be non-negative")
        cell_sum = sum(sum(row) for row in self.counts)
        if cell_sum != self.total:
            raise ValueError(f"cells sum to {cell_sum}, expected total={self.total}")
        return self

    def cell(self, true: ClassLabel, predicted: ClassLabel) -> int:
        """Return the count of records with class `true` predicted as `predicted`.

        Args:
            true (ClassLabel): The true class.
            predicted (ClassLabel): The predicted class.

        Returns:
            int: The cell count.
        """
        return self.counts[self.labels.index(true)][self.labels.index(predicted)]

    @property
    def accuracy(self) -> float:
        """float: Fraction of records on the diagonal; 0.0 when empty."""
        if self.total == 0:
            return 0.0
        return sum(self.counts[i][i] for i in range(len(self.labels))) / self.total

    def to_array(self) -> np.ndarray:
        """Return the counts as an integer numpy array.

        Returns:
            np.ndarray: Array of shape `(n_classes, n_classes)`.
        """
        return np.array(self.counts, dtype=np.int64)


class DefaultValues(BaseModel):
    """Per-field values substituted for predictors a caller omits.

    Attributes:
        values (dict[str, float | int]): Training mean for numeric fields and
            most frequent level for categorical fields.
    """

    model_config = ConfigDict(frozen=True)

    values: dict[str, float | int] = Field(description="Default value for every predictor field.")

    def fill(self, record: HealthRecord) -> HealthRecord:
        """Return a copy of `record` with every missing predictor filled in.

        Args:
            record (HealthRecord): A possibly partial record.

        Returns:
            HealthRecord: A record with all predictors set.
        """
        missing = record.missing_fields()
        if not missing:
            return record
        return record.model_copy(update={name: self.values[name] for name in missing})


class ServiceInfo(BaseModel):
    """Static service metadata returned by `/info`.

    Attributes:
        name (str): Author of the service.
        github_pages_url (str): Project URL.
    """

    name: str = Field(description="Author of the service.")
    github_pages_url: str = Field(description="Project URL.")


class ErrorResponse(BaseModel):
    """Structured error body for rejected requests.

    Attributes:
        error_type (str): Exception class name, e.g. "UnknownCategoryError".
        message (str): Human-readable error description.
        details (dict[str, JsonValue]): Context-specific information.

    Examples:
        >>> error = ErrorResponse(
        ...     error_type="UnknownCategoryError",
        ...     message="Unknown category 9 for field 'gen_hlth'",
        ...     details={"field": "gen_hlth", "levels": [1, 2, 3, 4, 5]},
        ... )
    """

    error_type: str = Field(description="Category of the error.", min_length=1)
    message: str = Field(description="Human-readable error description.", min_length=1)
    details: dict[str, JsonValue] = Field(
        default_factory=dict,
        description="Additional error context (JSON-serializable).",
    )

"""Field specifications for the health-indicator predictors and the class label."""

from __future__ import annotations

from enum import StrEnum
from typing import Final, Literal, NamedTuple, TypeAlias

FieldKind: TypeAlias = Literal["numeric", "nominal", "ordinal"]


class FieldSpec(NamedTuple):
    """Name and encoding kind of one predictor field.

    Attributes:
        name (str): Column / query parameter name.
        kind (FieldKind): `"numeric"` fields are standardized; `"nominal"` and
            `"ordinal"` fields are bound to a frozen level set. Ordinal levels
            keep their ascending order when candidate splits are enumerated.
    """

    name: str
    kind: FieldKind

    @property
    def is_categorical(self) -> bool:
        """bool: Whether the field is bound to a level set."""
        return self.kind != "numeric"


class ClassLabel(StrEnum):
    """Binary outcome, in the fixed class order used by every count array.

    Attributes:
        NO_DIABETES: Negative class, code 0.
        DIABETES: Positive class, code 1.
    """

    NO_DIABETES = "NoDiabetes"
    DIABETES = "Diabetes"

    @property
    def code(self) -> int:
        """int: Position of this label in `CLASS_LABELS`."""
        return CLASS_LABELS.index(self)

    @classmethod
    def from_code(cls, code: int) -> ClassLabel:
        """Return the label for a class code.

        Args:
            code (int): 0 or 1.

        Returns:
            ClassLabel: The matching label.
        """
        return CLASS_LABELS[code]


CLASS_LABELS: Final[tuple[ClassLabel, ...]] = (ClassLabel.NO_DIABETES, ClassLabel.DIABETES)
POSITIVE_CLASS: Final[ClassLabel] = ClassLabel.DIABETES

LABEL_COLUMN: Final[str] = "diabetes_binary"

FIELD_SPECS: Final[tuple[FieldSpec, ...]] = (
    FieldSpec("bmi", "numeric"),
    FieldSpec("high_bp", "nominal"),
    FieldSpec("high_chol", "nominal"),
    FieldSpec("phys_activity", "nominal"),
    FieldSpec("gen_hlth", "ordinal"),
)

FEATURE_NAMES: Final[tuple[str, ...]] = tuple(spec.name for spec in FIELD_SPECS)
NUMERIC_FIELDS: Final[tuple[str, ...]] = tuple(spec.name for spec in FIELD_SPECS if not spec.is_categorical)
CATEGORICAL_FIELDS: Final[tuple[str, ...]] = tuple(spec.name for spec in FIELD_SPECS if spec.is_categorical)

"""Custom exceptions for the diabetes classification tree service.

Training-time errors (subclass ValueError unless noted):
- InsufficientDataError: Raised when a field has no usable values at fit time,
  or when no complete training rows remain.
- ColumnsNotFoundError: Raised when the dataset lacks required columns.

Request-time errors:
- UnknownCategoryError: Raised when a categorical value was never observed
  during fit.
- MalformedInputError: Raised when a request parameter cannot be parsed as its
  expected type.
- FeatureMissingError (subclass KeyError): Raised when an encoded record lacks
  a feature the tree requires. Indicates an encoder/model mismatch.
"""

from __future__ import annotations

from collections.abc import Sequence


class InsufficientDataError(ValueError):
    """Raised when a required field has no usable values at fit time.

    Attributes:
        field (str | None): The offending field, or `None` when the whole
            training set is unusable.

    Examples:
        >>> err = InsufficientDataError("bmi")
        >>> err.field
        'bmi'
    """

    field: str | None

    def __init__(self, field: str | None, message: str | None = None) -> None:
        """Initialize InsufficientDataError.

        Args:
            field (str | None): The field without usable values.
            message (str | None): Optional override for the default message.
        """
        if message is None:
            message = f"Field '{field}' has no usable values" if field is not None else "No usable training rows"
        super().__init__(message)
        self.field = field

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including message and field.
        """
        return f"{self.__class__.__name__}(message={str(self)!r}, field={self.field!r})"


class UnknownCategoryError(ValueError):
    """Raised when a categorical value is outside the level set observed during fit.

    Attributes:
        field (str): The categorical field name.
        value (object): The rejected value.
        levels (tuple[int, ...]): The valid levels frozen at fit time.

    Examples:
        >>> err = UnknownCategoryError("gen_hlth", 9, (1, 2, 3, 4, 5))
        >>> str(err)
        "Unknown category 9 for field 'gen_hlth'; expected one of [1, 2, 3, 4, 5]"
    """

    field: str
    value: object
    levels: tuple[int, ...]

    def __init__(self, field: str, value: object, levels: Sequence[int]) -> None:
        """Initialize UnknownCategoryError.

        Args:
            field (str): The categorical field name.
            value (object): The value that was not seen during fit.
            levels (Sequence[int]): The valid levels for `field`.
        """
        super().__init__(f"Unknown category {value!r} for field '{field}'; expected one of {list(levels)}")
        self.field = field
        self.value = value
        self.levels = tuple(levels)

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including field, value, and levels.
        """
        return (
            f"{self.__class__.__name__}(field={self.field!r}, value={self.value!r}, levels={self.levels!r})"
        )


class FeatureMissingError(KeyError):
    """Raised when an encoded record lacks a feature required by the tree.

    Attributes:
        feature (str): The feature the tree asked for.
        available (list[str]): Features present on the encoded record.
    """

    feature: str
    available: list[str]

    def __init__(self, feature: str, available: Sequence[str]) -> None:
        """Initialize FeatureMissingError.

        Args:
            feature (str): The missing feature name.
            available (Sequence[str]): Feature names that are present.
        """
        super().__init__(feature)
        self.feature = feature
        self.available = list(available)

    def __str__(self) -> str:
        """Return a readable message instead of KeyError's quoted key.

        Returns:
            str: Description of the missing feature.
        """
        return f"Encoded record is missing feature '{self.feature}'; available: {sorted(self.available)}"


class MalformedInputError(ValueError):
    """Raised when a request parameter cannot be parsed as its expected type.

    Attributes:
        field (str): The request parameter name.
        raw_value (str): The value exactly as received.
        expected (str): Human-readable description of the accepted format.

    Examples:
        >>> err = MalformedInputError("bmi", "heavy", "a finite number")
        >>> err.raw_value
        'heavy'
    """

    field: str
    raw_value: str
    expected: str

    def __init__(self, field: str, raw_value: str, expected: str) -> None:
        """Initialize MalformedInputError.

        Args:
            field (str): The request parameter name.
            raw_value (str): The unparsable raw value.
            expected (str): Description of the expected format.
        """
        super().__init__(f"Parameter '{field}' must be {expected}, got {raw_value!r}")
        self.field = field
        self.raw_value = raw_value
        self.expected = expected

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including field, raw value, and expectation.
        """
        return (
            f"{self.__class__.__name__}(field={self.field!r}, raw_value={self.raw_value!r}, "
            f"expected={self.expected!r})"
        )


class ColumnsNotFoundError(ValueError):
    """Raised when requested columns do not exist in a DataFrame.

    Attributes:
        missing_columns (list[str]): Column names that were not found.
        available_columns (list[str]): Column names present in the DataFrame.

    Examples:
        >>> err = ColumnsNotFoundError(
        ...     missing_columns=["gen_hlth"],
        ...     available_columns=["bmi", "high_bp"],
        ... )
        >>> err.missing_columns
        ['gen_hlth']
    """

    missing_columns: list[str]
    available_columns: list[str]

    def __init__(
        self,
        missing_columns: list[str],
        available_columns: list[str],
    ) -> None:
        """Initialize ColumnsNotFoundError.

        Args:
            missing_columns (list[str]): Column names not found in the DataFrame.
            available_columns (list[str]): Column names present in the DataFrame.
        """
        super().__init__(f"Columns not found in DataFrame: {sorted(missing_columns)}")
        self.missing_columns = missing_columns
        self.available_columns = available_columns

"""Tests for custom exceptions.

This module checks inheritance, attribute storage, and message formatting of
the training-time and request-time exceptions raised by diabtree.
"""

from __future__ import annotations

import pytest
from pytest_check import check

from diabtree.exceptions import (
    ColumnsNotFoundError,
    FeatureMissingError,
    InsufficientDataError,
    MalformedInputError,
    UnknownCategoryError,
)


class TestInsufficientDataError:
    """Tests for InsufficientDataError."""

    def test_stores_field_and_formats_default_message(self) -> None:
        """The field name is stored and appears in the default message."""
        error = InsufficientDataError("bmi")

        with check:
            assert isinstance(error, ValueError), "Should be catchable as ValueError"
        with check:
            assert error.field == "bmi"
        with check:
            assert str(error) == "Field 'bmi' has no usable values"

    def test_without_field_describes_training_set(self) -> None:
        """With no field the message refers to the whole training set."""
        error = InsufficientDataError(None)

        with check:
            assert error.field is None
        with check:
            assert str(error) == "No usable training rows"

    def test_custom_message_overrides_default(self) -> None:
        """An explicit message replaces the generated one."""
        error = InsufficientDataError(None, "No complete training rows remain")

        assert str(error) == "No complete training rows remain"

    def test_repr_includes_field(self) -> None:
        """`repr` exposes the field for debugging."""
        assert "field='gen_hlth'" in repr(InsufficientDataError("gen_hlth"))


class TestUnknownCategoryError:
    """Tests for UnknownCategoryError."""

    def test_stores_context(self) -> None:
        """Field, rejected value and valid levels are kept as attributes."""
        error = UnknownCategoryError("gen_hlth", 9, [1, 2, 3, 4, 5])

        with check:
            assert error.field == "gen_hlth"
        with check:
            assert error.value == 9
        with check:
            assert error.levels == (1, 2, 3, 4, 5), "Levels should be stored as a tuple"

    def test_message_lists_expected_levels(self) -> None:
        """The message names the field, the value, and the accepted levels."""
        error = UnknownCategoryError("high_bp", 2, (0, 1))

        assert str(error) == "Unknown category 2 for field 'high_bp'; expected one of [0, 1]"

    def test_catchable_as_value_error(self) -> None:
        """Callers handling ValueError also handle unknown categories."""
        with pytest.raises(ValueError, match="gen_hlth"):
            raise UnknownCategoryError("gen_hlth", 0, (1, 2))


class TestFeatureMissingError:
    """Tests for FeatureMissingError."""

    def test_is_key_error(self) -> None:
        """A missing feature is a failed lookup, so it subclasses KeyError."""
        error = FeatureMissingError("gen_hlth", ["bmi", "high_bp"])

        with check:
            assert isinstance(error, KeyError)
        with check:
            assert error.feature == "gen_hlth"
        with check:
            assert error.available == ["bmi", "high_bp"]

    def test_str_is_readable(self) -> None:
        """`str` reads as a sentence rather than KeyError's quoted key."""
        error = FeatureMissingError("gen_hlth", ["high_bp", "bmi"])

        assert str(error) == "Encoded record is missing feature 'gen_hlth'; available: ['bmi', 'high_bp']"


class TestMalformedInputError:
    """Tests for MalformedInputError."""

    def test_stores_raw_value_and_expectation(self) -> None:
        """The raw string and the expected format are preserved."""
        error = MalformedInputError("high_chol", "yes", "an integer")

        with check:
            assert error.field == "high_chol"
        with check:
            assert error.raw_value == "yes"
        with check:
            assert error.expected == "an integer"
        with check:
            assert str(error) == "Parameter 'high_chol' must be an integer, got 'yes'"

    def test_repr_includes_all_attributes(self) -> None:
        """`repr` shows every attribute."""
        text = repr(MalformedInputError("bmi", "heavy", "a finite number"))

        with check:
            assert "field='bmi'" in text
        with check:
            assert "raw_value='heavy'" in text
        with check:
            assert "expected='a finite number'" in text


class TestColumnsNotFoundError:
    """Tests for ColumnsNotFoundError."""

    def test_stores_missing_and_available_columns(self) -> None:
        """Missing and available columns are stored; the message lists missing ones sorted."""
        error = ColumnsNotFoundError(missing_columns=["gen_hlth", "bmi"], available_columns=["high_bp"])

        with check:
            assert error.missing_columns == ["gen_hlth", "bmi"]
        with check:
            assert error.available_columns == ["high_bp"]
        with check:
            assert str(error) == "Columns not found in DataFrame: ['bmi', 'gen_hlth']"

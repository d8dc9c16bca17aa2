"""
Tests for the error taxonomy.
"""

import pytest

from authkeeper.core import errors
from authkeeper.core.errors import (
    AuthFailure,
    DatabaseError,
    ErrorCategory,
    ErrorKind,
    InternalError,
    TooManyRequestsError,
)


class TestErrorKind:
    """Tests for ErrorKind categories."""

    def test_every_kind_has_a_category(self):
        """No kind should be left without a category."""
        for kind in ErrorKind:
            assert isinstance(kind.category, ErrorCategory)

    @pytest.mark.parametrize("kind,category", [
        (ErrorKind.INVALID_EMAIL, ErrorCategory.VALIDATION),
        (ErrorKind.USER_ALREADY_EXISTS, ErrorCategory.CONFLICT),
        (ErrorKind.UNKNOWN_ID, ErrorCategory.NOT_FOUND),
        (ErrorKind.EMAIL_NOT_VERIFIED, ErrorCategory.AUTHENTICATION),
        (ErrorKind.TOO_MANY_REQUESTS, ErrorCategory.THROTTLING),
        (ErrorKind.INTERNAL, ErrorCategory.INTERNAL),
    ])
    def test_category_mapping(self, kind, category):
        assert kind.category is category


class TestFailures:
    """Tests for the exception classes."""

    def test_failures_carry_distinct_kinds(self):
        """Each AuthFailure subclass should report its own kind."""
        subclasses = [
            obj for obj in vars(errors).values()
            if isinstance(obj, type) and issubclass(obj, AuthFailure) and obj is not AuthFailure
        ]
        kinds = [cls.kind for cls in subclasses]

        assert len(kinds) == len(set(kinds))
        assert ErrorKind.INTERNAL not in kinds

    def test_too_many_requests_carries_retry_after(self):
        error = TooManyRequestsError(42)

        assert error.retry_after == 42
        assert error.category is ErrorCategory.THROTTLING

    def test_database_error_is_not_an_auth_failure(self):
        """Internal errors must not be caught by handlers for expected failures."""
        error = DatabaseError("login")

        assert isinstance(error, InternalError)
        assert not isinstance(error, AuthFailure)
        assert "login" in str(error)

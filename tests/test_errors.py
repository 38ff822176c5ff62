"""Tests for the glim exception hierarchy."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from glim.core.errors import (
    CardTimeoutError,
    GlimError,
    InvalidBindAddressError,
    InvalidConfigError,
    InvalidRepositoryError,
    RasterizationError,
    RateLimitedError,
    RepositoryNotFoundError,
    TemplateError,
    UnsupportedFormatError,
    UpstreamUnavailableError,
)


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "cls,code",
        [
            (InvalidRepositoryError, "invalid_repository"),
            (RepositoryNotFoundError, "not_found"),
            (RateLimitedError, "rate_limited"),
            (UpstreamUnavailableError, "upstream_unavailable"),
            (CardTimeoutError, "timeout"),
            (TemplateError, "template_error"),
            (RasterizationError, "rasterization_error"),
            (UnsupportedFormatError, "unsupported_format"),
            (InvalidBindAddressError, "invalid_address"),
            (InvalidConfigError, "invalid_config"),
        ],
    )
    def test_codes(self, cls, code):
        """Every error kind is a GlimError with a distinct machine-readable code."""
        exc = cls("boom") if cls is not RateLimitedError else cls()
        assert isinstance(exc, GlimError)
        assert exc.code == code

    def test_base_catches_all(self):
        with pytest.raises(GlimError):
            raise RepositoryNotFoundError("Repository not found: a/b")


class TestRateLimitedError:
    def test_default_message(self):
        exc = RateLimitedError()
        assert exc.reset_at is None
        assert str(exc) == "GitHub API rate limit exceeded"

    def test_reset_time_in_message(self):
        reset = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
        exc = RateLimitedError(reset_at=reset)
        assert exc.reset_at == reset
        assert "resets at 2024-01-01T00:00:00+00:00" in str(exc)


class TestUpstreamUnavailableError:
    def test_status_code_kept(self):
        exc = UpstreamUnavailableError("GitHub API error: 500", status_code=500)
        assert exc.status_code == 500
        assert str(exc) == "GitHub API error: 500"

    def test_status_code_optional(self):
        assert UpstreamUnavailableError().status_code is None

"""
Tests for the service layer primitives and application errors.
"""

from __future__ import annotations

import pytest
from django.contrib.contenttypes.models import ContentType
from django.test import RequestFactory

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from core.helpers import get_client_ip, hash_string
from core.services import BaseService, ServiceResult


class ExampleService(BaseService):
    pass


# =============================================================================
# ServiceResult Tests
# =============================================================================


class TestServiceResult:
    def test_ok(self):
        result = ServiceResult.ok({"id": 1})

        assert result.success is True
        assert bool(result) is True
        assert result.data == {"id": 1}
        assert result.error_code is None

    def test_from_application_error_keeps_code(self):
        result = ServiceResult.from_exception(NotFoundError("Order missing"))

        assert bool(result) is False
        assert result.error == "Order missing"
        assert result.error_code == "NOT_FOUND"

    def test_explicit_code_wins(self):
        result = ServiceResult.from_exception(NotFoundError("x"), error_code="ORDER_NOT_FOUND")

        assert result.error_code == "ORDER_NOT_FOUND"

    def test_from_plain_exception_uses_class_name(self):
        result = ServiceResult.from_exception(KeyError("x"))

        assert result.error_code == "KEYERROR"


# =============================================================================
# Application Error Tests
# =============================================================================


class TestBaseApplicationError:
    def test_defaults(self):
        exc = BaseApplicationError("Something broke")

        assert exc.error_code == "APPLICATION_ERROR"
        assert exc.details == {}
        assert exc.is_retryable is False
        assert str(exc) == "[APPLICATION_ERROR] Something broke"

    def test_to_dict_includes_details_when_present(self):
        exc = ConflictError("Taken", error_code="DUPLICATE", details={"id": "x"})

        assert exc.to_dict() == {
            "error": "Taken",
            "error_code": "DUPLICATE",
            "details": {"id": "x"},
        }
        assert BaseApplicationError("Bare").to_dict() == {
            "error": "Bare",
            "error_code": "APPLICATION_ERROR",
        }

    @pytest.mark.parametrize(
        "exc_class,code",
        [
            (ValidationError, "VALIDATION_ERROR"),
            (NotFoundError, "NOT_FOUND"),
            (ConflictError, "CONFLICT"),
            (ExternalServiceError, "EXTERNAL_SERVICE_ERROR"),
        ],
    )
    def test_family_codes(self, exc_class, code):
        assert exc_class("x").error_code == code


# =============================================================================
# BaseService Tests
# =============================================================================


class TestBaseService:
    def test_logger_named_after_class(self):
        assert ExampleService.get_logger().name.endswith("test_services.ExampleService")

    def test_atomic_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            with ExampleService.atomic():
                ContentType.objects.create(app_label="example", model="rolled_back")
                raise RuntimeError("boom")

        assert not ContentType.objects.filter(app_label="example").exists()


class TestHelpers:
    def test_hash_string_accepts_bytes_and_str(self):
        assert hash_string("abc") == hash_string(b"abc")
        assert hash_string("abc", "md5") == "900150983cd24fb0d6963f7d28e17f72"

    def test_client_ip_prefers_forwarded_for(self):
        request = RequestFactory().get("/", HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1")

        assert get_client_ip(request) == "203.0.113.7"

    def test_client_ip_falls_back_to_remote_addr(self):
        request = RequestFactory().get("/", REMOTE_ADDR="198.51.100.2")

        assert get_client_ip(request) == "198.51.100.2"

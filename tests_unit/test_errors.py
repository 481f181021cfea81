"""
Service Error Tests (Unit)
==========================

WHAT: Rendering of domain errors into API bodies.
WHY: Clients branch on `code`; provider internals must never reach them.

REFERENCES:
- creatorhub/errors.py
- creatorhub/main.py (exception handlers)
"""

from creatorhub.errors import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    InvalidStateError,
    LinkInactiveError,
    NoEligibleClickError,
    NotFoundError,
    ServiceError,
    ValidationError,
)


class TestRendering:
    def test_validation_error_carries_field(self) -> None:
        error = ValidationError("revenue must be between 0 and 10000000", field="revenue")

        assert error.status_code == 422
        assert error.to_dict() == {
            "detail": "revenue must be between 0 and 10000000",
            "code": "ERR_001",
            "category": "validation",
            "details": {"field": "revenue"},
        }

    def test_not_found_includes_identifier(self) -> None:
        body = NotFoundError("Article", "abc").to_dict()
        assert body["code"] == "ERR_002"
        assert body["details"] == {"resource": "Article", "id": "abc"}

    def test_authorization_has_no_details(self) -> None:
        assert "details" not in AuthorizationError().to_dict()

    def test_str_includes_code(self) -> None:
        assert str(ConflictError("Email already subscribed")) == "[ERR_004] Email already subscribed"

    def test_external_error_hides_provider_message(self) -> None:
        error = ExternalServiceError("Resend", "API key re_live_123 is invalid")

        body = error.to_dict()

        assert error.status_code == 502
        assert body["code"] == "ERR_050"
        assert "re_live_123" not in body["detail"]
        assert "details" not in body
        assert error.provider_message == "API key re_live_123 is invalid"


class TestHierarchy:
    def test_status_codes(self) -> None:
        assert InvalidStateError("x").status_code == 409
        assert LinkInactiveError("ABC").status_code == 410
        assert NoEligibleClickError("ABC", 30).status_code == 404

    def test_subclasses_keep_distinct_codes(self) -> None:
        assert isinstance(InvalidStateError("x"), ConflictError)
        assert InvalidStateError("x").code.value == "ERR_006"
        assert isinstance(NoEligibleClickError("ABC", 30), NotFoundError)
        assert NoEligibleClickError("ABC", 30).code.value == "ERR_007"

    def test_everything_is_a_service_error(self) -> None:
        for error in (ValidationError("x"), AuthorizationError(), ExternalServiceError("Polar")):
            assert isinstance(error, ServiceError)

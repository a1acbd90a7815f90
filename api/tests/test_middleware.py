# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for middleware functionality.
"""

import pytest
from flask import Flask
from pydantic import BaseModel, Field, ValidationError, field_validator
from typing import Optional

from middleware.validation import (
    format_validation_errors, get_json_body, parse_json_body, parse_query_params,
    summarize_errors, validate_model
)
from middleware.error_handler import (
    ErrorHandlerMiddleware, ApiException, ValidationException, AuthenticationException,
    AuthorizationException, ConflictException, NotFoundException, ServiceUnavailableException,
    UpstreamServiceException
)
from middleware.cors import CORSMiddleware, configure_cors


class SampleModel(BaseModel):
    title: str = Field(..., min_length=3)
    severity: int = Field(1, ge=1, le=5)


class SampleQuery(BaseModel):
    status: Optional[str] = None
    page: int = 1


class TestValidationHelpers:
    """Test validation helpers."""

    def setup_method(self):
        self.app = Flask(__name__)

    def test_format_validation_errors(self):
        with pytest.raises(ValidationError) as exc_info:
            SampleModel.model_validate({"severity": 10})

        errors = format_validation_errors(exc_info.value)

        fields = [error["field"] for error in errors]
        assert fields == ["title", "severity"]
        assert errors[1]["input"] == 10
        assert errors[0]["type"] == "missing"

    def test_value_error_prefix_is_stripped(self):
        class Named(BaseModel):
            name: str

            @field_validator("name")
            @classmethod
            def not_blank(cls, v):
                if not v.strip():
                    raise ValueError("Name cannot be empty")
                return v

        with pytest.raises(ValidationException) as exc_info:
            validate_model(Named, {"name": "  "})

        assert exc_info.value.message == "Name cannot be empty"
        assert exc_info.value.status_code == 400

    def test_summarize_errors(self):
        assert summarize_errors([]) == "Validation failed"
        assert summarize_errors([{"message": "a"}, {"message": "b"}]) == "a; b"

    def test_validate_model_success(self):
        model = validate_model(SampleModel, {"title": "Flooding"})

        assert model.title == "Flooding"
        assert model.severity == 1

    def test_parse_json_body(self):
        with self.app.test_request_context('/test', method='POST', json={"title": "Flooding", "severity": 3}):
            model = parse_json_body(SampleModel)

        assert model.severity == 3

    def test_missing_body(self):
        with self.app.test_request_context('/test', method='POST', data="not json",
                                           content_type='text/plain'):
            with pytest.raises(ValidationException) as exc_info:
                get_json_body()

            assert get_json_body(allow_empty=True) == {}

        assert exc_info.value.message == "Missing request body"

    def test_body_must_be_object(self):
        with self.app.test_request_context('/test', method='POST', json=[1, 2]):
            with pytest.raises(ValidationException) as exc_info:
                get_json_body()

        assert exc_info.value.message == "Request body must be a JSON object"

    def test_query_params_drop_empty_values(self):
        with self.app.test_request_context('/test?status=&page=2&search=x'):
            query = parse_query_params(SampleQuery, exclude=["search"])

        assert query.status is None
        assert query.page == 2

    def test_query_params_validation_error(self):
        with self.app.test_request_context('/test?page=abc'):
            with pytest.raises(ValidationException) as exc_info:
                parse_query_params(SampleQuery)

        assert exc_info.value.validation_errors[0]["field"] == "page"


class TestErrorHandlerMiddleware:
    """Test error handler middleware functionality."""

    def setup_method(self):
        self.app = Flask(__name__)
        self.app.config['ENVIRONMENT'] = 'test'
        ErrorHandlerMiddleware(self.app)

        @self.app.route('/raise/<kind>')
        def raise_error(kind):
            errors = {
                "validation": ValidationException("Title is required", [{"field": "title"}]),
                "auth": AuthenticationException("No token provided"),
                "forbidden": AuthorizationException("Staff only"),
                "missing": NotFoundException("Report not found"),
                "conflict": ConflictException("Username already taken"),
                "upstream": UpstreamServiceException("Payment gateway request failed", [{"code": "bad"}]),
                "unavailable": ServiceUnavailableException("Verification service is unavailable"),
            }
            if kind in errors:
                raise errors[kind]
            if kind == "pydantic":
                SampleModel.model_validate({})
            raise RuntimeError("boom")

        self.client = self.app.test_client()

    @pytest.mark.parametrize("kind,status", [
        ("validation", 400),
        ("auth", 401),
        ("forbidden", 403),
        ("missing", 404),
        ("conflict", 409),
        ("unavailable", 503),
    ])
    def test_status_codes(self, kind, status):
        response = self.client.get(f'/raise/{kind}')

        assert response.status_code == status
        assert response.get_json()["success"] is False

    def test_validation_exception_carries_errors(self):
        data = self.client.get('/raise/validation').get_json()

        assert data == {
            "success": False,
            "message": "Title is required",
            "error": "validation_error",
            "errors": [{"field": "title"}]
        }

    def test_upstream_payload_is_exposed(self):
        response = self.client.get('/raise/upstream')

        assert response.status_code == 500
        assert response.get_json()["error"] == [{"code": "bad"}]

    def test_pydantic_error_becomes_400(self):
        response = self.client.get('/raise/pydantic')

        assert response.status_code == 400
        assert response.get_json()["errors"][0]["field"] == "title"

    def test_unknown_route(self):
        response = self.client.get('/nowhere')

        assert response.status_code == 404
        assert response.get_json()["message"] == "Resource Not Found"

    def test_unexpected_error(self):
        response = self.client.get('/raise/other')

        assert response.status_code == 500
        data = response.get_json()
        assert data["message"] == "Internal server error"
        assert data["error"] == "RuntimeError: boom"

    def test_unexpected_error_hidden_in_production(self):
        self.app.config['ENVIRONMENT'] = 'production'

        data = self.client.get('/raise/other').get_json()

        assert data["error"] == "An unexpected error occurred"

    def test_api_exception_default(self):
        error = ApiException("Something failed")

        assert error.status_code == 500
        assert error.to_dict() == {"success": False, "message": "Something failed", "error": "application_error"}


class TestCORSMiddleware:
    """Test CORS middleware functionality."""

    def setup_method(self):
        self.app = Flask(__name__)
        self.cors = configure_cors(
            self.app,
            allowed_origins=['https://barangayculiat.example', 'https://preview-*']
        )

        @self.app.route('/ping')
        def ping():
            return {"ok": True}

        self.client = self.app.test_client()

    def test_is_origin_allowed(self):
        assert self.cors.is_origin_allowed('https://barangayculiat.example')
        assert self.cors.is_origin_allowed('https://preview-123.example')
        assert not self.cors.is_origin_allowed('https://evil.example')
        assert not self.cors.is_origin_allowed(None)

    def test_allowed_origin_gets_headers(self):
        response = self.client.get('/ping', headers={'Origin': 'https://barangayculiat.example'})

        assert response.headers['Access-Control-Allow-Origin'] == 'https://barangayculiat.example'
        assert response.headers['Access-Control-Allow-Credentials'] == 'true'

    def test_other_origin_gets_no_headers(self):
        response = self.client.get('/ping', headers={'Origin': 'https://evil.example'})

        assert response.status_code == 200
        assert 'Access-Control-Allow-Origin' not in response.headers

    def test_preflight(self):
        response = self.client.options('/ping', headers={'Origin': 'https://barangayculiat.example'})

        assert response.status_code == 204
        assert 'Authorization' in response.headers['Access-Control-Allow-Headers']

    def test_preflight_rejected(self):
        response = self.client.options('/ping', headers={'Origin': 'https://evil.example'})

        assert response.status_code == 403

    def test_default_origins_from_environment(self, monkeypatch):
        monkeypatch.setenv('ENVIRONMENT', 'production')
        monkeypatch.setenv('FRONTEND_URL', 'https://barangayculiat.example/')
        monkeypatch.setenv('CORS_ALLOWED_ORIGINS', 'https://admin.example, https://kiosk.example')

        cors = CORSMiddleware(Flask(__name__))

        assert cors.allowed_origins == [
            'https://barangayculiat.example', 'https://admin.example', 'https://kiosk.example'
        ]

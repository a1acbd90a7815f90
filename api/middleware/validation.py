# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request validation helpers using Pydantic models.
Parses JSON bodies and query parameters into models and turns
Pydantic errors into ValidationException.
"""

from flask import request, has_request_context
from typing import Type, Dict, Any, List, Optional, TypeVar
from pydantic import BaseModel, ValidationError
from opentelemetry import trace
import logging

from middleware.error_handler import ValidationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

VALUE_ERROR_PREFIX = "Value error, "


def format_validation_errors(validation_error: ValidationError) -> List[Dict[str, Any]]:
    """
    Format Pydantic validation errors for API response.

    Args:
        validation_error: Pydantic ValidationError

    Returns:
        List of formatted error dictionaries
    """
    errors = []

    for error in validation_error.errors():
        field_path = ".".join(str(loc) for loc in error["loc"]) or "body"
        message = error["msg"]
        if message.startswith(VALUE_ERROR_PREFIX):
            message = message[len(VALUE_ERROR_PREFIX):]

        formatted = {
            "field": field_path,
            "message": message,
            "type": error["type"]
        }
        if isinstance(error.get("input"), (str, int, float, bool)):
            formatted["input"] = error["input"]
        errors.append(formatted)

    return errors


def validate_model(model_class: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """
    Validate a dictionary against a Pydantic model.

    Raises:
        ValidationException: carrying the formatted field errors; the message
            is the single error message when there is only one
    """
    with tracer.start_as_current_span("validation.validate_model") as span:
        span.set_attribute("validation.model", model_class.__name__)
        try:
            validated = model_class.model_validate(data)
            span.set_attribute("validation.result", "success")
            return validated
        except ValidationError as e:
            span.set_attribute("validation.result", "validation_error")
            validation_errors = format_validation_errors(e)

            logger.warning(
                "Request validation failed",
                extra={
                    "model": model_class.__name__,
                    "path": request.path if has_request_context() else None,
                    "errors": validation_errors
                }
            )

            raise ValidationException(summarize_errors(validation_errors), validation_errors)


def summarize_errors(validation_errors: List[Dict[str, Any]]) -> str:
    """Single error message, or all messages joined with ``; ``."""
    if not validation_errors:
        return "Validation failed"
    return "; ".join(error["message"] for error in validation_errors)


def to_validation_exception(validation_error: ValidationError) -> ValidationException:
    validation_errors = format_validation_errors(validation_error)
    return ValidationException(summarize_errors(validation_errors), validation_errors)


def get_json_body(allow_empty: bool = False) -> Dict[str, Any]:
    """
    Return the JSON request body as a dictionary.

    Raises:
        ValidationException: when the body is missing or not a JSON object
    """
    json_data = request.get_json(silent=True)
    if json_data is None:
        if allow_empty:
            return {}
        raise ValidationException("Missing request body", [{
            "field": "body",
            "message": "Expected a JSON object",
            "type": "json_error"
        }])
    if not isinstance(json_data, dict):
        raise ValidationException("Request body must be a JSON object")
    return json_data


def parse_json_body(model_class: Type[ModelT], allow_empty: bool = False) -> ModelT:
    """Validate the JSON request body against a Pydantic model."""
    return validate_model(model_class, get_json_body(allow_empty=allow_empty))


def parse_query_params(model_class: Type[ModelT], exclude: Optional[List[str]] = None) -> ModelT:
    """
    Validate query parameters against a Pydantic model.

    Empty values are dropped so that ``?status=`` means no filter.
    """
    exclude = exclude or []
    query_data = {
        key: value for key, value in request.args.to_dict().items()
        if value != "" and key not in exclude
    }
    return validate_model(model_class, query_data)

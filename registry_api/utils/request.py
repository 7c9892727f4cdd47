# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request utilities for extracting and validating request data.
"""

from flask import request
from pydantic import BaseModel, ValidationError
from typing import Any, Dict, List, Type, TypeVar
import logging

from ..exceptions import ValidationException

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_json_body() -> Dict[str, Any]:
    """
    JSON object sent with the request.

    Raises:
        ValidationException: body missing, not JSON, or not an object
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationException("Request body must be a JSON object", field="body")
    return data


def format_validation_errors(error: ValidationError) -> List[Dict[str, Any]]:
    """Flatten pydantic errors to ``{"field", "message"}`` pairs."""
    errors = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "body"
        errors.append({"field": location, "message": item.get("msg", "Invalid value")})
    return errors


def parse_model(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """
    Build a request model, reporting the first offending field.

    Raises:
        ValidationException: data does not satisfy the model
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        errors = format_validation_errors(e)
        logger.debug("Request validation failed", extra={"model": model.__name__, "errors": errors})
        first = errors[0]
        raise ValidationException(
            f"{first['field']}: {first['message']}",
            field=first["field"],
            validation_errors=errors
        ) from e


def get_request_info() -> Dict[str, Any]:
    """Client details recorded with sessions and audit entries."""
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get('User-Agent', '')
    }

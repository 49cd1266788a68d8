"""
Central API router and utilities for the placement test backend.

This module provides:
- The router mounting the assessment modules
- The response envelope shared by every endpoint
- The handler turning request validation failures into that envelope
"""

import logging
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Dict, Any, Optional

from placement.common.exceptions import BaseError

logger = logging.getLogger(__name__)


def build_api_router() -> APIRouter:
    """
    Create the router that mounts every assessment module.

    Returns:
        Router with the placement test routes under /placement-test
    """
    from placement.assessments.placement_test.controller import router as placement_test_router

    api_router = APIRouter()
    api_router.include_router(placement_test_router, prefix="/placement-test", tags=["placement-test"])
    logger.info(f"Registered placement-test module with {len(placement_test_router.routes)} routes")
    return api_router


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return request validation failures in the error envelope.

    Each failure is reported with the dotted path of the offending field,
    e.g. "body.level".
    """
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", [])),
            "message": error.get("msg", "Invalid value"),
            "type": error.get("type", "")
        }
        for error in exc.errors()
    ]
    logger.info(f"Rejected {request.method} {request.url.path}: {len(details)} validation error(s)")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=APIResponse.error("Validation error", details=details, code="validation_error")
    )


class APIResponse:
    """Envelope builders: {"status", "message", "data"} or {"status", "message", "code", "details"}."""

    @staticmethod
    def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        return {"status": "success", "message": message, "data": data}

    @staticmethod
    def error(message: str, details: Optional[Any] = None,
              code: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an error envelope.

        Args:
            message: Human-readable error message
            details: Optional structured details
            code: Optional machine-readable error code
        """
        response = {"status": "error", "message": message}
        if code:
            response["code"] = code
        if details:
            response["details"] = details
        return response

    @staticmethod
    def from_error(error: BaseError) -> Dict[str, Any]:
        """Create an error envelope from an application exception."""
        data = error.to_dict()
        return APIResponse.error(data.pop("message"), details=data.pop("errors", None), code=data.pop("code"))

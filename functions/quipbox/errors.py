"""
HTTP error taxonomy. Every error renders as {"error": "<message>"}.
"""

from __future__ import annotations

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code = 500
    default_detail = "Internal Server Error"

    def __init__(self, detail: str | None = None):
        super().__init__(
            status_code=self.status_code, detail=detail or self.default_detail
        )


class Unauthorized(ApiError):
    status_code = 401
    default_detail = "Unauthorized"


class InvalidInput(ApiError):
    status_code = 400
    default_detail = "Invalid input"


class NotFound(ApiError):
    status_code = 404
    default_detail = "Not found"


class NotImplementedKind(ApiError):
    status_code = 501
    default_detail = "Not implemented"

"""
Domain errors raised by the services layer.

Endpoints translate simple cases into HTTPException themselves; anything
raised from backend.services bubbles up as one of these and is mapped to a
JSON response by the handlers registered in backend.app.main.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.detail}


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class DomainValidationError(AppError):
    status_code = 400


class InsufficientStockError(DomainValidationError):
    def __init__(
        self,
        *,
        product_id: int,
        product_name: str,
        requested: int,
        available_primary: int,
        available_b2b: int = 0,
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available_primary = available_primary
        self.available_b2b = available_b2b
        self.shortfall = requested - available_primary - available_b2b
        super().__init__(
            f"Insufficient stock for {product_name}. "
            f"Available: {available_primary + available_b2b}, Required: {requested}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.detail,
            "shortage": {
                "product_id": self.product_id,
                "product_name": self.product_name,
                "requested": self.requested,
                "available_primary": self.available_primary,
                "available_b2b": self.available_b2b,
                "shortfall": self.shortfall,
            },
        }

from typing import Any, Optional


class PosError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class InvalidRequest(PosError):
    status_code = 400
    code = "INVALID_REQUEST"


class NotFound(PosError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(PosError):
    status_code = 409
    code = "CONFLICT"


class InsufficientStock(Conflict):
    """Admission check failed: an ingredient cannot cover the order's demand."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, inventory_item_id: int, ingredient: str, required, available) -> None:
        super().__init__(
            f"insufficient stock for {ingredient}: required {_fmt(required)}, available {_fmt(available)}",
            {
                "inventory_item_id": inventory_item_id,
                "ingredient": ingredient,
                "required": float(required),
                "available": float(available),
            },
        )


class StockConflict(Conflict):
    """A conditional decrement matched no row at commit time."""

    code = "STOCK_CONFLICT"


class TableUnavailable(Conflict):
    code = "TABLE_UNAVAILABLE"


class ForbiddenTransition(PosError):
    status_code = 400
    code = "FORBIDDEN_TRANSITION"


class InternalError(PosError):
    pass


def _fmt(value) -> str:
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"

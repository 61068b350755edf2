"""Typed rejections raised by the services and rendered by the HTTP error handler."""

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class: a business rule refused the operation, nothing was written."""

    code = "domain_error"
    status_code = 400

    def __init__(self, message: str, *, field: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.field:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return payload


class NotFound(DomainError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None) -> None:
        super().__init__(f"{entity.capitalize()} not found",
                         details={"entity": entity, "id": entity_id})
        self.entity = entity


class InvalidInput(DomainError):
    code = "invalid_input"
    status_code = 400

    def __init__(self, field: str, reason: str, value: Any = None) -> None:
        details = {"reason": reason}
        if value is not None:
            details["value"] = value if isinstance(value, (int, float, str)) else str(value)
        super().__init__(f"{field}: {reason}", field=field, details=details)


class InsufficientStock(DomainError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, part_id: Any, requested: int, available: int) -> None:
        super().__init__(
            f"Not enough parts in stock. Available: {available}",
            field="quantity",
            details={"part_id": part_id, "requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available


class Conflict(DomainError):
    code = "conflict"
    status_code = 409


class InvalidStateTransition(DomainError):
    code = "invalid_state_transition"
    status_code = 409

    def __init__(self, message: str, *, status: Optional[str] = None, action: Optional[str] = None) -> None:
        details = {}
        if status is not None:
            details["status"] = status
        if action is not None:
            details["action"] = action
        super().__init__(message, field="status", details=details)
        self.status = status

"""
Typed errors raised by the application services.

Each error carries a machine-readable ``kind`` so that the HTTP layer can map
it to a status code without parsing messages, and validation errors carry
field-level ``details`` entries of the form ``{field, message, value}``.
"""

from typing import Any, Dict, List, Optional


class InventoryError(Exception):
    kind = "InventoryError"

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.kind, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(InventoryError):
    """Malformed or missing input"""

    kind = "ValidationError"

    @classmethod
    def for_field(cls, field: str, message: str, value: Any = None) -> "ValidationError":
        return cls(
            f"Validation failed: {message}",
            details=[{"field": field, "message": message, "value": value}],
        )


class NotFoundError(InventoryError):
    kind = "NotFoundError"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidOperationError(InventoryError):
    """Structurally disallowed action (cycle, negative stock, ledger mutation)"""

    kind = "InvalidOperationError"


class DuplicateError(InventoryError):
    kind = "DuplicateError"

    def __init__(self, field: str, value: Any = None):
        super().__init__(
            f"{field} already exists",
            details=[{"field": field, "message": f"{field} must be unique", "value": value}],
        )
        self.field = field

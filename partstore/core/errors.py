"""
Typed errors raised by the stock ledger and its collaborators.

Every error carries a machine-readable ``code``, the HTTP status it maps to,
and structured fields so callers can explain *why* an operation was rejected
(e.g. "available 3, requested 5") without parsing the message.
"""

from typing import Any, Dict, Optional


class PartStoreError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"error": self.message, "code": self.code}
        out.update({k: v for k, v in self.details.items() if v is not None})
        return out


class ValidationError(PartStoreError):
    code = "validation_error"
    status_code = 400


class NotFoundError(PartStoreError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, key: Any):
        super().__init__(f"{entity} not found: {key}", entity=entity, key=key)
        self.entity = entity
        self.key = key


class PolicyViolationError(PartStoreError):
    code = "policy_violation"
    status_code = 409

    def __init__(self, part_number: str, fixed_location: str, requested_location: str):
        super().__init__(
            f"Part {part_number} is fixed to location {fixed_location}; "
            f"cannot move stock at {requested_location}",
            part_number=part_number,
            fixed_location=fixed_location,
            requested_location=requested_location,
        )
        self.part_number = part_number
        self.fixed_location = fixed_location
        self.requested_location = requested_location


class InsufficientStockError(PartStoreError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, available: int, requested: int, location: Optional[str] = None):
        super().__init__(
            f"Not enough stock at location (available {available}, requested {requested})",
            available=available,
            requested=requested,
            location=location,
        )
        self.available = available
        self.requested = requested
        self.location = location


class ConflictError(PartStoreError):
    code = "conflict"
    status_code = 409


class StorageError(PartStoreError):
    code = "storage_error"
    status_code = 503

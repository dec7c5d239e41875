# move_inventory/domain/errors.py
from __future__ import annotations
from typing import Optional


class InvalidProductInput(ValueError):
    """Operator-supplied product data is missing a required field."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class ProductPersistenceError(RuntimeError):
    """Record store write failed. `operation` is "create" or "update"."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f"Failed to {operation} product"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)


class InvalidFlowTransition(RuntimeError):
    def __init__(self, current: str, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} while flow is {current}")


class FlowNotFound(LookupError):
    def __init__(self, flow_id: str):
        self.flow_id = flow_id
        super().__init__(f"Flow {flow_id} not found or expired")


class ModelUnavailable(RuntimeError):
    """No generative model candidate could serve the request."""

"""Custom exceptions for house-split."""


class HouseSplitError(Exception):
    """Base exception for all house-split errors."""

    pass


class NotFoundError(HouseSplitError):
    """Raised when a referenced entity is missing or archived."""

    def __init__(self, entity: str, entity_id: int | None = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} {entity_id} not found")


class ForbiddenError(HouseSplitError):
    """Raised when the actor lacks ownership, admin role or membership."""

    pass


class InvalidStateError(HouseSplitError):
    """Raised when an operation is not valid for the entity's current status."""

    pass


class InvalidAllocationError(HouseSplitError):
    """Raised when share percentages don't add up to 100%."""

    pass


class ValidationError(HouseSplitError):
    """Raised when a required field is missing or invalid."""

    pass


class DeliveryError(HouseSplitError):
    """Raised when an event subscriber fails to deliver an event."""

    pass

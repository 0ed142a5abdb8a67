"""Exceptions for the pricing engine."""


class PricingError(Exception):
    """Base exception for pricing errors."""
    pass


class TeeTimeBlocked(PricingError):
    """Raised when a block override covers the requested slot.

    The slot must not be offered; hosts should present it as unavailable.
    """

    def __init__(self, course_id: str, override_id: str, override_name: str = ""):
        self.course_id = course_id
        self.override_id = override_id
        self.override_name = override_name
        super().__init__(
            f"Tee time blocked by special override {override_name or override_id!r} "
            f"for course {course_id!r}"
        )


class BaseProductMissing(PricingError):
    """Raised when a course has no base product to seed the price from."""

    def __init__(self, course_id: str):
        self.course_id = course_id
        super().__init__(f"Base product not found for course {course_id!r}")


class PricingIntegrityError(PricingError):
    """Raised when a subtotal/tax/discount/total breakdown fails validation."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Pricing integrity violation: " + "; ".join(self.errors))


class PersistenceError(PricingError):
    """Raised by a store when a course's pricing document cannot be loaded or saved."""
    pass


class RecordNotFound(PricingError):
    """Raised when an update or delete targets an unknown record id."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id!r} not found")

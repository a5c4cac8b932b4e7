"""Domain exception hierarchy.

Routers translate these into HTTP status codes; the scan and fan-out paths
catch them per item and never let them reach the scheduler.
"""


class ComplianceError(Exception):
    """Base class for all service errors."""


class InvariantViolation(ComplianceError, ValueError):
    """A mutation would break a record or cross-entity invariant."""


class RecordNotFound(ComplianceError, LookupError):
    """The referenced record does not exist."""

    def __init__(self, entity: str, record_id: object) -> None:
        super().__init__(f"{entity} not found: {record_id}")
        self.entity = entity
        self.record_id = record_id


class DuplicateRecord(ComplianceError):
    """A uniqueness constraint would be violated."""


class StoreError(ComplianceError):
    """The persistence layer rejected a read or write."""

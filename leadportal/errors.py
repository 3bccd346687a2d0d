"""Exception hierarchy shared by the import pipeline, the scoring gateway and the coordinator."""

from __future__ import annotations


class LeadPortalError(Exception):
    """Base class for all application errors."""


# ---------------------------------------------------------------------------
# CSV import
# ---------------------------------------------------------------------------

class CSVImportError(LeadPortalError):
    pass


class CSVParseError(CSVImportError):
    """The uploaded file is not valid CSV. Fatal for the whole upload."""


class StructureError(CSVImportError):
    """File-wide problem detected before any row is examined."""


class MissingColumnsError(StructureError):
    def __init__(self, columns: list[str]):
        self.columns = list(columns)
        super().__init__(f"Missing required columns: {', '.join(self.columns)}")


class EmptyFileError(StructureError):
    def __init__(self, message: str = "CSV file is empty"):
        super().__init__(message)


class RowValidationError(CSVImportError):
    """A single row failed field validation. Collected, never fatal."""

    def __init__(self, row: int, errors: list[str]):
        self.row = row
        self.errors = list(errors)
        super().__init__(f"Row {row}: {'; '.join(self.errors)}")


# ---------------------------------------------------------------------------
# Scoring gateway
# ---------------------------------------------------------------------------

class ScoringGatewayError(LeadPortalError):
    pass


class ServiceUnavailable(ScoringGatewayError):
    """The ML service could not be reached or timed out."""


class ScoringError(ScoringGatewayError):
    """The ML service answered with an error."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# Data access
# ---------------------------------------------------------------------------

class NotFoundError(LeadPortalError):
    pass


class CustomerNotFound(NotFoundError):
    def __init__(self, customer_id: int):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} not found")


class PersistenceError(LeadPortalError):
    """A database write failed."""

"""Custom exceptions for Daybook."""


class DaybookError(Exception):
    """Base class for all Daybook errors."""


class ModelError(DaybookError):
    """A call to the language model did not yield usable output."""


class TransportError(ModelError):
    """The model endpoint could not be reached or returned an HTTP error."""


class ModelTimeoutError(TransportError, TimeoutError):
    """The model call exceeded its deadline."""

    def __init__(self, label: str, seconds: float | None = None):
        """Initialize the error."""
        self.label = label
        self.seconds = seconds
        if seconds is None:
            super().__init__(f"{label} timed out")
        else:
            super().__init__(f"{label} timed out after {seconds:g} seconds")


class RefusalError(ModelError):
    """The model explicitly declined to answer."""

    def __init__(self, refusal: str):
        """Initialize the error."""
        self.refusal = refusal
        super().__init__(f"Model refused the request: {refusal}")


class IncompleteResponseError(ModelError):
    """The model stopped because it hit its length limit."""


class EmptyResponseError(ModelError):
    """The model returned no content at all."""


class ContractError(ModelError):
    """Model output was returned but does not satisfy its schema contract."""

    def __init__(self, message: str, errors: list[str] | None = None):
        """Initialize the error."""
        self.errors = errors or []
        super().__init__(message)


class ConfigurationError(DaybookError):
    """Prerequisite data is missing or unusable; fatal for an import run."""


class PersistenceError(DaybookError):
    """A storage operation failed."""


class UniqueConstraintError(PersistenceError):
    """A record with the same unique key already exists."""

    def __init__(self, kind: str, key: str):
        """Initialize the error."""
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' already exists")


class EntryExistsError(PersistenceError):
    """A journal entry already exists for the date and overwrite was not requested."""

    def __init__(self, date: str):
        """Initialize the error."""
        self.date = date
        super().__init__(
            f"An entry for {date} already exists. Use force to overwrite."
        )


class RecordNotFoundError(PersistenceError):
    """The referenced record does not exist."""

    def __init__(self, kind: str, key: str):
        """Initialize the error."""
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key} does not exist")


class CategoryProtectedError(PersistenceError):
    """The category is a default category or still has activities."""


class NothingToReportError(DaybookError):
    """No activities were found for the requested report period."""


class UnsupportedReportError(DaybookError):
    """The requested report type or date cannot be handled."""

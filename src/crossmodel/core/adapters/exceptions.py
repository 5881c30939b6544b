"""Adapter-specific exceptions."""


class AdapterError(Exception):
    """Base exception for adapter errors.

    ``source_id`` is filled in by the caller that knows which configured data
    source the adapter was serving, so errors name the failing source.
    """

    def __init__(
        self,
        message: str,
        source_type: str | None = None,
        source_id: int | None = None,
    ) -> None:
        self.message = message
        self.source_type = source_type
        self.source_id = source_id
        super().__init__(message)

    def annotate(self, source_id: int) -> "AdapterError":
        """Attach the failing data source id if not already set."""
        if self.source_id is None:
            self.source_id = source_id
        return self

    def __str__(self) -> str:
        if self.source_id is not None:
            return f"{self.message} (data source {self.source_id})"
        return self.message


class AdapterConnectionError(AdapterError):
    """Raised when an adapter cannot connect to the data source."""

    pass


class AdapterAuthenticationError(AdapterError):
    """Raised when authentication to the data source fails."""

    pass


class AdapterConfigurationError(AdapterError):
    """Raised when adapter configuration is invalid."""

    pass


class AdapterQueryError(AdapterError):
    """Raised when a query execution fails."""

    def __init__(
        self,
        message: str,
        query: str | None = None,
        source_type: str | None = None,
        source_id: int | None = None,
    ) -> None:
        super().__init__(message, source_type, source_id)
        self.query = query


class AdapterNotFoundError(AdapterError):
    """Raised when a requested adapter type is not registered."""

    def __init__(self, source_type: str) -> None:
        super().__init__(
            f"Unknown adapter type: {source_type!r}",
            source_type=source_type,
        )

"""Query engine exceptions."""


class QueryEngineError(Exception):
    """Base exception for query compilation and execution errors."""

    pass


class CompilationError(QueryEngineError):
    """Raised when a query descriptor cannot be compiled.

    Unknown table or column references, non-equality cross-source joins,
    tables not connected by joins, and joins the target dialect cannot
    express all raise this error. It is never retried.
    """

    def __init__(
        self,
        message: str,
        table: str | None = None,
        column: str | None = None,
        data_source_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.table = table
        self.column = column
        self.data_source_id = data_source_id


class MergeSemanticsError(QueryEngineError):
    """Raised for join type and connective combinations the merge engine cannot honor."""

    pass


class PartialExecutionFailure(QueryEngineError):
    """Raised when one sub-query of a federated plan fails.

    The whole request fails; no partial merge result is ever returned.
    """

    def __init__(self, source_id: int, cause: BaseException) -> None:
        super().__init__(f"Sub-query against data source {source_id} failed: {cause}")
        self.source_id = source_id
        self.cause = cause

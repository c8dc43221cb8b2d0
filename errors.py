"""Exception types shared by the report pipeline and the budgeting modules."""


class BudgetReportsError(Exception):
    """Base class for application errors."""


class QueryError(BudgetReportsError):
    """A read against the data store failed.

    The driver exception is chained as ``__cause__``.
    """


class ValidationError(BudgetReportsError, ValueError):
    """Input rejected before anything was written."""


class NotFoundError(BudgetReportsError, LookupError):
    """A referenced budget, category, assignment or census row does not exist."""

# chempal/suppliers/exceptions.py

"""Exceptions raised inside supplier adapters.

None of these escape :meth:`SupplierBase.execute`; they exist so that
adapter code can bail out of deep call chains and the base class can
log the cause per adapter or per candidate.
"""


class SupplierError(Exception):
    """Base exception for all supplier-related errors."""

    def __init__(self, message: str, supplier_name: str | None = None) -> None:
        super().__init__(message)
        self.supplier_name = supplier_name

    def __str__(self) -> str:
        message = super().__str__()
        if self.supplier_name:
            return f"[{self.supplier_name}] {message}"
        return message


class RequestLimitExceeded(SupplierError):
    """Raised when an adapter hits its per-query HTTP request ceiling."""

    def __init__(self, supplier_name: str, limit: int) -> None:
        super().__init__(
            f"HTTP request limit of {limit} reached", supplier_name
        )
        self.limit = limit


class InvalidResponseError(SupplierError):
    """Raised when a supplier response is missing or has an unexpected shape."""

    def __init__(
        self,
        message: str,
        supplier_name: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message, supplier_name)
        self.url = url


class SearchAborted(SupplierError):
    """Raised at a request boundary once the shared abort signal is set."""

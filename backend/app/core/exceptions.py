"""
Domain exceptions.

Invoice-number failures are split by cause so operators can tell a
misconfigured caller, a storage problem and a formatting bug apart:

  InvoiceNumberError
    ├── AllocatorConfigurationError   no session/transaction supplied
    ├── SequenceStorageError          locked read / insert / update failed
    ├── InvoiceNumberInvariantError   generated number broke the WC-YYYY-NNNN contract
    └── InvoiceNumberFormatError      caller-supplied string is not an invoice number
"""


class InvoiceNumberError(Exception):
    """Base class for invoice-number allocation and parsing errors."""


class AllocatorConfigurationError(InvoiceNumberError):
    pass


class SequenceStorageError(InvoiceNumberError):
    def __init__(self, year: int, message: str):
        self.year = year
        super().__init__(f"Failed to generate invoice number for {year}: {message}")


class InvoiceNumberInvariantError(InvoiceNumberError):
    pass


class InvoiceNumberFormatError(InvoiceNumberError, ValueError):
    pass


class InvoiceValidationError(Exception):
    """Invoice payload rejected before any number was allocated."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

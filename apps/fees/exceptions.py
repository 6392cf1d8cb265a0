# fees/exceptions.py

"""
Errors raised by the fee import pipeline.

Batch-level problems (unreadable file, too few lines, import already
running) are raised to the caller. Row-level problems are collected into an
ImportResult and never raised past the importer; CreationError is how a
create call tells the importer why a single row was rejected.
"""

from django.core.exceptions import ValidationError


class FeeImportError(Exception):
    """Base class for batch-level import failures"""
    pass


class MalformedCSVError(ValidationError):
    """CSV text is unreadable or has no data rows"""

    def __init__(self, message="CSV file must have at least a header row and one data row"):
        super().__init__(message, code='malformed_csv')


class ImportInProgressError(FeeImportError):
    """Another import of the same kind is running for the school"""
    pass


class CreationError(Exception):
    """
    A create call rejected a single row.

    kind is one of:
        duplicate  - the record already exists
        validation - the store refused the values
        transport  - the store could not be reached or failed unexpectedly
    """

    DUPLICATE = 'duplicate'
    VALIDATION = 'validation'
    TRANSPORT = 'transport'

    KINDS = (DUPLICATE, VALIDATION, TRANSPORT)

    def __init__(self, message, kind=VALIDATION):
        if kind not in self.KINDS:
            raise ValueError(f"Unknown creation error kind: {kind}")
        super().__init__(message)
        self.message = message
        self.kind = kind

    @property
    def is_duplicate(self):
        return self.kind == self.DUPLICATE

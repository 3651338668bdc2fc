# assetmap/exceptions.py
# Error types raised by the Excel stores, the worker and the facade.


class StoreError(Exception):
    """Base class for data-store failures."""


class MissingSheetError(StoreError, LookupError):
    """A required worksheet is absent from a workbook."""

    def __init__(self, sheet_name: str, path: str = None):
        self.sheet_name = sheet_name
        self.path = path
        where = f" in {path}" if path else ""
        super().__init__(f"Missing sheet '{sheet_name}'{where}")


class WorkerError(StoreError):
    """A command failed inside the Excel worker; carries the worker's message."""

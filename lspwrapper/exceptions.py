"""
LSPWRAPPER Exceptions
=====================

Custom exception classes for the land surface parameter wrapper.
"""

from typing import Optional


class LSPError(Exception):
    """Base exception for LSPWRAPPER errors."""

    pass


class ConfigurationError(LSPError):
    """Exception raised for configuration-related errors."""

    pass


class ValidationError(LSPError):
    """Exception raised for input validation errors."""

    pass


class LogFileExistsError(ValidationError):
    """Exception raised when the requested log file already exists."""

    pass


class DEMError(LSPError):
    """Exception raised for DEM-related errors."""

    pass


class SagaError(LSPError):
    """
    Exception raised when a SAGA GIS tool call fails.

    Attributes:
        library: SAGA tool library (e.g. ``ta_hydrology``)
        tool_id: Tool number within the library
        returncode: Exit status of ``saga_cmd`` (None if it never ran)
        stderr: Captured standard error
    """

    def __init__(
        self,
        message: str,
        library: Optional[str] = None,
        tool_id: Optional[int] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.library = library
        self.tool_id = tool_id
        self.returncode = returncode
        self.stderr = stderr

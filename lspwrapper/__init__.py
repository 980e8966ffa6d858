"""
LSPWRAPPER - Land Surface Parameters from DEMs
==============================================

A Python wrapper around SAGA GIS that derives land surface parameters
from a Digital Elevation Model with a single call.

Key Features:
- Analytical hillshade and slope (Zevenbergen & Thorne 1987)
- Topographic position index and relative elevation for a given radius
- Topographic wetness index with pseudo or true specific catchment area
- Potential incoming solar radiation over a date range
- Existing outputs are never recomputed
- Python API and command-line interface

License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .core import LandSurfaceParameters, LSPResult, lsp
from .exceptions import (
    LSPError,
    ConfigurationError,
    DEMError,
    LogFileExistsError,
    SagaError,
    ValidationError,
)
from .saga import SagaEnvironment

__all__ = [
    "lsp",
    "LandSurfaceParameters",
    "LSPResult",
    "SagaEnvironment",
    "LSPError",
    "ConfigurationError",
    "DEMError",
    "LogFileExistsError",
    "SagaError",
    "ValidationError",
]

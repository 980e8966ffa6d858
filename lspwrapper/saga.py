"""
LSPWRAPPER SAGA Environment
===========================

Thin interface to the SAGA GIS command line (``saga_cmd``).
Holds the workspace, executable location and core count, and turns
parameter dictionaries into ``saga_cmd`` invocations.
"""

import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import psutil

from .exceptions import SagaError

SAGA_EXECUTABLE = "saga_cmd"

# SAGA grid sidecar extensions, header first
GRID_EXTENSIONS = (".sgrd", ".sdat", ".mgrd", ".prj")


def grid_name(name: str) -> str:
    """Return a grid name without the SAGA header extension."""
    return name[: -len(".sgrd")] if name.endswith(".sgrd") else name


def grid_file(name: str) -> str:
    """Return the SAGA header file name for a grid name."""
    return f"{grid_name(name)}.sgrd"


class SagaEnvironment:
    """
    Execution environment for SAGA GIS tools.

    All tools run with the workspace as working directory, so grid
    names passed as parameters resolve relative to it.

    Attributes:
        workspace (Path): Directory where tools run and grids are written
        path (Optional[str]): saga_cmd executable or directory containing it
        cores (int): Number of cores SAGA may use
        timeout (Optional[float]): Per-call timeout in seconds
        logger (logging.Logger): Logger instance
    """

    def __init__(
        self,
        workspace: Union[str, Path] = ".",
        path: Optional[Union[str, Path]] = None,
        cores: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize SAGA environment.

        Args:
            workspace: Working directory for SAGA calls
            path: saga_cmd executable, or the directory holding it
            cores: Number of cores (defaults to all logical CPUs)
            timeout: Optional timeout in seconds for each tool call
        """
        self.workspace = Path(workspace)
        self.path = str(path) if path is not None else None
        self.cores = cores if cores else (psutil.cpu_count() or 1)
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @property
    def executable(self) -> str:
        """Resolve the saga_cmd executable."""
        if self.path is None:
            found = shutil.which(SAGA_EXECUTABLE)
            return found or SAGA_EXECUTABLE

        path = Path(self.path)
        if path.is_dir():
            return str(path / SAGA_EXECUTABLE)
        return str(path)

    def grid_exists(self, name: str) -> bool:
        """Check whether a SAGA grid exists in the workspace."""
        return (self.workspace / grid_file(name)).exists()

    def grid_path(self, name: str) -> Path:
        """Path of a grid header inside the workspace."""
        return self.workspace / grid_file(name)

    @staticmethod
    def format_value(value: Any) -> str:
        """Format a parameter value for the SAGA command line."""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def build_command(
        self, library: str, tool_id: Union[int, str], params: Optional[Dict[str, Any]] = None
    ) -> List[str]:
        """
        Build a saga_cmd command line.

        Args:
            library: Tool library name (e.g. 'ta_lighting')
            tool_id: Tool number or name within the library
            params: Tool parameters keyed by SAGA identifier

        Returns:
            Command as a list of arguments
        """
        command = [self.executable, f"--cores={self.cores}", library, str(tool_id)]
        for key, value in (params or {}).items():
            if value is None:
                continue
            command.extend([f"-{key}", self.format_value(value)])
        return command

    def _execute(self, command: List[str]) -> subprocess.CompletedProcess:
        self.workspace.mkdir(parents=True, exist_ok=True)
        return subprocess.run(
            command,
            cwd=str(self.workspace),
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )

    def run_tool(
        self, library: str, tool_id: Union[int, str], params: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Run a SAGA tool and return its console output.

        Args:
            library: Tool library name
            tool_id: Tool number within the library
            params: Tool parameters keyed by SAGA identifier

        Returns:
            Captured standard output of saga_cmd

        Raises:
            SagaError: If saga_cmd is missing, times out or fails
        """
        command = self.build_command(library, tool_id, params)
        self.logger.info(f"Running SAGA tool {library} {tool_id}")
        self.logger.debug(f"Executing: {' '.join(command)}")

        start_time = time.time()
        try:
            result = self._execute(command)
        except FileNotFoundError as e:
            raise SagaError(
                f"SAGA executable not found: {command[0]} ({e})",
                library=library,
                tool_id=tool_id,
            )
        except subprocess.TimeoutExpired:
            raise SagaError(
                f"SAGA tool {library} {tool_id} timed out after {self.timeout}s",
                library=library,
                tool_id=tool_id,
            )
        execution_time = time.time() - start_time

        if result.stdout:
            self.logger.debug(result.stdout.rstrip())

        if result.returncode != 0:
            self.logger.error(
                f"SAGA tool {library} {tool_id} failed with return code "
                f"{result.returncode}: {result.stderr.strip()}"
            )
            raise SagaError(
                f"SAGA tool {library} {tool_id} failed: {result.stderr.strip()}",
                library=library,
                tool_id=tool_id,
                returncode=result.returncode,
                stderr=result.stderr,
            )

        self.logger.info(
            f"SAGA tool {library} {tool_id} completed in {execution_time:.1f}s"
        )
        return result.stdout

    def get_usage(self, library: str, tool_id: Union[int, str]) -> str:
        """
        Return the usage text SAGA prints for a tool.

        saga_cmd exits non-zero when a tool is called without its
        required parameters, so the exit status is not checked here.
        """
        command = [self.executable, library, str(tool_id)]
        try:
            result = self._execute(command)
        except FileNotFoundError as e:
            raise SagaError(f"SAGA executable not found: {command[0]} ({e})")
        except subprocess.TimeoutExpired:
            raise SagaError(f"SAGA usage query for {library} {tool_id} timed out")
        return result.stdout or result.stderr

    def version(self) -> str:
        """Return the saga_cmd version string."""
        command = [self.executable, "--version"]
        try:
            result = self._execute(command)
        except FileNotFoundError as e:
            raise SagaError(f"SAGA executable not found: {command[0]} ({e})")
        except subprocess.TimeoutExpired:
            raise SagaError("SAGA version query timed out")
        if result.returncode != 0:
            raise SagaError(
                f"SAGA version query failed: {result.stderr.strip()}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result.stdout.strip()

    # Named tool calls

    def import_gdal(self, in_file: Union[str, Path], out_grid: str) -> str:
        """Import a GDAL-readable raster as a SAGA grid."""
        return self.run_tool(
            "io_gdal",
            0,
            {"FILES": str(Path(in_file).resolve()), "GRIDS": grid_file(out_grid)},
        )

    def hillshade(self, dem: str, out_grid: str) -> str:
        """Analytical hillshading (standard method, sun at 315/45)."""
        return self.run_tool(
            "ta_lighting",
            0,
            {
                "ELEVATION": grid_file(dem),
                "SHADE": grid_file(out_grid),
                "METHOD": 0,
                "AZIMUTH": 315,
                "DECLINATION": 45,
                "EXAGGERATION": 4,
            },
        )

    def slope(self, dem: str, out_grid: str) -> str:
        """Slope in radians, 9 parameter 2nd order polynom (Zevenbergen & Thorne 1987)."""
        return self.run_tool(
            "ta_morphometry",
            0,
            {
                "ELEVATION": grid_file(dem),
                "SLOPE": grid_file(out_grid),
                "METHOD": 6,
                "UNIT_SLOPE": 0,
            },
        )

    def fill_sinks_xxl(self, dem: str, out_grid: str, minslope: float = 0.01) -> str:
        """Fill sinks XXL (Wang & Liu 2006)."""
        return self.run_tool(
            "ta_preprocessor",
            5,
            {
                "ELEV": grid_file(dem),
                "FILLED": grid_file(out_grid),
                "MINSLOPE": minslope,
            },
        )

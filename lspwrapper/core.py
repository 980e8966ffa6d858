"""
LSPWRAPPER Core Implementation
==============================

Computes land surface parameters (hillshade, slope, topographic position
index, relative elevation, topographic wetness index and potential
incoming solar radiation) from a DEM by sequencing SAGA GIS tool calls.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .config import DEFAULT_RADIUS, environment_from_config, load_config
from .exceptions import LogFileExistsError, ValidationError
from .relative_elevation import compute_relative_elevation
from .saga import GRID_EXTENSIONS, SagaEnvironment, grid_file

PACKAGE_LOGGER = "lspwrapper"

DEM_GRID = "dem"
SVF_GRID = "svf"

# Intermediate grids written while computing the wetness index
TWI_INTERMEDIATES = ("dem_filled", "slope_filled_radians", "flow_width", "sca", "tca")

# Grid names used when every variable is requested
DEFAULT_NAMES = {
    "hillshade": "hs",
    "slope": "slope",
    "twi": "twi",
    "pisr": "pisr",
}

SAGA_VARIABLES = ("hillshade", "slope", "tpi", "twi", "pisr")


@dataclass
class LSPResult:
    """Outcome of a land surface parameter run."""

    outputs: Dict[str, Path] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    removed_files: List[Path] = field(default_factory=list)


class _ParentForwarder(logging.Handler):
    """Hand records to the handlers above a logger, as propagation would."""

    def __init__(self, logger: logging.Logger, level: int):
        super().__init__(level)
        self.start = logger.parent

    def emit(self, record: logging.LogRecord) -> None:
        found = False
        logger = self.start
        while logger:
            for handler in logger.handlers:
                found = True
                if record.levelno >= handler.level:
                    handler.handle(record)
            if not logger.propagate:
                break
            logger = logger.parent
        if not found and logging.lastResort and record.levelno >= logging.lastResort.level:
            logging.lastResort.handle(record)


@contextmanager
def capture_log(log_file: Union[str, Path]) -> Iterator[Path]:
    """
    Write every package log record to ``log_file`` while the block runs.

    The package logger is lowered to DEBUG for the file only. Handlers
    further up (the console) still see just the records that passed the
    level in effect before the block.

    Raises:
        LogFileExistsError: If the log file already exists
    """
    log_path = Path(log_file)
    if log_path.exists():
        raise LogFileExistsError(f"Log file exists, give new name: {log_path}")

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    previous_level = package_logger.level
    previous_propagate = package_logger.propagate
    forwarder = _ParentForwarder(package_logger, package_logger.getEffectiveLevel())

    package_logger.addHandler(handler)
    package_logger.addHandler(forwarder)
    package_logger.propagate = False
    package_logger.setLevel(logging.DEBUG)
    try:
        yield log_path
    finally:
        package_logger.removeHandler(forwarder)
        package_logger.removeHandler(handler)
        package_logger.propagate = previous_propagate
        package_logger.setLevel(previous_level)
        handler.close()


class LandSurfaceParameters:
    """
    Land surface parameter calculator for a single DEM.

    Each variable method checks for an existing output grid first and
    skips the computation if one is found, so repeated runs only fill in
    what is missing.

    Attributes:
        in_dem (Path): Path to the input DEM (any GDAL-readable raster)
        config (Dict[str, Any]): Configuration parameters
        env (SagaEnvironment): SAGA execution environment
        logger (logging.Logger): Logger instance
    """

    def __init__(
        self,
        in_dem: Union[str, Path],
        env: Optional[SagaEnvironment] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the calculator.

        Args:
            in_dem: Path to DEM raster file
            env: Optional SAGA environment (built from config if omitted)
            config: Optional configuration dictionary
        """
        self.in_dem = Path(in_dem)
        self.config = config or load_config()
        self.env = env or environment_from_config(self.config)
        self.logger = logging.getLogger(__name__)
        self._dem_imported = False

    @property
    def workspace(self) -> Path:
        return self.env.workspace

    def _option(self, name: str, value: Any) -> Any:
        """Return ``value`` or, if it is None, the configured default."""
        if value is not None:
            return value
        return self.config.get("lsp", {}).get(name)

    def _resolve_radius(self, radius: Optional[float]) -> float:
        if radius is None:
            self.logger.warning(
                f"No radius was given! Using default value of {DEFAULT_RADIUS} map units."
            )
            return DEFAULT_RADIUS
        if radius <= 0:
            raise ValidationError(f"Radius must be positive, got {radius}")
        return radius

    def _exists(self, name: str, label: str) -> bool:
        if self.env.grid_exists(name):
            self.logger.warning(f"{label} file already exists!")
            return True
        return False

    def ensure_dem(self) -> None:
        """Import the input DEM as the SAGA grid ``dem`` unless it is present."""
        if self._dem_imported or self.env.grid_exists(DEM_GRID):
            return
        self.logger.info(f"Importing DEM: {self.in_dem}")
        self.env.import_gdal(self.in_dem, DEM_GRID)
        self._dem_imported = True

    def hillshade(self, name: str) -> Optional[Path]:
        """Analytical hillshade of the DEM."""
        if self._exists(name, "Hillshade"):
            return None
        self.ensure_dem()
        self.env.hillshade(DEM_GRID, name)
        return self.env.grid_path(name)

    def slope(self, name: str) -> Optional[Path]:
        """
        Slope of the unfilled DEM, in radians.

        Zevenbergen, L.W., Thorne, C.R., 1987. Quantitative analysis of
        land surface topography. Earth Surface Processes and Landforms
        12, 47-56.
        """
        if self._exists(name, "Slope"):
            return None
        self.ensure_dem()
        self.env.slope(DEM_GRID, name)
        return self.env.grid_path(name)

    def tpi(self, name: str, radius: Optional[float] = None) -> Optional[Path]:
        """Topographic position index; radius in map units."""
        radius = self._resolve_radius(radius)
        if self._exists(name, "TPI"):
            return None
        self.ensure_dem()
        self.env.run_tool(
            "ta_morphometry",
            18,
            {
                "DEM": grid_file(DEM_GRID),
                "TPI": grid_file(name),
                "RADIUS_MIN": 0,
                "RADIUS_MAX": radius,
            },
        )
        return self.env.grid_path(name)

    def relative_elevation(self, name: str, radius: Optional[float] = None) -> Optional[Path]:
        """Elevation above the local minimum, computed from the input DEM."""
        radius = self._resolve_radius(radius)
        if self._exists(name, "Relative elevation"):
            return None
        return compute_relative_elevation(self.in_dem, radius, name, self.workspace)

    def twi(self, name: str, use_sca: bool = False) -> Optional[Path]:
        """
        Topographic wetness index.

        With ``use_sca`` the index uses the specific catchment area
        (flow width after Quinn et al. 1991); otherwise the total
        catchment area is converted to a pseudo specific catchment area
        by SAGA itself (TCA/L).
        """
        if self._exists(name, "TWI"):
            return None
        self.ensure_dem()

        self.env.fill_sinks_xxl(DEM_GRID, "dem_filled", minslope=0.01)
        self.env.slope("dem_filled", "slope_filled_radians")

        # Multiple flow direction, convergence after Freeman 1991
        self.env.run_tool(
            "ta_hydrology",
            0,
            {
                "ELEVATION": grid_file("dem_filled"),
                "FLOW": grid_file("tca"),
                "METHOD": 4,
                "LINEAR_DO": 0,
                "CONVERGENCE": 1.1,
                "NO_NEGATIVES": 1,
            },
        )

        if use_sca:
            self.env.run_tool(
                "ta_hydrology",
                19,
                {
                    "DEM": grid_file("dem_filled"),
                    "WIDTH": grid_file("flow_width"),
                    "TCA": grid_file("tca"),
                    "SCA": grid_file("sca"),
                    "METHOD": 1,
                },
            )
            area, conversion = "sca", 0
        else:
            area, conversion = "tca", 1

        self.env.run_tool(
            "ta_hydrology",
            20,
            {
                "SLOPE": grid_file("slope_filled_radians"),
                "AREA": grid_file(area),
                "TWI": grid_file(name),
                "CONV": conversion,
                "METHOD": 0,
            },
        )
        return self.env.grid_path(name)

    def remove_twi_intermediates(self) -> List[Path]:
        """Delete intermediate wetness index grids that exist in the workspace."""
        removed = []
        for grid in TWI_INTERMEDIATES:
            for extension in GRID_EXTENSIONS:
                path = self.workspace / f"{grid}{extension}"
                if path.exists():
                    path.unlink()
                    removed.append(path)
        self.logger.info(f"Removed {len(removed)} intermediate TWI files")
        return removed

    @staticmethod
    def pisr_dates(
        start_day: int,
        end_day: int,
        start_month: int,
        end_month: int,
        year: int,
    ) -> Dict[str, str]:
        """
        Validate the solar radiation period and format it for SAGA.

        Returns:
            Dict with ``DAY`` and ``DAY_STOP`` as ``M/D/YYYY`` strings

        Raises:
            ValidationError: If a date is invalid or the period is reversed
        """
        try:
            start = date(year, start_month, start_day)
            end = date(year, end_month, end_day)
        except ValueError as e:
            raise ValidationError(f"Invalid PISR date: {e}")
        if start > end:
            raise ValidationError(f"PISR start date {start} is after end date {end}")
        return {
            "DAY": f"{start.month}/{start.day}/{start.year}",
            "DAY_STOP": f"{end.month}/{end.day}/{end.year}",
        }

    def pisr_settings(
        self,
        start_day: Optional[int] = None,
        end_day: Optional[int] = None,
        start_month: Optional[int] = None,
        end_month: Optional[int] = None,
        day_step: Optional[int] = None,
        time_step: Optional[float] = None,
        year: Optional[int] = None,
        latitude: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Resolve the solar radiation settings against the configured
        defaults and validate them.

        Returns:
            Dict of settings keyed like the :meth:`pisr` arguments

        Raises:
            ValidationError: If the period, a step or the latitude is invalid
        """
        settings = {
            "start_day": self._option("pisr_start_day", start_day),
            "end_day": self._option("pisr_end_day", end_day),
            "start_month": self._option("pisr_start_month", start_month),
            "end_month": self._option("pisr_end_month", end_month),
            "day_step": self._option("pisr_day_step", day_step),
            "time_step": self._option("pisr_time_step", time_step),
            "year": self._option("pisr_year", year),
            "latitude": self._option("pisr_latitude", latitude),
        }

        self.pisr_dates(
            settings["start_day"],
            settings["end_day"],
            settings["start_month"],
            settings["end_month"],
            settings["year"],
        )
        if settings["day_step"] <= 0 or settings["time_step"] <= 0:
            raise ValidationError(
                f"PISR steps must be positive (day step {settings['day_step']}, "
                f"time step {settings['time_step']})"
            )
        if not -90 <= settings["latitude"] <= 90:
            raise ValidationError(f"Invalid latitude: {settings['latitude']}")
        return settings

    def pisr(
        self,
        name: str,
        start_day: Optional[int] = None,
        end_day: Optional[int] = None,
        start_month: Optional[int] = None,
        end_month: Optional[int] = None,
        day_step: Optional[int] = None,
        time_step: Optional[float] = None,
        year: Optional[int] = None,
        latitude: Optional[float] = None,
    ) -> Optional[Path]:
        """
        Total potential incoming solar radiation (Bohner & Selige 2009).

        Sky view factor settings follow Aalto et al. 2017; omitted
        period parameters use the configured defaults.
        """
        settings = self.pisr_settings(
            start_day, end_day, start_month, end_month, day_step, time_step, year, latitude
        )
        start_day, end_day = settings["start_day"], settings["end_day"]
        start_month, end_month = settings["start_month"], settings["end_month"]
        day_step, time_step = settings["day_step"], settings["time_step"]
        latitude = settings["latitude"]
        days = self.pisr_dates(start_day, end_day, start_month, end_month, settings["year"])

        if self._exists(name, "PISR"):
            return None
        self.ensure_dem()

        self.env.run_tool(
            "ta_lighting",
            3,
            {
                "DEM": grid_file(DEM_GRID),
                "SVF": grid_file(SVF_GRID),
                "NDIRS": 16,
                "RADIUS": 10000,
            },
        )

        self.logger.info(
            f"Calculating Potential Incoming Solar Radiation from months {start_month} "
            f"to {end_month}, with day step of {day_step} and time step of "
            f"{time_step} hours"
        )
        self.logger.info(
            f"Start and end dates for the first and last month are "
            f"{start_day} and {end_day}, respectively"
        )

        self.env.run_tool(
            "ta_lighting",
            2,
            {
                "GRD_DEM": grid_file(DEM_GRID),
                "GRD_SVF": grid_file(SVF_GRID),
                "UNITS": 0,
                "GRD_TOTAL": grid_file(name),
                "LATITUDE": latitude,
                "DAY": days["DAY"],
                "DAY_STOP": days["DAY_STOP"],
                "DAYS_STEP": day_step,
                "PERIOD": 2,
                "HOUR_RANGE_MIN": 0,
                "HOUR_RANGE_MAX": 24,
                "HOUR_STEP": time_step,
            },
        )
        return self.env.grid_path(name)

    def run(
        self,
        calculate_all: bool = False,
        hillshade: Optional[str] = None,
        slope: Optional[str] = None,
        twi: Optional[str] = None,
        pisr: Optional[str] = None,
        tpi: Optional[str] = None,
        rel_ele: Optional[str] = None,
        tpi_radius: Optional[float] = None,
        rel_ele_radius: Optional[float] = None,
        rm_twi_tmp_files: Optional[bool] = None,
        use_sca: Optional[bool] = None,
        pisr_start_day: Optional[int] = None,
        pisr_end_day: Optional[int] = None,
        pisr_start_month: Optional[int] = None,
        pisr_end_month: Optional[int] = None,
        pisr_day_step: Optional[int] = None,
        pisr_time_step: Optional[float] = None,
        pisr_year: Optional[int] = None,
        pisr_latitude: Optional[float] = None,
        log_file: Optional[Union[str, Path]] = None,
    ) -> LSPResult:
        """
        Compute every requested land surface parameter.

        A variable is requested by giving its output grid name, or all
        of them at once with ``calculate_all``. See :func:`lsp` for the
        parameter defaults.

        Returns:
            LSPResult with written outputs and skipped variables

        Raises:
            LogFileExistsError: If the log file already exists
            ValidationError: If parameters are invalid
            SagaError: If a SAGA tool fails
            DEMError: If the DEM cannot be read for relative elevation
        """
        tpi_radius = self._option("tpi_radius", tpi_radius)
        rel_ele_radius = self._option("rel_ele_radius", rel_ele_radius)
        rm_twi_tmp_files = self._option("rm_twi_tmp_files", rm_twi_tmp_files)
        use_sca = self._option("use_sca", use_sca)

        log_path = Path(self._option("log_file", log_file))
        if not log_path.is_absolute():
            log_path = self.workspace / log_path

        with capture_log(log_path):
            if calculate_all:
                hillshade = DEFAULT_NAMES["hillshade"]
                slope = DEFAULT_NAMES["slope"]
                twi = DEFAULT_NAMES["twi"]
                pisr = DEFAULT_NAMES["pisr"]
                # Names carry the radius, including the default one
                tpi_suffix = DEFAULT_RADIUS if tpi_radius is None else tpi_radius
                rel_ele_suffix = DEFAULT_RADIUS if rel_ele_radius is None else rel_ele_radius
                tpi = f"tpi_{tpi_suffix:g}"
                rel_ele = f"relative_elevation_{rel_ele_suffix:g}"

            requested = {
                "hillshade": hillshade,
                "slope": slope,
                "tpi": tpi,
                "rel_ele": rel_ele,
                "twi": twi,
                "pisr": pisr,
            }
            self.logger.info(
                f"Computing {', '.join(k for k, v in requested.items() if v) or 'nothing'} "
                f"from {self.in_dem}"
            )

            # Every setting is checked before the first tool runs
            if tpi:
                tpi_radius = self._resolve_radius(tpi_radius)
            if rel_ele:
                rel_ele_radius = self._resolve_radius(rel_ele_radius)
            if pisr:
                pisr_settings = self.pisr_settings(
                    start_day=pisr_start_day,
                    end_day=pisr_end_day,
                    start_month=pisr_start_month,
                    end_month=pisr_end_month,
                    day_step=pisr_day_step,
                    time_step=pisr_time_step,
                    year=pisr_year,
                    latitude=pisr_latitude,
                )

            result = LSPResult()

            # Relative elevation reads the input DEM directly
            if any(requested[variable] for variable in SAGA_VARIABLES):
                self.ensure_dem()

            def record(variable: str, output: Optional[Path]) -> None:
                if output is None:
                    result.skipped.append(variable)
                else:
                    result.outputs[variable] = output

            if hillshade:
                record("hillshade", self.hillshade(hillshade))

            if slope:
                record("slope", self.slope(slope))

            if tpi:
                record("tpi", self.tpi(tpi, tpi_radius))

            if rel_ele:
                record("rel_ele", self.relative_elevation(rel_ele, rel_ele_radius))

            if twi:
                record("twi", self.twi(twi, use_sca=use_sca))
                if rm_twi_tmp_files:
                    result.removed_files = self.remove_twi_intermediates()

            if pisr:
                record("pisr", self.pisr(pisr, **pisr_settings))

            self.logger.info(
                f"Finished: {len(result.outputs)} computed, {len(result.skipped)} skipped"
            )
            return result


def lsp(
    in_dem: Union[str, Path],
    calculate_all: bool = False,
    hillshade: Optional[str] = None,
    slope: Optional[str] = None,
    twi: Optional[str] = None,
    pisr: Optional[str] = None,
    tpi: Optional[str] = None,
    rel_ele: Optional[str] = None,
    tpi_radius: Optional[float] = None,
    rel_ele_radius: Optional[float] = None,
    rm_twi_tmp_files: Optional[bool] = None,
    use_sca: Optional[bool] = None,
    pisr_start_day: Optional[int] = None,
    pisr_end_day: Optional[int] = None,
    pisr_start_month: Optional[int] = None,
    pisr_end_month: Optional[int] = None,
    pisr_day_step: Optional[int] = None,
    pisr_time_step: Optional[float] = None,
    pisr_year: Optional[int] = None,
    pisr_latitude: Optional[float] = None,
    log_file: Optional[Union[str, Path]] = None,
    env: Optional[SagaEnvironment] = None,
    config: Optional[Dict[str, Any]] = None,
) -> LSPResult:
    """
    Calculate land surface parameters from a DEM.

    A parameter is calculated when an output grid name is given for it.
    Outputs are SAGA grids written to the environment workspace, and an
    existing output is never recomputed.

    Args:
        in_dem: Path to the input DEM
        calculate_all: Compute every variable with default names
            (hs, slope, twi, pisr, tpi_<radius>, relative_elevation_<radius>)
        hillshade: Output name for analytical hillshade
        slope: Output name for slope (radians)
        twi: Output name for topographic wetness index
        pisr: Output name for potential incoming solar radiation
        tpi: Output name for topographic position index
        rel_ele: Output name for relative elevation
        tpi_radius: TPI radius in map units (50 with a warning if omitted)
        rel_ele_radius: Relative elevation radius in map units
            (50 with a warning if omitted)
        rm_twi_tmp_files: Delete intermediate TWI grids (default False)
        use_sca: Use specific instead of pseudo-specific catchment area
            for TWI (default False)
        pisr_start_day: Day of month of the first date (default 20)
        pisr_end_day: Day of month of the last date (default 23)
        pisr_start_month: Month of the first date (default 3)
        pisr_end_month: Month of the last date (default 9)
        pisr_day_step: Days between evaluations (default 6)
        pisr_time_step: Hours between evaluations (default 4)
        pisr_year: Year of the period (default 2019)
        pisr_latitude: Latitude in degrees (default 69)
        log_file: Log file for this run, must not exist
            (default log_file.txt in the workspace)
        env: SAGA environment (built from config if omitted)
        config: Configuration dictionary (defaults if omitted)

    Returns:
        LSPResult with written outputs and skipped variables
    """
    calculator = LandSurfaceParameters(in_dem, env=env, config=config)
    return calculator.run(
        calculate_all=calculate_all,
        hillshade=hillshade,
        slope=slope,
        twi=twi,
        pisr=pisr,
        tpi=tpi,
        rel_ele=rel_ele,
        tpi_radius=tpi_radius,
        rel_ele_radius=rel_ele_radius,
        rm_twi_tmp_files=rm_twi_tmp_files,
        use_sca=use_sca,
        pisr_start_day=pisr_start_day,
        pisr_end_day=pisr_end_day,
        pisr_start_month=pisr_start_month,
        pisr_end_month=pisr_end_month,
        pisr_day_step=pisr_day_step,
        pisr_time_step=pisr_time_step,
        pisr_year=pisr_year,
        pisr_latitude=pisr_latitude,
        log_file=log_file,
    )

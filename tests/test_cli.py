#!/usr/bin/env python3
"""
Unit tests for the command line interface (cli.py)
"""

from unittest.mock import Mock, patch

import pytest

from lspwrapper.cli import build_parser, main

from conftest import tool_calls


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep the CLI from reconfiguring the root logger during tests"""
    with patch("lspwrapper.cli.setup_logging"):
        yield


class TestParser:
    """Test cases for argument parsing"""

    def test_compute_arguments(self):
        args = build_parser().parse_args(
            ["compute", "--dem", "dem.tif", "--tpi", "tpi_100", "--tpi-radius", "100", "--use-sca"]
        )

        assert args.command == "compute"
        assert args.tpi == "tpi_100"
        assert args.tpi_radius == 100.0
        assert args.use_sca is True
        assert args.rel_ele_radius is None

    def test_no_command(self):
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 1


class TestCommands:
    """Test cases for command execution"""

    def test_info(self, sample_dem, capsys):
        main(["info", "--dem", str(sample_dem)])

        output = capsys.readouterr().out
        assert "Size: 20x20 pixels" in output
        assert "Elevation range" in output

    def test_compute(self, sample_dem, workspace, mock_saga_run, capsys):
        main(
            [
                "compute",
                "--dem", str(sample_dem),
                "--slope", "slope",
                "--workspace", str(workspace),
                "--saga-path", "saga_cmd",
                "--cores", "2",
            ]
        )

        output = capsys.readouterr().out
        assert "completed successfully" in output
        assert tool_calls(mock_saga_run) == [("io_gdal", "0"), ("ta_morphometry", "0")]
        assert mock_saga_run.call_args_list[0].args[0][1] == "--cores=2"
        assert (workspace / "log_file.txt").exists()

    def test_compute_existing_log_file(self, sample_dem, workspace, mock_saga_run, capsys):
        (workspace / "taken.log").touch()

        with pytest.raises(SystemExit) as excinfo:
            main(
                [
                    "compute",
                    "--dem", str(sample_dem),
                    "--slope", "slope",
                    "--workspace", str(workspace),
                    "--log-file", "taken.log",
                ]
            )

        assert excinfo.value.code == 1
        assert "Log file exists" in capsys.readouterr().err
        mock_saga_run.assert_not_called()

    def test_compute_missing_dem(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main(["compute", "--dem", str(tmp_path / "missing.tif"), "--all"])
        assert excinfo.value.code == 1

    def test_usage(self, workspace, capsys):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value.stdout = "Usage: saga_cmd ta_hydrology 20 [-SLOPE <str>]"
            mock_run.return_value.stderr = ""
            main(["usage", "ta_hydrology", "20", "--saga-path", "saga_cmd", "--workspace", str(workspace)])

        assert "-SLOPE" in capsys.readouterr().out

    def test_saga_version(self, workspace, capsys):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="SAGA Version: 7.3.0\n", stderr="")
            main(["saga-version", "--saga-path", "saga_cmd", "--workspace", str(workspace)])

        assert capsys.readouterr().out.strip() == "saga_cmd: SAGA Version: 7.3.0"
        assert mock_run.call_args.args[0] == ["saga_cmd", "--version"]

    def test_saga_version_missing_executable(self, workspace, capsys):
        with patch("subprocess.run", side_effect=FileNotFoundError("saga_cmd")):
            with pytest.raises(SystemExit) as excinfo:
                main(["saga-version", "--saga-path", "saga_cmd", "--workspace", str(workspace)])

        assert excinfo.value.code == 1
        assert "SAGA executable not found" in capsys.readouterr().err

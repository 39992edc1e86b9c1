"""
Tests for the command line interface.
"""

import json

import pytest

from setreach.cli import create_parser, main


@pytest.fixture
def request_file(tmp_path, request_yaml):
    """Request YAML written to a temporary file."""
    path = tmp_path / "vdp.yaml"
    path.write_text(request_yaml)
    return path


class TestParser:
    """Tests for argument parsing."""

    def test_reach_arguments(self):
        """Test options of the reach command."""
        args = create_parser().parse_args(["reach", "req.yaml", "--json", "-v"])
        assert args.command == "reach"
        assert args.request == "req.yaml"
        assert args.json and args.verbose
        assert args.plot is None

    def test_no_command_prints_help(self, capsys):
        """Test running without a command prints the help text."""
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()


class TestCommands:
    """Tests for the reach and validate commands."""

    def test_validate(self, request_file, capsys):
        """Test validating a correct request."""
        assert main(["validate", str(request_file)]) == 0
        out = capsys.readouterr().out
        assert "Validation passed!" in out
        assert "vdp" in out

    def test_validate_invalid_request(self, tmp_path, capsys):
        """Test validation errors are reported with a non-zero exit code."""
        path = tmp_path / "bad.yaml"
        path.write_text("request:\n  system: {type: linear}\n  initial_set: {inf: [0], sup: [1]}\n"
                        "  options: {t_final: 1}\n")
        assert main(["validate", str(path)]) == 1
        assert "Errors" in capsys.readouterr().err

    def test_reach_json(self, request_file, capsys):
        """Test the JSON summary of a reachability run."""
        assert main(["reach", str(request_file), "--json"]) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["name"] == "vdp"
        assert summary["steps"] == 5
        assert summary["final_time"] == pytest.approx(0.1)
        assert not summary["violated"]
        assert len(summary["final_inf"]) == 2

    def test_reach_text(self, request_file, capsys):
        """Test the plain-text summary."""
        assert main(["reach", str(request_file)]) == 0
        assert "Reachability analysis complete for: vdp" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        """Test a missing request file returns 1."""
        assert main(["reach", str(tmp_path / "missing.yaml")]) == 1
        assert "Error" in capsys.readouterr().err

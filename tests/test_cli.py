"""Tests for the memleak command line interface."""

import json
import os

from typer.testing import CliRunner

from memleak.cli import app

runner = CliRunner()


def test_version():
    """Test the version command."""
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "memleak version" in result.stdout


def test_check_prints_snapshot():
    """Test check prints a JSON snapshot of the cluster."""
    result = runner.invoke(app, ["check", str(os.getpid()), "--log-level", "ERROR"])

    assert result.exit_code == 0, result.output
    snapshot = json.loads(result.stdout.strip().splitlines()[-1])
    process = snapshot["processes"][str(os.getpid())]
    assert process["sample_count"] == 1
    assert process["current_size"] > 0


def test_check_with_limits():
    """Test sizes with units are accepted and reported."""
    result = runner.invoke(
        app,
        ["check", str(os.getpid()), "--total-size-limit", "64G", "--free-size-minimum", "1K", "--log-level", "ERROR"],
    )

    assert result.exit_code == 0, result.output
    snapshot = json.loads(result.stdout.strip().splitlines()[-1])
    assert snapshot["total_size_limit"] == 64 * 1024**3
    assert snapshot["free_size_minimum"] == 1024
    assert snapshot["total_size"] is not None


def test_check_repeated():
    """Test --count runs several checks."""
    result = runner.invoke(app, ["check", str(os.getpid()), "--count", "2", "--interval", "0.1", "--log-level", "ERROR"])

    assert result.exit_code == 0, result.output
    lines = result.stdout.strip().splitlines()
    assert json.loads(lines[-1])["processes"][str(os.getpid())]["sample_count"] == 2


def test_check_requires_processes():
    """Test check refuses to run without anything to monitor."""
    result = runner.invoke(app, ["check"])

    assert result.exit_code != 0


def test_check_invalid_size():
    """Test malformed sizes are reported as bad parameters."""
    result = runner.invoke(app, ["check", str(os.getpid()), "--total-size-limit", "lots"])

    assert result.exit_code != 0


def test_check_processes_with_children():
    """Test explicit process IDs stay monitored alongside the children of a parent."""
    result = runner.invoke(
        app,
        ["check", str(os.getpid()), "--children", str(os.getpid()), "--count", "2", "--interval", "0.1", "--log-level", "ERROR"],
    )

    assert result.exit_code == 0, result.output
    lines = result.stdout.strip().splitlines()
    assert json.loads(lines[-1])["processes"][str(os.getpid())]["sample_count"] == 2

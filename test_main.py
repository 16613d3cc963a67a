#!/usr/bin/env python3
"""
Test Command-Line Entry Point
=============================
"""

import json

import pytest

from main import EXIT_ERROR, EXIT_NO_SOLUTION, EXIT_OK, build_parser, main
from topology import build_scenario_instance
from utils import save_json


def test_scenario_run_writes_result(tmp_path, capsys):
    output = tmp_path / "result.json"
    
    assert main(["--scenario", "--output", str(output)]) == EXIT_OK
    assert "PLACEMENT RESULTS" in capsys.readouterr().out
    
    data = json.loads(output.read_text())
    assert data["status"] == "optimal"
    assert data["solution"]["total_cost"] == 25


def test_instance_file_run(tmp_path):
    path = tmp_path / "scenario.json"
    save_json(build_scenario_instance().to_dict(), path)
    
    assert main([str(path), "--no-symmetry", "--workers", "2"]) == EXIT_OK


def test_infeasible_demo_exit_code():
    assert main(["--demo", "--slots", "3"]) == EXIT_NO_SOLUTION


def test_missing_instance_file_is_an_error(tmp_path):
    assert main([str(tmp_path / "missing.json")]) == EXIT_ERROR


def test_sources_are_mutually_exclusive():
    parser = build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["--demo", "--scenario"])
    with pytest.raises(SystemExit):
        parser.parse_args([])
    
    args = parser.parse_args(["--demo", "--time-limit", "5", "--node-limit", "10"])
    assert args.demo and args.time_limit == 5.0 and args.node_limit == 10

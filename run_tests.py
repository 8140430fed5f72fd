#!/usr/bin/env python3
"""Test runner for the coin recognition engine.

    python run_tests.py unit            # unit tests with coverage
    python run_tests.py integration     # synthetic end-to-end photo and live flows
    python run_tests.py quick           # unit tests, stop at the first failure
    python run_tests.py ci              # everything, XML coverage + JUnit report
"""
import argparse
import os
import subprocess
import sys
import time
from pathlib import Path
from typing import List

PROJECT_ROOT = Path(__file__).parent
COVERAGE_TARGET = "--cov=coinreader"

SUITES = {
    "unit": ["tests/unit/"],
    "integration": ["tests/integration/", "-m", "integration"],
    "all": [],
    "quick": ["tests/unit/", "-x", "--tb=short", "-q", "-m", "not slow"],
    "ci": ["--tb=short", "--junit-xml=test-results.xml"],
    "coverage": [],
}

COVERAGE_REPORTS = {
    "unit": ["term-missing"],
    "all": ["html:htmlcov", "term-missing"],
    "ci": ["xml:coverage.xml", "term"],
    "coverage": ["html:htmlcov", "term-missing", "json:coverage.json"],
}


def build_command(suite: str, coverage: bool = True, verbose: bool = True) -> List[str]:
    cmd = [sys.executable, "-m", "pytest", *SUITES[suite]]
    if verbose and suite not in ("quick", "ci"):
        cmd.append("-v")
    reports = COVERAGE_REPORTS.get(suite, [])
    if reports and (coverage or suite in ("ci", "coverage")):
        cmd.append(COVERAGE_TARGET)
        cmd.extend(f"--cov-report={report}" for report in reports)
    return cmd


def run_suite(suite: str, coverage: bool = True, verbose: bool = True) -> int:
    if suite == "ci":
        os.environ["CI"] = "true"
    cmd = build_command(suite, coverage, verbose)
    print(f"Running {suite} tests: {' '.join(cmd)}")
    result = subprocess.run(cmd, cwd=PROJECT_ROOT).returncode

    if suite == "coverage" and result == 0:
        print("\nHTML report: htmlcov/index.html")
        print("JSON report: coverage.json")
    return result


def main() -> int:
    parser = argparse.ArgumentParser(description="Test runner for the coin recognition engine")
    parser.add_argument("test_type", choices=sorted(SUITES), help="Which suite to run")
    parser.add_argument("--no-coverage", action="store_true", help="Skip coverage for unit/all runs")
    parser.add_argument("--quiet", action="store_true", help="Less pytest output")
    args = parser.parse_args()

    start = time.time()
    try:
        result = run_suite(args.test_type, coverage=not args.no_coverage, verbose=not args.quiet)
    except KeyboardInterrupt:
        print("\n\nTest execution interrupted by user")
        return 130

    print(f"\nTest execution completed in {time.time() - start:.2f} seconds")
    print("All tests passed" if result == 0 else "Some tests failed")
    return result


if __name__ == "__main__":
    sys.exit(main())

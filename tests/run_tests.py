#!/usr/bin/env python3
"""
Test runner for the Hotline QA project

Runs all tests under pytest and generates coverage reports.
"""

import sys
from pathlib import Path

import coverage
import pytest


def run_tests():
    """Run all tests with coverage reporting"""

    test_dir = Path(__file__).parent

    # Lambda modules import as top-level packages (utils, analyze_llm, ...)
    cov = coverage.Coverage(source=[str(test_dir.parent / 'hotline_qa'), str(test_dir.parent / 'client')])
    cov.start()

    exit_code = pytest.main(['-q', str(test_dir)])

    cov.stop()
    cov.save()

    print("\n" + "="*60)
    print("COVERAGE REPORT")
    print("="*60)
    cov.report()

    html_dir = test_dir / 'coverage_html'
    cov.html_report(directory=str(html_dir))
    print(f"\nHTML coverage report generated: {html_dir}/index.html")

    return int(exit_code)


if __name__ == '__main__':
    sys.exit(run_tests())

#!/usr/bin/env python3
"""
Test runner script for vlmeval.

Usage:
    python run_tests.py              # Run all tests
    python run_tests.py --unit       # Models, runtime, and utils tests only
    python run_tests.py --generation # Generation session tests only
    python run_tests.py --coverage   # Run with coverage report
    python run_tests.py --verbose    # Verbose output
"""

import argparse
import subprocess
import sys
from pathlib import Path


def run_command(cmd, description=""):
    """Run a command and report the outcome."""
    print(f"🔧 {description}")
    print(f"Running: {' '.join(cmd)}")

    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.stdout:
        print(result.stdout)
    if result.returncode != 0:
        print(f"❌ Failed with exit code {result.returncode}")
        if result.stderr:
            print(f"Error: {result.stderr}")
        return False
    print("✅ Success!")
    return True


def check_dependencies():
    """Check that the test tooling is installed."""
    missing = []
    for module in ("pytest", "pytest_asyncio", "torch", "transformers"):
        try:
            __import__(module)
        except ImportError:
            missing.append(module)

    if missing:
        print(f"❌ Missing packages: {', '.join(missing)}")
        print("💡 Run: pip install -e '.[test]'")
        return False
    print("✅ Test dependencies available")
    return True


def main():
    parser = argparse.ArgumentParser(description='Run vlmeval tests')
    parser.add_argument('--unit', action='store_true', help='Run models/runtime/utils tests only')
    parser.add_argument('--generation', action='store_true', help='Run generation session tests only')
    parser.add_argument('--coverage', action='store_true', help='Run with coverage report')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    args = parser.parse_args()

    if not Path('tests').exists():
        print("❌ tests/ directory not found. Run from project root.")
        sys.exit(1)

    if not check_dependencies():
        sys.exit(1)

    cmd = [sys.executable, '-m', 'pytest']
    if args.unit:
        cmd.extend(['tests/test_models/', 'tests/test_runtime/', 'tests/test_utils/'])
    elif args.generation:
        cmd.extend(['tests/test_generation/'])
    else:
        cmd.append('tests/')

    if args.verbose:
        cmd.append('-v')
    if args.coverage:
        cmd.extend(['--cov=vlmeval', '--cov-report=html', '--cov-report=term'])

    cmd.extend(['--tb=short', '--strict-markers', '--durations=10'])

    if run_command(cmd, "Running vlmeval tests"):
        print("\n🎉 All tests passed successfully!")
        if args.coverage:
            print("📊 Coverage report generated in htmlcov/")
    else:
        print("\n💥 Some tests failed. Check output above.")
        sys.exit(1)


if __name__ == '__main__':
    main()

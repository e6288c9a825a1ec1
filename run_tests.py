#!/usr/bin/env python3
"""
Script to run tests for the bulk payroll service.
"""
import os
import subprocess
import sys


def run_tests():
    """Run pytest with appropriate settings."""
    # Tests build their own databases and dispatchers; keep the environment inert
    os.environ["DISPATCH_BACKEND"] = "local"
    os.environ["FAKE_PAYMENTS_LATENCY_MS"] = "0"

    cmd = [
        sys.executable, "-m", "pytest",
        "tests/",
        "-v",
        "--tb=short",
        "--cov=app",
        "--cov=worker",
        "--cov-report=term-missing",
        "--cov-report=html:htmlcov"
    ]

    print("Running tests for bulk payroll...")
    print(f"Command: {' '.join(cmd)}")

    try:
        subprocess.run(cmd, check=True)
        print("\n✅ All tests passed!")
        return 0
    except subprocess.CalledProcessError as e:
        print(f"\n❌ Tests failed with exit code {e.returncode}")
        return e.returncode
    except FileNotFoundError:
        print("❌ pytest not found. Please install it with: pip install -e '.[test]'")
        return 1


if __name__ == "__main__":
    sys.exit(run_tests())

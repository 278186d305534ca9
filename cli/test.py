from cli._runner import run


def main() -> None:
    """Run unit tests."""
    import sys

    sys.exit(run(["uv", "run", "pytest", "tests/unit"]))


def test_v() -> None:
    """Run unit tests with verbose output."""
    import sys

    sys.exit(run(["uv", "run", "pytest", "tests/unit", "-v"]))


def test_integration() -> None:
    """Run PostgreSQL integration tests (requires DATABASE_URL_APP)."""
    import sys

    sys.exit(run(["uv", "run", "pytest", "-m", "integration", "tests/integration"]))

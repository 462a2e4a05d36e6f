#!/usr/bin/env python3
"""Development scripts for the CineBook booking engine."""

import asyncio
import subprocess
import sys


def init_db():
    """Create every table in the configured database."""
    from cinebook.database import DatabaseManager

    async def _create():
        async with DatabaseManager() as database:
            await database.create_all()

    asyncio.run(_create())


def migrate():
    """Apply Alembic migrations."""
    subprocess.run(["alembic", "upgrade", "head"])


def test():
    """Run the test suite."""
    subprocess.run(["pytest", "tests/"])


def lint():
    """Run linting and type checking."""
    subprocess.run(["black", "cinebook/"])
    subprocess.run(["mypy", "cinebook/"])


def format_code():
    """Format code with black."""
    subprocess.run(["black", "cinebook/", "tests/"])


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts.py <command>")
        print("Commands: init-db, migrate, test, lint, format-code")
        sys.exit(1)

    command = sys.argv[1].replace("-", "_")
    if hasattr(sys.modules[__name__], command):
        getattr(sys.modules[__name__], command)()
    else:
        print(f"Unknown command: {sys.argv[1]}")
        sys.exit(1)

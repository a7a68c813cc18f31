"""Build version information and a command that prints it.

The module constants are empty by default; a build step may fill them in.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Optional, Sequence

GIT_COMMIT = ""  # short commit id
BUILD_DATE = ""  # ISO 8601, e.g. output of date -u +'%Y-%m-%dT%H:%M:%SZ'
RUNTIME_VERSION = ""  # interpreter version the build was made with


@dataclass(frozen=True)
class VersionInfo:
    """What code a build was made from."""

    git_commit: str
    build_date: str
    runtime_version: str

    def __str__(self) -> str:
        return self.git_commit

    def to_dict(self) -> dict:
        return {
            "gitCommit": self.git_commit,
            "buildDate": self.build_date,
            "runtimeVersion": self.runtime_version,
        }


def get_version() -> VersionInfo:
    """Return the version information recorded for this build."""
    return VersionInfo(
        git_commit=GIT_COMMIT,
        build_date=BUILD_DATE,
        runtime_version=RUNTIME_VERSION,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Print the application version information."""
    parser = argparse.ArgumentParser(
        prog="version",
        description="Print the application version information for the current context.",
    )
    parser.add_argument("args", nargs="*", help=argparse.SUPPRESS)
    parser.parse_args(argv)
    print(repr(get_version()))
    return 0
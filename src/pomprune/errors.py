"""Exception taxonomy shared by all pomprune components."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class PomPruneError(Exception):
    """Base class of all errors raised by pomprune."""


class ConfigurationError(PomPruneError):
    """Missing or invalid input: config keys, patterns, unresolvable expressions.

    Always fatal, never subject to the failure policy.
    """


class ResolutionError(PomPruneError):
    """An artifact could not be resolved (missing, illegal version, cycle)."""


class DescriptorIOError(PomPruneError):
    """A descriptor or manifest could not be read, parsed or written."""

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = str(path)
        super().__init__(f"{self.path}: {message}")


class CheckFailure(PomPruneError):
    """A policy-gated violation under the ``FAIL`` policy."""

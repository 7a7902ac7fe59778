"""Shared failure policy for every policy-gated check."""

from __future__ import annotations

import enum
import logging

from pomprune.errors import CheckFailure, ConfigurationError

logger = logging.getLogger(__name__)


class OnFailure(enum.Enum):
    """What a failed check does: abort, log a warning, or nothing."""

    FAIL = "FAIL"
    WARN = "WARN"
    IGNORE = "IGNORE"

    @classmethod
    def of(cls, raw: str | OnFailure) -> OnFailure:
        """Parse a policy name, case-insensitively."""
        if isinstance(raw, OnFailure):
            return raw
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            msg = f"Invalid failure policy '{raw}'; expected one of {valid}"
            raise ConfigurationError(msg) from None


def report_failure(policy: OnFailure, message: str) -> None:
    """Route *message* through *policy*.

    ``FAIL`` raises :class:`CheckFailure`, ``WARN`` logs at warning level,
    ``IGNORE`` drops the message.
    """
    if policy is OnFailure.FAIL:
        raise CheckFailure(message)
    if policy is OnFailure.WARN:
        logger.warning(message)

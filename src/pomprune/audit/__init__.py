"""Audit domain: banned dependencies, consistency checks and the failure policy."""

from pomprune.audit.banned import (
    BannedDependencyResource,
    BannedViolation,
    audit,
    banned_failure_message,
    banned_set,
    fix_banned,
)
from pomprune.audit.checks import (
    check_deployment_pairing,
    check_required_constraints,
    check_stale,
    run_checks,
)
from pomprune.audit.policy import OnFailure, report_failure

__all__ = [
    "BannedDependencyResource",
    "BannedViolation",
    "OnFailure",
    "audit",
    "banned_failure_message",
    "banned_set",
    "check_deployment_pairing",
    "check_required_constraints",
    "check_stale",
    "fix_banned",
    "report_failure",
    "run_checks",
]

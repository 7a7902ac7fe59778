"""Consistency checks over the managed entries of a BOM.

Every check returns ``None`` when the BOM is consistent, or a message that
names the offending identities.  :func:`run_checks` routes the messages
through the shared failure policy.
"""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING

from pomprune.audit.policy import report_failure
from pomprune.model.gav import Ga

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Sequence

    from pomprune.audit.policy import OnFailure
    from pomprune.bom.constraints import ManagedConstraint
    from pomprune.model.gav import GavSet

DEPLOYMENT_SUFFIX = "-deployment"


def _listing(header: str, items: Iterable[str]) -> str:
    return header + "\n\n    " + "\n    ".join(items) + "\n\n"


def _tracked(constraints: Iterable[ManagedConstraint], tracked_group: str) -> list[ManagedConstraint]:
    return [c for c in constraints if c.dependency.group_id == tracked_group]


def check_stale(
    constraints: Sequence[ManagedConstraint],
    tree_gas: Collection[Ga],
    *,
    tracked_group: str,
    bom_version: str | None,
    bom_name: str,
) -> str | None:
    """Report tracked entries pinned to the BOM's own version that no module provides."""
    stale = sorted(
        {
            str(c.ga)
            for c in _tracked(constraints, tracked_group)
            if c.dependency.version == bom_version and c.ga not in tree_gas
        }
    )
    if not stale:
        return None
    return _listing(
        f"Please remove these non-existent {tracked_group}:* entries managed in {bom_name}:", stale
    )


def check_deployment_pairing(
    constraints: Sequence[ManagedConstraint],
    tree_gas: Collection[Ga],
    *,
    tracked_group: str,
    bom_name: str,
) -> str | None:
    """Report missing runtime or deployment siblings among the tracked entries.

    A ``-deployment`` entry always needs its runtime sibling.  A runtime
    entry needs a ``-deployment`` sibling only when such a module exists in
    the tree.
    """
    managed = {c.ga for c in _tracked(constraints, tracked_group)}
    missing: set[Ga] = set()
    for ga in managed:
        if ga.artifact_id.endswith(DEPLOYMENT_SUFFIX):
            runtime = Ga(ga.group_id, ga.artifact_id[: -len(DEPLOYMENT_SUFFIX)])
            if runtime not in managed:
                missing.add(runtime)
        else:
            deployment = Ga(ga.group_id, ga.artifact_id + DEPLOYMENT_SUFFIX)
            if deployment not in managed and deployment in tree_gas:
                missing.add(deployment)
    if not missing:
        return None
    return _listing(f"Please add these entries to {bom_name}:", (str(ga) for ga in sorted(missing)))


def check_required_constraints(
    all_transitives: Iterable[Ga],
    constraints: Sequence[ManagedConstraint],
    *,
    required_entries: GavSet,
    banned: GavSet,
    bom_name: str,
) -> str | None:
    """Compare the required identities reached by resolution with those managed.

    ``-`` lines are reachable but not managed, ``+`` lines are managed but
    not reachable.
    """
    expected = sorted(
        {
            str(ga)
            for ga in all_transitives
            if required_entries.contains_ga(ga) and not banned.contains_ga(ga)
        }
    )
    actual = sorted({str(c.ga) for c in constraints if required_entries.contains_ga(c.ga)})
    deltas = [line for line in difflib.ndiff(expected, actual) if line[:2] in ("- ", "+ ")]
    if not deltas:
        return None
    return (
        f"Too little or too much required constraints in {bom_name}:\n\n    "
        + "\n    ".join(deltas)
        + "\n\nConsider adding, removing or excluding them in the BOM\n\n"
    )


def run_checks(messages: Iterable[str | None], policy: OnFailure) -> int:
    """Route each message through *policy*; returns how many checks failed."""
    failed = 0
    for message in messages:
        if message is not None:
            failed += 1
            report_failure(policy, message)
    return failed

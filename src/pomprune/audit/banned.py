"""Banned-dependency rules and the auditor checking resolved transitives against them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from importlib import resources as importlib_resources
from pathlib import Path
from typing import TYPE_CHECKING

from lxml import etree

from pomprune.errors import ConfigurationError
from pomprune.model.gav import GavPattern, GavSet
from pomprune.tree.editor import AddExclusion

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Mapping

    from pomprune.model.gav import Ga, Gavtcs
    from pomprune.tree.editor import TransformationBatch

logger = logging.getLogger(__name__)

CLASSPATH_PREFIX = "classpath:"
EXCLUDE_XPATH = "//*[local-name()='exclude']/text()"

# ---------------------------------------------------------------------------
# Rule documents
# ---------------------------------------------------------------------------


def read_location(location: str, base_dir: Path | None = None) -> bytes:
    """Read a ``classpath:`` resource bundled with pomprune or a filesystem file."""
    try:
        if location.startswith(CLASSPATH_PREFIX):
            name = location[len(CLASSPATH_PREFIX) :].lstrip("/")
            return importlib_resources.files("pomprune").joinpath("resources", *name.split("/")).read_bytes()
        path = Path(location).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        return path.read_bytes()
    except OSError as exc:
        msg = f"Could not read {location}: {exc}"
        raise ConfigurationError(msg) from exc


def _parse(location: str, data: bytes, encoding: str) -> etree._ElementTree:
    try:
        return etree.ElementTree(etree.fromstring(data, etree.XMLParser(encoding=encoding)))
    except etree.XMLSyntaxError as exc:
        msg = f"Could not parse {location}: {exc}"
        raise ConfigurationError(msg) from exc


@dataclass
class BannedDependencyResource:
    """An enforcer rule document listing banned identities.

    Patterns are the text of every ``exclude`` element in any namespace,
    after the optional XSLT filter has been applied.
    """

    location: str
    xslt_location: str | None = None
    base_dir: Path | None = None
    _patterns: tuple[GavPattern, ...] | None = field(default=None, init=False, repr=False, compare=False)

    def banned_patterns(self, encoding: str = "utf-8") -> tuple[GavPattern, ...]:
        if self._patterns is None:
            self._patterns = self._load(encoding)
        return self._patterns

    def _load(self, encoding: str) -> tuple[GavPattern, ...]:
        if not self.location or not self.location.strip():
            msg = f"location must be specified for {self}"
            raise ConfigurationError(msg)
        document = _parse(self.location, read_location(self.location, self.base_dir), encoding)
        if self.xslt_location and self.xslt_location.strip():
            document = self._transform(document, encoding)
        patterns: dict[GavPattern, None] = {}
        for text in document.xpath(EXCLUDE_XPATH):
            raw = str(text).strip()
            if raw:
                patterns.setdefault(GavPattern(raw), None)
        logger.debug("%s: %d banned patterns", self.location, len(patterns))
        return tuple(patterns)

    def _transform(self, document: etree._ElementTree, encoding: str) -> etree._ElementTree:
        assert self.xslt_location is not None
        stylesheet = _parse(self.xslt_location, read_location(self.xslt_location, self.base_dir), encoding)
        try:
            return etree.XSLT(stylesheet)(document)
        except (etree.XSLTParseError, etree.XSLTApplyError) as exc:
            msg = f"Could not transform {self.location} using XSLT {self.xslt_location}: {exc}"
            raise ConfigurationError(msg) from exc


def banned_set(resources: Iterable[BannedDependencyResource], encoding: str = "utf-8") -> GavSet:
    """Union of the patterns of all *resources*; matches nothing when empty."""
    patterns: dict[GavPattern, None] = {}
    for resource in resources:
        for pattern in resource.banned_patterns(encoding):
            patterns.setdefault(pattern, None)
    return GavSet(list(patterns), ())


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BannedViolation:
    """A banned identity reached from an entry point.

    ``owner`` is the managed entry an exclusion should go under; ``None``
    when no own entry lies on the path.
    """

    entry_point: Gavtcs
    banned: Ga
    owner: Ga | None = None
    path: tuple[Ga, ...] = ()


def _owner(entry_point: Gavtcs, path: tuple[Ga, ...], own_entries: Collection[Ga] | None) -> Ga | None:
    if own_entries is None:
        return entry_point.ga
    for ga in reversed(path[:-1]):
        if ga in own_entries:
            return ga
    return entry_point.ga if entry_point.ga in own_entries else None


def audit(
    transitives_by_entry_point: Mapping[Gavtcs, Iterable[Ga]],
    banned: GavSet,
    paths: Mapping[Gavtcs, Mapping[Ga, tuple[Ga, ...]]] | None = None,
    own_entries: Collection[Ga] | None = None,
) -> list[BannedViolation]:
    """Return every banned identity reachable from each entry point.

    The owner of a violation is the closest entry of *own_entries* on the
    dependency path above the banned identity; without *own_entries* it is
    the entry point itself.
    """
    violations = []
    for entry_point, transitives in transitives_by_entry_point.items():
        entry_paths = (paths or {}).get(entry_point, {})
        for ga in transitives:
            if banned.contains_ga(ga):
                path = entry_paths.get(ga, (entry_point.ga, ga))
                violations.append(
                    BannedViolation(entry_point, ga, _owner(entry_point, path, own_entries), path)
                )
    return sorted(violations, key=lambda v: (str(v.entry_point), v.banned))


def fix_banned(
    violations: Iterable[BannedViolation], bom_path: Path, batch: TransformationBatch
) -> int:
    """Queue an ``<exclusion>`` under each violation's owner; returns how many were queued."""
    queued = 0
    for violation in violations:
        if violation.owner is None:
            logger.warning(
                "Cannot link banned dependency %s to any own BOM entry:\n    %s",
                violation.banned,
                "\n    -> ".join(str(g) for g in violation.path),
            )
            continue
        batch.add(bom_path, AddExclusion(violation.owner, violation.banned))
        queued += 1
    return queued


def banned_failure_message(violations: Iterable[BannedViolation]) -> str | None:
    """One message naming every entry point and the banned identities it pulls."""
    by_entry: dict[str, list[str]] = {}
    for violation in violations:
        by_entry.setdefault(str(violation.entry_point), []).append(str(violation.banned))
    if not by_entry:
        return None
    lines = ["Banned dependencies reachable from managed entries:", ""]
    for entry_point in sorted(by_entry):
        lines.append(f"    {entry_point}")
        lines.extend(f"        -> {banned}" for banned in sorted(set(by_entry[entry_point])))
    return "\n".join(lines) + "\n"

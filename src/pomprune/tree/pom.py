"""Descriptor model and the lxml-based ``pom.xml`` reader."""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from lxml import etree

from pomprune.errors import ConfigurationError, DescriptorIOError
from pomprune.model.gav import Ga, Gav

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping
    from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

POM_NAMESPACE = "http://maven.apache.org/POM/4.0.0"
DEFAULT_SCOPE = "compile"

# Body of a comment that holds a suppressed link: ``<module>path</module> reason``
_SUPPRESSED_LINK_RE = re.compile(r"^\s*<module>\s*([^<]+?)\s*</module>\s*(.*?)\s*$", re.DOTALL)
_PLACEHOLDER_RE = re.compile(r"\$\{[^}]+\}")

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Expression:
    """A raw descriptor value together with the descriptor that owns it."""

    raw: str
    owner: str  # pom_path of the declaring module

    @property
    def is_constant(self) -> bool:
        return _PLACEHOLDER_RE.search(self.raw) is None

    def as_constant(self) -> str:
        if not self.is_constant:
            msg = f"Expression '{self.raw}' in {self.owner} is not a constant"
            raise ConfigurationError(msg)
        return self.raw

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class Dependency:
    """A ``<dependency>`` as declared, before any evaluation."""

    group_id: Expression
    artifact_id: Expression
    version: Expression | None = None
    type: str = "jar"
    classifier: str | None = None
    scope: str | None = None
    optional: bool = False
    exclusions: tuple[Ga, ...] = ()

    @property
    def effective_scope(self) -> str:
        return self.scope or DEFAULT_SCOPE

    @property
    def is_bom_import(self) -> bool:
        return self.scope == "import" and self.type == "pom"


@dataclass(frozen=True)
class ActiveLink:
    """A live ``<module>`` element."""

    path: str


@dataclass(frozen=True)
class SuppressedLink:
    """A ``<module>`` element commented out together with a reason."""

    path: str
    reason: str


ModuleLink = Union[ActiveLink, SuppressedLink]


@dataclass(frozen=True)
class Profile:
    """One build profile; the descriptor's top level is the profile with ``id=None``."""

    id: str | None
    dependencies: tuple[Dependency, ...] = ()
    managed_dependencies: tuple[Dependency, ...] = ()
    properties: Mapping[str, str] = field(default_factory=dict)
    links: tuple[ModuleLink, ...] = ()
    active_by_default: bool = False


@dataclass(frozen=True)
class Module:
    """A single descriptor of the source tree.

    ``pom_path`` is relative to the tree root and uses ``/`` separators.
    ``group_id`` and ``version`` hold the raw values of the descriptor and
    are ``None`` when inherited from the parent.
    """

    artifact_id: str
    pom_path: str
    group_id: str | None = None
    version: str | None = None
    parent_gav: Gav | None = None
    packaging: str = "jar"
    profiles: tuple[Profile, ...] = (Profile(None),)

    @property
    def ga(self) -> Ga:
        group_id = self.group_id
        if group_id is None and self.parent_gav is not None:
            group_id = self.parent_gav.group_id
        if group_id is None:
            msg = f"{self.pom_path}: cannot determine groupId of {self.artifact_id}"
            raise ConfigurationError(msg)
        return Ga(group_id, self.artifact_id)

    @property
    def effective_version(self) -> str | None:
        if self.version is not None:
            return self.version
        return self.parent_gav.version if self.parent_gav is not None else None

    @property
    def gav(self) -> Gav:
        ga = self.ga
        return Gav(ga.group_id, ga.artifact_id, self.effective_version)

    @property
    def top_level(self) -> Profile:
        return self.profiles[0]

    @property
    def directory(self) -> str:
        return posixpath.dirname(self.pom_path)

    def profile(self, profile_id: str | None) -> Profile | None:
        for profile in self.profiles:
            if profile.id == profile_id:
                return profile
        return None

    def accepted_profiles(self, profile_filter: ProfileFilter) -> Iterator[Profile]:
        return (p for p in self.profiles if profile_filter(p))

    def links(self, profile_filter: ProfileFilter | None = None) -> Iterator[ModuleLink]:
        for profile in self.profiles:
            if profile_filter is None or profile_filter(profile):
                yield from profile.links


ProfileFilter = Callable[[Profile], bool]


def active_profiles(*profile_ids: str) -> ProfileFilter:
    """Accept the top level, profiles active by default and the named ones."""
    wanted = frozenset(profile_ids)

    def _accept(profile: Profile) -> bool:
        return profile.id is None or profile.active_by_default or profile.id in wanted

    return _accept


def all_profiles(profile: Profile) -> bool:
    return True


def link_target(pom_path: str, link_path: str) -> str:
    """Return the tree-relative descriptor path a ``<module>`` link points at."""
    target = posixpath.normpath(posixpath.join(posixpath.dirname(pom_path), link_path))
    if not target.endswith(".xml"):
        target = posixpath.join(target, "pom.xml")
    return target


# ---------------------------------------------------------------------------
# lxml helpers (namespace tolerant)
# ---------------------------------------------------------------------------


def local_name(element: etree._Element) -> str | None:
    """Return the tag without namespace; ``None`` for comments and PIs."""
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname


def child(element: etree._Element | None, name: str) -> etree._Element | None:
    if element is None:
        return None
    for candidate in element:
        if local_name(candidate) == name:
            return candidate
    return None


def children(element: etree._Element | None, name: str) -> list[etree._Element]:
    if element is None:
        return []
    return [c for c in element if local_name(c) == name]


def child_text(element: etree._Element | None, name: str) -> str | None:
    found = child(element, name)
    if found is None or found.text is None:
        return None
    return found.text.strip()


def parse_document(path: Path, encoding: str = "utf-8") -> etree._ElementTree:
    """Parse *path* keeping comments and whitespace."""
    parser = etree.XMLParser(remove_comments=False, remove_blank_text=False, encoding=encoding)
    try:
        return etree.parse(str(path), parser)
    except OSError as exc:
        raise DescriptorIOError(path, f"cannot read descriptor: {exc}") from exc
    except etree.XMLSyntaxError as exc:
        raise DescriptorIOError(path, f"malformed descriptor: {exc}") from exc


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_exclusions(dep_el: etree._Element) -> tuple[Ga, ...]:
    result = []
    for exclusion in children(child(dep_el, "exclusions"), "exclusion"):
        group_id = child_text(exclusion, "groupId") or "*"
        artifact_id = child_text(exclusion, "artifactId") or "*"
        result.append(Ga(group_id, artifact_id))
    return tuple(result)


def _parse_dependency(dep_el: etree._Element, owner: str) -> Dependency:
    group_id = child_text(dep_el, "groupId")
    artifact_id = child_text(dep_el, "artifactId")
    if not group_id or not artifact_id:
        msg = f"{owner}: dependency without groupId or artifactId"
        raise ConfigurationError(msg)
    version = child_text(dep_el, "version")
    return Dependency(
        group_id=Expression(group_id, owner),
        artifact_id=Expression(artifact_id, owner),
        version=Expression(version, owner) if version else None,
        type=child_text(dep_el, "type") or "jar",
        classifier=child_text(dep_el, "classifier") or None,
        scope=child_text(dep_el, "scope") or None,
        optional=(child_text(dep_el, "optional") or "false") == "true",
        exclusions=_parse_exclusions(dep_el),
    )


def _parse_links(modules_el: etree._Element | None) -> tuple[ModuleLink, ...]:
    links: list[ModuleLink] = []
    if modules_el is None:
        return ()
    for node in modules_el:
        if node.tag is etree.Comment:
            match = _SUPPRESSED_LINK_RE.match(node.text or "")
            if match:
                links.append(SuppressedLink(match.group(1), match.group(2)))
        elif local_name(node) == "module" and node.text and node.text.strip():
            links.append(ActiveLink(node.text.strip()))
    return tuple(links)


def _parse_profile(container: etree._Element, profile_id: str | None, owner: str) -> Profile:
    properties = {}
    properties_el = child(container, "properties")
    for prop in properties_el if properties_el is not None else ():
        name = local_name(prop)
        if name is not None:
            properties[name] = (prop.text or "").strip()
    dm = child(child(container, "dependencyManagement"), "dependencies")
    active_by_default = child_text(child(container, "activation"), "activeByDefault") == "true"
    return Profile(
        id=profile_id,
        dependencies=tuple(
            _parse_dependency(d, owner)
            for d in children(child(container, "dependencies"), "dependency")
        ),
        managed_dependencies=tuple(_parse_dependency(d, owner) for d in children(dm, "dependency")),
        properties=properties,
        links=_parse_links(child(container, "modules")),
        active_by_default=active_by_default,
    )


def module_from_root(root: etree._Element, pom_path: str) -> Module:
    """Build a :class:`Module` from an already parsed ``<project>`` element."""
    artifact_id = child_text(root, "artifactId")
    if not artifact_id:
        msg = f"{pom_path}: <project> has no artifactId"
        raise ConfigurationError(msg)
    parent_el = child(root, "parent")
    parent_gav = None
    if parent_el is not None:
        parent_gav = Gav(
            child_text(parent_el, "groupId") or "",
            child_text(parent_el, "artifactId") or "",
            child_text(parent_el, "version"),
        )
    profiles = [_parse_profile(root, None, pom_path)]
    for profile_el in children(child(root, "profiles"), "profile"):
        profile_id = child_text(profile_el, "id")
        profiles.append(_parse_profile(profile_el, profile_id or "", pom_path))
    return Module(
        artifact_id=artifact_id,
        pom_path=pom_path,
        group_id=child_text(root, "groupId"),
        version=child_text(root, "version"),
        parent_gav=parent_gav,
        packaging=child_text(root, "packaging") or "jar",
        profiles=tuple(profiles),
    )


def parse_pom(path: Path, pom_path: str, encoding: str = "utf-8") -> Module:
    """Read the descriptor at *path*; *pom_path* is its tree-relative name."""
    logger.debug("Parsing %s", pom_path)
    return module_from_root(parse_document(path, encoding).getroot(), pom_path)

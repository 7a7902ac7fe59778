"""Format-preserving descriptor edits.

A :class:`Transformation` is a small, idempotent edit intent against one
``pom.xml``.  Transformations for one file are applied together by a
:class:`PomEditor`, which writes the file at most once and only when the
serialized document actually differs from what is on disk.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from lxml import etree

from pomprune.errors import DescriptorIOError
from pomprune.fsutil import read_text, write_if_changed
from pomprune.model.gav import Ga
from pomprune.tree.pom import child, child_text, children, local_name

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator
    from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WHITESPACE_SPACE = "space"  # <a />
WHITESPACE_EMPTY = "empty"  # <a/>
VALID_WHITESPACE: frozenset[str] = frozenset({WHITESPACE_SPACE, WHITESPACE_EMPTY})

_DECLARATION_RE = re.compile(r"^\s*(<\?xml[^>]*\?>)")
_SELF_CLOSING_RE = re.compile(r"(?<=[^\s<])\s*/>")
# Text outside the root element: declaration, license headers, trailing comments.
_PROLOG_RE = re.compile(
    r"\A(?:\s|<\?(?:(?!\?>).)*\?>|<!--(?:(?!-->).)*-->|<!DOCTYPE[^>]*>)*", re.DOTALL
)
_EPILOG_RE = re.compile(r"(?:\s|<\?(?:(?!\?>).)*\?>|<!--(?:(?!-->).)*-->)*\Z", re.DOTALL)
_DEFAULT_INDENT = "    "

# Elements that usually follow <properties> at the top level of a descriptor.
_AFTER_PROPERTIES = ("dependencyManagement", "dependencies", "build", "reporting", "profiles")


@dataclass(frozen=True)
class EditorSettings:
    """Serialization settings shared by every edited descriptor."""

    encoding: str = "utf-8"
    simple_element_whitespace: str = WHITESPACE_SPACE


# ---------------------------------------------------------------------------
# Edit context
# ---------------------------------------------------------------------------


class EditContext:
    """A parsed descriptor plus the helpers transformations edit it with.

    *evaluate* maps raw ``groupId``/``artifactId`` text to its evaluated
    form so that entries written as ``${project.groupId}`` still match.
    """

    def __init__(
        self,
        path: Path,
        text: str,
        *,
        evaluate: Callable[[str], str] | None = None,
    ) -> None:
        self.path = path
        self.original_text = text
        parser = etree.XMLParser(remove_comments=False, remove_blank_text=False)
        try:
            self.root = etree.fromstring(_DECLARATION_RE.sub("", text, count=1), parser)
        except etree.XMLSyntaxError as exc:
            raise DescriptorIOError(path, f"malformed descriptor: {exc}") from exc
        self.namespace = etree.QName(self.root).namespace
        self._evaluate = evaluate or (lambda raw: raw)

    # -- lookups ------------------------------------------------------------

    def tag(self, name: str) -> str:
        return f"{{{self.namespace}}}{name}" if self.namespace else name

    def evaluate(self, raw: str | None) -> str | None:
        return None if raw is None else self._evaluate(raw)

    def profile_element(self, profile_id: str | None) -> etree._Element | None:
        """Return the container of a profile; the root for ``None``."""
        if profile_id is None:
            return self.root
        for profile in children(child(self.root, "profiles"), "profile"):
            if (child_text(profile, "id") or "") == profile_id:
                return profile
        return None

    def dependencies_element(
        self, container: etree._Element | None, *, managed: bool
    ) -> etree._Element | None:
        if managed:
            container = child(container, "dependencyManagement")
        return child(container, "dependencies")

    def element_ga(self, element: etree._Element) -> Ga:
        return Ga(
            self.evaluate(child_text(element, "groupId")) or "",
            self.evaluate(child_text(element, "artifactId")) or "",
        )

    def find_dependency(
        self, profile_id: str | None, ga: Ga, *, managed: bool
    ) -> etree._Element | None:
        deps = self.dependencies_element(self.profile_element(profile_id), managed=managed)
        for dep in children(deps, "dependency"):
            if self.element_ga(dep) == ga:
                return dep
        return None

    def modules_elements(self) -> Iterator[etree._Element]:
        """Yield ``<modules>`` of the top level and of every profile."""
        for container in (self.root, *children(child(self.root, "profiles"), "profile")):
            modules = child(container, "modules")
            if modules is not None:
                yield modules

    # -- structural edits ---------------------------------------------------

    def _child_whitespace(self, parent: etree._Element) -> str:
        if len(parent) and parent.text and "\n" in parent.text and not parent.text.strip():
            return parent.text
        return "\n" + self._indent_unit() * (self._depth(parent) + 1)

    def _parent_whitespace(self, parent: etree._Element) -> str:
        return "\n" + self._indent_unit() * self._depth(parent)

    def _indent_unit(self) -> str:
        text = self.root.text or ""
        if "\n" in text and not text.strip():
            unit = text.rsplit("\n", 1)[1]
            if unit:
                return unit
        return _DEFAULT_INDENT

    @staticmethod
    def _depth(element: etree._Element) -> int:
        return sum(1 for _ in element.iterancestors())

    def insert_child(
        self,
        parent: etree._Element,
        name: str,
        *,
        index: int | None = None,
        text: str | None = None,
    ) -> etree._Element:
        """Create ``<name>`` under *parent* at *index* (append when ``None``)."""
        child_ws = self._child_whitespace(parent)
        existing = list(parent)
        element = etree.SubElement(parent, self.tag(name))
        element.text = text
        if not existing:
            parent.text = child_ws
            element.tail = self._parent_whitespace(parent)
        elif index is None or index >= len(existing):
            last = existing[-1]
            element.tail = last.tail
            last.tail = child_ws
        else:
            element.tail = child_ws
            parent.insert(index, element)
        return element

    def ensure_child(
        self, parent: etree._Element, name: str, *, before: Iterable[str] = ()
    ) -> etree._Element:
        """Return ``<name>`` under *parent*, creating it ahead of any *before* sibling."""
        found = child(parent, name)
        if found is not None:
            return found
        wanted = set(before)
        index = next((i for i, c in enumerate(parent) if local_name(c) in wanted), None)
        return self.insert_child(parent, name, index=index)

    def remove(self, element: etree._Element) -> None:
        """Detach *element*, keeping the whitespace layout of its siblings."""
        parent = element.getparent()
        previous = element.getprevious()
        if previous is not None:
            previous.tail = element.tail
        else:
            parent.text = element.tail
        element.tail = None
        parent.remove(element)

    def replace(self, old: etree._Element, new: etree._Element) -> None:
        parent = old.getparent()
        new.tail = old.tail
        old.tail = None
        parent.replace(old, new)

    # -- serialization ------------------------------------------------------

    def serialize(self, settings: EditorSettings) -> str:
        """Serialize the root element between the original prolog and epilog text."""
        body = etree.tostring(self.root, encoding="unicode", with_tail=False)
        if settings.simple_element_whitespace == WHITESPACE_SPACE:
            body = _SELF_CLOSING_RE.sub(" />", body)
        else:
            body = _SELF_CLOSING_RE.sub("/>", body)
        prolog = _PROLOG_RE.match(self.original_text)
        epilog = _EPILOG_RE.search(self.original_text)
        return (prolog.group() if prolog else "") + body + (epilog.group() if epilog else "")


# ---------------------------------------------------------------------------
# Transformations
# ---------------------------------------------------------------------------


class Transformation(Protocol):
    """An idempotent edit; ``apply`` returns True when the document changed."""

    @property
    def name(self) -> str: ...

    def apply(self, context: EditContext) -> bool: ...


def _set_version(context: EditContext, dep: etree._Element, version: str | None) -> bool:
    version_el = child(dep, "version")
    if version is None:
        if version_el is None:
            return False
        context.remove(version_el)
        return True
    if version_el is not None:
        if (version_el.text or "").strip() == version:
            return False
        version_el.text = version
        return True
    artifact_el = child(dep, "artifactId")
    index = list(dep).index(artifact_el) + 1 if artifact_el is not None else None
    context.insert_child(dep, "version", index=index, text=version)
    return True


@dataclass(frozen=True)
class SetDependencyVersion:
    """Set (or with ``version=None`` remove) the version of a declared dependency."""

    ga: Ga
    version: str | None
    profile_id: str | None = None

    @property
    def name(self) -> str:
        return f"set dependency {self.ga} version to {self.version}"

    def apply(self, context: EditContext) -> bool:
        dep = context.find_dependency(self.profile_id, self.ga, managed=False)
        if dep is None:
            logger.debug("%s: no dependency %s to update", context.path, self.ga)
            return False
        return _set_version(context, dep, self.version)


@dataclass(frozen=True)
class SetManagedDependencyVersion:
    """Set (or with ``version=None`` remove) the version of a managed entry."""

    ga: Ga
    version: str | None
    profile_id: str | None = None

    @property
    def name(self) -> str:
        return f"set managed dependency {self.ga} version to {self.version}"

    def apply(self, context: EditContext) -> bool:
        dep = context.find_dependency(self.profile_id, self.ga, managed=True)
        if dep is None:
            logger.debug("%s: no managed dependency %s to update", context.path, self.ga)
            return False
        return _set_version(context, dep, self.version)


@dataclass(frozen=True)
class AddOrSetProperty:
    """Add a property or change its value."""

    property_name: str
    value: str
    profile_id: str | None = None

    @property
    def name(self) -> str:
        return f"set property {self.property_name}={self.value}"

    def apply(self, context: EditContext) -> bool:
        container = context.profile_element(self.profile_id)
        if container is None:
            logger.debug("%s: no profile %s", context.path, self.profile_id)
            return False
        properties = context.ensure_child(container, "properties", before=_AFTER_PROPERTIES)
        existing = child(properties, self.property_name)
        if existing is None:
            context.insert_child(properties, self.property_name, text=self.value)
            return True
        if (existing.text or "").strip() == self.value:
            return False
        existing.text = self.value
        return True


@dataclass(frozen=True)
class CommentModules:
    """Turn the ``<module>`` links in *paths* into marked comments."""

    paths: frozenset[str]
    marker: str

    @property
    def name(self) -> str:
        return f"comment modules {', '.join(sorted(self.paths))}"

    def apply(self, context: EditContext) -> bool:
        changed = False
        for modules in context.modules_elements():
            for link in children(modules, "module"):
                path = (link.text or "").strip()
                if path in self.paths:
                    context.replace(link, etree.Comment(f" <module>{path}</module> {self.marker} "))
                    changed = True
        return changed


_MARKED_LINK_RE = re.compile(r"^\s*<module>\s*([^<]+?)\s*</module>\s*(.*?)\s*$", re.DOTALL)


@dataclass(frozen=True)
class UncommentModules:
    """Restore every link that was commented out with *marker*."""

    marker: str

    @property
    def name(self) -> str:
        return f"uncomment modules marked '{self.marker}'"

    def apply(self, context: EditContext) -> bool:
        changed = False
        for modules in context.modules_elements():
            for node in list(modules):
                if node.tag is not etree.Comment:
                    continue
                match = _MARKED_LINK_RE.match(node.text or "")
                if match is None or match.group(2) != self.marker:
                    continue
                index = modules.index(node)
                link = context.insert_child(modules, "module", index=index, text=match.group(1))
                link.tail = node.tail
                modules.remove(node)
                changed = True
        return changed


@dataclass(frozen=True)
class AddExclusion:
    """Add ``<exclusion>`` under a dependency, keeping exclusions sorted."""

    dependency: Ga
    exclusion: Ga
    profile_id: str | None = None
    managed: bool = True

    @property
    def name(self) -> str:
        return f"add exclusion {self.exclusion} to {self.dependency}"

    def apply(self, context: EditContext) -> bool:
        dep = context.find_dependency(self.profile_id, self.dependency, managed=self.managed)
        if dep is None:
            logger.warning("%s: no dependency %s to exclude from", context.path, self.dependency)
            return False
        exclusions = context.ensure_child(dep, "exclusions")
        siblings = children(exclusions, "exclusion")
        keys = [context.element_ga(e) for e in siblings]
        if self.exclusion in keys:
            return False
        position = bisect.bisect_left(keys, self.exclusion)
        index = list(exclusions).index(siblings[position]) if position < len(siblings) else None
        element = context.insert_child(exclusions, "exclusion", index=index)
        context.insert_child(element, "groupId", text=self.exclusion.group_id)
        context.insert_child(element, "artifactId", text=self.exclusion.artifact_id)
        return True


@dataclass(frozen=True)
class SetParentVersion:
    """Point ``<parent><version>`` at *version*."""

    version: str

    @property
    def name(self) -> str:
        return f"set parent version to {self.version}"

    def apply(self, context: EditContext) -> bool:
        parent = child(context.root, "parent")
        if parent is None:
            return False
        version_el = child(parent, "version")
        if version_el is None:
            context.insert_child(parent, "version", text=self.version)
            return True
        if (version_el.text or "").strip() == self.version:
            return False
        version_el.text = self.version
        return True


# ---------------------------------------------------------------------------
# Editor and batch
# ---------------------------------------------------------------------------


class PomEditor:
    """Apply transformations to one descriptor and write it once."""

    def __init__(
        self,
        path: Path,
        settings: EditorSettings | None = None,
        *,
        evaluate: Callable[[str], str] | None = None,
    ) -> None:
        self.path = path
        self.settings = settings or EditorSettings()
        self._evaluate = evaluate

    def apply(self, transformations: Iterable[Transformation]) -> bool:
        """Return True when the file on disk was rewritten."""
        text = read_text(self.path, self.settings.encoding)
        context = EditContext(self.path, text, evaluate=self._evaluate)
        changed = False
        for transformation in transformations:
            if transformation.apply(context):
                logger.debug("%s: %s", self.path, transformation.name)
                changed = True
        if not changed:
            return False
        return write_if_changed(self.path, context.serialize(self.settings), self.settings.encoding)


class TransformationBatch:
    """Transformations grouped per descriptor path, applied file by file."""

    def __init__(self) -> None:
        self._by_path: dict[Path, list[Transformation]] = {}

    def add(self, path: Path, *transformations: Transformation) -> None:
        queued = self._by_path.setdefault(path, [])
        for transformation in transformations:
            if transformation not in queued:
                queued.append(transformation)

    def transformations(self, path: Path) -> list[Transformation]:
        return list(self._by_path.get(path, ()))

    @property
    def paths(self) -> list[Path]:
        return sorted(self._by_path)

    def __len__(self) -> int:
        return sum(len(t) for t in self._by_path.values())

    def apply(
        self,
        settings: EditorSettings | None = None,
        *,
        evaluators: Callable[[Path], Callable[[str], str] | None] | None = None,
    ) -> list[Path]:
        """Apply everything; return the paths that were rewritten."""
        written = []
        for path in self.paths:
            evaluate = evaluators(path) if evaluators is not None else None
            if PomEditor(path, settings, evaluate=evaluate).apply(self._by_path[path]):
                written.append(path)
        self._by_path.clear()
        return written

"""Project configuration: ``pomprune.yml`` at the project root."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from pomprune.audit.banned import BannedDependencyResource
from pomprune.audit.policy import OnFailure
from pomprune.bom.flatten import BomEntryTransformation
from pomprune.errors import ConfigurationError
from pomprune.model.gav import GavSet
from pomprune.tree.editor import VALID_WHITESPACE, WHITESPACE_SPACE, EditorSettings
from pomprune.tree.pom import active_profiles
from pomprune.versions import VersionSettings

if TYPE_CHECKING:
    from collections.abc import Callable

    from pomprune.tree.pom import ProfileFilter

logger = logging.getLogger(__name__)

CONFIG_FILE = "pomprune.yml"

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExcludesConfig:
    """Inputs of the prod-excludes pipeline."""

    tracked_group: str = "org.apache.camel"
    community_version_property: str = "camel-community-version"
    community_version: str = "3.11.1"
    required_artifacts_file: str = (
        "product/src/main/resources/required-productized-camel-artifacts.txt"
    )
    additional_artifacts: tuple[str, ...] = ()
    manifest: str = ".mvn/excludes.txt"
    marker: str = "disabled by pomprune:prod-excludes"
    bom_module: str = "bom/camel-bom/pom.xml"
    bom_artifact_id: str = "camel-bom"
    component_path_prefixes: tuple[str, ...] = ("components/", "core/")

    def version_settings(self) -> VersionSettings:
        return VersionSettings(
            tracked_group=self.tracked_group,
            community_version_property=self.community_version_property,
            bom_module=self.bom_module,
            bom_artifact_id=self.bom_artifact_id,
        )


@dataclass(frozen=True)
class FlattenConfig:
    """Inputs of the flatten-bom command."""

    bom_module: str | None = None
    tracked_group: str = "org.apache.camel.quarkus"
    resolution_entry_point_includes: tuple[str, ...] = ()
    resolution_entry_point_excludes: tuple[str, ...] = ()
    resolution_excludes: tuple[str, ...] = ()
    resolution_suspects: tuple[str, ...] = ()
    origin_excludes: tuple[str, ...] = ()
    required_bom_entry_includes: tuple[str, ...] = ()
    required_bom_entry_excludes: tuple[str, ...] = ()
    bom_entry_transformations: tuple[BomEntryTransformation, ...] = ()
    banned_dependency_resources: tuple[BannedDependencyResource, ...] = ()
    full_pom: str = "src/main/generated/flattened-full-pom.xml"
    reduced_verbose_pom: str = "src/main/generated/flattened-reduced-verbose-pom.xml"
    reduced_pom: str = "src/main/generated/flattened-reduced-pom.xml"

    # Empty include lists select everything for entry points and nothing
    # for required entries.
    def entry_points(self) -> GavSet:
        return GavSet.of(self.resolution_entry_point_includes, self.resolution_entry_point_excludes)

    def resolution_set(self) -> GavSet:
        return GavSet.of(None, self.resolution_excludes)

    def suspects(self) -> GavSet:
        return GavSet.of(self.resolution_suspects, match_all_when_empty=False)

    def origin_exclude_set(self) -> GavSet:
        return GavSet.of(self.origin_excludes, match_all_when_empty=False)

    def required_entries(self) -> GavSet:
        return GavSet.of(
            self.required_bom_entry_includes,
            self.required_bom_entry_excludes,
            match_all_when_empty=False,
        )


@dataclass(frozen=True)
class PomPruneConfig:
    """Everything read from ``pomprune.yml``, with defaults filled in."""

    project_root: Path
    encoding: str = "utf-8"
    simple_element_whitespace: str = WHITESPACE_SPACE
    on_check_failure: OnFailure = OnFailure.FAIL
    local_repository: Path = field(default_factory=lambda: Path("~/.m2/repository").expanduser())
    active_profiles: tuple[str, ...] = ()
    excludes: ExcludesConfig = field(default_factory=ExcludesConfig)
    flatten: FlattenConfig = field(default_factory=FlattenConfig)

    @property
    def root_pom(self) -> Path:
        return self.project_root / "pom.xml"

    def editor_settings(self) -> EditorSettings:
        return EditorSettings(self.encoding, self.simple_element_whitespace)

    def profile_filter(self) -> ProfileFilter:
        return active_profiles(*self.active_profiles)

    def resolve(self, relative: str) -> Path:
        return self.project_root / relative


# ---------------------------------------------------------------------------
# Value readers
# ---------------------------------------------------------------------------


def _fail(key: str, problem: str) -> ConfigurationError:
    return ConfigurationError(f"{CONFIG_FILE}: '{key}' {problem}")


def _as_str(key: str, value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise _fail(key, f"must be a string, found {type(value).__name__}")
    text = str(value).strip()
    if not text:
        raise _fail(key, "must not be empty")
    return text


def _as_optional_str(key: str, value: Any) -> str | None:
    return None if value is None else _as_str(key, value)


def _as_str_list(key: str, value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise _fail(key, f"must be a list, found {type(value).__name__}")
    return tuple(_as_str(f"{key}[{i}]", item) for i, item in enumerate(value))


def _as_encoding(key: str, value: Any) -> str:
    encoding = _as_str(key, value)
    try:
        "".encode(encoding)
    except LookupError:
        raise _fail(key, f"names an unknown encoding '{encoding}'") from None
    return encoding


def _as_whitespace(key: str, value: Any) -> str:
    whitespace = _as_str(key, value).lower()
    if whitespace not in VALID_WHITESPACE:
        raise _fail(key, f"must be one of {sorted(VALID_WHITESPACE)}, found '{whitespace}'")
    return whitespace


def _as_policy(key: str, value: Any) -> OnFailure:
    try:
        return OnFailure.of(_as_str(key, value))
    except ConfigurationError as exc:
        raise _fail(key, str(exc)) from exc


def _mapping(key: str, value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _fail(key, f"must be a mapping, found {type(value).__name__}")
    return value


def _check_keys(section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(str(k) for k in data if k not in allowed)
    if unknown:
        prefix = f"{section}." if section else ""
        msg = f"{CONFIG_FILE}: unknown key '{prefix}{unknown[0]}'"
        raise ConfigurationError(msg)


def _read_section(
    section: str,
    data: dict[str, Any],
    readers: dict[str, Callable[[str, Any], Any]],
) -> dict[str, Any]:
    _check_keys(section, data, set(readers))
    return {name: readers[name](f"{section}.{name}", value) for name, value in data.items()}


def _as_transformations(key: str, value: Any) -> tuple[BomEntryTransformation, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise _fail(key, f"must be a list, found {type(value).__name__}")
    result = []
    for i, item in enumerate(value):
        item_key = f"{key}[{i}]"
        data = _mapping(item_key, item)
        _check_keys(item_key, data, {"gav_pattern", "version_replacement", "add_exclusions"})
        if "gav_pattern" not in data:
            raise _fail(item_key, "is missing 'gav_pattern'")
        result.append(
            BomEntryTransformation.of(
                _as_str(f"{item_key}.gav_pattern", data["gav_pattern"]),
                _as_optional_str(f"{item_key}.version_replacement", data.get("version_replacement")),
                _as_optional_str(f"{item_key}.add_exclusions", data.get("add_exclusions")),
            )
        )
    return tuple(result)


def _banned_resources(
    key: str, value: Any, project_root: Path
) -> tuple[BannedDependencyResource, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise _fail(key, f"must be a list, found {type(value).__name__}")
    result = []
    for i, item in enumerate(value):
        item_key = f"{key}[{i}]"
        if isinstance(item, str):
            result.append(BannedDependencyResource(_as_str(item_key, item), None, project_root))
            continue
        data = _mapping(item_key, item)
        _check_keys(item_key, data, {"location", "xslt_location"})
        if "location" not in data:
            raise _fail(item_key, "is missing 'location'")
        result.append(
            BannedDependencyResource(
                _as_str(f"{item_key}.location", data["location"]),
                _as_optional_str(f"{item_key}.xslt_location", data.get("xslt_location")),
                project_root,
            )
        )
    return tuple(result)


_EXCLUDES_READERS: dict[str, Callable[[str, Any], Any]] = {
    "tracked_group": _as_str,
    "community_version_property": _as_str,
    "community_version": _as_str,
    "required_artifacts_file": _as_str,
    "additional_artifacts": _as_str_list,
    "manifest": _as_str,
    "marker": _as_str,
    "bom_module": _as_str,
    "bom_artifact_id": _as_str,
    "component_path_prefixes": _as_str_list,
}

_FLATTEN_READERS: dict[str, Callable[[str, Any], Any]] = {
    "bom_module": _as_optional_str,
    "tracked_group": _as_str,
    "resolution_entry_point_includes": _as_str_list,
    "resolution_entry_point_excludes": _as_str_list,
    "resolution_excludes": _as_str_list,
    "resolution_suspects": _as_str_list,
    "origin_excludes": _as_str_list,
    "required_bom_entry_includes": _as_str_list,
    "required_bom_entry_excludes": _as_str_list,
    "bom_entry_transformations": _as_transformations,
    "full_pom": _as_str,
    "reduced_verbose_pom": _as_str,
    "reduced_pom": _as_str,
}

_TOP_LEVEL_KEYS = {
    "encoding",
    "simple_element_whitespace",
    "on_check_failure",
    "local_repository",
    "active_profiles",
    "excludes",
    "flatten",
}

# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def parse_config(data: Any, project_root: Path) -> PomPruneConfig:
    """Validate the parsed YAML document *data*; ``None`` yields defaults."""
    data = _mapping("<root>", data)
    _check_keys("", data, _TOP_LEVEL_KEYS)

    kwargs: dict[str, Any] = {"project_root": project_root}
    if "encoding" in data:
        kwargs["encoding"] = _as_encoding("encoding", data["encoding"])
    if "simple_element_whitespace" in data:
        kwargs["simple_element_whitespace"] = _as_whitespace(
            "simple_element_whitespace", data["simple_element_whitespace"]
        )
    if "on_check_failure" in data:
        kwargs["on_check_failure"] = _as_policy("on_check_failure", data["on_check_failure"])
    if "local_repository" in data:
        repository = Path(_as_str("local_repository", data["local_repository"])).expanduser()
        kwargs["local_repository"] = (
            repository if repository.is_absolute() else project_root / repository
        )
    if "active_profiles" in data:
        kwargs["active_profiles"] = _as_str_list("active_profiles", data["active_profiles"])

    excludes = _mapping("excludes", data.get("excludes"))
    kwargs["excludes"] = ExcludesConfig(**_read_section("excludes", excludes, _EXCLUDES_READERS))

    flatten = dict(_mapping("flatten", data.get("flatten")))
    banned = flatten.pop("banned_dependency_resources", None)
    flatten_kwargs = _read_section("flatten", flatten, _FLATTEN_READERS)
    flatten_kwargs["banned_dependency_resources"] = _banned_resources(
        "flatten.banned_dependency_resources", banned, project_root
    )
    kwargs["flatten"] = FlattenConfig(**flatten_kwargs)
    return PomPruneConfig(**kwargs)


def load_config(project_root: Path, config_path: Path | None = None) -> PomPruneConfig:
    """Read ``pomprune.yml`` from *project_root*; a missing file yields defaults."""
    path = config_path or project_root / CONFIG_FILE
    if not path.is_file():
        if config_path is not None:
            msg = f"Configuration file {path} does not exist"
            raise ConfigurationError(msg)
        logger.debug("No %s in %s, using defaults", CONFIG_FILE, project_root)
        return PomPruneConfig(project_root=project_root)
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        msg = f"Could not read {path}: {exc}"
        raise ConfigurationError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"Could not parse {path}: {exc}"
        raise ConfigurationError(msg) from exc
    return parse_config(data, project_root)


def with_overrides(config: PomPruneConfig, *, on_check_failure: str | None = None) -> PomPruneConfig:
    """Apply command-line overrides on top of the file values."""
    if on_check_failure is None:
        return config
    return replace(config, on_check_failure=OnFailure.of(on_check_failure))

"""Pre-resolved ``${...}`` evaluation over descriptor property scopes.

The evaluator is built once per invocation: every module's effective
property scope (inherited parent properties, own properties, accepted
profile properties, built-ins) is resolved up front into an immutable
mapping.  Evaluation is then a pure lookup keyed by the descriptor that
owns an expression.

Property values that cannot be resolved (missing placeholder, cycle) are
recorded as :class:`Unresolved` and only become errors when an expression
actually needs them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Union

from pomprune.errors import ConfigurationError
from pomprune.model.gav import Ga

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from pathlib import Path

    from pomprune.tree.pom import Dependency, Expression, Module, ProfileFilter

PLACEHOLDER_RE = re.compile(r"\$\{([^}]+)\}")


@dataclass(frozen=True)
class Unresolved:
    """Marker for a property whose value could not be computed."""

    message: str


ScopeValue = Union[str, Unresolved]


# ---------------------------------------------------------------------------
# Scope resolution
# ---------------------------------------------------------------------------


def resolve_properties(raw: Mapping[str, str], where: str) -> dict[str, ScopeValue]:
    """Resolve every property of *raw* against the others.

    *where* names the descriptor for messages.
    """
    resolved: dict[str, ScopeValue] = {}

    def _resolve(name: str, chain: tuple[str, ...]) -> ScopeValue:
        if name in resolved:
            return resolved[name]
        if name in chain:
            cycle = " -> ".join((*chain[chain.index(name) :], name))
            return Unresolved(f"property cycle {cycle} in {where}")
        value = raw[name]
        for key in PLACEHOLDER_RE.findall(value):
            if key not in raw:
                return Unresolved(f"property '{name}' of {where} refers to unknown property '{key}'")
            replacement = _resolve(key, (*chain, name))
            if isinstance(replacement, Unresolved):
                return replacement
            value = value.replace("${" + key + "}", replacement)
        resolved[name] = value
        return value

    for name in raw:
        resolved[name] = _resolve(name, ())
    return resolved


def interpolate(raw: str, scope: Mapping[str, ScopeValue], owner: str) -> str:
    """Substitute every placeholder of *raw* from a resolved *scope*."""

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        value = scope.get(key)
        if value is None:
            msg = f"Cannot evaluate '{raw}' in {owner}: unresolved placeholder ${{{key}}}"
            raise ConfigurationError(msg)
        if isinstance(value, Unresolved):
            msg = f"Cannot evaluate '{raw}' in {owner}: {value.message}"
            raise ConfigurationError(msg)
        return value

    return PLACEHOLDER_RE.sub(_substitute, raw)


def builtin_properties(module: Module, root_directory: Path | None = None) -> dict[str, str]:
    """Return the ``project.*`` style values Maven exposes for *module*."""
    ga = module.ga
    values = {
        "project.groupId": ga.group_id,
        "project.artifactId": ga.artifact_id,
        "pom.groupId": ga.group_id,
        "pom.artifactId": ga.artifact_id,
    }
    version = module.effective_version
    if version is not None:
        values["project.version"] = version
        values["pom.version"] = version
        values["version"] = version
    if module.parent_gav is not None:
        values["project.parent.groupId"] = module.parent_gav.group_id
        values["project.parent.artifactId"] = module.parent_gav.artifact_id
        if module.parent_gav.version is not None:
            values["project.parent.version"] = module.parent_gav.version
    if root_directory is not None:
        basedir = str(root_directory / module.directory) if module.directory else str(root_directory)
        values["basedir"] = basedir
        values["project.basedir"] = basedir
    return values


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class ExpressionEvaluator:
    """Immutable ``expression -> literal`` lookup keyed by owning descriptor."""

    def __init__(self, scopes: Mapping[str, Mapping[str, ScopeValue]]) -> None:
        self._scopes = MappingProxyType(
            {path: MappingProxyType(dict(scope)) for path, scope in scopes.items()}
        )

    @classmethod
    def for_modules(
        cls,
        modules: Iterable[Module],
        in_tree_parent: Callable[[Module], Module | None],
        profile_filter: ProfileFilter,
        root_directory: Path | None = None,
    ) -> ExpressionEvaluator:
        """Build scopes for *modules*; parents are found through *in_tree_parent*."""
        raw_scopes: dict[str, dict[str, str]] = {}

        def _raw_scope(module: Module, seen: tuple[str, ...]) -> dict[str, str]:
            cached = raw_scopes.get(module.pom_path)
            if cached is not None:
                return cached
            if module.pom_path in seen:
                msg = f"Parent cycle through {' -> '.join((*seen, module.pom_path))}"
                raise ConfigurationError(msg)
            parent = in_tree_parent(module)
            scope = dict(_raw_scope(parent, (*seen, module.pom_path))) if parent else {}
            for profile in module.accepted_profiles(profile_filter):
                scope.update(profile.properties)
            raw_scopes[module.pom_path] = scope
            return scope

        scopes = {}
        for module in modules:
            merged = dict(_raw_scope(module, ()))
            merged.update(builtin_properties(module, root_directory))
            scopes[module.pom_path] = resolve_properties(merged, module.pom_path)
        return cls(scopes)

    def scope(self, owner: str) -> Mapping[str, ScopeValue]:
        try:
            return self._scopes[owner]
        except KeyError:
            msg = f"No property scope for descriptor {owner}"
            raise ConfigurationError(msg) from None

    def evaluate_raw(self, raw: str, owner: str) -> str:
        if "${" not in raw:
            return raw
        return interpolate(raw, self.scope(owner), owner)

    def evaluate(self, expression: Expression) -> str:
        return self.evaluate_raw(expression.raw, expression.owner)

    def evaluate_ga(self, dependency: Dependency) -> Ga:
        return Ga(self.evaluate(dependency.group_id), self.evaluate(dependency.artifact_id))

    def evaluate_version(self, dependency: Dependency) -> str | None:
        if dependency.version is None:
            return None
        return self.evaluate(dependency.version)

    def property(self, owner: str, name: str) -> str | None:
        """Return a resolved property value, ``None`` when undefined."""
        value = self.scope(owner).get(name)
        if isinstance(value, Unresolved):
            raise ConfigurationError(value.message)
        return value

"""Tree domain: descriptor model, module graph, closure and descriptor edits."""

from pomprune.tree.closure import (
    complement,
    required_closure,
    write_excludes_manifest,
)
from pomprune.tree.editor import (
    AddExclusion,
    AddOrSetProperty,
    CommentModules,
    EditorSettings,
    PomEditor,
    SetDependencyVersion,
    SetManagedDependencyVersion,
    SetParentVersion,
    Transformation,
    TransformationBatch,
    UncommentModules,
)
from pomprune.tree.expressions import ExpressionEvaluator
from pomprune.tree.pom import (
    ActiveLink,
    Dependency,
    Expression,
    Module,
    ModuleLink,
    Profile,
    SuppressedLink,
    active_profiles,
    all_profiles,
    parse_pom,
)
from pomprune.tree.source_tree import MavenSourceTree

__all__ = [
    "ActiveLink",
    "AddExclusion",
    "AddOrSetProperty",
    "CommentModules",
    "Dependency",
    "EditorSettings",
    "Expression",
    "ExpressionEvaluator",
    "MavenSourceTree",
    "Module",
    "ModuleLink",
    "PomEditor",
    "Profile",
    "SetDependencyVersion",
    "SetManagedDependencyVersion",
    "SetParentVersion",
    "SuppressedLink",
    "Transformation",
    "TransformationBatch",
    "UncommentModules",
    "active_profiles",
    "all_profiles",
    "complement",
    "parse_pom",
    "required_closure",
    "write_excludes_manifest",
]

"""BOM domain: artifact resolution, effective constraints, flattening and output."""

from pomprune.bom.constraints import ManagedConstraint, effective_constraints
from pomprune.bom.flatten import (
    BomEntryTransformation,
    FlattenResult,
    TransitiveCollector,
    flatten,
    resolution_entry_points,
)
from pomprune.bom.resolver import (
    DependencyNode,
    LocalRepositoryResolver,
    Resolver,
)
from pomprune.bom.writer import (
    ConstraintDrift,
    constraint_drift,
    render_drift,
    write_flattened,
)

__all__ = [
    "BomEntryTransformation",
    "ConstraintDrift",
    "DependencyNode",
    "FlattenResult",
    "LocalRepositoryResolver",
    "ManagedConstraint",
    "Resolver",
    "TransitiveCollector",
    "constraint_drift",
    "effective_constraints",
    "flatten",
    "render_drift",
    "resolution_entry_points",
    "write_flattened",
]

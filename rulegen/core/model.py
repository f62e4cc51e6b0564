"""
Model — Values exchanged between the parser, the cache and the resolver

All values are immutable: the cache hands the same objects to every
reader, so nothing here may be mutated in place.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from .labels import Label


class UsageKind(Enum):
    """How a referenced type is needed."""
    COMPILE_TIME = "compile_time"
    RUNTIME_ONLY = "runtime_only"   # Reflection, service loading, etc.


class Attribute(Enum):
    """Attribute channels that can receive resolved labels."""
    DEPS = "deps"
    RUNTIME_DEPS = "runtime_deps"
    EXPORTS = "exports"


class Origin(Enum):
    """Where a resolved label came from."""
    LOCAL = "local"
    EXTERNAL = "external"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ImportReference:
    """A referenced type plus how it is used."""
    type_name: str
    usage: UsageKind = UsageKind.COMPILE_TIME
    exported: bool = False  # Part of the directory's public surface

    @property
    def is_runtime_only(self) -> bool:
        return self.usage == UsageKind.RUNTIME_ONLY

    @property
    def is_wildcard(self) -> bool:
        return self.type_name.endswith(".*")

    def sort_key(self) -> Tuple[str, str, bool]:
        return (self.type_name, self.usage.value, self.exported)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type_name,
            "usage": self.usage.value,
            "exported": self.exported,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ImportReference':
        return cls(
            type_name=data["type"],
            usage=UsageKind(data.get("usage", UsageKind.COMPILE_TIME.value)),
            exported=data.get("exported", False),
        )


@dataclass(frozen=True)
class ResolvedDependency:
    """Outcome for one reference: label, attribute placed in, origin."""
    label: Optional[Label]
    attribute: Attribute
    origin: Origin
    type_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": str(self.label) if self.label else None,
            "attribute": self.attribute.value,
            "origin": self.origin.value,
            "type": self.type_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResolvedDependency':
        label = data.get("label")
        return cls(
            label=Label.parse(label) if label else None,
            attribute=Attribute(data["attribute"]),
            origin=Origin(data["origin"]),
            type_name=data.get("type", ""),
        )


@dataclass(frozen=True)
class ParseResult:
    """What the parser reports for one source file."""
    package_name: str = ""
    declared_types: FrozenSet[str] = frozenset()
    imports: FrozenSet[ImportReference] = frozenset()


@dataclass(frozen=True)
class PackageEntry:
    """
    Computed facts about one directory.

    Keyed by `path` (workspace-relative, no leading slash).
    `generation` is stamped by the cache on every upsert.
    """
    path: str
    package_name: str = ""
    declared_types: FrozenSet[str] = frozenset()
    kinds: Tuple[str, ...] = ()
    imports: FrozenSet[ImportReference] = frozenset()
    srcs: Tuple[str, ...] = ()
    resolved: Tuple[Tuple[str, Tuple[ResolvedDependency, ...]], ...] = ()
    fingerprint: str = ""
    generation: int = 0

    def __post_init__(self):
        # Equal facts must compare equal however they were built
        object.__setattr__(self, "declared_types", frozenset(self.declared_types))
        object.__setattr__(self, "kinds", tuple(self.kinds))
        object.__setattr__(self, "imports", frozenset(self.imports))
        object.__setattr__(self, "srcs", tuple(self.srcs))
        object.__setattr__(self, "resolved", tuple(sorted(
            ((name, tuple(deps)) for name, deps in self.resolved),
            key=lambda item: item[0],
        )))

    @property
    def label(self) -> Label:
        return Label.for_directory(self.path)

    def resolved_for(self, rule_name: str) -> Tuple[ResolvedDependency, ...]:
        """Last resolved dependencies for a rule, empty if never resolved."""
        for name, deps in self.resolved:
            if name == rule_name:
                return deps
        return ()

    def with_resolved(self, rule_name: str, deps: Iterable[ResolvedDependency]) -> 'PackageEntry':
        """Copy with the dependency set of one rule replaced."""
        others = tuple((n, d) for n, d in self.resolved if n != rule_name)
        return replace(self, resolved=others + ((rule_name, tuple(deps)),))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "package_name": self.package_name,
            "declared_types": sorted(self.declared_types),
            "kinds": list(self.kinds),
            "imports": [
                ref.to_dict() for ref in sorted(self.imports, key=ImportReference.sort_key)
            ],
            "srcs": list(self.srcs),
            "resolved": {
                name: [dep.to_dict() for dep in deps]
                for name, deps in self.resolved
            },
            "fingerprint": self.fingerprint,
            "generation": self.generation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PackageEntry':
        resolved = data.get("resolved", {})
        return cls(
            path=data["path"],
            package_name=data.get("package_name", ""),
            declared_types=frozenset(data.get("declared_types", [])),
            kinds=tuple(data.get("kinds", [])),
            imports=frozenset(
                ImportReference.from_dict(item) for item in data.get("imports", [])
            ),
            srcs=tuple(data.get("srcs", [])),
            resolved=tuple(
                (name, tuple(ResolvedDependency.from_dict(dep) for dep in deps))
                for name, deps in sorted(resolved.items())
            ),
            fingerprint=data.get("fingerprint", ""),
            generation=data.get("generation", 0),
        )

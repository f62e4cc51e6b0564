"""
Rule-Kind Registry — Attribute shapes for every producible rule kind

Each kind maps to one immutable RuleKindInfo describing:
- attrs: every attribute the kind accepts
- non_empty_attrs: a rule with all of these empty is an empty rule
- mergeable_attrs: existing values survive regeneration
- resolve_attrs: channels that receive resolved labels

Three shapes exist:
- WITH_RUNTIME_DEPS: binaries and tests (deps + runtime_deps)
- WITHOUT_RUNTIME_DEPS: generated stubs (deps only)
- LIBRARY: library facades (deps + runtime_deps + exports)

Usage:
    registry = KindRegistry()
    info = registry.lookup("java_library")
    if info and "exports" in info.resolve_attrs:
        ...
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional

from rapidfuzz import process

from .diagnostics import KindNotRegisteredError, RegistryError
from .model import Attribute

RESOLVABLE_ATTRS = frozenset(a.value for a in Attribute)


class RuleKind(Enum):
    """Every rule kind this tool can produce."""
    JAVA_BINARY = "java_binary"
    JAVA_JUNIT5_TEST = "java_junit5_test"
    JAVA_LIBRARY = "java_library"
    JAVA_TEST = "java_test"
    JAVA_TEST_SUITE = "java_test_suite"
    JAVA_PROTO_LIBRARY = "java_proto_library"
    JAVA_GRPC_LIBRARY = "java_grpc_library"
    UNIT_PACKAGE = "unit_package"
    UNIT_TEST = "unit_test"
    INT_TEST = "int_test"
    TEST_TEST = "test_test"
    LIBRARY_PACKAGE = "library_package"
    TEST_PACKAGE = "test_package"


@dataclass(frozen=True)
class RuleKindInfo:
    """Attribute shape of one rule kind."""
    attrs: FrozenSet[str]
    non_empty_attrs: FrozenSet[str]
    mergeable_attrs: FrozenSet[str]
    resolve_attrs: FrozenSet[str]

    @property
    def supports_runtime_deps(self) -> bool:
        return Attribute.RUNTIME_DEPS.value in self.resolve_attrs

    @property
    def supports_exports(self) -> bool:
        return Attribute.EXPORTS.value in self.resolve_attrs

    def is_empty(self, attrs: Mapping[str, List[str]]) -> bool:
        """True when every non-empty attribute is missing or empty."""
        return not any(attrs.get(name) for name in self.non_empty_attrs)

    def merge(
        self,
        existing: Mapping[str, List[str]],
        generated: Mapping[str, List[str]],
    ) -> Dict[str, List[str]]:
        """
        Merge a regenerated rule into an existing one.

        Mergeable attributes keep their existing values, followed by any
        new generated values. Other attributes known to the kind are taken
        from the generated rule. Attributes unknown to the kind are left
        as they were.
        """
        merged: Dict[str, List[str]] = {k: list(v) for k, v in existing.items()}

        for name in self.attrs:
            new_values = list(generated.get(name, []))
            if name in self.mergeable_attrs:
                combined = list(existing.get(name, []))
                combined.extend(v for v in new_values if v not in combined)
                merged[name] = combined
            elif name in generated:
                merged[name] = new_values
            else:
                merged.pop(name, None)

        return {k: v for k, v in merged.items() if v}

    def validate(self, kind: str) -> None:
        """Raise RegistryError if the shape is internally inconsistent."""
        if not self.resolve_attrs <= RESOLVABLE_ATTRS:
            extra = sorted(self.resolve_attrs - RESOLVABLE_ATTRS)
            raise RegistryError(f"{kind}: resolve_attrs has non-resolvable {extra}")
        for label, subset in (
            ("resolve_attrs", self.resolve_attrs),
            ("non_empty_attrs", self.non_empty_attrs),
            ("mergeable_attrs", self.mergeable_attrs),
        ):
            missing = subset - self.attrs
            if missing:
                raise RegistryError(f"{kind}: {label} not in attrs: {sorted(missing)}")
        if Attribute.DEPS.value not in self.resolve_attrs:
            raise RegistryError(f"{kind}: every kind must resolve deps")


# =============================================================================
# Shapes
# =============================================================================

KIND_WITH_RUNTIME_DEPS = RuleKindInfo(
    attrs=frozenset({"srcs", "deps", "runtime_deps"}),
    non_empty_attrs=frozenset({"deps", "srcs"}),
    mergeable_attrs=frozenset({"srcs"}),
    resolve_attrs=frozenset({"deps", "runtime_deps"}),
)

KIND_WITHOUT_RUNTIME_DEPS = RuleKindInfo(
    attrs=frozenset({"srcs", "deps"}),
    non_empty_attrs=frozenset({"deps", "srcs"}),
    mergeable_attrs=frozenset({"srcs"}),
    resolve_attrs=frozenset({"deps"}),
)

LIBRARY_KIND = RuleKindInfo(
    attrs=frozenset({"srcs", "deps", "runtime_deps", "exports"}),
    non_empty_attrs=frozenset({"deps", "exports", "srcs"}),
    mergeable_attrs=frozenset({"srcs"}),
    resolve_attrs=frozenset({"deps", "exports", "runtime_deps"}),
)

DEFAULT_KINDS: Mapping[RuleKind, RuleKindInfo] = MappingProxyType({
    RuleKind.JAVA_BINARY: KIND_WITH_RUNTIME_DEPS,
    RuleKind.JAVA_JUNIT5_TEST: KIND_WITH_RUNTIME_DEPS,
    RuleKind.JAVA_LIBRARY: LIBRARY_KIND,
    RuleKind.JAVA_TEST: KIND_WITH_RUNTIME_DEPS,
    RuleKind.JAVA_TEST_SUITE: KIND_WITH_RUNTIME_DEPS,
    RuleKind.JAVA_PROTO_LIBRARY: KIND_WITHOUT_RUNTIME_DEPS,
    RuleKind.JAVA_GRPC_LIBRARY: KIND_WITHOUT_RUNTIME_DEPS,
    RuleKind.UNIT_PACKAGE: KIND_WITH_RUNTIME_DEPS,
    RuleKind.UNIT_TEST: KIND_WITH_RUNTIME_DEPS,
    RuleKind.INT_TEST: KIND_WITH_RUNTIME_DEPS,
    RuleKind.TEST_TEST: KIND_WITH_RUNTIME_DEPS,
    RuleKind.LIBRARY_PACKAGE: LIBRARY_KIND,
    RuleKind.TEST_PACKAGE: KIND_WITH_RUNTIME_DEPS,
})


class KindRegistry:
    """
    Immutable table of rule kinds.

    Validated on construction. Lookups have no side effects, so the
    registry can be shared freely between worker threads.
    """

    def __init__(self, kinds: Optional[Mapping[RuleKind, RuleKindInfo]] = None):
        table = DEFAULT_KINDS if kinds is None else kinds
        self._kinds: Mapping[str, RuleKindInfo] = MappingProxyType(
            {kind.value: info for kind, info in table.items()}
        )
        self.validate()

    def validate(self) -> None:
        """Check every registered shape. Raises RegistryError."""
        for name, info in self._kinds.items():
            info.validate(name)

    def lookup(self, kind: str) -> Optional[RuleKindInfo]:
        """Get the shape for a kind, or None if not registered."""
        return self._kinds.get(kind)

    def require(self, kind: str) -> RuleKindInfo:
        """Get the shape for a kind. Raises KindNotRegisteredError."""
        info = self._kinds.get(kind)
        if info is None:
            raise KindNotRegisteredError(kind, suggestion=self.suggest(kind))
        return info

    def suggest(self, kind: str) -> Optional[str]:
        """Closest registered kind name, for error messages."""
        match = process.extractOne(kind, list(self._kinds), score_cutoff=60)
        return match[0] if match else None

    def kinds(self) -> Mapping[str, RuleKindInfo]:
        """Rule-metadata surface for rule emission: kind -> shape."""
        return self._kinds

    def __contains__(self, kind: str) -> bool:
        return kind in self._kinds

    def __len__(self) -> int:
        return len(self._kinds)

    def __iter__(self):
        return iter(sorted(self._kinds))

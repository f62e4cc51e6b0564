"""
Resolver — Classify and resolve a directory's references

For each reference of a directory:
1. Local candidate: the one other directory declaring the type
   (nested types fall back to their outer class, wildcard imports use
   the package index).
2. External candidate: always asked of the coordinate resolver.
3. Precedence: local beats external (AMBIGUOUS_RESOLUTION recorded);
   neither gives UNRESOLVED_IMPORT and the dependency is omitted.
4. Placement by the kind's resolve_attrs:
   - runtime-only -> runtime_deps, or deps + DEGRADED_RESOLUTION
   - compile time -> deps
   - exported     -> also exports when placed in deps, else DROPPED_EXPORT
   A label in deps is dropped from runtime_deps.
5. Every attribute list is deduplicated and sorted.

JDK types and types declared in the directory itself are skipped.

Usage:
    resolver = Resolver(cache, registry, coordinates)
    result = resolver.resolve("a/b", "unit_test", imports)
    result.labels("deps")  # ['//x/y']
"""

import logging
from dataclasses import dataclass, field
from typing import (
    Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Tuple, TYPE_CHECKING,
)

from .cache import PackageCache
from .diagnostics import Diagnostic, DiagnosticKind
from .kinds import KindRegistry, RuleKindInfo
from .labels import Label
from .model import Attribute, ImportReference, Origin, ResolvedDependency

if TYPE_CHECKING:
    from ..services.base import CoordinateResolver
    from ..services.calls import CallPolicy

logger = logging.getLogger(__name__)

DEFAULT_JDK_PREFIXES: Tuple[str, ...] = (
    "java.",
    "jdk.",
    "sun.",
    "com.sun.",
    "javax.annotation.processing.",
    "javax.crypto.",
    "javax.lang.model.",
    "javax.management.",
    "javax.naming.",
    "javax.net.",
    "javax.security.",
    "javax.sql.",
    "javax.swing.",
    "javax.tools.",
    "javax.xml.",
)


@dataclass
class ResolveResult:
    """Attribute assignments and diagnostics for one directory and kind."""
    path: str
    kind: str
    assignments: Dict[str, Tuple[Label, ...]] = field(default_factory=dict)
    dependencies: List[ResolvedDependency] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def labels(self, attribute: str) -> List[str]:
        """Label strings assigned to an attribute."""
        return [str(label) for label in self.assignments.get(attribute, ())]

    def attrs(self) -> Dict[str, List[str]]:
        """Non-empty assignments as plain strings, for rule emission."""
        return {
            name: [str(label) for label in labels]
            for name, labels in sorted(self.assignments.items())
            if labels
        }

    def diagnostics_of(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]


class Resolver:
    """
    Resolves references against the package cache and an external
    coordinate resolver.

    Stateless between calls; safe to share across worker threads.
    """

    def __init__(
        self,
        cache: PackageCache,
        registry: KindRegistry,
        coordinates: 'CoordinateResolver',
        policy: Optional['CallPolicy'] = None,
        jdk_prefixes: Sequence[str] = DEFAULT_JDK_PREFIXES,
    ):
        self.cache = cache
        self.registry = registry
        self.coordinates = coordinates
        self.policy = policy
        self.jdk_prefixes = tuple(jdk_prefixes)

    def resolve(
        self,
        path: str,
        kind: str,
        imports: Iterable[ImportReference],
        declared_types: Optional[FrozenSet[str]] = None,
    ) -> ResolveResult:
        """
        Resolve every reference of directory `path` for a rule of `kind`.

        Args:
            path: Directory being resolved
            kind: Rule kind (must be registered)
            imports: References found in the directory's sources
            declared_types: Types declared by the directory. Defaults to
                the cached entry's declared types.

        Raises:
            KindNotRegisteredError: kind is unknown
            CollaboratorTimeout: coordinate resolver timed out after retries
            CollaboratorFatal: coordinate resolver is unavailable
        """
        info = self.registry.require(kind)
        if declared_types is None:
            entry = self.cache.get(path)
            declared_types = entry.declared_types if entry else frozenset()

        result = ResolveResult(
            path=path,
            kind=kind,
            assignments={name: () for name in sorted(info.resolve_attrs)},
        )
        placed: Dict[str, set] = {name: set() for name in info.resolve_attrs}

        for ref in sorted(set(imports), key=ImportReference.sort_key):
            if self.is_jdk_type(ref.type_name):
                continue
            if self._is_self_reference(path, ref, declared_types):
                continue

            label, origin = self._pick_candidate(path, ref, result.diagnostics)
            if label is None:
                result.diagnostics.append(Diagnostic.of(
                    DiagnosticKind.UNRESOLVED_IMPORT, path, ref.type_name,
                    f"No target provides {ref.type_name}",
                ))
                result.dependencies.append(ResolvedDependency(
                    label=None,
                    attribute=_intended_attribute(ref),
                    origin=Origin.UNRESOLVED,
                    type_name=ref.type_name,
                ))
                continue

            for attribute in self._place(path, ref, info, result.diagnostics):
                placed[attribute.value].add(label)
                result.dependencies.append(ResolvedDependency(
                    label=label, attribute=attribute, origin=origin, type_name=ref.type_name,
                ))

        # A compile-time need from any file covers the runtime one
        compile_time = placed.get(Attribute.DEPS.value, set())
        if Attribute.RUNTIME_DEPS.value in placed:
            placed[Attribute.RUNTIME_DEPS.value] -= compile_time
            result.dependencies = [
                dep for dep in result.dependencies
                if not (dep.attribute == Attribute.RUNTIME_DEPS and dep.label in compile_time)
            ]

        for name, labels in placed.items():
            result.assignments[name] = tuple(sorted(labels, key=str))

        logger.debug(
            "Resolved %s (%s): %s, %d diagnostic(s)",
            path or ".", kind,
            {k: len(v) for k, v in result.assignments.items()},
            len(result.diagnostics),
        )
        return result

    def is_jdk_type(self, type_name: str) -> bool:
        return type_name.startswith(self.jdk_prefixes)

    def _is_self_reference(
        self,
        path: str,
        ref: ImportReference,
        declared_types: FrozenSet[str],
    ) -> bool:
        if ref.is_wildcard:
            return path in self.cache.find_package(ref.type_name[:-2])
        return any(name in declared_types for name in _lookup_names(ref.type_name))

    # =========================================================================
    # Candidates
    # =========================================================================

    def _pick_candidate(
        self,
        path: str,
        ref: ImportReference,
        diagnostics: List[Diagnostic],
    ) -> Tuple[Optional[Label], Origin]:
        local = self._local_candidate(path, ref, diagnostics)
        external = self._external_candidate(ref)

        if local is not None and external is not None:
            if external != local:
                diagnostics.append(Diagnostic.of(
                    DiagnosticKind.AMBIGUOUS_RESOLUTION, path, ref.type_name,
                    f"{ref.type_name} resolves locally to {local} and externally "
                    f"to {external}; using {local}",
                ))
            return local, Origin.LOCAL
        if local is not None:
            return local, Origin.LOCAL
        if external is not None:
            return external, Origin.EXTERNAL
        return None, Origin.UNRESOLVED

    def _local_candidate(
        self,
        path: str,
        ref: ImportReference,
        diagnostics: List[Diagnostic],
    ) -> Optional[Label]:
        declaring = tuple(p for p in self._declaring_dirs(ref) if p != path)
        if len(declaring) == 1:
            return Label.for_directory(declaring[0])
        if len(declaring) > 1:
            diagnostics.append(Diagnostic.of(
                DiagnosticKind.AMBIGUOUS_RESOLUTION, path, ref.type_name,
                f"{ref.type_name} is declared in {len(declaring)} directories "
                f"({', '.join(declaring)}); no local target chosen",
            ))
        return None

    def _declaring_dirs(self, ref: ImportReference) -> Tuple[str, ...]:
        if ref.is_wildcard:
            return self.cache.find_package(ref.type_name[:-2])
        for name in _lookup_names(ref.type_name):
            paths = self.cache.find_type(name)
            if paths:
                return paths
        return ()

    def _external_candidate(self, ref: ImportReference) -> Optional[Label]:
        name = ref.type_name[:-2] if ref.is_wildcard else ref.type_name
        if self.policy is None:
            return self.coordinates.resolve(name)
        return self.policy.invoke(f"resolve {name}", self.coordinates.resolve, name)

    # =========================================================================
    # Placement
    # =========================================================================

    def _place(
        self,
        path: str,
        ref: ImportReference,
        info: RuleKindInfo,
        diagnostics: List[Diagnostic],
    ) -> Iterator[Attribute]:
        if not ref.is_runtime_only:
            channel = Attribute.DEPS
        elif info.supports_runtime_deps:
            channel = Attribute.RUNTIME_DEPS
        else:
            diagnostics.append(Diagnostic.of(
                DiagnosticKind.DEGRADED_RESOLUTION, path, ref.type_name,
                f"{ref.type_name} is only needed at runtime but the rule "
                f"kind has no runtime_deps; placed in deps",
            ))
            channel = Attribute.DEPS
        yield channel

        if not ref.exported:
            return
        # exports must be drawn from deps
        if info.supports_exports and channel == Attribute.DEPS:
            yield Attribute.EXPORTS
        elif info.supports_exports:
            diagnostics.append(Diagnostic.of(
                DiagnosticKind.DROPPED_EXPORT, path, ref.type_name,
                f"{ref.type_name} is only needed at runtime and cannot be "
                f"exported; kept in runtime_deps only",
            ))
        else:
            diagnostics.append(Diagnostic.of(
                DiagnosticKind.DROPPED_EXPORT, path, ref.type_name,
                f"{ref.type_name} is part of the public surface but the "
                f"rule kind has no exports; kept in {channel.value} only",
            ))


def _lookup_names(type_name: str) -> List[str]:
    """
    Names to try for a type: itself, then enclosing classes.

    a.b.Outer.Inner -> [a.b.Outer.Inner, a.b.Outer]
    """
    if type_name.endswith(".*"):
        return []
    segments = type_name.split(".")
    names = [type_name]
    while len(segments) > 2 and segments[-2][:1].isupper():
        segments.pop()
        names.append(".".join(segments))
    return names


def _intended_attribute(ref: ImportReference) -> Attribute:
    if ref.is_runtime_only:
        return Attribute.RUNTIME_DEPS
    return Attribute.DEPS

"""
Tests for the Resolver — Classification, precedence and placement.

Tests validate:
- Runtime-only references go to runtime_deps, or degrade into deps
- Local candidates win over external ones, with a diagnostic
- Unresolved and multiply-declared types are reported, not guessed
- JDK types, self references, nested types and wildcard imports
- Exported references and kinds without an exports channel
- Attribute lists are deduplicated and sorted
"""

import pytest

from rulegen.core.diagnostics import DiagnosticKind, KindNotRegisteredError, Severity
from rulegen.core.model import Attribute, ImportReference, Origin, UsageKind
from rulegen.core.resolver import Resolver
from tests.factories import FakeCoordinateResolver, entry, refs


@pytest.fixture
def resolver(cache, registry, coordinates):
    """Resolver over a cache holding a/b, x/y and a/t."""
    cache.upsert(entry("a/b", "a.b.Foo", kind="unit_test"))
    cache.upsert(entry("x/y", "x.y.Bar", "x.y.Baz"))
    cache.upsert(entry("a/t", "a.t.Engine"))
    return Resolver(cache, registry, coordinates)


def kinds_of(result):
    return [d.kind for d in result.diagnostics]


# =============================================================================
# Runtime-only References
# =============================================================================

class TestRuntimePlacement:
    """Placement of references only needed at runtime."""

    def test_unit_test_scenario(self, resolver):
        """Compile-time import to deps, reflective load to runtime_deps."""
        result = resolver.resolve("a/b", "unit_test", refs("x.y.Bar", runtime=["a.t.Engine"]))

        assert result.labels("deps") == ["//x/y"]
        assert result.labels("runtime_deps") == ["//a/t"]
        assert result.diagnostics == []

    def test_proto_library_scenario(self, resolver):
        """No runtime_deps channel: both land in deps, one degraded diagnostic."""
        result = resolver.resolve(
            "a/b", "java_proto_library", refs("x.y.Bar", runtime=["a.t.Engine"])
        )

        assert result.labels("deps") == ["//a/t", "//x/y"]
        assert "runtime_deps" not in result.assignments
        assert kinds_of(result) == [DiagnosticKind.DEGRADED_RESOLUTION]
        assert result.diagnostics[0].subject == "a.t.Engine"
        assert result.diagnostics[0].severity == Severity.WARNING

    def test_runtime_only_never_in_deps_when_kind_has_runtime_deps(self, resolver, registry):
        for kind in registry:
            info = registry.require(kind)
            result = resolver.resolve("a/b", kind, refs(runtime=["a.t.Engine"]))
            if info.supports_runtime_deps:
                assert result.labels("deps") == [], kind
                assert result.labels("runtime_deps") == ["//a/t"], kind
                assert result.diagnostics == [], kind
            else:
                assert result.labels("deps") == ["//a/t"], kind
                assert kinds_of(result) == [DiagnosticKind.DEGRADED_RESOLUTION], kind

    def test_compile_time_need_wins_over_runtime_need(self, resolver):
        """Import in one file, reflective load in another: deps only."""
        imports = [
            ImportReference("a.t.Engine"),
            ImportReference("a.t.Engine", usage=UsageKind.RUNTIME_ONLY),
        ]
        result = resolver.resolve("a/b", "unit_test", imports)
        assert result.attrs() == {"deps": ["//a/t"]}
        assert [d.attribute for d in result.dependencies] == [Attribute.DEPS]

    def test_runtime_label_shared_with_deps_by_another_type(self, resolver):
        result = resolver.resolve("a/b", "unit_test", refs("x.y.Bar", runtime=["x.y.Baz"]))
        assert result.labels("deps") == ["//x/y"]
        assert result.labels("runtime_deps") == []


# =============================================================================
# Candidate Precedence
# =============================================================================

class TestPrecedence:
    """Local over external, unresolved, ambiguous."""

    def test_local_wins_over_external(self, resolver, coordinates):
        coordinates.table["x.y.Bar"] = "@maven//:com_external_bar"

        result = resolver.resolve("a/b", "unit_test", refs("x.y.Bar"))

        assert result.labels("deps") == ["//x/y"]
        assert kinds_of(result) == [DiagnosticKind.AMBIGUOUS_RESOLUTION]
        assert result.dependencies[0].origin == Origin.LOCAL

    def test_external_only(self, resolver, coordinates):
        coordinates.table["com.google.common.base.Strings"] = "@maven//:com_google_guava_guava"

        result = resolver.resolve("a/b", "java_library", refs("com.google.common.base.Strings"))

        assert result.labels("deps") == ["@maven//:com_google_guava_guava"]
        assert result.dependencies[0].origin == Origin.EXTERNAL
        assert result.diagnostics == []

    def test_unresolved_is_omitted_and_reported(self, resolver):
        result = resolver.resolve("a/b", "java_library", refs("org.nowhere.Thing"))

        assert result.attrs() == {}
        assert kinds_of(result) == [DiagnosticKind.UNRESOLVED_IMPORT]
        dependency = result.dependencies[0]
        assert dependency.label is None
        assert dependency.origin == Origin.UNRESOLVED
        assert dependency.type_name == "org.nowhere.Thing"

    def test_unresolved_runtime_reference_keeps_intended_attribute(self, resolver):
        result = resolver.resolve("a/b", "unit_test", refs(runtime=["org.nowhere.Driver"]))
        assert result.dependencies[0].attribute == Attribute.RUNTIME_DEPS

    def test_type_declared_in_two_directories_has_no_local_candidate(self, cache, registry):
        cache.upsert(entry("p", "dup.Type"))
        cache.upsert(entry("q", "dup.Type"))
        resolver = Resolver(cache, registry, FakeCoordinateResolver())

        result = resolver.resolve("a/b", "java_library", refs("dup.Type"))

        assert result.labels("deps") == []
        assert kinds_of(result) == [
            DiagnosticKind.AMBIGUOUS_RESOLUTION,
            DiagnosticKind.UNRESOLVED_IMPORT,
        ]
        assert "p, q" in result.diagnostics[0].message

    def test_two_declarers_fall_back_to_external(self, cache, registry):
        cache.upsert(entry("p", "dup.Type"))
        cache.upsert(entry("q", "dup.Type"))
        resolver = Resolver(cache, registry, FakeCoordinateResolver({"dup.Type": "@maven//:dup"}))

        result = resolver.resolve("a/b", "java_library", refs("dup.Type"))

        assert result.labels("deps") == ["@maven//:dup"]
        assert kinds_of(result) == [DiagnosticKind.AMBIGUOUS_RESOLUTION]

    def test_unknown_kind_raises(self, resolver):
        with pytest.raises(KindNotRegisteredError):
            resolver.resolve("a/b", "java_libary", refs("x.y.Bar"))


# =============================================================================
# Skipped and Derived References
# =============================================================================

class TestReferenceShapes:
    """JDK, self, nested and wildcard references."""

    def test_jdk_types_are_skipped_without_lookups(self, resolver, coordinates):
        result = resolver.resolve(
            "a/b", "java_library", refs("java.util.List", "javax.crypto.Cipher", "jdk.internal.Unsafe")
        )

        assert result.attrs() == {}
        assert result.diagnostics == []
        assert coordinates.calls == []

    def test_jdk_prefixes_are_configurable(self, cache, registry, coordinates):
        resolver = Resolver(cache, registry, coordinates, jdk_prefixes=("org.internal.",))
        assert resolver.is_jdk_type("org.internal.Thing")
        assert not resolver.is_jdk_type("java.util.List")

    def test_self_reference_is_skipped(self, resolver):
        result = resolver.resolve("a/b", "unit_test", refs("a.b.Foo", "a.b.Foo.Nested", "a.b.*"))
        assert result.attrs() == {}
        assert result.diagnostics == []

    def test_declared_types_default_to_cached_entry(self, resolver, coordinates):
        resolver.resolve("a/b", "unit_test", refs("a.b.Foo"))
        assert coordinates.calls == []

    def test_nested_type_resolves_through_outer_class(self, resolver):
        result = resolver.resolve("a/b", "unit_test", refs("x.y.Bar.Inner.Deeper"))
        assert result.labels("deps") == ["//x/y"]
        assert result.diagnostics == []

    def test_wildcard_import_uses_package(self, resolver):
        result = resolver.resolve("a/b", "unit_test", refs("x.y.*"))
        assert result.labels("deps") == ["//x/y"]


# =============================================================================
# Exports
# =============================================================================

class TestExports:
    """References that are part of the public surface."""

    def test_library_exports_and_depends(self, resolver):
        result = resolver.resolve("a/b", "java_library", refs(exported=["x.y.Bar"]))
        assert result.labels("deps") == ["//x/y"]
        assert result.labels("exports") == ["//x/y"]
        assert result.diagnostics == []

    def test_kind_without_exports_drops_with_diagnostic(self, resolver):
        result = resolver.resolve("a/b", "java_test", refs(exported=["x.y.Bar"]))
        assert result.labels("deps") == ["//x/y"]
        assert "exports" not in result.assignments
        assert kinds_of(result) == [DiagnosticKind.DROPPED_EXPORT]

    def test_runtime_only_export_keeps_runtime_placement(self, resolver, registry):
        imports = [ImportReference("a.t.Engine", usage=UsageKind.RUNTIME_ONLY, exported=True)]
        for kind in registry:
            info = registry.require(kind)
            result = resolver.resolve("a/b", kind, imports)
            if info.supports_runtime_deps:
                assert result.labels("deps") == [], kind
                assert result.labels("runtime_deps") == ["//a/t"], kind
                assert result.labels("exports") == [], kind
                assert kinds_of(result) == [DiagnosticKind.DROPPED_EXPORT], kind
            else:
                assert result.labels("deps") == ["//a/t"], kind
                assert kinds_of(result) == [
                    DiagnosticKind.DEGRADED_RESOLUTION,
                    DiagnosticKind.DROPPED_EXPORT,
                ], kind

    def test_exports_are_always_drawn_from_deps(self, resolver, registry):
        imports = refs("x.y.Bar", runtime=["a.t.Engine"], exported=["x.y.Baz"]) | {
            ImportReference("a.t.Engine", usage=UsageKind.RUNTIME_ONLY, exported=True),
        }
        for kind in registry:
            result = resolver.resolve("a/b", kind, imports)
            assert set(result.labels("exports")) <= set(result.labels("deps")), kind


# =============================================================================
# Output Shape
# =============================================================================

class TestOutput:
    """Deduplication, ordering and the attrs() surface."""

    def test_same_directory_appears_once(self, resolver):
        result = resolver.resolve("a/b", "java_library", refs("x.y.Bar", "x.y.Baz", "x.y.*"))
        assert result.labels("deps") == ["//x/y"]
        assert len(result.dependencies) == 3

    def test_labels_are_sorted(self, resolver, coordinates):
        coordinates.table["com.google.common.base.Strings"] = "@maven//:com_google_guava_guava"
        result = resolver.resolve(
            "a/b", "java_library", refs("x.y.Bar", "com.google.common.base.Strings", "a.t.Engine")
        )
        assert result.labels("deps") == ["//a/t", "//x/y", "@maven//:com_google_guava_guava"]

    def test_attrs_omits_empty_channels(self, resolver):
        result = resolver.resolve("a/b", "java_library", refs("x.y.Bar"))
        assert result.attrs() == {"deps": ["//x/y"]}
        assert set(result.assignments) == {"deps", "exports", "runtime_deps"}

    def test_resolution_is_repeatable(self, resolver):
        imports = refs("x.y.Bar", runtime=["a.t.Engine"], exported=["x.y.Baz"])
        first = resolver.resolve("a/b", "java_library", imports)
        second = resolver.resolve("a/b", "java_library", imports)
        assert first.assignments == second.assignments
        assert first.dependencies == second.dependencies

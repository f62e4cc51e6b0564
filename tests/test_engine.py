"""
Tests for the Engine — Lifecycle, phases and failure scopes.

Tests validate:
- Lifecycle transitions and the transition table
- A full run over a sample workspace, in parallel and sequentially
- Failure scopes: parse errors (file), timeouts (directory), fatal (run)
- Fingerprint reuse across runs sharing a cache
- Shutdown idempotence and use after shutdown
"""

import pytest

from rulegen.core.diagnostics import (
    CollaboratorFatal,
    CollaboratorTimeout,
    DiagnosticKind,
    EngineShutdownError,
    InvalidTransitionError,
    KindNotRegisteredError,
    ParseError,
)
from rulegen.engine import (
    DirectoryTask,
    EngineState,
    Lifecycle,
    RunStatus,
    TRANSITION_TABLE,
)
from tests.factories import RecordingEmitter, fast_config, refs


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:
    """State machine."""

    def test_starts_idle(self):
        assert Lifecycle().state == EngineState.IDLE

    def test_full_cycle(self):
        lifecycle = Lifecycle()
        for state in (EngineState.PARSING, EngineState.RESOLVING, EngineState.EMITTING, EngineState.IDLE):
            lifecycle.transition(state)
        assert lifecycle.state == EngineState.IDLE
        assert len(lifecycle.history()) == 4

    def test_transition_returns_previous_state(self):
        lifecycle = Lifecycle()
        assert lifecycle.transition(EngineState.PARSING) == EngineState.IDLE

    def test_skipping_a_phase_is_rejected(self):
        lifecycle = Lifecycle()
        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(EngineState.EMITTING)
        assert lifecycle.state == EngineState.IDLE

    def test_every_state_can_shut_down(self):
        for state in EngineState:
            if state != EngineState.SHUTDOWN:
                assert Lifecycle.can_transition(state, EngineState.SHUTDOWN)

    def test_shutdown_is_terminal(self):
        lifecycle = Lifecycle()
        lifecycle.transition(EngineState.SHUTDOWN)
        assert lifecycle.is_shutdown
        with pytest.raises(EngineShutdownError):
            lifecycle.transition(EngineState.PARSING)

    def test_table_only_holds_allowed_transitions(self):
        assert all(allowed for allowed, _ in TRANSITION_TABLE.values())
        assert (EngineState.SHUTDOWN, EngineState.IDLE) not in TRANSITION_TABLE


# =============================================================================
# Construction
# =============================================================================

class TestConstruction:
    """Engine validates its configuration."""

    def test_invalid_config_raises(self, workspace):
        with pytest.raises(ValueError, match="RULEGEN_WORKERS"):
            workspace.create_engine(fast_config(workers=0))

    def test_unregistered_kind_raises(self, workspace):
        config = fast_config()
        config.library_kind = "java_libary"
        with pytest.raises(KindNotRegisteredError):
            workspace.create_engine(config)

    def test_context_manager_shuts_down(self, workspace):
        with workspace.create_engine() as engine:
            assert engine.state == EngineState.IDLE
        assert engine.state == EngineState.SHUTDOWN


# =============================================================================
# Generation
# =============================================================================

class TestGenerate:
    """A complete run over the sample workspace."""

    @pytest.fixture
    def run(self, sample_workspace):
        engine = sample_workspace.create_engine()
        emitter = RecordingEmitter()
        report = engine.generate(sample_workspace.tasks(), emitter)
        yield engine, report, emitter
        engine.shutdown()

    def test_report_covers_every_directory(self, run):
        _, report, _ = run
        assert report.ok
        assert [r.path for r in report.results] == [
            "lib/api", "lib/core", "src/test/java/com/acme",
        ]
        assert report.failures == []

    def test_kinds_follow_layout(self, run):
        _, report, _ = run
        assert report.result_for("lib/api").rules[0].kind == "java_library"
        assert report.result_for("src/test/java/com/acme").rules[0].kind == "java_test"

    def test_library_exports_and_external_deps(self, run):
        _, report, _ = run
        rule = report.result_for("lib/api").rules[0]
        assert rule.name == "api"
        assert rule.attrs == {
            "srcs": ["Service.java"],
            "deps": ["//lib/core", "@maven//:com_google_guava_guava"],
            "exports": ["//lib/core"],
        }
        assert not rule.empty

    def test_test_gets_runtime_deps(self, run):
        _, report, _ = run
        rule = report.result_for("src/test/java/com/acme").rules[0]
        assert rule.attrs["deps"] == ["//lib/api"]
        assert rule.attrs["runtime_deps"] == ["@maven//:com_h2database_h2"]

    def test_jdk_only_directory_has_sources_only(self, run):
        _, report, _ = run
        assert report.result_for("lib/core").rules[0].attrs == {"srcs": ["Widget.java"]}

    def test_completed_without_diagnostics(self, run):
        _, report, _ = run
        assert report.status == RunStatus.COMPLETED
        assert report.diagnostics == []

    def test_emitter_receives_results_in_path_order_then_loads(self, run):
        _, report, emitter = run
        assert emitter.events == [
            "emit:lib/api", "emit:lib/core", "emit:src/test/java/com/acme", "finish",
        ]
        assert [(s.name, s.symbols) for s in emitter.loads] == [
            ("@rules_java//java:defs.bzl", ("java_library", "java_test")),
        ]
        assert emitter.loads == report.loads

    def test_engine_returns_to_idle(self, run):
        engine, _, _ = run
        assert engine.state == EngineState.IDLE
        states = [to for _, to in engine.lifecycle.history()]
        assert states == [
            EngineState.PARSING, EngineState.RESOLVING, EngineState.EMITTING, EngineState.IDLE,
        ]

    def test_cache_holds_resolved_dependencies(self, run, sample_workspace):
        cached = sample_workspace.cache.get("lib/api")
        assert cached.kinds == ("java_library",)
        labels = {str(d.label) for d in cached.resolved_for("api")}
        assert labels == {"//lib/core", "@maven//:com_google_guava_guava"}

    def test_metrics(self, run):
        engine, report, _ = run
        assert engine.metrics.count("directories", "parsed") == 3
        assert engine.metrics.count("directories", "resolved") == 3
        assert engine.metrics.count("files", "parsed") == 3
        assert set(report.metrics["phases_ms"]) == {"parse", "resolve", "emit"}

    def test_sequential_mode_gives_same_rules(self, sample_workspace):
        engine = sample_workspace.create_engine(fast_config(enabled=False))
        try:
            report = engine.generate(sample_workspace.tasks())
        finally:
            engine.shutdown()
        rule = report.result_for("lib/api").rules[0]
        assert rule.attrs["exports"] == ["//lib/core"]
        assert len(report.results) == 3

    def test_mapping_input(self, workspace):
        source = workspace.add_source("a", "A.java", package="a", declares=["a.A"])
        engine = workspace.create_engine()
        try:
            report = engine.generate({"a": [source]})
        finally:
            engine.shutdown()
        assert report.result_for("a").rules[0].attrs == {"srcs": ["A.java"]}

    def test_duplicate_directory_rejected(self, engine):
        with pytest.raises(ValueError, match="listed twice"):
            engine.generate([DirectoryTask("a"), DirectoryTask("a/")])
        assert engine.state == EngineState.IDLE

    def test_empty_directory_rule_is_flagged(self, engine):
        report = engine.generate([DirectoryTask("empty")])
        rule = report.result_for("empty").rules[0]
        assert rule.empty
        assert report.loads == []


# =============================================================================
# Failure Scopes
# =============================================================================

class TestFailureScopes:
    """What a failure takes down."""

    def test_parse_error_is_a_diagnostic(self, workspace):
        workspace.add_source("a", "Good.java", package="a", declares=["a.Good"])
        workspace.add_source("a", "Bad.java", package="a")
        workspace.fail_parse("Bad.java", ParseError("Bad.java", "syntax error near line 3"))
        engine = workspace.create_engine()
        try:
            report = engine.generate(workspace.tasks())
        finally:
            engine.shutdown()

        assert report.status == RunStatus.COMPLETED_WITH_WARNINGS
        result = report.result_for("a")
        assert [d.kind for d in result.diagnostics] == [DiagnosticKind.PARSE_ERROR]
        assert result.diagnostics[0].subject == "Bad.java"
        assert workspace.cache.get("a").declared_types == {"a.Good"}
        assert workspace.cache.get("a").fingerprint == ""
        assert engine.metrics.count("files", "parse_errors") == 1

    def test_timeout_fails_only_that_directory(self, workspace):
        workspace.add_source("a", "A.java", package="a", imports=refs("slow.Thing"))
        workspace.add_source("b", "B.java", package="b", declares=["b.B"])
        workspace.add_external("slow.Thing", CollaboratorTimeout("resolve slow.Thing"))
        engine = workspace.create_engine()
        try:
            report = engine.generate(workspace.tasks())
        finally:
            engine.shutdown()

        assert report.status == RunStatus.COMPLETED_WITH_WARNINGS
        assert report.result_for("b") is not None
        failure = report.failure_for("a")
        assert failure.phase == "resolve"
        assert [d.kind for d in failure.diagnostics] == [DiagnosticKind.COLLABORATOR_TIMEOUT]
        # One attempt plus one retry
        assert workspace.coordinates.calls.count("slow.Thing") == 2

    def test_fatal_aborts_run_with_report(self, workspace):
        workspace.add_source("a", "A.java", package="a")
        workspace.fail_parse("A.java", CollaboratorFatal("grammar missing"))
        emitter = RecordingEmitter()
        engine = workspace.create_engine()
        try:
            with pytest.raises(CollaboratorFatal) as exc_info:
                engine.generate(workspace.tasks(), emitter)
            assert engine.state == EngineState.IDLE
        finally:
            engine.shutdown()

        report = exc_info.value.report
        assert report.status == RunStatus.ABORTED
        assert not report.ok
        assert report.error == "grammar missing"
        assert emitter.events == []

    def test_fatal_during_resolve(self, workspace):
        workspace.add_source("a", "A.java", package="a", imports=refs("gone.Thing"))
        workspace.add_external("gone.Thing", CollaboratorFatal("index closed"))
        engine = workspace.create_engine()
        try:
            with pytest.raises(CollaboratorFatal) as exc_info:
                engine.generate(workspace.tasks())
        finally:
            engine.shutdown()
        assert exc_info.value.report.status == RunStatus.ABORTED
        assert workspace.coordinates.calls == ["gone.Thing"]

    def test_engine_usable_after_aborted_run(self, workspace):
        workspace.add_source("a", "A.java", package="a")
        workspace.fail_parse("A.java", CollaboratorFatal("flaky start"))
        engine = workspace.create_engine()
        try:
            with pytest.raises(CollaboratorFatal):
                engine.generate(workspace.tasks())
            workspace.add_source("a", "A.java", package="a", declares=["a.A"])
            report = engine.generate(workspace.tasks())
        finally:
            engine.shutdown()
        assert report.status == RunStatus.COMPLETED


# =============================================================================
# Reuse
# =============================================================================

class TestReuse:
    """Unchanged directories skip parsing on the next run."""

    def test_unchanged_sources_are_not_reparsed(self, sample_workspace):
        engine = sample_workspace.create_engine()
        try:
            first = engine.generate(sample_workspace.tasks())
            sample_workspace.parser.calls.clear()
            second = engine.generate(sample_workspace.tasks())
        finally:
            engine.shutdown()

        assert sample_workspace.parser.calls == []
        assert engine.metrics.count("directories", "reused") == 3
        assert all(r.reused for r in second.results)
        for path in ("lib/api", "lib/core", "src/test/java/com/acme"):
            assert second.result_for(path).rules == first.result_for(path).rules

    def test_changed_source_is_reparsed(self, sample_workspace):
        engine = sample_workspace.create_engine()
        try:
            engine.generate(sample_workspace.tasks())
            sample_workspace.parser.calls.clear()
            sample_workspace.add_source(
                "lib/core", "Widget.java", package="com.acme.core",
                declares=["com.acme.core.Widget"], content="package com.acme.core; // v2\n",
            )
            report = engine.generate(sample_workspace.tasks())
        finally:
            engine.shutdown()

        assert sample_workspace.parser.calls == ["Widget.java"]
        assert not report.result_for("lib/core").reused
        assert report.result_for("lib/api").reused

    def test_directory_with_parse_error_is_never_reused(self, workspace):
        workspace.add_source("a", "Bad.java", package="a")
        workspace.fail_parse("Bad.java", ParseError("Bad.java"))
        engine = workspace.create_engine()
        try:
            engine.generate(workspace.tasks())
            engine.generate(workspace.tasks())
        finally:
            engine.shutdown()
        assert workspace.parser.calls == ["Bad.java", "Bad.java"]

    def test_remove_forgets_directory(self, sample_workspace):
        engine = sample_workspace.create_engine()
        try:
            engine.generate(sample_workspace.tasks())
            assert engine.remove("lib/core")
        finally:
            engine.shutdown()
        assert sample_workspace.cache.find_type("com.acme.core.Widget") == ()


# =============================================================================
# Shutdown
# =============================================================================

class TestShutdown:
    """Idempotent release of collaborators."""

    def test_shutdown_twice_releases_once(self, workspace):
        engine = workspace.create_engine()
        engine.shutdown()
        engine.shutdown()
        assert workspace.parser.close_count == 1
        assert workspace.coordinates.close_count == 1
        assert engine.state == EngineState.SHUTDOWN

    def test_generate_after_shutdown_raises(self, workspace):
        engine = workspace.create_engine()
        engine.shutdown()
        with pytest.raises(EngineShutdownError):
            engine.generate([])

    def test_remove_after_shutdown_raises(self, workspace):
        engine = workspace.create_engine()
        engine.shutdown()
        with pytest.raises(EngineShutdownError):
            engine.remove("a")

    def test_shutdown_after_run(self, sample_workspace):
        engine = sample_workspace.create_engine()
        engine.generate(sample_workspace.tasks())
        engine.shutdown()
        assert engine.pool_stats().active_tasks == 0
        assert sample_workspace.parser.close_count == 1

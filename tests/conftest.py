"""
Shared pytest fixtures for the rulegen test suite.

Provides common fixtures using the WorkspaceFactory pattern, so engine
tests run against real files and a real package cache with scripted
parser and coordinate-resolver collaborators.

Usage in tests:
    def test_something(workspace):
        workspace.add_source("a/b", "Foo.java", package="a.b", declares=["a.b.Foo"])
        engine = workspace.create_engine()
        # ... run and inspect the report

    def test_with_data(sample_workspace):
        # sample_workspace comes pre-populated with three directories
        report = sample_workspace.create_engine().generate(sample_workspace.tasks())
"""

import pytest

from rulegen.core.cache import PackageCache
from rulegen.core.kinds import KindRegistry
from tests.factories import FakeCoordinateResolver, WorkspaceFactory


@pytest.fixture
def registry():
    """The default rule-kind registry."""
    return KindRegistry()


@pytest.fixture
def cache():
    """An empty package cache."""
    return PackageCache()


@pytest.fixture
def coordinates():
    """A coordinate resolver that resolves nothing until scripted."""
    return FakeCoordinateResolver()


@pytest.fixture
def workspace(tmp_path):
    """
    Create an empty WorkspaceFactory.

    Use this when you need fine-grained control over the source tree.

    Example:
        def test_parse_error(workspace):
            workspace.add_source("a", "A.java", package="a", declares=["a.A"])
            workspace.fail_parse("A.java", ParseError("A.java", "boom"))
    """
    return WorkspaceFactory(tmp_path)


@pytest.fixture
def sample_workspace(tmp_path):
    """
    Create a WorkspaceFactory with the sample project.

    Pre-populated with:
    - lib/core (java_library, no dependencies)
    - lib/api (java_library, exports lib/core, depends on Guava)
    - src/test/java/com/acme (java_test, H2 driver at runtime)
    """
    factory = WorkspaceFactory(tmp_path)
    factory.create_sample_project()
    return factory


@pytest.fixture
def engine(workspace):
    """Engine over the empty workspace; shut down after the test."""
    engine = workspace.create_engine()
    yield engine
    engine.shutdown()

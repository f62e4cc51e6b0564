"""
Tests for Labels — Build target identifiers.

Tests validate:
- Local labels derived from directory paths
- External labels derived from Maven coordinates
- Parsing and canonical string forms
"""

import pytest

from rulegen.core.labels import Label


# =============================================================================
# Local Labels
# =============================================================================

class TestDirectoryLabels:
    """Labels for rules generated in a directory."""

    def test_name_defaults_to_last_segment(self):
        label = Label.for_directory("a/b")
        assert label.package == "a/b"
        assert label.name == "b"
        assert str(label) == "//a/b"

    def test_explicit_name_is_kept(self):
        assert str(Label.for_directory("a/b", "lib")) == "//a/b:lib"

    def test_slashes_are_stripped(self):
        assert Label.for_directory("/a/b/") == Label.for_directory("a/b")

    def test_workspace_root(self):
        label = Label.for_directory("")
        assert label.name == "root"
        assert str(label) == "//:root"

    def test_local_labels_are_not_external(self):
        assert not Label.for_directory("x/y").is_external


# =============================================================================
# External Labels
# =============================================================================

class TestCoordinateLabels:
    """Labels for Maven artifacts."""

    def test_version_is_dropped(self):
        label = Label.for_coordinate("com.google.guava:guava:31.1-jre")
        assert str(label) == "@maven//:com_google_guava_guava"
        assert label.is_external

    def test_repository_is_configurable(self):
        label = Label.for_coordinate("org.slf4j:slf4j-api", repository="deps")
        assert str(label) == "@deps//:org_slf4j_slf4j_api"


# =============================================================================
# Parsing
# =============================================================================

class TestParse:
    """Label.parse() round-trips canonical strings."""

    @pytest.mark.parametrize("text", [
        "//a/b",
        "//a/b:lib",
        "//:root",
        "@maven//:com_google_guava_guava",
    ])
    def test_canonical_forms_round_trip(self, text):
        assert str(Label.parse(text)) == text

    def test_short_form_equals_explicit_form(self):
        assert Label.parse("//a/b") == Label.parse("//a/b:b")

    @pytest.mark.parametrize("text", ["a/b", "//", "@maven:foo"])
    def test_malformed_labels_raise(self, text):
        with pytest.raises(ValueError):
            Label.parse(text)

    def test_local_labels_sort_before_external(self):
        labels = sorted([Label.parse("@maven//:a"), Label.parse("//z/z")])
        assert [str(label) for label in labels] == ["//z/z", "@maven//:a"]

"""
Test Classifier — Is a rule kind a test target?

Exact membership against a fixed set. No pattern matching: a kind named
"test_helpers_library" is not a test because it contains "test".
"""

from .kinds import RuleKind

TEST_KINDS = frozenset({
    RuleKind.JAVA_JUNIT5_TEST.value,
    RuleKind.JAVA_TEST.value,
    RuleKind.JAVA_TEST_SUITE.value,
    RuleKind.UNIT_PACKAGE.value,
    RuleKind.UNIT_TEST.value,
    RuleKind.INT_TEST.value,
    RuleKind.TEST_TEST.value,
    RuleKind.TEST_PACKAGE.value,
})

MAIN_SOURCE_ROOT = "src/main/java"
TEST_SOURCE_ROOT = "src/test/java"


def is_test(kind: str) -> bool:
    """True if `kind` denotes a test target. Unknown kinds are not tests."""
    return kind in TEST_KINDS


def default_source_root(kind: str) -> str:
    """Conventional source root for a kind."""
    return TEST_SOURCE_ROOT if is_test(kind) else MAIN_SOURCE_ROOT

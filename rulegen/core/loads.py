"""
Load Registry — Which load statements the emitted rules need

Every producible kind is loaded from exactly one .bzl file. For a run,
only files providing at least one used kind are emitted, and only with
the symbols actually used. Output order is deterministic: by load
identifier, then by symbol.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Tuple

from .diagnostics import RegistryError
from .kinds import RuleKind


@dataclass(frozen=True)
class LoadInfo:
    """A .bzl file and the kinds (symbols) it provides."""
    name: str
    symbols: FrozenSet[str]


@dataclass(frozen=True, order=True)
class LoadStatement:
    """A load statement to emit: load(name, *symbols)."""
    name: str
    symbols: Tuple[str, ...]

    def render(self) -> str:
        args = ", ".join(f'"{s}"' for s in (self.name,) + self.symbols)
        return f"load({args})"


JAVA_LOADS: Tuple[LoadInfo, ...] = (
    LoadInfo(
        name="@io_grpc_grpc_java//:java_grpc_library.bzl",
        symbols=frozenset({RuleKind.JAVA_GRPC_LIBRARY.value}),
    ),
    LoadInfo(
        name="@rules_java//java:defs.bzl",
        symbols=frozenset({
            RuleKind.JAVA_BINARY.value,
            RuleKind.JAVA_LIBRARY.value,
            RuleKind.JAVA_PROTO_LIBRARY.value,
            RuleKind.JAVA_TEST.value,
        }),
    ),
    LoadInfo(
        name="@contrib_rules_jvm//java:defs.bzl",
        symbols=frozenset({
            RuleKind.JAVA_JUNIT5_TEST.value,
            RuleKind.JAVA_TEST_SUITE.value,
        }),
    ),
    LoadInfo(
        name="@10gen_mms//server/src/unit:rules.bzl",
        symbols=frozenset({
            RuleKind.UNIT_TEST.value,
            RuleKind.UNIT_PACKAGE.value,
            RuleKind.LIBRARY_PACKAGE.value,
        }),
    ),
    LoadInfo(
        name="@10gen_mms//server/src/test:rules.bzl",
        symbols=frozenset({
            RuleKind.INT_TEST.value,
            RuleKind.TEST_TEST.value,
            RuleKind.TEST_PACKAGE.value,
        }),
    ),
)


def loads() -> Tuple[LoadInfo, ...]:
    """Full load table, as registered."""
    return JAVA_LOADS


def validate_loads(table: Iterable[LoadInfo] = JAVA_LOADS) -> None:
    """Every RuleKind must be provided by exactly one load file."""
    providers: Dict[str, str] = {}
    for info in table:
        for symbol in info.symbols:
            if symbol in providers:
                raise RegistryError(
                    f"{symbol} provided by both {providers[symbol]} and {info.name}"
                )
            providers[symbol] = info.name

    missing = sorted(k.value for k in RuleKind if k.value not in providers)
    if missing:
        raise RegistryError(f"No load file provides: {missing}")


def required_loads(
    kinds_used: Iterable[str],
    table: Iterable[LoadInfo] = JAVA_LOADS,
) -> Tuple[LoadStatement, ...]:
    """
    Load statements needed for the given kinds.

    Unknown kinds are ignored. Files with no used symbol are dropped.
    """
    used = set(kinds_used)
    statements = []
    for info in table:
        symbols = tuple(sorted(info.symbols & used))
        if symbols:
            statements.append(LoadStatement(name=info.name, symbols=symbols))
    return tuple(sorted(statements))

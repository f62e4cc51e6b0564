"""
Core — Dependency resolution and package metadata

Leaf first:
- labels, model, diagnostics: values and the error taxonomy
- kinds, classifier, loads: static rule-kind knowledge
- cache: per-directory facts and the type index
- resolver: classification and resolution of references
"""

from .labels import Label
from .model import (
    UsageKind, Attribute, Origin,
    ImportReference, ResolvedDependency, ParseResult, PackageEntry,
)
from .diagnostics import (
    RulegenError, ConfigError, RegistryError, KindNotRegisteredError,
    CacheFormatError, EngineShutdownError, InvalidTransitionError,
    ParseError, CollaboratorError, CollaboratorTimeout, CollaboratorFatal,
    Diagnostic, DiagnosticKind, Severity,
)
from .kinds import RuleKind, RuleKindInfo, KindRegistry
from .classifier import TEST_KINDS, is_test, default_source_root
from .loads import LoadInfo, LoadStatement, loads, required_loads, validate_loads
from .cache import PackageCache
from .resolver import Resolver, ResolveResult, DEFAULT_JDK_PREFIXES

__all__ = [
    'Label',
    'UsageKind', 'Attribute', 'Origin',
    'ImportReference', 'ResolvedDependency', 'ParseResult', 'PackageEntry',
    'RulegenError', 'ConfigError', 'RegistryError', 'KindNotRegisteredError',
    'CacheFormatError', 'EngineShutdownError', 'InvalidTransitionError',
    'ParseError', 'CollaboratorError', 'CollaboratorTimeout', 'CollaboratorFatal',
    'Diagnostic', 'DiagnosticKind', 'Severity',
    'RuleKind', 'RuleKindInfo', 'KindRegistry',
    'TEST_KINDS', 'is_test', 'default_source_root',
    'LoadInfo', 'LoadStatement', 'loads', 'required_loads', 'validate_loads',
    'PackageCache',
    'Resolver', 'ResolveResult', 'DEFAULT_JDK_PREFIXES',
]

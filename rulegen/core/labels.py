"""
Labels — Stable identifiers for build targets

String forms:
    //a/b:b      local target, shortened to //a/b
    //a/b:lib    local target with an explicit name
    @maven//:com_google_guava_guava   target in an external repository
"""

import re
from dataclasses import dataclass
from typing import Optional

ROOT_TARGET_NAME = "root"

_LABEL_PATTERN = re.compile(
    r'^(?:@(?P<repo>[A-Za-z0-9_.\-~+]*))?//(?P<pkg>[^:]*)(?::(?P<name>.+))?$'
)
_NON_TARGET_CHARS = re.compile(r'[^A-Za-z0-9_]')


@dataclass(frozen=True, order=True)
class Label:
    """A build target label."""
    repository: str = ""
    package: str = ""
    name: str = ""

    @classmethod
    def for_directory(cls, path: str, name: Optional[str] = None) -> 'Label':
        """Local label for the rule generated in directory `path`."""
        package = path.strip("/")
        if name is None:
            name = package.rsplit("/", 1)[-1] if package else ROOT_TARGET_NAME
        return cls(repository="", package=package, name=name)

    @classmethod
    def for_coordinate(cls, coordinate: str, repository: str = "maven") -> 'Label':
        """
        Label for a Maven coordinate, rules_jvm_external style.

        com.google.guava:guava:31.1-jre -> @maven//:com_google_guava_guava
        """
        parts = coordinate.split(":")
        group_artifact = "_".join(parts[:2]) if len(parts) >= 2 else coordinate
        return cls(
            repository=repository,
            package="",
            name=_NON_TARGET_CHARS.sub("_", group_artifact),
        )

    @classmethod
    def parse(cls, text: str) -> 'Label':
        """Parse a label string. Raises ValueError on malformed input."""
        match = _LABEL_PATTERN.match(text.strip())
        if not match:
            raise ValueError(f"Malformed label: {text!r}")

        package = match.group("pkg")
        name = match.group("name")
        if name is None:
            if not package:
                raise ValueError(f"Label has neither package nor name: {text!r}")
            name = package.rsplit("/", 1)[-1]

        return cls(repository=match.group("repo") or "", package=package, name=name)

    @property
    def is_external(self) -> bool:
        return bool(self.repository)

    def __str__(self) -> str:
        prefix = f"@{self.repository}" if self.repository else ""
        if self.package and self.name == self.package.rsplit("/", 1)[-1]:
            return f"{prefix}//{self.package}"
        return f"{prefix}//{self.package}:{self.name}"

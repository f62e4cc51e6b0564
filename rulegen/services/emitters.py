"""
JsonEmitter — Writes a run's rules and loads as JSON

Collects every emitted directory result and writes one document on
finish():

    {
      "loads": [{"name": "@rules_java//java:defs.bzl", "symbols": [...]}],
      "packages": [{"path": "a/b", "label": "//a/b", "rules": [...], ...}]
    }
"""

import logging
import sys
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, TYPE_CHECKING

import orjson

from .base import Emitter

if TYPE_CHECKING:
    from ..core.loads import LoadStatement
    from ..engine.task import DirectoryResult

logger = logging.getLogger(__name__)


class JsonEmitter(Emitter):
    """
    Emits to a file path or a binary stream (stdout by default).

    Empty rules are kept, flagged with "empty": true, so callers can
    delete the corresponding existing rules.
    """

    def __init__(
        self,
        output: Optional[Path] = None,
        stream: Optional[BinaryIO] = None,
        include_diagnostics: bool = True,
    ):
        self.output = Path(output) if output is not None else None
        self.stream = stream
        self.include_diagnostics = include_diagnostics
        self._packages: List[Dict[str, Any]] = []
        self.document: Optional[Dict[str, Any]] = None

    def emit(self, result: 'DirectoryResult') -> None:
        package = result.to_dict()
        if not self.include_diagnostics:
            package.pop("diagnostics", None)
        self._packages.append(package)

    def finish(self, loads: Sequence['LoadStatement']) -> None:
        self.document = {
            "loads": [{"name": load.name, "symbols": list(load.symbols)} for load in loads],
            "packages": self._packages,
        }
        payload = orjson.dumps(self.document, option=orjson.OPT_INDENT_2) + b"\n"

        if self.output is not None:
            self.output.parent.mkdir(parents=True, exist_ok=True)
            self.output.write_bytes(payload)
            logger.info("Wrote %d package(s) to %s", len(self._packages), self.output)
        else:
            stream = self.stream if self.stream is not None else sys.stdout.buffer
            stream.write(payload)
            stream.flush()

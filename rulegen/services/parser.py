"""
JavaParser — Package, type and import extraction using tree-sitter

Implements the Parser collaborator for .java files with the Java grammar
from tree-sitter-language-pack.

Extracted per file:
- package_name: from the package declaration
- declared_types: classes, interfaces, enums, records and annotation
  types, nested ones as Outer.Inner, all package-qualified
- imports:
  - import a.b.C;            -> a.b.C (compile time)
  - import a.b.*;            -> a.b.* (compile time, wildcard)
  - import static a.b.C.x;   -> a.b.C (compile time)
  - Class.forName("a.b.D")   -> a.b.D (runtime only)
  - an imported type used as the superclass or an interface of a public
    type is marked exported

Usage:
    parser = JavaParser()
    result = parser.parse(Path("src/main/java/a/b/Foo.java"))
    result.declared_types  # frozenset({'a.b.Foo'})
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Set, TYPE_CHECKING

from ..core.diagnostics import CollaboratorFatal, ParseError
from ..core.model import ImportReference, ParseResult, UsageKind
from .base import Parser

if TYPE_CHECKING:
    from tree_sitter import Node

logger = logging.getLogger(__name__)

TYPE_DECLARATIONS = frozenset({
    "class_declaration",
    "interface_declaration",
    "enum_declaration",
    "record_declaration",
    "annotation_type_declaration",
})

SUPERTYPE_NODES = frozenset({"superclass", "super_interfaces", "extends_interfaces"})

REFLECTIVE_LOADERS = frozenset({"Class.forName"})


class JavaParser(Parser):
    """
    Parses Java sources with tree-sitter.

    One tree-sitter parser per worker thread; tree-sitter parsers are not
    shared between threads.
    """

    def __init__(self, grammar: str = "java"):
        self.grammar = grammar
        self._local = threading.local()
        self._lock = threading.Lock()
        self._closed = False

    def parse(self, source_file: Path) -> ParseResult:
        """
        Parse one .java file.

        Raises:
            ParseError: unreadable file or syntax errors
            CollaboratorFatal: grammar unavailable or parser closed
        """
        source_file = Path(source_file)
        try:
            content = source_file.read_bytes()
        except OSError as e:
            raise ParseError(str(source_file), str(e)) from e

        tree = self._get_parser().parse(content)
        root = tree.root_node
        if root.has_error:
            raise ParseError(str(source_file), f"syntax error near line {_first_error_line(root)}")

        result = _JavaFile(content).extract(root)
        logger.debug(
            "Parsed %s: package=%s, %d type(s), %d import(s)",
            source_file.name, result.package_name or "-",
            len(result.declared_types), len(result.imports),
        )
        return result

    def close(self) -> None:
        with self._lock:
            self._closed = True
        logger.debug("Java parser closed")

    def _get_parser(self):
        """Get this thread's tree-sitter parser (lazy-loaded)."""
        with self._lock:
            if self._closed:
                raise CollaboratorFatal("Java parser is closed")

        parser = getattr(self._local, "parser", None)
        if parser is not None:
            return parser

        try:
            from tree_sitter_language_pack import get_parser
        except ImportError as e:
            raise CollaboratorFatal(
                "tree-sitter-language-pack is not installed; cannot parse Java"
            ) from e

        try:
            parser = get_parser(self.grammar)
        except Exception as e:
            # Missing or undownloadable grammar: nothing can be parsed this run
            raise CollaboratorFatal(
                f"Cannot load tree-sitter grammar for '{self.grammar}': {e}"
            ) from e

        self._local.parser = parser
        return parser


class _JavaFile:
    """Extraction state for one file."""

    def __init__(self, content: bytes):
        self.content = content
        self.package_name = ""
        self.declared: Set[str] = set()
        self.imported: Dict[str, str] = {}       # Simple name -> qualified name
        self.compile_time: Set[str] = set()
        self.runtime_only: Set[str] = set()
        self.exported: Set[str] = set()

    def extract(self, root: 'Node') -> ParseResult:
        for child in root.named_children:
            if child.type == "package_declaration":
                self.package_name = self._qualified_name(child)
            elif child.type == "import_declaration":
                self._add_import(child)

        for child in root.named_children:
            if child.type in TYPE_DECLARATIONS:
                self._add_type(child, outer=None)

        self._find_reflective_loads(root)

        imports = set()
        for name in self.compile_time:
            imports.add(ImportReference(name, exported=name in self.exported))
        for name in self.runtime_only - self.compile_time:
            imports.add(ImportReference(name, usage=UsageKind.RUNTIME_ONLY))

        return ParseResult(
            package_name=self.package_name,
            declared_types=frozenset(self.declared),
            imports=frozenset(imports),
        )

    # =========================================================================
    # Imports
    # =========================================================================

    def _add_import(self, node: 'Node') -> None:
        is_static = any(child.type == "static" for child in node.children)
        is_wildcard = any(child.type == "asterisk" for child in node.children)
        name = self._qualified_name(node)
        if not name:
            return

        if is_static:
            # import static a.b.C.member; / import static a.b.C.*;
            type_name = name if is_wildcard else name.rsplit(".", 1)[0]
            self.compile_time.add(type_name)
        elif is_wildcard:
            self.compile_time.add(f"{name}.*")
        else:
            self.compile_time.add(name)
            self.imported[name.rsplit(".", 1)[-1]] = name

    # =========================================================================
    # Declarations
    # =========================================================================

    def _add_type(self, node: 'Node', outer: Optional[str]) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return

        simple = self._text(name_node)
        local_name = f"{outer}.{simple}" if outer else simple
        qualified = f"{self.package_name}.{local_name}" if self.package_name else local_name
        self.declared.add(qualified)

        if outer is None and self._is_public(node):
            for supertype in self._supertypes(node):
                imported = self.imported.get(supertype.split(".", 1)[0])
                if imported:
                    self.exported.add(imported)

        body = node.child_by_field_name("body")
        if body is not None:
            for member in _walk_members(body):
                self._add_type(member, outer=local_name)

    def _is_public(self, node: 'Node') -> bool:
        for child in node.children:
            if child.type == "modifiers":
                return "public" in self._text(child).split()
        return False

    def _supertypes(self, node: 'Node') -> List[str]:
        """Simple (or dotted) names of the supertypes a declaration lists."""
        names = []
        for child in node.named_children:
            if child.type in SUPERTYPE_NODES:
                names.extend(self._type_names(child))
        return names

    def _type_names(self, node: 'Node') -> List[str]:
        if node.type in ("type_identifier", "scoped_type_identifier"):
            return [self._text(node)]
        names = []
        for child in node.named_children:
            names.extend(self._type_names(child))
        return names

    # =========================================================================
    # Reflection
    # =========================================================================

    def _find_reflective_loads(self, root: 'Node') -> None:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == "method_invocation":
                type_name = self._reflective_target(node)
                if type_name:
                    self.runtime_only.add(type_name)
            stack.extend(node.named_children)

    def _reflective_target(self, node: 'Node') -> Optional[str]:
        obj = node.child_by_field_name("object")
        name = node.child_by_field_name("name")
        args = node.child_by_field_name("arguments")
        if obj is None or name is None or args is None:
            return None
        if f"{self._text(obj)}.{self._text(name)}" not in REFLECTIVE_LOADERS:
            return None

        literals = [c for c in args.named_children if c.type == "string_literal"]
        if len(literals) != 1:
            return None
        value = self._text(literals[0]).strip('"')
        # Binary names of nested classes use '$'
        return value.replace("$", ".") or None

    # =========================================================================
    # Text helpers
    # =========================================================================

    def _qualified_name(self, node: 'Node') -> str:
        """Dotted name of a package or import declaration."""
        for child in node.named_children:
            if child.type in ("scoped_identifier", "identifier"):
                return self._text(child)
        return ""

    def _text(self, node: 'Node') -> str:
        return self.content[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _walk_members(body: 'Node'):
    """Type declarations directly inside a type body."""
    for child in body.named_children:
        if child.type in TYPE_DECLARATIONS:
            yield child
        elif child.type == "enum_body_declarations":
            yield from _walk_members(child)


def _first_error_line(root: 'Node') -> int:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node.start_point[0] + 1
        stack.extend(reversed(node.children))
    return root.start_point[0] + 1

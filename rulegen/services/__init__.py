"""
Services — Collaborators consumed by the engine

- base: Parser, CoordinateResolver and Emitter interfaces
- calls: CallPolicy, timeouts and retries around collaborator calls
- parser: JavaParser (tree-sitter)
- maven: MavenIndexResolver (maven_install.json package index)
- emitters: JsonEmitter
"""

"""Symbol extraction: turn a node's source text into connection handles.

Built on Tree-sitter, which produces a concrete syntax tree even for broken
or half-typed source.  Only top-level statements are inspected:

- declarations (functions, classes, ``const``/``let``/``var`` bindings and
  their Python equivalents) become *Function* handles on the output side,
- import statements become *PlainImport* handles on the input side.

Extraction never raises for content.  Text that does not parse cleanly yields
whatever declarations Tree-sitter could still recover, flagged as incomplete.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from tree_sitter import Language, Parser as TSParser

from . import config
from .models import Handle, HandleSide, HandleType, handle_id_for
from .surgery import split_lines

logger = logging.getLogger(__name__)

# JavaScript top-level declaration node types
_JS_DECLARATIONS = {
    "function_declaration",
    "generator_function_declaration",
    "class_declaration",
    "lexical_declaration",
    "variable_declaration",
}
_JS_BINDINGS = {"lexical_declaration", "variable_declaration"}

_PY_DEFINITIONS = {"function_definition", "class_definition"}


@dataclass(frozen=True)
class ExtractionResult:
    handles: Tuple[Handle, ...]
    complete: bool
    language: str


@dataclass(frozen=True)
class _Symbol:
    handle_type: HandleType
    name: str
    start_line: int
    end_line: int
    exported: bool = False


def language_for(file_name: str) -> str:
    """Pick the grammar for *file_name* by extension."""
    suffix = PurePosixPath(file_name or "").suffix.lower()
    return config.LANGUAGE_MAP.get(suffix, config.DEFAULT_LANGUAGE)


class SymbolExtractor:
    """Error-tolerant extractor for top-level symbols.

    Grammars come from the per-language ``tree-sitter-<lang>`` packages; a
    language whose grammar is missing simply extracts no handles.
    """

    # Map language name -> module that provides the tree-sitter Language
    _GRAMMAR_MODULES: Dict[str, str] = {
        "javascript": "tree_sitter_javascript",
        "python": "tree_sitter_python",
    }

    def __init__(self, languages: Optional[List[str]] = None) -> None:
        self._parsers: Dict[str, Any] = {}
        self._requested_languages = languages or list(self._GRAMMAR_MODULES)
        self._init_parsers()

    def _init_parsers(self) -> None:
        for lang in self._requested_languages:
            mod_name = self._GRAMMAR_MODULES.get(lang)
            if mod_name is None:
                logger.warning("No grammar module mapped for language '%s'", lang)
                continue
            try:
                mod = importlib.import_module(mod_name)
                self._parsers[lang] = TSParser(Language(mod.language()))
                logger.debug("Loaded tree-sitter parser for %s", lang)
            except ImportError:
                logger.warning(
                    "Grammar package '%s' not installed for language '%s'. "
                    "Install with: pip install %s",
                    mod_name, lang, mod_name.replace("_", "-"),
                )

    def supports_language(self, language: str) -> bool:
        return language in self._parsers

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract(
        self,
        node_id: str,
        source_text: str,
        language: str = "",
    ) -> ExtractionResult:
        language = language or config.DEFAULT_LANGUAGE
        parser = self._parsers.get(language)
        if parser is None:
            logger.debug("No parser for %s; node %s gets no handles", language, node_id)
            return ExtractionResult(handles=(), complete=False, language=language)
        if not source_text.strip():
            return ExtractionResult(handles=(), complete=True, language=language)

        try:
            tree = parser.parse(source_text.encode("utf-8"))
        except (ValueError, RuntimeError) as exc:
            logger.warning("Tree-sitter failed on node %s: %s", node_id, exc)
            return ExtractionResult(handles=(), complete=False, language=language)

        root = tree.root_node
        if language == "python":
            symbols = self._python_symbols(root)
        else:
            symbols = self._javascript_symbols(root)

        complete = not root.has_error
        if not complete:
            logger.debug(
                "Node %s has syntax errors; recovered %d symbol(s)", node_id, len(symbols),
            )
        return ExtractionResult(
            handles=_to_handles(node_id, symbols),
            complete=complete,
            language=language,
        )

    # ------------------------------------------------------------------
    # JavaScript
    # ------------------------------------------------------------------

    def _javascript_symbols(self, root: Any) -> List[_Symbol]:
        symbols: List[_Symbol] = []
        for child in _top_level(root):
            if child.type == "import_statement":
                symbols.extend(self._js_imports(child))
            elif child.type == "export_statement":
                decl = child.child_by_field_name("declaration")
                if decl is not None and decl.type in _JS_DECLARATIONS:
                    symbols.extend(self._js_declaration(child, decl, exported=True))
                elif _is_default_export(child):
                    symbols.append(_Symbol(
                        HandleType.FUNCTION, "default",
                        _first_line(child), _last_line(child), exported=True,
                    ))
            elif child.type in _JS_DECLARATIONS:
                symbols.extend(self._js_declaration(child, child, exported=False))
        return symbols

    @staticmethod
    def _js_declaration(outer: Any, decl: Any, exported: bool) -> List[_Symbol]:
        start, end = _first_line(outer), _last_line(outer)
        if decl.type in _JS_BINDINGS:
            names = []
            for sub in decl.children:
                if sub.type != "variable_declarator":
                    continue
                name_node = sub.child_by_field_name("name")
                if name_node is not None and name_node.type == "identifier":
                    names.append(_text(name_node))
            return [
                _Symbol(HandleType.FUNCTION, name, start, end, exported) for name in names
            ]

        name_node = decl.child_by_field_name("name")
        if name_node is None:
            return []
        return [_Symbol(HandleType.FUNCTION, _text(name_node), start, end, exported)]

    @staticmethod
    def _js_imports(stmt: Any) -> List[_Symbol]:
        start, end = _first_line(stmt), _last_line(stmt)
        names: List[str] = []
        for clause in stmt.children:
            if clause.type != "import_clause":
                continue
            for part in clause.children:
                if part.type == "identifier":
                    names.append(_text(part))
                elif part.type == "namespace_import":
                    for sub in part.children:
                        if sub.type == "identifier":
                            names.append(_text(sub))
                elif part.type == "named_imports":
                    for specifier in part.children:
                        if specifier.type != "import_specifier":
                            continue
                        local = specifier.child_by_field_name("alias") or specifier.child_by_field_name("name")
                        if local is not None:
                            names.append(_text(local))
        return [_Symbol(HandleType.PLAIN_IMPORT, name, start, end) for name in names]

    # ------------------------------------------------------------------
    # Python
    # ------------------------------------------------------------------

    def _python_symbols(self, root: Any) -> List[_Symbol]:
        symbols: List[_Symbol] = []
        for child in _top_level(root):
            actual = child
            if child.type == "decorated_definition":
                inner = child.child_by_field_name("definition")
                if inner is None:
                    continue
                actual = inner

            if actual.type in _PY_DEFINITIONS:
                name_node = actual.child_by_field_name("name")
                if name_node is None:
                    continue
                name = _text(name_node)
                symbols.append(_Symbol(
                    HandleType.FUNCTION, name,
                    _first_line(child), _last_line(child),
                    exported=not name.startswith("_"),
                ))
            elif child.type == "expression_statement":
                symbols.extend(self._py_assignment(child))
            elif child.type in ("import_statement", "import_from_statement"):
                symbols.extend(self._py_imports(child))
        return symbols

    @staticmethod
    def _py_assignment(stmt: Any) -> List[_Symbol]:
        for expr in stmt.children:
            if expr.type != "assignment":
                continue
            left = expr.child_by_field_name("left")
            if left is not None and left.type == "identifier":
                name = _text(left)
                return [_Symbol(
                    HandleType.FUNCTION, name,
                    _first_line(stmt), _last_line(stmt),
                    exported=not name.startswith("_"),
                )]
        return []

    @staticmethod
    def _py_imports(stmt: Any) -> List[_Symbol]:
        start, end = _first_line(stmt), _last_line(stmt)
        names: List[str] = []
        for target in stmt.children_by_field_name("name"):
            if target.type == "aliased_import":
                alias = target.child_by_field_name("alias")
                if alias is not None:
                    names.append(_text(alias))
            else:
                names.append(_text(target))
        return [_Symbol(HandleType.PLAIN_IMPORT, name, start, end) for name in names]


# ===================================================================
# Module-level API
# ===================================================================

@lru_cache(maxsize=1)
def default_extractor() -> SymbolExtractor:
    return SymbolExtractor()


def extract_result(node_id: str, source_text: str, language: str = "") -> ExtractionResult:
    return default_extractor().extract(node_id, source_text, language)


def extract_handles(node_id: str, source_text: str, language: str = "") -> Tuple[Handle, ...]:
    """Return the ordered handles declared by *source_text*.

    Re-running on identical text yields an identical tuple, ids included.
    """
    return extract_result(node_id, source_text, language).handles


def ensure_exported(chunk: str, language: str = "") -> str:
    """Mark the first declaration line of a JavaScript chunk as exported."""
    if (language or config.DEFAULT_LANGUAGE) != "javascript":
        return chunk
    lines = split_lines(chunk)
    for index, line in enumerate(lines):
        stripped = line.lstrip()
        if not stripped.strip():
            continue
        if stripped.startswith("export "):
            return chunk
        indent = line[:len(line) - len(stripped)]
        lines[index] = f"{indent}export {stripped}"
        return "".join(lines)
    return chunk


def render_import(name: str, file_name: str, language: str = "") -> str:
    """Build the import statement that pulls *name* out of *file_name*."""
    if (language or config.DEFAULT_LANGUAGE) == "python":
        # PurePosixPath already drops a leading "./"
        parts = list(PurePosixPath(file_name).with_suffix("").parts)
        up = 0
        while parts and parts[0] == "..":
            parts.pop(0)
            up += 1
        module = ".".join(parts)
        if up:
            module = "." * (up + 1) + module
        return f"from {module} import {name}\n"
    return f"import {{ {name} }} from '{file_name}';\n"


# ===================================================================
# Shared Helpers
# ===================================================================

def _top_level(root: Any) -> List[Any]:
    """Top-level statements, looking one level into ERROR nodes."""
    out: List[Any] = []
    for child in root.children:
        if child.type == "ERROR":
            out.extend(c for c in child.children if c.is_named and c.type != "ERROR")
        elif child.is_named and not child.is_missing:
            out.append(child)
    return out


def _is_default_export(stmt: Any) -> bool:
    return any(c.type == "default" for c in stmt.children) and stmt.child_by_field_name("value") is not None


def _to_handles(node_id: str, symbols: List[_Symbol]) -> Tuple[Handle, ...]:
    seen: Dict[Tuple[HandleType, str], int] = {}
    handles: List[Handle] = []
    for sym in symbols:
        key = (sym.handle_type, sym.name)
        occurrence = seen.get(key, 0)
        seen[key] = occurrence + 1
        side = HandleSide.INPUT if sym.handle_type is HandleType.PLAIN_IMPORT else HandleSide.OUTPUT
        handles.append(Handle(
            handle_id=handle_id_for(node_id, sym.handle_type, sym.name, occurrence),
            node_id=node_id,
            handle_type=sym.handle_type,
            name=sym.name,
            source_range=(sym.start_line, sym.end_line),
            side=side,
            exported=sym.exported,
        ))
    return tuple(handles)


def _first_line(ts_node: Any) -> int:
    return ts_node.start_point[0] + 1


def _last_line(ts_node: Any) -> int:
    row, column = ts_node.end_point[0], ts_node.end_point[1]
    # A node ending at column 0 stops before that row's first character
    if column == 0 and row > ts_node.start_point[0]:
        row -= 1
    return row + 1


def _text(ts_node: Any) -> str:
    return ts_node.text.decode("utf-8")

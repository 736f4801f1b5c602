"""
Symbol extraction using tree-sitter grammars.

Produces ``Symbol`` trees: type declarations (classes, structs, interfaces,
traits, impl blocks) with their base types, containing the methods declared
in their bodies, plus top-level functions. Each grammar package is imported
lazily; a language whose grammar is not installed yields files without
symbols instead of failing the analysis.
"""

import importlib
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Set

from tree_sitter import Language, Parser

from context_server.core.models import Symbol, SymbolKind

logger = logging.getLogger(__name__)


class SourceParser:
    """Extracts declarations from source files using tree-sitter."""

    # Language -> (grammar module, language function)
    LANGUAGE_MODULES = {
        "csharp": ("tree_sitter_c_sharp", "language"),
        "python": ("tree_sitter_python", "language"),
        "javascript": ("tree_sitter_javascript", "language"),
        "typescript": ("tree_sitter_typescript", "language_typescript"),
        "tsx": ("tree_sitter_typescript", "language_tsx"),
        "rust": ("tree_sitter_rust", "language"),
        "go": ("tree_sitter_go", "language"),
        "java": ("tree_sitter_java", "language"),
        "php": ("tree_sitter_php", "language_php"),
    }

    # Type declarations by language
    CONTAINER_NODES: Dict[str, Dict[str, SymbolKind]] = {
        "csharp": {
            "class_declaration": SymbolKind.CLASS,
            "record_declaration": SymbolKind.CLASS,
            "struct_declaration": SymbolKind.STRUCT,
            "interface_declaration": SymbolKind.INTERFACE,
            "enum_declaration": SymbolKind.ENUM,
        },
        "python": {"class_definition": SymbolKind.CLASS},
        "javascript": {"class_declaration": SymbolKind.CLASS},
        "typescript": {
            "class_declaration": SymbolKind.CLASS,
            "abstract_class_declaration": SymbolKind.CLASS,
            "interface_declaration": SymbolKind.INTERFACE,
        },
        "rust": {
            "struct_item": SymbolKind.STRUCT,
            "enum_item": SymbolKind.ENUM,
            "trait_item": SymbolKind.TRAIT,
            "impl_item": SymbolKind.IMPL,
        },
        "go": {"type_spec": SymbolKind.STRUCT},
        "java": {
            "class_declaration": SymbolKind.CLASS,
            "record_declaration": SymbolKind.CLASS,
            "interface_declaration": SymbolKind.INTERFACE,
            "enum_declaration": SymbolKind.ENUM,
        },
        "php": {
            "class_declaration": SymbolKind.CLASS,
            "interface_declaration": SymbolKind.INTERFACE,
            "trait_declaration": SymbolKind.TRAIT,
            "enum_declaration": SymbolKind.ENUM,
        },
    }
    CONTAINER_NODES["tsx"] = CONTAINER_NODES["typescript"]

    # Function-like declarations by language
    FUNCTION_NODES: Dict[str, Set[str]] = {
        "csharp": {"method_declaration", "local_function_statement"},
        "python": {"function_definition"},
        "javascript": {"function_declaration", "method_definition", "generator_function_declaration"},
        "typescript": {"function_declaration", "method_definition", "method_signature"},
        "rust": {"function_item", "function_signature_item"},
        "go": {"function_declaration", "method_declaration"},
        "java": {"method_declaration"},
        "php": {"function_definition", "method_declaration"},
    }
    FUNCTION_NODES["tsx"] = FUNCTION_NODES["typescript"]

    # Direct children of a type declaration that list its base types
    HERITAGE_NODES = {
        "base_list",  # C#
        "argument_list",  # Python superclasses
        "class_heritage",  # JS / TS
        "extends_type_clause",  # TS interfaces
        "superclass",  # Java
        "super_interfaces",  # Java
        "extends_interfaces",  # Java
        "base_clause",  # PHP
        "class_interface_clause",  # PHP
    }

    MODIFIER_NODES = {
        "modifier",
        "visibility_modifier",
        "static_modifier",
        "abstract_modifier",
        "final_modifier",
        "readonly_modifier",
        "accessibility_modifier",
        "override_modifier",
    }
    MODIFIER_GROUP_NODES = {"modifiers", "function_modifiers"}

    NAME_NODES = {"identifier", "type_identifier", "name", "property_identifier", "field_identifier"}
    # impl blocks are named by their (possibly generic) self type
    TYPE_NAME_NODES = NAME_NODES | {"generic_type", "scoped_type_identifier"}

    RETURN_TYPE_FIELDS = ("returns", "return_type", "result", "type")

    def __init__(self):
        """Initialize parsers for every installed grammar."""
        self.parsers: Dict[str, Parser] = {}

        for lang_name, (module_name, func_name) in self.LANGUAGE_MODULES.items():
            try:
                lang_module = importlib.import_module(module_name)
                language = Language(getattr(lang_module, func_name)())
                self.parsers[lang_name] = Parser(language)
                logger.debug(f"Initialized {lang_name} parser")
            except ImportError as e:
                # Grammar package not installed - skip it
                logger.debug(f"Skipping {lang_name} parser (module not installed): {e}")
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Failed to initialize {lang_name} parser: {e}")

    def supports(self, language: str) -> bool:
        if language == "razor":
            return "csharp" in self.parsers
        return language in self.parsers

    def parse_file(self, file_path: Path, language: str) -> List[Symbol]:
        """
        Parse a source file and extract its declarations.

        Args:
            file_path: Path to file
            language: Language name from the detector

        Returns:
            Top-level symbols; empty when the language is unsupported or the
            file cannot be read
        """
        if not self.supports(language):
            return []

        try:
            with open(file_path, "r", encoding="utf-8", errors="ignore") as f:
                content = f.read()
        except OSError as e:
            logger.error(f"Error reading {file_path}: {e}")
            return []

        if language == "razor":
            return self.parse_razor(content, Path(file_path).stem)
        return self.parse_content(content, language)

    def parse_content(self, content: str, language: str) -> List[Symbol]:
        """Parse source text and extract its declarations."""
        parser = self.parsers.get(language)
        if parser is None:
            return []

        tree = parser.parse(bytes(content, "utf8"))
        return self._collect(tree.root_node, language, inside_type=False)

    def parse_razor(self, content: str, component_name: str) -> List[Symbol]:
        """
        Extract the component declared by a .razor file.

        The ``@code`` block is parsed as the body of a class named after the
        file, deriving from ``ComponentBase`` unless ``@inherits`` says otherwise.
        """
        inherits = re.search(r"^\s*@inherits\s+([\w.<>]+)", content, re.MULTILINE)
        base_type = inherits.group(1) if inherits else "ComponentBase"

        body = "\n".join(_razor_code_blocks(content))
        source = f"public partial class {component_name} : {base_type}\n{{\n{body}\n}}\n"
        symbols = self.parse_content(source, "csharp")

        for symbol in symbols:
            if symbol.name == component_name:
                symbol.kind = SymbolKind.COMPONENT
                # Line numbers refer to the synthetic class, not the markup
                symbol.line = None
        return symbols

    # ========================================================================
    # Tree walking
    # ========================================================================

    def _collect(self, node, language: str, inside_type: bool) -> List[Symbol]:
        """Collect symbols below ``node`` without descending into function bodies."""
        containers = self.CONTAINER_NODES.get(language, {})
        functions = self.FUNCTION_NODES.get(language, set())
        symbols = []

        for child in node.children:
            if child.type in containers:
                symbol = self._extract_type(child, containers[child.type], language)
                if symbol:
                    symbols.append(symbol)
            elif child.type in functions:
                symbol = self._extract_function(child, inside_type)
                if symbol:
                    symbols.append(symbol)
            else:
                symbols.extend(self._collect(child, language, inside_type))

        return symbols

    def _extract_type(self, node, kind: SymbolKind, language: str) -> Optional[Symbol]:
        name = self._get_name(node)
        if not name:
            return None

        base_types: List[str] = []
        for child in node.children:
            if child.type in self.HERITAGE_NODES:
                base_types.extend(split_type_list(_text(child)))

        if node.type == "impl_item":
            trait = node.child_by_field_name("trait")
            if trait is not None:
                base_types.append(_text(trait))
        elif node.type == "type_spec":
            type_node = node.child_by_field_name("type")
            if type_node is not None and type_node.type == "interface_type":
                kind = SymbolKind.INTERFACE

        return Symbol(
            name=name,
            kind=kind,
            modifiers=self._get_modifiers(node),
            base_types=base_types,
            line=node.start_point[0] + 1,
            children=self._collect(node, language, inside_type=True),
        )

    def _extract_function(self, node, inside_type: bool) -> Optional[Symbol]:
        name = self._get_name(node)
        if not name:
            return None

        modifiers = self._get_modifiers(node)
        # Go methods are declared outside their receiver type
        is_method = inside_type or node.type in ("method_declaration", "method_definition")

        return Symbol(
            name=name,
            kind=SymbolKind.METHOD if is_method else SymbolKind.FUNCTION,
            modifiers=modifiers,
            return_type=self._get_return_type(node),
            is_async="async" in modifiers,
            line=node.start_point[0] + 1,
        )

    def _get_name(self, node) -> Optional[str]:
        for field_name in ("name", "type"):
            name_node = node.child_by_field_name(field_name)
            if name_node is not None and name_node.type in self.TYPE_NAME_NODES:
                return _text(name_node)

        for child in node.children:
            if child.type in self.NAME_NODES:
                return _text(child)
        return None

    def _get_modifiers(self, node) -> List[str]:
        modifiers = []
        for child in node.children:
            if child.type in self.MODIFIER_NODES:
                modifiers.append(_text(child))
            elif child.type in self.MODIFIER_GROUP_NODES:
                modifiers.extend(_text(child).split())
            elif child.type == "async":
                modifiers.append("async")
        return modifiers

    def _get_return_type(self, node) -> Optional[str]:
        for field_name in self.RETURN_TYPE_FIELDS:
            type_node = node.child_by_field_name(field_name)
            if type_node is not None:
                return _text(type_node).lstrip(":").strip() or None
        return None


def _text(node) -> str:
    return node.text.decode("utf8") if node.text else ""


_HERITAGE_KEYWORDS = re.compile(r"\b(extends|implements)\b")


def split_type_list(text: str) -> List[str]:
    """
    Split a base-type clause into type names.

    Handles ``: Base, IFace<T, U>``, ``extends A implements B, C`` and
    Python's ``(Base, metaclass=Meta)``. Keyword arguments are dropped.
    """
    text = _HERITAGE_KEYWORDS.sub(",", text.strip())
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1]
    text = text.lstrip(":")

    parts, depth, current = [], 0, []
    for char in text:
        if char in "<([":
            depth += 1
        elif char in ">)]":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))

    return [part.strip() for part in parts if part.strip() and "=" not in part]


def _razor_code_blocks(content: str) -> List[str]:
    """Bodies of ``@code { ... }`` / ``@functions { ... }`` blocks."""
    blocks = []
    for match in re.finditer(r"@(?:code|functions)\s*\{", content):
        depth = 1
        start = match.end()
        position = start
        while position < len(content) and depth:
            if content[position] == "{":
                depth += 1
            elif content[position] == "}":
                depth -= 1
            position += 1
        blocks.append(content[start:position - 1] if depth == 0 else content[start:])
    return blocks


# Singleton instance
_parser_instance: Optional[SourceParser] = None


def get_parser() -> SourceParser:
    """Get or create singleton parser instance."""
    global _parser_instance
    if _parser_instance is None:
        _parser_instance = SourceParser()
    return _parser_instance

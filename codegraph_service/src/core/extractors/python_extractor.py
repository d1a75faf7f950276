"""
codegraph_service/src/core/extractors/python_extractor.py

PythonASTExtractor

Extracts code graph entities from a Python source file:

- File      (body = full source, imports, __all__ exports)
- Function  (top-level functions; methods as "Class.method")
- Class     (bases -> extends, ABC/Protocol bases -> implements)

Calls are resolved by scope before they are handed to the engine:
``self.m()`` inside class C becomes "C.m", bare names defined or imported in
the file are kept, builtins and attribute calls on other objects are dropped.
Calls to classes become instantiations.

Returns ParsedEntity records only, suitable for CodeGraphEngine.upsert_entities.
"""

import ast
import builtins
from typing import Dict, List, Optional, Set

from src.core.codegraph.entities import EntityKind, ExportRef, ImportRef, ParsedEntity

INTERFACE_BASES = {"ABC", "Protocol"}
_BUILTIN_NAMES = set(dir(builtins))


class PythonASTExtractor(ast.NodeVisitor):
    def __init__(self, relative_path: str):
        self.relative_path = relative_path
        self.entities: List[ParsedEntity] = []
        self._source = ""
        self._imports: Dict[str, List[str]] = {}
        self._imported_names: Set[str] = set()
        self._class_names: Set[str] = set()
        self._function_names: Set[str] = set()

    def extract(self, source_code: str) -> List[ParsedEntity]:
        tree = ast.parse(source_code)
        annotate_parents(tree)
        self._source = source_code
        self._collect_definitions(tree)
        self.visit(tree)
        self.entities.insert(0, ParsedEntity(
            kind=EntityKind.FILE,
            name=self.relative_path,
            path=self.relative_path,
            body=source_code,
            language="python",
            imports=[ImportRef(source=module, names=names) for module, names in self._imports.items()],
            exports=[ExportRef(name=name) for name in self._exported_names(tree)],
        ))
        return self.entities

    # ----------------------------
    # Visitor methods
    # ----------------------------
    def visit_ClassDef(self, node: ast.ClassDef):
        if self._get_parent_definition(node) is not None:
            return  # nested classes stay part of their parent's body
        extends, implements = [], []
        for base in node.bases:
            base_name = _dotted_name(base)
            if base_name is None or base_name == "object":
                continue
            if base_name.split(".")[-1] in INTERFACE_BASES:
                implements.append(base_name)
            else:
                extends.append(base_name)

        self.entities.append(ParsedEntity(
            kind=EntityKind.CLASS,
            name=node.name,
            body=ast.get_source_segment(self._source, node),
            language="python",
            file_path=self.relative_path,
            extends=extends,
            implements=implements,
            attributes={"lineno": node.lineno},
        ))
        # Visit methods inside class
        self.generic_visit(node)

    def visit_FunctionDef(self, node):
        parent = self._get_parent_definition(node)
        if isinstance(parent, ast.ClassDef) and self._get_parent_definition(parent) is None:
            name = f"{parent.name}.{node.name}"
            owner: Optional[str] = parent.name
        elif parent is None:
            name = node.name
            owner = None
        else:
            return  # nested function

        calls, instantiates = self._resolve_calls(node, owner)
        self.entities.append(ParsedEntity(
            kind=EntityKind.FUNCTION,
            name=name,
            body=ast.get_source_segment(self._source, node),
            language="python",
            file_path=self.relative_path,
            calls=calls,
            instantiates=instantiates,
            attributes={
                "lineno": node.lineno,
                "args": [arg.arg for arg in node.args.args],
                "async": isinstance(node, ast.AsyncFunctionDef),
            },
        ))

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_Import(self, node: ast.Import):
        for alias in node.names:
            self._add_import(alias.name, alias.asname or alias.name)

    def visit_ImportFrom(self, node: ast.ImportFrom):
        module = "." * node.level + (node.module or "")
        for alias in node.names:
            self._add_import(module, alias.asname or alias.name)

    # ----------------------------
    # Helpers
    # ----------------------------
    def _collect_definitions(self, tree: ast.Module):
        for node in tree.body:
            if isinstance(node, ast.ClassDef):
                self._class_names.add(node.name)
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self._function_names.add(node.name)

    def _add_import(self, module: str, bound_name: str):
        names = self._imports.setdefault(module, [])
        if bound_name not in names:
            names.append(bound_name)
        self._imported_names.add(bound_name.split(".")[0])

    def _resolve_calls(self, func: ast.AST, owner: Optional[str]):
        """
        Scoped CALL resolution:
        1. self.method() / cls.method() -> Owner.method
        2. bare name defined at module level or imported
        3. everything else is external and dropped
        """
        calls: List[str] = []
        instantiates: List[str] = []
        for node in ast.walk(func):
            if not isinstance(node, ast.Call):
                continue
            target = node.func
            if (
                owner
                and isinstance(target, ast.Attribute)
                and isinstance(target.value, ast.Name)
                and target.value.id in ("self", "cls")
            ):
                _append_unique(calls, f"{owner}.{target.attr}")
            elif isinstance(target, ast.Name):
                called = target.id
                if called in _BUILTIN_NAMES and called not in self._function_names | self._class_names:
                    continue
                if called in self._class_names or (called in self._imported_names and called[:1].isupper()):
                    _append_unique(instantiates, called)
                elif called in self._function_names or called in self._imported_names:
                    _append_unique(calls, called)
        return calls, instantiates

    def _exported_names(self, tree: ast.Module) -> List[str]:
        for node in tree.body:
            if isinstance(node, ast.Assign) and any(
                isinstance(t, ast.Name) and t.id == "__all__" for t in node.targets
            ):
                if isinstance(node.value, (ast.List, ast.Tuple)):
                    return [
                        element.value
                        for element in node.value.elts
                        if isinstance(element, ast.Constant) and isinstance(element.value, str)
                    ]
        return []

    def _get_parent_definition(self, node: ast.AST) -> Optional[ast.AST]:
        """Closest enclosing class or function, if any."""
        current = getattr(node, "parent", None)
        while current:
            if isinstance(current, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
                return current
            current = getattr(current, "parent", None)
        return None


def _dotted_name(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        prefix = _dotted_name(node.value)
        return f"{prefix}.{node.attr}" if prefix else None
    if isinstance(node, ast.Subscript):  # Generic[T], Protocol[T]
        return _dotted_name(node.value)
    return None


def _append_unique(items: List[str], value: str):
    if value not in items:
        items.append(value)


# ----------------------------
# Utility: set parents for nested nodes
# ----------------------------
def annotate_parents(tree: ast.AST):
    for node in ast.walk(tree):
        for child in ast.iter_child_nodes(node):
            setattr(child, "parent", node)

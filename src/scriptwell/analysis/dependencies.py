"""Cross-file dependency tracking for coherent multi-file generation.

The analyzer extracts imports, exports, functions and classes with regular
expressions and links files through their imports. The result is an advisory
hint layer: it feeds blueprints and per-file constraints into prompts, it is
not a compiler and will miss dynamic or unusual constructs.

Supported languages: JavaScript/TypeScript, Python, Java/Kotlin. Files in any
other language produce empty metadata.
"""

import heapq
import logging
import os
import posixpath
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from scriptwell.analysis.ignore import IgnoreList

logger = logging.getLogger(__name__)

LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".java": "java",
    ".kt": "kotlin",
    ".kts": "kotlin",
}

_JS_EXTENSIONS = (".js", ".mjs", ".cjs", ".jsx", ".ts", ".tsx")
_JVM_EXTENSIONS = (".java", ".kt", ".kts")


# =============================================================================
# Data model
# =============================================================================


@dataclass(frozen=True, slots=True)
class CodeMetadata:
    """Structure extracted from one source file."""

    file_path: str
    """Workspace-relative POSIX path."""

    language: str
    """Detected language, or "unknown"."""

    imports: tuple[str, ...] = ()
    """Raw import specifiers in source order."""

    exports: tuple[str, ...] = ()
    """Names other files may use."""

    functions: tuple[str, ...] = ()
    classes: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.imports or self.exports or self.functions or self.classes)

    def summary(self) -> str:
        """Compact structure line for conversation history."""
        parts = []
        if self.imports:
            parts.append(f"Imports: {', '.join(self.imports)}")
        if self.exports:
            parts.append(f"Exports: {', '.join(self.exports)}")
        if self.functions:
            parts.append(f"Functions: {', '.join(self.functions)}")
        if self.classes:
            parts.append(f"Classes: {', '.join(self.classes)}")
        if not parts:
            return ""
        return f"[Code Structure: {self.file_path}]\n" + "\n".join(parts)


@dataclass(frozen=True, slots=True)
class DependencyMatrix:
    """Files of one workspace and the resolved edges between them.

    ``dependencies[f]`` only ever names files present in ``files``.
    """

    files: dict[str, CodeMetadata] = field(default_factory=dict)
    dependencies: dict[str, frozenset[str]] = field(default_factory=dict)

    def dependents(self, path: str) -> frozenset[str]:
        """Files that import ``path``."""
        return frozenset(f for f, deps in self.dependencies.items() if path in deps)

    def related(self, path: str) -> list[str]:
        """Dependencies and dependents of ``path``, sorted."""
        return sorted(self.dependencies.get(path, frozenset()) | self.dependents(path))


# =============================================================================
# Extraction
# =============================================================================

_JS_IMPORT_FROM = re.compile(r"""import\s+(?:type\s+)?[\w*{}\s,$]+?\s+from\s+['"]([^'"]+)['"]""")
_JS_IMPORT_BARE = re.compile(r"""^\s*import\s+['"]([^'"]+)['"]""", re.MULTILINE)
_JS_REQUIRE = re.compile(r"""require\(\s*['"]([^'"]+)['"]\s*\)""")
_JS_DYNAMIC_IMPORT = re.compile(r"""\bimport\(\s*['"]([^'"]+)['"]\s*\)""")
_JS_EXPORT_DECL = re.compile(
    r"^\s*export\s+(?:default\s+)?(?:async\s+)?(?:function\*?|class|const|let|var|interface|type|enum)\s+([A-Za-z_$][\w$]*)",
    re.MULTILINE,
)
_JS_EXPORT_LIST = re.compile(r"^\s*export\s*\{([^}]*)\}", re.MULTILINE)
_JS_EXPORT_DEFAULT_NAME = re.compile(r"^\s*export\s+default\s+([A-Za-z_$][\w$]*)\s*;?\s*$", re.MULTILINE)
_JS_MODULE_EXPORTS_OBJ = re.compile(r"module\.exports\s*=\s*\{([^}]*)\}")
_JS_MODULE_EXPORTS_NAME = re.compile(r"module\.exports\s*=\s*([A-Za-z_$][\w$]*)\s*;?\s*$", re.MULTILINE)
_JS_EXPORTS_PROP = re.compile(r"(?:module\.)?exports\.([A-Za-z_$][\w$]*)\s*=")
_JS_FUNCTION = re.compile(r"(?:^|[^.\w$])(?:async\s+)?function\*?\s+([A-Za-z_$][\w$]*)")
_JS_ARROW = re.compile(
    r"(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*=\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*=>|[A-Za-z_$][\w$]*\s*=>)"
)
_JS_CLASS = re.compile(r"(?:^|[^.\w$])class\s+([A-Za-z_$][\w$]*)")

_PY_IMPORT = re.compile(r"^import\s+(.+)$", re.MULTILINE)
_PY_FROM = re.compile(r"^from\s+(\.*[\w.]*)\s+import\b", re.MULTILINE)
_PY_DEF = re.compile(r"^(?:async\s+)?def\s+([A-Za-z_]\w*)", re.MULTILINE)
_PY_CLASS = re.compile(r"^class\s+([A-Za-z_]\w*)", re.MULTILINE)
_PY_ASSIGN = re.compile(r"^([A-Za-z]\w*)\s*(?::[^=\n]+)?=(?!=)", re.MULTILINE)
_PY_ALL = re.compile(r"^__all__\s*(?::[^=\n]+)?=\s*[\[(]([^\])]*)[\])]", re.MULTILINE | re.DOTALL)

_JVM_IMPORT = re.compile(r"^\s*import\s+(?:static\s+)?([\w.]+(?:\.\*)?)", re.MULTILINE)
_JVM_CLASS = re.compile(
    r"^\s*((?:(?:public|private|protected|internal|abstract|final|open|sealed|data|enum|static)\s+)*)"
    r"(?:class|interface|enum|object|record)\s+([A-Za-z_]\w*)",
    re.MULTILINE,
)
_KOTLIN_FUN = re.compile(
    r"^\s*((?:(?:public|private|protected|internal|override|suspend|inline|open|operator)\s+)*)"
    r"fun\s+(?:<[^>]+>\s*)?(?:[\w.]+\.)?([A-Za-z_]\w*)\s*\(",
    re.MULTILINE,
)
_JAVA_METHOD = re.compile(
    r"^\s*((?:(?:public|private|protected|static|final|abstract|synchronized|native)\s+)+)"
    r"[\w<>\[\],.? ]+?\s+([A-Za-z_]\w*)\s*\(",
    re.MULTILINE,
)


def _unique(items: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for item in items:
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return tuple(seen)


def _split_names(text: str) -> list[str]:
    """Names from ``a, b as c, d: e`` export/object lists (the exported name wins)."""
    names = []
    for part in text.split(","):
        part = part.strip()
        if not part or part.startswith("..."):
            continue
        if " as " in part:
            part = part.split(" as ", 1)[1]
        part = part.split(":", 1)[0].strip()
        if re.fullmatch(r"[A-Za-z_$][\w$]*", part):
            names.append(part)
    return names


def detect_language(file_path: str) -> str:
    return LANGUAGE_BY_EXTENSION.get(posixpath.splitext(file_path)[1].lower(), "unknown")


def _analyze_javascript(path: str, content: str, language: str) -> CodeMetadata:
    imports = []
    for pattern in (_JS_IMPORT_FROM, _JS_IMPORT_BARE, _JS_REQUIRE, _JS_DYNAMIC_IMPORT):
        imports.extend((m.start(), m.group(1)) for m in pattern.finditer(content))
    imports.sort()

    exports = [m.group(1) for m in _JS_EXPORT_DECL.finditer(content)]
    for m in _JS_EXPORT_LIST.finditer(content):
        exports.extend(_split_names(m.group(1)))
    exports.extend(m.group(1) for m in _JS_EXPORT_DEFAULT_NAME.finditer(content))
    for m in _JS_MODULE_EXPORTS_OBJ.finditer(content):
        exports.extend(_split_names(m.group(1)))
    exports.extend(m.group(1) for m in _JS_MODULE_EXPORTS_NAME.finditer(content))
    exports.extend(m.group(1) for m in _JS_EXPORTS_PROP.finditer(content))

    functions = [m.group(1) for m in _JS_FUNCTION.finditer(content)]
    functions.extend(m.group(1) for m in _JS_ARROW.finditer(content))
    classes = [m.group(1) for m in _JS_CLASS.finditer(content)]

    return CodeMetadata(
        file_path=path,
        language=language,
        imports=_unique(spec for _, spec in imports),
        exports=_unique(exports),
        functions=_unique(functions),
        classes=_unique(classes),
    )


def _analyze_python(path: str, content: str) -> CodeMetadata:
    found: list[tuple[int, str]] = []
    for m in _PY_IMPORT.finditer(content):
        for part in m.group(1).split("#", 1)[0].split(","):
            module = part.strip().split(" as ", 1)[0].strip()
            if module:
                found.append((m.start(), module))
    found.extend((m.start(), m.group(1)) for m in _PY_FROM.finditer(content))
    found.sort()

    functions = [m.group(1) for m in _PY_DEF.finditer(content)]
    classes = [m.group(1) for m in _PY_CLASS.finditer(content)]

    all_match = _PY_ALL.search(content)
    if all_match:
        exports = re.findall(r"""['"]([\w]+)['"]""", all_match.group(1))
    else:
        assigned = [m.group(1) for m in _PY_ASSIGN.finditer(content)]
        exports = [n for n in (*functions, *classes, *assigned) if not n.startswith("_")]

    return CodeMetadata(
        file_path=path,
        language="python",
        imports=_unique(module for _, module in found),
        exports=_unique(exports),
        functions=_unique(functions),
        classes=_unique(classes),
    )


def _analyze_jvm(path: str, content: str, language: str) -> CodeMetadata:
    imports = [m.group(1) for m in _JVM_IMPORT.finditer(content)]
    classes, exports, functions = [], [], []

    for m in _JVM_CLASS.finditer(content):
        modifiers, name = m.group(1), m.group(2)
        classes.append(name)
        if "private" not in modifiers and (language == "kotlin" or "public" in modifiers):
            exports.append(name)

    if language == "kotlin":
        for m in _KOTLIN_FUN.finditer(content):
            modifiers, name = m.group(1), m.group(2)
            functions.append(name)
            if "private" not in modifiers and "protected" not in modifiers:
                exports.append(name)
    else:
        for m in _JAVA_METHOD.finditer(content):
            modifiers, name = m.group(1), m.group(2)
            if name in ("if", "for", "while", "switch", "catch", "return", "new"):
                continue
            functions.append(name)
            if "public" in modifiers:
                exports.append(name)

    return CodeMetadata(
        file_path=path,
        language=language,
        imports=_unique(imports),
        exports=_unique(exports),
        functions=_unique(functions),
        classes=_unique(classes),
    )


# =============================================================================
# Import resolution
# =============================================================================


def _pick(candidates: Iterable[str]) -> str | None:
    """Shortest path wins, then lexicographic order."""
    return min(candidates, key=lambda p: (len(p), p), default=None)


def _strip_ext(path: str) -> str:
    return posixpath.splitext(path)[0]


def _suffix_match(key: str, files: Iterable[str], from_file: str) -> str | None:
    key = key.strip("/")
    if not key:
        return None
    matches = []
    for candidate in files:
        if candidate == from_file:
            continue
        stem = _strip_ext(candidate)
        for form in (stem, stem.removesuffix("/index"), stem.removesuffix("/__init__")):
            if form == key or form.endswith("/" + key):
                matches.append(candidate)
                break
    return _pick(matches)


def resolve_import(spec: str, from_file: str, language: str, files: set[str]) -> str | None:
    """Map an import specifier to a workspace file, or None if unresolved."""
    base_dir = posixpath.dirname(from_file)

    if language in ("javascript", "typescript"):
        if spec.startswith("."):
            target = posixpath.normpath(posixpath.join(base_dir, spec))
            candidates = [target]
            candidates.extend(target + ext for ext in _JS_EXTENSIONS)
            candidates.extend(f"{target}/index{ext}" for ext in _JS_EXTENSIONS)
            direct = [c for c in candidates if c in files and c != from_file]
            if direct:
                return _pick(direct)
        key = _strip_ext(spec.lstrip("./")) if spec.startswith(".") else spec
        return _suffix_match(key, files, from_file)

    if language == "python":
        dots = len(spec) - len(spec.lstrip("."))
        module_path = spec.lstrip(".").replace(".", "/")
        if dots:
            anchor = base_dir
            for _ in range(dots - 1):
                anchor = posixpath.dirname(anchor)
            target = posixpath.join(anchor, module_path) if module_path else anchor
            target = posixpath.normpath(target) if target else ""
            direct = [c for c in (f"{target}.py", f"{target}/__init__.py") if c in files and c != from_file]
            if direct:
                return _pick(direct)
        return _suffix_match(module_path, files, from_file)

    if language in ("java", "kotlin"):
        if spec.endswith(".*"):
            return None
        return _suffix_match(spec.replace(".", "/"), files, from_file)

    return None


# =============================================================================
# Analyzer service
# =============================================================================


def normalize_path(file_path: str | Path, workspace_root: str | Path) -> str:
    """Workspace-relative POSIX path when ``file_path`` lies inside the root."""
    root = Path(workspace_root).expanduser().resolve()
    path = Path(file_path)
    absolute = (path if path.is_absolute() else root / path).resolve()
    try:
        return absolute.relative_to(root).as_posix()
    except ValueError:
        return absolute.as_posix()


class CodeDependencyAnalyzer:
    """Owns one dependency matrix per workspace root.

    All mutation goes through this object. Matrices handed out are immutable
    snapshots, rebuilt whenever metadata changes.

    Example:
        analyzer = CodeDependencyAnalyzer()
        meta = analyzer.analyze("src/app.js", source, workspace_root=root)
        analyzer.update_matrix(root, meta)
        print(analyzer.generate_blueprint(root))
    """

    def __init__(self, *, max_file_bytes: int = 1_000_000) -> None:
        self.max_file_bytes = max_file_bytes
        self._metadata: dict[str, dict[str, CodeMetadata]] = {}
        self._matrices: dict[str, DependencyMatrix] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _root_key(workspace_root: str | Path) -> str:
        return Path(workspace_root).expanduser().resolve().as_posix()

    def analyze(
        self,
        file_path: str | Path,
        content: str,
        workspace_root: str | Path | None = None,
    ) -> CodeMetadata:
        """Extract metadata from source text. Unknown languages give empty metadata."""
        path = normalize_path(file_path, workspace_root) if workspace_root else Path(file_path).as_posix()
        language = detect_language(path)
        if language in ("javascript", "typescript"):
            return _analyze_javascript(path, content, language)
        if language == "python":
            return _analyze_python(path, content)
        if language in ("java", "kotlin"):
            return _analyze_jvm(path, content, language)
        return CodeMetadata(file_path=path, language="unknown")

    def update_matrix(self, workspace_root: str | Path, metadata: CodeMetadata | Iterable[CodeMetadata]) -> DependencyMatrix:
        """Merge metadata for one or more files and rebuild the graph."""
        items = [metadata] if isinstance(metadata, CodeMetadata) else list(metadata)
        key = self._root_key(workspace_root)
        with self._lock:
            store = self._metadata.setdefault(key, {})
            for item in items:
                store[normalize_path(item.file_path, key)] = item
            matrix = self._rebuild(store)
            self._matrices[key] = matrix
        logger.debug("Dependency matrix updated", extra={"root": key, "files": len(matrix.files)})
        return matrix

    def get_matrix(self, workspace_root: str | Path) -> DependencyMatrix:
        with self._lock:
            return self._matrices.get(self._root_key(workspace_root), DependencyMatrix())

    def remove_file(self, workspace_root: str | Path, file_path: str | Path) -> DependencyMatrix:
        key = self._root_key(workspace_root)
        with self._lock:
            store = self._metadata.setdefault(key, {})
            store.pop(normalize_path(file_path, key), None)
            matrix = self._rebuild(store)
            self._matrices[key] = matrix
            return matrix

    def clear(self, workspace_root: str | Path | None = None) -> None:
        """Forget one workspace, or all of them."""
        with self._lock:
            if workspace_root is None:
                self._metadata.clear()
                self._matrices.clear()
            else:
                key = self._root_key(workspace_root)
                self._metadata.pop(key, None)
                self._matrices.pop(key, None)

    @staticmethod
    def _rebuild(store: dict[str, CodeMetadata]) -> DependencyMatrix:
        files = dict(sorted(store.items()))
        names = set(files)
        dependencies: dict[str, frozenset[str]] = {}
        for path, meta in files.items():
            resolved = set()
            for spec in meta.imports:
                target = resolve_import(spec, path, meta.language, names)
                if target is not None and target != path:
                    resolved.add(target)
            dependencies[path] = frozenset(resolved)
        return DependencyMatrix(files=files, dependencies=dependencies)

    # -------------------------------------------------------------------------
    # Prompt fragments
    # -------------------------------------------------------------------------

    def generate_blueprint(self, workspace_root: str | Path, *, max_files: int | None = None) -> str:
        """Deterministic text describing every tracked file.

        Same matrix in, same text out: files, names and edges are sorted.
        """
        matrix = self.get_matrix(workspace_root)
        lines = ["## Code Dependency Blueprint", ""]
        if not matrix.files:
            lines += [
                "No existing source files were found. This is a new project:",
                "1. Propose the file structure and the order to write the files in",
                "2. Note which files each new file should reference",
                "3. Write the files one at a time, following this plan",
            ]
            return "\n".join(lines) + "\n"

        paths = sorted(matrix.files)
        shown = paths if max_files is None else paths[:max_files]
        for path in shown:
            meta = matrix.files[path]
            lines.append(f"### File: {path}")
            lines.append(f"  - Language: {meta.language}")
            for label, values in (
                ("Imports", meta.imports),
                ("Exports", sorted(meta.exports)),
                ("Functions", sorted(meta.functions)),
                ("Classes", sorted(meta.classes)),
                ("Depends on", sorted(matrix.dependencies.get(path, ()))),
                ("Used by", sorted(matrix.dependents(path))),
            ):
                if values:
                    lines.append(f"  - {label}: {', '.join(values)}")
            lines.append("")
        if len(shown) < len(paths):
            lines.append(f"({len(paths) - len(shown)} more files not shown)")
            lines.append("")

        edges = [(p, sorted(d)) for p, d in sorted(matrix.dependencies.items()) if d]
        if edges:
            lines.append("Dependency graph:")
            lines.extend(f"  - {p} -> {', '.join(d)}" for p, d in edges)
            lines.append("")

        lines += [
            "Rules:",
            "- Reference only the exports, functions and classes listed above",
            "- Import only from files listed above, or create the file first",
            "- Check 'Depends on' and 'Used by' before changing a file's exports",
        ]
        return "\n".join(lines) + "\n"

    def relativeness_summary(self, workspace_root: str | Path, file_path: str | Path) -> str:
        """Dependencies and dependents of one file, or "" if it has none."""
        matrix = self.get_matrix(workspace_root)
        path = normalize_path(file_path, workspace_root)
        depends = sorted(matrix.dependencies.get(path, ()))
        used_by = sorted(matrix.dependents(path))
        if not depends and not used_by:
            return ""
        lines = [f"[File Relativeness: {path}]"]
        if depends:
            lines.append(f"Depends on: {', '.join(depends)}")
        if used_by:
            lines.append(f"Used by: {', '.join(used_by)}")
        return "\n".join(lines)

    def constraint_for_file(self, workspace_root: str | Path, file_path: str | Path) -> str:
        """Prompt fragment restricting a file to names its related files provide."""
        matrix = self.get_matrix(workspace_root)
        path = normalize_path(file_path, workspace_root)
        related = matrix.related(path)
        if not related and not matrix.files:
            return ""

        lines = [f"## Coherence constraints for {path}", ""]
        if related:
            lines.append(f"Related files: {', '.join(related)}")
            lines.append("Names available from related files:")
            for other in related:
                meta = matrix.files.get(other)
                if meta is None:
                    continue
                lines.append(f"  - {other}:")
                for label, values in (("Exports", meta.exports), ("Functions", meta.functions), ("Classes", meta.classes)):
                    if values:
                        lines.append(f"    - {label}: {', '.join(sorted(values))}")
            lines.append("")
        lines += [
            "Rules:",
            "- Use only the imports, exports, functions and classes listed above",
            "- If something you need does not exist yet, create it first, then use it",
        ]
        return "\n".join(lines) + "\n"

    def writing_order(self, workspace_root: str | Path, targets: Iterable[str] | None = None) -> list[str]:
        """Dependency-first order of ``targets`` (default: all files).

        Cycles are broken by taking the lexicographically smallest remaining file.
        """
        matrix = self.get_matrix(workspace_root)
        nodes = sorted({normalize_path(t, workspace_root) for t in targets} if targets is not None else matrix.files)
        node_set = set(nodes)
        pending = {n: set(matrix.dependencies.get(n, ())) & node_set - {n} for n in nodes}

        order: list[str] = []
        ready = [n for n in nodes if not pending[n]]
        heapq.heapify(ready)
        done: set[str] = set()
        while len(order) < len(nodes):
            if not ready:
                # Cycle: force the smallest remaining node
                forced = min(n for n in nodes if n not in done)
                pending[forced] = set()
                heapq.heappush(ready, forced)
            node = heapq.heappop(ready)
            if node in done:
                continue
            done.add(node)
            order.append(node)
            for other in nodes:
                if other not in done and node in pending[other]:
                    pending[other].discard(node)
                    if not pending[other]:
                        heapq.heappush(ready, other)
        return order

    def file_writing_plan(self, workspace_root: str | Path, targets: Iterable[str] | None = None) -> str:
        """Numbered writing order with the files to reference for each step."""
        matrix = self.get_matrix(workspace_root)
        order = self.writing_order(workspace_root, targets)
        lines = ["## File Writing Plan", "", "Suggested order (dependencies first):"]
        for index, path in enumerate(order, 1):
            lines.append(f"{index}. {path}")
            deps = sorted(matrix.dependencies.get(path, ()))
            if deps:
                lines.append(f"   - Reference: {', '.join(deps)}")
            else:
                lines.append("   - No dependencies, can be written first")
            used_by = sorted(matrix.dependents(path))
            if used_by:
                lines.append(f"   - Used by: {', '.join(used_by)}")
            meta = matrix.files.get(path)
            if meta is not None and meta.exports:
                lines.append(f"   - Exports: {', '.join(sorted(meta.exports))}")
        return "\n".join(lines) + "\n"

    # -------------------------------------------------------------------------
    # Workspace scan
    # -------------------------------------------------------------------------

    def scan_workspace(self, workspace_root: str | Path, ignore: IgnoreList | None = None) -> DependencyMatrix:
        """Analyze every supported, non-ignored file under the root."""
        root = Path(workspace_root).expanduser().resolve()
        if not root.is_dir():
            raise NotADirectoryError(str(root))
        ignore = ignore or IgnoreList.for_workspace(root)

        collected: list[CodeMetadata] = []
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root)
            dirnames[:] = sorted(
                d for d in dirnames if not ignore.is_ignored((rel_dir / d).as_posix(), is_dir=True)
            )
            for name in sorted(filenames):
                rel = (rel_dir / name).as_posix()
                if detect_language(rel) == "unknown" or ignore.is_ignored(rel):
                    continue
                full = Path(dirpath) / name
                try:
                    if full.stat().st_size > self.max_file_bytes:
                        logger.debug("Skipping large file %s", rel)
                        continue
                    content = full.read_text(encoding="utf-8", errors="replace")
                except OSError as e:
                    logger.warning("Failed to read %s: %s", rel, e)
                    continue
                collected.append(self.analyze(rel, content))

        logger.info("Scanned workspace", extra={"root": str(root), "files": len(collected)})
        return self.update_matrix(root, collected)

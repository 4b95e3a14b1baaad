"""
Import-boundary enforcement.

1. Engine purity      -- travel_engines/** may not import DB drivers, the
                         ORM, kernel db/models/services, or the config loader.
2. Engine no-impure   -- travel_engines/** may not read the wall clock or
                         the environment.
3. Config centralisation -- only travel_config/__init__.py imports the loader.
4. Kernel direction   -- travel_kernel/** never imports engines or config.

All scanning is done via AST -- these tests are read-only.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _extract_attribute_calls(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...], allowed_files: tuple[str, ...] = ()) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        rel = filepath.relative_to(ROOT).as_posix()
        if rel in allowed_files:
            continue
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"  {rel}:{lineno} imports '{module}'")
    return found


class TestEnginePurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "yaml",
        "travel_kernel.db",
        "travel_kernel.models",
        "travel_kernel.services",
        "travel_config.loader",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("travel_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, "Engine purity violation:\n" + "\n".join(violations)

    def test_engines_only_use_config_schema(self):
        offenders = [
            f"{path.relative_to(ROOT).as_posix()}:{lineno}"
            for path in _python_files("travel_engines")
            for lineno, module in _extract_imports(path)
            if module == "travel_config"
        ]
        assert not offenders, "Engines must receive config, not load it:\n" + "\n".join(offenders)


class TestEngineNoImpureFunctions:

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    def test_no_impure_calls_in_engines(self):
        violations = [
            f"  {path.relative_to(ROOT).as_posix()}:{lineno} calls '{name}'"
            for path in _python_files("travel_engines")
            for lineno, name in _extract_attribute_calls(path)
            if name in self.FORBIDDEN_CALLS
        ]
        assert not violations, "Engine impurity violation:\n" + "\n".join(violations)


class TestConfigCentralization:

    def test_loader_only_imported_by_config_entrypoint(self):
        violations: list[str] = []
        for package in ("travel_engines", "travel_kernel"):
            violations += _violations(package, ("travel_config.loader",))
        assert not violations, "\n".join(violations)


class TestKernelDirection:

    def test_kernel_never_imports_outer_layers(self):
        violations = _violations("travel_kernel", ("travel_engines", "travel_config"))
        assert not violations, "Kernel imports outer layers:\n" + "\n".join(violations)

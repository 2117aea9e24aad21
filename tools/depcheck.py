from __future__ import annotations

import argparse
import ast
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

SRC_ROOT = Path(__file__).resolve().parents[1] / "src" / "oac"

# Modules each layer may not import. The application layer keeps pydantic
# (DTOs) and prometheus_client (lifecycle metrics).
LAYER_POLICIES: dict[str, frozenset[str]] = {
    "domain": frozenset(
        {
            "fastapi",
            "pydantic",
            "sqlalchemy",
            "alembic",
            "redis",
            "httpx",
            "requests",
            "opentelemetry",
            "prometheus_client",
            "oac.application",
            "oac.api",
            "oac.infrastructure",
        }
    ),
    "application": frozenset(
        {
            "fastapi",
            "sqlalchemy",
            "alembic",
            "redis",
            "httpx",
            "requests",
            "opentelemetry",
            "oac.api",
            "oac.infrastructure",
        }
    ),
}

DEFAULT_LAYER = "domain"


@dataclass(frozen=True)
class Violation:
    file_path: Path
    line: int
    module: str


def _python_files(root: Path) -> Iterable[Path]:
    if root.is_file() and root.suffix == ".py":
        yield root
        return
    if root.is_dir():
        yield from sorted(root.rglob("*.py"))


def _matches_forbidden(module: str, forbidden_modules: frozenset[str]) -> bool:
    for forbidden in forbidden_modules:
        if module == forbidden or module.startswith(f"{forbidden}."):
            return True
    return False


def _scan_file(file_path: Path, forbidden_modules: frozenset[str]) -> list[Violation]:
    tree = ast.parse(file_path.read_text(encoding="utf-8"), filename=str(file_path))
    violations: list[Violation] = []

    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if _matches_forbidden(alias.name, forbidden_modules):
                    violations.append(
                        Violation(file_path=file_path, line=node.lineno, module=alias.name)
                    )
        elif isinstance(node, ast.ImportFrom) and node.module:
            if _matches_forbidden(node.module, forbidden_modules):
                violations.append(
                    Violation(file_path=file_path, line=node.lineno, module=node.module)
                )

    return violations


def find_violations(paths: Sequence[Path], layer: str = DEFAULT_LAYER) -> list[Violation]:
    forbidden_modules = LAYER_POLICIES[layer]
    violations: list[Violation] = []
    for path in paths:
        for file_path in _python_files(path):
            violations.extend(_scan_file(file_path, forbidden_modules))
    return violations


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Layer dependency check for src/oac.")
    parser.add_argument(
        "--layer",
        choices=sorted(LAYER_POLICIES),
        action="append",
        default=[],
        help="Layer policy to enforce (repeatable). Defaults to every layer.",
    )
    parser.add_argument(
        "--path",
        action="append",
        default=[],
        help="Path to scan (repeatable). Requires exactly one --layer.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    layers = args.layer or sorted(LAYER_POLICIES)

    violations: list[Violation] = []
    if args.path:
        if len(args.layer) > 1:
            print("depcheck: --path needs a single --layer")
            return 2
        layer = args.layer[0] if args.layer else DEFAULT_LAYER
        violations = find_violations([Path(item) for item in args.path], layer)
    else:
        for layer in layers:
            violations.extend(find_violations([SRC_ROOT / layer], layer))

    if not violations:
        print("depcheck passed")
        return 0

    print("depcheck failed: forbidden imports detected")
    for violation in violations:
        print(f"{violation.file_path}:{violation.line} -> {violation.module}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))

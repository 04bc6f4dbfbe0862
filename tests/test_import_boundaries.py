from __future__ import annotations

import ast
from pathlib import Path


def _imported_names(path: Path) -> list[str]:
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    names: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            names.append(node.module or "")
    return names


def test_pure_layers_do_not_import_transport_or_cli() -> None:
    forbidden = ("requests", "typer", "hachiko.control_plane.github")
    pure_dirs = ("hachiko/control_plane/migrations", "hachiko/control_plane/policy")
    for directory in pure_dirs:
        for path in Path(directory).rglob("*.py"):
            for name in _imported_names(path):
                assert not any(name.startswith(token) for token in forbidden), (
                    f"{path} imports forbidden dependency: {name}"
                )


def test_shared_does_not_import_control_plane() -> None:
    for path in Path("hachiko/shared").rglob("*.py"):
        for name in _imported_names(path):
            assert not name.startswith("hachiko.control_plane"), (
                f"{path} imports control plane module: {name}"
            )

"""Shared fixtures for the asset staging tests."""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

import pytest

if typ.TYPE_CHECKING:
    from pathlib import Path

TreeWriter: typ.TypeAlias = "cabc.Callable[[Path, dict[str, str]], Path]"


@pytest.fixture
def write_tree() -> TreeWriter:
    """Return a helper that writes ``{relative_path: text}`` below a root."""

    def _write(root: Path, files: dict[str, str]) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _write


@pytest.fixture
def source_tree(tmp_path: Path, write_tree: TreeWriter) -> Path:
    """Source root holding ``a.txt`` and ``sub/b.txt``."""
    return write_tree(tmp_path / "src", {"a.txt": "alpha", "sub/b.txt": "beta"})

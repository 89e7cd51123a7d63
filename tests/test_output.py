"""Tests for exporting results to a CI output file."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from asset_stage.config import MappingConfig
from asset_stage.errors import StageError
from asset_stage.output import (
    prepare_output_data,
    validate_no_reserved_key_collisions,
    write_github_output,
)


def _published(tmp_path: Path) -> MappingConfig:
    mapping = MappingConfig(
        source_root=tmp_path,
        files=["*"],
        target_root=tmp_path / "out",
        rename_target_dir=True,
        dir_hash_var_name="DIR_HASH",
        files_var_name="STAGED",
    )
    mapping.publish(
        final_dir=tmp_path / "tok",
        files_hash="tok",
        staged_files=["a.txt", "sub/b.txt"],
    )
    return mapping


class TestPrepareOutputData:
    """Tests for the prepare_output_data function."""

    def test_includes_identifiers_and_dirs(self, tmp_path: Path) -> None:
        """Every configured identifier and the final directories are exported."""
        result = prepare_output_data([_published(tmp_path)])

        assert result["DIR_HASH"] == "tok"
        assert result["STAGED"] == ["a.txt", "sub/b.txt"]
        assert isinstance(result["staged_dirs"], str)
        staged_dirs = json.loads(result["staged_dirs"])
        assert staged_dirs == {
            (tmp_path / "out").as_posix(): (tmp_path / "tok").as_posix()
        }

    def test_reserved_key_collision(self) -> None:
        """Identifiers may not shadow reserved output keys."""
        with pytest.raises(StageError, match="reserved output keys"):
            validate_no_reserved_key_collisions(["staged_dirs"])


class TestWriteGithubOutput:
    """Tests for the write_github_output function."""

    def test_writes_scalar_and_list_values(self, tmp_path: Path) -> None:
        """Scalars use key=value, lists use heredoc syntax."""
        output_file = tmp_path / "nested" / "output"
        write_github_output(
            output_file, {"DIR_HASH": "tok", "STAGED": ["a.txt", "sub/b.txt"]}
        )

        contents = output_file.read_text(encoding="utf-8")
        assert "DIR_HASH=tok\n" in contents
        assert "STAGED<<gh_STAGED\na.txt\nsub/b.txt\ngh_STAGED\n" in contents

    def test_escapes_special_characters(self, tmp_path: Path) -> None:
        """Newlines and percent signs are escaped."""
        output_file = tmp_path / "output"
        write_github_output(output_file, {"key": "50%\nnext"})

        assert "key=50%25%0Anext" in output_file.read_text(encoding="utf-8")

"""End-to-end tests for the plugin, the substitution bridge and the local host."""

from __future__ import annotations

import collections.abc as cabc
import json
from pathlib import Path

import pytest

from asset_stage.config import MappingConfig
from asset_stage.errors import ConfigurationError, StageError
from asset_stage.hashing import compute_hash
from asset_stage.host import LocalBuildHost
from asset_stage.plugin import CopyFilesPlugin
from asset_stage.substitution import FilesResolver, HashResolver, resolvers_for


@pytest.fixture
def options(source_tree: Path, tmp_path: Path) -> dict[str, object]:
    """Options staging ``a.txt`` and ``sub/`` into ``out`` with both identifiers."""
    return {
        "source_root": str(source_tree),
        "files": ["a.txt", "sub/"],
        "target_root": str(tmp_path / "out"),
        "rename_target_dir": True,
        "dir_hash_var_name": "DIR_HASH",
        "files_var_name": "STAGED",
    }


@pytest.fixture
def host(options: dict[str, object]) -> LocalBuildHost:
    """A local host with the plugin applied."""
    build_host = LocalBuildHost()
    CopyFilesPlugin(options).apply(build_host)
    return build_host


class TestEndToEnd:
    """Staging through a LocalBuildHost."""

    @pytest.mark.asyncio
    async def test_stages_renames_and_substitutes(
        self, host: LocalBuildHost, source_tree: Path, tmp_path: Path
    ) -> None:
        """Files are staged, renamed to their token and exposed to sources."""
        token = await compute_hash(
            [source_tree / "a.txt", source_tree / "sub" / "b.txt"]
        )

        await host.run(triggers=3)

        assert not (tmp_path / "out").exists()
        final_dir = tmp_path / token
        assert (final_dir / "a.txt").read_text(encoding="utf-8") == "alpha"
        assert (final_dir / "sub" / "b.txt").read_text(encoding="utf-8") == "beta"

        hash_value = host.evaluate_identifier("DIR_HASH", (10, 18))
        assert hash_value.kind == "string"
        assert hash_value.value == token
        assert hash_value.range == (10, 18)
        assert host.substitute("const h = DIR_HASH;") == f'const h = "{token}";'

        files_value = host.evaluate_identifier("STAGED")
        assert files_value.kind == "array"
        assert sorted(files_value.value) == ["a.txt", "sub/b.txt"]
        rewritten = host.substitute("load(STAGED)")
        assert json.loads(rewritten[len("load(") : -1]) == ["a.txt", "sub/b.txt"]

    @pytest.mark.asyncio
    async def test_watch_cycles_restage(
        self, host: LocalBuildHost, source_tree: Path
    ) -> None:
        """Each watch iteration stages again and publishes a new token."""
        await host.run()
        first = host.evaluate_identifier("DIR_HASH").value

        (source_tree / "a.txt").write_text("alpha 2", encoding="utf-8")
        cycle = await host.run(watch=True)

        assert cycle.number == 2
        assert cycle.watch is True
        assert host.evaluate_identifier("DIR_HASH").value != first

    @pytest.mark.asyncio
    async def test_failure_reaches_host(self, tmp_path: Path) -> None:
        """Pipeline errors are raised from the host's run."""
        first = tmp_path / "first"
        second = tmp_path / "second"
        for root in (first, second):
            root.mkdir()
            (root / "same.txt").write_text(root.name, encoding="utf-8")
        build_host = LocalBuildHost()
        CopyFilesPlugin(
            {
                "source_root": [str(first), str(second)],
                "files": [["*"], ["*"]],
                "target_root": str(tmp_path / "out"),
            }
        ).apply(build_host)

        with pytest.raises(StageError, match="would be staged to"):
            await build_host.run(triggers=2)

    def test_mismatched_arrays_fail_at_construction(self, tmp_path: Path) -> None:
        """Misaligned options fail synchronously and touch nothing."""
        target = tmp_path / "out"
        with pytest.raises(ConfigurationError, match="Invalid number of array"):
            CopyFilesPlugin(
                {
                    "source_root": [str(tmp_path / "a"), str(tmp_path / "b")],
                    "files": [["*"]],
                    "target_root": str(target),
                    "clean_dirs": [str(tmp_path)],
                }
            )
        assert tmp_path.exists()
        assert not target.exists()

    def test_absolute_pattern_fails_before_clean(
        self, tmp_path: Path, write_tree: cabc.Callable[..., Path]
    ) -> None:
        """An absolute pattern is rejected before any directory is removed."""
        keep = write_tree(tmp_path / "keep", {"note.txt": "precious"})
        target = write_tree(tmp_path / "out", {"old.txt": "previous build"})
        with pytest.raises(ConfigurationError, match="relative to the source root"):
            CopyFilesPlugin(
                {
                    "source_root": str(tmp_path),
                    "files": [str(keep / "note.txt")],
                    "target_root": str(target),
                    "clean_dirs": [str(keep)],
                }
            )
        assert (keep / "note.txt").read_text(encoding="utf-8") == "precious"
        assert (target / "old.txt").exists()


class TestSubstitution:
    """Identifier resolution before and after a cycle."""

    def test_typeof_is_static(self, host: LocalBuildHost) -> None:
        """typeof answers without a completed cycle."""
        assert host.evaluate_typeof("DIR_HASH").value == "string"
        assert host.evaluate_typeof("STAGED").value == "array"
        assert host.substitute("if (typeof STAGED === 'array') {}") == (
            "if (\"array\" === 'array') {}"
        )

    def test_typeof_with_parentheses(self, host: LocalBuildHost) -> None:
        """``typeof(NAME)`` is answered with the type tag as well."""
        assert host.substitute("typeof(STAGED) + typeof ( DIR_HASH )") == (
            '"array" + "string"'
        )

    @pytest.mark.parametrize(
        "source",
        [
            'console.log("STAGED");',
            "const label = 'DIR_HASH';",
            "const t = `STAGED`;",
            "// STAGED is filled in at build time",
            "/* DIR_HASH */",
            "const o = {STAGED: 1, DIR_HASH : 2};",
        ],
    )
    def test_leaves_strings_comments_and_keys_alone(
        self, host: LocalBuildHost, source: str
    ) -> None:
        """Literals, comments and object keys are not identifier expressions."""
        assert host.substitute(source) == source

    @pytest.mark.asyncio
    async def test_substitutes_around_skipped_spans(
        self, host: LocalBuildHost
    ) -> None:
        """Values next to strings and keys are still replaced."""
        await host.run()
        source = 'log("STAGED", STAGED); const o = {files: STAGED};'
        expected = 'log("STAGED", ["a.txt", "sub/b.txt"]); ' + (
            'const o = {files: ["a.txt", "sub/b.txt"]};'
        )
        assert host.substitute(source) == expected

    def test_value_before_cycle_raises(self, host: LocalBuildHost) -> None:
        """Reading a value before staging finished is an error."""
        with pytest.raises(StageError, match="before staging"):
            host.evaluate_identifier("DIR_HASH")

    @pytest.mark.asyncio
    async def test_leaves_other_identifiers_alone(self, host: LocalBuildHost) -> None:
        """Property accesses and longer names are not substituted."""
        await host.run()
        source = "obj.DIR_HASH + DIR_HASH_OLD + $DIR_HASH + UNKNOWN"
        assert host.substitute(source) == source

    def test_unknown_identifier(self, host: LocalBuildHost) -> None:
        """Evaluating an unregistered name raises KeyError."""
        with pytest.raises(KeyError, match="MISSING"):
            host.evaluate_identifier("MISSING")

    def test_registers_both_identifiers(self, host: LocalBuildHost) -> None:
        """One mapping may publish a hash and a file list."""
        assert host.identifiers == ["DIR_HASH", "STAGED"]

    def test_host_rejects_duplicate_registration(
        self, host: LocalBuildHost, tmp_path: Path
    ) -> None:
        """Registering an identifier twice is a configuration error."""
        mapping = MappingConfig(
            source_root=tmp_path,
            files=["*"],
            target_root=tmp_path / "other",
            files_var_name="STAGED",
        )
        with pytest.raises(ConfigurationError, match="already registered"):
            host.on_identifier(FilesResolver("STAGED", mapping))

    def test_resolvers_for_skips_unrenamed_hash(self, tmp_path: Path) -> None:
        """Hash resolvers exist only for renamed targets."""
        renamed = MappingConfig(
            source_root=tmp_path,
            files=["*"],
            target_root=tmp_path / "a",
            rename_target_dir=True,
            dir_hash_var_name="A_HASH",
        )
        listed = MappingConfig(
            source_root=tmp_path,
            files=["*"],
            target_root=tmp_path / "b",
            files_var_name="B_FILES",
        )
        resolvers = resolvers_for([renamed, listed])
        assert [type(resolver) for resolver in resolvers] == [
            HashResolver,
            FilesResolver,
        ]
        assert [resolver.name for resolver in resolvers] == ["A_HASH", "B_FILES"]

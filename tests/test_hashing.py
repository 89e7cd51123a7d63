"""Tests for content hashing."""

from __future__ import annotations

import base64
import hashlib
from pathlib import Path

import pytest

from asset_stage.errors import HashError
from asset_stage.hashing import compute_digest, compute_hash, encode_token, file_digest


class TestEncodeToken:
    """Tests for the encode_token function."""

    def test_matches_base64_with_replacements(self) -> None:
        """The token is base64 with ``/``, ``+`` and ``=`` rewritten."""
        digest = hashlib.sha256(b"asset-stage").hexdigest()
        expected = (
            base64.b64encode(bytes.fromhex(digest))
            .decode("ascii")
            .replace("/", "_")
            .replace("+", "-")
            .replace("=", "")
        )
        assert encode_token(digest) == expected

    def test_tokens_avoid_unsafe_characters(self) -> None:
        """No token contains ``/``, ``+`` or ``=``."""
        for index in range(256):
            token = encode_token(hashlib.sha256(str(index).encode()).hexdigest())
            assert not set(token) & {"/", "+", "="}
            assert len(token) == 43

    def test_known_value(self) -> None:
        """Characters 62 and 63 map to ``-`` and ``_``."""
        assert encode_token("fbff") == "-_8"


class TestComputeHash:
    """Tests for compute_digest and compute_hash."""

    @pytest.fixture
    def files(self, tmp_path: Path) -> list[Path]:
        """Three files with distinct contents."""
        paths = []
        contents = [("a.txt", "alpha"), ("b.txt", "beta"), ("c.bin", "gamma")]
        for name, content in contents:
            path = tmp_path / name
            path.write_text(content, encoding="utf-8")
            paths.append(path)
        return paths

    @pytest.mark.asyncio
    async def test_independent_of_order(self, files: list[Path]) -> None:
        """Discovery order does not change the token."""
        forward = await compute_hash(files)
        backward = await compute_hash(list(reversed(files)))
        assert forward == backward

    @pytest.mark.asyncio
    async def test_depends_only_on_contents(
        self, files: list[Path], tmp_path: Path
    ) -> None:
        """Identical contents at other paths produce the same token."""
        copies = []
        for path in files:
            copy = tmp_path / "elsewhere" / path.name
            copy.parent.mkdir(exist_ok=True)
            copy.write_bytes(path.read_bytes())
            copies.append(copy)
        assert await compute_hash(copies) == await compute_hash(files)

    @pytest.mark.asyncio
    async def test_single_byte_change_changes_token(self, files: list[Path]) -> None:
        """Changing one byte in one file changes the token."""
        before = await compute_hash(files)
        files[1].write_text("betA", encoding="utf-8")
        assert await compute_hash(files) != before

    @pytest.mark.asyncio
    async def test_digest_combines_sorted_file_digests(self, files: list[Path]) -> None:
        """The digest hashes the sorted per-file digests."""
        combined = hashlib.sha256()
        for digest in sorted(file_digest(path) for path in files):
            combined.update(bytes.fromhex(digest))
        assert await compute_digest(files) == combined.hexdigest()

    @pytest.mark.asyncio
    async def test_unreadable_file_fails(
        self, files: list[Path], tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A missing file fails the whole computation."""
        caplog.set_level("ERROR")
        with pytest.raises(HashError, match="missing.txt"):
            await compute_hash([*files, tmp_path / "missing.txt"])
        assert "Unable to hash" in caplog.text

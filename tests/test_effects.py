"""
Tests for effect lookup.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from radiocast.streaming.effects import EffectLibrary
from radiocast.streaming.errors import EffectNotFound


class TestEffectLibrary:
    """Tests for EffectLibrary."""

    def test_names_are_sorted(self, station_dirs: dict[str, Path]) -> None:
        library = EffectLibrary(station_dirs["fx"])
        assert library.names() == ["applause_clap_v2.wav", "boo.mp3"]

    def test_names_of_missing_directory(self, tmp_path: Path) -> None:
        assert EffectLibrary(tmp_path / "missing").names() == []

    def test_substring_match(self, station_dirs: dict[str, Path]) -> None:
        library = EffectLibrary(station_dirs["fx"])
        assert library.resolve("clap") == station_dirs["fx"] / "applause_clap_v2.wav"

    def test_match_is_case_insensitive(self, station_dirs: dict[str, Path]) -> None:
        library = EffectLibrary(station_dirs["fx"])
        assert library.resolve("BOO").name == "boo.mp3"

    def test_first_sorted_match_wins(self, station_dirs: dict[str, Path]) -> None:
        (station_dirs["fx"] / "clap_short.mp3").write_bytes(b"C")
        library = EffectLibrary(station_dirs["fx"])
        assert library.resolve("clap").name == "applause_clap_v2.wav"

    def test_directories_are_ignored(self, station_dirs: dict[str, Path]) -> None:
        (station_dirs["fx"] / "drums").mkdir()
        library = EffectLibrary(station_dirs["fx"])
        with pytest.raises(EffectNotFound):
            library.resolve("drums")

    def test_hidden_files_are_not_effects(self, station_dirs: dict[str, Path]) -> None:
        """Placeholders like .gitkeep are neither listed nor matched."""
        (station_dirs["fx"] / ".gitkeep").write_bytes(b"")
        library = EffectLibrary(station_dirs["fx"])

        assert library.names() == ["applause_clap_v2.wav", "boo.mp3"]
        assert library.resolve("e").name == "applause_clap_v2.wav"
        with pytest.raises(EffectNotFound):
            library.resolve("keep")

    @pytest.mark.parametrize("name", ["whistle", "", "   "])
    def test_unknown_or_blank_name(self, station_dirs: dict[str, Path], name: str) -> None:
        library = EffectLibrary(station_dirs["fx"])
        with pytest.raises(EffectNotFound) as exc_info:
            library.resolve(name)
        assert exc_info.value.name == name

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(EffectNotFound):
            EffectLibrary(tmp_path / "missing").resolve("clap")

    def test_error_is_a_lookup_error(self, station_dirs: dict[str, Path]) -> None:
        with pytest.raises(LookupError):
            EffectLibrary(station_dirs["fx"]).resolve("whistle")

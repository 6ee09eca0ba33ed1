from __future__ import annotations

from pathlib import Path

from fnv_sanity_check import steam

from conftest import FakeStore


def _library(root: Path, app_id: str, install_dir: str) -> Path:
    steamapps = root / "steamapps"
    (steamapps / "common" / install_dir).mkdir(parents=True)
    (steamapps / f"appmanifest_{app_id}.acf").write_text(
        '"AppState"\n{\n\t"appid"\t\t"%s"\n\t"installdir"\t\t"%s"\n}\n' % (app_id, install_dir)
    )
    return steamapps


def test_find_game_folder(tmp_path: Path) -> None:
    empty = tmp_path / "empty" / "steamapps"
    empty.mkdir(parents=True)
    lib = _library(tmp_path / "lib", "22380", "Fallout New Vegas")

    assert steam.find_game_folder([empty, lib]) == lib / "common" / "Fallout New Vegas"


def test_find_pcr_edition(tmp_path: Path) -> None:
    lib = _library(tmp_path, "22490", "Fallout New Vegas PCR")
    assert steam.find_game_folder([lib]) == lib / "common" / "Fallout New Vegas PCR"


def test_manifest_without_folder(tmp_path: Path) -> None:
    lib = _library(tmp_path, "22380", "Fallout New Vegas")
    (lib / "common" / "Fallout New Vegas").rmdir()
    assert steam.find_game_folder([lib]) is None


def test_parse_library_folders(tmp_path: Path) -> None:
    vdf = tmp_path / "libraryfolders.vdf"
    vdf.write_text(
        '"libraryfolders"\n{\n\t"0"\n\t{\n\t\t"path"\t\t"/games/SteamLibrary"\n\t}\n}\n'
    )
    assert steam.parse_library_folders(vdf) == [Path("/games/SteamLibrary") / "steamapps"]
    assert steam.parse_library_folders(tmp_path / "missing.vdf") == []


def test_libraries_follow_libraryfolders(tmp_path: Path) -> None:
    root = tmp_path / "Steam"
    (root / "steamapps").mkdir(parents=True)
    extra = _library(tmp_path / "Games", "22380", "Fallout New Vegas")
    (root / "steamapps" / "libraryfolders.vdf").write_text(
        '"libraryfolders"\n{\n'
        '\t"0"\n\t{\n\t\t"path"\t\t"%s"\n\t}\n'
        '\t"1"\n\t{\n\t\t"path"\t\t"%s"\n\t}\n}\n' % (root, tmp_path / "Games")
    )

    assert list(steam.iter_libraries([root, tmp_path / "not-steam"])) == [root / "steamapps", extra]
    assert steam.find_game_folder(steam.iter_libraries([root])) == extra / "common" / "Fallout New Vegas"


def test_search_stops_at_first_match(tmp_path: Path) -> None:
    first = _library(tmp_path / "a", "22380", "Fallout New Vegas")
    second = _library(tmp_path / "b", "22380", "Fallout New Vegas")
    libraries = iter([first, second])

    assert steam.find_game_folder(libraries) == first / "common" / "Fallout New Vegas"
    assert next(libraries) == second


def test_windows_roots_come_from_registry(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(steam.platform, "system", lambda: "Windows")
    store = FakeStore({(r"SOFTWARE\WOW6432Node\Valve\Steam", "InstallPath"): str(tmp_path)})

    assert list(steam.steam_roots(store)) == [tmp_path]

import pytest

from preconfig_tester.catalog import candidate_sort_key, discover_candidates
from preconfig_tester.errors import CatalogError


def touch(directory, *names):
    for name in names:
        (directory / name).write_text("@echo off\n", encoding="utf-8")


def test_hierarchical_order():
    names = [
        "general_ALT2.bat",
        "general (MGTS).bat",
        "discord.bat",
        "general.bat",
        "general_ALT (Beeline).bat",
        "general_ALT.bat",
        "general (Akado).bat",
    ]

    assert sorted(names, key=candidate_sort_key) == [
        "discord.bat",
        "general.bat",
        "general (Akado).bat",
        "general (MGTS).bat",
        "general_ALT.bat",
        "general_ALT (Beeline).bat",
        "general_ALT2.bat",
    ]


def test_discover_filters_and_sorts(tmp_path):
    touch(tmp_path, "general_ALT.bat", "general.BAT", "readme.txt", "general.cmd")
    (tmp_path / "nested.bat").mkdir()

    candidates = discover_candidates(tmp_path, (".bat",))

    assert [c.name for c in candidates] == ["general.BAT", "general_ALT.bat"]
    assert candidates[0].path == tmp_path / "general.BAT"


def test_discover_multiple_extensions(tmp_path):
    touch(tmp_path, "b.cmd", "a.bat")

    assert [c.name for c in discover_candidates(tmp_path, (".bat", ".cmd"))] == ["a.bat", "b.cmd"]


def test_missing_directory(tmp_path):
    with pytest.raises(CatalogError):
        discover_candidates(tmp_path / "pre-configs", (".bat",))


def test_empty_directory(tmp_path):
    touch(tmp_path, "notes.txt")

    with pytest.raises(CatalogError) as exc_info:
        discover_candidates(tmp_path, (".bat",))
    assert exc_info.value.context["directory"] == str(tmp_path)

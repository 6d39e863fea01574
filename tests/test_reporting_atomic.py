import pytest

from localrank.reporting import atomic_write_text, atomic_writer, write_summary


def test_atomic_write_text(tmp_path):
    path = tmp_path / "summary.txt"

    atomic_write_text(str(path), "first")
    assert path.read_text(encoding="utf-8") == "first"

    atomic_write_text(str(path), "second")
    assert path.read_text(encoding="utf-8") == "second"

    leftovers = [p for p in tmp_path.iterdir() if p.name != "summary.txt"]
    assert not leftovers


def test_failed_write_keeps_previous_file_and_removes_temp(tmp_path):
    path = tmp_path / "results.json"
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(RuntimeError):
        with atomic_writer(str(path)) as f:
            f.write('[{"id": "partial"')
            raise RuntimeError("ranking failed mid-write")

    assert path.read_text(encoding="utf-8") == "[]"
    assert [p.name for p in tmp_path.iterdir()] == ["results.json"]


def test_write_summary_joins_lines(tmp_path):
    path = tmp_path / "summary.txt"
    write_summary(str(path), ["Candidates: 3", "After filters: 2"])
    assert path.read_text(encoding="utf-8") == "Candidates: 3\nAfter filters: 2"

import sys, json
from pathlib import Path

# Make the module importable without installing the package
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import blocklens as bl  # type: ignore


def write_report(dst: Path, files):
    """
    files: list of tuples (path, blocks_covered, blocks_not_covered)
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    data = {"files": [
        {"path": p, "blocks_covered": c, "blocks_not_covered": n,
         "ranges": [{"start_line": 1, "start_column": 1, "end_line": 1, "end_column": 2, "covered": True}]}
        for p, c, n in files
    ]}
    dst.write_text(json.dumps(data), encoding="utf-8")


def run_cli(args):
    rc = bl.main(args)
    return 0 if rc is None else rc


def test_markdown_tree_and_table(tmp_path: Path):
    """MD has the title line, the directory tree and one table row per file."""
    report = tmp_path / "cov.json"
    write_report(report, [("src/a.c", 1, 1), ("src/sub/b.c", 3, 0), ("tools/t.py", 0, 0)])
    out = tmp_path / "report.md"
    rc = run_cli([str(report), "--format", "md", "--title", "Demo", "-o", str(out)])
    assert rc == 0 and out.exists()

    md = out.read_text(encoding="utf-8")
    assert "# Demo : 4 / 5 blocks covered : 80.0 %" in md
    assert "- `src/`" in md
    assert "  - `a.c` 1 / 2 blocks (50.0 %)" in md
    assert "  - `sub/`" in md
    assert "    - `b.c` 3 / 3 blocks (100.0 %)" in md
    assert "- `tools/`" in md
    assert "  - `t.py` 0 / 0 blocks (0.0 %)" in md
    assert "| File | Covered | Not covered | Total | % Covered |" in md
    assert "| `src/a.c` | 1 | 1 | 2 | 50.0 % |" in md


def test_markdown_default_output_name(tmp_path: Path, monkeypatch):
    report = tmp_path / "nightly.json"
    write_report(report, [("x.c", 1, 0)])
    monkeypatch.chdir(tmp_path)
    rc = run_cli([str(report), "-f", "md"])
    assert rc == 0
    md = (tmp_path / "coverage_nightly.md").read_text(encoding="utf-8")
    assert "- `x.c` 1 / 1 blocks (100.0 %)" in md


def test_load_report_accepts_both_range_forms(tmp_path: Path):
    report = tmp_path / "cov.json"
    report.write_text(json.dumps({"files": [{
        "path": "a.c", "blocks_covered": 1, "blocks_not_covered": 1,
        "ranges": [[3, 1, 4, 2, False],
                   {"start_line": 3, "start_column": 5, "end_line": 3, "end_column": 9, "covered": True}],
    }]}), encoding="utf-8")
    cov = bl.load_report(report)
    assert cov.src_files() == ["a.c"]
    assert len(cov.ranges_starting_at("a.c", 3)) == 2
    assert cov.ranges_starting_at("a.c", 4) == []
    assert cov.file_block_counts("a.c") == (1, 1)
    assert cov.file_block_counts("nope.c") == (0, 0)
    assert cov.total_block_counts() == (1, 2)


def test_repeated_path_last_entry_wins():
    cov = bl.CoverageReport()
    cov.add_file("a.c", 1, 0, [bl.SourceRange(1, 1, 1, 2, True)])
    cov.add_file("a.c", 0, 1, [bl.SourceRange(1, 1, 1, 2, False)])
    assert cov.src_files() == ["a.c"]
    assert cov.file_block_counts("a.c") == (0, 1)
    ranges = cov.ranges_starting_at("a.c", 1)
    assert len(ranges) == 1 and ranges[0].covered is False

import sys, re, os, json
from pathlib import Path

# Make the module importable without installing the package
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import blocklens as bl  # type: ignore


def write_report(dst: Path, files):
    """
    files: list of tuples (path, blocks_covered, blocks_not_covered, ranges)
      ranges: list of [start_line, start_col, end_line, end_col, covered]
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    data = {"files": [
        {"path": p, "blocks_covered": c, "blocks_not_covered": n, "ranges": r}
        for p, c, n, r in files
    ]}
    dst.write_text(json.dumps(data), encoding="utf-8")


def run_cli(args):
    rc = bl.main(args)
    return 0 if rc is None else rc


def href_points_to(doc: str, filename: str) -> bool:
    """Return True if any href attribute points to a path whose basename == filename."""
    for m in re.finditer(r'href=[\'"]([^\'"]+)[\'"]', doc):
        if os.path.basename(m.group(1)) == filename:
            return True
    return False


def get_row_attr(doc: str, line: int, attr: str):
    m = re.search(rf'<tr\b[^>]*\bid=[\'"]L{line}[\'"][^>]*>', doc)
    if not m:
        return None
    m2 = re.search(rf'\b{attr}=[\'"]([^\'"]+)[\'"]', m.group(0))
    return m2.group(1) if m2 else None


def test_summary_and_detail_pages(tmp_path: Path):
    src_root = tmp_path / "proj"
    (src_root / "src").mkdir(parents=True)
    (src_root / "src" / "main.c").write_text(
        "int main() {\n    if (x &&\n        y) go();\n    return 0;\n}\n", encoding="utf-8")
    report = tmp_path / "cov.json"
    write_report(report, [
        ("src/main.c", 2, 1, [[2, 5, 3, 11, True], [4, 5, 4, 14, False], [3, 12, 3, 17, True]]),
    ])
    out = tmp_path / "report.html"
    rc = run_cli([str(report), "--source-root", str(src_root), "-o", str(out)])
    assert rc == 0 and out.exists()

    summary = out.read_text(encoding="utf-8")
    assert "Code Coverage Analyzer : 2 / 3 blocks covered : 66.67 %" in summary
    assert "<details open>" in summary
    assert "Expand all" in summary and "Collapse all" in summary

    details_dir = out.with_name(out.stem + "_files")
    fname = bl.sanitize_detail_name("src/main.c")
    assert href_points_to(summary, fname)
    detail = (details_dir / fname).read_text(encoding="utf-8")
    assert href_points_to(detail, out.name)
    assert "src/main.c : 2 / 3 : blocks 66.67 %" in detail

    assert get_row_attr(detail, 1, "data-state") == "plain"
    assert get_row_attr(detail, 2, "data-state") == "covered"
    assert get_row_attr(detail, 4, "data-state") == "not-covered"
    assert "<span class='covered'>if (x &amp;&amp;</span>" in detail
    assert "<span class='not-covered'>return 0;</span>" in detail
    assert "   3: " in detail


def test_collapsed_tree_and_missing_source(tmp_path: Path, capsys):
    report = tmp_path / "cov.json"
    write_report(report, [("lib/gone.c", 0, 2, [[1, 1, 1, 3, False]])])
    out = tmp_path / "out" / "r.html"
    rc = run_cli([str(report), "--collapsed", "-o", str(out)])
    assert rc == 0
    summary = out.read_text(encoding="utf-8")
    assert "<details open>" not in summary
    assert "<code>gone.c</code>" in summary
    assert "WARNING: source not found for lib/gone.c" in capsys.readouterr().err


def test_backslash_report_paths(tmp_path: Path):
    src_root = tmp_path / "proj"
    (src_root / "a").mkdir(parents=True)
    (src_root / "a" / "x.cs").write_text("class X {}\n", encoding="utf-8")
    report = tmp_path / "cov.json"
    write_report(report, [("a\\x.cs", 1, 0, [[1, 1, 1, 6, True]])])
    out = tmp_path / "r.html"
    rc = run_cli([str(report), "--source-root", str(src_root), "-o", str(out)])
    assert rc == 0
    detail = (out.with_name("r_files") / bl.sanitize_detail_name("a\\x.cs")).read_text(encoding="utf-8")
    assert "<span class='covered'>class</span>" in detail


def test_file_that_is_also_a_directory_keeps_its_link():
    cov = bl.CoverageReport()
    cov.add_file("a", 1, 0)
    cov.add_file("a/b", 0, 1)
    state, _ = bl.open_report(bl.ViewerState(), cov)
    links = {"a": "r_files/a.html", "a/b": "r_files/b.html"}
    summary = bl.to_html_summary(state, links)
    assert "<summary><a class='filelink' href='r_files/a.html'><code>a</code></a></summary>" in summary
    assert href_points_to(summary, "b.html")


def test_bad_report_is_an_error(tmp_path: Path, capsys):
    report = tmp_path / "cov.json"
    report.write_text("{not json", encoding="utf-8")
    assert run_cli([str(report), "-o", str(tmp_path / "r.html")]) == 2
    assert "ERROR: could not load report" in capsys.readouterr().err
    assert run_cli([str(tmp_path / "missing.json")]) == 2

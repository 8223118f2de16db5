#!/usr/bin/env python3
"""
blocklens — block-coverage viewer for source trees

Features
- Directory hierarchy of the report's files (shared ancestors deduplicated, forests allowed)
- Column-exact coverage spans, including blocks that run across several lines
- Expand/collapse state kept beside the tree, keyed by full path
- HTML summary page (tree + file table) and per-file HTML detail pages
- Markdown summary (tree as a nested list + file table)
- Title and per-file status lines in block-coverage form
"""
import argparse
import sys
from pathlib import Path
import os
import re
import json
import html
import hashlib
from typing import Callable, Dict, Iterator, List, Optional, Tuple

DEFAULT_TITLE = "Code Coverage Analyzer"

# segment styles
PLAIN = 'plain'
COVERED = 'covered'
NOT_COVERED = 'not-covered'
LINE_LABEL = 'line-label'

class SourceRange:
    """A covered or not-covered span. Lines and columns are 1-based."""
    __slots__ = ("start_line", "start_column", "end_line", "end_column", "covered")

    def __init__(self, start_line: int, start_column: int, end_line: int, end_column: int, covered: bool):
        self.start_line = start_line
        self.start_column = start_column
        self.end_line = end_line
        self.end_column = end_column
        self.covered = covered

    @property
    def is_multiline(self) -> bool:
        return self.end_line > self.start_line

    @property
    def style(self) -> str:
        return COVERED if self.covered else NOT_COVERED

    def __repr__(self):
        return (f"SourceRange({self.start_line}:{self.start_column}-"
                f"{self.end_line}:{self.end_column}, covered={self.covered})")

class StyledSegment:
    __slots__ = ("text", "style")

    def __init__(self, text: str, style: str):
        self.text = text
        self.style = style

    def __eq__(self, other):
        if not isinstance(other, StyledSegment):
            return NotImplemented
        return self.text == other.text and self.style == other.style

    def __repr__(self):
        return f"{self.style}({self.text!r})"

class RenderedLine:
    __slots__ = ("lineno", "segments")

    def __init__(self, lineno: int, segments: Optional[List[StyledSegment]] = None):
        self.lineno = lineno
        self.segments = segments if segments is not None else []

    @property
    def label(self) -> str:
        return "".join(s.text for s in self.segments if s.style == LINE_LABEL)

    @property
    def text(self) -> str:
        """Source text of the line, without the line label."""
        return "".join(s.text for s in self.segments if s.style != LINE_LABEL)

    @property
    def state(self) -> str:
        styles = {s.style for s in self.segments}
        if NOT_COVERED in styles:
            return NOT_COVERED
        if COVERED in styles:
            return COVERED
        return PLAIN

    def __repr__(self):
        return f"RenderedLine({self.lineno}, {self.segments!r})"

def line_label(lineno: int) -> StyledSegment:
    return StyledSegment(f"{lineno:>4}: ", LINE_LABEL)

def first_non_blank(text: str) -> Optional[int]:
    """Index of the first character that is neither a space nor a tab, None for a blank line."""
    rest = text.lstrip(' \t')
    if not rest:
        return None
    return len(text) - len(rest)

def _append(line: RenderedLine, text: str, style: str):
    if text:
        line.segments.append(StyledSegment(text, style))

def _unstyled(lineno: int, text: str) -> RenderedLine:
    return RenderedLine(lineno, [line_label(lineno), StyledSegment(text, PLAIN)])

def render_from(lines: List[str], ranges: List[SourceRange], start_line: int) -> Tuple[List[RenderedLine], int]:
    """
    Render the source line ``start_line`` (1-based) with the ranges that start on it.

    Returns the rendered lines and how many source lines they consumed. A block
    that runs over several lines renders all of them in one call; the caller
    continues at ``start_line + consumed``.
    """
    if start_line < 1 or start_line > len(lines):
        raise ValueError(f"line {start_line} is outside 1..{len(lines)}")
    for rng in ranges:
        if rng.start_line != start_line:
            raise ValueError(f"{rng!r} does not start on line {start_line}")

    text = lines[start_line - 1]
    if not ranges:
        return [_unstyled(start_line, text)], 1

    current = RenderedLine(start_line, [line_label(start_line)])
    prev_end = 0

    for rng in sorted(ranges, key=lambda r: r.start_column):
        start = rng.start_column - 1
        end = rng.end_column - 1
        if end <= prev_end:
            continue  # shadowed by an earlier, longer range
        if start < 0:
            return [_unstyled(start_line, text)], 1

        # an earlier range keeps the overlapped prefix
        start = max(start, prev_end)

        if not rng.is_multiline:
            end = max(end, start)
            _append(current, text[prev_end:start], PLAIN)
            _append(current, text[start:end], rng.style)
            prev_end = end
            continue

        _append(current, text[prev_end:start], PLAIN)
        _append(current, text[start:], rng.style)
        rendered = [current]

        last_line = min(rng.end_line, len(lines))
        for lineno in range(start_line + 1, last_line):
            body = lines[lineno - 1]
            current = RenderedLine(lineno, [line_label(lineno)])
            lead = first_non_blank(body)
            if lead is None:
                _append(current, body, PLAIN)
            else:
                _append(current, body[:lead], PLAIN)
                _append(current, body[lead:], rng.style)
            rendered.append(current)

        if last_line > start_line:
            body = lines[last_line - 1]
            current = RenderedLine(last_line, [line_label(last_line)])
            lead = first_non_blank(body)
            if lead is None:
                lead = len(body)
            stop = max(end, lead)
            _append(current, body[:lead], PLAIN)
            _append(current, body[lead:stop], rng.style)
            _append(current, body[stop:], PLAIN)
            rendered.append(current)

        # the block owns the rest of the first line; later ranges on it are shadowed
        return rendered, last_line - start_line + 1

    _append(current, text[prev_end:], PLAIN)
    return [current], 1

def render_document(lines: List[str], ranges_at: Callable[[int], List[SourceRange]]) -> Tuple[RenderedLine, ...]:
    """Render a whole file. ``ranges_at(lineno)`` returns the ranges starting on that line."""
    rendered: List[RenderedLine] = []
    lineno = 1
    while lineno <= len(lines):
        chunk, consumed = render_from(lines, ranges_at(lineno), lineno)
        rendered.extend(chunk)
        lineno += consumed
    return tuple(rendered)

class PathNode:
    __slots__ = ("label", "key", "is_leaf", "children", "parent")

    def __init__(self, label: str, key: str, is_leaf: bool, parent: Optional["PathNode"] = None):
        self.label = label
        self.key = key
        self.is_leaf = is_leaf
        self.children: List[PathNode] = []
        self.parent = parent

    def __repr__(self):
        return f"PathNode({self.key!r}, leaf={self.is_leaf}, children={len(self.children)})"

class PathTree:
    """Directory/file hierarchy built from flat paths; nodes are looked up by full prefix."""

    def __init__(self, separator: str = '/'):
        self.separator = separator
        self.roots: List[PathNode] = []
        self._nodes: Dict[str, PathNode] = {}

    def insert_path(self, path: str):
        parts = path.split(self.separator)
        parent: Optional[PathNode] = None
        for k in range(1, len(parts) + 1):
            key = self.separator.join(parts[:k])
            node = self._nodes.get(key)
            if node is None:
                if k > 1:
                    parent = self._nodes[self.separator.join(parts[:k - 1])]
                node = PathNode(parts[k - 1], key, k == len(parts), parent)
                self._nodes[key] = node
                if parent is None:
                    self.roots.append(node)
                else:
                    parent.children.append(node)
            parent = node

    def get(self, key: str) -> Optional[PathNode]:
        return self._nodes.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def walk(self) -> Iterator[PathNode]:
        for root in self.roots:
            yield from walk(root)

    def leaves(self) -> List[PathNode]:
        return [n for n in self.walk() if n.is_leaf]

def build_tree(paths: List[str], separator: str = '/') -> PathTree:
    tree = PathTree(separator)
    for p in paths:
        tree.insert_path(p)
    return tree

def guess_separator(paths: List[str]) -> str:
    """Backslash only when the paths use it exclusively."""
    if any('\\' in p for p in paths) and not any('/' in p for p in paths):
        return '\\'
    return '/'

def walk(node: PathNode) -> Iterator[PathNode]:
    """Depth-first, pre-order, children in insertion order."""
    stack = [node]
    while stack:
        n = stack.pop()
        yield n
        stack.extend(reversed(n.children))

def _mark_subtree(node: PathNode, expanded: Dict[str, bool], value: bool) -> Dict[str, bool]:
    result = dict(expanded)
    for n in walk(node):
        result[n.key] = value
    return result

def expand_all(node: PathNode, expanded: Dict[str, bool]) -> Dict[str, bool]:
    """Return a copy of ``expanded`` with ``node`` and all its descendants expanded."""
    return _mark_subtree(node, expanded, True)

def collapse_all(node: PathNode, expanded: Dict[str, bool]) -> Dict[str, bool]:
    """Return a copy of ``expanded`` with ``node`` and all its descendants collapsed."""
    return _mark_subtree(node, expanded, False)

def find_ancestor(node: Optional[PathNode], predicate: Callable[[PathNode], bool]) -> Optional[PathNode]:
    """First node on the path from ``node`` (inclusive) up to its root satisfying ``predicate``."""
    while node is not None:
        if predicate(node):
            return node
        node = node.parent
    return None

def percent(covered: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(covered / total * 100, 2)

def format_title(title: str, covered: int, total: int) -> str:
    return f"{title} : {covered} / {total} blocks covered : {percent(covered, total)} %"

def format_file_info(path: str, covered: int, not_covered: int) -> str:
    total = covered + not_covered
    return f"{path} : {covered} / {total} : blocks {percent(covered, total)} %"

class CoverageReport:
    """Already-computed block coverage: per-file block counts and ranges indexed by start line."""

    def __init__(self):
        self._counts: Dict[str, Tuple[int, int]] = {}
        self._ranges: Dict[str, Dict[int, List[SourceRange]]] = {}

    def add_file(self, path: str, blocks_covered: int, blocks_not_covered: int,
                 ranges: Optional[List[SourceRange]] = None):
        # a repeated path replaces the earlier entry
        self._counts[path] = (blocks_covered, blocks_not_covered)
        by_line = self._ranges[path] = {}
        for rng in ranges or []:
            by_line.setdefault(rng.start_line, []).append(rng)

    def src_files(self) -> List[str]:
        return list(self._counts)

    def ranges_starting_at(self, path: str, lineno: int) -> List[SourceRange]:
        return list(self._ranges.get(path, {}).get(lineno, []))

    def file_block_counts(self, path: str) -> Tuple[int, int]:
        return self._counts.get(path, (0, 0))

    def total_block_counts(self) -> Tuple[int, int]:
        covered = sum(c for c, _ in self._counts.values())
        total = sum(c + n for c, n in self._counts.values())
        return covered, total

RANGE_KEYS = ("start_line", "start_column", "end_line", "end_column", "covered")

def _parse_range(item) -> SourceRange:
    if isinstance(item, dict):
        values = [item[k] for k in RANGE_KEYS]
    elif isinstance(item, (list, tuple)) and len(item) == 5:
        values = list(item)
    else:
        raise ValueError(f"bad range entry: {item!r}")
    sl, sc, el, ec, cov = values
    return SourceRange(int(sl), int(sc), int(el), int(ec), bool(cov))

def load_report(path: Path) -> CoverageReport:
    """Load a JSON coverage dump. Raises OSError or ValueError."""
    with path.open('r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, dict) or not isinstance(data.get('files'), list):
        raise ValueError(f"{path}: expected an object with a 'files' list")
    report = CoverageReport()
    for entry in data['files']:
        try:
            src = str(entry['path'])
            ranges = [_parse_range(r) for r in entry.get('ranges', [])]
            report.add_file(src, int(entry.get('blocks_covered', 0)),
                            int(entry.get('blocks_not_covered', 0)), ranges)
        except (KeyError, TypeError) as e:
            raise ValueError(f"{path}: bad file entry {entry!r}: {e}") from e
    return report

def read_all_lines(path: Path) -> List[str]:
    """Lines of a text file without line terminators. Raises OSError or UnicodeDecodeError."""
    with path.open('r', encoding='utf-8-sig') as f:
        return [line.rstrip('\n') for line in f]

def resolve_source(key: str, source_root: Path, separator: str = '/') -> Path:
    p = Path(key.replace(separator, os.sep))
    if p.is_absolute():
        return p
    return source_root / p

class ViewerState:
    """Everything the viewer shows. Actions return a new instance instead of mutating."""
    __slots__ = ("title", "app_title", "report", "tree", "expanded", "selected", "document", "file_info")

    def __init__(self, title: str = DEFAULT_TITLE, app_title: Optional[str] = None,
                 report: Optional[CoverageReport] = None, tree: Optional[PathTree] = None,
                 expanded: Optional[Dict[str, bool]] = None, selected: Optional[str] = None,
                 document: Tuple[RenderedLine, ...] = (), file_info: str = ""):
        self.title = title
        self.app_title = app_title if app_title is not None else title
        self.report = report
        self.tree = tree
        self.expanded: Dict[str, bool] = expanded if expanded is not None else {}
        self.selected = selected
        self.document = document
        self.file_info = file_info

    def replace(self, **changes) -> "ViewerState":
        fields = {name: getattr(self, name) for name in self.__slots__}
        fields.update(changes)
        return ViewerState(**fields)

    def is_expanded(self, key: str) -> bool:
        return self.expanded.get(key, False)

def open_report(state: ViewerState, report: CoverageReport, separator: str = '/'):
    tree = build_tree(report.src_files(), separator)
    expanded: Dict[str, bool] = {}
    for root in tree.roots:
        expanded = expand_all(root, expanded)
    covered, total = report.total_block_counts()
    new = ViewerState(state.title, app_title=format_title(state.title, covered, total),
                      report=report, tree=tree, expanded=expanded)
    return new, ['title', 'tree', 'document', 'file_info']

def close_report(state: ViewerState):
    return ViewerState(state.title), ['title', 'tree', 'document', 'file_info']

def select_node(state: ViewerState, key: str, source_root: Path,
                exists: Callable[[Path], bool] = Path.is_file,
                read_lines: Callable[[Path], List[str]] = read_all_lines):
    """
    Select a tree node. For a leaf whose file exists under ``source_root`` the
    file is rendered; anything else only moves the selection. Read errors propagate.
    """
    node = state.tree.get(key) if state.tree is not None else None
    if node is None:
        return state, []
    new = state.replace(selected=key)
    if not node.is_leaf:
        return new, ['tree']
    path = resolve_source(key, source_root, state.tree.separator)
    if not exists(path):
        return new, ['tree']
    lines = read_lines(path)
    report = state.report
    document = render_document(lines, lambda n: report.ranges_starting_at(key, n))
    covered, not_covered = report.file_block_counts(key)
    new = new.replace(document=document, file_info=format_file_info(key, covered, not_covered))
    return new, ['tree', 'document', 'file_info']

def _apply_to_selected(state: ViewerState, op):
    node = state.tree.get(state.selected) if state.tree is not None and state.selected else None
    if node is None:
        return state, []
    return state.replace(expanded=op(node, state.expanded)), ['tree']

def explode_selected(state: ViewerState):
    return _apply_to_selected(state, expand_all)

def collapse_selected(state: ViewerState):
    return _apply_to_selected(state, collapse_all)

def recompute(state: ViewerState, source_root: Path,
              exists: Callable[[Path], bool] = Path.is_file,
              read_lines: Callable[[Path], List[str]] = read_all_lines):
    """Re-read and re-render the selected file."""
    if not state.selected:
        return state, []
    return select_node(state, state.selected, source_root, exists, read_lines)

def sanitize_detail_name(source: str) -> str:
    """Return a filesystem-safe, stable file name for a detail page."""
    tail = re.split(r'[\\/]', source)[-1]
    h = hashlib.sha256(source.encode('utf-8')).hexdigest()[:16]
    safe_tail = re.sub(r'[^A-Za-z0-9_.-]+', '_', tail)
    return f"{safe_tail}__{h}.html"

def html_head(title: str, ui_font_size: Optional[int] = None, code_font_size: float = 12) -> str:
    ui_font_rule = f"font-size: {ui_font_size}px;" if ui_font_size else ""
    css = """
    <style>
    body { font-family: system-ui, -apple-system, Segoe UI, Roboto, sans-serif; margin: 24px; {UI_FONT_RULE} }
    h1, h2 { margin: 0.6em 0 0.4em; }
    table { border-collapse: collapse; margin: 1em 0; }
    th, td { border: 1px solid #ddd; padding: 6px 8px; text-align: left; }
    td.num, th.num { text-align: right; }
    .pill { display:inline-block; padding:2px 8px; border-radius:999px; background:#eee; margin-left:8px; font-weight:600; }
    .header { display:flex; justify-content:space-between; align-items:center; margin-bottom: 10px; }
    .breadcrumbs a, a.filelink { text-decoration:none; }
    ul.tree, ul.tree ul { list-style: none; padding-left: 18px; margin: 0; }
    ul.tree summary { cursor: pointer; }
    table.source { border: none; width: 100%; }
    table.source td { border: none; padding: 0 4px; vertical-align: top; }
    pre, code {
      font-family: ui-monospace, SFMono-Regular, Menlo, Consolas, "Liberation Mono", monospace;
      font-size: {CODE_FONT_SIZE}px;
    }
    pre { margin: 0; white-space: pre; }
    .line-label { color: gray; font-weight: bold; white-space: pre; }
    .covered { background: deepskyblue; }
    .not-covered { background: darkorange; }
    </style>
    """
    css = css.replace("{UI_FONT_RULE}", ui_font_rule)
    css = css.replace("{CODE_FONT_SIZE}", str(code_font_size))
    js_tree = """
    <script>
    function setTree(open){
      document.querySelectorAll('ul.tree details').forEach(function(d){ d.open = open; });
    }
    </script>
    """
    return f"<!DOCTYPE html><html><head><meta charset='utf-8'><title>{html.escape(title)}</title>{css}{js_tree}</head>"

def _segment_html(seg: StyledSegment) -> str:
    text = html.escape(seg.text)
    if seg.style == PLAIN:
        return text
    return f"<span class='{seg.style}'>{text}</span>"

def write_detail_page(outpath: Path, source: str, document: Tuple[RenderedLine, ...], file_info: str,
                      breadcrumb_href: str, ui_font_size: Optional[int] = None, code_font_size: float = 12):
    parts = [html_head(f"blocklens — {source}", ui_font_size=ui_font_size, code_font_size=code_font_size),
             "<body>"]
    parts.append(f"<h1>{html.escape(source)}</h1>")
    parts.append(f"""
    <div class="header">
      <div class="breadcrumbs">
        <a href='{html.escape(breadcrumb_href)}'>Summary</a> / <strong>{html.escape(source)}</strong>
      </div>
      <div><span class="pill">{html.escape(file_info)}</span></div>
    </div>
    """)
    parts.append("<table class='source'><tbody>")
    for line in document:
        code = "".join(_segment_html(s) for s in line.segments if s.style != LINE_LABEL)
        parts.append(
            f"<tr id='L{line.lineno}' data-state='{line.state}'>"
            f"<td class='line-label'>{html.escape(line.label)}</td>"
            f"<td><pre><code>{code}</code></pre></td></tr>"
        )
    parts.append("</tbody></table></body></html>")
    outpath.write_text("\n".join(parts), encoding='utf-8')

def _file_pct(report: CoverageReport, key: str) -> float:
    covered, not_covered = report.file_block_counts(key)
    return percent(covered, covered + not_covered)

def _tree_html(node: PathNode, state: ViewerState, detail_links: Dict[str, str], parts: List[str]):
    label = html.escape(node.label)
    if node.is_leaf and not node.children:
        link = detail_links.get(node.key)
        if link:
            label = f"<a class='filelink' href='{html.escape(link)}'><code>{label}</code></a>"
        else:
            label = f"<code>{label}</code>"
        parts.append(f"<li class='leaf'>{label}<span class='pill'>{_file_pct(state.report, node.key)} %</span></li>")
        return
    is_open = " open" if state.is_expanded(node.key) else ""
    label = f"<code>{label}</code>"
    link = detail_links.get(node.key)
    if node.is_leaf and link:
        label = f"<a class='filelink' href='{html.escape(link)}'>{label}</a>"
    parts.append(f"<li><details{is_open}><summary>{label}</summary><ul>")
    for child in node.children:
        _tree_html(child, state, detail_links, parts)
    parts.append("</ul></details></li>")

def to_html_summary(state: ViewerState, detail_links: Dict[str, str],
                    ui_font_size: Optional[int] = None, code_font_size: float = 12) -> str:
    parts = [html_head(state.app_title, ui_font_size=ui_font_size, code_font_size=code_font_size), "<body>"]
    parts.append(f"<h1>{html.escape(state.app_title)}</h1>")
    parts.append("<div><button onclick='setTree(true)'>Expand all</button> "
                 "<button onclick='setTree(false)'>Collapse all</button></div>")
    parts.append("<ul class='tree'>")
    if state.tree is not None:
        for root in state.tree.roots:
            _tree_html(root, state, detail_links, parts)
    parts.append("</ul>")

    parts.append("<h2>File Summary</h2>")
    parts.append("<table><thead><tr><th>File</th><th class='num'>Covered</th>"
                 "<th class='num'>Not covered</th><th class='num'>Total</th>"
                 "<th class='num'>% Covered</th></tr></thead><tbody>")
    files = state.report.src_files() if state.report is not None else []
    if files:
        for key in sorted(files, key=str.lower):
            covered, not_covered = state.report.file_block_counts(key)
            label = html.escape(key)
            link = detail_links.get(key)
            if link:
                label = f"<a class='filelink' href='{html.escape(link)}'><code>{label}</code></a>"
            else:
                label = f"<code>{label}</code>"
            parts.append(
                f"<tr><td>{label}</td><td class='num'>{covered}</td><td class='num'>{not_covered}</td>"
                f"<td class='num'>{covered + not_covered}</td>"
                f"<td class='num'>{percent(covered, covered + not_covered)} %</td></tr>"
            )
    else:
        parts.append("<tr><td colspan='5' style='text-align:center'>No files in report</td></tr>")
    parts.append("</tbody></table></body></html>")
    return "\n".join(parts)

def _tree_md(node: PathNode, report: CoverageReport, depth: int, md: List[str]):
    indent = "  " * depth
    if node.is_leaf and not node.children:
        covered, not_covered = report.file_block_counts(node.key)
        total = covered + not_covered
        md.append(f"{indent}- `{node.label}` {covered} / {total} blocks ({percent(covered, total)} %)")
        return
    md.append(f"{indent}- `{node.label}/`")
    for child in node.children:
        _tree_md(child, report, depth + 1, md)

def to_markdown_summary(state: ViewerState) -> str:
    md = [f"# {state.app_title}\n"]
    md.append("## Files\n")
    if state.tree is not None:
        for root in state.tree.roots:
            _tree_md(root, state.report, 0, md)
    md.append("\n## File Summary\n")
    md.append("| File | Covered | Not covered | Total | % Covered |")
    md.append("|---|---:|---:|---:|---:|")
    files = state.report.src_files() if state.report is not None else []
    for key in sorted(files, key=str.lower):
        covered, not_covered = state.report.file_block_counts(key)
        total = covered + not_covered
        md.append(f"| `{key}` | {covered} | {not_covered} | {total} | {percent(covered, total)} % |")
    return "\n".join(md)

def main(argv=None):
    parser = argparse.ArgumentParser(description="Render block-coverage results as a browsable source tree.")
    parser.add_argument("report", type=Path, help="JSON coverage dump (files, block counts, ranges)")
    parser.add_argument("--output", "-o", type=Path, default=None, help="Write report to this file (HTML or Markdown based on --format)")
    parser.add_argument("--format", "-f", choices=["html", "md"], default="html", help="Output format")
    parser.add_argument("--details-dir", type=Path, default=None, help="(HTML) Directory for per-file detail pages. Default: <output>_files")
    parser.add_argument("--source-root", type=Path, default=None, help="Directory report paths are relative to. Default: the report's directory")
    parser.add_argument("--separator", default=None, help="Path separator used in the report. Default: guessed from the paths")
    parser.add_argument("--title", default=DEFAULT_TITLE, help="Title shown in the report header.")
    parser.add_argument("--collapsed", action="store_true", help="(HTML) Start with the file tree collapsed.")
    parser.add_argument("--ui-font-size", type=int, default=12, help="Base UI font size in px.")
    parser.add_argument("--code-font-size", type=float, default=12, help="Code font size in px (detail pages).")
    args = parser.parse_args(argv)

    args.report = args.report.expanduser()
    if args.output is not None:
        args.output = args.output.expanduser()
    if args.details_dir is not None:
        args.details_dir = args.details_dir.expanduser()
    source_root = (args.source_root.expanduser() if args.source_root is not None
                   else args.report.resolve().parent)

    if not args.report.is_file():
        print(f"ERROR: {args.report} is not a file", file=sys.stderr)
        return 2
    try:
        report = load_report(args.report)
    except (OSError, ValueError) as e:
        print(f"ERROR: could not load report {args.report}: {e}", file=sys.stderr)
        return 2

    separator = args.separator or guess_separator(report.src_files())
    state, _ = open_report(ViewerState(args.title), report, separator)
    if args.collapsed:
        for root in state.tree.roots:
            state = state.replace(expanded=collapse_all(root, state.expanded))

    if args.output is None:
        ext = ".html" if args.format == "html" else ".md"
        args.output = Path(f"coverage_{args.report.stem}{ext}")

    try:
        args.output.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"ERROR: could not create parent directory for output {args.output}: {e}", file=sys.stderr)
        return 2

    details_dir: Optional[Path] = None
    if args.format == "md":
        out = to_markdown_summary(state)
    else:
        details_dir = args.details_dir or args.output.with_name(args.output.stem + "_files")
        try:
            details_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"ERROR: could not create details directory {details_dir}: {e}", file=sys.stderr)
            return 2
        detail_links: Dict[str, str] = {}
        for node in state.tree.leaves():
            try:
                viewed, intents = select_node(state, node.key, source_root)
            except (OSError, UnicodeDecodeError) as e:
                print(f"WARNING: could not read source for {node.key}: {e}", file=sys.stderr)
                continue
            if 'document' not in intents:
                print(f"WARNING: source not found for {node.key}", file=sys.stderr)
                continue
            fname = sanitize_detail_name(node.key)
            detail_path = details_dir / fname
            breadcrumb_href = os.path.relpath(args.output, start=detail_path.parent).replace('\\', '/')
            write_detail_page(detail_path, node.key, viewed.document, viewed.file_info, breadcrumb_href,
                              args.ui_font_size, args.code_font_size)
            detail_links[node.key] = f"{details_dir.name}/{fname}"
        out = to_html_summary(state, detail_links, args.ui_font_size, args.code_font_size)

    try:
        args.output.write_text(out, encoding='utf-8')
    except OSError as e:
        print(f"ERROR: could not write output file {args.output}: {e}", file=sys.stderr)
        return 2

    print("")
    print(f"Wrote {args.format.upper()} report to: {args.output}")
    if details_dir is not None:
        print(f"Wrote per-file details to: {details_dir}/")
    return 0


if __name__ == "__main__":
    sys.exit(main())

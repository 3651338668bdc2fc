# assetmap/record_codec.py
# Converts worksheet rows to records keyed by field and "Section – Field", and writes records back under a two-row header.

from .header_model import (
    cell_text,
    composite_key,
    detect_two_row,
    general_info_order,
    normalize_pair,
    read_header,
    row_texts,
    union_pairs,
)


def record_from_texts(pairs: list, texts: list) -> dict:
    """Store every value under both its plain field and its composite key."""
    rec = {}
    for pair, value in zip(pairs, texts):
        if pair.is_blank:
            continue
        if pair.field:
            rec[pair.field] = value
        rec[pair.composite] = value
    return rec


def decode_sheet(ws) -> dict:
    """
    Decode a worksheet, auto-detecting one-row vs two-row headers.
    Rows that are entirely blank are not returned.
    """
    two_row = detect_two_row(ws)
    pairs = read_header(ws, two_row)
    start = 3 if two_row else 2
    rows, row_numbers = [], []
    if pairs:
        for r_idx, values in enumerate(
            ws.iter_rows(min_row=start, max_col=len(pairs), values_only=True), start=start
        ):
            texts = [cell_text(v) for v in values]
            if not any(texts):
                continue
            rows.append(record_from_texts(pairs, texts))
            row_numbers.append(r_idx)
    named = [p for p in pairs if not p.is_blank]
    return {
        'rows': rows,
        'row_numbers': row_numbers,
        'pairs': pairs,
        'sections': [p.section for p in named],
        'fields': [p.field for p in named],
        'two_row': two_row,
    }


def sheet_to_objects_one_row(ws) -> list:
    """Row 1 holds plain headers; every non-blank row below becomes a dict."""
    headers = row_texts(ws, 1)
    out = []
    if not headers:
        return out
    for values in ws.iter_rows(min_row=2, max_col=len(headers), values_only=True):
        obj, has = {}, False
        for key, v in zip(headers, values):
            if not key:
                continue
            text = cell_text(v)
            if text != '':
                has = True
            obj[key] = text
        if has:
            out.append(obj)
    return out


def read_grid(ws, min_row: int = 1, width: int = None) -> list:
    width = width or ws.max_column or 0
    if width < 1 or (ws.max_row or 0) < min_row:
        return []
    return [list(r) for r in ws.iter_rows(min_row=min_row, max_col=width, values_only=True)]


def rewrite_grid(ws, grid: list):
    """Write `grid` from A1, blanking any old cell outside it. '' is stored as empty."""
    old_rows, old_cols = ws.max_row or 0, ws.max_column or 0
    width = max([len(r) for r in grid] + [0])
    for r in range(1, max(len(grid), old_rows) + 1):
        row = grid[r - 1] if r <= len(grid) else []
        for c in range(1, max(width, old_cols) + 1):
            value = row[c - 1] if c <= len(row) else None
            if value == '':
                value = None
            cell = ws.cell(row=r, column=c)
            if cell.value != value:
                cell.value = value


def _has_content(sheet_rows: list, col: int) -> bool:
    return any(col < len(r) and cell_text(r[col]) for r in sheet_rows)


def write_records(ws, sections: list, fields: list, rows: list) -> dict:
    """
    Merge the incoming (section, field) header into the sheet's two-row
    header, move existing data with its columns, then append `rows`.
    """
    if len(sections) != len(fields):
        raise ValueError('Sections must align with fields')

    head = row_texts(ws, 1)
    if (ws.max_row or 0) >= 2:
        head += row_texts(ws, 2)
    has_header = any(head)
    existing, old_rows = [], []
    if has_header:
        two_row = detect_two_row(ws)
        header = read_header(ws, two_row)
        old_rows = read_grid(ws, 3 if two_row else 2, len(header))
        # columns with no header and no data are dropped
        existing = [
            (i, p) for i, p in enumerate(header)
            if not p.is_blank or _has_content(old_rows, i)
        ]

    aliases = {}
    incoming = []
    for s, f in zip(sections, fields):
        pair = normalize_pair(s, f)
        incoming.append(pair)
        aliases.setdefault(pair.key(), []).extend([composite_key(s, f), f])

    union = union_pairs([p for _, p in existing], incoming)
    order = general_info_order(union)
    final = [union[i] for i in order]
    sources = [existing[i][0] if i < len(existing) else None for i in order]

    grid = [
        [p.section for p in final],
        [p.field for p in final],
    ]
    for old in old_rows:
        grid.append([old[src] if src is not None and src < len(old) else None for src in sources])

    for rec in rows:
        rec = rec or {}
        out = []
        for pair in final:
            value = None
            for key in [pair.composite, pair.field] + aliases.get(pair.key(), []):
                if key and rec.get(key) is not None:
                    value = rec[key]
                    break
            out.append(value)
        grid.append(out)

    rewrite_grid(ws, grid)
    return {'pairs': final, 'added': len(rows)}

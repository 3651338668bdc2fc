# assetmap/schema_sync.py
# Propagates one asset type's custom-field schema to every station sheet of that type across all location workbooks.

import logging

from openpyxl import load_workbook

from .aggregator import list_excel_files
from .exceptions import MissingSheetError
from .header_model import (
    SEP,
    HeaderPair,
    cell_text,
    is_general_info,
    is_standard_field,
    split_composite,
)
from .record_codec import decode_sheet, read_grid, rewrite_grid
from .station_store import StationStore, iter_schema, sheet_name_for, station_id_column

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = {'category', 'asset type'}
ID_KEYS = ('Station ID', 'station_id', 'StationID', 'ID')


def _is_fixed(pair: HeaderPair) -> bool:
    """General Information columns and unsectioned standard fields are never synchronized."""
    return is_general_info(pair.section) or (not pair.section and is_standard_field(pair.field))


def extract_schema(record: dict) -> list:
    """Ordered non-GI (section, field) pairs from a station record's composite keys."""
    out, seen = [], set()
    for key in record or {}:
        if SEP not in str(key):
            continue
        pair = split_composite(key)
        if is_general_info(pair.section) or pair.key() in seen:
            continue
        seen.add(pair.key())
        out.append({'section': pair.section, 'field': pair.field})
    return out


def sheet_matches(ws, decoded: dict, asset_type: str) -> bool:
    """
    Sheet name ('<AssetType> <Location>' or the bare type) or any row's
    Category value; either heuristic is enough.
    """
    want = str(asset_type or '').strip().lower()
    if not want:
        return False
    title = ws.title.strip().lower()
    if title == want or title.startswith(want + ' '):
        return True
    if ' ' in title and title.rsplit(' ', 1)[0] == want:
        return True
    cols = [p.composite for p in decoded['pairs'] if p.field.lower() in CATEGORY_FIELDS]
    return any(
        str(rec.get(c, '')).strip().lower() == want
        for rec in decoded['rows'] for c in cols
    )


def _texts(grid: list, width: int) -> list:
    return [[cell_text(r[c]) if c < len(r) else '' for c in range(width)] for r in grid]


def _sync_sheet(ws, decoded: dict, target: list, exclude_id: str):
    """
    Rebuild one sheet as [fixed columns] + [target schema] + [leftovers].
    Returns the number of non-excluded rows whose values changed, or None
    when the sheet is already in sync.
    """
    pairs = decoded['pairs']
    start = 3 if decoded['two_row'] else 2
    old = read_grid(ws, start, len(pairs))
    sid_col = station_id_column(pairs)

    fixed = [i for i, p in enumerate(pairs) if _is_fixed(p)]
    by_key = {}
    for i, p in enumerate(pairs):
        if i not in fixed and not p.is_blank:
            by_key.setdefault(p.key(), i)
    target_keys = {p.key() for p in target}
    exact = [by_key.get(p.key()) for p in target]
    leftover = [
        i for i, p in enumerate(pairs)
        if i not in fixed and i not in exact and (not p.is_blank or
                                                 any(cell_text(r[i]) for r in old))
    ]
    # same-named fields that are not themselves part of the target schema
    donors = {}
    for i, p in enumerate(pairs):
        if i in fixed or p.is_blank or p.key() in target_keys:
            continue
        donors.setdefault(p.field.lower(), []).append(i)

    def excluded(row):
        return (exclude_id and sid_col is not None and
                cell_text(row[sid_col]).lower() == exclude_id)

    rows, changed_rows = [], 0
    for row in old:
        moved = ([row[i] for i in fixed] +
                 [row[src] if src is not None else None for src in exact] +
                 [row[i] for i in leftover])
        if excluded(row):
            rows.append(moved)
            continue
        out = [row[i] for i in fixed]
        for pair, src in zip(target, exact):
            value = row[src] if src is not None else None
            if not cell_text(value):
                for d in donors.get(pair.field.lower(), []):
                    if cell_text(row[d]):
                        value = row[d]
                        break
            out.append(value)
        out += [None] * len(leftover)
        if _texts([out], len(out)) != _texts([moved], len(moved)):
            changed_rows += 1
        rows.append(out)

    # leftover columns left with no data at all are dropped
    width = len(fixed) + len(target)
    keep_left = [
        j for j, i in enumerate(leftover)
        if any(cell_text(r[width + j]) for r in rows)
    ]
    layout = [pairs[i] for i in fixed] + list(target) + [pairs[leftover[j]] for j in keep_left]
    rows = [r[:width] + [r[width + j] for j in keep_left] for r in rows]

    grid = [[p.section for p in layout], [p.field for p in layout]] + rows
    before = [[p.section for p in pairs], [p.field for p in pairs]] + old
    if not decoded['two_row']:
        before = [[''] * len(pairs)] + before
    w = max(len(layout), len(pairs))
    if _texts(grid, w) == _texts(before, w):
        return None
    rewrite_grid(ws, grid)
    return changed_rows


def synchronize_asset_type_schema(locations_dir: str, asset_type: str, schema: list,
                                  exclude_station_id: str = None) -> dict:
    target, seen = [], set()
    for pair in iter_schema(schema):
        if _is_fixed(pair) or pair.key() in seen:
            continue
        seen.add(pair.key())
        target.append(pair)
    exclude_id = str(exclude_station_id or '').strip().lower()

    updated = rows_updated = skipped = 0
    for path in list_excel_files(locations_dir):
        try:
            wb = load_workbook(path)
        except Exception as e:
            logger.warning('[schema_sync.synchronize] skip unreadable file %s: %s', path, e)
            skipped += 1
            continue

        changed, file_rows = False, 0
        for ws in wb.worksheets:
            if (ws.max_row or 0) < 1:
                continue
            try:
                decoded = decode_sheet(ws)
                if not decoded['pairs'] or not sheet_matches(ws, decoded, asset_type):
                    continue
                n = _sync_sheet(ws, decoded, target, exclude_id)
            except Exception as e:
                logger.warning('[schema_sync.synchronize] skip sheet %s in %s: %s', ws.title, path, e)
                skipped += 1
                continue
            if n is not None:
                changed = True
                file_rows += n

        if changed:
            try:
                wb.save(path)
            except Exception as e:
                logger.warning('[schema_sync.synchronize] could not save %s: %s', path, e)
                skipped += 1
                continue
            updated += 1
            rows_updated += file_rows
            logger.info('[schema_sync.synchronize] updated %s', path)

    msg = f'Schema for "{asset_type}" applied to {updated} location(s)'
    if skipped:
        msg += f', {skipped} unreadable sheet(s) or file(s) skipped'
    return {
        'success': True,
        'updated': updated,
        'rows_updated': rows_updated,
        'skipped': skipped,
        'message': msg,
    }


def get_existing_schema_for_asset_type(locations_dir: str, asset_type: str,
                                       exclude_ids=()) -> dict:
    """Schema of the first matching sheet holding a station not in `exclude_ids`."""
    excluded = {str(x).strip().lower() for x in exclude_ids or ()}
    for path in list_excel_files(locations_dir):
        try:
            wb = load_workbook(path, data_only=True)
        except Exception as e:
            logger.warning('[schema_sync.get_existing_schema] skip unreadable file %s: %s', path, e)
            continue
        for ws in wb.worksheets:
            decoded = decode_sheet(ws)
            if not decoded['rows'] or not sheet_matches(ws, decoded, asset_type):
                continue
            sid_col = station_id_column(decoded['pairs'])
            if sid_col is not None:
                key = decoded['pairs'][sid_col].composite
                if all(str(r.get(key, '')).strip().lower() in excluded for r in decoded['rows']):
                    continue
            schema = [
                {'section': p.section, 'field': p.field}
                for p in decoded['pairs'] if not p.is_blank and not _is_fixed(p)
            ]
            return {'success': True, 'schema': schema, 'file': path, 'sheet': ws.title}
    return {'success': True, 'schema': [], 'file': None, 'sheet': None}


def _recover(record: dict, pair: HeaderPair):
    """Value for `pair` from an imported record: exact composite, else the same field under any section."""
    if cell_text(record.get(pair.composite)):
        return record[pair.composite]
    want = pair.field.lower()
    for key, value in record.items():
        if SEP in str(key) and split_composite(key).field.lower() == want and cell_text(value):
            return value
    return ''


def sync_newly_imported_stations(locations_dir: str, asset_type: str, company: str,
                                 location: str, schema: list, imported_ids) -> dict:
    """
    Reshape stations just written by an import so they carry every column of
    the asset type's existing schema; other rows of the sheet are left alone.
    """
    store = StationStore(locations_dir)
    sheet = sheet_name_for(asset_type, location)
    try:
        data = store.read_sheet_data(company, location, sheet)
    except MissingSheetError as e:
        return {'success': False, 'message': str(e), 'stations_updated': 0}
    if not data.get('success') or not data.get('rows'):
        return {'success': False, 'stations_updated': 0,
                'message': f'Could not read imported data from {sheet}'}

    target = [p for p in iter_schema(schema) if not _is_fixed(p)]
    wanted = {cell_text(i).lower() for i in imported_ids or ()}
    updated = 0
    for record in data['rows']:
        sid = ''
        for key in ID_KEYS:
            sid = cell_text(record.get(key))
            if sid:
                break
        if not sid or sid.lower() not in wanted:
            continue
        fields = {p.composite: _recover(record, p) for p in target}
        res = store.update_station(company, location, sid, fields, target)
        if res.get('success'):
            updated += 1
        else:
            logger.warning('[schema_sync.sync_newly_imported] %s: %s', sid, res.get('message'))

    logger.info('[schema_sync.sync_newly_imported] %d of %d imported station(s) reshaped in %s',
                updated, len(wanted), sheet)
    return {
        'success': True,
        'stations_updated': updated,
        'message': f'Updated {updated} newly imported station(s) to match the existing schema',
    }

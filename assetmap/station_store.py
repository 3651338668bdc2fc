# assetmap/station_store.py
# Reads and writes station workbooks: one file per (company, location), one sheet per asset type under a two-row header.

import logging
import os
import re

from openpyxl import Workbook, load_workbook

from .exceptions import MissingSheetError
from .header_model import (
    GENERAL_INFO,
    SEP,
    STANDARD_HEADER,
    HeaderPair,
    cell_text,
    composite_key,
    is_general_info,
    is_standard_field,
    is_station_id_field,
    normalize_pair,
    split_composite,
)
from .lookups_manager import get_sheet
from .record_codec import decode_sheet, read_grid, rewrite_grid, write_records

logger = logging.getLogger(__name__)

# normalized record attribute → General Information field
FIELD_ALIASES = {
    'station_id': 'Station ID',
    'asset_type': 'Category',
    'name':       'Site Name',
    'province':   'Province',
    'lat':        'Latitude',
    'lon':        'Longitude',
    'status':     'Status',
}

# bookkeeping keys carried on records that are never written as columns
PROVENANCE_KEYS = {'location_file', 'company', 'schema', '_mirror_id', '_id'}

_UNSAFE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def safe_name(name: str) -> str:
    """Folder/file-safe version of a company or location name."""
    cleaned = _UNSAFE.sub('_', str(name or '').strip()).strip(' .')
    return cleaned or '_'


def sheet_name_for(asset_type: str, location: str) -> str:
    # Excel caps sheet titles at 31 characters
    return f"{str(asset_type).strip()} {str(location).strip()}"[:31]


def _pair_for_key(key: str) -> HeaderPair:
    """Header a brand-new column gets when an unknown key is written."""
    if key in FIELD_ALIASES:
        return HeaderPair(GENERAL_INFO, FIELD_ALIASES[key])
    if SEP in key:
        s, f = split_composite(key)
        return normalize_pair(s, f)
    pair = normalize_pair('', key)
    if pair.section:
        return pair
    if is_standard_field(key):
        return HeaderPair(GENERAL_INFO, key.strip())
    return pair


def find_column(pairs: list, key: str):
    """
    Column index for `key`: composite key, then the alias table, then the
    plain field (General Information preferred), then the normalized pair.
    """
    low = str(key).strip().lower()
    for i, p in enumerate(pairs):
        if not p.is_blank and p.key() == low:
            return i

    wanted = FIELD_ALIASES.get(key, key).strip().lower()
    candidates = [i for i, p in enumerate(pairs) if p.field.lower() == wanted]
    for i in candidates:
        if is_general_info(pairs[i].section):
            return i
    if candidates:
        return candidates[0]

    norm = _pair_for_key(key).key()
    for i, p in enumerate(pairs):
        if not p.is_blank and p.key() == norm:
            return i
    return None


def station_id_column(pairs: list):
    for i, p in enumerate(pairs):
        if is_station_id_field(p.field) and (not p.section or is_general_info(p.section)):
            return i
    for i, p in enumerate(pairs):
        if is_station_id_field(p.field):
            return i
    return None


def _to_record(record: dict, asset_type: str) -> dict:
    """Re-key a loose record onto composite keys for write_records."""
    out = {}
    for key, value in (record or {}).items():
        if key in PROVENANCE_KEYS or value is None:
            continue
        out.setdefault(_pair_for_key(key).composite, value)
    cat = composite_key(GENERAL_INFO, 'Category')
    if not cell_text(out.get(cat)):
        out[cat] = asset_type
    return out


class StationStore:
    def __init__(self, locations_dir: str):
        self.locations_dir = locations_dir

    # ─── Paths ───────────────────────────────────────────────────────────────
    def company_path(self, company: str, location: str) -> str:
        return os.path.join(self.locations_dir, safe_name(company), f'{safe_name(location)}.xlsx')

    def legacy_path(self, location: str) -> str:
        return os.path.join(self.locations_dir, f'{safe_name(location)}.xlsx')

    def location_path(self, company: str, location: str) -> str:
        """Company-scoped file, unless only a legacy flat file exists."""
        if not str(company or '').strip():
            return self.legacy_path(location)
        scoped = self.company_path(company, location)
        legacy = self.legacy_path(location)
        if not os.path.exists(scoped) and os.path.exists(legacy):
            return legacy
        return scoped

    def ensure_workbook(self, company: str, location: str) -> dict:
        path = self.location_path(company, location)
        if os.path.exists(path):
            return {'success': True, 'path': path, 'created': False}
        os.makedirs(os.path.dirname(path), exist_ok=True)
        Workbook().save(path)
        logger.info('[station_store.ensure_workbook] created %s', path)
        return {'success': True, 'path': path, 'created': True}

    def _load(self, company: str, location: str):
        path = self.location_path(company, location)
        if not os.path.exists(path):
            return path, None
        return path, load_workbook(path)

    @staticmethod
    def _drop_placeholder(wb):
        """Remove openpyxl's default empty 'Sheet' once a real sheet exists."""
        if len(wb.worksheets) < 2:
            return
        ws = get_sheet(wb, 'Sheet')
        if ws is not None and ws.max_row <= 1 and ws.max_column <= 1 and ws['A1'].value is None:
            wb.remove(ws)

    # ─── Reads ───────────────────────────────────────────────────────────────
    def read_location_workbook(self, company: str, location: str) -> dict:
        path, wb = self._load(company, location)
        if wb is None:
            return {'success': False, 'message': f'No workbook for "{location}"', 'sheets': []}
        return {'success': True, 'path': path, 'sheets': list(wb.sheetnames)}

    def read_sheet_data(self, company: str, location: str, sheet: str) -> dict:
        path, wb = self._load(company, location)
        if wb is None:
            return {'success': False, 'message': f'No workbook for "{location}"'}
        ws = get_sheet(wb, sheet)
        if ws is None:
            raise MissingSheetError(sheet, path)
        decoded = decode_sheet(ws)
        return {
            'success':  True,
            'sheet':    ws.title,
            'rows':     decoded['rows'],
            'sections': decoded['sections'],
            'fields':   decoded['fields'],
        }

    @staticmethod
    def find_station(wb, station_id: str):
        """(worksheet, decoded, index into decoded rows) or None."""
        tgt = str(station_id or '').strip().lower()
        if not tgt:
            return None
        for ws in wb.worksheets:
            decoded = decode_sheet(ws)
            col = station_id_column(decoded['pairs'])
            if col is None:
                continue
            key = decoded['pairs'][col].composite
            for i, rec in enumerate(decoded['rows']):
                if str(rec.get(key, '')).strip().lower() == tgt:
                    return ws, decoded, i
        return None

    def read_station(self, company: str, location: str, station_id: str) -> dict:
        _, wb = self._load(company, location)
        hit = self.find_station(wb, station_id) if wb is not None else None
        if hit is None:
            return {'success': False, 'message': f'Station "{station_id}" not found'}
        ws, decoded, i = hit
        return {
            'success':    True,
            'sheet':      ws.title,
            'row':        decoded['rows'][i],
            'row_number': decoded['row_numbers'][i],
            'sections':   decoded['sections'],
            'fields':     decoded['fields'],
        }

    # ─── Writes ──────────────────────────────────────────────────────────────
    def create_station(self, company: str, location: str, asset_type: str, record: dict) -> dict:
        station_id = ''
        for key in ('station_id', 'Station ID', composite_key(GENERAL_INFO, 'Station ID')):
            station_id = cell_text((record or {}).get(key))
            if station_id:
                break
        if not station_id:
            return {'success': False, 'message': 'Station ID is required.'}

        path = self.ensure_workbook(company, location)['path']
        wb = load_workbook(path)
        if self.find_station(wb, station_id) is not None:
            return {'success': False, 'message': f'Station "{station_id}" already exists'}

        title = sheet_name_for(asset_type, location)
        ws = get_sheet(wb, title) or wb.create_sheet(title)
        rec = _to_record(record, asset_type)
        standard = {HeaderPair(GENERAL_INFO, f) for f in STANDARD_HEADER}
        extra = [p for p in map(split_composite, rec) if p not in standard]
        sections = [GENERAL_INFO] * len(STANDARD_HEADER) + [p.section for p in extra]
        fields = list(STANDARD_HEADER) + [p.field for p in extra]
        write_records(ws, sections, fields, [rec])
        self._drop_placeholder(wb)
        wb.save(path)
        logger.info('[station_store.create_station] %s → %s / %s', station_id, path, ws.title)
        return {'success': True, 'path': path, 'sheet': ws.title}

    def write_location_rows(self, company: str, location: str, sheet: str,
                            sections: list, fields: list, rows: list) -> dict:
        if not str(location or '').strip():
            raise ValueError('Location is required')
        if not fields:
            raise ValueError('Headers are required')
        if len(sections or []) != len(fields):
            raise ValueError('Sections must align with fields')

        path = self.ensure_workbook(company, location)['path']
        wb = load_workbook(path)
        ws = get_sheet(wb, sheet) or wb.create_sheet(sheet or 'Data')
        result = write_records(ws, sections, fields, rows or [])
        self._drop_placeholder(wb)
        wb.save(path)
        return {'success': True, 'file': path, 'sheet': ws.title, 'added': result['added']}

    def update_station(self, company: str, location: str, station_id: str,
                       updated_fields: dict, schema: list = None) -> dict:
        """
        Update one station's row in place. Unknown keys become new columns at
        the end of the sheet; `schema` pre-creates its pairs in order.
        """
        path, wb = self._load(company, location)
        if wb is None:
            return {'success': False, 'message': f'No workbook for "{location}"'}
        hit = self.find_station(wb, station_id)
        if hit is None:
            return {'success': False, 'message': f'Station "{station_id}" not found'}
        ws, decoded, i = hit

        pairs = list(decoded['pairs'])
        start = 3 if decoded['two_row'] else 2
        data = read_grid(ws, start, len(pairs))
        target = decoded['row_numbers'][i] - start
        added = []

        def add_column(pair):
            pairs.append(pair)
            added.append(pair.composite)
            for row in data:
                row.append(None)
            return len(pairs) - 1

        for s, f in iter_schema(schema):
            if is_general_info(s):
                continue
            if find_column(pairs, composite_key(s, f)) is None:
                add_column(HeaderPair(s, f))

        written = 0
        for key, value in (updated_fields or {}).items():
            if key in PROVENANCE_KEYS:
                continue
            col = find_column(pairs, key)
            if col is None:
                col = add_column(_pair_for_key(key))
            row = data[target]
            row.extend([None] * (len(pairs) - len(row)))
            row[col] = value
            written += 1

        if decoded['two_row'] or any(p.section for p in pairs):
            grid = [[p.section for p in pairs], [p.field for p in pairs]] + data
        else:
            grid = [[p.field for p in pairs]] + data
        rewrite_grid(ws, grid)
        wb.save(path)
        logger.info('[station_store.update_station] %s: %d field(s), new columns %s',
                    station_id, written, added)
        return {'success': True, 'sheet': ws.title, 'updated': written, 'added_columns': added}


def iter_schema(schema):
    """
    Yield (section, field) from a schema given as HeaderPairs, 2-tuples,
    {'section', 'field'} dicts or composite strings.
    """
    for item in schema or []:
        if isinstance(item, dict):
            s, f = item.get('section'), item.get('field')
        elif isinstance(item, str):
            s, f = split_composite(item)
        else:
            s, f = item
        pair = normalize_pair(s, f)
        if not pair.is_blank:
            yield pair

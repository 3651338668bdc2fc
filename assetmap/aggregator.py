# assetmap/aggregator.py
# Walks the locations tree and flattens every station sheet into one list of records for the map and list views.

import logging
import os

import pandas as pd
from openpyxl import load_workbook

from .record_codec import decode_sheet

logger = logging.getLogger(__name__)

# first non-empty candidate wins
PROJECTION = {
    'station_id': ['Station ID', 'StationID', 'ID'],
    'asset_type': ['Category', 'Asset Type', 'Type', 'Structure Type'],
    'name':       ['Site Name', 'Name', 'Station Name'],
    'province':   ['Province', 'Location', 'State', 'Region'],
    'lat':        ['Latitude', 'Lat', 'Y'],
    'lon':        ['Longitude', 'Long', 'Lng', 'X'],
    'status':     ['Status'],
}

_SEPARATORS = (' – ', ' - ', ' — ', '–', '—', '-')


def list_excel_files(root: str) -> list:
    """Every .xlsx under `root`, recursively, skipping Excel '~$' lock files."""
    out = []
    if not os.path.isdir(root):
        return out
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for fn in sorted(filenames):
            if fn.lower().endswith('.xlsx') and not fn.startswith('~$'):
                out.append(os.path.join(dirpath, fn))
    return out


def pick(obj: dict, field_name: str):
    """A field by exact key, else by any '<section> – <field>' style key."""
    if not obj:
        return ''
    if field_name in obj:
        return obj[field_name]
    want = str(field_name or '').strip().lower()
    if not want:
        return ''
    for k, v in obj.items():
        kl = str(k).strip().lower()
        if kl == want or any(kl.endswith(sep + want) for sep in _SEPARATORS):
            return v
    return ''


def pick_one(obj: dict, candidates: list):
    for name in candidates:
        v = pick(obj, name)
        if v is not None and str(v).strip() != '':
            return v
    return ''


def company_for_file(path: str, root: str) -> str:
    """Parent folder name when the file is nested under `root`, else ''."""
    rel = os.path.relpath(os.path.dirname(os.path.abspath(path)), os.path.abspath(root))
    return '' if rel in ('.', '') else rel.split(os.sep)[0]


def valid_coordinates(rows: list) -> pd.Series:
    """Boolean per row: both lat and lon parse as finite numbers."""
    if not rows:
        return pd.Series([], dtype=bool)
    df = pd.DataFrame({
        'lat': [r.get('lat') for r in rows],
        'lon': [r.get('lon') for r in rows],
    })
    lat = pd.to_numeric(df['lat'], errors='coerce')
    lon = pd.to_numeric(df['lon'], errors='coerce')
    finite = lambda s: s.notna() & s.abs().ne(float('inf'))
    return finite(lat) & finite(lon)


def aggregate_stations(locations_dir: str) -> dict:
    os.makedirs(locations_dir, exist_ok=True)
    files = list_excel_files(locations_dir)
    out = []
    n_files = n_sheets = 0
    logger.info('[aggregator.aggregate_stations] LOCATIONS_DIR = %s', locations_dir)

    for path in files:
        n_files += 1
        location_file = os.path.splitext(os.path.basename(path))[0]
        company = company_for_file(path, locations_dir)
        try:
            wb = load_workbook(path, data_only=True)
        except Exception as e:
            logger.warning('[aggregator.aggregate_stations] skip unreadable file %s: %s', path, e)
            continue

        for ws in wb.worksheets:
            if (ws.max_row or 0) < 2:
                continue
            n_sheets += 1
            for rec in decode_sheet(ws)['rows']:
                station = dict(rec)
                station.update({key: pick_one(rec, names) for key, names in PROJECTION.items()})
                station['location_file'] = location_file
                if company:
                    station['company'] = company
                out.append(station)

    valid = valid_coordinates(out)
    stats = {
        'files': n_files,
        'sheets': n_sheets,
        'rows': len(out),
        'valid_coords': int(valid.sum()),
    }
    logger.info('[aggregator.aggregate_stations] loaded files=%(files)d, sheets=%(sheets)d, '
                'rows=%(rows)d, validCoords=%(valid_coords)d', stats)
    return {'success': True, 'rows': out, 'stats': stats}

# assetmap/repairs_manager.py
# Handles the per-location repair logs under data/repairs/<Company>/<Location>.xlsx (single "Repairs" sheet, grouped by Station ID).

import logging
import os
from datetime import date

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

from .aggregator import company_for_file, list_excel_files
from .header_model import cell_text
from .record_codec import rewrite_grid
from .station_store import safe_name

logger = logging.getLogger(__name__)

SHEET_NAME = 'Repairs'
DATE_COL, SID_COL, TYPE_COL = 'Date', 'Station ID', 'Type'
DEFAULT_TYPE = 'Repair'

# accepted spellings of the Station ID key in a payload
SID_KEYS = ['Station ID', 'station_id', 'StationID', 'stationId', 'Station Id', 'station id', 'ID']
_SID_LOWER = {k.lower() for k in SID_KEYS}


def station_id_of(repair: dict) -> str:
    for key in SID_KEYS:
        sid = cell_text((repair or {}).get(key))
        if sid:
            return sid
    return ''


def _role(name: str):
    """'date' / 'sid' / 'type' for the fixed columns, None for extras."""
    low = str(name or '').strip().lower()
    if low == 'date':
        return 'date'
    if low in _SID_LOWER:
        return 'sid'
    if low == 'type':
        return 'type'
    return None


class RepairStore:
    def __init__(self, repairs_dir: str):
        self.repairs_dir = repairs_dir

    def path_for(self, company: str, location: str) -> str:
        return os.path.join(self.repairs_dir, safe_name(company), f'{safe_name(location)}.xlsx')

    # ─── Sheet I/O ───────────────────────────────────────────────────────────
    def _load(self, company: str, location: str, create: bool = True):
        """(path, wb, ws, extras, rows); rows are dicts keyed by header name."""
        path = self.path_for(company, location)
        if os.path.exists(path):
            wb = load_workbook(path)
        elif create:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            wb = Workbook()
        else:
            return path, None, None, [], []

        ws = self._single_sheet(wb)
        extras, rows = [], []
        header = list(next(ws.iter_rows(min_row=1, max_row=1, values_only=True), ()))
        names = []
        for h in header:
            text = cell_text(h)
            role = _role(text)
            if role == 'date':
                names.append(DATE_COL)
            elif role == 'sid':
                names.append(SID_COL)
            elif role == 'type':
                names.append(TYPE_COL)
            else:
                names.append(text)
                if text and text.lower() not in {e.lower() for e in extras}:
                    extras.append(text)

        for values in ws.iter_rows(min_row=2, max_col=max(len(names), 1), values_only=True):
            if not any(cell_text(v) for v in values):
                continue
            row = {}
            for name, v in zip(names, values):
                if name and name not in row:
                    row[name] = v
            rows.append(row)
        return path, wb, ws, extras, rows

    @staticmethod
    def _single_sheet(wb):
        ws = None
        for s in wb.worksheets:
            if s.title.lower() == SHEET_NAME.lower():
                ws = s
                break
        if ws is None:
            ws = wb.worksheets[0] if wb.worksheets else wb.create_sheet(SHEET_NAME)
            ws.title = SHEET_NAME
        for s in list(wb.worksheets):
            if s is not ws:
                wb.remove(s)
        return ws

    @staticmethod
    def _save(path: str, wb, ws, extras: list, rows: list):
        header = [DATE_COL, SID_COL] + extras + [TYPE_COL]
        grid = [header] + [[row.get(h) for h in header] for row in rows]
        rewrite_grid(ws, grid)
        for cell in ws[1]:
            cell.font = Font(bold=True)
        wb.save(path)

    @staticmethod
    def _entry(repair: dict, sid: str, extras: list) -> dict:
        """Canonical row for a payload, growing `extras` with unseen keys."""
        row = {SID_COL: sid}
        known = {e.lower(): e for e in extras}
        for key, value in (repair or {}).items():
            role = _role(key)
            if role == 'sid':
                continue
            if role == 'date':
                row[DATE_COL] = value
            elif role == 'type':
                row[TYPE_COL] = value
            else:
                name = known.get(str(key).strip().lower())
                if name is None:
                    name = str(key).strip()
                    extras.append(name)
                    known[name.lower()] = name
                row[name] = value
        if not cell_text(row.get(DATE_COL)):
            row[DATE_COL] = date.today().isoformat()
        if not cell_text(row.get(TYPE_COL)):
            row[TYPE_COL] = DEFAULT_TYPE
        return row

    # ─── Public API ──────────────────────────────────────────────────────────
    def append_repair(self, company: str, location: str, repair: dict, asset_type: str = None) -> dict:
        """
        Insert right after the last row for the same Station ID, or append
        when the id is new. The header is re-canonicalized on every write.
        """
        sid = station_id_of(repair)
        if not sid:
            return {'success': False, 'message': 'Station ID is required to add a repair.'}

        path, wb, ws, extras, rows = self._load(company, location)
        payload = dict(repair or {})
        if asset_type and not any(str(k).strip().lower() == 'asset type' for k in payload):
            payload['Asset Type'] = asset_type
        entry = self._entry(payload, sid, extras)

        last = None
        for i, row in enumerate(rows):
            if cell_text(row.get(SID_COL)).lower() == sid.lower():
                last = i
        at = len(rows) if last is None else last + 1
        rows.insert(at, entry)

        self._save(path, wb, ws, extras, rows)
        logger.info('[repairs.append_repair] %s → %s row %d', sid, path, at + 2)
        return {'success': True, 'file': path, 'sheet': SHEET_NAME, 'row': at + 2}

    def list_repairs_for_station(self, company: str, location: str, station_id: str) -> list:
        _, wb, _, _, rows = self._load(company, location, create=False)
        if wb is None:
            return []
        tgt = str(station_id or '').strip().lower()
        return [
            {k: cell_text(v) for k, v in row.items()}
            for row in rows if cell_text(row.get(SID_COL)).lower() == tgt
        ]

    def save_station_repairs(self, company: str, location: str, station_id: str, repairs: list) -> dict:
        """Replace this station's block in place instead of appending duplicates."""
        sid = str(station_id or '').strip()
        if not sid:
            return {'success': False, 'message': 'Station ID is required.'}
        path, wb, ws, extras, rows = self._load(company, location)
        hits = [i for i, r in enumerate(rows) if cell_text(r.get(SID_COL)).lower() == sid.lower()]
        at = hits[0] if hits else len(rows)
        kept = [r for i, r in enumerate(rows) if i not in hits]
        block = [self._entry(item, sid, extras) for item in repairs or []]
        kept[at:at] = block
        self._save(path, wb, ws, extras, kept)
        return {'success': True, 'count': len(block), 'file': path, 'sheet': SHEET_NAME}

    def delete_repair(self, company: str, location: str, station_id: str, index: int) -> dict:
        """Delete the station's `index`-th repair (0-based, in sheet order)."""
        path, wb, ws, extras, rows = self._load(company, location, create=False)
        if wb is None:
            return {'success': False, 'message': f'No repairs for "{location}"'}
        tgt = str(station_id or '').strip().lower()
        hits = [i for i, r in enumerate(rows) if cell_text(r.get(SID_COL)).lower() == tgt]
        if not isinstance(index, int) or not 0 <= index < len(hits):
            return {'success': False, 'message': 'Row out of range'}
        del rows[hits[index]]
        self._save(path, wb, ws, extras, rows)
        return {'success': True}

    def get_all_repairs(self) -> list:
        out = []
        for path in list_excel_files(self.repairs_dir):
            try:
                wb = load_workbook(path, data_only=True)
            except Exception as e:
                logger.warning('[repairs.get_all_repairs] skip unreadable file %s: %s', path, e)
                continue
            ws = next((s for s in wb.worksheets if s.title.lower() == SHEET_NAME.lower()), None)
            if ws is None:
                continue
            header = [cell_text(h) for h in next(ws.iter_rows(max_row=1, values_only=True), ())]
            company = company_for_file(path, self.repairs_dir)
            location = os.path.splitext(os.path.basename(path))[0]
            for values in ws.iter_rows(min_row=2, max_col=max(len(header), 1), values_only=True):
                texts = [cell_text(v) for v in values]
                if not any(texts):
                    continue
                row = {h: t for h, t in zip(header, texts) if h}
                row.update({'company': company, 'location': location})
                out.append(row)
        return out

# assetmap/lookups_manager.py
# Manages lookups.xlsx: ensures the canonical sheets exist, reads the full snapshot used for caches, and upserts lookup rows.

import logging
import os
import random
import shutil

import pandas as pd
from openpyxl import load_workbook
from openpyxl.styles import Font

from .exceptions import MissingSheetError
from .header_model import cell_text

logger = logging.getLogger(__name__)

# ─── Canonical sheets ───────────────────────────────────────────────────────
LOOKUP_SHEETS = {
    'Companies':            ['company', 'active'],
    'Locations':            ['location', 'company', 'link'],
    'AssetTypes':           ['asset_type', 'location', 'company', 'color', 'link'],
    'Custom Weights':       ['weight', 'active'],
    'Workplan Constants':   ['Field', 'Value'],
    'Algorithm Parameters': ['Applies To', 'Parameter', 'Condition', 'MaxWeight',
                             'Option', 'Weight', 'Selected'],
    'Workplan Details':     ['Parameter', 'Value'],
    'Status Colors':        ['Status', 'Color'],
    'Settings':             ['Key', 'Value'],
    'Inspection Keywords':  ['Keyword'],
}

SEED_ROWS = {
    'Workplan Constants': [['Yearly Budget', None], ['O&M Current Split', None]],
    'Status Colors': [
        ['Inactive', '#8e8e8e'],
        ['Mothballed', '#a87ecb'],
        ['Unknown', '#999999'],
    ],
    'Settings': [
        ['applyStatusColorsOnMap', 'FALSE'],
        ['applyRepairColorsOnMap', 'FALSE'],
    ],
    'Inspection Keywords': [['inspection']],
}

# legacy AssetTypes rows stored company scope as "<COMPANY>@@<LOCATION>"
LEGACY_SCOPE_SEP = '@@'


# ─── Helpers ────────────────────────────────────────────────────────────────
def _get_random_color() -> str:
    """Return a random hex colour string, e.g. '#3fa4c2'."""
    return '#{:06x}'.format(random.randint(0, 0xFFFFFF))


def _norm(v) -> str:
    return cell_text(v)


def _lc(v) -> str:
    return _norm(v).lower()


def _to_bool(v) -> bool:
    return _lc(v) in ('true', '1', 'yes', 'y', 't')


def _uniq_sorted(values) -> list:
    seen = {}
    for v in values:
        v = _norm(v)
        if v and v.lower() not in seen:
            seen[v.lower()] = v
    return sorted(seen.values(), key=str.lower)


def get_sheet(wb, name: str):
    """Exact sheet name first, then a case-insensitive match."""
    if name in wb.sheetnames:
        return wb[name]
    for ws in wb.worksheets:
        if ws.title.lower() == name.lower():
            return ws
    return None


def _get_ci(mapping: dict, key: str):
    if not mapping or not key:
        return None
    if key in mapping:
        return mapping[key]
    low = key.strip().lower()
    for k, v in mapping.items():
        if str(k).strip().lower() == low:
            return v
    return None


def resolve_asset_type_color(snapshot: dict, company: str, location: str, asset_type: str):
    """(company, location, type) → (location, type) → (type) global."""
    by_co = _get_ci(_get_ci(snapshot.get('colorsByCompanyLocation') or {}, company) or {}, location)
    color = _get_ci(by_co or {}, asset_type)
    if color:
        return color
    color = _get_ci(_get_ci(snapshot.get('colorsByLocation') or {}, location) or {}, asset_type)
    if color:
        return color
    return _get_ci(snapshot.get('colorsGlobal') or {}, asset_type)


def resolve_photos_base(snapshot: dict, company: str, location: str, asset_type: str = None):
    """Asset-type link for (company, location) first, then the location link."""
    if company and location and asset_type:
        links = _get_ci(_get_ci(snapshot.get('assetTypeLinks') or {}, company) or {}, location)
        link = _get_ci(links or {}, asset_type)
        if link:
            return link
    if company and location:
        link = _get_ci(_get_ci(snapshot.get('locationLinks') or {}, company) or {}, location)
        if link:
            return link
    return None


def header_columns(ws, headers: list) -> dict:
    """
    Map lower-cased header → 1-based column, appending any header the sheet
    is missing (older workbooks predate the company/link columns).
    """
    index = {}
    for c, v in enumerate(next(ws.iter_rows(min_row=1, max_row=1, values_only=True), ()), start=1):
        key = _lc(v)
        if key and key not in index:
            index[key] = c
    next_col = max(index.values(), default=0) + 1
    for h in headers:
        if h.lower() not in index:
            ws.cell(row=1, column=next_col, value=h)
            index[h.lower()] = next_col
            next_col += 1
    return index


def data_rows(ws):
    """Yield row numbers (2+) of rows holding anything."""
    for r_idx, values in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
        if any(_norm(v) for v in values):
            yield r_idx


class LookupStore:
    def __init__(self, path: str, seed_path: str = None, progress=None):
        self.path = path
        self.seed_path = seed_path
        self._progress = progress or (lambda stage, pct, msg: None)

    # ─── Ensure workbook exists with canonical sheets ────────────────────────
    def ensure_ready(self) -> dict:
        """
        Idempotent and incremental: add whichever canonical sheets are missing,
        never touching one that already exists.
        """
        self._progress('ensure', 40, 'Ensuring data folders…')
        os.makedirs(os.path.dirname(self.path) or '.', exist_ok=True)

        if not os.path.exists(self.path):
            if self.seed_path and os.path.exists(self.seed_path):
                self._progress('ensure', 45, 'Copying seed workbook…')
                shutil.copyfile(self.seed_path, self.path)
                self._progress('ensure', 55, 'Seed workbook copied')
                logger.info('[lookups.ensure_ready] seeded %s from template', self.path)
                return {'success': True, 'created': True, 'seeded': True}

            self._progress('ensure', 55, 'Creating workbook…')
            with pd.ExcelWriter(self.path, engine='openpyxl') as writer:
                for name, headers in LOOKUP_SHEETS.items():
                    pd.DataFrame(SEED_ROWS.get(name, []), columns=headers) \
                      .to_excel(writer, sheet_name=name, index=False)
            self._progress('ensure', 80, 'Workbook ready')
            logger.info('[lookups.ensure_ready] created %s', self.path)
            return {'success': True, 'created': True, 'seeded': False}

        self._progress('ensure', 55, 'Opening lookups.xlsx…')
        wb = load_workbook(self.path)
        missing = [name for name in LOOKUP_SHEETS if name not in wb.sheetnames]
        for name in missing:
            ws = wb.create_sheet(name)
            ws.append(LOOKUP_SHEETS[name])
            for cell in ws[1]:
                cell.font = Font(bold=True)
            for row in SEED_ROWS.get(name, []):
                ws.append(row)
        if missing:
            self._progress('ensure', 75, 'Writing workbook changes…')
            wb.save(self.path)
            logger.info('[lookups.ensure_ready] added sheets %s', missing)
        self._progress('ensure', 80, 'Workbook ready')
        return {'success': True, 'created': False, 'added_sheets': missing}

    def _open(self):
        self.ensure_ready()
        return load_workbook(self.path)

    def _sheet(self, wb, name: str):
        ws = get_sheet(wb, name)
        if ws is None:
            raise MissingSheetError(name, self.path)
        return ws

    # ─── Read snapshot for caches ────────────────────────────────────────────
    def get_snapshot(self) -> dict:
        self.ensure_ready()
        self._progress('snapshot', 82, 'Reading lookups snapshot…')
        mtime = os.path.getmtime(self.path)
        wb = load_workbook(self.path, data_only=True)
        self._progress('snapshot', 88, 'Parsing sheets…')

        colors_global, colors_by_loc, colors_by_co_loc = {}, {}, {}
        assets_by_loc, assets_by_co_loc = {}, {}
        asset_links = {}
        ws = self._sheet(wb, 'AssetTypes')
        cols = header_columns(ws, LOOKUP_SHEETS['AssetTypes'])
        for r in data_rows(ws):
            at = _norm(ws.cell(row=r, column=cols['asset_type']).value)
            loc = _norm(ws.cell(row=r, column=cols['location']).value)
            comp = _norm(ws.cell(row=r, column=cols['company']).value)
            color = _norm(ws.cell(row=r, column=cols['color']).value)
            link = _norm(ws.cell(row=r, column=cols['link']).value)
            if not at:
                continue
            if LEGACY_SCOPE_SEP in loc:
                legacy_co, legacy_loc = (s.strip() for s in loc.split(LEGACY_SCOPE_SEP, 1))
                if legacy_co and legacy_loc:
                    comp, loc = legacy_co, legacy_loc
            if color:
                if comp and loc:
                    colors_by_co_loc.setdefault(comp, {}).setdefault(loc, {}).setdefault(at, color)
                elif loc:
                    colors_by_loc.setdefault(loc, {}).setdefault(at, color)
                elif not comp:
                    colors_global.setdefault(at, color)
            if loc:
                assets_by_loc.setdefault(loc, set()).add(at)
                if comp:
                    assets_by_co_loc.setdefault(comp, {}).setdefault(loc, set()).add(at)
            if link and comp and loc:
                asset_links.setdefault(comp, {}).setdefault(loc, {}).setdefault(at, link)

        companies = []
        ws = self._sheet(wb, 'Companies')
        cols = header_columns(ws, LOOKUP_SHEETS['Companies'])
        for r in data_rows(ws):
            name = _norm(ws.cell(row=r, column=cols['company']).value)
            if name and _to_bool(ws.cell(row=r, column=cols['active']).value):
                companies.append(name)

        locs_by_company, location_links = {}, {}
        ws = self._sheet(wb, 'Locations')
        cols = header_columns(ws, LOOKUP_SHEETS['Locations'])
        for r in data_rows(ws):
            loc = _norm(ws.cell(row=r, column=cols['location']).value)
            comp = _norm(ws.cell(row=r, column=cols['company']).value)
            link = _norm(ws.cell(row=r, column=cols['link']).value)
            if not loc or not comp:
                continue
            locs_by_company.setdefault(comp, set()).add(loc)
            if link:
                location_links.setdefault(comp, {}).setdefault(loc, link)

        status_colors = {}
        ws = self._sheet(wb, 'Status Colors')
        cols = header_columns(ws, LOOKUP_SHEETS['Status Colors'])
        for r in data_rows(ws):
            status = _lc(ws.cell(row=r, column=cols['status']).value)
            color = _norm(ws.cell(row=r, column=cols['color']).value)
            if status and color:
                status_colors.setdefault(status, color)

        settings = {}
        ws = self._sheet(wb, 'Settings')
        cols = header_columns(ws, LOOKUP_SHEETS['Settings'])
        for r in data_rows(ws):
            key = _norm(ws.cell(row=r, column=cols['key']).value)
            if key:
                settings.setdefault(key.lower(), ws.cell(row=r, column=cols['value']).value)

        keywords = []
        ws = get_sheet(wb, 'Inspection Keywords')
        if ws is not None:
            for (kw,) in ws.iter_rows(min_row=2, max_col=1, values_only=True):
                if _norm(kw):
                    keywords.append(_norm(kw))

        self._progress('done', 100, 'Excel ready')
        return {
            'mtime': mtime,
            'colorsGlobal': colors_global,
            'colorsByLocation': colors_by_loc,
            'colorsByCompanyLocation': colors_by_co_loc,
            'companies': _uniq_sorted(companies),
            'locationsByCompany': {k: _uniq_sorted(v) for k, v in locs_by_company.items()},
            'assetsByLocation': {k: _uniq_sorted(v) for k, v in assets_by_loc.items()},
            'assetsByCompanyLocation': {
                co: {loc: _uniq_sorted(v) for loc, v in locs.items()}
                for co, locs in assets_by_co_loc.items()
            },
            'locationLinks': location_links,
            'assetTypeLinks': asset_links,
            'statusColors': status_colors,
            'applyStatusColorsOnMap': _to_bool(settings.get('applystatuscolorsonmap')),
            'applyRepairColorsOnMap': _to_bool(settings.get('applyrepaircolorsonmap')),
            'inspectionKeywords': keywords or ['inspection'],
        }

    # ─── Companies / Locations / Asset types ────────────────────────────────
    def upsert_company(self, name: str, active: bool = True) -> dict:
        wb = self._open()
        ws = self._sheet(wb, 'Companies')
        cols = header_columns(ws, LOOKUP_SHEETS['Companies'])
        flag = 'TRUE' if active else ''
        tgt = _lc(name)
        if not tgt:
            return {'success': False, 'message': 'Company name is required.'}
        found = False
        for r in data_rows(ws):
            if _lc(ws.cell(row=r, column=cols['company']).value) == tgt:
                ws.cell(row=r, column=cols['active'], value=flag)
                found = True
        if not found:
            self._append(ws, cols, company=_norm(name), active=flag)
        wb.save(self.path)
        return {'success': True, 'added': not found}

    def upsert_location(self, location: str, company: str) -> dict:
        wb = self._open()
        ws = self._sheet(wb, 'Locations')
        cols = header_columns(ws, LOOKUP_SHEETS['Locations'])
        tgt_loc, tgt_co = _lc(location), _lc(company)
        if not tgt_loc:
            return {'success': False, 'message': 'Location name is required.'}
        for r in data_rows(ws):
            if _lc(ws.cell(row=r, column=cols['location']).value) == tgt_loc \
               and _lc(ws.cell(row=r, column=cols['company']).value) == tgt_co:
                return {'success': True, 'added': False}
        self._append(ws, cols, location=_norm(location), company=_norm(company))
        wb.save(self.path)
        return {'success': True, 'added': True}

    def company_for_location(self, location: str, wb=None) -> str:
        wb = wb or self._open()
        ws = self._sheet(wb, 'Locations')
        cols = header_columns(ws, LOOKUP_SHEETS['Locations'])
        tgt = _lc(location)
        for r in data_rows(ws):
            if _lc(ws.cell(row=r, column=cols['location']).value) == tgt:
                return _norm(ws.cell(row=r, column=cols['company']).value)
        return ''

    def upsert_asset_type(self, asset_type: str, location: str, company: str = None) -> dict:
        """
        Match on (asset_type, location, company). Reuse a blank-location
        placeholder row before appending a new row with a random colour.
        """
        wb = self._open()
        ws = self._sheet(wb, 'AssetTypes')
        cols = header_columns(ws, LOOKUP_SHEETS['AssetTypes'])
        name = _norm(asset_type)
        if not name:
            return {'success': False, 'message': 'Invalid asset type.'}
        loc = _norm(location)
        comp = _norm(company) if company is not None else self.company_for_location(loc, wb)

        blank = None
        for r in data_rows(ws):
            if _lc(ws.cell(row=r, column=cols['asset_type']).value) != name.lower():
                continue
            row_loc = _norm(ws.cell(row=r, column=cols['location']).value)
            row_co = _norm(ws.cell(row=r, column=cols['company']).value)
            if row_loc.lower() == loc.lower() and row_co.lower() == comp.lower():
                return {'success': True, 'added': False,
                        'color': _norm(ws.cell(row=r, column=cols['color']).value)}
            if not row_loc and blank is None:
                blank = r

        if blank is not None:
            ws.cell(row=blank, column=cols['location'], value=loc or None)
            ws.cell(row=blank, column=cols['company'], value=comp or None)
            color = _norm(ws.cell(row=blank, column=cols['color']).value)
            if not color:
                color = _get_random_color()
                ws.cell(row=blank, column=cols['color'], value=color)
        else:
            color = _get_random_color()
            self._append(ws, cols, asset_type=name, location=loc, company=comp, color=color)
        wb.save(self.path)
        return {'success': True, 'added': True, 'color': color}

    # ─── Colours ─────────────────────────────────────────────────────────────
    def set_asset_type_color(self, asset_type: str, color: str) -> dict:
        """Global colours are no longer written; kept so old callers fail loudly."""
        logger.warning('[lookups.set_asset_type_color] disabled; ignored %r', asset_type)
        return {'success': False, 'disabled': True,
                'message': 'Global asset type colours are disabled; '
                           'use set_asset_type_color_for_company_location.'}

    def set_asset_type_color_for_location(self, asset_type: str, location: str, color: str) -> dict:
        logger.warning('[lookups.set_asset_type_color_for_location] disabled; ignored %r@%r',
                       asset_type, location)
        return {'success': False, 'disabled': True,
                'message': 'Location-level asset type colours are disabled; '
                           'use set_asset_type_color_for_company_location.'}

    def set_asset_type_color_for_company_location(self, asset_type: str, company: str,
                                                  location: str, color: str) -> dict:
        if not _norm(asset_type) or not _norm(company) or not _norm(location):
            return {'success': False, 'message': 'Asset type, company and location are required.'}
        wb = self._open()
        ws = self._sheet(wb, 'AssetTypes')
        cols = header_columns(ws, LOOKUP_SHEETS['AssetTypes'])
        r = self._find_asset_row(ws, cols, asset_type, company, location)
        if r is None:
            self._append(ws, cols, asset_type=_norm(asset_type), location=_norm(location),
                         company=_norm(company), color=_norm(color))
        else:
            ws.cell(row=r, column=cols['color'], value=_norm(color))
        wb.save(self.path)
        return {'success': True}

    # ─── Links ───────────────────────────────────────────────────────────────
    def set_location_link(self, company: str, location: str, link: str) -> dict:
        wb = self._open()
        ws = self._sheet(wb, 'Locations')
        cols = header_columns(ws, LOOKUP_SHEETS['Locations'])
        updated = False
        for r in data_rows(ws):
            if _lc(ws.cell(row=r, column=cols['location']).value) == _lc(location) \
               and _lc(ws.cell(row=r, column=cols['company']).value) == _lc(company):
                ws.cell(row=r, column=cols['link'], value=_norm(link) or None)
                updated = True
        if not updated:
            self._append(ws, cols, location=_norm(location), company=_norm(company), link=_norm(link))
        wb.save(self.path)
        return {'success': True}

    def set_asset_type_link(self, asset_type: str, company: str, location: str, link: str) -> dict:
        wb = self._open()
        ws = self._sheet(wb, 'AssetTypes')
        cols = header_columns(ws, LOOKUP_SHEETS['AssetTypes'])
        r = self._find_asset_row(ws, cols, asset_type, company, location)
        if r is None:
            self._append(ws, cols, asset_type=_norm(asset_type), location=_norm(location),
                         company=_norm(company), link=_norm(link))
        else:
            ws.cell(row=r, column=cols['link'], value=_norm(link) or None)
        wb.save(self.path)
        return {'success': True}

    # ─── Status colours / settings / keywords ───────────────────────────────
    def set_status_color(self, status: str, color: str) -> dict:
        if not _norm(status):
            return {'success': False, 'message': 'Status is required.'}
        wb = self._open()
        ws = self._sheet(wb, 'Status Colors')
        cols = header_columns(ws, LOOKUP_SHEETS['Status Colors'])
        for r in data_rows(ws):
            if _lc(ws.cell(row=r, column=cols['status']).value) == _lc(status):
                ws.cell(row=r, column=cols['color'], value=_norm(color))
                break
        else:
            self._append(ws, cols, status=_norm(status), color=_norm(color))
        wb.save(self.path)
        return {'success': True}

    def delete_status_row(self, status: str) -> dict:
        wb = self._open()
        ws = self._sheet(wb, 'Status Colors')
        cols = header_columns(ws, LOOKUP_SHEETS['Status Colors'])
        matches = [r for r in data_rows(ws)
                   if _lc(ws.cell(row=r, column=cols['status']).value) == _lc(status)]
        # bottom-up so row numbers stay valid
        for r in reversed(matches):
            ws.delete_rows(r)
        if matches:
            wb.save(self.path)
        return {'success': True, 'deleted': len(matches)}

    def set_setting_boolean(self, key: str, flag: bool) -> dict:
        wb = self._open()
        ws = self._sheet(wb, 'Settings')
        cols = header_columns(ws, LOOKUP_SHEETS['Settings'])
        value = 'TRUE' if flag else 'FALSE'
        for r in data_rows(ws):
            if _lc(ws.cell(row=r, column=cols['key']).value) == _lc(key):
                ws.cell(row=r, column=cols['value'], value=value)
                break
        else:
            self._append(ws, cols, key=_norm(key), value=value)
        wb.save(self.path)
        return {'success': True}

    def set_inspection_keywords(self, keywords: list) -> dict:
        wb = self._open()
        name = 'Inspection Keywords'
        ws = get_sheet(wb, name)
        if ws is not None:
            wb.remove(ws)
        ws = wb.create_sheet(name)
        ws.append(LOOKUP_SHEETS[name])
        ws['A1'].font = Font(bold=True)
        kept = _uniq_sorted(keywords or [])
        for kw in kept:
            ws.append([kw])
        wb.save(self.path)
        return {'success': True, 'keywords': kept}

    # ─── Internals ──────────────────────────────────────────────────────────
    @staticmethod
    def _append(ws, cols: dict, **values):
        r = ws.max_row + 1
        for key, value in values.items():
            ws.cell(row=r, column=cols[key], value=value if value != '' else None)

    @staticmethod
    def _find_asset_row(ws, cols, asset_type, company, location):
        for r in data_rows(ws):
            if _lc(ws.cell(row=r, column=cols['asset_type']).value) == _lc(asset_type) \
               and _lc(ws.cell(row=r, column=cols['location']).value) == _lc(location) \
               and _lc(ws.cell(row=r, column=cols['company']).value) == _lc(company):
                return r
        return None

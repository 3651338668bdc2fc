# assetmap/header_model.py
# Canonicalizes a worksheet's header row(s) into an ordered list of (section, field) pairs.

from collections import namedtuple
from datetime import date, datetime

SEP = ' – '
GENERAL_INFO = 'General Information'

STATION_ID_FIELDS = {'station id', 'stationid', 'id'}
NAME_FIELDS = {'site name', 'station name', 'name'}
CATEGORY_ALIASES = {'asset type', 'type', 'category'}
# never coerced into Category, even though it ends in "Type"
CATEGORY_EXEMPT = {'structure type'}

# standard station fields kept verbatim by schema synchronization
STANDARD_FIELDS = STATION_ID_FIELDS | NAME_FIELDS | {
    'category', 'asset type', 'province', 'latitude', 'longitude', 'status',
}

# header written for a brand-new asset-type sheet
STANDARD_HEADER = [
    'Station ID', 'Category', 'Site Name',
    'Province', 'Latitude', 'Longitude', 'Status',
]


class HeaderPair(namedtuple('HeaderPair', ['section', 'field'])):
    __slots__ = ()

    @property
    def composite(self) -> str:
        return composite_key(self.section, self.field)

    @property
    def is_blank(self) -> bool:
        return not self.section and not self.field

    def key(self) -> str:
        """Case-insensitive identity used for de-duplication."""
        return self.composite.lower()


def composite_key(section: str, field: str) -> str:
    return f"{section}{SEP}{field}" if section else field


def split_composite(key: str) -> HeaderPair:
    """'Sec – Fld' → ('Sec', 'Fld'); anything else → ('', key)."""
    key = str(key or '').strip()
    if SEP in key:
        section, field = key.split(SEP, 1)
        return HeaderPair(section.strip(), field.strip())
    return HeaderPair('', key)


def is_general_info(section: str) -> bool:
    return str(section or '').strip().lower() == GENERAL_INFO.lower()


def is_station_id_field(field: str) -> bool:
    return str(field or '').strip().lower() in STATION_ID_FIELDS


def is_standard_field(field: str) -> bool:
    return str(field or '').strip().lower() in STANDARD_FIELDS


def normalize_pair(section: str, field: str) -> HeaderPair:
    """
    Coerce any "Asset Type" / "Type" / "Category" field into
    General Information – Category. "Structure Type" is left alone.
    """
    section = str(section or '').strip()
    field = str(field or '').strip()
    low = field.lower()
    if low in CATEGORY_EXEMPT:
        return HeaderPair(section, field)
    if low in CATEGORY_ALIASES:
        return HeaderPair(GENERAL_INFO, 'Category')
    return HeaderPair(section, field)


def cell_text(value) -> str:
    """Render a raw openpyxl cell value the way it reads on screen."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, datetime):
        if (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=' ')
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def row_texts(ws, row_idx: int, max_col: int = None) -> list:
    max_col = max_col or ws.max_column or 0
    if max_col < 1:
        return []
    for row in ws.iter_rows(min_row=row_idx, max_row=row_idx, max_col=max_col, values_only=True):
        return [cell_text(v) for v in row]
    return []


def detect_two_row(ws) -> bool:
    """Two-row mode when physical row 2 has any populated cell."""
    if (ws.max_row or 0) < 2:
        return False
    return any(row_texts(ws, 2))


def read_header(ws, two_row: bool = None) -> list:
    """
    Return one HeaderPair per physical column (blank columns included so
    positions line up with the data cells).
    """
    if two_row is None:
        two_row = detect_two_row(ws)
    max_col = ws.max_column or 0
    if two_row:
        sections = row_texts(ws, 1, max_col)
        fields = row_texts(ws, 2, max_col)
        return [HeaderPair(s, f) for s, f in zip(sections, fields)]
    return [HeaderPair('', f) for f in row_texts(ws, 1, max_col)]


def union_pairs(existing: list, incoming: list) -> list:
    """Existing order first, unseen incoming pairs appended."""
    out = [p for p in existing]
    seen = {p.key() for p in existing if not p.is_blank}
    for p in incoming:
        if p.is_blank or p.key() in seen:
            continue
        out.append(p)
        seen.add(p.key())
    return out


def general_info_order(pairs: list) -> list:
    """
    Column order (indices into `pairs`) that puts Station ID, Category and
    Site/Station Name contiguously at the first General Information position.
    Every other column, GI or not, keeps its relative order.
    """
    gi = [i for i, p in enumerate(pairs) if is_general_info(p.section)]
    if not gi:
        return list(range(len(pairs)))

    def first(names):
        for i in gi:
            if pairs[i].field.strip().lower() in names:
                return i
        return None

    lead = []
    for names in (STATION_ID_FIELDS, {'category'}, NAME_FIELDS):
        idx = first(names)
        if idx is not None and idx not in lead:
            lead.append(idx)

    order = []
    for i in range(len(pairs)):
        if i == gi[0]:
            order.extend(lead)
        if i not in lead:
            order.append(i)
    return order

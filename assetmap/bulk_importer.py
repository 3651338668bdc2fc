# assetmap/bulk_importer.py
# Decodes base64-encoded uploaded workbooks and turns their sheets into row dicts for the import dialogs.

import base64
import binascii
import io

import openpyxl

from .lookups_manager import get_sheet
from .record_codec import decode_sheet, sheet_to_objects_one_row


def _load(base64_data: str):
    """
    Decode a base64‑encoded Excel buffer. A 'data:...;base64,' prefix, as
    produced by FileReader.readAsDataURL, is tolerated.
    """
    data = str(base64_data or '')
    if data.startswith('data:') and ',' in data:
        data = data.split(',', 1)[1]
    try:
        raw = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f'Upload is not valid base64: {e}') from e
    return openpyxl.load_workbook(io.BytesIO(raw), data_only=True)


def list_sheets(base64_data: str) -> dict:
    wb = _load(base64_data)
    return {'success': True, 'sheets': wb.sheetnames}


def parse_rows(base64_data: str) -> dict:
    """First sheet, row 1 as plain headers."""
    wb = _load(base64_data)
    if not wb.worksheets:
        return {'success': False, 'message': 'No sheets found.', 'rows': []}
    ws = wb.worksheets[0]
    rows = sheet_to_objects_one_row(ws)
    headers = [h for h in next(ws.iter_rows(max_row=1, values_only=True), ()) if h is not None]
    return {'success': True, 'sheet': ws.title, 'headers': [str(h).strip() for h in headers], 'rows': rows}


def parse_rows_from_sheet(base64_data: str, sheet_name: str) -> dict:
    """Named sheet, one-row or two-row header detected automatically."""
    wb = _load(base64_data)
    ws = get_sheet(wb, sheet_name)
    if ws is None:
        return {'success': False, 'message': f"Sheet '{sheet_name}' not found.", 'rows': []}
    decoded = decode_sheet(ws)
    return {
        'success':  True,
        'sheet':    ws.title,
        'two_row':  decoded['two_row'],
        'sections': decoded['sections'],
        'fields':   decoded['fields'],
        'rows':     decoded['rows'],
    }

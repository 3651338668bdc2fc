# assetmap/auth_store.py
# Stores user accounts in Login_Information.xlsx (sheet "Users"); passwords arrive already hashed.

import hashlib
import logging
import os
from datetime import datetime

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

from .exceptions import MissingSheetError
from .header_model import cell_text
from .lookups_manager import data_rows, get_sheet, header_columns

logger = logging.getLogger(__name__)

SHEET_NAME = 'Users'
USERS_HEADER = ['name', 'email', 'password', 'admin', 'permissions', 'status', 'created', 'lastLogin']


def hash_password(password: str) -> str:
    return hashlib.sha256(str(password or '').encode('utf-8')).hexdigest()


def _now() -> str:
    return datetime.now().isoformat(timespec='seconds')


class AuthStore:
    def __init__(self, path: str):
        self.path = path

    def ensure_ready(self) -> dict:
        if os.path.exists(self.path):
            return {'exists': True}
        os.makedirs(os.path.dirname(self.path) or '.', exist_ok=True)
        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_NAME
        ws.append(USERS_HEADER)
        for cell in ws[1]:
            cell.font = Font(bold=True)
        wb.save(self.path)
        logger.info('[auth_store.ensure_ready] created %s', self.path)
        return {'exists': False}

    def _open(self):
        self.ensure_ready()
        wb = load_workbook(self.path)
        ws = get_sheet(wb, SHEET_NAME)
        if ws is None:
            raise MissingSheetError(SHEET_NAME, self.path)
        return wb, ws, header_columns(ws, USERS_HEADER)

    @staticmethod
    def _user(ws, cols, r) -> dict:
        """Row → public user dict (no password)."""
        return {
            h: cell_text(ws.cell(row=r, column=cols[h.lower()]).value)
            for h in USERS_HEADER if h != 'password'
        }

    def _find(self, ws, cols, name: str):
        tgt = str(name or '').strip().lower()
        for r in data_rows(ws):
            if cell_text(ws.cell(row=r, column=cols['name']).value).lower() == tgt \
               or cell_text(ws.cell(row=r, column=cols['email']).value).lower() == tgt:
                return r
        return None

    def create_user(self, user: dict) -> dict:
        name = cell_text(user.get('name'))
        email = cell_text(user.get('email')).lower()
        if not name or not email:
            return {'success': False, 'message': 'Name and email are required.'}
        wb, ws, cols = self._open()
        if self._find(ws, cols, name) is not None or self._find(ws, cols, email) is not None:
            return {'success': False, 'message': 'A user with that name or email already exists.'}

        values = {
            'name':        name,
            'email':       email,
            'password':    cell_text(user.get('password')),
            'admin':       'Yes' if user.get('admin') in (True, 'Yes', 'yes', 'TRUE') else 'No',
            'permissions': cell_text(user.get('permissions')) or 'Read',
            'status':      'Inactive',
            'created':     _now(),
            'lastLogin':   '',
        }
        r = ws.max_row + 1
        for h, v in values.items():
            ws.cell(row=r, column=cols[h.lower()], value=v or None)
        wb.save(self.path)
        return {'success': True, 'user': self._user(ws, cols, r)}

    def login_user(self, name: str, hashed_password: str) -> dict:
        wb, ws, cols = self._open()
        r = self._find(ws, cols, name)
        if r is None or cell_text(ws.cell(row=r, column=cols['password']).value) != hashed_password:
            return {'success': False, 'message': 'Invalid name or password.'}
        ws.cell(row=r, column=cols['status'], value='Active')
        ws.cell(row=r, column=cols['lastlogin'], value=_now())
        wb.save(self.path)
        return {'success': True, 'user': self._user(ws, cols, r)}

    def logout_user(self, name: str) -> dict:
        wb, ws, cols = self._open()
        r = self._find(ws, cols, name)
        if r is not None:
            ws.cell(row=r, column=cols['status'], value='Inactive')
            wb.save(self.path)
        return {'success': True}

    def get_all_users(self) -> list:
        if not os.path.exists(self.path):
            return []
        _, ws, cols = self._open()
        return [self._user(ws, cols, r) for r in data_rows(ws)]

    def has_users(self) -> bool:
        return bool(self.get_all_users())

# assetmap/excel_worker.py
# Runs every spreadsheet operation on one dedicated thread; callers talk to it through id-correlated request/response messages.

import functools
import itertools
import logging
import os
import queue
import threading

from . import aggregator, bulk_importer, config, schema_sync
from .auth_store import AuthStore
from .exceptions import WorkerError
from .lookups_manager import LookupStore
from .repairs_manager import RepairStore
from .station_store import StationStore

logger = logging.getLogger(__name__)


class ExcelBackend:
    """
    Owns the file stores for one data root. Built once when the worker
    starts; every public method below is a worker command.
    """

    COMMANDS = frozenset([
        'ping',
        'ensure_lookups_ready', 'read_lookups_snapshot',
        'set_asset_type_color', 'set_asset_type_color_for_location',
        'set_asset_type_color_for_company_location',
        'set_location_link', 'set_asset_type_link',
        'set_status_color', 'delete_status_row', 'set_setting_boolean',
        'set_inspection_keywords',
        'upsert_company', 'upsert_location', 'upsert_asset_type',
        'append_repair', 'list_repairs_for_station', 'save_station_repairs',
        'delete_repair', 'get_all_repairs',
        'read_stations_aggregate', 'update_station_in_location_file',
        'update_asset_type_schema', 'get_existing_schema_for_asset_type',
        'sync_newly_imported_stations',
        'read_location_workbook', 'read_sheet_data', 'read_station', 'create_station',
        'write_location_rows',
        'list_sheets', 'parse_rows', 'parse_rows_from_sheet',
        'create_auth_user', 'login_auth_user', 'logout_auth_user',
        'get_all_auth_users', 'has_auth_users',
    ])

    def __init__(self, root: str = None, seed_path: str = None, progress=None):
        self.root = root or config.data_dir()
        self.lookups = LookupStore(
            config.lookups_path(self.root), seed_path or config.seed_path(), progress)
        self.stations = StationStore(config.locations_dir(self.root))
        self.repairs = RepairStore(config.repairs_dir(self.root))
        self.auth = AuthStore(config.auth_path(self.root))

    def dispatch(self, cmd: str, args=()):
        if cmd not in self.COMMANDS:
            raise ValueError(f'Unknown command: {cmd}')
        return getattr(self, cmd)(*(args or ()))

    def ping(self):
        return 'pong'

    # ─── Lookups ─────────────────────────────────────────────────────────────
    def ensure_lookups_ready(self):
        for d in (self.stations.locations_dir, self.repairs.repairs_dir):
            os.makedirs(d, exist_ok=True)
        return self.lookups.ensure_ready()

    def read_lookups_snapshot(self):
        return self.lookups.get_snapshot()

    def set_asset_type_color(self, asset_type, color):
        return self.lookups.set_asset_type_color(asset_type, color)

    def set_asset_type_color_for_location(self, asset_type, location, color):
        return self.lookups.set_asset_type_color_for_location(asset_type, location, color)

    def set_asset_type_color_for_company_location(self, asset_type, company, location, color):
        return self.lookups.set_asset_type_color_for_company_location(asset_type, company, location, color)

    def set_location_link(self, company, location, link):
        return self.lookups.set_location_link(company, location, link)

    def set_asset_type_link(self, asset_type, company, location, link):
        return self.lookups.set_asset_type_link(asset_type, company, location, link)

    def set_status_color(self, status, color):
        return self.lookups.set_status_color(status, color)

    def delete_status_row(self, status):
        return self.lookups.delete_status_row(status)

    def set_setting_boolean(self, key, flag):
        return self.lookups.set_setting_boolean(key, flag)

    def set_inspection_keywords(self, keywords):
        return self.lookups.set_inspection_keywords(keywords)

    def upsert_company(self, name, active=True):
        return self.lookups.upsert_company(name, active)

    def upsert_location(self, location, company):
        res = self.lookups.upsert_location(location, company)
        if res.get('success') and str(company or '').strip():
            self.stations.ensure_workbook(company, location)
        return res

    def upsert_asset_type(self, asset_type, location, company=None):
        return self.lookups.upsert_asset_type(asset_type, location, company)

    # ─── Repairs ─────────────────────────────────────────────────────────────
    def append_repair(self, company, location, repair, asset_type=None):
        return self.repairs.append_repair(company, location, repair, asset_type)

    def list_repairs_for_station(self, company, location, station_id):
        return self.repairs.list_repairs_for_station(company, location, station_id)

    def save_station_repairs(self, company, location, station_id, repairs):
        return self.repairs.save_station_repairs(company, location, station_id, repairs)

    def delete_repair(self, company, location, station_id, index):
        return self.repairs.delete_repair(company, location, station_id, index)

    def get_all_repairs(self):
        return self.repairs.get_all_repairs()

    # ─── Stations ────────────────────────────────────────────────────────────
    def read_stations_aggregate(self):
        self.ensure_lookups_ready()
        return aggregator.aggregate_stations(self.stations.locations_dir)

    def update_station_in_location_file(self, company, location, station_id, updated_fields, schema=None):
        return self.stations.update_station(company, location, station_id, updated_fields, schema)

    def update_asset_type_schema(self, asset_type, schema, exclude_station_id=None):
        return schema_sync.synchronize_asset_type_schema(
            self.stations.locations_dir, asset_type, schema, exclude_station_id)

    def get_existing_schema_for_asset_type(self, asset_type, exclude_ids=()):
        return schema_sync.get_existing_schema_for_asset_type(
            self.stations.locations_dir, asset_type, exclude_ids)

    def sync_newly_imported_stations(self, asset_type, company, location, schema, imported_ids):
        return schema_sync.sync_newly_imported_stations(
            self.stations.locations_dir, asset_type, company, location, schema, imported_ids)

    def read_location_workbook(self, company, location):
        return self.stations.read_location_workbook(company, location)

    def read_sheet_data(self, company, location, sheet):
        return self.stations.read_sheet_data(company, location, sheet)

    def read_station(self, company, location, station_id):
        return self.stations.read_station(company, location, station_id)

    def create_station(self, company, location, asset_type, record):
        return self.stations.create_station(company, location, asset_type, record)

    def write_location_rows(self, company, location, sheet, sections, fields, rows):
        return self.stations.write_location_rows(company, location, sheet, sections, fields, rows)

    # ─── Uploads ─────────────────────────────────────────────────────────────
    def list_sheets(self, b64):
        return bulk_importer.list_sheets(b64)

    def parse_rows(self, b64):
        return bulk_importer.parse_rows(b64)

    def parse_rows_from_sheet(self, b64, sheet):
        return bulk_importer.parse_rows_from_sheet(b64, sheet)

    # ─── Auth ────────────────────────────────────────────────────────────────
    def create_auth_user(self, user):
        return self.auth.create_user(user)

    def login_auth_user(self, name, hashed_password):
        return self.auth.login_user(name, hashed_password)

    def logout_auth_user(self, name):
        return self.auth.logout_user(name)

    def get_all_auth_users(self):
        return {'users': self.auth.get_all_users()}

    def has_auth_users(self):
        return {'hasUsers': self.auth.has_users()}


class ExcelWorker(threading.Thread):
    """
    Sequential message loop. Requests are {id, cmd, args}; replies are
    {id, ok, result} or {id, ok: False, error}. Progress messages carry
    no id. A None request stops the loop.
    """

    def __init__(self, requests: queue.Queue, replies: queue.Queue,
                 backend_factory=ExcelBackend, root: str = None):
        super().__init__(name='excel-worker', daemon=True)
        self.requests = requests
        self.replies = replies
        self.backend_factory = backend_factory
        self.root = root

    def progress(self, stage: str, pct: int, msg: str):
        self.replies.put({'type': 'progress', 'stage': stage, 'pct': pct, 'msg': msg})

    def run(self):
        self.progress('boot', 5, 'Starting Excel worker…')
        backend = self.backend_factory(root=self.root, progress=self.progress)
        self.progress('boot', 30, 'Excel worker ready')

        while True:
            msg = self.requests.get()
            if msg is None:
                break
            req_id, cmd = msg.get('id'), msg.get('cmd')
            try:
                result = backend.dispatch(cmd, msg.get('args') or ())
            except Exception as e:
                logger.exception('[excel_worker.run] %s failed', cmd)
                self.replies.put({'id': req_id, 'ok': False, 'error': str(e) or type(e).__name__})
            else:
                self.replies.put({'id': req_id, 'ok': True, 'result': result})


class ExcelWorkerClient:
    """
    Caller side of the worker. Each call gets the next id, blocks for the
    matching reply and raises WorkerError when the worker reports failure.
    A dead worker is restarted on the next call.
    """

    def __init__(self, root: str = None, backend_factory=ExcelBackend, poll: float = 0.25):
        self.root = root
        self.backend_factory = backend_factory
        self.poll = poll
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self._listeners = []
        self._worker = None

    def on_progress(self, listener):
        self._listeners.append(listener)

    def _ensure_worker(self):
        if self._worker is not None and self._worker.is_alive():
            return
        if self._worker is not None:
            logger.warning('[excel_worker_client] worker exited; restarting')
        self._requests, self._replies = queue.Queue(), queue.Queue()
        self._worker = ExcelWorker(self._requests, self._replies, self.backend_factory, self.root)
        self._worker.start()

    def _emit(self, msg: dict):
        for listener in list(self._listeners):
            try:
                listener(msg)
            except Exception as e:
                logger.warning('[excel_worker_client] progress listener failed: %s', e)

    def call(self, cmd: str, *args):
        with self._lock:
            self._ensure_worker()
            req_id = next(self._seq)
            self._requests.put({'id': req_id, 'cmd': cmd, 'args': list(args)})
            while True:
                try:
                    msg = self._replies.get(timeout=self.poll)
                except queue.Empty:
                    if not self._worker.is_alive():
                        raise WorkerError(f'Excel worker exited during {cmd}')
                    continue
                if msg.get('type') == 'progress':
                    self._emit(msg)
                    continue
                if msg.get('id') != req_id:
                    continue
                if not msg.get('ok'):
                    raise WorkerError(msg.get('error') or f'{cmd} failed')
                return msg.get('result')

    def close(self):
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                self._requests.put(None)
                self._worker.join(timeout=5)
            self._worker = None

    def __getattr__(self, name):
        if name in ExcelBackend.COMMANDS:
            return functools.partial(self.call, name)
        raise AttributeError(name)

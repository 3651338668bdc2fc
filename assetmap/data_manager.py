# assetmap/data_manager.py
# Implements the façade that routes reads to one configured backend and writes to the Excel store first, mirroring to the database best-effort.

import logging

from .auth_store import hash_password
from .config import load_db_config
from .db_repo import DbAuthRepo, DbLookupRepo, DbRepairRepo, DbStationRepo, DocumentStore
from .excel_repo import ExcelAuthRepo, ExcelLookupRepo, ExcelRepairRepo, ExcelStationRepo

logger = logging.getLogger(__name__)

MIRROR_READ_SOURCES = ('database', 'mongodb')


def mirrored_write(primary, secondary=None, label: str = 'write'):
    """
    Run `primary` and return its result; its exceptions propagate. Then run
    `secondary(result)` if given, logging and discarding anything it raises.
    """
    result = primary()
    if secondary is not None:
        try:
            secondary(result)
        except Exception as e:
            logger.error('[data_manager.%s] mirror write failed (non-critical): %s', label, e)
    return result


class DualWriteRepository:
    """
    One entity's repository as callers see it. Verbs listed in READS go to
    a single backend; verbs in WRITES go to Excel, then to the mirror.
    """

    READS = ('get_all', 'get_by_id', 'find_one', 'find_many')
    WRITES = ('create', 'update', 'delete')

    def __init__(self, manager, excel_repo, mirror_cls, kind: str):
        self.manager = manager
        self.excel = excel_repo
        self.mirror_cls = mirror_cls
        self.kind = kind
        self._mirror = None

    def _mirror_repo(self):
        store = self.manager.mirror()
        if store is None:
            return None
        if self._mirror is None or self._mirror.db is not store:
            self._mirror = self.mirror_cls(store)
        return self._mirror

    def _reader(self):
        if self.manager.config.get('readFrom') in MIRROR_READ_SOURCES:
            repo = self._mirror_repo()
            if repo is not None:
                return repo
        return self.excel

    def mirror_args(self, name: str, result, args: tuple, kwargs: dict):
        """Arguments for the mirror's copy of a write, given the Excel result."""
        return args, kwargs

    def _write(self, name: str, *args, **kwargs):
        secondary = None
        if self.manager.config.get('writeTo') == 'both':
            repo = self._mirror_repo()
            if repo is not None:
                def secondary(result):
                    a, kw = self.mirror_args(name, result, args, kwargs)
                    return getattr(repo, name)(*a, **kw)
        return mirrored_write(
            lambda: getattr(self.excel, name)(*args, **kwargs),
            secondary,
            f'{self.kind}.{name}',
        )

    def __getattr__(self, name):
        if name in type(self).READS:
            return lambda *a, **kw: getattr(self._reader(), name)(*a, **kw)
        if name in type(self).WRITES:
            return lambda *a, **kw: self._write(name, *a, **kw)
        raise AttributeError(name)


class StationRepository(DualWriteRepository):
    WRITES = DualWriteRepository.WRITES + ('update_schema',)


class LookupRepository(DualWriteRepository):
    READS = DualWriteRepository.READS + (
        'get_active_companies', 'get_locations_for_company',
        'get_asset_types_for_company_location', 'get_color_maps', 'get_asset_type_color',
        'get_status_and_repair_settings', 'get_inspection_keywords', 'get_photos_base',
    )
    WRITES = DualWriteRepository.WRITES + (
        'upsert_company', 'upsert_location', 'upsert_asset_type', 'set_asset_type_color',
        'set_location_link', 'set_asset_type_link', 'set_status_color', 'delete_status_row',
        'set_setting_boolean', 'set_inspection_keywords',
    )

    def mirror_args(self, name, result, args, kwargs):
        # the workbook picks a colour for new asset types; the mirror keeps the same one
        if name != 'upsert_asset_type' or not isinstance(result, dict) or not result.get('color'):
            return args, kwargs
        kwargs = dict(kwargs)
        for i, key in ((3, 'color'), (4, 'link')):
            if len(args) > i:
                kwargs.setdefault(key, args[i])
        kwargs['color'] = result['color']
        return args[:3], kwargs


class AuthRepository(DualWriteRepository):
    READS = DualWriteRepository.READS + ('get_all_users', 'has_users')
    WRITES = DualWriteRepository.WRITES + ('logout_user',)

    def create_user(self, user: dict):
        user = dict(user or {}, password=hash_password((user or {}).get('password')))
        return self._write('create_user', user)

    def login_user(self, name: str, password: str):
        # login stamps status/lastLogin, so it is a write
        return self._write('login_user', name, hash_password(password))


class RepairRepository(DualWriteRepository):
    READS = DualWriteRepository.READS + ('list_repairs_for_station', 'get_all_repairs')
    WRITES = DualWriteRepository.WRITES + ('append_repair', 'save_station_repairs', 'delete_repair')


class DataManager:
    def __init__(self, backend, config_path: str = None, mirror_factory=None):
        """
        `backend` is the Excel command surface (ExcelBackend or the worker
        client). The mirror is opened lazily, once, on first use.
        """
        self.backend = backend
        self.config_path = config_path
        self.config = load_db_config(config_path)
        self.mirror_factory = mirror_factory or DocumentStore.from_config
        self._mirror = None
        self._mirror_tried = False

        self.stations = StationRepository(self, ExcelStationRepo(backend), DbStationRepo, 'stations')
        self.lookups = LookupRepository(self, ExcelLookupRepo(backend), DbLookupRepo, 'lookups')
        self.auth = AuthRepository(self, ExcelAuthRepo(backend), DbAuthRepo, 'auth')
        self.repairs = RepairRepository(self, ExcelRepairRepo(backend), DbRepairRepo, 'repairs')

    def reload_config(self) -> dict:
        self.config = load_db_config(self.config_path)
        return self.config

    def mirror(self):
        """The connected DocumentStore, or None. A failed connect is never retried."""
        if self._mirror_tried:
            return self._mirror
        self._mirror_tried = True
        db_cfg = self.config.get('database') or {}
        if not db_cfg.get('enabled'):
            return None
        try:
            logger.info('[data_manager.mirror] initializing database mirror…')
            store = self.mirror_factory(db_cfg)
            store.connect()
            self._mirror = store
        except Exception as e:
            logger.error('[data_manager.mirror] initialization failed: %s', e)
            logger.warning('[data_manager.mirror] falling back to Excel-only mode')
            self._mirror = None
        return self._mirror

    @property
    def mirror_available(self) -> bool:
        return self.mirror() is not None

    # ─── One-off copy of the workbooks into the mirror ──────────────────────
    def migrate_to_mirror(self) -> dict:
        store = self.mirror()
        if store is None:
            return {'success': False, 'message': 'Database mirror is not available.'}

        stations = DbStationRepo(store).bulk_create(self.stations.excel.get_all())['count']

        lookups = DbLookupRepo(store)
        snap = self.lookups.excel.get_all()
        for name in snap.get('companies') or []:
            lookups.upsert_company(name, True)
        loc_links = snap.get('locationLinks') or {}
        for co, locs in (snap.get('locationsByCompany') or {}).items():
            for loc in locs:
                lookups.upsert_location(loc, co, (loc_links.get(co) or {}).get(loc) or '')
        colors = snap.get('colorsByCompanyLocation') or {}
        links = snap.get('assetTypeLinks') or {}
        for co, locs in (snap.get('assetsByCompanyLocation') or {}).items():
            for loc, types in locs.items():
                for at in types:
                    lookups.upsert_asset_type(
                        at, co, loc,
                        ((colors.get(co) or {}).get(loc) or {}).get(at),
                        ((links.get(co) or {}).get(loc) or {}).get(at) or '',
                    )
        for status, color in (snap.get('statusColors') or {}).items():
            lookups.set_status_color(status, color)
        lookups.set_setting_boolean('applyStatusColorsOnMap', snap.get('applyStatusColorsOnMap'))
        lookups.set_setting_boolean('applyRepairColorsOnMap', snap.get('applyRepairColorsOnMap'))
        lookups.set_inspection_keywords(snap.get('inspectionKeywords'))

        groups = {}
        for r in self.repairs.excel.get_all_repairs():
            key = (r.get('company'), r.get('location'), r.get('Station ID'))
            groups.setdefault(key, []).append(
                {k: v for k, v in r.items() if k not in ('company', 'location')})
        repairs = DbRepairRepo(store)
        for (co, loc, sid), items in groups.items():
            repairs.save_station_repairs(co, loc, sid, items)

        logger.info('[data_manager.migrate_to_mirror] stations=%d repair groups=%d', stations, len(groups))
        return {'success': True, 'stations': stations, 'repair_groups': len(groups)}

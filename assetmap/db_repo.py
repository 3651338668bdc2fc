# assetmap/db_repo.py
# The database mirror: a SQLAlchemy document table (one JSON body per collection/key) and BaseRepo subclasses over it.

import logging
import os
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    text,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from .header_model import SEP, is_general_info, split_composite
from .persistence import BaseRepo, LookupReads, matches
from .repairs_manager import station_id_of
from .station_store import iter_schema

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (UniqueConstraint("collection", "doc_key", name="uq_collection_key"),)
    id         = Column(Integer, primary_key=True)
    collection = Column(String(64), nullable=False, index=True)
    doc_key    = Column(String(512), nullable=False)
    body       = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


def _key(*parts) -> str:
    return '|'.join(str(p or '').strip().lower() for p in parts)


def _jsonable(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class DocumentStore:
    """
    Bounded connection pool plus key/value-style access to the documents
    table. connect() raises when the database is unreachable.
    """

    def __init__(self, url: str, min_pool: int = 2, max_pool: int = 10, timeout_ms: int = 5000):
        self.url = url
        kwargs = {'echo': False, 'pool_pre_ping': True}
        if ':memory:' not in url:
            kwargs.update(
                pool_size=max(int(min_pool), 1),
                max_overflow=max(int(max_pool) - int(min_pool), 0),
                pool_timeout=max(int(timeout_ms), 1) / 1000.0,
            )
        database = make_url(url).database
        if url.startswith('sqlite') and database and database != ':memory:':
            os.makedirs(os.path.dirname(os.path.abspath(database)), exist_ok=True)
        self.engine = create_engine(url, **kwargs)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    @classmethod
    def from_config(cls, db_cfg: dict):
        return cls(
            db_cfg.get('url') or 'sqlite:///data/mirror.db',
            db_cfg.get('minPoolSize', 2),
            db_cfg.get('maxPoolSize', 10),
            db_cfg.get('serverSelectionTimeoutMS', 5000),
        )

    def connect(self):
        Base.metadata.create_all(self.engine)
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info('[db_repo.connect] mirror ready at %s', self.engine.url.render_as_string(hide_password=True))
        return self

    def dispose(self):
        self.engine.dispose()

    # ─── Documents ───────────────────────────────────────────────────────────
    def get(self, collection: str, key: str):
        with self.Session() as s:
            doc = s.query(Document).filter_by(collection=collection, doc_key=key).one_or_none()
            return dict(doc.body) if doc else None

    def all(self, collection: str) -> list:
        with self.Session() as s:
            docs = s.query(Document).filter_by(collection=collection).order_by(Document.id).all()
            return [dict(d.body) for d in docs]

    def put(self, collection: str, key: str, body: dict, merge: bool = False) -> bool:
        """Insert or replace (or merge into) one document; True when inserted."""
        body = _jsonable(body)
        with self.Session() as s:
            doc = s.query(Document).filter_by(collection=collection, doc_key=key).one_or_none()
            if doc is None:
                s.add(Document(collection=collection, doc_key=key, body=body))
                s.commit()
                return True
            # JSON columns only notice reassignment
            doc.body = {**doc.body, **body} if merge else body
            s.commit()
            return False

    def remove(self, collection: str, key: str) -> bool:
        with self.Session() as s:
            n = s.query(Document).filter_by(collection=collection, doc_key=key).delete()
            s.commit()
            return n > 0


# ─── Mirror repositories ────────────────────────────────────────────────────
class DbStationRepo(BaseRepo):
    def __init__(self, store: DocumentStore):
        self.db = store

    @staticmethod
    def _sid(data: dict) -> str:
        for k in ('station_id', 'Station ID', f'General Information{SEP}Station ID'):
            v = str((data or {}).get(k) or '').strip()
            if v:
                return v
        return ''

    def get_all(self, filters: dict = None):
        return [d for d in self.db.all('stations') if matches(d, filters)]

    def get_by_id(self, station_id):
        return self.db.get('stations', _key(station_id))

    def create(self, data: dict):
        sid = self._sid(data)
        if not sid:
            return {'success': False, 'message': 'Station ID is required.'}
        body = {k: v for k, v in data.items() if k != 'schema'}
        body['station_id'] = sid
        added = self.db.put('stations', _key(sid), body)
        return {'success': True, 'added': added}

    def update(self, station_id, data: dict):
        body = {k: v for k, v in (data or {}).items() if k != 'schema'}
        body['station_id'] = str(station_id)
        self.db.put('stations', _key(station_id), body, merge=True)
        return {'success': True}

    def delete(self, station_id):
        return {'success': True, 'deleted': self.db.remove('stations', _key(station_id))}

    def find_one(self, query: dict):
        found = self.get_all(query)
        return found[0] if found else None

    def find_many(self, query: dict):
        return self.get_all(query)

    def bulk_create(self, stations: list):
        n = 0
        for st in stations or []:
            if self.create(st).get('success'):
                n += 1
        return {'success': True, 'count': n}

    def update_schema(self, asset_type: str, schema: list, exclude_station_id: str = None):
        """Same reshaping as the workbook pass, applied to each stored station."""
        target = [p for p in iter_schema(schema) if not is_general_info(p.section)]
        wanted = {p.composite for p in target}
        skip = str(exclude_station_id or '').strip().lower()
        updated = 0
        for doc in self.db.all('stations'):
            if str(doc.get('asset_type', '')).strip().lower() != str(asset_type).strip().lower():
                continue
            if str(doc.get('station_id', '')).strip().lower() == skip:
                continue
            body = {
                k: v for k, v in doc.items()
                if SEP not in k or is_general_info(split_composite(k).section) or k in wanted
            }
            for p in target:
                body.setdefault(p.composite, '')
            if body != doc:
                self.db.put('stations', _key(doc.get('station_id')), body)
                updated += 1
        return {'success': True, 'updated': updated}


class DbLookupRepo(LookupReads, BaseRepo):
    def __init__(self, store: DocumentStore):
        self.db = store

    def get_all(self, filters: dict = None):
        """Snapshot in the same shape the Excel lookup store produces."""
        colors_co = {}
        assets_loc, assets_co = {}, {}
        asset_links = {}
        for at in self.db.all('asset_types'):
            name, co, loc = at.get('asset_type'), at.get('company'), at.get('location')
            if not name or not loc:
                continue
            assets_loc.setdefault(loc, set()).add(name)
            if co:
                assets_co.setdefault(co, {}).setdefault(loc, set()).add(name)
                if at.get('color'):
                    colors_co.setdefault(co, {}).setdefault(loc, {})[name] = at['color']
                if at.get('link'):
                    asset_links.setdefault(co, {}).setdefault(loc, {})[name] = at['link']

        locs_by_co, loc_links = {}, {}
        for loc in self.db.all('locations'):
            if loc.get('company') and loc.get('location'):
                locs_by_co.setdefault(loc['company'], set()).add(loc['location'])
                if loc.get('link'):
                    loc_links.setdefault(loc['company'], {})[loc['location']] = loc['link']

        settings = {d['key'].lower(): d.get('value') for d in self.db.all('settings') if d.get('key')}
        keywords = self.db.get('inspection_keywords', 'keywords') or {}
        ordered = lambda xs: sorted(xs, key=str.lower)
        return {
            'colorsGlobal': {},
            'colorsByLocation': {},
            'colorsByCompanyLocation': colors_co,
            'companies': ordered(c['name'] for c in self.db.all('companies') if c.get('active')),
            'locationsByCompany': {k: ordered(v) for k, v in locs_by_co.items()},
            'assetsByLocation': {k: ordered(v) for k, v in assets_loc.items()},
            'assetsByCompanyLocation': {
                co: {loc: ordered(v) for loc, v in locs.items()} for co, locs in assets_co.items()
            },
            'locationLinks': loc_links,
            'assetTypeLinks': asset_links,
            'statusColors': {d['status'].lower(): d.get('color') for d in self.db.all('status_colors')},
            'applyStatusColorsOnMap': bool(settings.get('applystatuscolorsonmap')),
            'applyRepairColorsOnMap': bool(settings.get('applyrepaircolorsonmap')),
            'inspectionKeywords': keywords.get('keywords') or ['inspection'],
        }

    def upsert_company(self, name: str, active: bool = True):
        added = self.db.put('companies', _key(name), {'name': name, 'active': bool(active)})
        return {'success': True, 'added': added}

    def upsert_location(self, location: str, company: str, link: str = ''):
        body = {'location': location, 'company': company}
        if link:
            body['link'] = link
        added = self.db.put('locations', _key(company, location), body, merge=True)
        return {'success': True, 'added': added}

    def upsert_asset_type(self, asset_type: str, company: str, location: str,
                          color: str = None, link: str = ''):
        body = {'asset_type': asset_type, 'company': company, 'location': location}
        if color:
            body['color'] = color
        if link:
            body['link'] = link
        added = self.db.put('asset_types', _key(company, location, asset_type), body, merge=True)
        return {'success': True, 'added': added}

    def set_asset_type_color(self, asset_type: str, company: str, location: str, color: str):
        if not (company and location):
            return {'success': False, 'disabled': True,
                    'message': 'Only company + location colours are stored.'}
        return self.upsert_asset_type(asset_type, company, location, color=color)

    def set_location_link(self, company: str, location: str, link: str):
        return self.upsert_location(location, company, link)

    def set_asset_type_link(self, asset_type: str, company: str, location: str, link: str):
        return self.upsert_asset_type(asset_type, company, location, link=link)

    def set_status_color(self, status: str, color: str):
        self.db.put('status_colors', _key(status), {'status': status, 'color': color})
        return {'success': True}

    def delete_status_row(self, status: str):
        return {'success': True, 'deleted': int(self.db.remove('status_colors', _key(status)))}

    def set_setting_boolean(self, key: str, flag: bool):
        self.db.put('settings', _key(key), {'key': key, 'value': bool(flag)})
        return {'success': True}

    def set_inspection_keywords(self, keywords: list):
        kept = sorted({str(k).strip() for k in keywords or [] if str(k).strip()}, key=str.lower)
        self.db.put('inspection_keywords', 'keywords', {'keywords': kept})
        return {'success': True, 'keywords': kept}


class DbAuthRepo(BaseRepo):
    def __init__(self, store: DocumentStore):
        self.db = store

    @staticmethod
    def _public(user: dict) -> dict:
        return {k: v for k, v in user.items() if k != 'password'}

    def create_user(self, user: dict):
        name = str(user.get('name') or '').strip()
        if not name:
            return {'success': False, 'message': 'Name is required.'}
        if self.db.get('users', _key(name)) is not None:
            return {'success': False, 'message': 'A user with that name already exists.'}
        body = dict(user, status='Inactive', created=_utcnow().isoformat(), lastLogin='')
        self.db.put('users', _key(name), body)
        return {'success': True, 'user': self._public(body)}

    def login_user(self, name: str, hashed_password: str):
        user = self.db.get('users', _key(name))
        if user is None or user.get('password') != hashed_password:
            return {'success': False, 'message': 'Invalid name or password.'}
        user.update(status='Active', lastLogin=_utcnow().isoformat())
        self.db.put('users', _key(name), user)
        return {'success': True, 'user': self._public(user)}

    def logout_user(self, name: str):
        if self.db.get('users', _key(name)) is not None:
            self.db.put('users', _key(name), {'status': 'Inactive'}, merge=True)
        return {'success': True}

    def get_all_users(self):
        return [self._public(u) for u in self.db.all('users')]

    def has_users(self):
        return bool(self.db.all('users'))

    def get_all(self, filters: dict = None):
        return [u for u in self.get_all_users() if matches(u, filters)]

    def get_by_id(self, name):
        user = self.db.get('users', _key(name))
        return self._public(user) if user else None

    def create(self, data: dict):
        return self.create_user(data)

    def update(self, id_, data: dict):
        raise NotImplementedError('Users are updated through login/logout')

    def delete(self, id_):
        raise NotImplementedError('User deletion is not supported')

    def find_one(self, query: dict):
        found = self.get_all(query)
        return found[0] if found else None

    def find_many(self, query: dict):
        return self.get_all(query)


class DbRepairRepo(BaseRepo):
    def __init__(self, store: DocumentStore):
        self.db = store

    def _group(self, company, location, station_id) -> dict:
        return self.db.get('repairs', _key(company, location, station_id)) or {
            'company': company, 'location': location,
            'station_id': str(station_id), 'repairs': [],
        }

    def _save(self, group: dict):
        self.db.put('repairs', _key(group['company'], group['location'], group['station_id']), group)

    def list_repairs_for_station(self, company: str, location: str, station_id: str):
        return list(self._group(company, location, station_id)['repairs'])

    def save_station_repairs(self, company: str, location: str, station_id: str, repairs: list):
        group = self._group(company, location, station_id)
        group['repairs'] = list(repairs or [])
        self._save(group)
        return {'success': True, 'count': len(group['repairs'])}

    def append_repair(self, company: str, location: str, repair: dict, asset_type: str = None):
        sid = station_id_of(repair)
        if not sid:
            return {'success': False, 'message': 'Station ID is required to add a repair.'}
        entry = dict(repair)
        if asset_type:
            entry.setdefault('Asset Type', asset_type)
        entry.setdefault('Date', date.today().isoformat())
        entry.setdefault('Type', 'Repair')
        group = self._group(company, location, sid)
        group['repairs'].append(entry)
        self._save(group)
        return {'success': True}

    def delete_repair(self, company: str, location: str, station_id: str, index: int):
        group = self._group(company, location, station_id)
        if not isinstance(index, int) or not 0 <= index < len(group['repairs']):
            return {'success': False, 'message': 'Row out of range'}
        del group['repairs'][index]
        self._save(group)
        return {'success': True}

    def get_all_repairs(self):
        out = []
        for group in self.db.all('repairs'):
            for r in group.get('repairs') or []:
                out.append(dict(r, company=group.get('company'), location=group.get('location')))
        return out

    def get_all(self, filters: dict = None):
        return [r for r in self.get_all_repairs() if matches(r, filters)]

    def get_by_id(self, id_):
        raise NotImplementedError('Repairs are addressed by station')

    def create(self, data: dict):
        repair = {k: v for k, v in data.items() if k not in ('company', 'location', 'asset_type')}
        return self.append_repair(data.get('company'), data.get('location'), repair, data.get('asset_type'))

    def update(self, id_, data: dict):
        raise NotImplementedError('Use save_station_repairs')

    def delete(self, id_):
        raise NotImplementedError('Use delete_repair')

    def find_one(self, query: dict):
        found = self.get_all(query)
        return found[0] if found else None

    def find_many(self, query: dict):
        return self.get_all(query)

# assetmap/excel_repo.py
# BaseRepo subclasses that wrap the Excel backend (in-process or through the worker client) so it conforms to the common interface.

from .exceptions import StoreError
from .persistence import BaseRepo, LookupReads, matches


class ExcelStationRepo(BaseRepo):
    def __init__(self, backend):
        self.excel = backend

    def get_all(self, filters: dict = None):
        rows = self.excel.read_stations_aggregate().get('rows') or []
        return [r for r in rows if matches(r, filters)]

    def get_by_id(self, station_id):
        sid = str(station_id).strip().lower()
        for r in self.get_all():
            if str(r.get('station_id', '')).strip().lower() == sid:
                return r
        return None

    def create(self, data: dict):
        """data carries company, location and asset_type next to the station's fields."""
        company = data.get('company') or ''
        location = data.get('location') or data.get('location_file') or data.get('province')
        asset_type = data.get('asset_type') or data.get('Category')
        if not location or not asset_type:
            return {'success': False, 'message': 'Location and asset type are required.'}
        record = {k: v for k, v in data.items() if k not in ('location', 'asset_type')}
        return self.excel.create_station(company, location, asset_type, record)

    def update(self, station_id, data: dict):
        """
        data may name the target with company and location (or location_file);
        ids repeat across locations, so the first match in the tree is used
        only when it doesn't.
        """
        company = data.get('company') or ''
        location = data.get('location_file') or data.get('location')
        if not location:
            existing = self.get_by_id(station_id)
            if existing is None:
                raise StoreError(f'Station {station_id} not found')
            company = existing.get('company') or company
            location = existing.get('location_file') or existing.get('province')
        fields = {k: v for k, v in data.items() if k not in ('schema', 'location')}
        return self.excel.update_station_in_location_file(
            company, location, station_id, fields, data.get('schema'))

    def delete(self, station_id):
        raise NotImplementedError('Station deletion is not supported by the Excel store')

    def find_one(self, query: dict):
        found = self.get_all(query)
        return found[0] if found else None

    def find_many(self, query: dict):
        return self.get_all(query)

    def update_schema(self, asset_type: str, schema: list, exclude_station_id: str = None):
        return self.excel.update_asset_type_schema(asset_type, schema, exclude_station_id)


class ExcelLookupRepo(LookupReads, BaseRepo):
    def __init__(self, backend):
        self.excel = backend

    def get_all(self, filters: dict = None):
        return self.excel.read_lookups_snapshot()

    def upsert_company(self, name: str, active: bool = True):
        return self.excel.upsert_company(name, active)

    def upsert_location(self, location: str, company: str, link: str = ''):
        res = self.excel.upsert_location(location, company)
        if link:
            self.excel.set_location_link(company, location, link)
        return res

    def upsert_asset_type(self, asset_type: str, company: str, location: str,
                          color: str = None, link: str = ''):
        res = self.excel.upsert_asset_type(asset_type, location, company)
        if link:
            self.excel.set_asset_type_link(asset_type, company, location, link)
        if color and res.get('success'):
            self.excel.set_asset_type_color_for_company_location(asset_type, company, location, color)
            res = dict(res, color=color)
        return res

    def set_asset_type_color(self, asset_type: str, company: str, location: str, color: str):
        if company and location:
            return self.excel.set_asset_type_color_for_company_location(asset_type, company, location, color)
        if location:
            return self.excel.set_asset_type_color_for_location(asset_type, location, color)
        return self.excel.set_asset_type_color(asset_type, color)

    def set_location_link(self, company: str, location: str, link: str):
        return self.excel.set_location_link(company, location, link)

    def set_asset_type_link(self, asset_type: str, company: str, location: str, link: str):
        return self.excel.set_asset_type_link(asset_type, company, location, link)

    def set_status_color(self, status: str, color: str):
        return self.excel.set_status_color(status, color)

    def delete_status_row(self, status: str):
        return self.excel.delete_status_row(status)

    def set_setting_boolean(self, key: str, flag: bool):
        return self.excel.set_setting_boolean(key, flag)

    def set_inspection_keywords(self, keywords: list):
        return self.excel.set_inspection_keywords(keywords)


class ExcelAuthRepo(BaseRepo):
    def __init__(self, backend):
        self.excel = backend

    def create_user(self, user: dict):
        return self.excel.create_auth_user(user)

    def login_user(self, name: str, hashed_password: str):
        return self.excel.login_auth_user(name, hashed_password)

    def logout_user(self, name: str):
        return self.excel.logout_auth_user(name)

    def get_all_users(self):
        return self.excel.get_all_auth_users().get('users') or []

    def has_users(self):
        return bool(self.excel.has_auth_users().get('hasUsers'))

    def get_all(self, filters: dict = None):
        return [u for u in self.get_all_users() if matches(u, filters)]

    def get_by_id(self, name):
        return self.find_one({'name': name})

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


class ExcelRepairRepo(BaseRepo):
    def __init__(self, backend):
        self.excel = backend

    def list_repairs_for_station(self, company: str, location: str, station_id: str):
        return self.excel.list_repairs_for_station(company, location, station_id)

    def save_station_repairs(self, company: str, location: str, station_id: str, repairs: list):
        return self.excel.save_station_repairs(company, location, station_id, repairs)

    def append_repair(self, company: str, location: str, repair: dict, asset_type: str = None):
        return self.excel.append_repair(company, location, repair, asset_type)

    def delete_repair(self, company: str, location: str, station_id: str, index: int):
        return self.excel.delete_repair(company, location, station_id, index)

    def get_all_repairs(self):
        return self.excel.get_all_repairs()

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

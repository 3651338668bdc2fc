# assetmap/persistence.py
# Declares the BaseRepo abstract interface that every storage provider (Excel workbooks, database mirror) implements.

from abc import ABC, abstractmethod

from .lookups_manager import resolve_asset_type_color, resolve_photos_base


class BaseRepo(ABC):
    @abstractmethod
    def get_all(self, filters: dict = None):
        ...

    @abstractmethod
    def get_by_id(self, id_):
        ...

    @abstractmethod
    def create(self, data: dict):
        ...

    @abstractmethod
    def update(self, id_, data: dict):
        ...

    @abstractmethod
    def delete(self, id_):
        ...

    @abstractmethod
    def find_one(self, query: dict):
        ...

    @abstractmethod
    def find_many(self, query: dict):
        ...


def matches(record: dict, query: dict) -> bool:
    """Case-insensitive equality on every key of `query`."""
    for key, want in (query or {}).items():
        if str(record.get(key, '')).strip().lower() != str(want).strip().lower():
            return False
    return True


class LookupReads:
    """
    Lookup queries answered from a snapshot dict (the shape
    LookupStore.get_snapshot returns); subclasses supply get_all().
    """

    def get_active_companies(self):
        return self.get_all().get('companies') or []

    def get_locations_for_company(self, company: str):
        return (self.get_all().get('locationsByCompany') or {}).get(company) or []

    def get_asset_types_for_company_location(self, company: str, location: str):
        by_co = (self.get_all().get('assetsByCompanyLocation') or {}).get(company) or {}
        return by_co.get(location) or []

    def get_color_maps(self):
        snap = self.get_all()
        return {
            'global':            snap.get('colorsGlobal') or {},
            'byLocation':        snap.get('colorsByLocation') or {},
            'byCompanyLocation': snap.get('colorsByCompanyLocation') or {},
        }

    def get_asset_type_color(self, company: str, location: str, asset_type: str):
        return resolve_asset_type_color(self.get_all(), company, location, asset_type)

    def get_status_and_repair_settings(self):
        snap = self.get_all()
        return {
            'statusColors':           snap.get('statusColors') or {},
            'applyStatusColorsOnMap': bool(snap.get('applyStatusColorsOnMap')),
            'repairColors':           {},
            'applyRepairColorsOnMap': bool(snap.get('applyRepairColorsOnMap')),
        }

    def get_inspection_keywords(self):
        return self.get_all().get('inspectionKeywords') or ['inspection']

    def get_photos_base(self, company: str, location: str, asset_type: str = None):
        return resolve_photos_base(self.get_all(), company, location, asset_type)

    # lookups are addressed by their own verbs
    def get_by_id(self, id_):
        raise NotImplementedError('Use specific lookup methods')

    def create(self, data: dict):
        raise NotImplementedError('Use specific lookup methods')

    def update(self, id_, data: dict):
        raise NotImplementedError('Use specific lookup methods')

    def delete(self, id_):
        raise NotImplementedError('Use specific lookup methods')

    def find_one(self, query: dict):
        raise NotImplementedError('Use specific lookup methods')

    def find_many(self, query: dict):
        raise NotImplementedError('Use specific lookup methods')

# assetmap/app.py
# Defines the Eel‑exposed functions that drive the front‑end, delegating all data operations to the worker client and the DataManager façade.

import logging

import eel

from .config import db_config_path
from .data_manager import DataManager
from .excel_worker import ExcelWorkerClient
from .lookups_manager import resolve_asset_type_color

logger = logging.getLogger(__name__)

# ─── Bootstrap: one worker thread, one façade ───────────────────────────────
excel = ExcelWorkerClient()
dm = DataManager(excel, db_config_path())


def _failed(where: str, e: Exception) -> dict:
    logger.error('[app.%s] %s', where, e)
    return {"success": False, "message": str(e)}


# ─── Lookups ───────────────────────────────────────────────────────────────
@eel.expose
def ensure_lookups_ready():
    return excel.ensure_lookups_ready()

@eel.expose
def read_lookups_snapshot():
    return dm.lookups.get_all()

@eel.expose
def get_active_companies():
    return dm.lookups.get_active_companies()

@eel.expose
def get_locations_for_company(company):
    return dm.lookups.get_locations_for_company(company)

@eel.expose
def get_asset_types_for_company_location(company, location):
    return dm.lookups.get_asset_types_for_company_location(company, location)

@eel.expose
def get_photos_base(company, location, asset_type=None):
    return dm.lookups.get_photos_base(company, location, asset_type)

@eel.expose
def upsert_company(name, active=True):
    return dm.lookups.upsert_company(name, active)

@eel.expose
def upsert_location(location, company, link=''):
    return dm.lookups.upsert_location(location, company, link)

@eel.expose
def upsert_asset_type(asset_type, company, location, color=None, link=''):
    return dm.lookups.upsert_asset_type(asset_type, company, location, color, link)

@eel.expose
def set_asset_type_color(asset_type, company, location, color):
    return dm.lookups.set_asset_type_color(asset_type, company, location, color)

@eel.expose
def set_location_link(company, location, link):
    return dm.lookups.set_location_link(company, location, link)

@eel.expose
def set_asset_type_link(asset_type, company, location, link):
    return dm.lookups.set_asset_type_link(asset_type, company, location, link)

@eel.expose
def get_status_and_repair_settings():
    return dm.lookups.get_status_and_repair_settings()

@eel.expose
def set_status_color(status, color):
    return dm.lookups.set_status_color(status, color)

@eel.expose
def delete_status_row(status):
    return dm.lookups.delete_status_row(status)

@eel.expose
def set_setting_boolean(key, flag):
    return dm.lookups.set_setting_boolean(key, bool(flag))

@eel.expose
def get_inspection_keywords():
    return dm.lookups.get_inspection_keywords()

@eel.expose
def set_inspection_keywords(keywords):
    return dm.lookups.set_inspection_keywords(keywords)


# ─── Station data APIs ──────────────────────────────────────────────────────
@eel.expose
def get_station_data():
    """Every station, with its asset-type colour resolved company → location → global."""
    stations = dm.stations.get_all()
    snapshot = dm.lookups.get_all()
    for stn in stations:
        col = resolve_asset_type_color(
            snapshot,
            stn.get('company'),
            stn.get('location_file') or stn.get('province'),
            stn.get('asset_type'),
        )
        stn['color'] = col or '#000000'
    return stations

@eel.expose
def read_location_workbook(company, location):
    return excel.read_location_workbook(company, location)

@eel.expose
def read_sheet_data(company, location, sheet):
    return excel.read_sheet_data(company, location, sheet)

@eel.expose
def read_station(company, location, station_id):
    return excel.read_station(company, location, station_id)

@eel.expose
def create_station(station: dict):
    try:
        return dm.stations.create(station)
    except Exception as e:
        return _failed('create_station', e)

@eel.expose
def save_station(station_id, data: dict, schema=None):
    """
    Update one station; with a schema, reshape every sibling of the same
    asset type to match it.
    """
    try:
        res = dm.stations.update(station_id, dict(data or {}, schema=schema))
        asset_type = (data or {}).get('asset_type') or (data or {}).get('Category')
        if schema is not None and asset_type:
            res['schema_sync'] = dm.stations.update_schema(asset_type, schema, station_id)
        return res
    except Exception as e:
        return _failed('save_station', e)

@eel.expose
def update_asset_type_schema(asset_type, schema, exclude_station_id=None):
    return dm.stations.update_schema(asset_type, schema, exclude_station_id)

@eel.expose
def get_existing_schema_for_asset_type(asset_type, exclude_ids=()):
    return excel.get_existing_schema_for_asset_type(asset_type, list(exclude_ids or ()))

@eel.expose
def sync_newly_imported_stations(asset_type, company, location, schema, imported_ids):
    try:
        return excel.sync_newly_imported_stations(
            asset_type, company, location, schema, list(imported_ids or ()))
    except Exception as e:
        return _failed('sync_newly_imported_stations', e)


# ─── Bulk import ────────────────────────────────────────────────────────────
@eel.expose
def list_sheets(b64):
    return excel.list_sheets(b64)

@eel.expose
def parse_rows(b64):
    return excel.parse_rows(b64)

@eel.expose
def parse_rows_from_sheet(b64, sheet):
    return excel.parse_rows_from_sheet(b64, sheet)

@eel.expose
def write_location_rows(company, location, sheet, sections, fields, rows):
    try:
        return excel.write_location_rows(company, location, sheet, sections, fields, rows)
    except Exception as e:
        return _failed('write_location_rows', e)


# ─── Repairs ────────────────────────────────────────────────────────────────
@eel.expose
def append_repair(company, location, repair, asset_type=None):
    return dm.repairs.append_repair(company, location, repair, asset_type)

@eel.expose
def list_repairs(company, location, station_id):
    return dm.repairs.list_repairs_for_station(company, location, station_id)

@eel.expose
def save_repairs(company, location, station_id, repairs):
    return dm.repairs.save_station_repairs(company, location, station_id, repairs)

@eel.expose
def delete_repair(company, location, station_id, index):
    return dm.repairs.delete_repair(company, location, station_id, int(index))

@eel.expose
def get_all_repairs():
    return dm.repairs.get_all_repairs()


# ─── Auth ───────────────────────────────────────────────────────────────────
@eel.expose
def create_user(user: dict):
    return dm.auth.create_user(user)

@eel.expose
def login_user(name, password):
    return dm.auth.login_user(name, password)

@eel.expose
def logout_user(name):
    return dm.auth.logout_user(name)

@eel.expose
def get_all_users():
    return dm.auth.get_all_users()

@eel.expose
def has_users():
    return dm.auth.has_users()


# ─── Backend configuration ──────────────────────────────────────────────────
@eel.expose
def get_db_config():
    return dm.config

@eel.expose
def reload_db_config():
    return dm.reload_config()

@eel.expose
def migrate_to_mirror():
    return dm.migrate_to_mirror()


# ─── App startup ────────────────────────────────────────────────────────────
def _forward_progress(msg: dict):
    eel.excelProgress(msg)

def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s %(message)s')
    eel.init('frontend')
    excel.on_progress(_forward_progress)
    excel.ensure_lookups_ready()
    eel.start('index.html', size=(1200, 800))

if __name__ == '__main__':
    main()

# assetmap/config.py
# Holds the data-folder layout and the db_config.json loader that picks the read/write backends.

import copy
import json
import logging
import os

logger = logging.getLogger(__name__)

HERE = os.path.dirname(__file__)

# Relocates the whole file store (lookups + locations + repairs) when set
DATA_DIR_ENV = 'NHS_DATA_DIR'

# Optional template workbook copied into place when lookups.xlsx is missing
SEED_ENV = 'NHS_LOOKUPS_TEMPLATE'

# Safe default: Excel only, mirror disabled
DEFAULT_DB_CONFIG = {
    'readFrom': 'excel',
    'writeTo': 'excel',
    'database': {
        'enabled': False,
        'url': 'sqlite:///data/mirror.db',
        'minPoolSize': 2,
        'maxPoolSize': 10,
        'serverSelectionTimeoutMS': 5000,
    },
}

READ_SOURCES = ('excel', 'database', 'mongodb')
WRITE_TARGETS = ('excel', 'both')


def data_dir() -> str:
    override = os.environ.get(DATA_DIR_ENV, '').strip()
    if override:
        return os.path.abspath(override)
    return os.path.abspath(os.path.join(HERE, '..', 'data'))


def lookups_path(root: str = None) -> str:
    return os.path.join(root or data_dir(), 'lookups.xlsx')


def locations_dir(root: str = None) -> str:
    return os.path.join(root or data_dir(), 'locations')


def repairs_dir(root: str = None) -> str:
    return os.path.join(root or data_dir(), 'repairs')


def auth_path(root: str = None) -> str:
    return os.path.join(root or data_dir(), 'Login_Information.xlsx')


def db_config_path(root: str = None) -> str:
    return os.path.join(root or data_dir(), 'db_config.json')


def seed_path():
    """Template for a fresh lookups.xlsx, or None to build it from the built-in seed rows."""
    return os.environ.get(SEED_ENV, '').strip() or None


def _normalize(raw: dict) -> dict:
    cfg = copy.deepcopy(DEFAULT_DB_CONFIG)
    if not isinstance(raw, dict):
        return cfg
    read_from = str(raw.get('readFrom') or 'excel').strip().lower()
    write_to = str(raw.get('writeTo') or 'excel').strip().lower()
    cfg['readFrom'] = read_from if read_from in READ_SOURCES else 'excel'
    cfg['writeTo'] = write_to if write_to in WRITE_TARGETS else 'excel'
    # older files keep the connection block under "mongodb"
    db = raw.get('database') or raw.get('mongodb') or {}
    if isinstance(db, dict):
        cfg['database'].update(db)
    return cfg


def load_db_config(path: str = None) -> dict:
    """
    Read db_config.json. A missing file is created with the Excel-only
    defaults; an unreadable one falls back to the same defaults.
    """
    path = path or db_config_path()
    if not os.path.exists(path):
        cfg = copy.deepcopy(DEFAULT_DB_CONFIG)
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(cfg, f, indent=2)
        logger.info('[config.load_db_config] created default config at %s', path)
        return cfg

    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        logger.error('[config.load_db_config] failed to read %s: %s', path, e)
        return copy.deepcopy(DEFAULT_DB_CONFIG)

    cfg = _normalize(raw)
    logger.info(
        '[config.load_db_config] readFrom=%s writeTo=%s databaseEnabled=%s',
        cfg['readFrom'], cfg['writeTo'], cfg['database'].get('enabled'),
    )
    return cfg

"""
Centralized path configuration for ConfSync Agent
"""

import os

# Backups are stored under <data dir>/<tag>/<id>.json, logs under <data dir>/logs
DEFAULT_DATA_DIR = 'data'

LOG_DIR_NAME = 'logs'


def get_log_dir(data_dir: str) -> str:
    return os.path.join(data_dir, LOG_DIR_NAME)


def ensure_data_dirs(data_dir: str):
    """Create data directories if they don't exist"""
    for directory in [data_dir, get_log_dir(data_dir)]:
        os.makedirs(directory, exist_ok=True)
        try:
            os.chmod(directory, 0o700)
        except OSError:
            pass  # May not have permission in some environments

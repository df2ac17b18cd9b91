"""
Scheduler settings: defaults, optional settings.yaml, environment overrides.
"""
import logging
import os

import yaml

BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
SETTINGS_FILE_NAME = 'settings.yaml'


def get_default_settings():
    """Return default settings."""
    return {
        'data_dir': os.path.join(BASE_DIR, 'data'),
        'oracle': {
            'backend': 'greedy',
            'model': 'gemini-1.5-flash',
            'revalidate': False,
        },
        'default_match_duration_minutes': 60,
        'slot_increment_minutes': 15,
        'log_level': 'INFO',
    }


def load_settings(path=None):
    """Load settings from YAML, merging with defaults, then apply environment overrides."""
    settings = get_default_settings()
    data_dir = os.environ.get('SPORTS_DATA_DIR', settings['data_dir'])
    path = path or os.path.join(data_dir, SETTINGS_FILE_NAME)

    if os.path.exists(path):
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        for key, value in data.items():
            if isinstance(value, dict) and isinstance(settings.get(key), dict):
                settings[key].update(value)
            else:
                settings[key] = value

    settings['data_dir'] = os.environ.get('SPORTS_DATA_DIR', settings['data_dir'])
    if os.environ.get('SCHEDULE_ORACLE'):
        settings['oracle']['backend'] = os.environ['SCHEDULE_ORACLE']
    if os.environ.get('GEMINI_MODEL'):
        settings['oracle']['model'] = os.environ['GEMINI_MODEL']
    if os.environ.get('LOG_LEVEL'):
        settings['log_level'] = os.environ['LOG_LEVEL']
    settings['oracle']['api_key'] = os.environ.get('GOOGLE_API_KEY')
    return settings


def configure_logging(level='INFO'):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

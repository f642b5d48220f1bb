"""
Configuration modules for map generation.
"""

from .heightmap_templates import get_template, list_templates, TEMPLATES
from .settings import Settings, settings
from .options import MapConfig, load_config
from .log_setup import configure_logging

__all__ = ['get_template', 'list_templates', 'TEMPLATES', 'Settings', 'settings',
           'MapConfig', 'load_config', 'configure_logging']

"""Configuration module -- exports Settings and the YAML-aware loader."""

from docurag.config.loader import load_settings, load_yaml_config
from docurag.config.settings import Settings

__all__ = ["Settings", "load_settings", "load_yaml_config"]

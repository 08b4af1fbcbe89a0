"""
Report configuration.

- Pydantic-based settings (environment variables, .env files)
- YAML layout file for the PDF document
"""

from dashreport.config.layout import (
    FontConfig,
    LayoutConfig,
    PositionConfig,
    Rect,
    load_layout,
)
from dashreport.config.settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Layout
    "FontConfig",
    "LayoutConfig",
    "PositionConfig",
    "Rect",
    "load_layout",
]

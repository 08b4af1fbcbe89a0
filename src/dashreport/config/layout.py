"""
PDF layout configuration.

Layout is read from a YAML file shaped like::

    font:
      family: opensans
      ttf: OpenSans-Regular.ttf   # optional, relative to the font directory
      size: 14
    rect:
      page: {width: 595.28, height: 841.89}
      graph: {width: 480, height: 240}
      singlestat: {width: 300, height: 150}
    position:
      x: 50
      y1: 80
      y2: 350
      br: 20

Missing sections fall back to the defaults below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from dashreport.core.errors import ConfigurationError

logger = structlog.get_logger()


@dataclass
class FontConfig:
    """Font used for the header page."""
    family: str = "helvetica"
    ttf: str | None = None
    size: int = 14

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FontConfig:
        return cls(
            family=data.get("family", "helvetica"),
            ttf=data.get("ttf") or None,
            size=int(data.get("size", 14)),
        )


@dataclass
class Rect:
    width: float
    height: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], default: Rect) -> Rect:
        return cls(
            width=float(data.get("width", default.width)),
            height=float(data.get("height", default.height)),
        )


@dataclass
class PositionConfig:
    """Image anchor points and header line spacing, in points."""
    x: float = 50.0
    y1: float = 80.0
    y2: float = 350.0
    br: float = 20.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PositionConfig:
        return cls(
            x=float(data.get("x", 50.0)),
            y1=float(data.get("y1", 80.0)),
            y2=float(data.get("y2", 350.0)),
            br=float(data.get("br", 20.0)),
        )


DEFAULT_RECTS: dict[str, Rect] = {
    "page": Rect(595.28, 841.89),
    "graph": Rect(480.0, 240.0),
    "singlestat": Rect(300.0, 150.0),
}


@dataclass
class LayoutConfig:
    """Complete layout for a report document."""
    font: FontConfig = field(default_factory=FontConfig)
    rects: dict[str, Rect] = field(default_factory=lambda: dict(DEFAULT_RECTS))
    position: PositionConfig = field(default_factory=PositionConfig)

    @property
    def page(self) -> Rect:
        return self.rects["page"]

    def rect_for(self, panel_type: str) -> Rect:
        """Two sizing tiers: singlestat panels and everything else."""
        if panel_type == "singlestat":
            return self.rects["singlestat"]
        return self.rects["graph"]

    @classmethod
    def default(cls) -> LayoutConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LayoutConfig:
        rect_data = data.get("rect") or {}
        rects = {
            name: Rect.from_dict(rect_data.get(name) or {}, default)
            for name, default in DEFAULT_RECTS.items()
        }
        return cls(
            font=FontConfig.from_dict(data.get("font") or {}),
            rects=rects,
            position=PositionConfig.from_dict(data.get("position") or {}),
        )


def load_layout(path: str | Path | None = None) -> LayoutConfig:
    """
    Load layout configuration.

    Args:
        path: Optional YAML file; defaults are used when omitted

    Returns:
        LayoutConfig instance

    Raises:
        ConfigurationError: the file is missing or not a valid layout
    """
    if not path:
        return LayoutConfig.default()

    layout_path = Path(path)
    if not layout_path.exists():
        raise ConfigurationError("layout file not found", details={"path": str(layout_path)})

    try:
        with open(layout_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise TypeError("top-level YAML value must be a mapping")
        layout = LayoutConfig.from_dict(data)
    except (yaml.YAMLError, TypeError, ValueError, AttributeError) as exc:
        raise ConfigurationError(
            f"invalid layout file: {exc}", details={"path": str(layout_path)}
        ) from exc

    logger.debug("loaded_layout", path=str(layout_path))
    return layout

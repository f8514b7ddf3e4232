"""Decide where the verification table goes.

The policy answers two questions for the last page of a document:

  * Can the table be drawn on that page without touching existing content,
    or does a fresh page of the same size have to be appended?
  * Where on the chosen page does the table's bottom-left corner sit?

All y values are in stamp space (origin bottom-left).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple

from .extent import ExtentResult
from .geometry import PageGeometry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlaySpec:
    table_width_ratio: float = 0.85
    column_ratios: Tuple[float, float, float] = (0.15, 0.7, 0.15)
    overlay_height: float = 130.0
    bottom_margin: float = 120.0
    # rows: signer/details/code, url, disclaimer
    row_heights: Tuple[float, float, float] = (84.0, 16.0, 30.0)
    font_size: float = 8.0
    code_size: float = 80.0
    cell_padding: float = 2.0
    bottom_anchor: float = 20.0
    reuse_slack: float = 50.0

    def table_width(self, page_width: float) -> float:
        return page_width * self.table_width_ratio

    def left_margin(self, page_width: float) -> float:
        return (page_width - self.table_width(page_width)) / 2


DEFAULT_SPEC = OverlaySpec()


@dataclass(frozen=True)
class PlacementDecision:
    targets_existing_page: bool
    anchor_x: float
    anchor_y: float


class PlacementPolicy(ABC):
    @abstractmethod
    def decide(
        self, extent: ExtentResult, geometry: PageGeometry, spec: OverlaySpec = DEFAULT_SPEC
    ) -> PlacementDecision:
        ...

    @staticmethod
    def _clamp(anchor_y: float, geometry: PageGeometry) -> float:
        return min(max(anchor_y, 0.0), geometry.height)

    def _bottom_of_existing_page(self, geometry: PageGeometry, spec: OverlaySpec) -> PlacementDecision:
        return PlacementDecision(
            targets_existing_page=True,
            anchor_x=spec.left_margin(geometry.width),
            anchor_y=self._clamp(spec.bottom_anchor, geometry),
        )

    def _top_of_new_page(self, geometry: PageGeometry, spec: OverlaySpec) -> PlacementDecision:
        return PlacementDecision(
            targets_existing_page=False,
            anchor_x=spec.left_margin(geometry.width),
            anchor_y=self._clamp(geometry.height - spec.overlay_height, geometry),
        )


class ExtentPlacementPolicy(PlacementPolicy):
    """Reuse the last page when the space below its content is large enough."""

    def decide(
        self, extent: ExtentResult, geometry: PageGeometry, spec: OverlaySpec = DEFAULT_SPEC
    ) -> PlacementDecision:
        available_space = geometry.height - extent.lowest_y - spec.bottom_margin
        enough_space = available_space >= spec.overlay_height
        reuse_last_page = enough_space and extent.lowest_y > spec.bottom_margin + spec.reuse_slack

        logger.debug(
            "available_space=%.2f enough_space=%s reuse_last_page=%s",
            available_space,
            enough_space,
            reuse_last_page,
        )
        if reuse_last_page:
            return self._bottom_of_existing_page(geometry, spec)
        return self._top_of_new_page(geometry, spec)


class AppendPagePlacementPolicy(PlacementPolicy):
    """Always put the table at the top of a freshly appended page."""

    def decide(
        self, extent: ExtentResult, geometry: PageGeometry, spec: OverlaySpec = DEFAULT_SPEC
    ) -> PlacementDecision:
        return self._top_of_new_page(geometry, spec)


POLICIES = {
    "extent": ExtentPlacementPolicy,
    "append": AppendPagePlacementPolicy,
}


def get_policy(name: str) -> PlacementPolicy:
    try:
        return POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown placement strategy {name!r}; choose from {sorted(POLICIES)}") from None

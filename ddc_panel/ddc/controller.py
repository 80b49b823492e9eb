from __future__ import annotations
import logging
from typing import Callable

from ..state import ControllerPhase, SelectionState, clamp_level, fraction_to_level
from .ddcutil import DdcUtil
from .parser import DisplayRecord
from .runner import CommandResult

LOG = logging.getLogger(__name__)

NO_DISPLAYS_LABEL = "No displays detected"
UNSELECTED_LABEL = "Select Display"


class BrightnessController:
    """Owns the display catalog and the current selection.

    Must only be driven from the event loop thread that runs its coroutines.
    """

    def __init__(
        self,
        ddcutil: DdcUtil | None = None,
        on_update: Callable[[], None] | None = None,
        selection: SelectionState | None = None,
    ):
        self.ddcutil = ddcutil or DdcUtil()
        self.on_update = on_update
        self.selection = selection or SelectionState()
        self.catalog: list[DisplayRecord] = []
        self._loaded = False
        self._refreshing = False
        self._applying = 0
        self._closed = False

    def set_on_update(self, on_update: Callable[[], None] | None) -> None:
        self.on_update = on_update

    @property
    def phase(self) -> ControllerPhase:
        if self._refreshing:
            return ControllerPhase.REFRESHING
        if not self._loaded:
            return ControllerPhase.UNINITIALIZED
        if self._applying:
            return ControllerPhase.APPLYING
        return ControllerPhase.READY

    @property
    def selector_label(self) -> str:
        if self.selection.display is not None:
            return self.selection.display.label
        if self._loaded:
            return NO_DISPLAYS_LABEL
        return UNSELECTED_LABEL

    async def refresh(self) -> list[DisplayRecord] | None:
        """Re-detect displays; ignored while another refresh is running."""
        if self._closed:
            return None
        if self._refreshing:
            LOG.debug("Display refresh already in progress; ignoring request")
            return None
        self._refreshing = True
        self._notify()
        try:
            catalog = await self.ddcutil.detect()
        finally:
            self._refreshing = False
        if self._closed:
            return None
        self.catalog = catalog
        self.selection.display = catalog[0] if catalog else None
        self._loaded = True
        LOG.info("Detected %d display(s)", len(catalog))
        self._notify()
        return catalog

    def select(self, bus_id: str) -> DisplayRecord | None:
        if self._closed or self.phase is not ControllerPhase.READY:
            LOG.debug("Ignoring display selection in phase %s", self.phase.value)
            return None
        for record in self.catalog:
            if record.bus_id == str(bus_id):
                self.selection.display = record
                self._notify()
                return record
        LOG.debug("No display on bus %s", bus_id)
        return None

    async def set_brightness(self, level: float) -> CommandResult | None:
        display = self.selection.display
        if self._closed or display is None:
            LOG.debug("No display selected; brightness change ignored")
            return None
        level = clamp_level(level)
        self.selection.brightness = level
        self._applying += 1
        self._notify()
        try:
            result = await self.ddcutil.set_brightness(display.bus_id, level)
        finally:
            self._applying -= 1
        if result.ok:
            LOG.info("Brightness set to %d on bus %s", level, display.bus_id)
        else:
            LOG.error("Error setting brightness on bus %s: %s", display.bus_id, result.error or "unknown error")
        self._notify()
        return result

    async def set_brightness_fraction(self, fraction: float) -> CommandResult | None:
        return await self.set_brightness(fraction_to_level(fraction))

    def snapshot(self) -> dict:
        selected = self.selection.display
        return {
            "phase": self.phase.value,
            "displays": [record.to_dict() for record in self.catalog],
            "selectedBusId": selected.bus_id if selected else None,
            "label": self.selector_label,
            "brightness": self.selection.brightness,
            "fraction": self.selection.fraction,
        }

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.ddcutil.close()
        self.catalog = []
        self.selection.display = None
        self.on_update = None

    def _notify(self) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update()
        except Exception:
            LOG.exception("Controller update callback failed")

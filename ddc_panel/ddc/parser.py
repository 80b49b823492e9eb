import re
from dataclasses import dataclass
from enum import Enum


@dataclass
class DisplayRecord:
    bus_id: str
    label: str
    valid: bool = True

    def to_dict(self) -> dict:
        return {"busId": self.bus_id, "label": self.label, "valid": self.valid}


_BUS_MARKER = "I2C bus:"
_BUS_RE = re.compile(r"I2C bus:\s+/dev/i2c-(\d+)")
_LABEL_MARKERS = ("Monitor:", "Model:", "Display:", "Description:")
_INVALID_MARKER = "Invalid display"


class ParserState(Enum):
    OUTSIDE_BLOCK = "outside_block"
    INSIDE_BLOCK = "inside_block"


class DetectParser:
    """Line-oriented state machine over ``ddcutil detect`` text.

    Each ``I2C bus: /dev/i2c-N`` header opens a block; descriptive lines inside
    the block rename the display and an ``Invalid display`` line drops it.
    Anything else is ignored. Feeding the lines one at a time and calling
    ``finish`` gives the same catalog as ``parse_detect`` on the whole text.
    """

    def __init__(self):
        self.state = ParserState.OUTSIDE_BLOCK
        self._current: DisplayRecord | None = None
        self._displays: list[DisplayRecord] = []

    def feed(self, line: str) -> None:
        if _BUS_MARKER in line:
            match = _BUS_RE.search(line)
            if match:
                self._finalize()
                bus_id = match.group(1)
                self._current = DisplayRecord(bus_id=bus_id, label=f"Display {bus_id}")
                self.state = ParserState.INSIDE_BLOCK
            return
        if self.state is ParserState.OUTSIDE_BLOCK:
            return
        if any(marker in line for marker in _LABEL_MARKERS):
            label = line.split(":", 1)[1].strip()
            if label:
                self._current.label = label
        if _INVALID_MARKER in line:
            self._current.valid = False

    def finish(self) -> list[DisplayRecord]:
        self._finalize()
        self.state = ParserState.OUTSIDE_BLOCK
        displays, self._displays = self._displays, []
        return displays

    def _finalize(self) -> None:
        if self._current is not None and self._current.valid:
            self._displays.append(self._current)
        self._current = None


def parse_detect(output: str) -> list[DisplayRecord]:
    parser = DetectParser()
    for line in output.splitlines():
        parser.feed(line)
    return parser.finish()

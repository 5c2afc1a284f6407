"""
Transport modes and how each one is drawn.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class TransportMode(str, Enum):
    """How a segment is travelled."""
    CAR = "car"
    MOTORCYCLE = "motorcycle"
    TRAIN = "train"
    PLANE = "plane"

    @property
    def is_flight(self) -> bool:
        return self is TransportMode.PLANE


DEFAULT_TRANSPORT_MODE = TransportMode.CAR


@dataclass(frozen=True)
class TransportStyle:
    """Presentation attributes for a transport mode."""
    mode: TransportMode
    label: str
    color: str          # hex RGB
    line_width: int     # pixels at 1080p
    dashed: bool
    speed: float        # relative animation speed, unused by playback timing

    @property
    def rgb(self) -> Tuple[int, int, int]:
        value = self.color.lstrip("#")
        return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))


TRANSPORT_STYLES: Dict[TransportMode, TransportStyle] = {
    TransportMode.CAR: TransportStyle(
        mode=TransportMode.CAR, label="Car", color="#3B82F6",
        line_width=4, dashed=False, speed=2.0,
    ),
    TransportMode.MOTORCYCLE: TransportStyle(
        mode=TransportMode.MOTORCYCLE, label="Motorcycle", color="#F97316",
        line_width=3, dashed=False, speed=2.5,
    ),
    TransportMode.TRAIN: TransportStyle(
        mode=TransportMode.TRAIN, label="Train", color="#10B981",
        line_width=5, dashed=True, speed=3.0,
    ),
    TransportMode.PLANE: TransportStyle(
        mode=TransportMode.PLANE, label="Plane", color="#8B5CF6",
        line_width=3, dashed=True, speed=5.0,
    ),
}

TRANSPORT_MODES = tuple(TransportMode)


def get_transport_style(mode) -> TransportStyle:
    """Look up the style for a mode given as enum or string."""
    return TRANSPORT_STYLES[TransportMode(mode)]

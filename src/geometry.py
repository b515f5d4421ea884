# castudio
# Copyright 2025 - Ricardo Quesada

import math
from dataclasses import dataclass

# Matches the default project height. Used when a bundle comes without
# explicit project metadata.
DEFAULT_CONTAINER_HEIGHT = 844


@dataclass(frozen=True)
class Vec2:
    """Represents a point in 2D editor space.

    Editor space has its origin at the top-left corner and Y grows downwards.
    """

    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Size:
    """Width and height of a layer. Both are expected to be non-negative."""

    w: float = 0.0
    h: float = 0.0


def container_height_or_default(container_height: float | None) -> float:
    if not container_height:
        return DEFAULT_CONTAINER_HEIGHT
    return container_height


def to_ca_x(x: float, w: float) -> int:
    return round(x + w / 2)


def to_ca_y(y: float, h: float, container_height: float | None = None) -> int:
    return round(container_height_or_default(container_height) - (y + h / 2))


def from_ca_x(ca_x: float, w: float) -> float:
    return ca_x - w / 2


def from_ca_y(ca_y: float, h: float, container_height: float | None = None) -> float:
    return container_height_or_default(container_height) - ca_y - h / 2


def to_ca_layer_space(
    position: Vec2, size: Size, container_height: float | None = None
) -> tuple[int, int]:
    """
    Converts a top-left, Y-down editor rectangle into a center anchored,
    Y-up Core Animation position.

    Args:
        position: top-left corner of the layer in editor space.
        size: size of the layer.
        container_height: height of the container. Defaults to 844 when unset.

    Returns:
        The (x, y) Core Animation position, rounded to integers.
    """
    return (
        to_ca_x(position.x, size.w),
        to_ca_y(position.y, size.h, container_height),
    )


def from_ca_layer_space(
    ca_x: float, ca_y: float, size: Size, container_height: float | None = None
) -> Vec2:
    """
    Inverse of to_ca_layer_space().

    Rounding done while serializing is not reversible: the result can differ
    up to one unit per axis from the original editor position.
    """
    return Vec2(
        from_ca_x(ca_x, size.w),
        from_ca_y(ca_y, size.h, container_height),
    )


def degrees_to_radians(degrees: float) -> float:
    return degrees * math.pi / 180


def radians_to_degrees(radians: float) -> float:
    return radians * 180 / math.pi

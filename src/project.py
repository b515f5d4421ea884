# castudio
# Copyright 2025 - Ricardo Quesada

import uuid
from dataclasses import asdict, dataclass, field
from enum import IntFlag, auto
from typing import Self


class ProjectPropertyFlags(IntFlag):
    NAME = auto()
    SIZE = auto()
    BACKGROUND = auto()
    STATES = auto()
    ASSETS = auto()
    GEOMETRY = auto()


@dataclass
class CAProject:
    """Project metadata. The root layer always has the project's size."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Untitled Project"
    width: float = 390
    height: float = 844
    background: str | None = None
    # 1: top-left origin. Written as the root geometryFlipped.
    geometry_flipped: int = 0

    @classmethod
    def from_dict(cls, d: dict) -> Self:
        project = cls()
        for k, v in d.items():
            if hasattr(project, k):
                setattr(project, k, v)
        return project

    def to_dict(self) -> dict:
        return asdict(self)

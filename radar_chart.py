"""
Radar chart geometry for trait scores.

Index 0 sits at the top and traits proceed clockwise in screen coordinates
(y grows downward), matching an SVG viewBox.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple, Union

Point = Tuple[float, float]

GRID_LEVELS = (0.25, 0.5, 0.75, 1.0)
MIN_TRAITS = 3


@dataclass
class InsufficientData:
    """Fewer than three traits; nothing sensible to draw"""
    trait_count: int
    required: int = MIN_TRAITS

    def to_dict(self) -> Dict:
        return {
            'status': 'insufficient_data',
            'trait_count': self.trait_count,
            'required': self.required,
        }


@dataclass
class Axis:
    trait: str
    angle: float
    start: Point
    end: Point
    label_anchor: Point


@dataclass
class RadarChart:
    center: Point
    radius: float
    polygon: List[Point]
    axes: List[Axis]
    grid_radii: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'status': 'ok',
            'center': list(self.center),
            'radius': self.radius,
            'polygon': [list(p) for p in self.polygon],
            'axes': [
                {
                    'trait': axis.trait,
                    'angle': axis.angle,
                    'start': list(axis.start),
                    'end': list(axis.end),
                    'label': list(axis.label_anchor),
                }
                for axis in self.axes
            ],
            'grid_radii': self.grid_radii,
        }


def axis_angle(index: int, count: int) -> float:
    return index * (2 * math.pi / count) - math.pi / 2


def _polar(center: Point, distance: float, angle: float) -> Point:
    return (
        center[0] + distance * math.cos(angle),
        center[1] + distance * math.sin(angle),
    )


def _score_of(item) -> Tuple[str, float]:
    if isinstance(item, dict):
        return item['trait'], float(item['score'])
    return item.trait, float(item.score)


def project_radar(
    traits: Sequence,
    radius: float = 100.0,
    label_offset: float = 20.0,
    center: Point = (0.0, 0.0),
) -> Union[RadarChart, InsufficientData]:
    """Project ordered ``{trait, score}`` items (score 0-100) onto a polygon."""
    items = [_score_of(item) for item in traits]
    n = len(items)
    if n < MIN_TRAITS:
        return InsufficientData(trait_count=n)

    polygon: List[Point] = []
    axes: List[Axis] = []
    for i, (trait, score) in enumerate(items):
        angle = axis_angle(i, n)
        score = max(0.0, min(100.0, score))
        polygon.append(_polar(center, (score / 100) * radius, angle))
        axes.append(Axis(
            trait=trait,
            angle=angle,
            start=center,
            end=_polar(center, radius, angle),
            label_anchor=_polar(center, radius + label_offset, angle),
        ))

    return RadarChart(
        center=center,
        radius=radius,
        polygon=polygon,
        axes=axes,
        grid_radii=[radius * level for level in GRID_LEVELS],
    )

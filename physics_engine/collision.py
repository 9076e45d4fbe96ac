"""
Cannon Physics Engine - Goal Geometry and Collision Oracle

The goal is two solid posts on a solid base with a thin sensor band across
its mouth. Only projectile overlap with the sensor counts as a goal; posts
are physical colliders that bounce the ball.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

# ---------- Body labels ----------
PROJECTILE_LABEL = "ball"
SENSOR_LABEL = "hole_sensor"
LEFT_POST_LABEL = "goal_post_left"
RIGHT_POST_LABEL = "goal_post_right"
BASE_LABEL = "goal_base"
GROUND_LABEL = "ground"

SENSOR_THICKNESS = 1.0
# Slack for float rounding when comparing edges that meet exactly
GEOMETRY_TOLERANCE = 1e-9


# ---------- Data Classes ----------
@dataclass
class Target:
    """Goal placement: centre x plus the opening dimensions."""
    x: float
    half_width: float = 20.0
    height: float = 40.0
    wall_thickness: float = 4.0

    @property
    def width(self) -> float:
        return 2.0 * self.half_width


@dataclass(frozen=True)
class Rect:
    """Axis-aligned box given by its centre and size."""
    label: str
    cx: float
    cy: float
    width: float
    height: float

    @property
    def left(self) -> float:
        return self.cx - self.width / 2.0

    @property
    def right(self) -> float:
        return self.cx + self.width / 2.0

    @property
    def top(self) -> float:
        return self.cy - self.height / 2.0

    @property
    def bottom(self) -> float:
        return self.cy + self.height / 2.0


@dataclass(frozen=True)
class GoalGeometry:
    """Colliders and sensor making up one goal."""
    left_post: Rect
    right_post: Rect
    base: Rect
    sensor: Rect

    @property
    def solids(self) -> Tuple[Rect, Rect, Rect]:
        return (self.left_post, self.right_post, self.base)


@dataclass(frozen=True)
class ContactPair:
    """Raw overlap reported by the world simulator."""
    body_a: str
    body_b: str

    def involves(self, label: str) -> bool:
        return label in (self.body_a, self.body_b)


class ContactKind(enum.Enum):
    GOAL_ENTER = "goal_enter"
    IRRELEVANT = "irrelevant"


@dataclass(frozen=True)
class CollisionEvent:
    """A classified goal entry, stamped with the round it belongs to."""
    kind: ContactKind
    generation: int


# ---------- Geometry ----------
def build_goal(target: Target, ground_y: float) -> GoalGeometry:
    """Lay out posts, base and sensor for ``target`` standing on the ground.

    Raises:
        ValueError: if the layout breaks the goal invariants (post separation
            must equal the goal width, the sensor must sit between the posts).
    """
    wall = target.wall_thickness
    hole_y = ground_y - target.height / 2.0

    left_post = Rect(LEFT_POST_LABEL, target.x - target.half_width, hole_y, wall, target.height)
    right_post = Rect(RIGHT_POST_LABEL, target.x + target.half_width, hole_y, wall, target.height)
    base = Rect(
        BASE_LABEL, target.x, hole_y + target.height / 2.0 - wall / 2.0, target.width, wall,
    )
    sensor = Rect(SENSOR_LABEL, target.x, hole_y, target.width - wall, SENSOR_THICKNESS)

    goal = GoalGeometry(left_post, right_post, base, sensor)
    check_goal(goal, target)
    return goal


def check_goal(goal: GoalGeometry, target: Target) -> None:
    separation = goal.right_post.cx - goal.left_post.cx
    if abs(separation - target.width) > GEOMETRY_TOLERANCE:
        raise ValueError(
            f"Post separation {separation} does not match goal width {target.width}"
        )
    if goal.sensor.width > target.width + GEOMETRY_TOLERANCE:
        raise ValueError(f"Sensor width {goal.sensor.width} exceeds goal width {target.width}")
    if (
        goal.sensor.left < goal.left_post.right - GEOMETRY_TOLERANCE
        or goal.sensor.right > goal.right_post.left + GEOMETRY_TOLERANCE
    ):
        raise ValueError("Sensor band overlaps a goal post")


def circle_overlaps_rect(cx: float, cy: float, radius: float, rect: Rect) -> bool:
    """Circle/box overlap via the closest point on the box."""
    nearest_x = min(max(cx, rect.left), rect.right)
    nearest_y = min(max(cy, rect.top), rect.bottom)
    dx = cx - nearest_x
    dy = cy - nearest_y
    return dx * dx + dy * dy <= radius * radius


# ---------- Oracle ----------
def classify(contact: ContactPair) -> ContactKind:
    """Projectile touching the sensor band is a goal; anything else is not."""
    if contact.involves(PROJECTILE_LABEL) and contact.involves(SENSOR_LABEL):
        return ContactKind.GOAL_ENTER
    return ContactKind.IRRELEVANT


@dataclass
class CollisionOracle:
    """Buffers world contacts between ticks and hands back goal entries.

    The match polls once per tick; contacts seen while no round is in flight
    are dropped.
    """
    _pending: List[ContactPair] = field(default_factory=list)

    def attach(self, subscribe: Callable[[Callable[[ContactPair], None]], None]) -> None:
        """Register with a world simulator's ``subscribe_collisions``."""
        subscribe(self.record)

    def record(self, contact: ContactPair) -> None:
        self._pending.append(contact)

    def poll(self, generation: Optional[int]) -> List[CollisionEvent]:
        """Drain buffered contacts.

        Args:
            generation: Current in-flight round, or None when nothing is in
                flight (everything buffered is then discarded).
        """
        pending, self._pending = self._pending, []
        if generation is None:
            if pending:
                logger.debug("Discarding %d contacts outside a flight", len(pending))
            return []
        return [
            CollisionEvent(ContactKind.GOAL_ENTER, generation)
            for contact in pending
            if classify(contact) is ContactKind.GOAL_ENTER
        ]

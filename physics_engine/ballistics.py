"""
Cannon Physics Engine - Trajectory Model

Simplified forward model of a cannonball flight, used by the solvers to
search for shots and by the gym environment to score them. It is independent
of the world simulator that moves the live projectile frame by frame.

Coordinate system: screen space, x=right, y=down (gravity is positive).
Units: pixels. Accelerations are configured in px/s² and converted to
per-step values with STEP_RATE; power is launch speed in px/s.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

# ---------- Constants ----------
STEP_RATE = 60                # simulation steps per second
GRAVITY = 900.0               # px/s²
POWER_SCALE = 1.0 / STEP_RATE # power (px/s) -> per-step speed (px/step)
MAX_STEPS = 800               # step budget for a single forward simulation

MIN_POWER = 100.0
MAX_POWER = 800.0


# ---------- Data Classes ----------
@dataclass
class Environment:
    """Gravity and wind acting on every shot of a round."""
    gravity: float = GRAVITY  # px/s², downward
    wind: float = 0.0         # px/s², signed horizontal
    ground_y: float = 550.0   # y of the ground surface

    def per_step(self, step_rate: int = STEP_RATE) -> Tuple[float, float]:
        """Return (wind_x, gravity_y) as per-step accelerations."""
        scale = 1.0 / (step_rate * step_rate)
        return self.wind * scale, self.gravity * scale


@dataclass(frozen=True)
class ShotParameters:
    """Cannon setting: elevation in degrees and power in px/s."""
    angle: float
    power: float


# ---------- Physics Functions ----------
def compute_launch_velocity(
    angle_deg: float,
    power: float,
    power_scale: float = POWER_SCALE,
) -> np.ndarray:
    """Convert an angle/power pair into a per-step velocity vector.

    Screen y points down, so an upward shot has negative vy.
    """
    angle = math.radians(angle_deg)
    speed = power * power_scale
    return np.array([math.cos(angle) * speed, -math.sin(angle) * speed], dtype=np.float64)


def simulate(
    start_position,
    start_velocity,
    environment: Environment,
    ground_y: Optional[float] = None,
    max_steps: int = MAX_STEPS,
    step_rate: int = STEP_RATE,
) -> Optional[float]:
    """Forward-integrate a shot and return its landing x.

    Fixed-step explicit Euler: each step moves the position by the current
    velocity, then adds the per-step wind and gravity to the velocity. The
    shot lands on the first step whose y is below ``ground_y``.

    Args:
        start_position: Launch position [x, y].
        start_velocity: Per-step velocity [vx, vy].
        environment: Gravity, wind and default ground height.
        ground_y: Ground height override (defaults to ``environment.ground_y``).
        max_steps: Step budget.
        step_rate: Steps per second used to scale the accelerations.

    Returns:
        Landing x-coordinate, or None when the step budget runs out first.
    """
    if ground_y is None:
        ground_y = environment.ground_y
    wind_x, gravity_y = environment.per_step(step_rate)

    # Plain floats: this runs A*P times per solve
    x, y = float(start_position[0]), float(start_position[1])
    vx, vy = float(start_velocity[0]), float(start_velocity[1])

    for _ in range(max_steps):
        x += vx
        y += vy
        vx += wind_x
        vy += gravity_y
        if y > ground_y:
            return x

    return None


def simulate_path(
    start_position,
    start_velocity,
    environment: Environment,
    ground_y: Optional[float] = None,
    max_steps: int = MAX_STEPS,
    step_rate: int = STEP_RATE,
) -> np.ndarray:
    """Same integration as ``simulate`` but keeps every position.

    Returns an (N, 2) array starting at ``start_position``. Used for plots.
    """
    if ground_y is None:
        ground_y = environment.ground_y
    wind_x, gravity_y = environment.per_step(step_rate)

    pos = np.array(start_position, dtype=np.float64)
    vel = np.array(start_velocity, dtype=np.float64)
    accel = np.array([wind_x, gravity_y])
    points = [pos.copy()]

    for _ in range(max_steps):
        pos = pos + vel
        vel = vel + accel
        points.append(pos.copy())
        if pos[1] > ground_y:
            break

    return np.array(points)


# ---------- Smoke Test ----------
if __name__ == "__main__":
    from rich.console import Console
    from rich.table import Table

    console = Console()
    console.print("\n[bold cyan]═══ Trajectory Model Smoke Test ═══[/bold cyan]\n")

    origin = np.array([100.0, 530.0])
    env = Environment()

    table = Table(title="Landing x (no wind)")
    table.add_column("Angle", style="cyan")
    for power in (200, 450, 800):
        table.add_column(f"power={power}", justify="right")

    for angle in range(15, 90, 15):
        row = []
        for power in (200, 450, 800):
            landing = simulate(origin, compute_launch_velocity(angle, power), env)
            row.append("no landing" if landing is None else f"{landing:.1f}")
        table.add_row(f"{angle}°", *row)
    console.print(table)

    landing = simulate(origin, compute_launch_velocity(45, 450), env)
    assert landing is not None, "45°/450 should land within the step budget"
    console.print(f"  45°/450 lands at x={landing:.1f}")

    tail = simulate(origin, compute_launch_velocity(45, 450), Environment(wind=200.0))
    assert tail > landing, "Tailwind should carry the ball further"
    console.print(f"  With tailwind: x={tail:.1f}")

    console.print("\n[bold green]Trajectory smoke test passed![/bold green]\n")

# --------------------------------------------------------------------------------
# Copyright (c) 2026 Krushang Gabani
# All rights reserved.
#
# Configuration module for the MLS-MPM cloud simulation: particle store,
# grid, material, gravity, boundary, turbulence and pointer settings.
#
# Author: Krushang Gabani
# Date: October 19, 2026
# --------------------------------------------------------------------------------

import math
import numbers
from dataclasses import dataclass, fields
from enum import Enum
from typing import Tuple


class GravityMode(str, Enum):
    BACK = "back"
    DOWN = "down"
    CENTER = "center"
    DEVICE = "device"

    @classmethod
    def parse(cls, value) -> "GravityMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            options = ", ".join(m.value for m in cls)
            raise ValueError(f"unknown gravity mode {value!r}, expected one of: {options}") from None


ARCHS = ("cpu", "gpu", "cuda", "vulkan", "metal")
POINTER_FALLOFFS = ("point", "ray")

# particles per density level of the auto rest density
PARTICLES_PER_LEVEL = 8192


@dataclass
class Config:
    """
    Configuration for the MLS-MPM simulation. Distances are in grid cells,
    time in simulation units (one frame at 60 fps is ``step_scale / 60``).
    """

    # ---------------------------- Particle Store ------------------------------
    max_particles: int = 8192 * 16  # Capacity, allocated once
    n_particles: int = 8192 * 8  # Active prefix at start-up
    seed: int = 0  # RNG seed for the initial distribution
    spawn_min: Tuple[float, float, float] = (0.2, 0.2, 0.2)  # Spawn box, fraction of the domain
    spawn_max: Tuple[float, float, float] = (0.8, 0.8, 0.8)
    spawn_speed: float = 0.5  # Initial velocities uniform in [-spawn_speed, spawn_speed]
    mass_jitter: float = 0.0  # mass = 1 - jitter * U(0, 1), a stable per-particle render seed
    reseed_on_activate: bool = False  # Re-seed particles when the active count grows

    # --------------------------------- Grid -----------------------------------
    grid_size: int = 64  # Cells per axis
    mass_epsilon: float = 1e-6  # Cells at or below this mass hold no fluid
    margin_low: float = 2.0  # Particle clamp band, low faces
    margin_high: float = 2.0  # Particle clamp band, high faces

    # ----------------------------- Time Stepping ------------------------------
    time_scale: float = 1.5  # Per-frame multiplier on the timestep
    max_delta: float = 1.0 / 60.0  # Longest frame delta accepted (seconds)
    step_scale: float = 6.0  # Seconds to simulation time units

    # ------------------------- Material Properties ----------------------------
    stiffness: float = 3.0  # Equation of state stiffness
    rest_density: float = 4.0  # Density at which pressure vanishes
    density: float = 2.0  # Density factor for auto_rest_density
    auto_rest_density: bool = False  # Derive rest_density from the active count and density
    dynamic_viscosity: float = 0.1
    max_pressure: float = 50.0  # Saturation for the equation of state
    max_velocity: float = 30.0  # Saturation for grid and particle velocity (cells / unit)

    # -------------------------------- Gravity ---------------------------------
    gravity_mode: str = "down"  # back, down, center, device
    gravity_strength: float = 0.3
    device_gravity: Tuple[float, float, float] = (0.0, 0.0, 0.0)  # Last sensor reading
    device_gravity_scale: float = 0.02

    # ------------------------------- Boundary ---------------------------------
    wall_thickness: float = 3.0  # Soft repulsion band on the grid
    wall_stiffness: float = 10.0  # Inward acceleration per cell of penetration
    particle_wall_stiffness: float = 0.3
    particle_wall_lookahead: float = 3.0  # Frames of motion predicted for the particle wall

    # ------------------------------ Turbulence --------------------------------
    noise_amplitude: float = 0.4
    noise_speed: float = 1.0
    noise_scale: float = 0.015  # Noise frequency per cell

    # ------------------------------- Pointer ----------------------------------
    pointer_strength: float = 2.0  # > 0 attracts, < 0 repels
    pointer_radius: float = 8.0  # Cells
    pointer_falloff: str = "point"  # point, ray
    pointer_hold_frames: int = 0  # 0 keeps the last point until cleared

    # ------------------------- Smoothing / Render Hints -----------------------
    density_smoothing: float = 0.05
    direction_smoothing: float = 0.1
    color_slow: Tuple[float, float, float] = (0.55, 0.65, 0.85)
    color_fast: Tuple[float, float, float] = (1.0, 0.95, 0.9)
    color_speed_reference: float = 4.0

    # ----------------------------- World Mapping ------------------------------
    world_origin: Tuple[float, float, float] = (-0.5, 0.0, -0.5)
    world_size: float = 1.0  # Edge of the world cube the grid maps onto

    # -------------------------------- Backend ---------------------------------
    arch: str = "gpu"
    profile: bool = False  # Synchronise and time every stage

    def validate(self) -> "Config":
        check_int_range("max_particles", self.max_particles, 1)
        check_active_count(self.n_particles, self.max_particles)
        check_int_range("grid_size", self.grid_size, 8)
        check_non_negative("spawn_speed", self.spawn_speed)
        check_fraction("mass_jitter", self.mass_jitter, allow_zero=True, allow_one=False)
        for d in range(3):
            lo, hi = self.spawn_min[d], self.spawn_max[d]
            if not (0.0 <= lo < hi <= 1.0):
                raise ValueError(f"spawn box axis {d} must satisfy 0 <= min < max <= 1, got ({lo}, {hi})")

        check_positive("mass_epsilon", self.mass_epsilon)
        # the 27-node stencil of a particle must stay inside the lattice
        if self.margin_low < 0.5:
            raise ValueError(f"margin_low must be >= 0.5, got {self.margin_low}")
        if self.margin_high <= 1.5:
            raise ValueError(f"margin_high must be > 1.5, got {self.margin_high}")
        if self.margin_low >= self.grid_size - self.margin_high:
            raise ValueError("margins leave no room for particles in the domain")

        check_non_negative("time_scale", self.time_scale)
        check_positive("max_delta", self.max_delta)
        check_positive("step_scale", self.step_scale)

        check_non_negative("stiffness", self.stiffness)
        check_positive("rest_density", self.rest_density)
        check_positive("density", self.density)
        check_non_negative("dynamic_viscosity", self.dynamic_viscosity)
        check_positive("max_pressure", self.max_pressure)
        check_positive("max_velocity", self.max_velocity)

        GravityMode.parse(self.gravity_mode)
        check_non_negative("gravity_strength", self.gravity_strength)
        check_vector("device_gravity", self.device_gravity)
        check_finite("device_gravity_scale", self.device_gravity_scale)

        check_non_negative("wall_thickness", self.wall_thickness)
        check_non_negative("wall_stiffness", self.wall_stiffness)
        check_non_negative("particle_wall_stiffness", self.particle_wall_stiffness)
        check_non_negative("particle_wall_lookahead", self.particle_wall_lookahead)

        check_non_negative("noise_amplitude", self.noise_amplitude)
        check_non_negative("noise_speed", self.noise_speed)
        check_positive("noise_scale", self.noise_scale)

        check_finite("pointer_strength", self.pointer_strength)
        check_positive("pointer_radius", self.pointer_radius)
        if self.pointer_falloff not in POINTER_FALLOFFS:
            raise ValueError(f"pointer_falloff must be one of {POINTER_FALLOFFS}, got {self.pointer_falloff!r}")
        check_int_range("pointer_hold_frames", self.pointer_hold_frames, 0)

        check_fraction("density_smoothing", self.density_smoothing)
        check_fraction("direction_smoothing", self.direction_smoothing)
        check_vector("color_slow", self.color_slow)
        check_vector("color_fast", self.color_fast)
        check_positive("color_speed_reference", self.color_speed_reference)

        check_vector("world_origin", self.world_origin)
        check_positive("world_size", self.world_size)

        if self.arch not in ARCHS:
            raise ValueError(f"arch must be one of {ARCHS}, got {self.arch!r}")
        return self

    def scaled_rest_density(self, count: int) -> float:
        """Rest density for ``count`` active particles: 0.25 * density per level."""
        level = max(count / PARTICLES_PER_LEVEL, 1.0)
        return 0.25 * level * self.density

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def check_finite(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got {value!r}")


def check_positive(name: str, value) -> None:
    check_finite(name, value)
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")


def check_non_negative(name: str, value) -> None:
    check_finite(name, value)
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")


def check_fraction(name: str, value, allow_zero=False, allow_one=True) -> None:
    check_finite(name, value)
    lo_ok = value >= 0 if allow_zero else value > 0
    hi_ok = value <= 1 if allow_one else value < 1
    if not (lo_ok and hi_ok):
        raise ValueError(f"{name} must lie in the unit interval, got {value}")


def check_int_range(name: str, value, lo: int, hi: int = None) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < lo or (hi is not None and value > hi):
        upper = "" if hi is None else f" and <= {hi}"
        raise ValueError(f"{name} must be >= {lo}{upper}, got {value}")


def check_active_count(count, max_particles: int) -> None:
    check_int_range("active particle count", count, 0, max_particles)


def check_vector(name: str, value) -> Tuple[float, float, float]:
    if isinstance(value, (str, bytes)) or not hasattr(value, "__len__") or len(value) != 3:
        raise ValueError(f"{name} must have 3 components, got {value!r}")
    for c in value:
        check_finite(name, c)
    return tuple(float(c) for c in value)

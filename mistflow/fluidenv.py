# --------------------------------------------------------------------------------
# Copyright (c) 2026 Krushang Gabani
# All rights reserved.
#
# High-level environment wrapper for the MLS-MPM cloud simulator: owns the
# particle store, the scratch grid and the solver, and exposes the control
# surface used by the outer application (pointer, gravity, material, ...).
#
# Author: Krushang Gabani
# Date: October 19, 2026
# --------------------------------------------------------------------------------

import math
import numbers
import os
from dataclasses import replace
from typing import Dict, Optional

import numpy as np
import taichi as ti

from mistflow.config.base_config import (
    Config,
    GravityMode,
    check_active_count,
    check_non_negative,
    check_positive,
    check_vector,
)
from mistflow.simulators.grid import Grid
from mistflow.simulators.kernels import direction_to_grid, world_to_grid
from mistflow.simulators.mls_mpm import MLS_MPM
from mistflow.simulators.particles import ParticleStore
from mistflow.utils.message import log, log_time


def init_backend(cfg: Config, **kwargs):
    """Initialise Taichi for the configured architecture."""
    arch = {
        "cpu": ti.cpu,
        "gpu": ti.gpu,
        "cuda": ti.cuda,
        "vulkan": ti.vulkan,
        "metal": ti.metal,
    }[cfg.arch]
    ti.init(arch=arch, default_fp=ti.f32, default_ip=ti.i32, random_seed=cfg.seed, **kwargs)


class FluidEnv:
    """
    Simulation driver. ``advance`` runs one frame of the five-stage
    pipeline; setters may be called at any time between frames and take
    effect at the start of the next one.
    """

    def __init__(self, cfg: Config):
        cfg.validate()
        # runtime copy, mutated by the setters
        self.cfg = replace(cfg)
        if self.cfg.auto_rest_density:
            self.cfg.rest_density = self.cfg.scaled_rest_density(self.cfg.n_particles)

        self.particles = ParticleStore(self.cfg)
        self.grid = Grid(self.cfg.grid_size)
        self.simulator = MLS_MPM(self.cfg, self.particles, self.grid)

        self._n_active = self.cfg.n_particles
        self._pointer = None
        self._pointer_age = 0
        self._t = 0.0
        self._frame = 0

        self.particles.seed()
        log(f"fluid env ready: {self._n_active:,} / {self.cfg.max_particles:,} particles active, "
            f"grid {self.cfg.grid_size}^3")

    # ----------------------------------------------------------- properties

    @property
    def n_active(self) -> int:
        return self._n_active

    @property
    def time(self) -> float:
        return self._t

    @property
    def frame(self) -> int:
        return self._frame

    @property
    def pointer(self) -> Optional[dict]:
        return self._pointer

    @property
    def performance_stats(self) -> Dict[str, float]:
        return dict(self.simulator.performance_stats)

    # ------------------------------------------------------- control surface

    def set_active_count(self, count: int):
        check_active_count(count, self.cfg.max_particles)
        if self.cfg.reseed_on_activate and count > self._n_active:
            self.particles.seed(self._n_active, count)
        self._n_active = int(count)
        if self.cfg.auto_rest_density:
            self.cfg.rest_density = self.cfg.scaled_rest_density(self._n_active)

    def set_time_scale(self, scale: float):
        check_non_negative("time_scale", scale)
        self.cfg.time_scale = float(scale)

    def set_gravity_mode(self, mode, vector=None):
        mode = GravityMode.parse(mode)
        if vector is not None:
            self.set_device_gravity(vector)
        self.cfg.gravity_mode = mode.value

    def set_device_gravity(self, vector):
        self.cfg.device_gravity = check_vector("device_gravity", vector)

    def set_material(self, stiffness=None, rest_density=None, dynamic_viscosity=None, density=None):
        # validate everything before touching the config
        if stiffness is not None:
            check_non_negative("stiffness", stiffness)
        if rest_density is not None:
            check_positive("rest_density", rest_density)
        if dynamic_viscosity is not None:
            check_non_negative("dynamic_viscosity", dynamic_viscosity)
        if density is not None:
            check_positive("density", density)

        if stiffness is not None:
            self.cfg.stiffness = float(stiffness)
        if rest_density is not None:
            self.cfg.rest_density = float(rest_density)
        if dynamic_viscosity is not None:
            self.cfg.dynamic_viscosity = float(dynamic_viscosity)
        if density is not None:
            self.cfg.density = float(density)
            if self.cfg.auto_rest_density:
                self.cfg.rest_density = self.cfg.scaled_rest_density(self._n_active)

    def set_turbulence(self, amplitude=None, speed=None):
        if amplitude is not None:
            check_non_negative("noise_amplitude", amplitude)
        if speed is not None:
            check_non_negative("noise_speed", speed)

        if amplitude is not None:
            self.cfg.noise_amplitude = float(amplitude)
        if speed is not None:
            self.cfg.noise_speed = float(speed)

    def pointer_interaction(self, origin_world, direction_world, target_world):
        """Set the interaction point (world space) used by the next frames."""
        origin = check_vector("pointer origin", origin_world)
        direction = check_vector("pointer direction", direction_world)
        target = check_vector("pointer target", target_world)
        self._pointer = {
            "origin": world_to_grid(origin, self.cfg),
            "direction": direction_to_grid(direction),
            "target": world_to_grid(target, self.cfg),
        }
        self._pointer_age = 0

    def clear_pointer(self):
        self._pointer = None
        self._pointer_age = 0

    @log_time
    def reset(self):
        self.particles.reset_rng()
        self.particles.seed()
        self.grid.clear()
        self._pointer = None
        self._pointer_age = 0
        self._t = 0.0
        self._frame = 0

    # ------------------------------------------------------------------ step

    def frame_dt(self, delta: float) -> float:
        if isinstance(delta, bool) or not isinstance(delta, numbers.Real) or not math.isfinite(delta):
            raise ValueError(f"delta time must be a finite number, got {delta!r}")
        if delta < 0:
            raise ValueError(f"delta time must be >= 0, got {delta}")
        return min(float(delta), self.cfg.max_delta) * self.cfg.step_scale * self.cfg.time_scale

    def advance(self, delta: float):
        """Run exactly one frame: clear, P2G transfer, P2G stress, grid update, G2P."""
        dt = self.frame_dt(delta)
        self.simulator.load_params(self.cfg, self._pointer)
        self.simulator.step(self._n_active, dt, self._t, profile=self.cfg.profile)

        self._t += dt
        self._frame += 1
        if self._pointer is not None and self.cfg.pointer_hold_frames > 0:
            self._pointer_age += 1
            if self._pointer_age >= self.cfg.pointer_hold_frames:
                self.clear_pointer()

    # --------------------------------------------------------------- outputs

    def particles_view(self) -> Dict[str, np.ndarray]:
        """Published buffer of the active prefix (copies, grid units)."""
        return self.particles.export(self._n_active)

    def snapshot(self) -> Dict[str, np.ndarray]:
        return self.particles.snapshot()

    def restore(self, state: Dict[str, np.ndarray]):
        self.particles.restore(state)

    def save_frame(self, idx: int, output_dir: str) -> str:
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(os.path.abspath(output_dir), f"frame_{idx:04}.npz")
        np.savez(path, time=np.float32(self._t), **self.particles_view())
        return path

# --------------------------------------------------------------------------------
# Copyright (c) 2026 Krushang Gabani
# All rights reserved.
#
# MLS_MPM: Taichi-based Moving-Least-Squares Material Point Method solver for
# a weakly compressible, viscous cloud. One step is five kernels:
# clear grid -> P2G transfer -> P2G stress -> grid update -> G2P.
#
# Author: Krushang Gabani
# Date: October 19, 2026
# --------------------------------------------------------------------------------

import time

import numpy as np
import taichi as ti

from mistflow.config.base_config import GravityMode
from mistflow.simulators.kernels import APIC_SCALE, saturate, stencil, turbulence

GRAVITY_CODES = {
    GravityMode.BACK: 0,
    GravityMode.DOWN: 1,
    GravityMode.CENTER: 2,
    GravityMode.DEVICE: 3,
}
GRAVITY_CENTER = GRAVITY_CODES[GravityMode.CENTER]

# lower bound on the resampled density before it is used as a divisor
DENSITY_FLOOR = 1e-4

STAGES = ("clear_grid", "p2g_transfer", "p2g_stress", "grid_update", "g2p")

# parameters read by the kernels, loaded once per frame
FrameParams = ti.types.struct(
    stiffness=ti.f32,
    rest_density=ti.f32,
    dynamic_viscosity=ti.f32,
    max_pressure=ti.f32,
    max_velocity=ti.f32,
    mass_epsilon=ti.f32,
    margin_low=ti.f32,
    margin_high=ti.f32,
    gravity_mode=ti.i32,
    gravity_strength=ti.f32,
    gravity=ti.math.vec3,
    wall_thickness=ti.f32,
    wall_stiffness=ti.f32,
    particle_wall_stiffness=ti.f32,
    particle_wall_lookahead=ti.f32,
    noise_amplitude=ti.f32,
    noise_speed=ti.f32,
    noise_scale=ti.f32,
    pointer_active=ti.i32,
    pointer_ray=ti.i32,
    pointer_strength=ti.f32,
    pointer_radius=ti.f32,
    pointer_origin=ti.math.vec3,
    pointer_direction=ti.math.vec3,
    pointer_target=ti.math.vec3,
    density_smoothing=ti.f32,
    direction_smoothing=ti.f32,
    color_slow=ti.math.vec3,
    color_fast=ti.math.vec3,
    color_speed_reference=ti.f32,
)

_SCALARS = (
    "stiffness", "rest_density", "dynamic_viscosity", "max_pressure", "max_velocity",
    "mass_epsilon", "margin_low", "margin_high", "gravity_strength",
    "wall_thickness", "wall_stiffness", "particle_wall_stiffness", "particle_wall_lookahead",
    "noise_amplitude", "noise_speed", "noise_scale", "pointer_strength", "pointer_radius",
    "density_smoothing", "direction_smoothing", "color_speed_reference",
)


def gravity_vector(cfg) -> np.ndarray:
    """Constant gravity for the back / down / device modes (center is per cell)."""
    mode = GravityMode.parse(cfg.gravity_mode)
    s = cfg.gravity_strength
    if mode == GravityMode.BACK:
        return np.array([0.0, 0.0, s], dtype=np.float32)
    if mode == GravityMode.DOWN:
        return np.array([0.0, -s, 0.0], dtype=np.float32)
    if mode == GravityMode.DEVICE:
        # sensors report +y for an upright device, the domain's y axis points up
        g = np.asarray(cfg.device_gravity, dtype=np.float32) * cfg.device_gravity_scale
        g[1] = -g[1]
        return g
    return np.zeros(3, dtype=np.float32)


@ti.data_oriented
class MLS_MPM:
    def __init__(self, cfg, particles, grid):
        self.cfg       = cfg
        self.particles = particles
        self.grid      = grid
        self.n_grid    = grid.n_grid

        self.params = FrameParams.field(shape=())

        # wall time of the last profiled step, per stage
        self.performance_stats = {name: 0.0 for name in STAGES}

    # ------------------------------------------------------------------ params

    def load_params(self, cfg, pointer=None):
        """Copy the frame's parameters into the kernel-visible struct."""
        for name in _SCALARS:
            getattr(self.params, name)[None] = float(getattr(cfg, name))
        self.params.gravity_mode[None] = GRAVITY_CODES[GravityMode.parse(cfg.gravity_mode)]
        self.params.gravity[None] = gravity_vector(cfg).tolist()
        self.params.color_slow[None] = list(cfg.color_slow)
        self.params.color_fast[None] = list(cfg.color_fast)

        if pointer is None:
            self.params.pointer_active[None] = 0
        else:
            self.params.pointer_active[None] = 1
            self.params.pointer_ray[None] = int(cfg.pointer_falloff == "ray")
            self.params.pointer_origin[None] = [float(c) for c in pointer["origin"]]
            self.params.pointer_direction[None] = [float(c) for c in pointer["direction"]]
            self.params.pointer_target[None] = [float(c) for c in pointer["target"]]

    # ------------------------------------------------------------- functions

    @ti.func
    def gravity_at(self, pos):
        g = self.params[None].gravity
        if self.params[None].gravity_mode == GRAVITY_CENTER:
            c = self.n_grid * 0.5
            to_center = ti.Vector([c, c, c]) - pos
            dist = to_center.norm()
            g = ti.Vector.zero(ti.f32, 3)
            if dist > 1e-6:
                g = to_center / dist * self.params[None].gravity_strength
        return g

    @ti.func
    def wall_repulsion(self, pos):
        # inward acceleration proportional to the depth inside the wall band
        lo = self.params[None].wall_thickness
        hi = self.n_grid - lo
        k = self.params[None].wall_stiffness
        a = ti.Vector.zero(ti.f32, 3)
        for d in ti.static(range(3)):
            if pos[d] < lo:
                a[d] += (lo - pos[d]) * k
            elif pos[d] > hi:
                a[d] -= (pos[d] - hi) * k
        return a

    @ti.func
    def particle_wall(self, xp, v, dt):
        # velocity kick for particles predicted to enter the wall band
        x_next = xp + v * dt * self.params[None].particle_wall_lookahead
        lo = self.params[None].wall_thickness
        hi = self.n_grid - lo
        k = self.params[None].particle_wall_stiffness
        dv = ti.Vector.zero(ti.f32, 3)
        for d in ti.static(range(3)):
            if x_next[d] < lo:
                dv[d] += (lo - x_next[d]) * k
            elif x_next[d] > hi:
                dv[d] -= (x_next[d] - hi) * k
        return dv

    @ti.func
    def pointer_acceleration(self, xp):
        to_target = self.params[None].pointer_target - xp
        length = to_target.norm()
        dist = length
        if self.params[None].pointer_ray != 0:
            rel = xp - self.params[None].pointer_origin
            dist = self.params[None].pointer_direction.cross(rel).norm()
        radius = self.params[None].pointer_radius
        a = ti.Vector.zero(ti.f32, 3)
        if dist < radius and length > 1e-6:
            falloff = (1.0 - dist / radius) ** 2
            a = to_target / length * (self.params[None].pointer_strength * falloff)
        return a

    # --------------------------------------------------------------- kernels

    @ti.kernel
    def p2g_transfer(self, n: ti.i32):
        for p in range(n):
            base, fx, w = stencil(self.particles.x[p], self.n_grid)
            mass = self.particles.mass[p]
            vel = self.particles.v[p]
            C = self.particles.C[p]
            for offset in ti.static(ti.grouped(ti.ndrange(3, 3, 3))):
                dpos = offset.cast(ti.f32) - fx
                weight = w[offset[0]][0] * w[offset[1]][1] * w[offset[2]][2]
                idx = base + offset
                self.grid.m[idx] += weight * mass
                self.grid.v[idx] += weight * mass * (vel + C @ dpos)

    @ti.kernel
    def p2g_stress(self, n: ti.i32, dt: ti.f32):
        for p in range(n):
            base, fx, w = stencil(self.particles.x[p], self.n_grid)

            rho = 0.0
            for offset in ti.static(ti.grouped(ti.ndrange(3, 3, 3))):
                weight = w[offset[0]][0] * w[offset[1]][1] * w[offset[2]][2]
                rho += weight * self.grid.m[base + offset]

            # equation of state, compression only
            compression = ti.max(rho / self.params[None].rest_density - 1.0, 0.0)
            pressure = ti.min(self.params[None].stiffness * compression,
                              self.params[None].max_pressure)

            C = self.particles.C[p]
            stress = -pressure * ti.Matrix.identity(ti.f32, 3) \
                + self.params[None].dynamic_viscosity * (C + C.transpose())
            volume = self.particles.mass[p] / ti.max(rho, DENSITY_FLOOR)
            term = (-dt * volume * APIC_SCALE) * stress

            for offset in ti.static(ti.grouped(ti.ndrange(3, 3, 3))):
                dpos = offset.cast(ti.f32) - fx
                weight = w[offset[0]][0] * w[offset[1]][1] * w[offset[2]][2]
                self.grid.v[base + offset] += weight * (term @ dpos)

    @ti.kernel
    def grid_update(self, dt: ti.f32):
        for I in ti.grouped(self.grid.m):
            m = self.grid.m[I]
            v = ti.Vector.zero(ti.f32, 3)
            if m > self.params[None].mass_epsilon:
                pos = I.cast(ti.f32)
                v = self.grid.v[I] / m
                v += self.gravity_at(pos) * dt
                v += self.wall_repulsion(pos) * dt
                v = saturate(v, self.params[None].max_velocity)
            self.grid.v[I] = v

    @ti.kernel
    def g2p(self, n: ti.i32, dt: ti.f32, t: ti.f32):
        for p in range(n):
            xp = self.particles.x[p]
            base, fx, w = stencil(xp, self.n_grid)

            new_v = ti.Vector.zero(ti.f32, 3)
            new_B = ti.Matrix.zero(ti.f32, 3, 3)
            rho = 0.0
            for offset in ti.static(ti.grouped(ti.ndrange(3, 3, 3))):
                dpos = offset.cast(ti.f32) - fx
                weight = w[offset[0]][0] * w[offset[1]][1] * w[offset[2]][2]
                idx = base + offset
                gv = self.grid.v[idx]
                new_v += weight * gv
                new_B += weight * gv.outer_product(dpos)
                rho += weight * self.grid.m[idx]

            amplitude = self.params[None].noise_amplitude
            if amplitude > 0.0:
                sample = xp * self.params[None].noise_scale
                new_v += turbulence(sample, t, self.params[None].noise_speed) * (amplitude * dt)
            if self.params[None].pointer_active != 0:
                new_v += self.pointer_acceleration(xp) * dt
            new_v += self.particle_wall(xp, new_v, dt)
            new_v = saturate(new_v, self.params[None].max_velocity)

            x_new = xp + new_v * dt
            lo = self.params[None].margin_low
            hi = self.n_grid - self.params[None].margin_high
            for d in ti.static(range(3)):
                if x_new[d] < lo:
                    x_new[d] = lo
                    if new_v[d] < 0.0:
                        new_v[d] = 0.0
                elif x_new[d] > hi:
                    x_new[d] = hi
                    if new_v[d] > 0.0:
                        new_v[d] = 0.0

            self.particles.x[p] = x_new
            self.particles.v[p] = new_v
            self.particles.C[p] = APIC_SCALE * new_B

            rho_old = self.particles.density[p]
            self.particles.density[p] = rho_old + (rho - rho_old) * self.params[None].density_smoothing
            dir_old = self.particles.direction[p]
            self.particles.direction[p] = dir_old + (new_v - dir_old) * self.params[None].direction_smoothing

            heat = ti.min(new_v.norm() / self.params[None].color_speed_reference, 1.0)
            slow = self.params[None].color_slow
            self.particles.color[p] = slow + (self.params[None].color_fast - slow) * heat

    # ------------------------------------------------------------------ step

    def step(self, n: int, dt: float, t: float, profile: bool = False):
        stages = (
            (self.grid.clear, ()),
            (self.p2g_transfer, (n,)),
            (self.p2g_stress, (n, dt)),
            (self.grid_update, (dt,)),
            (self.g2p, (n, dt, t)),
        )
        for name, (kernel, args) in zip(STAGES, stages):
            if not profile:
                kernel(*args)
                continue
            start_time = time.perf_counter()
            kernel(*args)
            ti.sync()
            self.performance_stats[name] = time.perf_counter() - start_time

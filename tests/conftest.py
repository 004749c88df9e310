import numpy as np
import pytest
import taichi as ti

from mistflow.config.base_config import Config
from mistflow.fluidenv import FluidEnv
from mistflow.utils.message import enter_quiet, exit_quiet


@pytest.fixture(scope="session", autouse=True)
def taichi_backend():
    ti.init(arch=ti.cpu, default_fp=ti.f32, default_ip=ti.i32, random_seed=0)
    enter_quiet()
    yield
    exit_quiet()
    ti.reset()


def small_config(**overrides) -> Config:
    # 16^3 grid, no gravity, no turbulence: tests switch on what they exercise
    values = dict(
        max_particles=64,
        n_particles=0,
        grid_size=16,
        arch="cpu",
        gravity_strength=0.0,
        noise_amplitude=0.0,
    )
    values.update(overrides)
    return Config(**values)


def place_particles(env, positions, velocities=None):
    """Overwrite the leading particles with a hand-made state and activate them."""
    positions = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
    k = positions.shape[0]
    if velocities is None:
        velocities = np.zeros_like(positions)
    velocities = np.asarray(velocities, dtype=np.float32).reshape(-1, 3)

    state = env.snapshot()
    state["position"][:k] = positions
    state["velocity"][:k] = velocities
    state["affine"][:k] = 0.0
    state["mass"][:k] = 1.0
    state["density"][:k] = 0.0
    state["direction"][:k] = 0.0
    env.restore(state)
    env.set_active_count(k)
    return env


@pytest.fixture
def config():
    return small_config


@pytest.fixture
def make_env():
    def _make(positions=None, velocities=None, **overrides):
        env = FluidEnv(small_config(**overrides))
        if positions is not None:
            place_particles(env, positions, velocities)
        return env
    return _make


@pytest.fixture
def place():
    return place_particles

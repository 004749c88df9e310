import numpy as np
import pytest

G = 16
DT = 0.1


def update(env, cells):
    """Load ``{(i, j, k): (mass, momentum)}`` into the grid and run one update."""
    m = np.zeros((G, G, G), dtype=np.float32)
    v = np.zeros((G, G, G, 3), dtype=np.float32)
    for idx, (mass, momentum) in cells.items():
        m[idx] = mass
        v[idx] = momentum
    env.grid.m.from_numpy(m)
    env.grid.v.from_numpy(v)
    env.simulator.load_params(env.cfg)
    env.simulator.grid_update(DT)
    return env.grid.v.to_numpy()


def test_momentum_becomes_velocity(make_env):
    env = make_env()
    v = update(env, {(8, 8, 8): (2.0, (2.0, -1.0, 0.5))})
    np.testing.assert_allclose(v[8, 8, 8], (1.0, -0.5, 0.25), rtol=1e-6)


@pytest.mark.parametrize("mode, expected", [
    ("down", (0.0, -0.03, 0.0)),
    ("back", (0.0, 0.0, 0.03)),
])
def test_constant_gravity_modes(make_env, mode, expected):
    env = make_env(gravity_strength=0.3)
    env.set_gravity_mode(mode)
    v = update(env, {(8, 8, 8): (1.0, (0.0, 0.0, 0.0))})
    np.testing.assert_allclose(v[8, 8, 8], expected, atol=1e-7)


def test_center_gravity_points_at_the_middle(make_env):
    env = make_env(gravity_strength=0.3, gravity_mode="center")
    v = update(env, {
        (4, 8, 8): (1.0, (0.0, 0.0, 0.0)),
        (8, 12, 8): (1.0, (0.0, 0.0, 0.0)),
        (8, 8, 8): (1.0, (0.0, 0.0, 0.0)),
    })
    np.testing.assert_allclose(v[4, 8, 8], (0.03, 0.0, 0.0), atol=1e-7)
    np.testing.assert_allclose(v[8, 12, 8], (0.0, -0.03, 0.0), atol=1e-7)
    # no direction at the exact centre
    np.testing.assert_array_equal(v[8, 8, 8], (0.0, 0.0, 0.0))


def test_device_gravity_uses_last_reading(make_env):
    env = make_env(device_gravity_scale=0.02)
    # an upright device reads +y, the cloud falls toward -y
    env.set_gravity_mode("device", vector=(0.0, 50.0, 25.0))
    v = update(env, {(8, 8, 8): (1.0, (0.0, 0.0, 0.0))})
    np.testing.assert_allclose(v[8, 8, 8], (0.0, -0.1, 0.05), atol=1e-6)

    env.set_device_gravity((10.0, 0.0, 0.0))
    v = update(env, {(8, 8, 8): (1.0, (0.0, 0.0, 0.0))})
    np.testing.assert_allclose(v[8, 8, 8], (0.02, 0.0, 0.0), atol=1e-6)


def test_empty_cells_hold_no_velocity(make_env):
    env = make_env(gravity_strength=0.3, mass_epsilon=1e-6)
    v = update(env, {
        (5, 5, 5): (0.0, (3.0, 3.0, 3.0)),
        (6, 6, 6): (1e-7, (1.0, 0.0, 0.0)),
    })
    assert not v[5, 5, 5].any()
    assert not v[6, 6, 6].any()
    # gravity only reaches cells holding fluid
    assert not v[10, 10, 10].any()


@pytest.mark.parametrize("cell, axis, sign", [
    ((1, 8, 8), 0, 1.0),
    ((15, 8, 8), 0, -1.0),
    ((8, 0, 8), 1, 1.0),
    ((8, 8, 14), 2, -1.0),
])
def test_wall_repulsion_points_inward(make_env, cell, axis, sign):
    env = make_env(wall_thickness=3.0, wall_stiffness=10.0)
    v = update(env, {cell: (1.0, (0.0, 0.0, 0.0))})
    depth = 3.0 - cell[axis] if sign > 0 else cell[axis] - (G - 3.0)
    assert v[cell][axis] == pytest.approx(sign * depth * 10.0 * DT, rel=1e-5)
    others = [d for d in range(3) if d != axis]
    assert not v[cell][others].any()


def test_no_wall_force_in_the_interior(make_env):
    env = make_env(wall_thickness=3.0, wall_stiffness=10.0)
    v = update(env, {(3, 8, 13): (1.0, (0.0, 0.0, 0.0))})
    assert not v[3, 8, 13].any()


def test_velocity_saturates(make_env):
    env = make_env(max_velocity=30.0)
    v = update(env, {(8, 8, 8): (1.0, (1000.0, 0.0, 0.0))})
    assert np.linalg.norm(v[8, 8, 8]) == pytest.approx(30.0, rel=1e-5)
    assert v[8, 8, 8, 0] > 0.0


def test_huge_momentum_saturates_instead_of_vanishing(make_env):
    env = make_env(max_velocity=30.0)
    v = update(env, {
        (8, 8, 8): (1.0, (1e20, 0.0, 0.0)),
        (6, 8, 8): (1.0, (3e38, -3e38, 1e30)),
    })
    np.testing.assert_allclose(v[8, 8, 8], (30.0, 0.0, 0.0), rtol=1e-5)
    assert np.all(np.isfinite(v[6, 8, 8]))
    assert np.linalg.norm(v[6, 8, 8]) == pytest.approx(30.0, rel=1e-4)
    assert v[6, 8, 8, 0] > 0.0 > v[6, 8, 8, 1]

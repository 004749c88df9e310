import pytest

from mistflow.config.base_config import Config, GravityMode
from mistflow.config.loader import get_cfg_defaults, load_config


def test_defaults_are_valid():
    cfg = Config().validate()
    assert cfg.n_particles <= cfg.max_particles
    assert GravityMode.parse(cfg.gravity_mode) == GravityMode.DOWN


@pytest.mark.parametrize("overrides", [
    dict(n_particles=20, max_particles=10),
    dict(n_particles=-1),
    dict(rest_density=0.0),
    dict(rest_density=-1.0),
    dict(stiffness=-0.5),
    dict(dynamic_viscosity=float("nan")),
    dict(margin_high=1.5),
    dict(margin_low=0.25),
    dict(grid_size=4),
    dict(gravity_mode="sideways"),
    dict(density_smoothing=0.0),
    dict(direction_smoothing=1.5),
    dict(spawn_min=(0.5, 0.2, 0.2), spawn_max=(0.4, 0.8, 0.8)),
    dict(pointer_falloff="cone"),
    dict(pointer_radius=0.0),
    dict(arch="tpu"),
    dict(device_gravity=(0.0, 1.0)),
])
def test_validate_rejects_bad_values(overrides):
    with pytest.raises(ValueError):
        Config(**overrides).validate()


def test_gravity_mode_parse():
    assert GravityMode.parse("CENTER") is GravityMode.CENTER
    assert GravityMode.parse(GravityMode.BACK) is GravityMode.BACK
    with pytest.raises(ValueError):
        GravityMode.parse("up")


def test_cfg_defaults_mirror_dataclass():
    node = get_cfg_defaults()
    assert node.grid_size == Config().grid_size
    assert tuple(node.spawn_min) == Config().spawn_min


def test_load_config_merges_file_and_opts(tmp_path):
    path = tmp_path / "cloud.yaml"
    path.write_text(
        "grid_size: 32\n"
        "stiffness: 5.0\n"
        "gravity_mode: center\n"
        "spawn_min: [0.1, 0.1, 0.1]\n"
    )
    cfg = load_config(str(path), ["n_particles", "1000", "noise_amplitude", "0.0"])
    assert cfg.grid_size == 32
    assert cfg.stiffness == 5.0
    assert cfg.gravity_mode == "center"
    assert cfg.spawn_min == (0.1, 0.1, 0.1)
    assert cfg.n_particles == 1000
    assert cfg.noise_amplitude == 0.0


def test_load_config_rejects_unknown_key(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("viscosity_of_doom: 1.0\n")
    with pytest.raises(KeyError):
        load_config(str(path))


def test_load_config_rejects_type_mismatch(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("stiffness: three\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_load_config_validates(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("rest_density: -2.0\n")
    with pytest.raises(ValueError):
        load_config(str(path))

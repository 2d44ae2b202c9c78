from structural_transient.studies import get_by_path, set_by_path


def test_set_get_nested_scalar():
    cfg = {"time": {"t_end": 1.0, "dt": 1e-3}}
    cfg2 = set_by_path(cfg, "time.dt", 5e-4)
    assert cfg["time"]["dt"] == 1e-3
    assert get_by_path(cfg2, "time.dt") == 5e-4


def test_set_get_indexed_list():
    cfg = {"response": {"weights": [1.0, 0.0, 0.0]}}
    cfg2 = set_by_path(cfg, "response.weights[1]", 0.5)
    assert get_by_path(cfg2, "response.weights[1]") == 0.5
    assert cfg["response"]["weights"][1] == 0.0


def test_missing_section_is_created():
    cfg = {"time": {"t_end": 1.0}}
    cfg2 = set_by_path(cfg, "damping.rayleigh_mass", 2.0)
    assert cfg2["damping"] == {"rayleigh_mass": 2.0}
    assert "damping" not in cfg

import pytest
from pydantic import ValidationError

from stampede.cli import build_config, main, parse_args
from stampede.models import RunConfig


def test_defaults_are_valid():
    cfg = RunConfig(target_url="http://localhost/hit", workers=3, operations_per_worker=4)
    assert cfg.target_total == 12
    assert cfg.delay_range == (2.0, 8.0)


@pytest.mark.parametrize(
    "overrides",
    [
        {"workers": 0},
        {"operations_per_worker": -1},
        {"min_delay": -0.5},
        {"min_delay": 5.0, "max_delay": 1.0},
        {"target_url": ""},
        {"poll_interval": 0},
    ],
)
def test_invalid_config_rejected(overrides):
    params = {"target_url": "http://localhost/hit", "workers": 1, "operations_per_worker": 1}
    params.update(overrides)
    with pytest.raises(ValidationError):
        RunConfig(**params)


def test_equal_delays_allowed():
    cfg = RunConfig(
        target_url="http://x", workers=1, operations_per_worker=1, min_delay=0, max_delay=0
    )
    assert cfg.delay_range == (0.0, 0.0)


def test_build_config_from_args():
    args = parse_args(
        [
            "http://localhost/hit",
            "-w", "4",
            "-n", "25",
            "--min-delay", "1",
            "--max-delay", "2",
            "--counter-url", "http://localhost/stats",
            "--counter-field", "data.views",
            "--seed", "9",
        ]
    )
    cfg = build_config(args)
    assert cfg.workers == 4
    assert cfg.operations_per_worker == 25
    assert cfg.delay_range == (1.0, 2.0)
    assert cfg.counter_field == "data.views"
    assert cfg.seed == 9
    assert cfg.proxy_url is None


def test_main_rejects_invalid_config_before_running(monkeypatch):
    def must_not_run(*a, **kw):
        raise AssertionError("run started with invalid config")

    monkeypatch.setattr("stampede.cli.asyncio.run", must_not_run)
    monkeypatch.setattr("stampede.cli.setup_logging", lambda **kw: None)
    assert main(["http://localhost/hit", "--workers", "0", "--no-dashboard"]) == 2
    assert main(["http://localhost/hit", "--min-delay", "9", "--max-delay", "1", "--no-dashboard"]) == 2

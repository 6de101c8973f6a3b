# tests/test_main.py
from pathlib import Path

from coinpulse.main import parse_args


def test_parse_args_defaults():
    args = parse_args([])
    assert args.config == Path("config.yaml")
    assert args.port is None


def test_parse_args_overrides():
    args = parse_args(["--config", "prod.yaml", "--port", "9001"])
    assert args.config == Path("prod.yaml")
    assert args.port == 9001

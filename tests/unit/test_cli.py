"""Tests for the command-line entry point."""

import io
import json

import pytest

from harmonybridge import BridgeConfig, Platform, cli

from .mocks import FAN, FakeFeed, RecordingHub, make_device


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "bridge.json"
    path.write_text(
        json.dumps(
            {
                "hub": {"address": "192.168.1.20"},
                "devices": [
                    {
                        "name": "fan",
                        "label": "GreenFan",
                        "device_class": "fan",
                        "topic": "plugs/fan",
                    }
                ],
            }
        )
    )
    return path


def test_print_commands() -> None:
    out = io.StringIO()
    hub = RecordingHub(devices=[make_device("Lamp", "77", groups=2), FAN])

    cli.print_commands(hub, out)

    lines = out.getvalue().splitlines()
    assert lines[0] == "Lamp (id 77)"
    assert lines[1] == "  [0] Group0"
    assert lines[2] == "      [0, 0] PowerToggle"
    assert "      [1, 5] G1F5" in lines
    assert "GreenFan (id 1002)" in lines


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_missing_config(tmp_path) -> None:
    assert cli.main(["run", str(tmp_path / "nope.json")]) == 2


def test_set_unknown_device(config_path, monkeypatch) -> None:
    monkeypatch.setattr(
        "harmonybridge.platform.Platform",
        lambda config: Platform(config, hub=RecordingHub(), feed=FakeFeed()),
    )

    assert cli.main(["set", str(config_path), "radio", "on"]) == 2


def test_set_already_in_state(config_path, monkeypatch, capsys) -> None:
    feed = FakeFeed(retained={"plugs/fan": b'{"power": 25}'})
    hub = RecordingHub()
    monkeypatch.setattr(
        "harmonybridge.platform.Platform",
        lambda config: Platform(config, hub=hub, feed=feed),
    )

    assert cli.main(["set", str(config_path), "fan", "on"]) == 0
    assert "already on" in capsys.readouterr().out
    assert hub.sent == []
    assert feed.stopped


def test_config_loads(config_path) -> None:
    assert BridgeConfig.load(config_path).device("fan").device_class == "fan"

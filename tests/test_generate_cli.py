from __future__ import annotations

import pytest

from ambiance_engine.generate import _parse_args, main


def test_generate_cli_reports_topology_and_master(capsys: pytest.CaptureFixture[str]) -> None:
    main(["--channel-mode", "quad", "--item-channels", "1", "--rate", "2", "--end", "30", "--seed", "3"])

    out = capsys.readouterr().out
    assert "container     : Group/Container" in out
    assert "strategy      : mono-distribution" in out
    assert "tracks        : 4" in out
    assert "master        : 4ch" in out
    assert "converged     : True" in out


def test_generate_cli_prints_topology_warnings(capsys: pytest.CaptureFixture[str]) -> None:
    main(["--item-channels", "1", "6", "--end", "20", "--seed", "1"])

    out = capsys.readouterr().out
    assert "mixed-items-forced-mono" in out
    assert "warning       : Mixed item channel counts" in out


def test_parse_args_defaults() -> None:
    args = _parse_args([])

    assert args.mode == "absolute"
    assert args.channel_mode == "stereo"
    assert args.item_channels == [2]
    assert args.seed is None


def test_parse_args_rejects_unknown_mode() -> None:
    with pytest.raises(SystemExit):
        _parse_args(["--mode", "granular"])

"""Tests for command-line parsing and dispatch."""

import os
from unittest.mock import MagicMock, patch

import pytest

from quaver.cli import (
    EXIT_COMMAND_ERROR,
    EXIT_CONFIG_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_SUCCESS,
    EXIT_USAGE_ERROR,
    main,
    parse_args,
    run_control,
    run_play,
    run_queue,
    select_action,
)
from quaver.config import ENV_MAPPINGS, Config
from quaver.control import Command
from quaver.errors import ConnectionFailedError, ForkFailedError, InvalidPathError, NotFoundError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for env_var in ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        socket_path=str(tmp_path / "quaver.sock"),
        lock_file=str(tmp_path / "quaver.lock"),
    )


@pytest.fixture
def running(config) -> Config:
    """Config whose lock file marks a running daemon."""
    with open(config.lock_file, "w") as f:
        f.write("1\n")
    return config


@pytest.fixture
def client():
    with patch("quaver.cli.ControlClient") as client_class:
        yield client_class.return_value


class TestSelectAction:
    """Test select_action()."""

    def test_no_action(self) -> None:
        assert select_action(parse_args([])) is None

    @pytest.mark.parametrize(
        "argv,action",
        [
            (["--pause"], "pause"),
            (["--rew"], "rew"),
            (["--turn-up"], "turn_up"),
            (["--vol", "10"], "vol"),
            (["--save", "--path", "/tmp"], "save"),
            (["--play", "a.mp3"], "play"),
            (["--queue", "a.mp3"], "queue"),
        ],
    )
    def test_single_action(self, argv: list, action: str) -> None:
        assert select_action(parse_args(argv)) == action

    def test_precedence(self) -> None:
        args = parse_args(["--play", "a.mp3", "--next", "--pause"])
        assert select_action(args) == "pause"

    def test_play_before_queue(self) -> None:
        args = parse_args(["--queue", "b.mp3", "--play", "a.mp3"])
        assert select_action(args) == "play"

    def test_vol_zero_is_an_action(self) -> None:
        assert select_action(parse_args(["--vol", "0"])) == "vol"

    def test_negative_vol_is_ignored(self) -> None:
        assert select_action(parse_args(["--vol", "-1"])) is None

    def test_path_alone_is_not_an_action(self) -> None:
        assert select_action(parse_args(["--path", "/tmp"])) is None


class TestRunControl:
    """Test run_control()."""

    def test_pause(self, config, client, capsys) -> None:
        client.call.return_value = None
        assert run_control("pause", parse_args(["--pause"]), config) == EXIT_SUCCESS
        client.call.assert_called_once_with(Command.PAUSE, None)
        assert capsys.readouterr().out == ""

    def test_stop_says_goodbye(self, config, client, capsys) -> None:
        client.call.return_value = None
        run_control("stop", parse_args(["--stop"]), config)
        assert capsys.readouterr().out == "See you.\n"

    def test_turn_up_prints_volume(self, config, client, capsys) -> None:
        client.call.return_value = 17.0
        run_control("turn_up", parse_args(["--turn-up"]), config)
        assert capsys.readouterr().out == "vol: 17\n"

    def test_turn_down_prints_half_steps(self, config, client, capsys) -> None:
        client.call.return_value = 15.5
        run_control("turn_down", parse_args(["--turn-down"]), config)
        assert capsys.readouterr().out == "vol: 15.5\n"

    def test_vol_accepted(self, config, client, capsys) -> None:
        client.call.return_value = 10.0
        run_control("vol", parse_args(["--vol", "10"]), config)
        client.call.assert_called_once_with(Command.SET_VOL, 10)
        assert capsys.readouterr().out == ""

    def test_vol_clamped(self, config, client, capsys) -> None:
        client.call.return_value = 24.0
        run_control("vol", parse_args(["--vol", "40"]), config)
        assert capsys.readouterr().out == "vol: 24\n"

    def test_info(self, config, client, capsys) -> None:
        client.call.return_value = {
            "file_name": "a.flac",
            "title": "Song",
            "artist": "Band",
            "album": "Record",
            "genre": "Rock",
            "year": 1999,
        }
        run_control("info", parse_args(["--info"]), config)

        out = capsys.readouterr().out
        assert out.startswith("a.flac\n")
        assert "Title  | Song" in out
        assert "Year   | 1999" in out

    def test_info_nothing_playing(self, config, client, capsys) -> None:
        client.call.return_value = None
        run_control("info", parse_args(["--info"]), config)
        assert capsys.readouterr().out == "Nothing is playing\n"

    def test_list(self, config, client, capsys) -> None:
        client.call.return_value = "►1 [a.mp3]\n 2 [b.mp3]"
        run_control("list", parse_args(["--list"]), config)
        assert capsys.readouterr().out == "►1 [a.mp3]\n 2 [b.mp3]\n"

    def test_save_default_dir(self, config, client, capsys) -> None:
        client.call.return_value = "/home/u/Quaver/x.m3u"
        run_control("save", parse_args(["--save"]), config)
        client.call.assert_called_once_with(Command.SAVE_PLAYLIST, "-")
        assert capsys.readouterr().out == "Playlist saved: /home/u/Quaver/x.m3u\n"

    def test_save_path_is_normalized(self, config, client, tmp_path) -> None:
        client.call.return_value = "x"
        run_control("save", parse_args(["--save", "--path", str(tmp_path / "a" / "..")]), config)
        client.call.assert_called_once_with(Command.SAVE_PLAYLIST, str(tmp_path))

    def test_not_running_is_silent(self, config, client, capsys) -> None:
        client.call.side_effect = ConnectionFailedError("refused")
        assert run_control("next", parse_args(["--next"]), config) == EXIT_SUCCESS
        assert capsys.readouterr().err == ""

    def test_unreachable_daemon(self, running, client, capsys) -> None:
        client.call.side_effect = ConnectionFailedError("refused")
        assert run_control("next", parse_args(["--next"]), running) == EXIT_CONNECTION_ERROR
        assert "refused" in capsys.readouterr().err

    def test_command_error(self, running, client, capsys) -> None:
        client.call.side_effect = InvalidPathError("no such directory: /nope")
        code = run_control("save", parse_args(["--save", "--path", "/nope"]), running)
        assert code == EXIT_COMMAND_ERROR
        assert "no such directory" in capsys.readouterr().err


class TestRunQueue:
    """Test run_queue()."""

    def test_missing_path(self, running, client, capsys) -> None:
        code = run_queue(parse_args(["--queue", "/no/such/file.mp3"]), running)
        assert code == EXIT_USAGE_ERROR
        assert "invalid path specified" in capsys.readouterr().err
        client.call.assert_not_called()

    def test_not_running(self, config, client, make_wav) -> None:
        assert run_queue(parse_args(["--queue", make_wav()]), config) == EXIT_SUCCESS
        client.call.assert_not_called()

    def test_queue(self, running, client, make_wav) -> None:
        path = make_wav()
        assert run_queue(parse_args(["--queue", path]), running) == EXIT_SUCCESS
        client.call.assert_called_once_with(Command.QUEUE, os.path.abspath(path))

    def test_rejected_file(self, running, client, make_wav, capsys) -> None:
        client.call.side_effect = NotFoundError("no such file")
        assert run_queue(parse_args(["--queue", make_wav()]), running) == EXIT_COMMAND_ERROR
        assert "Unable to queue" in capsys.readouterr().err


class TestRunPlay:
    """Test run_play()."""

    @pytest.fixture
    def supervisor(self) -> MagicMock:
        supervisor = MagicMock()
        supervisor.is_child.return_value = False
        supervisor.launch.return_value = 4242
        return supervisor

    def test_launch(self, config, supervisor, make_wav, capsys) -> None:
        path = make_wav()
        assert run_play(parse_args(["--play", path]), config, supervisor) == EXIT_SUCCESS
        supervisor.launch.assert_called_once_with(os.path.abspath(path), [])
        assert capsys.readouterr().out == "[PID:4242] Playing\n"

    def test_launch_passes_log_level(self, config, supervisor, make_wav) -> None:
        run_play(parse_args(["--log-level", "info", "--play", make_wav()]), config, supervisor)
        assert supervisor.launch.call_args.args[1] == ["--log-level", "info"]

    def test_missing_path(self, config, supervisor, capsys) -> None:
        code = run_play(parse_args(["--play", "/no/such.mp3"]), config, supervisor)
        assert code == EXIT_USAGE_ERROR
        assert "invalid path specified" in capsys.readouterr().err
        supervisor.launch.assert_not_called()

    def test_already_in_use(self, running, supervisor, make_wav, capsys) -> None:
        code = run_play(parse_args(["--play", make_wav()]), running, supervisor)
        assert code == EXIT_USAGE_ERROR
        assert capsys.readouterr().out == "Already in use\n"
        supervisor.launch.assert_not_called()

    def test_fork_failed(self, config, supervisor, make_wav, capsys) -> None:
        supervisor.launch.side_effect = ForkFailedError("failed to fork process")
        code = run_play(parse_args(["--play", make_wav()]), config, supervisor)
        assert code == EXIT_COMMAND_ERROR
        assert "Unable to run Quaver" in capsys.readouterr().err

    def test_child_runs_daemon(self, running, supervisor, make_wav) -> None:
        supervisor.is_child.return_value = True
        path = make_wav()

        assert run_play(parse_args(["--play", path]), running, supervisor) == EXIT_SUCCESS
        supervisor.run_child.assert_called_once_with(os.path.abspath(path), {})
        supervisor.launch.assert_not_called()


class TestMain:
    """Test main()."""

    @pytest.fixture(autouse=True)
    def no_logging_setup(self):
        with patch("quaver.cli.setup_logging") as setup:
            yield setup

    @pytest.fixture
    def env(self, monkeypatch, config) -> Config:
        monkeypatch.setenv("QUAVER_SOCKET_PATH", config.socket_path)
        monkeypatch.setenv("QUAVER_LOCK_FILE", config.lock_file)
        return config

    def test_no_action_prints_usage(self, env, tmp_path, capsys) -> None:
        assert main(["--config", str(tmp_path / "conf.json")]) == EXIT_USAGE_ERROR
        assert "usage: quaver" in capsys.readouterr().out

    def test_invalid_config(self, env, tmp_path, capsys) -> None:
        conf = tmp_path / "conf.json"
        conf.write_text('{"buffer_size": 3}')
        assert main(["--config", str(conf), "--pause"]) == EXIT_CONFIG_ERROR
        assert "Configuration error" in capsys.readouterr().err

    def test_control_without_daemon(self, env, tmp_path) -> None:
        assert main(["--config", str(tmp_path / "conf.json"), "--next"]) == EXIT_SUCCESS

    def test_logging_follows_config(self, env, tmp_path, no_logging_setup) -> None:
        main(["--config", str(tmp_path / "conf.json"), "--log-level", "error", "--next"])
        assert no_logging_setup.call_args.args[0] == "error"

    def test_version(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert "quaver" in capsys.readouterr().out

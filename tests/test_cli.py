# ABOUTME: Tests for the CLI module (argparse-based entry point).
# ABOUTME: Validates command parsing, argument handling, and CLI output.

import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from photosort.cli import build_parser, main


@pytest.fixture
def no_config(tmp_path):
    return str(tmp_path / "no-config.yml")


@pytest.fixture
def index_tree(tmp_path):
    root = tmp_path / "index"
    for parts in (
        ("2020", "01_jan", "02_thu", "03", "04", "a.jpg"),
        ("2020", "01_jan", "02_thu", "03", "05", "b.jpg"),
        ("2021", "06_jun", "01_tue", "12", "00", "c.jpg"),
    ):
        path = root.joinpath(*parts)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"x")
    return root


def run(argv):
    with patch("sys.argv", ["photosort"] + argv):
        return main()


class TestBuildParser:
    """Tests for argparse parser construction."""

    def test_sort_command(self):
        parser = build_parser()
        args = parser.parse_args(["sort", "/tmp/source", "/tmp/target"])
        assert args.command == "sort"
        assert args.source == "/tmp/source"
        assert args.target == "/tmp/target"
        assert args.move is None
        assert args.dry_run is False

    def test_sort_flags(self):
        parser = build_parser()
        args = parser.parse_args([
            "sort", "/tmp/source", "/tmp/target", "--move", "--dry-run",
            "--pattern", "%n.%e", "--undated-pattern", "misc/%n.%e",
        ])
        assert args.move is True
        assert args.dry_run is True
        assert args.pattern == "%n.%e"
        assert args.undated_pattern == "misc/%n.%e"

    def test_list_command(self):
        parser = build_parser()
        args = parser.parse_args([
            "list", "/tmp/index", "--start", "2020-01-01", "--stop", "2020-02-01", "-r", "--spans",
        ])
        assert args.command == "list"
        assert args.root == "/tmp/index"
        assert args.start == "2020-01-01"
        assert args.stop == "2020-02-01"
        assert args.reverse is True
        assert args.spans is True

    def test_timestamp_command(self):
        parser = build_parser()
        args = parser.parse_args(["timestamp", "a.jpg", "b.jpg"])
        assert args.files == ["a.jpg", "b.jpg"]

    def test_timestamp_needs_files(self):
        parser = build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["timestamp"])

    def test_config_flag(self):
        parser = build_parser()
        args = parser.parse_args(["list", "/tmp/index", "--config", "/tmp/config.yml"])
        assert args.config == "/tmp/config.yml"

    def test_verbose_flag(self):
        parser = build_parser()
        args = parser.parse_args(["list", "/tmp/index", "--verbose"])
        assert args.verbose is True

    def test_log_file_flag(self):
        parser = build_parser()
        args = parser.parse_args(["list", "/tmp/index", "--log-file", "/tmp/photosort.log"])
        assert args.log_file == "/tmp/photosort.log"

    def test_common_options_before_subcommand(self):
        parser = build_parser()
        args = parser.parse_args([
            "-c", "/tmp/config.yml", "-v", "--log-file", "/tmp/photosort.log", "list", "/tmp/index",
        ])
        assert args.config == "/tmp/config.yml"
        assert args.verbose is True
        assert args.log_file == "/tmp/photosort.log"

    def test_common_option_defaults(self):
        parser = build_parser()
        args = parser.parse_args(["list", "/tmp/index"])
        assert args.config is None
        assert args.verbose is False
        assert args.log_file is None


class TestMainCLI:
    """Integration tests for the main CLI entry point."""

    def test_no_command(self, capsys):
        assert run([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_sort_dry_run(self, tmp_path, make_jpeg, no_config):
        source = tmp_path / "source"
        source.mkdir()
        (source / "test.jpg").write_bytes(make_jpeg(b"2020:01:02 03:04:05"))
        target = tmp_path / "output"

        exit_code = run(["sort", str(source), str(target), "--dry-run", "--config", no_config])

        assert exit_code == 0
        assert (source / "test.jpg").exists()
        assert not target.exists()

    def test_sort_move(self, tmp_path, make_jpeg, no_config):
        source = tmp_path / "source"
        source.mkdir()
        (source / "test.jpg").write_bytes(make_jpeg(b"2020:01:02 03:04:05"))
        target = tmp_path / "output"

        exit_code = run(["sort", str(source), str(target), "--move", "--config", no_config])

        assert exit_code == 0
        assert not (source / "test.jpg").exists()
        assert (target / "2020" / "01_jan" / "02_thu" / "03" / "04" / "test.jpg").exists()

    def test_sort_pattern_from_config(self, tmp_path, make_jpeg):
        source = tmp_path / "source"
        source.mkdir()
        (source / "test.jpg").write_bytes(make_jpeg(b"2020:01:02 03:04:05"))
        config = tmp_path / "config.yml"
        config.write_text("name_pattern: '%d(%Y-%m)/%n.%e'\n")
        target = tmp_path / "output"

        assert run(["sort", str(source), str(target), "--config", str(config)]) == 0
        assert (target / "2020-01" / "test.jpg").exists()

    def test_sort_bad_pattern(self, tmp_path, no_config):
        source = tmp_path / "source"
        source.mkdir()
        exit_code = run(["sort", str(source), str(tmp_path / "out"), "-n", "%q", "--config", no_config])
        assert exit_code == 1

    def test_sort_missing_source(self, tmp_path, no_config):
        exit_code = run(["sort", str(tmp_path / "missing"), str(tmp_path / "out"), "--config", no_config])
        assert exit_code == 1

    def test_list(self, index_tree, no_config, capsys):
        assert run(["list", str(index_tree), "--config", no_config]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert [Path(line).name for line in lines] == ["a.jpg", "b.jpg", "c.jpg"]

    def test_list_reverse(self, index_tree, no_config, capsys):
        assert run(["list", str(index_tree), "-r", "--config", no_config]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert [Path(line).name for line in lines] == ["c.jpg", "b.jpg", "a.jpg"]

    def test_list_time_range(self, index_tree, no_config, capsys):
        exit_code = run([
            "list", str(index_tree), "--start", "2020-01-02T03:05:00",
            "--stop", "2021-01-01", "--config", no_config,
        ])
        assert exit_code == 0
        lines = capsys.readouterr().out.splitlines()
        assert [Path(line).name for line in lines] == ["b.jpg"]

    def test_list_from_time(self, index_tree, no_config, capsys):
        assert run(["list", str(index_tree), "--from-time", "2020-06-01", "--config", no_config]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert [Path(line).name for line in lines] == ["c.jpg"]

    def test_list_spans(self, index_tree, no_config, capsys):
        assert run(["list", str(index_tree), "--spans", "--config", no_config]) == 0
        first = capsys.readouterr().out.splitlines()[0]
        assert first.endswith("2020-01-02T03:04:00+00:00 .. 2020-01-02T03:05:00+00:00")

    def test_config_before_subcommand_is_loaded(self, index_tree, tmp_path, capsys):
        config = tmp_path / "config.yml"
        config.write_text("timezone: Mars/Olympus\n")
        assert run(["-c", str(config), "list", str(index_tree)]) == 1
        assert capsys.readouterr().out == ""

    def test_unknown_timezone_in_config(self, index_tree, tmp_path):
        config = tmp_path / "config.yml"
        config.write_text("timezone: Mars/Olympus\n")
        assert run(["list", "-c", str(config), str(index_tree)]) == 1

    def test_null_extensions_in_config(self, index_tree, tmp_path):
        config = tmp_path / "config.yml"
        config.write_text("extensions:\n")
        assert run(["list", str(index_tree), "--config", str(config)]) == 1

    def test_list_bad_time(self, index_tree, no_config):
        assert run(["list", str(index_tree), "--start", "yesterday", "--config", no_config]) == 1

    def test_list_missing_root(self, tmp_path, no_config):
        assert run(["list", str(tmp_path / "missing"), "--config", no_config]) == 1

    def test_timestamp(self, tmp_path, make_jpeg, no_config, capsys):
        dated = tmp_path / "dated.jpg"
        dated.write_bytes(make_jpeg(b"2020:01:02 03:04:05"))
        undated = tmp_path / "undated.jpg"
        undated.write_bytes(b"\xff\xd8\xff\xd9")

        assert run(["timestamp", str(dated), str(undated), "--config", no_config]) == 0
        out = capsys.readouterr().out
        assert "%s\t2020-01-02T03:04:05+00:00" % dated in out
        assert "%s\t-" % undated in out

    def test_timestamp_missing_file(self, tmp_path, no_config):
        assert run(["timestamp", str(tmp_path / "missing.jpg"), "--config", no_config]) == 1

    def test_log_file_flag(self, tmp_path, make_jpeg, no_config):
        source = tmp_path / "source"
        source.mkdir()
        (source / "test.jpg").write_bytes(make_jpeg(b"2020:01:02 03:04:05"))
        log_file = tmp_path / "photosort.log"

        # Reset logging to ensure basicConfig takes effect
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        exit_code = run([
            "sort", str(source), str(tmp_path / "output"),
            "--dry-run", "--log-file", str(log_file), "--config", no_config,
        ])

        # Flush and close file handlers
        for handler in root_logger.handlers[:]:
            handler.flush()
            if isinstance(handler, logging.FileHandler):
                handler.close()
                root_logger.removeHandler(handler)

        assert exit_code == 0
        assert log_file.exists()
        assert "DRY RUN" in log_file.read_text()

"""
Tests for treemd/cli.py

Tests the CLI interface including:
- Heading list, tree, count and section commands
- Query and saved query execution
- Input handling (files, stdin, front matter)
- Error reporting and exit codes
"""
import io
import json
from unittest.mock import patch

import pytest
import tomli

from treemd import __version__, cli

pytestmark = pytest.mark.usefixtures("isolated_config")


def run_cli(capsys, *argv):
    """Run main() and return (stdout, stderr)."""
    cli.main(list(argv))
    captured = capsys.readouterr()
    return captured.out, captured.err


def run_cli_error(capsys, *argv):
    """Run main() expecting a non-zero exit; return (code, stderr)."""
    with pytest.raises(SystemExit) as exc_info:
        cli.main(list(argv))
    return exc_info.value.code, capsys.readouterr().err


class TestArgumentParser:
    """Test argument parser structure."""

    def test_defaults(self):
        """Parser defaults should select the tree view."""
        args = cli.build_parser().parse_args(["doc.md"])

        assert args.file == "doc.md"
        assert args.output == "plain"
        assert args.query is None
        assert args.level is None

    def test_level_is_restricted(self, capsys):
        """Levels outside 1-6 should be rejected."""
        with pytest.raises(SystemExit) as exc_info:
            cli.build_parser().parse_args(["-L", "7", "doc.md"])
        assert exc_info.value.code == 2

    def test_version(self, capsys):
        """--version should print the version and exit cleanly."""
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestHeadingCommands:
    """Test heading list, tree, count and section output."""

    def test_list(self, capsys, sample_file):
        """--list should print every heading with its hashes."""
        out, _ = run_cli(capsys, "--list", str(sample_file))

        assert out.splitlines() == [
            "# Project", "## Installation", "### From source",
            "## Usage", "# Appendix", "## Notes",
        ]

    def test_list_by_level(self, capsys, sample_file):
        """--level should keep only headings at that level."""
        out, _ = run_cli(capsys, "-l", "-L", "2", str(sample_file))

        assert out.splitlines() == ["## Installation", "## Usage", "## Notes"]

    def test_list_filter(self, capsys, sample_file):
        """--filter should match case-insensitively."""
        out, _ = run_cli(capsys, "-l", "--filter", "SOURCE", str(sample_file))

        assert out.splitlines() == ["### From source"]

    def test_list_json(self, capsys, sample_file):
        """--output json should print the nested document structure."""
        out, _ = run_cli(capsys, "-l", "-o", "json", str(sample_file))
        document = json.loads(out)["document"]

        assert document["metadata"]["source"] == "README.md"
        assert document["metadata"]["headingCount"] == 6
        assert [s["title"] for s in document["sections"]] == ["Project", "Appendix"]
        assert document["sections"][0]["children"][0]["children"][0]["title"] == "From source"

    def test_list_json_from_stdin_has_no_source(self, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("# A\n"))

        out, _ = run_cli(capsys, "-", "-l", "-o", "json")

        assert json.loads(out)["document"]["metadata"]["source"] is None

    def test_tree_json_keeps_nested_headings(self, capsys, tmp_path):
        """--tree -o json should list every heading, not just the roots."""
        path = tmp_path / "nested.md"
        path.write_text("# A\n## B\n### C\n", encoding="utf-8")

        out, _ = run_cli(capsys, str(path), "--tree", "-o", "json")

        assert [h["text"] for h in json.loads(out)] == ["A", "B", "C"]

    def test_tree_json_respects_level(self, capsys, sample_file):
        out, _ = run_cli(capsys, "--tree", "-o", "json", "-L", "2", str(sample_file))

        assert [h["text"] for h in json.loads(out)] == ["Installation", "Usage", "Notes"]

    def test_tree_without_color(self, capsys, sample_file):
        """The default view is a heading tree labelled with the file name."""
        out, _ = run_cli(capsys, "--no-color", str(sample_file))
        lines = out.splitlines()

        assert lines[0] == "README.md"
        nested = next(line for line in lines if "### From source" in line)
        parent = next(line for line in lines if "## Installation" in line)
        assert nested.index("#") > parent.index("#")

    def test_tree_with_color_console(self, capsys, sample_file):
        """With color enabled the tree goes through the rich console."""
        out, _ = run_cli(capsys, "--tree", str(sample_file))

        assert "# Project" in out
        assert "## Notes" in out

    def test_filtered_tree_is_flat(self, capsys, sample_file):
        """Filtered headings lose their nesting."""
        out, _ = run_cli(capsys, "--tree", "--no-color", "-L", "2", str(sample_file))
        lines = out.splitlines()[1:]

        assert len(lines) == 3
        assert len({line.index("#") for line in lines}) == 1

    def test_count(self, capsys, sample_file):
        """--count should print per-level counts and a total."""
        out, _ = run_cli(capsys, "--count", str(sample_file))

        assert out == "Heading counts:\n  #: 2\n  ##: 3\n  ###: 1\n\nTotal: 6\n"

    def test_section(self, capsys, sample_file):
        """--section should print the heading and its whole section."""
        out, _ = run_cli(capsys, "-s", "Installation", str(sample_file))

        assert out.startswith("## Installation\n")
        assert "### From source" in out
        assert "## Usage" not in out

    def test_section_fuzzy_match(self, capsys, sample_file):
        """--section falls back to a case-insensitive substring."""
        out, _ = run_cli(capsys, "-s", "appendix", str(sample_file))

        assert out.startswith("# Appendix")

    def test_missing_section(self, capsys, sample_file):
        """An unknown section should exit with an error."""
        code, err = run_cli_error(capsys, "-s", "Nope", str(sample_file))

        assert code == 1
        assert "Section 'Nope' not found" in err


class TestQueryCommands:
    """Test query execution from the command line."""

    def test_query_plain(self, capsys, sample_file):
        out, _ = run_cli(capsys, "-q", ".h2 | text", str(sample_file))

        assert out == "Installation\nUsage\nNotes\n"

    def test_query_output_json(self, capsys, sample_file):
        out, _ = run_cli(capsys, "-q", ".code | lang", "--query-output", "json", str(sample_file))

        assert json.loads(out) == ["bash", "python", "rust"]

    def test_config_output_format(self, capsys, sample_file, monkeypatch):
        """The configured output format applies when none is given."""
        monkeypatch.setenv("TREEMD_OUTPUT_FORMAT", "jsonl")

        out, _ = run_cli(capsys, "-q", ".h1 | text", str(sample_file))

        assert out == '"Project"\n"Appendix"\n'

    def test_empty_result_prints_nothing(self, capsys, sample_file):
        out, _ = run_cli(capsys, "-q", ".h5", str(sample_file))

        assert out == ""

    def test_saved_query(self, capsys, sample_file):
        out, _ = run_cli(capsys, "--saved", "todo", str(sample_file))

        assert out == "open task\n"

    def test_saved_query_output_format(self, capsys, sample_file):
        """A saved query's own output format is used by default."""
        out, _ = run_cli(capsys, "--saved", "stats", str(sample_file))

        assert json.loads(out)[0]["headings"] == 6

    def test_user_saved_query(self, capsys, sample_file, isolated_config):
        (isolated_config / "queries.yaml").write_text(
            "names:\n  query: '.h1 | text'\n", encoding="utf-8"
        )

        out, _ = run_cli(capsys, "--saved", "names", str(sample_file))

        assert out == "Project\nAppendix\n"

    def test_unknown_saved_query(self, capsys, sample_file):
        code, err = run_cli_error(capsys, "--saved", "nope", str(sample_file))

        assert code == 1
        assert "Unknown saved query: nope" in err

    def test_parse_error(self, capsys, sample_file):
        code, err = run_cli_error(capsys, "-q", ".h7", str(sample_file))

        assert code == 1
        assert "Parse error at 0" in err
        assert "^^^" not in err

    def test_parse_error_pointer_when_verbose(self, capsys, sample_file):
        code, err = run_cli_error(capsys, "-v", "-q", ".h7", str(sample_file))

        assert code == 1
        assert "^^^" in err

    def test_query_error(self, capsys, sample_file):
        code, err = run_cli_error(capsys, "-q", "1 / 0", str(sample_file))

        assert code == 1
        assert "division by zero" in err

    def test_bad_output_format(self, capsys, sample_file):
        code, err = run_cli_error(capsys, "-q", ".h", "--query-output", "csv", str(sample_file))

        assert code == 1
        assert "Unknown output format" in err

    def test_query_help(self, capsys):
        out, _ = run_cli(capsys, "--query-help")

        assert "ELEMENT SELECTORS" in out
        assert "COLLECTION FUNCTIONS" in out
        assert "group_by" in out

    def test_list_saved(self, capsys):
        out, _ = run_cli(capsys, "--list-saved")

        assert "todo" in out
        assert "outline" in out


class TestConfigCommands:
    """Test showing and writing the configuration."""

    def test_show_config(self, capsys, monkeypatch):
        monkeypatch.setenv("TREEMD_OUTPUT_FORMAT", "json")

        out, _ = run_cli(capsys, "--show-config")
        data = json.loads(out)

        assert data["output_format"] == "json"
        assert data["hide_frontmatter"] is True

    def test_init_config_writes_user_file(self, capsys, isolated_config):
        out, _ = run_cli(capsys, "--init-config", "--no-color")

        assert "Created config" in out
        with open(isolated_config / "config.toml", "rb") as f:
            data = tomli.load(f)
        assert data["color_output"] is False
        assert data["output_format"] == "plain"

    def test_init_config_to_explicit_path(self, capsys, tmp_path):
        target = tmp_path / "custom.toml"

        run_cli(capsys, "--init-config", "--config", str(target))

        with open(target, "rb") as f:
            assert tomli.load(f)["tree_style"] == "dim"


class TestInput:
    """Test input sources and preprocessing."""

    def test_stdin_dash(self, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("# A\n## B\n"))

        out, _ = run_cli(capsys, "-", "-q", ".h2 | text")

        assert out == "B\n"

    def test_missing_file(self, capsys, tmp_path):
        code, err = run_cli_error(capsys, "-l", str(tmp_path / "missing.md"))

        assert code == 1
        assert "File not found" in err

    def test_no_file_with_terminal_stdin(self, capsys):
        with patch("sys.stdin") as stdin:
            stdin.isatty.return_value = True
            code, err = run_cli_error(capsys, "-l")

        assert code == 1
        assert "markdown file argument is required" in err

    def test_front_matter_hidden_by_default(self, capsys, tmp_path):
        path = tmp_path / "fm.md"
        path.write_text("---\n# comment: yes\n---\n# Real\n", encoding="utf-8")

        out, _ = run_cli(capsys, "-l", str(path))

        assert out == "# Real\n"

    def test_front_matter_shown_when_disabled(self, capsys, tmp_path, monkeypatch):
        path = tmp_path / "fm.md"
        path.write_text("---\n# comment: yes\n---\n# Real\n", encoding="utf-8")
        monkeypatch.setenv("TREEMD_HIDE_FRONTMATTER", "false")

        out, _ = run_cli(capsys, "-l", str(path))

        assert out == "# comment: yes\n# Real\n"

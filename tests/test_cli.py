"""Tests for the command line interface."""

from __future__ import annotations

import json
import logging

from click.testing import CliRunner

from branchscope.cli import EXIT_UNAVAILABLE, main


def _feature_branch(git_repo) -> None:
    git_repo.write_lines("feature.py", ["def feature():", "    return 1"])
    git_repo.write_lines("generated/schema.py", ["SCHEMA = {}"])
    git_repo.commit_all("feature work")


class TestChangesCommand:
    def test_text_output(self, git_repo):
        _feature_branch(git_repo)

        result = CliRunner().invoke(main, ["changes", "main", "--path", str(git_repo.path)])

        assert result.exit_code == 0, result.output
        assert "Changed files: 2" in result.output
        assert "feature.py" in result.output
        assert "[1, 2]" in result.output

    def test_json_report_file(self, git_repo, tmp_path):
        _feature_branch(git_repo)
        output = tmp_path / "out" / "report.json"

        result = CliRunner().invoke(
            main,
            ["changes", "main", "--path", str(git_repo.path), "--output", str(output)],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["status"] == "ok"
        assert data["target_ref"] == "refs/heads/main"
        assert data["changed_files"] == ["feature.py", "generated/schema.py"]
        assert data["changed_lines"]["feature.py"] == [1, 2]

    def test_json_to_stdout(self, git_repo):
        _feature_branch(git_repo)

        result = CliRunner().invoke(
            main, ["changes", "main", "--path", str(git_repo.path), "--json", "--files-only"]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output[result.output.index("{"):])
        assert data["changed_files"] == ["feature.py", "generated/schema.py"]
        assert data["changed_lines"] == {}

    def test_config_file_excludes_lines(self, git_repo, tmp_path):
        _feature_branch(git_repo)
        cfg_path = tmp_path / "scope.yml"
        cfg_path.write_text("exclude:\n  paths:\n    - generated/\n", encoding="utf-8")
        output = tmp_path / "report.json"

        result = CliRunner().invoke(
            main,
            [
                "changes",
                "main",
                "--path",
                str(git_repo.path),
                "--config",
                str(cfg_path),
                "--output",
                str(output),
            ],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["changed_files"] == ["feature.py", "generated/schema.py"]
        assert list(data["changed_lines"]) == ["feature.py"]

    def test_target_from_config_file(self, git_repo, tmp_path):
        git_repo.git("branch", "develop", "main")
        _feature_branch(git_repo)
        cfg_path = tmp_path / "scope.yml"
        cfg_path.write_text("target_branch: develop\n", encoding="utf-8")
        output = tmp_path / "report.json"

        result = CliRunner().invoke(
            main,
            ["changes", "--path", str(git_repo.path), "--config", str(cfg_path), "--output", str(output)],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["target_branch"] == "develop"
        assert data["target_ref"] == "refs/heads/develop"

    def test_project_file_is_optional(self, git_repo, caplog):
        _feature_branch(git_repo)

        caplog.set_level(logging.WARNING)
        result = CliRunner().invoke(main, ["changes", "main", "--path", str(git_repo.path)])

        assert result.exit_code == 0, result.output
        assert not any("Scope config not found" in record.message for record in caplog.records)

    def test_project_file_read_from_root(self, git_repo, tmp_path):
        git_repo.git("branch", "develop", "main")
        _feature_branch(git_repo)
        (git_repo.path / ".branchscope.yml").write_text("target_branch: develop\n", encoding="utf-8")
        output = tmp_path / "report.json"

        result = CliRunner().invoke(
            main, ["changes", "--path", str(git_repo.path / "generated"), "--output", str(output)]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["target_ref"] == "refs/heads/develop"

    def test_unavailable_is_not_an_error(self, git_repo):
        result = CliRunner().invoke(main, ["changes", "missing", "--path", str(git_repo.path)])

        assert result.exit_code == 0, result.output
        assert "unavailable" in result.output

    def test_unavailable_strict(self, git_repo, tmp_path):
        output = tmp_path / "report.json"
        result = CliRunner().invoke(
            main,
            ["changes", "missing", "--path", str(git_repo.path), "--strict", "--output", str(output)],
        )

        assert result.exit_code == EXIT_UNAVAILABLE
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["status"] == "unavailable"
        assert "Could not find ref 'missing'" in data["reason"]

    def test_not_a_repository(self, tmp_path):
        result = CliRunner().invoke(main, ["changes", "main", "--path", str(tmp_path)])

        assert result.exit_code == 1
        assert "Not inside a Git work tree" in result.output


class TestOtherCommands:
    def test_revision(self, git_repo):
        result = CliRunner().invoke(main, ["revision", "--path", str(git_repo.path)])

        assert result.exit_code == 0, result.output
        assert result.output.strip() == git_repo.git("rev-parse", "HEAD")

    def test_revision_empty_repository(self, empty_repo):
        result = CliRunner().invoke(main, ["revision", "--path", str(empty_repo.path)])

        assert result.exit_code == 1
        assert "no commits" in result.output

    def test_version(self):
        result = CliRunner().invoke(main, ["version"])

        assert result.exit_code == 0
        assert "branchscope v0.1.0" in result.output

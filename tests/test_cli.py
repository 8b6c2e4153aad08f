"""
tests/test_cli.py

credence evaluate / credence verify — exit codes and output formats.
"""

import json

import pytest
from click.testing import CliRunner

from credence.cli import cli

from test_registry import populate, rewrite


ANSWERS_YAML = """\
question: "Is X true?"
answers:
  - {title: "Reuters", url: "https://reuters.com/a?utm_source=feed", answer: true, confidence: 0.9}
  - {title: "BBC", url: "https://bbc.com/b", answer: true, confidence: 0.92}
  - source: {title: "AP", url: "https://ap.org/c"}
    answer: true
    confidence: 0.88
    provider_id: p3
    rank: 2
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def answers_file(tmp_path):
    path = tmp_path / "answers.yaml"
    path.write_text(ANSWERS_YAML)
    return path


class TestEvaluateCommand:

    def test_evaluated_exits_zero(self, runner, answers_file):
        result = runner.invoke(cli, ["evaluate", str(answers_file)])
        assert result.exit_code == 0, result.output
        assert "YES" in result.output

    def test_json_output(self, runner, answers_file):
        result = runner.invoke(cli, ["evaluate", str(answers_file), "--format", "json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["status"] == "evaluated"
        assert data["answer"] is True
        assert len(data["hash"]) == 64
        assert "https://reuters.com/a" in [s["url"] for s in data["sources"]]

    def test_consensus_error_exits_one(self, runner, answers_file):
        result = runner.invoke(cli, ["evaluate", str(answers_file), "--required-sources", "5"])
        assert result.exit_code == 1
        assert "insufficient_sources" in result.output

    def test_threshold_option(self, runner, answers_file):
        result = runner.invoke(cli, ["evaluate", str(answers_file), "--threshold", "0.95"])
        assert result.exit_code == 1
        assert "low_confidence" in result.output

    def test_config_file(self, runner, answers_file, tmp_path):
        config = tmp_path / "credence.yaml"
        config.write_text("requiredSources: 4\n")
        result = runner.invoke(cli, ["evaluate", str(answers_file), "--config", str(config)])
        assert result.exit_code == 1, "Config requiring 4 sources must fail a 3-source answer set"

    def test_missing_file_exits_two(self, runner, tmp_path):
        result = runner.invoke(cli, ["evaluate", str(tmp_path / "absent.yaml")])
        assert result.exit_code == 2

    def test_missing_question_exits_two(self, runner, tmp_path):
        path = tmp_path / "bare.json"
        path.write_text(json.dumps([
            {"title": "a", "url": "https://a.com/", "answer": True, "confidence": 0.9},
        ]))
        result = runner.invoke(cli, ["evaluate", str(path)])
        assert result.exit_code == 2

    def test_string_answer_exits_two(self, runner, tmp_path):
        path = tmp_path / "quoted.json"
        path.write_text(json.dumps({
            "question": "Is X true?",
            "answers": [{"title": "a", "url": "https://a.com/", "answer": "false", "confidence": 0.9}],
        }))
        result = runner.invoke(cli, ["evaluate", str(path), "--required-sources", "1"])
        assert result.exit_code == 2, "A quoted \"false\" must not be read as a yes"

    def test_question_option_with_bare_list(self, runner, tmp_path):
        path = tmp_path / "bare.json"
        path.write_text(json.dumps([
            {"title": "a", "url": "https://a.com/", "answer": False, "confidence": 0.9},
        ]))
        result = runner.invoke(cli, [
            "evaluate", str(path), "--question", "Is Y true?", "--required-sources", "1",
        ])
        assert result.exit_code == 0, result.output
        assert "NO" in result.output


class TestVerifyCommand:

    def test_valid_registry(self, runner, registry):
        populate(registry)
        result = runner.invoke(cli, ["verify", str(registry.path)])
        assert result.exit_code == 0, result.output
        assert "VALID" in result.output

    def test_json_report(self, runner, registry):
        populate(registry)
        result = runner.invoke(cli, ["verify", str(registry.path), "--format", "json"])
        assert result.exit_code == 0
        report = json.loads(result.output)["credence_verify"]
        assert report["valid"] is True
        assert report["total_entries"] == 3
        assert report["violation_count"] == 0

    def test_tampered_registry_exits_one(self, runner, registry):
        populate(registry)

        def retarget(lines):
            lines[0]["payload"]["answer"] = False

        rewrite(registry.path, retarget)
        result = runner.invoke(cli, ["verify", str(registry.path)])
        assert result.exit_code == 1
        assert "INVALID" in result.output

    def test_quiet_mode(self, runner, registry):
        populate(registry)
        result = runner.invoke(cli, ["verify", str(registry.path), "--quiet"])
        assert result.exit_code == 0
        assert result.output == ""

    def test_missing_registry_exits_two(self, runner, tmp_path):
        result = runner.invoke(cli, ["verify", str(tmp_path / "absent.jsonl")])
        assert result.exit_code == 2

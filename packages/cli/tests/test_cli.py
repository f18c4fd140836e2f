"""Tests for the CLI entry point and the process-boundary error handling."""

import json
from unittest.mock import MagicMock

from click.testing import CliRunner

from codeguardian_cli.cli import main
from codeguardian_core.config import ConfigError, ReviewConfig
from codeguardian_core.providers.base import ProviderError
from codeguardian_core.reviewer import PostingStats, ReviewSummary
from codeguardian_core.response import ParseResult

SHA = "a" * 40


def _make_config(tmp_path, **overrides):
    event = tmp_path / "event.json"
    event.write_text(
        json.dumps(
            {
                "pull_request": {
                    "number": 9,
                    "head": {"sha": SHA},
                    "base": {"repo": {"name": "todo-app", "owner": {"login": "acme"}}},
                }
            }
        )
    )
    values = {
        "artifacts_dir": str(tmp_path),
        "github_event_path": str(event),
        "github_token": "tok",
        "gemini_api_key": "key",
    }
    values.update(overrides)
    return ReviewConfig(**values)


def _patch_config(mocker, config):
    return mocker.patch("codeguardian_core.config.load_config", return_value=config)


class TestMain:
    def test_cli_options_become_overrides(self, mocker, tmp_path):
        load = _patch_config(mocker, _make_config(tmp_path))
        mocker.patch("codeguardian_cli.commands.review.run_review", return_value=None)

        CliRunner().invoke(main, ["--provider", "openai", "--model", "gpt-4.1", "review"])

        overrides = load.call_args.kwargs["cli_overrides"]
        assert overrides["provider"] == "openai"
        assert overrides["model"] == "gpt-4.1"
        assert overrides["debug"] is None

    def test_config_error_exits_1(self, mocker):
        mocker.patch("codeguardian_core.config.load_config", side_effect=ConfigError("Unknown provider: 'x'"))

        result = CliRunner().invoke(main, ["review"])

        assert result.exit_code == 1
        assert "Loading configuration failed" in result.output
        assert "Unknown provider" in result.output


class TestReviewCommand:
    def test_empty_diff_exits_0(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path))
        mocker.patch("codeguardian_cli.commands.review.run_review", return_value=None)

        result = CliRunner().invoke(main, ["review"])

        assert result.exit_code == 0
        assert "Nothing to review" in result.output

    def test_prints_summary_and_stats(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path))
        summary = ReviewSummary(
            model_used="gemini-2.5-pro",
            raw_diff_len=420,
            result={"issues": [{"path": "a.js", "line": 1}] * 35},
            stats=PostingStats(posted=28, skipped=0, failed=2, total=35, truncated=5),
        )
        mocker.patch("codeguardian_cli.commands.review.run_review", return_value=summary)

        result = CliRunner().invoke(main, ["review"])

        assert result.exit_code == 0
        assert "Posted: 28" in result.output
        assert "Failed: 2" in result.output
        assert "5 not posted" in result.output
        assert "gemini-2.5-pro" in result.output
        assert "Issues found: 35" in result.output

    def test_shadow_flag_passed_through(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path))
        run = mocker.patch("codeguardian_cli.commands.review.run_review", return_value=None)

        CliRunner().invoke(main, ["review", "--shadow"])

        assert run.call_args.kwargs["shadow"] is True

    def test_unrecoverable_api_failure_exits_1(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path))
        mocker.patch(
            "codeguardian_cli.commands.review.run_review",
            side_effect=ProviderError("All Gemini models failed. Errors: a: HTTP 503"),
        )

        result = CliRunner().invoke(main, ["review"])

        assert result.exit_code == 1
        assert "AI code review failed" in result.output
        assert "All Gemini models failed" in result.output
        assert "Traceback" not in result.output

    def test_traceback_only_with_debug(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path, debug=True))
        mocker.patch("codeguardian_cli.commands.review.run_review", side_effect=RuntimeError("kaboom"))

        result = CliRunner().invoke(main, ["--debug", "review"])

        assert result.exit_code == 1
        assert "Traceback" in result.output

    def test_missing_token_exits_1(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path))
        mocker.patch(
            "codeguardian_cli.commands.review.run_review",
            side_effect=ConfigError("Missing required environment variables:\n  - GITHUB_TOKEN"),
        )

        result = CliRunner().invoke(main, ["review"])

        assert result.exit_code == 1
        assert "GITHUB_TOKEN" in result.output


class TestStageCommands:
    def test_build_request(self, mocker, tmp_path):
        config = _make_config(tmp_path)
        _patch_config(mocker, config)
        build = mocker.patch("codeguardian_cli.commands.stages.build_request", return_value={})

        result = CliRunner().invoke(main, ["build-request"])

        assert result.exit_code == 0
        assert build.call_args.args[0] is config

    def test_build_request_missing_files_exits_1(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path, instruction_path=str(tmp_path / "nope.md")))

        result = CliRunner().invoke(main, ["build-request"])

        assert result.exit_code == 1
        assert "Building request failed" in result.output

    def test_call_reads_request_and_raw_diff_len(self, mocker, tmp_path):
        config = _make_config(tmp_path)
        _patch_config(mocker, config)
        (tmp_path / "request.json").write_text('{"contents": []}')
        call = mocker.patch(
            "codeguardian_cli.commands.stages.call_provider", return_value=(ParseResult(), "gemini-2.5-flash")
        )

        result = CliRunner().invoke(main, ["call", "--raw-diff-len", "512"])

        assert result.exit_code == 0
        _, _, payload, raw_len = call.call_args.args
        assert payload == {"contents": []}
        assert raw_len == 512

    def test_call_without_api_key_exits_1(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path, gemini_api_key=None))
        call = mocker.patch("codeguardian_cli.commands.stages.call_provider")

        result = CliRunner().invoke(main, ["call"])

        assert result.exit_code == 1
        assert "AI_API_KEY" in result.output
        call.assert_not_called()

    def test_call_without_request_file_exits_1(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path))

        result = CliRunner().invoke(main, ["call"])

        assert result.exit_code == 1
        assert "request.json" in result.output

    def test_post_without_result_is_a_no_op(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path))
        open_commenter = mocker.patch("codeguardian_cli.commands.stages.open_commenter")

        result = CliRunner().invoke(main, ["post"])

        assert result.exit_code == 0
        assert "No issues found to comment" in result.output
        open_commenter.assert_not_called()

    def test_post_posts_result_issues(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path))
        issues = [{"id": "CQ-4.05", "path": "src/App.jsx", "line": 4, "message": "m", "suggestion": "s"}]
        (tmp_path / "ai_result.json").write_text(json.dumps({"issues": issues}))
        commenter = MagicMock()
        open_commenter = mocker.patch("codeguardian_cli.commands.stages.open_commenter", return_value=commenter)

        result = CliRunner().invoke(main, ["post"])

        assert result.exit_code == 0
        ref, token = open_commenter.call_args.args
        assert ref.number == 9
        assert token == "tok"
        commenter.post.assert_called_once()
        assert "Posted: 1" in result.output

    def test_post_without_token_exits_1(self, mocker, tmp_path):
        _patch_config(mocker, _make_config(tmp_path, github_token=None))

        result = CliRunner().invoke(main, ["post"])

        assert result.exit_code == 1
        assert "GITHUB_TOKEN" in result.output

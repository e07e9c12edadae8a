"""
Tests for the CLI interface.
"""
import os
import shutil
import tempfile

import yaml
from typer.testing import CliRunner

from media_ledger.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL

runner = CliRunner()


class TestEstimateCommands:
    """Test estimation commands against the built-in manifest."""

    def test_transcription(self):
        result = runner.invoke(app, ["estimate-transcription", "--duration", "125"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Transcription estimate" in result.output
        assert "Media tokens: 50" in result.output
        assert "Cost: $0.25" in result.output

    def test_transcription_multiple_items(self):
        result = runner.invoke(app, [
            "estimate-transcription", "-d", "60", "-d", "60", "--model", "deepgram_whisper"
        ])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Media tokens: 60" in result.output

    def test_transcription_unknown_model(self):
        result = runner.invoke(app, ["estimate-transcription", "-d", "60", "-m", "mystery"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "not priced" in result.output
        assert "Media tokens: 0" in result.output

    def test_translation_from_text(self):
        result = runner.invoke(app, [
            "estimate-translation", "--lang", "en", "--lang", "fr", "--text", "a" * 400
        ])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Billable units: 740" in result.output
        assert "Media tokens: 6" in result.output

    def test_translation_from_srt_file(self):
        temp_dir = tempfile.mkdtemp()
        try:
            path = os.path.join(temp_dir, "episode.srt")
            with open(path, 'w', encoding='utf-8') as f:
                f.write("1\n00:00:01,000 --> 00:00:02,000\n" + "a" * 400 + "\n")
            result = runner.invoke(app, ["estimate-translation", "-l", "en", "--file", path])
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
        assert result.exit_code == EXIT_CODE_PASS
        assert "Input units: 260" in result.output

    def test_summarization_from_duration(self):
        result = runner.invoke(app, ["estimate-summarization", "--duration", "60"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Billable units: 555" in result.output

    def test_summarization_without_input(self):
        result = runner.invoke(app, ["estimate-summarization"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Estimate unavailable" in result.output

    def test_missing_file(self):
        result = runner.invoke(app, ["estimate-summarization", "--file", "/nonexistent/transcript.txt"])
        assert result.exit_code == EXIT_CODE_FAIL


class TestManifestCommand:

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_builtin_manifest(self):
        result = runner.invoke(app, ["manifest"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "v1_2026-02-14" in result.output
        assert "deepgram_nova3" in result.output

    def test_custom_manifest(self):
        path = os.path.join(self.temp_dir, "pricing.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump({
                "version": "v9_test",
                "models": [{"id": "fast", "tokens_per_minute": 60}],
            }, f)

        result = runner.invoke(app, ["manifest", "--config", path])
        assert result.exit_code == EXIT_CODE_PASS
        assert "v9_test" in result.output

        result = runner.invoke(app, ["estimate-transcription", "-d", "90", "-m", "fast", "--config", path])
        assert "Media tokens: 90" in result.output

    def test_invalid_manifest(self):
        path = os.path.join(self.temp_dir, "pricing.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump({"version": "v9_test"}, f)

        result = runner.invoke(app, ["manifest", "--config", path])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error loading manifest" in result.output


class TestLedgerCommands:
    """Test ledger administration commands on a temp database."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "ledger.db")

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_init(self):
        result = runner.invoke(app, ["init", "--db", self.db_path])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized successfully" in result.output
        assert os.path.exists(self.db_path)

    def test_tokens_bootstraps(self):
        result = runner.invoke(app, ["tokens", "u1", "--provider", "google", "--db", self.db_path])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Balance: 50" in result.output
        assert "Available: 50" in result.output

    def test_grant_and_history(self):
        result = runner.invoke(app, ["grant", "u1", "100", "--db", self.db_path])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Granted 100 media tokens to u1" in result.output
        assert "Balance: 100" in result.output

        result = runner.invoke(app, ["history", "u1", "--db", self.db_path])
        assert result.exit_code == EXIT_CODE_PASS
        assert "grant" in result.output
        assert "+100" in result.output

    def test_grant_rejects_non_positive(self):
        result = runner.invoke(app, ["grant", "u1", "0", "--db", self.db_path])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "positive integer" in result.output

    def test_history_empty(self):
        result = runner.invoke(app, ["history", "nobody", "--db", self.db_path])
        assert result.exit_code == EXIT_CODE_PASS
        assert "No ledger entries" in result.output

    def test_verbose_flag(self):
        result = runner.invoke(app, ["--verbose", "tokens", "u1", "--db", self.db_path])
        assert result.exit_code == EXIT_CODE_PASS

    def test_bad_config_fails_cleanly(self):
        missing = os.path.join(self.temp_dir, "missing.yaml")
        broken = os.path.join(self.temp_dir, "broken.yaml")
        with open(broken, 'w', encoding='utf-8') as f:
            f.write("version: [unclosed\n")

        for path in (missing, broken):
            for args in (["tokens", "u1"], ["grant", "u1", "10"]):
                result = runner.invoke(app, args + ["--db", self.db_path, "--config", path])
                assert result.exit_code == EXIT_CODE_FAIL
                assert "Error:" in result.output
                assert result.exception is None or isinstance(result.exception, SystemExit)

"""
Tests for the tt command-line interface.
"""

from unittest.mock import MagicMock, patch

import pytest

from termtutor.cli import TermTutorCLI, _exit_code, main
from termtutor.config import ConfigManager
from termtutor.explainer import ExplainMode
from termtutor.responses import Error, Reply
from termtutor.session import ROLE_MODEL, ROLE_USER, SessionStore, Turn


@pytest.fixture
def config_manager(tmp_path):
    return ConfigManager(tmp_path / "config")


@pytest.fixture
def session_store(tmp_path):
    return SessionStore(tmp_path / "sessions")


@pytest.fixture
def cli(config_manager, session_store):
    return TermTutorCLI(config_manager, session_store)


def _save_session(store, name):
    store.load(name).extend([Turn(ROLE_USER, "q"), Turn(ROLE_MODEL, "a")])


class TestSessions:
    def test_list_empty(self, cli, capsys):
        assert cli.list_sessions() == 0
        assert "No sessions found." in capsys.readouterr().out

    def test_list(self, cli, session_store, capsys):
        _save_session(session_store, "beta")
        _save_session(session_store, "alpha")
        assert cli.list_sessions() == 0
        out = capsys.readouterr().out
        assert out.index("alpha") < out.index("beta")

    def test_delete(self, cli, session_store, capsys):
        _save_session(session_store, "proj")
        assert cli.delete_session("proj") == 0
        assert "Session 'proj' deleted." in capsys.readouterr().out
        assert session_store.list() == set()

    def test_delete_missing(self, cli, capsys):
        assert cli.delete_session("ghost") == 1
        assert "not found" in capsys.readouterr().err

    def test_delete_without_name(self, cli, capsys):
        assert cli.delete_session(None) == 1
        assert "Usage" in capsys.readouterr().err


class TestConfigCommand:
    def test_list(self, cli, capsys):
        assert cli.config("list") == 0
        out = capsys.readouterr().out
        assert "Model:" in out
        assert "Language:" in out

    def test_set_language(self, cli, config_manager):
        assert cli.config("language=pt-br") == 0
        assert config_manager.load().language == "pt-br"

    def test_unknown_action(self, cli, capsys):
        assert cli.config("colour=blue") == 1
        assert "Unknown config" in capsys.readouterr().err

    def test_empty_value(self, cli):
        assert cli.config("language=") == 1

    def test_model_needs_api_key(self, cli, capsys):
        assert cli.config("model=gemini-x") == 1
        assert "tt --auth" in capsys.readouterr().err

    @patch("termtutor.cli.GeminiClient")
    def test_model_is_validated(self, mock_client, cli, config_manager, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "k")
        mock_client.return_value.validate.return_value = Reply("OK")
        assert cli.config("model=gemini-x") == 0
        assert config_manager.load().model == "gemini-x"
        assert mock_client.call_args.args[0].model == "gemini-x"

    @patch("termtutor.cli.GeminiClient")
    def test_invalid_model_is_not_saved(self, mock_client, cli, config_manager, monkeypatch, capsys):
        monkeypatch.setenv("GEMINI_API_KEY", "k")
        mock_client.return_value.validate.return_value = Error("API error: HTTP 404")
        assert cli.config("model=nope") == 1
        assert config_manager.load().model != "nope"
        assert "Invalid model" in capsys.readouterr().err

    def test_reset(self, cli, config_manager):
        config_manager.set("language", "es")
        assert cli.config("reset") == 0
        assert config_manager.load().language == "en-us"


class TestAuth:
    @patch("termtutor.cli.GeminiClient")
    @patch("termtutor.cli.Prompt.ask", return_value=" new-key ")
    def test_valid_key_is_stored(self, mock_ask, mock_client, cli, config_manager):
        mock_client.return_value.validate.return_value = Reply("OK")
        assert cli.auth() == 0
        assert config_manager.get_api_key() == "new-key"
        assert mock_ask.call_args.kwargs["password"] is True

    @patch("termtutor.cli.GeminiClient")
    @patch("termtutor.cli.Prompt.ask", return_value="bad-key")
    def test_invalid_key_is_rejected(self, mock_ask, mock_client, cli, config_manager):
        mock_client.return_value.validate.return_value = Error("API error: HTTP 400")
        assert cli.auth() == 1
        assert config_manager.get_api_key() == ""

    @patch("termtutor.cli.Prompt.ask", return_value="   ")
    def test_empty_key(self, mock_ask, cli):
        assert cli.auth() == 1


class TestQuery:
    def test_missing_api_key(self, cli, capsys):
        assert cli.query(["hello"], None, False, False) == 1
        assert "API key not configured" in capsys.readouterr().err

    @pytest.fixture
    def pipeline(self, cli):
        pipeline = MagicMock()
        pipeline.ask.return_value = 0
        with patch.object(TermTutorCLI, "build_pipeline", return_value=pipeline):
            yield pipeline

    @pytest.mark.parametrize(
        "word,mode",
        [("explain", ExplainMode.BRIEF), ("eli5", ExplainMode.ELI5), ("detail", ExplainMode.DETAILED)],
    )
    def test_explain_modes(self, cli, pipeline, word, mode):
        cli.query([word, "ls", "-la"], None, False, False)
        pipeline.explain.assert_called_once_with("ls -la", mode)

    def test_whatif(self, cli, pipeline):
        cli.query(["whatif", "rm", "-rf", "x"], None, False, False)
        pipeline.whatif.assert_called_once_with("rm -rf x")

    def test_mode_word_alone_is_a_question(self, cli, pipeline):
        cli.query(["explain"], None, False, False)
        pipeline.ask.assert_called_once_with("explain")
        pipeline.explain.assert_not_called()

    def test_run_mode(self, cli, pipeline):
        cli.query(["explain", "the", "disk"], "proj", True, False)
        pipeline.run.assert_called_once_with("explain the disk")

    def test_default_mode(self, cli, pipeline):
        assert cli.query(["list", "files"], None, False, False) == 0
        pipeline.report_token_usage.assert_called_once()
        pipeline.ask.assert_called_once_with("list files")

    def test_interactive(self, cli, pipeline):
        pipeline.interactive.return_value = 0
        assert cli.query([], "proj", False, True) == 0
        pipeline.interactive.assert_called_once()

    def test_no_words(self, cli, pipeline):
        assert cli.query([], None, False, False) == 1

    def test_invalid_session_name(self, cli, monkeypatch, capsys):
        monkeypatch.setenv("GEMINI_API_KEY", "k")
        assert cli.query(["hi"], "../x", False, False) == 1
        assert "Invalid session name" in capsys.readouterr().err


class TestMain:
    def test_no_arguments_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: tt" in capsys.readouterr().out

    def test_version(self):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0

    def test_session_list(self, capsys):
        assert main(["--session", "list"]) == 0
        assert "No sessions found." in capsys.readouterr().out

    def test_session_delete_missing(self):
        assert main(["--session", "delete", "ghost"]) == 1

    def test_auth_must_be_alone(self, capsys):
        assert main(["--auth", "--run"]) == 1
        assert "--auth must be used alone" in capsys.readouterr().err

    def test_config_must_be_alone(self):
        assert main(["--config", "list", "--run"]) == 1

    def test_config_language(self, tmp_path):
        assert main(["--config", "language=es"]) == 0
        assert ConfigManager().load().language == "es"

    @patch.object(TermTutorCLI, "query", return_value=-1)
    def test_negative_exit_code_becomes_one(self, mock_query):
        assert main(["ls"]) == 1
        mock_query.assert_called_once_with(["ls"], None, False, False)

    @patch.object(TermTutorCLI, "query", side_effect=KeyboardInterrupt)
    def test_interrupt(self, mock_query):
        assert main(["--session", "proj", "list", "files"]) == 130


@pytest.mark.parametrize("code,expected", [(0, 0), (2, 2), (255, 255), (-1, 1), (-2, 1), (300, 1)])
def test_exit_code(code, expected):
    assert _exit_code(code) == expected

"""Tests for the conversational query pipeline."""

import io
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from termtutor.config import TutorConfig
from termtutor.executor import ExecutionResult
from termtutor.explainer import ExplainMode
from termtutor.pipeline import QueryPipeline
from termtutor.responses import Error, Reply
from termtutor.session import Session, SessionStore


@pytest.fixture
def client():
    client = MagicMock()
    client.config = TutorConfig(api_key="k")
    client.session = Session()
    return client


@pytest.fixture
def out():
    return io.StringIO()


@pytest.fixture
def confirm():
    return MagicMock(return_value=True)


@pytest.fixture
def confirm_dangerous():
    return MagicMock(return_value=True)


@pytest.fixture
def pipeline(client, out, confirm, confirm_dangerous):
    return QueryPipeline(
        client,
        console=Console(file=out, width=200),
        confirm=confirm,
        confirm_dangerous=confirm_dangerous,
        output=io.StringIO(),
    )


@pytest.fixture
def mock_run():
    with patch("termtutor.pipeline.run_and_capture") as mock_run:
        mock_run.return_value = ExecutionResult(exit_code=0, output="file.txt\n")
        yield mock_run


class TestExecute:
    def test_confirmed_command_runs_and_is_recorded(self, pipeline, client, confirm, mock_run):
        assert pipeline.execute("ls", "Lists files", ask_first=True) == 0
        confirm.assert_called_once_with("ls")
        mock_run.assert_called_once()
        assert mock_run.call_args.args[0] == "ls"
        client.add_command_output.assert_called_once_with("ls", "file.txt\n")

    def test_declined_command_is_not_run(self, pipeline, client, confirm, out, mock_run):
        confirm.return_value = False
        assert pipeline.execute("ls", ask_first=True) == 0
        mock_run.assert_not_called()
        client.add_command_output.assert_not_called()
        assert "Aborted." in out.getvalue()

    def test_safe_command_without_prompt(self, pipeline, confirm, mock_run):
        pipeline.execute("ls")
        confirm.assert_not_called()
        mock_run.assert_called_once()

    def test_dangerous_command_requires_yes(self, pipeline, confirm, confirm_dangerous, mock_run):
        confirm_dangerous.return_value = False
        assert pipeline.execute("rm -rf ./build", ask_first=True) == 0
        confirm_dangerous.assert_called_once_with("rm -rf ./build")
        confirm.assert_not_called()
        mock_run.assert_not_called()

    def test_dangerous_command_gated_even_without_ask_first(self, pipeline, confirm_dangerous, mock_run):
        pipeline.execute("sudo rm -rf /tmp/x")
        confirm_dangerous.assert_called_once()
        mock_run.assert_called_once()

    def test_exit_code_is_returned(self, pipeline, mock_run):
        mock_run.return_value = ExecutionResult(exit_code=2, output="missing\n")
        assert pipeline.execute("ls nope") == 2

    def test_empty_command(self, pipeline, mock_run):
        assert pipeline.execute("   ") == 1
        mock_run.assert_not_called()


class TestModes:
    def test_question_streams_answer(self, pipeline, client, out):
        def fake_stream(prompt, on_chunk, use_history=True):
            on_chunk("A process ")
            on_chunk("is a program.")
            return Reply("A process is a program.")

        client.stream_generate.side_effect = fake_stream
        assert pipeline.ask("what is a process?") == 0
        assert "A process" in out.getvalue()
        assert "is a program." in out.getvalue()
        prompt = client.stream_generate.call_args.args[0]
        assert prompt.startswith("what is a process?")
        assert "Respond in English." in prompt
        client.generate.assert_not_called()

    def test_stream_error(self, pipeline, client, capsys):
        client.stream_generate.return_value = Error("API error: HTTP 500")
        assert pipeline.ask("why?") == 1
        assert "API error: HTTP 500" in capsys.readouterr().err

    def test_request_is_classified_and_confirmed(self, pipeline, client, confirm, mock_run):
        client.generate.return_value = Reply(
            '{"type":"execute","command":"ls -la","explanation":"Lists files"}'
        )
        assert pipeline.ask("list files here") == 0
        confirm.assert_called_once_with("ls -la")
        mock_run.assert_called_once()

    def test_explain_reply_is_printed(self, pipeline, client, out, mock_run):
        client.generate.return_value = Reply('{"type":"explain","response":"Hello!"}')
        assert pipeline.smart("hi") == 0
        assert "Hello!" in out.getvalue()
        mock_run.assert_not_called()

    def test_smart_error(self, pipeline, client):
        client.generate.return_value = Error("Network error: down")
        assert pipeline.smart("list files") == 1

    def test_run_mode_executes_without_prompt(self, pipeline, client, confirm, mock_run):
        client.generate.return_value = Reply('{"command":"du -sh .","explanation":"Size"}')
        assert pipeline.run("how big is this dir") == 0
        confirm.assert_not_called()
        assert mock_run.call_args.args[0] == "du -sh ."

    def test_explain(self, pipeline, client, out):
        client.generate.return_value = Reply("Lists directory contents.")
        assert pipeline.explain("ls", ExplainMode.DETAILED) == 0
        assert "Lists directory contents." in out.getvalue()
        assert "advanced Linux instructor" in client.generate.call_args.args[0]

    def test_explain_error(self, pipeline, client):
        client.generate.return_value = Error("Invalid response structure")
        assert pipeline.explain("ls") == 1

    def test_whatif(self, pipeline, client, out, mock_run):
        client.generate.return_value = Reply("FILES_AFFECTED: ./build\nDESTRUCTIVENESS: HIGH")
        assert pipeline.whatif("rm -rf ./build") == 0
        text = out.getvalue()
        assert "POTENTIALLY DESTRUCTIVE COMMAND" in text
        assert "./build" in text
        mock_run.assert_not_called()

    def test_markup_in_model_text_is_literal(self, pipeline, client, out):
        client.generate.return_value = Reply("use [bold]grep[/bold]")
        pipeline.explain("grep")
        assert "[bold]grep[/bold]" in out.getvalue()


class TestTokenUsage:
    def test_ephemeral_session_skips_count(self, pipeline, client):
        pipeline.report_token_usage()
        client.count_tokens.assert_not_called()

    @pytest.mark.parametrize(
        "tokens,expected",
        [(850_000, "WARNING"), (600_000, "ATTENTION"), (10, None), (-1, None)],
    )
    def test_tiers(self, pipeline, client, tmp_path, capsys, tokens, expected):
        client.session = SessionStore(tmp_path).load("proj")
        client.count_tokens.return_value = tokens
        pipeline.report_token_usage()
        err = capsys.readouterr().err
        if expected:
            assert expected in err
            assert "proj" in err
        else:
            assert err == ""


class TestInteractive:
    def test_loop(self, pipeline, client, tmp_path, out, mock_run):
        session = SessionStore(tmp_path).load("console")
        client.session = session
        client.generate.return_value = Reply('{"type":"execute","command":"pwd"}')
        lines = iter(["", "clear", "print the directory", "quit", "never read"])

        assert pipeline.interactive(read_line=lambda prompt: next(lines)) == 0

        text = out.getvalue()
        assert "Session: console" in text
        assert "Session cleared." in text
        assert "Goodbye!" in text
        assert mock_run.call_args.args[0] == "pwd"
        assert next(lines) == "never read"

    def test_console_still_gates_dangerous(self, pipeline, client, confirm, confirm_dangerous, mock_run):
        client.generate.return_value = Reply('{"type":"execute","command":"rm -rf ./tmp"}')
        confirm_dangerous.return_value = False
        lines = iter(["clean up"])

        def read_line(prompt):
            try:
                return next(lines)
            except StopIteration:
                raise EOFError from None

        assert pipeline.interactive(read_line=read_line) == 0
        confirm.assert_not_called()
        confirm_dangerous.assert_called_once()
        mock_run.assert_not_called()


class TestDefaultPrompts:
    @patch("termtutor.pipeline.Prompt.ask", return_value="y")
    def test_confirm_accepts_y(self, mock_ask, client):
        assert QueryPipeline(client, console=Console(file=io.StringIO()))._prompt_confirm("ls")

    @patch("termtutor.pipeline.Prompt.ask", side_effect=EOFError)
    def test_confirm_eof_declines(self, mock_ask, client):
        assert not QueryPipeline(client, console=Console(file=io.StringIO()))._prompt_confirm("ls")

    @pytest.mark.parametrize("answer,accepted", [("yes", True), ("y", False), ("YES", False)])
    def test_dangerous_needs_literal_yes(self, client, answer, accepted):
        pipeline = QueryPipeline(client, console=Console(file=io.StringIO()))
        with patch("termtutor.pipeline.Prompt.ask", return_value=answer):
            assert pipeline._prompt_dangerous("rm -rf /") is accepted

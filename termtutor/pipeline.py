"""
Conversational query pipeline.

One user interaction at a time: classify the request, gate commands through
the danger classifier and confirmation, execute, and feed the captured
output back into the session. Explanations and what-if simulations are
printed directly.
"""

import logging
import sys
from collections.abc import Callable
from typing import TextIO

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

from termtutor.command_parser import CommandParser
from termtutor.danger import classify_command
from termtutor.executor import run_and_capture
from termtutor.explainer import ExplainerEngine, ExplainMode
from termtutor.gemini_client import GeminiClient
from termtutor.intent import IntentClassifier
from termtutor.responses import Error, Execute, Explain, Reply
from termtutor.simulator import SimulationResult, Simulator
from termtutor.token_budget import TokenBudgetMonitor, UsageLevel

logger = logging.getLogger(__name__)

PLAIN_TEXT_DIRECTIVE = "CRITICAL: Respond in plain text only. No markdown, no formatting."
EXIT_COMMANDS = ("exit", "quit")

ConfirmCallback = Callable[[str], bool]


class QueryPipeline:
    """
    Handles one user interaction per call.

    Every public method returns a process-style exit code: 0 on success,
    1 on transport/decode errors, or the executed command's own exit code.
    """

    def __init__(
        self,
        client: GeminiClient,
        console: Console | None = None,
        confirm: ConfirmCallback | None = None,
        confirm_dangerous: ConfirmCallback | None = None,
        output: TextIO | None = None,
    ):
        """
        Args:
            client: Gemini client bound to the active session
            console: Where to print results (stdout by default)
            confirm: Asks "Execute? [y/N]" for ordinary commands
            confirm_dangerous: Asks the user to type "yes" for dangerous ones
            output: Stream that receives live command output
        """
        self.client = client
        self.console = console or Console()
        self.err_console = Console(stderr=True)
        self.output = output or sys.stdout
        self.classifier = IntentClassifier(client)
        self.explainer = ExplainerEngine(client)
        self.simulator = Simulator(client)
        self.monitor = TokenBudgetMonitor(client)
        self.parser = CommandParser()
        self._confirm = confirm or self._prompt_confirm
        self._confirm_dangerous = confirm_dangerous or self._prompt_dangerous

    # ---------------------------------------------------------------- Prompts
    def _prompt_confirm(self, command: str) -> bool:
        try:
            answer = Prompt.ask("\n[green]Execute? \\[y/N][/green]", default="", show_default=False)
        except EOFError:
            return False
        return answer.strip() in ("y", "Y", "yes")

    def _prompt_dangerous(self, command: str) -> bool:
        self.console.print("\n[bold red]⚠️  WARNING: POTENTIALLY DANGEROUS COMMAND![/bold red]")
        self.console.print(
            "[red]This command may cause irreversible damage to your system or data.[/red]"
        )
        self.console.print(f"Command: [bold]{escape(command)}[/bold]", highlight=False)
        try:
            answer = Prompt.ask(
                "\n[yellow]Type 'yes' to confirm execution[/yellow]", default="", show_default=False
            )
        except EOFError:
            return False
        return answer == "yes"

    # ----------------------------------------------------------------- Output
    def _print_error(self, message: str) -> None:
        self.err_console.print(f"[red]Error: {escape(message)}[/red]", highlight=False)

    def _print_suggestion(self, text: str) -> None:
        self.console.print(f"\n[yellow]💡[/yellow] {escape(text)}\n", highlight=False)

    def _print_explanation(self, text: str) -> None:
        self.console.print(f"\n[cyan]📖[/cyan] {escape(text)}", highlight=False)

    def _print_chunk(self, chunk: str) -> None:
        self.console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)

    def print_simulation(self, result: SimulationResult) -> None:
        if result.is_destructive:
            self.console.print("\n[bold red]⚠️  POTENTIALLY DESTRUCTIVE COMMAND![/bold red]")
        for warning in result.warnings:
            self.console.print(f"[red]⚠️  {escape(warning)}[/red]", highlight=False)
        self.console.print("\n[cyan]🔮 Simulation:[/cyan]")
        self.console.print(result.predicted_text, markup=False, highlight=False)
        if result.files_affected:
            self.console.print("\n[bold]Files affected:[/bold]")
            for path in result.files_affected:
                self.console.print(f"  - {path}", markup=False, highlight=False)

    # ------------------------------------------------------------- Execution
    def execute(self, command: str, explanation: str = "", ask_first: bool = False) -> int:
        """Gate, run and record one command.

        Dangerous commands always need an explicit "yes"; ``ask_first`` adds a
        y/N prompt for the rest. A declined command is not an error.
        """
        command = command.strip()
        if not command:
            self._print_error("The model did not return a command.")
            return 1

        if explanation:
            self._print_suggestion(explanation)

        verdict = classify_command(command)
        if verdict.is_dangerous:
            logger.info(f"Dangerous command ({', '.join(verdict.matched_rules)}): {command}")
            if not self._confirm_dangerous(command):
                self.console.print("Aborted.")
                return 0
        elif ask_first:
            self.console.print(f"[cyan]$ {escape(command)}[/cyan]", highlight=False)
            if not self._confirm(command):
                self.console.print("Aborted.")
                return 0

        self.console.print(f"[cyan]$ {escape(command)}[/cyan]\n", highlight=False)
        result = run_and_capture(command, echo=self.output)
        logger.debug(f"Command exited with {result.exit_code}")
        self.client.add_command_output(command, result.output)
        return result.exit_code

    # ------------------------------------------------------------------ Modes
    def ask(self, query: str) -> int:
        """Default mode: questions stream an answer, requests go through ``smart``."""
        if self.parser.is_question(query):
            return self.stream_answer(query)
        return self.smart(query, ask_first=True)

    def stream_answer(self, query: str) -> int:
        prompt = (
            f"{query}\n\n{self.client.config.language_instruction}\n\n{PLAIN_TEXT_DIRECTIVE}"
        )
        self.console.print()
        match self.client.stream_generate(prompt, self._print_chunk):
            case Reply():
                self.console.print("\n")
                return 0
            case Error(message=message):
                self.console.print()
                self._print_error(message)
                return 1

    def smart(self, query: str, ask_first: bool = False) -> int:
        """Classify the request, then execute or explain."""
        match self.classifier.classify(query):
            case Execute(command=command, explanation=explanation):
                return self.execute(command, explanation, ask_first=ask_first)
            case Explain(text=text):
                self._print_suggestion(text)
                return 0
            case Error(message=message):
                self._print_error(message)
                return 1

    def run(self, task: str) -> int:
        """``--run`` mode: get a command for the task and execute it."""
        match self.classifier.command_for_task(task):
            case Execute(command=command, explanation=explanation):
                return self.execute(command, explanation)
            case Explain(text=text):
                self._print_suggestion(text)
                return 0
            case Error(message=message):
                self._print_error(message)
                return 1

    def explain(self, command: str, mode: ExplainMode = ExplainMode.BRIEF) -> int:
        match self.explainer.explain(command, mode):
            case Reply(text=text):
                self._print_explanation(text)
                return 0
            case Error(message=message):
                self._print_error(message)
                return 1

    def whatif(self, command: str) -> int:
        self.print_simulation(self.simulator.simulate(command))
        return 0

    def report_token_usage(self) -> None:
        """Print the advisory context-size tiers for named sessions."""
        session = self.client.session
        if session.is_ephemeral:
            return
        usage = self.monitor.check()
        if usage is None:
            return
        logger.debug(
            f"Session '{session.name}': {usage.tokens} tokens ({usage.percent:.2f}%)"
        )
        if usage.level == UsageLevel.WARNING:
            self.err_console.print(
                f"[red]⚠️  WARNING: Session '{escape(session.name)}' is using {int(usage.percent)}% "
                f"of token limit ({usage.tokens} tokens).\n"
                "Consider creating a new session to avoid context overflow.[/red]\n",
                highlight=False,
            )
        elif usage.level == UsageLevel.ATTENTION:
            self.err_console.print(
                f"[yellow]💡 ATTENTION: Session '{escape(session.name)}' is using {int(usage.percent)}% "
                f"of token limit ({usage.tokens} tokens).\n"
                "Consider creating a new session soon.[/yellow]\n",
                highlight=False,
            )

    # ---------------------------------------------------------------- Console
    def interactive(self, read_line: Callable[[str], str] | None = None) -> int:
        """Read-eval loop: each line goes through ``smart`` without a y/N prompt."""
        read_line = read_line or (lambda prompt: self.console.input(prompt))
        session = self.client.session

        self.console.print("[bold]TerminalTutor Interactive Console[/bold]")
        if not session.is_ephemeral:
            self.console.print(f"Session: [green]{escape(session.name)}[/green]")
        self.console.print("Type 'exit' or 'quit' to leave, 'clear' to clear session\n")

        while True:
            try:
                line = read_line("[cyan]tt > [/cyan]")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line in EXIT_COMMANDS:
                self.console.print("Goodbye!")
                break
            if line == "clear":
                session.clear()
                self.console.print("Session cleared.")
                continue
            self.smart(line)
            self.console.print()
        return 0

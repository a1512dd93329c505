import argparse
import logging
import sys

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

from termtutor import __version__
from termtutor.config import DEFAULT_LANGUAGE, DEFAULT_MODEL, ConfigManager, TutorConfig
from termtutor.errors import ConfigError, TutorError
from termtutor.explainer import ExplainMode
from termtutor.gemini_client import GeminiClient
from termtutor.pipeline import QueryPipeline
from termtutor.responses import Error, Reply
from termtutor.session import SessionStore

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

EXPLAIN_MODES = {
    "explain": ExplainMode.BRIEF,
    "eli5": ExplainMode.ELI5,
    "detail": ExplainMode.DETAILED,
}

EPILOG = """
Examples:
  tt "what is a process?"                     # streaming explanation
  tt --run "find the largest file"            # executes command
  tt explain "find . -type f -size +100M"     # explain a command
  tt eli5 "grep -rn pattern ."                # explain like I'm 5
  tt whatif "rm -rf ./build"                  # simulate a command
  tt --session proj "build this project"      # with context
  tt --session proj --run "run tests"         # execute with context
  tt --session list                           # list sessions
  tt --session delete proj                    # delete a session
  tt --config model=<name>                    # set Gemini model
  tt --config language=<lang>                 # set response language

Environment Variables:
  GEMINI_API_KEY          Gemini API key (overrides the stored key)
  TERMTUTOR_CONFIG_DIR    Settings directory (default ~/.config/termtutor)
  TERMTUTOR_SESSION_DIR   Session directory (default ~/.tt)
"""


class TermTutorCLI:
    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        session_store: SessionStore | None = None,
    ):
        self.config_manager = config_manager or ConfigManager()
        self.session_store = session_store or SessionStore()

    def _print_error(self, message: str):
        err_console.print(f"[red]Error: {escape(message)}[/red]", highlight=False)

    def _print_success(self, message: str):
        console.print(f"[green]{escape(message)}[/green]", highlight=False)

    # ------------------------------------------------------------- Sessions
    def list_sessions(self) -> int:
        sessions = sorted(self.session_store.list())
        if not sessions:
            console.print("No sessions found.")
            return 0
        console.print("[bold]Available sessions:[/bold]")
        for name in sessions:
            console.print(f"  {name}", markup=False, highlight=False)
        return 0

    def delete_session(self, name: str | None) -> int:
        if not name:
            self._print_error("Usage: tt --session delete <name>")
            return 1
        try:
            self.session_store.delete(name)
        except TutorError as e:
            self._print_error(str(e))
            return 1
        self._print_success(f"Session '{name}' deleted.")
        return 0

    # --------------------------------------------------------------- Config
    def _validate(self, config: TutorConfig) -> str | None:
        """Probe the API; returns an error message or None."""
        match GeminiClient(config).validate():
            case Reply():
                return None
            case Error(message=message):
                return message

    def config(self, action: str) -> int:
        """Handle `tt --config list|reset|model=<name>|language=<lang>`."""
        settings = self.config_manager.load()
        try:
            if action == "list":
                console.print("[bold]Current Configuration:[/bold]")
                console.print(f"  Model:    {settings.model}", markup=False, highlight=False)
                console.print(f"  Language: {settings.language}", markup=False, highlight=False)
                return 0

            if action == "reset":
                self.config_manager.reset()
                self._print_success("Configuration reset to defaults.")
                return 0

            key, sep, value = action.partition("=")
            if not sep or key not in ConfigManager.SETTABLE_KEYS:
                self._print_error(
                    "Unknown config. Use: tt --config model=<name> or tt --config language=<lang>"
                )
                return 1
            if not value.strip():
                self._print_error(f"Empty {key} value.")
                return 1

            if key == "model":
                api_key = self.config_manager.get_api_key()
                if not api_key:
                    self._print_error("Configure API key first with 'tt --auth'")
                    return 1
                console.print(f"Validating model {value}...", markup=False, highlight=False)
                error = self._validate(TutorConfig(api_key, value.strip(), settings.language))
                if error:
                    self._print_error(f"Invalid model - {error}")
                    return 1

            self.config_manager.set(key, value)
        except ConfigError as e:
            self._print_error(str(e))
            return 1

        self._print_success(f"{key.capitalize()} set: {value.strip()}")
        return 0

    def auth(self) -> int:
        """Prompt for an API key without echo, validate it, and store it."""
        try:
            api_key = Prompt.ask("Paste your API key (hidden input)", password=True).strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            return 1
        if not api_key:
            self._print_error("Empty API key.")
            return 1

        settings = self.config_manager.load()
        console.print("Validating API key...")
        error = self._validate(TutorConfig(api_key, settings.model, settings.language))
        if error:
            self._print_error(f"Invalid API key - {error}")
            return 1

        try:
            self.config_manager.store_api_key(api_key)
        except ConfigError as e:
            self._print_error(str(e))
            return 1
        self._print_success("API key validated and saved!")
        return 0

    # ---------------------------------------------------------------- Query
    def build_pipeline(self, session_name: str | None) -> QueryPipeline:
        session = self.session_store.load(session_name)
        config = self.config_manager.build_config(session_name=session.name)
        return QueryPipeline(GeminiClient(config, session))

    def query(self, words: list[str], session_name: str | None, run_mode: bool, interactive: bool) -> int:
        try:
            pipeline = self.build_pipeline(session_name)
        except TutorError as e:
            self._print_error(str(e))
            return 1

        if interactive:
            return pipeline.interactive()

        if not words:
            self._print_error("No command or question provided.")
            return 1

        pipeline.report_token_usage()

        mode, rest = words[0], " ".join(words[1:])
        if not run_mode and rest:
            if mode in EXPLAIN_MODES:
                return pipeline.explain(rest, EXPLAIN_MODES[mode])
            if mode == "whatif":
                return pipeline.whatif(rest)

        text = " ".join(words)
        if run_mode:
            return pipeline.run(text)
        return pipeline.ask(text)


def _exit_code(code: int) -> int:
    # Signals and spawn failures come back negative
    return code if 0 <= code <= 255 else 1


def build_parser() -> argparse.ArgumentParser:
    settings = ConfigManager().load()
    parser = argparse.ArgumentParser(
        prog="tt",
        description="TerminalTutor - CLI tutor that lives in your shell",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG
        + f"\nCurrent Config:\n  Model: {settings.model}\n  Language: {settings.language}\n"
        + f"  (defaults: {DEFAULT_MODEL}, {DEFAULT_LANGUAGE})\n",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--session",
        metavar="NAME",
        help="Persistent conversation NAME, or 'list' / 'delete <name>'",
    )
    parser.add_argument("--run", action="store_true", help="Execute a command for the task")
    parser.add_argument("--console", action="store_true", help="Interactive console mode")
    parser.add_argument("--auth", action="store_true", help="Store API key securely")
    parser.add_argument(
        "--config",
        metavar="ACTION",
        help="list | reset | model=<name> | language=<lang>",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "words",
        nargs=argparse.REMAINDER,
        help="Question, task, or explain|eli5|detail|whatif <command>",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    cli = TermTutorCLI()

    if args.auth:
        if args.config or args.session or args.run or args.console or args.words:
            cli._print_error("--auth must be used alone.")
            return 1
        return cli.auth()

    if args.config:
        if args.session or args.run or args.console or args.words:
            cli._print_error("--config must be used alone with its argument.")
            return 1
        return cli.config(args.config)

    if args.session == "list":
        return cli.list_sessions()
    if args.session == "delete":
        return cli.delete_session(args.words[0] if args.words else None)

    if not args.words and not args.console:
        parser.print_help()
        return 0

    try:
        code = cli.query(args.words, args.session, args.run, args.console)
    except KeyboardInterrupt:
        console.print("\nInterrupted.")
        return 130
    return _exit_code(code)


if __name__ == "__main__":
    sys.exit(main())

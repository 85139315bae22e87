"""CLI interface for Mnemo."""

import os
import uuid
from dataclasses import dataclass
from pathlib import Path

from groq import AsyncGroq

from .actions import ChatActions
from .agent import AgentConfig, AgentLoop, GroqResponseGenerator, StopReason
from .logging import configure_logger, get_logger
from .memory import MemoryManager, RememberTool
from .session import SessionManager
from .store import ConversationStore
from .tools import (
    CalculatorTool,
    ConversationReviewTool,
    RandomFactTool,
    TodoTool,
    ToolRegistry,
)
from .turn_logger import TurnLogger

DEFAULT_DB_PATH = Path.home() / ".mnemo" / "mnemo.db"


BANNER = """
╔══════════════════════════════════════════╗
║              Mnemo v0.1.0                ║
║     Assistant with a session memory      ║
╚══════════════════════════════════════════╝

Commands:
  /exit, /quit  - Exit the CLI
  /reset        - Start a new conversation (deletes this one)
  /memory       - Show remembered facts
  /todos        - Show open to-do items
  /log          - Show the reasoning trace
  /help         - Show this help

Type your message and press Enter.
"""


@dataclass
class CLIConfig:
    """Settings for the CLI outside the agent loop."""

    db_path: Path = DEFAULT_DB_PATH
    user_id: str = "local"
    log_dir: Path | None = None


def _config_from_env() -> tuple[AgentConfig, CLIConfig]:
    """Load configuration from environment variables."""
    agent_config = AgentConfig(
        model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"),
        max_tool_loops=int(os.getenv("MNEMO_MAX_TOOL_LOOPS", "5")),
        model_timeout=float(os.getenv("MNEMO_MODEL_TIMEOUT", "60")),
        tool_timeout=float(os.getenv("MNEMO_TOOL_TIMEOUT", "30")),
    )

    log_dir = os.getenv("MNEMO_LOG_DIR")
    cli_config = CLIConfig(
        db_path=Path(os.getenv("MNEMO_DB_PATH", str(DEFAULT_DB_PATH))).expanduser(),
        user_id=os.getenv("MNEMO_USER_ID", "local"),
        log_dir=Path(log_dir).expanduser() if log_dir else None,
    )

    return agent_config, cli_config


def build_registry(store: ConversationStore, memory: MemoryManager) -> ToolRegistry:
    """Create the default tool set."""
    return ToolRegistry(
        [
            TodoTool(store),
            CalculatorTool(),
            ConversationReviewTool(store),
            RememberTool(memory),
            RandomFactTool(),
        ]
    )


class CLI:
    """Interactive command-line interface for Mnemo."""

    def __init__(
        self,
        config: AgentConfig | None = None,
        cli_config: CLIConfig | None = None,
        registry: ToolRegistry | None = None,
        groq_client: AsyncGroq | None = None,
    ) -> None:
        # Load config from env if not provided
        if config is None or cli_config is None:
            agent_config, env_cli_config = _config_from_env()
            config = config or agent_config
            cli_config = cli_config or env_cli_config

        self.config = config
        self.cli_config = cli_config
        self.user_id = cli_config.user_id

        self.store = ConversationStore(cli_config.db_path)
        self.store.init_db()
        self.memory = MemoryManager(self.store)
        self.turn_logger = TurnLogger(self.store)
        self.sessions = SessionManager(self.store)
        self.registry = registry or build_registry(self.store, self.memory)
        self.logger = get_logger()

        client = groq_client or AsyncGroq(api_key=os.getenv("GROQ_API_KEY"))
        generator = GroqResponseGenerator(
            client,
            model=config.model,
            tools_schema=self.registry.get_tools_schema(),
        )
        self.agent = AgentLoop(
            self.store,
            self.registry,
            generator,
            config=config,
            turn_logger=self.turn_logger,
            memory=self.memory,
            telemetry=self.logger,
        )
        self.actions = ChatActions(self.agent, self.sessions)
        self.session_id = self._new_session_id()

    def _new_session_id(self) -> str:
        """Generate a new session ID."""
        return f"cli-{uuid.uuid4().hex[:8]}"

    def _start_session(self) -> None:
        self.logger.set_session_id(self.session_id)
        self.logger.log("session_start", session_id=self.session_id, user_id=self.user_id)

    async def _reset(self) -> None:
        """Delete the current conversation and start a new one."""
        old_session_id = self.session_id
        result = await self.actions.reset_conversation(self.user_id, old_session_id)
        if not result["success"]:
            print(f"\n❌ Reset failed: {result['error']}")
            self.logger.log("error", session_id=old_session_id, error=result["error"])
            return

        self.session_id = self._new_session_id()
        self._start_session()
        self.logger.log(
            "session_reset", old_session_id=old_session_id, session_id=self.session_id
        )
        print(f"\n✓ Conversation reset. New session: {self.session_id}")

    def _format_response(self, content: str, stop_reason: StopReason, iterations: int) -> str:
        """Format the assistant's reply for display."""
        output = ["\n" + "─" * 40]
        output.append(content)
        output.append("─" * 40)

        if stop_reason != StopReason.COMPLETE:
            output.append(f"⚠ Stopped: {stop_reason.value} (iterations: {iterations})")

        return "\n".join(output)

    def _show_memory(self) -> None:
        facts = self.memory.load(self.user_id, self.session_id)
        if not facts:
            print("\n(memory is empty)")
            return
        print()
        for fact in facts:
            print(f"- {fact.text}  [{fact.source}]")

    def _show_todos(self) -> None:
        items = self.store.list_todos(self.user_id, self.session_id)
        if not items:
            print("\n(no open to-do items)")
            return
        print()
        for item in items:
            print(f"- [{item.id}] {item.text}")

    def _show_log(self) -> None:
        steps = self.turn_logger.list_steps(self.user_id, self.session_id)
        if not steps:
            print("\n(no steps logged)")
            return
        for step in steps:
            fields = step.to_dict()
            fields.pop("id", None)
            print(f"\n[{fields.pop('timestamp', '')}]")
            for key, value in fields.items():
                print(f"  {key.replace('_', ' ')}: {value}")

    async def _process_message(self, message: str) -> None:
        """Process a user message through the agent."""
        try:
            result = await self.actions.run_turn(self.session_id, message, self.user_id)
            print(self._format_response(result.content, result.stop_reason, result.iterations))

            self.logger.log_agent_stop(
                result.stop_reason.value,
                session_id=self.session_id,
                user_id=self.user_id,
                iterations=result.iterations,
                error=result.error,
            )

        except Exception as e:
            error_msg = f"Error: {e}"
            print(f"\n❌ {error_msg}")
            self.logger.log("error", session_id=self.session_id, error=str(e))

    async def _handle_command(self, command: str) -> bool:
        """Handle a special command. Returns True if should continue, False to exit."""
        cmd = command.lower().strip()

        if cmd in ("/exit", "/quit", "exit", "quit"):
            print("\n👋 Goodbye!")
            self.logger.log("session_end", session_id=self.session_id)
            return False

        if cmd == "/reset":
            await self._reset()
            return True

        if cmd == "/memory":
            self._show_memory()
            return True

        if cmd == "/todos":
            self._show_todos()
            return True

        if cmd == "/log":
            self._show_log()
            return True

        if cmd == "/help":
            print(BANNER)
            print(f"Tools: {', '.join(self.registry.list_tools())}")
            return True

        return True  # Unknown command, continue

    async def run(self) -> None:
        """Run the interactive CLI."""
        print(BANNER)
        print(f"Session: {self.session_id}\n")

        self._start_session()

        try:
            while True:
                try:
                    user_input = input("you> ").strip()

                    if not user_input:
                        continue

                    # Handle special commands
                    if user_input.startswith("/") or user_input.lower() in ("exit", "quit"):
                        if not await self._handle_command(user_input):
                            break
                        continue

                    await self._process_message(user_input)

                except KeyboardInterrupt:
                    print("\n\n⚡ Interrupted")
                    try:
                        confirm = input("Exit? (y/n): ").strip().lower()
                        if confirm in ("y", "yes"):
                            print("👋 Goodbye!")
                            self.logger.log("session_interrupt", session_id=self.session_id)
                            break
                    except (KeyboardInterrupt, EOFError):
                        print("\n👋 Goodbye!")
                        break

                except EOFError:
                    print("\n👋 Goodbye!")
                    break
        finally:
            self.store.close()


async def run_cli() -> None:
    """Run the CLI with default configuration."""
    agent_config, cli_config = _config_from_env()
    configure_logger(cli_config.log_dir)

    # Check for API key
    if not os.getenv("GROQ_API_KEY"):
        print("❌ Error: GROQ_API_KEY environment variable not set")
        print("Please set it in your .env file or environment")
        return

    cli = CLI(config=agent_config, cli_config=cli_config)
    await cli.run()

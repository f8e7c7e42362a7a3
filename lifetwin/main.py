"""
main.py

Entry point for LifeTwin.
Starts a CLI chat loop where every message is answered by the digital twin
and fed back into the learning engine. Storage defaults to DATABASE_URL;
pass --memory for a throwaway in-memory session.
Part of LifeTwin — Adaptive Personalization Core.
"""

import argparse
import asyncio
import logging
import sys

from lifetwin import config
from lifetwin.core.context import LearningContextProvider
from lifetwin.core.orchestrator import EngineOrchestrator
from lifetwin.core.twin import DigitalTwinCore, DigitalTwinResponse, LifeTwinQuery
from lifetwin.database.sql_store import SqlStores
from lifetwin.database.stores import (
    InMemoryAutonomySettingsStore,
    InMemoryEventStore,
    InMemoryPersonalityStore,
)
from lifetwin.learning.engine import LearningEngine
from lifetwin.learning.facts import FactExtractionQueue

_log = logging.getLogger("lifetwin.main")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "main.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


def _attach_console() -> None:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.setLevel(logging.WARNING)
    logging.getLogger("lifetwin").addHandler(console_handler)


def print_banner() -> None:
    """Print the LifeTwin welcome banner."""
    print()
    print("=" * 60)
    print("   LIFETWIN - Adaptive Personalization Core")
    print("=" * 60)
    print()


def print_engines(status: dict[str, bool]) -> None:
    print("Available Engines:")
    labels = [("openai", "OpenAI (default)"), ("anthropic", "Anthropic (complex)"), ("local", "Local (private)")]
    for key, label in labels:
        state = "[OK] online" if status.get(key) else "[--] offline"
        print(f"  {label:22} {state}")
    print()


def print_response(result: DigitalTwinResponse) -> None:
    provider = result.metadata.get("provider", "?")
    print(f"[{provider} | {result.confidence:.0%}] {result.response}")
    for action in result.actions:
        mode = "needs approval" if action.requires_approval else "autonomous"
        print(f"  -> action: {action.description} [{action.module}, {mode}]")
    for connection in result.cross_module_connections:
        print(f"  ~ {connection.type}: {connection.description}")
    print()


def build_twin(memory: bool = False, database_url: str | None = None) -> tuple[DigitalTwinCore, FactExtractionQueue]:
    """
    Wire stores, learning engine, context provider, and engines into a twin.

    Args:
        memory: Use in-memory stores instead of SQL.
        database_url: SQLAlchemy URL. Defaults to config.DATABASE_URL.

    Returns:
        (twin, fact_queue)
    """
    if memory:
        events, personality, autonomy = (
            InMemoryEventStore(),
            InMemoryPersonalityStore(),
            InMemoryAutonomySettingsStore(),
        )
    else:
        stores = SqlStores.from_url(database_url or config.DATABASE_URL)
        events, personality, autonomy = stores.events, stores.personality, stores.autonomy

    engine = LearningEngine(events, personality)
    provider = LearningContextProvider(engine)
    # Extracted facts reach later prompts as user-defined context
    facts = FactExtractionQueue(sink=provider.add_facts)
    engine.fact_queue = facts
    twin = DigitalTwinCore(
        learning=engine,
        personality_store=personality,
        autonomy_store=autonomy,
        context_provider=provider,
        orchestrator=EngineOrchestrator(),
    )
    return twin, facts


async def chat_loop(twin: DigitalTwinCore, facts: FactExtractionQueue, user_id: str, module: str | None) -> None:
    """
    Run the interactive chat loop.

    Args:
        twin: The wired twin.
        facts: Background fact queue, stopped on exit.
        user_id: The user ID for the session.
        module: Module the user is "in", if any.
    """
    print(f"User: {user_id}")
    print("Type your message and press Enter to chat.")
    print("Type 'exit' or 'quit' to stop, 'stats' for learning analytics.")
    print()

    history: list[dict] = []
    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, "You: ")).strip()
            except (EOFError, KeyboardInterrupt):
                print("\nGoodbye!")
                break

            if not user_input:
                continue
            if user_input.lower() in ("exit", "quit", "bye"):
                print("Goodbye!")
                break
            if user_input.lower() == "stats":
                analytics = await twin.learning.get_learning_analytics(user_id)
                for key, value in analytics.items():
                    if key != "recent_insights":
                        print(f"  {key}: {value}")
                print()
                continue

            result = await twin.process_as_digital_twin(
                LifeTwinQuery(
                    query=user_input,
                    user_id=user_id,
                    current_module=module,
                    conversation_history=list(history[-20:]),
                )
            )
            print_response(result)
            history.append({"role": "user", "content": user_input})
            history.append({"role": "assistant", "content": result.response})
            _log.info("Conversation turn completed")
    finally:
        await facts.stop()


def main() -> None:
    """Parse arguments and start the chat loop."""
    parser = argparse.ArgumentParser(description="LifeTwin - Adaptive Personalization Core")
    parser.add_argument("--user", default=config.DEFAULT_USER_ID, help="User ID for the session")
    parser.add_argument("--module", default=None, help="Current module (household, chat, drive, business)")
    parser.add_argument("--database", default=None, help="SQLAlchemy database URL")
    parser.add_argument("--memory", action="store_true", help="Use in-memory storage")
    parser.add_argument("--status", action="store_true", help="Show engine status and exit")
    args = parser.parse_args()

    _attach_console()
    print_banner()

    twin, facts = build_twin(memory=args.memory, database_url=args.database)
    print_engines(twin.orchestrator.available())
    if args.status:
        return

    try:
        asyncio.run(chat_loop(twin, facts, args.user, args.module))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()

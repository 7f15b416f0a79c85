"""
Command-line interface for Agent Relay.
"""

import argparse
import asyncio
import json
import logging
import re
import sys
from pathlib import Path

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError

from .agent import TurnRunner
from .config import SUPPORTED_PROVIDERS, Settings, get_settings
from .errors import AgentRelayError, NotFoundError
from .knowledge import KnowledgeSearch, SQLVectorIndex
from .llm import AdapterRegistry, Document, parse_model_identifier
from .llm.messages import AiMessage, HumanMessage, OutputMessage, message_to_dict
from .records import parse_scaling_config
from .store import SQLRecordStore

logger = structlog.get_logger()


def configure_logging(level: str = "INFO") -> None:
    """Install the structlog processor chain on top of stdlib logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


SCALING_ALGORITHMS = ("window", "threshold", "block")


def json_object(value: str) -> dict:
    """argparse type for JSON object arguments."""
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise argparse.ArgumentTypeError("expected a JSON object")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-relay",
        description="Agent Relay - run tool-using agents across model providers",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create the database tables")

    models_parser = subparsers.add_parser("models", help="List the models a provider serves")
    models_parser.add_argument("provider", choices=SUPPORTED_PROVIDERS, help="Provider name")

    chat_parser = subparsers.add_parser("chat", help="Send one message to an agent")
    chat_parser.add_argument("agent", help="Agent name")
    chat_parser.add_argument("message", help="Message text")
    chat_parser.add_argument("--author", default=None, help="Author id sent to tools")

    thread_parser = subparsers.add_parser("thread", help="Send a message within a thread")
    thread_parser.add_argument("thread_id", help="Thread id")
    thread_parser.add_argument("message", help="Message text")
    thread_parser.add_argument("--agent", default=None, help="Agent name (defaults to the thread's agent)")
    thread_parser.add_argument("--author", default=None, help="Author id sent to tools")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    tool_parser = subparsers.add_parser("tool", help="Manage HTTP tools")
    tool_subparsers = tool_parser.add_subparsers(dest="tool_command")

    tool_add_parser = tool_subparsers.add_parser("add", help="Register an HTTP tool")
    tool_add_parser.add_argument("name", help="Tool name shown to models")
    tool_add_parser.add_argument("endpoint", help="Endpoint URL")
    tool_add_parser.add_argument("--method", default="GET", help="HTTP method")
    tool_add_parser.add_argument("--description", default=None, help="Tool description")
    tool_add_parser.add_argument(
        "--parameters", type=json_object, default=None, help="JSON schema of the parameters"
    )

    kb_parser = subparsers.add_parser("kb", help="Manage knowledge bases")
    kb_subparsers = kb_parser.add_subparsers(dest="kb_command")

    kb_add_parser = kb_subparsers.add_parser("add", help="Create a knowledge base")
    kb_add_parser.add_argument("name", help="Knowledge base name")
    kb_add_parser.add_argument("embedding_model", help="Embedding model, e.g. openai/text-embedding-3-small")
    kb_add_parser.add_argument("--description", default=None, help="Description")

    kb_ingest_parser = kb_subparsers.add_parser("ingest", help="Embed text files into a knowledge base")
    kb_ingest_parser.add_argument("name", help="Knowledge base name")
    kb_ingest_parser.add_argument("files", nargs="+", type=Path, help="Text files, split on blank lines")

    agent_parser = subparsers.add_parser("agent", help="Manage agents")
    agent_subparsers = agent_parser.add_subparsers(dest="agent_command")

    agent_add_parser = agent_subparsers.add_parser("add", help="Create an agent")
    agent_add_parser.add_argument("name", help="Agent name")
    agent_add_parser.add_argument("--prompt", required=True, help="System prompt")
    agent_add_parser.add_argument("--model", required=True, help="Primary model, e.g. openai/gpt-4o")
    agent_add_parser.add_argument("--fallback", action="append", default=[], help="Fallback model (repeatable)")
    agent_add_parser.add_argument("--json", action="store_true", help="Force JSON output")
    agent_add_parser.add_argument("--tool", action="append", default=[], help="Tool name (repeatable)")
    agent_add_parser.add_argument("--kb", action="append", default=[], help="Knowledge base name (repeatable)")
    agent_add_parser.add_argument("--helper", action="append", default=[], help="Helper agent name (repeatable)")
    agent_add_parser.add_argument("--description", default=None, help="Description")

    thread_create_parser = subparsers.add_parser("thread-create", help="Create a thread")
    thread_create_parser.add_argument("--agent", default=None, help="Default agent name")
    thread_create_parser.add_argument("--platform", default=None, help="Platform reported to tools")
    thread_create_parser.add_argument(
        "--scaling", choices=SCALING_ALGORITHMS, default=None, help="Context scaling algorithm"
    )
    thread_create_parser.add_argument(
        "--scaling-config", type=json_object, default=None, help='Scaling config JSON, e.g. {"size": 20}'
    )
    thread_create_parser.add_argument("--description", default=None, help="Description")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        if args.command == "init-db":
            asyncio.run(init_db(settings))
        elif args.command == "models":
            asyncio.run(list_models(settings, args.provider))
        elif args.command == "chat":
            message = HumanMessage(content=args.message, author_id=args.author)
            asyncio.run(chat(settings, args.agent, message))
        elif args.command == "thread":
            message = HumanMessage(content=args.message, author_id=args.author)
            asyncio.run(thread(settings, args.thread_id, message, args.agent))
        elif args.command == "config":
            show_config(settings, args.check)
        elif args.command == "tool" and args.tool_command == "add":
            asyncio.run(add_tool(settings, args))
        elif args.command == "kb" and args.kb_command == "add":
            asyncio.run(add_knowledge_base(settings, args))
        elif args.command == "kb" and args.kb_command == "ingest":
            asyncio.run(ingest(settings, args.name, args.files))
        elif args.command == "agent" and args.agent_command == "add":
            asyncio.run(add_agent(settings, args))
        elif args.command == "thread-create":
            asyncio.run(create_thread(settings, args))
        else:
            parser.print_help()
    except (AgentRelayError, IntegrityError, OSError) as e:
        logger.error("Command failed", command=args.command, error=str(e))
        sys.exit(1)


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


async def init_db(settings: Settings) -> None:
    """Create all tables."""
    store = await _connect(settings)
    await store.close()
    logger.info("Database initialized", database_url=settings.database_url)


async def list_models(settings: Settings, provider: str) -> None:
    adapters = AdapterRegistry(settings)
    for name in sorted(await adapters.get(provider).list_models()):
        print(f"{provider}/{name}")


def print_result(result: OutputMessage) -> None:
    if isinstance(result, AiMessage):
        print(result.content)
    else:
        print(json.dumps(message_to_dict(result), indent=2))


def _runner(settings: Settings, store: SQLRecordStore) -> TurnRunner:
    adapters = AdapterRegistry(settings)
    search = KnowledgeSearch(adapters, SQLVectorIndex(store.session_maker))
    return TurnRunner(store, adapters, knowledge_search=search, settings=settings)


async def _connect(settings: Settings) -> SQLRecordStore:
    _ensure_sqlite_dir(settings.database_url)
    return await SQLRecordStore.connect(settings.database_url)


async def chat(settings: Settings, agent_name: str, message: HumanMessage) -> None:
    """Run one stateless agent turn and print the answer."""
    store = await _connect(settings)
    try:
        async with _runner(settings, store) as runner:
            result = await runner.run_agent_turn(agent_name, message)
    finally:
        await store.close()
    print_result(result)


async def thread(
    settings: Settings,
    thread_id: str,
    message: HumanMessage,
    agent_name: str | None,
) -> None:
    """Run one thread turn and print the answer."""
    store = await _connect(settings)
    try:
        async with _runner(settings, store) as runner:
            result = await runner.run_thread_turn(thread_id, message, agent_name=agent_name)
    finally:
        await store.close()
    print_result(result)


def split_paragraphs(text: str) -> list[str]:
    """Split text into non-empty paragraphs separated by blank lines."""
    paragraphs = [" ".join(block.split()) for block in re.split(r"\n\s*\n", text)]
    return [p for p in paragraphs if p]


async def add_tool(settings: Settings, args: argparse.Namespace) -> None:
    """Register an HTTP tool and print its id."""
    store = await _connect(settings)
    try:
        tool = await store.create_tool(
            name=args.name,
            endpoint=args.endpoint,
            method=args.method,
            description=args.description,
            parameters=args.parameters,
        )
    finally:
        await store.close()
    logger.info("Tool created", name=tool.name, method=tool.method)
    print(tool.id)


async def add_knowledge_base(settings: Settings, args: argparse.Namespace) -> None:
    """Create a knowledge base and print its id."""
    parse_model_identifier(args.embedding_model)
    store = await _connect(settings)
    try:
        kb = await store.create_knowledge_base(
            name=args.name,
            embedding_model=args.embedding_model,
            description=args.description,
            database_provider="sql",
        )
    finally:
        await store.close()
    logger.info("Knowledge base created", name=kb.name, embedding_model=kb.embedding_model)
    print(kb.id)


async def ingest(settings: Settings, name: str, files: list[Path]) -> None:
    """Embed text files into a knowledge base, one document per paragraph."""
    documents = []
    for path in files:
        for idx, paragraph in enumerate(split_paragraphs(path.read_text(encoding="utf-8"))):
            documents.append(Document(content=paragraph, metadata={"source": str(path), "paragraph": idx}))

    store = await _connect(settings)
    try:
        kb = await store.get_knowledge_base_by_name(name)
        if kb is None:
            raise NotFoundError("Knowledge base", name)
        if not documents:
            logger.warning("Nothing to ingest", knowledge_base=name)
            return
        search = KnowledgeSearch(AdapterRegistry(settings), SQLVectorIndex(store.session_maker))
        ids = await search.add_documents(kb, documents)
    finally:
        await store.close()
    print(f"Indexed {len(ids)} documents into {name}")


async def add_agent(settings: Settings, args: argparse.Namespace) -> None:
    """Create an agent, linking tools, knowledge bases and helpers by name."""
    for model in [args.model, *args.fallback]:
        parse_model_identifier(model)

    store = await _connect(settings)
    try:
        tool_ids = []
        for tool_name in args.tool:
            tool = await store.get_tool_by_name(tool_name)
            if tool is None:
                raise NotFoundError("Tool", tool_name)
            tool_ids.append(tool.id)

        kb_ids = []
        for kb_name in args.kb:
            kb = await store.get_knowledge_base_by_name(kb_name)
            if kb is None:
                raise NotFoundError("Knowledge base", kb_name)
            kb_ids.append(kb.id)

        helper_ids = []
        for helper_name in args.helper:
            helper = await store.get_agent_by_name(helper_name)
            if helper is None:
                raise NotFoundError("Agent", helper_name)
            helper_ids.append(helper.id)

        agent = await store.create_agent(
            name=args.name,
            prompt=args.prompt,
            primary_model=args.model,
            description=args.description,
            fallback_models=args.fallback,
            output_format="json" if args.json else None,
            tool_ids=tool_ids,
            knowledge_base_ids=kb_ids,
            helper_agent_ids=helper_ids,
        )
    finally:
        await store.close()
    logger.info("Agent created", name=agent.name, models=agent.models)
    print(agent.id)


async def create_thread(settings: Settings, args: argparse.Namespace) -> None:
    """Create a thread and print its id."""
    if (args.scaling is None) != (args.scaling_config is None):
        raise AgentRelayError("--scaling and --scaling-config must be given together")
    if args.scaling and parse_scaling_config(args.scaling, args.scaling_config) is None:
        raise AgentRelayError(f"Invalid {args.scaling} scaling config: {json.dumps(args.scaling_config)}")

    store = await _connect(settings)
    try:
        default_agent_id = None
        if args.agent:
            agent = await store.get_agent_by_name(args.agent)
            if agent is None:
                raise NotFoundError("Agent", args.agent)
            default_agent_id = agent.id

        created = await store.create_thread(
            default_agent_id=default_agent_id,
            scaling_algorithm=args.scaling,
            scaling_config=args.scaling_config,
            platform=args.platform,
            description=args.description,
        )
    finally:
        await store.close()
    logger.info("Thread created", thread_id=created.id, scaling=args.scaling)
    print(created.id)


def show_config(settings: Settings, check: bool) -> None:
    """Show current configuration."""

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print(f"\n=== {settings.app_name} Configuration ===\n")

    print("Providers:")
    print(f"  OpenAI Key: {mask(settings.openai_api_key)}")
    print(f"  OpenAI Base URL: {settings.openai_base_url or '(default)'}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  Google Key: {mask(settings.google_api_key)}")
    print(f"  OpenRouter Key: {mask(settings.openrouter_api_key)}")
    print(f"  Ollama Host: {settings.ollama_host}")
    print(f"  Timeout: {settings.provider_timeout}s, retries: {settings.provider_max_retries}")

    print("\nOrchestration:")
    print(f"  Max Tool Iterations: {settings.max_tool_iterations}")
    print(f"  HTTP Tool Timeout: {settings.http_tool_timeout}s")

    print("\nDatabase:")
    print(f"  URL: {settings.database_url}")

    if check:
        print("\n=== Configuration Check ===\n")
        has_key = (
            settings.openai_api_key or
            settings.anthropic_api_key or
            settings.google_api_key or
            settings.openrouter_api_key
        )
        if has_key:
            print("Configuration looks good!")
        else:
            print("Warning: no hosted provider API key is set (only Ollama is usable)")

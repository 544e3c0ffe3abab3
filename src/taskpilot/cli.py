#!/usr/bin/env python3
"""
TaskPilot CLI — Command Line Interface.

Usage:
    taskpilot serve [--host HOST] [--port PORT]
    taskpilot run "<instruction>" [--user USER_ID]
    taskpilot examples
    taskpilot agents
    taskpilot status

Examples:
    # Start the API server with the dashboard WebSocket
    taskpilot serve --port 8000

    # Process one instruction and wait for every agent to finish
    taskpilot run "Call the client to discuss project timeline and then schedule a follow-up meeting"

    # List the example instructions
    taskpilot examples
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import DEFAULT_CONFIG_PATH, Settings, load_settings
from .orchestrator import OrchestrationError, QUICK_EXAMPLES, build_orchestrator
from .storage.models import TaskStatus


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s' if verbose else '%(message)s'
    )
    # Quiet down noisy loggers
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("openai").setLevel(logging.WARNING)
        logging.getLogger("anthropic").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
        logging.getLogger("taskpilot.services").setLevel(logging.WARNING)


def list_examples():
    """Print the quick example instructions."""
    print("\n💡 Example instructions:")
    print("=" * 50)
    for i, example in enumerate(QUICK_EXAMPLES, 1):
        print(f"  {i}. {example}")


def list_agents(settings: Settings):
    """Print agent records and their stats."""
    orchestrator = build_orchestrator(settings)
    orchestrator.initialize_default_agents()

    print("\n🤖 Agents:")
    print("=" * 50)
    for agent in orchestrator.storage.get_all_agents():
        print(f"  [{agent.id}] {agent.name} ({agent.type}) — {agent.status.value}")
        if agent.current_task:
            print(f"      Current task: {agent.current_task}")
        stats = ", ".join(f"{key}={value}" for key, value in agent.stats.items())
        print(f"      Stats: {stats or '(none)'}")


def show_status(settings: Settings):
    """Show system status."""
    orchestrator = build_orchestrator(settings)
    stats = orchestrator.get_stats()

    print("\n📊 TaskPilot Status:")
    print("=" * 50)
    print(f"  Database: {settings.database_url}")
    print(f"  LLM: {settings.llm_provider}/{settings.llm_model}")
    print(f"  Users: {stats['users']}")
    print(f"  Agents: {stats['agents']}")
    print(f"  Tasks:")
    for status, count in stats["tasks"].items():
        print(f"    - {status}: {count}")
    print(f"  Sub-tasks: {stats['agent_tasks']}")
    print(f"  Activities: {stats['activities']}")


async def _run_instruction(settings: Settings, instruction: str, user_id: str) -> int:
    orchestrator = build_orchestrator(settings)
    orchestrator.initialize_default_agents()
    orchestrator.initialize_default_integrations()
    orchestrator.recover_interrupted()
    orchestrator.storage.ensure_user(user_id)

    print(f"\n🚀 Instruction: {instruction}")
    print("=" * 50)

    try:
        result = await orchestrator.process_instruction(user_id, instruction)
    except OrchestrationError as e:
        print(f"\n❌ {e}")
        return 1

    processed = result.processed
    print(f"\n🧠 Intent: {processed.intent} (confidence {processed.confidence:.2f})")
    for i, sub_task in enumerate(processed.tasks):
        print(f"   {i}. [{sub_task.type}] {sub_task.action}: {sub_task.description}")

    print(f"\n⏳ Waiting for {len(result.agent_task_ids)} sub-task(s)...")
    await orchestrator.executor.wait_idle()

    task = orchestrator.storage.get_task(result.task_id)
    print("\n📋 Sub-task results:")
    for agent_task in orchestrator.storage.get_task_agent_tasks(result.task_id):
        icon = "✅" if agent_task.status == TaskStatus.COMPLETED else "❌"
        print(f"   {icon} {agent_task.type}: {agent_task.status.value}")
        for key, value in (agent_task.result or {}).items():
            value_str = str(value)[:100] + "..." if len(str(value)) > 100 else str(value)
            print(f"        {key}: {value_str}")

    print("\n" + "=" * 50)
    if task.status == TaskStatus.COMPLETED:
        print(f"✅ Task {task.id} completed")
        return 0
    print(f"❌ Task {task.id} {task.status.value}")
    return 1


def serve(settings: Settings, host: Optional[str], port: Optional[int]) -> int:
    """Run the API server."""
    import uvicorn

    from .api_gateway import APIGateway, create_app

    app = create_app(APIGateway(settings))
    uvicorn.run(app, host=host or settings.host, port=port or settings.port, log_level="info")
    return 0


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="TaskPilot CLI - Natural-language task orchestration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve --port 8000
  %(prog)s run "Call the client and schedule a follow-up meeting"
  %(prog)s examples
  %(prog)s agents
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_PATH, help="Config file path")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Port")

    # run command
    run_parser = subparsers.add_parser("run", help="Process an instruction and wait for the agents")
    run_parser.add_argument("instruction", help="Instruction in plain language")
    run_parser.add_argument("--user", "-u", help="User id (defaults to the configured default user)")

    # examples command
    subparsers.add_parser("examples", help="List example instructions")

    # agents command
    subparsers.add_parser("agents", help="List agents")

    # status command
    subparsers.add_parser("status", help="Show system status")

    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    if args.command == "examples":
        list_examples()
        return 0

    settings = load_settings(args.config)

    if args.command == "serve":
        return serve(settings, args.host, args.port)
    elif args.command == "run":
        return asyncio.run(_run_instruction(settings, args.instruction, args.user or settings.default_user_id))
    elif args.command == "agents":
        list_agents(settings)
        return 0
    elif args.command == "status":
        show_status(settings)
        return 0
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())

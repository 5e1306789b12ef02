#!/usr/bin/env python3
"""
atSpoke Graph Connector CLI

Usage:
    atspoke-graph setup          # Interactive setup wizard
    atspoke-graph test           # Validate config and credentials
    atspoke-graph sync           # Run every step once
    atspoke-graph status         # Show last run
    atspoke-graph steps          # Show step execution order
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import structlog
from colorama import Fore, Style, init
from pydantic import SecretStr

from atspoke_connector.client import AtSpokeAPIError
from atspoke_connector.config import (
    ConfigurationError,
    IntegrationConfig,
    IntegrationInstance,
    load_config,
    save_config,
)
from atspoke_connector.connector import AtSpokeConnector
from atspoke_connector.scheduler import StepScheduler
from atspoke_connector.state import StateManager
from atspoke_connector.steps import INTEGRATION_STEPS

init()
GREEN = Fore.GREEN
RED = Fore.RED
YELLOW = Fore.YELLOW
BLUE = Fore.CYAN
RESET = Style.RESET_ALL
BOLD = Style.BRIGHT


def print_banner():
    print(f"""
{BLUE}{BOLD}atSpoke -> Asset Graph Connector{RESET}
{BLUE}Users, teams, webhooks, request types and requests{RESET}
""")


def print_success(msg: str):
    print(f"{GREEN}✓ {msg}{RESET}")


def print_error(msg: str):
    print(f"{RED}✗ {msg}{RESET}")


def print_warning(msg: str):
    print(f"{YELLOW}⚠ {msg}{RESET}")


def print_info(msg: str):
    print(f"{BLUE}ℹ {msg}{RESET}")


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def print_not_configured():
    print_error("Not configured.")
    print_info("Option 1: Run 'atspoke-graph setup' for interactive setup")
    print_info("Option 2: Set environment variables:")
    print("    export ATSPOKE_API_KEY=your-api-key")
    print("    export ATSPOKE_NUM_REQUESTS=500   # optional cap per run")


def cmd_setup(args):
    """Interactive setup wizard."""
    print_banner()
    print(f"{BOLD}Setup Wizard{RESET}")
    print("Let's configure your atSpoke connection.\n")

    instance = load_config(args.config)

    current = instance.config.api_key_value()
    masked = f"{current[:4]}...{current[-4:]}" if len(current) > 12 else "(not set)"
    print(f"API Key [{masked}]")
    print("  Get it from: atSpoke -> Settings -> Developer -> API Keys")
    api_key = input("API Key (leave empty to keep current): ").strip() or current
    if not api_key:
        print_error("API key is required")
        return 1

    name = input(f"Instance name [{instance.name}]: ").strip() or instance.name

    print(f"\n{BOLD}Request Options{RESET}")
    print("  Requests are fetched back to the last successful run (14 days at most).")
    current_cap = instance.config.num_requests or ""
    num_requests = input(f"Max requests per run, blank for no cap [{current_cap}]: ").strip() or current_cap

    instance = IntegrationInstance(
        id=instance.id,
        name=name,
        config=IntegrationConfig(api_key=SecretStr(api_key), num_requests=num_requests or None),
    )
    path = save_config(instance, args.config)
    print_success(f"Configuration saved to {path}")

    print(f"\n{BOLD}Testing connection...{RESET}")
    return cmd_test(args, instance)


def cmd_test(args, instance: IntegrationInstance | None = None):
    """Validate config and credentials."""
    if instance is None:
        instance = load_config(args.config)

    connector = AtSpokeConnector(instance)
    try:
        connector.validate()
    except ConfigurationError as e:
        print_error(str(e))
        print_not_configured()
        return 1
    except AtSpokeAPIError as e:
        print_error(f"Connection failed: {e}")
        return 1
    finally:
        connector.close()

    print_success("Connected successfully!")
    if instance.config.request_limit:
        print_info(f"Request cap: {instance.config.request_limit} per run")
    return 0


def cmd_sync(args):
    """Run every step once."""
    instance = load_config(args.config)
    if not instance.config.api_key_value():
        print_not_configured()
        return 1

    print_banner()
    print(f"{BOLD}Starting Sync{RESET}\n")

    state_mgr = StateManager(args.state_file)
    connector = AtSpokeConnector(instance, state_manager=state_mgr)

    try:
        connector.validate()
    except AtSpokeAPIError as e:
        print_error(f"Authentication failed: {e}")
        connector.close()
        return 1

    result = connector.run()
    job_state = connector.job_state

    for step in result.results:
        if step.status == "success":
            print_success(f"{step.step_id} ({step.elapsed_ms} ms)")
        elif step.status == "failure":
            print_error(f"{step.step_id}: {step.error}")
        else:
            print_warning(f"{step.step_id}: skipped")

    print(f"\n  Entities: {len(job_state.collected_entities)}")
    print(f"  Relationships: {len(job_state.collected_relationships)}")

    if args.output:
        output = Path(args.output)
        with open(output, "w") as f:
            json.dump(job_state.to_dict(), f, indent=2)
        print_info(f"Wrote graph data to {output}")

    if not result.succeeded:
        print_error("Sync finished with failures")
        return 1

    print(f"\n{GREEN}Sync complete!{RESET}")
    return 0


def cmd_status(args):
    """Show last run."""
    print_banner()

    history = StateManager(args.state_file).load()
    print(f"{BOLD}Sync Status{RESET}\n")

    if history.last_successful_started_on:
        print(f"  Last successful run: {history.last_successful_started_on.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    else:
        print_warning("  No successful run yet; next run looks back 14 days")

    if history.last_run_started_on:
        print(f"  Last run: {history.last_run_started_on.strftime('%Y-%m-%d %H:%M:%S UTC')} ({history.last_run_status})")

    return 0


def cmd_steps(args):
    """Show step execution order."""
    scheduler = StepScheduler(INTEGRATION_STEPS)
    steps = {step.id: step for step in INTEGRATION_STEPS}

    print(f"{BOLD}Execution order{RESET}\n")
    for i, step_id in enumerate(scheduler.execution_order, start=1):
        step = steps[step_id]
        depends = ", ".join(step.depends_on) or "-"
        print(f"  {i}. {step_id:<22} depends on: {depends}")
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="atSpoke Graph Connector CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  atspoke-graph setup                 Interactive setup wizard
  atspoke-graph test                  Validate config and credentials
  atspoke-graph sync -o graph.json    Run and write entities/relationships
  atspoke-graph status                Show last run
        """,
    )
    parser.add_argument("--config", default=None, help="Config file (default ~/.atspoke-graph/config.json)")
    parser.add_argument("--state-file", default=None, help="State file (default ~/.atspoke-graph/state.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    subparsers.add_parser("setup", help="Interactive setup wizard")
    subparsers.add_parser("test", help="Validate config and credentials")
    sync_parser = subparsers.add_parser("sync", help="Run every step once")
    sync_parser.add_argument("-o", "--output", default=None, help="Write collected graph data as JSON")
    subparsers.add_parser("status", help="Show last run")
    subparsers.add_parser("steps", help="Show step execution order")

    args = parser.parse_args()
    configure_logging(args.verbose)

    if args.command is None:
        print_banner()
        parser.print_help()
        return 0

    commands = {
        "setup": cmd_setup,
        "test": cmd_test,
        "sync": cmd_sync,
        "status": cmd_status,
        "steps": cmd_steps,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())

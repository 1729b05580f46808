"""
Command line entry point.

    preconfig-tester --domain discord.com
    preconfig-tester --dir ./pre-configs --wait-timeout 15 --json
"""

import argparse
import ctypes
import json
import logging
import os
import platform
import subprocess
import sys
from typing import List, Optional, TextIO

from rich.console import Console
from rich.markup import escape
from rich.prompt import IntPrompt, Prompt

from . import __version__
from .catalog import discover_candidates
from .config import TesterConfig, load_config
from .domains import DEFAULT_PORT, PRESET_DOMAINS, normalize_target
from .errors import ConfigurationError, InvalidInputError
from .models import RunVerdict
from .network import ConnectivityProbe
from .orchestrator import TrialOrchestrator
from .process import ProcessLifecycleManager
from .reporting import Reporter

LOG = logging.getLogger("PreconfigTester.CLI")

LOG_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

EXIT_OK = 0
EXIT_EXHAUSTED = 1
EXIT_INVALID = 2
EXIT_NETWORK_UNAVAILABLE = 3
EXIT_NOT_ELEVATED = 4
EXIT_INTERRUPTED = 130

EXIT_CODES = {
    RunVerdict.SUCCESS: EXIT_OK,
    RunVerdict.NO_CONFIG_NEEDED: EXIT_OK,
    RunVerdict.EXHAUSTED: EXIT_EXHAUSTED,
    RunVerdict.NETWORK_UNAVAILABLE: EXIT_NETWORK_UNAVAILABLE,
}

ELEVATED_FLAG = "--elevated"


def is_admin() -> bool:
    """Checks for administrator (Windows) or root (elsewhere) rights."""
    try:
        if platform.system() == "Windows":
            return ctypes.windll.shell32.IsUserAnAdmin() == 1
        return os.geteuid() == 0
    except (AttributeError, OSError):
        return False


def request_elevation(argv: List[str]) -> bool:
    """
    Restarts the tester through the Windows UAC prompt with ``--elevated``
    appended, so the new instance never asks again. Returns False where no
    prompt can be shown.
    """
    if platform.system() != "Windows":
        return False
    if getattr(sys, "frozen", False):
        params = list(argv)
    else:
        params = ["-m", "preconfig_tester"] + list(argv)
    params.append(ELEVATED_FLAG)
    try:
        result = ctypes.windll.shell32.ShellExecuteW(
            None, "runas", sys.executable, subprocess.list2cmdline(params), os.getcwd(), 1
        )
    except (AttributeError, OSError) as e:
        LOG.warning(f"Elevation request failed: {e}")
        return False
    # ShellExecuteW returns a value above 32 on success
    if int(result) <= 32:
        LOG.warning(f"Elevation request was refused (ShellExecuteW returned {result})")
        return False
    return True


def ensure_admin(args: argparse.Namespace, console: Console, argv: List[str]) -> Optional[int]:
    """Returns an exit code when this instance must not run the trials."""
    if args.no_admin_check or is_admin():
        return None
    if not args.elevated and platform.system() == "Windows":
        console.print("Administrative privileges required for correct work of program.")
        console.print("Please, confirm prompt for administrative privileges.")
        if request_elevation(argv):
            return EXIT_OK
    console.print(
        "[bold red]Error:[/bold red] administrator rights are required to start the bypass process. "
        "Run the tester as administrator (root), or pass --no-admin-check to try anyway."
    )
    return EXIT_NOT_ELEVATED


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """
    Console handler shows warnings only unless ``debug`` is set, so log lines
    do not interleave with the rich progress output. The log file gets
    everything from INFO (or DEBUG) up.
    """
    level = logging.DEBUG if debug else logging.INFO
    stream = logging.StreamHandler()
    stream.setLevel(level if debug else logging.WARNING)
    handlers: List[logging.Handler] = [stream]
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        handlers.append(file_handler)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT, handlers=handlers)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="preconfig-tester",
        description="Finds a DPI bypass pre-config that makes the target domain reachable.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-d",
        "--domain",
        help="Target domain (e.g. discord.com). Prompted for when omitted.",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port appended when the domain has none (default: {DEFAULT_PORT}).",
    )
    parser.add_argument("--dir", dest="candidates_dir", help="Directory with pre-config scripts.")
    parser.add_argument("--process-name", help="Executable name started by the pre-configs.")
    parser.add_argument(
        "--wait-timeout",
        type=float,
        dest="process_wait_timeout",
        help="Seconds to wait for the process to appear.",
    )
    parser.add_argument(
        "--probe-timeout",
        type=float,
        help="Connect and read timeout of one probe, in seconds.",
    )
    parser.add_argument("-c", "--config", help="JSON file with tester settings.")
    parser.add_argument(
        "--skip-preflight",
        action="store_true",
        help="Go straight to the pre-configs without the initial direct check.",
    )
    parser.add_argument("--json", action="store_true", help="Print the run summary as JSON.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("--log-file", help="Also write the log to this file.")
    parser.add_argument(
        "--no-admin-check",
        action="store_true",
        help="Run the pre-configs even without administrator rights.",
    )
    parser.add_argument(ELEVATED_FLAG, action="store_true", help=argparse.SUPPRESS)
    parser.add_argument(
        "--no-pause",
        action="store_true",
        help="Do not wait for Enter before exiting.",
    )
    return parser


def build_config(args: argparse.Namespace) -> TesterConfig:
    return load_config(
        args.config,
        candidates_dir=args.candidates_dir,
        process_name=args.process_name,
        process_wait_timeout=args.process_wait_timeout,
        probe_timeout=args.probe_timeout,
        skip_preflight=True if args.skip_preflight else None,
    )


def choose_domain(
    console: Console, port: int = DEFAULT_PORT, stream: Optional[TextIO] = None
) -> Optional[str]:
    """
    Interactive domain choice. Returns ``host:port``, or None when the user
    picks Exit.
    """
    console.print("\nSelect domain for checking:")
    for number, domain in enumerate(PRESET_DOMAINS, 1):
        console.print(f"{number}. {domain}")
    custom_choice = len(PRESET_DOMAINS) + 1
    exit_choice = custom_choice + 1
    console.print(f"{custom_choice}. Enter your own domain")
    console.print(f"{exit_choice}. Exit")

    choice = IntPrompt.ask(
        "Enter number",
        choices=[str(n) for n in range(1, exit_choice + 1)],
        show_choices=False,
        console=console,
        stream=stream,
    )
    if choice == exit_choice:
        return None
    if choice < custom_choice:
        return normalize_target(PRESET_DOMAINS[choice - 1], port)

    while True:
        raw = Prompt.ask("Enter domain (example: domain.com)", console=console, stream=stream)
        try:
            return normalize_target(raw, port)
        except InvalidInputError:
            console.print("[red]Invalid domain format. Use format domain.com[/red]")


def run(args: argparse.Namespace, console: Console, argv: Optional[List[str]] = None) -> int:
    code = ensure_admin(args, console, list(argv or []))
    if code is not None:
        return code

    try:
        config = build_config(args)
        candidates = discover_candidates(config.candidates_dir, config.candidate_extensions)
        if args.domain:
            target = normalize_target(args.domain, args.port)
        else:
            target = choose_domain(console, args.port)
            if target is None:
                return EXIT_OK
    except (InvalidInputError, ConfigurationError) as e:
        LOG.debug(f"Invalid input: {e.to_dict()}")
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        return EXIT_INVALID

    process_manager = ProcessLifecycleManager(config)
    probe = ConnectivityProbe(config)
    reporter = Reporter(console)
    orchestrator = TrialOrchestrator(
        config,
        process_manager,
        probe,
        listener=None if args.json else reporter,
    )

    if not args.json:
        reporter.start(target)
        console.print("Checking DPI blocks...")
    try:
        summary = orchestrator.run(candidates, target)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted, stopping pre-config processes...[/yellow]")
        process_manager.terminate(config.process_name, attempts=1)
        return EXIT_INTERRUPTED
    except InvalidInputError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        return EXIT_INVALID

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
    else:
        reporter.summary(summary)
    return EXIT_CODES[summary.verdict]


def pause(console: Console) -> None:
    try:
        console.input("\nPress Enter to exit...")
    except (EOFError, KeyboardInterrupt):
        pass


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = build_parser().parse_args(argv)
    setup_logging(args.debug, args.log_file)
    console = Console()

    try:
        code = run(args, console, argv)
    except (KeyboardInterrupt, EOFError):
        console.print("\n[yellow]Interrupted[/yellow]")
        code = EXIT_INTERRUPTED

    if not args.no_pause and sys.stdin.isatty():
        pause(console)
    return code


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import argparse
import errno
from typing import Callable, Optional, Sequence

from rich.console import Console

from ..backend.base import Backend
from ..config.manager import MAX_TOKENS_CEILING, ConfigManager, ShellmSettings, clamp_max_tokens
from ..config.paths import ShellmPaths
from ..core.errors import BackendError, LoadError, SessionCreationError
from ..core.generation import GenerationSession
from ..core.session_log import SessionLogger, log_exception, set_active_logger
from ..modes import Mode
from .app import ShellmCLI
from .style import RED, colorify

EXIT_CODE_OK = 0
EXIT_CODE_STARTUP_FAILURE = 1
EXIT_CODE_USAGE = 2
EXIT_CODE_BACKEND_FAILURE = 3

BackendFactory = Callable[[ShellmSettings], Backend]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellm",
        description="shellm - shell commands, code and answers from a local LLM",
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version and exit")
    parser.add_argument("-q", "--query", help="shellm query")
    parser.add_argument(
        "--max",
        type=int,
        metavar="LENGTH",
        help=f"max number of tokens to generate (capped at {MAX_TOKENS_CEILING})",
    )
    modes = parser.add_mutually_exclusive_group()
    modes.add_argument(
        "-b",
        "--bash",
        "--command",
        dest="mode",
        action="store_const",
        const=Mode.COMMAND,
        help="shellm will produce bash commands for you",
    )
    modes.add_argument(
        "-c", "--code", dest="mode", action="store_const", const=Mode.CODE,
        help="shellm will produce code for you",
    )
    modes.add_argument(
        "-m", "--math", dest="mode", action="store_const", const=Mode.MATH,
        help="shellm will help you with math questions",
    )
    modes.add_argument(
        "-w", "--writing", dest="mode", action="store_const", const=Mode.WRITING,
        help="shellm will help you with writing based questions",
    )
    modes.add_argument(
        "-g", "--general", dest="mode", action="store_const", const=Mode.GENERAL,
        help="shellm will answer general questions/requests (default)",
    )
    parser.set_defaults(mode=Mode.GENERAL)
    parser.add_argument("-s", "--shell", action="store_true", help="enter shellm environment")
    parser.add_argument("--load", metavar="NAME", help="load from a past session")
    parser.add_argument("--save", metavar="NAME", help="save the current session on exit")
    parser.add_argument(
        "-p",
        "--prog-out",
        metavar="NAME",
        help="when in coding mode, save generated code to file NAME",
    )
    parser.add_argument("--model", metavar="PATH", help="GGUF model file (overrides config)")
    parser.add_argument(
        "--debug",
        nargs="?",
        const="all",
        metavar="SELECTION",
        help="write a debug log to ~/.shellm/logs (session, error, warn, info, debug, all)",
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.max is not None and args.max < 1:
        parser.error("--max must be at least 1")
    return args


def llama_backend(settings: ShellmSettings) -> Backend:
    from ..backend.llama import LlamaCppBackend

    return LlamaCppBackend(
        settings.model_path or "",
        context_window=settings.context_window,
        threads=settings.threads,
    )


def build_session(
    settings: ShellmSettings,
    *,
    load_path: Optional[str] = None,
    backend_factory: BackendFactory = llama_backend,
) -> GenerationSession:
    if not settings.model_path:
        raise SessionCreationError(
            "No model configured. Set model_path in ~/.shellm/shellm.json, "
            "SHELLM_MODEL_PATH, or pass --model."
        )
    try:
        backend = backend_factory(settings)
    except (OSError, ValueError, RuntimeError) as exc:
        raise SessionCreationError(f"Could not start the model backend: {exc}") from exc
    if load_path is None:
        return GenerationSession(backend)
    try:
        return GenerationSession.load_session(backend, load_path)
    except LoadError as exc:
        raise SessionCreationError(f"Could not load session {load_path}!") from exc


def execute(
    args: argparse.Namespace,
    *,
    console: Optional[Console] = None,
    error_console: Optional[Console] = None,
    paths: Optional[ShellmPaths] = None,
    backend_factory: BackendFactory = llama_backend,
) -> int:
    console = console or Console()
    error_console = error_console or Console(stderr=True)
    paths = paths or ShellmPaths()
    settings = ConfigManager(paths, console=error_console).load_settings()
    if args.model:
        settings.model_path = args.model
    session_logger = SessionLogger(paths, args.debug if args.debug is not None else settings.debug)
    set_active_logger(session_logger)
    try:
        try:
            session = build_session(
                settings, load_path=args.load, backend_factory=backend_factory
            )
        except SessionCreationError as exc:
            log_exception("cli", exc)
            error_console.print(colorify(str(exc), RED))
            return EXIT_CODE_STARTUP_FAILURE
        max_tokens = clamp_max_tokens(args.max) if args.max is not None else settings.max_tokens
        cli = ShellmCLI(
            session,
            args.mode,
            query=args.query,
            interactive=args.shell,
            max_tokens=max_tokens,
            save_path=args.save,
            output_file=args.prog_out,
            console=console,
            error_console=error_console,
            paths=paths,
        )
        try:
            return cli.run()
        except BackendError as exc:
            log_exception("cli", exc)
            error_console.print(colorify(f"Model backend failed: {exc}", RED))
            return EXIT_CODE_BACKEND_FAILURE
    finally:
        session_logger.close()
        set_active_logger(None)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    if args.version:
        from shellm import __version__

        print(f"shellm {__version__}")
        return
    try:
        raise SystemExit(execute(args))
    except BrokenPipeError:
        return
    except KeyboardInterrupt:
        return
    except OSError as exc:
        if exc.errno == errno.EPIPE:
            return
        log_exception("cli", exc)
        raise


if __name__ == "__main__":
    main()

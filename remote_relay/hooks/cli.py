"""Command-line entry points invoked by the assistant's hook configuration.

stdout belongs to the hook protocol, so diagnostics go to stderr and to the
hook log file.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from remote_relay.config import config
from remote_relay.sessions import WorkspaceRouting
from remote_relay.terminal import TmuxBackend

from .payload import parse_payload
from .permission import PermissionHook
from .question import QuestionHook


def setup_hook_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
    log_path = Path(config.HOOK_LOG_PATH).expanduser()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_path, level="DEBUG", rotation="5 MB", retention=3)
    except OSError as e:
        logger.warning(f"Hook log unavailable at {log_path}: {e}")


def check_config() -> bool:
    """Log configuration errors. Returns False when the hook should not run."""
    errors = config.validate_required()
    if errors:
        logger.error("Configuration errors:")
        for error in errors:
            logger.error(f"  - {error}")
        return False
    return True


async def detect_terminal_session(backend: TmuxBackend) -> Optional[str]:
    """The tmux session the hook runs in, else DEFAULT_TERMINAL_SESSION."""
    return await backend.current_session() or config.DEFAULT_TERMINAL_SESSION or None


async def run_permission_hook(raw: str) -> int:
    payload = parse_payload(raw)
    if payload is None:
        logger.warning("Could not parse hook payload, exiting without a decision")
        return 0

    backend = TmuxBackend()
    hook = PermissionHook(
        terminal_session=await detect_terminal_session(backend),
        read_screen=backend.capture,
        routing=WorkspaceRouting(),
    )
    decision = await hook.handle(payload)
    if decision is not None:
        sys.stdout.write(json.dumps(decision) + "\n")
        sys.stdout.flush()
    return 0


async def run_question_hook(raw: str) -> int:
    payload = parse_payload(raw)
    if payload is None:
        return 0
    hook = QuestionHook(
        terminal_session=await detect_terminal_session(TmuxBackend()),
        routing=WorkspaceRouting(),
    )
    await hook.handle(payload)
    return 0


def permission_main() -> int:
    setup_hook_logging()
    if not check_config():
        return 1
    try:
        return asyncio.run(run_permission_hook(sys.stdin.read()))
    except Exception as e:
        logger.exception(f"Permission hook failed: {e}")
        return 1


def question_main() -> int:
    setup_hook_logging()
    if not check_config():
        return 1
    try:
        return asyncio.run(run_question_hook(sys.stdin.read()))
    except Exception as e:
        logger.exception(f"Question hook failed: {e}")
        return 1

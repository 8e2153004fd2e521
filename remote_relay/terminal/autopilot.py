"""Automatic answering of the assistant's confirmation prompts.

After a command is injected the assistant may stop on a "Do you want to
proceed?" style dialog. The autopilot captures the screen, matches it
against an ordered rule table and sends the keys of the first rule that
applies, until the input box is idle, an error shows, or the attempt
budget runs out.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from remote_relay.config import InjectionTimeouts, config
from remote_relay.errors import BackendCommandError, CaptureFailed

from .backend import Key, TerminalBackend


class StopReason(Enum):
    IDLE = "idle"
    ERROR = "error"
    EXHAUSTED = "exhausted"
    CAPTURE_FAILED = "capture_failed"


PROCEED_CUE = "Do you want to proceed?"
DONT_ASK_AGAIN_CUES = ("don't ask again", "don’t ask again")
SINGLE_OPTION_CUES = ("❯ 1. Yes", "▷ 1. Yes")
YES_NO_CUES = ("(y/n)", "[Y/n]", "[y/N]")
PRESS_ENTER_CUES = ("Press Enter to continue", "Enter to confirm", "Press Enter")
BUSY_CUES = ("Clauding…", "Waiting…", "Processing…", "Working…")
INPUT_BOX_CUES = ("│ >", "> ")
ERROR_CUES = ("Error:", "error:", "failed")


def _contains_any(screen: str, cues: tuple[str, ...]) -> bool:
    return any(cue in screen for cue in cues)


def is_proceed_prompt(screen: str) -> bool:
    return PROCEED_CUE in screen and _contains_any(screen, DONT_ASK_AGAIN_CUES)


def is_idle_input(screen: str) -> bool:
    """An empty input box with no dialog still on screen."""
    if not _contains_any(screen, INPUT_BOX_CUES):
        return False
    return not (PROCEED_CUE in screen or "1. Yes" in screen or "(y/n)" in screen)


@dataclass(frozen=True)
class ConfirmationRule:
    """One row of the rule table: a screen predicate and its reaction."""

    name: str
    matches: Callable[[str], bool]
    keys: tuple[str, ...] = ()
    stop_reason: Optional[StopReason] = None
    settle_after: bool = False


DEFAULT_RULES: tuple[ConfirmationRule, ...] = (
    ConfirmationRule("proceed", is_proceed_prompt, keys=("2", Key.ENTER), settle_after=True),
    ConfirmationRule(
        "single_option", lambda s: _contains_any(s, SINGLE_OPTION_CUES), keys=("1", Key.ENTER)
    ),
    ConfirmationRule("yes_no", lambda s: _contains_any(s, YES_NO_CUES), keys=("y", Key.ENTER)),
    ConfirmationRule(
        "press_enter", lambda s: _contains_any(s, PRESS_ENTER_CUES), keys=(Key.ENTER,)
    ),
    ConfirmationRule("busy", lambda s: _contains_any(s, BUSY_CUES)),
    ConfirmationRule("idle", is_idle_input, stop_reason=StopReason.IDLE),
    ConfirmationRule("error", lambda s: _contains_any(s, ERROR_CUES), stop_reason=StopReason.ERROR),
)


@dataclass
class AutopilotAction:
    """What the autopilot did on one attempt. An empty keys tuple means it waited."""

    attempt: int
    rule: Optional[str]
    keys: tuple[str, ...] = ()


@dataclass
class AutopilotResult:
    attempts: int
    final_screen: str
    stop_reason: StopReason
    actions: list[AutopilotAction] = field(default_factory=list)

    @property
    def keys_sent(self) -> list[str]:
        return [key for action in self.actions for key in action.keys]


class ConfirmationAutopilot:
    """Runs the rule table against a session until it settles.

    The loop performs at most ``max_confirm_attempts`` captures. Exhausting
    the budget is reported through ``stop_reason``, not raised.
    """

    def __init__(
        self,
        backend: TerminalBackend,
        timeouts: Optional[InjectionTimeouts] = None,
        rules: tuple[ConfirmationRule, ...] = DEFAULT_RULES,
    ) -> None:
        self.backend = backend
        self.timeouts = timeouts or config.timeouts.injection
        self.rules = rules

    def match(self, screen: str) -> Optional[ConfirmationRule]:
        """First rule whose predicate accepts the screen."""
        for rule in self.rules:
            if rule.matches(screen):
                return rule
        return None

    async def _capture(self, session_name: str) -> str:
        try:
            return await self.backend.capture(session_name)
        except BackendCommandError as e:
            raise CaptureFailed(session_name, str(e)) from e

    async def _send(self, session_name: str, keys: tuple[str, ...]) -> None:
        for i, key in enumerate(keys):
            if i:
                await asyncio.sleep(self.timeouts.confirm_key_delay)
            try:
                await self.backend.send_keys(session_name, key)
            except BackendCommandError as e:
                logger.warning(f"Autopilot could not send {key!r} to {session_name}: {e}")

    async def run(self, session_name: str) -> AutopilotResult:
        max_attempts = self.timeouts.max_confirm_attempts
        screen = ""
        actions: list[AutopilotAction] = []

        for attempt in range(1, max_attempts + 1):
            await asyncio.sleep(self.timeouts.confirm_interval)

            try:
                screen = await self._capture(session_name)
            except CaptureFailed as e:
                logger.warning(f"Autopilot stopped on attempt {attempt}: {e}")
                return AutopilotResult(attempt, screen, StopReason.CAPTURE_FAILED, actions)

            logger.debug(f"Autopilot attempt {attempt}/{max_attempts} on {session_name}: {screen[-200:]!r}")

            rule = self.match(screen)
            if rule is None:
                actions.append(AutopilotAction(attempt, None))
                if attempt < max_attempts:
                    await asyncio.sleep(self.timeouts.confirm_backoff)
                continue

            if rule.stop_reason is not None:
                logger.info(f"Autopilot done for {session_name} after {attempt} attempt(s): {rule.name}")
                return AutopilotResult(attempt, screen, rule.stop_reason, actions)

            actions.append(AutopilotAction(attempt, rule.name, rule.keys))
            if rule.keys:
                logger.info(f"Autopilot answering {rule.name} prompt in {session_name}")
                await self._send(session_name, rule.keys)
            if rule.settle_after:
                await asyncio.sleep(self.timeouts.proceed_settle)

        logger.warning(f"Autopilot gave up on {session_name} after {max_attempts} attempts")
        return AutopilotResult(max_attempts, screen, StopReason.EXHAUSTED, actions)

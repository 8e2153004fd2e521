"""PermissionRequest hook: relay a tool permission to the remote client and wait.

The hook publishes a pending prompt, notifies the remote client, then blocks
until a response is supplied or the wait times out. With no response it
emits no decision and the assistant falls back to asking in the terminal.
"""

from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from remote_relay.config import config
from remote_relay.prompts import (
    TIMED_OUT,
    PendingPermission,
    PendingPlan,
    PermissionAction,
    PromptBridge,
    generate_prompt_id,
)
from remote_relay.sessions import WorkspaceRouting, workspace_name

from .notify import Notifier, clean_plan_output, deliver, log_notifier, permission_notification
from .payload import ASK_USER_QUESTION, EXIT_PLAN_MODE, HookPayload, permission_decision

ScreenReader = Callable[[str], Awaitable[str]]


class PermissionHook:
    def __init__(
        self,
        bridge: Optional[PromptBridge] = None,
        notifier: Notifier = log_notifier,
        terminal_session: Optional[str] = None,
        routing: Optional[WorkspaceRouting] = None,
        read_screen: Optional[ScreenReader] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        self.bridge = bridge or PromptBridge()
        self.notifier = notifier
        self.terminal_session = terminal_session
        self.routing = routing
        self.read_screen = read_screen
        self.timeout = timeout if timeout is not None else config.timeouts.prompts.response_timeout
        self.poll_interval = poll_interval

    async def _plan_content(self) -> str:
        if not (self.terminal_session and self.read_screen):
            return ""
        try:
            return clean_plan_output(await self.read_screen(self.terminal_session))
        except Exception as e:
            logger.debug(f"Could not capture plan from {self.terminal_session}: {e}")
            return ""

    async def handle(self, payload: HookPayload) -> Optional[dict[str, Any]]:
        """Return the decision to print, or None to leave the decision to the terminal."""
        # Questions are answered through the terminal UI; see QuestionHook
        if payload.tool_name == ASK_USER_QUESTION:
            return None

        workspace = workspace_name(payload.cwd) or "unknown"
        prompt_id = generate_prompt_id()

        if payload.tool_name == EXIT_PLAN_MODE:
            prompt = PendingPlan(
                workspace=workspace,
                tool_input=payload.tool_input,
                terminal_session_name=self.terminal_session,
            )
            plan_content = await self._plan_content()
        else:
            prompt = PendingPermission(
                workspace=workspace,
                tool_name=payload.tool_name,
                tool_input=payload.tool_input,
                terminal_session_name=self.terminal_session,
            )
            plan_content = ""

        prompt = await self.bridge.publish(prompt_id, prompt)

        logger.debug(f"[{prompt_id}] Notifying remote client for {payload.tool_name}")
        try:
            notification = permission_notification(prompt_id, prompt, plan_content)
            await deliver(self.notifier, notification, self.routing)
        except Exception as e:
            logger.error(f"[{prompt_id}] Notification failed: {e}")
            await self.bridge.clean_prompt(prompt_id)
            return None

        try:
            response = await self.bridge.await_response(
                prompt_id, poll_interval=self.poll_interval, timeout=self.timeout
            )
        finally:
            await self.bridge.clean_prompt(prompt_id)

        if response is TIMED_OUT:
            logger.info(f"[{prompt_id}] No response received, leaving decision to the terminal")
            return None

        behavior = "deny" if response.action == PermissionAction.DENY.value else "allow"
        logger.info(f"[{prompt_id}] Decision for {payload.tool_name}: {behavior}")
        return permission_decision(behavior)

"""Wiring of the relay components from configuration.

A messaging transport builds one RelayComponents and feeds it inbound text
(router.handle) and button presses (dispatcher.dispatch).
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from remote_relay.commands import CommandRouter
from remote_relay.config import InjectionTimeouts, config
from remote_relay.dispatch import CallbackDispatcher
from remote_relay.errors import RelayError
from remote_relay.projects import ProjectLauncher
from remote_relay.prompts import PromptBridge
from remote_relay.sessions import ProjectHistory, SessionStore, WorkspaceRouting
from remote_relay.terminal import InjectorSet, TerminalInjector, create_backend


@dataclass
class RelayComponents:
    """Shared instances used by a messaging transport."""

    store: SessionStore
    bridge: PromptBridge
    injectors: InjectorSet
    history: ProjectHistory
    routing: WorkspaceRouting
    launcher: ProjectLauncher
    dispatcher: CallbackDispatcher
    router: CommandRouter


def create_injectors(timeouts: Optional[InjectionTimeouts] = None) -> InjectorSet:
    """One injector per configured backend, TERMINAL_BACKEND first."""
    kinds = [config.TERMINAL_BACKEND] + [
        kind for kind in config.VALID_TERMINAL_BACKENDS if kind != config.TERMINAL_BACKEND
    ]
    injectors = {kind: TerminalInjector(create_backend(kind), timeouts=timeouts) for kind in kinds}
    return InjectorSet(injectors, default=config.TERMINAL_BACKEND)


def create_relay(
    store: Optional[SessionStore] = None,
    bridge: Optional[PromptBridge] = None,
    injectors: Optional[InjectorSet] = None,
    history: Optional[ProjectHistory] = None,
    routing: Optional[WorkspaceRouting] = None,
) -> RelayComponents:
    """Build the relay, using configured defaults for anything not given.

    Raises:
        RelayError: the configuration is invalid
    """
    errors = config.validate_required()
    if errors:
        logger.error("Configuration errors:")
        for error in errors:
            logger.error(f"  - {error}")
        raise RelayError("; ".join(errors))

    store = store or SessionStore()
    bridge = bridge or PromptBridge()
    injectors = injectors or create_injectors()
    history = history or ProjectHistory()
    routing = routing or WorkspaceRouting()

    launcher = ProjectLauncher(store, injectors, history=history, routing=routing)
    dispatcher = CallbackDispatcher(bridge, injectors, project_handler=launcher)
    router = CommandRouter(store, injectors, routing=routing)
    logger.info(f"Relay ready (default backend: {injectors.default})")
    return RelayComponents(
        store=store,
        bridge=bridge,
        injectors=injectors,
        history=history,
        routing=routing,
        launcher=launcher,
        dispatcher=dispatcher,
        router=router,
    )

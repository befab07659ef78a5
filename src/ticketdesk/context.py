"""Session-scoped wiring.

SessionContext owns one API client, one transport channel, the notification
store and a list controller + reconciler per resource. A UI holds exactly
one context per signed-in session and renders from its components.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from ticketdesk.api_client import TicketDeskAPI
from ticketdesk.config import Settings
from ticketdesk.config import settings as default_settings
from ticketdesk.list_query import ListQueryController
from ticketdesk.notifications import NotificationStore
from ticketdesk.reconciler import MutationReconciler, TicketReconciler
from ticketdesk.resources import CATEGORIES, TICKETS, USERS
from ticketdesk.schemas import Category, Ticket, User
from ticketdesk.session import SessionState, SessionStore
from ticketdesk.transport import TransportChannel

logger = logging.getLogger(__name__)

Navigate = Callable[[str], None]


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.info(
        "%s starting environment=%s api=%s",
        settings.app_name,
        settings.environment,
        settings.api_base_url,
    )
    for msg in settings.security_warnings():
        logger.warning("SECURITY WARNING: %s", msg)


class SessionContext:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        session_store: SessionStore | None = None,
        api: TicketDeskAPI | None = None,
        channel: TransportChannel | None = None,
        navigate: Navigate | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.session = session_store or SessionStore(self.settings.session_file)
        self.navigate = navigate
        self.api = api or TicketDeskAPI(
            base_url=self.settings.api_base_url,
            session_store=self.session,
            timeout_seconds=self.settings.request_timeout_seconds,
            login_path=self.settings.login_path,
        )
        self.api.on_unauthorized = self._on_unauthorized
        self.channel = channel or TransportChannel.from_settings(self.settings)

        self.notifications = NotificationStore(
            self.api, dedupe_window=self.settings.notification_dedupe_window
        )
        self.notifications.attach(self.channel)

        page_size = self.settings.default_page_size
        debounce = self.settings.search_debounce_seconds
        self.tickets: ListQueryController[Ticket] = ListQueryController(
            TICKETS, self.api, page_size=page_size, search_debounce_seconds=debounce
        )
        self.categories: ListQueryController[Category] = ListQueryController(
            CATEGORIES, self.api, page_size=page_size, search_debounce_seconds=debounce
        )
        self.users: ListQueryController[User] = ListQueryController(
            USERS, self.api, page_size=page_size, search_debounce_seconds=debounce
        )
        self.ticket_mutations = TicketReconciler(self.tickets, self.api, self.session)
        self.category_mutations: MutationReconciler[Category] = MutationReconciler(
            self.categories, self.api, self.session
        )
        self.user_mutations: MutationReconciler[User] = MutationReconciler(
            self.users, self.api, self.session
        )

        self._background: set[asyncio.Task[Any]] = set()

    @property
    def current(self) -> SessionState:
        return self.session.current

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def start(self, *, wait_for_channel: bool = False) -> bool:
        """Resume a persisted session. Returns False when there is none."""
        state = self.session.load()
        if not state.authenticated:
            return False
        await self._begin(state, wait_for_channel=wait_for_channel)
        return True

    async def login(
        self, email: str, password: str, *, wait_for_channel: bool = False
    ) -> SessionState:
        state = await self.api.login(email, password)
        await self._begin(state, wait_for_channel=wait_for_channel)
        return state

    async def logout(self) -> None:
        self.api.logout()
        await self._end()

    async def close(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
        for controller in (self.tickets, self.categories, self.users):
            controller.close()
        self.notifications.detach()
        await self.channel.disconnect()

    async def _begin(self, state: SessionState, *, wait_for_channel: bool) -> None:
        user_id = state.user_id
        if user_id is None:
            return
        # Channel failures never block the feed load.
        connect = self.channel.connect(user_id, token=state.token)
        if wait_for_channel:
            await connect
        else:
            self._spawn(connect)
        await self.notifications.load_initial(user_id)

    async def _end(self) -> None:
        # Local state first: nothing of the previous user may stay visible or
        # fire a request while the channel closes.
        for controller in (self.tickets, self.categories, self.users):
            controller.reset()
        self.ticket_mutations.current_ticket = None
        self.notifications.reset()
        await self.channel.disconnect()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_unauthorized(self, login_path: str) -> None:
        # The API client already cleared the persisted session.
        logger.info("session expired; redirecting to %s", login_path)
        self._spawn(self._end())
        if self.navigate is not None:
            self.navigate(login_path)

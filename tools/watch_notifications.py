from __future__ import annotations

import asyncio
import sys

from ticketdesk.config import settings
from ticketdesk.context import SessionContext, configure_logging
from ticketdesk.schemas import NotificationRecord, notification_summary


def _print_record(record: NotificationRecord) -> None:
    title, message = notification_summary(record)
    flag = " " if record.read else "*"
    print(f"{flag} {record.created_at:%Y-%m-%d %H:%M:%S}  {title}: {message}")


async def main() -> int:
    configure_logging(settings)
    print(f"== {settings.app_name} ==")
    print("API_BASE_URL:", settings.api_base_url)
    print("SOCKET_URL:", settings.socket_url)
    print("SESSION_FILE:", settings.session_file)

    ctx = SessionContext(settings, navigate=lambda path: print("login required:", path))
    if not await ctx.start(wait_for_channel=True):
        print("no persisted session; sign in first")
        return 1

    print(f"\n== Feed ({ctx.notifications.unread_count} unread) ==")
    for record in ctx.notifications.records:
        _print_record(record)

    seen = {r.id for r in ctx.notifications.records}

    def _on_change(store) -> None:
        for record in store.records:
            if record.id not in seen:
                seen.add(record.id)
                _print_record(record)

    ctx.notifications.subscribe(_on_change)
    print("\n== Live (channel %s) ==" % ctx.channel.state)
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await ctx.close()


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass

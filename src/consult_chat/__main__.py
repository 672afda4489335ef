"""Entrypoint: python -m consult_chat --user <id> [--consultation <id>]"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from consult_chat.config import settings
from consult_chat.domain.entities.message import Message
from consult_chat.infrastructure.http.backend_client import HttpxConsultationBackend
from consult_chat.infrastructure.relay.aiohttp_transport import build_transport_factory
from consult_chat.services.connection_manager import ConnectionManager
from consult_chat.services.consultation_session import ConsultationSession

logger = logging.getLogger(__name__)


def _render(messages: tuple[Message, ...]) -> None:
    print("-" * 40)
    for m in messages:
        marker = "…" if m.is_optimistic else " "
        print(f"{marker} [{m.created_at:%H:%M}] {m.sender_name or m.sender_id}: {m.body}")


async def run(user_id: str, consultation_id: str | None) -> None:
    connection = ConnectionManager(
        build_transport_factory(settings),
        reconnect_attempts=settings.RELAY_RECONNECT_ATTEMPTS,
        reconnect_delay=settings.RELAY_RECONNECT_DELAY,
        connect_timeout=settings.RELAY_CONNECT_TIMEOUT,
    )
    backend = HttpxConsultationBackend.from_settings(settings)
    session = ConsultationSession(
        connection,
        backend,
        user_id=user_id,
        tolerance_ms=settings.MERGE_TOLERANCE_MS,
        typing_expiry_seconds=settings.TYPING_EXPIRY_SECONDS,
    )
    session.store.subscribe(_render)
    connection.add_state_listener(lambda state: logger.info("Relay state: %s", state))

    try:
        async with session:
            await session.open(settings.RELAY_URL)
            consultations = await session.load_consultations()
            if consultation_id is not None:
                chosen = next((c for c in consultations if c.id == consultation_id), None)
                if chosen is None:
                    logger.error("Consultation %s not found for user %s", consultation_id, user_id)
                    return
                await session.select(chosen)
            if session.consultation is None:
                logger.error("No consultations for user %s", user_id)
                return

            loop = asyncio.get_running_loop()
            while True:
                line = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    break
                result = await session.send(line)
                if result is not None and not result.ok:
                    print(f"! {result.error} (unsent: {result.restored_input})")
                if session.typing.names:
                    print(f"typing: {', '.join(session.typing.names)}")
    finally:
        await backend.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(prog="consult_chat", description="Consultation chat client")
    parser.add_argument("--user", required=True, help="id of the signed-in client")
    parser.add_argument("--consultation", help="consultation to open (default: the first one)")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run(args.user, args.consultation))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

"""Fan a single domain event out to the in-app record, email and push.

The three channels are attempted in order and fail independently: an
error in one is logged and recorded on the returned ``NotificationEvent``
but never stops the next one, and ``dispatch`` itself never raises.
Nothing is retried or queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from tracker.core.config import Settings
from tracker.core.exceptions import ChannelFailure
from tracker.models.user import User
from tracker.services import push_tokens, user_notifications
from tracker.services.email import MailTransport, build_mail_transport, render_notification_email
from tracker.services.push_notifications import PushTransport, build_push_transport

logger = logging.getLogger(__name__)

_OUTCOME_FIELDS = {"persist": "persisted", "email": "emailed", "push": "pushed"}


@dataclass
class NotificationEvent:
    recipient_id: int
    title: str
    body: str
    link: Optional[str] = None
    # True = delivered, False = attempted and failed, None = not attempted
    persisted: Optional[bool] = None
    emailed: Optional[bool] = None
    pushed: Optional[bool] = None
    pruned_tokens: list[str] = field(default_factory=list)


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        mail: MailTransport | None = None,
        push: PushTransport | None = None,
        channel_timeout: float = 10.0,
        app_url: str = "",
    ) -> None:
        self.session_factory = session_factory
        self.mail = mail
        self.push = push
        self.channel_timeout = channel_timeout
        self.app_url = app_url

    async def dispatch(
        self,
        recipient_id: int,
        title: str,
        body: str,
        link: Optional[str] = None,
    ) -> NotificationEvent:
        event = NotificationEvent(recipient_id=recipient_id, title=title, body=body, link=link)
        for channel, step in (
            ("persist", self._persist),
            ("email", self._email),
            ("push", self._push),
        ):
            try:
                await step(event)
            except Exception:
                logger.exception("Notification %s step failed for user %s", channel, recipient_id)
                setattr(event, _OUTCOME_FIELDS[channel], False)
        return event

    async def dispatch_many(
        self,
        recipient_ids: Iterable[int],
        title: str,
        body: str,
        link: Optional[str] = None,
    ) -> list[NotificationEvent]:
        return [await self.dispatch(recipient_id, title, body, link) for recipient_id in recipient_ids]

    async def _persist(self, event: NotificationEvent) -> None:
        async with self.session_factory() as session:
            await user_notifications.create_notification(
                session,
                user_id=event.recipient_id,
                title=event.title,
                message=event.body,
                link=event.link,
            )
            await session.commit()
        event.persisted = True

    async def _email(self, event: NotificationEvent) -> None:
        if self.mail is None:
            return
        async with self.session_factory() as session:
            result = await session.exec(select(User.email).where(User.id == event.recipient_id))
            address = result.one_or_none()
        if not address:
            logger.debug("No email address for user %s; skipping email", event.recipient_id)
            return

        html_body, text_body = render_notification_email(event.title, event.body, event.link, app_url=self.app_url)
        try:
            await asyncio.wait_for(
                self.mail.send(address, event.title, html_body, text_body),
                timeout=self.channel_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Email to user %s timed out after %ss", event.recipient_id, self.channel_timeout)
            event.emailed = False
            return
        except ChannelFailure as exc:
            logger.warning("Email to user %s failed: %s", event.recipient_id, exc)
            event.emailed = False
            return
        event.emailed = True

    async def _push(self, event: NotificationEvent) -> None:
        if self.push is None:
            return
        async with self.session_factory() as session:
            tokens = await push_tokens.get_tokens_for_user(session, user_id=event.recipient_id)
        if not tokens:
            logger.debug("No push tokens found for user %s", event.recipient_id)
            return

        try:
            results = await asyncio.wait_for(
                self.push.send_multicast(tokens, event.title, event.body, event.link),
                timeout=self.channel_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Push to user %s timed out after %ss", event.recipient_id, self.channel_timeout)
            event.pushed = False
            return
        except ChannelFailure as exc:
            logger.warning("Push to user %s failed: %s", event.recipient_id, exc)
            event.pushed = False
            return

        delivered = [result.token for result in results if result.success]
        invalid = [result.token for result in results if not result.success and result.permanent]
        for result in results:
            if not result.success and not result.permanent:
                logger.warning("Push to token %s... failed: %s", result.token[:20], result.error)
        event.pushed = bool(delivered)

        for token in invalid:
            logger.info("Deleting invalid push token: %s...", token[:20])
            try:
                async with self.session_factory() as session:
                    if await push_tokens.prune_token(session, token=token):
                        event.pruned_tokens.append(token)
            except Exception:
                logger.exception("Failed to prune push token %s... for user %s", token[:20], event.recipient_id)

        if delivered:
            try:
                async with self.session_factory() as session:
                    await push_tokens.mark_tokens_used(session, tokens=delivered)
            except Exception:
                logger.exception("Failed to mark push tokens used for user %s", event.recipient_id)

        logger.info(
            "Sent push notification to %d/%d devices for user %s",
            len(delivered),
            len(tokens),
            event.recipient_id,
        )


def build_dispatcher(settings: Settings, session_factory: sessionmaker) -> NotificationDispatcher:
    return NotificationDispatcher(
        session_factory,
        mail=build_mail_transport(settings),
        push=build_push_transport(settings),
        channel_timeout=settings.NOTIFICATION_CHANNEL_TIMEOUT_SECONDS,
        app_url=settings.APP_URL,
    )

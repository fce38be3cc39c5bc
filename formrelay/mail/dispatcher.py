from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Callable, Dict, Optional, Protocol

from formrelay.mail.transport import DeliveryInfo, SmtpConnectionPool
from formrelay.schemas.project import SmtpConfig

logger = logging.getLogger("formrelay.mail.dispatcher")

HEADER_BREAK_RE = re.compile(r"[\r\n]")


class MailDispatchError(Exception):
    """Base exception for mail dispatch failures."""


class MailConfigurationError(MailDispatchError):
    """Raised when a project's SMTP settings cannot produce a sendable message."""


@dataclass
class MailPayload:
    to: str
    subject: str
    html: str
    text: str
    cc: Optional[str] = None
    from_address: Optional[str] = None
    reply_to: Optional[str] = None


class Transport(Protocol):
    async def send_message(self, message: EmailMessage) -> DeliveryInfo:
        ...

    async def close(self) -> None:
        ...


TransportFactory = Callable[..., Transport]


def transport_key(config: SmtpConfig) -> str:
    return f"{config.host}:{config.port}:{config.username or 'anon'}"


def build_message(payload: MailPayload, sender: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = payload.to
    if payload.cc:
        msg["Cc"] = payload.cc
    if payload.reply_to:
        if HEADER_BREAK_RE.search(payload.reply_to):
            logger.warning("Dropping Reply-To with a line break: %r", payload.reply_to[:100])
        else:
            msg["Reply-To"] = payload.reply_to
    msg["Subject"] = payload.subject
    msg["Date"] = formatdate(localtime=False)
    domain = sender.rpartition("@")[2].strip(" >") or None
    msg["Message-ID"] = make_msgid(domain=domain)
    msg.set_content(payload.text)
    msg.add_alternative(payload.html, subtype="html")
    return msg


class MailDispatcher:
    """
    Sends notification emails through each tenant's own SMTP server.

    One pooled transport is cached per ``host:port:username``. A failed send
    evicts that transport so the next send reconnects with fresh credentials;
    the error is re-raised and never retried here.
    """

    def __init__(
        self,
        transport_factory: TransportFactory = SmtpConnectionPool,
        *,
        max_connections: int = 5,
        max_messages: int = 100,
        timeout: float = 30.0,
    ) -> None:
        self._factory = transport_factory
        self._max_connections = max_connections
        self._max_messages = max_messages
        self._timeout = timeout
        self._transports: Dict[str, Transport] = {}

    def _get_transport(self, key: str, config: SmtpConfig) -> Transport:
        transport = self._transports.get(key)
        if transport is None:
            logger.info("Creating new SMTP transport for %s", key)
            transport = self._factory(
                config,
                max_connections=self._max_connections,
                max_messages=self._max_messages,
                timeout=self._timeout,
            )
            self._transports[key] = transport
        return transport

    async def _evict(self, key: str, transport: Transport) -> None:
        # A concurrent send may already have replaced it.
        if self._transports.get(key) is transport:
            del self._transports[key]
        await transport.close()

    async def send(self, config: SmtpConfig, payload: MailPayload) -> DeliveryInfo:
        sender = payload.from_address or config.from_email or config.username
        if not sender:
            raise MailConfigurationError("No sender address configured (from_email or username).")
        if not payload.to:
            raise MailConfigurationError("No recipient address configured.")

        message = build_message(payload, sender)
        key = transport_key(config)
        transport = self._get_transport(key, config)

        try:
            info = await transport.send_message(message)
        except Exception:
            logger.exception("Send failed for %s; evicting transport", key)
            await self._evict(key, transport)
            raise

        logger.info(
            "Mail sent via %s (message_id=%s, accepted=%d, rejected=%d)",
            key,
            info.message_id,
            len(info.accepted),
            len(info.rejected),
        )
        return info

    async def close(self) -> None:
        transports, self._transports = self._transports, {}
        for key, transport in transports.items():
            logger.info("Closing SMTP transport for %s", key)
            await transport.close()

    def __len__(self) -> int:
        return len(self._transports)

"""
Pooled async SMTP transport for one (host, port, username) target.

Connections are opened lazily, reused across sends, rotated after
``max_messages`` messages, and dropped as soon as one raises.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import getaddresses
from typing import List, Optional

import aiosmtplib

from formrelay.schemas.project import SmtpConfig

logger = logging.getLogger("formrelay.mail.transport")


@dataclass
class DeliveryInfo:
    """What the SMTP server told us about one message."""

    message_id: Optional[str]
    accepted: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)
    response: str = ""


@dataclass
class _PooledConnection:
    client: aiosmtplib.SMTP
    sent: int = 0


class SmtpConnectionPool:
    def __init__(
        self,
        config: SmtpConfig,
        *,
        max_connections: int = 5,
        max_messages: int = 100,
        timeout: float = 30.0,
    ) -> None:
        self.config = config
        self.max_connections = max_connections
        self.max_messages = max_messages
        self.timeout = timeout
        self._slots = asyncio.Semaphore(max_connections)
        self._idle: List[_PooledConnection] = []
        self._closed = False

    def _new_client(self) -> aiosmtplib.SMTP:
        # secure=True means implicit TLS (465); otherwise STARTTLS is used when offered.
        return aiosmtplib.SMTP(
            hostname=self.config.host,
            port=self.config.port,
            use_tls=self.config.secure,
            timeout=self.timeout,
        )

    async def _connect(self) -> _PooledConnection:
        client = self._new_client()
        await client.connect()
        if self.config.username:
            await client.login(self.config.username, self.config.password or "")
        logger.debug("Opened SMTP connection to %s:%s", self.config.host, self.config.port)
        return _PooledConnection(client=client)

    async def _acquire(self) -> _PooledConnection:
        while self._idle:
            conn = self._idle.pop()
            if conn.client.is_connected:
                return conn
        return await self._connect()

    async def _discard(self, conn: _PooledConnection) -> None:
        if not conn.client.is_connected:
            return
        try:
            await conn.client.quit()
        except aiosmtplib.SMTPException as exc:
            logger.debug("Ignoring error while closing SMTP connection: %s", exc)
            conn.client.close()

    async def _release(self, conn: _PooledConnection) -> None:
        if self._closed or conn.sent >= self.max_messages:
            await self._discard(conn)
        else:
            self._idle.append(conn)

    async def send_message(self, message: EmailMessage) -> DeliveryInfo:
        if self._closed:
            raise RuntimeError("SMTP pool is closed")

        async with self._slots:
            conn = await self._acquire()
            try:
                errors, response = await conn.client.send_message(message)
            except Exception:
                await self._discard(conn)
                raise
            conn.sent += 1
            await self._release(conn)

        recipients = [
            addr
            for _, addr in getaddresses(message.get_all("To", []) + message.get_all("Cc", []))
            if addr
        ]
        rejected = list(errors.keys())
        return DeliveryInfo(
            message_id=message.get("Message-ID"),
            accepted=[r for r in recipients if r not in errors],
            rejected=rejected,
            response=response,
        )

    async def close(self) -> None:
        self._closed = True
        idle, self._idle = self._idle, []
        for conn in idle:
            await self._discard(conn)

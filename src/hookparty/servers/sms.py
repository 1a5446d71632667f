"""
Twilio inbound SMS webhook.

A second loopback listener (default port 31549) for Twilio's "A message
comes in" webhook, usually exposed through a tunnel. Each form-encoded
message is routed through the ReplyRouter and answered with TwiML, so the
user gets the outcome as a reply SMS.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from xml.sax.saxutils import escape

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response

from hookparty.config.app import SmsSettings
from hookparty.notifications.replies import SMS, ReplyRouter

logger = logging.getLogger(__name__)

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def twiml(message: str | None) -> Response:
    if not message:
        body = EMPTY_TWIML
    else:
        body = (
            '<?xml version="1.0" encoding="UTF-8"?>'
            f"<Response><Message>{escape(message)}</Message></Response>"
        )
    return Response(content=body, media_type="text/xml")


class SmsWebhookServer:
    """HTTP listener that turns inbound SMS into session input."""

    def __init__(self, settings: SmsSettings, router: ReplyRouter, host: str = "127.0.0.1"):
        self.settings = settings
        self.router = router
        self.host = host

        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None
        self._socket: socket.socket | None = None

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="hookparty-sms",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        @app.post("/{path:path}")
        async def receive_sms(path: str, request: Request) -> Response:
            form = await request.form()
            sender = str(form.get("From") or "")
            body = str(form.get("Body") or "")
            logger.info(f"Received SMS from {sender or 'unknown'}: {body[:50]}")

            if self.settings.to_number and sender != self.settings.to_number:
                logger.warning(f"Ignoring SMS from unknown number {sender}")
                return twiml(None)

            reply = await self.router.handle(body, SMS)
            return twiml(reply)

        return app

    async def start(self) -> None:
        if self._serve_task is not None:
            raise RuntimeError("SMS webhook server is already running")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.settings.webhook_port))
        except OSError:
            sock.close()
            raise
        sock.listen(128)
        sock.setblocking(False)

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.settings.webhook_port,
            log_level="warning",
            access_log=False,
            log_config=None,
        )
        self._server = uvicorn.Server(config)
        self._socket = sock
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]), name="sms-webhook")

        while not self._server.started:
            if self._serve_task.done():
                self._serve_task.result()
                raise RuntimeError("SMS webhook server exited during startup")
            await asyncio.sleep(0.01)

        logger.info(f"SMS webhook listening on http://{self.host}:{self.settings.webhook_port}")

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            await asyncio.gather(self._serve_task, return_exceptions=True)
            self._serve_task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        self._server = None
        logger.info("SMS webhook server stopped")

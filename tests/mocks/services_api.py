"""FastAPI mock for the TTS service and the notification webhook used in tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import anyio
import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from httpx import ASGITransport, BaseTransport
from pydantic import BaseModel

FAKE_MP3 = b"ID3\x03\x00\x00\x00\x00\x00\x00fake-mp3-frame"


class _SyncASGITransport(BaseTransport):
    """Bridge ASGI apps into sync httpx clients."""

    def __init__(self, app: FastAPI) -> None:
        self._asgi = ASGITransport(app=app)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        async def _send() -> tuple[httpx.Response, bytes]:
            response = await self._asgi.handle_async_request(request)
            body = await response.aread()
            await response.aclose()
            return response, body

        response, body = anyio.run(_send)
        return httpx.Response(
            status_code=response.status_code,
            headers=response.headers,
            content=body,
            extensions=response.extensions,
            request=request,
        )

    def close(self) -> None:
        anyio.run(self._asgi.aclose)


class SpeechPayload(BaseModel):
    model: str
    input: str
    voice: str
    response_format: str = "mp3"


class ServicesAPIMock:
    """In-memory FastAPI app recording speech requests and webhook deliveries."""

    def __init__(self, *, base_url: str = "http://services-mock.local") -> None:
        self.base_url = base_url
        self.app = FastAPI()
        self.healthy = True
        self.fail_when_input_contains: Optional[str] = None
        self.speech_requests: List[Dict[str, Any]] = []
        self.webhooks: List[Dict[str, Any]] = []
        self._httpx_clients: List[httpx.Client] = []
        self._register_routes()

    def _register_routes(self) -> None:
        app = self.app

        @app.get("/health")
        def health() -> Dict[str, str]:
            if not self.healthy:
                raise HTTPException(status_code=503, detail="warming up")
            return {"status": "ok"}

        @app.post("/v1/audio/speech")
        def speech(payload: SpeechPayload) -> Response:
            self.speech_requests.append(payload.model_dump())
            marker = self.fail_when_input_contains
            if marker and marker in payload.input:
                raise HTTPException(status_code=500, detail="synthesis failed")
            return Response(content=FAKE_MP3, media_type="audio/mpeg")

        @app.post("/hooks/coursemill")
        async def webhook(request: Request) -> Dict[str, str]:
            self.webhooks.append(await request.json())
            return {"status": "ok"}

    # ------------------------------------------------------------------

    @property
    def webhook_url(self) -> str:
        return f"{self.base_url}/hooks/coursemill"

    def build_httpx_client(self, *, timeout: float = 5.0) -> httpx.Client:
        client = httpx.Client(
            base_url=self.base_url,
            transport=_SyncASGITransport(app=self.app),
            timeout=timeout,
        )
        self._httpx_clients.append(client)
        return client

    def close(self) -> None:
        for client in self._httpx_clients:
            client.close()
        self._httpx_clients.clear()

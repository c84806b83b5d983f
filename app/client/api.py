"""
HTTP client for the consultation endpoints, used by the participant-side
coordinators. Failures are mapped onto the service's error taxonomy so the
pollers can tell a business-rule rejection from a transient fault.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

import httpx

from app.core.config import settings
from app.core.errors import InvalidStateError, NotFoundError, TransientNetworkError
from app.schemas.booking import BookingResponse
from app.schemas.settings import PublicSettings
from app.schemas.video_session import ChatMessageResponse, VideoSessionResponse


class ConsultationApi:
    def __init__(self, base_url: str, token: str, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.headers = {"Authorization": f"Bearer {token}"}

    def _url(self, path: str) -> str:
        return f"{self.base_url}{settings.API_V1_STR}{path}"

    async def _request(self, method: str, path: str, **kwargs):
        try:
            response = await self.client.request(method, self._url(path), headers=self.headers, **kwargs)
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(path)
        if response.status_code == 409:
            detail = response.json().get("detail")
            if isinstance(detail, dict) and "attempted" in detail:
                raise InvalidStateError(
                    detail.get("entity", "resource"), detail["attempted"], detail["actual"], detail.get("message")
                )
            raise InvalidStateError("resource", "unknown", "unknown", str(detail))
        # Auth hiccups and server errors are retried on the next tick
        if response.status_code in (401, 403) or response.status_code >= 500:
            raise TransientNetworkError(
                f"{method} {path} returned {response.status_code}", status_code=response.status_code
            )
        response.raise_for_status()
        return response.json()

    async def get_session(self, session_id: UUID) -> VideoSessionResponse:
        return VideoSessionResponse.model_validate(await self._request("GET", f"/video-sessions/{session_id}"))

    async def get_session_by_consultation(self, consultation_id: UUID) -> Optional[VideoSessionResponse]:
        data = await self._request("GET", f"/video-sessions/consultation/{consultation_id}")
        return VideoSessionResponse.model_validate(data) if data else None

    async def get_or_create_session(self, consultation_id: UUID, participant_user_id: UUID) -> VideoSessionResponse:
        data = await self._request("POST", "/video-sessions", json={
            "consultation_id": str(consultation_id),
            "participant_user_id": str(participant_user_id),
        })
        return VideoSessionResponse.model_validate(data)

    async def start_session(self, session_id: UUID) -> VideoSessionResponse:
        return VideoSessionResponse.model_validate(await self._request("POST", f"/video-sessions/{session_id}/start"))

    async def end_session(self, session_id: UUID, recording_url: Optional[str] = None) -> VideoSessionResponse:
        data = await self._request("POST", f"/video-sessions/{session_id}/end", json={"recording_url": recording_url})
        return VideoSessionResponse.model_validate(data)

    async def list_messages(self, session_id: UUID, since: Optional[datetime] = None) -> List[ChatMessageResponse]:
        params = {"since": since.isoformat()} if since else None
        data = await self._request("GET", f"/video-sessions/{session_id}/messages", params=params)
        return [ChatMessageResponse.model_validate(item) for item in data]

    async def send_message(self, session_id: UUID, message: str, message_type: str = "text") -> ChatMessageResponse:
        data = await self._request("POST", f"/video-sessions/{session_id}/messages", json={
            "message": message,
            "message_type": message_type,
        })
        return ChatMessageResponse.model_validate(data)

    async def get_booking(self, booking_id: UUID) -> BookingResponse:
        return BookingResponse.model_validate(await self._request("GET", f"/bookings/{booking_id}"))

    async def get_public_settings(self) -> PublicSettings:
        return PublicSettings.model_validate(await self._request("GET", "/settings/public"))

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

"""
Async HTTP client for the booking API.

Every call races the request against ``client_timeout_seconds`` and turns
error envelopes back into the matching ``BookingError`` subclass, so callers
handle one exception hierarchy whether the failure happened locally or on
the server.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional, Union
from uuid import UUID
import asyncio

import httpx
import structlog

from bookflow.config import settings
from bookflow.errors import (
    BookingError,
    BookingNetworkError,
    BookingTimeoutError,
    ReservationNotFoundError,
    error_from_payload,
)
from bookflow.schemas.auth import RoleCheckResponse
from bookflow.schemas.booking import (
    AvailabilityResponse,
    DepositProof,
    GuestDetails,
    HoldResponse,
    ReservationReadBack,
    ReservationResponse,
)
from bookflow.schemas.payment import DepositIntentResponse
from bookflow.schemas.tenant import TenantInfo

logger = structlog.get_logger()


class BookingAPIClient:
    """Client for the public booking endpoints of one tenant"""

    def __init__(
        self,
        tenant_id: Optional[Union[UUID, str]] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        access_token: Optional[str] = None,
    ):
        self.tenant_id = str(tenant_id) if tenant_id else None
        self.timeout = timeout if timeout is not None else settings.client_timeout_seconds
        self.access_token = access_token
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url or settings.api_base_url)

    async def __aenter__(self) -> "BookingAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _tenant_path(self, suffix: str) -> str:
        if not self.tenant_id:
            raise BookingError("No restaurant selected", details={"reason": "tenant_id missing"})
        return f"/public/tenants/{self.tenant_id}{suffix}"

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        headers = dict(headers or {})
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        try:
            response = await asyncio.wait_for(
                self._http.request(method, path, json=json, headers=headers),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Booking API timed out", method=method, path=path, timeout=self.timeout)
            raise BookingTimeoutError(details={"timeout_seconds": self.timeout})
        except httpx.TransportError as e:
            logger.warning("Booking API unreachable", method=method, path=path, error=str(e))
            raise BookingNetworkError()

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            if not isinstance(payload, dict):
                payload = {}
            raise error_from_payload(payload, response.status_code)

        return response.json()

    async def resolve_tenant(self, slug_or_id: str) -> TenantInfo:
        """Look up a tenant and bind this client to it"""
        data = await self._request("GET", f"/public/tenants/resolve/{slug_or_id}")
        info = TenantInfo(**data)
        self.tenant_id = str(info.tenant_id)
        return info

    async def search_availability(self, party_size: int, service_date: date) -> AvailabilityResponse:
        data = await self._request(
            "POST",
            self._tenant_path("/availability"),
            json={"party_size": party_size, "service_date": service_date.isoformat()},
        )
        return AvailabilityResponse(**data)

    async def create_hold(
        self,
        party_size: int,
        slot_time: datetime,
        idempotency_key: str,
        table_id: Optional[UUID] = None,
    ) -> HoldResponse:
        body = {"party_size": party_size, "slot": {"time": slot_time.isoformat()}}
        if table_id:
            body["table_id"] = str(table_id)
        data = await self._request(
            "POST",
            self._tenant_path("/holds"),
            json=body,
            headers={"Idempotency-Key": idempotency_key},
        )
        return HoldResponse(**data)

    async def create_deposit_intent(
        self,
        amount_cents: int,
        email: str,
        description: Optional[str] = None,
    ) -> DepositIntentResponse:
        data = await self._request(
            "POST",
            self._tenant_path("/deposits/intents"),
            json={"amount": amount_cents, "email": email, "description": description},
        )
        return DepositIntentResponse(**data)

    async def confirm(
        self,
        hold_id: UUID,
        guest: GuestDetails,
        idempotency_key: str,
        deposit: Optional[DepositProof] = None,
    ) -> ReservationResponse:
        body = {
            "hold_id": str(hold_id),
            "guest_details": guest.model_dump(mode="json"),
            "deposit": deposit.model_dump(mode="json") if deposit else None,
        }
        data = await self._request(
            "POST",
            self._tenant_path("/reservations/confirm"),
            json=body,
            headers={"Idempotency-Key": idempotency_key},
        )
        return ReservationResponse(**data)

    async def get_reservation(self, reservation_id: Union[UUID, str]) -> Optional[ReservationReadBack]:
        """Read a reservation back; None when it does not exist"""
        try:
            data = await self._request("GET", self._tenant_path(f"/reservations/{reservation_id}"))
        except ReservationNotFoundError:
            return None
        return ReservationReadBack(**data)

    async def get_role(self) -> RoleCheckResponse:
        """Staff flag for the authenticated user"""
        data = await self._request("GET", "/auth/me/role")
        return RoleCheckResponse(**data)

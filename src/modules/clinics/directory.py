"""Client for the external clinic service."""

from __future__ import annotations

import logging

import httpx
from fastapi import status
from pydantic import ValidationError

from src.core.config import settings
from src.core.exceptions import ServiceUnavailable
from src.modules.clinics.schemas import ClinicSummary

logger = logging.getLogger(__name__)

_CLINIC_PATH = "/v1/clinics/{clinic_id}"


class ClinicDirectory:
    """Looks up clinics by id. Clinic data is owned by the clinic service."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    async def get_clinic(self, clinic_id: str) -> ClinicSummary | None:
        """Return the clinic, ``None`` if it does not exist.

        Transport failures and unexpected answers raise ServiceUnavailable so
        that callers never mistake an outage for a missing clinic.
        """
        client = self._client
        created_client = False
        if client is None:
            client = httpx.AsyncClient(
                base_url=settings.clinic_service_url,
                timeout=settings.clinic_service_timeout_seconds,
            )
            created_client = True
        try:
            response = await client.get(_CLINIC_PATH.format(clinic_id=clinic_id))
        except httpx.HTTPError as exc:
            logger.error("Clinic service request failed for clinic %s: %s", clinic_id, exc)
            raise ServiceUnavailable("Clinic service is unavailable") from exc
        finally:
            if created_client:
                await client.aclose()

        if response.status_code == status.HTTP_404_NOT_FOUND:
            return None
        if response.status_code != status.HTTP_200_OK:
            logger.error("Clinic service returned %s for clinic %s", response.status_code, clinic_id)
            raise ServiceUnavailable("Clinic service returned an unexpected status")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ServiceUnavailable("Failed to parse clinic service response") from exc

        if not isinstance(payload, dict):
            raise ServiceUnavailable("Clinic service response is malformed")
        if not payload.get("success"):
            return None
        data = payload.get("data")
        if not data:
            return None
        try:
            return ClinicSummary.model_validate(data)
        except ValidationError as exc:
            raise ServiceUnavailable("Clinic service response is malformed") from exc


def get_clinic_directory() -> ClinicDirectory:
    return ClinicDirectory()

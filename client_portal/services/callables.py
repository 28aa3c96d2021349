"""Client for the backend's callable functions.

Protocol: ``POST {FUNCTIONS_BASE_URL}/{name}`` with ``{"data": {...}}`` and the
signed-in user's id token as bearer. A reply carries either ``{"result": ...}``
or ``{"error": {"status": ..., "message": ...}}``. Transport failures and error
replies raise ``CallableError``; nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.config import settings
from ..core.errors import CallableError

logger = logging.getLogger(__name__)

START_VERIFICATION = "startVerification"
CHECK_VERIFICATION = "checkVerification"
APPROVE_DELIVERY = "approveDelivery"
CHECK_DELIVERY_INVOICE = "checkDeliveryInvoice"
CREATE_PAYMENT_LINK = "createPaymentLink"


class _Result(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class VerificationStarted(_Result):
    success: bool = False
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")
    error: Optional[str] = None


class VerificationChecked(_Result):
    success: bool = False
    status: Optional[str] = None
    error: Optional[str] = None


class DeliveryApproved(_Result):
    success: bool = False
    error: Optional[str] = None


class DeliveryInvoices(_Result):
    invoices: list[dict[str, Any]] = Field(default_factory=list)


class PaymentLink(_Result):
    payment_url: str = Field(alias="paymentUrl")


def _log_status(response: httpx.Response, function: str) -> None:
    if response.status_code in {401, 403}:
        logger.warning("callable.unauthorized", extra={"extra_data": {"function": function}})
    elif response.status_code >= 500:
        logger.error(
            "callable.server_error",
            extra={"extra_data": {"function": function, "status": response.status_code}},
        )


class FunctionsClient:
    """Thin async wrapper; one short-lived ``httpx.AsyncClient`` per call."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        id_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.FUNCTIONS_BASE_URL).rstrip("/")
        self.id_token = id_token
        self.timeout = timeout if timeout is not None else settings.FUNCTIONS_TIMEOUT
        self.transport = transport

    def with_token(self, id_token: str | None) -> "FunctionsClient":
        return FunctionsClient(self.base_url, id_token=id_token, timeout=self.timeout, transport=self.transport)

    async def call(self, name: str, data: dict[str, Any]) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.id_token:
            headers["Authorization"] = f"Bearer {self.id_token}"
        url = f"{self.base_url}/{name}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json={"data": data}, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("callable.transport_failed", extra={"extra_data": {"function": name, "error": str(exc)}})
            raise CallableError(f"{name} could not be reached", function=name) from exc

        _log_status(response, name)
        try:
            body = response.json()
        except ValueError as exc:
            raise CallableError(f"{name} returned an invalid response", function=name) from exc

        error = body.get("error") if isinstance(body, dict) else None
        if error or response.status_code >= 400:
            error = error if isinstance(error, dict) else {}
            remote_status = error.get("status") or str(response.status_code)
            message = error.get("message") or f"{name} failed"
            logger.warning(
                "callable.error",
                extra={"extra_data": {"function": name, "status": remote_status, "error": message}},
            )
            raise CallableError(message, function=name, remote_status=remote_status)
        if not isinstance(body, dict) or "result" not in body:
            raise CallableError(f"{name} returned no result", function=name)
        return body["result"]

    async def _call_as(self, model: type[_Result], name: str, data: dict[str, Any]) -> Any:
        result = await self.call(name, data)
        try:
            return model.model_validate(result or {})
        except ValidationError as exc:
            raise CallableError(f"{name} returned an unexpected result", function=name) from exc

    async def start_verification(self, phone: str) -> VerificationStarted:
        return await self._call_as(VerificationStarted, START_VERIFICATION, {"phoneNumber": phone})

    async def check_verification(self, phone: str, code: str, transaction_id: str) -> VerificationChecked:
        payload = {"phoneNumber": phone, "code": code, "transactionId": transaction_id}
        return await self._call_as(VerificationChecked, CHECK_VERIFICATION, payload)

    async def approve_delivery(
        self,
        *,
        project_id: str,
        delivery_id: str,
        phone: str,
        code: str,
        transaction_id: str,
        task_ids: Iterable[str] = (),
        incident_ids: Iterable[str] = (),
    ) -> DeliveryApproved:
        payload = {
            "projectId": project_id,
            "deliveryId": delivery_id,
            "phoneNumber": phone,
            "code": code,
            "transactionId": transaction_id,
            "tasks": [{"id": task_id} for task_id in task_ids],
            "incidents": [{"id": incident_id} for incident_id in incident_ids],
        }
        return await self._call_as(DeliveryApproved, APPROVE_DELIVERY, payload)

    async def check_delivery_invoices(self, project_id: str, delivery_id: str) -> DeliveryInvoices:
        payload = {"projectId": project_id, "deliveryId": delivery_id}
        return await self._call_as(DeliveryInvoices, CHECK_DELIVERY_INVOICE, payload)

    async def create_payment_link(self, invoice_id: str) -> PaymentLink:
        return await self._call_as(PaymentLink, CREATE_PAYMENT_LINK, {"invoiceId": invoice_id})


__all__ = [
    "DeliveryApproved",
    "DeliveryInvoices",
    "FunctionsClient",
    "PaymentLink",
    "VerificationChecked",
    "VerificationStarted",
]

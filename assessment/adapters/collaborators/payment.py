# PATH: assessment/adapters/collaborators/payment.py
from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

from assessment.application.ports.collaborators import PaymentOutcome
from assessment.domain.attempts.errors import PaymentProcessingError

logger = logging.getLogger(__name__)


class MockPaymentGateway:
    """로컬/테스트용: 항상 verified."""

    def request_payment(self, amount: Decimal, description: str, candidate_id: int) -> PaymentOutcome:
        reference_id = f"mock_{uuid.uuid4().hex}"
        logger.info(
            "MOCK_PAYMENT | candidate_id=%s amount=%s reference_id=%s",
            candidate_id, amount, reference_id,
        )
        return PaymentOutcome(reference_id=reference_id, verified=True)


class HttpPaymentGateway:
    """
    외부 결제 API (POST {api_base_url}/payments).
    응답: {"reference_id": str, "status": "VERIFIED" | "PENDING"}
    """

    def __init__(self, *, api_base_url: str, api_key: str = "", timeout_seconds: float = 10.0) -> None:
        self.api_base_url = api_base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = float(timeout_seconds)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def request_payment(self, amount: Decimal, description: str, candidate_id: int) -> PaymentOutcome:
        url = f"{self.api_base_url}/payments"
        payload: Dict[str, Any] = {
            "amount": str(amount),
            "description": str(description)[:255],
            "candidate_id": int(candidate_id),
        }
        try:
            r = requests.post(url, headers=self._headers(), json=payload, timeout=self.timeout_seconds)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise PaymentProcessingError(f"Payment request failed: {e}") from e

        reference_id: Optional[str] = data.get("reference_id")
        if not reference_id:
            raise PaymentProcessingError("Payment response missing reference_id")
        status = str(data.get("status") or "").upper()
        return PaymentOutcome(reference_id=str(reference_id), verified=(status == "VERIFIED"))

from __future__ import annotations
from typing import Protocol
import httpx
from goodgrid.models.ledger import RewardDistribution


class PaymentProcessor(Protocol):
    async def pay(self, distribution: RewardDistribution) -> None:
        """Raise on failure; returning means the payout was accepted."""
        ...


class HttpPaymentProcessor:
    def __init__(self, base_url: str, timeout: float = 15.0, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def pay(self, distribution: RewardDistribution) -> None:
        body = {
            "distributionId": str(distribution.id),
            "userId": str(distribution.user_id),
            "amount": str(distribution.payment_amount),
            # payouts service dedupes on this key
            "idempotencyKey": f"reward_{distribution.id}",
        }
        if self._client is not None:
            r = await self._client.post(f"{self.base_url}/payouts", json=body, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(f"{self.base_url}/payouts", json=body)
        r.raise_for_status()

"""Ledger HTTP facade client with linear-backoff retry logic"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

import httpx
from tanda_engine.config import Settings, settings as default_settings
from tanda_engine.domain.exceptions import LedgerError, TandaNotFoundError
from tanda_engine.domain.models import Participant, Tanda, TandaStatus
from tanda_engine.infrastructure.observability.metrics import ledger_failure_counter, ledger_latency_histogram

logger = logging.getLogger(__name__)


class Ledger(Protocol):
    """Authoritative system of record for tanda state and fund movement"""

    async def create_tanda(self, name: str, amount: Decimal, max_participants: int, creator_wallet: str) -> Tanda: ...

    async def join_tanda(self, tanda_id: str, wallet_address: str) -> Tanda: ...

    async def get_tanda(self, tanda_id: str) -> Tanda: ...

    async def get_tandas(self, status: Optional[TandaStatus] = None) -> List[Tanda]: ...

    async def confirm_deposit(self, tanda_id: str, wallet_address: str, proof: str) -> Tanda: ...

    async def advance(self, tanda_id: str) -> Tanda: ...

    async def leave_tanda(self, tanda_id: str, wallet_address: str) -> Tanda: ...


def _from_millis(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _parse_status(value: str) -> TandaStatus:
    # The facade can report "cancelled"; for the engine that is just another end state
    if value == "cancelled":
        return TandaStatus.COMPLETED
    return TandaStatus(value)


def parse_tanda(data: Dict[str, Any]) -> Tanda:
    """
    Convert a facade tanda payload into the domain model.

    The facade reports the beneficiary order as wallet addresses; the engine
    keeps participant indices, dropping addresses that are no longer members.
    """
    participants = [
        Participant(
            wallet_address=p["walletAddress"],
            joined_at=_from_millis(p["joinedAt"]),
            has_deposited=p.get("hasDeposited", False),
            has_withdrawn=p.get("hasWithdrawn", False),
        )
        for p in data.get("participants", [])
    ]
    addresses = [p.wallet_address for p in participants]
    beneficiary_order = [addresses.index(addr) for addr in data.get("beneficiaryOrder", []) if addr in addresses]

    return Tanda(
        id=data["id"],
        name=data.get("name", ""),
        creator=data.get("creator", ""),
        amount=Decimal(str(data["amount"])),
        max_participants=data["maxParticipants"],
        participants=participants,
        current_cycle=data.get("currentCycle", 0),
        total_cycles=data.get("totalCycles", data["maxParticipants"]),
        status=_parse_status(data["status"]),
        created_at=_from_millis(data["createdAt"]),
        last_payout_at=_from_millis(data.get("lastPayoutAt")),
        beneficiary_order=beneficiary_order,
        storage_account=data.get("storageAccount"),
    )


class LedgerClient:
    """Client for the Ledger HTTP facade"""

    def __init__(
        self,
        base_url: str | None = None,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        config = config or default_settings
        self.base_url = base_url or config.ledger_api_base
        self.timeout = config.http_timeout_seconds
        self.max_retries = config.ledger_max_retries
        self.retry_delay = config.ledger_retry_delay_seconds
        self.transport = transport

    async def _request(self, method: str, endpoint: str, body: Dict[str, Any] | None = None) -> Dict[str, Any]:
        """
        Call the facade with retry logic.

        Retry strategy:
        - Linear backoff: delay * attempt (1s, 2s, ...)
        - Retries on 5xx errors and network failures
        - 4xx responses fail immediately with the facade's error message

        Raises:
            LedgerError: After the last failed attempt or on a client error
        """
        attempt = 0
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            while True:
                attempt += 1
                try:
                    with ledger_latency_histogram.time():
                        response = await client.request(method, endpoint, json=body)
                    if response.status_code >= 500:
                        response.raise_for_status()
                    data = response.json()
                    if response.is_error or data.get("success") is False:
                        raise LedgerError(
                            data.get("error") or f"HTTP {response.status_code}",
                            code=data.get("code"),
                            status_code=response.status_code,
                        )
                    return data

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    ledger_failure_counter.inc()
                    logger.warning(
                        f"Ledger request failed: {e}",
                        extra={"endpoint": endpoint, "attempt": attempt},
                    )
                    if attempt >= self.max_retries:
                        raise LedgerError(f"Ledger unavailable after {attempt} attempts: {e}") from e
                    await asyncio.sleep(self.retry_delay * attempt)

                except ValueError as e:
                    ledger_failure_counter.inc()
                    raise LedgerError(f"Invalid response from Ledger: {e}") from e

    async def _tanda_request(self, method: str, endpoint: str, body: Dict[str, Any] | None = None) -> Tanda:
        data = await self._request(method, endpoint, body)
        if not data.get("tanda"):
            raise LedgerError(f"Ledger response for {endpoint} has no tanda")
        try:
            return parse_tanda(data["tanda"])
        except (KeyError, ValueError, TypeError) as e:
            raise LedgerError(f"Invalid tanda data from Ledger: {e}") from e

    async def create_tanda(self, name: str, amount: Decimal, max_participants: int, creator_wallet: str) -> Tanda:
        return await self._tanda_request(
            "POST",
            "/api/tanda/create",
            {
                "name": name,
                "amount": float(amount),
                "maxParticipants": max_participants,
                "totalCycles": max_participants,  # One cycle per participant
                "creatorWallet": creator_wallet,
            },
        )

    async def join_tanda(self, tanda_id: str, wallet_address: str) -> Tanda:
        return await self._tanda_request(
            "POST",
            "/api/tanda/join",
            {"tandaId": tanda_id, "walletAddress": wallet_address},
        )

    async def get_tanda(self, tanda_id: str) -> Tanda:
        try:
            return await self._tanda_request("GET", f"/api/tanda/{tanda_id}")
        except LedgerError as e:
            if e.status_code == 404 or e.code == "NOT_FOUND":
                raise TandaNotFoundError(f"Tanda {tanda_id} not found") from e
            raise

    async def get_tandas(self, status: Optional[TandaStatus] = None) -> List[Tanda]:
        endpoint = "/api/tanda/list"
        if status is not None:
            endpoint = f"{endpoint}?status={status.value}"
        data = await self._request("GET", endpoint)
        try:
            return [parse_tanda(t) for t in data.get("tandas", [])]
        except (KeyError, ValueError, TypeError) as e:
            raise LedgerError(f"Invalid tanda data from Ledger: {e}") from e

    async def confirm_deposit(self, tanda_id: str, wallet_address: str, proof: str) -> Tanda:
        return await self._tanda_request(
            "POST",
            f"/api/tanda/{tanda_id}/confirm-deposit",
            {"walletAddress": wallet_address, "txHash": proof},
        )

    async def advance(self, tanda_id: str) -> Tanda:
        return await self._tanda_request("POST", f"/api/tanda/{tanda_id}/payout", {})

    async def leave_tanda(self, tanda_id: str, wallet_address: str) -> Tanda:
        return await self._tanda_request(
            "POST",
            f"/api/tanda/{tanda_id}/leave",
            {"walletAddress": wallet_address},
        )

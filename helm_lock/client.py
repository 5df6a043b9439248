"""Async client for the OctoStore-compatible lock service."""

import re
from typing import Optional
from urllib.parse import urljoin

import httpx

from .exceptions import (
    AuthenticationError,
    LockError,
    LockHeldError,
    NetworkError,
    ValidationError,
)
from .models import (
    AcquireResult,
    LockInfo,
    LockStatus,
    RenewResult,
)

DEFAULT_BASE_URL = "https://api.octostore.io"


class AsyncLockServiceClient:
    """Async distributed lock service client."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: str = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the async lock service client.

        Args:
            base_url: The base URL of the lock service API
            token: Bearer token for authentication
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport, mostly for tests
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {token}"} if token else {},
            timeout=timeout,
            transport=transport,
        )

    def _validate_lock_name(self, name: str) -> None:
        """Validate lock name format."""
        if not name or len(name) > 128:
            raise ValidationError("Lock name must be 1-128 characters")
        if not re.match(r'^[a-zA-Z0-9.-]+$', name):
            raise ValidationError("Lock name can only contain alphanumeric characters, hyphens, and dots")

    def _validate_ttl(self, ttl: int) -> None:
        """Validate TTL value."""
        if not 1 <= ttl <= 3600:
            raise ValidationError("TTL must be between 1 and 3600 seconds")

    def _handle_response(self, response: httpx.Response):
        """Handle HTTP response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or missing authentication token")
        elif response.status_code >= 400:
            try:
                error_data = response.json()
                message = error_data.get("error", f"HTTP {response.status_code}")
            except ValueError:
                message = f"HTTP {response.status_code}: {response.text}"
            # server-side failures are transient, callers may retry them
            if response.status_code >= 500:
                raise NetworkError(message)
            raise LockError(message)

        try:
            return response.json() if response.content else {}
        except ValueError as e:
            raise NetworkError(f"Failed to parse response: {e}")

    async def health(self) -> str:
        """Check API health status."""
        try:
            response = await self.client.get(urljoin(self.base_url, "/health"))
            if response.status_code == 200:
                return response.text.strip('"')
            else:
                raise NetworkError(f"Health check failed: HTTP {response.status_code}")
        except httpx.RequestError as e:
            raise NetworkError(f"Network error during health check: {e}")

    async def acquire_lock(self, name: str, ttl: int = 60, holder_id: str = None) -> AcquireResult:
        """Acquire a distributed lock.

        Args:
            name: Lock name
            ttl: Time-to-live in seconds (1-3600)
            holder_id: Identity recorded with the lease, for humans only

        Returns:
            AcquireResult with acquisition status and details
        """
        self._validate_lock_name(name)
        self._validate_ttl(ttl)

        body = {"ttl_seconds": ttl}
        if holder_id:
            body["metadata"] = holder_id

        try:
            response = await self.client.post(
                urljoin(self.base_url, f"/locks/{name}/acquire"),
                json=body,
            )

            if response.status_code == 409:
                try:
                    data = response.json()
                except ValueError:
                    data = {}
                raise LockHeldError(
                    f"Lock '{name}' is already held",
                    holder_id=data.get("holder_id"),
                    expires_at=data.get("expires_at"),
                )

            data = self._handle_response(response)
            return AcquireResult(**data)

        except httpx.RequestError as e:
            raise NetworkError(f"Network error acquiring lock: {e}")

    async def release_lock(self, name: str, lease_id: str) -> None:
        """Release a distributed lock.

        Args:
            name: Lock name
            lease_id: Lease ID from acquire operation
        """
        self._validate_lock_name(name)

        try:
            response = await self.client.post(
                urljoin(self.base_url, f"/locks/{name}/release"),
                json={"lease_id": lease_id},
            )
            self._handle_response(response)

        except httpx.RequestError as e:
            raise NetworkError(f"Network error releasing lock: {e}")

    async def renew_lock(self, name: str, lease_id: str, ttl: int = 60) -> RenewResult:
        """Renew a distributed lock.

        Args:
            name: Lock name
            lease_id: Lease ID from acquire operation
            ttl: New time-to-live in seconds (1-3600)

        Returns:
            RenewResult with updated lease information
        """
        self._validate_lock_name(name)
        self._validate_ttl(ttl)

        try:
            response = await self.client.post(
                urljoin(self.base_url, f"/locks/{name}/renew"),
                json={"lease_id": lease_id, "ttl_seconds": ttl},
            )

            data = self._handle_response(response)
            return RenewResult(**data)

        except httpx.RequestError as e:
            raise NetworkError(f"Network error renewing lock: {e}")

    async def get_lock_status(self, name: str) -> LockInfo:
        """Get the status of a specific lock.

        Args:
            name: Lock name

        Returns:
            LockInfo with current lock status
        """
        self._validate_lock_name(name)

        try:
            response = await self.client.get(urljoin(self.base_url, f"/locks/{name}"))
            data = self._handle_response(response)

            return LockInfo(
                name=data["name"],
                status=LockStatus(data["status"]),
                holder_id=data.get("holder_id"),
                fencing_token=data["fencing_token"],
                expires_at=data.get("expires_at"),
            )

        except httpx.RequestError as e:
            raise NetworkError(f"Network error getting lock status: {e}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

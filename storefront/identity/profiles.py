"""
Profile Resolver.

Maps an authenticated user to its application profile. A missing profile
row is synthesized from the auth user and persisted best-effort; a failed
query degrades to "no profile" instead of raising.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from shared.config.constants import SELF_ASSIGNABLE_ROLES, Role, parse_role
from shared.config.logging import identity_logger as logger, mask_email, mask_user_id
from shared.utils.exceptions import ProfileFetchError
from storefront.backend.client import BackendClient
from storefront.backend.types import AuthUser


class Profile(BaseModel):
    """Application-level user record, keyed by the auth user id."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    email: str | None = None
    full_name: str = ""
    phone: str | None = None
    role: Role = Role.CUSTOMER
    created_at: str | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, value: Any) -> Role:
        return value if isinstance(value, Role) else parse_role(value)


def role_hint(user: AuthUser) -> Role:
    """
    Role for a profile that has to be synthesized.

    ``app_metadata`` is issued by the provider and may grant admin.
    ``user_metadata`` is user-editable and may only pick a self-assignable role.
    """
    if parse_role(user.app_metadata.get("role")) is Role.ADMIN:
        return Role.ADMIN
    hinted = parse_role(user.user_metadata.get("role"))
    return hinted if hinted in SELF_ASSIGNABLE_ROLES else Role.CUSTOMER


def synthesize_profile(user: AuthUser) -> Profile:
    """Build a profile from the auth user when the profile row is missing."""
    metadata = user.user_metadata
    full_name = metadata.get("full_name") or metadata.get("name")
    if not full_name and user.email:
        full_name = user.email.split("@", 1)[0]
    return Profile(
        id=user.id,
        email=user.email,
        full_name=full_name or "",
        phone=metadata.get("phone"),
        role=role_hint(user),
        created_at=user.created_at or datetime.now(timezone.utc).isoformat(),
    )


class ProfileResolver:
    """
    Resolves profiles with at most one resolution in flight per user id.

    Concurrent callers for the same id share the in-flight task, so a
    missing profile triggers a single insert attempt.
    """

    def __init__(self, backend: BackendClient, table_name: str = "profiles"):
        self._table = backend.table(table_name)
        self._in_flight: dict[str, asyncio.Task] = {}

        # Metrics
        self._resolutions = 0
        self._insert_attempts = 0
        self._insert_failures = 0
        self._fetch_failures = 0

    async def resolve_profile(self, user: AuthUser) -> Profile | None:
        """
        Profile for ``user``, or None if the profile store could not be queried.
        """
        task = self._in_flight.get(user.id)
        if task is None:
            task = asyncio.create_task(self._resolve(user), name=f"resolve-profile-{user.id}")
            self._in_flight[user.id] = task
            task.add_done_callback(lambda done, user_id=user.id: self._forget(user_id, done))
        # Shielded so one cancelled caller does not cancel the shared resolution
        return await asyncio.shield(task)

    def _forget(self, user_id: str, task: asyncio.Task) -> None:
        if self._in_flight.get(user_id) is task:
            del self._in_flight[user_id]

    def in_flight(self, user_id: str) -> bool:
        return user_id in self._in_flight

    async def _resolve(self, user: AuthUser) -> Profile | None:
        self._resolutions += 1
        try:
            profile = await self._fetch(user.id)
        except ProfileFetchError:
            self._fetch_failures += 1
            return None

        if profile is not None:
            return profile

        profile = synthesize_profile(user)
        await self._persist(profile)
        return profile

    async def _fetch(self, user_id: str) -> Profile | None:
        result = await self._table.select_one(id=user_id)
        if result.error:
            raise ProfileFetchError(
                user_id=mask_user_id(user_id),
                reason=result.error.message,
                status=result.error.status,
            )
        if result.data is None:
            return None
        try:
            return Profile.model_validate(result.data)
        except ValueError as e:
            raise ProfileFetchError(user_id=mask_user_id(user_id), reason=f"malformed row: {e}") from e

    async def _persist(self, profile: Profile) -> None:
        self._insert_attempts += 1
        result = await self._table.insert(profile.model_dump(mode="json"))
        if result.error:
            self._insert_failures += 1
            logger.warning(
                "Could not persist synthesized profile, using it in memory",
                user_id=mask_user_id(profile.id),
                status=result.error.status,
                error=result.error.message,
            )
            return
        logger.info(
            "Created missing profile",
            user_id=mask_user_id(profile.id),
            email=mask_email(profile.email),
            role=profile.role.value,
        )

    def get_stats(self) -> dict[str, int]:
        return {
            "in_flight": len(self._in_flight),
            "resolutions": self._resolutions,
            "insert_attempts": self._insert_attempts,
            "insert_failures": self._insert_failures,
            "fetch_failures": self._fetch_failures,
        }

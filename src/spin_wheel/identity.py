#!/usr/bin/env python3
"""Identity resolution for the connected social session.

The live session context is authoritative: it decides whether there is a user
at all and its fields always win. The directory only fills gaps, and any
directory failure degrades to a session-only record instead of an error.
"""

import asyncio
import logging
from typing import Any

import httpx

from .errors import NoSession
from .models import (
    DirectoryProfile,
    IdentityRecord,
    IdentitySource,
    SessionContext,
    SessionUser,
)
from .utils.directory_client import DirectoryClient

# Get logger for this module
logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("username", "display_name", "avatar_url", "bio")


def merge_identity(user: SessionUser, profile: DirectoryProfile | None) -> IdentityRecord:
    """Merge a live session user with an optional directory profile.

    Session fields win; directory fields only fill fields the session lacks.
    The source is SESSION when the directory added nothing, DIRECTORY when the
    session had no profile fields and the directory supplied some, and MERGED
    when both contributed.
    """
    values: dict[str, str | None] = {}
    from_session = False
    from_directory = False

    for name in PROFILE_FIELDS:
        live = getattr(user, name)
        cached = getattr(profile, name) if profile is not None else None

        if live is not None:
            values[name] = live
            from_session = True
        elif cached is not None:
            values[name] = cached
            from_directory = True
        else:
            values[name] = None

    if not from_directory:
        source = IdentitySource.SESSION
    elif from_session:
        source = IdentitySource.MERGED
    else:
        source = IdentitySource.DIRECTORY

    return IdentityRecord(fid=user.fid, source=source, **values)


class IdentityResolver:
    """Resolves and caches the social identity for the session lifetime."""

    def __init__(self, directory: DirectoryClient | None = None, timeout: float = 5.0) -> None:
        """
        Initialize the resolver.

        :param directory: Directory client, or None to resolve from the session only
        :param timeout: Upper bound in seconds for the directory enrichment call
        """
        self.directory = directory
        self.timeout = timeout

        self._record: IdentityRecord | None = None
        self._checked = False
        self._lock = asyncio.Lock()

    @property
    def record(self) -> IdentityRecord | None:
        """Cached identity, or None before the first successful resolve."""
        return self._record

    @property
    def checked(self) -> bool:
        """Whether resolve() has run since the last reset, anonymous or not."""
        return self._checked

    async def resolve(self, context: SessionContext | Any | None) -> IdentityRecord:
        """
        Resolve the identity for a session context.

        :param context: A SessionContext, a raw host payload, or None
        :return: The identity record, from cache when the same user is already resolved
        :raises NoSession: There is no context, or it carries no usable user id
        """
        if not isinstance(context, SessionContext):
            context = SessionContext.from_payload(context)

        async with self._lock:
            self._checked = True

            if context is None or context.user is None:
                logger.info("No social session; continuing as anonymous")
                raise NoSession()

            user = context.user
            if self._record is not None:
                if self._record.fid == user.fid:
                    return self._record
                logger.info(f"Session user changed from fid {self._record.fid} to {user.fid}")

            profile = await self._enrich(user.fid)
            record = merge_identity(user, profile)
            self._record = record

            logger.info(f"Resolved identity: {record}")
            return record

    async def _enrich(self, fid: int) -> DirectoryProfile | None:
        """Best-effort directory lookup; every failure maps to None."""
        if self.directory is None:
            return None

        try:
            return await asyncio.wait_for(self.directory.lookup(fid), timeout=self.timeout)
        except (TimeoutError, httpx.TimeoutException):
            logger.warning(f"Directory lookup for fid {fid} timed out after {self.timeout}s")
        except httpx.HTTPStatusError as e:
            logger.warning(f"Directory lookup for fid {fid} returned {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"Directory lookup for fid {fid} failed: {e}")
        except ValueError as e:
            logger.warning(f"Directory returned a malformed profile for fid {fid}: {e}")
        return None

    def reset(self) -> None:
        """Drop the cached identity (full app reset)."""
        self._record = None
        self._checked = False

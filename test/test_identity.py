#!/usr/bin/env python3
"""Unit tests for identity resolution and the directory client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from spin_wheel.errors import NoSession
from spin_wheel.identity import IdentityResolver, merge_identity
from spin_wheel.models import (
    DirectoryProfile,
    IdentitySource,
    SessionContext,
    SessionUser,
)
from spin_wheel.utils.directory_client import DirectoryClient


def directory_returning(profile=None, side_effect=None):
    directory = MagicMock(spec=DirectoryClient)
    directory.lookup = AsyncMock(return_value=profile, side_effect=side_effect)
    return directory


class TestSessionContext:
    """Tests for mapping host payloads at the boundary."""

    def test_none_payload(self):
        assert SessionContext.from_payload(None) is None

    @pytest.mark.parametrize("payload", [
        {},
        {"user": None},
        {"user": {}},
        {"user": {"fid": 0}},
        {"user": {"fid": -4}},
        {"user": {"fid": True}},
        {"user": {"fid": "abc"}},
        "not-a-context",
    ])
    def test_payload_without_usable_id(self, payload):
        assert SessionContext.from_payload(payload).user is None

    def test_full_payload(self):
        context = SessionContext.from_payload({
            "user": {
                "fid": 190522,
                "username": "alice",
                "displayName": "Alice",
                "pfpUrl": "https://img.example/alice.png",
                "bio": "  spins a lot  ",
            }
        })

        assert context.user == SessionUser(
            fid=190522,
            username="alice",
            display_name="Alice",
            avatar_url="https://img.example/alice.png",
            bio="spins a lot"
        )

    def test_id_alias_and_digit_string(self):
        context = SessionContext.from_payload({"user": {"id": "190522"}})
        assert context.user.fid == 190522

    def test_object_payload(self):
        """Host SDK objects expose attributes instead of keys."""
        class User:
            fid = 7
            username = "bob"
            displayName = ""

        class Context:
            user = User()

        context = SessionContext.from_payload(Context())

        assert context.user.fid == 7
        assert context.user.username == "bob"
        assert context.user.display_name is None

    def test_non_string_fields_dropped(self):
        context = SessionContext.from_payload({"user": {"fid": 1, "username": 42, "bio": ["x"]}})

        assert context.user.username is None
        assert context.user.bio is None


class TestMergeIdentity:
    """Tests for session/directory merge precedence."""

    def test_session_wins_directory_fills_gaps(self):
        user = SessionUser(fid=1, display_name="A")
        profile = DirectoryProfile(display_name="B", bio="C")

        record = merge_identity(user, profile)

        assert record.display_name == "A"
        assert record.bio == "C"
        assert record.username is None
        assert record.source is IdentitySource.MERGED

    def test_no_profile_is_session_source(self):
        record = merge_identity(SessionUser(fid=1, username="alice"), None)

        assert record.source is IdentitySource.SESSION
        assert record.username == "alice"

    def test_directory_adding_nothing_is_session_source(self):
        user = SessionUser(fid=1, username="alice", bio="live")
        profile = DirectoryProfile(username="old-alice", bio="cached")

        record = merge_identity(user, profile)

        assert record.source is IdentitySource.SESSION
        assert (record.username, record.bio) == ("alice", "live")

    def test_bare_id_enriched_is_directory_source(self):
        record = merge_identity(SessionUser(fid=1), DirectoryProfile(username="alice"))

        assert record.source is IdentitySource.DIRECTORY
        assert record.username == "alice"
        assert record.fid == 1


class TestIdentityResolver:
    """Tests for resolution, fallback and caching."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("context", [None, {}, {"user": {"username": "no-id"}}])
    async def test_no_session(self, context):
        directory = directory_returning(DirectoryProfile(username="x"))
        resolver = IdentityResolver(directory)

        assert not resolver.checked
        with pytest.raises(NoSession):
            await resolver.resolve(context)

        assert resolver.checked
        assert resolver.record is None
        directory.lookup.assert_not_called()

    @pytest.mark.asyncio
    async def test_merge_precedence(self):
        directory = directory_returning(DirectoryProfile(display_name="B", bio="C"))
        resolver = IdentityResolver(directory)

        record = await resolver.resolve({"user": {"fid": 5, "displayName": "A"}})

        assert record.display_name == "A"
        assert record.bio == "C"
        directory.lookup.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_directory_timeout_degrades_to_session(self):
        async def hang(fid):
            await asyncio.sleep(10)

        directory = directory_returning(side_effect=hang)
        resolver = IdentityResolver(directory, timeout=0.01)

        record = await resolver.resolve({"user": {"fid": 190522}})

        assert record.fid == 190522
        assert record.username is None
        assert record.source is IdentitySource.SESSION

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        httpx.ConnectError("refused"),
        httpx.ReadTimeout("slow"),
        ValueError("Directory payload must be an object"),
    ])
    async def test_directory_errors_are_swallowed(self, error):
        resolver = IdentityResolver(directory_returning(side_effect=error))

        record = await resolver.resolve({"user": {"fid": 3, "username": "carol"}})

        assert record.username == "carol"
        assert record.source is IdentitySource.SESSION

    @pytest.mark.asyncio
    async def test_without_directory(self):
        resolver = IdentityResolver(None)

        record = await resolver.resolve(SessionContext(user=SessionUser(fid=9)))

        assert record.fid == 9
        assert record.source is IdentitySource.SESSION

    @pytest.mark.asyncio
    async def test_cached_for_same_user(self):
        directory = directory_returning(DirectoryProfile(bio="C"))
        resolver = IdentityResolver(directory)

        first = await resolver.resolve({"user": {"fid": 5}})
        second = await resolver.resolve({"user": {"fid": 5}})

        assert second is first
        assert directory.lookup.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_resolves_share_one_lookup(self):
        directory = directory_returning(DirectoryProfile(bio="C"))
        resolver = IdentityResolver(directory)

        first, second = await asyncio.gather(
            resolver.resolve({"user": {"fid": 5}}),
            resolver.resolve({"user": {"fid": 5}}),
        )

        assert first is second
        assert directory.lookup.await_count == 1

    @pytest.mark.asyncio
    async def test_different_user_resolves_again(self):
        directory = directory_returning(DirectoryProfile())
        resolver = IdentityResolver(directory)

        await resolver.resolve({"user": {"fid": 5}})
        record = await resolver.resolve({"user": {"fid": 6}})

        assert record.fid == 6
        assert directory.lookup.await_count == 2

    @pytest.mark.asyncio
    async def test_lost_session_keeps_cached_identity(self):
        directory = directory_returning(DirectoryProfile(bio="spins daily"))
        resolver = IdentityResolver(directory)
        record = await resolver.resolve({"user": {"fid": 7, "username": "bob"}})

        with pytest.raises(NoSession):
            await resolver.resolve(None)

        assert resolver.checked
        assert resolver.record is record
        assert await resolver.resolve({"user": {"fid": 7}}) is record
        assert directory.lookup.await_count == 1

        resolver.reset()

        assert resolver.record is None
        assert not resolver.checked

    @pytest.mark.asyncio
    async def test_reset(self):
        directory = directory_returning(DirectoryProfile())
        resolver = IdentityResolver(directory)
        await resolver.resolve({"user": {"fid": 5}})

        resolver.reset()

        assert resolver.record is None
        assert not resolver.checked
        await resolver.resolve({"user": {"fid": 5}})
        assert directory.lookup.await_count == 2


class TestDirectoryClient:
    """Tests for the directory HTTP client."""

    @pytest.mark.asyncio
    async def test_lookup(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={
                "username": "alice",
                "displayName": "Alice",
                "avatarUrl": "https://img.example/a.png",
                "bio": "",
            })

        client = DirectoryClient("https://directory.example/api/", transport=httpx.MockTransport(handler))
        profile = await client.lookup(190522)

        assert str(seen[0].url) == "https://directory.example/api/identity/190522"
        assert seen[0].method == "GET"
        assert profile == DirectoryProfile(
            username="alice",
            display_name="Alice",
            avatar_url="https://img.example/a.png",
            bio=None
        )

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        client = DirectoryClient(
            "https://directory.example",
            transport=httpx.MockTransport(lambda request: httpx.Response(404, json={"error": "not found"}))
        )

        with pytest.raises(httpx.HTTPStatusError):
            await client.lookup(1)

    @pytest.mark.asyncio
    async def test_malformed_body_raises_value_error(self):
        client = DirectoryClient(
            "https://directory.example",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=["not", "an", "object"]))
        )

        with pytest.raises(ValueError):
            await client.lookup(1)

    @pytest.mark.asyncio
    async def test_non_json_body_raises_value_error(self):
        client = DirectoryClient(
            "https://directory.example",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        )

        with pytest.raises(ValueError):
            await client.lookup(1)

    def test_requires_base_url(self):
        with pytest.raises(ValueError, match="Directory base URL is required"):
            DirectoryClient("")

    @pytest.mark.asyncio
    async def test_resolver_swallows_http_status(self):
        """End to end: a 500 from the directory still resolves from the session."""
        client = DirectoryClient(
            "https://directory.example",
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        resolver = IdentityResolver(client)

        record = await resolver.resolve({"user": {"fid": 190522}})

        assert record.source is IdentitySource.SESSION
        assert record.username is None

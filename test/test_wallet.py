#!/usr/bin/env python3
"""Unit tests for the wallet session provider."""

from unittest.mock import MagicMock

import pytest
from eth_account import Account

from spin_wheel.wallet import WalletSession, WalletSessionProvider, WalletStatus

from conftest import CHAIN_ID, OTHER_KEY, PLAYER_KEY


class TestWalletSession:
    """Tests for session snapshot classification."""

    def test_empty_session_is_disconnected(self):
        assert WalletSession().status(CHAIN_ID) is WalletStatus.DISCONNECTED

    def test_wrong_network_is_distinct_from_disconnected(self, player):
        session = WalletSession(address=player.address, chain_id=1, connected=True, signer=player)
        assert session.status(CHAIN_ID) is WalletStatus.WRONG_NETWORK

    def test_connected_on_expected_chain(self, player):
        session = WalletSession(address=player.address, chain_id=CHAIN_ID, connected=True, signer=player)
        assert session.status(CHAIN_ID) is WalletStatus.CONNECTED

    def test_no_signer_is_disconnected(self, player):
        session = WalletSession(address=player.address, chain_id=CHAIN_ID, connected=True)
        assert session.status(CHAIN_ID) is WalletStatus.DISCONNECTED

    def test_signer_hidden_from_repr(self, player):
        session = WalletSession(address=player.address, chain_id=CHAIN_ID, connected=True, signer=player)
        assert "signer" not in repr(session)


class TestWalletSessionProvider:
    """Tests for provider events and snapshots."""

    def test_starts_disconnected(self):
        provider = WalletSessionProvider(expected_chain_id=CHAIN_ID)

        assert provider.current() == WalletSession()
        assert provider.status() is WalletStatus.DISCONNECTED

    def test_from_private_key(self):
        provider = WalletSessionProvider.from_private_key(PLAYER_KEY, chain_id=CHAIN_ID, expected_chain_id=CHAIN_ID)
        session = provider.current()

        assert session.connected
        assert session.address == Account.from_key(PLAYER_KEY).address
        assert provider.status() is WalletStatus.CONNECTED

    def test_listeners_get_every_change(self, player):
        provider = WalletSessionProvider(expected_chain_id=CHAIN_ID)
        listener = MagicMock()
        provider.on_change(listener)

        provider.connect(player, CHAIN_ID)
        provider.switch_chain(1)
        provider.switch_account(Account.from_key(OTHER_KEY))
        provider.disconnect()

        assert listener.call_count == 4
        sessions = [call.args[0] for call in listener.call_args_list]
        assert sessions[0].address == player.address
        assert sessions[1].chain_id == 1
        assert sessions[2].address == Account.from_key(OTHER_KEY).address
        assert sessions[2].chain_id == 1
        assert not sessions[3].connected

    def test_snapshots_are_not_mutated(self, wallet):
        """A snapshot taken before a switch keeps the old values."""
        before = wallet.current()
        wallet.switch_chain(1)

        assert before.chain_id == CHAIN_ID
        assert wallet.current().chain_id == 1
        assert wallet.status() is WalletStatus.WRONG_NETWORK

    def test_unsubscribe(self, player):
        provider = WalletSessionProvider()
        listener = MagicMock()
        unsubscribe = provider.on_change(listener)

        unsubscribe()
        provider.connect(player, CHAIN_ID)

        listener.assert_not_called()

    def test_failing_listener_does_not_block_others(self, player):
        provider = WalletSessionProvider()
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        provider.on_change(broken)
        provider.on_change(healthy)

        provider.connect(player, CHAIN_ID)

        healthy.assert_called_once()

    def test_switch_requires_connection(self, player):
        provider = WalletSessionProvider()

        with pytest.raises(RuntimeError):
            provider.switch_chain(1)
        with pytest.raises(RuntimeError):
            provider.switch_account(player)

    def test_no_expected_chain_accepts_any(self, player):
        provider = WalletSessionProvider()
        provider.connect(player, 1)

        assert provider.status() is WalletStatus.CONNECTED

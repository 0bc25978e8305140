"""PayClientFactory 测试"""

import threading
from unittest.mock import patch

import pytest

from payclient.core.constants import ChannelCode
from payclient.core.exceptions import ConfigException, UnknownChannelException
from payclient.core.settings import Settings
from payclient.factory import PayClientFactory
from payclient.providers.xendit import XenditPayClient

XENDIT_CONFIG = {"api_key": "xnd_test", "callback_token": "cb"}


@pytest.fixture
def factory(settings):
    return PayClientFactory(settings=settings)


class TestCreateOrUpdateClient:
    def test_create_client(self, factory):
        client = factory.create_or_update_client(ChannelCode.xendit_invoice, XENDIT_CONFIG)
        assert isinstance(client, XenditPayClient)
        assert not client.initialized

    def test_invalid_config_raises(self, factory):
        with pytest.raises(ConfigException):
            factory.create_or_update_client(ChannelCode.xendit_invoice, {"api_key": ""})

    def test_unknown_channel_raises(self, factory):
        with pytest.raises(UnknownChannelException):
            factory.create_or_update_client("wx_pub", XENDIT_CONFIG)

    def test_same_config_keeps_client(self, factory):
        first = factory.create_or_update_client(ChannelCode.xendit_invoice, XENDIT_CONFIG)
        second = factory.create_or_update_client(ChannelCode.xendit_invoice, dict(XENDIT_CONFIG))
        assert first is second

    def test_changed_config_refreshes_client(self, factory):
        client = factory.create_or_update_client(ChannelCode.xendit_invoice, XENDIT_CONFIG)
        factory.get_client(ChannelCode.xendit_invoice)

        updated = factory.create_or_update_client(
            ChannelCode.xendit_invoice, {**XENDIT_CONFIG, "api_key": "xnd_new"}
        )
        assert updated is client
        assert updated.config.api_key == "xnd_new"
        assert updated.initialized

    def test_invalid_update_keeps_previous_config(self, factory):
        client = factory.create_or_update_client(ChannelCode.xendit_invoice, XENDIT_CONFIG)
        with pytest.raises(ConfigException):
            factory.create_or_update_client(ChannelCode.xendit_invoice, {"api_key": ""})
        assert client.config.api_key == "xnd_test"

    def test_update_before_first_get_stays_lazy(self, factory):
        client = factory.create_or_update_client(ChannelCode.xendit_invoice, XENDIT_CONFIG)
        factory.create_or_update_client(
            ChannelCode.xendit_invoice, {**XENDIT_CONFIG, "api_key": "xnd_new"}
        )
        assert client.config.api_key == "xnd_new"
        assert not client.initialized


class TestGetClient:
    def test_unconfigured_channel_raises(self, factory):
        with pytest.raises(UnknownChannelException):
            factory.get_client(ChannelCode.xendit_card)

    def test_first_get_initializes(self, factory):
        factory.create_or_update_client(ChannelCode.xendit_invoice, XENDIT_CONFIG)
        client = factory.get_client(ChannelCode.xendit_invoice)
        assert client.initialized

    def test_concurrent_get_initializes_once(self, factory):
        factory.create_or_update_client(ChannelCode.xendit_invoice, XENDIT_CONFIG)
        results = []

        with patch.object(
            XenditPayClient, "do_init", autospec=True, side_effect=lambda self: None
        ) as do_init:
            threads = [
                threading.Thread(
                    target=lambda: results.append(factory.get_client(ChannelCode.xendit_invoice))
                )
                for _ in range(20)
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert do_init.call_count == 1
        assert len({id(c) for c in results}) == 1


class TestFromSettings:
    def test_loads_configured_channels(self):
        settings = Settings(
            _env_file=None,
            xendit_api_key="xnd_test",
            ezeelink_api_key="ez-key",
            ezeelink_api_secret="ez-secret",
            ezeelink_base_url="https://ezeelink.example",
            ezeelink_partner_id="P1",
        )
        factory = PayClientFactory.from_settings(settings)

        codes = set(factory.codes())
        assert ChannelCode.xendit_invoice in codes
        assert ChannelCode.xendit_va_bca in codes
        assert ChannelCode.ezeelink_qr in codes
        assert ChannelCode.alipay_qr not in codes

    def test_no_credentials_no_channels(self):
        factory = PayClientFactory.from_settings(Settings(_env_file=None))
        assert factory.codes() == []

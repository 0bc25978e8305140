"""渠道注册表测试"""

import pytest

from payclient.core.constants import ChannelCode
from payclient.core.exceptions import DuplicateChannelException, UnknownChannelException
from payclient.providers.alipay import AlipayPayClient
from payclient.providers.ezeelink import EzeelinkPayClient, EzeelinkPayClientConfig
from payclient.providers.xendit import XenditPayClient
from payclient.registry import ChannelDescriptor, ChannelRegistry, default_registry


class TestChannelRegistry:
    def test_register_and_resolve(self):
        registry = ChannelRegistry()
        descriptor = ChannelDescriptor(
            ChannelCode.ezeelink_qr, "Ezeelink", EzeelinkPayClient, EzeelinkPayClientConfig
        )
        registry.register(descriptor)

        assert registry.resolve(ChannelCode.ezeelink_qr) is descriptor
        assert registry.resolve("ezeelink_qr") is descriptor
        assert registry.codes() == [ChannelCode.ezeelink_qr]

    def test_duplicate_register_raises(self):
        registry = ChannelRegistry()
        descriptor = ChannelDescriptor(
            ChannelCode.ezeelink_qr, "Ezeelink", EzeelinkPayClient, EzeelinkPayClientConfig
        )
        registry.register(descriptor)
        with pytest.raises(DuplicateChannelException):
            registry.register(descriptor)

    def test_resolve_unregistered_code_raises(self):
        registry = ChannelRegistry()
        with pytest.raises(UnknownChannelException):
            registry.resolve(ChannelCode.alipay_qr)

    def test_resolve_unknown_string_raises(self):
        with pytest.raises(UnknownChannelException):
            default_registry().resolve("wx_pub")


class TestDefaultRegistry:
    def test_contains_every_builtin_channel(self):
        registry = default_registry()
        assert set(registry.codes()) == set(ChannelCode)

    def test_client_classes(self):
        registry = default_registry()
        assert registry.resolve(ChannelCode.alipay_pc).client_class is AlipayPayClient
        assert registry.resolve(ChannelCode.xendit_va_bca).client_class is XenditPayClient
        assert registry.resolve(ChannelCode.ezeelink_qr).client_class is EzeelinkPayClient

    def test_descriptor_is_immutable(self):
        descriptor = default_registry().resolve(ChannelCode.alipay_qr)
        with pytest.raises(AttributeError):
            descriptor.display_name = "x"

"""
支付渠道注册表

渠道编码 -> (客户端类, 配置类)，启动时注册，运行时只读查找
"""

import threading
from dataclasses import dataclass

from payclient.core.constants import ChannelCode
from payclient.core.exceptions import DuplicateChannelException, UnknownChannelException
from payclient.providers.alipay import AlipayPayClient, AlipayPayClientConfig
from payclient.providers.base import AbstractPayClient, PayClientConfig
from payclient.providers.ezeelink import EzeelinkPayClient, EzeelinkPayClientConfig
from payclient.providers.xendit import XenditPayClient, XenditPayClientConfig


@dataclass(frozen=True)
class ChannelDescriptor:
    """渠道描述"""

    code: ChannelCode
    display_name: str
    client_class: type[AbstractPayClient]
    config_class: type[PayClientConfig]


class ChannelRegistry:
    def __init__(self):
        self._channels: dict[ChannelCode, ChannelDescriptor] = {}
        self._lock = threading.Lock()

    def register(self, descriptor: ChannelDescriptor) -> None:
        with self._lock:
            if descriptor.code in self._channels:
                raise DuplicateChannelException(
                    message=f"支付渠道({descriptor.code.value}) 已注册",
                    details={"channel_code": descriptor.code.value},
                )
            self._channels[descriptor.code] = descriptor

    def resolve(self, code: ChannelCode | str) -> ChannelDescriptor:
        try:
            return self._channels[ChannelCode(code)]
        except (KeyError, ValueError):
            raise UnknownChannelException(
                message=f"支付渠道({code}) 不存在",
                details={"channel_code": str(code)},
            )

    def codes(self) -> list[ChannelCode]:
        return list(self._channels)

    def __contains__(self, code: object) -> bool:
        return code in self._channels


# 内置渠道
BUILTIN_CHANNELS = [
    (ChannelCode.alipay_qr, "支付宝扫码支付", AlipayPayClient, AlipayPayClientConfig),
    (ChannelCode.alipay_pc, "支付宝电脑网站支付", AlipayPayClient, AlipayPayClientConfig),
    (ChannelCode.xendit_invoice, "Xendit Invoice", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_card, "Xendit 银行卡", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_ewallet_ovo, "Xendit OVO", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_ewallet_dana, "Xendit DANA", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_va_bca, "Xendit BCA 虚拟账号", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_va_bni, "Xendit BNI 虚拟账号", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_va_bri, "Xendit BRI 虚拟账号", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_va_bsi, "Xendit BSI 虚拟账号", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_va_bjb, "Xendit BJB 虚拟账号", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_va_mandiri, "Xendit Mandiri 虚拟账号", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.xendit_va_permata, "Xendit Permata 虚拟账号", XenditPayClient, XenditPayClientConfig),
    (ChannelCode.ezeelink_qr, "Ezeelink QRIS", EzeelinkPayClient, EzeelinkPayClientConfig),
]


def default_registry() -> ChannelRegistry:
    """包含所有内置渠道的注册表"""
    registry = ChannelRegistry()
    for code, display_name, client_class, config_class in BUILTIN_CHANNELS:
        registry.register(ChannelDescriptor(code, display_name, client_class, config_class))
    return registry

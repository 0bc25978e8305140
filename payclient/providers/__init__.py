"""
支付渠道适配器
"""

from .alipay import AlipayPayClient, AlipayPayClientConfig
from .base import AbstractPayClient, PayClient, PayClientConfig
from .ezeelink import EzeelinkPayClient, EzeelinkPayClientConfig
from .xendit import XenditPayClient, XenditPayClientConfig

__all__ = [
    "PayClient",
    "AbstractPayClient",
    "PayClientConfig",
    "AlipayPayClient",
    "AlipayPayClientConfig",
    "XenditPayClient",
    "XenditPayClientConfig",
    "EzeelinkPayClient",
    "EzeelinkPayClientConfig",
]

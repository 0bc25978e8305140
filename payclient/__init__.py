"""
多渠道统一支付客户端
"""

from payclient.core.constants import (
    ChannelCode,
    PayCapability,
    PayOrderDisplayMode,
    PayOrderStatus,
    PayRefundStatus,
    PayTransferStatus,
    PayTransferType,
)
from payclient.core.exceptions import PayClientException
from payclient.core.logging import configure_logging
from payclient.factory import PayClientFactory
from payclient.providers import AbstractPayClient, PayClient, PayClientConfig
from payclient.registry import ChannelDescriptor, ChannelRegistry, default_registry
from payclient.schemas import (
    PayOrderResp,
    PayOrderUnifiedReq,
    PayRefundResp,
    PayRefundUnifiedReq,
    PayTransferResp,
    PayTransferUnifiedReq,
    SimulatePayResp,
)

__version__ = "0.1.0"

__all__ = [
    "ChannelCode",
    "PayCapability",
    "PayOrderDisplayMode",
    "PayOrderStatus",
    "PayRefundStatus",
    "PayTransferStatus",
    "PayTransferType",
    "PayClientException",
    "configure_logging",
    "PayClientFactory",
    "PayClient",
    "AbstractPayClient",
    "PayClientConfig",
    "ChannelDescriptor",
    "ChannelRegistry",
    "default_registry",
    "PayOrderUnifiedReq",
    "PayOrderResp",
    "PayRefundUnifiedReq",
    "PayRefundResp",
    "PayTransferUnifiedReq",
    "PayTransferResp",
    "SimulatePayResp",
]

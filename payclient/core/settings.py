"""
应用配置管理（pydantic-settings）
"""

from __future__ import annotations
from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from payclient.core.constants import ChannelCode


class Settings(BaseSettings):
    """应用配置（从环境变量加载）"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # 通用配置
    log_level: str = "INFO"
    default_currency: str = "IDR"

    # HTTP 调用配置
    http_timeout_seconds: float = Field(default=30.0, gt=0)
    http_max_attempts: int = Field(default=3, ge=1, le=10)  # 含首次请求
    http_retry_wait_seconds: float = Field(default=0.5, ge=0)

    # 支付渠道配置（所有渠道配置均为可选，未配置的渠道不会被加载）
    ## alipay
    alipay_app_id: str = ""
    alipay_private_key: str = ""  # 应用私钥内容
    alipay_public_key: str = ""  # 支付宝公钥内容
    alipay_sandbox: bool = False

    ## xendit
    xendit_api_key: str = ""
    xendit_callback_token: str = ""
    xendit_base_url: str = "https://api.xendit.co"

    ## ezeelink
    ezeelink_base_url: str = ""
    ezeelink_api_key: str = ""
    ezeelink_api_secret: str = ""
    ezeelink_partner_id: str = ""
    ezeelink_sub_partner_id: str = ""
    ezeelink_expire_minutes: int = Field(default=15, ge=1, le=24 * 60)

    def channel_configs(self) -> dict[ChannelCode, dict[str, Any]]:
        """
        根据已配置的凭证生成各渠道的原始配置

        返回：{渠道编码: 配置字典}，配置字典由对应渠道的 PayClientConfig 校验
        """
        configs: dict[ChannelCode, dict[str, Any]] = {}

        if self.alipay_app_id:
            alipay = {
                "app_id": self.alipay_app_id,
                "private_key": self.alipay_private_key,
                "alipay_public_key": self.alipay_public_key,
                "sandbox": self.alipay_sandbox,
                "timeout_seconds": self.http_timeout_seconds,
            }
            for code in (ChannelCode.alipay_qr, ChannelCode.alipay_pc):
                configs[code] = dict(alipay)

        if self.xendit_api_key:
            xendit = {
                "api_key": self.xendit_api_key,
                "callback_token": self.xendit_callback_token,
                "base_url": self.xendit_base_url,
                "currency": self.default_currency,
            }
            for code in ChannelCode:
                if code.value.startswith("xendit_"):
                    configs[code] = dict(xendit)

        if self.ezeelink_api_key:
            configs[ChannelCode.ezeelink_qr] = {
                "base_url": self.ezeelink_base_url,
                "api_key": self.ezeelink_api_key,
                "api_secret": self.ezeelink_api_secret,
                "partner_id": self.ezeelink_partner_id,
                "sub_partner_id": self.ezeelink_sub_partner_id,
                "expire_minutes": self.ezeelink_expire_minutes,
                "currency": self.default_currency,
            }

        return configs


@lru_cache
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()

"""
统一异常定义

渠道侧的业务失败不会抛出异常，而是编码在响应 DTO 中（status + channel_error_code/msg）。
只有编程错误、配置错误与网络传输故障才会以下列异常的形式抛给调用方。
"""

from typing import Any


class PayClientException(Exception):
    """支付客户端基础异常"""

    def __init__(
        self,
        message: str,
        code: int = 1000,
        details: Any = None,
    ):
        self.message = message
        self.code = code  # 业务错误码
        self.details = details
        super().__init__(self.message)


class ConfigException(PayClientException):
    """渠道配置错误（启动/初始化时快速失败）"""

    def __init__(
        self, message: str = "渠道配置不正确", code: int = 1001, details: Any = None
    ):
        super().__init__(message=message, code=code, details=details)


class UnknownChannelException(PayClientException):
    """渠道不存在"""

    def __init__(
        self, message: str = "支付渠道不存在", code: int = 1002, details: Any = None
    ):
        super().__init__(message=message, code=code, details=details)


class DuplicateChannelException(PayClientException):
    """渠道重复注册"""

    def __init__(
        self, message: str = "支付渠道已注册", code: int = 1003, details: Any = None
    ):
        super().__init__(message=message, code=code, details=details)


class NotInitializedException(PayClientException):
    """客户端未初始化"""

    def __init__(
        self, message: str = "支付客户端未初始化", code: int = 1004, details: Any = None
    ):
        super().__init__(message=message, code=code, details=details)


class UnsupportedOperationException(PayClientException):
    """渠道不支持该操作"""

    def __init__(
        self, message: str = "支付渠道不支持该操作", code: int = 1005, details: Any = None
    ):
        super().__init__(message=message, code=code, details=details)


class ValidationException(PayClientException):
    """请求参数校验失败（发起网络请求之前）"""

    def __init__(
        self, message: str = "请求参数不正确", code: int = 1006, details: Any = None
    ):
        super().__init__(message=message, code=code, details=details)


class InvalidNotifyException(PayClientException):
    """回调通知验签或解析失败"""

    def __init__(
        self, message: str = "回调通知不合法", code: int = 1007, details: Any = None
    ):
        super().__init__(message=message, code=code, details=details)


class InvokerException(PayClientException):
    """调用渠道时发生网络传输故障（超时、连接失败），调用方可重试或告警"""

    def __init__(
        self, message: str = "调用支付渠道失败", code: int = 1008, details: Any = None
    ):
        super().__init__(message=message, code=code, details=details)


class ChannelResponseException(PayClientException):
    """渠道返回了无法处理的响应"""

    def __init__(
        self, message: str = "支付渠道响应异常", code: int = 1009, details: Any = None
    ):
        super().__init__(message=message, code=code, details=details)

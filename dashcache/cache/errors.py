"""缓存层异常定义

- InvalidInput: 调用方传入的标识或参数不合法，属于调用方错误，不重试
- StorageUnavailable: 持久化层不可达或返回错误，由 CacheService 降级处理
- StorageNotConfigured: 缓存未启用/未配置，与运行时故障区分开
"""


class CacheError(Exception):
    """缓存层异常基类"""


class InvalidInput(CacheError, ValueError):
    """指纹构造或写入参数不合法"""


class StorageUnavailable(CacheError):
    """存储层不可用（连接失败、锁超时、SQL 错误等）"""


class StorageNotConfigured(StorageUnavailable):
    """缓存存储未配置或已禁用"""

"""错误分类"""


class UpstreamUnavailable(Exception):
    """上游数据源不可用 (网络错误 / 非 200 响应 / 无法解析)"""

    def __init__(self, source: str, message: str, status: int | None = None):
        self.source = source
        self.message = message
        self.status = status
        super().__init__(f"{source}: {message}")


class MalformedInput(Exception):
    """请求参数格式错误, 在路由层直接返回 400"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

"""
错误分类：决定工作流引擎是否重试、HTTP 层返回什么状态码。

- PermanentError 及其子类：不重试，直接让当前步骤失败；
- TransientServiceError：LLM / 存储暂不可用，由引擎按步骤重试策略重试；
- 单条职位分析失败属于「尽力而为」，在阶段内部吞掉并记录日志，不会走到这里。
"""


class HirepathError(Exception):
    """所有业务异常的基类。"""


class PermanentError(HirepathError):
    """不可重试的错误。"""


class NotFoundError(PermanentError):
    """文件、进度记录、工作流运行或结果不存在。"""


class SchemaViolationError(PermanentError):
    """模型输出或阶段间数据不符合声明的结构。"""


class AuthorizationError(PermanentError):
    """未登录，或读取了不属于自己的记录。"""


class WorkflowCanceled(PermanentError):
    """运行已被外部取消。"""


class TransientServiceError(HirepathError):
    """外部服务超时/不可用，可重试。"""


class QuotaExceededError(HirepathError):
    """本月求职次数已用完。"""

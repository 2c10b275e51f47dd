"""
结构化补全客户端：给定系统提示、输入内容与输出模型（Pydantic），返回符合该模型的结构化对象。

实现用 PydanticAI Agent（output_type 定义数据边界），模型通过 LiteLLM 统一切换
（openai/deepseek/anthropic 等，与 HIREPATH_DEFAULT_MODEL 一致）。

错误归类：
- 服务不可用 / 限流 / 超时 -> TransientServiceError（由工作流引擎重试）；
- 输出不符合模型 -> SchemaViolationError（不重试，当前阶段失败）。
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from hirepath.core.config import get_default_model
from hirepath.errors import PermanentError, SchemaViolationError, TransientServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# 429 与 5xx 视为可重试
_RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}


class StructuredCompletionClient(ABC):
    """结构化补全接口：阶段只依赖此接口，测试中替换为脚本化桩。"""

    @abstractmethod
    async def complete(self, system_prompt: str, user_content: str, output_type: type[T]) -> T:
        """返回 output_type 实例；失败抛 TransientServiceError 或 SchemaViolationError。"""
        ...


def _model(model_name: str | None = None):
    """LiteLLM 模型实例。"""
    from pydantic_ai_litellm import LiteLLMModel
    return LiteLLMModel(model_name=model_name or get_default_model())


def _transient_litellm_errors() -> tuple[type[BaseException], ...]:
    import litellm
    return (
        litellm.RateLimitError,
        litellm.ServiceUnavailableError,
        litellm.APIConnectionError,
        litellm.Timeout,
        litellm.InternalServerError,
    )


class PydanticAICompletionClient(StructuredCompletionClient):
    """PydanticAI + LiteLLM 实现；Agent 按 (输出模型, 系统提示) 懒加载复用。"""

    def __init__(self, model_name: str | None = None):
        self.model_name = model_name or get_default_model()
        self._agents: dict[tuple[type[BaseModel], str], Any] = {}

    def _agent(self, output_type: type[T], system_prompt: str):
        key = (output_type, system_prompt)
        if key not in self._agents:
            from pydantic_ai import Agent
            self._agents[key] = Agent(
                model=_model(self.model_name),
                output_type=output_type,
                system_prompt=system_prompt,
            )
        return self._agents[key]

    async def complete(self, system_prompt: str, user_content: str, output_type: type[T]) -> T:
        from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior

        agent = self._agent(output_type, system_prompt)
        try:
            result = await agent.run(user_content)
        except ModelHTTPError as e:
            if e.status_code in _RETRYABLE_STATUS:
                raise TransientServiceError(f"补全服务暂不可用（HTTP {e.status_code}）") from e
            raise PermanentError(f"补全服务拒绝请求（HTTP {e.status_code}）") from e
        except UnexpectedModelBehavior as e:
            raise SchemaViolationError(f"{output_type.__name__} 输出不符合结构: {e}") from e
        except ValidationError as e:
            raise SchemaViolationError(f"{output_type.__name__} 校验失败: {e}") from e
        except _transient_litellm_errors() as e:
            raise TransientServiceError(f"补全服务暂不可用: {type(e).__name__}") from e
        except (TimeoutError, ConnectionError) as e:
            raise TransientServiceError(f"补全服务连接失败: {type(e).__name__}") from e

        usage = result.usage()
        logger.info(
            "%s 补全完成，token 用量: total=%s",
            output_type.__name__,
            getattr(usage, "total_tokens", None),
        )
        output = result.output
        if not isinstance(output, output_type):
            raise SchemaViolationError(f"期望 {output_type.__name__}，实际 {type(output).__name__}")
        return output


_default_client: StructuredCompletionClient | None = None


def get_completion_client() -> StructuredCompletionClient:
    """默认客户端（懒加载）；测试与脚本可直接构造自己的实现注入编排器。"""
    global _default_client
    if _default_client is None:
        _default_client = PydanticAICompletionClient()
    return _default_client

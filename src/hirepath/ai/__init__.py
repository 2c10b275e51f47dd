# PydanticAI 类型安全的结构化补全（LiteLLM 统一模型）

from .completion import (
    PydanticAICompletionClient,
    StructuredCompletionClient,
    get_completion_client,
)

__all__ = [
    "PydanticAICompletionClient",
    "StructuredCompletionClient",
    "get_completion_client",
]

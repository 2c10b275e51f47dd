"""
tiktoken：控制送进补全的简历长度。

编码表首次使用时可能需要联网下载；拿不到编码表时按「约 2 字符 1 token」近似，
宁可多截一点也不让请求超长。
"""
from __future__ import annotations

import logging
from functools import lru_cache

import tiktoken

logger = logging.getLogger(__name__)

# 模型名片段 → 编码；未列出的按 cl100k_base 估算（DeepSeek 等 OpenAI 兼容模型）
_MODEL_ENCODING = (
    ("gpt-4o", "o200k_base"),
    ("o1", "o200k_base"),
    ("o3", "o200k_base"),
    ("gpt-4", "cl100k_base"),
    ("gpt-3.5", "cl100k_base"),
)
_DEFAULT_ENCODING = "cl100k_base"
_CHARS_PER_TOKEN = 2


def encoding_name(model_name: str | None) -> str:
    name = (model_name or "").strip().lower()
    for fragment, encoding in _MODEL_ENCODING:
        if fragment in name:
            return encoding
    return _DEFAULT_ENCODING


@lru_cache(maxsize=8)
def _encoding(name: str) -> tiktoken.Encoding | None:
    try:
        return tiktoken.get_encoding(name)
    except (ValueError, OSError) as e:
        logger.warning("tiktoken 编码表 %s 不可用，改用字符数近似: %s", name, e)
        return None


def count_tokens(text: str, model_name: str | None = None) -> int:
    if not text:
        return 0
    enc = _encoding(encoding_name(model_name))
    if enc is None:
        return max(1, len(text) // _CHARS_PER_TOKEN)
    return len(enc.encode(text))


def truncate_to_tokens(text: str, max_tokens: int, model_name: str | None = None) -> str:
    """超出 max_tokens 时截断，否则原样返回。"""
    if not text or max_tokens <= 0:
        return ""
    enc = _encoding(encoding_name(model_name))
    if enc is None:
        return text[: max_tokens * _CHARS_PER_TOKEN]
    tokens = enc.encode(text)
    return text if len(tokens) <= max_tokens else enc.decode(tokens[:max_tokens])

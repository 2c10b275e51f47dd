"""
简历文档 → Markdown（MarkItDown，支持 PDF、Word 等）。

两个入口：
- uri_to_markdown：解析简历阶段按下载地址（file:// 或 http(s)://）转换；
- stream_to_markdown：上传接口对文件内容做预检，确认能读出文字层。

扫描件只有图片层时结果为空字符串，调用方按「简历无文字内容」处理。
格式不支持或转换失败重试也不会成功，统一抛 SchemaViolationError（不重试）；
下载失败等网络错误原样抛出，由工作流引擎重试。
输出会压缩连续空行，避免 PDF 版式产生的大段空白占用 token。
"""
from __future__ import annotations

import re
from functools import lru_cache
from pathlib import PurePath
from typing import BinaryIO

from markitdown import (
    FileConversionException,
    MarkItDown,
    MissingDependencyException,
    StreamInfo,
    UnsupportedFormatException,
)

from hirepath.errors import SchemaViolationError

_BLANK_LINES = re.compile(r"\n[ \t]*(\n[ \t]*)+\n")

_UNCONVERTIBLE = (UnsupportedFormatException, FileConversionException, MissingDependencyException)


@lru_cache(maxsize=1)
def _converter() -> MarkItDown:
    return MarkItDown()


def tidy_markdown(markdown: str | None) -> str:
    """去掉首尾空白，连续多个空行压成一个。"""
    return _BLANK_LINES.sub("\n\n", markdown or "").strip()


def uri_to_markdown(uri: str) -> str:
    try:
        result = _converter().convert(uri)
    except _UNCONVERTIBLE as e:
        raise SchemaViolationError(f"简历文件无法转换: {type(e).__name__}: {e}") from e
    return tidy_markdown(result.markdown)


def stream_to_markdown(stream: BinaryIO, *, filename: str | None = None) -> str:
    """filename 用于推断文件类型（如 resume.pdf）；没有文件名时由 MarkItDown 自行探测。"""
    info = None
    if filename:
        info = StreamInfo(extension=PurePath(filename).suffix.lower() or None, filename=filename)
    try:
        result = _converter().convert_stream(stream, stream_info=info)
    except _UNCONVERTIBLE as e:
        raise SchemaViolationError(f"简历文件无法转换: {type(e).__name__}: {e}") from e
    return tidy_markdown(result.markdown)

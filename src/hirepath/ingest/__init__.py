# 简历文档转 Markdown（MarkItDown）

from .markitdown_convert import stream_to_markdown, tidy_markdown, uri_to_markdown

__all__ = ["stream_to_markdown", "tidy_markdown", "uri_to_markdown"]

"""
简历文件存储：上传时保存，解析简历阶段按 file_ref 解析出下载地址。

本地实现把文件存在 HIREPATH_FILE_STORAGE 下，文件名为随机 ID + 原扩展名；
配置 HIREPATH_FILE_BASE_URL 时返回 http(s) 地址，否则返回 file:// URI。
"""
from __future__ import annotations

import logging
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from hirepath.core.config import file_base_url, file_storage_root

logger = logging.getLogger(__name__)

_REF_PATTERN = re.compile(r"^[0-9a-f]{32}(\.[A-Za-z0-9]{1,8})?$")


class FileStorage(ABC):

    @abstractmethod
    def resolve_to_download_url(self, file_ref: str) -> str | None:
        """file_ref 不存在时返回 None。"""


class LocalFileStorage(FileStorage):

    def __init__(self, root: Path | str | None = None, base_url: str | None = None):
        self.root = Path(root) if root is not None else file_storage_root()
        self.base_url = base_url if base_url is not None else file_base_url()

    def save(self, content: bytes, filename: str | None = None) -> str:
        """保存上传内容，返回 file_ref。"""
        ext = Path(filename).suffix.lower() if filename else ""
        if ext and not re.fullmatch(r"\.[a-z0-9]{1,8}", ext):
            ext = ""
        file_ref = f"{uuid.uuid4().hex}{ext}"
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / file_ref).write_bytes(content)
        logger.info("保存简历文件 %s（%d 字节）", file_ref, len(content))
        return file_ref

    def resolve_to_download_url(self, file_ref: str) -> str | None:
        # 只接受 save 生成的 ref，防止路径穿越
        if not _REF_PATTERN.match(file_ref or ""):
            return None
        path = self.root / file_ref
        if not path.is_file():
            return None
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/{file_ref}"
        return path.resolve().as_uri()

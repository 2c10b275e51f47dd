"""
认证：Authorization: Bearer <token> → AuthContext(user_id, tier)。

- 配置 HIREPATH_AUTH_URL：把同一个 Bearer 头转发给认证服务（GET），响应体 {"user_id": "...", "tier": "free|pro"}；
- 未配置：本地 stub，user_id 由 token 派生；token 以 pro- 开头视为 pro 档，便于本地验证配额。

认证服务只在这里出现，业务代码只看 AuthContext。
"""
import json
import logging
import os
import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException
from pydantic import BaseModel, ValidationError, field_validator

from hirepath.core.tiers import Tier

logger = logging.getLogger(__name__)

_BEARER_RE = re.compile(r"^\s*bearer\s+(\S+)\s*$", re.IGNORECASE)
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\-]")
PRO_TOKEN_PREFIX = "pro-"
AUTH_TIMEOUT_SECONDS = 5


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    tier: Tier


class _Identity(BaseModel):
    """认证服务响应；未知档位按 free 处理。"""
    user_id: str
    tier: Tier = "free"

    @field_validator("tier", mode="before")
    @classmethod
    def _known_tier(cls, value: Optional[str]) -> str:
        return "pro" if str(value or "").strip().lower() == "pro" else "free"

    @field_validator("user_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("user_id 为空")
        return value


def get_bearer_token(authorization: str | None = Header(None, alias="Authorization")) -> str | None:
    if not authorization:
        return None
    match = _BEARER_RE.match(authorization)
    return match.group(1) if match else None


def _stub_identity(token: str) -> AuthContext:
    tier: Tier = "pro" if token.startswith(PRO_TOKEN_PREFIX) else "free"
    safe = _UNSAFE_CHARS.sub("", token[:32]) or "anon"
    return AuthContext(user_id=f"stub-{safe}", tier=tier)


def _remote_identity(url: str, token: str) -> AuthContext | None:
    """认证服务不可达、非 200 或响应不合法时返回 None（按 401 处理）。"""
    req = urllib.request.Request(url, headers={"Authorization": f"Bearer {token}"}, method="GET")
    try:
        with urllib.request.urlopen(req, timeout=AUTH_TIMEOUT_SECONDS) as resp:
            if resp.status != 200:
                return None
            identity = _Identity.model_validate(json.loads(resp.read().decode("utf-8")))
    except (urllib.error.URLError, TimeoutError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("认证服务校验失败: %s", e)
        return None
    return AuthContext(user_id=identity.user_id, tier=identity.tier)


def verify_token(token: str) -> AuthContext | None:
    url = (os.environ.get("HIREPATH_AUTH_URL") or "").strip()
    return _remote_identity(url, token) if url else _stub_identity(token)


def get_auth(authorization: str | None = Header(None, alias="Authorization")) -> AuthContext:
    """依赖项：缺少 token 或校验失败返回 401。"""
    token = get_bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="missing or invalid authorization")
    ctx = verify_token(token)
    if ctx is None:
        raise HTTPException(status_code=401, detail="invalid or expired token")
    return ctx

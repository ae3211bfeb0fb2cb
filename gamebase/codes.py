"""Business response codes, the uniform response envelope and request helpers."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

CTX_USER_ID_KEY = "userID"
DEFAULT_PAGE = 1
DEFAULT_SIZE = 10

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_DECIMAL_RE = re.compile(r"[+-]?[0-9]+")


class ResCode(IntEnum):
    """Business status codes carried in every response."""

    SUCCESS = 1000
    INVALID_PARAM = 1001
    USER_EXIST = 1002
    USER_NOT_EXIST = 1003
    INVALID_PASSWORD = 1004
    SERVER_BUSY = 1005
    NEED_LOGIN = 1006
    INVALID_TOKEN = 1007

    def msg(self) -> str:
        """Return the message shown for this code."""
        return _MESSAGES.get(self, _MESSAGES[ResCode.SERVER_BUSY])


_MESSAGES: dict[ResCode, str] = {
    ResCode.SUCCESS: "success",
    ResCode.INVALID_PARAM: "请求参数错误",
    ResCode.USER_EXIST: "用户名已存在",
    ResCode.USER_NOT_EXIST: "用户名不存在",
    ResCode.INVALID_PASSWORD: "用户名或密码错误",
    ResCode.SERVER_BUSY: "服务繁忙",
    ResCode.NEED_LOGIN: "需要登录",
    ResCode.INVALID_TOKEN: "无效的token",
}


@dataclass(frozen=True)
class ResponseData:
    """The JSON envelope: code, message and optional data."""

    code: ResCode
    msg: Any
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Return the envelope as a JSON-ready dict; absent data is omitted."""
        result: dict[str, Any] = {"code": int(self.code), "msg": self.msg}
        if self.data is not None:
            result["data"] = self.data
        return result


class NotLoggedInError(Exception):
    """Raised when the request carries no logged-in user."""

    def __init__(self, message: str = "用户未登录") -> None:
        super().__init__(message)


def response_error(code: ResCode) -> ResponseData:
    """Build an error envelope carrying the code's own message."""
    code = ResCode(code)
    return ResponseData(code=code, msg=code.msg())


def response_error_with_msg(code: ResCode, msg: Any) -> ResponseData:
    """Build an error envelope with a custom message."""
    return ResponseData(code=ResCode(code), msg=msg)


def response_success(data: Any) -> ResponseData:
    """Build a success envelope around data."""
    return ResponseData(code=ResCode.SUCCESS, msg=ResCode.SUCCESS.msg(), data=data)


def _parse_int64(text: str | None, default: int) -> int:
    if not isinstance(text, str) or not _DECIMAL_RE.fullmatch(text):
        return default
    value = int(text)
    if value < _INT64_MIN or value > _INT64_MAX:
        return default
    return value


def parse_page_info(page: str | None, size: str | None) -> tuple[int, int]:
    """Parse page and size query strings, falling back to 1 and 10."""
    return _parse_int64(page, DEFAULT_PAGE), _parse_int64(size, DEFAULT_SIZE)


def current_user_id(context: Mapping[str, Any]) -> int:
    """Return the logged-in user id stored in the request context."""
    value = context.get(CTX_USER_ID_KEY)
    if type(value) is not int:
        raise NotLoggedInError()
    return value
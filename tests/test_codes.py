import pytest

from gamebase.codes import (
    CTX_USER_ID_KEY,
    NotLoggedInError,
    ResCode,
    ResponseData,
    current_user_id,
    parse_page_info,
    response_error,
    response_error_with_msg,
    response_success,
)


def test_success_message():
    assert ResCode.SUCCESS.msg() == "success"


def test_login_related_messages():
    assert ResCode.NEED_LOGIN.msg() == "需要登录"
    assert ResCode.INVALID_TOKEN.msg() == "无效的token"
    assert ResCode.SERVER_BUSY.msg() == "服务繁忙"


def test_codes_are_consecutive_from_success():
    values = [response_error(code).to_dict()["code"] for code in ResCode]
    assert values == list(range(1000, 1000 + len(values)))
    assert len(values) == 8


def test_every_code_has_its_own_message():
    messages = {response_error(code).to_dict()["msg"] for code in ResCode}
    assert len(messages) == 8
    assert "用户名已存在" in messages


def test_response_error_omits_data():
    body = response_error(ResCode.NEED_LOGIN).to_dict()
    assert body == {"code": int(ResCode.NEED_LOGIN), "msg": "需要登录"}


def test_response_error_with_custom_message():
    resp = response_error_with_msg(ResCode.INVALID_PARAM, "帖子不存在")
    assert resp.code is ResCode.INVALID_PARAM
    assert resp.to_dict()["msg"] == "帖子不存在"
    assert "data" not in resp.to_dict()


def test_response_success_carries_data():
    payload = {"indexed": 3}
    body = response_success(payload).to_dict()
    assert body["code"] == ResCode.SUCCESS
    assert body["msg"] == "success"
    assert body["data"] == payload


def test_response_data_keeps_falsy_data():
    body = ResponseData(ResCode.SUCCESS, "success", []).to_dict()
    assert body["data"] == []


def test_parse_page_info_reads_numbers():
    assert parse_page_info("3", "20") == (3, 20)
    assert parse_page_info("+5", "-2") == (5, -2)


def test_parse_page_info_defaults():
    assert parse_page_info(None, None) == (1, 10)
    assert parse_page_info("abc", "") == parse_page_info(None, None)
    assert parse_page_info(" 3", "2.5") == parse_page_info(None, None)


def test_parse_page_info_out_of_range_falls_back():
    page, _ = parse_page_info("9223372036854775808", "7")
    assert page == parse_page_info(None, "7")[0]


def test_current_user_id_found():
    assert current_user_id({CTX_USER_ID_KEY: 42}) == 42


@pytest.mark.parametrize("context", [{}, {"userID": "42"}, {"userID": True}, {"userID": None}])
def test_current_user_id_missing_or_wrong_type(context):
    with pytest.raises(NotLoggedInError):
        current_user_id(context)


def test_unauthenticated_request_gets_need_login():
    try:
        current_user_id({})
    except NotLoggedInError:
        resp = response_error(ResCode.NEED_LOGIN)
    assert resp.code == ResCode.NEED_LOGIN
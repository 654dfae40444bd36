"""Tests for xdprofile._request."""

from xdprofile._request import RequestContext


def test_trigger_in_any_source():
    """A trigger counts if it's a cookie, GET or POST key, whatever its value."""
    assert RequestContext(cookies={"T": ""}).is_trigger_set("T")
    assert RequestContext(get={"T": None}).is_trigger_set("T")
    assert RequestContext(post={"T": "0"}).is_trigger_set("T")
    assert not RequestContext(server={"T": "1"}).is_trigger_set("T")
    assert not RequestContext().is_trigger_set("T")


def test_trigger_sees_later_changes():
    """Triggers are looked up on every call, so mutations are visible."""
    get = {}
    context = RequestContext(get=get)
    assert not context.is_trigger_set("T")
    get["T"] = "1"
    assert context.is_trigger_set("T")
    del get["T"]
    assert not context.is_trigger_set("T")


def test_from_environ():
    """Server variables, query string and cookies come from the environment."""
    context = RequestContext.from_environ(
        {
            "SCRIPT_NAME": "/x.py",
            "QUERY_STRING": "XDEBUG_TRACE&a=1",
            "HTTP_COOKIE": "SESSID=abc; other=2",
        },
        get={"extra": ""},
        session_name="SESSID",
    )
    assert context.server_string("SCRIPT_NAME") == "/x.py"
    assert context.is_trigger_set("XDEBUG_TRACE")
    assert context.is_trigger_set("extra")
    assert context.get["a"] == "1"
    assert context.session_id() == "abc"
    assert context.cookies["other"] == "2"


def test_server_string_requires_string():
    """Non-string server variables are treated as missing."""
    context = RequestContext(server={"A": 1, "B": "b"})
    assert context.server_string("A") is None
    assert context.server_string("B") == "b"
    assert context.server_string("C") is None

"""
Read-only view of the request variables of the current request.

The profiler only ever looks things up here: server variables feed the
filename template, and cookies, GET and POST parameters decide whether a
trigger was set.
"""

from typing import Mapping, Optional
from urllib.parse import parse_qs
from http.cookies import SimpleCookie

# Server variable names used by the filename template:
HTTP_HOST = "HTTP_HOST"
REQUEST_URI = "REQUEST_URI"
SCRIPT_NAME = "SCRIPT_NAME"
UNIQUE_ID = "UNIQUE_ID"


class RequestContext:
    """Request variables: server, cookies, GET, POST and uploaded files.

    The mappings are held by reference, not copied, since user code may
    change them while the request runs and trigger lookups must see that.
    """

    def __init__(
        self,
        server: Optional[Mapping[str, object]] = None,
        cookies: Optional[Mapping[str, object]] = None,
        get: Optional[Mapping[str, object]] = None,
        post: Optional[Mapping[str, object]] = None,
        files: Optional[Mapping[str, object]] = None,
        session_name: Optional[str] = None,
    ):
        self.server = server if server is not None else {}
        self.cookies = cookies if cookies is not None else {}
        self.get = get if get is not None else {}
        self.post = post if post is not None else {}
        self.files = files if files is not None else {}
        # Name of the cookie holding the session id, if sessions are
        # configured at all.
        self.session_name = session_name

    @classmethod
    def from_environ(
        cls,
        environ: Mapping[str, str],
        get: Optional[Mapping[str, object]] = None,
        post: Optional[Mapping[str, object]] = None,
        cookies: Optional[Mapping[str, object]] = None,
        session_name: Optional[str] = None,
    ) -> "RequestContext":
        """Build a context whose server variables are a process environment.

        CGI-style ``QUERY_STRING`` and ``HTTP_COOKIE`` variables, if present,
        are parsed into GET parameters and cookies; explicit ``get`` and
        ``cookies`` mappings take precedence over them.
        """
        server = dict(environ)
        query = {
            key: values[-1]
            for key, values in parse_qs(
                server.get("QUERY_STRING", ""), keep_blank_values=True
            ).items()
        }
        query.update(get or {})
        jar = SimpleCookie()
        jar.load(server.get("HTTP_COOKIE", ""))
        parsed_cookies = {key: morsel.value for key, morsel in jar.items()}
        parsed_cookies.update(cookies or {})
        return cls(
            server=server,
            cookies=parsed_cookies,
            get=query,
            post=dict(post or {}),
            session_name=session_name,
        )

    def server_string(self, name: str) -> Optional[str]:
        """Return a server variable if it is set and is a string."""
        value = self.server.get(name)
        if isinstance(value, str):
            return value
        return None

    def session_id(self) -> Optional[str]:
        """Return the session id cookie, or None if there isn't one."""
        value = self.cookies.get(self.session_name)
        if isinstance(value, str):
            return value
        return None

    def is_trigger_set(self, trigger: str) -> bool:
        """True if the trigger name is a cookie, GET or POST key.

        The value is irrelevant, only presence counts.
        """
        return trigger in self.cookies or trigger in self.get or trigger in self.post

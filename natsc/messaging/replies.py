import asyncio
from typing import Callable, Dict, List, Optional

from natsc.errors import NoRespondersError, RequestTimeoutError

NO_RESPONDERS_STATUS = "503"


def is_no_responders(msg) -> bool:
    """True for the empty status message the server sends when nobody is subscribed"""
    headers = msg.headers or {}
    return not msg.data and headers.get("Status") == NO_RESPONDERS_STATUS


class ReplyAggregator:
    """Collect replies to one request until a count or a deadline is reached.

    Whichever happens first ends the collection. A "no responders" status
    from the server also ends it and is never returned as a reply.
    ``require_reply`` turns "no replies" into an error: NoRespondersError
    when the server reported no responders, RequestTimeoutError when the
    deadline passed; otherwise an empty list is returned.
    """

    def __init__(self, expected: int = 1, timeout: float = 2.0, require_reply: bool = False):
        if expected < 1:
            raise ValueError(f"expected reply count must be at least 1, got {expected}")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.expected = expected
        self.timeout = timeout
        self.require_reply = require_reply

    async def request(self, nc, subject: str, payload: bytes = b"",
                      headers: Optional[Dict[str, str]] = None,
                      reply: Optional[str] = None,
                      on_reply: Optional[Callable] = None) -> List:
        """Publish payload on subject and return the replies in arrival order.

        The reply subscription is bound before publishing and released on
        every exit path. on_reply, if given, is called with each reply as it
        arrives.
        """
        inbox = reply or nc.new_inbox()
        sub = await nc.subscribe(inbox)
        replies = []
        no_responders = False
        try:
            await nc.publish(subject, payload, reply=inbox, headers=headers)
            try:
                no_responders = await asyncio.wait_for(
                    self._collect(sub, replies, on_reply), self.timeout)
            except asyncio.TimeoutError:
                pass
        finally:
            await sub.unsubscribe()

        if not replies and self.require_reply:
            if no_responders:
                raise NoRespondersError(subject)
            raise RequestTimeoutError(subject, self.timeout)
        return replies

    async def _collect(self, sub, replies: List, on_reply: Optional[Callable]) -> bool:
        """Append replies until the expected count; True if stopped by a no responders status"""
        async for msg in sub.messages:
            if is_no_responders(msg):
                return True
            replies.append(msg)
            if on_reply is not None:
                on_reply(msg)
            if len(replies) >= self.expected:
                return False
        return False

    def __repr__(self):
        return (f"<ReplyAggregator expected={self.expected} timeout={self.timeout} "
                f"require_reply={self.require_reply}>")

import logging
import ssl
from typing import Dict, Optional

import nats

from natsc import __version__
from natsc.models import DEFAULT_SERVER_URL, Context

logger = logging.getLogger(__name__)


def tls_context(context: Context) -> Optional[ssl.SSLContext]:
    """Build an SSL context from the certificate paths, None if none are set"""
    if not (context.cert or context.key or context.ca):
        return None
    tls = ssl.create_default_context(cafile=context.ca or None)
    if context.cert:
        tls.load_cert_chain(context.cert, context.key or None)
    return tls


def connect_options(context: Context, timeout: float = 2.0) -> dict:
    """Keyword arguments for nats.connect() built from a context"""
    options = {
        "servers": context.servers or [DEFAULT_SERVER_URL],
        "connect_timeout": timeout,
        "name": f"natsc {__version__}",
        "allow_reconnect": False,
    }
    if context.user:
        options["user"] = context.user
    if context.password:
        options["password"] = context.password
    if context.creds:
        options["user_credentials"] = context.creds
    if context.nkey:
        options["nkeys_seed"] = context.nkey
    tls = tls_context(context)
    if tls is not None:
        options["tls"] = tls
    return options


async def connect(context: Context, timeout: float = 2.0):
    """Open a connection to the servers of a context"""
    options = connect_options(context, timeout)
    logger.debug("Connecting to %s", ", ".join(options["servers"]))
    return await nats.connect(**options)


async def publish(nc, subject: str, payload: bytes = b"",
                  headers: Optional[Dict[str, str]] = None, reply: Optional[str] = None):
    """Publish a message and wait until the server has received it"""
    await nc.publish(subject, payload, reply=reply or "", headers=headers)
    await nc.flush()

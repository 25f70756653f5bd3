import asyncio
import json
import logging
import sys
from dataclasses import dataclass, replace
from functools import wraps
from typing import Dict, Optional

import click
import nats.errors
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from natsc import __version__
from natsc.errors import NatscError, NoSelectionError
from natsc.messaging import connection
from natsc.messaging.replies import ReplyAggregator
from natsc.models import Context, ContextOverrides
from natsc.resolver import effective_name, resolve_context
from natsc.storage.context_storage import ContextStorage
from natsc.utils.utils import parse_headers

console = Console()
storage = ContextStorage()
logger = logging.getLogger(__name__)


@dataclass
class Options:
    """Global options shared by every command"""
    context_name: Optional[str]
    overrides: ContextOverrides
    timeout: float


class AliasedGroup(click.Group):
    """Click group that also accepts alternative command names"""

    def __init__(self, *args, aliases: Dict[str, str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.aliases = aliases or {}

    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, self.aliases.get(cmd_name, cmd_name))

    def resolve_command(self, ctx, args):
        _, cmd, args = super().resolve_command(ctx, args)
        return (cmd.name if cmd else None), cmd, args


def handle_errors(f):
    """Report natsc and connection failures as click errors"""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (NatscError, nats.errors.Error, OSError, asyncio.TimeoutError) as e:
            raise click.ClickException(str(e) or e.__class__.__name__) from e
    return wrapper


@click.group(cls=AliasedGroup, aliases={'ctx': 'context', 'req': 'request'})
@click.version_option(version=__version__)
@click.option('--server', '-s', envvar='NATS_URL', help='NATS server urls, comma separated')
@click.option('--user', envvar='NATS_USER', help='Username or token')
@click.option('--password', envvar='NATS_PASSWORD', help='Password')
@click.option('--creds', envvar='NATS_CREDS', help='User credentials file')
@click.option('--nkey', envvar='NATS_NKEY', help='User NKEY seed file')
@click.option('--tlscert', envvar='NATS_CERT', help='TLS client certificate file')
@click.option('--tlskey', envvar='NATS_KEY', help='TLS client key file')
@click.option('--tlsca', envvar='NATS_CA', help='TLS certificate authority chain file')
@click.option('--timeout', envvar='NATS_TIMEOUT', type=float, default=2.0, show_default=True,
              help='Time to wait on responses from NATS, in seconds')
@click.option('--context', 'context_name', help='Configuration context to use for this invocation')
@click.option('--verbose', '-v', is_flag=True, help='Log debug output')
@click.pass_context
def cli(ctx, server, user, password, creds, nkey, tlscert, tlskey, tlsca, timeout,
        context_name, verbose):
    """natsc - NATS command line client with named connection contexts"""
    logging.basicConfig(format='%(asctime)s %(message)s', stream=sys.stderr)
    logging.getLogger('natsc').setLevel(logging.DEBUG if verbose else logging.INFO)

    overrides = ContextOverrides(server_url=server, user=user, password=password, creds=creds,
                                 nkey=nkey, cert=tlscert, key=tlskey, ca=tlsca)
    ctx.obj = Options(context_name=context_name, overrides=overrides, timeout=timeout)


@cli.group(cls=AliasedGroup, aliases={
    'list': 'ls', 'l': 'ls', 'add': 'save', 'create': 'save', 'remove': 'rm',
    'switch': 'select', 'set': 'select',
})
def context():
    """Manage configuration contexts

    Context names can not contain your OS path separator or ".." but are
    otherwise at your discretion. There is one selected context which is
    recorded as default, and the NATS_CONTEXT environment variable can
    override that.
    """


@context.command('ls')
def list_contexts():
    """List known contexts"""
    known = storage.known_contexts()
    if not known:
        console.print("No known contexts")
        return

    current = storage.selected_context()
    table = Table(title="Known contexts")
    table.add_column("Name")
    table.add_column("Description")
    for name in known:
        description = ""
        try:
            description = storage.load(name).description
        except NatscError as e:
            logger.warning("Could not load context %s: %s", name, e)
        marker = "*" if name == current else ""
        table.add_row(escape(name + marker), escape(description))
    console.print(table)


@context.command()
@click.argument('name', required=False)
@click.option('--json', '-j', 'as_json', is_flag=True, help='Show the context in JSON format')
@click.pass_obj
@handle_errors
def show(opts, name, as_json):
    """Show the current or named context"""
    name = effective_name(storage, name or opts.context_name)
    if not name:
        raise NoSelectionError()

    cfg = storage.load(name)
    if as_json:
        click.echo(json.dumps(cfg.to_dict(), indent=2))
        return

    click.echo(f'NATS Configuration Context "{name}"\n')
    for label, value in _show_rows(cfg):
        if value:
            click.echo(f"{label:>13}: {value}")
    click.echo()


def _show_rows(cfg: Context):
    return [
        ("Description", cfg.description),
        ("Server URLs", cfg.server_url),
        ("Username", cfg.user),
        ("Password", cfg.password),
        ("Credentials", cfg.creds),
        ("NKey", cfg.nkey),
        ("Certificate", cfg.cert),
        ("Key", cfg.key),
        ("CA", cfg.ca),
        ("Path", cfg.path),
    ]


@context.command()
@click.argument('name')
@click.option('--description', help='Set a friendly description for this context')
@click.option('--select', 'activate', is_flag=True, help='Select the saved context as the default one')
@click.pass_obj
@handle_errors
def save(opts, name, description, activate):
    """Update or create a context"""
    if storage.is_known(name):
        base, load = name, True
    elif opts.context_name:
        base, load = opts.context_name, True
    else:
        base, load = None, False

    overrides = replace(opts.overrides, description=description)
    cfg = resolve_context(storage, base, overrides, load=load)
    storage.save(cfg, name)
    click.echo(f"Saved context {name} to {cfg.path}")

    if activate:
        storage.select_context(name)
        click.echo(f"Selected context {name}")


@context.command()
@click.argument('name')
@click.option('--force', '-f', is_flag=True, help='Accepted for compatibility, rm never prompts')
@handle_errors
def rm(name, force):
    """Remove a context"""
    storage.delete_context(name)
    click.echo(f"Removed context {name}")


@context.command()
@click.argument('name')
@handle_errors
def select(name):
    """Select the default context"""
    if not storage.known_contexts():
        raise click.ClickException("no context defined")
    storage.select_context(name)
    click.echo(f"Selected context {name}")


def _resolve(opts: Options) -> Context:
    return resolve_context(storage, opts.context_name, opts.overrides, load=True)


def _parse_headers(values) -> Dict[str, str]:
    try:
        return parse_headers(values)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="'--header'") from e


def _read_body(body: Optional[str]) -> bytes:
    """Message body from the argument, or from stdin when it is not a terminal"""
    if body is not None:
        return body.encode()
    stdin = click.get_binary_stream('stdin')
    if stdin.isatty():
        return b""
    logger.info("Reading payload from STDIN")
    return stdin.read()


def _print_reply(msg, raw: bool):
    if not raw:
        logger.info("Received on %r", msg.subject)
        for key, value in (msg.headers or {}).items():
            logger.info("%s: %s", key, value)

    data = msg.data.decode(errors='replace')
    click.echo(data)
    if not raw and not data.endswith("\n"):
        click.echo()


async def _publish(cfg: Context, timeout: float, subject: str, payload: bytes,
                   headers: Dict[str, str], reply: Optional[str]):
    nc = await connection.connect(cfg, timeout)
    try:
        await connection.publish(nc, subject, payload, headers=headers or None, reply=reply)
    finally:
        await nc.close()
    logger.info("Published %d bytes to %r", len(payload), subject)


async def _request(cfg: Context, timeout: float, aggregator: ReplyAggregator, subject: str,
                   payload: bytes, headers: Dict[str, str], reply: Optional[str], raw: bool):
    nc = await connection.connect(cfg, timeout)
    try:
        if not raw:
            logger.info("Sending request on %r", subject)
        return await aggregator.request(nc, subject, payload, headers=headers or None,
                                        reply=reply, on_reply=lambda m: _print_reply(m, raw))
    finally:
        await nc.close()


@cli.command()
@click.argument('subject')
@click.argument('body', required=False)
@click.option('--wait', '-w', is_flag=True, help='Wait for a reply from a service')
@click.option('--reply', help='Sets a custom reply to subject')
@click.option('--header', '-H', 'headers', multiple=True, help='Adds headers to the message (Key:Value)')
@click.pass_obj
@handle_errors
def pub(opts, subject, body, wait, reply, headers):
    """Generic data publishing utility"""
    hdrs = _parse_headers(headers)
    payload = _read_body(body)
    cfg = _resolve(opts)

    if wait:
        aggregator = ReplyAggregator(expected=1, timeout=opts.timeout, require_reply=True)
        asyncio.run(_request(cfg, opts.timeout, aggregator, subject, payload, hdrs, reply, raw=False))
    else:
        asyncio.run(_publish(cfg, opts.timeout, subject, payload, hdrs, reply))


@cli.command()
@click.argument('subject')
@click.argument('body', required=False)
@click.option('--raw', '-r', is_flag=True, help='Show just the output received')
@click.option('--header', '-H', 'headers', multiple=True, help='Adds headers to the message (Key:Value)')
@click.option('--reply-count', '-c', type=click.IntRange(min=1), default=1, show_default=True,
              help='Number of expected replies (within timeout)')
@click.option('--require-reply/--no-require-reply', default=None,
              help='Fail when no reply arrives [default: only when expecting one reply]')
@click.pass_obj
@handle_errors
def request(opts, subject, body, raw, headers, reply_count, require_reply):
    """Generic data request utility"""
    hdrs = _parse_headers(headers)
    payload = _read_body(body)
    cfg = _resolve(opts)

    if require_reply is None:
        require_reply = reply_count == 1
    aggregator = ReplyAggregator(expected=reply_count, timeout=opts.timeout,
                                 require_reply=require_reply)
    replies = asyncio.run(_request(cfg, opts.timeout, aggregator, subject, payload, hdrs, None, raw))
    if not raw and reply_count > 1:
        logger.info("Received %d of %d replies", len(replies), reply_count)


if __name__ == '__main__':
    cli()

import pytest

from natsc.errors import InvalidNameError
from natsc.models import DEFAULT_SERVER_URL, Context, ContextOverrides
from natsc.resolver import CONTEXT_ENV_VAR, effective_name, resolve_context
from natsc.storage.context_storage import ContextStorage


@pytest.fixture
def storage(tmp_path):
    storage = ContextStorage(root=tmp_path / "nats")
    storage.save(Context(server_url="nats://explicit:4222"), "explicit")
    storage.save(Context(server_url="nats://env:4222"), "env")
    storage.save(Context(server_url="nats://selected:4222", description="selected one",
                         user="bob", password="secret", creds="/bob.creds",
                         ca="/ca.pem"), "selected")
    storage.select_context("selected")
    return storage


def test_precedence(storage):
    """explicit name > environment > persisted selection"""
    environ = {CONTEXT_ENV_VAR: "env"}

    ctx = resolve_context(storage, "explicit", environ=environ)
    assert ctx.name == "explicit"
    assert ctx.server_url == "nats://explicit:4222"

    ctx = resolve_context(storage, None, environ=environ)
    assert ctx.name == "env"
    assert ctx.server_url == "nats://env:4222"

    ctx = resolve_context(storage, None, environ={})
    assert ctx.name == "selected"
    assert ctx.server_url == "nats://selected:4222"


def test_resolution_never_changes_selection(storage):
    resolve_context(storage, "explicit", environ={CONTEXT_ENV_VAR: "env"})
    assert storage.selected_context() == "selected"


def test_no_sources_gives_defaults(tmp_path):
    storage = ContextStorage(root=tmp_path / "missing")
    assert effective_name(storage, None, environ={}) == ""

    ctx = resolve_context(storage, None, ContextOverrides(), load=True, environ={})
    assert ctx.server_url == DEFAULT_SERVER_URL
    assert ctx.name == ""
    assert ctx.path == ""
    assert not storage.root.exists()


def test_override_replaces_only_given_fields(storage):
    loaded = storage.load("selected")
    ctx = resolve_context(storage, None, ContextOverrides(server_url="connect.ngs.global"),
                          environ={})

    assert ctx.server_url == "connect.ngs.global"
    assert ctx.description == loaded.description
    assert ctx.user == loaded.user
    assert ctx.password == loaded.password
    assert ctx.creds == loaded.creds
    assert ctx.ca == loaded.ca


def test_overrides_win_over_explicit_context(storage):
    ctx = resolve_context(storage, "explicit", ContextOverrides(user="alice"), environ={})
    assert ctx.server_url == "nats://explicit:4222"
    assert ctx.user == "alice"


def test_load_false_starts_from_defaults(storage):
    ctx = resolve_context(storage, "selected", load=False, environ={})
    assert ctx.name == "selected"
    assert ctx.server_url == DEFAULT_SERVER_URL
    assert ctx.user == ""


def test_unknown_name_starts_from_defaults(storage):
    ctx = resolve_context(storage, "nosuch", environ={})
    assert ctx.name == "nosuch"
    assert ctx.server_url == DEFAULT_SERVER_URL


def test_invalid_explicit_name(storage, monkeypatch):
    def no_disk(*args, **kwargs):
        raise AssertionError("storage should not be touched")

    monkeypatch.setattr(storage, "is_known", no_disk)
    monkeypatch.setattr(storage, "load", no_disk)
    with pytest.raises(InvalidNameError):
        resolve_context(storage, "../escape", environ={})


def test_invalid_environment_name(storage):
    with pytest.raises(InvalidNameError):
        resolve_context(storage, None, environ={CONTEXT_ENV_VAR: "a/b"})


def test_environment_defaults_to_os_environ(storage, monkeypatch):
    monkeypatch.setenv(CONTEXT_ENV_VAR, "env")
    assert resolve_context(storage).name == "env"
    monkeypatch.delenv(CONTEXT_ENV_VAR)
    assert resolve_context(storage).name == "selected"


def test_resolve_is_not_persisted(storage):
    resolve_context(storage, "explicit", ContextOverrides(server_url="nats://changed:4222"),
                    environ={})
    assert storage.load("explicit").server_url == "nats://explicit:4222"

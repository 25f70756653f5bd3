"""Resolve the context used by a single invocation.

The base context name comes from the first source that yields one:

1. the name passed explicitly by the caller
2. the ``NATS_CONTEXT`` environment variable
3. the persisted selection in the context store

The stored context of that name (if any, and if loading was requested) is
then overlaid with the caller's overrides. Nothing is written back.
"""
import os
from typing import Callable, List, Mapping, Optional

from natsc.models import Context, ContextOverrides
from natsc.storage.context_storage import ContextStorage, validate_name

CONTEXT_ENV_VAR = "NATS_CONTEXT"

NameSource = Callable[[Optional[str], Mapping[str, str], ContextStorage], str]


def from_explicit(name, environ, storage) -> str:
    return name or ""


def from_environment(name, environ, storage) -> str:
    return environ.get(CONTEXT_ENV_VAR, "")


def from_selection(name, environ, storage) -> str:
    return storage.selected_context()


NAME_SOURCES: List[NameSource] = [from_explicit, from_environment, from_selection]


def effective_name(storage: ContextStorage, name: Optional[str] = None,
                   environ: Mapping[str, str] = None) -> str:
    """Return the first non-empty name from NAME_SOURCES, or ""."""
    environ = os.environ if environ is None else environ
    for source in NAME_SOURCES:
        found = source(name, environ, storage)
        if found:
            return found
    return ""


def resolve_context(storage: ContextStorage, name: Optional[str] = None,
                    overrides: ContextOverrides = None, load: bool = True,
                    environ: Mapping[str, str] = None) -> Context:
    """Build the context for this invocation.

    Args:
        storage: store to read contexts and the selection from
        name: explicit context name, wins over every other source
        overrides: field values that replace the loaded ones
        load: start from the stored context when the name is known
        environ: environment mapping, defaults to os.environ

    Raises:
        InvalidNameError: name (from any source) is not a valid context name
        ContextStorageError: the stored context could not be read
    """
    base = effective_name(storage, name, environ)
    if base:
        validate_name(base)

    if load and base and storage.is_known(base):
        context = storage.load(base)
    else:
        context = Context.default(base)

    if overrides is not None:
        overrides.apply(context)
    return context

import json
import os
import tempfile
from pathlib import Path
from typing import List, Mapping, Optional

from natsc.errors import ContextStorageError, InvalidNameError, UnknownContextError
from natsc.models import Context

SELECTION_FILE = "context.txt"
CONTEXT_DIR = "context"


def validate_name(name: str):
    """Reject names that could escape the context directory"""
    if not name:
        raise InvalidNameError(name)
    forbidden = {os.sep, "/", "\x00"}
    if os.altsep:
        forbidden.add(os.altsep)
    if any(c in name for c in forbidden) or ".." in name:
        raise InvalidNameError(name)


def config_root(environ: Mapping[str, str] = None) -> Path:
    """Directory holding the context files and the selection pointer"""
    environ = os.environ if environ is None else environ
    base = environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "nats"


def _atomic_write(path: Path, text: str):
    """Write text to path so readers see either the old or the new content"""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


class ContextStorage:
    """File based storage for named contexts and the selected context"""

    def __init__(self, root: Path = None, environ: Mapping[str, str] = None):
        """Use root if given, otherwise resolve it from the environment on each access"""
        self._root = Path(root) if root else None
        self._environ = environ

    @property
    def root(self) -> Path:
        return self._root or config_root(self._environ)

    @property
    def context_dir(self) -> Path:
        return self.root / CONTEXT_DIR

    @property
    def selection_path(self) -> Path:
        return self.root / SELECTION_FILE

    def context_path(self, name: str) -> Path:
        """Return the file path for a context, validating the name first"""
        validate_name(name)
        return self.context_dir / f"{name}.json"

    def known_contexts(self) -> List[str]:
        """List all context names, sorted"""
        try:
            return sorted(p.stem for p in self.context_dir.glob("*.json") if p.is_file())
        except FileNotFoundError:
            return []

    def is_known(self, name: str) -> bool:
        try:
            return self.context_path(name).is_file()
        except InvalidNameError:
            return False

    def selected_context(self) -> str:
        """Name of the persisted selection, or "" when there is none"""
        try:
            return self.selection_path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return ""

    def load(self, name: str) -> Context:
        """Load a stored context by name"""
        path = self.context_path(name)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise UnknownContextError(name) from None
        except (OSError, UnicodeDecodeError) as e:
            raise ContextStorageError(f"could not read context {name!r}: {e}") from e
        except json.JSONDecodeError as e:
            raise ContextStorageError(f"corrupt context file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ContextStorageError(f"corrupt context file {path}: expected an object")
        return Context.from_dict(data, name=name, path=str(path))

    def save(self, context: Context, name: Optional[str] = None):
        """Persist context under name (defaults to context.name)"""
        name = context.name if name is None else name
        path = self.context_path(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write(path, json.dumps(context.to_dict(), indent=2))
        except OSError as e:
            raise ContextStorageError(f"could not save context {name!r}: {e}") from e
        context.name = name
        context.path = str(path)

    def delete_context(self, name: str):
        """Delete a context, clearing the selection if it pointed at it"""
        path = self.context_path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ContextStorageError(f"could not delete context {name!r}: {e}") from e

        if self.selected_context() == name:
            try:
                self.selection_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise ContextStorageError(f"could not clear selected context: {e}") from e

    def select_context(self, name: str):
        """Make name the persisted selection"""
        validate_name(name)
        if not self.is_known(name):
            raise UnknownContextError(name)
        try:
            _atomic_write(self.selection_path, name)
        except OSError as e:
            raise ContextStorageError(f"could not select context {name!r}: {e}") from e

    def __repr__(self):
        return f"<ContextStorage root={self.root}>"

from dataclasses import dataclass, fields
from typing import List, Optional

DEFAULT_SERVER_URL = "nats://127.0.0.1:4222"

# attribute name -> key in the persisted JSON file
SERIALIZED_FIELDS = {
    'description': 'description',
    'server_url': 'url',
    'user': 'user',
    'password': 'password',
    'creds': 'creds',
    'nkey': 'nkey',
    'cert': 'cert',
    'key': 'key',
    'ca': 'ca',
}


@dataclass
class Context:
    """Named connection profile for a NATS server"""
    name: str = ""
    description: str = ""
    server_url: str = ""
    user: str = ""
    password: str = ""
    creds: str = ""
    nkey: str = ""
    cert: str = ""
    key: str = ""
    ca: str = ""
    path: str = ""  # file the context was loaded from, empty if never persisted

    @classmethod
    def default(cls, name: str = ""):
        """Create an unsaved context pointing at the local default server"""
        return cls(name=name, server_url=DEFAULT_SERVER_URL)

    @property
    def servers(self) -> List[str]:
        """Server URLs as a list"""
        return [url.strip() for url in self.server_url.split(',') if url.strip()]

    def to_dict(self) -> dict:
        """Convert context to dictionary for JSON serialization"""
        return {key: getattr(self, attr) for attr, key in SERIALIZED_FIELDS.items()}

    @classmethod
    def from_dict(cls, data: dict, name: str = "", path: str = ""):
        """Create context from dictionary (unknown keys are ignored)"""
        values = {attr: data.get(key) or "" for attr, key in SERIALIZED_FIELDS.items()}
        return cls(name=name, path=path, **values)


@dataclass
class ContextOverrides:
    """Caller supplied values that take precedence over a loaded context"""
    description: Optional[str] = None
    server_url: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    creds: Optional[str] = None
    nkey: Optional[str] = None
    cert: Optional[str] = None
    key: Optional[str] = None
    ca: Optional[str] = None

    def apply(self, context: Context) -> Context:
        """Replace the fields of context that are set here, in place"""
        for f in fields(self):
            value = getattr(self, f.name)
            if value:
                setattr(context, f.name, value)
        return context

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

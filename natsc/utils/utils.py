from typing import Dict, Iterable


def parse_headers(values: Iterable[str]) -> Dict[str, str]:
    """Parse "Key:Value" strings into a header dict. Raises ValueError on a missing colon."""
    headers = {}
    for value in values or ():
        key, sep, val = value.partition(":")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"invalid header {value!r}, expected Key:Value")
        headers[key] = val.strip()
    return headers

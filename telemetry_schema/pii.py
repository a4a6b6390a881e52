import re
from typing import Any, Dict, List, Tuple

PII_DENYLIST = frozenset(
    {
        "email",
        "emailaddress",
        "phone",
        "phonenumber",
        "mobile",
        "name",
        "firstname",
        "lastname",
        "fullname",
        "address",
        "streetaddress",
        "ip",
        "ipaddress",
        "password",
        "passwd",
        "secret",
        "token",
        "accesstoken",
        "refreshtoken",
        "ssn",
        "creditcard",
        "cardnumber",
        "dob",
        "birthdate",
        "dateofbirth",
    }
)

_SEPARATORS = re.compile(r"[\s_.\-]+")


def normalize_key(key: str) -> str:
    return _SEPARATORS.sub("", str(key)).lower()


def is_pii_key(key: str) -> bool:
    return normalize_key(key) in PII_DENYLIST


def scrub(value: Any) -> Tuple[Any, List[str]]:
    """
    Return a copy of ``value`` with every denylisted key removed, at any
    nesting depth, together with the dotted paths that were removed.
    """
    removed: List[str] = []
    return _scrub(value, "", removed), removed


def _scrub(value: Any, path: str, removed: List[str]) -> Any:
    if isinstance(value, dict):
        clean: Dict[str, Any] = {}
        for key, item in value.items():
            key_path = f"{path}.{key}" if path else str(key)
            if is_pii_key(key):
                removed.append(key_path)
                continue
            clean[key] = _scrub(item, key_path, removed)
        return clean
    if isinstance(value, list):
        return [_scrub(item, f"{path}[{i}]", removed) for i, item in enumerate(value)]
    return value

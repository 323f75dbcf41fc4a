"""Storage key namespacing."""

SEPARATOR = "/"


def namespace(prefix: str, key: str) -> str:
    """Place ``key`` under ``prefix``.

    Keys that already carry the prefix are returned unchanged, so applying
    this twice yields the same key.
    """
    if not prefix or key.startswith(prefix):
        return key
    return SEPARATOR.join([prefix, key])


def directory_prefix(prefix: str, key: str) -> str:
    """Namespace a listing prefix and make sure it ends with the separator."""
    key = namespace(prefix, key)
    if not key.endswith(SEPARATOR):
        key = key + SEPARATOR
    return key


def is_directory_marker(key: str) -> bool:
    """Directory placeholder objects end with the separator."""
    return key.endswith(SEPARATOR)

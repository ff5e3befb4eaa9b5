import contextlib
from importlib import metadata


def _get_version():
    with contextlib.suppress(Exception):
        return metadata.version('irclink')
    return 'unknown'


__version__ = _get_version()

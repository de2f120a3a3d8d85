import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


@pytest.fixture(autouse=True)
def _clear_playgen_env():
    """Ensure credentials and tunables do not leak across tests.
    A developer's shell or .env may set these variables; clear them before each test
    and restore afterwards so tests explicitly setting them remain deterministic.
    """
    keys = [
        'SPOTIFY_CLIENT_ID', 'SPOTIFY_CLIENT_SECRET', 'LASTFM_API_KEY',
        'PLAYGEN_REQUEST_DELAY_MS', 'PLAYGEN_MARKET', 'PLAYGEN_SEARCH_LIMIT',
    ]
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v

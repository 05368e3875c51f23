"""Session-aware client for EduPage-style school portals.

Submodules are imported lazily so utility scripts can pull in a single piece
(for example ``from edupage.codec import encode``) without the whole stack:

	from edupage import PortalClient, load_config
"""

__all__ = [
    "PortalClient",
    "ClientConfig",
    "load_config",
    "BackoffController",
    "get_backoff",
    "AuthOk",
    "CaptchaRequired",
    "Rejected",
    "Transient",
]


def __getattr__(name: str):  # pragma: no cover - thin shim
    if name in __all__:
        from edupage.auth import AuthOk, CaptchaRequired, Rejected, Transient
        from edupage.backoff import BackoffController, get_backoff
        from edupage.client import PortalClient
        from edupage.config import ClientConfig, load_config
        mapping = {
            'PortalClient': PortalClient,
            'ClientConfig': ClientConfig,
            'load_config': load_config,
            'BackoffController': BackoffController,
            'get_backoff': get_backoff,
            'AuthOk': AuthOk,
            'CaptchaRequired': CaptchaRequired,
            'Rejected': Rejected,
            'Transient': Transient,
        }
        return mapping[name]
    raise AttributeError(name)

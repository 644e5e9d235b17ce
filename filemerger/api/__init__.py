from . import files, merge, sessions

routers = [
    sessions.router,
    merge.router,
    files.router,
]

__all__ = [
    "routers",
]

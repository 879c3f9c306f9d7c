"""Admin directory: who receives admin notifications.

The set of administrators belongs to the identity collaborator. The
workflow only asks for their ids when it fans out a notification.
"""

from abc import ABC, abstractmethod

from ordering.config import load_settings


class AdminDirectory(ABC):
    @abstractmethod
    def admin_ids(self) -> list[str]:
        """Ids of every administrator who should hear about workflow events."""
        ...


class StaticAdminDirectory(AdminDirectory):
    """Directory backed by a fixed list, by default ``MARKETPLACE_ADMIN_IDS``."""

    def __init__(self, admin_ids=None) -> None:
        if admin_ids is None:
            admin_ids = load_settings().admin_ids
        self._admin_ids = [str(a) for a in admin_ids]

    def admin_ids(self) -> list[str]:
        return list(self._admin_ids)


_current_directory: AdminDirectory | None = None


def get_admin_directory() -> AdminDirectory:
    global _current_directory
    if _current_directory is None:
        _current_directory = StaticAdminDirectory()
    return _current_directory


def set_admin_directory(directory: AdminDirectory) -> None:
    global _current_directory
    _current_directory = directory


def reset_admin_directory() -> None:
    global _current_directory
    _current_directory = None

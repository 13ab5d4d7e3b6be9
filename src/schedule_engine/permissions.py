"""
Role normalization and the client-side note deletion gate.

The remote store enforces real authorization; these checks only decide which
affordances are offered.
"""

from schedule_engine.models import Session
from schedule_engine.models import TaskNote

ROLES = ("Viewer", "Collaborator", "Admin")


def normalize_role(role: str | None) -> str:
    """Map legacy and free-form role names onto Viewer/Collaborator/Admin."""
    if not role:
        return "Viewer"
    lowered = role.strip().lower()
    if lowered in ("user", "collaborator"):
        return "Collaborator"
    if lowered == "admin":
        return "Admin"
    return "Viewer"


def is_admin(role: str | None, admin_roles: tuple[str, ...] = ("Admin",)) -> bool:
    return normalize_role(role) in admin_roles


def can_delete_note(
    session: Session, note: TaskNote, admin_roles: tuple[str, ...] = ("Admin",)
) -> bool:
    """Authors may delete their own notes; administrators may delete any."""
    return note.user_id == session.user_id or is_admin(session.role, admin_roles)

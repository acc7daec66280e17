from enum import Enum

from session_monitor import Role


class ViewTag(str, Enum):
    HOME = 'home'
    PROGRAMS = 'programs'
    LOGIN = 'login'
    STUDENT = 'student'
    COORDINATOR = 'coordinator'
    OFFICER = 'officer'


class Panel(str, Enum):
    HOME = 'home'
    PROGRAMS = 'programs'
    LOGIN = 'login'
    STUDENT_PORTAL = 'student_portal'
    TEACHER_PORTAL = 'teacher_portal'
    OFFICER_PORTAL = 'officer_portal'
    #shown by the portal before routing applies
    LOADING = 'loading'
    CONNECTION_ERROR = 'connection_error'


UNGUARDED_PANELS = {
    ViewTag.HOME: Panel.HOME,
    ViewTag.PROGRAMS: Panel.PROGRAMS,
    ViewTag.LOGIN: Panel.LOGIN,
}

#view -> (panel, roles allowed to see it)
PROTECTED_PANELS = {
    ViewTag.STUDENT: (Panel.STUDENT_PORTAL, frozenset({Role.STUDENT})),
    ViewTag.COORDINATOR: (Panel.TEACHER_PORTAL, frozenset({Role.COORDINATOR, Role.OFFICER})),
    ViewTag.OFFICER: (Panel.OFFICER_PORTAL, frozenset({Role.OFFICER})),
}


def route(tag, session=None):
    """Panel to render for a view tag, falling back to login when the
    session is missing or its role may not see the view."""
    tag = ViewTag(tag)
    if tag in UNGUARDED_PANELS:
        return UNGUARDED_PANELS[tag]

    panel, roles = PROTECTED_PANELS[tag]
    if session is not None and session.role in roles:
        return panel
    return Panel.LOGIN


def view_for_role(role):
    """Landing view right after login."""
    return ViewTag(Role(role).value)

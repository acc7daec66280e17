"""Login session with automatic logout after a period of inactivity.

A ``SessionManager`` holds at most one ``Session``. Logging in walks an
explicit, ordered list of ``LoginPath`` objects (officer, coordinator,
student) and the first path that recognises the credentials decides the
role. While logged in, every monitored interaction pushes the logout deadline
back to the full timeout; when the deadline passes the user is notified once
and logged out.

Time is injected: ``clock`` returns seconds and ``scheduler`` exposes
``call_later(delay, callback)`` returning a handle with ``cancel()``. The
default scheduler is the running asyncio loop.
"""
from dataclasses import dataclass
from enum import Enum
import asyncio
import logging
import time

from api_client import ApiError
from config import Config

logger = logging.getLogger(__name__)

ACTIVITY_EVENTS = frozenset({'mousedown', 'mousemove', 'keypress', 'scroll', 'touchstart', 'click'})


class Role(str, Enum):
    STUDENT = 'student'
    COORDINATOR = 'coordinator'
    OFFICER = 'officer'


class InvalidCredentials(Exception):
    pass


@dataclass
class Session:
    role: Role
    identity: dict
    expires_at: float

    @property
    def name(self):
        return self.identity.get('name', '')


@dataclass(frozen=True)
class LoginPath:
    """One verification source. ``verify`` returns the identity or None."""
    role: Role
    verify: object


class LoopScheduler:
    def __init__(self, loop=None):
        self.loop = loop

    def call_later(self, delay, callback):
        loop = self.loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


def build_login_paths(api, fallback_officers=()):
    """Verification paths in precedence order: officer, coordinator, student.

    Officers are checked first so an identifier shared with a coordinator or
    student resolves to the elevated role.
    """
    fallback_officers = list(fallback_officers)

    async def verify_officer(identifier, password):
        try:
            result = await api.officers.login(identifier, password)
        except ApiError:
            match = next((
                o for o in fallback_officers
                if identifier in (o.get('id'), o.get('username')) and password == o.get('password')
            ), None)
            if match is None:
                raise
            logger.warning(f'Officer API unreachable, accepted fallback credentials for {match["id"]}')
            return {'id': match['id'], 'name': 'Program Officer', 'role': match.get('role', 'officer')}
        return result.get('officer') if result.get('success') else None

    async def verify_coordinator(identifier, password):
        result = await api.coordinators.login(identifier, password)
        return result.get('coordinator') if result.get('success') else None

    async def verify_student(identifier, password):
        result = await api.students.login(identifier, password)
        return result.get('student') if result.get('success') else None

    return (
        LoginPath(Role.OFFICER, verify_officer),
        LoginPath(Role.COORDINATOR, verify_coordinator),
        LoginPath(Role.STUDENT, verify_student),
    )


class SessionManager:
    def __init__(self, login_paths, timeout=Config.INACTIVITY_TIMEOUT, clock=time.monotonic,
                 scheduler=None, notify=None):
        self.login_paths = tuple(login_paths)
        self.timeout = timeout
        self.clock = clock
        self.scheduler = scheduler or LoopScheduler()
        self.notify = notify or logger.warning
        self.session = None
        self._timer = None
        self._logout_listeners = []

    @property
    def is_logged_in(self):
        return self.session is not None

    def add_logout_listener(self, callback):
        self._logout_listeners.append(callback)

    async def login(self, identifier, password):
        """Try each path in order; raise InvalidCredentials when none match.

        A path whose source cannot be reached counts as no match.
        """
        for path in self.login_paths:
            try:
                identity = await path.verify(identifier, password)
            except ApiError as e:
                logger.info(f'{path.role.value.title()} login failed: {e}')
                continue
            if identity:
                return self.start(path.role, identity)

        raise InvalidCredentials('Invalid credentials')

    def start(self, role, identity):
        self._cancel_timer()
        self.session = Session(Role(role), identity, self.clock() + self.timeout)
        self._arm_timer()
        logger.info(f'{self.session.role.value} session started for {identity.get("id")}')
        return self.session

    def record_activity(self, event):
        """Rearm the idle timer for a monitored interaction event."""
        if event not in ACTIVITY_EVENTS:
            raise ValueError(f'Unknown activity event: {event}')
        if self.session is None:
            return False
        self._arm_timer()
        return True

    def remaining(self):
        if self.session is None:
            return None
        return self.session.expires_at - self.clock()

    def logout(self):
        self._cancel_timer()
        if self.session is None:
            return
        logger.info(f'{self.session.role.value} session ended for {self.session.identity.get("id")}')
        self.session = None
        for callback in self._logout_listeners:
            callback()

    def _arm_timer(self):
        self._cancel_timer()
        self.session.expires_at = self.clock() + self.timeout
        self._timer = self.scheduler.call_later(self.timeout, self._expire)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self):
        self._timer = None
        if self.session is None:
            return
        self.notify(f'You have been automatically logged out due to inactivity ({int(self.timeout // 60)} minutes).')
        self.logout()

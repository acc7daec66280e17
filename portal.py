"""Top of the portal: domain state, the session, the current view and the
handlers the role panels call.

State only changes after the server confirms an action. A failed action
raises an alert and leaves state as it was.
"""
from datetime import datetime
import asyncio
import logging
import time

from api_client import ApiError, PortalApi, map_report, parse_iso
from config import Config
from session_monitor import InvalidCredentials, Role, SessionManager, build_login_paths
from view_router import Panel, ViewTag, route, view_for_role

logger = logging.getLogger(__name__)

PROGRAM_FILTERS = ('all', 'upcoming', 'completed', 'my-programs')


def _id_sort_key(record):
    #numeric ids in numeric order, the rest after them
    record_id = str(record['id'])
    return (0, int(record_id), '') if record_id.isdigit() else (1, 0, record_id)


def _start_of(program):
    return parse_iso(program['startDate']).replace(tzinfo=None)


class PortalState:
    """Collections held by the portal, keyed by id where lookups matter."""

    def __init__(self):
        self.programs = []
        self.students = []
        self.coordinators = []
        self.departments = []
        self.reports = {}

    def find(self, collection, record_id):
        return next((r for r in getattr(self, collection) if r['id'] == record_id), None)

    def replace(self, collection, record):
        setattr(self, collection, [record if r['id'] == record['id'] else r for r in getattr(self, collection)])

    def remove(self, collection, record_id):
        setattr(self, collection, [r for r in getattr(self, collection) if r['id'] != record_id])

    def student_programs(self, student_id, search='', filter_type='all', now=None):
        """Programs for the student panel, newest first."""
        if filter_type not in PROGRAM_FILTERS:
            raise ValueError(f'Unknown program filter: {filter_type}')
        now = now or datetime.now()
        search = search.lower()

        def matches(program):
            if search and search not in program['title'].lower() \
                    and search not in (program.get('description') or '').lower():
                return False
            if filter_type == 'upcoming':
                return _start_of(program) >= now
            if filter_type == 'completed':
                return _start_of(program) < now
            if filter_type == 'my-programs':
                return student_id in program['participantIds']
            return True

        return sorted(filter(matches, self.programs), key=_start_of, reverse=True)

    def upcoming_programs(self, now=None):
        now = now or datetime.now()
        return sorted((p for p in self.programs if _start_of(p) >= now), key=_start_of)

    def search_students(self, term=''):
        term = term.lower()
        found = [
            s for s in self.students
            if term in s['name'].lower() or term in (s.get('department') or '').lower() or term in s['id'].lower()
        ]
        return sorted(found, key=_id_sort_key)

    def search_coordinators(self, term=''):
        term = term.lower()
        found = [
            c for c in self.coordinators
            if term in c['name'].lower() or term in (c.get('department') or '').lower() or term in c['id'].lower()
        ]
        return sorted(found, key=lambda c: c['name'].lower())

    def department_attendees(self, program_id, department):
        """Participants of a program from one department, by name."""
        program = self.find('programs', program_id)
        if program is None or not department:
            return []
        participants = set(program['participantIds'])
        students = sorted(
            (s for s in self.students if s.get('department') == department and s['id'] in participants),
            key=lambda s: s['name'].lower()
        )
        return [{'name': s['name']} for s in students]


class Portal:
    def __init__(self, api=None, config=Config, notify=None, clock=time.monotonic, scheduler=None):
        self.api = api or PortalApi(config.PORTAL_API_URL)
        self.state = PortalState()
        self.current_view = ViewTag.HOME
        self.is_loading = False
        self.loading_error = None
        self.notify = notify or logger.warning
        self._background = set()

        self.sessions = SessionManager(
            build_login_paths(self.api, config.FALLBACK_OFFICERS),
            timeout=config.INACTIVITY_TIMEOUT,
            clock=clock,
            scheduler=scheduler,
            notify=self.alert
        )
        self.sessions.add_logout_listener(self._on_logout)

    def alert(self, message):
        self.notify(message)

    @property
    def session(self):
        return self.sessions.session

    #loading
    async def load_initial_data(self):
        """Health check, then the four collections concurrently.

        Any failure fails the whole load and nothing is populated.
        """
        self.is_loading = True
        self.loading_error = None
        try:
            await self.api.health.check()
            programs, students, coordinators, departments = await asyncio.gather(
                self.api.programs.get_all(),
                self.api.students.get_all(),
                self.api.coordinators.get_all(),
                self.api.departments.get_all(),
            )
        except ApiError as e:
            logger.error(f'Failed to load initial data: {e}')
            self.loading_error = str(e) or 'Failed to connect to server'
            return False
        finally:
            self.is_loading = False

        self.state.programs = programs
        self.state.students = students
        self.state.coordinators = coordinators
        self.state.departments = departments

        try:
            reports = await self.api.reports.get_all()
        except ApiError as e:
            logger.warning(f'Student reports unavailable: {e}')
            reports = []
        self.state.reports = {r['studentId']: map_report(r) for r in reports}
        return True

    async def retry(self):
        return await self.load_initial_data()

    #views
    def navigate(self, tag):
        self.current_view = ViewTag(tag)

    def render(self):
        if self.is_loading:
            return Panel.LOADING
        if self.loading_error:
            return Panel.CONNECTION_ERROR
        return route(self.current_view, self.session)

    def interact(self, event):
        return self.sessions.record_activity(event)

    #session
    async def login(self, identifier, password):
        try:
            session = await self.sessions.login(identifier, password)
        except InvalidCredentials:
            self.alert('Invalid credentials')
            return None
        self.current_view = view_for_role(session.role)
        return session

    async def logout(self):
        self.sessions.logout()
        await self.flush()

    async def flush(self):
        """Wait for background work started by session events."""
        while self._background:
            await asyncio.gather(*list(self._background))

    def _on_logout(self):
        self.current_view = ViewTag.HOME
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning('No running event loop, server session left open')
            return
        task = loop.create_task(self._end_server_session())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _end_server_session(self):
        try:
            await self.api.logout()
        except ApiError as e:
            logger.warning(f'Server logout failed: {e}')

    #programs
    async def _refresh_reports(self, student_ids):
        student_ids = list(dict.fromkeys(student_ids))
        reports = await asyncio.gather(
            *(self.api.reports.get_by_student_id(s) for s in student_ids),
            return_exceptions=True
        )
        for student_id, report in zip(student_ids, reports):
            if isinstance(report, ApiError):
                #keep the local copy
                logger.warning(f'Failed to refresh report for student {student_id}: {report}')
                continue
            if isinstance(report, BaseException):
                raise report
            self.state.reports[student_id] = report

    async def add_program(self, program_data):
        try:
            program = await self.api.programs.create(program_data)
        except ApiError as e:
            logger.error(f'Failed to add program: {e}')
            self.alert('Failed to add program. Please try again.')
            return None
        self.state.programs = [program] + self.state.programs
        await self._refresh_reports(program['coordinatorIds'])
        return program

    async def edit_program(self, program_id, program_data):
        old = self.state.find('programs', program_id)
        try:
            program = await self.api.programs.update(program_id, program_data)
        except ApiError as e:
            logger.error(f'Failed to edit program: {e}')
            self.alert('Failed to edit program. Please try again.')
            return None
        self.state.replace('programs', program)
        previous = old['coordinatorIds'] if old else []
        await self._refresh_reports(previous + program['coordinatorIds'])
        return program

    async def delete_program(self, program_id):
        try:
            await self.api.programs.delete(program_id)
        except ApiError as e:
            logger.error(f'Failed to delete program: {e}')
            self.alert('Failed to delete program. Please try again.')
            return False
        self.state.remove('programs', program_id)
        return True

    async def set_participants(self, program_id, student_ids):
        """Replace a program's participants once the server accepts the list."""
        try:
            program = await self.api.programs.set_participants(program_id, student_ids)
        except ApiError as e:
            logger.error(f'Failed to update participants: {e}')
            self.alert('Failed to update participants. Please try again.')
            return None
        self.state.replace('programs', program)
        return program

    async def toggle_participant(self, program_id, student_id):
        program = self.state.find('programs', program_id)
        if program is None:
            return None
        selected = program['participantIds']
        if student_id in selected:
            selected = [s for s in selected if s != student_id]
        else:
            selected = selected + [student_id]
        return await self.set_participants(program_id, selected)

    async def toggle_all_participants(self, program_id, search=''):
        """Select every student matching the search, or deselect them if all
        are already selected."""
        program = self.state.find('programs', program_id)
        filtered = [s['id'] for s in self.state.search_students(search)]
        if program is None or not filtered:
            return program
        selected = program['participantIds']
        if all(s in selected for s in filtered):
            selected = [s for s in selected if s not in filtered]
        else:
            selected = list(dict.fromkeys(selected + filtered))
        return await self.set_participants(program_id, selected)

    async def enroll(self, program_id, enroll=True):
        if self.session is None or self.session.role != Role.STUDENT:
            return None
        student_id = self.session.identity['id']
        try:
            if enroll:
                program = await self.api.programs.enroll(program_id, student_id)
            else:
                program = await self.api.programs.unenroll(program_id, student_id)
        except ApiError as e:
            logger.error(f'Error updating enrollment: {e}')
            self.alert(str(e) or 'Failed to update enrollment. Please try again.')
            return None
        self.state.replace('programs', program)
        self.alert('Successfully enrolled in program!' if enroll else 'Successfully unenrolled from program!')
        return program

    #documents
    async def download_certificate(self, program_id):
        if self.session is None or self.session.role != Role.STUDENT:
            return None
        try:
            return await self.api.programs.certificate(program_id, self.session.identity['id'])
        except ApiError as e:
            logger.error(f'Failed to download certificate: {e}')
            self.alert(f'Failed to download certificate: {e}')
            return None

    async def download_attendance_sheet(self, program_id, department, attendees=None):
        program = self.state.find('programs', program_id)
        if attendees is None:
            attendees = self.state.department_attendees(program_id, department)
        if not department or program is None or not attendees:
            self.alert('Please select department, program, and add at least one attendee.')
            return None
        try:
            return await self.api.programs.attendance_sheet(program_id, department, attendees)
        except ApiError as e:
            logger.error(f'Failed to generate attendance sheet: {e}')
            self.alert('Failed to generate attendance sheet. Please try again.')
            return None

    #students
    async def add_student(self, student_data):
        try:
            student = await self.api.students.create(student_data)
        except ApiError as e:
            logger.error(f'Failed to add student: {e}')
            self.alert('Failed to add student. Please try again.')
            return None
        self.state.students = self.state.students + [student]
        return student

    async def edit_student(self, student_id, updates):
        try:
            student = await self.api.students.update(student_id, updates)
        except ApiError as e:
            logger.error(f'Failed to edit student: {e}')
            self.alert('Failed to edit student. Please try again.')
            return None
        self.state.replace('students', student)
        return student

    async def delete_student(self, student_id):
        try:
            await self.api.students.delete(student_id)
        except ApiError as e:
            logger.error(f'Failed to delete student: {e}')
            self.alert('Failed to delete student. Please try again.')
            return False

        self.state.remove('students', student_id)
        #server already dropped participation and report
        self.state.programs = [
            dict(p, participantIds=[i for i in p['participantIds'] if i != student_id])
            for p in self.state.programs
        ]
        self.state.reports.pop(student_id, None)
        return True

    async def upload_photo(self, filename, content, content_type):
        if self.session is None or self.session.role != Role.STUDENT:
            return None
        student_id = self.session.identity['id']
        try:
            url = await self.api.students.upload_photo(student_id, filename, content, content_type)
        except ApiError as e:
            logger.error(f'Error uploading photo: {e}')
            self.alert(f'Failed to upload photo: {e}')
            return None
        self.session.identity['profileImageUrl'] = url
        student = self.state.find('students', student_id)
        if student is not None:
            self.state.replace('students', dict(student, profileImageUrl=url))
        self.alert('Profile photo updated successfully!')
        return url

    #coordinators
    async def add_coordinator(self, coordinator_data):
        try:
            coordinator = await self.api.coordinators.create(coordinator_data)
        except ApiError as e:
            logger.error(f'Failed to add coordinator: {e}')
            self.alert('Failed to add coordinator. Please try again.')
            return None
        self.state.coordinators = self.state.coordinators + [coordinator]
        return coordinator

    async def edit_coordinator(self, coordinator_id, updates):
        try:
            coordinator = await self.api.coordinators.update(coordinator_id, updates)
        except ApiError as e:
            logger.error(f'Failed to edit coordinator: {e}')
            self.alert('Failed to edit coordinator. Please try again.')
            return None
        self.state.replace('coordinators', coordinator)
        return coordinator

    async def toggle_coordinator_access(self, coordinator_id):
        coordinator = self.state.find('coordinators', coordinator_id)
        if coordinator is None:
            return None
        try:
            updated = await self.api.coordinators.update(coordinator_id, {'isActive': not coordinator['isActive']})
        except ApiError as e:
            logger.error(f'Failed to toggle coordinator access: {e}')
            self.alert('Failed to update coordinator access. Please try again.')
            return None
        self.state.replace('coordinators', updated)
        return updated

    async def delete_coordinator(self, coordinator_id):
        try:
            await self.api.coordinators.delete(coordinator_id)
        except ApiError as e:
            logger.error(f'Failed to delete coordinator: {e}')
            self.alert('Failed to delete coordinator. Please try again.')
            return False
        self.state.remove('coordinators', coordinator_id)
        return True

    #departments
    async def add_department(self, name):
        try:
            department = await self.api.departments.create(name)
        except ApiError as e:
            logger.error(f'Failed to add department: {e}')
            self.alert('Failed to add department. Please try again.')
            return None
        self.state.departments = self.state.departments + [department]
        return department

    async def edit_department(self, department_id, new_name):
        old = self.state.find('departments', department_id)
        if old is None:
            return None
        try:
            department = await self.api.departments.update(department_id, new_name)
        except ApiError as e:
            logger.error(f'Failed to edit department: {e}')
            self.alert('Failed to edit department. Please try again.')
            return None
        self.state.replace('departments', department)
        self.state.students = [
            dict(s, department=department['name']) if s.get('department') == old['name'] else s
            for s in self.state.students
        ]
        return department

    async def toggle_department(self, department_id):
        department = self.state.find('departments', department_id)
        if department is None:
            return None
        try:
            updated = await self.api.departments.update(
                department_id, department['name'], not department['isActive'])
        except ApiError as e:
            logger.error(f'Failed to toggle department: {e}')
            self.alert('Failed to update department status. Please try again.')
            return None
        self.state.replace('departments', updated)
        return updated

    #reports
    async def _save_report(self, student_id, report):
        try:
            saved = await self.api.reports.update(student_id, report)
        except ApiError as e:
            logger.error(f'Failed to update student report: {e}')
            self.alert('Failed to update student report. Please try again.')
            return None
        self.state.reports[student_id] = saved
        return saved

    async def add_student_activity(self, student_id, activity):
        report = self.state.reports.get(student_id) or {'activities': [], 'coordinatedPrograms': []}
        new_activity = dict(activity, id=str(int(time.time() * 1000)),
                            createdAt=datetime.now().isoformat())
        return await self._save_report(student_id, {
            'activities': report['activities'] + [new_activity],
            'coordinatedPrograms': report['coordinatedPrograms'],
        })

    async def edit_student_activity(self, student_id, activity_id, updates):
        report = self.state.reports.get(student_id)
        if report is None:
            return None
        return await self._save_report(student_id, {
            'activities': [dict(a, **updates) if a['id'] == activity_id else a for a in report['activities']],
            'coordinatedPrograms': report['coordinatedPrograms'],
        })

    #officer
    async def update_officer_password(self, new_password):
        if self.session is None or self.session.role != Role.OFFICER:
            return False
        try:
            await self.api.officers.update(self.session.identity['id'], {'password': new_password})
        except ApiError as e:
            logger.error(f'Failed to update officer password: {e}')
            self.alert('Failed to update password. Please try again.')
            return False
        return True

    def user_info(self):
        if self.session is None:
            return None
        return {'name': self.session.name, 'type': self.session.role.value}

"""
Portal behaviour against a canned backend: initial load, login routing,
idle logout and the confirm-then-apply rule for actions.
"""
from datetime import datetime

import pytest

from api_client import PortalApi
from config import Config
from portal import Portal, PortalState
from view_router import Panel, ViewTag

BASE_URL = 'http://test/api'


def program_dto(program_id, start, participants=(), coordinator_ids=(), title=None):
    return {
        'id': program_id,
        'title': title or f'Program {program_id}',
        'description': '',
        'type': 'academic',
        'startDate': start,
        'endDate': start,
        'maxParticipants': 100,
        'registrationOpen': True,
        'department': 'Main Hall',
        'coordinator': 'Ravi',
        'participantIds': list(participants),
        'coordinatorIds': list(coordinator_ids),
        'createdAt': '2025-01-01T00:00:00',
        'updatedAt': '2025-01-01T00:00:00',
    }


STUDENTS = [
    {'id': '102', 'name': 'Bala', 'department': 'English'},
    {'id': '101', 'name': 'Asha', 'department': 'English'},
    {'id': '103', 'name': 'Chitra', 'department': 'Commerce'},
]


def seed(backend):
    backend.add('GET', '/api/health', {'status': 'ok', 'success': True})
    backend.add('GET', '/api/programs', [program_dto('1', '2025-03-01T09:00:00', participants=['101'])])
    backend.add('GET', '/api/students', STUDENTS)
    backend.add('GET', '/api/coordinators', [{'id': 'COORD1', 'name': 'Ravi', 'department': 'English',
                                              'isActive': True}])
    backend.add('GET', '/api/departments', [{'id': 'dept-1', 'name': 'English', 'isActive': True}])
    backend.add('GET', '/api/student-reports', [{'studentId': '101', 'activities': [], 'coordinatedPrograms': []}])
    for role in ('officers', 'coordinators', 'students'):
        backend.add('POST', f'/api/{role}/login', {'success': False})
    backend.add('POST', '/api/logout', {'success': True})


def sent(backend):
    return [(r.method, r.url.path) for r in backend.requests]


@pytest.fixture
def alerts():
    return []


@pytest.fixture
def portal(backend, scheduler, alerts):
    seed(backend)
    api = PortalApi(BASE_URL, transport=backend.transport())
    return Portal(api, notify=alerts.append, clock=scheduler.clock, scheduler=scheduler)


@pytest.mark.anyio
async def test_initial_load_populates_state(portal):
    assert await portal.load_initial_data() is True

    assert portal.render() is Panel.HOME
    assert [s['id'] for s in portal.state.students] == ['102', '101', '103']
    assert portal.state.programs[0]['date'] == '2025-03-01'
    assert portal.state.reports == {'101': {'activities': [], 'coordinatedPrograms': []}}


@pytest.mark.anyio
async def test_failed_programs_fetch_shows_connection_error(portal, backend):
    backend.fail('GET', '/api/programs')

    assert await portal.load_initial_data() is False

    assert portal.render() is Panel.CONNECTION_ERROR
    assert portal.loading_error == 'Internal error'
    assert portal.state.students == []
    assert portal.state.coordinators == []
    assert portal.state.departments == []


@pytest.mark.anyio
async def test_failed_health_check_skips_loading(portal, backend):
    backend.fail('GET', '/api/health', status=503, message='Service unavailable')

    assert await portal.load_initial_data() is False

    assert portal.render() is Panel.CONNECTION_ERROR
    paths = [r.url.path for r in backend.requests]
    assert paths == ['/api/health']


@pytest.mark.anyio
async def test_missing_reports_do_not_fail_load(portal, backend):
    backend.fail('GET', '/api/student-reports')

    assert await portal.load_initial_data() is True
    assert portal.state.reports == {}


@pytest.mark.anyio
async def test_retry_recovers(portal, backend):
    backend.fail('GET', '/api/programs')
    await portal.load_initial_data()

    backend.add('GET', '/api/programs', [])
    assert await portal.retry() is True
    assert portal.render() is Panel.HOME


@pytest.mark.anyio
async def test_login_lands_on_role_view(portal, backend):
    await portal.load_initial_data()
    backend.add('POST', '/api/coordinators/login', {'success': True, 'coordinator': {'id': 'COORD1', 'name': 'Ravi'}})

    session = await portal.login('COORD1', 'pw')

    assert session.role.value == 'coordinator'
    assert portal.current_view is ViewTag.COORDINATOR
    assert portal.render() is Panel.TEACHER_PORTAL
    assert portal.user_info() == {'name': 'Ravi', 'type': 'coordinator'}

    portal.navigate('officer')
    assert portal.render() is Panel.LOGIN


@pytest.mark.anyio
async def test_officer_precedence_through_portal(portal, backend):
    backend.add('POST', '/api/officers/login', {'success': True, 'officer': {'id': 'X1', 'name': 'Officer'}})
    backend.add('POST', '/api/coordinators/login', {'success': True, 'coordinator': {'id': 'X1', 'name': 'Coord'}})

    session = await portal.login('X1', 'pw')

    assert session.role.value == 'officer'
    assert portal.render() is Panel.OFFICER_PORTAL


@pytest.mark.anyio
async def test_invalid_credentials_alert(portal, alerts):
    assert await portal.login('nobody', 'pw') is None

    assert alerts == ['Invalid credentials']
    assert portal.session is None
    assert portal.current_view is ViewTag.HOME


@pytest.mark.anyio
async def test_idle_student_returned_home(portal, backend, scheduler, alerts):
    backend.add('POST', '/api/students/login', {'success': True, 'student': {'id': '101', 'name': 'Asha'}})
    await portal.login('101', 'pw')

    scheduler.advance(Config.INACTIVITY_TIMEOUT)

    assert portal.session is None
    assert portal.current_view is ViewTag.HOME
    assert len(alerts) == 1

    await portal.flush()
    assert sent(backend).count(('POST', '/api/logout')) == 1


@pytest.mark.anyio
async def test_interaction_keeps_session_alive(portal, backend, scheduler):
    backend.add('POST', '/api/students/login', {'success': True, 'student': {'id': '101', 'name': 'Asha'}})
    await portal.login('101', 'pw')

    scheduler.advance(Config.INACTIVITY_TIMEOUT - 1)
    assert portal.interact('keypress') is True
    scheduler.advance(Config.INACTIVITY_TIMEOUT - 1)

    assert portal.session is not None


@pytest.mark.anyio
async def test_explicit_logout_goes_home(portal, backend, scheduler):
    backend.add('POST', '/api/students/login', {'success': True, 'student': {'id': '101', 'name': 'Asha'}})
    await portal.login('101', 'pw')

    await portal.logout()

    assert portal.current_view is ViewTag.HOME
    assert scheduler.pending == []
    assert ('POST', '/api/logout') in sent(backend)


@pytest.mark.anyio
async def test_logout_survives_unreachable_server(portal, backend):
    backend.add('POST', '/api/officers/login', {'success': True, 'officer': {'id': 'OFFICER001', 'name': 'PO'}})
    backend.fail('POST', '/api/logout', status=503)
    await portal.login('OFFICER001', 'pw')

    await portal.logout()

    assert portal.session is None
    assert portal.current_view is ViewTag.HOME


@pytest.mark.anyio
async def test_failed_report_refresh_keeps_local_report(portal, backend, alerts):
    activity = {'id': 'a1', 'badge': 'green', 'title': 'Cleanup', 'content': 'Beach cleanup'}
    backend.add('GET', '/api/student-reports', [{'studentId': '101', 'activities': [activity],
                                                 'coordinatedPrograms': []}])
    await portal.load_initial_data()
    backend.add('PUT', '/api/programs/1', program_dto('1', '2025-03-01T09:00:00', coordinator_ids=['101']))
    backend.fail('GET', '/api/student-reports/101', status=503, message='Service unavailable')

    program = await portal.edit_program('1', {'title': 'Program 1', 'startDate': '2025-03-01T09:00:00',
                                              'coordinatorIds': ['101']})

    assert program['coordinatorIds'] == ['101']
    assert portal.state.reports['101'] == {'activities': [activity], 'coordinatedPrograms': []}


@pytest.mark.anyio
async def test_failed_create_leaves_state_unchanged(portal, backend, alerts):
    await portal.load_initial_data()
    backend.fail('POST', '/api/programs')

    result = await portal.add_program({'title': 'New', 'date': '2025-04-01', 'time': '10:00'})

    assert result is None
    assert alerts == ['Failed to add program. Please try again.']
    assert len(portal.state.programs) == 1


@pytest.mark.anyio
async def test_new_program_goes_first_and_refreshes_coordinator_reports(portal, backend):
    await portal.load_initial_data()
    created = program_dto('2', '2025-04-01T10:00:00', coordinator_ids=['102'])
    backend.add('POST', '/api/programs', created, status=201)
    entry = {'id': '2', 'title': 'Program 2'}
    backend.add('GET', '/api/student-reports/102', {'activities': [], 'coordinatedPrograms': [entry]})

    program = await portal.add_program({'title': 'Program 2', 'date': '2025-04-01', 'time': '10:00',
                                        'coordinatorIds': ['102']})

    assert [p['id'] for p in portal.state.programs] == ['2', '1']
    assert program['time'] == '10:00'
    assert portal.state.reports['102']['coordinatedPrograms'] == [entry]


@pytest.mark.anyio
async def test_participants_change_only_after_server_confirms(portal, backend, alerts):
    await portal.load_initial_data()
    backend.fail('PUT', '/api/programs/1/participants', status=400, message='Unknown students: 999')

    assert await portal.toggle_participant('1', '999') is None
    assert portal.state.find('programs', '1')['participantIds'] == ['101']
    assert alerts == ['Failed to update participants. Please try again.']

    backend.add('PUT', '/api/programs/1/participants',
                lambda body: program_dto('1', '2025-03-01T09:00:00', participants=body['participantIds']))
    await portal.toggle_participant('1', '102')
    assert portal.state.find('programs', '1')['participantIds'] == ['101', '102']


@pytest.mark.anyio
async def test_toggle_all_selects_then_deselects_filtered(portal, backend):
    await portal.load_initial_data()
    backend.add('PUT', '/api/programs/1/participants',
                lambda body: program_dto('1', '2025-03-01T09:00:00', participants=body['participantIds']))

    await portal.toggle_all_participants('1', search='english')
    assert portal.state.find('programs', '1')['participantIds'] == ['101', '102']

    await portal.toggle_all_participants('1', search='english')
    assert portal.state.find('programs', '1')['participantIds'] == []


@pytest.mark.anyio
async def test_department_rename_carries_to_students(portal, backend):
    await portal.load_initial_data()
    backend.add('PUT', '/api/departments/dept-1', {'id': 'dept-1', 'name': 'English Literature', 'isActive': True})

    await portal.edit_department('dept-1', 'English Literature')

    departments = {s['id']: s['department'] for s in portal.state.students}
    assert departments == {'101': 'English Literature', '102': 'English Literature', '103': 'Commerce'}


@pytest.mark.anyio
async def test_delete_student_clears_participation(portal, backend):
    await portal.load_initial_data()
    backend.add('DELETE', '/api/students/101', status=204)

    assert await portal.delete_student('101') is True

    assert portal.state.find('students', '101') is None
    assert portal.state.find('programs', '1')['participantIds'] == []
    assert '101' not in portal.state.reports


@pytest.mark.anyio
async def test_officer_password_needs_officer_session(portal, backend):
    assert await portal.update_officer_password('new-pass') is False

    backend.add('POST', '/api/officers/login', {'success': True, 'officer': {'id': 'OFFICER001', 'name': 'PO'}})
    backend.add('PUT', '/api/officers/OFFICER001', {'id': 'OFFICER001'})
    await portal.login('OFFICER001', 'pw')

    assert await portal.update_officer_password('new-pass') is True
    assert backend.requests[-1].url.path == '/api/officers/OFFICER001'


@pytest.mark.anyio
async def test_attendance_sheet_needs_attendees(portal, alerts):
    await portal.load_initial_data()

    assert await portal.download_attendance_sheet('1', 'Commerce') is None
    assert alerts == ['Please select department, program, and add at least one attendee.']


def test_student_program_filters():
    state = PortalState()
    state.programs = [
        {'id': '1', 'title': 'Blood Donation', 'description': '', 'startDate': '2025-01-10T09:00:00',
         'participantIds': ['101']},
        {'id': '2', 'title': 'Tree Planting', 'description': 'green campus', 'startDate': '2025-06-10T09:00:00',
         'participantIds': []},
        {'id': '3', 'title': 'Yoga Day', 'description': '', 'startDate': '2025-07-01T09:00:00',
         'participantIds': ['101']},
    ]
    now = datetime(2025, 5, 1)

    assert [p['id'] for p in state.student_programs('101', now=now)] == ['3', '2', '1']
    assert [p['id'] for p in state.student_programs('101', filter_type='upcoming', now=now)] == ['3', '2']
    assert [p['id'] for p in state.student_programs('101', filter_type='completed', now=now)] == ['1']
    assert [p['id'] for p in state.student_programs('101', filter_type='my-programs', now=now)] == ['3', '1']
    assert [p['id'] for p in state.student_programs('101', search='GREEN', now=now)] == ['2']
    assert [p['id'] for p in state.upcoming_programs(now=now)] == ['2', '3']

    with pytest.raises(ValueError):
        state.student_programs('101', filter_type='archived')


def test_student_search_sorts_numeric_ids():
    state = PortalState()
    state.students = [
        {'id': '20', 'name': 'Bala', 'department': 'English'},
        {'id': '3', 'name': 'Asha', 'department': 'English'},
        {'id': 'A7', 'name': 'Deepa', 'department': 'Commerce'},
    ]

    assert [s['id'] for s in state.search_students()] == ['3', '20', 'A7']
    assert [s['id'] for s in state.search_students('commerce')] == ['A7']


def test_department_attendees_from_participants():
    state = PortalState()
    state.students = STUDENTS
    state.programs = [{'id': '1', 'participantIds': ['102', '101', '103']}]

    assert state.department_attendees('1', 'English') == [{'name': 'Asha'}, {'name': 'Bala'}]
    assert state.department_attendees('missing', 'English') == []

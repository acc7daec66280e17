"""Async client for the portal REST API.

Each resource gets a small wrapper whose methods map the wire records to the
shapes the portal keeps in memory. There is no retry, batching or caching:
every call is one request, and any failure surfaces as ``ApiError``.
"""
from datetime import datetime, timedelta
import logging

import httpx

from config import Config

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A request that did not produce a 2xx response."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


def parse_iso(value):
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


class ApiClient:
    def __init__(self, base_url=None, transport=None, client=None):
        self.base_url = base_url or Config.PORTAL_API_URL
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def send(self, method, endpoint, **kwargs):
        try:
            response = await self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            raise ApiError(f'Failed to connect to server: {e}') from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            message = (body.get('error') or body.get('message')
                       or f'HTTP {response.status_code}: {response.reason_phrase}')
            raise ApiError(message, response.status_code)

        return response

    async def call(self, method, endpoint, **kwargs):
        response = await self.send(method, endpoint, **kwargs)
        if response.status_code == 204:
            return {}
        return response.json()

    async def download(self, method, endpoint, **kwargs):
        response = await self.send(method, endpoint, **kwargs)
        return response.content


#mapping
def map_program(dto):
    start = parse_iso(dto['startDate'])
    program = {
        'id': dto['id'],
        'title': dto['title'],
        'description': dto.get('description') or '',
        'type': dto.get('type'),
        'startDate': dto['startDate'],
        'endDate': dto['endDate'],
        'maxParticipants': dto.get('maxParticipants'),
        'registrationOpen': dto.get('registrationOpen'),
        'department': dto.get('department'),
        'coordinator': dto.get('coordinator') or '',
        'participantIds': list(dto.get('participantIds') or []),
        'coordinatorIds': list(dto.get('coordinatorIds') or []),
        'createdAt': dto['createdAt'],
        'updatedAt': dto.get('updatedAt') or dto['createdAt'],
    }
    #legacy fields
    program['date'] = dto['startDate'].split('T')[0]
    program['time'] = start.strftime('%H:%M')
    program['venue'] = dto.get('department')
    return program


def program_payload(data):
    if data.get('startDate'):
        start = parse_iso(data['startDate'])
    else:
        start = parse_iso(f'{data["date"]}T{data.get("time") or "00:00"}')
    end = parse_iso(data['endDate']) if data.get('endDate') else start + timedelta(hours=2)

    registration_open = data.get('registrationOpen')
    return {
        'title': data['title'],
        'description': data.get('description') or '',
        'type': data.get('type') or 'academic',
        'startDate': start.isoformat(),
        'endDate': end.isoformat(),
        'maxParticipants': 100 if data.get('maxParticipants') is None else data['maxParticipants'],
        'registrationOpen': True if registration_open is None else registration_open,
        'department': data.get('department') or data.get('venue') or 'General',
        'coordinator': data.get('coordinator') or '',
        'coordinatorIds': list(data.get('coordinatorIds') or []),
    }


def map_coordinator(dto):
    coordinator = dict(dto)
    coordinator['password'] = ''  #never exposed
    return coordinator


def map_report(dto):
    return {
        'activities': list(dto.get('activities') or []),
        'coordinatedPrograms': list(dto.get('coordinatedPrograms') or []),
    }


def empty_report():
    return {'activities': [], 'coordinatedPrograms': []}


class HealthApi:
    def __init__(self, client):
        self.client = client

    async def check(self):
        return await self.client.call('GET', '/health')


class OfficersApi:
    def __init__(self, client):
        self.client = client

    async def login(self, username, password):
        return await self.client.call('POST', '/officers/login', json={
            'username': username,
            'passwordHash': password,
        })

    async def get_all(self):
        return await self.client.call('GET', '/officers')

    async def create(self, officer):
        return await self.client.call('POST', '/officers', json=officer)

    async def update(self, officer_id, updates):
        return await self.client.call('PUT', f'/officers/{officer_id}', json=updates)


class CoordinatorsApi:
    def __init__(self, client):
        self.client = client

    async def login(self, coordinator_id, password):
        return await self.client.call('POST', '/coordinators/login', json={
            'id': coordinator_id,
            'password': password,
        })

    async def get_all(self):
        return [map_coordinator(c) for c in await self.client.call('GET', '/coordinators')]

    async def create(self, coordinator):
        name = coordinator['name']
        dto = await self.client.call('POST', '/coordinators', json={
            'name': name,
            'email': coordinator.get('email') or '.'.join(name.lower().split()) + '@college.edu',
            'phone': coordinator.get('phone') or '9999999999',
            'department': coordinator['department'],
            'position': coordinator.get('position') or 'Coordinator',
            'isActive': coordinator.get('isActive', True),
            'password': coordinator.get('password') or None,
        })
        return map_coordinator(dto)

    async def update(self, coordinator_id, updates):
        fields = ('name', 'email', 'phone', 'department', 'position', 'isActive', 'password')
        payload = {k: updates[k] for k in fields if updates.get(k) is not None}
        return map_coordinator(await self.client.call('PUT', f'/coordinators/{coordinator_id}', json=payload))

    async def delete(self, coordinator_id):
        await self.client.call('DELETE', f'/coordinators/{coordinator_id}')


class StudentsApi:
    def __init__(self, client):
        self.client = client

    async def login(self, student_id, password):
        return await self.client.call('POST', '/students/login', json={
            'id': student_id,
            'password': password,
        })

    async def get_all(self):
        return await self.client.call('GET', '/students')

    async def create(self, student):
        return await self.client.call('POST', '/students', json={
            'id': student['id'],
            'name': student['name'],
            'email': student.get('email') or '',
            'phone': student.get('phone') or '',
            'department': student['department'],
            'year': student.get('year') or '1',
            'enrollmentNumber': student.get('enrollmentNumber') or student['id'],
            'password': student.get('password') or None,
        })

    async def update(self, student_id, updates):
        fields = ('name', 'email', 'phone', 'department', 'year', 'enrollmentNumber', 'password')
        payload = {k: updates[k] for k in fields if updates.get(k) is not None}
        return await self.client.call('PUT', f'/students/{student_id}', json=payload)

    async def delete(self, student_id):
        await self.client.call('DELETE', f'/students/{student_id}')

    async def upload_photo(self, student_id, filename, content, content_type):
        result = await self.client.call(
            'POST', f'/students/{student_id}/photo',
            files={'photo': (filename, content, content_type)}
        )
        return result['profilePhotoUrl']


class ProgramsApi:
    def __init__(self, client):
        self.client = client

    async def get_all(self):
        return [map_program(p) for p in await self.client.call('GET', '/programs')]

    async def create(self, program):
        return map_program(await self.client.call('POST', '/programs', json=program_payload(program)))

    async def update(self, program_id, program):
        return map_program(await self.client.call('PUT', f'/programs/{program_id}', json=program_payload(program)))

    async def delete(self, program_id):
        await self.client.call('DELETE', f'/programs/{program_id}')

    async def set_participants(self, program_id, student_ids):
        dto = await self.client.call('PUT', f'/programs/{program_id}/participants', json={
            'participantIds': list(student_ids),
        })
        return map_program(dto)

    async def enroll(self, program_id, student_id):
        result = await self.client.call('POST', f'/programs/{program_id}/enroll/{student_id}')
        return map_program(result['program'])

    async def unenroll(self, program_id, student_id):
        result = await self.client.call('DELETE', f'/programs/{program_id}/enroll/{student_id}')
        return map_program(result['program'])

    async def certificate(self, program_id, student_id):
        return await self.client.download('GET', f'/programs/{program_id}/certificate/{student_id}')

    async def attendance_sheet(self, program_id, department, attendees=None):
        payload = {'department': department}
        if attendees is not None:
            payload['attendees'] = list(attendees)
        return await self.client.download('POST', f'/programs/{program_id}/attendance-sheet', json=payload)


class DepartmentsApi:
    def __init__(self, client):
        self.client = client

    async def get_all(self):
        return await self.client.call('GET', '/departments')

    async def create(self, name):
        return await self.client.call('POST', '/departments', json={'name': name, 'isActive': True})

    async def update(self, department_id, name, is_active=None):
        payload = {'name': name}
        if is_active is not None:
            payload['isActive'] = is_active
        return await self.client.call('PUT', f'/departments/{department_id}', json=payload)

    async def delete(self, department_id):
        await self.client.call('DELETE', f'/departments/{department_id}')


class StudentReportsApi:
    def __init__(self, client):
        self.client = client

    async def get_all(self):
        return await self.client.call('GET', '/student-reports')

    async def get_by_student_id(self, student_id):
        try:
            return map_report(await self.client.call('GET', f'/student-reports/{student_id}'))
        except ApiError as e:
            if e.status != 404:
                raise
            logger.debug(f'No report for student {student_id}: {e}')
            return empty_report()

    async def create(self, report):
        return await self.client.call('POST', '/student-reports', json=report)

    async def update(self, student_id, report):
        return map_report(await self.client.call('PUT', f'/student-reports/{student_id}', json=report))

    async def delete(self, student_id):
        await self.client.call('DELETE', f'/student-reports/{student_id}')

    async def document(self, student_id):
        return await self.client.download('GET', f'/student-reports/{student_id}/document')


class GalleryApi:
    def __init__(self, client):
        self.client = client

    async def albums(self):
        return await self.client.call('GET', '/gallery/albums')

    async def album(self, album_id):
        return await self.client.call('GET', f'/gallery/albums/{album_id}')

    async def create_album(self, name, parent_id=None):
        return await self.client.call('POST', '/gallery/albums', json={'name': name, 'parentId': parent_id})

    async def delete_album(self, album_id):
        await self.client.call('DELETE', f'/gallery/albums/{album_id}')

    async def upload(self, album_id, files):
        """``files`` is a list of ``(filename, content, content_type)`` tuples."""
        result = await self.client.call(
            'POST', f'/gallery/albums/{album_id}/media',
            files=[('files', f) for f in files]
        )
        return result['urls']

    async def delete_media(self, media_id):
        await self.client.call('DELETE', f'/gallery/media/{media_id}')


class PortalApi:
    """All resource clients sharing one HTTP connection pool."""

    def __init__(self, base_url=None, transport=None):
        self.client = ApiClient(base_url, transport=transport)
        self.health = HealthApi(self.client)
        self.officers = OfficersApi(self.client)
        self.coordinators = CoordinatorsApi(self.client)
        self.students = StudentsApi(self.client)
        self.programs = ProgramsApi(self.client)
        self.departments = DepartmentsApi(self.client)
        self.reports = StudentReportsApi(self.client)
        self.gallery = GalleryApi(self.client)

    async def logout(self):
        """End the server-side login held in this client's cookies."""
        return await self.client.call('POST', '/logout')

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.client.aclose()

from flask import Flask, request, jsonify, send_file, send_from_directory, url_for
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager, UserMixin, login_user, logout_user, current_user
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash, check_password_hash
from werkzeug.utils import secure_filename
from datetime import datetime, timedelta, timezone
import json
import os
import time
import uuid

import documents

app = Flask(__name__)
app.config.from_object(os.environ.get('PORTAL_CONFIG', 'config.DevelopmentConfig'))

db = SQLAlchemy(app)
login_manager = LoginManager()
login_manager.init_app(app)

ACTIVITY_BADGES = ('green', 'yellow')


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None


def parse_datetime(value):
    """ISO strings from the client, with or without a trailing Z."""
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def generate_id(model, prefix=''):
    #millisecond stamp, bumped until free
    stamp = int(time.time() * 1000)
    while db.session.get(model, f'{prefix}{stamp}') is not None:
        stamp += 1
    return f'{prefix}{stamp}'


def error_response(message, status=400):
    return jsonify({'error': message}), status


class JsonListColumn:
    """Descriptor exposing a Text column that stores a JSON list."""

    def __init__(self, column_name):
        self.column_name = column_name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return json.loads(getattr(obj, self.column_name) or '[]')

    def __set__(self, obj, value):
        setattr(obj, self.column_name, json.dumps(list(value)))


class PortalUser(UserMixin):
    user_type = None

    def get_id(self):
        return f'{self.user_type}:{self.id}'


class Officer(PortalUser, db.Model):
    user_type = 'officer'

    id = db.Column(db.String(50), primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120))
    role = db.Column(db.String(50), default='officer')
    is_active_flag = db.Column('is_active', db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'name': self.name,
            'email': self.email or '',
            'role': self.role,
            'isActive': self.is_active_flag,
            'createdAt': isoformat(self.created_at),
        }


class Coordinator(PortalUser, db.Model):
    user_type = 'coordinator'

    id = db.Column(db.String(50), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120))
    phone = db.Column(db.String(20))
    department = db.Column(db.String(100))
    position = db.Column(db.String(50), default='Coordinator')
    password = db.Column(db.String(255), nullable=False)
    is_active_flag = db.Column('is_active', db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email or '',
            'phone': self.phone or '',
            'department': self.department or '',
            'position': self.position,
            'isActive': self.is_active_flag,
            'createdAt': isoformat(self.created_at),
        }


class Student(PortalUser, db.Model):
    user_type = 'student'

    id = db.Column(db.String(50), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120))
    phone = db.Column(db.String(20))
    department = db.Column(db.String(100))
    year = db.Column(db.String(10), default='1')
    enrollment_number = db.Column(db.String(50))
    password = db.Column(db.String(255), nullable=False)
    profile_image = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'email': self.email or '',
            'phone': self.phone or '',
            'department': self.department or '',
            'year': self.year,
            'enrollmentNumber': self.enrollment_number or self.id,
            'createdAt': isoformat(self.created_at),
        }
        if self.profile_image:
            data['profileImageUrl'] = url_for('uploaded_file', filename=self.profile_image)
        return data


class Department(db.Model):
    id = db.Column(db.String(50), primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'isActive': self.is_active,
            'createdAt': isoformat(self.created_at),
        }


class Program(db.Model):
    id = db.Column(db.String(50), primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(db.String(50), default='academic')
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    max_participants = db.Column(db.Integer, default=100)
    registration_open = db.Column(db.Boolean, default=True)
    department = db.Column(db.String(100), default='General')
    coordinator = db.Column(db.String(100))
    participant_ids_json = db.Column(db.Text, default='[]')
    coordinator_ids_json = db.Column(db.Text, default='[]')
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    participant_ids = JsonListColumn('participant_ids_json')
    coordinator_ids = JsonListColumn('coordinator_ids_json')

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description or '',
            'type': self.type,
            'startDate': isoformat(self.start_date),
            'endDate': isoformat(self.end_date),
            'maxParticipants': self.max_participants,
            'registrationOpen': self.registration_open,
            'department': self.department,
            'coordinator': self.coordinator or '',
            'participantIds': self.participant_ids,
            'coordinatorIds': self.coordinator_ids,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }

    def coordinated_entry(self):
        """Shape stored in a student coordinator's report."""
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description or '',
            'date': self.start_date.strftime('%Y-%m-%d'),
            'time': self.start_date.strftime('%H:%M'),
            'venue': self.department or '',
            'createdAt': isoformat(self.created_at),
        }


class StudentReport(db.Model):
    student_id = db.Column(db.String(50), primary_key=True)
    activities_json = db.Column(db.Text, default='[]')
    coordinated_programs_json = db.Column(db.Text, default='[]')
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    activities = JsonListColumn('activities_json')
    coordinated_programs = JsonListColumn('coordinated_programs_json')

    def to_dict(self):
        student = db.session.get(Student, self.student_id)
        return {
            'id': self.student_id,
            'studentId': self.student_id,
            'studentName': student.name if student else '',
            'department': student.department if student else '',
            'year': student.year if student else '',
            'activities': self.activities,
            'coordinatedPrograms': self.coordinated_programs,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class GalleryAlbum(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey('gallery_album.id'))
    created_at = db.Column(db.DateTime, default=utcnow)

    albums = db.relationship('GalleryAlbum', cascade='all, delete-orphan',
                             backref=db.backref('parent', remote_side=[id]))
    media = db.relationship('GalleryMedia', cascade='all, delete-orphan', backref='album')

    def to_dict(self, nested=True):
        data = {
            'id': self.id,
            'name': self.name,
            'parentId': self.parent_id,
            'createdAt': isoformat(self.created_at),
        }
        if nested:
            data['albums'] = [a.to_dict(nested=False) for a in self.albums]
            data['media'] = [m.to_dict() for m in self.media]
        return data


class GalleryMedia(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    album_id = db.Column(db.Integer, db.ForeignKey('gallery_album.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    filename = db.Column(db.String(255), nullable=False)
    media_type = db.Column(db.String(10), nullable=False)  #image, video, pdf, text
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'albumId': self.album_id,
            'name': self.name,
            'url': url_for('uploaded_file', filename=self.filename),
            'type': self.media_type,
            'createdAt': isoformat(self.created_at),
        }


USER_MODELS = {model.user_type: model for model in (Officer, Coordinator, Student)}


@login_manager.user_loader
def load_user(user_id):
    user_type, _, key = user_id.partition(':')
    model = USER_MODELS.get(user_type)
    if model is None:
        return None
    return db.session.get(model, key)


@login_manager.unauthorized_handler
def unauthorized():
    return error_response('Login required!', 401)


@app.errorhandler(HTTPException)
def handle_http_error(e):
    return error_response(e.description, e.code)


@app.errorhandler(SQLAlchemyError)
def handle_database_error(e):
    db.session.rollback()
    app.logger.error(f'Database error: {e}')
    return error_response(f'Database error: {str(e)}', 500)


def officer_only():
    if not current_user.is_authenticated or current_user.user_type != 'officer':
        return error_response('Unauthorized!', 403)
    return None


def missing_fields(data, *fields):
    return [f for f in fields if not str(data.get(f) or '').strip()]


def allowed_image(file_storage):
    ext = os.path.splitext(file_storage.filename or '')[1].lower().lstrip('.')
    return (ext in app.config['ALLOWED_IMAGE_EXTENSIONS']
            and (file_storage.mimetype or '').startswith('image/'))


def classify_media(mimetype):
    mimetype = mimetype or ''
    if mimetype.startswith('video/'):
        return 'video'
    if mimetype == 'application/pdf':
        return 'pdf'
    if mimetype.startswith('text/'):
        return 'text'
    return 'image'


def save_upload(file_storage):
    """Store an uploaded file under a generated name and return that name."""
    original = secure_filename(file_storage.filename or '')
    ext = os.path.splitext(original)[1].lower()
    stored = f'{uuid.uuid4().hex}{ext}'

    upload_folder = app.config['UPLOAD_FOLDER']
    os.makedirs(upload_folder, exist_ok=True)
    file_storage.save(os.path.join(upload_folder, stored))
    return stored


def remove_upload(filename):
    if not filename:
        return
    path = os.path.join(app.config['UPLOAD_FOLDER'], filename)
    if os.path.exists(path):
        os.remove(path)


def docx_response(file_stream, filename):
    return send_file(
        file_stream,
        as_attachment=True,
        download_name=filename,
        mimetype=documents.DOCX_MIMETYPE
    )


@app.route('/api/health')
def health():
    return jsonify({'status': 'ok', 'message': 'NSS Portal API is running', 'success': True})


@app.route('/api/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(app.config['UPLOAD_FOLDER'], filename)


#login routes
@app.route('/api/officers/login', methods=['POST'])
def officer_login():
    data = request.get_json(silent=True) or {}
    username = data.get('username', '')
    password = data.get('passwordHash') or data.get('password') or ''

    officer = Officer.query.filter(
        (Officer.username == username) | (Officer.id == username)
    ).first()

    if officer and officer.is_active_flag and check_password_hash(officer.password, password):
        login_user(officer)
        app.logger.info(f'Officer {officer.id} logged in')
        return jsonify({'success': True, 'officer': officer.to_dict()})

    return jsonify({'success': False, 'message': 'Invalid credentials!'})


@app.route('/api/coordinators/login', methods=['POST'])
def coordinator_login():
    data = request.get_json(silent=True) or {}

    coordinator = db.session.get(Coordinator, data.get('id', ''))

    if (coordinator and coordinator.is_active_flag
            and check_password_hash(coordinator.password, data.get('password', ''))):
        login_user(coordinator)
        app.logger.info(f'Coordinator {coordinator.id} logged in')
        return jsonify({'success': True, 'coordinator': coordinator.to_dict()})

    return jsonify({'success': False, 'message': 'Invalid credentials!'})


@app.route('/api/students/login', methods=['POST'])
def student_login():
    data = request.get_json(silent=True) or {}

    student = db.session.get(Student, data.get('id', ''))

    if student and check_password_hash(student.password, data.get('password', '')):
        login_user(student)
        app.logger.info(f'Student {student.id} logged in')
        return jsonify({'success': True, 'student': student.to_dict()})

    return jsonify({'success': False, 'message': 'Invalid credentials!'})


@app.route('/api/session')
def current_session():
    if not current_user.is_authenticated:
        return error_response('Not logged in!', 401)
    return jsonify({'role': current_user.user_type, 'user': current_user.to_dict()})


@app.route('/api/logout', methods=['POST'])
def logout():
    if current_user.is_authenticated:
        logout_user()
    return jsonify({'success': True, 'message': 'Logged out successfully!'})


#officers
@app.route('/api/officers', methods=['GET', 'POST'])
def officers():
    if request.method == 'GET':
        return jsonify([o.to_dict() for o in Officer.query.order_by(Officer.created_at).all()])

    denied = officer_only()
    if denied:
        return denied

    data = request.get_json(silent=True) or {}
    missing = missing_fields(data, 'username', 'name')
    password = data.get('password') or data.get('passwordHash')
    if missing or not password:
        return error_response(f'Missing fields: {", ".join(missing or ["password"])}')

    if Officer.query.filter_by(username=data['username']).first():
        return error_response('Username already exists!', 409)

    officer = Officer(
        id=data.get('id') or generate_id(Officer, 'OFFICER'),
        username=data['username'],
        password=generate_password_hash(password),
        name=data['name'],
        email=data.get('email', ''),
        role=data.get('role') or 'officer',
        is_active_flag=data.get('isActive', True)
    )
    db.session.add(officer)
    db.session.commit()

    return jsonify(officer.to_dict()), 201


@app.route('/api/officers/<officer_id>', methods=['PUT'])
def update_officer(officer_id):
    denied = officer_only()
    if denied:
        return denied

    officer = db.get_or_404(Officer, officer_id, description='Officer not found!')
    data = request.get_json(silent=True) or {}

    for field in ('name', 'email', 'role'):
        if data.get(field) is not None:
            setattr(officer, field, data[field])
    if data.get('isActive') is not None:
        officer.is_active_flag = bool(data['isActive'])
    password = data.get('password') or data.get('passwordHash')
    if password:
        officer.password = generate_password_hash(password)

    db.session.commit()
    return jsonify(officer.to_dict())


#coordinators
def default_coordinator_email(name):
    return '.'.join(name.lower().split()) + '@college.edu'


@app.route('/api/coordinators', methods=['GET', 'POST'])
def coordinators():
    if request.method == 'GET':
        return jsonify([c.to_dict() for c in Coordinator.query.order_by(Coordinator.name).all()])

    data = request.get_json(silent=True) or {}
    missing = missing_fields(data, 'name', 'department')
    if missing:
        return error_response(f'Missing fields: {", ".join(missing)}')

    coordinator_id = data.get('id') or generate_id(Coordinator, 'COORD')
    if db.session.get(Coordinator, coordinator_id):
        return error_response('Coordinator ID already exists!', 409)

    coordinator = Coordinator(
        id=coordinator_id,
        name=data['name'],
        email=data.get('email') or default_coordinator_email(data['name']),
        phone=data.get('phone') or '9999999999',
        department=data['department'],
        position=data.get('position') or 'Coordinator',
        password=generate_password_hash(data.get('password') or coordinator_id),
        is_active_flag=data.get('isActive', True)
    )
    db.session.add(coordinator)
    db.session.commit()

    return jsonify(coordinator.to_dict()), 201


@app.route('/api/coordinators/<coordinator_id>', methods=['PUT', 'DELETE'])
def coordinator_detail(coordinator_id):
    coordinator = db.get_or_404(Coordinator, coordinator_id, description='Coordinator not found!')

    if request.method == 'DELETE':
        db.session.delete(coordinator)
        db.session.commit()
        return '', 204

    data = request.get_json(silent=True) or {}
    for field in ('name', 'email', 'phone', 'department', 'position'):
        if data.get(field) is not None:
            setattr(coordinator, field, data[field])
    if data.get('isActive') is not None:
        coordinator.is_active_flag = bool(data['isActive'])
    if data.get('password'):
        coordinator.password = generate_password_hash(data['password'])

    db.session.commit()
    return jsonify(coordinator.to_dict())


#students
@app.route('/api/students', methods=['GET', 'POST'])
def students():
    if request.method == 'GET':
        return jsonify([s.to_dict() for s in Student.query.order_by(Student.id).all()])

    data = request.get_json(silent=True) or {}
    missing = missing_fields(data, 'id', 'name', 'department')
    if missing:
        return error_response(f'Missing fields: {", ".join(missing)}')

    if db.session.get(Student, data['id']):
        return error_response('Student ID already exists!', 409)

    student = Student(
        id=data['id'],
        name=data['name'],
        email=data.get('email', ''),
        phone=data.get('phone', ''),
        department=data['department'],
        year=str(data.get('year') or '1'),
        enrollment_number=data.get('enrollmentNumber') or data['id'],
        password=generate_password_hash(data.get('password') or data['id'])
    )
    db.session.add(student)
    db.session.commit()

    return jsonify(student.to_dict()), 201


@app.route('/api/students/<student_id>', methods=['PUT', 'DELETE'])
def student_detail(student_id):
    student = db.get_or_404(Student, student_id, description='Student not found!')

    if request.method == 'DELETE':
        #drop from every participant list
        for program in Program.query.all():
            if student_id in program.participant_ids:
                program.participant_ids = [p for p in program.participant_ids if p != student_id]

        report = db.session.get(StudentReport, student_id)
        if report:
            db.session.delete(report)

        remove_upload(student.profile_image)
        db.session.delete(student)
        db.session.commit()
        return '', 204

    data = request.get_json(silent=True) or {}
    for field in ('name', 'email', 'phone', 'department'):
        if data.get(field) is not None:
            setattr(student, field, data[field])
    if data.get('year') is not None:
        student.year = str(data['year'])
    if data.get('enrollmentNumber') is not None:
        student.enrollment_number = data['enrollmentNumber']
    if data.get('password'):
        student.password = generate_password_hash(data['password'])

    db.session.commit()
    return jsonify(student.to_dict())


@app.route('/api/students/<student_id>/photo', methods=['POST'])
def upload_student_photo(student_id):
    student = db.get_or_404(Student, student_id, description='Student not found!')

    photo = request.files.get('photo')
    if photo is None or not photo.filename:
        return error_response('No photo uploaded!')
    if not allowed_image(photo):
        return error_response('Invalid file type. Please upload an image.')

    previous = student.profile_image
    student.profile_image = save_upload(photo)
    db.session.commit()
    remove_upload(previous)

    app.logger.info(f'Profile photo updated for student {student_id}')
    return jsonify({
        'success': True,
        'profilePhotoUrl': url_for('uploaded_file', filename=student.profile_image)
    })


#programs
def program_fields(data, existing=None):
    """Normalize create/update payloads, accepting the legacy date/time/venue form."""
    if data.get('startDate'):
        start = parse_datetime(data['startDate'])
    elif data.get('date'):
        start = parse_datetime(f'{data["date"]}T{data.get("time") or "00:00"}')
    elif existing is not None:
        start = existing.start_date
    else:
        raise ValueError('Start date is required!')

    if data.get('endDate'):
        end = parse_datetime(data['endDate'])
    elif existing is not None and not (data.get('startDate') or data.get('date')):
        end = existing.end_date
    else:
        end = start + timedelta(hours=2)

    if end < start:
        raise ValueError('End date cannot be before start date!')

    return {
        'title': data.get('title') or (existing.title if existing else None),
        'description': data.get('description', existing.description if existing else ''),
        'type': data.get('type') or (existing.type if existing else 'academic'),
        'start_date': start,
        'end_date': end,
        'max_participants': int(data['maxParticipants']) if data.get('maxParticipants') is not None
        else (existing.max_participants if existing else 100),
        'registration_open': data['registrationOpen'] if data.get('registrationOpen') is not None
        else (existing.registration_open if existing else True),
        'department': data.get('department') or data.get('venue') or (existing.department if existing else 'General'),
        'coordinator': data.get('coordinator', existing.coordinator if existing else ''),
    }


def add_coordinated_program(program, student_ids):
    entry = program.coordinated_entry()
    for student_id in student_ids:
        if db.session.get(Student, student_id) is None:
            app.logger.warning(f'Skipping unknown coordinator student {student_id} for program {program.id}')
            continue
        report = db.session.get(StudentReport, student_id)
        if report is None:
            report = StudentReport(student_id=student_id)
            db.session.add(report)
        others = [p for p in report.coordinated_programs if p.get('id') != program.id]
        report.coordinated_programs = [entry] + others


def remove_coordinated_program(program_id, student_ids):
    for student_id in student_ids:
        report = db.session.get(StudentReport, student_id)
        if report:
            report.coordinated_programs = [p for p in report.coordinated_programs if p.get('id') != program_id]


@app.route('/api/programs', methods=['GET', 'POST'])
def programs():
    if request.method == 'GET':
        return jsonify([p.to_dict() for p in Program.query.order_by(Program.start_date.desc()).all()])

    data = request.get_json(silent=True) or {}
    if missing_fields(data, 'title'):
        return error_response('Title is required!')

    try:
        fields = program_fields(data)
    except ValueError as e:
        return error_response(str(e))

    program_id = data.get('id') or generate_id(Program)
    if db.session.get(Program, program_id):
        return error_response('Program ID already exists!', 409)

    program = Program(id=program_id, **fields)
    program.participant_ids = []
    program.coordinator_ids = data.get('coordinatorIds') or []
    db.session.add(program)
    db.session.flush()

    add_coordinated_program(program, program.coordinator_ids)
    db.session.commit()

    app.logger.info(f'Program {program.id} created: {program.title}')
    return jsonify(program.to_dict()), 201


@app.route('/api/programs/<program_id>', methods=['PUT', 'DELETE'])
def program_detail(program_id):
    program = db.get_or_404(Program, program_id, description='Program not found!')

    if request.method == 'DELETE':
        db.session.delete(program)
        db.session.commit()
        return '', 204

    data = request.get_json(silent=True) or {}
    try:
        fields = program_fields(data, existing=program)
    except ValueError as e:
        return error_response(str(e))

    for key, value in fields.items():
        setattr(program, key, value)

    if data.get('coordinatorIds') is not None:
        remove_coordinated_program(program.id, program.coordinator_ids)
        program.coordinator_ids = data['coordinatorIds']
        add_coordinated_program(program, program.coordinator_ids)

    program.updated_at = utcnow()
    db.session.commit()
    return jsonify(program.to_dict())


@app.route('/api/programs/<program_id>/participants', methods=['PUT'])
def program_participants(program_id):
    program = db.get_or_404(Program, program_id, description='Program not found!')
    data = request.get_json(silent=True) or {}

    participant_ids = data.get('participantIds')
    if not isinstance(participant_ids, list):
        return error_response('participantIds must be a list!')

    #dedupe, keep order
    participant_ids = list(dict.fromkeys(str(p) for p in participant_ids))
    known = {s.id for s in Student.query.filter(Student.id.in_(participant_ids)).all()}
    unknown = [p for p in participant_ids if p not in known]
    if unknown:
        return error_response(f'Unknown students: {", ".join(unknown)}')

    program.participant_ids = participant_ids
    program.updated_at = utcnow()
    db.session.commit()
    return jsonify(program.to_dict())


@app.route('/api/programs/<program_id>/enroll/<student_id>', methods=['POST', 'DELETE'])
def program_enrollment(program_id, student_id):
    program = db.get_or_404(Program, program_id, description='Program not found!')
    db.get_or_404(Student, student_id, description='Student not found!')
    participants = program.participant_ids

    if request.method == 'POST':
        if student_id in participants:
            return error_response('Already enrolled in this program!')
        if not program.registration_open:
            return error_response('Registration is closed for this program!')
        if len(participants) >= program.max_participants:
            return error_response('Program is full!')
        program.participant_ids = participants + [student_id]
        message = 'Successfully enrolled in program!'
    else:
        if student_id not in participants:
            return error_response('Not enrolled in this program!')
        program.participant_ids = [p for p in participants if p != student_id]
        message = 'Successfully unenrolled from program!'

    program.updated_at = utcnow()
    db.session.commit()
    return jsonify({'success': True, 'message': message, 'program': program.to_dict()})


@app.route('/api/programs/<program_id>/certificate/<student_id>')
def program_certificate(program_id, student_id):
    program = db.get_or_404(Program, program_id, description='Program not found!')
    student = db.get_or_404(Student, student_id, description='Student not found!')

    if student_id not in program.participant_ids:
        return error_response('Certificates are only issued to participants!', 403)

    certificate = {
        'programId': program.id,
        'studentName': student.name,
        'studentDepartment': student.department,
        'programTitle': program.title,
        'date': program.start_date.strftime('%Y-%m-%d'),
        'time': program.start_date.strftime('%H:%M'),
        'venue': program.department,
        'coordinator': program.coordinator,
    }
    file_stream = documents.build_certificate(certificate, app.config.get('DOCX_TEMPLATE'))
    return docx_response(file_stream, documents.document_filename('Certificate', student.name, program.title))


@app.route('/api/programs/<program_id>/attendance-sheet', methods=['POST'])
def program_attendance_sheet(program_id):
    program = db.get_or_404(Program, program_id, description='Program not found!')
    data = request.get_json(silent=True) or {}
    department = (data.get('department') or '').strip()

    if data.get('attendees') is None and department:
        #department participants, by name
        participants = set(program.participant_ids)
        attendees = [
            {'name': s.name}
            for s in Student.query.filter_by(department=department).order_by(Student.name).all()
            if s.id in participants
        ]
    else:
        attendees = [
            {'name': a['name'].strip(), 'remark': (a.get('remark') or '').strip() or None}
            for a in data.get('attendees') or []
            if (a.get('name') or '').strip()
        ]

    if not department or not attendees:
        return error_response('Please select department, program, and add at least one attendee.')

    program_info = {
        'title': program.title,
        'date': program.start_date.strftime('%Y-%m-%d'),
        'time': program.start_date.strftime('%H:%M'),
        'venue': program.department,
        'coordinator': program.coordinator,
    }
    file_stream = documents.build_attendance_sheet(department, program_info, attendees,
                                                   app.config.get('DOCX_TEMPLATE'))
    return docx_response(file_stream, documents.document_filename(department, program.title, 'Attendance'))


#departments
@app.route('/api/departments', methods=['GET', 'POST'])
def departments():
    if request.method == 'GET':
        return jsonify([d.to_dict() for d in Department.query.order_by(Department.name).all()])

    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return error_response('Department name is required!')
    if Department.query.filter_by(name=name).first():
        return error_response('Department already exists!', 409)

    department = Department(
        id=data.get('id') or generate_id(Department, 'dept-'),
        name=name,
        is_active=data.get('isActive', True)
    )
    db.session.add(department)
    db.session.commit()

    return jsonify(department.to_dict()), 201


@app.route('/api/departments/<department_id>', methods=['PUT', 'DELETE'])
def department_detail(department_id):
    department = db.get_or_404(Department, department_id, description='Department not found!')

    if request.method == 'DELETE':
        db.session.delete(department)
        db.session.commit()
        return '', 204

    data = request.get_json(silent=True) or {}
    new_name = (data.get('name') or '').strip()

    if new_name and new_name != department.name:
        if Department.query.filter_by(name=new_name).first():
            return error_response('Department already exists!', 409)
        #rename carries over to students
        Student.query.filter_by(department=department.name).update({'department': new_name})
        department.name = new_name

    if data.get('isActive') is not None:
        department.is_active = bool(data['isActive'])

    db.session.commit()
    return jsonify(department.to_dict())


#student reports
def clean_activities(activities):
    cleaned = []
    for activity in activities or []:
        if activity.get('badge') not in ACTIVITY_BADGES:
            raise ValueError(f'Badge must be one of: {", ".join(ACTIVITY_BADGES)}')
        cleaned.append({
            'id': str(activity.get('id') or uuid.uuid4().hex),
            'badge': activity['badge'],
            'title': activity.get('title', ''),
            'content': activity.get('content', ''),
            'createdAt': activity.get('createdAt') or isoformat(utcnow()),
        })
    return cleaned


def apply_report(report, data):
    if 'activities' in data:
        report.activities = clean_activities(data['activities'])
    if 'coordinatedPrograms' in data:
        report.coordinated_programs = data['coordinatedPrograms'] or []


@app.route('/api/student-reports', methods=['GET', 'POST'])
def student_reports():
    if request.method == 'GET':
        return jsonify([r.to_dict() for r in StudentReport.query.all()])

    data = request.get_json(silent=True) or {}
    student_id = data.get('studentId')
    if not student_id:
        return error_response('studentId is required!')
    db.get_or_404(Student, student_id, description='Student not found!')
    if db.session.get(StudentReport, student_id):
        return error_response('Report already exists!', 409)

    report = StudentReport(student_id=student_id)
    try:
        apply_report(report, data)
    except ValueError as e:
        return error_response(str(e))

    db.session.add(report)
    db.session.commit()
    return jsonify(report.to_dict()), 201


@app.route('/api/student-reports/<student_id>', methods=['GET', 'PUT', 'DELETE'])
def student_report_detail(student_id):
    report = db.session.get(StudentReport, student_id)

    if request.method == 'GET':
        if report is None:
            return error_response('Report not found!', 404)
        return jsonify(report.to_dict())

    if request.method == 'DELETE':
        if report is None:
            return error_response('Report not found!', 404)
        db.session.delete(report)
        db.session.commit()
        return '', 204

    #PUT creates the report on first write
    db.get_or_404(Student, student_id, description='Student not found!')
    if report is None:
        report = StudentReport(student_id=student_id)
        db.session.add(report)

    try:
        apply_report(report, request.get_json(silent=True) or {})
    except ValueError as e:
        db.session.rollback()
        return error_response(str(e))

    db.session.commit()
    return jsonify(report.to_dict())


@app.route('/api/student-reports/<student_id>/document')
def student_report_document(student_id):
    student = db.get_or_404(Student, student_id, description='Student not found!')
    report = db.session.get(StudentReport, student_id)
    report_data = report.to_dict() if report else {'activities': [], 'coordinatedPrograms': []}

    file_stream = documents.build_student_report(student.to_dict(), report_data,
                                                 app.config.get('DOCX_TEMPLATE'))
    return docx_response(file_stream, documents.document_filename(student.name, 'Activity_Report'))


#gallery
@app.route('/api/gallery/albums', methods=['GET', 'POST'])
def gallery_albums():
    if request.method == 'GET':
        albums = GalleryAlbum.query.filter_by(parent_id=None).order_by(GalleryAlbum.created_at).all()
        return jsonify([a.to_dict() for a in albums])

    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return error_response('Album name is required!')

    parent_id = data.get('parentId')
    if parent_id is not None:
        db.get_or_404(GalleryAlbum, parent_id, description='Parent album not found!')

    album = GalleryAlbum(name=name, parent_id=parent_id)
    db.session.add(album)
    db.session.commit()
    return jsonify(album.to_dict()), 201


@app.route('/api/gallery/albums/<int:album_id>', methods=['GET', 'DELETE'])
def gallery_album_detail(album_id):
    album = db.get_or_404(GalleryAlbum, album_id, description='Album not found!')

    if request.method == 'GET':
        return jsonify(album.to_dict())

    filenames = []
    pending = [album]
    while pending:
        current = pending.pop()
        filenames.extend(m.filename for m in current.media)
        pending.extend(current.albums)

    db.session.delete(album)
    db.session.commit()
    for filename in filenames:
        remove_upload(filename)
    return '', 204


@app.route('/api/gallery/albums/<int:album_id>/media', methods=['POST'])
def gallery_upload(album_id):
    album = db.get_or_404(GalleryAlbum, album_id, description='Album not found!')

    files = [f for f in request.files.getlist('files') if f.filename]
    if not files:
        return error_response('No files uploaded!')

    items = []
    for file_storage in files:
        item = GalleryMedia(
            album=album,
            name=file_storage.filename,
            filename=save_upload(file_storage),
            media_type=classify_media(file_storage.mimetype)
        )
        db.session.add(item)
        items.append(item)
    db.session.commit()

    app.logger.info(f'{len(items)} file(s) uploaded to album {album.id}')
    return jsonify({
        'success': True,
        'urls': [url_for('uploaded_file', filename=i.filename) for i in items],
        'media': [i.to_dict() for i in items]
    }), 201


@app.route('/api/gallery/media/<int:media_id>', methods=['DELETE'])
def gallery_media_detail(media_id):
    item = db.get_or_404(GalleryMedia, media_id, description='Media not found!')
    filename = item.filename
    db.session.delete(item)
    db.session.commit()
    remove_upload(filename)
    return '', 204


def create_default_records():
    """Create the default officer account and departments"""
    if not Officer.query.first():
        username = app.config['DEFAULT_OFFICER_USERNAME']
        officer = Officer(
            id=username,
            username=username,
            password=generate_password_hash(app.config['DEFAULT_OFFICER_PASSWORD']),
            name='Program Officer',
            email='officer@college.edu',
            role='super admin'
        )
        db.session.add(officer)

    for name in app.config['DEFAULT_DEPARTMENTS']:
        if not Department.query.filter_by(name=name).first():
            db.session.add(Department(id=generate_id(Department, 'dept-'), name=name))
            db.session.flush()

    db.session.commit()


if __name__ == '__main__':
    with app.app_context():
        db.create_all()
        create_default_records()
    app.run(port=3001)

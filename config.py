import os

basedir = os.path.abspath(os.path.dirname(__file__))

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'your-secret-key-here')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///nssportal.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    UPLOAD_FOLDER = os.path.join(basedir, 'uploads')
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024
    ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
    DOCX_TEMPLATE = os.path.join(basedir, 'templates_docs', 'template.docx')

    #client side
    PORTAL_API_URL = os.environ.get('PORTAL_API_URL', 'http://localhost:3001/api')
    INACTIVITY_TIMEOUT = 30 * 60  #seconds
    FALLBACK_OFFICERS = []  #[{'id':..., 'username':..., 'password':..., 'role':...}]

    DEFAULT_OFFICER_USERNAME = 'OFFICER001'
    DEFAULT_OFFICER_PASSWORD = os.environ.get('OFFICER_PASSWORD', 'NSS@OFFICER2025')
    DEFAULT_DEPARTMENTS = ['Computer Science', 'Commerce', 'English', 'Mathematics']

class DevelopmentConfig(Config):
    DEBUG = True

class ProductionConfig(Config):
    DEBUG = False

class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    DOCX_TEMPLATE = None

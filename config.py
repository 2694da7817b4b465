import os


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key')

    # Backend REST API
    API_BASE_URL = os.environ.get('API_BASE_URL', 'http://localhost:5000')
    API_TOKEN = os.environ.get('API_TOKEN')
    API_TIMEOUT_SECONDS = float(os.environ.get('API_TIMEOUT_SECONDS', '30'))

    # Responses are fresh for 5 minutes unless invalidated
    QUERY_STALE_SECONDS = float(os.environ.get('QUERY_STALE_SECONDS', '300'))

    ADMIN_PAGE_SIZE = int(os.environ.get('ADMIN_PAGE_SIZE', '10'))
    ADMIN_EMAIL_DOMAIN = os.environ.get('ADMIN_EMAIL_DOMAIN', '@chadlaw.co.uk')

    LOGIN_URL = os.environ.get('LOGIN_URL', '/api/login')
    LOGIN_REDIRECT_DELAY_MS = 500

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    API_BASE_URL = 'http://backend.test'
    API_TOKEN = None
    LOG_LEVEL = 'DEBUG'

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('FARMAID_SECRET_KEY') or 'replace-this-with-a-secure-secret-in-production'

DEBUG = (os.environ.get('FARMAID_DEBUG', '1').strip().lower() in ('1', 'true', 'yes'))

ALLOWED_HOSTS = [h.strip() for h in (os.environ.get('FARMAID_ALLOWED_HOSTS') or 'localhost,127.0.0.1,testserver').split(',') if h.strip()]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'dashboard',
    'complaints',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'dashboard.middleware.LoginAttemptMiddleware',
]

ROOT_URLCONF = 'farmaid_site.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
                'dashboard.context_processors.sidebar',
            ],
        },
    },
]

WSGI_APPLICATION = 'farmaid_site.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('FARMAID_DB_PATH') or BASE_DIR / 'db.sqlite3',
    }
}

AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'Asia/Manila'

USE_I18N = True

USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

MEDIA_URL = '/media/'
MEDIA_ROOT = Path(os.environ.get('FARMAID_MEDIA_ROOT') or BASE_DIR / 'media')

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LOGIN_URL = 'dashboard:login'

# === Logging ===
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '[{asctime}] {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'dashboard': {
            'handlers': ['console'],
            'level': os.environ.get('FARMAID_LOG_LEVEL') or 'INFO',
        },
        'complaints': {
            'handlers': ['console'],
            'level': os.environ.get('FARMAID_LOG_LEVEL') or 'INFO',
        },
    },
}

# === FarmAid ===
# Demo bypass: this email signs in with any password (session flag only, no auth user).
FARMAID_DEMO_ADMIN_EMAIL = os.environ.get('FARMAID_DEMO_ADMIN_EMAIL') or 'admin@farmaid.gov'
FARMAID_MAX_UPLOAD_BYTES = int(os.environ.get('FARMAID_MAX_UPLOAD_BYTES') or 5 * 1024 * 1024)
FARMAID_NOTIFICATIONS_LIMIT = int(os.environ.get('FARMAID_NOTIFICATIONS_LIMIT') or 10)
FARMAID_USERS_LIMIT = int(os.environ.get('FARMAID_USERS_LIMIT') or 20)
FARMAID_CURRENCY_SYMBOL = '₱'

"""
Back-office Service - Django Settings Configuration

Everything external (courier credentials, warehouse address, messaging
provider, admin allow-list) is read from the environment here and nowhere
else. `returns.config.get_config()` turns these values into the config
object the components receive.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Security
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-change-this')
DEBUG = os.getenv('DEBUG', 'True') == 'True'
ALLOWED_HOSTS = [h.strip() for h in os.getenv('ALLOWED_HOSTS', '*').split(',') if h.strip()]


# ============================================================
# APPLICATION DEFINITION
# ============================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third party apps
    'rest_framework',
    'rest_framework.authtoken',  # Bearer / ?token= auth for invoices and admin calls
    'drf_spectacular',

    # Our apps
    'returns',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'backoffice.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'backoffice.wsgi.application'


# ============================================================
# DATABASE CONFIGURATION
# ============================================================

DATABASES = {
    'default': {
        'ENGINE': os.getenv('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.getenv('DB_NAME', BASE_DIR / 'db.sqlite3'),
        'USER': os.getenv('DB_USER', ''),
        'PASSWORD': os.getenv('DB_PASSWORD', ''),
        'HOST': os.getenv('DB_HOST', ''),
        'PORT': os.getenv('DB_PORT', ''),
    }
}


# ============================================================
# PASSWORD VALIDATION
# ============================================================

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# ============================================================
# INTERNATIONALIZATION
# ============================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Asia/Kolkata'
USE_I18N = True
USE_TZ = True


# ============================================================
# STATIC FILES
# ============================================================

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# ============================================================
# DJANGO REST FRAMEWORK
# ============================================================

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'returns.authentication.BearerTokenAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'returns.permissions.IsBackofficeAdmin',
    ],

    # Admin actions are human-triggered; keep a generous ceiling anyway
    'DEFAULT_THROTTLE_CLASSES': [
        'rest_framework.throttling.UserRateThrottle',
    ],
    'DEFAULT_THROTTLE_RATES': {
        'user': os.getenv('API_USER_RATE', '300/hour'),
    },

    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
        'rest_framework.renderers.BrowsableAPIRenderer',
    ],

    # Every error leaves as {"kind": ..., "error": ...}
    'EXCEPTION_HANDLER': 'returns.errors.backoffice_exception_handler',

    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',

    'DATETIME_FORMAT': '%Y-%m-%d %H:%M:%S',
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Back-office API',
    'DESCRIPTION': 'Reverse shipments, refund decisions and invoices',
    'VERSION': '1.0.0',
}


# ============================================================
# CACHE CONFIGURATION
# ============================================================
# Only used by DRF throttling

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'backoffice-cache',
        'TIMEOUT': 300,
    }
}


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FILE = os.getenv('LOG_FILE', '')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'loggers': {
        'returns': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': True,
        },
    },
}

if LOG_FILE:
    LOGGING['handlers']['file'] = {
        'class': 'logging.FileHandler',
        'filename': LOG_FILE,
        'formatter': 'json',
    }
    LOGGING['loggers']['returns']['handlers'].append('file')


# ============================================================
# COURIER (XPRESSBEES) CONFIGURATION
# ============================================================
# Reverse pickups are booked against the XpressBees shipment API.
# Numeric values stay raw strings; the payload builder parses them leniently.

XPRESSBEES = {
    'BASE_URL': os.getenv('XPRESSBEES_BASE_URL', 'https://shipment.xpressbees.com'),
    'USERNAME': os.getenv('XPRESSBEES_USERNAME', ''),
    'PASSWORD': os.getenv('XPRESSBEES_PASSWORD', ''),
    'DEFAULT_WEIGHT_KG': os.getenv('XPRESSBEES_DEFAULT_WEIGHT', '0.7'),
    'DEFAULT_LENGTH_CM': os.getenv('XPRESSBEES_DEFAULT_LENGTH', '30'),
    'DEFAULT_BREADTH_CM': os.getenv('XPRESSBEES_DEFAULT_BREADTH', '20'),
    'DEFAULT_HEIGHT_CM': os.getenv('XPRESSBEES_DEFAULT_HEIGHT', '10'),
    'AUTO_PICKUP': os.getenv('XPRESSBEES_AUTO_PICKUP', 'yes'),
    'TIMEOUT_SECONDS': os.getenv('XPRESSBEES_TIMEOUT', '30'),
}

# Consignee of every reverse shipment
WAREHOUSE = {
    'WAREHOUSE_NAME': os.getenv('PICKUP_WAREHOUSE_NAME', 'Megance WH1'),
    'NAME': os.getenv('PICKUP_NAME', 'Megance'),
    'PHONE': os.getenv('PICKUP_PHONE', '8882132169'),
    'EMAIL': os.getenv('PICKUP_EMAIL', 'support@megance.com'),
    'ADDRESS': os.getenv('PICKUP_ADDRESS', 'A-51, First floor, Meera Bagh, Paschim Vihar'),
    'CITY': os.getenv('PICKUP_CITY', 'NEW DELHI'),
    'STATE': os.getenv('PICKUP_STATE', 'DELHI'),
    'PINCODE': os.getenv('PICKUP_PINCODE', '110087'),
    'GST_NUMBER': os.getenv('PICKUP_GST', os.getenv('XPRESSBEES_GST_NUMBER', '')),
}


# ============================================================
# MESSAGING (TWILIO WHATSAPP) CONFIGURATION
# ============================================================

TWILIO = {
    'ACCOUNT_SID': os.getenv('TWILIO_ACCOUNT_SID', ''),
    'AUTH_TOKEN': os.getenv('TWILIO_AUTH_TOKEN', ''),
    'WHATSAPP_FROM': os.getenv('TWILIO_WHATSAPP_FROM', ''),
    'RETURNS_REJECTED_SID': os.getenv('TWILIO_RETURNS_USER_REJECTED_SID', ''),
    'RETURNS_TEMPLATE_SID': os.getenv('TWILIO_RETURNS_USER_TEMPLATE_SID', ''),
    'API_BASE_URL': os.getenv('TWILIO_API_BASE_URL', 'https://api.twilio.com'),
}


# ============================================================
# BACK-OFFICE ACCESS
# ============================================================
# Staff users are always admins; these e-mails are admins too

BACKOFFICE_ADMIN_EMAILS = [
    e.strip().lower()
    for e in os.getenv('BACKOFFICE_ADMIN_EMAILS', os.getenv('OWNER_EMAIL', 'megancetech@gmail.com')).split(',')
    if e.strip()
]

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

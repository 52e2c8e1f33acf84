from pathlib import Path
import os

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-change-me-later")
DEBUG = os.environ.get("DJANGO_DEBUG", "1") == "1"

ALLOWED_HOSTS = [
    h.strip()
    for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "127.0.0.1,localhost,testserver").split(",")
    if h.strip()
]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "registry",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",

    "ipsentinel.middleware.RequestIdMiddleware",

    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "ipsentinel.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.messages.context_processors.messages",
                "registry.context_processors.console",
            ],
        },
    },
]

WSGI_APPLICATION = "ipsentinel.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

# Console login lives only as long as the browser session.
SESSION_EXPIRE_AT_BROWSER_CLOSE = True

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True

USE_TZ = True

STATIC_URL = "/static/"
STATICFILES_DIRS = [BASE_DIR / "static"]
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Hosted store (PostgREST / Supabase REST interface)
SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")
SUPABASE_TIMEOUT_SEC = int(os.environ.get("SUPABASE_TIMEOUT_SEC", "10"))

IP_TABLE = os.environ.get("IPSENTINEL_IP_TABLE", "ip_records")
USER_TABLE = os.environ.get("IPSENTINEL_USER_TABLE", "app_users")
ACCESS_LOG_TABLE = os.environ.get("IPSENTINEL_ACCESS_LOG_TABLE", "access_logs")

# Hardcoded console credentials
ADMIN_USERNAME = os.environ.get("IPSENTINEL_ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.environ.get("IPSENTINEL_ADMIN_PASSWORD", "admin")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,

    "filters": {
        "add_request_id": {
            "()": "ipsentinel.log_filters.RequestIdFilter",
        }
    },

    "formatters": {
        "sentinel_fmt": {
            "format": "[%(asctime)s] %(levelname)s req=%(request_id)s %(name)s: %(message)s"
        }
    },

    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "sentinel_fmt",
            "filters": ["add_request_id"],
        }
    },

    "loggers": {

        "ipsentinel": {
            "handlers": ["console"],
            "level": os.environ.get("IPSENTINEL_LOG_LEVEL", "INFO"),
            "propagate": False,
        },

        "django.request": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },

        "django.server": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },

    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
}

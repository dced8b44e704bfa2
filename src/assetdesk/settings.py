"""Django settings for the AssetDesk project."""

import os
from pathlib import Path

from django.urls import reverse_lazy

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get(
    "SECRET_KEY", "dev-secret-key-change-in-production"
)

DEBUG = os.environ.get("DEBUG", "True").lower() in ("true", "1", "yes")

ALLOWED_HOSTS = [
    h.strip()
    for h in os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")
]
# Always allow localhost for internal health checks (e.g. Docker healthcheck)
for _h in ("localhost", "127.0.0.1"):
    if _h not in ALLOWED_HOSTS:
        ALLOWED_HOSTS.append(_h)

INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_celery_beat",
    "accounts",
    "assets",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "django_ratelimit.middleware.RatelimitMiddleware",
]

ROOT_URLCONF = "assetdesk.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "assetdesk.wsgi.application"

AUTH_USER_MODEL = "accounts.CustomUser"

# Database configuration
DATABASE_URL = os.environ.get("DATABASE_URL", "")
if DATABASE_URL:
    import re

    match = re.match(
        r"postgres://(?P<user>[^:]+):(?P<password>[^@]+)@"
        r"(?P<host>[^:]+):(?P<port>\d+)/(?P<name>.+)",
        DATABASE_URL,
    )
    if match:
        DATABASES = {
            "default": {
                "ENGINE": "django.db.backends.postgresql",
                "NAME": match.group("name"),
                "USER": match.group("user"),
                "PASSWORD": match.group("password"),
                "HOST": match.group("host"),
                "PORT": match.group("port"),
            }
        }
    else:
        DATABASES = {
            "default": {
                "ENGINE": "django.db.backends.sqlite3",
                "NAME": BASE_DIR / "db.sqlite3",
            }
        }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation."
        "UserAttributeSimilarityValidator"
    },
    {
        "NAME": "django.contrib.auth.password_validation."
        "MinimumLengthValidator"
    },
    {
        "NAME": "django.contrib.auth.password_validation."
        "CommonPasswordValidator"
    },
    {
        "NAME": "django.contrib.auth.password_validation."
        "NumericPasswordValidator"
    },
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

MEDIA_URL = "media/"
MEDIA_ROOT = BASE_DIR / "media"

# S3 storage for ticket attachments
USE_S3 = os.environ.get("USE_S3", "False").lower() in ("true", "1", "yes")

if USE_S3:
    STORAGES = {
        "default": {
            "BACKEND": "assetdesk.storage.ProxiedS3Storage",
            "OPTIONS": {
                "bucket_name": os.environ.get(
                    "AWS_STORAGE_BUCKET_NAME", "ticket-attachments"
                ),
                "access_key": os.environ.get("AWS_ACCESS_KEY_ID"),
                "secret_key": os.environ.get("AWS_SECRET_ACCESS_KEY"),
                "endpoint_url": os.environ.get("AWS_S3_ENDPOINT_URL"),
                "region_name": os.environ.get("AWS_S3_REGION_NAME"),
                "default_acl": None,
                "querystring_auth": False,
                "file_overwrite": False,
                "location": "media",
                "custom_domain": os.environ.get("AWS_S3_CUSTOM_DOMAIN"),
            },
        },
        "staticfiles": {
            "BACKEND": "whitenoise.storage."
            "CompressedManifestStaticFilesStorage",
        },
    }
    MEDIA_URL = "/media/"
else:
    STORAGES = {
        "default": {
            "BACKEND": "django.core.files.storage.FileSystemStorage",
        },
        "staticfiles": {
            "BACKEND": "whitenoise.storage."
            "CompressedManifestStaticFilesStorage",
        },
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Custom rate limit view returns 429 with Retry-After header
RATELIMIT_VIEW = "assetdesk.views.ratelimited_view"

AUTHENTICATION_BACKENDS = [
    "accounts.backends.EmployeeIdentifierBackend",
]

LOGIN_URL = "admin:login"

# CSRF/session security for production
if not DEBUG:
    CSRF_COOKIE_SECURE = True
    SESSION_COOKIE_SECURE = True
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    CSRF_TRUSTED_ORIGINS = [f"https://{h}" for h in ALLOWED_HOSTS]

SESSION_COOKIE_AGE = int(os.environ.get("SESSION_COOKIE_AGE", "1209600"))
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = "Lax"

# Email configuration
EMAIL_BACKEND = os.environ.get(
    "EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend"
)
EMAIL_HOST = os.environ.get("EMAIL_HOST", "")
EMAIL_PORT = int(os.environ.get("EMAIL_PORT", "587"))
EMAIL_HOST_USER = os.environ.get("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.environ.get("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = os.environ.get("EMAIL_USE_TLS", "True").lower() in (
    "true",
    "1",
    "yes",
)
DEFAULT_FROM_EMAIL = os.environ.get("DEFAULT_FROM_EMAIL", "noreply@localhost")

# Use console backend in DEBUG mode if SMTP not configured
if DEBUG and not EMAIL_HOST:
    EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

# Site configuration
SITE_NAME = os.environ.get("SITE_NAME", "AssetDesk")
SITE_URL = os.environ.get("SITE_URL", "")

# Workflow configuration
REQUEST_ID_PREFIX = os.environ.get("REQUEST_ID_PREFIX", "REQ")
TICKET_ID_PREFIX = os.environ.get("TICKET_ID_PREFIX", "TKT")
TICKET_ATTACHMENT_CONTENT_TYPE = os.environ.get(
    "TICKET_ATTACHMENT_CONTENT_TYPE", "image/png"
)
TICKET_ATTACHMENT_MAX_BYTES = int(
    os.environ.get("TICKET_ATTACHMENT_MAX_BYTES", str(5 * 1024 * 1024))
)
DIGEST_LOOKBACK_DAYS = int(os.environ.get("DIGEST_LOOKBACK_DAYS", "7"))
MAINTENANCE_REMINDER_DAYS = int(
    os.environ.get("MAINTENANCE_REMINDER_DAYS", "14")
)

# Cache configuration
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.redis.RedisCache",
        "LOCATION": os.environ.get("CACHE_URL", "redis://localhost:6379/1"),
    }
}

# Celery configuration
CELERY_BROKER_URL = os.environ.get(
    "CELERY_BROKER_URL", "redis://localhost:6379/0"
)
CELERY_RESULT_BACKEND = os.environ.get(
    "CELERY_RESULT_BACKEND", "redis://localhost:6379/0"
)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"

# django-unfold configuration
UNFOLD = {
    "SITE_TITLE": SITE_NAME,
    "SITE_HEADER": SITE_NAME,
    "SITE_SYMBOL": "inventory_2",
    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": False,
        "navigation": [
            {
                "items": [
                    {
                        "title": "Dashboard",
                        "icon": "dashboard",
                        "link": reverse_lazy("admin:index"),
                    },
                ],
            },
            {
                "title": "Assets",
                "icon": "inventory_2",
                "collapsible": True,
                "items": [
                    {
                        "title": "Assets",
                        "icon": "package_2",
                        "link": reverse_lazy("admin:assets_asset_changelist"),
                    },
                    {
                        "title": "Allocations",
                        "icon": "swap_horiz",
                        "link": reverse_lazy(
                            "admin:assets_allocation_changelist"
                        ),
                    },
                    {
                        "title": "Transfers",
                        "icon": "move_down",
                        "link": reverse_lazy(
                            "admin:assets_transferrequest_changelist"
                        ),
                    },
                    {
                        "title": "Maintenance",
                        "icon": "build",
                        "link": reverse_lazy(
                            "admin:assets_maintenancerecord_changelist"
                        ),
                    },
                ],
            },
            {
                "title": "Workflows",
                "icon": "assignment",
                "collapsible": True,
                "items": [
                    {
                        "title": "Asset Requests",
                        "icon": "shopping_cart",
                        "link": reverse_lazy(
                            "admin:assets_assetrequest_changelist"
                        ),
                    },
                    {
                        "title": "Tickets",
                        "icon": "support_agent",
                        "link": reverse_lazy("admin:assets_ticket_changelist"),
                    },
                    {
                        "title": "History",
                        "icon": "history",
                        "link": reverse_lazy(
                            "admin:assets_historyrecord_changelist"
                        ),
                    },
                ],
            },
            {
                "title": "Organisation",
                "icon": "corporate_fare",
                "collapsible": True,
                "items": [
                    {
                        "title": "Departments",
                        "icon": "business",
                        "link": reverse_lazy(
                            "admin:assets_department_changelist"
                        ),
                    },
                    {
                        "title": "Users",
                        "icon": "person",
                        "link": reverse_lazy(
                            "admin:accounts_customuser_changelist"
                        ),
                    },
                    {
                        "title": "Notification Settings",
                        "icon": "notifications",
                        "link": reverse_lazy(
                            "admin:assets_notificationsetting_changelist"
                        ),
                    },
                    {
                        "title": "Email Log",
                        "icon": "mail",
                        "link": reverse_lazy(
                            "admin:accounts_emaillog_changelist"
                        ),
                    },
                ],
            },
            {
                "title": "Scheduled Tasks",
                "icon": "schedule",
                "collapsible": True,
                "items": [
                    {
                        "title": "Periodic Tasks",
                        "icon": "event_repeat",
                        "link": reverse_lazy(
                            "admin:django_celery_beat_periodictask_changelist"
                        ),
                    },
                    {
                        "title": "Crontabs",
                        "icon": "calendar_clock",
                        "link": reverse_lazy(
                            "admin:django_celery_beat"
                            "_crontabschedule"
                            "_changelist"
                        ),
                    },
                ],
            },
        ],
    },
}

# Logging: workflow transitions are logged at INFO by the app loggers
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "accounts": {
            "handlers": ["console"],
            "level": os.environ.get("APP_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "assets": {
            "handlers": ["console"],
            "level": os.environ.get("APP_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}

# Startup validation
from django.core.exceptions import ImproperlyConfigured

_missing = []

# In production, SECRET_KEY must be explicitly set
if not DEBUG and SECRET_KEY == "dev-secret-key-change-in-production":
    _missing.append("SECRET_KEY")

# In production, DATABASE_URL must be set
if not DEBUG and not DATABASE_URL:
    _missing.append("DATABASE_URL")

# ALLOWED_HOSTS must be explicitly set in production
if not DEBUG and ALLOWED_HOSTS == ["localhost", "127.0.0.1"]:
    _missing.append("ALLOWED_HOSTS")

# S3 credentials required when USE_S3 is True in production
if USE_S3 and not DEBUG:
    if not os.environ.get("AWS_ACCESS_KEY_ID"):
        _missing.append("AWS_ACCESS_KEY_ID")
    if not os.environ.get("AWS_SECRET_ACCESS_KEY"):
        _missing.append("AWS_SECRET_ACCESS_KEY")
    if not os.environ.get("AWS_STORAGE_BUCKET_NAME"):
        _missing.append("AWS_STORAGE_BUCKET_NAME")

if _missing:
    raise ImproperlyConfigured(
        f"Missing required environment variable(s): {', '.join(_missing)}."
    )

# templatestore/settings.py
"""
Template Store Django settings

CHANGE LOG
----------
2025-09-14 • Stripe reconciliation knobs
- Added STOREFRONT_STRIPE_TIMEOUT / STOREFRONT_STRIPE_READ_RETRIES (bounded upstream calls).
- Added STOREFRONT_REVOKE_ON_REFUND / STOREFRONT_ALERT_ON_ORDER_MISS feature flags.

2025-09-02 • Test-run defaults
- Dev-only SECRET_KEY and placeholder Stripe credentials when running tests,
  so `manage.py test` / pytest do not need a populated .env.

2025-08-28 • Logging encoding → settings-level (UTF-8)
- RotatingFileHandler uses encoding='utf-8' so greps stay stable after rotation.
"""

from pathlib import Path
import os
import sys

from dotenv import load_dotenv

# ========= Base / Env =========
BASE_DIR = Path(__file__).resolve().parent.parent

ENV_CANDIDATES = [
    BASE_DIR / ".env",          # Local: project root
    BASE_DIR.parent / ".env",   # Local: repo root (if settings/ nested)
]
for _env in ENV_CANDIDATES:
    if _env.exists():
        load_dotenv(_env)
        break
else:
    load_dotenv()  # no-op if missing

# manage.py test / pytest-django
TESTING = (len(sys.argv) > 1 and sys.argv[1] == "test") or "pytest" in sys.modules

# ========= Secret Key =========
DJANGO_SECRET_KEY = os.getenv("DJANGO_SECRET_KEY")
if not DJANGO_SECRET_KEY:
    if not TESTING:
        raise ValueError("DJANGO_SECRET_KEY must be set in .env file")
    DJANGO_SECRET_KEY = "templatestore-test-only-secret-key"
SECRET_KEY = DJANGO_SECRET_KEY

DEBUG = os.getenv("DEBUG", "False") == "True"

# ========= Hosts / CSRF / Security =========
ALLOWED_HOSTS = [
    "127.0.0.1",
    "localhost",
    "testserver",
] + (os.getenv("ADDITIONAL_HOSTS", "").split(",") if os.getenv("ADDITIONAL_HOSTS") else [])

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SESSION_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_SECURE = not DEBUG

# ========= Installed apps =========
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "corsheaders",
    "rest_framework",
    "anymail",
    "storefront",
]

# ========= Middleware =========
MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# ========= URL / Templates / WSGI =========
ROOT_URLCONF = "templatestore.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "templatestore.wsgi.application"

# ========= Database =========
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
        "OPTIONS": {"timeout": 30},
    }
}

# ========= Password validation =========
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# ========= I18N =========
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# ========= Security headers =========
SECURE_CONTENT_TYPE_NOSNIFF = True

if not DEBUG and not TESTING:
    SECURE_SSL_REDIRECT = True
    SECURE_HSTS_SECONDS = 31536000
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True

# ========= Static / Media =========
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {
        "BACKEND": (
            "django.contrib.staticfiles.storage.StaticFilesStorage"
            if TESTING
            else "whitenoise.storage.CompressedManifestStaticFilesStorage"
        ),
    },
}

MEDIA_URL = "/media/"
MEDIA_ROOT = BASE_DIR / "media"

# ========= Defaults =========
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ========= CORS / CSRF (single source of truth) =========
STOREFRONT_ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("STOREFRONT_ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]
CORS_ALLOWED_ORIGINS = list(STOREFRONT_ALLOWED_ORIGINS)
CSRF_TRUSTED_ORIGINS = list(STOREFRONT_ALLOWED_ORIGINS)
CORS_ALLOW_CREDENTIALS = True  # session cookie travels with checkout/download calls

# ========= Session config =========
SESSION_COOKIE_AGE = 60 * 60 * 24 * 7
SESSION_SAVE_EVERY_REQUEST = True

# ========= REST framework =========
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "EXCEPTION_HANDLER": "storefront.views._core.drf_exception_handler",
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 50,
}

# ========= Email (Mailgun via Anymail preferred) =========
EMAIL_BACKEND = os.getenv(
    "DJANGO_EMAIL_BACKEND",
    "anymail.backends.mailgun.EmailBackend"
)

ANYMAIL = {
    "MAILGUN_API_KEY": os.getenv("MAILGUN_API_KEY", ""),
    "MAILGUN_SENDER_DOMAIN": os.getenv("MAILGUN_DOMAIN", ""),
    "MAILGUN_API_URL": os.getenv("ANYMAIL_MAILGUN_API_URL", "https://api.mailgun.net/v3"),
}

EMAIL_TIMEOUT = int(os.getenv("EMAIL_TIMEOUT", "10"))
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "Template Store <no-reply@mg.yourdomain.com>")
SERVER_EMAIL = os.getenv("SERVER_EMAIL", DEFAULT_FROM_EMAIL)
ADMINS = [
    ("Store Owner", a.strip())
    for a in os.getenv("STOREFRONT_ADMIN_EMAILS", "").split(",")
    if a.strip()
]

# ========= Logging =========
LOG_DIR = BASE_DIR / "logs"
LOG_DIR.mkdir(exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "file": {
            "level": "INFO",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": LOG_DIR / "storefront.log",
            "maxBytes": 1024 * 1024 * 15,
            "backupCount": 10,
            "formatter": "verbose",
            "encoding": "utf-8",
        },
        "console": {
            "level": "INFO",
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "storefront": {
            "handlers": ["file", "console"],
            "level": "INFO",
            "propagate": True,
        },
        "django": {
            "handlers": ["file"],
            "level": "ERROR",
            "propagate": True,
        },
        "django.core.mail": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

# ========= Stripe =========
DEPLOY_BASE_URL = os.getenv("DEPLOY_BASE_URL", "http://localhost:3000").rstrip("/")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY") or ("sk_test_placeholder" if TESTING else None)
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET") or ("whsec_test_placeholder" if TESTING else None)

STOREFRONT_SUCCESS_URL = os.getenv("STOREFRONT_SUCCESS_URL", f"{DEPLOY_BASE_URL}/payment/success")
STOREFRONT_CANCEL_URL = os.getenv("STOREFRONT_CANCEL_URL", f"{DEPLOY_BASE_URL}/payment/cancel")
STOREFRONT_CURRENCY = os.getenv("STOREFRONT_CURRENCY", "usd").lower()
STOREFRONT_STRIPE_TIMEOUT = float(os.getenv("STOREFRONT_STRIPE_TIMEOUT", "10"))
STOREFRONT_STRIPE_READ_RETRIES = int(os.getenv("STOREFRONT_STRIPE_READ_RETRIES", "2"))
STOREFRONT_OWNER_EMAIL = os.getenv("STOREFRONT_OWNER_EMAIL", "")
STOREFRONT_REVOKE_ON_REFUND = os.getenv("STOREFRONT_REVOKE_ON_REFUND", "false").strip().lower() == "true"
STOREFRONT_ALERT_ON_ORDER_MISS = os.getenv("STOREFRONT_ALERT_ON_ORDER_MISS", "false").strip().lower() == "true"
STOREFRONT_CHECKOUT_RATE_LIMIT_PER_MIN = int(os.getenv("STOREFRONT_CHECKOUT_RATE_LIMIT_PER_MIN", "20"))

if TESTING:
    EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

from .settings import *  # noqa: F401,F403


DEBUG = True
SECRET_KEY = SECRET_KEY or "test-key"

# Local test environment: no whitenoise, no manifest storage.
MIDDLEWARE = [m for m in MIDDLEWARE if m != "whitenoise.middleware.WhiteNoiseMiddleware"]
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.path.join(BASE_DIR, "db.sqlite3"),
        # File-backed so threaded tests share one database.
        "TEST": {"NAME": os.path.join(BASE_DIR, "test_db.sqlite3")},
        # Writers take the lock at BEGIN; concurrent completions queue instead of failing.
        "OPTIONS": {"transaction_mode": "IMMEDIATE", "timeout": 20},
    }
}
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
BAKERY_ALLOW_PRODUCTION_SHORTFALL = True
BAKERY_ALLOW_BAKE_SHEET_SHORTFALL = False

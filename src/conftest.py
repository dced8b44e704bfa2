"""Shared pytest fixtures for AssetDesk tests."""

import pytest

from django.conf import settings
from django.test import Client

# Use local filesystem storage for tests (avoids S3 credential errors)
settings.STORAGES["default"] = {
    "BACKEND": "django.core.files.storage.FileSystemStorage",
}
settings.STORAGES["staticfiles"] = {
    "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
}

# Run Celery tasks synchronously in tests
settings.CELERY_TASK_ALWAYS_EAGER = True
settings.CELERY_TASK_EAGER_PROPAGATES = True

# Use in-memory cache for tests (avoids Redis connection errors)
settings.CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"


@pytest.fixture(autouse=True)
def _clear_cache():
    """Clear the in-memory cache before each test.

    Prevents rate-limit counters (django_ratelimit) from bleeding
    across tests.
    """
    from django.core.cache import cache

    cache.clear()


@pytest.fixture(autouse=True)
def _media_root(tmp_path, settings):
    settings.MEDIA_ROOT = tmp_path / "media"


from assets.factories import (  # noqa: E402
    AssetFactory,
    DepartmentFactory,
    UserFactory,
)
from assets.services.permissions import ActorContext  # noqa: E402

# --- Department fixtures ---


@pytest.fixture
def department(db):
    return DepartmentFactory(name="Engineering")


@pytest.fixture
def other_department(db):
    return DepartmentFactory(name="Finance")


# --- User fixtures ---


@pytest.fixture
def password():
    return "testpass123!"


@pytest.fixture
def user(db, password, department):
    return UserFactory(
        username="employee",
        email="employee@example.com",
        display_name="Erin Employee",
        password=password,
        department=department,
    )


@pytest.fixture
def second_user(db, password, department):
    return UserFactory(
        username="colleague",
        email="colleague@example.com",
        display_name="Casey Colleague",
        password=password,
        department=department,
    )


@pytest.fixture
def outsider(db, password, other_department):
    return UserFactory(
        username="outsider",
        email="outsider@example.com",
        display_name="Olive Outsider",
        password=password,
        department=other_department,
    )


@pytest.fixture
def admin_user(db, password, department):
    return UserFactory(
        username="admin",
        email="admin@example.com",
        display_name="Ada Admin",
        password=password,
        role="admin",
        department=department,
        is_staff=True,
    )


@pytest.fixture
def super_admin(db, password, department):
    return UserFactory(
        username="root",
        email="root@example.com",
        display_name="Sam Super",
        password=password,
        role="super_admin",
        department=department,
        is_staff=True,
        is_superuser=True,
    )


@pytest.fixture
def hr_user(db, password, department):
    return UserFactory(
        username="hr",
        email="hr@example.com",
        display_name="Harper HR",
        password=password,
        role="hr",
        department=department,
    )


@pytest.fixture
def dept_head(db, password, department):
    return UserFactory(
        username="head",
        email="head@example.com",
        display_name="Drew Head",
        password=password,
        role="department_head",
        department=department,
    )


@pytest.fixture
def financer(db, password, other_department):
    return UserFactory(
        username="finance",
        email="finance@example.com",
        display_name="Frankie Finance",
        password=password,
        role="financer",
        department=other_department,
    )


# --- Actor fixtures ---


@pytest.fixture
def actor_for():
    return ActorContext.from_user


@pytest.fixture
def user_actor(user):
    return ActorContext.from_user(user)


@pytest.fixture
def admin_actor(admin_user):
    return ActorContext.from_user(admin_user)


@pytest.fixture
def super_actor(super_admin):
    return ActorContext.from_user(super_admin)


@pytest.fixture
def hr_actor(hr_user):
    return ActorContext.from_user(hr_user)


@pytest.fixture
def head_actor(dept_head):
    return ActorContext.from_user(dept_head)


# --- Client fixtures ---


@pytest.fixture
def client_logged_in(client, user, password):
    client.login(username=user.username, password=password)
    return client


@pytest.fixture
def admin_client(admin_user, password):
    # Separate session, so tests can mix it with client_logged_in
    client = Client()
    client.login(username=admin_user.username, password=password)
    return client


# --- Core model fixtures ---


@pytest.fixture
def asset(db, department):
    return AssetFactory(
        name="ThinkPad T14",
        asset_tag="LT-0001",
        department=department,
    )


@pytest.fixture
def second_asset(db, department):
    return AssetFactory(
        name="ThinkPad T14 #2",
        asset_tag="LT-0002",
        department=department,
    )

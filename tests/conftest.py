import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_RECLAIM_ASYNC", "false")

from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import doclib.models  # noqa: E402,F401
from doclib.api.deps import get_db  # noqa: E402
from doclib.db import Base, enable_sqlite_foreign_keys  # noqa: E402
from doclib.main import app  # noqa: E402
from doclib.models import AccessType  # noqa: E402
from doclib.schemas.files import FileItemCreate, Translation  # noqa: E402
from doclib.schemas.hierarchy import (  # noqa: E402
    CategoryCreate,
    DepartmentCreate,
    SectionCreate,
    TitleTranslation,
)
from doclib.services.files import FileAssets, FileItems  # noqa: E402
from doclib.services.hierarchy import categories, departments, sections  # noqa: E402
from doclib.services.storage import LocalStorage, set_storage  # noqa: E402
from tests.mocks import headers_for, make_actor  # noqa: E402

ADMIN_PERMISSIONS = frozenset(
    {
        "department.read",
        "department.add",
        "department.update",
        "department.delete",
        "section.add",
        "section.update",
        "section.delete",
        "category.add",
        "category.update",
        "category.delete",
        "file.read",
        "file.add",
        "file.update",
        "file.delete",
        "file.access.update",
        "file.trash.read",
        "file.download.restricted",
        "file.submit",
        "file_request.review",
    }
)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    yield engine
    with engine.connect() as connection:
        connection.exec_driver_sql("PRAGMA foreign_keys=OFF")
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def storage(tmp_path):
    backend = LocalStorage(str(tmp_path / "uploads"))
    set_storage(backend)
    yield backend
    set_storage(None)


@pytest.fixture(autouse=True)
def _no_celery():
    with patch("doclib.tasks.events.process_event.delay") as process_delay, patch(
        "doclib.tasks.storage.reclaim_storage.delay"
    ):
        yield process_delay


@pytest.fixture()
def published(_no_celery):
    """Mock of ``process_event.delay``; inspect ``call_args_list`` for events."""
    return _no_celery


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture()
def admin():
    return make_actor(user_id=1, permissions=ADMIN_PERMISSIONS, role_level=100)


@pytest.fixture()
def actor_factory():
    return make_actor


# ---------------------------------------------------------------------------
# Domain factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def department(db_session):
    return departments.create(db_session, DepartmentCreate(name="Head office"))


@pytest.fixture()
def section(db_session):
    return sections.create(
        db_session,
        SectionCreate(
            translations=[
                TitleTranslation(lang="ru", title="Регламенты"),
                TitleTranslation(lang="en", title="Regulations"),
            ]
        ),
    )


@pytest.fixture()
def category(db_session, section):
    return categories.create(
        db_session,
        CategoryCreate(
            section_id=section.id,
            translations=[TitleTranslation(lang="en", title="Policies")],
        ),
    )


@pytest.fixture()
def make_file(db_session, admin, section):
    def _make_file(
        access_type=AccessType.public,
        department_ids=(),
        user_ids=(),
        title="Handbook",
        **overrides,
    ):
        payload = FileItemCreate(
            section_id=overrides.pop("section_id", section.id),
            access_type=access_type,
            translations=[Translation(lang="en", title=title)],
            access_department_ids=list(department_ids),
            access_user_ids=list(user_ids),
            **overrides,
        )
        return FileItems.create(db_session, admin, payload)

    return _make_file


@pytest.fixture()
def upload(db_session, admin, storage):
    def _upload(version_id, lang="en", data=b"%PDF-1.4 body", name="doc.pdf"):
        return FileAssets.upload(
            db_session, admin, version_id, lang, data, name, "application/pdf"
        )

    return _upload


@pytest.fixture()
def client(db_session, storage):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers(admin):
    return headers_for(admin)

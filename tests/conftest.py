import base64
import io
import os

os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from waiver_app.main import app
from waiver_app.db import Base, get_db
from waiver_app.schemas.merge_field import MergeFieldCreate
from waiver_app.schemas.waiver import WaiverTemplateCreate
from waiver_app.services import merge_fields, waiver_templates

# Use SQLite in-memory for test DB
TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
# StaticPool so the TestClient's sessions and the fixtures' session share
# one in-memory database.
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ORG_ID = "org-iron-fist"
OTHER_ORG_ID = "org-other"

WAIVER_BODY = (
    "<p>I, the undersigned, acknowledge that training at <academy_name> involves "
    "physical contact and a risk of injury.</p>"
    "<p>I release <academy_name> and its instructors from liability for injuries "
    "sustained during classes, open mats and seminars.</p>"
)


# Dependency override
def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_test_db():
    # recreate schema for each test to ensure isolation
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def org_headers():
    return {"X-Organization-Id": ORG_ID, "X-Actor-Id": "staff-1"}


@pytest.fixture
def template_factory(db_session):
    """Create templates directly through the service layer."""
    def _make(organization_id: str = ORG_ID, **overrides):
        data = {
            "name": "Standard Liability Waiver",
            "content": WAIVER_BODY,
            "requires_guardian": True,
            "guardian_age_threshold": 16,
        }
        data.update(overrides)
        return waiver_templates.create_template(db_session, organization_id, WaiverTemplateCreate(**data), "staff-1")
    return _make


@pytest.fixture
def merge_field_factory(db_session):
    def _make(key: str, default_value: str, organization_id: str = ORG_ID, label: str = None):
        data = MergeFieldCreate(key=key, label=label or key.replace("_", " ").title(), default_value=default_value)
        return merge_fields.create_merge_field(db_session, organization_id, data, "staff-1")
    return _make


@pytest.fixture
def academy_name(merge_field_factory):
    return merge_field_factory("academy_name", "Iron Fist Dojo")


@pytest.fixture
def signature_png_data_url():
    """A real PNG signature as the signing pad would submit it."""
    img = Image.new("RGB", (300, 100), "white")
    for x in range(20, 280):
        img.putpixel((x, 50 + (x % 7)), (0, 0, 0))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")

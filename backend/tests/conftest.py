import os, sys, pytest
# Ensure the backend directory is on path so 'complaint_desk' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from complaint_desk import create_app, get_db
from complaint_desk.models.base import Base
# Import all model modules to ensure tables are registered before create_all
import complaint_desk.models.complaint  # noqa: F401
import complaint_desk.models.audit  # noqa: F401


@pytest.fixture(scope='session', autouse=True)
def app_instance(tmp_path_factory):
    app = create_app({
        'TESTING': True,
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
        # heartbeat thread off; tests drive sweep() directly
        'REALTIME_HEARTBEAT_SECONDS': 0,
        'STRICT_STATUS_TRANSITIONS': True,
    })
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app
    app.extensions['broadcaster'].stop()


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_context):
    return app_context.test_client()

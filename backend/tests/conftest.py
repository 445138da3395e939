import os, sys, pytest
# Ensure backend directory is on path so 'pos_rbac' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import pos_rbac
from pos_rbac import create_app, get_db
from pos_rbac.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import pos_rbac.models.audit  # noqa: F401

TEST_CONFIG = {
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'JWT_SECRET_KEY': 'test-secret-key-0123456789-abcdefghij',
}


@pytest.fixture(scope='session')
def app_instance():
    app = create_app(TEST_CONFIG)
    yield app


@pytest.fixture(autouse=True)
def fresh_schema(app_instance):
    # Every test starts from empty tables on the shared in-memory engine
    engine = get_db().get_bind()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield
    pos_rbac.SessionLocal.rollback()
    pos_rbac.SessionLocal.remove()


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()

import threading

from coupongen.db import Store
from coupongen.migrations import MigrationSettings


def test_concurrent_first_use_initializes_once(tmp_path):
    store = Store(f"sqlite:///{tmp_path / 'c.db'}", MigrationSettings(superadmin_password="x", store_password="y"))
    barrier = threading.Barrier(8)
    engines = []
    errors = []

    def worker():
        barrier.wait()
        try:
            engines.append(store.ready())
        except Exception as exc:  # pragma: no cover - surfaced by the assert below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert store.init_count == 1
    assert len({id(e) for e in engines}) == 1
    assert store.ping()
    store.dispose()


def test_sessions_share_the_migrated_engine(tmp_path):
    from coupongen.models import Tenant

    store = Store(f"sqlite:///{tmp_path / 's.db'}", MigrationSettings(default_tenant_slug="main"))
    db = store.session()
    try:
        assert [t.slug for t in db.query(Tenant).all()] == ["main"]
    finally:
        db.close()
    assert store.migration_report is not None
    assert store.migration_error is None
    store.dispose()

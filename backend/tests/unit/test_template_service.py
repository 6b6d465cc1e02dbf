# backend/tests/unit/test_template_service.py
import threading
from uuid import uuid4

import pytest

from kraft.config import Settings
from kraft.exceptions import ConflictError, NotFoundError
from kraft.models import Template, Tombstone
from kraft.services import tombstones
from kraft.services.locks import KeyedLock
from kraft.services.template_service import TemplateService


@pytest.fixture
def service(db_session):
    return TemplateService(db_session, Settings(_env_file=None, instance_lock_timeout_seconds=0.1), KeyedLock())


def test_delete_twice_succeeds(db_session, org, service):
    template_id = service.create(org.id, "base").id

    service.delete(template_id, org.id)
    service.delete(template_id, org.id)

    assert db_session.get(Template, template_id) is None
    with pytest.raises(NotFoundError):
        service.get(template_id)


def test_delete_unknown_template(org, service):
    with pytest.raises(NotFoundError):
        service.delete(uuid4(), org.id)


def test_delete_losing_race_to_another_worker(db_session, org, service, monkeypatch):
    template_id = service.create(org.id, "base").id
    # The other worker's tombstone lands after this delete checked for one
    db_session.add(Tombstone(entity_type=tombstones.TEMPLATE, entity_id=template_id, organization_id=org.id))
    db_session.commit()
    db_session.expunge_all()

    real_find = service.tombstones.find
    lookups = []

    def find_before_commit(entity_type, entity_id):
        lookups.append(entity_id)
        if len(lookups) == 1:
            return None
        return real_find(entity_type, entity_id)

    monkeypatch.setattr(service.tombstones, "find", find_before_commit)

    service.delete(template_id, org.id)

    assert len(lookups) == 2
    assert db_session.query(Tombstone).filter_by(entity_id=template_id).count() == 1


def test_delete_conflicts_while_template_is_locked(db_session, org, service):
    template_id = service.create(org.id, "base").id
    entered = threading.Event()
    release = threading.Event()

    def other_delete():
        with service.locks.hold(("template", template_id), timeout=1):
            entered.set()
            release.wait(2)

    thread = threading.Thread(target=other_delete)
    thread.start()
    entered.wait(1)
    try:
        with pytest.raises(ConflictError):
            service.delete(template_id, org.id)
    finally:
        release.set()
        thread.join()

    assert db_session.get(Template, template_id) is not None

"""Engine wired by build_engine against (mongomock) MongoDB collections"""
import pytest

from reminders.domain.enums import EntityKind
from reminders.domain.errors import MalformedEntityError
from reminders.engine.factory import build_engine
from reminders.repositories.directory_repo import DirectoryRepository
from reminders.repositories.entity_repo import ENTITY_COLLECTIONS, EntityRepository

from .factories import NOW, days, make_rule, run


@pytest.fixture
def entities(mongo_db):
    mongo_db["milestones"].insert_many([
        {
            "entity_id": "MS-1",
            "project_id": "P-1",
            "name": "Quay wall poured",
            "status": "upcoming",
            "planned_date": NOW + days(10),
            "owner_id": "u-owner",
        },
        # Missing planned_date and owner
        {"entity_id": "MS-BAD", "project_id": "P-1", "name": "Broken"},
    ])
    mongo_db["invoices"].insert_one({
        "entity_id": "INV-1",
        "project_id": "P-1",
        "code": "INV-2026-001",
        "status": "paid",
        "due_date": NOW + days(3),
        "owner_id": "u-finance",
    })
    return EntityRepository({kind: mongo_db[name] for kind, name in ENTITY_COLLECTIONS.items()})


@pytest.fixture
def mongo_directory(mongo_db):
    mongo_db["users"].insert_many([
        {"user_id": "u-owner", "roles": [], "status": "active"},
        {"user_id": "u-pm", "roles": ["pm"], "status": "active"},
    ])
    mongo_db["projects"].insert_one(
        {"project_id": "P-1", "code": "PRJ-001", "name": "Harbour Expansion", "pm_id": "u-pm"}
    )
    return DirectoryRepository(mongo_db["users"], mongo_db["projects"])


def test_entity_repository_parses_and_skips_malformed(entities):
    milestones = list(entities.list_watchable_entities(EntityKind.MILESTONE))

    assert [m.entity_id for m in milestones] == ["MS-1"]
    assert milestones[0].owner_id() == "u-owner"
    assert entities.get_entity(EntityKind.INVOICE, "INV-1").is_frozen() is True
    assert entities.get_entity(EntityKind.TASK, "T-404") is None
    assert entities.list_entity_ids(EntityKind.MILESTONE) == {"MS-1", "MS-BAD"}
    with pytest.raises(MalformedEntityError):
        entities.get_entity(EntityKind.MILESTONE, "MS-BAD")


@pytest.fixture
def mongo_engine(entities, mongo_directory, rule_repo, fire_repo, inbox, evaluator):
    return build_engine(
        rules=rule_repo,
        provider=entities,
        directory=mongo_directory,
        fire_records=fire_repo,
        inbox=inbox,
        transports={},
        evaluator=evaluator
    )


def test_sweep_over_mongo_collections(mongo_engine, rule_repo, inbox):
    engine = mongo_engine
    rule_repo.create_rule(make_rule(
        recipients={"project_roles": ["owner", "pm"]},
        message_template="{project.code}: {entity.name} due {entity.planned_date}"
    ))

    result = run(engine.run_sweep(NOW))

    assert (result.entities_seen, result.fired, result.notifications_created) == (1, 1, 2)
    [notification] = inbox.get_notifications_for_user("u-pm")
    assert notification.message == "PRJ-001: Quay wall poured due 2026-03-20"
    assert run(engine.run_sweep(NOW)).fired == 0


def test_half_written_document_keeps_its_fire_record(mongo_engine, mongo_db, rule_repo, fire_repo, inbox):
    rule_repo.create_rule(make_rule())
    milestones = mongo_db["milestones"]
    assert run(mongo_engine.run_sweep(NOW)).fired == 1

    milestones.update_one({"entity_id": "MS-1"}, {"$unset": {"owner_id": ""}})
    broken = run(mongo_engine.run_sweep(NOW + days(1)))
    milestones.update_one({"entity_id": "MS-1"}, {"$set": {"owner_id": "u-owner"}})
    repaired = run(mongo_engine.run_sweep(NOW + days(2)))

    assert broken.records_removed == 0
    assert (repaired.fired, repaired.suppressed) == (0, 1)
    assert len(fire_repo.list_records(entity_id="MS-1")) == 1
    assert inbox.count_for_user("u-owner") == 1

from datetime import datetime, timedelta

import pytest
import pytz
from sqlalchemy import event

from models.invite_code_usage import InviteCodeUsageModel


@pytest.fixture
def statement_counter(engine):
    statements = []

    def before_execute(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", before_execute)
    yield statements
    event.remove(engine, "before_cursor_execute", before_execute)


def test_record_truncates_client_details(usages, db):
    usage = usages.record(7, "user-1", "1" * 60, "agent/" + "x" * 400)
    db.commit()

    stored = db.get(InviteCodeUsageModel, usage.id)
    assert len(stored.ip_address) == 45
    assert len(stored.user_agent) == 255
    assert stored.used_at == stored.created_at
    assert stored.deleted_at is None


def test_record_without_client_details(usages, db):
    usage = usages.record(7, "user-1")
    db.commit()
    stored = db.get(InviteCodeUsageModel, usage.id)
    assert stored.ip_address is None
    assert stored.user_agent is None


def test_list_by_user(invite_codes, redemptions, usages, creator, make_user):
    redeemer = make_user()
    first = invite_codes.create_invite_code(creator.user_id)
    second = invite_codes.create_invite_code(creator.user_id)
    redemptions.redeem(first.code, redeemer.user_id)
    redemptions.redeem(second.code, redeemer.user_id)
    redemptions.redeem(second.code, creator.user_id)

    items, total = usages.list_by_user(redeemer.user_id)
    assert total == 2
    assert [u.invite_code_id for u in items] == [second.id, first.id]


def test_list_by_creator_spans_all_codes(invite_codes, redemptions, usages, creator, make_user):
    other_creator = make_user()
    mine_a = invite_codes.create_invite_code(creator.user_id)
    mine_b = invite_codes.create_invite_code(creator.user_id)
    theirs = invite_codes.create_invite_code(other_creator.user_id)
    for code in (mine_a, mine_b, theirs, mine_b):
        redemptions.redeem(code.code, make_user().user_id)

    items, total = usages.list_by_creator(creator.user_id, page=1, page_size=2)
    assert total == 3
    assert len(items) == 2
    assert {u.invite_code_id for u in items} <= {mine_a.id, mine_b.id}

    items, _ = usages.list_by_creator(creator.user_id, page=2, page_size=2)
    assert len(items) == 1


def test_hydrate_loads_references_in_batches(
    invite_codes, redemptions, usages, creator, make_user, statement_counter
):
    code_a = invite_codes.create_invite_code(creator.user_id)
    code_b = invite_codes.create_invite_code(creator.user_id)
    alice, bob = make_user(), make_user()
    for code, user in ((code_a, alice), (code_a, bob), (code_b, alice), (code_b, bob)):
        redemptions.redeem(code.code, user.user_id)

    items, _ = usages.list_by_creator(creator.user_id)
    statement_counter.clear()
    infos = usages.hydrate(items)

    assert len(statement_counter) == 2
    assert len(infos) == 4
    by_user = {i.used_by.user_id for i in infos}
    assert by_user == {alice.user_id, bob.user_id}
    assert {i.invite_code.code for i in infos} == {code_a.code, code_b.code}


def test_hydrate_leaves_missing_references_empty(usages, db):
    usages.record(999, "ghost")
    db.commit()

    items, _ = usages.list_by_user("ghost")
    [info] = usages.hydrate(items)
    assert info.used_by is None
    assert info.invite_code is None


def test_hydrate_empty(usages, statement_counter):
    assert usages.hydrate([]) == []
    assert statement_counter == []


def test_usage_stats(usages, db):
    now = datetime.now(pytz.utc)
    for days_ago in (0, 3, 10, 40):
        used_at = (now - timedelta(days=days_ago)).isoformat()
        db.add(
            InviteCodeUsageModel(
                invite_code_id=1, used_by_id="u", used_at=used_at, created_at=used_at
            )
        )
    db.commit()

    stats = usages.usage_stats()
    assert stats["total_usages"] == 4
    assert stats["today_usages"] == 1
    assert stats["week_usages"] == 2
    assert stats["month_usages"] == 3

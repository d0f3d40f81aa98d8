import pytest

from conftest import at
from timebill.services.errors import AlreadyInvoiced, ErrorKind, MixedClients, NoEntries


def _record(app, client, start, end, note=None):
    return app.record_entry(client.id, start, end, note=note)


# ---------------- draft creation ----------------

def test_create_draft_links_entries(app, acme, clock):
    e1 = _record(app, acme, at(9), at(10))
    e2 = _record(app, acme, at(11), at(12))

    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id, e2.id])

    assert inv.status == "draft"
    assert inv.number == "2025-0001"
    assert inv.created_at == clock.now
    assert set(inv.entry_ids) == {e1.id, e2.id}
    for e in (e1, e2):
        stored = app.entries.get_by_id(e.id)
        assert stored.invoice_id == inv.id
        assert stored.invoiced_at == clock.now
        assert stored.edit_count == 0


def test_second_call_merges_into_existing_draft(app, acme):
    e1 = _record(app, acme, at(9), at(10))
    e2 = _record(app, acme, at(11), at(12))

    first = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    second = app.invoices.create_or_add_to_draft(acme.id, [e2.id])

    assert second.id == first.id
    assert set(second.entry_ids) == {e1.id, e2.id}
    drafts = [i for i in app.invoices.list_for_client(acme.id) if i.status == "draft"]
    assert len(drafts) == 1


def test_at_most_one_draft_per_client(app, acme):
    beta = app.add_client("Beta", 80)
    for day in range(1, 6):
        ea = _record(app, acme, at(9, day=day), at(10, day=day))
        eb = _record(app, beta, at(9, day=day), at(10, day=day))
        app.invoices.create_or_add_to_draft(acme.id, [ea.id])
        app.invoices.create_or_add_to_draft(beta.id, [eb.id])
        if day == 3:
            app.mark_paid(app.invoices.draft_invoice(acme.id).id)

    for client in (acme, beta):
        drafts = [i for i in app.invoices.list_for_client(client.id) if i.is_draft]
        assert len(drafts) == 1
    assert len(app.invoices.list_for_client(acme.id)) == 2


def test_numbers_are_sequential_within_year(app, acme, clock):
    beta = app.add_client("Beta", 80)
    gamma = app.add_client("Gamma", 90)
    numbers = []
    for client in (acme, beta, gamma):
        e = _record(app, client, at(9), at(10))
        numbers.append(app.invoices.create_or_add_to_draft(client.id, [e.id]).number)
    assert numbers == ["2025-0001", "2025-0002", "2025-0003"]

    clock.advance(days=365)
    delta = app.add_client("Delta", 10)
    e = _record(app, delta, at(9), at(10))
    assert app.invoices.create_or_add_to_draft(delta.id, [e.id]).number == "2026-0001"


def test_unknown_ids_are_ignored_when_others_resolve(app, acme):
    e1 = _record(app, acme, at(9), at(10))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id, "ghost", e1.id])
    assert inv.entry_ids == [e1.id]


# ---------------- preconditions (no partial effect) ----------------

def test_no_entries(app, acme):
    with pytest.raises(NoEntries) as exc:
        app.invoices.create_or_add_to_draft(acme.id, [])
    assert exc.value.kind is ErrorKind.NO_ENTRIES

    with pytest.raises(NoEntries):
        app.invoices.create_or_add_to_draft(acme.id, ["missing"])
    assert app.invoices.list_invoices() == []


def test_mixed_clients(app, acme):
    beta = app.add_client("Beta", 80)
    ea = _record(app, acme, at(9), at(10))
    eb = _record(app, beta, at(11), at(12))

    with pytest.raises(MixedClients) as exc:
        app.invoices.create_or_add_to_draft(acme.id, [ea.id, eb.id])
    assert exc.value.entry_ids == (eb.id,)
    assert app.invoices.list_invoices() == []
    assert app.entries.get_by_id(ea.id).invoice_id is None


def test_already_invoiced_guard_changes_nothing(app, acme):
    e1 = _record(app, acme, at(9), at(10))
    e2 = _record(app, acme, at(11), at(12))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    linked_at = app.entries.get_by_id(e1.id).invoiced_at

    before_invoices = app.invoices.list_invoices()
    before_entries = app.entries.list_entries()

    with pytest.raises(AlreadyInvoiced) as exc:
        app.invoices.create_or_add_to_draft(acme.id, [e2.id, e1.id])
    assert exc.value.kind is ErrorKind.ALREADY_INVOICED
    assert exc.value.entry_ids == (e1.id,)

    assert app.invoices.list_invoices() == before_invoices
    assert app.entries.list_entries() == before_entries
    assert app.entries.get_by_id(e2.id).invoice_id is None
    assert app.entries.get_by_id(e1.id).invoiced_at == linked_at
    assert app.invoices.get_by_id(inv.id).entry_ids == [e1.id]


def test_paid_entries_cannot_be_billed_again(app, acme):
    e1 = _record(app, acme, at(9), at(10))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    app.mark_paid(inv.id)
    with pytest.raises(AlreadyInvoiced):
        app.invoices.create_or_add_to_draft(acme.id, [e1.id])


# ---------------- live totals ----------------

def test_example_scenario(app, acme):
    e1 = _record(app, acme, at(9), at(10, 30))          # 90 min
    e2 = _record(app, acme, at(14), at(14, 33))         # 33 min
    inv = app.invoices.create_or_add_to_draft(acme.id, [e2.id, e1.id])

    items = app.invoices.live_line_items(inv)
    assert [it.entry_id for it in items] == [e1.id, e2.id]  # sorted by start
    assert [it.billed_minutes for it in items] == [90, 30]
    assert items[0].amount == pytest.approx(75.0)
    assert items[1].amount == pytest.approx(25.0)

    totals = app.invoices.totals_for_invoice(inv)
    assert totals.hours == pytest.approx(2.0)
    assert totals.amount == pytest.approx(100.0)

    paid = app.mark_paid(inv.id)
    edited = app.entries.get_by_id(e2.id).model_copy(update={"end_date": at(16)})
    app.entries.edit_entry(edited)  # bypasses the lock on purpose

    assert app.invoices.totals_for_invoice(app.invoices.get_by_id(inv.id)).amount == pytest.approx(100.0)
    assert paid.frozen_total_amount == pytest.approx(100.0)


def test_draft_totals_follow_entry_edits(app, acme):
    e1 = _record(app, acme, at(9), at(10))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    assert app.invoices.live_totals(inv).hours == pytest.approx(1.0)

    app.edit_entry(app.entries.get_by_id(e1.id).model_copy(update={"end_date": at(11)}))
    assert app.invoices.totals_for_invoice(inv).hours == pytest.approx(2.0)


def test_draft_totals_follow_rounding_setting(app, acme):
    e1 = _record(app, acme, at(9), at(9, 44))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    assert app.invoices.live_line_items(inv)[0].billed_minutes == 42
    app.set_rounding_increment(15)
    assert app.invoices.live_line_items(inv)[0].billed_minutes == 30
    app.set_rounding_increment(1)
    assert app.invoices.live_line_items(inv)[0].billed_minutes == 44


def test_deleted_entries_are_skipped(app, acme):
    e1 = _record(app, acme, at(9), at(10))
    e2 = _record(app, acme, at(11), at(12))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id, e2.id])
    app.delete_entries([e2.id])
    assert [it.entry_id for it in app.invoices.live_line_items(inv)] == [e1.id]
    assert app.invoices.live_totals(inv).hours == pytest.approx(1.0)


def test_line_items_use_entry_rate_snapshot(app, acme):
    e1 = _record(app, acme, at(9), at(10))
    acme.hourly_rate = 500
    app.clients.update_client(acme)
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    assert app.invoices.live_totals(inv).amount == pytest.approx(50.0)


# ---------------- finalize ----------------

def test_mark_paid_freezes_snapshot(app, acme, clock):
    e1 = _record(app, acme, at(9), at(10))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    clock.advance(days=1)

    paid = app.mark_paid(inv.id)
    assert paid.status == "paid"
    assert paid.paid_at == clock.now
    assert paid.frozen_total_hours == pytest.approx(1.0)
    assert paid.frozen_total_amount == pytest.approx(50.0)
    assert [it.entry_id for it in paid.frozen_line_items] == [e1.id]
    assert app.invoices.is_entry_paid(app.entries.get_by_id(e1.id))
    assert app.invoices.draft_invoice(acme.id) is None


def test_mark_paid_is_idempotent(app, acme, clock):
    e1 = _record(app, acme, at(9), at(10))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    first = app.mark_paid(inv.id)

    clock.advance(hours=5)
    app.set_rounding_increment(30)
    second = app.mark_paid(inv.id)

    assert second.paid_at == first.paid_at
    assert second.frozen_total_amount == first.frozen_total_amount


def test_mark_paid_unknown_invoice_is_noop(app):
    assert app.mark_paid("missing") is None
    assert app.invoices.list_invoices() == []


def test_paid_totals_survive_entry_deletion(app, acme):
    e1 = _record(app, acme, at(9), at(10))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    app.mark_paid(inv.id)
    app.entries.delete_entries([e1.id])  # repository has no lock

    stored = app.invoices.get_by_id(inv.id)
    assert app.invoices.totals_for_invoice(stored).amount == pytest.approx(50.0)
    assert len(app.invoices.line_items_for_invoice(stored)) == 1


# ---------------- review flags ----------------

def test_edit_after_invoicing_needs_review(app, acme, clock):
    e1 = _record(app, acme, at(9), at(10))
    e2 = _record(app, acme, at(11), at(12))
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id, e2.id])
    assert not app.invoices.draft_invoice_needs_review(inv)

    clock.advance(minutes=10)
    app.edit_entry(app.entries.get_by_id(e1.id).model_copy(update={"note": "fixed"}))

    assert app.invoices.entry_needs_review(app.entries.get_by_id(e1.id))
    assert not app.invoices.entry_needs_review(app.entries.get_by_id(e2.id))
    assert app.invoices.draft_invoice_needs_review(app.invoices.get_by_id(inv.id))
    assert [i.id for i in app.invoices_needing_review()] == [inv.id]

    # advisory only
    paid = app.mark_paid(inv.id)
    assert paid.status == "paid"
    assert not app.invoices.draft_invoice_needs_review(paid)
    assert not app.invoices.entry_needs_review(app.entries.get_by_id(e1.id))


def test_edit_before_invoicing_is_not_flagged(app, acme, clock):
    e1 = _record(app, acme, at(9), at(10))
    app.edit_entry(app.entries.get_by_id(e1.id).model_copy(update={"note": "early"}))
    clock.advance(minutes=1)
    inv = app.invoices.create_or_add_to_draft(acme.id, [e1.id])
    assert not app.invoices.entry_needs_review(app.entries.get_by_id(e1.id))
    assert not app.invoices.draft_invoice_needs_review(inv)


def test_unlinked_entry_is_never_flagged(app, acme):
    e1 = _record(app, acme, at(9), at(10))
    app.edit_entry(e1)
    assert not app.invoices.entry_needs_review(app.entries.get_by_id(e1.id))
    assert not app.invoices.is_entry_invoiced(e1)
    assert not app.invoices.is_entry_paid(e1)

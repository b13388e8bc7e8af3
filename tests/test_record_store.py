import threading

import pytest

from ec8a_form_extractor.record_store import RecordStore
from ec8a_form_extractor.types import ExtractionFields, PreviewHandle, ProcessingRecord


def _rec(rid, name=None, **kw):
    return ProcessingRecord(id=rid, source_name=name or f"{rid}.jpg", **kw)


def test_add_keeps_insertion_order():
    store = RecordStore()
    store.add([_rec("b"), _rec("a")])
    store.add([_rec("c")])
    assert [r.id for r in store.snapshot()] == ["b", "a", "c"]
    assert len(store) == 3
    assert "a" in store


def test_duplicate_source_names_are_allowed_but_ids_are_not():
    store = RecordStore()
    store.add([_rec("a", "scan.jpg"), _rec("b", "scan.jpg")])
    with pytest.raises(ValueError):
        store.add([_rec("a")])
    assert len(store) == 2


def test_update_replaces_record_and_keeps_position():
    store = RecordStore()
    store.add([_rec("a"), _rec("b")])
    fields = ExtractionFields(total_valid_votes=12)
    new = store.update("a", status="success", result=fields)
    assert new.status == "success"
    assert [r.id for r in store.snapshot()] == ["a", "b"]
    assert store.get("a").result is fields


def test_snapshot_is_not_affected_by_later_updates():
    store = RecordStore()
    store.add([_rec("a")])
    before = store.snapshot()
    store.update("a", status="processing")
    assert before[0].status == "pending"
    assert store.snapshot()[0].status == "processing"


def test_update_unknown_id_is_a_noop():
    store = RecordStore()
    assert store.update("missing", status="success") is None
    assert store.snapshot() == ()


def test_update_rejects_identity_fields():
    store = RecordStore()
    store.add([_rec("a")])
    with pytest.raises(ValueError):
        store.update("a", id="b")


def test_remove_releases_preview(tmp_path):
    thumb = tmp_path / "a.jpg"
    thumb.write_bytes(b"jpeg")
    handle = PreviewHandle(thumb)
    store = RecordStore()
    store.add([_rec("a", preview=handle)])

    removed = store.remove("a")
    assert removed.id == "a"
    assert handle.released
    assert not thumb.exists()
    assert store.remove("a") is None


def test_remove_wins_over_later_update():
    store = RecordStore()
    store.add([_rec("a")])
    store.remove("a")
    assert store.update("a", status="success", result=ExtractionFields()) is None
    assert store.get("a") is None


def test_clear_releases_every_preview(tmp_path):
    handles = []
    store = RecordStore()
    for rid in ("a", "b"):
        p = tmp_path / f"{rid}.jpg"
        p.write_bytes(b"x")
        handles.append(PreviewHandle(p))
        store.add([_rec(rid, preview=handles[-1])])
    assert store.clear() == 2
    assert all(h.released for h in handles)
    assert len(store) == 0


def test_listeners_receive_snapshots_in_mutation_order():
    store = RecordStore()
    seen = []
    unsubscribe = store.subscribe(lambda snap: seen.append([(r.id, r.status) for r in snap]))
    store.add([_rec("a")])
    store.update("a", status="processing")
    store.remove("a")
    unsubscribe()
    store.add([_rec("b")])
    assert seen == [[("a", "pending")], [("a", "processing")], []]


def test_failing_listener_does_not_break_mutation():
    store = RecordStore()

    def boom(snap):
        raise RuntimeError("listener bug")

    store.subscribe(boom)
    store.add([_rec("a")])
    assert store.update("a", status="processing").status == "processing"


def test_concurrent_updates_never_expose_partial_records():
    store = RecordStore()
    ids = [f"r{i}" for i in range(50)]
    store.add([_rec(i) for i in ids])
    bad = []

    def check(snap):
        for r in snap:
            if r.status == "success" and r.result is None:
                bad.append(r.id)
            if r.status == "error" and r.error_message is None:
                bad.append(r.id)

    store.subscribe(check)

    def worker(chunk):
        for rid in chunk:
            store.update(rid, status="processing")
            if int(rid[1:]) % 2:
                store.update(rid, status="error", error_message="failed")
            else:
                store.update(rid, status="success", result=ExtractionFields(total_valid_votes=1))

    threads = [threading.Thread(target=worker, args=(ids[i::5],)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)

    assert bad == []
    assert all(r.is_terminal for r in store.snapshot())

from lgupay.core.audit import AuditLogger

def test_file_hash_and_duplicates(tmp_path, audit):
    f = tmp_path / "dtr.xlsx"
    f.write_bytes(b"abc")
    h = AuditLogger.calculate_file_hash(f)
    assert h == "900150983cd24fb0d6963f7d28e17f72"
    assert not audit.is_duplicate_upload(h)

    audit.log_upload("dtr_records", 1, h, 2, 0, 2, success=False)
    assert not audit.is_duplicate_upload(h)
    audit.log_upload("dtr_records", 2, h, 2, 2, 0, success=True, period_id=7)
    assert audit.is_duplicate_upload(h)

def test_upload_history_filters(audit):
    audit.log_upload("dtr_records", 1, "h1", 1, 1, 0, success=True)
    audit.log_upload("other", 2, "h2", 1, 1, 0, success=True)
    assert len(audit.get_upload_history()) == 2
    history = audit.get_upload_history(entity_type="dtr_records")
    assert [e["batch_id"] for e in history] == [1]
    assert history[0]["component"] == "dtr"

def test_change_history(audit):
    audit.log_data_change("dtr_record", "update", 5, {"working_days": {"old": 11, "new": 10}}, user_id="hr01")
    audit.log_data_change("dtr_record", "delete", 6, {})
    history = audit.get_change_history("dtr_record", 5)
    assert len(history) == 1
    assert history[0]["user_id"] == "hr01"
    assert audit.get_change_history("dtr_record", 99) == []

def test_empty_history(audit):
    assert audit.get_upload_history() == []
    assert audit.get_change_history("dtr_record", 1) == []

from texcode.patch import PatchOperation, PatchRecord, validate_patch, validate_patches


def test_in_range_records_are_valid():
    records = [
        PatchRecord(operation=PatchOperation.ADD, line=1, insert_text=("x",)),
        PatchRecord(operation=PatchOperation.ADD, line=6, insert_text=("x",)),
        PatchRecord(operation=PatchOperation.REPLACE, line=4, delete_count=2),
        PatchRecord(operation=PatchOperation.DELETE, line=5),
    ]
    results = validate_patches(5, records)
    assert [r.valid for r in results] == [True, True, True, True]
    assert all(r.errors == [] for r in results)


def test_line_past_append_position():
    rec = PatchRecord(operation=PatchOperation.ADD, line=7, insert_text=("x",))
    res = validate_patch(5, rec)
    assert not res.valid
    assert res.errors == ["Line 7 is out of range (document has 5 lines)"]


def test_range_past_end():
    rec = PatchRecord(operation=PatchOperation.DELETE, line=4, delete_count=3)
    res = validate_patch(5, rec)
    assert not res.valid
    assert res.errors == ["Cannot delete/replace lines 4-6 (document has 5 lines)"]


def test_replace_at_append_position_reports_both():
    rec = PatchRecord(operation=PatchOperation.REPLACE, line=7, delete_count=1)
    res = validate_patch(5, rec)
    assert len(res.errors) == 2


def test_empty_document_only_accepts_add_at_line_one():
    add = PatchRecord(operation=PatchOperation.ADD, line=1, insert_text=("x",))
    delete = PatchRecord(operation=PatchOperation.DELETE, line=1)
    assert validate_patch(0, add).valid
    assert not validate_patch(0, delete).valid

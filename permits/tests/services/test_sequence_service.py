from permits.services.sequence_service import SequenceService


def test_numbers_count_up_per_year(db):
    seq = SequenceService()
    assert seq.next_application_number(db, year=2026) == "2026-0001"
    assert seq.next_application_number(db, year=2026) == "2026-0002"
    assert seq.next_application_number(db, year=2027) == "2027-0001"
    db.commit()
    assert seq.next_application_number(db, year=2026) == "2026-0003"


def test_width_follows_settings(db, settings_override):
    settings_override(application_number_width=6)
    assert SequenceService().next_application_number(db, year=2030) == "2030-000001"


def test_rolled_back_number_is_reused(db):
    seq = SequenceService()
    seq.next_application_number(db, year=2026)
    db.commit()
    seq.next_application_number(db, year=2026)
    db.rollback()
    assert seq.next_application_number(db, year=2026) == "2026-0002"

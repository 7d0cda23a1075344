from datetime import datetime, timedelta, timezone
from evv_service.utils.timezone import convert_to_local, isoformat_utc, to_naive_utc


def test_convert_to_local_handles_dst():
    """Paris is UTC+2 in summer and UTC+1 in winter."""
    assert convert_to_local(datetime(2025, 8, 1, 9, 0)) == datetime(2025, 8, 1, 11, 0)
    assert convert_to_local(datetime(2025, 1, 15, 9, 0)) == datetime(2025, 1, 15, 10, 0)
    assert convert_to_local(datetime(2025, 8, 1, 9, 0), "America/Chicago") == datetime(2025, 8, 1, 4, 0)
    assert convert_to_local(None) is None


def test_to_naive_utc():
    aware = datetime(2025, 8, 1, 11, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2025, 8, 1, 9, 0)
    assert to_naive_utc(datetime(2025, 8, 1, 9, 0)) == datetime(2025, 8, 1, 9, 0)


def test_isoformat_utc():
    assert isoformat_utc(datetime(2025, 8, 1, 9, 0, 30)) == "2025-08-01T09:00:30Z"
    assert isoformat_utc(None) is None

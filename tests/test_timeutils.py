from datetime import datetime, timedelta, timezone

import pytest

from francis.timeutils import (
    HOUR,
    MILLISECOND,
    MINUTE,
    NANOSECOND,
    SECOND,
    ZERO_DURATION,
    Duration,
    add_date,
    parse_duration,
    parse_duration_string,
    parse_iso8601_duration,
    parse_time,
)


def _assert_parts(d, years, months, days, time_ns):
    assert d.years == years
    assert d.months == months
    assert d.days == days
    assert d.time_ns == time_ns


def test_parse_go_duration():
    d = parse_duration_string("0h30m0s")
    _assert_parts(d, 0, 0, 0, 30 * MINUTE)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("P1MT2H10M3S", (0, 1, 0, 2 * HOUR + 10 * MINUTE + 3 * SECOND)),
        ("P2W", (0, 0, 14, 0)),
        ("PT1S", (0, 0, 0, SECOND)),
        ("P1M", (0, 1, 0, 0)),
        ("PT1M", (0, 0, 0, MINUTE)),
        ("P0D", (0, 0, 0, 0)),
        ("PT0S", (0, 0, 0, 0)),
        ("P1M2D", (0, 1, 2, 0)),
    ],
)
def test_parse_iso8601_via_duration_string(value, expected):
    _assert_parts(parse_duration_string(value), *expected)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("PT1.002S", SECOND + 2 * MILLISECOND),
        ("PT1.02S", SECOND + 20 * MILLISECOND),
        ("PT1.020S", SECOND + 20 * MILLISECOND),
        ("PT1.2S", SECOND + 200 * MILLISECOND),
        ("PT1.200S", SECOND + 200 * MILLISECOND),
        ("PT1.000S", SECOND),
        ("PT0.003S", 3 * MILLISECOND),
    ],
)
def test_fraction_of_seconds(value, expected):
    _assert_parts(parse_duration_string(value), 0, 0, 0, expected)


@pytest.mark.parametrize("value", ["PT1.0001S", "PT.0001S"])
def test_fraction_of_seconds_invalid(value):
    with pytest.raises(ValueError):
        parse_duration_string(value)


@pytest.mark.parametrize("value", ["P1.1Y", "P1.1M", "P1.1D", "PT1.1H", "PT1.1M"])
def test_fractions_only_for_seconds(value):
    with pytest.raises(ValueError):
        parse_duration_string(value)


def test_leap_year_calculation():
    d = parse_duration_string("P1Y2M3D")

    start = datetime(2020, 2, 3, 11, 12, 13)
    target = add_date(start, d.years, d.months, d.days) + d.clock_time
    assert target == datetime(2021, 4, 6, 11, 12, 13)

    start = datetime(2019, 2, 3, 11, 12, 13)
    target = add_date(start, d.years, d.months, d.days) + d.clock_time
    assert target == datetime(2020, 4, 6, 11, 12, 13)


def test_rfc3339_datetime_is_not_a_duration():
    value = (datetime.now(timezone.utc) + timedelta(minutes=1)).replace(microsecond=0)
    with pytest.raises(ValueError):
        parse_duration_string(value.isoformat())


def test_empty_string_is_not_a_duration():
    with pytest.raises(ValueError):
        parse_duration_string("")


@pytest.mark.parametrize("value", ["10D1M", "P", "PM", "PT1D", "P_D", "PTxS"])
def test_invalid_iso8601_duration(value):
    with pytest.raises(ValueError):
        parse_duration_string(value)


@pytest.mark.parametrize(
    "duration, expected",
    [
        (Duration(), "PT0S"),
        (Duration(time_ns=2 * HOUR), "PT2H"),
        (Duration(time_ns=5 * MINUTE), "PT5M"),
        (Duration(time_ns=7 * SECOND), "PT7S"),
        (Duration(time_ns=123 * MILLISECOND), "PT0.123S"),
        (Duration(time_ns=8 * SECOND + 45 * MILLISECOND), "PT8.045S"),
        (Duration(time_ns=HOUR + 2 * MINUTE + 3 * SECOND), "PT1H2M3S"),
        (
            Duration(time_ns=HOUR + 2 * MINUTE + 3 * SECOND + 9 * MILLISECOND),
            "PT1H2M3.009S",
        ),
        (Duration(time_ns=NANOSECOND), "PT0S"),
        (Duration(time_ns=NANOSECOND, days=1), "P1D"),
        (
            Duration(time_ns=HOUR + 2 * MINUTE + 3 * SECOND + 9 * NANOSECOND),
            "PT1H2M3S",
        ),
        (
            Duration(
                years=1,
                months=2,
                days=3,
                time_ns=4 * HOUR + 5 * MINUTE + 6 * SECOND + 7 * MILLISECOND,
            ),
            "P1Y2M3DT4H5M6.007S",
        ),
    ],
)
def test_duration_str(duration, expected):
    assert str(duration) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("PT0S", Duration()),
        ("PT2H", Duration(time_ns=2 * HOUR)),
        ("PT5M", Duration(time_ns=5 * MINUTE)),
        ("PT7S", Duration(time_ns=7 * SECOND)),
        (
            "P1Y2M3DT4H5M6S",
            Duration(years=1, months=2, days=3, time_ns=4 * HOUR + 5 * MINUTE + 6 * SECOND),
        ),
        ("P3DT12H", Duration(days=3, time_ns=12 * HOUR)),
        ("PT1H2M3S", Duration(time_ns=HOUR + 2 * MINUTE + 3 * SECOND)),
    ],
)
def test_parse_iso8601_duration(value, expected):
    d = parse_iso8601_duration(value)
    assert d.years == expected.years
    assert d.months == expected.months
    assert d.days == expected.days
    assert d.time_ns // MILLISECOND == expected.time_ns // MILLISECOND


@pytest.mark.parametrize(
    "value", ["PT0S", "PT2H", "PT5M", "PT7S", "P1Y2M3DT4H5M6S", "PT1H2M3S"]
)
def test_string_parse_roundtrip(value):
    assert str(parse_iso8601_duration(value)) == value


def test_from_string_iso8601():
    d = Duration.from_string("P1Y2M3DT4H5M6.007S")
    _assert_parts(d, 1, 2, 3, 4 * HOUR + 5 * MINUTE + 6 * SECOND + 7 * MILLISECOND)


def test_from_string_go_duration():
    d = Duration.from_string("1h2m3s7ms")
    _assert_parts(d, 0, 0, 0, HOUR + 2 * MINUTE + 3 * SECOND + 7 * MILLISECOND)


def test_from_string_empty_is_zero():
    d = Duration.from_string("")
    assert d.is_zero()


def test_from_string_invalid():
    with pytest.raises(ValueError):
        Duration.from_string("notaduration")


def test_reset():
    d = Duration(years=1, months=2, days=3, time_ns=4 * HOUR)
    d.reset()
    _assert_parts(d, 0, 0, 0, 0)


def test_is_zero():
    assert Duration().is_zero()
    assert Duration(time_ns=0).is_zero()
    assert Duration(time_ns=NANOSECOND).is_zero()
    assert not Duration(time_ns=MILLISECOND).is_zero()
    assert not Duration(days=1).is_zero()
    assert not Duration(months=1).is_zero()
    assert not Duration(years=1).is_zero()


@pytest.fixture
def now():
    return datetime.now(timezone.utc).replace(microsecond=0)


def test_parse_time_rfc3339(now):
    assert parse_time(now.isoformat()) == now


def test_parse_time_rfc3339_with_z():
    parsed = parse_time("2022-02-02T02:02:02Z")
    assert parsed == datetime(2022, 2, 2, 2, 2, 2, tzinfo=timezone.utc)


def test_parse_time_unix_ms_string(now):
    ms = int(now.timestamp()) * 1000
    assert parse_time(str(ms)) == now


def test_parse_time_unix_ms_float(now):
    ms = int(now.timestamp()) * 1000
    assert parse_time(float(ms)) == now


def test_parse_time_unix_ms_int(now):
    ms = int(now.timestamp()) * 1000
    assert parse_time(ms) == now


def test_parse_time_empty_string_is_zero():
    assert parse_time("") is None


def test_parse_time_none_is_zero():
    assert parse_time(None) is None


def test_parse_time_invalid_string():
    with pytest.raises(ValueError):
        parse_time("notatime")


def test_parse_time_invalid_type():
    with pytest.raises(TypeError):
        parse_time(b"123")


def test_parse_duration_iso8601():
    assert parse_duration("PT1H2M3.004S") == "PT1H2M3.004S"


def test_parse_duration_go_string():
    assert parse_duration("1h2m3s4ms") == "PT1H2M3.004S"


def test_parse_duration_ms_string():
    assert parse_duration("1234") == "PT1.234S"


def test_parse_duration_ms_float():
    assert parse_duration(1500.0) == "PT1.500S"


def test_parse_duration_ms_int():
    assert parse_duration(2000) == "PT2S"


def test_parse_duration_empty_string():
    assert parse_duration("") == ""


def test_parse_duration_none():
    assert parse_duration(None) == ZERO_DURATION


def test_parse_duration_invalid_string():
    with pytest.raises(ValueError):
        parse_duration("notaduration")


def test_parse_duration_invalid_type():
    with pytest.raises(TypeError):
        parse_duration(b"123")
from datetime import date, timedelta

from creatorlogic.schemas import Partnership
from creatorlogic.services.attribution import (
    compute_daily_series,
    range_to_days,
    stable_hash,
)

TODAY = date(2024, 6, 15)


def _partnership(posted: date, views: int) -> Partnership:
    return Partnership(
        creator_name="creator",
        video_url="https://www.instagram.com/reel/ABC/",
        posted_date=posted,
        views=views,
    )


def test_stable_hash_is_deterministic_and_non_negative():
    assert stable_hash("a") == 97
    assert stable_hash("ab") == 97 * 31 + 98
    assert stable_hash("2024-06-15") == stable_hash("2024-06-15")
    assert all(stable_hash(f"2024-01-{d:02d}") >= 0 for d in range(1, 32))


def test_range_names():
    assert [range_to_days(r) for r in ("7d", "30d", "90d", "all")] == [7, 30, 90, 365]


def test_series_shape_and_baseline():
    series = compute_daily_series([], 7, today=TODAY)

    assert len(series) == 8
    assert series[0].date == TODAY - timedelta(days=7)
    assert series[-1].date == TODAY
    assert all(45 <= m.installs < 65 for m in series)
    assert series[-1].retention_pct == 100
    assert all(m.uninstalls == int(m.installs * 0.2) for m in series)


def test_same_day_boost_and_views():
    baseline = compute_daily_series([], 7, today=TODAY)[-1]
    boosted = compute_daily_series([_partnership(TODAY, 2000)], 7, today=TODAY)[-1]

    # ceil(2000 / 200) == 10, undivided on the posting day.
    assert boosted.installs == baseline.installs + 10
    assert boosted.attributed_views == 2000


def test_boost_decays_and_stops_after_a_week():
    base = compute_daily_series([], 7, today=TODAY)[-1]
    week_old = compute_daily_series([_partnership(TODAY - timedelta(days=7), 0)], 7, today=TODAY)[-1]
    too_old = compute_daily_series([_partnership(TODAY - timedelta(days=8), 0)], 7, today=TODAY)[-1]

    # No views means a flat impact of 50, divided by days_since + 1.
    assert week_old.installs == base.installs + 50 // 8
    assert week_old.attributed_views == 0
    assert too_old.installs == base.installs


def test_future_posts_do_not_boost():
    base = compute_daily_series([], 7, today=TODAY)[-1]
    future = compute_daily_series([_partnership(TODAY + timedelta(days=1), 1000)], 7, today=TODAY)[-1]

    assert future.installs == base.installs


def test_series_is_identical_across_calls():
    partnerships = [
        _partnership(TODAY - timedelta(days=3), 45_000),
        _partnership(TODAY - timedelta(days=20), 0),
        _partnership(TODAY, 1_250),
    ]

    first = compute_daily_series(partnerships, 30, today=TODAY)
    second = compute_daily_series(list(reversed(partnerships)), 30, today=TODAY)

    assert [m.model_dump_json() for m in first] == [m.model_dump_json() for m in second]

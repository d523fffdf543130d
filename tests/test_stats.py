import csv
import io

import pytest

from repvision.common.events import REP_COLUMNS, Posture, RepEvent, reps_to_csv
from repvision.counter.stats import calculate_stats, posture_for


def rep(n, correct=True, **kw):
    return RepEvent(count=n, timestamp=float(n), state="UP", correct=correct, **kw)


def test_zero_reps_is_bad_posture():
    res = calculate_stats([], "Push-ups", 12.0)
    assert res.posture is Posture.BAD
    assert res.total_reps == 0
    assert res.form_score == 0.0
    assert res.stats["avg_rep_duration"] == 0.0


@pytest.mark.parametrize("correct,total,expected", [
    (7, 10, Posture.GOOD),
    (69, 100, Posture.BAD),
    (10, 10, Posture.GOOD),
    (0, 3, Posture.BAD),
])
def test_posture_ratio(correct, total, expected):
    assert posture_for(correct, total) is expected


def test_angle_aggregates():
    reps = [
        rep(1, True, min_angle=70.0, dip_duration=1.0),
        rep(2, False, min_angle=120.0, dip_duration=0.5),
        rep(3, True, min_angle=80.0, dip_duration=1.5),
    ]
    res = calculate_stats(reps, "Push-ups", 30.0)
    assert (res.correct_reps, res.incorrect_reps) == (2, 1)
    assert res.posture is Posture.BAD
    assert res.form_score == pytest.approx(200 / 3)
    assert res.stats["min_angle"] == 70.0
    assert res.stats["max_angle"] == 120.0
    assert res.stats["avg_angle"] == pytest.approx(90.0)
    assert res.stats["avg_dip_duration"] == pytest.approx(1.0)
    assert res.stats["avg_rep_duration"] == pytest.approx(1.0)
    assert res.stats["exercise"] == "Push-ups"


def test_jump_aggregates():
    reps = [rep(1, jump_height=0.3, air_time=0.4), rep(2, jump_height=0.5, air_time=0.6)]
    res = calculate_stats(reps, "Vertical Jump", 10.0)
    assert res.posture is Posture.GOOD
    assert res.stats["max_jump_height"] == 0.5
    assert res.stats["avg_jump_height"] == pytest.approx(0.4)
    assert res.stats["avg_air_time"] == pytest.approx(0.5)
    assert res.stats["avg_rep_duration"] == pytest.approx(5.0)
    assert "min_angle" not in res.stats


def test_shuttle_and_reach_aggregates():
    shuttle = calculate_stats([rep(1, split_time=4.0), rep(2, split_time=3.5)], "Shuttle Run", 8.0)
    assert shuttle.stats["best_split_time"] == 3.5
    assert shuttle.stats["avg_split_time"] == pytest.approx(3.75)
    reach = calculate_stats([rep(1, reach_distance=0.4), rep(2, reach_distance=0.45)], "Sit Reach", 9.0)
    assert reach.stats["max_reach"] == 0.45


def test_result_dict():
    res = calculate_stats([rep(1)], "Sit-ups", 5.0, video=b"abc")
    d = res.to_dict()
    assert d["video_size"] == 3
    assert "video_b64" not in d
    assert d["posture"] == "Good"
    assert d["reps"][0]["count"] == 1
    assert res.to_dict(include_video=True)["video_b64"] == "YWJj"


def test_csv_export():
    text = reps_to_csv([rep(1, min_angle=70.0), rep(2, False)])
    rows = list(csv.DictReader(io.StringIO(text)))
    assert text.splitlines()[0].split(",") == REP_COLUMNS
    assert [r["count"] for r in rows] == ["1", "2"]
    assert rows[0]["min_angle"] == "70.0"
    assert rows[1]["min_angle"] == ""
    assert rows[1]["correct"] == "False"


def test_csv_export_empty():
    assert reps_to_csv([]) == ",".join(REP_COLUMNS) + "\n"

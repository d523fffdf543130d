import pytest

from repvision.runtime.cli import build_parser, main


def test_ghost_command_reports_win(capsys):
    assert main(["ghost", "--exercise", "Push-ups", "--reps", "30", "--time", "100", "--form", "96"]) == 0
    out = capsys.readouterr().out
    assert "badge: Ghost Slayer" in out


def test_ghost_command_reports_shortfalls(capsys):
    assert main(["ghost", "--exercise", "Sit-ups", "--reps", "20", "--time", "150", "--form", "80"]) == 0
    out = capsys.readouterr().out
    assert "Great Effort! Keep Pushing!" in out
    assert "Complete 10 more reps" in out


def test_unknown_exercise_exits_with_usage_error(capsys):
    assert main(["ghost", "--exercise", "Burpees", "--reps", "1", "--time", "1", "--form", "90"]) == 2
    assert "unknown exercise" in capsys.readouterr().err


def test_process_requires_exercise():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["process", "clip.mp4"])

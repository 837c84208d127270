"""Tests for the command line entry point."""
import json

from kotoba.__main__ import main


def _evaluation(capsys) -> dict:
    out = capsys.readouterr().out
    return json.loads(out[out.index("{"):])


def test_dictation_command(capsys):
    """Test scoring a dictation from the command line."""
    assert main(["--log-level", "WARNING", "dictation", "--reference", "食べる", "--answer", "食ベる"]) == 0
    evaluation = _evaluation(capsys)
    assert evaluation["mistakes"][0]["type"] == "substitution"
    assert 0 < evaluation["overall_score"] < 100


def test_fill_in_command(capsys):
    """Test scoring a fill-in answer from the command line."""
    assert main(["--log-level", "WARNING", "fill-in", "--expected", "to eat", "--answer", "To eat"]) == 0
    evaluation = _evaluation(capsys)
    assert evaluation["is_correct"] is True
    assert evaluation["base_points"] == 15


def test_shadowing_command_is_reproducible(capsys):
    """Test that a seed fixes the simulated scores."""
    main(["--log-level", "WARNING", "shadowing", "--reference", "ありがとう", "--seed", "5"])
    first = _evaluation(capsys)
    main(["--log-level", "WARNING", "shadowing", "--reference", "ありがとう", "--seed", "5"])
    assert _evaluation(capsys) == first

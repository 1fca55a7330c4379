import pytest

from services.similarity import jaccard, normalize_line, pick_dissimilar, similarity_to_recent


def test_normalize_line():
    assert normalize_line("  What's   your_FAVORITE food?! ") == "what s your favorite food"
    assert normalize_line("¿Qué tal, CHAT?") == "qué tal chat"
    assert normalize_line("!!!") == ""


def test_jaccard():
    assert jaccard("a b c", "a b c") == 1.0
    assert jaccard("a b", "c d") == 0.0
    assert jaccard("a b c", "b c d") == pytest.approx(2 / 4)
    assert jaccard("", "a") == 0.0


def test_similarity_to_recent_empty():
    assert similarity_to_recent("anything here", []) == 0.0


def test_picks_least_similar():
    recent = ["what's your favorite food"]
    candidates = ["What is your favorite food?", "Do ten squats right now"]
    assert pick_dissimilar(candidates, recent) == "Do ten squats right now"


def test_tie_keeps_first_candidate():
    assert pick_dissimilar(["first line here", "second line here"], []) == "first line here"


def test_short_candidates_ignored():
    assert pick_dissimilar(["hi!", "   ", "", "Sing a chorus"], []) == "Sing a chorus"
    assert pick_dissimilar(["ok", "yo!!"], []) == ""


def test_returns_stripped_candidate_text():
    assert pick_dissimilar(["  Rate the fit, chat!  "], []) == "Rate the fit, chat!"

import pytest

from biblio_backend.recommender.analysis import analyze_user_preferences, reading_patterns
from biblio_backend.recommender.models import Book


def test_analysis_from_feedback(engine, library):
    engine.submit_feedback("Dune", 0.8)
    engine.submit_feedback("Dune Messiah", 0.8)
    engine.submit_feedback("Il nome della rosa", -0.5)
    engine.record_view("Dune")
    engine.record_view("Dune")
    engine.record_view("Foundation")

    analysis = engine.analyze_preferences(library)

    genres = analysis["favoriteGenres"]
    assert {g["genre"] for g in genres[:2]} == {"fantascienza", "politica"}
    assert genres[0]["score"] == pytest.approx(1.6)
    assert genres[2] == {"genre": "deserto", "score": pytest.approx(0.8)}
    assert "giallo" not in {g["genre"] for g in genres}

    assert analysis["preferredAuthors"] == [{"author": "Frank Herbert", "score": pytest.approx(1.6)}]
    assert analysis["bookLengthPreference"] == 465
    assert analysis["yearPreference"] == 1967

    patterns = analysis["readingPatterns"]
    assert patterns["totalInteractions"] == 3
    assert patterns["positiveRatings"] == 2
    assert patterns["negativeRatings"] == 1
    assert patterns["positivityRate"] == pytest.approx(2 / 3)
    assert patterns["mostViewedBooks"][0] == {"title": "Dune", "views": 2}


def test_analysis_is_stored_as_preferences(engine, library):
    engine.submit_feedback("Dune", 0.8)
    analysis = engine.analyze_preferences(library)

    assert engine.store.get_preference("autoAnalysis") == analysis
    assert isinstance(engine.store.get_preference("lastAnalysis"), int)


def test_analysis_without_feedback():
    analysis = analyze_user_preferences([Book(title="Emma", pages=300)], {}, {})
    assert analysis["favoriteGenres"] == []
    assert analysis["preferredAuthors"] == []
    assert analysis["bookLengthPreference"] is None
    assert analysis["yearPreference"] is None
    assert analysis["readingPatterns"]["positivityRate"] == 0


def test_analysis_ignores_unknown_titles():
    analysis = analyze_user_preferences([Book(title="Emma", author="Jane Austen")], {"Missing": 1.0}, {})
    assert analysis["preferredAuthors"] == []
    assert analysis["readingPatterns"]["totalInteractions"] == 1


def test_most_viewed_books_are_capped():
    views = {f"Libro {i}": i for i in range(10)}
    patterns = reading_patterns({}, views)
    assert [b["views"] for b in patterns["mostViewedBooks"]] == [9, 8, 7, 6, 5]

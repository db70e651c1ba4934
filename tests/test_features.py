from biblio_backend.recommender.features import FeatureExtractor, get_common_tags
from biblio_backend.recommender.models import Book, FieldToggles, RecommendationOptions


DUNE = Book(
    title="Dune",
    author="Frank Herbert",
    tags=("fantascienza", "deserto"),
    genre="Romanzo",
    description="Spezia e vermi",
)


def test_fields_are_repeated_by_weight():
    words = FeatureExtractor().extract_book_text(DUNE).split()
    assert words.count("Dune") == 4
    assert words.count("Herbert") == 3
    assert words.count("fantascienza") == 2
    assert words.count("Romanzo") == 2
    assert words.count("Spezia") == 1


def test_disabled_fields_contribute_nothing():
    toggles = FieldToggles.from_dict({"useTitle": False, "useDescription": False})
    text = FeatureExtractor().extract_book_text(DUNE, toggles)
    assert "Dune" not in text.split()
    assert "Spezia" not in text
    assert "Herbert" in text


def test_missing_fields_contribute_nothing():
    assert FeatureExtractor().extract_book_text(Book(title="Solo")) == "Solo Solo Solo Solo"
    assert FeatureExtractor().extract_book_text(None) == ""


def test_custom_field_weights():
    extractor = FeatureExtractor({"title": 1, "author": 0})
    assert extractor.extract_book_text(Book(title="Dune", author="Frank Herbert")) == "Dune"


def test_common_tags_case_insensitive_in_first_book_order():
    a = Book(title="A", tags=("Sci-Fi", "Desert", "Politics"))
    b = Book(title="B", tags=("desert", "SCI-FI", "war"))
    assert get_common_tags(a, b) == ["sci-fi", "desert"]
    assert get_common_tags(a, Book(title="C")) == []
    assert get_common_tags(None, b) == []


def test_book_from_dict_tolerates_bad_fields():
    book = Book.from_dict({
        "book_id": 7,
        "title": "  Dune ",
        "rating": "not a number",
        "pages": "412",
        "tags": "fantascienza, deserto",
        "year": None,
        "author": ["not", "a", "string"],
    })
    assert book.id == 7
    assert book.title == "Dune"
    assert book.rating is None
    assert book.pages == 412
    assert book.tags == ("fantascienza", "deserto")
    assert book.author is None


def test_options_accept_flat_ui_toggles():
    options = RecommendationOptions.from_dict({"mode": "Style", "useTags": False, "topN": 3})
    assert options.mode == "style"
    assert options.top_n == 3
    assert options.field_toggles.tags is False
    assert options.field_toggles.title is True

import pytest

from chirpy.service.chirps import ChirpService, clean_body
from chirpy.service.errors import ForbiddenError, NotFoundError, ValidationError
from chirpy.storage.document import DocumentStore


@pytest.fixture
def chirps(tmp_path):
    return ChirpService(DocumentStore(tmp_path / "database.json"))


class TestCleanBody:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("hello world", "hello world"),
            ("what a kerfuffle", "what a ****"),
            ("SHARBERT and Fornax", "**** and ****"),
            ("fornax!", "fornax!"),
            ("two  spaces kerfuffle", "two  spaces ****"),
        ],
    )
    def test_clean_body(self, text, expected):
        assert clean_body(text) == expected


class TestChirpService:
    def test_exactly_140_characters_allowed(self, chirps):
        assert chirps.validate("x" * 140) == "x" * 140

    def test_141_characters_rejected(self, chirps):
        with pytest.raises(ValidationError) as exc_info:
            chirps.validate("x" * 141)
        assert exc_info.value.message == "Chirp is too long"

    def test_create_stores_cleaned_body(self, chirps):
        chirp = chirps.create("a kerfuffle", author_id=3)

        assert chirps.get(chirp.id).body == "a ****"

    def test_get_missing(self, chirps):
        with pytest.raises(NotFoundError):
            chirps.get(1)

    def test_delete_requires_author(self, chirps):
        chirp = chirps.create("mine", author_id=1)

        with pytest.raises(ForbiddenError):
            chirps.delete(chirp.id, user_id=2)
        chirps.delete(chirp.id, user_id=1)
        assert chirps.list() == []

    def test_delete_missing(self, chirps):
        with pytest.raises(NotFoundError):
            chirps.delete(5, user_id=1)

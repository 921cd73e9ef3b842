import pytest

from lending_service.errors import NotFound, Unavailable, ValidationError
from lending_service.models import Book


def test_add_book_starts_available(system, add_book):
    book = add_book(quantity=3, isbn="978-1847941831", category="Self-Help", publication_year=2018)

    stored = system.catalog.get_by_id(book.id)
    assert stored.available is True
    assert stored.total_copies == 3
    assert stored.available_copies == 3
    assert stored.borrowed_by == []
    assert stored.publication_year == 2018


def test_add_book_generates_distinct_ids(add_book):
    assert add_book().id != add_book().id


@pytest.mark.parametrize("quantity", [0, -1, "2", 1.5])
def test_add_book_rejects_bad_quantity(system, quantity):
    with pytest.raises(ValidationError):
        system.catalog.add_book(title="Dune", author="Frank Herbert", quantity=quantity)
    assert system.catalog.list_books() == []


def test_add_book_requires_title_and_author(system):
    with pytest.raises(ValidationError):
        system.catalog.add_book(title="  ", author="Frank Herbert")
    with pytest.raises(ValidationError):
        system.catalog.add_book(title="Dune", author="")


def test_update_replaces_record_and_recomputes_available(system, add_book):
    book = add_book(quantity=2, description="old")

    replacement = Book(
        id=book.id,
        title="Atomic Habits (2nd ed.)",
        author="James Clear",
        isbn="",
        category="",
        description="",
        cover_image="",
        publication_year=None,
        total_copies=2,
        available_copies=0,
        available=True,
        borrowed_by=[],
    )
    system.catalog.update_book(replacement)

    stored = system.catalog.get_by_id(book.id)
    assert stored.title == "Atomic Habits (2nd ed.)"
    assert stored.description == ""
    assert stored.available_copies == 0
    assert stored.available is False


def test_update_unknown_book(system, add_book):
    book = add_book()
    system.catalog.delete_book(book.id)

    with pytest.raises(NotFound):
        system.catalog.update_book(book)


def test_update_rejects_negative_counts(system, add_book):
    book = add_book()
    book.available_copies = -1

    with pytest.raises(ValidationError):
        system.catalog.update_book(book)
    assert system.catalog.get_by_id(book.id).available_copies == 1


def test_delete_book(system, add_book):
    book = add_book()
    system.catalog.delete_book(book.id)

    assert system.catalog.find_book(book.id) is None
    with pytest.raises(NotFound):
        system.catalog.get_by_id(book.id)
    with pytest.raises(NotFound):
        system.catalog.delete_book(book.id)


def test_free_copy_counter_keeps_available_in_step(system, add_book):
    book = add_book(quantity=2)

    after = system.catalog.decrement_free_copies(book.id)
    assert (after.available_copies, after.available) == (1, True)

    after = system.catalog.decrement_free_copies(book.id)
    assert (after.available_copies, after.available) == (0, False)

    with pytest.raises(Unavailable):
        system.catalog.decrement_free_copies(book.id)
    assert system.catalog.get_by_id(book.id).available_copies == 0

    after = system.catalog.increment_free_copies(book.id)
    assert (after.available_copies, after.available) == (1, True)


def test_list_books_sorted_by_title(add_book, system):
    add_book(title="Sapiens")
    add_book(title="Atomic Habits")

    assert [b.title for b in system.catalog.list_books()] == ["Atomic Habits", "Sapiens"]


def test_update_fills_missing_text_fields(system, add_book):
    book = add_book(quantity=2, isbn="978-1847941831", description="old")

    system.catalog.update_book(
        Book(id=book.id, title="New", author="A", total_copies=2, available_copies=2)
    )

    stored = system.catalog.get_by_id(book.id)
    assert stored.title == "New"
    assert (stored.isbn, stored.category, stored.description, stored.cover_image) == ("", "", "", "")
    assert stored.borrowed_by == []


def test_update_rejects_non_text_fields(system, add_book):
    book = add_book(isbn="978-1847941831")
    book.isbn = 9781847941831

    with pytest.raises(ValidationError):
        system.catalog.update_book(book)
    assert system.catalog.get_by_id(book.id).isbn == "978-1847941831"

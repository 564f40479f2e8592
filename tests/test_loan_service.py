from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func

from library_backend.database import create_db_engine, create_session_factory
from library_backend.models import Book, IssuedBook, LoanStatus
from library_backend.services.catalog import CatalogService
from library_backend.services.loans import LoanService, compute_fine
from library_backend.services.result import ErrorKind


def available(catalog, book_id):
    return catalog.get_book(book_id).value.available_copies


def assert_inventory_consistent(session_factory):
    with session_factory() as db:
        for book in db.query(Book).all():
            open_loans = db.query(func.count(IssuedBook.issue_id)).filter(
                IssuedBook.book_id == book.book_id,
                IssuedBook.status == LoanStatus.ISSUED.value,
            ).scalar()
            assert book.available_copies + open_loans == book.total_copies


def test_issue_creates_open_loan_due_in_fourteen_days(loans, catalog, make_book, make_user, clock):
    book = make_book(copies=2)
    student = make_user("alice")

    result = loans.issue_book(book.book_id, student.user_id)

    assert result.ok
    view = result.value
    assert view.status == "ISSUED"
    assert view.issueDate == clock.current
    assert view.dueDate - view.issueDate == timedelta(days=14)
    assert view.returnDate is None
    assert view.fineAmount == 0
    assert view.bookTitle == book.title
    assert view.bookAuthor == book.author
    assert view.userName == student.full_name
    assert available(catalog, book.book_id) == 1


def test_return_within_period_has_no_fine(loans, catalog, make_book, make_user, clock):
    book = make_book(copies=1)
    student = make_user("alice")
    issued = loans.issue_book(book.book_id, student.user_id).value
    assert available(catalog, book.book_id) == 0

    clock.advance(5)
    result = loans.return_book(issued.issueId)

    assert result.ok
    assert result.value.fine_amount == Decimal("0.00")
    assert result.value.message == "Book returned successfully. No fine"
    assert available(catalog, book.book_id) == 1

    loan = loans.get_loan(issued.issueId).value
    assert loan.status == "RETURNED"
    assert loan.returnDate == clock.current


def test_late_return_charges_per_overdue_day(loans, catalog, make_book, make_user, clock):
    book = make_book(copies=1)
    student = make_user("alice")
    issued = loans.issue_book(book.book_id, student.user_id).value

    clock.advance(20)
    result = loans.return_book(issued.issueId)

    assert result.ok
    assert result.value.fine_amount == Decimal("30.00")
    assert result.value.message == "Book returned successfully. Fine: Rs 30.00"
    assert loans.get_loan(issued.issueId).value.fineAmount == 30.0
    assert available(catalog, book.book_id) == 1


def test_return_on_due_date_is_free_and_day_after_is_charged(loans, make_book, make_user, clock):
    first, second = make_book(), make_book()
    student = make_user("alice")
    on_time = loans.issue_book(first.book_id, student.user_id).value
    late = loans.issue_book(second.book_id, student.user_id).value

    clock.advance(14)
    assert loans.return_book(on_time.issueId).value.fine_amount == Decimal("0.00")
    clock.advance(1)
    assert loans.return_book(late.issueId).value.fine_amount == Decimal("5.00")


def test_fine_is_zero_until_due_and_never_decreases():
    due = date(2024, 3, 15)
    previous = Decimal("0.00")
    for offset in range(-10, 40):
        fine = compute_fine(due, due + timedelta(days=offset), Decimal("5.00"))
        if offset <= 0:
            assert fine == 0
        assert fine >= previous
        previous = fine
    assert previous == Decimal("195.00")


def test_quota_blocks_fourth_book(loans, make_book, make_user):
    student = make_user("alice")
    books = [make_book() for _ in range(4)]
    for book in books[:3]:
        assert loans.issue_book(book.book_id, student.user_id).ok

    result = loans.issue_book(books[3].book_id, student.user_id)

    assert not result.ok
    assert result.kind == ErrorKind.QUOTA_EXCEEDED
    assert "maximum limit of 3 books" in result.message
    assert loans.open_count_by_user(student.user_id).value == 3


def test_same_book_cannot_be_issued_twice_to_one_user(loans, catalog, make_book, make_user):
    book = make_book(copies=3)
    student = make_user("alice")
    assert loans.issue_book(book.book_id, student.user_id).ok

    result = loans.issue_book(book.book_id, student.user_id)

    assert result.kind == ErrorKind.ALREADY_ISSUED_BY_USER
    assert available(catalog, book.book_id) == 2


def test_last_copy_goes_to_first_borrower(loans, make_book, make_user):
    book = make_book(copies=1)
    alice, bob = make_user("alice"), make_user("bob")
    assert loans.issue_book(book.book_id, alice.user_id).ok

    result = loans.issue_book(book.book_id, bob.user_id)

    assert result.kind == ErrorKind.UNAVAILABLE
    assert result.message == "Book is not available. All copies are issued"


def test_issue_rejects_unknown_and_invalid_ids(loans, make_book, make_user):
    book = make_book()
    student = make_user("alice")

    assert loans.issue_book(999, student.user_id).kind == ErrorKind.NOT_FOUND
    assert loans.issue_book(book.book_id, 999).message == "User not found"
    assert loans.issue_book(0, student.user_id).kind == ErrorKind.VALIDATION
    assert loans.issue_book(book.book_id, None).message == "Invalid book or user ID"


def test_second_return_is_rejected_without_side_effects(loans, catalog, make_book, make_user, clock):
    book = make_book(copies=2)
    student = make_user("alice")
    issued = loans.issue_book(book.book_id, student.user_id).value
    clock.advance(16)
    assert loans.return_book(issued.issueId).ok
    before = loans.get_loan(issued.issueId).value

    clock.advance(10)
    result = loans.return_book(issued.issueId)

    assert result.kind == ErrorKind.ALREADY_RETURNED
    assert result.message == "Book has already been returned"
    after = loans.get_loan(issued.issueId).value
    assert after.fineAmount == before.fineAmount == 10.0
    assert after.returnDate == before.returnDate
    assert available(catalog, book.book_id) == 2


def test_return_unknown_issue(loans):
    assert loans.return_book(42).kind == ErrorKind.NOT_FOUND
    assert loans.return_book(-1).message == "Invalid issue ID"


def test_issue_and_return_round_trip_keeps_inventory(loans, catalog, make_book, make_user, clock, session_factory):
    book = make_book(copies=3)
    students = [make_user(name) for name in ("alice", "bob", "carol")]
    issued = [loans.issue_book(book.book_id, s.user_id).value for s in students]
    assert available(catalog, book.book_id) == 0
    assert_inventory_consistent(session_factory)

    clock.advance(3)
    for view in issued:
        result = loans.return_book(view.issueId)
        assert result.ok
        assert result.value.fine_amount >= 0
        assert_inventory_consistent(session_factory)

    assert available(catalog, book.book_id) == 3


def test_failed_counter_update_rolls_back_the_loan(loans, catalog, make_book, make_user, monkeypatch):
    book = make_book(copies=1)
    student = make_user("alice")
    monkeypatch.setattr(catalog, "adjust_available", lambda db, book_id, delta: False)

    result = loans.issue_book(book.book_id, student.user_id)

    assert result.kind == ErrorKind.UNAVAILABLE
    assert loans.all_history().value == []
    assert available(catalog, book.book_id) == 1


def test_store_failure_is_reported_as_retryable(tmp_path):
    # Schema never created, so every statement fails inside the store
    engine = create_db_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    factory = create_session_factory(engine)
    service = LoanService(CatalogService(factory), factory)

    result = service.issue_book(1, 1)

    assert result.kind == ErrorKind.STORE_ERROR
    assert result.retryable
    assert result.message == "Failed to issue book. Please try again"
    engine.dispose()


def test_listing_queries(loans, make_book, make_user, clock):
    alice, bob = make_user("alice"), make_user("bob")
    first, second, third = make_book("Alpha"), make_book("Beta"), make_book("Gamma")

    a1 = loans.issue_book(first.book_id, alice.user_id).value
    clock.advance(2)
    a2 = loans.issue_book(second.book_id, alice.user_id).value
    clock.advance(2)
    b1 = loans.issue_book(third.book_id, bob.user_id).value
    loans.return_book(a1.issueId)

    assert [v.issueId for v in loans.open_loans_all().value] == [b1.issueId, a2.issueId]
    assert [v.issueId for v in loans.open_loans_by_user(alice.user_id).value] == [a2.issueId]
    assert [v.issueId for v in loans.history_by_user(alice.user_id).value] == [a2.issueId, a1.issueId]
    assert [v.issueId for v in loans.all_history().value] == [b1.issueId, a2.issueId, a1.issueId]
    assert loans.open_count_by_user(bob.user_id).value == 1
    assert loans.overdue().value == []

    clock.advance(15)
    overdue = loans.overdue().value
    # a2 was due two days before b1
    assert [v.issueId for v in overdue] == [a2.issueId, b1.issueId]
    assert all(v.status == "ISSUED" for v in overdue)


def test_due_today_is_not_overdue(loans, make_book, make_user, clock):
    book = make_book()
    student = make_user("alice")
    loans.issue_book(book.book_id, student.user_id)

    clock.advance(14)
    assert loans.overdue().value == []
    clock.advance(1)
    assert len(loans.overdue().value) == 1


def test_concurrent_issues_of_last_copy_have_one_winner(loans, catalog, make_book, make_user, session_factory):
    book = make_book(copies=1)
    students = [make_user(f"student{i}") for i in range(8)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda s: loans.issue_book(book.book_id, s.user_id), students))

    winners = [r for r in results if r.ok]
    assert len(winners) == 1
    assert all(r.kind == ErrorKind.UNAVAILABLE for r in results if not r.ok)
    assert available(catalog, book.book_id) == 0
    assert_inventory_consistent(session_factory)


def test_concurrent_issues_respect_quota(loans, make_book, make_user):
    student = make_user("alice")
    books = [make_book() for _ in range(6)]

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda b: loans.issue_book(b.book_id, student.user_id), books))

    assert sum(1 for r in results if r.ok) == 3
    assert all(r.kind == ErrorKind.QUOTA_EXCEEDED for r in results if not r.ok)
    assert loans.open_count_by_user(student.user_id).value == 3


def test_reconcile_repairs_counter_drift(loans, catalog, make_book, make_user, session_factory):
    book = make_book(copies=3)
    student = make_user("alice")
    loans.issue_book(book.book_id, student.user_id)
    with session_factory.begin() as db:
        db.query(Book).filter(Book.book_id == book.book_id).update({Book.available_copies: 3})

    result = loans.reconcile_inventory()

    assert result.ok
    [discrepancy] = result.value
    assert discrepancy.book_id == book.book_id
    assert discrepancy.recorded == 3
    assert discrepancy.expected == 2
    assert available(catalog, book.book_id) == 2
    assert loans.reconcile_inventory().value == []


def test_policy_reflects_configuration(catalog, session_factory):
    service = LoanService(
        catalog, session_factory, issue_days=7, max_books_per_user=5, fine_per_day=Decimal("2.50")
    )
    assert service.policy == {"issueDays": 7, "maxBooksPerUser": 5, "finePerDay": 2.5}


def test_ids_wider_than_an_integer_column_are_rejected(loans, make_book, make_user):
    book = make_book()
    student = make_user("alice")
    huge = 10**19

    assert loans.issue_book(huge, student.user_id).message == "Invalid book or user ID"
    assert loans.issue_book(book.book_id, huge).kind == ErrorKind.VALIDATION
    assert loans.return_book(huge).message == "Invalid issue ID"
    assert loans.get_loan(huge).kind == ErrorKind.VALIDATION
    assert loans.open_loans_by_user(huge).message == "Invalid user ID"
    assert loans.history_by_user(huge).kind == ErrorKind.VALIDATION
    assert loans.open_count_by_user(huge).kind == ErrorKind.VALIDATION
    assert loans.all_history().value == []

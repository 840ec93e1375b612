from api_client import ApiError
from roster import Page, fetch_offer_statuses, filter_offers, filter_students, offer_stats, page_args
from tests.conftest import FakeApi

STUDENTS = [
    {"_id": "s1", "fullName": "Asha Rao", "email": "asha@example.com", "collegeName": "IIT Madras"},
    {"_id": "s2", "fullName": "Vikram Shah", "email": "vikram@example.com", "collegeName": None},
]


def test_page_args_defaults_and_bounds():
    assert page_args({}) == (1, 10)
    assert page_args({"page": "3", "limit": "50"}) == (3, 50)
    assert page_args({"page": "-2", "limit": "7"}) == (1, 10)
    assert page_args({"page": "x", "limit": "y"}) == (1, 10)


def test_filter_students_by_text():
    assert [s["_id"] for s in filter_students(STUDENTS, "madras")] == ["s1"]
    assert [s["_id"] for s in filter_students(STUDENTS, "VIKRAM@")] == ["s2"]
    assert len(filter_students(STUDENTS, "")) == 2


def test_filter_students_by_offer_status():
    statuses = {"s1": "pending", "s2": None}
    assert [s["_id"] for s in filter_students(STUDENTS, status_filter="sent", statuses=statuses)] == ["s1"]
    assert [s["_id"] for s in filter_students(STUDENTS, status_filter="not-sent", statuses=statuses)] == ["s2"]


def test_offer_status_errors_are_treated_as_unknown():
    fake = FakeApi()
    fake.offer_statuses = {"s1": "accepted"}
    assert fetch_offer_statuses(fake, STUDENTS) == {"s1": "accepted", "s2": None}

    fake.fail("get_offer_status", ApiError("boom", status_code=500))
    assert fetch_offer_statuses(fake, STUDENTS) == {"s1": None, "s2": None}


def test_filter_offers_and_stats():
    offers = [
        {"_id": "o1", "email": "a@example.com", "status": "accepted",
         "candidateId": {"_id": "s1", "fullName": "Asha", "mobile": "111"}},
        {"_id": "o2", "email": "", "status": "pending", "candidateId": "s2"},
        {"_id": "o3", "email": "c@example.com", "status": "declined",
         "candidateId": {"_id": "s3", "fullName": "Chen", "mobile": "333"}},
    ]
    invited = {"o3"}
    assert [o["_id"] for o in filter_offers(offers, status_filter="pending")] == ["o2"]
    assert [o["_id"] for o in filter_offers(offers, status_filter="sent", invited=invited)] == ["o3"]
    assert [o["_id"] for o in filter_offers(offers, search="333")] == ["o3"]
    assert [o["_id"] for o in filter_offers(offers, status_filter="all")] == ["o1", "o2", "o3"]
    assert offer_stats(offers, invited) == {"total": 3, "with_email": 2, "accepted": 1, "invited": 1}


def test_page_slicing():
    page = Page(list(range(25)), 3, 10)
    assert page.items == [20, 21, 22, 23, 24]
    assert (page.first, page.last, page.pages) == (21, 25, 3)
    assert page.has_prev and not page.has_next

    assert Page(list(range(5)), 9, 10).page == 1
    empty = Page([], 1, 10)
    assert (empty.first, empty.last, empty.pages) == (0, 0, 1)

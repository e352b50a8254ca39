"""
Product review tests.

Verifies:
- One review per customer per product, with verified-purchase detection
- Rating stats (average, count, distribution)
- Only the selling store may respond; the reviewer is notified
"""

import pytest

from conftest import ADDRESS
from samoku.errors import ConflictError, NotFoundError, UnauthorizedResponseError
from samoku.models import Notification, ProductReview
from samoku.services import order_service, review_service
from samoku.services.review_service import ReviewError


def _delivered(customer, vendor, product):
    order = order_service.place_order(customer.id, [{"product_id": product.id, "quantity": 1}], ADDRESS)
    order_service.update_line_status(order.lines[0].id, "delivered", actor=vendor)
    return order


class TestCreateReview:

    def test_create(self, db_session, customer, store_a, product_a):
        review = review_service.create_review(customer, product_a.id, 5, "  Love it ", comment="Soft cotton")

        assert review.store_id == store_a.id
        assert review.title == "Love it"
        assert review.is_verified_purchase is False
        assert review.order_id is None
        assert review.to_dict()["customer_name"] == "Ada Shopper"

    def test_delivered_purchase_is_verified(self, db_session, customer, vendor_a, product_a):
        order = _delivered(customer, vendor_a, product_a)

        review = review_service.create_review(customer, product_a.id, 4, "Good")

        assert review.is_verified_purchase is True
        assert review.order_id == order.id

    def test_undelivered_purchase_is_not_verified(self, db_session, customer, product_a):
        order_service.place_order(customer.id, [{"product_id": product_a.id, "quantity": 1}], ADDRESS)

        review = review_service.create_review(customer, product_a.id, 4, "Good")
        assert review.is_verified_purchase is False

    def test_one_review_per_product(self, db_session, customer, product_a):
        review_service.create_review(customer, product_a.id, 4, "Good")

        with pytest.raises(ConflictError):
            review_service.create_review(customer, product_a.id, 1, "Changed my mind")
        assert db_session.query(ProductReview).count() == 1

    @pytest.mark.parametrize("rating", [0, 6, 4.5, "5", True])
    def test_rating_must_be_one_to_five(self, db_session, customer, product_a, rating):
        with pytest.raises(ReviewError):
            review_service.create_review(customer, product_a.id, rating, "Hmm")

    def test_title_required(self, db_session, customer, product_a):
        with pytest.raises(ReviewError):
            review_service.create_review(customer, product_a.id, 3, "   ")

    def test_unknown_product(self, db_session, customer):
        with pytest.raises(NotFoundError):
            review_service.create_review(customer, 9999, 3, "Where")


class TestRatingStats:

    def test_stats(self, db_session, make_user, product_a):
        for idx, rating in enumerate([5, 4, 4, 2]):
            shopper = make_user(f"shopper{idx}@samoku.test")
            review_service.create_review(shopper, product_a.id, rating, f"Review {idx}")

        stats = review_service.get_product_rating_stats(product_a.id)

        assert stats["total_reviews"] == 4
        assert stats["average_rating"] == 3.8
        assert stats["rating_distribution"] == {1: 0, 2: 1, 3: 0, 4: 2, 5: 1}

    def test_average_rounds_half_up(self, db_session, make_user, product_a):
        # 11 / 3 = 3.67
        for idx, rating in enumerate([5, 3, 3]):
            review_service.create_review(make_user(f"s{idx}@samoku.test"), product_a.id, rating, "r")

        assert review_service.get_product_rating_stats(product_a.id)["average_rating"] == 3.7

    def test_no_reviews(self, db_session, product_a):
        stats = review_service.get_product_rating_stats(product_a.id)
        assert stats["average_rating"] == 0.0
        assert stats["total_reviews"] == 0

    def test_unapproved_reviews_excluded(self, db_session, customer, make_user, product_a):
        hidden = review_service.create_review(customer, product_a.id, 1, "Spam")
        hidden.is_approved = False
        db_session.commit()
        review_service.create_review(make_user("fan@samoku.test"), product_a.id, 5, "Great")

        assert review_service.get_product_rating_stats(product_a.id)["total_reviews"] == 1
        assert [r.title for r in review_service.list_product_reviews(product_a.id)] == ["Great"]


class TestVendorResponse:

    def test_owner_responds_and_reviewer_is_notified(self, db_session, customer, vendor_a, product_a):
        review = review_service.create_review(customer, product_a.id, 3, "Runs small")

        answered = review_service.add_vendor_response(review.id, " Try a size up ", vendor_a)

        assert answered.vendor_response == "Try a size up"
        assert answered.vendor_response_at is not None
        assert answered.responded_by_user_id == vendor_a.id
        note = db_session.query(Notification).filter_by(user_id=customer.id).one()
        assert note.category == "product"
        assert note.title == "Vendor Responded to Your Review"

    def test_other_vendor_is_rejected(self, db_session, customer, vendor_b, product_a):
        review = review_service.create_review(customer, product_a.id, 3, "Runs small")

        with pytest.raises(UnauthorizedResponseError) as exc_info:
            review_service.add_vendor_response(review.id, "Not my product", vendor_b)

        assert exc_info.value.status_code == 403
        assert db_session.get(ProductReview, review.id).vendor_response is None

    def test_admin_may_respond(self, db_session, customer, admin, product_a):
        review = review_service.create_review(customer, product_a.id, 3, "Runs small")
        assert review_service.add_vendor_response(review.id, "Noted", admin).vendor_response == "Noted"

    def test_empty_response_rejected(self, db_session, customer, vendor_a, product_a):
        review = review_service.create_review(customer, product_a.id, 3, "Runs small")
        with pytest.raises(ReviewError):
            review_service.add_vendor_response(review.id, "  ", vendor_a)

    def test_unknown_review(self, db_session, vendor_a):
        with pytest.raises(NotFoundError):
            review_service.add_vendor_response(9999, "Hello", vendor_a)


class TestEditReview:

    def test_author_updates(self, db_session, customer, product_a):
        review = review_service.create_review(customer, product_a.id, 2, "Meh")

        updated = review_service.update_review(review.id, {"rating": 4, "comment": "Grew on me"}, customer)

        assert updated.rating == 4
        assert updated.comment == "Grew on me"

    def test_vendor_response_not_editable_by_author(self, db_session, customer, product_a):
        review = review_service.create_review(customer, product_a.id, 2, "Meh")
        with pytest.raises(ReviewError):
            review_service.update_review(review.id, {"vendor_response": "Fake"}, customer)

    def test_others_cannot_edit_or_delete(self, db_session, customer, make_user, product_a):
        review = review_service.create_review(customer, product_a.id, 2, "Meh")
        stranger = make_user("stranger@samoku.test")

        with pytest.raises(UnauthorizedResponseError):
            review_service.update_review(review.id, {"rating": 1}, stranger)
        with pytest.raises(UnauthorizedResponseError):
            review_service.delete_review(review.id, stranger)

    def test_author_and_admin_delete(self, db_session, customer, admin, make_user, product_a):
        own = review_service.create_review(customer, product_a.id, 2, "Meh")
        review_service.delete_review(own.id, customer)

        other = review_service.create_review(make_user("x@samoku.test"), product_a.id, 1, "Bad")
        review_service.delete_review(other.id, admin)

        assert db_session.query(ProductReview).count() == 0
        assert review_service.list_user_reviews(customer.id) == []

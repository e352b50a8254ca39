# Overview: Service-layer operations for product reviews and vendor responses.

"""
Product Reviews

- One review per customer per product.
- is_verified_purchase is derived from the customer's delivered order
  lines, never from the request.
- Only the owner of the product's store (or an admin) may respond;
  anyone else gets UnauthorizedResponseError.
"""

from __future__ import annotations

from ..errors import ConflictError, NotFoundError, ServiceError, UnauthorizedResponseError
from ..extensions import db
from ..models import Order, OrderLine, Product, ProductReview, User
from ..models.orders import LINE_STATUS_DELIVERED
from ..models.reviews import MAX_RATING, MIN_RATING
from samoku.services import notification_service
from samoku.services.catalog_service import ensure_can_manage_store
from samoku.services.concurrency import run_with_retry
from samoku.time_utils import utcnow

REVIEW_UPDATABLE_FIELDS = {"rating", "title", "comment", "image_urls"}
MAX_TITLE_LENGTH = 200


class ReviewError(ServiceError):
    pass


def _check_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ReviewError(f"rating must be an integer from {MIN_RATING} to {MAX_RATING}", {"rating": rating})
    return rating


def _check_title(title) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ReviewError("title is required")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ReviewError(f"title must be at most {MAX_TITLE_LENGTH} characters")
    return title


def _check_comment(comment) -> str | None:
    if comment is None:
        return None
    if not isinstance(comment, str):
        raise ReviewError("comment must be a string")
    return comment.strip() or None


def _check_image_urls(image_urls) -> list:
    if image_urls is None:
        return []
    if not isinstance(image_urls, list) or not all(isinstance(u, str) for u in image_urls):
        raise ReviewError("image_urls must be a list of URLs")
    return image_urls


def _delivered_order_id(customer_id: int, product_id: int) -> int | None:
    row = (
        db.session.query(OrderLine.order_id)
        .join(Order, Order.id == OrderLine.order_id)
        .filter(
            Order.customer_id == customer_id,
            OrderLine.product_id == product_id,
            OrderLine.fulfillment_status == LINE_STATUS_DELIVERED,
        )
        .order_by(OrderLine.id.desc())
        .first()
    )
    return row[0] if row else None


def get_review(review_id: int) -> ProductReview:
    review = db.session.get(ProductReview, review_id)
    if not review:
        raise NotFoundError("Review not found", {"review_id": review_id})
    return review


def list_product_reviews(product_id: int, limit: int | None = None) -> list[ProductReview]:
    query = (
        db.session.query(ProductReview)
        .filter(ProductReview.product_id == product_id, ProductReview.is_approved.is_(True))
        .order_by(ProductReview.created_at.desc(), ProductReview.id.desc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def list_user_reviews(user_id: int) -> list[ProductReview]:
    return (
        db.session.query(ProductReview)
        .filter_by(customer_id=user_id)
        .order_by(ProductReview.created_at.desc(), ProductReview.id.desc())
        .all()
    )


def create_review(
    customer: User,
    product_id: int,
    rating: int,
    title: str,
    comment: str | None = None,
    image_urls: list | None = None,
) -> ProductReview:
    rating = _check_rating(rating)
    title = _check_title(title)
    comment = _check_comment(comment)
    image_urls = _check_image_urls(image_urls)

    def _op():
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found", {"product_id": product_id})

        existing = db.session.query(ProductReview).filter_by(
            product_id=product_id, customer_id=customer.id
        ).first()
        if existing:
            raise ConflictError("You have already reviewed this product", {"review_id": existing.id})

        order_id = _delivered_order_id(customer.id, product_id)
        review = ProductReview(
            product_id=product.id,
            store_id=product.store_id,
            customer_id=customer.id,
            order_id=order_id,
            rating=rating,
            title=title,
            comment=comment,
            image_urls=image_urls,
            is_verified_purchase=order_id is not None,
            is_approved=True,
        )
        db.session.add(review)
        db.session.commit()
        return review

    return run_with_retry(_op)


def update_review(review_id: int, patch: dict, actor: User) -> ProductReview:
    """Author edits their own review. Vendor responses are left as they are."""
    unknown = set(patch) - REVIEW_UPDATABLE_FIELDS
    if unknown:
        raise ReviewError(f"Field not allowed: {', '.join(sorted(unknown))}")

    checks = {
        "rating": _check_rating,
        "title": _check_title,
        "comment": _check_comment,
        "image_urls": _check_image_urls,
    }
    clean = {key: checks[key](value) for key, value in patch.items()}

    def _op():
        review = get_review(review_id)
        if review.customer_id != actor.id:
            raise UnauthorizedResponseError("You can only edit your own review", {"review_id": review_id})
        for key, value in clean.items():
            setattr(review, key, value)
        db.session.commit()
        return review

    return run_with_retry(_op)


def delete_review(review_id: int, actor: User) -> None:
    review = get_review(review_id)
    if review.customer_id != actor.id and not actor.is_admin:
        raise UnauthorizedResponseError("You can only delete your own review", {"review_id": review_id})
    db.session.delete(review)
    db.session.commit()


def add_vendor_response(review_id: int, response: str, actor: User) -> ProductReview:
    """
    Attach (or replace) the store's public response to a review.

    SECURITY: the actor must own the store that sells the reviewed product.
    """
    if not isinstance(response, str) or not response.strip():
        raise ReviewError("response is required")
    response = response.strip()

    def _op():
        review = get_review(review_id)
        ensure_can_manage_store(review.product.store, actor)
        review.vendor_response = response
        review.vendor_response_at = utcnow()
        review.responded_by_user_id = actor.id
        db.session.commit()
        return review

    review = run_with_retry(_op)
    notification_service.notify_review_response(review.customer_id, review.product.name, review.product_id)
    return review


def get_product_rating_stats(product_id: int) -> dict:
    """Average (one decimal), count and 1-5 distribution of approved reviews."""
    ratings = [
        row[0]
        for row in db.session.query(ProductReview.rating).filter(
            ProductReview.product_id == product_id,
            ProductReview.is_approved.is_(True),
        )
    ]
    distribution = {star: 0 for star in range(MIN_RATING, MAX_RATING + 1)}
    for rating in ratings:
        distribution[rating] += 1

    total = len(ratings)
    # Tenths, half-up, in integers
    average = (sum(ratings) * 10 + total // 2) // total / 10 if total else 0.0
    return {
        "average_rating": average,
        "total_reviews": total,
        "rating_distribution": distribution,
    }

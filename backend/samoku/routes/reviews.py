# Overview: Flask API routes for product reviews and vendor responses; parses input and returns JSON responses.

"""
Review API routes

Reading reviews is public. Customers write, edit and delete their own
reviews; the selling store answers them.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response
from ..models.auth import ROLE_VENDOR
from ..services import review_service
from ..validation import parse_int, require_fields, require_json_object

reviews_bp = Blueprint("reviews", __name__, url_prefix="/api")


@reviews_bp.get("/products/<int:product_id>/reviews")
def list_product_reviews_route(product_id: int):
    """Approved reviews plus rating stats. Query params: limit (1-100)."""
    try:
        limit = request.args.get("limit")
        limit = parse_int(limit, "limit", minimum=1, maximum=100) if limit else None
        reviews = review_service.list_product_reviews(product_id, limit)
        return jsonify({
            "reviews": [r.to_dict() for r in reviews],
            "stats": review_service.get_product_rating_stats(product_id),
        }), 200
    except ServiceError as e:
        return error_response(e)


@reviews_bp.post("/products/<int:product_id>/reviews")
@require_auth
def create_review_route(product_id: int):
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "rating", "title")

        review = review_service.create_review(
            g.current_user,
            product_id,
            data["rating"],
            data["title"],
            comment=data.get("comment"),
            image_urls=data.get("image_urls"),
        )
        return jsonify({"review": review.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create review")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.get("/reviews/mine")
@require_auth
def my_reviews_route():
    reviews = review_service.list_user_reviews(g.current_user.id)
    return jsonify({"reviews": [r.to_dict() for r in reviews]}), 200


@reviews_bp.patch("/reviews/<int:review_id>")
@require_auth
def update_review_route(review_id: int):
    try:
        data = require_json_object(request.get_json(silent=True))
        review = review_service.update_review(review_id, data, g.current_user)
        return jsonify({"review": review.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update review")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.delete("/reviews/<int:review_id>")
@require_auth
def delete_review_route(review_id: int):
    try:
        review_service.delete_review(review_id, g.current_user)
        return jsonify({"message": "Review deleted"}), 200
    except ServiceError as e:
        return error_response(e)


@reviews_bp.post("/reviews/<int:review_id>/response")
@require_auth
@require_role(ROLE_VENDOR)
def vendor_response_route(review_id: int):
    """Store owner (or admin) answers a review on one of its products."""
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "response")

        review = review_service.add_vendor_response(review_id, data["response"], g.current_user)
        return jsonify({"review": review.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add vendor response")
        return jsonify({"error": "Internal server error"}), 500

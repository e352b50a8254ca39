"""
Notification tests.

Verifies:
- Users only ever see and touch their own notifications
- Read / unread bookkeeping
- notify() never propagates a delivery failure
"""

import pytest

from samoku.errors import NotFoundError
from samoku.models import Notification
from samoku.services import notification_service
from samoku.services.notification_service import NotificationError


@pytest.fixture
def inbox(db_session, customer):
    created = []
    for i in range(3):
        created.append(notification_service.create_notification(
            customer.id, "order", f"Update {i}", f"Message {i}"
        ))
    return created


def test_list_newest_first(db_session, customer, inbox):
    titles = [n.title for n in notification_service.list_notifications(customer.id)]
    assert titles == ["Update 2", "Update 1", "Update 0"]


def test_limit_and_unread_filter(db_session, customer, inbox):
    assert len(notification_service.list_notifications(customer.id, limit=2)) == 2

    notification_service.mark_as_read(inbox[0].id, customer.id)

    unread = notification_service.list_notifications(customer.id, unread_only=True)
    assert {n.id for n in unread} == {inbox[1].id, inbox[2].id}
    assert notification_service.unread_count(customer.id) == 2


def test_mark_all_as_read(db_session, customer, vendor_a, inbox):
    notification_service.create_notification(vendor_a.id, "store", "Other", "Not yours")

    assert notification_service.mark_all_as_read(customer.id) == 3
    assert notification_service.unread_count(customer.id) == 0
    assert notification_service.unread_count(vendor_a.id) == 1


def test_delete(db_session, customer, inbox):
    notification_service.delete_notification(inbox[0].id, customer.id)
    assert db_session.query(Notification).filter_by(user_id=customer.id).count() == 2


@pytest.mark.parametrize("action", ["mark_as_read", "delete_notification"])
def test_other_users_notification_is_not_found(db_session, vendor_a, inbox, action):
    with pytest.raises(NotFoundError):
        getattr(notification_service, action)(inbox[0].id, vendor_a.id)


def test_unknown_category_rejected(db_session, customer):
    with pytest.raises(NotificationError):
        notification_service.create_notification(customer.id, "marketing", "Hi", "Sale!")


def test_notify_swallows_failures(db_session, customer, monkeypatch):
    def _boom(*args, **kwargs):
        raise NotificationError("delivery failed")

    monkeypatch.setattr(notification_service, "create_notification", _boom)

    assert notification_service.notify(customer.id, "order", "Title", "Message") is None


def test_store_approval_message(db_session, vendor_a):
    note = notification_service.notify_store_approval(vendor_a.id, "Alpha Outfitters", True)

    assert note.title == "Store Approved!"
    assert note.category == "store"
    assert '"Alpha Outfitters"' in note.message

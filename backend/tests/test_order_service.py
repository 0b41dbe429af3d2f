"""
Tests for order_service — checkout, status transitions and listings.
"""
import pytest
from sqlalchemy import select

from db_models import Notification, OutboxMessage, RealTimeEvent
from domain.enums import OrderStatus, Role
from domain.errors import NotFoundError, PermissionDeniedError
from middleware.auth import AuthClaims
from services import order_service
from tests.conftest import BUYER_ID, RIDER_ID, SELLER_ID


async def _notifications(db, user_id):
    res = await db.execute(
        select(Notification).where(Notification.user_id == user_id).order_by(Notification.created_at)
    )
    return res.scalars().all()


async def _outbox_topics(db):
    res = await db.execute(select(OutboxMessage).order_by(OutboxMessage.id))
    return [(m.topic, m.message["type"]) for m in res.scalars().all()]


class TestCreateOrder:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_order_starts_pending_with_items(self, db_session, placed_order):
        assert placed_order.status == "pending"
        assert placed_order.payment_status == "pending"
        assert placed_order.total_amount == 25.0
        assert [(i.product_id, i.quantity, i.price) for i in placed_order.items] == [("prod-1", 2, 12.5)]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_total_amount_is_not_recomputed(self, db_session):
        order = await order_service.create_order(
            db_session,
            buyer_id=BUYER_ID,
            seller_id=SELLER_ID,
            items=[{"product_id": "p", "quantity": 3, "price": 10.0}],
            total_amount=1.0,
            shipping_address=None,
            payment_method=None,
        )
        assert order.total_amount == 1.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_checkout_side_effects(self, db_session, placed_order):
        notes = await _notifications(db_session, BUYER_ID)
        assert len(notes) == 1
        assert notes[0].title == "Order Placed"
        assert notes[0].order_id == placed_order.id
        assert placed_order.id[-6:] in notes[0].message

        topics = await _outbox_topics(db_session)
        assert (f"order:{placed_order.id}", "order_status") in topics
        assert (f"user:{BUYER_ID}", "order_status") in topics
        assert (f"user:{BUYER_ID}", "notification") in topics


class TestUpdateOrderStatus:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_seller_confirms_order(self, db_session, placed_order, seller_claims):
        order = await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.CONFIRMED, claims=seller_claims
        )
        await db_session.commit()

        assert order.status == "confirmed"
        notes = [n for n in await _notifications(db_session, BUYER_ID) if n.title == "Order confirmed"]
        assert len(notes) == 1
        assert notes[0].type == "order"
        assert notes[0].message == f"Your order #{placed_order.id[-6:]} status is now confirmed."

        res = await db_session.execute(
            select(RealTimeEvent).where(RealTimeEvent.entity_id == placed_order.id)
        )
        event = next(e for e in res.scalars().all() if "newStatus" in e.data)
        assert event.event_type == "order_status"
        assert event.entity_type == "Order"
        assert event.data["oldStatus"] == "pending"
        assert event.data["newStatus"] == "confirmed"
        assert isinstance(event.data["updatedAt"], str)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_order_is_404(self, db_session, seller_claims):
        with pytest.raises(NotFoundError):
            await order_service.update_order_status(
                db_session, order_id="missing", new_status=OrderStatus.CONFIRMED, claims=seller_claims
            )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_other_seller_is_403_and_nothing_changes(self, db_session, placed_order):
        intruder = AuthClaims(user_id="seller-s2", role=Role.SELLER)
        with pytest.raises(PermissionDeniedError):
            await order_service.update_order_status(
                db_session, order_id=placed_order.id, new_status=OrderStatus.CANCELLED, claims=intruder
            )
        assert placed_order.status == "pending"
        assert len(await _notifications(db_session, BUYER_ID)) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_buyer_cannot_change_status(self, db_session, placed_order, buyer_claims):
        with pytest.raises(PermissionDeniedError):
            await order_service.update_order_status(
                db_session, order_id=placed_order.id, new_status=OrderStatus.CANCELLED, claims=buyer_claims
            )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_admin_can_move_backwards(self, db_session, placed_order, admin_claims):
        await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.DELIVERED, claims=admin_claims
        )
        order = await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.PENDING, claims=admin_claims
        )
        assert order.status == "pending"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_in_transit_stamps_delivery_start_once(self, db_session, placed_order, seller_claims):
        order = await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.IN_TRANSIT, claims=seller_claims
        )
        first_start = order.delivery_started_at
        assert first_start is not None
        assert order.delivered_at is None

        await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.PROCESSING, claims=seller_claims
        )
        order = await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.IN_TRANSIT, claims=seller_claims
        )
        assert order.delivery_started_at == first_start

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delivered_stamps_delivered_at(self, db_session, placed_order, seller_claims):
        order = await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.DELIVERED, claims=seller_claims
        )
        assert order.delivered_at is not None
        assert order.delivery_started_at is None

        order = await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.IN_TRANSIT, claims=seller_claims
        )
        assert order.delivered_at is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_last_write_wins(self, db_session, placed_order, seller_claims, admin_claims):
        await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.PROCESSING, claims=seller_claims
        )
        await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.CANCELLED, claims=admin_claims
        )
        await db_session.commit()

        order = await order_service.get_order(db_session, placed_order.id)
        assert order.status == "cancelled"
        titles = [n.title for n in await _notifications(db_session, BUYER_ID)]
        assert "Order processing" in titles
        assert "Order cancelled" in titles

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rider_topic_gets_delivery_update(self, db_session, assigned_delivery, seller_claims):
        await order_service.update_order_status(
            db_session,
            order_id=assigned_delivery.order_id,
            new_status=OrderStatus.IN_TRANSIT,
            claims=seller_claims,
        )
        topics = await _outbox_topics(db_session)
        assert (f"delivery:{assigned_delivery.id}", "delivery_update") in topics


class TestOrderReads:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_viewer_access(self, db_session, assigned_delivery, buyer_claims, seller_claims, rider_claims):
        for claims in (buyer_claims, seller_claims, rider_claims):
            order = await order_service.get_order_for_viewer(db_session, assigned_delivery.order_id, claims)
            assert order.rider_id == RIDER_ID

        stranger = AuthClaims(user_id="someone", role=Role.BUYER)
        with pytest.raises(PermissionDeniedError):
            await order_service.get_order_for_viewer(db_session, assigned_delivery.order_id, stranger)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_seller_listing_filters_by_status(self, db_session, placed_order, seller_claims):
        await order_service.create_order(
            db_session,
            buyer_id=BUYER_ID,
            seller_id=SELLER_ID,
            items=[{"product_id": "p2", "quantity": 1, "price": 5.0}],
            total_amount=5.0,
            shipping_address=None,
            payment_method=None,
        )
        await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.CONFIRMED, claims=seller_claims
        )

        orders, total = await order_service.list_seller_orders(db_session, seller_id=SELLER_ID)
        assert total == 2
        confirmed, total = await order_service.list_seller_orders(
            db_session, seller_id=SELLER_ID, status=OrderStatus.CONFIRMED
        )
        assert total == 1
        assert confirmed[0].id == placed_order.id

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_buyer_dashboard_stats(self, db_session, placed_order, seller_claims):
        await order_service.create_order(
            db_session,
            buyer_id=BUYER_ID,
            seller_id=SELLER_ID,
            items=[{"product_id": "p2", "quantity": 1, "price": 5.0}],
            total_amount=5.0,
            shipping_address=None,
            payment_method=None,
        )
        await order_service.update_order_status(
            db_session, order_id=placed_order.id, new_status=OrderStatus.IN_TRANSIT, claims=seller_claims
        )

        dashboard = await order_service.buyer_dashboard(db_session, buyer_id=BUYER_ID)
        assert len(dashboard["orders"]) == 2
        assert dashboard["stats"] == {
            "total_orders": 2,
            "total_spent": 30.0,
            "active_deliveries": 1,
        }

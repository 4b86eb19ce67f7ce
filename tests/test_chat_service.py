"""Tests for the chat gate and order-bound chat threads."""

from __future__ import annotations

import uuid

import pytest
import pytest_asyncio

from src.exceptions import ForbiddenException, ValidationException
from src.models.enums import ChatMessageType, OrderStatus, UserRole
from src.models.order import Order
from src.modules.chat.gate import (
    DENY_NO_DRIVER,
    DENY_NOT_PARTICIPANT,
    DENY_ORDER_CLOSED,
    chat_access,
)
from src.modules.chat.service import ChatService
from src.modules.events.publisher import EventPublisher
from src.modules.order.service import OrderService
from tests.helpers import (
    FixedClock,
    RecordingDistributor,
    assign_order,
    make_user,
    seed_depot,
    seed_order,
)


class TestChatGate:
    def _order(self, status=OrderStatus.ASSIGNED, driver_id=None):
        return Order(customer_id=uuid.uuid4(), driver_id=driver_id, status=status)

    def test_no_driver_yet(self):
        order = self._order(status=OrderStatus.OFFERED)
        access = chat_access(order, order.customer_id)
        assert access.allowed is False
        assert access.reason == DENY_NO_DRIVER

    def test_customer_and_driver_allowed(self):
        order = self._order(driver_id=uuid.uuid4())

        customer_access = chat_access(order, order.customer_id)
        assert customer_access.allowed is True
        assert customer_access.role == UserRole.CUSTOMER
        assert customer_access.counterpart_id == order.driver_id

        driver_access = chat_access(order, order.driver_id)
        assert driver_access.allowed is True
        assert driver_access.role == UserRole.DRIVER
        assert driver_access.counterpart_id == order.customer_id

    def test_outsider_denied(self):
        order = self._order(driver_id=uuid.uuid4())
        access = chat_access(order, uuid.uuid4())
        assert access.allowed is False
        assert access.reason == DENY_NOT_PARTICIPANT

    @pytest.mark.parametrize(
        "status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED]
    )
    def test_closed_orders_denied(self, status):
        order = self._order(status=status, driver_id=uuid.uuid4())
        access = chat_access(order, order.customer_id)
        assert access.allowed is False
        assert access.reason == DENY_ORDER_CLOSED

    @pytest.mark.parametrize(
        "status", [OrderStatus.ASSIGNED, OrderStatus.PICKED_UP, OrderStatus.EN_ROUTE]
    )
    def test_open_while_in_progress(self, status):
        order = self._order(status=status, driver_id=uuid.uuid4())
        assert chat_access(order, order.driver_id).allowed is True


@pytest.fixture
def customer():
    return make_user(UserRole.CUSTOMER)


@pytest.fixture
def driver():
    return make_user(UserRole.DRIVER)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def recorder():
    return RecordingDistributor()


@pytest_asyncio.fixture
async def publisher(db_session, recorder):
    return EventPublisher(db_session, recorder)


@pytest_asyncio.fixture
async def depot(db_session):
    return await seed_depot(db_session)


@pytest_asyncio.fixture
async def order(db_session, customer, depot, driver, publisher):
    return await assign_order(db_session, customer, depot, driver, publisher=publisher)


@pytest_asyncio.fixture
async def chat(db_session, publisher, clock):
    return ChatService(db_session, publisher, clock)


@pytest_asyncio.fixture
async def thread(chat, order, customer):
    thread, _ = await chat.get_or_create_thread(order.id, customer)
    return thread


class TestThreads:
    @pytest.mark.asyncio
    async def test_one_thread_per_order(self, chat, order, customer, driver):
        first, created = await chat.get_or_create_thread(order.id, customer)
        second, created_again = await chat.get_or_create_thread(order.id, driver)

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert first.customer_id == customer.id
        assert first.driver_id == driver.id

    @pytest.mark.asyncio
    async def test_no_thread_before_assignment(self, db_session, chat, customer, depot, publisher):
        order = await seed_order(db_session, customer, depot, publisher=publisher)
        with pytest.raises(ForbiddenException) as exc_info:
            await chat.get_or_create_thread(order.id, customer)
        assert exc_info.value.details == [{"reason": DENY_NO_DRIVER}]

    @pytest.mark.asyncio
    async def test_outsider_cannot_open(self, chat, order):
        with pytest.raises(ForbiddenException):
            await chat.get_or_create_thread(order.id, make_user(UserRole.CUSTOMER))


class TestMessages:
    @pytest.mark.asyncio
    async def test_message_pushed_to_counterpart(
        self, chat, thread, customer, driver, recorder, clock
    ):
        message = await chat.send_message(thread.id, customer, "I'm at the gate")

        assert message.sender_role == UserRole.CUSTOMER
        assert message.message_type == ChatMessageType.TEXT
        assert thread.last_message_at == clock.now

        (event,) = recorder.of_type("chat.message")
        assert event.thread_id == thread.id
        assert event.payload.recipient_id == driver.id
        assert event.payload.body == "I'm at the gate"

    @pytest.mark.asyncio
    async def test_image_requires_attachment(self, chat, thread, driver):
        with pytest.raises(ValidationException):
            await chat.send_message(thread.id, driver, "", message_type=ChatMessageType.IMAGE)

        message = await chat.send_message(
            thread.id,
            driver,
            "meter reading",
            message_type=ChatMessageType.IMAGE,
            attachment_ref="uploads/meter.jpg",
        )
        assert message.attachment_ref == "uploads/meter.jpg"

    @pytest.mark.asyncio
    async def test_participants_cannot_send_system_messages(self, chat, thread, customer):
        with pytest.raises(ValidationException):
            await chat.send_message(
                thread.id, customer, "hello", message_type=ChatMessageType.SYSTEM
            )

    @pytest.mark.asyncio
    async def test_gate_rechecked_after_delivery(
        self, db_session, chat, thread, order, driver, publisher
    ):
        orders = OrderService(db_session, publisher)
        await orders.mark_picked_up(order.id, driver)
        await orders.mark_en_route(order.id, driver)
        await orders.mark_delivered(order.id, driver)

        with pytest.raises(ForbiddenException) as exc_info:
            await chat.send_message(thread.id, driver, "thanks!")
        assert exc_info.value.details == [{"reason": DENY_ORDER_CLOSED}]

    @pytest.mark.asyncio
    async def test_history_newest_first(self, chat, thread, customer, driver, clock):
        await chat.send_message(thread.id, customer, "one")
        clock.advance(10)
        await chat.send_message(thread.id, driver, "two")
        clock.advance(10)
        await chat.send_message(thread.id, customer, "three")

        messages = await chat.list_messages(thread.id, driver)
        assert [m.body for m in messages] == ["three", "two", "one"]

        older = await chat.list_messages(thread.id, driver, before=messages[0].created_at)
        assert [m.body for m in older] == ["two", "one"]

        assert len(await chat.list_messages(thread.id, customer, limit=1)) == 1

    @pytest.mark.asyncio
    async def test_outsider_cannot_read(self, chat, thread):
        with pytest.raises(ForbiddenException):
            await chat.list_messages(thread.id, make_user(UserRole.DRIVER))


class TestReadReceipts:
    @pytest.mark.asyncio
    async def test_mark_read_only_counterpart_messages(
        self, chat, thread, customer, driver
    ):
        await chat.send_message(thread.id, customer, "one")
        await chat.send_message(thread.id, customer, "two")
        await chat.send_message(thread.id, driver, "reply")

        assert await chat.mark_read(thread.id, driver) == 2
        assert await chat.mark_read(thread.id, driver) == 0
        assert await chat.mark_read(thread.id, customer) == 1

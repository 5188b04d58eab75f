"""Constants and enums for the commerce automation engine."""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Workflow execution status."""

    PENDING = "pending"
    RUNNING = "running"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)


class TriggerType(str, Enum):
    """Canonical trigger event kinds."""

    ORDER_CREATED = "order_created"
    ORDER_PAID = "order_paid"
    ORDER_UPDATED = "order_updated"
    ORDER_CANCELED = "order_canceled"
    ORDER_FULFILLED = "order_fulfilled"
    ORDER_REFUNDED = "order_refunded"
    CUSTOMER_CREATED = "customer_created"
    CUSTOMER_UPDATED = "customer_updated"
    CART_ABANDONED = "cart_abandoned"
    STARTED_CHECKOUT = "started_checkout"
    ORDERED_PRODUCT = "ordered_product"
    PAID_FOR_ORDER = "paid_for_order"
    PLACED_ORDER = "placed_order"
    PRODUCT_BACK_IN_STOCK = "product_back_in_stock"
    SPECIAL_OCCASION_BIRTHDAY = "special_occasion_birthday"
    CUSTOMER_SUBSCRIBED = "customer_subscribed"
    VIEWED_PAGE = "viewed_page"
    VIEWED_PRODUCT = "viewed_product"
    CLICKED_MESSAGE = "clicked_message"
    ENTERED_SEGMENT = "entered_segment"
    EXITED_SEGMENT = "exited_segment"
    MARKED_MESSAGE_AS_SPAM = "marked_message_as_spam"
    MESSAGE_DELIVERY_FAILED = "message_delivery_failed"
    MESSAGE_SENT = "message_sent"
    OPENED_MESSAGE = "opened_message"


class UpstreamTopic(str, Enum):
    """Upstream commerce webhook topics the normalizer understands."""

    ORDERS_CREATE = "orders/create"
    ORDERS_PAID = "orders/paid"
    ORDERS_UPDATED = "orders/updated"
    ORDERS_CANCELLED = "orders/cancelled"
    ORDERS_FULFILLED = "orders/fulfilled"
    CUSTOMERS_CREATE = "customers/create"
    CUSTOMERS_UPDATE = "customers/update"
    CHECKOUTS_CREATE = "checkouts/create"
    CHECKOUTS_UPDATE = "checkouts/update"


class ActionType(str, Enum):
    """Workflow action kinds."""

    SEND_EMAIL = "send_email"
    SEND_SMS = "send_sms"
    DELAY = "delay"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    UPDATE_CONTACT = "update_contact"


class Channel(str, Enum):
    """Outbound delivery channels."""

    EMAIL = "email"
    SMS = "sms"


MESSAGING_ACTIONS = {
    ActionType.SEND_EMAIL: Channel.EMAIL,
    ActionType.SEND_SMS: Channel.SMS,
}


class FilterOperator(str, Enum):
    """Operators accepted in workflow filter predicates."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


class ExitConditionType(str, Enum):
    """Conditions that end an execution early."""

    UNSUBSCRIBED = "unsubscribed"
    TAG_ADDED = "tag_added"
    ORDER_PLACED = "order_placed"


class StepOutcome(str, Enum):
    """What a single scheduler step left the execution ready to do."""

    CONTINUE = "continue"
    WAITING = "waiting"
    FINISHED = "finished"
    IDLE = "idle"


class CampaignStatus(str, Enum):
    """Batch campaign lifecycle."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"

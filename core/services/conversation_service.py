# =============================================================================
# core/services/conversation_service.py - Messaging Business Logic
# =============================================================================
# Conversations are keyed by a canonical id built from the two participants:
#
#   conversation_id_for("b", "a") == conversation_id_for("a", "b") == "a_b"
#
# initialize_conversation() creates the document with a single
# insert-if-absent, so calling it again (or from both sides at once) reuses
# the same document and never creates a duplicate.
#
# Offers are messages of type "offer" carrying an offer_id. Accepting one
# creates the pending order (id = offer id) through OrderService.
# =============================================================================

import logging
import uuid
from typing import Any

from app.exceptions import (
    ConversationNotFoundError,
    OfferActionError,
    OfferNotFoundError,
    SelfConversationError,
)
from app.websocket.broadcast import EventPublisher
from core.models.conversation import (
    Conversation,
    ConversationSummary,
    LastMessage,
    Message,
    MessageStatus,
    MessageType,
    OfferCreate,
    OfferStatus,
    ParticipantInfo,
    PaymentData,
    SYSTEM_SENDER_ID,
    SystemMessageData,
)
from core.models.order import Order
from core.models.user import UserRole
from core.services.order_service import OrderService
from core.services.user_service import UserService
from lib import collections
from lib.supabase_client import SupabaseClientError, SupabaseStore
from lib.utils import epoch_ms, parse_timestamp, utc_now, utc_now_iso

logger = logging.getLogger(__name__)

OFFER_ACCEPTED_TEXT = "Offer accepted. Waiting for payment..."
OFFER_ACCEPTED_CREATOR_TEXT = "You accepted the offer. Waiting for payment from brand..."
OFFER_ACCEPTED_BRAND_TEXT = "Creator accepted the offer. Waiting for payment..."
OFFER_REJECTED_TEXT = "Creator declined the collaboration offer."
PAYMENT_COMPLETED_TEXT = (
    "Payment completed! The collaboration is now confirmed. "
    "Funds are held in escrow until delivery is complete."
)


def conversation_id_for(user_a: str, user_b: str) -> str:
    """Order-independent conversation id for two users."""
    return "_".join(sorted([user_a, user_b]))


def new_offer_id() -> str:
    return f"offer_{epoch_ms()}_{uuid.uuid4().hex[:9]}"


class ConversationService:
    """
    Conversation initialization, messages and offers.

    Every read or write checks that the caller is a participant; outsiders get
    ConversationNotFoundError.
    """

    def __init__(
        self,
        store: SupabaseStore,
        users: UserService,
        orders: OrderService,
        publisher: EventPublisher,
    ):
        self.store = store
        self.users = users
        self.orders = orders
        self.publisher = publisher

    # -------------------------------------------------------------------------
    # Conversations
    # -------------------------------------------------------------------------

    def initialize_conversation(
        self,
        user_a: str,
        user_b: str,
        info_a: ParticipantInfo | None = None,
        info_b: ParticipantInfo | None = None,
    ) -> str:
        """
        Create the conversation for a pair of users, or reuse the existing one.

        Missing participant info is filled from the users' profiles; a user
        without a profile is assumed to be a brand (user_a) or a creator
        (user_b).

        Args:
            user_a: The user starting the conversation
            user_b: The other participant
            info_a: Display info for user_a
            info_b: Display info for user_b

        Returns:
            The conversation id (identical for either argument order)

        Raises:
            SelfConversationError: If both ids are the same
            SupabaseClientError: If the store fails
        """
        if user_a == user_b:
            raise SelfConversationError(user_a)

        conversation_id = conversation_id_for(user_a, user_b)
        if self.store.get(collections.CONVERSATIONS, conversation_id) is not None:
            return conversation_id

        info_a = info_a or self._participant_info(user_a, UserRole.BRAND)
        info_b = info_b or self._participant_info(user_b, UserRole.CREATOR)
        creator_id, brand_id = _assign_roles(user_a, info_a, user_b)

        now = utc_now_iso()
        created = self.store.insert_if_absent(
            collections.CONVERSATIONS,
            {
                "id": conversation_id,
                "participants": sorted([user_a, user_b]),
                "creator_id": creator_id,
                "brand_id": brand_id,
                "participant_info": {
                    user_a: info_a.model_dump(mode="json"),
                    user_b: info_b.model_dump(mode="json"),
                },
                "last_message": None,
                "created_at": now,
                "updated_at": now,
            },
        )
        if created:
            logger.info(f"Created conversation {conversation_id}")
        return conversation_id

    def get_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        row = self.store.get(collections.CONVERSATIONS, conversation_id)
        if row is None:
            raise ConversationNotFoundError(conversation_id)

        conversation = Conversation(**row)
        if not conversation.has_participant(user_id):
            logger.warning(f"User {user_id} denied access to conversation {conversation_id}")
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def find_conversation(self, conversation_id: str) -> Conversation | None:
        """Lookup without an access check (webhooks, delivery progress)."""
        row = self.store.get(collections.CONVERSATIONS, conversation_id)
        return Conversation(**row) if row else None

    def list_conversations(self, user_id: str, include_empty: bool = False) -> list[ConversationSummary]:
        """
        Inbox for a user, most recent activity first.

        Conversations without any message are hidden unless include_empty.
        """
        rows = self.store.find(
            collections.CONVERSATIONS,
            contains={"participants": [user_id]},
            order_by="updated_at",
            desc=True,
        )

        summaries = []
        for row in rows:
            conversation = Conversation(**row)
            if conversation.last_message is None and not include_empty:
                continue

            other_id = conversation.other_participant(user_id)
            if other_id is None:
                continue
            other_info = conversation.participant_info.get(other_id) or ParticipantInfo(
                name="User",
                role=UserRole.CREATOR if other_id == conversation.creator_id else UserRole.BRAND,
            )
            summaries.append(ConversationSummary(
                id=conversation.id,
                other_user_id=other_id,
                other_user=other_info,
                last_message=conversation.last_message,
                updated_at=conversation.updated_at,
            ))

        summaries.sort(key=lambda s: _sort_key(s.updated_at), reverse=True)
        return summaries

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def list_messages(self, conversation_id: str, user_id: str, limit: int | None = None) -> list[Message]:
        """Messages of a conversation, oldest first."""
        self.get_conversation(conversation_id, user_id)
        rows = self.store.find(
            collections.MESSAGES,
            eq={"conversation_id": conversation_id},
            order_by="sent_at",
            limit=limit,
        )
        messages = [Message(**row) for row in rows]
        return sorted(messages, key=lambda m: _sort_key(m.sent_at))

    def send_message(self, conversation_id: str, sender_id: str, text: str) -> Message:
        conversation = self.get_conversation(conversation_id, sender_id)
        return self._append_message(conversation, {
            "sender_id": sender_id,
            "type": MessageType.TEXT.value,
            "text": text,
        })

    def mark_messages_read(self, conversation_id: str, user_id: str) -> int:
        """
        Mark the other participant's unread messages as read.

        Returns:
            Number of messages marked
        """
        self.get_conversation(conversation_id, user_id)
        rows = self.store.find(collections.MESSAGES, eq={"conversation_id": conversation_id})

        now = utc_now_iso()
        marked = 0
        for row in rows:
            if row.get("sender_id") in (user_id, SYSTEM_SENDER_ID) or row.get("read_at"):
                continue
            self.store.update(
                collections.MESSAGES,
                {"id": row["id"]},
                {"status": MessageStatus.READ.value, "read_at": now},
            )
            marked += 1

        if marked:
            logger.debug(f"Marked {marked} messages read in {conversation_id} for {user_id}")
        return marked

    # -------------------------------------------------------------------------
    # Offers
    # -------------------------------------------------------------------------

    def send_offer(self, conversation_id: str, sender_id: str, offer: OfferCreate) -> Message:
        """Brand proposes a paid collaboration on one of the creator's trips."""
        conversation = self.get_conversation(conversation_id, sender_id)
        offer_id = new_offer_id()
        if conversation.brand_id and conversation.brand_id != sender_id:
            raise OfferActionError(offer_id, "only the brand can send offers", status_code=403)

        message = self._append_message(conversation, {
            "sender_id": sender_id,
            "type": MessageType.OFFER.value,
            "offer_id": offer_id,
            "trip": offer.trip.model_dump(mode="json"),
            "description": offer.description,
            "price": offer.price,
            "offer_status": OfferStatus.PENDING.value,
        })
        logger.info(f"Offer {offer_id} sent in {conversation_id} ({offer.price})")
        return message

    def get_offer(self, conversation_id: str, offer_id: str) -> Message:
        return Message(**self._get_offer_row(conversation_id, offer_id))

    def accept_offer(self, conversation_id: str, offer_id: str, user_id: str) -> Order | None:
        """
        Creator accepts a pending offer.

        Appends a perspective-aware system message and creates the pending
        order. A failed order write is logged and doesn't undo the acceptance;
        the payment webhook writes the order again.

        Returns:
            The pending order, or None if it could not be written
        """
        conversation = self.get_conversation(conversation_id, user_id)
        row = self._get_offer_row(conversation_id, offer_id)
        offer = Message(**row)
        self._check_offer_action(conversation, offer, user_id)

        self._set_offer_status(conversation_id, row["id"], offer_id, OfferStatus.ACCEPTED)
        self._append_message(conversation, {
            "sender_id": SYSTEM_SENDER_ID,
            "type": MessageType.SYSTEM.value,
            "text": OFFER_ACCEPTED_TEXT,
            "system_message_data": SystemMessageData(
                type="offer_accepted",
                creator_text=OFFER_ACCEPTED_CREATOR_TEXT,
                brand_text=OFFER_ACCEPTED_BRAND_TEXT,
            ).model_dump(),
        })

        try:
            return self.orders.create_pending_order(
                offer_id=offer_id,
                brand_id=offer.sender_id,
                creator_id=user_id,
                amount=offer.price or 0.0,
                trip_destination=offer.trip.destination if offer.trip else "",
                trip_country=offer.trip.country if offer.trip else "",
                description=offer.description,
            )
        except SupabaseClientError as e:
            logger.error(f"Offer {offer_id} accepted but pending order not created: {e}")
            return None

    def reject_offer(self, conversation_id: str, offer_id: str, user_id: str) -> Message:
        conversation = self.get_conversation(conversation_id, user_id)
        row = self._get_offer_row(conversation_id, offer_id)
        self._check_offer_action(conversation, Message(**row), user_id)

        self._set_offer_status(conversation_id, row["id"], offer_id, OfferStatus.REJECTED)
        self._append_message(conversation, {
            "sender_id": SYSTEM_SENDER_ID,
            "type": MessageType.SYSTEM.value,
            "text": OFFER_REJECTED_TEXT,
        })
        return self.get_offer(conversation_id, offer_id)

    def mark_offer_paid(
        self,
        offer_id: str,
        brand_id: str,
        creator_id: str,
        stripe_session_id: str,
        amount_paid: float,
    ) -> bool:
        """
        Record a completed payment on the offer message.

        A replayed payment for an offer that is already paid changes nothing.

        Returns:
            False if the conversation or offer can't be found, or the offer
            was already paid
        """
        conversation = self.find_conversation(conversation_id_for(brand_id, creator_id))
        if conversation is None:
            logger.error(f"Conversation not found between {brand_id} and {creator_id}")
            return False

        try:
            row = self._get_offer_row(conversation.id, offer_id)
        except OfferNotFoundError:
            logger.error(f"Offer message not found: {offer_id}")
            return False

        if row.get("offer_status") == OfferStatus.PAID.value:
            logger.info(f"Offer {offer_id} already paid")
            return False

        payment = PaymentData(
            stripe_session_id=stripe_session_id,
            amount_paid=amount_paid,
            paid_at=utc_now(),
        )
        self.store.update(
            collections.MESSAGES,
            {"id": row["id"]},
            {
                "offer_status": OfferStatus.PAID.value,
                "payment_data": payment.model_dump(mode="json"),
            },
        )
        self.publisher.offer_updated(conversation.id, offer_id, OfferStatus.PAID.value)
        self._append_message(conversation, {
            "sender_id": SYSTEM_SENDER_ID,
            "type": MessageType.SYSTEM.value,
            "text": PAYMENT_COMPLETED_TEXT,
        })
        logger.info(f"Offer {offer_id} marked paid")
        return True

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _participant_info(self, user_id: str, fallback_role: UserRole) -> ParticipantInfo:
        profile = self.users.find_profile(user_id)
        if profile is None:
            return ParticipantInfo(name="User", role=fallback_role)
        return profile.participant_info(fallback_role)

    def _append_message(self, conversation: Conversation, data: dict[str, Any]) -> Message:
        """Insert a message and refresh the conversation's last_message snapshot."""
        now = utc_now_iso()
        row = self.store.insert(collections.MESSAGES, {
            "conversation_id": conversation.id,
            "status": MessageStatus.DELIVERED.value,
            "sent_at": now,
            "delivered_at": now,
            **data,
        })
        message = Message(**row)

        last_message = LastMessage(
            text=message.preview_text,
            sender_id=message.sender_id,
            timestamp=message.sent_at or utc_now(),
        )
        self.store.update(
            collections.CONVERSATIONS,
            {"id": conversation.id},
            {"last_message": last_message.model_dump(mode="json"), "updated_at": now},
        )

        self.publisher.message_created(conversation.id, message.model_dump(mode="json"))
        return message

    def _get_offer_row(self, conversation_id: str, offer_id: str) -> dict[str, Any]:
        rows = self.store.find(
            collections.MESSAGES,
            eq={
                "conversation_id": conversation_id,
                "offer_id": offer_id,
                "type": MessageType.OFFER.value,
            },
            limit=1,
        )
        if not rows:
            raise OfferNotFoundError(offer_id)
        return rows[0]

    def _check_offer_action(self, conversation: Conversation, offer: Message, user_id: str) -> None:
        """Only the creator (never the sender) may answer, and only once."""
        offer_id = offer.offer_id or ""
        if offer.sender_id == user_id or (conversation.creator_id and conversation.creator_id != user_id):
            raise OfferActionError(offer_id, "only the creator can respond to offers", status_code=403)
        if offer.offer_status != OfferStatus.PENDING:
            status = offer.offer_status.value if offer.offer_status else "unknown"
            raise OfferActionError(offer_id, f"offer is already {status}")

    def _set_offer_status(self, conversation_id: str, row_id: str, offer_id: str, status: OfferStatus) -> None:
        self.store.update(collections.MESSAGES, {"id": row_id}, {"offer_status": status.value})
        self.publisher.offer_updated(conversation_id, offer_id, status.value)


def _assign_roles(
    user_a: str,
    info_a: ParticipantInfo,
    user_b: str,
) -> tuple[str, str]:
    """Return (creator_id, brand_id) from the starting user's role."""
    match info_a.role:
        case UserRole.CREATOR:
            return user_a, user_b
        case UserRole.BRAND:
            return user_b, user_a
        case _:
            raise ValueError(f"Unhandled role: {info_a.role!r}")


def _sort_key(value: Any) -> float:
    parsed = parse_timestamp(value)
    return parsed.timestamp() if parsed else 0.0

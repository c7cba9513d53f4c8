"""
The application state store.

Single owner of jobs, profile, conversations, payments and the theme flag.
Every mutation goes through one of the operations below, which update
memory first and then queue a write of the touched collection. Storage is
only a mirror: a failed write is logged and the in-memory state stands.
"""

import asyncio
import logging
import math
import random
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from jobboard.core.config import Settings, get_settings
from jobboard.core.errors import InputValidationError
from jobboard.core.storage import (
    VISITED_MARKER,
    KeyValueStorage,
    decode_json,
    encode_json,
    load_raw,
    save_raw,
    storage_key,
)
from jobboard.models.base import utcnow
from jobboard.models.conversation import Conversation, Message, MessageType
from jobboard.models.job import Job, JobCreate
from jobboard.models.notification import Notification, NotificationType
from jobboard.models.payment import Payment, PaymentCreate, PaymentStatus, PaymentSummary
from jobboard.models.profile import JobMessage, PaymentMethod, PaymentMethodCreate, Profile, ProfileUpdate
from jobboard.models.stats import BoardStats
from jobboard.services.messaging import avatar_initials, matches_search, random_reply
from jobboard.services.notification import NotificationCenter
from jobboard.services.payments import build_payment_method, summarize_payments
from jobboard.services.scheduler import DeferredTaskRegistry

logger = logging.getLogger("JobBoardStore")

M = TypeVar("M", bound=BaseModel)

JOBS_ADAPTER = TypeAdapter(list[Job])
CONVERSATIONS_ADAPTER = TypeAdapter(list[Conversation])
PAYMENTS_ADAPTER = TypeAdapter(list[Payment])


def _coerce(model: type[M], data: Any) -> M:
    """Accept a model instance or a plain dict; report bad input as a validation failure."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise InputValidationError("Invalid input", fields) from e


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class AppStore:

    def __init__(
        self,
        storage: KeyValueStorage,
        settings: Optional[Settings] = None,
        prefers_dark: Optional[Callable[[], bool]] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or get_settings()
        self.storage = storage
        self._prefers_dark = prefers_dark or (lambda: self.settings.PREFERS_DARK_APPEARANCE)
        self._rng = rng or random.Random()
        self._clock = clock

        self.notifications = NotificationCenter(self.settings.NOTIFICATION_DURATION_SECONDS)
        self.deferred = DeferredTaskRegistry()

        self._jobs: list[Job] = []
        self._profile = Profile()
        self._conversations: list[Conversation] = []
        self._payments: list[Payment] = []
        self._dark_mode = False
        self._visited = False

        self._last_id = 0
        self._dirty: set[str] = set()
        self._writers: dict[str, asyncio.Task] = {}
        self._announcer: Optional[asyncio.Task] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Hydrate from storage. Missing or malformed keys fall back to defaults."""
        self._jobs = await self._load_list("jobs", JOBS_ADAPTER)
        self._conversations = await self._load_list("conversations", CONVERSATIONS_ADAPTER)
        self._payments = await self._load_list("payments", PAYMENTS_ADAPTER)
        self._profile = await self._load_profile()
        self._dark_mode = await self._load_dark_mode()
        self._visited = await load_raw(self.storage, self._key("visited")) is not None

        self._seed_ids()
        logger.info(
            f"Loaded {len(self._jobs)} jobs, {len(self._conversations)} conversations, "
            f"{len(self._payments)} payments (dark mode: {self._dark_mode})"
        )
        if any(job.is_new for job in self._jobs):
            self._ensure_announcer()

    async def _load_list(self, name: str, adapter: TypeAdapter) -> list:
        key = self._key(name)
        decoded = decode_json(await load_raw(self.storage, key), key)
        if decoded is None:
            return []
        try:
            return adapter.validate_python(decoded)
        except ValidationError as e:
            logger.warning(f"Stored '{key}' does not match the expected shape, using default: {e.error_count()} error(s)")
            return []

    async def _load_profile(self) -> Profile:
        key = self._key("profile")
        decoded = decode_json(await load_raw(self.storage, key), key)
        if decoded is None:
            return Profile()
        try:
            return Profile.model_validate(decoded)
        except ValidationError as e:
            logger.warning(f"Stored '{key}' does not match the expected shape, using default: {e.error_count()} error(s)")
            return Profile()

    async def _load_dark_mode(self) -> bool:
        key = self._key("dark_mode")
        decoded = decode_json(await load_raw(self.storage, key), key)
        if isinstance(decoded, bool):
            return decoded
        try:
            return bool(self._prefers_dark())
        except Exception as e:
            logger.warning(f"Dark appearance check failed, defaulting to light: {e}")
            return False

    def _seed_ids(self) -> None:
        ids = [job.id for job in self._jobs]
        ids += [p.id for p in self._payments]
        ids += [m.id for m in self._profile.payment_methods]
        for conv in self._conversations:
            ids.append(conv.id)
            ids += [m.id for m in conv.messages]
        numeric = [int(i) for i in ids if i.isdigit()]
        if numeric:
            self._last_id = max(self._last_id, max(numeric))

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def jobs(self) -> list[Job]:
        return [job.model_copy(deep=True) for job in self._jobs]

    @property
    def profile(self) -> Profile:
        return self._profile.model_copy(deep=True)

    @property
    def conversations(self) -> list[Conversation]:
        return [conv.model_copy(deep=True) for conv in self._conversations]

    @property
    def payments(self) -> list[Payment]:
        return [payment.model_copy(deep=True) for payment in self._payments]

    @property
    def dark_mode(self) -> bool:
        return self._dark_mode

    @property
    def show_welcome(self) -> bool:
        return not self._visited

    @property
    def notification(self) -> Optional[Notification]:
        return self.notifications.current

    def get_job(self, job_id: str) -> Optional[Job]:
        job = self._find_job(job_id)
        return job.model_copy(deep=True) if job else None

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        conv = self._find_conversation(conversation_id)
        return conv.model_copy(deep=True) if conv else None

    def search_conversations(self, term: str = "") -> list[Conversation]:
        return [c.model_copy(deep=True) for c in self._conversations if matches_search(c, term)]

    def stats(self) -> BoardStats:
        return BoardStats(
            total_jobs=len(self._jobs),
            active_jobs=sum(1 for job in self._jobs if job.is_active),
            total_payments=len(self._payments),
            pending_payments=sum(1 for p in self._payments if p.status == PaymentStatus.PENDING),
            unread_messages=sum(
                1
                for conv in self._conversations
                for msg in conv.messages
                if not msg.read and msg.type == MessageType.RECEIVED
            ),
        )

    def payment_summary(self, now: Optional[datetime] = None) -> PaymentSummary:
        return summarize_payments(self._payments, now or self._clock())

    def snapshot(self) -> dict:
        """Everything the presentation layer renders, as JSON-ready data."""
        notification = self.notifications.current
        return {
            "jobs": [job.to_json_dict() for job in self._jobs],
            "profile": self._profile.to_json_dict(),
            "conversations": [conv.to_json_dict() for conv in self._conversations],
            "payments": [p.to_json_dict() for p in self._payments],
            "darkMode": self._dark_mode,
            "showWelcome": self.show_welcome,
            "notification": notification.to_json_dict() if notification else None,
            "stats": self.stats().to_json_dict(),
        }

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(self, data: JobCreate | dict) -> Job:
        data = self._parse(JobCreate, data)
        missing = [name for name in ("title", "description", "pay") if _blank(getattr(data, name))]
        if missing:
            raise self._reject(InputValidationError("Please fill in title, description and pay", missing))

        job = Job(
            id=self._next_id(),
            title=data.title,
            description=data.description,
            pay=data.pay,
            category=data.category,
            company=(data.company or "").strip() or self._profile.name or "My Company",
            location=data.location,
            created_at=self._clock(),
            is_active=True,
            is_new=True,
            applicants=[],
            views=0,
            posted_by=self._profile.name or "Anonymous",
        )
        self._jobs.append(job)
        self._persist("jobs")
        logger.info(f"Job posted: {job.title} @ {job.company} (id {job.id})")

        self.notifications.show("Job posted successfully!", NotificationType.SUCCESS)
        self._ensure_announcer()
        return job.model_copy(deep=True)

    def _ensure_announcer(self) -> None:
        if self._closed:
            return
        if self._announcer is None or self._announcer.done():
            self._announcer = asyncio.get_running_loop().create_task(self._announce_new_jobs())

    async def _announce_new_jobs(self) -> None:
        """
        Announce unacknowledged jobs one at a time, oldest first, each in a
        free notification slot, clearing isNew right after announcing.
        """
        while True:
            await self.notifications.wait_until_idle()
            job = next((j for j in self._jobs if j.is_new), None)
            if job is None:
                return
            self.notifications.show(f"New job posted: {job.title}", NotificationType.SUCCESS)
            job.is_new = False
            self._persist("jobs")

    def send_job_message(self, job_id: str, text: str) -> Optional[dict]:
        """Record a message left on a job's detail page in profile.messages. Silent no-op on bad input."""
        if _blank(text):
            return None
        job = self._find_job(job_id)
        if job is None:
            logger.debug(f"send_job_message: unknown job {job_id}")
            return None

        entry = JobMessage(
            job_id=job.id,
            sender=self._profile.name or "User",
            text=text.strip(),
            time=self._clock().strftime("%H:%M:%S"),
        ).to_json_dict()
        self._profile.messages.append(entry)
        self._persist("profile")
        logger.info(f"Message left on job {job.id}")
        return dict(entry)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def process_payment(self, data: PaymentCreate | dict) -> Payment:
        data = self._parse(PaymentCreate, data)
        missing = []
        if data.amount is None:
            missing.append("amount")
        if _blank(data.description):
            missing.append("description")
        if _blank(data.recipient):
            missing.append("recipient")
        if missing:
            raise self._reject(InputValidationError("Please fill in all required fields", missing))
        if not math.isfinite(data.amount) or data.amount <= 0:
            raise self._reject(InputValidationError("Amount must be greater than 0", ["amount"]))

        if data.payment_method_id:
            method = self._find_payment_method(data.payment_method_id)
            if method is None:
                raise self._reject(InputValidationError("Unknown payment method", ["paymentMethodId"]))
        else:
            method = self._default_payment_method()
            if method is None:
                raise self._reject(InputValidationError("Please add a payment method first", ["paymentMethod"]))

        payment = Payment(
            id=self._next_id(),
            amount=data.amount,
            description=data.description.strip(),
            recipient=data.recipient.strip(),
            type=data.type,
            currency=data.currency or self._profile.preferences.currency or "USD",
            payment_method=method,
            due_date=data.due_date,
            timestamp=self._clock(),
            status=PaymentStatus.PROCESSING,
        )
        self._payments.append(payment)
        self._persist("payments")
        logger.info(f"Processing payment {payment.id}: {payment.amount:.2f} {payment.currency} to {payment.recipient}")

        self.deferred.schedule(
            payment.id,
            self.settings.PAYMENT_COMPLETION_DELAY_SECONDS,
            self._complete_payment,
            payment.id,
            label="payment-completion",
        )
        return payment.model_copy(deep=True)

    def _complete_payment(self, payment_id: str) -> None:
        payment = next((p for p in self._payments if p.id == payment_id), None)
        if payment is None:
            logger.debug(f"Payment {payment_id} is gone, skipping completion")
            return
        if payment.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            return
        payment.status = PaymentStatus.COMPLETED
        self._persist("payments")
        logger.info(f"Payment {payment_id} completed")
        self.notifications.show("Payment processed successfully!", NotificationType.SUCCESS)

    def _default_payment_method(self) -> Optional[PaymentMethod]:
        methods = self._profile.payment_methods
        if not methods:
            return None
        default = next((m for m in methods if m.is_default), methods[0])
        return default.model_copy(deep=True)

    def _find_payment_method(self, method_id: str) -> Optional[PaymentMethod]:
        method = next((m for m in self._profile.payment_methods if m.id == method_id), None)
        return method.model_copy(deep=True) if method else None

    def add_payment_method(self, method: PaymentMethodCreate | dict) -> PaymentMethod:
        data = self._parse(PaymentMethodCreate, method)
        is_default = len(self._profile.payment_methods) == 0
        try:
            new_method = build_payment_method(data, self._next_id(), is_default)
        except InputValidationError as e:
            raise self._reject(e)

        self._profile.payment_methods.append(new_method)
        self._persist("profile")
        logger.info(f"Added {new_method.type.value} payment method {new_method.id} (default: {is_default})")
        self.notifications.show("Payment method added successfully!", NotificationType.SUCCESS)
        return new_method.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def start_conversation(
        self,
        recipient: str,
        subject: str = "",
        job_id: Optional[str] = None,
        message: str = "",
    ) -> Conversation:
        missing = []
        if _blank(recipient):
            missing.append("recipient")
        if _blank(message):
            missing.append("message")
        if missing:
            raise self._reject(InputValidationError("Please fill in recipient and message", missing))

        job_id = job_id or None
        job = self._find_job(job_id) if job_id else None
        now = self._clock()
        text = message.strip()
        recipient = recipient.strip()

        conversation = Conversation(
            id=self._next_id(),
            participant=recipient,
            subject=(subject or "").strip() or "New Conversation",
            job_id=job_id,
            job_title=job.title if job else None,
            avatar=avatar_initials(recipient),
            messages=[
                Message(
                    id=self._next_id(),
                    text=text,
                    sender=self._profile.name or "You",
                    timestamp=now,
                    type=MessageType.SENT,
                    read=True,
                )
            ],
            last_activity=now,
            last_message=text,
            unread_count=0,
        )
        self._conversations.insert(0, conversation)
        self._persist("conversations")
        logger.info(f"Conversation {conversation.id} started with {recipient}")
        self.notifications.show("Conversation started!", NotificationType.SUCCESS)
        return conversation.model_copy(deep=True)

    def send_message(self, conversation_id: str, text: str) -> Optional[Message]:
        """Append a sent message and schedule a simulated reply. Silent no-op on bad input."""
        if _blank(text):
            return None
        conv = self._find_conversation(conversation_id)
        if conv is None:
            logger.debug(f"send_message: unknown conversation {conversation_id}")
            return None

        now = self._clock()
        message = Message(
            id=self._next_id(),
            text=text.strip(),
            sender=self._profile.name or "You",
            timestamp=now,
            type=MessageType.SENT,
            read=True,
        )
        conv.messages.append(message)
        conv.last_activity = now
        conv.last_message = message.text
        self._persist("conversations")
        self.notifications.show("Message sent!", NotificationType.SUCCESS)

        delay = self._rng.uniform(
            self.settings.REPLY_DELAY_MIN_SECONDS,
            self.settings.REPLY_DELAY_MAX_SECONDS,
        )
        self.deferred.schedule(conv.id, delay, self._receive_reply, conv.id, label="simulated-reply")
        return message.model_copy(deep=True)

    def _receive_reply(self, conversation_id: str) -> None:
        conv = self._find_conversation(conversation_id)
        if conv is None:
            logger.debug(f"Conversation {conversation_id} is gone, dropping reply")
            return

        now = self._clock()
        reply = Message(
            id=self._next_id(),
            text=random_reply(self._rng),
            sender=conv.participant,
            timestamp=now,
            type=MessageType.RECEIVED,
            read=False,
        )
        conv.messages.append(reply)
        conv.last_activity = now
        conv.last_message = reply.text
        conv.unread_count += 1
        self._persist("conversations")
        logger.info(f"Reply from {conv.participant} in conversation {conv.id}")

    def mark_conversation_read(self, conversation_id: str) -> bool:
        conv = self._find_conversation(conversation_id)
        if conv is None:
            return False
        changed = conv.unread_count != 0 or any(not m.read for m in conv.messages)
        conv.unread_count = 0
        for msg in conv.messages:
            msg.read = True
        if changed:
            self._persist("conversations")
        return True

    def delete_conversation(self, conversation_id: str) -> bool:
        conv = self._find_conversation(conversation_id)
        if conv is None:
            return False
        self._conversations.remove(conv)
        self.deferred.cancel_owner(conversation_id)
        self._persist("conversations")
        logger.info(f"Conversation {conversation_id} deleted")
        return True

    # ------------------------------------------------------------------
    # Profile, theme, welcome
    # ------------------------------------------------------------------

    def update_profile(self, changes: ProfileUpdate | dict) -> Profile:
        changes = self._parse(ProfileUpdate, changes)
        for name in changes.model_fields_set:
            value = getattr(changes, name)
            if value is not None:
                setattr(self._profile, name, value)
        self._persist("profile")
        self.notifications.show("Profile saved!", NotificationType.SUCCESS)
        return self._profile.model_copy(deep=True)

    def add_profile_comment(self, text: str) -> list[str]:
        if _blank(text):
            raise self._reject(InputValidationError("Comment cannot be empty", ["comment"]))
        self._profile.comments.append(text.strip())
        self._persist("profile")
        return list(self._profile.comments)

    def toggle_theme(self) -> bool:
        self._dark_mode = not self._dark_mode
        self._persist("dark_mode")
        mode = "dark" if self._dark_mode else "light"
        self.notifications.show(f"Switched to {mode} mode", NotificationType.INFO)
        return self._dark_mode

    def dismiss_welcome(self, enable_dark_mode: bool = False) -> None:
        if not self._visited:
            self._visited = True
            self._persist("visited")
        if enable_dark_mode and not self._dark_mode:
            self._dark_mode = True
            self._persist("dark_mode")
        self.notifications.show("Welcome to Restaurant Jobs!", NotificationType.SUCCESS)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait until every queued write has reached storage."""
        while True:
            pending = [w for w in self._writers.values() if not w.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Revoke all deferred work, then flush pending writes."""
        self._closed = True
        cancelled = self.deferred.close()
        if self._announcer is not None and not self._announcer.done():
            self._announcer.cancel()
            try:
                await self._announcer
            except asyncio.CancelledError:
                pass
        self.notifications.close()
        await self.flush()
        logger.info(f"Store closed ({cancelled} deferred task(s) cancelled)")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reject(self, error: InputValidationError) -> InputValidationError:
        self.notifications.show(error.message, NotificationType.ERROR)
        return error

    def _parse(self, model: type[M], data: Any) -> M:
        try:
            return _coerce(model, data)
        except InputValidationError as e:
            raise self._reject(e)

    def _key(self, name: str) -> str:
        return storage_key(self.settings, name)

    def _next_id(self) -> str:
        """Millisecond timestamp, bumped so ids stay unique and increasing."""
        now_ms = int(self._clock().timestamp() * 1000)
        self._last_id = max(now_ms, self._last_id + 1)
        return str(self._last_id)

    def _find_job(self, job_id: str) -> Optional[Job]:
        return next((job for job in self._jobs if job.id == job_id), None)

    def _find_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return next((c for c in self._conversations if c.id == conversation_id), None)

    def _encode(self, name: str) -> str:
        if name == "jobs":
            return encode_json([job.to_json_dict() for job in self._jobs])
        if name == "profile":
            return encode_json(self._profile.to_json_dict())
        if name == "dark_mode":
            return encode_json(self._dark_mode)
        if name == "conversations":
            return encode_json([conv.to_json_dict() for conv in self._conversations])
        if name == "payments":
            return encode_json([p.to_json_dict() for p in self._payments])
        if name == "visited":
            return VISITED_MARKER
        raise KeyError(name)

    def _persist(self, name: str) -> None:
        """
        Queue a write of one collection. At most one writer per key is in
        flight and it always serializes the latest state, so writes to a
        key can't land out of order.
        """
        self._dirty.add(name)
        writer = self._writers.get(name)
        if writer is None or writer.done():
            self._writers[name] = asyncio.get_running_loop().create_task(self._write(name))

    async def _write(self, name: str) -> None:
        key = self._key(name)
        while name in self._dirty:
            self._dirty.discard(name)
            await save_raw(self.storage, key, self._encode(name))

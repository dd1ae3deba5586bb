from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional, Protocol, Tuple

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from ..database import settings
from ..schemas.documents import date_to_storage
from ..utils.logging import log_db_error
from ..utils.notifications import EmailNotification
from .base import EventSink, WorkflowBase, storage_errors
from .errors import InvalidTransition, NotFound
from .inventory import InventoryGenerator
from .transitions import GENERATE_INVENTORY, NOTIFY_DONOR, NOTIFY_REQUESTER, resolve, validate_status


class Notifier(Protocol):
    async def send_email(self, message: EmailNotification) -> None: ...


REQUEST_SUBJECTS = {
    "approved": "Good News: Your Equipment Request is Approved!",
    "rejected": "Update on your Equipment Request",
}
REQUEST_FOLLOW_UP = {
    "approved": "Our team will contact you shortly regarding delivery/pickup arrangements.",
    "rejected": "You may apply again in the future or contact us for more details.",
}
INVENTORY_FIELDS = (
    "computer_type",
    "status",
    "condition_after_refurbishment",
    "refurbishment_notes",
    "serial_number",
)


class StatusTransitionEngine(WorkflowBase):
    """Applies admin status changes to donations, school requests and inventory."""

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        notifier: Notifier,
        event_sink: Optional[EventSink] = None,
    ) -> None:
        super().__init__(database, event_sink)
        self.notifier = notifier
        self.generator = InventoryGenerator(self.inventory)

    async def _notify(self, message: EmailNotification) -> bool:
        try:
            await self.notifier.send_email(message)
        except Exception as exc:
            logger.warning("Notification '{}' to {} failed: {}", message.subject, message.to, exc)
            return False
        return True

    @staticmethod
    def donor_approval_email(donation: Dict[str, Any]) -> EmailNotification:
        pickup = donation.get("pickup_date") or "to be scheduled"
        body = (
            f"Dear {donation.get('donor_name') or 'Donor'},\n\n"
            f"Thank you! Your donation of {donation['quantity']} {donation['computer_type']} computer(s) "
            f"has been approved.\n\n"
            f"Pickup date: {pickup}\n"
            f"Pickup address: {donation.get('address') or 'as provided'}\n\n"
            "Our team will reach out to confirm the collection details.\n\n"
            f"Best Regards,\n{settings.organization_name} Team\n"
        )
        return EmailNotification(
            to=donation["email"],
            subject="Your Computer Donation has been Approved",
            body=body,
        )

    @staticmethod
    def request_status_email(
        request: Dict[str, Any], recipient: str, name: Optional[str], status: str, admin_comment: Optional[str]
    ) -> EmailNotification:
        lines = [
            f"Dear {name or 'Partner School'},",
            "",
            f"Your request for {request['quantity']} {request['computer_type']}(s) "
            f"has been updated to: {status.upper()}.",
        ]
        if admin_comment:
            lines += ["", f"Admin Note: {admin_comment}"]
        if status in REQUEST_FOLLOW_UP:
            lines += ["", REQUEST_FOLLOW_UP[status]]
        lines += ["", "Best Regards,", f"{settings.organization_name} Team"]
        return EmailNotification(
            to=recipient,
            subject=REQUEST_SUBJECTS.get(status, "Status Update: Equipment Request"),
            body="\n".join(lines) + "\n",
        )

    async def apply_donation_status(
        self,
        donation_id: Any,
        new_status: str,
        collection_date: date | str | None = None,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        validate_status("donation", new_status)
        with storage_errors("apply_donation_status"):
            donation = await self._get(self.donations, donation_id, "Donation")
        current = donation["status"]
        transition = resolve("donation", current, new_status)
        if not transition.allowed:
            raise InvalidTransition(transition.reason)

        generated = 0
        if GENERATE_INVENTORY in transition.side_effects:
            # Raises StorageError before the status is touched; safe to retry.
            generated = await self.generator.generate_for_donation(donation)

        changes: Dict[str, Any] = {"status": new_status, "updated_at": datetime.utcnow()}
        if collection_date is not None:
            changes["pickup_date"] = date_to_storage(collection_date)
        with storage_errors("apply_donation_status"):
            updated = await self.donations.find_one_and_update(
                {"_id": donation["_id"]},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        if updated is None:
            raise NotFound("Donation not found")

        await self._record("donation", donation["_id"], current, new_status, actor_id, transition.side_effects)
        logger.info("Donation {} moved {} -> {}", donation["_id"], current, new_status)

        if NOTIFY_DONOR in transition.side_effects:
            await self._notify(self.donor_approval_email(updated))

        await self._publish(
            "donation_status_changed",
            {"donation_id": donation["_id"], "from": current, "to": new_status},
        )
        if generated:
            await self._publish("inventory_generated", {"donation_id": donation["_id"], "count": generated})
        return updated

    async def _requester_contact(self, request: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
        user = None
        if request.get("user_id") is not None:
            try:
                user = await self.users.find_one({"_id": request["user_id"]}, {"email": 1, "name": 1})
            except PyMongoError as exc:
                log_db_error("requester_contact", exc)
        if user and user.get("email"):
            return user["email"], user.get("name")
        return request.get("email"), request.get("contact_person")

    async def apply_request_status(
        self,
        request_id: Any,
        new_status: str,
        admin_comment: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        validate_status("school_request", new_status)
        with storage_errors("apply_request_status"):
            request = await self._get(self.requests, request_id, "School request")
        current = request["status"]
        transition = resolve("school_request", current, new_status)
        if not transition.allowed:
            raise InvalidTransition(transition.reason)

        changes: Dict[str, Any] = {"status": new_status, "updated_at": datetime.utcnow()}
        if admin_comment is not None:
            changes["admin_comment"] = admin_comment
        with storage_errors("apply_request_status"):
            updated = await self.requests.find_one_and_update(
                {"_id": request["_id"]},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        if updated is None:
            raise NotFound("School request not found")

        await self._record(
            "school_request", request["_id"], current, new_status, actor_id, transition.side_effects, admin_comment
        )
        logger.info("School request {} moved {} -> {}", request["_id"], current, new_status)

        if NOTIFY_REQUESTER in transition.side_effects:
            recipient, name = await self._requester_contact(updated)
            if recipient:
                await self._notify(self.request_status_email(updated, recipient, name, new_status, admin_comment))
            else:
                logger.info("No email on file for school request {}; skipping notification", request["_id"])

        await self._publish(
            "request_status_changed",
            {"request_id": request["_id"], "from": current, "to": new_status},
        )
        return {"message": f"Request updated to {new_status}", "request": updated}

    async def update_inventory_item(
        self,
        item_id: Any,
        changes: Dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record refurbishment work on a single inventory item."""
        fields = {key: value for key, value in changes.items() if key in INVENTORY_FIELDS and value is not None}
        requested = fields.get("status")
        if requested is not None:
            validate_status("inventory", requested)
        with storage_errors("update_inventory_item"):
            item = await self._get(self.inventory, item_id, "Inventory item")
        current = item["status"]
        if current == "delivered":
            raise InvalidTransition("Delivered inventory can no longer be changed")
        if requested is not None:
            transition = resolve("inventory", current, requested)
            if not transition.allowed:
                raise InvalidTransition(transition.reason)
        if not fields:
            return item

        fields["updated_at"] = datetime.utcnow()
        with storage_errors("update_inventory_item"):
            updated = await self.inventory.find_one_and_update(
                {"_id": item["_id"]},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        if updated is None:
            raise NotFound("Inventory item not found")

        if requested is not None and requested != current:
            await self._record("inventory", item["_id"], current, requested, actor_id)
        await self._publish(
            "inventory_updated",
            {"item_id": item["_id"], "from": current, "to": updated["status"]},
        )
        return updated

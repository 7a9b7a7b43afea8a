"""Marketing emails to a restaurant's customers."""
from __future__ import annotations

import logging
from typing import List

from sqlalchemy.orm import Session

from . import notify
from .errors import ValidationError
from .gateway import DataStoreGateway
from .models import Customer, EmailCampaign

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50


def batched(items: list, size: int = MAX_BATCH_SIZE) -> List[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class CampaignService:
    def __init__(self, db: Session, notifier=notify):
        self.db = db
        self.store = DataStoreGateway(db)
        self.notifier = notifier

    def recipients(self, restaurant_id: int) -> List[Customer]:
        """Customers with a usable email, one per address"""
        with self.store.guarded("loading campaign recipients"):
            customers = self.db.query(Customer).filter(
                Customer.restaurant_id == restaurant_id
            ).order_by(Customer.id).all()
        seen = set()
        unique = []
        for customer in customers:
            key = (customer.email or "").strip().lower()
            if "@" not in key or key in seen:
                continue
            seen.add(key)
            unique.append(customer)
        return unique

    def send_campaign(self, restaurant_id: int, subject: str, body: str) -> EmailCampaign:
        """Mail every customer in batches and record the outcome.

        A failed address is counted and logged; it does not stop the run.
        """
        restaurant = self.store.get_restaurant(restaurant_id)
        subject, body = (subject or "").strip(), (body or "").strip()
        if not subject or not body:
            raise ValidationError("A campaign needs a subject and a message")
        recipients = self.recipients(restaurant_id)
        if not recipients:
            raise ValidationError("This restaurant has no customers to email yet")

        sent = failed = 0
        for number, batch in enumerate(batched(recipients), start=1):
            for customer in batch:
                if self.notifier.send_marketing_email(restaurant, customer, subject, body):
                    sent += 1
                else:
                    failed += 1
                    logger.error("Campaign mail to %s failed", customer.email)
            logger.info("Campaign batch %d for restaurant %s: %d recipients", number, restaurant_id, len(batch))

        campaign = EmailCampaign(
            restaurant_id=restaurant_id,
            subject=subject,
            body=body,
            recipients=len(recipients),
            sent=sent,
            failed=failed,
        )
        with self.store.guarded("recording campaign"):
            self.db.add(campaign)
            self.db.commit()
            self.db.refresh(campaign)
        logger.info("Campaign %s sent %d of %d emails", campaign.id, sent, len(recipients))
        return campaign

    def list_campaigns(self, restaurant_id: int) -> List[EmailCampaign]:
        self.store.get_restaurant(restaurant_id)
        with self.store.guarded("listing campaigns"):
            return self.db.query(EmailCampaign).filter(
                EmailCampaign.restaurant_id == restaurant_id
            ).order_by(EmailCampaign.created_at.desc(), EmailCampaign.id.desc()).all()

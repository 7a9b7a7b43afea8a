"""
Marketing campaign tests
"""
import logging

import pytest

from tablebook.campaigns import CampaignService, batched
from tablebook.errors import NotFoundError, ValidationError
from tablebook.models import Customer

from conftest import FakeNotifier


@pytest.fixture
def add_customer(db):
    def _add(restaurant, email, name=None):
        customer = Customer(restaurant_id=restaurant.id, email=email, name=name)
        db.add(customer)
        db.commit()
        return customer
    return _add


def test_batches_hold_at_most_fifty():
    assert [len(b) for b in batched(list(range(120)))] == [50, 50, 20]
    assert batched([]) == []


def test_recipients_are_unique_and_reachable(db, restaurant, add_customer):
    add_customer(restaurant, "ama@example.com")
    add_customer(restaurant, "AMA@example.com")
    add_customer(restaurant, "not-an-address")
    add_customer(restaurant, "kofi@example.com")

    recipients = CampaignService(db, notifier=FakeNotifier()).recipients(restaurant.id)

    assert [c.email for c in recipients] == ["ama@example.com", "kofi@example.com"]


def test_campaign_mails_every_customer_in_batches(db, caplog, restaurant, add_customer):
    for n in range(55):
        add_customer(restaurant, f"guest{n}@example.com")
    notifier = FakeNotifier(refused={"guest7@example.com"})

    with caplog.at_level(logging.INFO, logger="tablebook.campaigns"):
        campaign = CampaignService(db, notifier=notifier).send_campaign(
            restaurant.id, " Harvest menu ", "New dishes this week."
        )

    assert len(notifier.sent) == 55
    assert (campaign.recipients, campaign.sent, campaign.failed) == (55, 54, 1)
    assert campaign.subject == "Harvest menu"
    assert "Campaign batch 2" in caplog.text
    assert "guest7@example.com failed" in caplog.text


@pytest.mark.parametrize("subject,body", [("", "Hello"), ("Hello", "   "), (None, "Hello")])
def test_campaign_needs_subject_and_body(db, restaurant, add_customer, subject, body):
    add_customer(restaurant, "ama@example.com")
    notifier = FakeNotifier()

    with pytest.raises(ValidationError):
        CampaignService(db, notifier=notifier).send_campaign(restaurant.id, subject, body)
    assert notifier.sent == []


def test_campaign_without_customers_is_rejected(db, restaurant):
    with pytest.raises(ValidationError):
        CampaignService(db, notifier=FakeNotifier()).send_campaign(restaurant.id, "Hi", "Hello")


def test_customers_are_recorded_by_bookings(db, service, restaurant, make_table):
    from test_double_booking import NOW, booking
    service.commit_reservation(booking(restaurant, make_table(restaurant, 1, 2)), now=NOW)
    notifier = FakeNotifier()

    campaign = CampaignService(db, notifier=notifier).send_campaign(restaurant.id, "Hi", "Hello")

    assert notifier.sent == [("campaign", "ama@example.com")]
    assert campaign.sent == 1


def test_campaigns_are_listed_newest_first(db, restaurant, add_customer):
    add_customer(restaurant, "ama@example.com")
    campaigns = CampaignService(db, notifier=FakeNotifier())
    first = campaigns.send_campaign(restaurant.id, "First", "Hello")
    second = campaigns.send_campaign(restaurant.id, "Second", "Hello again")

    assert [c.id for c in campaigns.list_campaigns(restaurant.id)] == [second.id, first.id]
    with pytest.raises(NotFoundError):
        campaigns.list_campaigns(999)

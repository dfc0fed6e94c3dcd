"""Checkout, subscription management and catalog routes (Stripe mocked)."""

from unittest.mock import MagicMock, patch

import pytest
import stripe

from research_api.db.models import SubscriptionPrice, SubscriptionProduct, UserProfile


@pytest.fixture
def mock_stripe():
    """Patch get_stripe() everywhere it is looked up."""
    client = MagicMock()
    with patch("research_api.billing.subscriptions.get_stripe", return_value=client), patch(
        "research_api.billing.catalog.get_stripe", return_value=client
    ):
        yield client


# ============================================================================
# Checkout
# ============================================================================


def test_checkout_requires_price_and_redirect(anon_client, mock_stripe):
    response = anon_client.post("/api/create-checkout-session", json={"priceId": "price_monthly"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required parameters"
    mock_stripe.checkout.Session.create.assert_not_called()


def test_checkout_returns_hosted_url(anon_client, mock_stripe):
    mock_stripe.checkout.Session.create.return_value = {
        "id": "cs_test_1",
        "url": "https://checkout.stripe.com/c/pay/cs_test_1",
    }

    response = anon_client.post(
        "/api/create-checkout-session",
        json={"priceId": "price_monthly", "redirectUrl": "https://portal.test/pricing"},
    )

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test_1"}
    params = mock_stripe.checkout.Session.create.call_args.kwargs
    assert params["mode"] == "subscription"
    assert params["line_items"] == [{"price": "price_monthly", "quantity": 1}]
    assert params["success_url"] == params["cancel_url"] == "https://portal.test/pricing"
    assert "customer" not in params


def test_checkout_creates_and_links_customer(test_client, db_session, profile, mock_stripe):
    mock_stripe.Customer.create.return_value = {"id": "cus_created_1"}
    mock_stripe.checkout.Session.create.return_value = {"id": "cs_2", "url": "https://checkout.stripe.com/x"}

    response = test_client.post(
        "/api/create-checkout-session",
        json={"priceId": "price_monthly", "redirectUrl": "https://portal.test/pricing", "userId": profile.id},
    )

    assert response.status_code == 200
    mock_stripe.Customer.create.assert_called_once_with(
        email=profile.email, metadata={"supabase_user_id": profile.id}
    )
    assert mock_stripe.checkout.Session.create.call_args.kwargs["customer"] == "cus_created_1"
    db_session.expire_all()
    assert db_session.query(UserProfile).filter(UserProfile.id == profile.id).one().stripe_customer_id == "cus_created_1"


def test_checkout_reuses_existing_customer(test_client, paid_profile, mock_stripe):
    mock_stripe.checkout.Session.create.return_value = {"id": "cs_3", "url": "https://checkout.stripe.com/y"}

    test_client.post(
        "/api/create-checkout-session",
        json={"priceId": "price_annual", "redirectUrl": "https://portal.test/pricing", "userId": paid_profile.id},
    )

    mock_stripe.Customer.create.assert_not_called()
    assert mock_stripe.checkout.Session.create.call_args.kwargs["customer"] == "cus_test_123"


def test_checkout_anonymous_caller_cannot_link_a_profile(anon_client, db_session, profile, mock_stripe):
    mock_stripe.Customer.create.return_value = {"id": "cus_attacker"}

    response = anon_client.post(
        "/api/create-checkout-session",
        json={"priceId": "price_monthly", "redirectUrl": "https://evil.test", "userId": profile.id},
    )

    assert response.status_code == 403
    assert response.headers["content-type"].startswith("application/problem+json")
    mock_stripe.Customer.create.assert_not_called()
    mock_stripe.checkout.Session.create.assert_not_called()
    db_session.expire_all()
    assert db_session.query(UserProfile).filter(UserProfile.id == profile.id).one().stripe_customer_id is None


def test_checkout_rejects_another_users_id(test_client, db_session, mock_stripe):
    other = UserProfile(
        id="9d1e7b2a-0000-4000-8000-000000000002",
        email="other@fund.example",
        organization_name="Other Fund",
        organization_type="asset_manager",
        entitlements={},
    )
    db_session.add(other)
    db_session.commit()

    response = test_client.post(
        "/api/create-checkout-session",
        json={"priceId": "price_monthly", "redirectUrl": "https://portal.test/pricing", "userId": other.id},
    )

    assert response.status_code == 403
    mock_stripe.Customer.create.assert_not_called()
    db_session.expire_all()
    assert db_session.query(UserProfile).filter(UserProfile.id == other.id).one().stripe_customer_id is None


def test_checkout_stripe_failure_is_generic_500(anon_client, mock_stripe):
    mock_stripe.checkout.Session.create.side_effect = stripe.InvalidRequestError(
        "No such price: 'price_missing'", param="line_items"
    )

    response = anon_client.post(
        "/api/create-checkout-session",
        json={"priceId": "price_missing", "redirectUrl": "https://portal.test/pricing"},
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to create checkout session"
    assert "price_missing" not in response.text


def test_checkout_without_url_is_500(anon_client, mock_stripe):
    mock_stripe.checkout.Session.create.return_value = {"id": "cs_4", "url": None}

    response = anon_client.post(
        "/api/create-checkout-session",
        json={"priceId": "price_monthly", "redirectUrl": "https://portal.test/pricing"},
    )
    assert response.status_code == 500


# ============================================================================
# Manage subscription
# ============================================================================


@pytest.mark.parametrize("action,expected", [("cancel", True), ("reactivate", False)])
def test_manage_subscription(anon_client, mock_stripe, action, expected):
    mock_stripe.Subscription.modify.return_value = {
        "id": "sub_test_123",
        "cancel_at_period_end": expected,
    }

    response = anon_client.post(
        "/api/manage-subscription", json={"subscriptionId": "sub_test_123", "action": action}
    )

    assert response.status_code == 200
    assert response.json()["subscription"]["cancel_at_period_end"] is expected
    mock_stripe.Subscription.modify.assert_called_once_with("sub_test_123", cancel_at_period_end=expected)


def test_manage_subscription_validation(anon_client, mock_stripe):
    missing = anon_client.post("/api/manage-subscription", json={"action": "cancel"})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Missing required parameters"

    invalid = anon_client.post(
        "/api/manage-subscription", json={"subscriptionId": "sub_1", "action": "pause"}
    )
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid action"
    mock_stripe.Subscription.modify.assert_not_called()


def test_manage_subscription_stripe_failure(anon_client, mock_stripe):
    mock_stripe.Subscription.modify.side_effect = stripe.APIConnectionError("network down")

    response = anon_client.post(
        "/api/manage-subscription", json={"subscriptionId": "sub_1", "action": "cancel"}
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to manage subscription"


# ============================================================================
# Catalog / subscriptions listing
# ============================================================================


def test_products_lists_active_catalog(anon_client, db_session):
    db_session.add_all(
        [
            SubscriptionProduct(id="prod_pro", stripe_product_id="prod_pro", name="Pro Research"),
            SubscriptionProduct(id="prod_old", stripe_product_id="prod_old", name="Legacy", active=False),
            SubscriptionPrice(
                id="price_m", stripe_price_id="price_m", product_id="prod_pro",
                currency="usd", unit_amount=4900, interval_type="month",
            ),
            SubscriptionPrice(
                id="price_y", stripe_price_id="price_y", product_id="prod_pro",
                currency="usd", unit_amount=49000, interval_type="year",
            ),
        ]
    )
    db_session.commit()

    products = anon_client.get("/api/products").json()["products"]

    assert [p["name"] for p in products] == ["Pro Research"]
    assert [(p["id"], p["display"]) for p in products[0]["prices"]] == [
        ("price_m", "$49.00"),
        ("price_y", "$490.00"),
    ]


def test_subscriptions_listing(test_client, paid_profile, mock_stripe):
    mock_stripe.Subscription.list.return_value = {
        "data": [
            {
                "id": "sub_test_123",
                "status": "active",
                "current_period_start": 1767225600,
                "current_period_end": 1769904000,
                "cancel_at_period_end": False,
                "items": {
                    "data": [
                        {
                            "price": {
                                "id": "price_m",
                                "unit_amount": 4900,
                                "currency": "usd",
                                "recurring": {"interval": "month"},
                                "product": "prod_pro",
                            }
                        }
                    ]
                },
            }
        ]
    }
    mock_stripe.Product.retrieve.return_value = {"id": "prod_pro", "name": "Pro Research", "description": None}

    response = test_client.get("/api/subscriptions")

    assert response.status_code == 200
    [subscription] = response.json()["subscriptions"]
    assert subscription["status"] == "active"
    assert subscription["current_period_end"] == "2026-02-01T00:00:00+00:00"
    assert subscription["price"] == {"id": "price_m", "unit_amount": 4900, "currency": "usd", "interval": "month"}
    assert subscription["product"] == {"id": "prod_pro", "name": "Pro Research", "description": ""}
    mock_stripe.Subscription.list.assert_called_once_with(customer="cus_test_123", status="all")


def test_subscriptions_without_customer_is_empty(test_client, profile, mock_stripe):
    response = test_client.get("/api/subscriptions")

    assert response.json() == {"subscriptions": []}
    mock_stripe.Subscription.list.assert_not_called()

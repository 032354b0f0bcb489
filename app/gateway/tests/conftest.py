"""
Pytest fixtures for gateway tests.

Provider HTTP is never reached: adapters get ``mock_session`` and merchant
notification delivery is patched through ``mock_notify_post``.

Usage:
    from gateway.tests.helpers import provider_response

    def test_submit(merchant, passpay_config, mock_session):
        mock_session.post.return_value = provider_response({"rCode": 200, ...})
"""

from unittest.mock import MagicMock, patch

import pytest

from gateway.state_machines import ChannelType, ProviderId
from gateway.tests.factories import (
    MerchantFactory,
    OrderFactory,
    ProviderConfigFactory,
)
from gateway.tests.helpers import provider_response


# =============================================================================
# Merchant & Channel Fixtures
# =============================================================================


@pytest.fixture
def merchant(db):
    return MerchantFactory(merchant_id="M100", secret_key="merchant-secret")


@pytest.fixture
def passpay_config(db, merchant):
    """PassPay channel, priority 1, collections and payouts."""
    return ProviderConfigFactory(
        merchant=merchant,
        account_name="passpay-main",
        provider=ProviderId.PASSPAY,
        channel_type=ChannelType.NATIVE,
        account_id="mch001",
        secret_key="passpay-secret",
        priority=1,
    )


@pytest.fixture
def unispay_config(db, merchant):
    """UniSpay wakeup channel, collections only."""
    return ProviderConfigFactory(
        merchant=merchant,
        account_name="unispay-main",
        provider=ProviderId.UNISPAY,
        channel_type=ChannelType.WAKEUP,
        account_id="uni001",
        secret_key="unispay-secret",
        sub_channel_id="",
        supports_payout=False,
        priority=2,
    )


@pytest.fixture
def dhpay_config(db, merchant):
    return ProviderConfigFactory(
        merchant=merchant,
        account_name="dhpay-main",
        provider=ProviderId.DHPAY,
        channel_type=ChannelType.NATIVE,
        account_id="dh001",
        secret_key="dhpay-secret",
        priority=3,
    )


@pytest.fixture
def pending_order(db, passpay_config):
    return OrderFactory(
        provider_config=passpay_config,
        merchant_order_id="dep-1001",
        provider_reference="T1001",
    )


# =============================================================================
# HTTP Fixtures
# =============================================================================


@pytest.fixture
def mock_session():
    """
    Shared requests.Session double used by every adapter built in the test.
    """
    session = MagicMock()
    with patch("gateway.adapters.base.requests.Session", return_value=session):
        yield session


@pytest.fixture
def mock_notify_post():
    """Patch the merchant notification POST; defaults to HTTP 200."""
    with patch("gateway.services.notifications.requests.post") as post:
        post.return_value = provider_response({}, status_code=200)
        yield post


@pytest.fixture
def mock_deliver_task():
    """Patch the delivery task so on-commit scheduling is observable."""
    with patch("gateway.tasks.deliver_merchant_notification.delay") as delay:
        yield delay

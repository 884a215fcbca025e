"""
Shared fixtures for the Inactivity Engine tests.
"""

from datetime import datetime, timezone

import pytest

from inactivity_engine.connectors import MockDirectoryConnector
from inactivity_engine.models import (
    Account,
    AccountKind,
    ActivityTimestamps,
    EnabledState,
    LicenseSku,
    LifecycleAction,
    StageConfig,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)

E3_SKU = "05e9a617-0261-4cee-bb44-138d3ef5d965"
E5_SKU = "06ebc4ee-1bb5-47dd-8120-11324bc54e06"


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end stage runs against the mock directory")


def build_account(account_id, upn=None, kind=AccountKind.MEMBER, enabled=True,
                  created_at="2024-01-01T00:00:00Z", last_sign_in=None, non_interactive=None,
                  last_successful=None, department=None, mail=None, licenses=None):
    """Build an Account with sensible defaults for tests."""
    return Account(
        id=account_id,
        user_principal_name=upn or f"{account_id}@contoso.com",
        display_name=account_id.title(),
        mail=mail,
        kind=kind,
        enabled=enabled,
        created_at=created_at,
        department=department,
        assigned_licenses=licenses or [],
        activity=ActivityTimestamps(
            last_sign_in=last_sign_in,
            last_non_interactive_sign_in=non_interactive,
            last_successful_sign_in=last_successful,
        ),
    )


@pytest.fixture
def now():
    """Reference instant for all pipeline runs."""
    return NOW


@pytest.fixture
def make_account():
    """Factory for test accounts."""
    return build_account


@pytest.fixture
def member_stage():
    """Member disable stage with no exclusions configured."""
    return StageConfig(
        name="disable-inactive-members",
        kind=AccountKind.MEMBER,
        enabled_state=EnabledState.ENABLED,
        threshold_days=90,
        action=LifecycleAction.DISABLE,
    )


@pytest.fixture
def guest_stage():
    """Guest disable stage with no exclusions configured."""
    return StageConfig(
        name="disable-inactive-guests",
        kind=AccountKind.GUEST,
        enabled_state=EnabledState.ENABLED,
        threshold_days=90,
        action=LifecycleAction.DISABLE,
    )


@pytest.fixture
def skus():
    """Subscribed SKUs of the mock tenant."""
    return [
        LicenseSku(sku_id=E3_SKU, sku_part_number="ENTERPRISEPACK"),
        LicenseSku(sku_id=E5_SKU, sku_part_number="ENTERPRISEPREMIUM"),
    ]


@pytest.fixture
def directory(skus):
    """Mock directory with a mix of members and guests."""
    accounts = [
        # Inactive for 120 days
        build_account("alice", last_sign_in="2025-02-01T00:00:00Z", licenses=[E3_SKU]),
        # Active 31 days ago
        build_account("bob", last_sign_in="2025-05-01T00:00:00Z", licenses=[E3_SKU]),
        # Created 12 days ago, never signed in
        build_account("carol", created_at="2025-05-20T00:00:00Z", licenses=[E3_SKU]),
        # Never signed in, old account
        build_account("dave", licenses=[E5_SKU]),
        # Disabled member
        build_account("erin", enabled=False, last_sign_in="2024-01-01T00:00:00Z"),
        # Cross-tenant artifact
        build_account("frank", upn="frank_fabrikam.com#EXT#@contoso.onmicrosoft.com"),
        # Inactive guest
        build_account("grace", upn="grace_partner.com#EXT#@contoso.onmicrosoft.com",
                      kind=AccountKind.GUEST, last_sign_in="2024-11-01T00:00:00Z"),
        # Active guest
        build_account("heidi", upn="heidi_partner.com#EXT#@contoso.onmicrosoft.com",
                      kind=AccountKind.GUEST, last_sign_in="2025-05-25T00:00:00Z"),
    ]
    return MockDirectoryConnector(accounts=accounts, skus=skus)

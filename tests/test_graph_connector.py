"""
Tests for the Microsoft Graph directory connector.
"""

from unittest.mock import MagicMock

import pytest
import requests
from azure.core.exceptions import ClientAuthenticationError

from inactivity_engine.connectors import DirectoryConnectionError, DirectoryError
from inactivity_engine.connectors.graph_connector import (
    GRAPH_SCOPE,
    GraphDirectoryConnector,
    build_odata_filter,
)
from inactivity_engine.models import AccountFilter, AccountKind, EnabledState

USER = {
    "id": "u1",
    "userPrincipalName": "alice@contoso.com",
    "displayName": "Alice",
    "userType": "Member",
    "accountEnabled": True,
    "createdDateTime": "2024-01-01T00:00:00Z",
    "department": "Finance",
    "assignedLicenses": [{"skuId": "sku-e3"}],
    "signInActivity": {
        "lastSignInDateTime": "2025-02-01T10:00:00Z",
        "lastNonInteractiveSignInDateTime": "2025-02-03T10:00:00Z",
    },
}


def response(status=200, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload or {}
    resp.text = text
    return resp


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def credential():
    cred = MagicMock()
    cred.get_token.return_value = MagicMock(token="test-token")
    return cred


@pytest.fixture
def connector(session, credential):
    conn = GraphDirectoryConnector({"tenant_id": "t1", "client_id": "c1"}, credential=credential, session=session)
    conn.connect()
    return conn


class TestODataFilter:
    """Test cases for build_odata_filter."""

    @pytest.mark.parametrize("kind,state,expected", [
        (AccountKind.MEMBER, EnabledState.ENABLED, "userType eq 'Member' and accountEnabled eq true"),
        (AccountKind.MEMBER, EnabledState.DISABLED, "userType eq 'Member' and accountEnabled eq false"),
        (AccountKind.GUEST, EnabledState.ANY, "userType eq 'Guest'"),
    ])
    def test_filters(self, kind, state, expected):
        assert build_odata_filter(AccountFilter(kind=kind, enabled_state=state)) == expected


class TestConnection:
    """Test cases for connect and close."""

    def test_connect_validates_credential(self, connector, session, credential):
        credential.get_token.assert_called_once_with(GRAPH_SCOPE)
        headers = session.headers.update.call_args[0][0]
        assert "Authorization" not in headers
        assert connector.connected is True

    def test_token_fetched_per_request(self, connector, session, credential):
        """Test that a refreshed token replaces the one used at connect time."""
        credential.get_token.side_effect = [MagicMock(token="first"), MagicMock(token="refreshed")]
        session.request.return_value = response(payload={"value": []})

        connector.list_license_catalog()
        connector.list_license_catalog()

        sent = [c.kwargs["headers"]["Authorization"] for c in session.request.call_args_list]
        assert sent == ["Bearer first", "Bearer refreshed"]

    def test_expired_credential_mid_run(self, connector, session, credential):
        credential.get_token.side_effect = ClientAuthenticationError("refresh failed")

        with pytest.raises(DirectoryConnectionError):
            connector.list_accounts()
        result = connector.set_account_enabled("u1", False)

        assert result.success is False
        session.request.assert_not_called()

    def test_authentication_failure(self, session):
        credential = MagicMock()
        credential.get_token.side_effect = ClientAuthenticationError("bad secret")
        conn = GraphDirectoryConnector({}, credential=credential, session=session)

        with pytest.raises(DirectoryConnectionError):
            conn.connect()

    def test_secret_requires_ids(self):
        conn = GraphDirectoryConnector({"client_secret": "s"})

        with pytest.raises(DirectoryConnectionError):
            conn.connect()

    def test_requests_before_connect_fail(self, session):
        conn = GraphDirectoryConnector({}, credential=MagicMock(), session=session)

        with pytest.raises(DirectoryConnectionError):
            conn.list_accounts()

    def test_close(self, connector, session, credential):
        connector.close()

        session.close.assert_called_once()
        credential.close.assert_called_once()
        assert connector.connected is False


class TestReads:
    """Test cases for directory reads."""

    def test_list_accounts_server_filter(self, connector, session):
        session.request.return_value = response(payload={"value": [USER]})

        accounts = connector.list_accounts(AccountFilter(kind=AccountKind.MEMBER, enabled_state=EnabledState.ENABLED))

        assert [a.id for a in accounts] == ["u1"]
        account = accounts[0]
        assert account.assigned_licenses == ["sku-e3"]
        assert account.activity.last_non_interactive_sign_in == "2025-02-03T10:00:00Z"
        kwargs = session.request.call_args.kwargs
        assert kwargs["params"]["$filter"] == "userType eq 'Member' and accountEnabled eq true"
        assert "signInActivity" in kwargs["params"]["$select"]
        assert kwargs["headers"] == {"Authorization": "Bearer test-token", "ConsistencyLevel": "eventual"}

    def test_list_accounts_unfiltered(self, connector, session):
        session.request.return_value = response(payload={"value": [USER]})

        connector.list_accounts(None)

        kwargs = session.request.call_args.kwargs
        assert "$filter" not in kwargs["params"]
        assert "ConsistencyLevel" not in kwargs["headers"]

    def test_pagination(self, connector, session):
        second = dict(USER, id="u2")
        session.request.side_effect = [
            response(payload={"value": [USER], "@odata.nextLink": "https://graph.microsoft.com/v1.0/users?page=2"}),
            response(payload={"value": [second]}),
        ]

        accounts = connector.list_accounts()

        assert [a.id for a in accounts] == ["u1", "u2"]
        assert session.request.call_args_list[1].args[1] == "https://graph.microsoft.com/v1.0/users?page=2"

    def test_http_error_raises(self, connector, session):
        session.request.return_value = response(status=400, text="Unsupported query")

        with pytest.raises(DirectoryError, match="400"):
            connector.list_accounts(AccountFilter(kind=AccountKind.GUEST))

    def test_transport_error_raises(self, connector, session):
        session.request.side_effect = requests.ConnectionError("reset")

        with pytest.raises(DirectoryError):
            connector.list_license_catalog()

    def test_group_lookup_escapes_quotes(self, connector, session):
        session.request.return_value = response(payload={"value": [{"id": "g1", "displayName": "O'Brien Review"}]})

        group = connector.get_group_by_name("O'Brien Review")

        assert group.id == "g1"
        assert session.request.call_args.kwargs["params"]["$filter"] == "displayName eq 'O''Brien Review'"

    def test_group_not_found(self, connector, session):
        session.request.return_value = response(payload={"value": []})

        assert connector.get_group_by_name("Missing") is None

    def test_license_catalog(self, connector, session):
        session.request.return_value = response(payload={"value": [
            {"skuId": "sku-e3", "skuPartNumber": "ENTERPRISEPACK"},
        ]})

        skus = connector.list_license_catalog()

        assert skus[0].sku_id == "sku-e3"
        assert skus[0].sku_part_number == "ENTERPRISEPACK"

    def test_context(self, connector, session):
        session.request.return_value = response(payload={"value": [{"id": "t1", "displayName": "Contoso"}]})

        context = connector.get_context()

        assert context.tenant_name == "Contoso"
        assert context.identity == "c1"


class TestMutations:
    """Test cases for directory mutations."""

    def test_disable_account(self, connector, session):
        session.request.return_value = response(status=204)

        result = connector.set_account_enabled("u1", False)

        assert result.success is True
        args, kwargs = session.request.call_args
        assert args[0] == "PATCH"
        assert args[1].endswith("/users/u1")
        assert kwargs["json"] == {"accountEnabled": False}

    def test_mutation_failure_is_result(self, connector, session):
        session.request.return_value = response(status=403, text="Insufficient privileges")

        result = connector.remove_account("u1")

        assert result.success is False
        assert "403" in result.error

    def test_add_member_reference(self, connector, session):
        session.request.return_value = response(status=204)

        connector.add_group_member("g1", "u1")

        args, kwargs = session.request.call_args
        assert args[1].endswith("/groups/g1/members/$ref")
        assert kwargs["json"]["@odata.id"].endswith("/directoryObjects/u1")

    def test_create_group(self, connector, session):
        session.request.return_value = response(status=201, payload={"id": "g9", "displayName": "Review Group"})

        group = connector.create_group("Review Group")

        assert group.id == "g9"
        body = session.request.call_args.kwargs["json"]
        assert body["securityEnabled"] is True
        assert body["mailEnabled"] is False
        assert body["mailNickname"] == "ReviewGroup"

    def test_create_group_failure_raises(self, connector, session):
        session.request.return_value = response(status=400, text="bad")

        with pytest.raises(DirectoryError):
            connector.create_group("Review Group")

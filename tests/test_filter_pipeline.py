"""
Tests for the Filter Pipeline.
"""

import pytest

from inactivity_engine.connectors import MockDirectoryConnector
from inactivity_engine.engine import (
    AccountRetriever,
    ClientFilteredRetrieval,
    FilterPipeline,
    LicenseCatalogError,
    RetrievalError,
    load_product_names,
)
from inactivity_engine.models import AccountKind, EnabledState

from conftest import E3_SKU


def candidate_ids(result):
    return [c.account.id for c in result.candidates]


class TestMemberStage:
    """Test cases for member stage classification."""

    def test_candidates_and_counts(self, directory, member_stage, now):
        result = FilterPipeline(directory, member_stage).run(now)

        assert candidate_ids(result) == ["alice", "dave"]
        assert result.retrieval_strategy == "server"
        counts = result.counts
        assert counts.retrieved == 5
        assert counts.excluded_federated == 1
        assert counts.excluded_by_creation == 1
        assert counts.still_active == 1
        assert counts.candidates == 2

    def test_inactive_days_and_never(self, directory, member_stage, now):
        result = FilterPipeline(directory, member_stage).run(now)
        by_id = {c.account.id: c for c in result.candidates}

        assert by_id["alice"].inactive_days == 120
        assert by_id["dave"].never_signed_in is True
        assert by_id["dave"].inactive_days is None

    def test_recent_activity_not_candidate(self, directory, member_stage, now):
        result = FilterPipeline(directory, member_stage).run(now)

        assert "bob" not in candidate_ids(result)

    def test_recent_creation_not_candidate(self, directory, member_stage, now):
        result = FilterPipeline(directory, member_stage).run(now)

        assert "carol" not in candidate_ids(result)

    def test_activity_exactly_at_cutoff_is_active(self, make_account, member_stage, now):
        """Test that the inactivity comparison is strict."""
        connector = MockDirectoryConnector(accounts=[
            make_account("edge", last_sign_in="2025-03-03T00:00:00Z"),
            make_account("older", last_sign_in="2025-03-02T23:59:59Z"),
        ])

        result = FilterPipeline(connector, member_stage).run(now)

        assert candidate_ids(result) == ["older"]
        assert result.counts.still_active == 1

    def test_candidates_subset_of_retrieved(self, directory, member_stage, now):
        result = FilterPipeline(directory, member_stage).run(now)

        retrieved = {a.id for a in directory.list_accounts(None)}
        assert set(candidate_ids(result)) <= retrieved
        assert all(c.account.kind == AccountKind.MEMBER and c.account.enabled for c in result.candidates)

    def test_license_names_on_candidates(self, directory, member_stage, now):
        result = FilterPipeline(directory, member_stage,
                                product_names={"ENTERPRISEPACK": "Office 365 E3"}).run(now)
        by_id = {c.account.id: c for c in result.candidates}

        assert by_id["alice"].license_names == ["Office 365 E3"]

    def test_naive_now_treated_as_utc(self, directory, member_stage, now):
        aware = FilterPipeline(directory, member_stage).run(now)

        naive = FilterPipeline(directory, member_stage).run(now.replace(tzinfo=None))

        assert candidate_ids(naive) == candidate_ids(aware)
        assert naive.candidates[0].inactive_days == 120

    def test_disabled_state_stage(self, directory, member_stage, now):
        stage = member_stage.model_copy(update={"enabled_state": EnabledState.DISABLED})

        result = FilterPipeline(directory, stage).run(now)

        assert candidate_ids(result) == ["erin"]


class TestExclusions:
    """Test cases for exclusion sources."""

    def test_exclusion_group(self, make_account, member_stage, now):
        connector = MockDirectoryConnector(
            accounts=[make_account("alice"), make_account("dave")],
            groups={"Lifecycle - Excluded Accounts": ["alice"]},
        )
        stage = member_stage.model_copy(update={"exclusion_group": "Lifecycle - Excluded Accounts"})

        result = FilterPipeline(connector, stage).run(now)

        assert candidate_ids(result) == ["dave"]
        assert result.counts.excluded_by_group == 1

    def test_missing_exclusion_group_degrades(self, directory, member_stage, now):
        stage = member_stage.model_copy(update={"exclusion_group": "Does Not Exist"})

        result = FilterPipeline(directory, stage).run(now)

        assert candidate_ids(result) == ["alice", "dave"]
        assert any("Does Not Exist" in w for w in result.warnings)

    def test_exclusion_group_lookup_failure_degrades(self, directory, member_stage, now):
        directory.fail_group_lookup = True
        stage = member_stage.model_copy(update={"exclusion_group": "Lifecycle - Excluded Accounts"})

        result = FilterPipeline(directory, stage).run(now)

        assert result.counts.excluded_by_group == 0
        assert len(result.warnings) == 1

    def test_department_and_domain(self, make_account, member_stage, now):
        connector = MockDirectoryConnector(accounts=[
            make_account("svc", department="Service Accounts"),
            make_account("vendor", upn="vendor@partner.example"),
            make_account("plain"),
        ])
        stage = member_stage.model_copy(update={
            "excluded_departments": ["service accounts"],
            "excluded_domains": ["partner.example"],
        })

        result = FilterPipeline(connector, stage).run(now)

        assert candidate_ids(result) == ["plain"]
        assert result.counts.excluded_by_department == 1
        assert result.counts.excluded_by_domain == 1


class TestLicenseFilter:
    """Test cases for the license include-list step."""

    def test_include_list_filters(self, directory, member_stage, now):
        stage = member_stage.model_copy(update={"license_include_list": ["Office 365 E3"]})

        result = FilterPipeline(directory, stage, product_names={"ENTERPRISEPACK": "Office 365 E3"}).run(now)

        # dave holds E5 only
        assert candidate_ids(result) == ["alice"]
        assert result.counts.excluded_by_license == 1

    def test_include_list_by_raw_id(self, directory, member_stage, now):
        stage = member_stage.model_copy(update={"license_include_list": [E3_SKU]})

        result = FilterPipeline(directory, stage).run(now)

        assert candidate_ids(result) == ["alice"]

    def test_degraded_catalog_disables_filter(self, directory, member_stage, now):
        directory.fail_catalog = True
        stage = member_stage.model_copy(update={"license_include_list": ["Office 365 E3"]})

        result = FilterPipeline(directory, stage).run(now)

        assert candidate_ids(result) == ["alice", "dave"]
        assert result.counts.excluded_by_license == 0
        assert any("License catalog" in w for w in result.warnings)

    def test_include_list_by_part_number(self, directory, member_stage, now):
        """Test that part numbers match even when a product name is known."""
        stage = member_stage.model_copy(update={"license_include_list": ["ENTERPRISEPACK"]})

        result = FilterPipeline(directory, stage, product_names=load_product_names()).run(now)

        assert candidate_ids(result) == ["alice"]
        assert result.counts.excluded_by_license == 1
        assert result.candidates[0].license_names == ["Office 365 E3"]

    def test_catalog_failure_fatal_under_fail_policy(self, directory, member_stage, now):
        directory.fail_catalog = True
        stage = member_stage.model_copy(update={"license_include_list": ["Office 365 E3"]})

        with pytest.raises(LicenseCatalogError):
            FilterPipeline(directory, stage, catalog_failure_policy="fail").run(now)

    def test_fail_policy_without_include_list_continues(self, directory, member_stage, now):
        """Test that the catalog is not required when no license filter is configured."""
        directory.fail_catalog = True

        result = FilterPipeline(directory, member_stage, catalog_failure_policy="fail").run(now)

        assert candidate_ids(result) == ["alice", "dave"]
        assert result.counts.excluded_by_license == 0

    def test_unknown_catalog_policy_rejected(self, directory, member_stage):
        with pytest.raises(ValueError):
            FilterPipeline(directory, member_stage, catalog_failure_policy="ignore")


class TestGuestStage:
    """Test cases for guest stages."""

    def test_guest_candidates(self, directory, guest_stage, now):
        result = FilterPipeline(directory, guest_stage).run(now)

        assert candidate_ids(result) == ["grace"]
        assert result.counts.retrieved == 2
        assert result.counts.excluded_federated == 0

    def test_guest_stage_skips_license_and_department(self, make_account, guest_stage, now):
        directory = MockDirectoryConnector(accounts=[
            make_account("g1", upn="g1_x.com#EXT#@contoso.com", kind=AccountKind.GUEST,
                         department="Service Accounts"),
        ])
        directory.fail_catalog = True
        stage = guest_stage.model_copy(update={
            "excluded_departments": ["Service Accounts"],
            "license_include_list": ["Office 365 E3"],
        })

        result = FilterPipeline(directory, stage, catalog_failure_policy="fail").run(now)

        assert candidate_ids(result) == ["g1"]
        assert result.warnings == []


class TestRetrieval:
    """Test cases for retrieval strategies and fallback."""

    def test_client_fallback_matches_server(self, directory, member_stage, now):
        server = FilterPipeline(directory, member_stage).run(now)

        directory.fail_server_filter = True
        client = FilterPipeline(directory, member_stage).run(now)

        assert client.retrieval_strategy == "client"
        assert candidate_ids(client) == candidate_ids(server)
        assert client.counts == server.counts

    def test_all_strategies_fail(self, directory, member_stage, now):
        directory.fail_listing = True

        with pytest.raises(RetrievalError):
            FilterPipeline(directory, member_stage).run(now)

    def test_custom_retriever(self, directory, guest_stage, now):
        retriever = AccountRetriever([ClientFilteredRetrieval()])

        result = FilterPipeline(directory, guest_stage, retriever=retriever).run(now)

        assert result.retrieval_strategy == "client"
        assert candidate_ids(result) == ["grace"]

"""
Tests for ContactResolver.
"""
from unittest.mock import MagicMock

import pytest

from config.resolver_config import FirstNameFailurePolicy, NameMode, ResolverConfig
from contact_matcher.services.contact_directory import SqliteContactDirectory
from contact_matcher.services.contact_resolver import (
    STATUS_FAILED,
    STATUS_RESOLVED,
    STATUS_SKIPPED,
    STATUS_UNCHANGED,
    STATUS_UPDATED,
    ContactResolver,
    apply_contact_id,
    required_values_present,
)
from contact_matcher.services.errors import CacheSourceUnavailable, ExternalServiceFailure
from contact_matcher.services.first_name_oracle import FirstNameOracle

pytestmark = pytest.mark.unit


class FailingDirectory:
    def __init__(self):
        self.calls = 0

    def get_or_create(self, fields):
        self.calls += 1
        raise ExternalServiceFailure("contact_directory", "boom", params=dict(fields))


class FailingOracle:
    def is_first_name(self, token):
        raise CacheSourceUnavailable("contacts DB unreachable")


class SetOracle:
    def __init__(self, names):
        self.names = names

    def is_first_name(self, token):
        return token.lower() in self.names


class TestPrecondition:

    def test_missing_required_field_skips_without_calls(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(required_fields=("name", "iban"))

        assert resolver.resolve({"name": "Jane Doe"}, config) is None
        assert fake_directory.calls == []

    def test_blank_required_field_counts_as_missing(self, fake_directory):
        config = ResolverConfig(required_fields=("name",))
        assert not required_values_present({"name": "   "}, config)
        assert ContactResolver(fake_directory).resolve_with_details({"name": ""}, config).status == STATUS_SKIPPED

    def test_no_required_fields(self):
        assert required_values_present({}, ResolverConfig())


class TestBuildFields:

    def test_seeded_with_profile_and_contact_type(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(profile="bank_payers", contact_type="Individual")

        resolver.resolve({"name": "Jane Mary Doe"}, config)

        assert fake_directory.calls == [{
            "profile": "bank_payers",
            "contact_type": "Individual",
            "first_name": "Jane",
            "last_name": "Mary Doe",
        }]

    def test_mapping_sends_organization_name(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(
            name_mode=NameMode.OFF,
            field_mapping={"payer_name": "organization_name"},
        )

        resolver.resolve({"payer_name": "ACME"}, config)

        assert fake_directory.calls[0]["organization_name"] == "ACME"
        assert "first_name" not in fake_directory.calls[0]

    def test_mapping_overrides_extracted_names(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(field_mapping=[("given_name", "first_name")])

        fields = resolver.build_fields({"name": "Jane Doe", "given_name": "Janet"}, config)

        assert fields["first_name"] == "Janet"
        assert fields["last_name"] == "Doe"

    def test_last_mapping_for_same_target_wins(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(field_mapping=[("a", "email"), ("b", "email")])

        fields = resolver.build_fields({"a": "a@example.com", "b": "b@example.com"}, config)

        assert fields["email"] == "b@example.com"

    def test_missing_mapping_source_maps_to_empty(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(field_mapping={"email": "email"})

        assert resolver.build_fields({"name": "Jane"}, config)["email"] == ""

    def test_mapping_can_override_contact_type(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(field_mapping={"kind": "contact_type"})

        assert resolver.build_fields({"kind": "Organization"}, config)["contact_type"] == "Organization"

    def test_blanked_service_params_restored(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(profile="p", field_mapping={"kind": "contact_type", "prof": "profile"})

        fields = resolver.build_fields({"kind": None, "prof": None}, config)

        assert fields["contact_type"] == "Individual"
        assert fields["profile"] == "p"

    def test_absent_mapped_service_params_fall_back_to_config(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(
            profile="payers",
            contact_type="Organization",
            field_mapping={"kind": "contact_type", "prof": "profile"},
        )

        fields = resolver.build_fields({"name": "ACME Ltd"}, config)

        assert fields["contact_type"] == "Organization"
        assert fields["profile"] == "payers"

    def test_blank_mapped_contact_type_falls_back_to_config(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        config = ResolverConfig(contact_type="Organization", field_mapping={"kind": "contact_type"})

        assert resolver.build_fields({"kind": "  "}, config)["contact_type"] == "Organization"

    def test_absent_mapped_contact_type_creates_configured_type(self, contact_store):
        resolver = ContactResolver(SqliteContactDirectory(contact_store))
        config = ResolverConfig(contact_type="Organization", field_mapping={"kind": "contact_type"})

        contact_id = resolver.resolve({"name": "ACME Ltd"}, config)

        assert contact_store.get(int(contact_id)).contact_type == "Organization"

    def test_missing_name_is_empty(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        assert resolver.build_fields({}, ResolverConfig())["first_name"] == ""

    def test_record_not_modified(self, fake_directory):
        record = {"name": "Jane Doe", "contact_id": "1"}
        ContactResolver(fake_directory).resolve(record, ResolverConfig())
        assert record == {"name": "Jane Doe", "contact_id": "1"}


class TestDbMode:

    def test_uses_oracle(self, fake_directory):
        resolver = ContactResolver(fake_directory, oracle=SetOracle({"jane", "maria"}))
        resolver.resolve({"name": "Jane Maria Doe"}, ResolverConfig(name_mode="db"))

        assert fake_directory.calls[0]["first_name"] == "Jane Maria"
        assert fake_directory.calls[0]["last_name"] == "Doe"

    def test_fail_open_treats_all_tokens_as_last_name(self, fake_directory):
        resolver = ContactResolver(fake_directory, oracle=FailingOracle())
        config = ResolverConfig(name_mode="db", first_name_failure_policy="fail_open")

        assert resolver.resolve({"name": "Jane Doe"}, config) is not None
        assert fake_directory.calls[0]["first_name"] == ""
        assert fake_directory.calls[0]["last_name"] == "Jane Doe"

    def test_abort_policy_skips_directory(self, fake_directory):
        resolver = ContactResolver(fake_directory, oracle=FailingOracle())
        config = ResolverConfig(name_mode="db", first_name_failure_policy=FirstNameFailurePolicy.ABORT)

        result = resolver.resolve_with_details({"name": "Jane Doe"}, config)

        assert result.status == STATUS_FAILED
        assert result.contact_id is None
        assert fake_directory.calls == []

    def test_with_real_oracle_and_contacts(self, contact_store, cache_store, clock):
        contact_store.add(first_name="Maria", last_name="Schmidt")
        oracle = FirstNameOracle(contact_store, cache_store, clock=clock)
        directory = SqliteContactDirectory(contact_store)
        resolver = ContactResolver(directory, oracle=oracle)

        contact_id = resolver.resolve({"name": "Schmidt Maria"}, ResolverConfig(name_mode="db"))

        contact = contact_store.get(int(contact_id))
        assert contact.first_name == "Maria"
        assert contact.last_name == "Schmidt"


class TestDirectoryFailure:

    def test_failure_returns_none(self):
        directory = FailingDirectory()
        result = ContactResolver(directory).resolve_with_details({"name": "Jane Doe"}, ResolverConfig())

        assert result.status == STATUS_FAILED
        assert result.contact_id is None
        assert "boom" in result.error
        assert directory.calls == 1

    def test_failure_is_logged_with_parameters(self, caplog):
        with caplog.at_level("ERROR"):
            ContactResolver(FailingDirectory()).resolve({"name": "Jane Doe"}, ResolverConfig())
        assert "Parameters were" in caplog.text
        assert "Jane" in caplog.text

    def test_no_id_returned(self):
        directory = MagicMock()
        directory.get_or_create.return_value = None
        result = ContactResolver(directory).resolve_with_details({"name": "Jane"}, ResolverConfig())
        assert result.status == STATUS_FAILED


class TestResolve:

    def test_idempotent_directory_gives_same_id(self, fake_directory):
        resolver = ContactResolver(fake_directory)
        record = {"name": "Jane Doe"}

        first = resolver.resolve(record, ResolverConfig())
        second = resolver.resolve(record, ResolverConfig())

        assert first is not None
        assert first == second

    def test_integer_ids_normalized(self):
        directory = MagicMock()
        directory.get_or_create.return_value = 42
        result = ContactResolver(directory).resolve_with_details({"name": "Jane"}, ResolverConfig())
        assert result.status == STATUS_RESOLVED
        assert result.contact_id == "42"


class TestApplyContactId:

    def test_sets_missing_output_field(self):
        updated = apply_contact_id({"name": "Jane"}, "7", ResolverConfig())
        assert updated == {"name": "Jane", "contact_id": "7"}

    def test_replaces_different_id(self):
        updated = apply_contact_id({"contact_id": "3"}, "7", ResolverConfig())
        assert updated["contact_id"] == "7"

    def test_same_id_after_normalization_is_unchanged(self):
        assert apply_contact_id({"contact_id": 7}, "7", ResolverConfig()) is None
        assert apply_contact_id({"contact_id": " 7 "}, 7, ResolverConfig()) is None

    def test_custom_output_field(self):
        updated = apply_contact_id({}, "7", ResolverConfig(output_field="organization_id"))
        assert updated == {"organization_id": "7"}

    def test_no_contact_no_update(self):
        assert apply_contact_id({}, None, ResolverConfig()) is None

    def test_original_not_mutated(self):
        record = {"name": "Jane"}
        apply_contact_id(record, "7", ResolverConfig())
        assert record == {"name": "Jane"}


class TestAnalyse:

    def test_writes_back_through_sink(self, fake_directory, transaction_store):
        txn = transaction_store.add({"name": "Jane Doe"})
        resolver = ContactResolver(fake_directory, sink=transaction_store)

        outcome = resolver.analyse(txn.id, txn.data_parsed, ResolverConfig())

        assert outcome.status == STATUS_UPDATED
        stored = transaction_store.get(txn.id)
        assert stored.data_parsed["contact_id"] == outcome.contact_id
        assert stored.status == "resolved"
        assert stored.contact_id == outcome.contact_id

    def test_unchanged_record_not_saved(self, fake_directory):
        sink = MagicMock()
        resolver = ContactResolver(fake_directory, sink=sink)
        contact_id = resolver.resolve({"name": "Jane Doe"}, ResolverConfig())

        outcome = resolver.analyse(1, {"name": "Jane Doe", "contact_id": contact_id}, ResolverConfig())

        assert outcome.status == STATUS_UNCHANGED
        sink.save_record.assert_not_called()
        sink.mark_resolved.assert_called_once_with(1, contact_id)

    def test_without_sink_returns_update(self, fake_directory):
        outcome = ContactResolver(fake_directory).analyse(1, {"name": "Jane"}, ResolverConfig())
        assert outcome.updated_record["contact_id"] == outcome.contact_id

    def test_skipped_record(self, fake_directory):
        sink = MagicMock()
        outcome = ContactResolver(fake_directory, sink=sink).analyse(
            1, {}, ResolverConfig(required_fields=("name",))
        )
        assert outcome.status == STATUS_SKIPPED
        sink.save_record.assert_not_called()
        sink.mark_resolved.assert_not_called()


class TestAnalyseBatch:

    def test_failure_does_not_stop_batch(self, fake_directory):
        sink = MagicMock()
        sink.save_record.side_effect = [RuntimeError("disk full"), None]
        resolver = ContactResolver(fake_directory, sink=sink)

        outcomes = resolver.analyse_batch(
            [(1, {"name": "Jane Doe"}), (2, {}), (3, {"name": "John Roe"})],
            ResolverConfig(required_fields=("name",)),
        )

        assert [o.status for o in outcomes] == [STATUS_FAILED, STATUS_SKIPPED, STATUS_UPDATED]
        assert "disk full" in outcomes[0].error

    def test_directory_failures_isolated(self):
        directory = MagicMock()
        directory.get_or_create.side_effect = [
            ExternalServiceFailure("contact_directory", "timeout"),
            "9",
        ]
        outcomes = ContactResolver(directory).analyse_batch(
            [(1, {"name": "Jane"}), (2, {"name": "John"})], ResolverConfig()
        )
        assert [o.status for o in outcomes] == [STATUS_FAILED, STATUS_UPDATED]
        assert outcomes[1].contact_id == "9"

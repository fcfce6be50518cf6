"""
Contact Resolver for bank transactions.

Resolves the payer of a transaction to a contact ID in one linear pass:
1. Precondition - required transaction fields must be present
2. Name extraction - split the payer 'name' according to the name mode
3. Field mapping - propagate transaction fields to contact fields
4. Get or create - let the contact directory match or create the contact

A failing directory call is logged and yields no contact; it never aborts
the surrounding batch. Writing the contact ID back into the transaction is
a separate, explicit step (apply_contact_id / analyse).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from config.resolver_config import FirstNameFailurePolicy, NameMode, ResolverConfig
from contact_matcher.services.contact_directory import ContactDirectory, normalize_contact_id
from contact_matcher.services.errors import CacheSourceUnavailable, ExternalServiceFailure
from contact_matcher.services.name_splitter import FirstNameLookup, split_name

logger = logging.getLogger(__name__)

# Resolution / analysis statuses
STATUS_SKIPPED = "skipped"      # required fields missing, nothing to do
STATUS_FAILED = "failed"        # directory or first name source failure
STATUS_RESOLVED = "resolved"    # contact found or created
STATUS_UNCHANGED = "unchanged"  # resolved, record already had this contact ID
STATUS_UPDATED = "updated"      # resolved, contact ID written back


class _NoFirstNames:
    """Lookup used when known first names are unavailable (fail-open)."""

    def is_first_name(self, token: str) -> bool:
        return False


@dataclass
class ResolutionResult:
    """Result of resolving one record."""

    status: str
    contact_id: Optional[str] = None
    fields: dict[str, Any] = field(default_factory=dict)  # values sent to the directory
    error: Optional[str] = None


@dataclass
class AnalysisOutcome:
    """Result of analysing (resolve + write-back) one stored record."""

    record_id: Any
    status: str
    contact_id: Optional[str] = None
    updated_record: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "status": self.status,
            "contact_id": self.contact_id,
            "updated": self.updated_record is not None,
            "error": self.error,
        }


def required_values_present(record: Mapping[str, Any], config: ResolverConfig) -> bool:
    """Check that every required field is present and not blank."""
    for name in config.required_fields:
        value = record.get(name)
        if value is None:
            return False
        if isinstance(value, str) and not value.strip():
            return False
    return True


def apply_contact_id(
    record: Mapping[str, Any],
    contact_id: Optional[str],
    config: ResolverConfig,
) -> Optional[dict[str, Any]]:
    """
    Compute the write-back of a resolved contact ID.

    IDs are compared in normalized form, so an existing 42 and a resolved
    "42" count as the same contact.

    Returns:
        Copy of the record with output_field set, or None if nothing changes
    """
    contact_id = normalize_contact_id(contact_id)
    if contact_id is None:
        return None

    existing = normalize_contact_id(record.get(config.output_field))
    if existing == contact_id:
        return None

    updated = dict(record)
    updated[config.output_field] = contact_id
    return updated


class ContactResolver:
    """
    Resolves transaction records to contacts via a get-or-create directory.

    Stateless across calls; the only shared state is the first name oracle's
    snapshot, which is injected.
    """

    def __init__(
        self,
        directory: ContactDirectory,
        oracle: Optional[FirstNameLookup] = None,
        sink=None,
    ):
        """
        Initialize the resolver.

        Args:
            directory: Get-or-create contact service
            oracle: Known first names lookup (needed for 'db' name mode)
            sink: Record sink with save_record(id, record) / mark_resolved(id, contact_id),
                used by analyse()
        """
        self._directory = directory
        self._oracle = oracle
        self._sink = sink

    def build_fields(self, record: Mapping[str, Any], config: ResolverConfig) -> dict[str, Any]:
        """
        Compile the values passed to the directory.

        Raises:
            CacheSourceUnavailable: in db mode with the abort policy, if first names can't be loaded
        """
        fields: dict[str, Any] = {
            "profile": config.profile,
            "contact_type": config.contact_type,
        }

        # step 1: first/last name
        fields.update(self._extract_names(str(record.get("name") or ""), config))

        # step 2: mapping (applied in order, later pairs win)
        for source, target in config.field_mapping:
            fields[target] = record.get(source, "")

        # an absent or blank mapped value falls back to the configured one
        for key in ("profile", "contact_type"):
            value = fields.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                fields[key] = getattr(config, key)

        return fields

    def _extract_names(self, name: str, config: ResolverConfig) -> dict[str, str]:
        logger.debug(f"Extracting names from '{name}', mode is '{config.name_mode.value}'")

        if config.name_mode != NameMode.DB:
            return split_name(name, config.name_mode)

        try:
            return split_name(name, NameMode.DB, self._oracle)
        except CacheSourceUnavailable as e:
            if config.first_name_failure_policy == FirstNameFailurePolicy.ABORT:
                raise
            logger.warning(f"Known first names unavailable ({e}), treating '{name}' as last name only")
            return split_name(name, NameMode.DB, _NoFirstNames())

    def resolve_with_details(self, record: Mapping[str, Any], config: ResolverConfig) -> ResolutionResult:
        """
        Resolve a record, reporting how resolution ended.

        Never raises for directory or first name source failures; those end
        with status 'failed'.
        """
        if not required_values_present(record, config):
            return ResolutionResult(status=STATUS_SKIPPED)

        try:
            fields = self.build_fields(record, config)
        except CacheSourceUnavailable as e:
            logger.error(f"Name extraction aborted: {e}")
            return ResolutionResult(status=STATUS_FAILED, error=str(e))

        try:
            contact_id = normalize_contact_id(self._directory.get_or_create(fields))
        except ExternalServiceFailure as e:
            logger.error(f"Get-or-create call failed with {e.message}. Parameters were: {fields}")
            return ResolutionResult(status=STATUS_FAILED, fields=fields, error=str(e))

        logger.debug(f"Contact identified by get-or-create: {contact_id}")
        if contact_id is None:
            return ResolutionResult(status=STATUS_FAILED, fields=fields, error="No contact id returned")
        return ResolutionResult(status=STATUS_RESOLVED, contact_id=contact_id, fields=fields)

    def resolve(self, record: Mapping[str, Any], config: ResolverConfig) -> Optional[str]:
        """
        Resolve a record to a contact ID.

        Args:
            record: Parsed transaction data (not modified)
            config: Analyser configuration

        Returns:
            Contact ID, or None if the record was skipped or resolution failed
        """
        return self.resolve_with_details(record, config).contact_id

    def analyse(self, record_id: Any, record: Mapping[str, Any], config: ResolverConfig) -> AnalysisOutcome:
        """
        Resolve a stored record and write the contact ID back through the sink.

        Without a sink the updated record is only returned in the outcome.
        """
        result = self.resolve_with_details(record, config)
        if result.status != STATUS_RESOLVED:
            return AnalysisOutcome(record_id=record_id, status=result.status, error=result.error)

        updated = apply_contact_id(record, result.contact_id, config)
        if self._sink is not None:
            if updated is not None:
                self._sink.save_record(record_id, updated)
                logger.debug(f"Update field {config.output_field} with: {result.contact_id}")
            self._sink.mark_resolved(record_id, result.contact_id)

        return AnalysisOutcome(
            record_id=record_id,
            status=STATUS_UPDATED if updated is not None else STATUS_UNCHANGED,
            contact_id=result.contact_id,
            updated_record=updated,
        )

    def analyse_batch(
        self,
        items: Iterable[tuple[Any, Mapping[str, Any]]],
        config: ResolverConfig,
    ) -> list[AnalysisOutcome]:
        """
        Analyse many records; a failure on one record never stops the rest.

        Args:
            items: (record_id, record) pairs
            config: Analyser configuration

        Returns:
            One outcome per record, in input order
        """
        outcomes = []
        for record_id, record in items:
            try:
                outcome = self.analyse(record_id, record, config)
            except Exception as e:
                logger.exception(f"Analysing record {record_id} failed")
                outcome = AnalysisOutcome(record_id=record_id, status=STATUS_FAILED, error=str(e))
            outcomes.append(outcome)
        return outcomes


def get_contact_resolver() -> ContactResolver:
    """Create a ContactResolver wired to the configured directory, oracle and transaction store."""
    from contact_matcher.services.contact_directory import get_contact_directory
    from contact_matcher.services.first_name_oracle import get_first_name_oracle
    from contact_matcher.services.transaction_store import get_transaction_store
    return ContactResolver(
        directory=get_contact_directory(),
        oracle=get_first_name_oracle(),
        sink=get_transaction_store(),
    )

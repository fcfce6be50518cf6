"""
Analyser configuration for contact resolution.

A ResolverConfig describes one configured "get or create contact" analyser:
which get-or-create profile to use, how to split the payer name, and how to
propagate transaction fields into the values sent to the contact directory.

Named analysers and directory match profiles are loaded from
config/analysers.yaml (see config/analysers.example.yaml for a template).
"""
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_ANALYSER = "default"

# Fields the local directory matches on when a profile doesn't list its own
DEFAULT_MATCH_FIELDS = ("first_name", "last_name", "organization_name", "email")


class NameMode(str, Enum):
    """How the payer 'name' is split into first_name / last_name."""

    FIRST = "first"  # first token is the first name, the rest is the last name
    LAST = "last"    # last token is the last name, the rest is the first name
    OFF = "off"      # no extraction, use a field mapping instead
    DB = "db"        # tokens known as first names in the contacts DB are first names

    @classmethod
    def parse(cls, value: Union[str, "NameMode"]) -> "NameMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown name mode '{value}' (expected one of: {valid})")


class FirstNameFailurePolicy(str, Enum):
    """What to do in 'db' mode when the known first names can't be loaded."""

    FAIL_OPEN = "fail_open"  # treat every token as a last name component
    ABORT = "abort"          # skip the record


class ResolverConfig(BaseModel):
    """Immutable, validated configuration of one analyser."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    profile: Optional[str] = Field(
        default=None,
        description="Get-or-create profile name, None for the service default"
    )
    name_mode: NameMode = NameMode.FIRST
    contact_type: str = "Individual"
    field_mapping: tuple[tuple[str, str], ...] = Field(
        default=(),
        description="Ordered (source field, target field) pairs, applied after name extraction"
    )
    output_field: str = "contact_id"
    required_fields: tuple[str, ...] = ()
    first_name_failure_policy: FirstNameFailurePolicy = FirstNameFailurePolicy.FAIL_OPEN

    @field_validator("name_mode", mode="before")
    @classmethod
    def _parse_name_mode(cls, value: Any) -> NameMode:
        return NameMode.parse(value)

    @field_validator("field_mapping", mode="before")
    @classmethod
    def _normalize_mapping(cls, value: Any) -> tuple[tuple[str, str], ...]:
        """Accept a dict (insertion order) or a list of [source, target] pairs."""
        if value is None:
            return ()
        if isinstance(value, dict):
            value = list(value.items())
        pairs = []
        for item in value:
            if len(item) != 2:
                raise ValueError(f"Mapping entries must be (source, target) pairs, got {item!r}")
            source, target = item
            if not source or not target:
                raise ValueError(f"Mapping entries need a source and a target, got {item!r}")
            pairs.append((str(source), str(target)))
        return tuple(pairs)

    @field_validator("output_field", "contact_type")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


def _load_analysers(config_path: Path) -> tuple[dict[str, ResolverConfig], dict[str, tuple[str, ...]]]:
    """
    Load analyser configurations from a YAML file.

    Returns:
        Tuple of (analysers by name, directory match fields by profile name)
    """
    default_analysers = {
        DEFAULT_ANALYSER: ResolverConfig(
            name_mode=settings.default_name_mode,
            contact_type=settings.default_contact_type,
        ),
    }
    default_profiles: dict[str, tuple[str, ...]] = {}

    if not config_path.exists():
        logger.info(f"No analyser config at {config_path}, using defaults only")
        return default_analysers, default_profiles

    try:
        import yaml
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}

        analysers = dict(default_analysers)
        for name, options in (config.get("analysers") or {}).items():
            analysers[name] = ResolverConfig(**(options or {}))

        profiles = dict(default_profiles)
        for name, info in (config.get("directory_profiles") or {}).items():
            if isinstance(info, dict) and info.get("match_fields"):
                profiles[name] = tuple(info["match_fields"])

        return analysers, profiles

    except Exception as e:
        logger.warning(f"Failed to load {config_path}: {e}, using defaults")
        return default_analysers, default_profiles


_analysers: Optional[dict[str, ResolverConfig]] = None
_directory_profiles: Optional[dict[str, tuple[str, ...]]] = None


def _ensure_loaded() -> None:
    global _analysers, _directory_profiles
    if _analysers is None:
        _analysers, _directory_profiles = _load_analysers(Path(settings.analysers_path))


def get_analyser_config(name: str = DEFAULT_ANALYSER) -> Optional[ResolverConfig]:
    """
    Get a named analyser configuration.

    Args:
        name: Analyser name from analysers.yaml ("default" is always defined)

    Returns:
        ResolverConfig, or None if no analyser has that name
    """
    _ensure_loaded()
    return _analysers.get(name)


def list_analysers() -> list[str]:
    """Names of all configured analysers."""
    _ensure_loaded()
    return sorted(_analysers)


def get_directory_match_fields(profile: Optional[str]) -> tuple[str, ...]:
    """
    Get the fields the local directory matches on for a profile.

    Unknown or empty profiles fall back to DEFAULT_MATCH_FIELDS.
    """
    _ensure_loaded()
    if profile and profile in _directory_profiles:
        return _directory_profiles[profile]
    return DEFAULT_MATCH_FIELDS


def reload_analysers() -> None:
    """Drop the loaded configuration so the next access re-reads the YAML file."""
    global _analysers, _directory_profiles
    _analysers = None
    _directory_profiles = None

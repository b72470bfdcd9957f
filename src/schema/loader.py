"""Tables loader: YAML serialization and deserialization for MappingTables.

Provides round-trip save/load so the line-item and alias tables can be
reviewed, version-controlled, and edited as human-readable YAML
configuration files. Problems are reported as :class:`ConfigError` at load
time; a bad tables file is never partially applied.
"""

from pathlib import Path

import yaml

from .models import EXPENSE_BUCKETS, REVENUE_BUCKETS, MappingTables


class ConfigError(ValueError):
    """Raised when a mapping tables file is missing or malformed."""


_REQUIRED_KEYS = ("revenue_line_items", "expense_line_items")
_ALIAS_KEYS = ("country_aliases", "partner_aliases")


def _check_table(data: dict, key: str, allowed: tuple[str, ...] | None) -> None:
    """Validate a ``label -> value`` table inside *data*."""
    table = data.get(key)
    if table is None:
        return
    if not isinstance(table, dict):
        raise ConfigError(f"'{key}' must be a mapping, got {type(table).__name__}")

    seen: dict[str, str] = {}
    for label, value in table.items():
        if not isinstance(label, str) or not label.strip():
            raise ConfigError(f"'{key}' contains an empty or non-string label: {label!r}")
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"'{key}' label {label!r} has no target value")
        if allowed is not None and value not in allowed:
            raise ConfigError(
                f"'{key}' label {label!r} maps to unknown bucket {value!r}. "
                f"Valid buckets: {', '.join(allowed)}"
            )
        folded = label.strip().lower()
        if folded in seen and seen[folded] != value:
            raise ConfigError(
                f"'{key}' has conflicting entries for {folded!r}: "
                f"{seen[folded]!r} vs {value!r}"
            )
        seen[folded] = value


def validate_tables_dict(data) -> None:
    """Raise :class:`ConfigError` unless *data* describes valid tables."""
    if not isinstance(data, dict):
        raise ConfigError("Tables file must contain a mapping at the top level")
    for key in _REQUIRED_KEYS:
        if key not in data:
            raise ConfigError(f"Tables file is missing required key '{key}'")
    _check_table(data, "revenue_line_items", REVENUE_BUCKETS)
    _check_table(data, "expense_line_items", EXPENSE_BUCKETS)
    for key in _ALIAS_KEYS:
        _check_table(data, key, None)

    named = data.get("named_partners")
    if named is not None:
        if not isinstance(named, list) or not all(isinstance(p, str) for p in named):
            raise ConfigError("'named_partners' must be a list of strings")


def save_tables(tables: MappingTables, path: str | Path) -> None:
    """Serialize MappingTables to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = tables.to_dict()
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False,
                  allow_unicode=True, width=120)


def load_tables(path: str | Path) -> MappingTables:
    """Deserialize MappingTables from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Tables file not found: {path}")
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Tables file {path} is not valid YAML: {exc}") from exc
    validate_tables_dict(data)
    return MappingTables.from_dict(data)

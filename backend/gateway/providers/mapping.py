from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, model_validator


class RenameRule(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    source: str
    target: str


class FieldMapping(BaseModel):
    """Ordered rename rules built from a ``{from_field: to_field}`` table."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    rules: tuple[RenameRule, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _coerce_table(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            if isinstance(value.get("rules"), list | tuple):
                return value
            return {"rules": [{"source": str(key), "target": str(target)} for key, target in value.items()]}
        if isinstance(value, list | tuple):
            rules = []
            for item in value:
                if isinstance(item, Mapping):
                    rules.append(item)
                else:
                    source, target = item
                    rules.append({"source": str(source), "target": str(target)})
            return {"rules": rules}
        return value

    def __bool__(self) -> bool:
        return bool(self.rules)

    def as_table(self) -> dict[str, str]:
        return {rule.source: rule.target for rule in self.rules}


def apply_field_mapping(
    data: Mapping[str, Any],
    mapping: FieldMapping,
    *,
    keep_unmapped: bool = False,
) -> dict[str, Any]:
    """Rename keys of ``data`` according to ``mapping``.

    With ``keep_unmapped=False`` the mapping acts as an allow-list and keys
    without a rule are dropped. With ``keep_unmapped=True`` they pass
    through untouched. A renamed key never also appears under its old name, and
    a rule whose source value is None produces no key at all.
    """
    sources = {rule.source for rule in mapping.rules}
    mapped: dict[str, Any] = {}
    if keep_unmapped:
        mapped = {key: value for key, value in data.items() if key not in sources}
    for rule in mapping.rules:
        if data.get(rule.source) is not None:
            mapped[rule.target] = data[rule.source]
    return mapped

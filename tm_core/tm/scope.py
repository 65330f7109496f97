from __future__ import annotations

from dataclasses import dataclass

from tm_core.errors import ValidationError


@dataclass(slots=True, frozen=True)
class Scope:
    """Visibility boundary for a caller: an owner, optionally inside an organization.

    A personal scope has ``organization_id=None``. Entries stored under an
    organization scope form their own partition; lookups under that scope see
    them together with every entry the owner created.
    """

    owner_id: str
    organization_id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.owner_id, str) or not self.owner_id.strip():
            raise ValidationError("owner_id", "must be a non-empty string")
        if self.organization_id is not None and (
            not isinstance(self.organization_id, str) or not self.organization_id.strip()
        ):
            raise ValidationError(
                "organization_id", "must be a non-empty string or None"
            )

    @classmethod
    def personal(cls, owner_id: str) -> Scope:
        return cls(owner_id=owner_id)

    @classmethod
    def for_organization(cls, owner_id: str, organization_id: str) -> Scope:
        return cls(owner_id=owner_id, organization_id=organization_id)

    @property
    def has_organization(self) -> bool:
        return self.organization_id is not None

    def as_params(self) -> dict[str, str | None]:
        return {"owner_id": self.owner_id, "organization_id": self.organization_id}


# Entries the scope may read: everything the owner created plus, when an
# organization is set, the organization's partition.
VISIBLE_TO_SCOPE_SQL = (
    "(owner_id = :owner_id"
    " OR (:organization_id IS NOT NULL AND organization_id = :organization_id))"
)

# Entries the scope may modify: its own exact partition.
OWNED_BY_SCOPE_SQL = (
    "(owner_id = :owner_id AND organization_id IS :organization_id)"
)

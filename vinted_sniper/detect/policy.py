"""Filter policy definitions and the hot-reload holder."""

import logging
import threading
from dataclasses import asdict, dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

_LIST_FIELDS = (
    "allowed_brands",
    "allowed_sizes",
    "allowed_conditions",
    "excluded_brands",
    "excluded_keywords",
    "excluded_conditions",
)
_PRICE_FIELDS = ("min_price", "max_price")


def _clean_terms(values) -> tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        values = values.split(",")
    return tuple(str(v).strip() for v in values if str(v).strip())


def _to_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning(f"Ignoring invalid price bound: {value!r}")
        return None


@dataclass(frozen=True)
class FilterPolicy:
    """
    Inclusion, exclusion and numeric rules applied to every listing.

    Empty term tuples mean "no restriction" on that dimension. Instances are
    immutable; updates produce a new policy that is swapped in whole.
    """

    allowed_brands: tuple[str, ...] = ()
    allowed_sizes: tuple[str, ...] = ()
    allowed_conditions: tuple[str, ...] = ()
    excluded_brands: tuple[str, ...] = ()
    excluded_keywords: tuple[str, ...] = ()
    excluded_conditions: tuple[str, ...] = ()
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    max_age_minutes: Optional[int] = None
    require_image: bool = False

    def __post_init__(self):
        for name in _LIST_FIELDS:
            object.__setattr__(self, name, _clean_terms(getattr(self, name)))
        for name in _PRICE_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, Decimal):
                object.__setattr__(self, name, _to_decimal(value))

    def merged(self, **changes: Any) -> "FilterPolicy":
        """Return a copy with the given fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown policy field(s): {', '.join(sorted(unknown))}")
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Convert policy to a JSON-serialisable dictionary."""
        data = asdict(self)
        for name in _LIST_FIELDS:
            data[name] = list(data[name])
        for name in _PRICE_FIELDS:
            if data[name] is not None:
                data[name] = float(data[name])
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FilterPolicy":
        """Create policy from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        max_age = data.get("max_age_minutes")
        kwargs = {k: v for k, v in data.items() if k in known}
        if max_age is not None:
            try:
                kwargs["max_age_minutes"] = int(max_age)
            except (TypeError, ValueError):
                kwargs["max_age_minutes"] = None
        kwargs["require_image"] = bool(data.get("require_image", False))
        return cls(**kwargs)


class PolicyUpdate(BaseModel):
    """Partial policy update accepted by the control surface."""

    model_config = ConfigDict(extra="forbid")

    allowed_brands: list[str] | None = None
    allowed_sizes: list[str] | None = None
    allowed_conditions: list[str] | None = None
    excluded_brands: list[str] | None = None
    excluded_keywords: list[str] | None = None
    excluded_conditions: list[str] | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    max_age_minutes: int | None = None
    require_image: bool | None = None

    @field_validator("min_price", "max_price")
    @classmethod
    def _non_negative_price(cls, value):
        if value is not None and value < 0:
            raise ValueError("price bounds must be >= 0")
        return value

    @field_validator("max_age_minutes")
    @classmethod
    def _non_negative_age(cls, value):
        if value is not None and value < 0:
            raise ValueError("max_age_minutes must be >= 0")
        return value

    def changes(self) -> dict:
        """Fields explicitly set in this update (None clears optional bounds)."""
        data = self.model_dump(exclude_unset=True)
        if data.get("require_image") is None:
            data.pop("require_image", None)
        for name in _LIST_FIELDS:
            if name in data and data[name] is None:
                data[name] = ()
        return data

    def to_document(self) -> dict:
        """JSON form of the explicitly set fields, for the settings snapshot."""
        return self.model_dump(mode="json", exclude_unset=True)


class PolicyHolder:
    """Holds the current policy; readers always get one consistent snapshot."""

    def __init__(self, policy: FilterPolicy):
        self._policy = policy
        self._lock = threading.Lock()

    def get(self) -> FilterPolicy:
        with self._lock:
            return self._policy

    def replace(self, policy: FilterPolicy) -> FilterPolicy:
        with self._lock:
            self._policy = policy
        return policy

    def update(self, update: PolicyUpdate | dict) -> FilterPolicy:
        """
        Apply a partial update atomically.

        Args:
            update: PolicyUpdate or plain dict of changed fields

        Returns:
            The new policy now in effect

        Raises:
            pydantic.ValidationError: If the update is invalid
        """
        if not isinstance(update, PolicyUpdate):
            update = PolicyUpdate.model_validate(update)
        changes = update.changes()
        with self._lock:
            self._policy = self._policy.merged(**changes)
            policy = self._policy
        logger.info(f"Filter policy updated: {sorted(changes)}")
        return policy

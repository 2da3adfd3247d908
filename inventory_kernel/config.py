"""
Inventory Policy Configuration.

Deployment-level switches for the fulfillment core: negative stock,
receiving tolerances, variance rules and where sales orders decrement stock.
Defaults are the conservative choice; override per deployment from a YAML
file or a dict:

    policy = InventoryPolicy.from_yaml(Path("config/inventory.yaml"))

    # or
    policy = InventoryPolicy(allow_over_receipt_percent=Decimal("5"))

Failure modes:
    - Missing YAML file -> FileNotFoundError propagates.
    - Malformed YAML -> yaml.YAMLError propagates.
    - Unknown keys or out-of-range values -> ValueError.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field, fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml

from inventory_kernel.logging_config import get_logger

logger = get_logger("config")

STOCK_DECREMENT_POINTS = ("ship", "confirm")

DOCUMENT_TYPES = ("purchase_order", "receipt", "sales_order")

_DECIMAL_FIELDS = (
    "allow_over_receipt_percent",
    "quantity_variance_tolerance_percent",
    "price_variance_tolerance",
)


@dataclass
class InventoryPolicy:
    """
    Configuration schema for the inventory core.

    Sales orders reserve at confirm and decrement at ship by default
    (``stock_decrement_point="ship"``); ``"confirm"`` applies the stock-out
    at allocation instead.
    """

    # Stock ledger
    allow_negative_stock: bool = False

    # Receiving
    allow_over_receipt_percent: Decimal = Decimal("0")
    quantity_variance_tolerance_percent: Decimal = Decimal("0")
    price_variance_tolerance: Decimal = Decimal("0")
    partial_delivery_is_variance: bool = False
    stock_non_good_receipts: bool = False
    update_weighted_average_cost: bool = True

    # Sales
    stock_decrement_point: str = "ship"

    # Transactions
    max_conflict_retries: int = 5

    # Order numbers
    order_number_width: int = 6
    order_number_prefixes: dict[str, str] = field(
        default_factory=lambda: {
            "purchase_order": "PO",
            "receipt": "REC",
            "sales_order": "SO",
        }
    )

    def __post_init__(self):
        for name in _DECIMAL_FIELDS:
            value = Decimal(str(getattr(self, name)))
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")
            setattr(self, name, value)
        if self.stock_decrement_point not in STOCK_DECREMENT_POINTS:
            raise ValueError(
                f"stock_decrement_point must be one of {STOCK_DECREMENT_POINTS}, "
                f"got {self.stock_decrement_point!r}"
            )
        if self.max_conflict_retries < 1:
            raise ValueError("max_conflict_retries must be >= 1")
        if self.order_number_width < 1:
            raise ValueError("order_number_width must be >= 1")
        missing = set(DOCUMENT_TYPES) - set(self.order_number_prefixes)
        if missing:
            raise ValueError(f"order_number_prefixes missing {sorted(missing)}")

        logger.info(
            "inventory_policy_initialized",
            extra={
                "allow_negative_stock": self.allow_negative_stock,
                "allow_over_receipt_percent": self.allow_over_receipt_percent,
                "partial_delivery_is_variance": self.partial_delivery_is_variance,
                "stock_decrement_point": self.stock_decrement_point,
                "max_conflict_retries": self.max_conflict_retries,
            },
        )

    def prefix_for(self, document_type: str) -> str:
        try:
            return self.order_number_prefixes[document_type]
        except KeyError:
            raise ValueError(f"Unknown document type: {document_type!r}") from None

    def fingerprint(self) -> str:
        """Deterministic SHA-256 of the policy values, for audit logs."""
        canonical = json.dumps(asdict(self), sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @classmethod
    def with_defaults(cls) -> Self:
        """Create the conservative default policy."""
        logger.info("inventory_policy_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create policy from a dictionary (parsed file or database row)."""
        logger.info(
            "inventory_policy_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown inventory policy keys: {sorted(unknown)}")
        values = dict(data)
        if "order_number_prefixes" in values:
            prefixes = cls().order_number_prefixes
            prefixes.update(values["order_number_prefixes"] or {})
            values["order_number_prefixes"] = prefixes
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path | str) -> Self:
        """
        Load policy from a YAML file.

        The file may hold the settings at top level or under an
        ``inventory_policy`` key.
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping, got {type(data).__name__}")
        if "inventory_policy" in data:
            data = data["inventory_policy"] or {}
        return cls.from_dict(data)

"""
License Matcher for the Inactivity Engine.

Builds the per-run license catalog (SKU identifier to friendly name) and
tests accounts against a license include-list.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

import yaml

from ..connectors.base_connector import BaseDirectoryConnector, DirectoryError
from ..models import Account

logger = logging.getLogger(__name__)

DEFAULT_SKU_NAMES_FILE = Path(__file__).parent / "sku_names.yaml"


class LicenseCatalogError(Exception):
    """The license catalog could not be built and the policy forbids degrading."""


def load_product_names(path: Optional[Union[str, Path]] = None) -> Dict[str, str]:
    """
    Load the SKU part number to product name table.

    Args:
        path: YAML file; defaults to the packaged sku_names.yaml

    Returns:
        Mapping of part number to friendly product name
    """
    names_file = Path(path) if path else DEFAULT_SKU_NAMES_FILE
    if not names_file.exists():
        logger.warning(f"SKU names file not found: {names_file}")
        return {}

    with open(names_file, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return {str(k): str(v) for k, v in (data.get("products") or {}).items()}


class LicenseMatcher:
    """
    Matches account licenses against an include-list.

    The catalog maps raw SKU identifiers to friendly names. Each license
    matches on its friendly name, its part number, or its raw identifier.
    """

    def __init__(self, catalog: Optional[Dict[str, str]] = None, degraded: bool = False,
                 part_numbers: Optional[Dict[str, str]] = None):
        self.catalog: Dict[str, str] = dict(catalog or {})
        # SKU id to the part number reported by the directory, e.g. ENTERPRISEPACK
        self.part_numbers: Dict[str, str] = dict(part_numbers or {})
        # Set when the catalog build failed; license filtering is then disabled
        self.degraded = degraded

    @classmethod
    def build(cls, connector: BaseDirectoryConnector, product_names: Optional[Dict[str, str]] = None,
              fail_on_error: bool = False) -> "LicenseMatcher":
        """
        Build the catalog once per run from the directory's subscribed SKUs.

        Args:
            connector: Directory connector
            product_names: Part number to friendly name table
            fail_on_error: Raise instead of degrading to an empty catalog

        Returns:
            LicenseMatcher over the built catalog (empty and degraded on failure)

        Raises:
            LicenseCatalogError: If the build fails and fail_on_error is set
        """
        product_names = product_names or {}
        try:
            skus = connector.list_license_catalog()
        except DirectoryError as e:
            if fail_on_error:
                raise LicenseCatalogError(f"License catalog build failed: {e}") from e
            logger.warning(f"License catalog build failed, continuing with an empty catalog: {e}")
            return cls({}, degraded=True)

        catalog: Dict[str, str] = {}
        part_numbers: Dict[str, str] = {}
        for sku in skus:
            part_number = sku.sku_part_number
            if part_number:
                catalog[sku.sku_id] = product_names.get(part_number, part_number)
                part_numbers[sku.sku_id] = part_number
            else:
                catalog[sku.sku_id] = sku.sku_id

        logger.info(f"Built license catalog with {len(catalog)} SKUs")
        return cls(catalog, part_numbers=part_numbers)

    def license_names(self, account: Account) -> List[str]:
        """Friendly names of an account's licenses, raw id when unmapped."""
        return [self.catalog.get(sku_id, sku_id) for sku_id in account.assigned_licenses]

    def match_tokens(self, account: Account) -> Set[str]:
        """Candidate match tokens: friendly name, part number and raw SKU id per license."""
        tokens: Set[str] = set()
        for sku_id in account.assigned_licenses:
            tokens.add(sku_id)
            for name in (self.catalog.get(sku_id), self.part_numbers.get(sku_id)):
                if name:
                    tokens.add(name)
        return tokens

    def matches(self, account: Account, include_list: Iterable[str]) -> bool:
        """
        Test an account against the include-list.

        Matching is exact and case-sensitive on whole tokens. An empty
        include-list accepts every account.
        """
        wanted = set(include_list)
        if not wanted:
            return True
        return bool(self.match_tokens(account) & wanted)

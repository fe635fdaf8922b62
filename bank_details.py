"""
Bank detail extraction from partner intake forms.

Intake forms are free-form JSON and differ by partner type and by form
revision, so each logical field is looked up through an ordered list of
candidate paths. The first non-empty value wins. Bump EXTRACTION_VERSION
whenever the candidate lists change so consumers can tell which rules
produced a given result.
"""

import logging
from typing import Any, Dict, Optional, Sequence, Tuple

log = logging.getLogger(__name__)

EXTRACTION_VERSION = 1

Path = Tuple[str, ...]

_CONTAINERS = ("bankDetails", "bank_details", "bank", "paymentDetails", "payment_details")

def _paths(*names: str, top_level: bool = True) -> Tuple[Path, ...]:
    """Nested container paths first, then top-level keys."""
    nested = tuple((container, name) for container in _CONTAINERS for name in names)
    flat = tuple((name,) for name in names) if top_level else ()
    return nested + flat

CANDIDATE_PATHS: Dict[str, Tuple[Path, ...]] = {
    "account_holder_name": _paths("accountHolderName", "account_holder_name", "accountName", "holderName", "beneficiaryName"),
    "account_number": _paths("accountNumber", "account_number", "accountNo", "bankAccountNumber", "acNumber"),
    "ifsc_code": _paths("ifscCode", "ifsc_code", "ifsc", "IFSC"),
    "bank_name": _paths("bankName", "bank_name") + _paths("name", top_level=False),
    "branch": _paths("branch", "branchName", "bankBranch", "branch_name"),
    "upi_id": _paths("upiId", "upi_id", "upi", "vpa"),
}


def _lookup(document: Any, path: Sequence[str]) -> Optional[Any]:
    node = document
    for key in path:
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def _first_present(document: Dict[str, Any], paths: Sequence[Path]) -> Optional[str]:
    for path in paths:
        value = _lookup(document, path)
        if value is None or isinstance(value, (dict, list)):
            continue
        value = str(value).strip()
        if value:
            return value
    return None


def extract_bank_details(form_data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Return the partner's bank details, or None when the form has none.

    Never raises: malformed forms are logged and yield None.
    """
    if not form_data or not isinstance(form_data, dict):
        return None
    try:
        details = {field: _first_present(form_data, paths) for field, paths in CANDIDATE_PATHS.items()}
    except Exception:
        log.exception("Bank detail extraction failed")
        return None

    if not any(details.values()):
        return None
    if details.get("ifsc_code"):
        details["ifsc_code"] = details["ifsc_code"].upper()
    details["extraction_version"] = EXTRACTION_VERSION
    return details

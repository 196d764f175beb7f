from typing import Any, Dict, List, Optional


def mask_phone(phone: Optional[str]) -> str:
    """Keep only the last four digits of a phone number for logs."""
    if not phone:
        return "none"
    digits = str(phone)
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"


def loggable_keys(dynamic_variables: Dict[str, Any]) -> List[str]:
    # Values of secret__ variables never reach the log; only key names do.
    return sorted(dynamic_variables.keys())

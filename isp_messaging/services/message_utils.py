import re

def normalize_phone(number: str) -> str:
    """Strip separators and restore the leading zero on 10-digit mobile numbers."""
    if not number:
        return number
    number = re.sub(r"[\s\-()]", "", number.strip())
    if len(number) == 10 and number.startswith("9"):
        number = "0" + number
    return number

def split_addresses(value) -> list[str]:
    """Accept a comma separated string or a list of addresses."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [v.strip() for v in value if v and v.strip()]
    return [v.strip() for v in value.split(",") if v.strip()]

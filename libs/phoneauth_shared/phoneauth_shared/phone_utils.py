def mask_phone(phone: str) -> str:
    """Keep the first and last two characters: ``+15551234567`` -> ``+1********67``."""
    if not phone:
        return ""
    if len(phone) <= 4:
        return "*" * len(phone)
    return phone[:2] + "*" * (len(phone) - 4) + phone[-2:]

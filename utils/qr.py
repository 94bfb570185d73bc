from utils.config import PUBLIC_BASE_URL


def scan_url(restaurant_id: int, table_id: int, base_url: str = PUBLIC_BASE_URL) -> str:
    """URL encoded into a table's QR code."""
    return f"{base_url.rstrip('/')}/scan/{restaurant_id}/{table_id}"


def menu_path(restaurant_id: int, table_id: int, session_id: str) -> str:
    return f"/menu/{restaurant_id}/{table_id}?session={session_id}"

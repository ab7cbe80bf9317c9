from typing import Mapping, Optional

UNKNOWN_IDENTITY = "Unknown"


def resolve_visitor_identity(headers: Mapping[str, str], client_host: Optional[str]) -> str:
    """Client-IP header, then first X-Forwarded-For hop, then the socket address."""
    client_ip = (headers.get("client-ip") or "").strip()
    if client_ip:
        return client_ip

    forwarded_for = headers.get("x-forwarded-for") or ""
    first_hop = forwarded_for.split(",")[0].strip()
    if first_hop:
        return first_hop

    return client_host or UNKNOWN_IDENTITY

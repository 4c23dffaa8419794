"""Request inspection helpers."""
import ipaddress

from starlette.requests import Request

FALLBACK_IP = "127.0.0.1"


def is_valid_ip(value: str | None) -> bool:
    """Check if string is a valid IPv4 or IPv6 address."""
    if not value or value == "unknown":
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Proxy headers (X-Forwarded-For, then X-Real-IP) win over the socket peer.
    Test clients report non-IP hosts such as "testclient", which fall back to
    127.0.0.1.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
        if is_valid_ip(ip):
            return ip

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and is_valid_ip(real_ip.strip()):
        return real_ip.strip()

    if request.client and is_valid_ip(request.client.host):
        return request.client.host

    return FALLBACK_IP

import socket

from common.config import ADVERTISE_HOST


def get_lan_ip():
    # connect() on UDP sends nothing, it only picks the outgoing interface
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()


def advertise_host(configured: str = ADVERTISE_HOST) -> str:
    if configured == "auto":
        return get_lan_ip()
    return configured

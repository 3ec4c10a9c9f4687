"""
Utilities for checking network ports on the host.
"""
import socket

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed


def is_port_free(port: int, host: str = '') -> bool:
    """
    Checks if a port is free on the host, i.e. a published mapping could bind it.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
            return True
        except OSError:
            return False


def is_port_open(host: str, port: int, timeout: float = 1.0) -> bool:
    """
    Checks if something accepts TCP connections on ``host:port``.
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_for_port(host: str, port: int, attempts: int = 10, delay: float = 2.0, timeout: float = 1.0) -> int:
    """
    Retries a TCP connection until it succeeds.

    ``depends_on`` only orders container start, so the database may still be
    initializing when the application first connects.

    :return: The number of attempts it took.
    :raises ConnectionRefusedError: When the port never opened.
    """
    tries = {'count': 0}

    @retry(
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_fixed(delay),
        retry=retry_if_exception_type(ConnectionRefusedError),
        reraise=True,
    )
    def probe():
        tries['count'] += 1
        if not is_port_open(host, port, timeout):
            raise ConnectionRefusedError(f"{host}:{port} is not accepting connections")

    probe()
    return tries['count']

import socket
import pytest
from larastack.UTILS.port_finder import is_port_free, is_port_open, wait_for_port

@pytest.fixture
def listener():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(('127.0.0.1', 0))
    server.listen(1)
    yield server.getsockname()[1]
    server.close()

@pytest.fixture
def closed_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]

def test_open_port(listener):
    assert is_port_open('127.0.0.1', listener)
    assert not is_port_free(listener, '127.0.0.1')
    assert wait_for_port('127.0.0.1', listener, attempts=1, delay=0) == 1

def test_closed_port_gives_up(closed_port):
    assert not is_port_open('127.0.0.1', closed_port)
    with pytest.raises(ConnectionRefusedError):
        wait_for_port('127.0.0.1', closed_port, attempts=2, delay=0)

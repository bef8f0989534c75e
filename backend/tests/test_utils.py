import socket

import pytest

from utils import find_available_port, format_percentage, parse_int_arg


def test_find_available_port_returns_free_port():
    port = find_available_port(start_port=5500, max_attempts=5)
    sock = socket.socket()
    try:
        sock.bind(('0.0.0.0', port))
    finally:
        sock.close()
    assert port >= 5500


def test_find_available_port_raises_when_exhausted():
    start_port = 5600
    max_attempts = 3
    sockets = []
    for i in range(max_attempts):
        s = socket.socket()
        s.bind(('0.0.0.0', start_port + i))
        sockets.append(s)
    try:
        with pytest.raises(RuntimeError):
            find_available_port(start_port=start_port, max_attempts=max_attempts)
    finally:
        for s in sockets:
            s.close()


@pytest.mark.parametrize('value,expected', [
    (1.234, '1.23'), (-2.5, '-2.50'), ('3', '3.00'), (None, '0.00'), (float('nan'), '0.00'), ('abc', '0.00'),
])
def test_format_percentage(value, expected):
    assert format_percentage(value) == expected


@pytest.mark.parametrize('raw,expected', [
    ('30', 30), (None, 90), ('x', 90), ('0', 1), ('-4', 1), ('5000', 1000),
])
def test_parse_int_arg(raw, expected):
    assert parse_int_arg(raw, 90, maximum=1000) == expected

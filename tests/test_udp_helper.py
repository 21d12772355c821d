import json

import pytest

from errors import MalformedResponse, ProbeTimeout
from udp_helper import PROBE_MESSAGE, create_udp_socket, decode_message, encode_message, receive_datagram


def test_encode_message_defaults_params():
    assert json.loads(encode_message('getPilot')) == {"method": "getPilot", "params": {}}
    assert json.loads(PROBE_MESSAGE)["method"] == "getPilot"


@pytest.mark.parametrize("data", [b"\xff\xfe", b"{broken", b'"just a string"'])
def test_decode_rejects_non_objects(data):
    with pytest.raises(MalformedResponse):
        decode_message(data)


def test_decode_message():
    assert decode_message(b'{"result": {"mac": "abc"}}') == {"result": {"mac": "abc"}}


@pytest.mark.asyncio
async def test_receive_times_out():
    sock = create_udp_socket()
    try:
        with pytest.raises(ProbeTimeout):
            await receive_datagram(sock, 0.05)
    finally:
        sock.close()

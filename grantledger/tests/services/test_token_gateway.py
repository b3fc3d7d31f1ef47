import httpx
import pytest

from grantledger.core.errors import ExternalCallError, ParameterError
from grantledger.services.token_gateway import HttpTokenGateway, UnconfiguredTokenGateway


def _gateway(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpTokenGateway("https://rail.example/", client=client)


def test_transfer_posts_to_rail():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.read()
        return httpx.Response(200, json={"transaction_hash": "0xabc"})

    tx = _gateway(handler).transfer_from(token="0xusdc", sender="0xadmin", recipient="0xapplicant", amount=10)

    assert tx == "0xabc"
    assert seen["url"] == "https://rail.example/transfers"
    assert b'"amount":"10"' in seen["body"].replace(b" ", b"")


def test_rejected_transfer_raises():
    gateway = _gateway(lambda request: httpx.Response(409, text="insufficient allowance"))
    with pytest.raises(ExternalCallError, match="409"):
        gateway.transfer_from(token="0xusdc", sender="0xadmin", recipient="0xapplicant", amount=10)


def test_transport_failure_raises():
    def handler(request):
        raise httpx.ConnectError("rail down", request=request)

    with pytest.raises(ExternalCallError):
        _gateway(handler).transfer_from(token="0xusdc", sender="0xadmin", recipient="0xapplicant", amount=10)


def test_non_positive_amount_rejected_before_calling_out():
    def handler(request):
        raise AssertionError("rail must not be called")

    with pytest.raises(ParameterError):
        _gateway(handler).transfer_from(token="0xusdc", sender="0xadmin", recipient="0xapplicant", amount=0)


def test_unconfigured_gateway_always_fails():
    with pytest.raises(ExternalCallError):
        UnconfiguredTokenGateway().transfer_from(token="t", sender="a", recipient="b", amount=1)

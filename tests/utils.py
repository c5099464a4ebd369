"""Helpers for faking aioboto3 sessions, clients and paginators."""

from typing import Any
from unittest.mock import MagicMock

from botocore.exceptions import ClientError


class AsyncContextManagerMock:
    def __init__(self, obj):
        self.obj = obj

    async def __aenter__(self):
        return self.obj

    async def __aexit__(self, exc_type, exc, tb):
        return False


class AsyncIteratorMock:
    def __init__(self, items):
        self.items = list(items)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.items:
            raise StopAsyncIteration
        return self.items.pop(0)


def make_aws_session(**clients: Any) -> MagicMock:
    """Session whose `client(service, ...)` yields `clients[service]`."""
    session = MagicMock()
    session.client.side_effect = lambda service_name, **kwargs: AsyncContextManagerMock(
        clients[service_name]
    )
    return session


def paginating_client(**pages_by_operation: list[dict]) -> MagicMock:
    """Client whose paginators replay the given pages per operation."""
    client = MagicMock()

    def _get_paginator(operation: str) -> MagicMock:
        paginator = MagicMock()
        paginator.paginate.side_effect = lambda **kwargs: AsyncIteratorMock(
            pages_by_operation.get(operation, [])
        )
        return paginator

    client.get_paginator.side_effect = _get_paginator
    return client


def client_error(code: str, message: str, operation: str = "AssumeRole") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)

"""
Request-scoped access to the services built by the composition root.
"""
from fastapi import Request

from wulang.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services

"""Request-scoped access to the components create_app() wires up.

Routes depend on these instead of module globals so tests can swap them
through app.dependency_overrides.
"""

from fastapi import Request

from waingest.audit import AuditSink
from waingest.config import Settings
from waingest.domain.dispatcher import EventDispatcher


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.dispatcher


def get_audit_sink(request: Request) -> AuditSink:
    return request.app.state.audit_sink

"""
Wiring between the HTTP service and the run dispatcher.
"""

from fastapi import Request

from controller.src.config import get_settings as get_controller_settings
from controller.src.services.status_reporter import StatusReporter
from controller.src.worker import RunDispatcher

def create_dispatcher() -> RunDispatcher:
    settings = get_controller_settings()
    reporter = StatusReporter.from_url(settings.database_url)
    return RunDispatcher(settings, reporter)

def get_dispatcher(request: Request) -> RunDispatcher:
    return request.app.state.dispatcher

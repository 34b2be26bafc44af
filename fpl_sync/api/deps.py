"""Dependency injection for FastAPI routes."""

from typing import Annotated

from fastapi import Depends, Request

from fpl_sync.container import Container
from fpl_sync.jobs import JobScheduler


def get_container(request: Request) -> Container:
    """Return the container the app was created with (set during lifespan)."""
    return request.app.state.container


ContainerDep = Annotated[Container, Depends(get_container)]


def get_scheduler(container: ContainerDep) -> JobScheduler:
    return container.scheduler


SchedulerDep = Annotated[JobScheduler, Depends(get_scheduler)]

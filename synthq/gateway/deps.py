from typing import Annotated

from fastapi import Depends, Header, Request

from synthq.gateway.cache import RedisCache
from synthq.gateway.synthesis import SynthesisOrchestrator

ANONYMOUS_CALLER = "anonymous"


def get_orchestrator(request: Request) -> SynthesisOrchestrator:
    return request.app.state.services.orchestrator


def get_cache(request: Request) -> RedisCache:
    return request.app.state.services.cache


def get_caller_id(request: Request, x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Caller identity used for job ownership and logging. There is no authentication."""
    caller_id = x_user_id.strip() if x_user_id and x_user_id.strip() else ANONYMOUS_CALLER
    request.state.user_id = caller_id
    return caller_id


Orchestrator = Annotated[SynthesisOrchestrator, Depends(get_orchestrator)]
AudioCache = Annotated[RedisCache, Depends(get_cache)]
CallerId = Annotated[str, Depends(get_caller_id)]

from fastapi import Request

from dbgateway.dispatcher import ToolDispatcher


def get_dispatcher(request: Request) -> ToolDispatcher:
    """Get the tool dispatcher bound to the application's registry."""
    return request.app.state.dispatcher

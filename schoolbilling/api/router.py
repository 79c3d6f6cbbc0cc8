"""Router that answers with and without a trailing slash."""

from typing import Any, Callable

from fastapi import APIRouter
from fastapi.types import DecoratedCallable


class TrailingSlashRouter(APIRouter):
    """Registers each endpoint at ``/path`` and ``/path/``.

    Only the form without the slash appears in the OpenAPI schema, and no
    redirect is issued for either form. Payment gateways do not follow
    redirects on webhook POSTs.
    """

    def api_route(
        self, path: str, *, include_in_schema: bool = True, **kwargs: Any
    ) -> Callable[[DecoratedCallable], DecoratedCallable]:
        """Register the endpoint under both path forms.

        Args:
            path (str): The path for the endpoint, with or without a trailing slash
            include_in_schema (bool): Whether to include the route in the OpenAPI schema
            **kwargs: Passed through to APIRouter.api_route

        Returns:
            Callable[[DecoratedCallable], DecoratedCallable]: The registering decorator
        """
        path = path.rstrip("/")
        add_path = super().api_route(path, include_in_schema=include_in_schema, **kwargs)
        add_slash_path = super().api_route(path + "/", include_in_schema=False, **kwargs)

        def decorator(func: DecoratedCallable) -> DecoratedCallable:
            add_slash_path(func)
            return add_path(func)

        return decorator

"""Health check endpoints."""

from schoolbilling.api.router import TrailingSlashRouter

router = TrailingSlashRouter()


@router.get("")
async def health_check() -> dict[str, str]:
    """Report that the service is up.

    Returns:
    --------
        dict: {"status": "healthy"}
    """
    return {"status": "healthy"}

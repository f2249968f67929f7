from collections.abc import Callable
from pathlib import Path

from app.core.config import settings
from app.services.bigcommerce import BigCommerceClient

ClientFactory = Callable[[], BigCommerceClient]


def get_client_factory() -> ClientFactory:
    """Build store clients on demand.

    Routes open the client themselves so that streaming responses keep it alive
    for as long as the stream runs.
    """
    return BigCommerceClient.from_settings


def get_export_dir() -> Path:
    export_dir = Path(settings.export_dir)
    export_dir.mkdir(parents=True, exist_ok=True)
    return export_dir

from typing import Any, Dict, Optional

import aiohttp

from src.earthvoice import settings
from utils.ml_logging import get_logger

logger = get_logger("earthvoice.tool_store.http")


async def fetch_json(
    url: str, params: Dict[str, Any], headers: Optional[Dict[str, str]] = None
) -> Any:
    """
    GET ``url`` and decode the JSON body.

    Raises:
        RuntimeError: On transport failures or a non-2xx status.
    """
    timeout = aiohttp.ClientTimeout(total=settings.HTTP_TIMEOUT_SECONDS)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(
                url, params=params, headers=headers or {"Accept": "application/json"}
            ) as response:
                if response.status >= 400:
                    raise RuntimeError(
                        f"Request to {url} failed with status {response.status}."
                    )
                return await response.json(content_type=None)
    except aiohttp.ClientError as e:
        logger.warning(f"HTTP request to {url} failed: {e}")
        raise RuntimeError(f"Failed to contact {url}: {e}") from e

import os
import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from couchbase.auth import PasswordAuthenticator
from acouchbase.cluster import Cluster as AsyncCluster
from couchbase.options import ClusterOptions

logger = logging.getLogger(__name__)

# Environment variables
USERNAME = os.environ.get('COUCHBASE_USERNAME', '')
PASSWORD = os.environ.get('COUCHBASE_PASSWORD', '')
DEFAULT_BUCKET_NAME = os.environ.get('COUCHBASE_BUCKET', 'carbonmarket')
HOST = os.environ.get('COUCHBASE_HOST', '')
PROTOCOL = os.environ.get('COUCHBASE_PROTOCOL', 'couchbase')

VALID_PROTOCOLS = ('couchbase', 'couchbases')

# Module-level cluster cache
_cluster = None


def config_errors() -> List[str]:
    """Collect configuration problems without raising."""
    errors = []
    if not USERNAME:
        errors.append("COUCHBASE_USERNAME is missing or empty")
    if not PASSWORD:
        errors.append("COUCHBASE_PASSWORD is missing or empty")
    if not HOST:
        errors.append("COUCHBASE_HOST is missing or empty")
    if not DEFAULT_BUCKET_NAME:
        errors.append("COUCHBASE_BUCKET is missing or empty")
    if PROTOCOL not in VALID_PROTOCOLS:
        errors.append(f"COUCHBASE_PROTOCOL '{PROTOCOL}' is invalid. Must be one of {VALID_PROTOCOLS}")
    return errors


def auth() -> PasswordAuthenticator:
    errors = config_errors()
    if errors:
        raise ValueError("Invalid Couchbase Configuration:\n" + "\n".join(errors))
    return PasswordAuthenticator(USERNAME, PASSWORD)


async def get_cluster(max_retries: int = 10, initial_delay: float = 1.0, max_delay: float = 30.0):
    """
    Returns a cached Couchbase cluster connection.
    Configuration is validated on first use, so importing the models never
    requires a reachable database.
    """
    global _cluster
    if _cluster is None:
        authenticator = auth()
        url = PROTOCOL + "://" + HOST
        delay = initial_delay
        last_exception: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            try:
                cluster = await AsyncCluster.connect(url, ClusterOptions(authenticator))
                await cluster.wait_until_ready(timedelta(seconds=50))
                _cluster = cluster
                break
            except Exception as e:
                last_exception = e
                if attempt == max_retries:
                    raise
                logger.warning(
                    "Couchbase connect attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt, max_retries, e, delay,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, max_delay)

        if _cluster is None and last_exception is not None:
            raise last_exception
    return _cluster


async def get_default_bucket():
    cluster = await get_cluster()
    return cluster.bucket(DEFAULT_BUCKET_NAME)


async def check_connection():
    """Explicitly pings the cluster. Used by the API lifespan."""
    cluster = await get_cluster()
    await cluster.ping()

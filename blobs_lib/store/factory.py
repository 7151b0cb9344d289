"""Entry points that build stores from explicit options and the environment."""
from __future__ import annotations
from typing import Any, AsyncIterator, Awaitable, Mapping, Optional, Union

from blobs_lib.client import listing
from blobs_lib.client.client import Client
from blobs_lib.environment import get_client_config, get_environment_context
from blobs_lib.errors import ConfigurationError
from blobs_lib.models import ListStoresResult
from blobs_lib.store.refs import DeployStore, NamedStore
from blobs_lib.store.store import Store


def get_store(
    name: Optional[str] = None,
    *,
    deploy_id: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    **options: Any,
) -> Store:
    """Return a named store, or the deploy store when only `deploy_id` is given.

    `options` are client options (`site_id`, `token`, `edge_url`, ...); they
    fill in whatever the environment context leaves unset.
    """
    context = get_environment_context(environ)
    config = get_client_config(options, context)
    if name:
        ref = NamedStore(name)
    elif deploy_id:
        ref = DeployStore(deploy_id)
    else:
        raise ConfigurationError(["name"])
    return Store(Client(config), ref)


def get_deploy_store(
    deploy_id: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    **options: Any,
) -> Store:
    """Return the store scoped to a deploy, defaulting to the deploy in the environment."""
    context = get_environment_context(environ)
    deploy_id = deploy_id or context.deploy_id
    if not deploy_id:
        raise ConfigurationError(["deploy_id", "site_id", "token"])
    config = get_client_config(options, context)
    return Store(Client(config), DeployStore(deploy_id))


def list_stores(
    *,
    prefix: Optional[str] = None,
    paginate: bool = False,
    environ: Optional[Mapping[str, str]] = None,
    **options: Any,
) -> Union[Awaitable[ListStoresResult], AsyncIterator[ListStoresResult]]:
    """List the named stores of a site. Deploy stores are left out.

    Returns an awaitable of all stores, or an async iterator of pages when
    `paginate` is true. The client is closed once the listing finishes.
    """
    config = get_client_config(options, get_environment_context(environ))
    client = Client(config)

    if paginate:
        async def pages() -> AsyncIterator[ListStoresResult]:
            try:
                async for page in listing.iterate_store_pages(client, prefix=prefix):
                    yield page
            finally:
                await client.aclose()

        return pages()

    async def collect() -> ListStoresResult:
        try:
            return await listing.collect_store_pages(client, prefix=prefix)
        finally:
            await client.aclose()

    return collect()

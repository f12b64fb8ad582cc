# Copyright (c) 2026, The couchdb-migration Authors.
# Distributed under the terms of the AGPLv3 license, see LICENSE.
"""
HTTP client for the CouchDB cluster API.
"""

import logging
import typing as t
from urllib.parse import quote, urlsplit, urlunsplit

import requests

from couchdb_migration.config import obtain_couch_url, obtain_request_timeout, obtain_ssl_verify
from couchdb_migration.exception import DiscoveryError, MigrationError, MoveError, SyncError

logger = logging.getLogger(__name__)


def mask_url(url: str) -> str:
    """
    Mask the password component of a URL, for logging purposes.
    """
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = f"{parts.username}:****@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))


def quote_db(db: str) -> str:
    """
    Quote a database name for use as a URL path segment. Slashes need to be encoded, too.
    """
    return quote(db, safe="")


class CouchClusterClient:
    """Client for talking to the HTTP API of a clustered CouchDB"""

    def __init__(
        self,
        url: t.Optional[str] = None,
        timeout: t.Optional[float] = None,
        verify: t.Optional[bool] = None,
        session: t.Optional[requests.Session] = None,
    ):
        url = obtain_couch_url(url)
        parts = urlsplit(url)

        # Credentials are sent using HTTP basic auth, not as part of the URL.
        netloc = parts.hostname or ""
        if parts.port:
            netloc += f":{parts.port}"
        self.base_url = urlunsplit((parts.scheme, netloc, parts.path.rstrip("/"), "", ""))
        self.safe_url = mask_url(url)

        self.timeout = obtain_request_timeout(timeout)
        self.session = session or requests.Session()
        self.session.verify = obtain_ssl_verify(verify)
        if parts.username:
            self.session.auth = (parts.username, parts.password or "")
        logger.debug(f"Connecting to CouchDB: {self.safe_url}")

    def request(
        self,
        method: str,
        path: str,
        error_class: t.Type[MigrationError] = MigrationError,
        **kwargs,
    ) -> t.Any:
        """
        Invoke an HTTP request and decode the JSON response.

        Transport errors and non-successful responses raise `error_class`.
        """
        url = self.base_url + path
        logger.debug(f"{method} {path}")
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as ex:
            raise error_class(f"{method} {path} failed: {ex}") from ex
        if not response.ok:
            raise error_class(f"{method} {path} failed: {response.status_code} {response.reason}: {response.text}")
        try:
            return response.json()
        except ValueError as ex:
            raise error_class(f"{method} {path} returned invalid JSON: {ex}") from ex

    def check_up(self) -> bool:
        """Whether the server responds to its health check endpoint"""
        try:
            self.request("GET", "/_up")
            return True
        except MigrationError as ex:
            logger.debug(f"CouchDB is not up yet: {ex.message}")
            return False

    def get_membership(self) -> t.Dict[str, t.List[str]]:
        return self.request("GET", "/_membership", error_class=DiscoveryError)

    def get_nodes(self) -> t.List[str]:
        """Get the names of all nodes which are members of the cluster"""
        return list(self.get_membership().get("cluster_nodes", []))

    def get_dbs(self) -> t.List[str]:
        """Get the names of all databases, including system databases"""
        return list(self.request("GET", "/_all_dbs", error_class=DiscoveryError))

    def get_db_shards(self, db: str) -> t.Dict[str, t.List[str]]:
        """Get the shard ranges of a database and the nodes which own them"""
        result = self.request("GET", f"/{quote_db(db)}/_shards", error_class=DiscoveryError)
        return result.get("shards", {})

    def get_shards(self) -> t.List[str]:
        """
        Get all shard ranges of the cluster.

        Databases may be created with different `q` values, so the ranges of all
        databases are collected, in the order they have been seen first.
        """
        shards: t.List[str] = []
        seen: t.Set[str] = set()
        for db in self.get_dbs():
            for shard in self.get_db_shards(db):
                if shard not in seen:
                    seen.add(shard)
                    shards.append(shard)
        return shards

    def sync_shards(self, db: str) -> t.Dict[str, t.Any]:
        """Trigger synchronization of all shard replicas of a database"""
        return self.request("POST", f"/{quote_db(db)}/_sync_shards", error_class=SyncError)

    def get_db_metadata(self, db: str) -> t.Dict[str, t.Any]:
        """Get the shard map document of a database, from the node-local `_dbs` database"""
        return self.request("GET", f"/_node/_local/_dbs/{quote_db(db)}", error_class=MoveError)

    def put_db_metadata(self, db: str, doc: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
        """Store the shard map document of a database"""
        return self.request("PUT", f"/_node/_local/_dbs/{quote_db(db)}", error_class=MoveError, json=doc)

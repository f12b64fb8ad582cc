import dataclasses
import os
import typing as t

from dotenv import find_dotenv, load_dotenv

from couchdb_migration.exception import CouchUrlMissingError, ValidationError
from couchdb_migration.util.data import asbool

DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclasses.dataclass
class EnvironmentConfiguration:
    """
    Manage information about the migration tool environment.

    Settings which are `None` are read from environment variables when needed.
    """

    couch_url: t.Optional[str] = None
    request_timeout: t.Optional[float] = None
    ssl_verify: t.Optional[bool] = None


# The global environment.
CONFIG = EnvironmentConfiguration()


def configure(
    couch_url: t.Optional[str] = None,
    request_timeout: t.Optional[float] = None,
    ssl_verify: t.Optional[bool] = None,
):
    """
    Configure the migration tool environment.
    """
    CONFIG.couch_url = couch_url
    CONFIG.request_timeout = request_timeout
    CONFIG.ssl_verify = ssl_verify


def preconfigure():
    """
    Load an optional `.env` file, and read the server address from `COUCH_URL`.

    `COUCH_REQUEST_TIMEOUT` and `COUCH_SSL_VERIFY` are decoded when connecting,
    so invalid values do not prevent importing the package.
    """
    load_dotenv(find_dotenv(usecwd=True))
    configure(couch_url=os.environ.get("COUCH_URL") or None)


def obtain_couch_url(url: t.Optional[str] = None) -> str:
    """
    Obtain the CouchDB server URL, from the argument or from the environment configuration.
    """
    url = url or CONFIG.couch_url
    if not url:
        raise CouchUrlMissingError()
    return url


def obtain_request_timeout(timeout: t.Optional[float] = None) -> float:
    """
    Obtain the HTTP request timeout, from the argument, the configuration, or `COUCH_REQUEST_TIMEOUT`.
    """
    if timeout is None:
        timeout = CONFIG.request_timeout
    if timeout is None:
        value = os.environ.get("COUCH_REQUEST_TIMEOUT")
        if not value:
            return DEFAULT_REQUEST_TIMEOUT
        try:
            timeout = float(value)
        except ValueError as ex:
            raise ValidationError(f"Invalid COUCH_REQUEST_TIMEOUT: {value!r}, expected number of seconds") from ex
    if timeout <= 0:
        raise ValidationError(f"Invalid request timeout: {timeout}, expected positive number of seconds")
    return timeout


def obtain_ssl_verify(verify: t.Optional[bool] = None) -> bool:
    """
    Obtain whether to verify TLS certificates, from the argument, the configuration, or `COUCH_SSL_VERIFY`.
    """
    if verify is None:
        verify = CONFIG.ssl_verify
    if verify is None:
        value = os.environ.get("COUCH_SSL_VERIFY", "true")
        try:
            verify = asbool(value)
        except ValueError as ex:
            raise ValidationError(f"Invalid COUCH_SSL_VERIFY: {value!r}, expected true or false") from ex
    return verify

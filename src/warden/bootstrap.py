"""ABOUTME: Process wiring for warden, shared by the web app and the CLI
ABOUTME: Starts the mappers, builds the session factory and the rate limiters once per process"""

from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from warden.adapters import database
from warden.config import get_db_uri
from warden.service_layer import unit_of_work
from warden.service_layer.rate_limits import RateLimits, create_rate_limits


@dataclass(kw_only=True)
class Warden:
    """Everything a request needs that outlives the request."""

    session_factory: sessionmaker
    limits: RateLimits
    check_pwned: bool = False

    def new_uow(self) -> unit_of_work.SqlAlchemyUnitOfWork:
        # units of work keep per-block state, so never share one between threads
        return unit_of_work.SqlAlchemyUnitOfWork(self.session_factory)


def bootstrap(
    start_orm: bool = True,
    session_factory: sessionmaker | None = None,
    limits: RateLimits | None = None,
    database_url: str = "",
    create_schema: bool = True,
    check_pwned: bool = False,
) -> Warden:
    if start_orm:
        database.start_mappers()

    if session_factory is None:
        session_factory = database.create_session_factory(database_url or get_db_uri())

    if create_schema:
        database.create_tables(session_factory)

    if limits is None:
        limits = create_rate_limits()

    return Warden(session_factory=session_factory, limits=limits, check_pwned=check_pwned)

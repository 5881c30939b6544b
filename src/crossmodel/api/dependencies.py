"""FastAPI dependency injection for services and database sessions."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from crossmodel.core.database import get_session, init_database
from crossmodel.core.services import JoinService, QueryService, SourceService

# Flag to track if database has been initialized
_db_initialized = False


def get_db() -> Generator[Session, None, None]:
    """Yield a database session that commits on success and rolls back on error.

    Initializes the database on first call.
    """
    global _db_initialized
    if not _db_initialized:
        init_database()
        _db_initialized = True

    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


DbSession = Annotated[Session, Depends(get_db)]


def get_source_service(session: DbSession) -> SourceService:
    return SourceService(session)


def get_join_service(session: DbSession) -> JoinService:
    return JoinService(session)


def get_query_service(session: DbSession) -> QueryService:
    return QueryService(session)


SourceServiceDep = Annotated[SourceService, Depends(get_source_service)]
JoinServiceDep = Annotated[JoinService, Depends(get_join_service)]
QueryServiceDep = Annotated[QueryService, Depends(get_query_service)]

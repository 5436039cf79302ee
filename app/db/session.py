from types import TracebackType
from typing import Any, Type, TypeVar

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from app.db.repositories.repository_base import RepositoryBase

T = TypeVar("T", bound=RepositoryBase)


class DbSession:
    """
    Thin wrapper around a SQLAlchemy session, usable as a context manager.
    Repositories are created on top of the same session so they share one transaction.
    """

    def __init__(self, engine: Engine) -> None:
        self.session = Session(engine, expire_on_commit=False)

    def __enter__(self) -> "DbSession":
        return self

    def __exit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.session.rollback()
        self.session.close()

    def get_repository(self, repository_class: Type[T]) -> T:
        return repository_class(self)

    def add(self, entry: Any) -> None:
        self.session.add(entry)

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
